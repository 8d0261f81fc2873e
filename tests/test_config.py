import pytest

from stromlayout.config import DEFAULT_LAYOUT_CONFIG, LayoutConfig


def test_defaults():
    config = DEFAULT_LAYOUT_CONFIG
    assert config.card_width == 130
    assert config.card_height == 65
    assert config.horizontal_gap == 15
    assert config.vertical_gap == 80
    assert config.partner_gap == 12
    assert config.padding == 50
    assert config.min_edge_clearance == 14
    assert config.row_height == 145


def test_from_dict_accepts_camel_and_snake_case():
    config = LayoutConfig.from_dict({"cardWidth": 100, "vertical_gap": 40, "unknown": 1})
    assert config.card_width == 100
    assert config.vertical_gap == 40
    assert config.card_height == 65


@pytest.mark.parametrize(
    "kwargs",
    [
        {"card_width": 0},
        {"card_height": -1},
        {"horizontal_gap": -5},
        {"padding": -1},
    ],
)
def test_invalid_values_rejected(kwargs):
    with pytest.raises(ValueError):
        LayoutConfig(**kwargs)
