from stromlayout.config import DEFAULT_LAYOUT_CONFIG
from stromlayout.layout_types import ChildDrop, Connection, LayoutResult, Position, SpouseLine
from stromlayout.validation import (
    check_bounds,
    check_bus_overlaps,
    check_card_overlaps,
    check_centering_constraint,
    check_references,
    validate_layout,
)

CONFIG = DEFAULT_LAYOUT_CONFIG


def bus(union_id, left, right, y=150.0):
    return Connection(
        union_id=union_id,
        stem_x=(left + right) / 2,
        stem_top_y=100,
        stem_bottom_y=y,
        branch_y=y,
        branch_left_x=left,
        branch_right_x=right,
        connector_from_x=(left + right) / 2,
        connector_to_x=(left + right) / 2,
        connector_y=y,
    )


def test_clean_layout_passes():
    result = LayoutResult(positions={"a": Position(50, 50), "b": Position(200, 50), "c": Position(50, 195)})
    validation = validate_layout(result, CONFIG)
    assert validation.passed
    assert validation.errors == []


def test_card_overlap():
    result = LayoutResult(positions={"a": Position(50, 50), "b": Position(100, 50)})
    assert check_card_overlaps(result, CONFIG) == ["Card overlap: a and b"]


def test_partners_are_far_enough_apart():
    # partner gap 12 is more than half the horizontal gap
    result = LayoutResult(positions={"a": Position(50, 50), "b": Position(192, 50)})
    assert check_card_overlaps(result, CONFIG) == []


def test_bounds():
    result = LayoutResult(positions={"a": Position(-1, 10), "b": Position(float("nan"), 10)})
    errors = check_bounds(result)
    assert "Negative X position for a: -1" in errors
    assert any(e.startswith("Invalid position for b") for e in errors)


def test_missing_references():
    connection = bus("u", 0, 100)
    connection.drops = [ChildDrop("ghost", 0, 150, 195)]
    line = SpouseLine("u", "a", "nobody", None, 80, 180, 192)
    result = LayoutResult(positions={"a": Position(50, 50)}, connections=[connection], spouse_lines=[line])
    assert check_references(result) == [
        "Connection drop references missing person: ghost",
        "Spouse line references missing person: nobody",
    ]


def test_bus_overlap():
    result = LayoutResult(connections=[bus("u1", 0, 100), bus("u2", 50, 150), bus("u3", 50, 150, y=300)])
    assert check_bus_overlaps(result) == ["Bus line overlap at Y=150: u1 and u2"]


def test_staircase_reported():
    connection = bus("u", 0, 100)
    connection.connector_y = 120
    connection.connector_to_x = 0
    result = LayoutResult(connections=[connection])
    validation = validate_layout(result, CONFIG)
    assert not validation.passed
    assert "horizontal segments at different Y levels" in validation.errors[0]


def test_centering_constraint():
    result = LayoutResult(
        positions={"p": Position(100, 50), "c1": Position(50, 195), "c2": Position(150, 195), "c3": Position(300, 195)}
    )
    assert check_centering_constraint(result, "p", ["c1", "c2"]) is None
    assert check_centering_constraint(result, "p", ["c1", "c3"]) == "Centering violation for p: 75.0px off center"
    assert check_centering_constraint(result, "missing", ["c1"]) is None
    assert check_centering_constraint(result, "p", []) is None
