"""Layout configuration and pipeline defaults."""

from dataclasses import dataclass, fields

DEFAULT_MAX_ITERATIONS = 20
DEFAULT_TOLERANCE = 0.5

# camelCase keys used by the application settings
_CAMEL_KEYS = {
    "cardWidth": "card_width",
    "cardHeight": "card_height",
    "horizontalGap": "horizontal_gap",
    "verticalGap": "vertical_gap",
    "partnerGap": "partner_gap",
    "padding": "padding",
    "minEdgeClearance": "min_edge_clearance",
}


@dataclass(frozen=True)
class LayoutConfig:
    card_width: float = 130
    card_height: float = 65
    horizontal_gap: float = 15
    vertical_gap: float = 80
    partner_gap: float = 12
    padding: float = 50
    min_edge_clearance: float = 14  # min gap between unrelated edge segments

    def __post_init__(self):
        if self.card_width <= 0 or self.card_height <= 0:
            raise ValueError(
                f"Card size must be positive, got {self.card_width}x{self.card_height}"
            )
        for name in ("horizontal_gap", "vertical_gap", "partner_gap", "padding", "min_edge_clearance"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative, got {getattr(self, name)}")

    @property
    def row_height(self) -> float:
        return self.card_height + self.vertical_gap

    @classmethod
    def from_dict(cls, raw: dict) -> "LayoutConfig":
        """Build a config from camelCase or snake_case keys; unknown keys are ignored."""
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in raw.items():
            name = _CAMEL_KEYS.get(key, key)
            if name in known:
                values[name] = float(value)
        return cls(**values)


DEFAULT_LAYOUT_CONFIG = LayoutConfig()
