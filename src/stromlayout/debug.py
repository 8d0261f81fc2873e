"""
Step-by-step inspection of the layout pipeline.

A snapshot records the models produced up to a step. From step 5 on it also
carries a validation summary and geometric primitives (boxes, spans, buses,
anchors, bands, branch envelopes) for drawing an overlay.
"""

from dataclasses import dataclass, field

from stromlayout.config import LayoutConfig
from stromlayout.emit import normalization_shift
from stromlayout.layout_types import (
    PHASES,
    ConstrainedModel,
    GenerationalModel,
    GraphSelection,
    LayoutModel,
    LayoutResult,
    MeasuredModel,
    PlacedModel,
    Position,
    RoutedModel,
    UnionId,
)
from stromlayout.measure import branch_bounds, subtree_block_ids
from stromlayout.models import PersonId
from stromlayout.routing import generation_y

DEBUG_STEP_NAMES = {
    1: "Select Subgraph",
    2: "Build Model",
    3: "Assign Generations",
    4: "Measure Subtrees",
    5: "Place X",
    6: "Apply Constraints",
    7: "Route Edges",
    8: "Emit Result",
}

GOLDEN_ANGLE = 137.508
POINT_EPSILON = 0.01


@dataclass
class DebugOptions:
    step: int = 8
    phase: str | None = None  # stop after this constraint phase

    def __post_init__(self):
        if self.step not in DEBUG_STEP_NAMES:
            raise ValueError(f"Debug step must be 1-8, got {self.step}")
        if self.phase is not None and self.phase not in PHASES:
            raise ValueError(f"Unknown phase: {self.phase}")


# ==================== VALIDATION ====================


@dataclass
class CenteringError:
    union_id: UnionId
    parent_center_x: float
    children_center_x: float
    error_px: float


@dataclass
class DebugValidationResult:
    box_overlap_count: int = 0
    span_overlap_count: int = 0
    centering_errors: list[CenteringError] = field(default_factory=list)
    edge_crossing_count: int = 0

    @property
    def all_passed(self) -> bool:
        return (
            self.box_overlap_count == 0
            and self.span_overlap_count == 0
            and not self.centering_errors
            and self.edge_crossing_count == 0
        )


# ==================== GEOMETRY ====================


@dataclass
class DebugRect:
    id: str
    x: float
    y: float
    width: float
    height: float
    label: str | None = None


@dataclass
class DebugSiblingSpan:
    union_id: UnionId
    x1: float
    x2: float
    y: float


@dataclass
class DebugBusLine:
    union_id: UnionId
    y: float
    x1: float
    x2: float


@dataclass
class DebugAnchorPoint:
    id: str
    x: float
    y: float
    type: str  # person, union, bus


@dataclass
class DebugGenerationBand:
    gen: int
    y: float
    height: float


@dataclass
class DebugBranchEnvelope:
    branch_id: str
    min_x: float
    max_x: float
    min_y: float
    max_y: float
    label: str
    sibling_index: int
    color: str


@dataclass
class DebugSiblingFamilyCluster:
    person_id: PersonId
    label: str
    card_min_x: float
    card_max_x: float
    block_min_x: float
    block_max_x: float
    min_y: float
    max_y: float
    color: str


@dataclass
class DebugGeometry:
    person_boxes: list[DebugRect] = field(default_factory=list)
    union_boxes: list[DebugRect] = field(default_factory=list)
    sibling_spans: list[DebugSiblingSpan] = field(default_factory=list)
    bus_lines: list[DebugBusLine] = field(default_factory=list)
    anchor_points: list[DebugAnchorPoint] = field(default_factory=list)
    generation_bands: list[DebugGenerationBand] = field(default_factory=list)
    branch_envelopes: list[DebugBranchEnvelope] = field(default_factory=list)
    sibling_family_clusters: list[DebugSiblingFamilyCluster] = field(default_factory=list)


@dataclass
class DebugSnapshot:
    step: int
    step_name: str
    selection: GraphSelection | None = None
    model: LayoutModel | None = None
    gen_model: GenerationalModel | None = None
    measured: MeasuredModel | None = None
    placed: PlacedModel | None = None
    constrained: ConstrainedModel | None = None
    routed: RoutedModel | None = None
    result: LayoutResult | None = None
    validation: DebugValidationResult | None = None
    geometry: DebugGeometry | None = None


@dataclass
class DebugPipelineResult:
    result: LayoutResult
    snapshots: list[DebugSnapshot]


def hsla(index: int, alpha: float) -> str:
    hue = (index * GOLDEN_ANGLE) % 360
    return f"hsla({hue}, 70%, 50%, {alpha})"


# ==================== VALIDATION CHECKS ====================


def _box_overlap_count(snapshot: DebugSnapshot, config: LayoutConfig) -> int:
    person_x = snapshot.placed.person_x
    model = snapshot.gen_model.model
    count = 0
    for band in snapshot.gen_model.bands.values():
        cards = sorted((p for p in band.persons if p in person_x), key=lambda p: person_x[p])
        for current, following in zip(cards, cards[1:]):
            if model.person_to_union.get(current) == model.person_to_union.get(following):
                continue
            if person_x[current] + config.card_width + config.horizontal_gap > person_x[following]:
                count += 1
    return count


def _child_span(union_id: UnionId, model: LayoutModel, person_x: dict, card_width: float):
    xs = [person_x[c] for c in model.unions[union_id].child_ids if c in person_x]
    if not xs:
        return None
    return min(xs), max(xs) + card_width


def _span_overlap_count(snapshot: DebugSnapshot, config: LayoutConfig) -> int:
    gen_model = snapshot.gen_model
    spans_by_gen: dict[int, list[tuple[float, float]]] = {}
    for union_id in gen_model.model.unions:
        gen = gen_model.union_gen.get(union_id)
        span = _child_span(union_id, gen_model.model, snapshot.placed.person_x, config.card_width)
        if gen is None or span is None:
            continue
        spans_by_gen.setdefault(gen + 1, []).append(span)
    count = 0
    for spans in spans_by_gen.values():
        spans.sort()
        for (_, right), (left, _) in zip(spans, spans[1:]):
            if right + config.horizontal_gap > left:
                count += 1
    return count


def _centering_errors(snapshot: DebugSnapshot, config: LayoutConfig) -> list[CenteringError]:
    model = snapshot.gen_model.model
    union_x = snapshot.placed.union_x
    errors = []
    for union_id in model.unions:
        center = union_x.get(union_id)
        span = _child_span(union_id, model, snapshot.placed.person_x, config.card_width)
        if center is None or span is None:
            continue
        children_center = (span[0] + span[1]) / 2
        error = abs(center - children_center)
        if error > 1.0:
            errors.append(CenteringError(union_id, center, children_center, error))
    errors.sort(key=lambda e: e.error_px, reverse=True)
    return errors


def _direction(x1, y1, x2, y2, x3, y3) -> float:
    return (x3 - x1) * (y2 - y1) - (y3 - y1) * (x2 - x1)


def _on_segment(x1, y1, x2, y2, px, py) -> bool:
    return min(x1, x2) <= px <= max(x1, x2) and min(y1, y2) <= py <= max(y1, y2)


def _points_equal(p, q) -> bool:
    return abs(p[0] - q[0]) < POINT_EPSILON and abs(p[1] - q[1]) < POINT_EPSILON


def segments_intersect(s1: tuple, s2: tuple) -> bool:
    """Whether two segments (x1, y1, x2, y2) intersect; shared endpoints do not count."""
    a1, a2 = (s1[0], s1[1]), (s1[2], s1[3])
    b1, b2 = (s2[0], s2[1]), (s2[2], s2[3])
    if any(_points_equal(p, q) for p in (a1, a2) for q in (b1, b2)):
        return False

    d1 = _direction(*b1, *b2, *a1)
    d2 = _direction(*b1, *b2, *a2)
    d3 = _direction(*a1, *a2, *b1)
    d4 = _direction(*a1, *a2, *b2)
    if ((d1 > 0 > d2) or (d1 < 0 < d2)) and ((d3 > 0 > d4) or (d3 < 0 < d4)):
        return True

    return (
        (d1 == 0 and _on_segment(*b1, *b2, *a1))
        or (d2 == 0 and _on_segment(*b1, *b2, *a2))
        or (d3 == 0 and _on_segment(*a1, *a2, *b1))
        or (d4 == 0 and _on_segment(*a1, *a2, *b2))
    )


def _edge_crossing_count(snapshot: DebugSnapshot) -> int:
    """Crossings between segments of different connections."""
    if snapshot.routed is None:
        return 0
    segments = []
    for index, c in enumerate(snapshot.routed.connections):
        segments.append((index, (c.stem_x, c.stem_top_y, c.stem_x, c.branch_y)))
        segments.append((index, (c.branch_left_x, c.branch_y, c.branch_right_x, c.branch_y)))
        for drop in c.drops:
            segments.append((index, (drop.x, c.branch_y, drop.x, drop.bottom_y)))

    count = 0
    for i, (owner1, s1) in enumerate(segments):
        for owner2, s2 in segments[i + 1:]:
            if owner1 != owner2 and segments_intersect(s1, s2):
                count += 1
    return count


def compute_debug_validation(snapshot: DebugSnapshot, config: LayoutConfig) -> DebugValidationResult:
    """Validation summary of a snapshot; empty before X placement."""
    if snapshot.step < 5 or snapshot.placed is None or snapshot.gen_model is None:
        return DebugValidationResult()
    return DebugValidationResult(
        box_overlap_count=_box_overlap_count(snapshot, config),
        span_overlap_count=_span_overlap_count(snapshot, config),
        centering_errors=_centering_errors(snapshot, config),
        edge_crossing_count=_edge_crossing_count(snapshot) if snapshot.step >= 7 else 0,
    )


# ==================== GEOMETRY ====================


class _GeometryBuilder:
    def __init__(self, snapshot: DebugSnapshot, config: LayoutConfig):
        self.snapshot = snapshot
        self.config = config
        self.gen_model = snapshot.gen_model
        self.model = snapshot.gen_model.model
        self.gen_y = generation_y(self.gen_model, config)
        person_x = snapshot.placed.person_x
        # the positions the emitter would produce, so the overlay lines up with them
        positions = {
            person_id: Position(x=x, y=self.gen_y[self.gen_model.person_gen[person_id]])
            for person_id, x in person_x.items()
            if self.gen_model.person_gen.get(person_id) in self.gen_y
        }
        self.shift = normalization_shift(positions, config.padding)
        self.person_x = {p: x + self.shift for p, x in person_x.items()}
        self.union_x = {u: x + self.shift for u, x in snapshot.placed.union_x.items()}

    def row_y(self, gen: int | None) -> float | None:
        return self.gen_y.get(gen) if gen is not None else None

    def person_boxes(self) -> list[DebugRect]:
        boxes = []
        for person_id, x in self.person_x.items():
            y = self.row_y(self.gen_model.person_gen.get(person_id))
            if y is None:
                continue
            person = self.model.persons.get(person_id)
            label = f"{person.first_name} {person.last_name}".strip() if person else person_id
            boxes.append(DebugRect(person_id, x, y, self.config.card_width, self.config.card_height, label))
        return boxes

    def union_boxes(self) -> list[DebugRect]:
        boxes = []
        for union_id, union in self.model.unions.items():
            y = self.row_y(self.gen_model.union_gen.get(union_id))
            xs = [self.person_x[p] for p in union.own_partners if p in self.person_x]
            if y is None or not xs:
                continue
            left = min(xs)
            width = max(xs) + self.config.card_width - left
            boxes.append(DebugRect(union_id, left - 2, y - 2, width + 4, self.config.card_height + 4))
        return boxes

    def sibling_spans(self) -> list[DebugSiblingSpan]:
        spans = []
        for union_id in self.model.unions:
            gen = self.gen_model.union_gen.get(union_id)
            child_y = self.row_y(gen + 1 if gen is not None else None)
            span = _child_span(union_id, self.model, self.person_x, self.config.card_width)
            if child_y is None or span is None:
                continue
            spans.append(DebugSiblingSpan(union_id, span[0], span[1], child_y + self.config.card_height + 5))
        return spans

    def bus_lines(self) -> list[DebugBusLine]:
        routed = self.snapshot.routed
        if routed is None:
            return []
        return [
            DebugBusLine(c.union_id, c.branch_y, c.branch_left_x + self.shift, c.branch_right_x + self.shift)
            for c in routed.connections
        ]

    def anchor_points(self) -> list[DebugAnchorPoint]:
        half_w = self.config.card_width / 2
        points = []
        for person_id, x in self.person_x.items():
            y = self.row_y(self.gen_model.person_gen.get(person_id))
            if y is not None:
                points.append(DebugAnchorPoint(f"p_{person_id}", x + half_w, y + self.config.card_height / 2, "person"))
        for union_id, x in self.union_x.items():
            y = self.row_y(self.gen_model.union_gen.get(union_id))
            if y is not None:
                points.append(DebugAnchorPoint(f"u_{union_id}", x, y + self.config.card_height, "union"))
        if self.snapshot.routed is not None:
            for c in self.snapshot.routed.connections:
                points.append(DebugAnchorPoint(f"bus_{c.union_id}", c.stem_x + self.shift, c.branch_y, "bus"))
        return points

    def generation_bands(self) -> list[DebugGenerationBand]:
        return [DebugGenerationBand(gen, y - 10, self.config.card_height + 20) for gen, y in self.gen_y.items()]

    def branch_envelopes(self) -> list[DebugBranchEnvelope]:
        measured = self.snapshot.measured
        if measured is None:
            return []
        blocks = self.snapshot.placed.blocks
        envelopes = []
        for branch in measured.branches.values():
            ys = [self.gen_y[blocks[b].generation] for b in branch.block_ids if blocks[b].generation in self.gen_y]
            if not ys:
                continue
            min_x, max_x = branch_bounds(branch, blocks)
            person = self.model.persons.get(branch.child_person_id)
            if person is not None:
                label = f"{person.first_name} {person.last_name} [{branch.sibling_index}]"
            else:
                label = f"Branch {branch.sibling_index}"
            envelopes.append(
                DebugBranchEnvelope(
                    branch_id=branch.id,
                    min_x=min_x + self.shift,
                    max_x=max_x + self.shift,
                    min_y=min(ys) - 5,
                    max_y=max(ys) + self.config.card_height + 5,
                    label=label,
                    sibling_index=branch.sibling_index,
                    color=hsla(branch.sibling_index, 0.15),
                )
            )
        return envelopes

    def focus_person(self) -> PersonId | None:
        if self.snapshot.selection is not None and self.snapshot.selection.focus_person_id in self.model.persons:
            return self.snapshot.selection.focus_person_id
        return next((p for p, gen in self.gen_model.person_gen.items() if gen == 0), None)

    def cluster_extents(self, root_block_id: str) -> tuple[float, ...]:
        blocks = self.snapshot.placed.blocks
        card_xs: list[float] = []
        block_min = block_max = None
        ys: list[float] = []
        for block_id in subtree_block_ids(blocks, root_block_id):
            block = blocks[block_id]
            left, right = block.x_left + self.shift, block.x_right + self.shift
            block_min = left if block_min is None else min(block_min, left)
            block_max = right if block_max is None else max(block_max, right)
            union = self.model.unions[block.root_union_id]
            card_xs.extend(self.person_x[p] for p in (*union.partners, *union.child_ids) if p in self.person_x)
            if block.generation in self.gen_y:
                ys.append(self.gen_y[block.generation])
        return (
            min(card_xs, default=0.0),
            max(card_xs, default=-self.config.card_width) + self.config.card_width,
            block_min or 0.0,
            block_max or 0.0,
            min(ys, default=0.0),
            max(ys, default=0.0) + self.config.card_height,
        )

    def sibling_family_clusters(self) -> list[DebugSiblingFamilyCluster]:
        """Sibling families of the focus person's parents, one row above the focus."""
        measured = self.snapshot.measured
        if self.snapshot.constrained is None or measured is None:
            return []
        focus_id = self.focus_person()
        parent_union = self.model.unions.get(self.model.child_to_parent_union.get(focus_id, ""))
        if parent_union is None:
            return []

        blocks = self.snapshot.placed.blocks
        clusters = []
        seen: set[str] = set()
        for parent_id in parent_union.partners:
            grandparents = self.model.unions.get(self.model.child_to_parent_union.get(parent_id, ""))
            if grandparents is None:
                continue
            for sibling_id in grandparents.child_ids:
                block_id = measured.union_to_block.get(self.model.person_to_union.get(sibling_id, ""))
                if block_id is None or block_id in seen:
                    continue
                seen.add(block_id)
                block = blocks[block_id]
                if block.generation != -1:
                    continue
                union = self.model.unions[block.root_union_id]
                label = " & ".join(self.model.persons[p].first_name or "?" for p in union.partners)
                card_min, card_max, block_min, block_max, min_y, max_y = self.cluster_extents(block_id)
                clusters.append(
                    DebugSiblingFamilyCluster(
                        person_id=sibling_id,
                        label=label,
                        card_min_x=card_min,
                        card_max_x=card_max,
                        block_min_x=block_min,
                        block_max_x=block_max,
                        min_y=min_y,
                        max_y=max_y,
                        color=hsla(len(clusters), 0.2),
                    )
                )
        return clusters

    def build(self) -> DebugGeometry:
        return DebugGeometry(
            person_boxes=self.person_boxes(),
            union_boxes=self.union_boxes(),
            sibling_spans=self.sibling_spans(),
            bus_lines=self.bus_lines(),
            anchor_points=self.anchor_points(),
            generation_bands=self.generation_bands(),
            branch_envelopes=self.branch_envelopes(),
            sibling_family_clusters=self.sibling_family_clusters(),
        )


def compute_debug_geometry(snapshot: DebugSnapshot, config: LayoutConfig) -> DebugGeometry:
    """Overlay geometry in normalized coordinates; empty before X placement."""
    if snapshot.step < 5 or snapshot.placed is None or snapshot.gen_model is None:
        return DebugGeometry()
    return _GeometryBuilder(snapshot, config).build()


def create_snapshot(step: int, config: LayoutConfig, **models) -> DebugSnapshot:
    """Record the models of a step, with validation and geometry from step 5 on."""
    snapshot = DebugSnapshot(step=step, step_name=DEBUG_STEP_NAMES[step], **models)
    if step >= 5 and snapshot.placed is not None:
        snapshot.validation = compute_debug_validation(snapshot, config)
        snapshot.geometry = compute_debug_geometry(snapshot, config)
    return snapshot

