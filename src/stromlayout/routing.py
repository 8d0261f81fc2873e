"""
Step 7: route parent-child connections and spouse lines.

Bus routing: a vertical stem from the union center, a horizontal bus halfway
between the two rows and a vertical drop to every child. The connector from
the stem to the bus always runs at the bus height.
"""

import logging
from dataclasses import dataclass

from stromlayout.config import LayoutConfig
from stromlayout.layout_types import (
    ChildDrop,
    ConstrainedModel,
    Connection,
    GenerationalModel,
    LayoutModel,
    RoutedModel,
    SpouseLine,
    UnionId,
)
from stromlayout.models import PersonId

logger = logging.getLogger(__name__)

ELBOW_ITERATIONS = 5
# vertical step between the spouse lines of one person's further partnerships
LINE_SPACING = 3


@dataclass
class StaircaseViolation:
    union_id: UnionId
    horizontal_segment_count: int
    description: str


@dataclass
class BusCollision:
    union_id1: UnionId
    union_id2: UnionId
    y: float
    overlap_x: tuple[float, float]


def generation_y(gen_model: GenerationalModel, config: LayoutConfig) -> dict[int, float]:
    """Top Y of every generation row."""
    return {
        gen: config.padding + (gen - gen_model.min_gen) * config.row_height
        for gen in range(gen_model.min_gen, gen_model.max_gen + 1)
    }


def _connector_target(stem_x: float, left_x: float, right_x: float) -> float:
    if stem_x < left_x:
        return left_x
    if stem_x > right_x:
        return right_x
    return stem_x


def create_connection(
    union_id: UnionId,
    gen_model: GenerationalModel,
    union_x: dict[UnionId, float],
    person_x: dict[PersonId, float],
    gen_y: dict[int, float],
    config: LayoutConfig,
    spouse_line_y: float | None = None,
) -> Connection | None:
    """
    Bus connection from a union to its children one row down, or None.

    Couples start the stem on their spouse line. Singles and chain unions
    with a card of their own start at the bottom of that card.
    """
    model = gen_model.model
    union = model.unions[union_id]
    stem_x = union_x.get(union_id)
    parent_gen = gen_model.union_gen.get(union_id)
    if stem_x is None or parent_gen is None:
        return None
    parent_y = gen_y.get(parent_gen)
    child_y = gen_y.get(parent_gen + 1)
    if parent_y is None or child_y is None:
        return None

    if union.partner_b is None or (union.is_chain and union.own_partners):
        stem_top_y = parent_y + config.card_height
    elif spouse_line_y is not None:
        stem_top_y = spouse_line_y
    else:
        stem_top_y = parent_y + config.card_height / 2
    branch_y = (parent_y + config.card_height + child_y) / 2

    drops = []
    for child_id in union.child_ids:
        child_union_id = model.person_to_union.get(child_id)
        child_gen = gen_model.union_gen.get(child_union_id) if child_union_id else None
        if child_gen is None or child_gen <= parent_gen or child_id not in person_x:
            continue
        drops.append(
            ChildDrop(
                person_id=child_id,
                x=person_x[child_id] + config.card_width / 2,
                top_y=branch_y,
                bottom_y=child_y,
            )
        )
    if not drops:
        return None

    branch_left_x = min(d.x for d in drops)
    branch_right_x = max(d.x for d in drops)
    return Connection(
        union_id=union_id,
        stem_x=stem_x,
        stem_top_y=stem_top_y,
        stem_bottom_y=branch_y,
        branch_y=branch_y,
        branch_left_x=branch_left_x,
        branch_right_x=branch_right_x,
        connector_from_x=stem_x,
        connector_to_x=_connector_target(stem_x, branch_left_x, branch_right_x),
        connector_y=branch_y,
        drops=drops,
    )


def create_spouse_line(
    union_id: UnionId,
    gen_model: GenerationalModel,
    person_x: dict[PersonId, float],
    gen_y: dict[int, float],
    config: LayoutConfig,
) -> SpouseLine | None:
    union = gen_model.model.unions[union_id]
    if union.partner_b is None:
        return None
    x_a = person_x.get(union.partner_a)
    x_b = person_x.get(union.partner_b)
    row_y = gen_y.get(gen_model.union_gen.get(union_id))
    if x_a is None or x_b is None or row_y is None:
        return None
    return SpouseLine(
        union_id=union_id,
        person1_id=union.partner_a,
        person2_id=union.partner_b,
        partnership_id=union.partnership_id,
        y=row_y + config.card_height / 2,
        x_min=min(x_a, x_b) + config.card_width,
        x_max=max(x_a, x_b),
    )


def offset_chain_spouse_lines(
    spouse_lines: dict[UnionId, SpouseLine],
    model: LayoutModel,
    person_x: dict[PersonId, float],
):
    """
    Move the spouse lines of a person's further partnerships below the main
    one, LINE_SPACING apart, the nearest partner first.
    """
    for shared_id, chain_ids in model.partner_chains.items():
        shared_x = person_x.get(shared_id)
        if shared_x is None:
            continue

        def distance(chain_id: UnionId) -> tuple[float, UnionId]:
            line = spouse_lines[chain_id]
            other_id = line.person2_id if line.person1_id == shared_id else line.person1_id
            return abs(person_x.get(other_id, shared_x) - shared_x), chain_id

        drawn = sorted((c for c in chain_ids if c in spouse_lines), key=distance)
        for i, chain_id in enumerate(drawn):
            spouse_lines[chain_id].y += (i + 1) * LINE_SPACING


# ==================== BUS LANES ====================


def _shift_lane(connection: Connection, offset: float):
    connection.branch_y += offset
    connection.connector_y += offset
    connection.stem_bottom_y += offset
    for drop in connection.drops:
        drop.top_y += offset


def _crosses_lane_zero(current: Connection, lane_zero: list[Connection]) -> bool:
    """Whether dropping to a lower lane would cross a lane-0 stem or drop."""
    left, right = current.footprint
    for other in lane_zero:
        other_left, other_right = other.footprint
        if other_left < current.stem_x < other_right:
            return True
        if any(left < drop.x < right for drop in other.drops):
            return True
    return False


def resolve_bus_collisions(connections: list[Connection], config: LayoutConfig):
    """Move buses that share a Y level and overlap horizontally onto lower lanes."""
    if len(connections) < 2:
        return
    lane_offset = min(8.0, config.vertical_gap * 0.1)

    groups: dict[int, list[Connection]] = {}
    for connection in connections:
        groups.setdefault(round(connection.branch_y), []).append(connection)

    for group in groups.values():
        if len(group) < 2:
            continue
        group.sort(key=lambda c: c.footprint[0])
        lanes: list[tuple[Connection, int]] = [(group[0], 0)]
        for current in group[1:]:
            left, right = current.footprint
            lane = 0
            while any(
                assigned == lane and left <= other.footprint[1] and right >= other.footprint[0]
                for other, assigned in lanes
            ):
                lane += 1
            if lane > 0 and _crosses_lane_zero(current, [c for c, assigned in lanes if assigned == 0]):
                # collinear overlap is preferable to a crossing
                lane = 0
            lanes.append((current, lane))
            if lane > 0:
                _shift_lane(current, lane * lane_offset)


def detect_bus_collisions(connections: list[Connection]) -> list[BusCollision]:
    """Pairs of connections whose footprints overlap at the same bus Y."""
    collisions = []
    for i, a in enumerate(connections):
        for b in connections[i + 1:]:
            if abs(a.branch_y - b.branch_y) > 1:
                continue
            overlap_left = max(a.footprint[0], b.footprint[0])
            overlap_right = min(a.footprint[1], b.footprint[1])
            if overlap_left < overlap_right:
                collisions.append(BusCollision(a.union_id, b.union_id, a.branch_y, (overlap_left, overlap_right)))
    return collisions


# ==================== ELBOW CLEARANCE ====================


def _within(top_y: float, bottom_y: float, y: float) -> bool:
    return min(top_y, bottom_y) - 1 <= y <= max(top_y, bottom_y) + 1


def _clearance_shifts(x: float, y: float, other: Connection, min_clearance: float) -> list[tuple[float, int]]:
    """(required shift, direction) for every segment of `other` too close to the point."""
    shifts = []
    if _within(other.stem_top_y, other.stem_bottom_y, y):
        distance = abs(x - other.stem_x)
        if distance < min_clearance:
            shifts.append((min_clearance - distance, 1 if x > other.stem_x else -1))
    for drop in other.drops:
        if _within(drop.top_y, drop.bottom_y, y):
            distance = abs(x - drop.x)
            if distance < min_clearance:
                shifts.append((min_clearance - distance, 1 if x > drop.x else -1))
    if abs(other.branch_y - y) < 1:
        for end_x in (other.branch_left_x, other.branch_right_x):
            distance = abs(x - end_x)
            if 0.5 < distance < min_clearance:
                shifts.append((min_clearance - distance, 1 if x > end_x else -1))
    return shifts


def resolve_elbow_clearance(connections: list[Connection], config: LayoutConfig):
    """
    Nudge drops whose elbow comes too close to another connection's vertical
    segments or bus ends. Stems stay on the union center; each nudge is capped
    at min_edge_clearance.
    """
    min_clearance = config.min_edge_clearance
    for _ in range(ELBOW_ITERATIONS):
        nudged = False
        for i, connection in enumerate(connections):
            moved = False
            for drop in connection.drops:
                x, y = drop.x, drop.top_y
                for j, other in enumerate(connections):
                    if i == j:
                        continue
                    for required, direction in _clearance_shifts(x, y, other, min_clearance):
                        drop.x += min(required, min_clearance) * direction
                        moved = True
            if moved:
                connection.branch_left_x = min(d.x for d in connection.drops)
                connection.branch_right_x = max(d.x for d in connection.drops)
                connection.connector_to_x = _connector_target(
                    connection.stem_x, connection.branch_left_x, connection.branch_right_x
                )
                nudged = True
        if not nudged:
            break


# ==================== STAIRCASE DETECTION ====================


def detect_staircase_edges(connections: list[Connection]) -> list[StaircaseViolation]:
    """Connections whose horizontal segments sit at more than one Y level."""
    violations = []
    for connection in connections:
        levels = {round(connection.branch_y)}
        if abs(connection.connector_from_x - connection.connector_to_x) > 0.5:
            levels.add(round(connection.connector_y))
        if len(levels) > 1:
            violations.append(
                StaircaseViolation(
                    union_id=connection.union_id,
                    horizontal_segment_count=len(levels),
                    description=(
                        f"Connection from union {connection.union_id} has {len(levels)} horizontal "
                        f"segments at different Y levels. connectorY={connection.connector_y:.1f}, "
                        f"branchY={connection.branch_y:.1f}"
                    ),
                )
            )
    return violations


def validate_no_staircase_edges(connections: list[Connection]) -> bool:
    return not detect_staircase_edges(connections)


def route_edges(constrained: ConstrainedModel, config: LayoutConfig) -> RoutedModel:
    """Build connections and spouse lines from the constrained positions."""
    placed = constrained.placed
    gen_model = placed.measured.gen_model
    gen_y = generation_y(gen_model, config)

    spouse_lines: dict[UnionId, SpouseLine] = {}
    for union_id in gen_model.model.unions:
        spouse_line = create_spouse_line(union_id, gen_model, placed.person_x, gen_y, config)
        if spouse_line is not None:
            spouse_lines[union_id] = spouse_line
    offset_chain_spouse_lines(spouse_lines, gen_model.model, placed.person_x)

    connections = []
    for union_id, union in gen_model.model.unions.items():
        if not union.child_ids:
            continue
        line = spouse_lines.get(union_id)
        connection = create_connection(
            union_id,
            gen_model,
            placed.union_x,
            placed.person_x,
            gen_y,
            config,
            spouse_line_y=line.y if line is not None else None,
        )
        if connection is not None:
            connections.append(connection)

    resolve_bus_collisions(connections, config)
    resolve_elbow_clearance(connections, config)

    logger.debug("Routed %d connections and %d spouse lines", len(connections), len(spouse_lines))
    return RoutedModel(constrained=constrained, connections=connections, spouse_lines=list(spouse_lines.values()))
