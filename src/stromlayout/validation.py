"""
Layout validation.

Checks the invariants of a finished layout:
1. No card overlap
2. Connections and spouse lines reference placed persons
3. All positions within bounds
4. No overlapping buses and no staircase connectors
5. Optionally, generation consistency and acyclic descent
"""

import math

from stromlayout.config import LayoutConfig
from stromlayout.generations import validate_generations
from stromlayout.graph import find_descent_cycle
from stromlayout.layout_types import GenerationalModel, LayoutResult, Position, ValidationResult
from stromlayout.models import PersonId
from stromlayout.routing import detect_staircase_edges


def _rectangles_overlap(pos1: Position, pos2: Position, width: float, height: float, gap: float) -> bool:
    w = width + gap
    h = height + gap
    if pos1.x + w <= pos2.x or pos2.x + w <= pos1.x:
        return False
    if pos1.y + h <= pos2.y or pos2.y + h <= pos1.y:
        return False
    return True


def check_card_overlaps(result: LayoutResult, config: LayoutConfig) -> list[str]:
    errors = []
    items = list(result.positions.items())
    min_gap = config.horizontal_gap / 2
    for i, (id1, pos1) in enumerate(items):
        for id2, pos2 in items[i + 1:]:
            if _rectangles_overlap(pos1, pos2, config.card_width, config.card_height, min_gap):
                errors.append(f"Card overlap: {id1} and {id2}")
    return errors


def check_references(result: LayoutResult) -> list[str]:
    errors = []
    for connection in result.connections:
        for drop in connection.drops:
            if drop.person_id not in result.positions:
                errors.append(f"Connection drop references missing person: {drop.person_id}")
    for line in result.spouse_lines:
        for person_id in (line.person1_id, line.person2_id):
            if person_id not in result.positions:
                errors.append(f"Spouse line references missing person: {person_id}")
    return errors


def check_bounds(result: LayoutResult) -> list[str]:
    errors = []
    for person_id, pos in result.positions.items():
        if pos.x < 0:
            errors.append(f"Negative X position for {person_id}: {pos.x}")
        if pos.y < 0:
            errors.append(f"Negative Y position for {person_id}: {pos.y}")
        if not math.isfinite(pos.x) or not math.isfinite(pos.y):
            errors.append(f"Invalid position for {person_id}: ({pos.x}, {pos.y})")
    return errors


def check_bus_overlaps(result: LayoutResult) -> list[str]:
    """Horizontal bus segments that overlap at the same Y."""
    errors = []
    segments = [
        (c.branch_y, min(c.branch_left_x, c.branch_right_x), max(c.branch_left_x, c.branch_right_x), c.union_id)
        for c in result.connections
    ]
    for i, (y1, left1, right1, union1) in enumerate(segments):
        for y2, left2, right2, union2 in segments[i + 1:]:
            if abs(y1 - y2) < 1 and left1 < right2 and left2 < right1:
                errors.append(f"Bus line overlap at Y={y1:.0f}: {union1} and {union2}")
    return errors


def validate_layout(
    result: LayoutResult, config: LayoutConfig, gen_model: GenerationalModel | None = None
) -> ValidationResult:
    """
    Validate the final layout.

    Args:
        result: Emitted layout
        config: Configuration the layout was computed with
        gen_model: When given, generation invariants and descent cycles are checked too

    Returns:
        ValidationResult with every message found
    """
    errors: list[str] = []
    errors.extend(check_card_overlaps(result, config))
    errors.extend(check_references(result))
    errors.extend(check_bounds(result))
    errors.extend(check_bus_overlaps(result))
    errors.extend(v.description for v in detect_staircase_edges(result.connections))

    if gen_model is not None:
        errors.extend(validate_generations(gen_model))
        cycle = find_descent_cycle(gen_model.model)
        if cycle is not None:
            errors.append(f"Cycle detected in parent-child relationships: {cycle}")

    return ValidationResult(passed=not errors, errors=errors)


def check_centering_constraint(
    result: LayoutResult,
    parent_id: PersonId,
    child_ids: list[PersonId],
    tolerance: float = 1,
) -> str | None:
    """
    Compare a parent card's X with the center of its children's X range.

    Both sides use the cards' left edges. Returns a message when the
    difference exceeds the tolerance, otherwise None.
    """
    parent = result.positions.get(parent_id)
    if parent is None or not child_ids:
        return None
    xs = [result.positions[c].x for c in child_ids if c in result.positions]
    if not xs:
        return None
    violation = abs(parent.x - (min(xs) + max(xs)) / 2)
    if violation > tolerance:
        return f"Centering violation for {parent_id}: {violation:.1f}px off center"
    return None
