"""
Step 8: emit the final layout result.

Computes row Y values, shifts everything horizontally so the leftmost card
starts at the padding and fills in the diagnostics. Validation runs
separately.
"""

import logging
from dataclasses import replace

from stromlayout.config import LayoutConfig
from stromlayout.layout_types import (
    Connection,
    LayoutDiagnostics,
    LayoutResult,
    Position,
    RoutedModel,
    SpouseLine,
)
from stromlayout.routing import generation_y

logger = logging.getLogger(__name__)

MIN_SHIFT = 0.1


def shift_connection(connection: Connection, shift: float) -> Connection:
    return replace(
        connection,
        stem_x=connection.stem_x + shift,
        branch_left_x=connection.branch_left_x + shift,
        branch_right_x=connection.branch_right_x + shift,
        connector_from_x=connection.connector_from_x + shift,
        connector_to_x=connection.connector_to_x + shift,
        drops=[replace(drop, x=drop.x + shift) for drop in connection.drops],
    )


def shift_spouse_line(line: SpouseLine, shift: float) -> SpouseLine:
    return replace(line, x_min=line.x_min + shift, x_max=line.x_max + shift)


def normalization_shift(positions: dict, padding: float) -> float:
    """Shift that puts the minimum X at the padding; 0 when negligible or empty."""
    if not positions:
        return 0.0
    shift = padding - min(pos.x for pos in positions.values())
    return shift if abs(shift) >= MIN_SHIFT else 0.0


def emit_layout_result(routed: RoutedModel, config: LayoutConfig) -> LayoutResult:
    """Build the normalized LayoutResult from the routed model."""
    constrained = routed.constrained
    placed = constrained.placed
    measured = placed.measured
    gen_model = measured.gen_model
    gen_y = generation_y(gen_model, config)

    positions: dict[str, Position] = {}
    for person_id in gen_model.model.persons:
        x = placed.person_x.get(person_id)
        y = gen_y.get(gen_model.person_gen.get(person_id))
        if x is not None and y is not None:
            positions[person_id] = Position(x=x, y=y)

    shift = normalization_shift(positions, config.padding)
    positions = {person_id: Position(x=pos.x + shift, y=pos.y) for person_id, pos in positions.items()}
    connections = [shift_connection(c, shift) for c in routed.connections]
    spouse_lines = [shift_spouse_line(s, shift) for s in routed.spouse_lines]
    block_bounds = {
        block_id: (block.x_left + shift, block.x_right + shift) for block_id, block in placed.blocks.items()
    }

    diagnostics = LayoutDiagnostics(
        total_persons=len(gen_model.model.persons),
        total_unions=len(gen_model.model.unions),
        generation_range=(gen_model.min_gen, gen_model.max_gen),
        iterations=constrained.iterations,
        branch_count=len(measured.branches),
        validation_passed=True,
        errors=[],
        final_max_violation=constrained.final_max_violation,
        phases_run=list(constrained.phases_run),
        routed_edges=True,
    )
    logger.debug("Emitted %d positions (shift %.1f)", len(positions), shift)
    return LayoutResult(
        positions=positions,
        connections=connections,
        spouse_lines=spouse_lines,
        diagnostics=diagnostics,
        block_bounds=block_bounds,
    )
