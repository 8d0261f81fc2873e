"""
Step 6: iterative constraint relaxation.

Phase A centers every union over its children without creating overlaps.
Phase B additionally sweeps each generation row left to right and pushes
overlapping family blocks apart. Both phases share one iteration budget.
Running out of iterations is not an error: the solver hands back the state
with the lowest violation it reached.
"""

import logging
import math

from stromlayout.config import DEFAULT_MAX_ITERATIONS, DEFAULT_TOLERANCE, LayoutConfig
from stromlayout.layout_types import (
    PHASE_A,
    PHASE_B,
    PHASES,
    ConstrainedModel,
    PlacedModel,
    UnionId,
)
from stromlayout.measure import subtree_block_ids
from stromlayout.models import PersonId
from stromlayout.place import center_shared_unions, children_span_center, copy_blocks, update_block_bounds

logger = logging.getLogger(__name__)

EPSILON = 0.01


class _Relaxer:
    def __init__(self, placed: PlacedModel, config: LayoutConfig):
        self.placed = placed
        self.measured = placed.measured
        self.gen_model = placed.measured.gen_model
        self.model = self.gen_model.model
        self.config = config
        self.person_x = dict(placed.person_x)
        self.union_x = dict(placed.union_x)
        self.blocks = copy_blocks(placed.blocks)
        self.best_violation = math.inf
        self.best_state = (dict(self.person_x), dict(self.union_x))

    # ---- geometry helpers ----

    def band_cards(self, gen: int) -> list[PersonId]:
        band = self.gen_model.bands.get(gen)
        if band is None:
            return []
        cards = [p for p in band.persons if p in self.person_x]
        return sorted(cards, key=lambda p: (self.person_x[p], p))

    def shift_union(self, union_id: UnionId, delta: float):
        self.union_x[union_id] = self.union_x.get(union_id, 0.0) + delta
        for partner_id in self.model.unions[union_id].own_partners:
            if partner_id in self.person_x:
                self.person_x[partner_id] += delta

    def room(self, union_id: UnionId) -> tuple[float, float]:
        """Free space left and right of the union's cards inside its row."""
        partners = self.model.unions[union_id].own_partners
        xs = [self.person_x[p] for p in partners if p in self.person_x]
        if not xs:
            return 0.0, 0.0
        left = min(xs)
        right = max(xs) + self.config.card_width
        center = (left + right) / 2
        gap = self.config.horizontal_gap
        room_left = math.inf
        room_right = math.inf
        for person_id in self.band_cards(self.gen_model.union_gen.get(union_id, 0)):
            if person_id in partners:
                continue
            x = self.person_x[person_id]
            if x + self.config.card_width / 2 < center:
                room_left = min(room_left, left - (x + self.config.card_width) - gap)
            else:
                room_right = min(room_right, x - right - gap)
        return room_left, room_right

    def centering_move(self, union_id: UnionId) -> float:
        target = children_span_center(union_id, self.gen_model, self.person_x, self.config.card_width)
        if target is None:
            return 0.0
        delta = target - self.union_x.get(union_id, target)
        if abs(delta) < EPSILON:
            return 0.0
        room_left, room_right = self.room(union_id)
        return min(max(delta, -max(0.0, room_left)), max(0.0, room_right))

    def centering_order(self) -> list[UnionId]:
        return sorted(
            self.model.unions,
            key=lambda u: (-self.gen_model.union_gen.get(u, 0), self.union_x.get(u, 0.0), u),
        )

    def same_union(self, a: PersonId, b: PersonId) -> bool:
        return self.model.person_to_union.get(a) == self.model.person_to_union.get(b)

    def first_overlap(self, gen: int) -> tuple[PersonId, float, PersonId] | None:
        """First card (left to right) closer than the gap to the running right edge, and that edge's owner."""
        max_right = -math.inf
        max_owner = None
        for person_id in self.band_cards(gen):
            x = self.person_x[person_id]
            if max_owner is not None and not self.same_union(person_id, max_owner):
                overlap = max_right + self.config.horizontal_gap - x
                if overlap > EPSILON:
                    return person_id, overlap, max_owner
            if x + self.config.card_width > max_right:
                max_right = x + self.config.card_width
                max_owner = person_id
        return None

    def band_overlap(self, gen: int) -> float:
        worst = 0.0
        max_right = -math.inf
        max_owner = None
        for person_id in self.band_cards(gen):
            x = self.person_x[person_id]
            if max_owner is not None and not self.same_union(person_id, max_owner):
                worst = max(worst, max_right + self.config.horizontal_gap - x)
            if x + self.config.card_width > max_right:
                max_right = x + self.config.card_width
                max_owner = person_id
        return worst

    # ---- passes ----

    def centering_pass(self):
        for union_id in self.centering_order():
            move = self.centering_move(union_id)
            if move != 0.0:
                self.shift_union(union_id, move)

    def shift_block_subtree(self, person_id: PersonId, delta: float, blocker_id: PersonId):
        """Push the card's block and everything nested in it right by delta."""
        union_id = self.model.person_to_union[person_id]
        block_id = self.measured.union_to_block.get(union_id)
        if block_id is None:
            members = [union_id]
        else:
            members = [self.blocks[b].root_union_id for b in subtree_block_ids(self.blocks, block_id)]
        if self.model.person_to_union.get(blocker_id) in members:
            # the blocking card would move along and the gap would never open
            members = [union_id]
        for member_id in members:
            self.shift_union(member_id, delta)

    def spacing_sweep(self):
        for gen in sorted(self.gen_model.bands):
            # every shift fixes one pair and only moves cards right
            budget = len(self.gen_model.bands[gen].persons) ** 2 + 1
            while budget > 0:
                found = self.first_overlap(gen)
                if found is None:
                    break
                person_id, overlap, blocker_id = found
                self.shift_block_subtree(person_id, overlap, blocker_id)
                budget -= 1

    # ---- measures ----

    def centering_residual(self) -> float:
        return max((abs(self.centering_move(u)) for u in self.model.unions), default=0.0)

    def overlap(self) -> float:
        return max((self.band_overlap(gen) for gen in self.gen_model.bands), default=0.0)

    def violation(self, phase: str | None = None) -> float:
        if phase == PHASE_A:
            return self.centering_residual()
        return max(self.overlap(), self.centering_residual())

    def remember(self, violation: float):
        """Keep a copy of the positions with the lowest full violation seen."""
        if violation < self.best_violation:
            self.best_violation = violation
            self.best_state = (dict(self.person_x), dict(self.union_x))

    def restore_best(self):
        person_x, union_x = self.best_state
        self.person_x = dict(person_x)
        self.union_x = dict(union_x)

    def run_phase(self, phase: str, max_iterations: int, tolerance: float) -> int:
        iterations = 0
        violation = self.violation(phase)
        while iterations < max_iterations and violation > tolerance:
            self.centering_pass()
            if phase == PHASE_B:
                self.spacing_sweep()
            iterations += 1
            violation = self.violation(phase)
            self.remember(violation if phase == PHASE_B else self.violation())
        logger.debug("Phase %s: %d iterations, violation %.2f", phase, iterations, violation)
        return iterations


def apply_constraints(
    placed: PlacedModel,
    config: LayoutConfig,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    tolerance: float = DEFAULT_TOLERANCE,
    stop_after_phase: str | None = None,
) -> ConstrainedModel:
    """
    Relax the initial placement into a centered, overlap-free layout.

    Args:
        placed: Output of the X placer
        config: Layout configuration
        max_iterations: Iteration budget shared by both phases
        tolerance: Stop once the maximum violation is at or below this
        stop_after_phase: 'A' to return after centering only, 'B' or None for both

    Returns:
        A new ConstrainedModel; the placed model is not modified. When the
        budget runs out above the tolerance, the positions are those of the
        iteration with the lowest violation.
    """
    if stop_after_phase is not None and stop_after_phase not in PHASES:
        raise ValueError(f"Unknown phase: {stop_after_phase}")
    if max_iterations < 0:
        raise ValueError(f"max_iterations must be >= 0, got {max_iterations}")

    relaxer = _Relaxer(placed, config)
    relaxer.remember(relaxer.violation())
    phases_run: list[str] = []
    iterations = 0
    for phase in PHASES:
        iterations += relaxer.run_phase(phase, max_iterations - iterations, tolerance)
        phases_run.append(phase)
        if phase == stop_after_phase:
            break

    final_violation = relaxer.violation()
    if final_violation > tolerance and relaxer.best_violation < final_violation:
        logger.debug("Falling back to the best state (%.2f instead of %.2f)", relaxer.best_violation, final_violation)
        relaxer.restore_best()
        final_violation = relaxer.best_violation
    if final_violation > tolerance and phases_run[-1] == PHASE_B:
        logger.warning(
            "Constraint solver stopped after %d iterations with violation %.2f (tolerance %.2f)",
            iterations,
            final_violation,
            tolerance,
        )
    center_shared_unions(relaxer.gen_model, relaxer.person_x, relaxer.union_x, config.card_width)
    update_block_bounds(relaxer.blocks, relaxer.gen_model, relaxer.person_x, relaxer.union_x, config)
    logger.debug("Constraints applied: %d iterations, phases %s", iterations, "".join(phases_run))

    return ConstrainedModel(
        placed=PlacedModel(
            measured=placed.measured,
            person_x=relaxer.person_x,
            union_x=relaxer.union_x,
            blocks=relaxer.blocks,
        ),
        iterations=iterations,
        final_max_violation=final_violation,
        phases_run=phases_run,
    )
