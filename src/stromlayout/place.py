"""
Step 5: initial X placement of unions and person cards.

A single top-down pass over the block tree. Blocks get their measured width,
child blocks sit side by side under it and every union is centered over the
cards of its children. Chain blocks line up beside their owner block on the
shared partner's side. Overlaps between branches are left to the solver.
"""

import logging
from dataclasses import replace

from stromlayout.config import LayoutConfig
from stromlayout.layout_types import (
    SIDE_HUSBAND,
    SIDE_WIFE,
    BlockId,
    FamilyBlock,
    GenerationalModel,
    MeasuredModel,
    PlacedModel,
    UnionId,
)
from stromlayout.measure import children_total_width, group_width, subtree_block_ids
from stromlayout.models import PersonId

logger = logging.getLogger(__name__)


def children_span_center(
    union_id: UnionId,
    gen_model: GenerationalModel,
    person_x: dict[PersonId, float],
    card_width: float,
) -> float | None:
    """Center of the card span of the union's placed children one row down."""
    union = gen_model.model.unions[union_id]
    child_gen = gen_model.union_gen.get(union_id, 0) + 1
    xs = [
        person_x[child_id]
        for child_id in union.child_ids
        if child_id in person_x and gen_model.person_gen.get(child_id) == child_gen
    ]
    if not xs:
        return None
    return (min(xs) + max(xs) + card_width) / 2


def set_union_center(
    union_id: UnionId,
    center: float,
    gen_model: GenerationalModel,
    person_x: dict[PersonId, float],
    union_x: dict[UnionId, float],
    config: LayoutConfig,
):
    """Place the union center and its partner cards around it."""
    union = gen_model.model.unions[union_id]
    union_x[union_id] = center
    own = union.own_partners
    if len(own) == 1:
        person_x[own[0]] = center - config.card_width / 2
    elif len(own) == 2:
        person_x[own[0]] = center - config.partner_gap / 2 - config.card_width
        person_x[own[1]] = center + config.partner_gap / 2


def center_shared_unions(
    gen_model: GenerationalModel,
    person_x: dict[PersonId, float],
    union_x: dict[UnionId, float],
    card_width: float,
):
    """Unions without cards of their own sit midway between their partners' cards."""
    for union_id, union in gen_model.model.unions.items():
        if union.own_partners:
            continue
        xs = [person_x[p] for p in union.partners if p in person_x]
        if xs:
            union_x[union_id] = (min(xs) + max(xs) + card_width) / 2


def update_block_bounds(
    blocks: dict[BlockId, FamilyBlock],
    gen_model: GenerationalModel,
    person_x: dict[PersonId, float],
    union_x: dict[UnionId, float],
    config: LayoutConfig,
):
    """Recompute bounds and anchors of every block from the current positions."""
    model = gen_model.model
    for block in blocks.values():
        xs = [
            person_x[partner_id]
            for block_id in subtree_block_ids(blocks, block.id)
            for partner_id in model.unions[blocks[block_id].root_union_id].own_partners
            if partner_id in person_x
        ]
        union = model.unions[block.root_union_id]
        center = union_x.get(block.root_union_id, 0.0)
        block.x_left = min(xs, default=center)
        block.x_right = max(xs, default=center - config.card_width) + config.card_width
        block.x_center = center
        block.couple_center_x = center
        block.husband_anchor_x = person_x.get(union.partner_a, center) + config.card_width / 2
        if union.partner_b is not None:
            block.wife_anchor_x = person_x.get(union.partner_b, center) + config.card_width / 2
        else:
            block.wife_anchor_x = block.husband_anchor_x
        span = children_span_center(block.root_union_id, gen_model, person_x, config.card_width)
        block.children_center_x = center if span is None else span


def copy_blocks(blocks: dict[BlockId, FamilyBlock]) -> dict[BlockId, FamilyBlock]:
    return {
        block_id: replace(
            block,
            child_block_ids=list(block.child_block_ids),
            chain_block_ids=list(block.chain_block_ids),
        )
        for block_id, block in blocks.items()
    }


class _Placer:
    def __init__(self, measured: MeasuredModel, config: LayoutConfig):
        self.measured = measured
        self.gen_model = measured.gen_model
        self.model = measured.gen_model.model
        self.config = config
        self.blocks = copy_blocks(measured.blocks)
        self.person_x: dict[PersonId, float] = {}
        self.union_x: dict[UnionId, float] = {}

    def center_union(self, union_id: UnionId, fallback: float):
        center = children_span_center(union_id, self.gen_model, self.person_x, self.config.card_width)
        set_union_center(
            union_id,
            fallback if center is None else center,
            self.gen_model,
            self.person_x,
            self.union_x,
            self.config,
        )

    def group(self, block_id: BlockId) -> float:
        return group_width(self.blocks, block_id, self.config.horizontal_gap)

    def chains(self, block: FamilyBlock, left: bool) -> list[BlockId]:
        return [c for c in block.chain_block_ids if self.blocks[c].chain_left == left]

    def left_chains_width(self, block: FamilyBlock) -> float:
        return sum(self.group(c) + self.config.horizontal_gap for c in self.chains(block, True))

    def place_block(self, block_id: BlockId, left: float):
        """Place the block with its chain blocks; the group starts at `left`."""
        block = self.blocks[block_id]
        gap = self.config.horizontal_gap
        # nearest chain next to the shared partner
        for chain_id in reversed(self.chains(block, True)):
            self.place_block(chain_id, left)
            left += self.group(chain_id) + gap
        x = left + (block.width - block.children_width) / 2
        for child_id in block.child_block_ids:
            self.place_block(child_id, x)
            x += self.group(child_id) + gap
        self.center_union(block.root_union_id, left + block.width / 2)
        left += block.width + gap
        for chain_id in self.chains(block, False):
            self.place_block(chain_id, left)
            left += self.group(chain_id) + gap

    def place_run(self, block_ids: list[BlockId], left: float):
        for block_id in block_ids:
            self.place_block(block_id, left)
            left += self.group(block_id) + self.config.horizontal_gap

    def extent_below(self, generation: int) -> tuple[float, float] | None:
        xs = [x for person_id, x in self.person_x.items() if self.gen_model.person_gen.get(person_id, 0) > generation]
        if not xs:
            return None
        return min(xs), max(xs) + self.config.card_width

    def fan_left(self, block_ids: list[BlockId], edge: float):
        widths = [self.group(b) for b in block_ids]
        self.place_run(block_ids, edge - self.config.horizontal_gap - children_total_width(widths, self.config.horizontal_gap))

    def fan_right(self, block_ids: list[BlockId], edge: float):
        self.place_run(block_ids, edge + self.config.horizontal_gap)

    def child_index(self, block: FamilyBlock, child_ids: list[PersonId]) -> int:
        union = self.model.unions[block.root_union_id]
        return next((child_ids.index(p) for p in union.partners if p in child_ids), len(child_ids))

    def place_ancestor(self, block: FamilyBlock):
        """Siblings of the anchor fan out beside the rows below, then the couple centers over them."""
        extent = self.extent_below(block.generation)
        left_edge, right_edge = extent if extent is not None else (0.0, 0.0)
        children = block.child_block_ids
        if block.side == SIDE_HUSBAND:
            self.fan_left(children, left_edge)
        elif block.side == SIDE_WIFE:
            self.fan_right(children, right_edge)
        else:
            child_ids = self.model.unions[block.root_union_id].child_ids
            anchor_index = child_ids.index(block.anchor_person_id) if block.anchor_person_id in child_ids else 0
            before = [b for b in children if self.child_index(self.blocks[b], child_ids) < anchor_index]
            after = [b for b in children if b not in before]
            self.fan_left(before, left_edge)
            self.fan_right(after, right_edge)
        fallback = (left_edge + right_edge) / 2
        self.center_union(block.root_union_id, fallback)

        # further partnerships go outside everything from this row down
        extent = self.extent_below(block.generation - 1)
        if block.chain_block_ids and extent is not None:
            left_edge, right_edge = extent
            self.fan_left(list(reversed(self.chains(block, True))), left_edge)
            self.fan_right(self.chains(block, False), right_edge)

    def place(self):
        focus_id = self.measured.focus_block_id
        for block_id in self.measured.root_block_ids:
            block = self.blocks[block_id]
            if block_id == focus_id:
                self.place_block(block_id, -block.width / 2 - self.left_chains_width(block))
            elif block.is_ancestor:
                self.place_ancestor(block)
            else:
                placed = [x + self.config.card_width for x in self.person_x.values()]
                left = max(placed) + self.config.horizontal_gap if placed else 0.0
                self.place_block(block_id, left)
        center_shared_unions(self.gen_model, self.person_x, self.union_x, self.config.card_width)
        update_block_bounds(self.blocks, self.gen_model, self.person_x, self.union_x, self.config)


def place_x(measured: MeasuredModel, config: LayoutConfig) -> PlacedModel:
    """Assign initial X positions. The measured model is left untouched."""
    placer = _Placer(measured, config)
    placer.place()
    logger.debug("Placed %d persons and %d unions", len(placer.person_x), len(placer.union_x))
    return PlacedModel(
        measured=measured,
        person_x=placer.person_x,
        union_x=placer.union_x,
        blocks=placer.blocks,
    )
