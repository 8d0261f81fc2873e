"""
Step 4: measure subtree widths and build the family block tree.

Every union gets exactly one block. Blocks nest the way families hang from
each other: the focus union's block owns its descendants, each ancestor couple
gets a root block anchored over the child it descends to, and whatever is left
becomes a detached root. A chain union rides beside the block of the partner
it shares, on the outer side of that partner.
"""

import logging
from collections import deque

from stromlayout.build_model import get_child_unions
from stromlayout.config import LayoutConfig
from stromlayout.layout_types import (
    SIDE_BOTH,
    SIDE_DETACHED,
    SIDE_HUSBAND,
    SIDE_WIFE,
    BlockId,
    FamilyBlock,
    GenerationalModel,
    MeasuredModel,
    SiblingFamilyBranch,
    UnionId,
    UnionNode,
)
from stromlayout.models import PersonId

logger = logging.getLogger(__name__)


def couple_width(union: UnionNode, config: LayoutConfig) -> float:
    """Width of the cards the union places itself."""
    cards = len(union.own_partners)
    if cards == 0:
        return 0.0
    return cards * config.card_width + (cards - 1) * config.partner_gap


def children_total_width(widths: list[float], gap: float) -> float:
    """Sum of widths plus one gap between each neighbouring pair."""
    if not widths:
        return 0.0
    return sum(widths) + (len(widths) - 1) * gap


def compute_subtree_widths(
    gen_model: GenerationalModel,
    union_width: dict[UnionId, float],
    child_unions: dict[UnionId, list[UnionId]],
    config: LayoutConfig,
) -> dict[UnionId, float]:
    """
    Width each union's descendant subtree needs, deepest generation first.

    Child unions always sit at a greater generation than their parent union,
    so every child value exists before its parent is computed.
    """
    order = sorted(gen_model.model.unions, key=lambda u: (-gen_model.union_gen.get(u, 0), u))
    subtree_width: dict[UnionId, float] = {}
    for union_id in order:
        children = [subtree_width[c] for c in child_unions[union_id] if c in subtree_width]
        total = children_total_width(children, config.horizontal_gap)
        subtree_width[union_id] = max(union_width[union_id], total)
    return subtree_width


def block_id_for(union_id: UnionId) -> BlockId:
    return f"block_{union_id}"


class _BlockBuilder:
    def __init__(self, gen_model: GenerationalModel, child_unions, union_width, config: LayoutConfig):
        self.gen_model = gen_model
        self.model = gen_model.model
        self.child_unions = child_unions
        self.union_width = union_width
        self.config = config
        self.blocks: dict[BlockId, FamilyBlock] = {}
        self.union_to_block: dict[UnionId, BlockId] = {}
        self.root_block_ids: list[BlockId] = []

    def new_block(
        self,
        union_id: UnionId,
        side: str,
        parent_block_id=None,
        sibling_index=0,
        anchor=None,
        chain_owner: FamilyBlock | None = None,
        chain_left: bool = False,
    ):
        block = FamilyBlock(
            id=block_id_for(union_id),
            root_union_id=union_id,
            side=side,
            generation=self.gen_model.union_gen.get(union_id, 0),
            parent_block_id=parent_block_id,
            sibling_index=sibling_index,
            anchor_person_id=anchor,
            couple_width=self.union_width[union_id],
        )
        self.blocks[block.id] = block
        self.union_to_block[union_id] = block.id
        if chain_owner is not None:
            block.chain_owner_id = chain_owner.id
            block.chain_left = chain_left
            chain_owner.chain_block_ids.append(block.id)
        elif parent_block_id is None:
            self.root_block_ids.append(block.id)
        self.attach_chains(block)
        return block

    def chain_goes_left(self, block: FamilyBlock, shared_id: PersonId) -> bool:
        """Chains continue outward: left of a couple's left partner, else right."""
        if block.chain_owner_id is not None:
            return block.chain_left
        union = self.model.unions[block.root_union_id]
        return union.partner_b is not None and shared_id == union.partner_a

    def attach_chains(self, block: FamilyBlock):
        """Give the block's further partnerships blocks of their own beside it."""
        union = self.model.unions[block.root_union_id]
        for partner_id in union.own_partners:
            for chain_id in self.model.partner_chains.get(partner_id, []):
                if chain_id in self.union_to_block:
                    continue
                left = self.chain_goes_left(block, partner_id)
                chain = self.new_block(chain_id, block.side, chain_owner=block, chain_left=left)
                self.grow(chain)

    def grow(self, block: FamilyBlock):
        """Attach every unclaimed child union below the block, recursively."""
        for child_union_id in self.child_unions[block.root_union_id]:
            if child_union_id in self.union_to_block:
                continue
            child = self.new_block(
                child_union_id,
                block.side,
                parent_block_id=block.id,
                sibling_index=len(block.child_block_ids),
            )
            block.child_block_ids.append(child.id)
            self.grow(child)

    def attach_ancestor(self, union_id: UnionId, anchor: PersonId, side: str, queue: deque):
        block = self.new_block(union_id, side, anchor=anchor)
        self.grow(block)
        union = self.model.unions[union_id]
        sides = (SIDE_HUSBAND, SIDE_WIFE) if side == SIDE_BOTH else (side, side)
        for partner_id, partner_side in zip(union.partners, sides):
            queue.append((partner_id, partner_side))

    def walk_ancestors(self, queue: deque):
        while queue:
            person_id, side = queue.popleft()
            parent_union_id = self.model.child_to_parent_union.get(person_id)
            if parent_union_id is None or parent_union_id in self.union_to_block:
                continue
            self.attach_ancestor(parent_union_id, person_id, side, queue)

    def build(self, focus_person_id: PersonId | None) -> BlockId | None:
        focus_block_id = None
        focus_union_id = self.model.person_to_union.get(focus_person_id) if focus_person_id else None
        if focus_union_id is not None:
            focus_block = self.new_block(focus_union_id, SIDE_BOTH)
            focus_block_id = focus_block.id
            self.grow(focus_block)
            union = self.model.unions[focus_union_id]
            if union.partner_b is None:
                queue = deque([(union.partner_a, SIDE_BOTH)])
            else:
                queue = deque([(union.partner_a, SIDE_HUSBAND), (union.partner_b, SIDE_WIFE)])
            for chain_id in focus_block.chain_block_ids:
                chain = self.blocks[chain_id]
                side = SIDE_HUSBAND if chain.chain_left else SIDE_WIFE
                queue.extend((p, side) for p in self.model.unions[chain.root_union_id].own_partners)
            self.walk_ancestors(queue)

        # Leftovers: hang them over a placed child when possible, else detach
        while True:
            pending = sorted(
                (u for u in self.model.unions if u not in self.union_to_block),
                key=lambda u: (self.gen_model.union_gen.get(u, 0), u),
            )
            if not pending:
                break
            for union_id in pending:
                anchor = next(
                    (
                        child_id
                        for child_id in self.model.unions[union_id].child_ids
                        if self.model.person_to_union.get(child_id) in self.union_to_block
                    ),
                    None,
                )
                if anchor is not None:
                    queue: deque = deque()
                    self.attach_ancestor(union_id, anchor, SIDE_BOTH, queue)
                    self.walk_ancestors(queue)
                    break
            else:
                detached = self.new_block(pending[0], SIDE_DETACHED)
                self.grow(detached)
        return focus_block_id


def group_width(blocks: dict[BlockId, FamilyBlock], block_id: BlockId, gap: float) -> float:
    """Width of the block plus the chain blocks placed beside it."""
    block = blocks[block_id]
    return block.width + sum(gap + group_width(blocks, c, gap) for c in block.chain_block_ids)


def _measure_blocks(blocks: dict[BlockId, FamilyBlock], gap: float):
    for block in sorted(blocks.values(), key=lambda b: (-b.generation, b.id)):
        widths = [group_width(blocks, c, gap) for c in block.child_block_ids]
        block.children_width = children_total_width(widths, gap)
        block.width = max(block.couple_width, block.children_width)


def _measure_envelopes(
    blocks: dict[BlockId, FamilyBlock],
    gen_model: GenerationalModel,
    union_to_block: dict[UnionId, BlockId],
    focus_block_id: BlockId | None,
    gap: float,
):
    """Ancestor envelopes, from the oldest generation down to the focus."""
    model = gen_model.model

    def parents_envelope(person_id: PersonId) -> float | None:
        parent_union_id = model.child_to_parent_union.get(person_id)
        block_id = union_to_block.get(parent_union_id) if parent_union_id else None
        if block_id is None:
            return None
        parent_block = blocks[block_id]
        if parent_block.anchor_person_id != person_id:
            return None
        return parent_block.envelope_width

    def combined(block: FamilyBlock) -> float:
        parts = [
            env
            for env in (parents_envelope(p) for p in model.unions[block.root_union_id].partners)
            if env is not None
        ]
        return max(block.width, children_total_width(parts, gap))

    for block in blocks.values():
        block.envelope_width = block.width

    ancestors = sorted((b for b in blocks.values() if b.is_ancestor), key=lambda b: (b.generation, b.id))
    for block in ancestors:
        block.envelope_width = combined(block)
    if focus_block_id is not None:
        focus = blocks[focus_block_id]
        focus.envelope_width = combined(focus)

    for block in blocks.values():
        block.left_extent = block.envelope_width / 2
        block.right_extent = block.envelope_width / 2


def subtree_block_ids(blocks: dict[BlockId, FamilyBlock], root_id: BlockId) -> list[BlockId]:
    """The block, its chain blocks and all blocks nested below them, depth first."""
    result: list[BlockId] = []
    stack = [root_id]
    seen: set[BlockId] = set()
    while stack:
        block_id = stack.pop()
        if block_id in seen:
            continue
        seen.add(block_id)
        result.append(block_id)
        stack.extend(reversed(blocks[block_id].chain_block_ids))
        stack.extend(reversed(blocks[block_id].child_block_ids))
    return result


class _BranchBuilder:
    def __init__(self, measured: MeasuredModel):
        self.measured = measured
        self.blocks = measured.blocks
        self.model = measured.gen_model.model

    def child_person(self, parent_union_id: UnionId, block: FamilyBlock) -> PersonId:
        parent_children = self.model.unions[parent_union_id].child_ids
        union = self.model.unions[block.root_union_id]
        return next((p for p in union.partners if p in parent_children), union.partner_a)

    def make_branch(self, block_id: BlockId, parent_union_id: UnionId, index: int, parent_branch_id):
        block = self.blocks[block_id]
        block_ids = subtree_block_ids(self.blocks, block_id)
        branch = SiblingFamilyBranch(
            id=f"branch_{parent_union_id}_{index}",
            parent_union_id=parent_union_id,
            root_block_id=block_id,
            child_person_id=self.child_person(parent_union_id, block),
            sibling_index=index,
            block_ids=block_ids,
            union_ids=[self.blocks[b].root_union_id for b in block_ids],
            envelope_width=block.width,
            parent_branch_id=parent_branch_id,
            generation=block.generation,
        )
        self.measured.branches[branch.id] = branch
        for b in block_ids:
            # innermost branch wins: sub-branches are created afterwards
            self.measured.block_to_branch[b] = branch.id
            self.measured.union_to_branch[self.blocks[b].root_union_id] = branch.id
            self.blocks[b].branch_id = branch.id
        self.split(block, branch)
        return branch

    def split(self, block: FamilyBlock, branch: SiblingFamilyBranch):
        if len(block.child_block_ids) >= 2:
            for i, child_id in enumerate(block.child_block_ids):
                sub = self.make_branch(child_id, block.root_union_id, i, branch.id)
                branch.child_branch_ids.append(sub.id)
        elif block.child_block_ids:
            self.split(self.blocks[block.child_block_ids[0]], branch)

    def build(self):
        focus_id = self.measured.focus_block_id
        if focus_id is None:
            return
        focus = self.blocks[focus_id]
        for i, child_id in enumerate(focus.child_block_ids):
            branch = self.make_branch(child_id, focus.root_union_id, i, None)
            self.measured.top_level_branch_ids.append(branch.id)


def branch_bounds(branch: SiblingFamilyBranch, blocks: dict[BlockId, FamilyBlock]) -> tuple[float, float]:
    """Horizontal corridor of a branch from the placed bounds of its blocks."""
    members = [blocks[b] for b in branch.block_ids if b in blocks]
    if not members:
        return (0.0, 0.0)
    return (min(b.x_left for b in members), max(b.x_right for b in members))


def measure_subtrees(
    gen_model: GenerationalModel, config: LayoutConfig, focus_person_id: PersonId | None = None
) -> MeasuredModel:
    """Compute person/union/subtree widths and build family blocks and branches."""
    model = gen_model.model
    person_width = {person_id: config.card_width for person_id in model.persons}
    union_width = {union_id: couple_width(union, config) for union_id, union in model.unions.items()}
    child_unions = {union_id: get_child_unions(union_id, model, gen_model) for union_id in model.unions}
    subtree_width = compute_subtree_widths(gen_model, union_width, child_unions, config)

    builder = _BlockBuilder(gen_model, child_unions, union_width, config)
    focus_block_id = builder.build(focus_person_id)
    _measure_blocks(builder.blocks, config.horizontal_gap)
    _measure_envelopes(builder.blocks, gen_model, builder.union_to_block, focus_block_id, config.horizontal_gap)

    measured = MeasuredModel(
        gen_model=gen_model,
        person_width=person_width,
        union_width=union_width,
        subtree_width=subtree_width,
        blocks=builder.blocks,
        root_block_ids=builder.root_block_ids,
        union_to_block=builder.union_to_block,
        focus_block_id=focus_block_id,
    )
    _BranchBuilder(measured).build()

    logger.debug(
        "Measured %d unions into %d blocks (%d roots, %d branches)",
        len(union_width),
        len(measured.blocks),
        len(measured.root_block_ids),
        len(measured.branches),
    )
    return measured


def get_total_width(measured: MeasuredModel) -> float:
    """Width of the widest root envelope."""
    roots = [measured.blocks[b].envelope_width for b in measured.root_block_ids]
    return max(roots, default=0.0)
