"""
Step 2: build the layout model from the selected subgraph.

The union (couple or single parent) is the atomic layout unit. Partners are
ordered male left, otherwise by id. A person with several partnerships keeps
their card in the union of the highest-priority one; every further
partnership becomes a chain union that holds its own children, so each child
hangs from exactly one union.
"""

import logging

from stromlayout.layout_types import (
    GenerationalModel,
    GraphSelection,
    LayoutModel,
    ParentChildEdge,
    PersonNode,
    UnionId,
    UnionNode,
)
from stromlayout.models import Partnership, PersonId, StromData

logger = logging.getLogger(__name__)


def order_partners(p1: PersonId, p2: PersonId, data: StromData) -> tuple[PersonId, PersonId]:
    """Male on the left; same or unknown gender ordered by id."""
    person1 = data.persons.get(p1)
    person2 = data.persons.get(p2)
    gender1 = person1.gender if person1 else None
    gender2 = person2.gender if person2 else None
    if gender1 == "male" and gender2 == "female":
        return p1, p2
    if gender1 == "female" and gender2 == "male":
        return p2, p1
    return (p1, p2) if p1 < p2 else (p2, p1)


def create_union_id(partner_a: PersonId, partner_b: PersonId | None) -> UnionId:
    if partner_b is None:
        return f"union_{partner_a}_single"
    first, second = sorted([partner_a, partner_b])
    return f"union_{first}_{second}"


def sort_children(child_ids: list[PersonId], data: StromData) -> list[PersonId]:
    """Sort by birth date, then id."""

    def key(child_id: PersonId):
        person = data.persons.get(child_id)
        return (person.birth_date or "" if person else "", child_id)

    return sorted(child_ids, key=key)


def _partnership_priority(partnership: Partnership, focus_parent_ids: set[PersonId]):
    is_bio_parent = partnership.person1_id in focus_parent_ids and partnership.person2_id in focus_parent_ids
    return (
        not is_bio_parent,
        not partnership.is_primary,
        partnership.is_terminated,
    )


def _sorted_partnership_ids(
    data: StromData, selection: GraphSelection, focus_parent_ids: set[PersonId]
) -> list[str]:
    """
    Order partnerships by priority:
    1. Biological parents of the focus person
    2. is_primary flag
    3. Active before terminated (divorced/separated)
    4. Start date, newest first
    5. Id
    """
    present = [pid for pid in selection.partnerships if pid in data.partnerships]
    # Stable sorts from the weakest key to the strongest
    ordered = sorted(present)
    ordered.sort(key=lambda pid: data.partnerships[pid].start_date or "", reverse=True)
    ordered.sort(key=lambda pid: _partnership_priority(data.partnerships[pid], focus_parent_ids))
    return ordered


class _ModelBuilder:
    def __init__(self, data: StromData, selection: GraphSelection):
        self.data = data
        self.selection = selection
        self.persons: dict[PersonId, PersonNode] = {}
        self.unions: dict[UnionId, UnionNode] = {}
        self.edges: list[ParentChildEdge] = []
        self.person_to_union: dict[PersonId, UnionId] = {}
        self.child_to_parent_union: dict[PersonId, UnionId] = {}
        self.partner_chains: dict[PersonId, list[UnionId]] = {}

    def unclaimed_children(self, child_ids: list[PersonId]) -> list[PersonId]:
        """Selected children without a parent union yet, in display order."""
        return sort_children(
            [c for c in child_ids if c in self.persons and c not in self.child_to_parent_union],
            self.data,
        )

    def add_union(self, union: UnionNode, child_ids: list[PersonId]):
        union.child_ids = self.unclaimed_children(child_ids)
        self.unions[union.id] = union
        for child_id in union.child_ids:
            self.child_to_parent_union[child_id] = union.id
            self.edges.append(ParentChildEdge(parent_union_id=union.id, child_person_id=child_id))

    def add_children_to_union(self, union_id: UnionId, partnership: Partnership):
        """Same couple again: the new children join the existing union."""
        union = self.unions[union_id]
        for child_id in self.unclaimed_children(partnership.child_ids):
            union.child_ids.append(child_id)
            self.child_to_parent_union[child_id] = union_id
            self.edges.append(ParentChildEdge(parent_union_id=union_id, child_person_id=child_id))
        union.child_ids = sort_children(union.child_ids, self.data)

    def add_chain_union(self, partnership: Partnership, shared: tuple[PersonId, ...]):
        """
        A further partnership of someone already in a union.

        The shared person keeps their card in their first union; the chain
        union gets the partnership's children and, unless it has one already,
        the new partner's card.
        """
        anchor = shared[0]
        p1, p2 = partnership.person1_id, partnership.person2_id
        partner_a, partner_b = order_partners(p1, p2, self.data)
        union = UnionNode(
            id=f"chain_{anchor}_{partnership.id}",
            partner_a=partner_a,
            partner_b=partner_b,
            partnership_id=partnership.id,
            shared_partner_ids=shared,
        )
        self.add_union(union, partnership.child_ids)
        self.partner_chains.setdefault(anchor, []).append(union.id)
        for partner_id in union.own_partners:
            self.person_to_union[partner_id] = union.id

    def add_partnership(self, partnership: Partnership):
        p1, p2 = partnership.person1_id, partnership.person2_id
        if p1 not in self.persons or p2 not in self.persons:
            return

        union1 = self.person_to_union.get(p1)
        union2 = self.person_to_union.get(p2)
        if union1 is not None and union1 == union2:
            self.add_children_to_union(union1, partnership)
            return
        if union1 is not None and union2 is not None:
            self.add_chain_union(partnership, (p1, p2))
            return
        if union1 is not None or union2 is not None:
            self.add_chain_union(partnership, (p1,) if union1 is not None else (p2,))
            return

        partner_a, partner_b = order_partners(p1, p2, self.data)
        union_id = create_union_id(partner_a, partner_b)
        self.add_union(
            UnionNode(id=union_id, partner_a=partner_a, partner_b=partner_b, partnership_id=partnership.id),
            partnership.child_ids,
        )
        self.person_to_union[partner_a] = union_id
        self.person_to_union[partner_b] = union_id

    def add_single(self, person_id: PersonId):
        person = self.data.persons[person_id]
        has_partnerships = bool(person.partnerships)

        def belongs(child_id: PersonId) -> bool:
            if not has_partnerships:
                child = self.data.persons.get(child_id)
                return child is not None and person_id in child.parent_ids
            return any(
                child_id in p.child_ids and person_id in (p.person1_id, p.person2_id)
                for p in self.data.partnerships.values()
            )

        union_id = create_union_id(person_id, None)
        self.add_union(
            UnionNode(id=union_id, partner_a=person_id, partner_b=None, partnership_id=None),
            [c for c in person.child_ids if belongs(c)],
        )
        self.person_to_union[person_id] = union_id


def build_layout_model(data: StromData, selection: GraphSelection) -> LayoutModel:
    """Build persons, unions and parent-child edges for the selection."""
    builder = _ModelBuilder(data, selection)

    for person_id in selection.persons:
        person = data.persons.get(person_id)
        if person is None:
            continue  # referenced but not in the data
        builder.persons[person_id] = PersonNode(
            id=person_id,
            first_name=person.first_name,
            last_name=person.last_name,
            gender=person.gender,
            birth_date=person.birth_date,
        )

    focus = data.persons.get(selection.focus_person_id)
    focus_parent_ids = set(focus.parent_ids) if focus else set()
    for partnership_id in _sorted_partnership_ids(data, selection, focus_parent_ids):
        builder.add_partnership(data.partnerships[partnership_id])

    for person_id in builder.persons:
        if person_id not in builder.person_to_union:
            builder.add_single(person_id)

    logger.debug(
        "Built model: %d persons, %d unions, %d edges",
        len(builder.persons),
        len(builder.unions),
        len(builder.edges),
    )
    return LayoutModel(
        persons=builder.persons,
        unions=builder.unions,
        edges=builder.edges,
        person_to_union=builder.person_to_union,
        child_to_parent_union=builder.child_to_parent_union,
        partner_chains=builder.partner_chains,
    )


def get_child_unions(union_id: UnionId, model: LayoutModel, gen_model: GenerationalModel) -> list[UnionId]:
    """Unions of this union's children one or more generations below, deduplicated, in child order."""
    union = model.unions.get(union_id)
    if union is None:
        return []
    parent_gen = gen_model.union_gen.get(union_id, 0)
    result: list[UnionId] = []
    for child_id in union.child_ids:
        child_union_id = model.person_to_union.get(child_id)
        if child_union_id is None or child_union_id in result:
            continue
        child_gen = gen_model.union_gen.get(child_union_id)
        if child_gen is None or child_gen <= parent_gen:
            continue
        result.append(child_union_id)
    return result
