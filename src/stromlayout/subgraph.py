"""
Step 1: select the visible subgraph around a focus person.

Rules:
- Focus person and their partners (always)
- Siblings of the focus and their families
- Direct ancestors up to ancestor_depth, both parents as a unit
- Descendants down to descendant_depth
- Optionally: ancestors of the focus's partners, aunts/uncles, cousins
"""

import logging

from stromlayout.layout_types import GraphSelection
from stromlayout.models import Partnership, PersonId, StromData

logger = logging.getLogger(__name__)


class _Walk:
    """Mutable state of one selection walk."""

    def __init__(self, data: StromData):
        self.data = data
        self.persons: dict[PersonId, None] = {}
        self.partnerships: dict[str, None] = {}
        self.processed_partnerships: set[str] = set()
        # children listed by some partnership; others are not laid out
        self.partnership_children: set[PersonId] = {
            child_id for p in data.partnerships.values() for child_id in p.child_ids
        }

    def add_person(self, person_id: PersonId):
        self.persons[person_id] = None

    def add_partners(self, person_id: PersonId):
        person = self.data.persons.get(person_id)
        if person is None:
            return
        for partnership_id in person.partnerships:
            partnership = self.data.partnerships.get(partnership_id)
            if partnership is None:
                continue
            self.add_person(partnership.person1_id)
            self.add_person(partnership.person2_id)
            self.partnerships[partnership_id] = None

    def add_descendants(self, person_id: PersonId, max_depth: int, current_depth: int = 0) -> int:
        """Add descendants recursively; returns the depth reached."""
        if max_depth <= 0:
            return current_depth
        person = self.data.persons.get(person_id)
        if person is None:
            return current_depth

        reached = current_depth
        for child_id in person.child_ids:
            if child_id in self.persons or child_id not in self.partnership_children:
                continue
            self.add_person(child_id)
            self.add_partners(child_id)
            depth = self.add_descendants(child_id, max_depth - 1, current_depth + 1)
            reached = max(reached, depth)
        return reached

    def add_ancestors(self, child_id: PersonId, max_depth: int, current_depth: int = 0) -> int:
        """Add ancestors through the parent partnership; returns the depth reached."""
        if max_depth <= 0:
            return current_depth
        child = self.data.persons.get(child_id)
        if child is None or not child.parent_ids:
            return current_depth

        parent_partnership = find_parent_partnership(self.data, child_id)
        if parent_partnership is not None:
            if parent_partnership.id in self.processed_partnerships:
                return current_depth
            self.processed_partnerships.add(parent_partnership.id)
            self.partnerships[parent_partnership.id] = None
            self.add_person(parent_partnership.person1_id)
            self.add_person(parent_partnership.person2_id)
            depth1 = self.add_ancestors(parent_partnership.person1_id, max_depth - 1, current_depth + 1)
            depth2 = self.add_ancestors(parent_partnership.person2_id, max_depth - 1, current_depth + 1)
            return max(depth1, depth2)

        # No partnership lists this child: walk through the individual parents
        reached = current_depth
        for parent_id in child.parent_ids:
            if parent_id in self.persons:
                continue
            self.add_person(parent_id)
            self.add_partners(parent_id)
            depth = self.add_ancestors(parent_id, max_depth - 1, current_depth + 1)
            reached = max(reached, depth)
        return reached

    def siblings(self, person_id: PersonId) -> list[PersonId]:
        """Other children of the person's parents (half-siblings included)."""
        person = self.data.persons.get(person_id)
        if person is None:
            return []
        sibling_ids: dict[PersonId, None] = {}
        for parent_id in person.parent_ids:
            parent = self.data.persons.get(parent_id)
            if parent is None:
                continue
            for child_id in parent.child_ids:
                if child_id != person_id and child_id in self.partnership_children:
                    sibling_ids[child_id] = None
        return [s for s in sibling_ids if s in self.data.persons]

    def collect_partnerships(self):
        """Keep partnerships between selected persons that have a selected child."""
        for partnership_id, partnership in self.data.partnerships.items():
            if partnership.person1_id not in self.persons or partnership.person2_id not in self.persons:
                continue
            has_child = any(child_id in self.persons for child_id in partnership.child_ids)
            if has_child or partnership_id in self.partnerships:
                self.partnerships[partnership_id] = None


def find_parent_partnership(data: StromData, child_id: PersonId) -> Partnership | None:
    """Find the partnership listing this child with one of the child's parents as a partner."""
    child = data.persons.get(child_id)
    if child is None:
        return None
    for partnership in data.partnerships.values():
        if child_id not in partnership.child_ids:
            continue
        if partnership.person1_id in child.parent_ids or partnership.person2_id in child.parent_ids:
            return partnership
    return None


def select_subgraph(
    data: StromData,
    focus_person_id: PersonId,
    ancestor_depth: int,
    descendant_depth: int,
    include_spouse_ancestors: bool = True,
    include_parent_siblings: bool = True,
    include_parent_sibling_descendants: bool = True,
) -> GraphSelection:
    """
    Select the persons and partnerships visible around the focus person.

    Args:
        data: Full source data
        focus_person_id: Person the diagram is centered on
        ancestor_depth: Generations up (1 = parents, 2 = grandparents)
        descendant_depth: Generations down
        include_spouse_ancestors: Also walk up from the focus's partners
        include_parent_siblings: Include aunts and uncles
        include_parent_sibling_descendants: Include cousins and their descendants

    Returns:
        The selection; empty when the focus person is unknown
    """
    focus = data.persons.get(focus_person_id)
    if focus is None:
        logger.debug("Focus person %s not found, empty selection", focus_person_id)
        return GraphSelection(persons={}, partnerships={}, focus_person_id=focus_person_id)

    walk = _Walk(data)
    ancestor_reached = 0
    descendant_reached = 0

    # 1. Focus person and partners
    walk.add_person(focus_person_id)
    walk.add_partners(focus_person_id)

    # 2. Siblings with their partners and descendants. A half-sibling's other
    # parent is not added.
    for sibling_id in walk.siblings(focus_person_id):
        walk.add_person(sibling_id)
        walk.add_partners(sibling_id)
        if descendant_depth > 0:
            descendant_reached = max(descendant_reached, walk.add_descendants(sibling_id, descendant_depth))

    # 3. Descendants of the focus
    if descendant_depth > 0:
        descendant_reached = max(descendant_reached, walk.add_descendants(focus_person_id, descendant_depth))

    # 4. Direct ancestors, optionally also those of the partners
    if ancestor_depth > 0:
        ancestor_reached = walk.add_ancestors(focus_person_id, ancestor_depth)
        if include_spouse_ancestors:
            for partnership_id in focus.partnerships:
                partnership = data.partnerships.get(partnership_id)
                if partnership is None:
                    continue
                spouse_id = (
                    partnership.person2_id
                    if partnership.person1_id == focus_person_id
                    else partnership.person1_id
                )
                if spouse_id in walk.persons:
                    ancestor_reached = max(ancestor_reached, walk.add_ancestors(spouse_id, ancestor_depth))

    # 5. Aunts/uncles and cousins
    if include_parent_siblings and ancestor_depth >= 1:
        for parent_id in focus.parent_ids:
            for aunt_uncle_id in walk.siblings(parent_id):
                walk.add_person(aunt_uncle_id)
                walk.add_partners(aunt_uncle_id)
                if not include_parent_sibling_descendants:
                    continue
                for cousin_id in data.persons[aunt_uncle_id].child_ids:
                    if cousin_id not in walk.partnership_children or cousin_id in walk.persons:
                        continue
                    walk.add_person(cousin_id)
                    walk.add_partners(cousin_id)
                    if descendant_depth > 0:
                        walk.add_descendants(cousin_id, descendant_depth)

    walk.collect_partnerships()

    logger.debug(
        "Selected %d persons, %d partnerships around %s (ancestors %d, descendants %d)",
        len(walk.persons),
        len(walk.partnerships),
        focus_person_id,
        ancestor_reached,
        descendant_reached,
    )
    return GraphSelection(
        persons=walk.persons,
        partnerships=walk.partnerships,
        focus_person_id=focus_person_id,
        max_ancestor_gen=ancestor_reached,
        max_descendant_gen=descendant_reached,
    )
