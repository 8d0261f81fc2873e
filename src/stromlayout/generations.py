"""
Step 3: assign generation numbers to persons and unions.

Focus person = 0, parents = -1, grandparents = -2, children = +1, ...
A union shares the generation of its partners.
"""

import logging
from collections import deque

from stromlayout.layout_types import GenerationalModel, GenerationBand, LayoutModel, UnionId
from stromlayout.models import PersonId

logger = logging.getLogger(__name__)


def _breadth_first(model: LayoutModel, focus_person_id: PersonId, person_gen: dict, union_gen: dict):
    queue: deque[tuple[PersonId, int]] = deque([(focus_person_id, 0)])
    visited = {focus_person_id}

    while queue:
        person_id, gen = queue.popleft()
        person_gen[person_id] = gen
        if person_id not in model.persons:
            continue

        union_id = model.person_to_union.get(person_id)
        union = model.unions.get(union_id) if union_id else None
        if union is not None:
            union_gen[union_id] = gen
            partner_id = union.partner_b if union.partner_a == person_id else union.partner_a
            if partner_id and partner_id not in visited:
                visited.add(partner_id)
                person_gen[partner_id] = gen
                if partner_id in union.shared_partner_ids:
                    # their own union still needs a visit
                    queue.append((partner_id, gen))

            # children one generation down
            for child_id in union.child_ids:
                if child_id not in visited:
                    visited.add(child_id)
                    queue.append((child_id, gen + 1))

        # further partnerships share the row
        for chain_id in model.partner_chains.get(person_id, []):
            chain = model.unions[chain_id]
            union_gen[chain_id] = gen
            for partner_id in chain.partners:
                if partner_id not in visited:
                    visited.add(partner_id)
                    queue.append((partner_id, gen))
            for child_id in chain.child_ids:
                if child_id not in visited:
                    visited.add(child_id)
                    queue.append((child_id, gen + 1))

        # parents one generation up
        parent_union = model.unions.get(model.child_to_parent_union.get(person_id, ""))
        if parent_union is not None:
            for parent_id in parent_union.partners:
                if parent_id not in visited:
                    visited.add(parent_id)
                    queue.append((parent_id, gen - 1))


def _propagate(model: LayoutModel, person_gen: dict, union_gen: dict) -> int:
    """Infer missing generations from edges and union children until nothing changes."""
    passes = 0
    changed = True
    while changed:
        changed = False
        passes += 1

        for edge in model.edges:
            parent_gen = union_gen.get(edge.parent_union_id)
            child_gen = person_gen.get(edge.child_person_id)

            if parent_gen is not None and child_gen is None:
                inferred = parent_gen + 1
                person_gen[edge.child_person_id] = inferred
                child_union_id = model.person_to_union.get(edge.child_person_id)
                if child_union_id and child_union_id not in union_gen:
                    union_gen[child_union_id] = inferred
                changed = True

            if child_gen is not None and parent_gen is None:
                inferred = child_gen - 1
                union_gen[edge.parent_union_id] = inferred
                parent_union = model.unions.get(edge.parent_union_id)
                if parent_union is not None:
                    for partner_id in parent_union.partners:
                        person_gen.setdefault(partner_id, inferred)
                changed = True

        # unions whose children are known but have no edge to them
        for person_id in model.persons:
            if person_id in person_gen:
                continue
            union_id = model.person_to_union.get(person_id)
            union = model.unions.get(union_id) if union_id else None
            if union is None:
                continue
            for child_id in union.child_ids:
                child_gen = person_gen.get(child_id)
                if child_gen is None:
                    continue
                inferred = child_gen - 1
                person_gen[person_id] = inferred
                union_gen[union_id] = inferred
                for partner_id in union.partners:
                    person_gen.setdefault(partner_id, inferred)
                changed = True
                break
    return passes


def _build_bands(person_gen: dict, union_gen: dict) -> dict[int, GenerationBand]:
    bands: dict[int, GenerationBand] = {}
    for person_id, gen in person_gen.items():
        bands.setdefault(gen, GenerationBand()).persons.append(person_id)
    for union_id, gen in union_gen.items():
        band = bands.setdefault(gen, GenerationBand())
        if union_id not in band.unions:
            band.unions.append(union_id)
    return dict(sorted(bands.items()))


def assign_generations(model: LayoutModel, focus_person_id: PersonId) -> GenerationalModel:
    """Assign generations by BFS from the focus, then fixpoint propagation, then a 0 fallback."""
    person_gen: dict[PersonId, int] = {}
    union_gen: dict[UnionId, int] = {}

    _breadth_first(model, focus_person_id, person_gen, union_gen)
    passes = _propagate(model, person_gen, union_gen)

    # Anything still unreached lands on the focus row. This can be
    # genealogically wrong for loosely connected fragments.
    defaulted = 0
    for person_id in model.persons:
        if person_id not in person_gen:
            person_gen[person_id] = 0
            defaulted += 1
            union_id = model.person_to_union.get(person_id)
            if union_id and union_id not in union_gen:
                union_gen[union_id] = 0
    # chain unions between two people who both have another union
    for union_id, union in model.unions.items():
        if union_id not in union_gen:
            union_gen[union_id] = person_gen.get(union.partner_a, 0)

    # keep only ids that exist in the model
    person_gen = {p: g for p, g in person_gen.items() if p in model.persons}
    union_gen = {u: g for u, g in union_gen.items() if u in model.unions}

    min_gen = min([0, *person_gen.values()])
    max_gen = max([0, *person_gen.values()])

    if defaulted:
        logger.debug("%d persons unreachable from %s defaulted to generation 0", defaulted, focus_person_id)
    logger.debug("Assigned generations %d..%d after %d propagation passes", min_gen, max_gen, passes)

    return GenerationalModel(
        model=model,
        person_gen=person_gen,
        union_gen=union_gen,
        bands=_build_bands(person_gen, union_gen),
        min_gen=min_gen,
        max_gen=max_gen,
    )


def validate_generations(gen_model: GenerationalModel) -> list[str]:
    """Check generation invariants; returns a list of error messages (empty if valid)."""
    errors: list[str] = []
    model = gen_model.model
    person_gen = gen_model.person_gen
    union_gen = gen_model.union_gen

    for edge in model.edges:
        parent_gen = union_gen.get(edge.parent_union_id)
        child_gen = person_gen.get(edge.child_person_id)
        if parent_gen is None or child_gen is None:
            errors.append(f"Missing generation for edge {edge.parent_union_id} -> {edge.child_person_id}")
            continue
        if child_gen != parent_gen + 1:
            errors.append(
                f"Generation mismatch: union {edge.parent_union_id} (gen {parent_gen}) "
                f"-> child {edge.child_person_id} (gen {child_gen}), expected gen {parent_gen + 1}"
            )

    for union_id, union in model.unions.items():
        gen_a = person_gen.get(union.partner_a)
        gen_b = person_gen.get(union.partner_b) if union.partner_b else gen_a
        if gen_a != gen_b:
            errors.append(
                f"Partners in union {union_id} have different generations: "
                f"{union.partner_a} (gen {gen_a}) vs {union.partner_b} (gen {gen_b})"
            )
        union_gen_value = union_gen.get(union_id)
        if union_gen_value != gen_a:
            errors.append(f"Union {union_id} gen ({union_gen_value}) doesn't match partner gen ({gen_a})")

    return errors
