import pytest

from stromlayout.build_model import build_layout_model
from stromlayout.config import DEFAULT_LAYOUT_CONFIG
from stromlayout.constraints import apply_constraints
from stromlayout.generations import assign_generations
from stromlayout.layout_types import ChildDrop, Connection
from stromlayout.measure import measure_subtrees
from stromlayout.place import place_x
from stromlayout.routing import (
    detect_bus_collisions,
    detect_staircase_edges,
    generation_y,
    resolve_bus_collisions,
    resolve_elbow_clearance,
    route_edges,
    validate_no_staircase_edges,
)
from stromlayout.subgraph import select_subgraph

CONFIG = DEFAULT_LAYOUT_CONFIG


def route(data, focus):
    model = build_layout_model(data, select_subgraph(data, focus, 2, 2))
    measured = measure_subtrees(assign_generations(model, focus), CONFIG, focus)
    return route_edges(apply_constraints(place_x(measured, CONFIG), CONFIG), CONFIG)


def connection(union_id, stem_x, drop_xs, y=100.0, stem_top_y=0.0):
    drops = [ChildDrop(person_id=f"{union_id}_{i}", x=x, top_y=y, bottom_y=y + 40) for i, x in enumerate(drop_xs)]
    left, right = min(drop_xs), max(drop_xs)
    target = min(max(stem_x, left), right)
    return Connection(
        union_id=union_id,
        stem_x=stem_x,
        stem_top_y=stem_top_y,
        stem_bottom_y=y,
        branch_y=y,
        branch_left_x=left,
        branch_right_x=right,
        connector_from_x=stem_x,
        connector_to_x=target,
        connector_y=y,
        drops=drops,
    )


def test_generation_y(nuclear_data):
    routed = route(nuclear_data, "F")
    gen_y = generation_y(routed.constrained.placed.measured.gen_model, CONFIG)
    assert gen_y == {-1: 50, 0: 195, 1: 340}


def test_nuclear_connections(nuclear_data):
    routed = route(nuclear_data, "F")
    by_union = {c.union_id: c for c in routed.connections}
    assert set(by_union) == {"union_F_W", "union_FA_FM", "union_WA_WM"}

    focus = by_union["union_F_W"]
    assert [d.person_id for d in focus.drops] == ["K1", "K2"]
    assert focus.stem_x == pytest.approx((focus.branch_left_x + focus.branch_right_x) / 2)
    # couples start at the spouse line
    assert focus.stem_top_y == pytest.approx(195 + 32.5)
    assert focus.branch_y == pytest.approx((195 + 65 + 340) / 2)
    assert focus.connector_y == focus.branch_y
    assert all(d.bottom_y == 340 for d in focus.drops)

    wife_parents = by_union["union_WA_WM"]
    assert wife_parents.connector_to_x == pytest.approx(wife_parents.branch_right_x)
    assert validate_no_staircase_edges(routed.connections)
    assert detect_bus_collisions(routed.connections) == []


def test_spouse_lines(nuclear_data):
    routed = route(nuclear_data, "F")
    lines = {s.union_id: s for s in routed.spouse_lines}
    assert set(lines) == {"union_F_W", "union_FA_FM", "union_WA_WM"}
    focus = lines["union_F_W"]
    person_x = routed.constrained.placed.person_x
    assert (focus.person1_id, focus.person2_id) == ("F", "W")
    assert focus.partnership_id == "pF"
    assert focus.x_min == pytest.approx(person_x["F"] + 130)
    assert focus.x_max == pytest.approx(person_x["W"])
    assert focus.y == pytest.approx(195 + 32.5)


def test_single_parent_stem_starts_at_card_bottom(make_data):
    data = make_data(
        {"M": ("female", "1970-01-01"), "D": ("female", "2000-01-01"), "X": ("male", None)},
        {"p": ("M", "X", ["D"])},
    )
    data.persons["M"].partnerships = []
    data.partnerships.clear()
    data.persons["D"].parent_ids = ["M"]
    routed = route(data, "D")
    (only,) = routed.connections
    assert only.union_id == "union_M_single"
    assert only.stem_top_y == pytest.approx(50 + 65)
    assert routed.spouse_lines == []


def test_overlapping_buses_move_to_lower_lane():
    first = connection("u1", 80, [0, 40])
    second = connection("u2", 130, [60, 200])
    connections = [first, second]
    assert len(detect_bus_collisions(connections)) == 1

    resolve_bus_collisions(connections, CONFIG)

    assert first.branch_y == 100
    assert second.branch_y == 108
    assert second.connector_y == 108
    assert second.stem_bottom_y == 108
    assert all(d.top_y == 108 for d in second.drops)
    assert detect_bus_collisions(connections) == []


def test_bus_stays_collinear_rather_than_crossing():
    first = connection("u1", 50, [0, 100])
    second = connection("u2", 70, [70, 200])
    resolve_bus_collisions([first, second], CONFIG)
    assert second.branch_y == 100


def test_elbow_clearance_nudges_drop_away_from_stem():
    first = connection("u1", 0, [-50, 50], stem_top_y=0)
    second = connection("u2", 200, [5, 300], stem_top_y=0)
    resolve_elbow_clearance([first, second], CONFIG)

    assert second.drops[0].x == pytest.approx(14)
    assert second.branch_left_x == pytest.approx(14)
    assert second.stem_x == 200
    assert [d.x for d in first.drops] == [-50, 50]


def test_staircase_detection():
    stepped = connection("u1", 50, [0, 100])
    stepped.connector_y = 90
    stepped.connector_to_x = 0
    stepped.connector_from_x = 150
    violations = detect_staircase_edges([stepped, connection("u2", 50, [0, 100])])
    assert [v.union_id for v in violations] == ["u1"]
    assert violations[0].horizontal_segment_count == 2
    assert "2 horizontal segments" in violations[0].description


def test_half_siblings_drop_from_their_own_parents(half_sibling_data):
    routed = route(half_sibling_data, "A")
    by_union = {c.union_id: c for c in routed.connections}
    assert {u: [d.person_id for d in c.drops] for u, c in by_union.items()} == {
        "union_A_B": ["K1"],
        "chain_A_pAC": ["K2"],
    }
    # the chain has its own card, so its stem starts below it
    person_x = routed.constrained.placed.person_x
    chain = by_union["chain_A_pAC"]
    assert chain.stem_top_y == pytest.approx(50 + 65)
    assert chain.stem_x == pytest.approx(person_x["C"] + 65)
    assert by_union["union_A_B"].stem_top_y == pytest.approx(50 + 32.5)


def test_further_spouse_line_sits_below_the_first(half_sibling_data):
    routed = route(half_sibling_data, "A")
    lines = {s.union_id: s for s in routed.spouse_lines}
    assert set(lines) == {"union_A_B", "chain_A_pAC"}
    assert lines["union_A_B"].y == pytest.approx(50 + 32.5)
    assert lines["chain_A_pAC"].y == pytest.approx(50 + 32.5 + 3)
    person_x = routed.constrained.placed.person_x
    # C sits left of A
    assert lines["chain_A_pAC"].x_min == pytest.approx(person_x["C"] + 130)
    assert lines["chain_A_pAC"].x_max == pytest.approx(person_x["A"])
