from dataclasses import replace

import pytest

from stromlayout.config import DEFAULT_LAYOUT_CONFIG
from stromlayout.debug import (
    DEBUG_STEP_NAMES,
    DebugOptions,
    compute_debug_geometry,
    hsla,
    segments_intersect,
)
from stromlayout.pipeline import PipelineInput, run_layout_pipeline, run_layout_pipeline_with_debug


def debug_run(data, focus, **options):
    return run_layout_pipeline_with_debug(PipelineInput(data=data, focus_person_id=focus), DebugOptions(**options))


@pytest.mark.parametrize("kwargs", [{"step": 0}, {"step": 9}, {"phase": "C"}])
def test_invalid_options(kwargs):
    with pytest.raises(ValueError):
        DebugOptions(**kwargs)


def test_full_run_matches_pipeline(nuclear_data):
    debug = debug_run(nuclear_data, "F")
    assert [s.step for s in debug.snapshots] == list(range(1, 9))
    assert [s.step_name for s in debug.snapshots] == list(DEBUG_STEP_NAMES.values())
    assert debug.result == run_layout_pipeline(PipelineInput(data=nuclear_data, focus_person_id="F"))


@pytest.mark.parametrize("step", [1, 2, 3, 4])
def test_early_steps_return_empty_result(nuclear_data, step):
    debug = debug_run(nuclear_data, "F", step=step)
    assert len(debug.snapshots) == step
    assert debug.result.positions == {}
    assert all(s.validation is None and s.geometry is None for s in debug.snapshots)


def test_place_step_has_boxes_only(nuclear_data):
    debug = debug_run(nuclear_data, "F", step=5)
    result = debug.result
    assert len(result.positions) == 9
    assert result.connections == []
    assert result.spouse_lines == []
    assert result.diagnostics.phases_run is None
    assert result.diagnostics.routed_edges is None

    snapshot = debug.snapshots[-1]
    # the wife's parents still overlap the husband's parents
    assert snapshot.validation.box_overlap_count == 1
    assert snapshot.validation.edge_crossing_count == 0
    assert len(snapshot.geometry.person_boxes) == 9
    assert snapshot.geometry.bus_lines == []


def test_phase_a_stops_before_routing(nuclear_data):
    debug = debug_run(nuclear_data, "F", phase="A")
    assert len(debug.snapshots) == 6
    diagnostics = debug.result.diagnostics
    assert diagnostics.phases_run == ["A"]
    assert diagnostics.routed_edges is False
    assert debug.result.connections == []
    assert debug.snapshots[-1].constrained.phases_run == ["A"]


def test_step_six_runs_both_phases(nuclear_data):
    debug = debug_run(nuclear_data, "F", step=6)
    assert debug.result.diagnostics.phases_run == ["A", "B"]
    assert debug.result.diagnostics.routed_edges is False
    assert debug.snapshots[-1].validation.box_overlap_count == 0


def test_final_snapshot_validation(nuclear_data):
    snapshot = debug_run(nuclear_data, "F").snapshots[-1]
    validation = snapshot.validation
    assert validation.box_overlap_count == 0
    assert validation.edge_crossing_count == 0
    # the wife's parents were pushed right and cannot re-center
    (error,) = validation.centering_errors
    assert error.union_id == "union_WA_WM"
    assert error.error_px == pytest.approx(71.75)
    assert not validation.all_passed


def test_three_children_all_passed(three_children_data):
    snapshot = debug_run(three_children_data, "P1").snapshots[-1]
    assert snapshot.validation.all_passed


def test_geometry_is_normalized(nuclear_data):
    debug = debug_run(nuclear_data, "F")
    geometry = debug.snapshots[-1].geometry
    boxes = {box.id: box for box in geometry.person_boxes}
    positions = debug.result.positions
    for person_id, box in boxes.items():
        assert box.x == pytest.approx(positions[person_id].x)
        assert box.y == positions[person_id].y
    assert boxes["F"].label == "F Test"

    buses = {bus.union_id: bus for bus in geometry.bus_lines}
    connections = {c.union_id: c for c in debug.result.connections}
    assert buses["union_F_W"].x1 == pytest.approx(connections["union_F_W"].branch_left_x)

    assert [band.gen for band in geometry.generation_bands] == [-1, 0, 1]
    assert len(geometry.union_boxes) == 6
    assert {e.branch_id for e in geometry.branch_envelopes} == {"branch_union_F_W_0", "branch_union_F_W_1"}
    assert {a.type for a in geometry.anchor_points} == {"person", "union", "bus"}


def test_sibling_family_clusters(extended_data):
    geometry = debug_run(extended_data, "F").snapshots[-1].geometry
    clusters = {c.person_id: c for c in geometry.sibling_family_clusters}
    # the focus's father and his brother
    assert set(clusters) == {"FA", "U"}
    assert clusters["U"].label == "U & UW"
    assert clusters["U"].color == hsla(1, 0.2)


@pytest.mark.parametrize(
    "s1, s2, expected",
    [
        ((0, 0, 10, 0), (5, -5, 5, 5), True),
        ((0, 0, 10, 0), (20, -5, 20, 5), False),
        ((0, 0, 10, 0), (10, 0, 10, 10), False),
        ((0, 0, 10, 0), (5, 0, 15, 0), True),
    ],
)
def test_segments_intersect(s1, s2, expected):
    assert segments_intersect(s1, s2) is expected


def test_hsla_cycles_hues():
    assert hsla(0, 0.5) == "hsla(0.0, 70%, 50%, 0.5)"
    assert hsla(1, 0.15).startswith("hsla(137.508")


def test_half_sibling_geometry_matches_result(half_sibling_data):
    debug = debug_run(half_sibling_data, "A")
    geometry = debug.snapshots[-1].geometry
    positions = debug.result.positions
    boxes = {box.id: box for box in geometry.person_boxes}
    assert set(boxes) == set(positions)
    for person_id, box in boxes.items():
        assert box.x == pytest.approx(positions[person_id].x)
    assert {box.id for box in geometry.union_boxes} >= {"union_A_B", "chain_A_pAC"}


def test_negligible_shift_is_not_applied(nuclear_data):
    snapshot = debug_run(nuclear_data, "F").snapshots[-1]
    positions = snapshot.result.positions
    # already within a tenth of a pixel of the padding
    person_x = {person_id: pos.x - 0.05 for person_id, pos in positions.items()}
    nearly_normalized = replace(snapshot, placed=replace(snapshot.placed, person_x=person_x))

    geometry = compute_debug_geometry(nearly_normalized, DEFAULT_LAYOUT_CONFIG)
    boxes = {box.id: box.x for box in geometry.person_boxes}
    assert boxes == pytest.approx(person_x)
    assert min(boxes.values()) == pytest.approx(49.95)
