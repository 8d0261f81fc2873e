import pytest

from stromlayout.config import LayoutConfig
from stromlayout.pipeline import (
    LayoutRequest,
    PipelineInput,
    SelectionPolicy,
    StromLayoutEngine,
    compute_layout,
    run_layout_pipeline,
)


def test_nuclear_layout(nuclear_data):
    result = run_layout_pipeline(PipelineInput(data=nuclear_data, focus_person_id="F"))

    assert len(result.positions) == 9
    assert result.positions["Sib"].x == pytest.approx(50)
    assert result.positions["Sib"].y == 195
    assert result.positions["FA"].y == 50
    assert result.positions["K1"].y == 340
    assert result.positions["K1"].x == pytest.approx(195)
    assert result.positions["K2"].x == pytest.approx(340)
    assert result.positions["F"].x == pytest.approx(196.5)
    assert result.positions["W"].x == pytest.approx(338.5)
    # partners sit exactly partner_gap apart
    assert result.positions["W"].x - result.positions["F"].x - 130 == pytest.approx(12)
    assert min(pos.x for pos in result.positions.values()) == pytest.approx(50)

    diagnostics = result.diagnostics
    assert diagnostics.total_persons == 9
    assert diagnostics.total_unions == 6
    assert diagnostics.generation_range == (-1, 1)
    assert diagnostics.iterations == 1
    assert diagnostics.branch_count == 2
    assert diagnostics.phases_run == ["A", "B"]
    assert diagnostics.routed_edges is True
    assert diagnostics.validation_passed, diagnostics.errors
    assert len(result.connections) == 3
    assert len(result.spouse_lines) == 3
    assert result.block_bounds["block_union_Sib_single"] == pytest.approx((50, 180))


def test_focus_couple_centered_over_children(nuclear_data):
    result = run_layout_pipeline(PipelineInput(data=nuclear_data, focus_person_id="F"))
    (focus,) = [c for c in result.connections if c.union_id == "union_F_W"]
    couple_center = (result.positions["F"].x + result.positions["W"].x + 130) / 2
    assert focus.stem_x == pytest.approx(couple_center)
    assert focus.stem_x == pytest.approx((focus.branch_left_x + focus.branch_right_x) / 2)


def test_three_children_layout(three_children_data):
    result = run_layout_pipeline(PipelineInput(data=three_children_data, focus_person_id="P1"))
    assert result.diagnostics.iterations == 0
    assert result.diagnostics.validation_passed, result.diagnostics.errors
    assert result.positions["A"].x == pytest.approx(50)
    assert result.positions["C"].x == pytest.approx(482)


def test_extended_layout_validates(extended_data):
    result = run_layout_pipeline(PipelineInput(data=extended_data, focus_person_id="F"))
    assert result.diagnostics.generation_range == (-2, 1)
    assert result.diagnostics.total_persons == 14
    assert result.diagnostics.validation_passed, result.diagnostics.errors


def test_unknown_focus_gives_empty_result(nuclear_data):
    result = run_layout_pipeline(PipelineInput(data=nuclear_data, focus_person_id="nobody"))
    assert result.positions == {}
    assert result.connections == []
    assert result.diagnostics.total_persons == 0
    assert result.diagnostics.validation_passed


def test_layout_is_deterministic(extended_data):
    first = run_layout_pipeline(PipelineInput(data=extended_data, focus_person_id="F"))
    second = run_layout_pipeline(PipelineInput(data=extended_data, focus_person_id="F"))
    assert first == second


def test_custom_config(nuclear_data):
    config = LayoutConfig(padding=10, vertical_gap=40)
    result = run_layout_pipeline(PipelineInput(data=nuclear_data, focus_person_id="F", config=config))
    assert min(pos.x for pos in result.positions.values()) == pytest.approx(10)
    assert result.positions["F"].y == 10 + 105


def test_engine_skips_spouse_ancestors(nuclear_data):
    engine = StromLayoutEngine()
    result = engine.layout(LayoutRequest(data=nuclear_data, focus_person_id="F"))
    assert "WA" not in result.positions
    assert "FA" in result.positions
    assert compute_layout(engine, LayoutRequest(data=nuclear_data, focus_person_id="F")) == result


def test_engine_policy(extended_data):
    policy = SelectionPolicy(ancestor_depth=1, descendant_depth=0, include_aunts_uncles=False)
    result = StromLayoutEngine().layout(LayoutRequest(data=extended_data, focus_person_id="F", policy=policy))
    assert set(result.positions) == {"F", "W", "Sib", "FA", "FM"}


def test_half_siblings_get_one_drop_each(half_sibling_data):
    result = run_layout_pipeline(PipelineInput(data=half_sibling_data, focus_person_id="A"))

    drops = [(c.union_id, d.person_id) for c in result.connections for d in c.drops]
    assert sorted(drops) == [("chain_A_pAC", "K2"), ("union_A_B", "K1")]
    assert result.positions["C"].x == pytest.approx(50)
    assert result.positions["C"].x < result.positions["A"].x < result.positions["B"].x
    lines = {s.union_id: s.y for s in result.spouse_lines}
    assert lines == pytest.approx({"union_A_B": 82.5, "chain_A_pAC": 85.5})
    assert result.diagnostics.total_unions == 4
    assert result.diagnostics.validation_passed, result.diagnostics.errors


def test_loosely_attached_family_stays_compact(make_data):
    data = make_data(
        {
            "F": ("male", "1970-01-01"),
            "W": ("female", "1971-01-01"),
            "K": ("male", "2000-01-01"),
            "X": ("male", "1940-01-01"),
            "Y": ("female", "1942-01-01"),
            "Z": ("male", "1965-01-01"),
        },
        {
            "pFW": ("F", "W", ["K"]),
            "pXY": ("X", "Y", ["Z"]),
        },
    )
    # F names X as parent, but no partnership lists F as a child
    data.persons["F"].parent_ids = ["X"]
    data.persons["X"].child_ids.append("F")

    result = run_layout_pipeline(PipelineInput(data=data, focus_person_id="F", max_iterations=500))

    assert set(result.positions) == {"F", "W", "K", "X", "Y", "Z"}
    xs = [pos.x for pos in result.positions.values()]
    assert max(xs) + 130 - min(xs) <= len(xs) * (130 + 15)
    assert any("Generation mismatch" in e and "Z" in e for e in result.diagnostics.errors)


def test_cyclic_data_still_returns_a_layout(make_data):
    data = make_data(
        {
            "P": ("male", "1950-01-01"),
            "Q": ("female", "1951-01-01"),
            "R": ("male", "1975-01-01"),
            "S": ("female", "1976-01-01"),
        },
        {
            "p1": ("P", "Q", ["R"]),
            "p2": ("R", "S", ["P"]),
        },
    )
    result = run_layout_pipeline(PipelineInput(data=data, focus_person_id="R"))

    assert set(result.positions) == {"P", "Q", "R", "S"}
    assert not result.diagnostics.validation_passed
    assert any("Cycle detected" in e for e in result.diagnostics.errors)
