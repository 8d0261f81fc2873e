"""
Layout pipeline orchestration.

1. select_subgraph()      -> GraphSelection
2. build_layout_model()   -> LayoutModel
3. assign_generations()   -> GenerationalModel
4. measure_subtrees()     -> MeasuredModel
5. place_x()              -> PlacedModel
6. apply_constraints()    -> ConstrainedModel
7. route_edges()          -> RoutedModel
8. emit_layout_result()   -> LayoutResult
"""

import logging
from dataclasses import dataclass, field

from stromlayout.build_model import build_layout_model
from stromlayout.config import DEFAULT_LAYOUT_CONFIG, DEFAULT_MAX_ITERATIONS, DEFAULT_TOLERANCE, LayoutConfig
from stromlayout.constraints import apply_constraints
from stromlayout.debug import DebugOptions, DebugPipelineResult, create_snapshot
from stromlayout.emit import emit_layout_result
from stromlayout.generations import assign_generations
from stromlayout.layout_types import PHASE_A, PHASES, ConstrainedModel, LayoutResult, RoutedModel
from stromlayout.measure import measure_subtrees
from stromlayout.models import PersonId, StromData
from stromlayout.place import place_x
from stromlayout.routing import route_edges
from stromlayout.subgraph import select_subgraph
from stromlayout.validation import validate_layout

logger = logging.getLogger(__name__)


@dataclass
class PipelineInput:
    data: StromData
    focus_person_id: PersonId
    config: LayoutConfig = DEFAULT_LAYOUT_CONFIG
    # selection policy
    ancestor_depth: int = 2
    descendant_depth: int = 2
    include_spouse_ancestors: bool = True
    include_parent_siblings: bool = True
    include_parent_sibling_descendants: bool = True
    # constraint solver
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    tolerance: float = DEFAULT_TOLERANCE
    stop_after_phase: str | None = None


def empty_result() -> LayoutResult:
    return LayoutResult()


def _select(pipeline_input: PipelineInput):
    return select_subgraph(
        pipeline_input.data,
        pipeline_input.focus_person_id,
        pipeline_input.ancestor_depth,
        pipeline_input.descendant_depth,
        include_spouse_ancestors=pipeline_input.include_spouse_ancestors,
        include_parent_siblings=pipeline_input.include_parent_siblings,
        include_parent_sibling_descendants=pipeline_input.include_parent_sibling_descendants,
    )


def _validate(result: LayoutResult, config: LayoutConfig, gen_model) -> LayoutResult:
    validation = validate_layout(result, config, gen_model)
    result.diagnostics.validation_passed = validation.passed
    result.diagnostics.errors = validation.errors
    if not validation.passed:
        logger.debug("Layout validation found %d problems", len(validation.errors))
    return result


def run_layout_pipeline(pipeline_input: PipelineInput) -> LayoutResult:
    """Run all eight stages, then validate the result."""
    config = pipeline_input.config

    selection = _select(pipeline_input)
    if selection.is_empty:
        return empty_result()

    model = build_layout_model(pipeline_input.data, selection)
    gen_model = assign_generations(model, pipeline_input.focus_person_id)
    measured = measure_subtrees(gen_model, config, pipeline_input.focus_person_id)
    placed = place_x(measured, config)
    constrained = apply_constraints(
        placed,
        config,
        max_iterations=pipeline_input.max_iterations,
        tolerance=pipeline_input.tolerance,
        stop_after_phase=pipeline_input.stop_after_phase,
    )
    routed = route_edges(constrained, config)
    result = emit_layout_result(routed, config)
    return _validate(result, config, gen_model)


def phases_for(stop_after_phase: str | None) -> list[str]:
    if stop_after_phase == PHASE_A:
        return [PHASE_A]
    return list(PHASES)


def _unrouted_result(constrained: ConstrainedModel, config: LayoutConfig) -> LayoutResult:
    """Positions only: connections and spouse lines are left empty."""
    return emit_layout_result(RoutedModel(constrained=constrained, connections=[], spouse_lines=[]), config)


def run_layout_pipeline_with_debug(pipeline_input: PipelineInput, options: DebugOptions) -> DebugPipelineResult:
    """
    Run the pipeline up to options.step, recording a snapshot after every step.

    Steps 1-4 return an empty result, step 5 a boxes-only result. Step 6 or a
    phase marker stops before routing.
    """
    config = pipeline_input.config
    target = options.step
    snapshots = []

    selection = _select(pipeline_input)
    snapshots.append(create_snapshot(1, config, selection=selection))
    if target == 1 or selection.is_empty:
        return DebugPipelineResult(result=empty_result(), snapshots=snapshots)

    model = build_layout_model(pipeline_input.data, selection)
    snapshots.append(create_snapshot(2, config, selection=selection, model=model))
    if target == 2:
        return DebugPipelineResult(result=empty_result(), snapshots=snapshots)

    gen_model = assign_generations(model, pipeline_input.focus_person_id)
    snapshots.append(create_snapshot(3, config, selection=selection, model=model, gen_model=gen_model))
    if target == 3:
        return DebugPipelineResult(result=empty_result(), snapshots=snapshots)

    measured = measure_subtrees(gen_model, config, pipeline_input.focus_person_id)
    stages = dict(selection=selection, model=model, gen_model=gen_model, measured=measured)
    snapshots.append(create_snapshot(4, config, **stages))
    if target == 4:
        return DebugPipelineResult(result=empty_result(), snapshots=snapshots)

    placed = place_x(measured, config)
    snapshots.append(create_snapshot(5, config, placed=placed, **stages))
    if target == 5:
        result = _unrouted_result(ConstrainedModel(placed=placed, iterations=0, final_max_violation=0.0), config)
        result.diagnostics.phases_run = None
        result.diagnostics.routed_edges = None
        return DebugPipelineResult(result=result, snapshots=snapshots)

    constrained = apply_constraints(
        placed,
        config,
        max_iterations=pipeline_input.max_iterations,
        tolerance=pipeline_input.tolerance,
        stop_after_phase=options.phase,
    )
    stages.update(placed=constrained.placed, constrained=constrained)
    snapshots.append(create_snapshot(6, config, **stages))
    if target == 6 or options.phase is not None:
        result = _unrouted_result(constrained, config)
        result.diagnostics.routed_edges = False
        result.diagnostics.phases_run = phases_for(options.phase)
        return DebugPipelineResult(result=result, snapshots=snapshots)

    routed = route_edges(constrained, config)
    stages.update(routed=routed)
    snapshots.append(create_snapshot(7, config, **stages))
    result = emit_layout_result(routed, config)
    if target == 7:
        return DebugPipelineResult(result=result, snapshots=snapshots)

    _validate(result, config, gen_model)
    snapshots.append(create_snapshot(8, config, result=result, **stages))
    return DebugPipelineResult(result=result, snapshots=snapshots)


# ==================== LEGACY ENGINE ====================


@dataclass
class SelectionPolicy:
    ancestor_depth: int = 2
    descendant_depth: int = 2
    include_aunts_uncles: bool = True
    include_cousins: bool = True


@dataclass
class LayoutRequest:
    data: StromData
    focus_person_id: PersonId
    policy: SelectionPolicy = field(default_factory=SelectionPolicy)
    config: LayoutConfig = DEFAULT_LAYOUT_CONFIG


class StromLayoutEngine:
    """Request-based wrapper around run_layout_pipeline."""

    def layout(self, request: LayoutRequest) -> LayoutResult:
        return run_layout_pipeline(
            PipelineInput(
                data=request.data,
                focus_person_id=request.focus_person_id,
                config=request.config,
                ancestor_depth=request.policy.ancestor_depth,
                descendant_depth=request.policy.descendant_depth,
                # only the focus person's own ancestors
                include_spouse_ancestors=False,
                include_parent_siblings=request.policy.include_aunts_uncles,
                include_parent_sibling_descendants=request.policy.include_cousins,
            )
        )


def compute_layout(engine: StromLayoutEngine, request: LayoutRequest) -> LayoutResult:
    return engine.layout(request)
