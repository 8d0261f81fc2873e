"""Deterministic layout engine for family tree diagrams."""

from stromlayout.config import DEFAULT_LAYOUT_CONFIG, LayoutConfig
from stromlayout.debug import DebugOptions, DebugPipelineResult
from stromlayout.layout_types import LayoutResult
from stromlayout.models import Partnership, Person, StromData, load_strom_data
from stromlayout.pipeline import (
    LayoutRequest,
    PipelineInput,
    SelectionPolicy,
    StromLayoutEngine,
    compute_layout,
    run_layout_pipeline,
    run_layout_pipeline_with_debug,
)
from stromlayout.validation import validate_layout

__all__ = [
    "DEFAULT_LAYOUT_CONFIG",
    "DebugOptions",
    "DebugPipelineResult",
    "LayoutConfig",
    "LayoutRequest",
    "LayoutResult",
    "Partnership",
    "Person",
    "PipelineInput",
    "SelectionPolicy",
    "StromData",
    "StromLayoutEngine",
    "compute_layout",
    "load_strom_data",
    "run_layout_pipeline",
    "run_layout_pipeline_with_debug",
    "validate_layout",
]
