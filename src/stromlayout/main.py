"""
1) Load the family tree data from a JSON file.
2) Select the visible subgraph around the focus person.
3) Run the layout pipeline.
4) Report diagnostics and validation problems.
5) Write the result as JSON and optionally draw it.
"""

import argparse
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Sequence

from stromlayout.build_model import build_layout_model
from stromlayout.config import DEFAULT_MAX_ITERATIONS, DEFAULT_TOLERANCE
from stromlayout.layout_types import LayoutResult
from stromlayout.models import load_strom_data
from stromlayout.pipeline import PipelineInput, run_layout_pipeline
from stromlayout.plotting import plot_layout, write_dot
from stromlayout.subgraph import select_subgraph

MAX_ERRORS_SHOWN = 10


def _configure_logging(level: str) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s:%(name)s:%(message)s",
    )


def layout_result_to_dict(result: LayoutResult) -> dict:
    """JSON-ready form of a layout result."""
    return {
        "positions": {person_id: {"x": pos.x, "y": pos.y} for person_id, pos in result.positions.items()},
        "connections": [asdict(c) for c in result.connections],
        "spouseLines": [asdict(s) for s in result.spouse_lines],
        "diagnostics": asdict(result.diagnostics),
        "blockBounds": {block_id: list(bounds) for block_id, bounds in result.block_bounds.items()},
    }


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Compute a family tree layout around a focus person")
    parser.add_argument("data", type=Path, help="Path to the family tree JSON file")
    parser.add_argument("focus_id", help="Id of the person the diagram is centered on")
    parser.add_argument("--ancestor-depth", type=int, default=2, help="Generations up (default: 2)")
    parser.add_argument("--descendant-depth", type=int, default=2, help="Generations down (default: 2)")
    parser.add_argument("--no-spouse-ancestors", action="store_true", help="Skip ancestors of the focus's partners")
    parser.add_argument("--no-aunts-uncles", action="store_true", help="Skip siblings of the focus's parents")
    parser.add_argument("--no-cousins", action="store_true", help="Skip children of aunts and uncles")
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=DEFAULT_MAX_ITERATIONS,
        help=f"Constraint solver iteration budget for both phases (default: {DEFAULT_MAX_ITERATIONS})",
    )
    parser.add_argument(
        "--tolerance",
        type=float,
        default=DEFAULT_TOLERANCE,
        help=f"Constraint solver tolerance in pixels (default: {DEFAULT_TOLERANCE})",
    )
    parser.add_argument("--output", type=Path, help="Write the layout result as JSON")
    parser.add_argument("--plot", type=Path, help="Draw the layout with matplotlib (png, svg, pdf)")
    parser.add_argument("--dot", type=Path, help="Write a Graphviz graph with pinned positions")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.log_level)

    print(f"Loading family tree: {args.data}")
    data = load_strom_data(args.data)
    print(f"  Found {len(data.persons)} persons and {len(data.partnerships)} partnerships")

    if args.focus_id not in data.persons:
        print(f"Person ID {args.focus_id} not found")
        return 1

    pipeline_input = PipelineInput(
        data=data,
        focus_person_id=args.focus_id,
        ancestor_depth=args.ancestor_depth,
        descendant_depth=args.descendant_depth,
        include_spouse_ancestors=not args.no_spouse_ancestors,
        include_parent_siblings=not args.no_aunts_uncles,
        include_parent_sibling_descendants=not args.no_cousins,
        max_iterations=args.max_iterations,
        tolerance=args.tolerance,
    )

    print(f"Computing layout around {args.focus_id}...")
    result = run_layout_pipeline(pipeline_input)
    diagnostics = result.diagnostics
    print(
        f"  Placed {diagnostics.total_persons} persons in {diagnostics.total_unions} unions, "
        f"generations {diagnostics.generation_range[0]}..{diagnostics.generation_range[1]}"
    )
    print(
        f"  Solver: {diagnostics.iterations} iterations, "
        f"max violation {diagnostics.final_max_violation:.2f}"
    )

    print("Validating layout...")
    if diagnostics.errors:
        print(f"  Found {len(diagnostics.errors)} validation errors:")
        for error in diagnostics.errors[:MAX_ERRORS_SHOWN]:
            print(f"    - {error}")
        if len(diagnostics.errors) > MAX_ERRORS_SHOWN:
            print(f"    ... and {len(diagnostics.errors) - MAX_ERRORS_SHOWN} more")
    else:
        print("  No validation issues found")

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(json.dumps(layout_result_to_dict(result), indent=2), encoding="utf-8")
        print(f"Layout written to {args.output}")

    if args.plot:
        plot_layout(result, data, pipeline_input.config, args.plot)

    if args.dot:
        selection = select_subgraph(
            data,
            args.focus_id,
            args.ancestor_depth,
            args.descendant_depth,
            include_spouse_ancestors=pipeline_input.include_spouse_ancestors,
            include_parent_siblings=pipeline_input.include_parent_siblings,
            include_parent_sibling_descendants=pipeline_input.include_parent_sibling_descendants,
        )
        write_dot(result, build_layout_model(data, selection), pipeline_input.config, args.dot)

    print("Done!")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
