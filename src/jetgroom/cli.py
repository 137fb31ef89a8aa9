"""Command-line interface for clustering, grooming and measuring jets in event files."""

from __future__ import annotations

import argparse
import dataclasses
import importlib.util
import logging
from pathlib import Path
from typing import Any

from .clustering import STRATEGIES
from .io import collect_rows, load_events_json, load_jet_definition_json, write_observables_table
from .models import JetAlgorithm, JetDefinition, JetSelection
from .pipeline import STEPS, JetObservables, JetProcessor, ObservableTable
from .presets import jet_definition_from_name

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Define and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="jet-groomer",
        description="Cluster event particles into jets, groom them and compute substructure observables.",
    )
    parser.add_argument("--events", required=True, help="Input JSON with key 'events'.")
    parser.add_argument(
        "--out",
        required=True,
        help="Output table file for jet observables (.parquet, .csv, .pkl).",
    )
    parser.add_argument(
        "--step",
        type=int,
        choices=list(STEPS),
        default=0,
        help="1: cluster and trim; 2: add the other groomers; 3: add substructure; 0: everything.",
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--definition", default=None, help="Jet definition JSON file.")
    source.add_argument("--preset", default=None, help="Named jet definition (e.g. antikt10).")
    parser.add_argument(
        "--algorithm",
        default=None,
        help="Clustering algorithm override (kt, ca, antikt).",
    )
    parser.add_argument("--radius", type=float, default=None, help="Jet radius override.")
    parser.add_argument(
        "--strategy",
        choices=list(STRATEGIES),
        default="auto",
        help="Nearest-neighbour search strategy of the clustering engine.",
    )
    parser.add_argument("--min-jet-pt", type=float, default=None, help="Jet selection: minimum pT.")
    parser.add_argument("--max-jet-eta", type=float, default=None, help="Jet selection: maximum |eta|.")
    parser.add_argument(
        "--leading-only",
        action="store_true",
        help="Only groom and measure the leading selected jet of each event.",
    )
    parser.add_argument(
        "--mass-min-pt",
        type=float,
        default=None,
        help="Only book mass and substructure summaries for jets above this pT.",
    )
    parser.add_argument(
        "--substructure-beta",
        type=float,
        default=1.0,
        help="Angular exponent for D2 and N-subjettiness.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of worker processes (default: run in-process).",
    )
    parser.add_argument(
        "--custom-script",
        default=None,
        help="Path to Python file with process(rows, context) function.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return parser


def resolve_definition(args: argparse.Namespace) -> JetDefinition:
    """Combine the definition source and the command-line overrides."""
    if args.definition:
        definition = load_jet_definition_json(args.definition)
    elif args.preset:
        definition = jet_definition_from_name(args.preset)
    else:
        definition = JetDefinition()
    changes: dict[str, Any] = {}
    if args.algorithm is not None:
        changes["algorithm"] = JetAlgorithm.from_name(args.algorithm)
    if args.radius is not None:
        changes["radius"] = args.radius
    return dataclasses.replace(definition, **changes) if changes else definition


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint: load events, run the jet chain, write table, optional custom hook."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    definition = resolve_definition(args)
    selection = JetSelection(
        min_pt=args.min_jet_pt,
        max_abs_eta=args.max_jet_eta,
        leading_only=args.leading_only,
    )
    events = load_events_json(args.events)
    logger.info(
        "Loaded %d events from %s (%s, R=%g, step %d)",
        len(events),
        args.events,
        definition.algorithm.value,
        definition.radius,
        args.step,
    )

    summary = ObservableTable()
    processor = JetProcessor(
        definition=definition,
        selection=selection,
        step=args.step,
        substructure_beta=args.substructure_beta,
        mass_min_pt=args.mass_min_pt,
        strategy=args.strategy,
        sink=summary,
    )
    results = processor.process_events(events, max_workers=args.workers)
    rows = collect_rows(results)
    write_observables_table(args.out, rows)
    logger.info("Wrote %d jet rows to %s", len(rows), args.out)

    if args.custom_script:
        run_custom_script(
            script_path=args.custom_script,
            rows=rows,
            context={
                "events_path": args.events,
                "definition": definition,
                "selection": selection,
                "step": args.step,
                "summary": summary,
                "output_path": args.out,
            },
        )
    return 0


def run_custom_script(
    script_path: str, rows: list[JetObservables], context: dict[str, Any]
) -> None:
    """Execute user-supplied post-processing callback `process(rows, context)`."""
    module = _load_module(script_path)
    process = getattr(module, "process", None)
    if process is None or not callable(process):
        raise ValueError(
            f"Custom script {script_path} must define callable process(rows, context)."
        )
    process(rows, context)


def _load_module(script_path: str):
    """Import a Python module from an arbitrary file path."""
    path = Path(script_path)
    spec = importlib.util.spec_from_file_location(path.stem, path)
    if spec is None or spec.loader is None:
        raise ValueError(f"Cannot import custom script: {script_path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


if __name__ == "__main__":
    raise SystemExit(main())
