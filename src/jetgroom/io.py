"""Input/output helpers for JSON event files, jet definitions and observable tables."""

from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from typing import Any, Sequence

from .models import (
    BottomUpSoftDropParameters,
    EventInput,
    FourVector,
    JetAlgorithm,
    JetDefinition,
    PruningParameters,
    RecursiveSoftDropParameters,
    SoftDropParameters,
    TrimmingParameters,
)
from .pipeline import EventResult, JetObservables
from .presets import jet_definition_from_name

PARTICLE_FORMATS = ("ptetaphim", "pxpypze")

_PARAMETER_BLOCKS: dict[str, type] = {
    "trimming": TrimmingParameters,
    "pruning": PruningParameters,
    "soft_drop": SoftDropParameters,
    "recursive_soft_drop": RecursiveSoftDropParameters,
    "bottom_up_soft_drop": BottomUpSoftDropParameters,
}
_ALGORITHM_FIELDS = ("sub_algorithm", "recluster")


def load_events_json(path: str | Path) -> list[EventInput]:
    """Load multi-event input JSON into `EventInput` objects.

    Expected shape:
    {
      "format": "ptetaphim",
      "events": [
        {"event_id": "...", "weight": 1.0, "particles": [...]},
        ...
      ]
    }

    A particle is either an object with `pt/eta/phi/m` (`m` optional) or
    `px/py/pz/e` keys, or a 4-element list read according to `format`
    (event-level `format` overrides the top-level one).
    """
    data = _load_json(path)
    events_data = data.get("events")
    if not isinstance(events_data, list):
        raise ValueError("Events JSON must contain a list under key 'events'.")
    default_format = _parse_format(data.get("format", "ptetaphim"), context=f"{path}")
    out: list[EventInput] = []
    for idx, event in enumerate(events_data):
        if not isinstance(event, dict):
            raise ValueError(f"Event entry at index {idx} must be an object.")
        event_id = str(event.get("event_id", f"evt{idx}"))
        particles_data = event.get("particles")
        if not isinstance(particles_data, list):
            raise ValueError(f"Event '{event_id}' must contain a list under key 'particles'.")
        context = f"event '{event_id}'"
        fmt = _parse_format(event.get("format", default_format), context=context)
        particles = tuple(
            _parse_particle_item(item=item, idx=pidx, context=context, fmt=fmt)
            for pidx, item in enumerate(particles_data)
        )
        out.append(
            EventInput(
                event_id=event_id,
                particles=particles,
                weight=float(event.get("weight", 1.0)),
            )
        )
    return out


def load_jet_definition_json(path: str | Path) -> JetDefinition:
    """Load a jet definition from JSON.

    Either a full object (`algorithm`, `radius` and optional grooming
    blocks), or `{"preset": "<name>", ...}` where the remaining keys
    override the preset.
    """
    data = _load_json(path)
    return parse_jet_definition(data, context=f"{path}")


def parse_jet_definition(data: dict[str, Any], context: str = "jet definition") -> JetDefinition:
    """Build a `JetDefinition` from a decoded JSON object."""
    known = {"preset", "algorithm", "radius", *_PARAMETER_BLOCKS}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown jet definition keys in {context}: {', '.join(unknown)}")
    base = JetDefinition()
    if "preset" in data:
        base = jet_definition_from_name(str(data["preset"]))
    changes: dict[str, Any] = {}
    if "algorithm" in data:
        changes["algorithm"] = JetAlgorithm.from_name(str(data["algorithm"]))
    if "radius" in data:
        changes["radius"] = float(data["radius"])
    for key, block_cls in _PARAMETER_BLOCKS.items():
        if key in data:
            changes[key] = _parse_parameter_block(
                block_cls, data[key], getattr(base, key), context=f"{context} block '{key}'"
            )
    return dataclasses.replace(base, **changes)


def write_observables_table(path: str | Path, rows: Sequence[JetObservables]) -> None:
    """Write jet observables into Parquet/CSV/Pickle table."""
    pd = _require_pandas()
    columns = [f.name for f in dataclasses.fields(JetObservables)]
    df = pd.DataFrame(_observable_rows(rows), columns=columns)
    out = Path(path)
    suffix = out.suffix.lower()
    if suffix == ".parquet":
        df.to_parquet(out, index=False)
    elif suffix in (".pkl", ".pickle"):
        df.to_pickle(out)
    elif suffix == ".csv":
        df.to_csv(out, index=False)
    else:
        raise ValueError(
            f"Unsupported output format '{suffix}'. Use .parquet, .csv, or .pkl"
        )


def collect_rows(results: Sequence[EventResult]) -> list[JetObservables]:
    """Concatenate the per-jet rows of processed events."""
    return [row for result in results for row in result.rows]


def _observable_rows(rows: Sequence[JetObservables]) -> list[dict[str, Any]]:
    """Flatten observables into DataFrame-ready row dictionaries."""
    return [dataclasses.asdict(row) for row in rows]


def _require_pandas():
    """Import pandas lazily and provide a clear installation hint on failure."""
    try:
        import pandas as pd  # type: ignore
    except ModuleNotFoundError as exc:
        raise ModuleNotFoundError(
            "pandas is required to write output tables. Install pandas and pyarrow."
        ) from exc
    return pd


def _parse_format(value: Any, context: str) -> str:
    fmt = str(value).strip().lower()
    if fmt not in PARTICLE_FORMATS:
        raise ValueError(
            f"Unsupported particle format '{value}' in {context}. Use one of {', '.join(PARTICLE_FORMATS)}."
        )
    return fmt


def _parse_particle_item(item: Any, idx: int, context: str, fmt: str) -> FourVector:
    """Parse one particle object or 4-list into a `FourVector`."""
    if isinstance(item, list):
        if len(item) != 4:
            raise ValueError(f"Particle at index {idx} in {context} must have 4 components.")
        a, b, c, d = (float(x) for x in item)
        if fmt == "pxpypze":
            return FourVector(a, b, c, d)
        return FourVector.from_pt_eta_phi_m(a, b, c, d)
    if not isinstance(item, dict):
        raise ValueError(f"Particle at index {idx} in {context} must be an object or a list.")
    if "pt" in item:
        try:
            return FourVector.from_pt_eta_phi_m(
                float(item["pt"]),
                float(item["eta"]),
                float(item["phi"]),
                float(item.get("m", item.get("mass", 0.0))),
            )
        except KeyError as exc:
            raise ValueError(f"Particle at index {idx} in {context} is missing {exc}.") from exc
    if "px" in item:
        try:
            return FourVector(
                float(item["px"]),
                float(item["py"]),
                float(item["pz"]),
                float(item["e"]),
            )
        except KeyError as exc:
            raise ValueError(f"Particle at index {idx} in {context} is missing {exc}.") from exc
    raise ValueError(
        f"Particle at index {idx} in {context} must define pt/eta/phi/m or px/py/pz/e."
    )


def _parse_parameter_block(block_cls: type, item: Any, base: Any, context: str) -> Any:
    """Override fields of a grooming parameter block from a JSON object."""
    if not isinstance(item, dict):
        raise ValueError(f"{context} must be an object.")
    allowed = {f.name for f in dataclasses.fields(block_cls)}
    unknown = sorted(set(item) - allowed)
    if unknown:
        raise ValueError(f"Unknown keys in {context}: {', '.join(unknown)}")
    changes: dict[str, Any] = {}
    for key, value in item.items():
        if key in _ALGORITHM_FIELDS:
            changes[key] = None if value is None else JetAlgorithm.from_name(str(value))
        elif key == "n_splittings":
            changes[key] = int(value)
        elif key == "require_both":
            changes[key] = bool(value)
        elif key == "r0":
            changes[key] = None if value is None else float(value)
        else:
            changes[key] = float(value)
    return dataclasses.replace(base, **changes)


def _load_json(path: str | Path) -> dict[str, Any]:
    """Read and validate a JSON object document from disk."""
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"JSON document at {path} must be an object.")
    return data
