"""Example custom callback: summarize leading-jet masses per grooming variant."""

from __future__ import annotations

import json
from collections import defaultdict
from pathlib import Path


def process(rows, context):
    """Average the leading-jet mass of each variant and save it next to the table."""
    masses = defaultdict(list)
    for row in rows:
        if row.jet_index == 0:
            masses[row.variant].append((row.mass, row.weight))
    payload = {
        "step": context["step"],
        "variants": {
            name: {
                "n_jets": len(entries),
                "mean_mass": sum(m * w for m, w in entries) / sum(w for _, w in entries),
            }
            for name, entries in masses.items()
            if sum(w for _, w in entries) > 0.0
        },
    }
    out = Path(context["output_path"]).with_name("leading_jet_summary.json")
    out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    print(f"Wrote {out}")
