"""Named jet definitions for the standard large-radius grooming study.

The builders return frozen `JetDefinition` values that can be passed
directly to the clusterer and groomers instead of assembling parameter
blocks by hand.
"""

from __future__ import annotations

from dataclasses import replace

from .models import (
    BottomUpSoftDropParameters,
    JetAlgorithm,
    JetDefinition,
    TrimmingParameters,
)

BOTTOM_UP_ZCUT = 0.05
TIGHT_BOTTOM_UP_ZCUT = 0.1
TRIMMING_PT_FRACTION = 0.05

_TRIMMING_SUBJETS = JetDefinition(algorithm=JetAlgorithm.KT, radius=0.2)


def make_trimming_parameters() -> TrimmingParameters:
    """Return kt R=0.2 subjets with a 5% pt-fraction threshold."""
    return TrimmingParameters(
        sub_radius=_TRIMMING_SUBJETS.radius,
        pt_fraction=TRIMMING_PT_FRACTION,
        sub_algorithm=_TRIMMING_SUBJETS.algorithm,
    )


_ANTIKT10 = JetDefinition(
    algorithm=JetAlgorithm.ANTI_KT,
    radius=1.0,
    trimming=make_trimming_parameters(),
)
_BOTTOM_UP = replace(
    _ANTIKT10,
    bottom_up_soft_drop=BottomUpSoftDropParameters(zcut=BOTTOM_UP_ZCUT, beta=0.0),
)
_TIGHT_BOTTOM_UP = replace(
    _ANTIKT10,
    bottom_up_soft_drop=BottomUpSoftDropParameters(zcut=TIGHT_BOTTOM_UP_ZCUT, beta=0.0),
)

_NAME_TO_DEFINITION: dict[str, JetDefinition] = {
    "antikt10": _ANTIKT10,
    "akt10": _ANTIKT10,
    "default": _ANTIKT10,
    "kt02": _TRIMMING_SUBJETS,
    "trimming_subjets": _TRIMMING_SUBJETS,
    "bottom_up": _BOTTOM_UP,
    "busd": _BOTTOM_UP,
    "tight_bottom_up": _TIGHT_BOTTOM_UP,
    "busd_tight": _TIGHT_BOTTOM_UP,
}


def make_antikt10() -> JetDefinition:
    """Return anti-kt R=1.0 with the default grooming parameters."""
    return _ANTIKT10


def make_trimming_subjets() -> JetDefinition:
    """Return the kt R=0.2 definition used to form trimming subjets."""
    return _TRIMMING_SUBJETS


def make_bottom_up_definition() -> JetDefinition:
    """Return anti-kt R=1.0 with Bottom-Up Soft Drop at zcut=0.05."""
    return _BOTTOM_UP


def make_tight_bottom_up_definition() -> JetDefinition:
    """Return anti-kt R=1.0 with the tighter Bottom-Up Soft Drop (zcut=0.1)."""
    return _TIGHT_BOTTOM_UP


def jet_definition_from_name(name: str) -> JetDefinition:
    """Resolve a preset name (e.g. `antikt10`, `busd_tight`) into a definition."""
    key = name.strip().lower().replace("-", "_")
    try:
        return _NAME_TO_DEFINITION[key]
    except KeyError as exc:
        supported = ", ".join(sorted(_NAME_TO_DEFINITION))
        raise ValueError(
            f"Unknown jet definition preset '{name}'. Supported names: {supported}"
        ) from exc
