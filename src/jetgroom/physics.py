"""Kinematic helpers shared by clustering, grooming and substructure code."""

from __future__ import annotations

import logging
import math
from typing import Iterable, Sequence

from .models import ZERO_VECTOR, FourVector, Jet, wrap_delta_phi

logger = logging.getLogger(__name__)


def sum_four_vectors(vectors: Iterable[FourVector]) -> FourVector:
    """Sum an iterable of four-vectors."""
    total = ZERO_VECTOR
    for vec in vectors:
        total = total + vec
    return total


def sorted_by_pt(jets: Iterable[Jet]) -> list[Jet]:
    """Return jets ordered by decreasing transverse momentum."""
    return sorted(jets, key=lambda j: j.vector.pt2, reverse=True)


def normalized_phi(phi: float) -> float:
    """Map an azimuth into `[0, 2pi)`."""
    out = math.fmod(phi, 2.0 * math.pi)
    if out < 0.0:
        out += 2.0 * math.pi
    if out >= 2.0 * math.pi:
        out = 0.0
    return out


def delta_r2(rap1: float, phi1: float, rap2: float, phi2: float) -> float:
    """Squared distance between two (rapidity, azimuth) points."""
    dy = rap1 - rap2
    dphi = wrap_delta_phi(phi1 - phi2)
    return dy * dy + dphi * dphi


def kt_weight(pt2: float, exponent: int) -> float:
    """Return `kt^(2p)` with `kt^-2 = inf` for a vanishing transverse momentum."""
    if exponent == 0:
        return 1.0
    if pt2 == 0.0:
        return math.inf if exponent < 0 else 0.0
    return pt2**exponent


def pair_distance(weight_a: float, weight_b: float, dr2: float, radius2: float) -> float:
    """Generalized-kt pair distance `min(w_a, w_b) * dR^2 / R^2`.

    Collinear pairs sit at distance zero even when a weight is infinite.
    """
    if dr2 == 0.0:
        return 0.0
    return min(weight_a, weight_b) * dr2 / radius2


def momentum_fraction(a: FourVector, b: FourVector) -> float:
    """Softer-branch fraction `min(pt_a, pt_b) / (pt_a + pt_b)`."""
    pt_a = a.pt
    pt_b = b.pt
    total = pt_a + pt_b
    if total <= 0.0:
        return 0.0
    return min(pt_a, pt_b) / total


def soft_drop_threshold(zcut: float, beta: float, delta_r: float, r0: float) -> float:
    """Right-hand side `zcut * (dR / R0)^beta` of the Soft Drop condition."""
    if delta_r == 0.0:
        if beta > 0.0:
            return 0.0
        if beta < 0.0:
            return math.inf
        return zcut
    return zcut * (delta_r / r0) ** beta


def passes_soft_drop(a: FourVector, b: FourVector, zcut: float, beta: float, r0: float) -> bool:
    """Test the Soft Drop condition for the splitting into `a` and `b`."""
    z = momentum_fraction(a, b)
    return z > soft_drop_threshold(zcut, beta, a.delta_r(b), r0)


def harder_softer(a_id: int, a: FourVector, b_id: int, b: FourVector) -> tuple[int, int]:
    """Order two node ids by pt (ties keep the lower id as harder)."""
    if b.pt2 > a.pt2 or (b.pt2 == a.pt2 and b_id < a_id):
        return b_id, a_id
    return a_id, b_id


def preselect_particles(
    particles: Sequence[FourVector],
) -> tuple[list[FourVector], list[int], list[int]]:
    """Split inputs into accepted vectors, their indices, and rejected indices.

    Non-finite or negative-energy vectors are rejected one by one; the event
    itself is never aborted.
    """
    accepted: list[FourVector] = []
    accepted_indices: list[int] = []
    rejected: list[int] = []
    for idx, vec in enumerate(particles):
        if vec.is_physical():
            accepted.append(vec)
            accepted_indices.append(idx)
        else:
            logger.warning("Skipping malformed particle %d: %r", idx, vec)
            rejected.append(idx)
    return accepted, accepted_indices, rejected
