"""Jet substructure observables: energy correlation functions and N-subjettiness.

Angles are distances in the (rapidity, azimuth) plane. Observables that are
undefined for a degenerate jet are returned as `None`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .models import FourVector, Jet

AXES_SCHEMES = ("wta_kt", "kt")


def _kinematics(constituents: Sequence[FourVector]) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    pt = np.array([c.pt for c in constituents], dtype=float)
    rap = np.array([c.rapidity for c in constituents], dtype=float)
    phi = np.array([c.phi for c in constituents], dtype=float)
    return pt, rap, phi


def _wrap(dphi: np.ndarray) -> np.ndarray:
    return np.remainder(dphi + np.pi, 2.0 * np.pi) - np.pi


def _pairwise_dr2(rap: np.ndarray, phi: np.ndarray) -> np.ndarray:
    dy = rap[:, None] - rap[None, :]
    dphi = _wrap(phi[:, None] - phi[None, :])
    return dy * dy + dphi * dphi


def energy_correlation_functions(
    constituents: Sequence[FourVector],
    beta: float = 1.0,
) -> tuple[float, float, float]:
    """Return `(ECF1, ECF2, ECF3)` with angular exponent `beta`.

    ECF3 is evaluated as `trace(G^3) / 6` with
    `G_ij = theta_ij^beta sqrt(pt_i pt_j)` and a zero diagonal, which sums
    each unordered triple of distinct constituents exactly once.
    """
    if not constituents:
        return 0.0, 0.0, 0.0
    pt, rap, phi = _kinematics(constituents)
    angles = np.sqrt(_pairwise_dr2(rap, phi)) ** beta
    np.fill_diagonal(angles, 0.0)
    ecf1 = float(pt.sum())
    ecf2 = 0.5 * float(pt @ angles @ pt)
    root_pt = np.sqrt(pt)
    weighted = angles * np.outer(root_pt, root_pt)
    ecf3 = float(np.trace(weighted @ weighted @ weighted)) / 6.0
    return ecf1, ecf2, ecf3


def d2(constituents: Sequence[FourVector], beta: float = 1.0) -> float | None:
    """D2 = ECF3 ECF1^3 / ECF2^3, or None when ECF2 vanishes."""
    ecf1, ecf2, ecf3 = energy_correlation_functions(constituents, beta)
    if ecf2 == 0.0:
        return None
    return ecf3 * ecf1**3 / ecf2**3


def exclusive_axes(
    constituents: Sequence[FourVector],
    n_axes: int,
    scheme: str = "wta_kt",
) -> tuple[np.ndarray, np.ndarray]:
    """Find `n_axes` axes by exclusive kt reclustering of the constituents.

    Returns `(rapidities, azimuths)`. With the `wta_kt` scheme a merged
    object follows the direction of its harder input and carries the
    scalar pt sum; `kt` adds four-momenta.
    """
    if scheme not in AXES_SCHEMES:
        raise ValueError(f"Unknown axes scheme '{scheme}'. Use one of {', '.join(AXES_SCHEMES)}.")
    if n_axes < 1:
        raise ValueError(f"n_axes must be at least 1, got {n_axes}.")
    pt, rap, phi = _kinematics(constituents)
    momenta = np.array([[c.px, c.py, c.pz, c.e] for c in constituents], dtype=float).reshape(-1, 4)
    while len(pt) > n_axes:
        kt2 = pt * pt
        dist = np.minimum(kt2[:, None], kt2[None, :]) * _pairwise_dr2(rap, phi)
        dist[np.tril_indices(len(pt))] = np.inf
        i, j = np.unravel_index(int(np.argmin(dist)), dist.shape)
        if scheme == "wta_kt":
            harder = i if pt[i] >= pt[j] else j
            pt[i] = pt[i] + pt[j]
            rap[i] = rap[harder]
            phi[i] = phi[harder]
        else:
            merged = FourVector(*(momenta[i] + momenta[j]))
            momenta[i] = (merged.px, merged.py, merged.pz, merged.e)
            pt[i] = merged.pt
            rap[i] = merged.rapidity
            phi[i] = merged.phi
        pt = np.delete(pt, j)
        rap = np.delete(rap, j)
        phi = np.delete(phi, j)
        momenta = np.delete(momenta, j, axis=0)
    return rap, phi


def nsubjettiness(
    constituents: Sequence[FourVector],
    n_axes: int,
    radius: float,
    beta: float = 1.0,
    axes: str = "wta_kt",
) -> float:
    """Normalized tau_N = sum pt_i min_k dR_ik^beta / sum pt_i R^beta."""
    if radius <= 0.0:
        raise ValueError(f"radius must be positive, got {radius}.")
    if len(constituents) <= n_axes:
        return 0.0
    pt, rap, phi = _kinematics(constituents)
    norm = float(pt.sum()) * radius**beta
    if norm == 0.0:
        return 0.0
    axis_rap, axis_phi = exclusive_axes(constituents, n_axes, axes)
    dy = rap[:, None] - axis_rap[None, :]
    dphi = _wrap(phi[:, None] - axis_phi[None, :])
    nearest = np.sqrt((dy * dy + dphi * dphi).min(axis=1))
    return float((pt * nearest**beta).sum()) / norm


def tau32(
    constituents: Sequence[FourVector],
    radius: float,
    beta: float = 1.0,
    axes: str = "wta_kt",
) -> float | None:
    """tau3 / tau2, or None when tau2 vanishes."""
    tau2 = nsubjettiness(constituents, 2, radius, beta, axes)
    if tau2 == 0.0:
        return None
    return nsubjettiness(constituents, 3, radius, beta, axes) / tau2


@dataclass(frozen=True)
class JetSubstructure:
    d2: float | None
    tau2: float
    tau3: float
    tau32: float | None


def compute_substructure(
    jet: Jet,
    radius: float,
    beta: float = 1.0,
    axes: str = "wta_kt",
) -> JetSubstructure:
    """Evaluate D2 and the N-subjettiness ratio on a (groomed) jet."""
    constituents = jet.constituents
    tau2 = nsubjettiness(constituents, 2, radius, beta, axes)
    tau3 = nsubjettiness(constituents, 3, radius, beta, axes)
    return JetSubstructure(
        d2=d2(constituents, beta),
        tau2=tau2,
        tau3=tau3,
        tau32=tau3 / tau2 if tau2 != 0.0 else None,
    )
