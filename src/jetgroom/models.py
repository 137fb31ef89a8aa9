"""Core data models used by the jet clustering and grooming engine.

This module defines:
- the immutable kinematic unit (`FourVector`)
- the append-only clustering record (`ClusterNode`, `MergeHistory`)
- clustering outputs (`Jet`, `ClusteringResult`)
- configuration value objects (`JetAlgorithm`, `JetDefinition` and the
  per-groomer parameter blocks)
- event containers and pipeline controls (`EventInput`, `JetSelection`).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Sequence

MAX_RAPIDITY = 1e5
TWO_PI = 2.0 * math.pi


@dataclass(frozen=True)
class FourVector:
    """Energy-momentum 4-vector with derived kinematics and addition."""

    px: float
    py: float
    pz: float
    e: float

    @classmethod
    def from_pt_eta_phi_m(cls, pt: float, eta: float, phi: float, m: float) -> "FourVector":
        """Build a vector from `(pt, eta, phi, m)` (negative m is treated as -m^2)."""
        px = pt * math.cos(phi)
        py = pt * math.sin(phi)
        pz = pt * math.sinh(eta)
        p2 = px * px + py * py + pz * pz
        if m >= 0.0:
            energy = math.sqrt(p2 + m * m)
        else:
            energy = math.sqrt(max(p2 - m * m, 0.0))
        return cls(px=px, py=py, pz=pz, e=energy)

    def __add__(self, other: "FourVector") -> "FourVector":
        """Component-wise 4-vector addition (E-scheme recombination)."""
        return FourVector(
            self.px + other.px,
            self.py + other.py,
            self.pz + other.pz,
            self.e + other.e,
        )

    @property
    def pt2(self) -> float:
        """Squared transverse momentum."""
        return self.px * self.px + self.py * self.py

    @property
    def pt(self) -> float:
        """Transverse momentum."""
        return math.sqrt(self.pt2)

    @property
    def p2(self) -> float:
        """Squared 3-momentum magnitude."""
        return self.pt2 + self.pz * self.pz

    @property
    def mass2(self) -> float:
        """Invariant mass squared."""
        return self.e * self.e - self.p2

    @property
    def mass(self) -> float:
        """Invariant mass with signed handling for small negative mass2 values."""
        m2 = self.mass2
        return m2**0.5 if m2 >= 0.0 else -((-m2) ** 0.5)

    @property
    def phi(self) -> float:
        """Azimuth in `(-pi, pi]`, zero for a vector along the beam."""
        if self.px == 0.0 and self.py == 0.0:
            return 0.0
        return math.atan2(self.py, self.px)

    @property
    def eta(self) -> float:
        """Pseudorapidity."""
        p = math.sqrt(self.p2)
        if p == abs(self.pz):
            if self.pz == 0.0:
                return 0.0
            return MAX_RAPIDITY if self.pz > 0 else -MAX_RAPIDITY
        return 0.5 * math.log((p + self.pz) / (p - self.pz))

    @property
    def rapidity(self) -> float:
        """Rapidity `0.5 ln((E + pz)/(E - pz))`, clamped along the beam line."""
        effective_m2 = max(0.0, self.mass2)
        if self.pt2 + effective_m2 == 0.0:
            edge = MAX_RAPIDITY + abs(self.pz)
            return edge if self.pz >= 0.0 else -edge
        e_plus_pz = self.e + abs(self.pz)
        rap = 0.5 * math.log((self.pt2 + effective_m2) / (e_plus_pz * e_plus_pz))
        return -rap if self.pz > 0.0 else rap

    def delta_phi(self, other: "FourVector") -> float:
        """Signed azimuthal difference wrapped into `[-pi, pi]`."""
        return wrap_delta_phi(self.phi - other.phi)

    def delta_r2(self, other: "FourVector") -> float:
        """Squared angular distance in the (rapidity, azimuth) plane."""
        dy = self.rapidity - other.rapidity
        dphi = self.delta_phi(other)
        return dy * dy + dphi * dphi

    def delta_r(self, other: "FourVector") -> float:
        """Angular distance in the (rapidity, azimuth) plane."""
        return math.sqrt(self.delta_r2(other))

    def is_physical(self) -> bool:
        """True for finite components and non-negative energy."""
        components = (self.px, self.py, self.pz, self.e)
        return all(math.isfinite(c) for c in components) and self.e >= 0.0


ZERO_VECTOR = FourVector(0.0, 0.0, 0.0, 0.0)


def wrap_delta_phi(dphi: float) -> float:
    """Wrap an azimuthal difference into `[-pi, pi]`."""
    dphi = math.fmod(dphi, TWO_PI)
    if dphi > math.pi:
        dphi -= TWO_PI
    elif dphi < -math.pi:
        dphi += TWO_PI
    return dphi


@dataclass(frozen=True)
class ClusterNode:
    """One node of a merge history: an input particle or a binary merge."""

    node_id: int
    vector: FourVector
    children: tuple[int, int] | None = None
    input_index: int | None = None
    distance: float = 0.0  # d_ij of the merge, 0 for leaves

    @property
    def is_leaf(self) -> bool:
        """True for original input particles."""
        return self.children is None


class MergeHistory:
    """Append-only arena of cluster nodes for a single event.

    Nodes are addressed by integer id. A node may be consumed by at most one
    later merge, so the history is a forest of binary trees whose roots are
    the emitted jets (plus any node rejected during grooming).
    """

    def __init__(self) -> None:
        self._nodes: list[ClusterNode] = []
        self._consumed_by: list[int | None] = []
        self._jets: list[int] = []
        self._beam_distances: list[float] = []
        self._rejected: list[int] = []

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[ClusterNode]:
        return iter(self._nodes)

    def __getitem__(self, node_id: int) -> ClusterNode:
        return self._nodes[node_id]

    @property
    def jets(self) -> tuple[int, ...]:
        """Root node ids emitted as final jets, in emission order."""
        return tuple(self._jets)

    @property
    def beam_distances(self) -> tuple[float, ...]:
        """d_iB at which each root in `jets` was emitted."""
        return tuple(self._beam_distances)

    @property
    def rejected(self) -> tuple[int, ...]:
        """Node ids discarded as soft radiation, in rejection order."""
        return tuple(self._rejected)

    def add_leaf(self, vector: FourVector, input_index: int) -> int:
        """Register one input particle and return its node id."""
        node_id = len(self._nodes)
        self._nodes.append(ClusterNode(node_id=node_id, vector=vector, input_index=input_index))
        self._consumed_by.append(None)
        return node_id

    def merge(self, a: int, b: int, distance: float = 0.0) -> int:
        """Combine two unconsumed nodes into a new internal node."""
        if a == b:
            raise ValueError(f"Cannot merge node {a} with itself.")
        for node_id in (a, b):
            if self._consumed_by[node_id] is not None:
                raise ValueError(
                    f"Node {node_id} was already merged into node {self._consumed_by[node_id]}."
                )
        node_id = len(self._nodes)
        vector = self._nodes[a].vector + self._nodes[b].vector
        self._nodes.append(
            ClusterNode(node_id=node_id, vector=vector, children=(a, b), distance=distance)
        )
        self._consumed_by.append(None)
        self._consumed_by[a] = node_id
        self._consumed_by[b] = node_id
        return node_id

    def emit(self, node_id: int, beam_distance: float = 0.0) -> None:
        """Record a node as a final jet."""
        self._jets.append(node_id)
        self._beam_distances.append(beam_distance)

    def reject(self, node_id: int) -> None:
        """Record a node as groomed away."""
        self._rejected.append(node_id)

    def parent(self, node_id: int) -> int | None:
        """Id of the merge that consumed `node_id`, if any."""
        return self._consumed_by[node_id]

    def merges(self) -> Iterator[ClusterNode]:
        """Internal nodes in merge order."""
        return (node for node in self._nodes if node.children is not None)

    def leaves(self, node_id: int) -> list[int]:
        """Leaf node ids below `node_id`, ordered left to right."""
        out: list[int] = []
        stack = [node_id]
        while stack:
            current = self._nodes[stack.pop()]
            if current.children is None:
                out.append(current.node_id)
            else:
                stack.append(current.children[1])
                stack.append(current.children[0])
        return out

    def constituents(self, node_id: int) -> list[FourVector]:
        """Input four-vectors below `node_id`."""
        return [self._nodes[i].vector for i in self.leaves(node_id)]

    def input_indices(self, node_id: int) -> list[int]:
        """Original input indices of the leaves below `node_id`."""
        out: list[int] = []
        for leaf in self.leaves(node_id):
            index = self._nodes[leaf].input_index
            assert index is not None
            out.append(index)
        return out


@dataclass(frozen=True)
class Jet:
    """A final or groomed jet with its constituents.

    `constituent_indices` point into the event's original input list.
    `history` and `node_id` are traversal references only and take no part
    in equality.
    """

    vector: FourVector
    constituents: tuple[FourVector, ...]
    constituent_indices: tuple[int, ...]
    history: MergeHistory | None = field(default=None, compare=False, repr=False)
    node_id: int | None = field(default=None, compare=False)

    @classmethod
    def from_node(
        cls,
        history: MergeHistory,
        node_id: int,
        index_map: Sequence[int] | None = None,
    ) -> "Jet":
        """Build a jet from a history node, optionally remapping input indices."""
        indices = history.input_indices(node_id)
        if index_map is not None:
            indices = [index_map[i] for i in indices]
        return cls(
            vector=history[node_id].vector,
            constituents=tuple(history.constituents(node_id)),
            constituent_indices=tuple(indices),
            history=history,
            node_id=node_id,
        )

    @property
    def pt(self) -> float:
        return self.vector.pt

    @property
    def eta(self) -> float:
        return self.vector.eta

    @property
    def phi(self) -> float:
        return self.vector.phi

    @property
    def mass(self) -> float:
        return self.vector.mass

    @property
    def rapidity(self) -> float:
        return self.vector.rapidity

    @property
    def n_constituents(self) -> int:
        return len(self.constituents)


EMPTY_JET = Jet(vector=ZERO_VECTOR, constituents=(), constituent_indices=())


@dataclass(frozen=True)
class ClusteringResult:
    """Jets of one clustering run with the history that produced them."""

    jets: tuple[Jet, ...]
    history: MergeHistory = field(compare=False, repr=False)
    rejected_indices: tuple[int, ...] = ()


class JetAlgorithm(Enum):
    """Generalized-kt algorithm variants and their momentum exponent."""

    KT = "kt"
    CAMBRIDGE_AACHEN = "cambridge_aachen"
    ANTI_KT = "anti_kt"

    @property
    def exponent(self) -> int:
        """Exponent p in `kt^(2p)`."""
        return {"kt": 1, "cambridge_aachen": 0, "anti_kt": -1}[self.value]

    @classmethod
    def from_name(cls, name: str) -> "JetAlgorithm":
        """Resolve a short algorithm name such as `antikt`, `ca` or `kt`."""
        key = name.strip().lower().replace("-", "_")
        aliases = {
            "kt": cls.KT,
            "ca": cls.CAMBRIDGE_AACHEN,
            "cambridge": cls.CAMBRIDGE_AACHEN,
            "cambridge_aachen": cls.CAMBRIDGE_AACHEN,
            "antikt": cls.ANTI_KT,
            "anti_kt": cls.ANTI_KT,
            "akt": cls.ANTI_KT,
        }
        try:
            return aliases[key]
        except KeyError as exc:
            supported = ", ".join(sorted(aliases))
            raise ValueError(
                f"Unknown jet algorithm '{name}'. Supported names: {supported}"
            ) from exc


def _require_finite(name: str, value: float) -> None:
    if not math.isfinite(value):
        raise ValueError(f"{name} must be a finite number, got {value!r}.")


def _require_algorithm(name: str, value: object, allow_none: bool = False) -> None:
    if value is None and allow_none:
        return
    if not isinstance(value, JetAlgorithm):
        raise ValueError(f"{name} must be a JetAlgorithm, got {value!r}.")


def _require_zcut(zcut: float) -> None:
    _require_finite("zcut", zcut)
    if zcut < 0.0:
        raise ValueError(f"zcut must be non-negative, got {zcut}.")


@dataclass(frozen=True)
class TrimmingParameters:
    """Subjet radius, algorithm and minimum pt fraction for trimming."""

    sub_radius: float = 0.2
    pt_fraction: float = 0.05
    sub_algorithm: JetAlgorithm = JetAlgorithm.KT

    def __post_init__(self) -> None:
        _require_finite("sub_radius", self.sub_radius)
        if self.sub_radius <= 0.0:
            raise ValueError(f"Trimming sub_radius must be positive, got {self.sub_radius}.")
        _require_finite("pt_fraction", self.pt_fraction)
        if not 0.0 <= self.pt_fraction <= 1.0:
            raise ValueError(f"Trimming pt_fraction must lie in [0, 1], got {self.pt_fraction}.")
        _require_algorithm("sub_algorithm", self.sub_algorithm)


@dataclass(frozen=True)
class PruningParameters:
    """Momentum-fraction and angular cuts for pruning.

    The angular cut is `rcut_factor * 2 m / pt` of the jet being pruned.
    """

    zcut: float = 0.1
    rcut_factor: float = 0.5
    require_both: bool = False
    recluster: JetAlgorithm = JetAlgorithm.CAMBRIDGE_AACHEN

    def __post_init__(self) -> None:
        _require_zcut(self.zcut)
        _require_finite("rcut_factor", self.rcut_factor)
        if self.rcut_factor < 0.0:
            raise ValueError(f"Pruning rcut_factor must be non-negative, got {self.rcut_factor}.")
        _require_algorithm("recluster", self.recluster)


@dataclass(frozen=True)
class SoftDropParameters:
    """Soft Drop condition `z > zcut * (dR/R0)^beta`; `r0=None` uses the jet radius."""

    zcut: float = 0.1
    beta: float = 0.0
    r0: float | None = None
    recluster: JetAlgorithm | None = JetAlgorithm.CAMBRIDGE_AACHEN

    def __post_init__(self) -> None:
        _require_zcut(self.zcut)
        _require_finite("beta", self.beta)
        if self.r0 is not None:
            _require_finite("r0", self.r0)
            if self.r0 <= 0.0:
                raise ValueError(f"Soft Drop r0 must be positive, got {self.r0}.")
        _require_algorithm("recluster", self.recluster, allow_none=True)


@dataclass(frozen=True)
class RecursiveSoftDropParameters(SoftDropParameters):
    """Soft Drop parameters plus a limit on passing splittings (-1 = unlimited)."""

    n_splittings: int = -1

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.n_splittings < -1:
            raise ValueError(f"n_splittings must be -1 or non-negative, got {self.n_splittings}.")


@dataclass(frozen=True)
class BottomUpSoftDropParameters:
    """Soft Drop condition applied at every merge of a bottom-up reclustering."""

    zcut: float = 0.05
    beta: float = 0.0
    r0: float | None = None
    recluster: JetAlgorithm = JetAlgorithm.CAMBRIDGE_AACHEN

    def __post_init__(self) -> None:
        _require_zcut(self.zcut)
        _require_finite("beta", self.beta)
        if self.r0 is not None:
            _require_finite("r0", self.r0)
            if self.r0 <= 0.0:
                raise ValueError(f"Bottom-up Soft Drop r0 must be positive, got {self.r0}.")
        _require_algorithm("recluster", self.recluster)


@dataclass(frozen=True)
class JetDefinition:
    """Clustering algorithm, radius and grooming parameters for one run."""

    algorithm: JetAlgorithm = JetAlgorithm.ANTI_KT
    radius: float = 1.0
    trimming: TrimmingParameters = TrimmingParameters()
    pruning: PruningParameters = PruningParameters()
    soft_drop: SoftDropParameters = SoftDropParameters()
    recursive_soft_drop: RecursiveSoftDropParameters = RecursiveSoftDropParameters()
    bottom_up_soft_drop: BottomUpSoftDropParameters = BottomUpSoftDropParameters()

    def __post_init__(self) -> None:
        if not isinstance(self.algorithm, JetAlgorithm):
            raise ValueError(f"algorithm must be a JetAlgorithm, got {self.algorithm!r}.")
        _require_finite("radius", self.radius)
        if self.radius <= 0.0:
            raise ValueError(f"Jet radius must be positive, got {self.radius}.")


@dataclass(frozen=True)
class JetSelection:
    """Jet-level selection applied before grooming and substructure."""

    min_pt: float | None = None
    max_abs_eta: float | None = None
    leading_only: bool = False


@dataclass(frozen=True)
class EventInput:
    """One event: its input four-vectors and scalar weight."""

    event_id: str
    particles: tuple[FourVector, ...]
    weight: float = 1.0
