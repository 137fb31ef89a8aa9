"""Sequential-recombination clustering engine for generalized-kt jets.

Two interchangeable strategies find the next recombination step:
- `naive`: scans every active pair and beam distance at each step.
- `tiled`: keeps each active node's geometric nearest neighbour on a
  rapidity-azimuth tile grid (tile size >= R) and the candidate distances
  in a lazily invalidated heap.

Both produce identical clustering up to exact floating-point ties. Ties are
resolved by smallest distance, then beam before pair, then lowest node id
(input order for particles, creation order for merged nodes).
"""

from __future__ import annotations

import heapq
import logging
import math
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence

from .models import (
    TWO_PI,
    ClusteringResult,
    FourVector,
    Jet,
    JetAlgorithm,
    JetDefinition,
    MergeHistory,
)
from .physics import delta_r2, kt_weight, normalized_phi, pair_distance, preselect_particles

logger = logging.getLogger(__name__)

STRATEGIES = ("auto", "naive", "tiled")
NAIVE_MAX_PARTICLES = 16
MAX_TILED_RAPIDITY = 10.0

# Called before each merge with (history, node_a, node_b); returns the id of
# the operand to discard as soft radiation, or None to merge.
MergeVeto = Callable[[MergeHistory, int, int], "int | None"]


class _ActiveSet(Protocol):
    def __len__(self) -> int: ...

    def add(self, node_id: int) -> None: ...

    def remove(self, node_id: int) -> None: ...

    def ids(self) -> list[int]: ...

    def next_step(self) -> tuple[float, int, int | None]: ...


class _NaiveActiveSet:
    """Reference search over all active pairs and beam distances."""

    def __init__(self, history: MergeHistory, exponent: int, radius: float | None) -> None:
        self._history = history
        self._exponent = exponent
        self._radius2 = math.inf if radius is None else radius * radius
        self._norm = 1.0 if radius is None else self._radius2
        self._allow_beam = radius is not None
        self._entries: dict[int, tuple[float, float, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, node_id: int) -> None:
        vec = self._history[node_id].vector
        self._entries[node_id] = (vec.rapidity, vec.phi, kt_weight(vec.pt2, self._exponent))

    def remove(self, node_id: int) -> None:
        del self._entries[node_id]

    def ids(self) -> list[int]:
        return sorted(self._entries)

    def next_step(self) -> tuple[float, int, int | None]:
        ids = self.ids()
        best: tuple[float, int, int, int] | None = None
        for pos, i in enumerate(ids):
            rap_i, phi_i, w_i = self._entries[i]
            if self._allow_beam:
                key = (w_i, 0, i, i)
                if best is None or key < best:
                    best = key
            for j in ids[pos + 1 :]:
                rap_j, phi_j, w_j = self._entries[j]
                dr2 = delta_r2(rap_i, phi_i, rap_j, phi_j)
                if dr2 >= self._radius2:
                    continue
                key = (pair_distance(w_i, w_j, dr2, self._norm), 1, i, j)
                if best is None or key < best:
                    best = key
        if best is None:
            raise RuntimeError("No recombination candidate among active nodes.")
        distance, kind, i, j = best
        return distance, i, (j if kind == 1 else None)


class _TiledActiveSet:
    """Nearest-neighbour bookkeeping on a rapidity-azimuth tile grid."""

    def __init__(
        self,
        history: MergeHistory,
        exponent: int,
        radius: float | None,
        rapidity_range: tuple[float, float],
    ) -> None:
        self._history = history
        self._exponent = exponent
        self._radius2 = math.inf if radius is None else radius * radius
        self._norm = 1.0 if radius is None else self._radius2
        self._allow_beam = radius is not None
        if radius is None:
            self._n_rap, self._n_phi = 1, 1
            self._rap_min, self._tile_rap, self._tile_phi = 0.0, 1.0, TWO_PI
        else:
            low = max(rapidity_range[0], -MAX_TILED_RAPIDITY)
            high = min(rapidity_range[1], MAX_TILED_RAPIDITY)
            if high < low:
                low, high = high, low
            self._rap_min = low
            self._tile_rap = radius
            self._n_rap = max(1, int((high - low) // radius) + 1)
            self._n_phi = max(1, int(TWO_PI // radius))
            self._tile_phi = TWO_PI / self._n_phi
        self._tiles: dict[tuple[int, int], set[int]] = {}
        self._neighbour_cache: dict[tuple[int, int], tuple[tuple[int, int], ...]] = {}
        self._rap: dict[int, float] = {}
        self._phi: dict[int, float] = {}
        self._weight: dict[int, float] = {}
        self._tile: dict[int, tuple[int, int]] = {}
        self._nn: dict[int, int | None] = {}
        self._nn_dr2: dict[int, float] = {}
        self._version: dict[int, int] = {}
        self._heap: list[tuple[float, int, int, int]] = []

    def __len__(self) -> int:
        return len(self._version)

    def ids(self) -> list[int]:
        return sorted(self._version)

    def add(self, node_id: int) -> None:
        vec = self._history[node_id].vector
        rap = vec.rapidity
        phi = normalized_phi(vec.phi)
        tile = self._tile_of(rap, phi)
        self._rap[node_id] = rap
        self._phi[node_id] = phi
        self._weight[node_id] = kt_weight(vec.pt2, self._exponent)
        self._tile[node_id] = tile
        self._version[node_id] = 0
        self._tiles.setdefault(tile, set()).add(node_id)
        self._find_nearest(node_id)
        self._push(node_id)
        for neighbour_tile in self._neighbours(tile):
            for other in self._tiles.get(neighbour_tile, ()):
                if other == node_id:
                    continue
                dr2 = self._dr2(other, node_id)
                if dr2 < self._nn_dr2[other]:
                    self._nn[other] = node_id
                    self._nn_dr2[other] = dr2
                    self._push(other)

    def remove(self, node_id: int) -> None:
        tile = self._tile.pop(node_id)
        self._tiles[tile].discard(node_id)
        for store in (self._rap, self._phi, self._weight, self._nn, self._nn_dr2, self._version):
            del store[node_id]
        for neighbour_tile in self._neighbours(tile):
            for other in self._tiles.get(neighbour_tile, ()):
                if self._nn[other] == node_id:
                    self._find_nearest(other)
                    self._push(other)

    def next_step(self) -> tuple[float, int, int | None]:
        while self._heap:
            distance, kind, node_id, version = heapq.heappop(self._heap)
            if self._version.get(node_id) != version:
                continue
            return distance, node_id, (self._nn[node_id] if kind == 1 else None)
        raise RuntimeError("No recombination candidate among active nodes.")

    def _tile_of(self, rap: float, phi: float) -> tuple[int, int]:
        iy = int(math.floor((rap - self._rap_min) / self._tile_rap))
        iy = min(max(iy, 0), self._n_rap - 1)
        iphi = min(int(phi / self._tile_phi), self._n_phi - 1)
        return iy, iphi

    def _neighbours(self, tile: tuple[int, int]) -> tuple[tuple[int, int], ...]:
        cached = self._neighbour_cache.get(tile)
        if cached is not None:
            return cached
        iy, iphi = tile
        found: set[tuple[int, int]] = set()
        for dy in (-1, 0, 1):
            if not 0 <= iy + dy < self._n_rap:
                continue
            for dphi in (-1, 0, 1):
                found.add((iy + dy, (iphi + dphi) % self._n_phi))
        out = tuple(sorted(found))
        self._neighbour_cache[tile] = out
        return out

    def _dr2(self, a: int, b: int) -> float:
        return delta_r2(self._rap[a], self._phi[a], self._rap[b], self._phi[b])

    def _find_nearest(self, node_id: int) -> None:
        best_id: int | None = None
        best = self._radius2
        for neighbour_tile in self._neighbours(self._tile[node_id]):
            for other in self._tiles.get(neighbour_tile, ()):
                if other == node_id:
                    continue
                dr2 = self._dr2(node_id, other)
                if dr2 < best or (dr2 == best and best_id is not None and other < best_id):
                    best, best_id = dr2, other
        self._nn[node_id] = best_id
        self._nn_dr2[node_id] = best

    def _push(self, node_id: int) -> None:
        self._version[node_id] += 1
        nn = self._nn[node_id]
        weight = self._weight[node_id]
        if nn is None:
            if not self._allow_beam:
                return
            entry = (weight, 0, node_id, self._version[node_id])
        else:
            distance = pair_distance(weight, self._weight[nn], self._nn_dr2[node_id], self._norm)
            # beam wins ties against the pair distance
            if self._allow_beam and weight <= distance:
                entry = (weight, 0, node_id, self._version[node_id])
            else:
                entry = (distance, 1, node_id, self._version[node_id])
        heapq.heappush(self._heap, entry)


@dataclass
class JetClusterer:
    """Cluster four-vectors into jets by sequential recombination."""

    strategy: str = "auto"

    def __post_init__(self) -> None:
        if self.strategy not in STRATEGIES:
            raise ValueError(
                f"Unknown clustering strategy '{self.strategy}'. Use one of {', '.join(STRATEGIES)}."
            )

    def cluster(
        self,
        particles: Sequence[FourVector],
        definition: JetDefinition,
        input_indices: Sequence[int] | None = None,
    ) -> ClusteringResult:
        """Run inclusive clustering and return jets in emission order.

        Malformed particles are skipped and reported in `rejected_indices`.
        `input_indices` relabels the inputs (defaults to their positions).
        """
        history, rejected = self._build_history(particles, input_indices)
        n_particles = len(history)
        active = self._active_set(history, definition.algorithm, definition.radius)
        for node_id in range(n_particles):
            active.add(node_id)
        self._recombine(history, active, n_stop=0, veto=None)
        jets = tuple(Jet.from_node(history, root) for root in history.jets)
        logger.debug(
            "Clustered %d particles into %d jets (%s, R=%g)",
            n_particles,
            len(jets),
            definition.algorithm.value,
            definition.radius,
        )
        return ClusteringResult(jets=jets, history=history, rejected_indices=tuple(rejected))

    def cluster_exclusive(
        self,
        particles: Sequence[FourVector],
        algorithm: JetAlgorithm,
        n_jets: int = 1,
        veto: MergeVeto | None = None,
        input_indices: Sequence[int] | None = None,
    ) -> ClusteringResult:
        """Merge by pair distance only (no beam) until `n_jets` objects remain.

        With a `veto`, a merge may instead discard one operand; the
        discarded node is recorded in `history.rejected`. Jets are returned
        by decreasing pt.
        """
        if n_jets < 1:
            raise ValueError(f"n_jets must be at least 1, got {n_jets}.")
        history, rejected = self._build_history(particles, input_indices)
        active = self._active_set(history, algorithm, None)
        for node_id in range(len(history)):
            active.add(node_id)
        self._recombine(history, active, n_stop=n_jets, veto=veto)
        survivors = sorted(active.ids(), key=lambda i: (-history[i].vector.pt2, i))
        for node_id in survivors:
            history.emit(node_id)
        jets = tuple(Jet.from_node(history, root) for root in survivors)
        return ClusteringResult(jets=jets, history=history, rejected_indices=tuple(rejected))

    @staticmethod
    def _build_history(
        particles: Sequence[FourVector],
        input_indices: Sequence[int] | None,
    ) -> tuple[MergeHistory, list[int]]:
        """Create a history whose leaves are the accepted input particles."""
        if input_indices is not None and len(input_indices) != len(particles):
            raise ValueError("input_indices must match the number of particles.")
        accepted, positions, rejected = preselect_particles(particles)
        history = MergeHistory()
        for vec, pos in zip(accepted, positions, strict=True):
            history.add_leaf(vec, pos if input_indices is None else input_indices[pos])
        if input_indices is not None:
            rejected = [input_indices[pos] for pos in rejected]
        return history, rejected

    def _active_set(
        self,
        history: MergeHistory,
        algorithm: JetAlgorithm,
        radius: float | None,
    ) -> _ActiveSet:
        """Pick the search structure for this run."""
        use_naive = self.strategy == "naive" or (
            self.strategy == "auto" and len(history) <= NAIVE_MAX_PARTICLES
        )
        if use_naive:
            return _NaiveActiveSet(history, algorithm.exponent, radius)
        raps = [node.vector.rapidity for node in history] or [0.0]
        return _TiledActiveSet(history, algorithm.exponent, radius, (min(raps), max(raps)))

    @staticmethod
    def _recombine(
        history: MergeHistory,
        active: _ActiveSet,
        n_stop: int,
        veto: MergeVeto | None,
    ) -> None:
        """Apply recombination steps until `n_stop` active nodes remain."""
        while len(active) > n_stop:
            distance, i, j = active.next_step()
            if j is None:
                active.remove(i)
                history.emit(i, distance)
                continue
            dropped = veto(history, i, j) if veto is not None else None
            if dropped is not None:
                if dropped not in (i, j):
                    raise ValueError(f"Veto returned node {dropped}, expected {i} or {j}.")
                active.remove(dropped)
                history.reject(dropped)
                continue
            active.remove(i)
            active.remove(j)
            active.add(history.merge(i, j, distance))
