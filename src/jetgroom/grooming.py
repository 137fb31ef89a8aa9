"""Jet grooming transforms behind a single `Groomer` interface.

Every strategy maps `(jet, definition) -> jet` and only ever drops
constituents: the groomed four-vector is a sum of retained input vectors.
A jet with at most one constituent is returned unchanged.
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field
from typing import ClassVar, Protocol, Sequence

from .clustering import JetClusterer
from .models import (
    JetAlgorithm,
    Jet,
    JetDefinition,
    MergeHistory,
)
from .physics import harder_softer, passes_soft_drop, sorted_by_pt, sum_four_vectors

logger = logging.getLogger(__name__)


class Groomer(Protocol):
    """Common contract of the grooming strategies."""

    name: ClassVar[str]

    def groom(self, jet: Jet, definition: JetDefinition) -> Jet: ...


def combine_jets(parts: Sequence[Jet], history: MergeHistory | None = None) -> Jet:
    """Sum several disjoint jets into one, concatenating their constituents."""
    constituents = tuple(c for part in parts for c in part.constituents)
    indices = tuple(i for part in parts for i in part.constituent_indices)
    return Jet(
        vector=sum_four_vectors(part.vector for part in parts),
        constituents=constituents,
        constituent_indices=indices,
        history=history,
        node_id=parts[0].node_id if len(parts) == 1 else None,
    )


def declustering_tree(
    jet: Jet,
    recluster: JetAlgorithm | None,
    clusterer: JetClusterer,
) -> tuple[MergeHistory, int]:
    """Return the binary tree to walk for `jet` as `(history, root id)`.

    With `recluster=None` the jet's own merge history is used when present;
    otherwise the constituents are reclustered into a single tree.
    """
    if recluster is None and jet.history is not None and jet.node_id is not None:
        return jet.history, jet.node_id
    algorithm = recluster or JetAlgorithm.CAMBRIDGE_AACHEN
    result = clusterer.cluster_exclusive(
        jet.constituents,
        algorithm,
        n_jets=1,
        input_indices=jet.constituent_indices,
    )
    return result.history, result.history.jets[0]


@dataclass
class Trimmer:
    """Keep the subjets carrying at least a fixed fraction of the jet pt."""

    name: ClassVar[str] = "trimmed"
    clusterer: JetClusterer = field(default_factory=JetClusterer)

    def groom(self, jet: Jet, definition: JetDefinition) -> Jet:
        """Recluster into small-radius subjets and drop the soft ones."""
        if jet.n_constituents <= 1:
            return jet
        params = definition.trimming
        sub_definition = JetDefinition(algorithm=params.sub_algorithm, radius=params.sub_radius)
        result = self.clusterer.cluster(
            jet.constituents, sub_definition, input_indices=jet.constituent_indices
        )
        threshold = params.pt_fraction * jet.pt
        kept = [sub for sub in sorted_by_pt(result.jets) if sub.pt >= threshold]
        logger.debug("Trimming kept %d of %d subjets", len(kept), len(result.jets))
        return combine_jets(kept, result.history)


@dataclass
class Pruner:
    """Recluster and discard soft or wide-angle branches at every merge."""

    name: ClassVar[str] = "pruned"
    clusterer: JetClusterer = field(default_factory=JetClusterer)

    def groom(self, jet: Jet, definition: JetDefinition) -> Jet:
        """Return the surviving combination of the pruned reclustering."""
        if jet.n_constituents <= 1:
            return jet
        params = definition.pruning
        jet_pt = jet.pt
        rcut = params.rcut_factor * 2.0 * max(jet.mass, 0.0) / jet_pt if jet_pt > 0.0 else 0.0

        def veto(history: MergeHistory, a: int, b: int) -> int | None:
            va = history[a].vector
            vb = history[b].vector
            combined_pt = (va + vb).pt
            z = min(va.pt, vb.pt) / combined_pt if combined_pt > 0.0 else 0.0
            too_soft = z < params.zcut
            too_wide = va.delta_r(vb) > rcut
            prune = (too_soft and too_wide) if params.require_both else (too_soft or too_wide)
            if not prune:
                return None
            return harder_softer(a, va, b, vb)[1]

        result = self.clusterer.cluster_exclusive(
            jet.constituents,
            params.recluster,
            n_jets=1,
            veto=veto,
            input_indices=jet.constituent_indices,
        )
        logger.debug("Pruning rejected %d branches", len(result.history.rejected))
        return result.jets[0]


@dataclass
class SoftDrop:
    """Decluster from the root until a splitting passes the Soft Drop test."""

    name: ClassVar[str] = "soft_drop"
    clusterer: JetClusterer = field(default_factory=JetClusterer)

    def groom(self, jet: Jet, definition: JetDefinition) -> Jet:
        """Follow the harder branch until `z > zcut (dR/R0)^beta` holds."""
        if jet.n_constituents <= 1:
            return jet
        params = definition.soft_drop
        r0 = params.r0 if params.r0 is not None else definition.radius
        history, node_id = declustering_tree(jet, params.recluster, self.clusterer)
        while True:
            children = history[node_id].children
            if children is None:
                break
            a, b = children
            va = history[a].vector
            vb = history[b].vector
            if passes_soft_drop(va, vb, params.zcut, params.beta, r0):
                break
            node_id = harder_softer(a, va, b, vb)[0]
        return Jet.from_node(history, node_id)


@dataclass
class RecursiveSoftDrop:
    """Apply the Soft Drop test recursively to both branches of passing splittings."""

    name: ClassVar[str] = "recursive_soft_drop"
    clusterer: JetClusterer = field(default_factory=JetClusterer)

    def groom(self, jet: Jet, definition: JetDefinition) -> Jet:
        """Decluster prongs widest-first and sum the surviving ones."""
        if jet.n_constituents <= 1:
            return jet
        params = definition.recursive_soft_drop
        r0 = params.r0 if params.r0 is not None else definition.radius
        history, root = declustering_tree(jet, params.recluster, self.clusterer)

        prongs: list[int] = []
        pending: list[tuple[float, int]] = []

        def schedule(node_id: int) -> None:
            children = history[node_id].children
            if children is None:
                prongs.append(node_id)
                return
            spread = history[children[0]].vector.delta_r(history[children[1]].vector)
            heapq.heappush(pending, (-spread, node_id))

        schedule(root)
        passed = 0
        while pending:
            if 0 <= params.n_splittings <= passed:
                break
            _, node_id = heapq.heappop(pending)
            children = history[node_id].children
            assert children is not None
            a, b = children
            va = history[a].vector
            vb = history[b].vector
            if passes_soft_drop(va, vb, params.zcut, params.beta, r0):
                passed += 1
                schedule(a)
                schedule(b)
            else:
                schedule(harder_softer(a, va, b, vb)[0])
        prongs.extend(node_id for _, node_id in pending)
        parts = [Jet.from_node(history, node_id) for node_id in sorted(prongs)]
        return combine_jets(parts, history)


@dataclass
class BottomUpSoftDrop:
    """Recluster bottom-up, rejecting the softer operand of failing merges."""

    name: ClassVar[str] = "bottom_up_soft_drop"
    clusterer: JetClusterer = field(default_factory=JetClusterer)

    def groom(self, jet: Jet, definition: JetDefinition) -> Jet:
        """Return the single object left after the vetoed reclustering."""
        if jet.n_constituents <= 1:
            return jet
        params = definition.bottom_up_soft_drop
        r0 = params.r0 if params.r0 is not None else definition.radius

        def veto(history: MergeHistory, a: int, b: int) -> int | None:
            va = history[a].vector
            vb = history[b].vector
            if passes_soft_drop(va, vb, params.zcut, params.beta, r0):
                return None
            return harder_softer(a, va, b, vb)[1]

        result = self.clusterer.cluster_exclusive(
            jet.constituents,
            params.recluster,
            n_jets=1,
            veto=veto,
            input_indices=jet.constituent_indices,
        )
        return result.jets[0]


GROOMERS: dict[str, type] = {
    Trimmer.name: Trimmer,
    Pruner.name: Pruner,
    SoftDrop.name: SoftDrop,
    RecursiveSoftDrop.name: RecursiveSoftDrop,
    BottomUpSoftDrop.name: BottomUpSoftDrop,
}


def make_groomer(name: str, clusterer: JetClusterer | None = None) -> Groomer:
    """Instantiate a groomer from its registry name (e.g. `soft_drop`)."""
    key = name.strip().lower()
    try:
        groomer_cls = GROOMERS[key]
    except KeyError as exc:
        supported = ", ".join(sorted(GROOMERS))
        raise ValueError(f"Unknown groomer '{name}'. Supported names: {supported}") from exc
    if clusterer is None:
        return groomer_cls()
    return groomer_cls(clusterer=clusterer)


def groom(jet: Jet, definition: JetDefinition, variant: str) -> Jet:
    """Groom `jet` with the named strategy and `definition`'s parameters."""
    return make_groomer(variant).groom(jet, definition)
