"""Per-event cluster -> groom -> substructure processing."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Protocol, Sequence

import numpy as np

from .clustering import JetClusterer
from .grooming import Groomer, make_groomer
from .models import EventInput, Jet, JetDefinition, JetSelection
from .physics import sorted_by_pt
from .presets import TIGHT_BOTTOM_UP_ZCUT
from .substructure import compute_substructure

logger = logging.getLogger(__name__)

STEPS = (0, 1, 2, 3)
PROGRESS_INTERVAL = 10000


class ObservableSink(Protocol):
    """Receiver of weighted scalar observables (e.g. a histogram booker)."""

    def fill(self, name: str, value: float, weight: float = 1.0) -> None: ...


@dataclass
class ObservableTable:
    """In-memory sink keeping every filled value with its weight."""

    values: dict[str, list[float]] = field(default_factory=dict)
    weights: dict[str, list[float]] = field(default_factory=dict)

    def fill(self, name: str, value: float, weight: float = 1.0) -> None:
        self.values.setdefault(name, []).append(float(value))
        self.weights.setdefault(name, []).append(float(weight))

    def names(self) -> list[str]:
        return sorted(self.values)

    def sum_of_weights(self, name: str) -> float:
        return float(np.sum(self.weights.get(name, [])))

    def weighted_mean(self, name: str) -> float | None:
        """Weighted mean of an observable, None when nothing was filled."""
        values = self.values.get(name)
        if not values:
            return None
        weights = np.asarray(self.weights[name])
        if weights.sum() == 0.0:
            return None
        return float(np.average(np.asarray(values), weights=weights))


@dataclass(frozen=True)
class GroomingVariant:
    """One jet flavour in the output: a named groomer (None = ungroomed).

    `definition` replaces the processor's definition for this variant only.
    """

    name: str
    groomer: str | None = None
    definition: JetDefinition | None = None


@dataclass(frozen=True)
class JetObservables:
    """Observables of one (jet, variant) pair; None marks an undefined value."""

    event_id: str
    jet_index: int
    variant: str
    weight: float
    pt: float
    eta: float
    phi: float
    mass: float
    n_constituents: int
    d2: float | None = None
    tau32: float | None = None


@dataclass(frozen=True)
class EventResult:
    event_id: str
    weight: float
    n_particles: int
    rejected_indices: tuple[int, ...]
    n_jets: int
    rows: tuple[JetObservables, ...]


def variants_for_step(step: int, definition: JetDefinition) -> tuple[GroomingVariant, ...]:
    """Jet variants produced at a processing step.

    Step 1 gives ungroomed and trimmed jets; step 2 and above (or 0 for
    everything) add pruning, the Soft Drop family and the tight Bottom-Up
    Soft Drop variant.
    """
    if step not in STEPS:
        raise ValueError(f"Unknown processing step {step}. Use one of {STEPS}.")
    variants = [GroomingVariant("ungroomed"), GroomingVariant("trimmed", "trimmed")]
    if step == 0 or step >= 2:
        tight = replace(
            definition,
            bottom_up_soft_drop=replace(
                definition.bottom_up_soft_drop, zcut=TIGHT_BOTTOM_UP_ZCUT
            ),
        )
        variants.extend(
            [
                GroomingVariant("pruned", "pruned"),
                GroomingVariant("soft_drop", "soft_drop"),
                GroomingVariant("recursive_soft_drop", "recursive_soft_drop"),
                GroomingVariant("bottom_up_soft_drop", "bottom_up_soft_drop"),
                GroomingVariant("bottom_up_soft_drop_tight", "bottom_up_soft_drop", tight),
            ]
        )
    return tuple(variants)


def select_jets(jets: Sequence[Jet], selection: JetSelection) -> list[Jet]:
    """Apply kinematic cuts to pt-ordered jets, keeping only the leading one if asked."""
    out: list[Jet] = []
    for jet in sorted_by_pt(jets):
        if selection.min_pt is not None and jet.pt < selection.min_pt:
            continue
        if selection.max_abs_eta is not None and abs(jet.eta) > selection.max_abs_eta:
            continue
        out.append(jet)
        if selection.leading_only:
            break
    return out


@dataclass
class JetProcessor:
    """Cluster, groom and measure the jets of independent events."""

    definition: JetDefinition = field(default_factory=JetDefinition)
    selection: JetSelection = field(default_factory=JetSelection)
    step: int = 0
    variants: tuple[GroomingVariant, ...] | None = None
    substructure_beta: float = 1.0
    mass_min_pt: float | None = None
    strategy: str = "auto"
    sink: ObservableSink | None = None
    _clusterer: JetClusterer = field(init=False, repr=False)
    _groomers: dict[str, Groomer] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.step not in STEPS:
            raise ValueError(f"Unknown processing step {self.step}. Use one of {STEPS}.")
        if self.variants is None:
            self.variants = variants_for_step(self.step, self.definition)
        names = [variant.name for variant in self.variants]
        if len(set(names)) != len(names):
            raise ValueError(f"Grooming variant names must be unique, got {names}.")
        self._clusterer = JetClusterer(strategy=self.strategy)
        self._groomers = {
            variant.name: make_groomer(variant.groomer, self._clusterer)
            for variant in self.variants
            if variant.groomer is not None
        }

    @property
    def computes_substructure(self) -> bool:
        return self.step == 0 or self.step >= 3

    def process_event(self, event: EventInput) -> EventResult:
        """Run the full chain on one event and fill the sink, if any."""
        result = self._analyse(event)
        self._fill_sink(result)
        return result

    def process_events(
        self,
        events: Iterable[EventInput],
        max_workers: int | None = None,
    ) -> list[EventResult]:
        """Process a batch of events, optionally across worker processes.

        Results keep the input order. The sink is always filled in the
        calling process.
        """
        batch = list(events)
        n_events = len(batch)
        if max_workers is None or max_workers <= 1:
            results = []
            for idx, event in enumerate(batch):
                self._log_progress(idx, n_events)
                results.append(self._analyse(event))
        else:
            worker = replace(self, sink=None, variants=self.variants)
            chunksize = max(1, n_events // (4 * max_workers))
            with ProcessPoolExecutor(max_workers=max_workers) as executor:
                results = []
                for idx, result in enumerate(
                    executor.map(worker._analyse, batch, chunksize=chunksize)
                ):
                    self._log_progress(idx, n_events)
                    results.append(result)
        for result in results:
            self._fill_sink(result)
        return results

    def _analyse(self, event: EventInput) -> EventResult:
        clustering = self._clusterer.cluster(event.particles, self.definition)
        jets = select_jets(clustering.jets, self.selection)
        rows: list[JetObservables] = []
        for jet_index, jet in enumerate(jets):
            for variant in self.variants:
                groomed = self._groom(jet, variant)
                rows.append(self._observables(event, jet_index, variant, groomed))
        return EventResult(
            event_id=event.event_id,
            weight=event.weight,
            n_particles=len(event.particles),
            rejected_indices=clustering.rejected_indices,
            n_jets=len(clustering.jets),
            rows=tuple(rows),
        )

    def _groom(self, jet: Jet, variant: GroomingVariant) -> Jet:
        groomer = self._groomers.get(variant.name)
        if groomer is None:
            return jet
        return groomer.groom(jet, variant.definition or self.definition)

    def _observables(
        self,
        event: EventInput,
        jet_index: int,
        variant: GroomingVariant,
        jet: Jet,
    ) -> JetObservables:
        d2_value = tau32_value = None
        if self.computes_substructure:
            radius = (variant.definition or self.definition).radius
            shape = compute_substructure(jet, radius, self.substructure_beta)
            d2_value = shape.d2
            tau32_value = shape.tau32
        return JetObservables(
            event_id=event.event_id,
            jet_index=jet_index,
            variant=variant.name,
            weight=event.weight,
            pt=jet.pt,
            eta=jet.eta,
            phi=jet.phi,
            mass=jet.mass,
            n_constituents=jet.n_constituents,
            d2=d2_value,
            tau32=tau32_value,
        )

    def _fill_sink(self, result: EventResult) -> None:
        if self.sink is None:
            return
        for row in result.rows:
            self.sink.fill(f"{row.variant}_pt", row.pt, row.weight)
            self.sink.fill(f"{row.variant}_pt_noweight", row.pt)
            # Mass and shapes are only booked above the mass threshold.
            if self.mass_min_pt is not None and row.pt <= self.mass_min_pt:
                continue
            self.sink.fill(f"{row.variant}_m", row.mass, row.weight)
            if row.d2 is not None:
                self.sink.fill(f"{row.variant}_d2", row.d2, row.weight)
            if row.tau32 is not None:
                self.sink.fill(f"{row.variant}_tau32", row.tau32, row.weight)

    @staticmethod
    def _log_progress(idx: int, n_events: int) -> None:
        if idx % PROGRESS_INTERVAL == 0:
            logger.info("Processing event %d/%d", idx, n_events)
