"""Unit tests for the per-event processing pipeline."""

from __future__ import annotations

import unittest

from jetgroom import EventInput, FourVector, JetProcessor, JetSelection, ObservableTable
from jetgroom.pipeline import GroomingVariant, variants_for_step


class TestJetProcessor(unittest.TestCase):
    """Validate rows, variants, selection and sink filling of the processor."""

    @staticmethod
    def _particle(pt: float, eta: float, phi: float) -> FourVector:
        """Build a massless particle from collider coordinates."""
        return FourVector.from_pt_eta_phi_m(pt, eta, phi, 0.0)

    @classmethod
    def _event(cls, event_id: str = "evt0", weight: float = 2.0) -> EventInput:
        """Two well separated jets: a three-prong one and a single soft particle."""
        particles = (
            cls._particle(500.0, 0.0, 0.0),
            cls._particle(150.0, 0.4, 0.1),
            cls._particle(120.0, -0.3, -0.4),
            cls._particle(3.0, 0.1, 0.5),
            cls._particle(10.0, 2.0, 2.5),
        )
        return EventInput(event_id=event_id, particles=particles, weight=weight)

    def test_step_one_produces_ungroomed_and_trimmed_rows(self) -> None:
        """Step 1 yields two variants per jet and no substructure."""
        result = JetProcessor(step=1).process_event(self._event())
        self.assertEqual(result.n_jets, 2)
        self.assertEqual(len(result.rows), 4)
        self.assertEqual([row.variant for row in result.rows[:2]], ["ungroomed", "trimmed"])
        self.assertTrue(all(row.d2 is None and row.tau32 is None for row in result.rows))
        self.assertTrue(all(row.weight == 2.0 for row in result.rows))
        self.assertEqual(result.rows[0].jet_index, 0)
        self.assertEqual(result.rows[0].n_constituents, 4)

    def test_all_steps_add_groomers_and_substructure(self) -> None:
        """Step 0 runs every groomer, including the tight bottom-up variant."""
        processor = JetProcessor(step=0, selection=JetSelection(leading_only=True))
        result = processor.process_event(self._event())
        names = [row.variant for row in result.rows]
        self.assertEqual(
            names,
            [
                "ungroomed",
                "trimmed",
                "pruned",
                "soft_drop",
                "recursive_soft_drop",
                "bottom_up_soft_drop",
                "bottom_up_soft_drop_tight",
            ],
        )
        ungroomed = result.rows[0]
        self.assertIsNotNone(ungroomed.d2)
        self.assertIsNotNone(ungroomed.tau32)
        for row in result.rows[1:]:
            self.assertLessEqual(row.n_constituents, ungroomed.n_constituents)

    def test_selection_filters_jets(self) -> None:
        """Jets below the pt threshold are not groomed or reported."""
        processor = JetProcessor(step=1, selection=JetSelection(min_pt=50.0))
        result = processor.process_event(self._event())
        self.assertEqual(result.n_jets, 2)
        self.assertEqual({row.jet_index for row in result.rows}, {0})

    def test_sink_receives_weighted_observables(self) -> None:
        """The sink gets pt for every row and mass only above the threshold."""
        table = ObservableTable()
        processor = JetProcessor(step=1, sink=table, mass_min_pt=100.0)
        processor.process_event(self._event(weight=0.5))
        self.assertEqual(len(table.values["ungroomed_pt"]), 2)
        self.assertEqual(len(table.values["ungroomed_m"]), 1)
        self.assertEqual(table.sum_of_weights("trimmed_pt"), 1.0)
        self.assertIsNone(table.weighted_mean("soft_drop_pt"))
        self.assertEqual(table.sum_of_weights("ungroomed_pt_noweight"), 2.0)
        self.assertEqual(table.values["trimmed_pt_noweight"], table.values["trimmed_pt"])

    def test_process_events_keeps_order_across_workers(self) -> None:
        """Parallel processing returns the same results in input order."""
        events = [self._event(event_id=f"evt{i}") for i in range(6)]
        serial = JetProcessor(step=2).process_events(events)
        table = ObservableTable()
        parallel = JetProcessor(step=2, sink=table).process_events(events, max_workers=2)
        self.assertEqual([r.event_id for r in parallel], [f"evt{i}" for i in range(6)])
        self.assertEqual([r.rows for r in parallel], [r.rows for r in serial])
        self.assertEqual(len(table.values["pruned_pt"]), 12)
        self.assertEqual(table.sum_of_weights("pruned_pt_noweight"), 12.0)

    def test_custom_variants_and_validation(self) -> None:
        """Explicit variants replace the step defaults; bad settings are rejected."""
        processor = JetProcessor(
            step=3,
            variants=(GroomingVariant("raw"), GroomingVariant("sd", "soft_drop")),
        )
        result = processor.process_event(self._event())
        self.assertEqual({row.variant for row in result.rows}, {"raw", "sd"})
        with self.assertRaises(ValueError):
            JetProcessor(step=5)
        with self.assertRaises(ValueError):
            JetProcessor(variants=(GroomingVariant("a"), GroomingVariant("a", "pruned")))
        with self.assertRaises(ValueError):
            variants_for_step(-1, processor.definition)


if __name__ == "__main__":
    unittest.main()
