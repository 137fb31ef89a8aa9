"""Unit tests for four-vector kinematics and the merge history arena."""

from __future__ import annotations

import math
import unittest

from jetgroom.models import (
    MAX_RAPIDITY,
    FourVector,
    Jet,
    JetAlgorithm,
    JetDefinition,
    MergeHistory,
    PruningParameters,
    RecursiveSoftDropParameters,
    SoftDropParameters,
    TrimmingParameters,
)


class TestFourVector(unittest.TestCase):
    """Validate derived kinematics of the immutable four-vector."""

    def test_pt_eta_phi_m_construction_round_trips(self) -> None:
        """Derived pt, eta, phi and mass should reproduce the constructor inputs."""
        vec = FourVector.from_pt_eta_phi_m(125.0, -1.2, 2.5, 10.0)
        self.assertAlmostEqual(vec.pt, 125.0, places=9)
        self.assertAlmostEqual(vec.eta, -1.2, places=9)
        self.assertAlmostEqual(vec.phi, 2.5, places=9)
        self.assertAlmostEqual(vec.mass, 10.0, places=6)

    def test_addition_returns_new_vector(self) -> None:
        """Adding two vectors must not mutate either operand."""
        a = FourVector(1.0, 2.0, 3.0, 10.0)
        b = FourVector(-1.0, 0.5, 1.0, 5.0)
        total = a + b
        self.assertEqual(total, FourVector(0.0, 2.5, 4.0, 15.0))
        self.assertEqual(a, FourVector(1.0, 2.0, 3.0, 10.0))
        self.assertEqual(b, FourVector(-1.0, 0.5, 1.0, 5.0))

    def test_rapidity_of_massless_vector_equals_eta(self) -> None:
        """Massless vectors have identical rapidity and pseudorapidity."""
        vec = FourVector.from_pt_eta_phi_m(40.0, 0.7, -1.0, 0.0)
        self.assertAlmostEqual(vec.rapidity, 0.7, places=9)

    def test_rapidity_along_beam_is_clamped(self) -> None:
        """A vector with e == |pz| and no pt reports +-(MAX_RAPIDITY + |pz|)."""
        self.assertEqual(FourVector(0.0, 0.0, 5.0, 5.0).rapidity, MAX_RAPIDITY + 5.0)
        self.assertEqual(FourVector(0.0, 0.0, -5.0, 5.0).rapidity, -(MAX_RAPIDITY + 5.0))
        self.assertEqual(FourVector(0.0, 0.0, 5.0, 5.0).phi, 0.0)

    def test_mass_is_signed_for_negative_mass_squared(self) -> None:
        """Slightly space-like vectors report a negative mass."""
        vec = FourVector(0.0, 0.0, 1.0, 0.9)
        self.assertAlmostEqual(vec.mass, -math.sqrt(0.19), places=12)

    def test_delta_phi_wraps_around(self) -> None:
        """Azimuthal distances are taken the short way around the circle."""
        a = FourVector.from_pt_eta_phi_m(1.0, 0.0, 3.1, 0.0)
        b = FourVector.from_pt_eta_phi_m(1.0, 0.0, -3.1, 0.0)
        self.assertAlmostEqual(abs(a.delta_phi(b)), 2.0 * math.pi - 6.2, places=9)
        self.assertAlmostEqual(a.delta_r(b), 2.0 * math.pi - 6.2, places=9)

    def test_is_physical_rejects_nan_and_negative_energy(self) -> None:
        """Non-finite components and negative energy are malformed."""
        self.assertTrue(FourVector(1.0, 0.0, 0.0, 1.0).is_physical())
        self.assertFalse(FourVector(math.nan, 0.0, 0.0, 1.0).is_physical())
        self.assertFalse(FourVector(0.0, math.inf, 0.0, 1.0).is_physical())
        self.assertFalse(FourVector(1.0, 0.0, 0.0, -1.0).is_physical())


class TestMergeHistory(unittest.TestCase):
    """Validate the append-only arena and its traversal helpers."""

    @staticmethod
    def _history() -> MergeHistory:
        """Build a history with three leaves."""
        history = MergeHistory()
        history.add_leaf(FourVector(1.0, 0.0, 0.0, 1.0), 0)
        history.add_leaf(FourVector(0.0, 1.0, 0.0, 1.0), 1)
        history.add_leaf(FourVector(0.0, 0.0, 1.0, 1.0), 2)
        return history

    def test_merge_conserves_four_momentum(self) -> None:
        """An internal node carries the exact sum of its children."""
        history = self._history()
        ab = history.merge(0, 1, distance=0.5)
        root = history.merge(ab, 2)
        self.assertEqual(history[ab].vector, history[0].vector + history[1].vector)
        self.assertEqual(history[root].vector, history[ab].vector + history[2].vector)
        self.assertEqual(history[ab].children, (0, 1))
        self.assertEqual(history[ab].distance, 0.5)
        self.assertEqual(history.parent(0), ab)
        self.assertIsNone(history.parent(root))

    def test_merge_rejects_consumed_and_self_merges(self) -> None:
        """A node can be consumed once and never merged with itself."""
        history = self._history()
        history.merge(0, 1)
        with self.assertRaises(ValueError):
            history.merge(0, 2)
        with self.assertRaises(ValueError):
            history.merge(2, 2)

    def test_leaves_follow_left_to_right_order(self) -> None:
        """Traversal returns leaves in child order and maps input indices."""
        history = self._history()
        bc = history.merge(2, 1)
        root = history.merge(0, bc)
        self.assertEqual(history.leaves(root), [0, 2, 1])
        self.assertEqual(history.input_indices(root), [0, 2, 1])
        self.assertEqual([node.node_id for node in history.merges()], [bc, root])

    def test_jet_from_node_excludes_history_from_equality(self) -> None:
        """Jets built from different histories compare equal on kinematics."""
        first = self._history()
        second = self._history()
        jet_a = Jet.from_node(first, first.merge(0, 1))
        jet_b = Jet.from_node(second, second.merge(0, 1))
        self.assertEqual(jet_a, jet_b)
        self.assertEqual(jet_a.constituent_indices, (0, 1))
        self.assertEqual(jet_a.n_constituents, 2)


class TestParameterValidation(unittest.TestCase):
    """Validate construction-time checks of the configuration objects."""

    def test_jet_definition_rejects_bad_radius(self) -> None:
        """Radius must be positive and finite."""
        for radius in (0.0, -1.0, math.inf, math.nan):
            with self.assertRaises(ValueError):
                JetDefinition(radius=radius)

    def test_grooming_blocks_reject_bad_values(self) -> None:
        """Out-of-range grooming parameters fail at construction."""
        with self.assertRaises(ValueError):
            SoftDropParameters(zcut=-0.1)
        with self.assertRaises(ValueError):
            SoftDropParameters(beta=math.nan)
        with self.assertRaises(ValueError):
            TrimmingParameters(pt_fraction=1.5)
        with self.assertRaises(ValueError):
            TrimmingParameters(sub_radius=0.0)
        with self.assertRaises(ValueError):
            RecursiveSoftDropParameters(n_splittings=-2)
        with self.assertRaises(ValueError):
            PruningParameters(recluster=None)  # type: ignore[arg-type]

    def test_algorithm_aliases_resolve(self) -> None:
        """Short algorithm names map onto the enum and unknown names fail."""
        self.assertIs(JetAlgorithm.from_name("antikt"), JetAlgorithm.ANTI_KT)
        self.assertIs(JetAlgorithm.from_name("CA"), JetAlgorithm.CAMBRIDGE_AACHEN)
        self.assertEqual(JetAlgorithm.KT.exponent, 1)
        with self.assertRaises(ValueError):
            JetAlgorithm.from_name("siscone")


if __name__ == "__main__":
    unittest.main()
