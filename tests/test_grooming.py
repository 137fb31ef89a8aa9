"""Unit tests for the jet grooming strategies."""

from __future__ import annotations

import random
import unittest

from jetgroom import (
    BottomUpSoftDrop,
    FourVector,
    JetAlgorithm,
    JetClusterer,
    JetDefinition,
    Pruner,
    PruningParameters,
    RecursiveSoftDrop,
    RecursiveSoftDropParameters,
    SoftDrop,
    SoftDropParameters,
    Trimmer,
    make_groomer,
)
from jetgroom.grooming import GROOMERS
from jetgroom.physics import sorted_by_pt, sum_four_vectors
from jetgroom.presets import make_tight_bottom_up_definition


class TestGroomers(unittest.TestCase):
    """Validate trimming, pruning and the Soft Drop family on hand-built jets."""

    @staticmethod
    def _particle(pt: float, eta: float, phi: float) -> FourVector:
        """Build a massless particle from collider coordinates."""
        return FourVector.from_pt_eta_phi_m(pt, eta, phi, 0.0)

    @staticmethod
    def _leading_jet(particles: list[FourVector], definition: JetDefinition | None = None):
        """Cluster with anti-kt R=1.0 and return the leading jet."""
        definition = definition or JetDefinition(JetAlgorithm.ANTI_KT, 1.0)
        return sorted_by_pt(JetClusterer().cluster(particles, definition).jets)[0]

    @classmethod
    def _narrow_jet(cls, seed: int):
        """A hard core surrounded by softer particles within 0.5 in eta and phi."""
        rng = random.Random(seed)
        particles = [cls._particle(300.0, 0.0, 0.0)]
        particles.extend(
            cls._particle(rng.uniform(0.5, 40.0), rng.uniform(-0.5, 0.5), rng.uniform(-0.5, 0.5))
            for _ in range(25)
        )
        return cls._leading_jet(particles)

    def test_trimming_keeps_collinear_subjet(self) -> None:
        """Both sub-particles of the leading jet fall in one kt R=0.2 subjet and survive."""
        particles = [
            self._particle(500.0, 0.0, 0.0),
            self._particle(50.0, 0.05, 0.05),
            self._particle(10.0, 1.5, 1.5),
        ]
        jet = self._leading_jet(particles)
        trimmed = Trimmer().groom(jet, JetDefinition())
        self.assertEqual(sorted(trimmed.constituent_indices), [0, 1])
        self.assertAlmostEqual(trimmed.pt, jet.pt, places=9)

    def test_trimming_drops_soft_subjet(self) -> None:
        """A separated subjet below the pt fraction is removed."""
        particles = [self._particle(100.0, 0.0, 0.0), self._particle(2.0, 0.5, 0.0)]
        jet = self._leading_jet(particles)
        self.assertEqual(jet.n_constituents, 2)
        trimmed = Trimmer().groom(jet, JetDefinition())
        self.assertEqual(trimmed.constituent_indices, (0,))
        self.assertAlmostEqual(trimmed.pt, 100.0, places=9)

    def test_groomers_only_remove_constituents(self) -> None:
        """Groomed jets are subsets of the input jet with no more pt."""
        definition = JetDefinition()
        for seed in range(3):
            jet = self._narrow_jet(seed)
            for name in GROOMERS:
                groomed = make_groomer(name).groom(jet, definition)
                self.assertTrue(set(groomed.constituent_indices) <= set(jet.constituent_indices))
                self.assertLessEqual(groomed.n_constituents, jet.n_constituents)
                self.assertGreaterEqual(groomed.n_constituents, 1)
                self.assertLessEqual(groomed.pt, jet.pt * (1.0 + 1e-12))
                total = sum_four_vectors(groomed.constituents)
                self.assertAlmostEqual(total.pt, groomed.pt, places=6)
                self.assertAlmostEqual(total.e, groomed.vector.e, places=6)

    def test_single_constituent_jet_is_returned_unchanged(self) -> None:
        """Every groomer passes a one-particle jet through untouched."""
        jet = self._leading_jet([self._particle(80.0, 0.2, 0.3)])
        for name in GROOMERS:
            self.assertIs(make_groomer(name).groom(jet, JetDefinition()), jet)

    def test_pruning_veto_conventions(self) -> None:
        """Either cut prunes by default; require_both needs soft and wide together."""
        particles = [
            self._particle(100.0, 0.0, 0.0),
            self._particle(40.0, 0.3, 0.0),
            self._particle(1.0, -0.4, 0.2),
        ]
        jet = self._leading_jet(particles)
        self.assertEqual(jet.n_constituents, 3)

        pruned = Pruner().groom(jet, JetDefinition())
        self.assertEqual(pruned.constituent_indices, (0,))

        both = JetDefinition(pruning=PruningParameters(require_both=True))
        pruned_both = Pruner().groom(jet, both)
        self.assertEqual(sorted(pruned_both.constituent_indices), [0, 1])
        self.assertEqual(len(pruned_both.history.rejected), 1)

    def test_soft_drop_descends_into_harder_branch(self) -> None:
        """A failing splitting drops the softer branch; a passing one keeps both."""
        soft = self._leading_jet([self._particle(100.0, 0.0, 0.0), self._particle(5.0, 0.5, 0.0)])
        groomed = SoftDrop().groom(soft, JetDefinition())
        self.assertEqual(groomed.constituent_indices, (0,))

        balanced = self._leading_jet(
            [self._particle(100.0, 0.0, 0.0), self._particle(30.0, 0.5, 0.0)]
        )
        groomed = SoftDrop().groom(balanced, JetDefinition())
        self.assertEqual(sorted(groomed.constituent_indices), [0, 1])

    def test_soft_drop_angular_exponent(self) -> None:
        """With beta=1 the threshold shrinks with angle and lets the splitting pass."""
        jet = self._leading_jet([self._particle(100.0, 0.0, 0.0), self._particle(8.0, 0.5, 0.0)])
        beta0 = SoftDrop().groom(jet, JetDefinition())
        self.assertEqual(beta0.n_constituents, 1)
        beta1 = SoftDrop().groom(jet, JetDefinition(soft_drop=SoftDropParameters(beta=1.0)))
        self.assertEqual(beta1.n_constituents, 2)

    def test_soft_drop_can_walk_the_jet_history(self) -> None:
        """recluster=None declusters the anti-kt history of the jet itself."""
        jet = self._leading_jet([self._particle(100.0, 0.0, 0.0), self._particle(5.0, 0.5, 0.0)])
        definition = JetDefinition(soft_drop=SoftDropParameters(recluster=None))
        groomed = SoftDrop().groom(jet, definition)
        self.assertIs(groomed.history, jet.history)
        self.assertEqual(groomed.constituent_indices, (0,))

    def test_recursive_soft_drop_grooms_inside_passing_prongs(self) -> None:
        """RSD removes soft radiation that plain Soft Drop keeps inside a prong."""
        particles = [
            self._particle(100.0, 0.0, 0.0),
            self._particle(60.0, 0.6, 0.0),
            self._particle(50.0, -0.6, 0.1),
            self._particle(2.0, 0.2, -0.3),
        ]
        jet = self._leading_jet(particles)
        self.assertEqual(jet.n_constituents, 4)

        soft_drop = SoftDrop().groom(jet, JetDefinition())
        self.assertEqual(soft_drop.n_constituents, 4)

        recursive = RecursiveSoftDrop().groom(jet, JetDefinition())
        self.assertEqual(sorted(recursive.constituent_indices), [0, 1, 2])

        limited = JetDefinition(recursive_soft_drop=RecursiveSoftDropParameters(n_splittings=1))
        self.assertEqual(RecursiveSoftDrop().groom(jet, limited).n_constituents, 4)

    def test_bottom_up_soft_drop_rejects_soft_merges(self) -> None:
        """Failing merges reject the softer operand; the tight variant removes more."""
        particles = [
            self._particle(100.0, 0.0, 0.0),
            self._particle(30.0, 0.5, 0.0),
            self._particle(2.0, 0.0, 0.3),
            self._particle(12.0, -0.6, 0.0),
        ]
        jet = self._leading_jet(particles)
        loose = BottomUpSoftDrop().groom(jet, JetDefinition())
        self.assertEqual(sorted(loose.constituent_indices), [0, 1, 3])
        self.assertEqual(len(loose.history.rejected), 1)

        tight = BottomUpSoftDrop().groom(jet, make_tight_bottom_up_definition())
        self.assertEqual(sorted(tight.constituent_indices), [0, 1])

    def test_unknown_groomer_name_raises(self) -> None:
        """The registry lists its supported names on a miss."""
        with self.assertRaises(ValueError):
            make_groomer("filtering")
        self.assertIsInstance(make_groomer(" Soft_Drop "), SoftDrop)


if __name__ == "__main__":
    unittest.main()
