# tests/test_observables.py
#
# ============================================================
# UNIT TESTS: Batch Statistics and Correlations
# ============================================================
#
# WHAT WE'RE TESTING:
#   The observables module turns a batch of sampled {0, 1} configurations and
#   their local energies into the numbers the trainer reports each epoch:
#   energy mean and variance, correlations against the middle spin, and the
#   ground-state accuracy.
#
# TEST STRATEGY:
#   We construct controlled sample arrays (not from MCMC — just numpy arrays)
#   that represent simple known spin configurations:
#
#   ALL-ZERO:  samples = [[0,0,0,0], ...]  → C(j) = 1, accuracy = 0
#   ALL-ONE:   samples = [[1,1,1,1], ...]  → C(j) = 1, accuracy = 1
#   NEEL:      samples = [[0,1,0,1], ...]  → ferromagnetic C(j) alternates,
#                                           anti-ferromagnetic C(j) = 1
#
# KEY IDENTITIES TESTED:
#   - C(reference) = 1 exactly, whatever the samples
#   - -1 <= C(j) <= 1
#   - variance of the mean >= 0, and 0 for a single sample
#
# ============================================================

import sys
import os
import unittest
import numpy as np

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from isingrbm.observables import (
    correlations,
    ground_state_accuracy,
    mean_and_variance,
    reference_index,
)


# ============================================================
# SECTION: Helper — Controlled Sample Arrays
# ============================================================

def _neel(n_spins, n_samples, start=0):
    row = (np.arange(n_spins) + start) % 2
    return np.tile(row, (n_samples, 1)).astype(np.int8)


# ============================================================
# SECTION: Energy Statistics
# ============================================================

class TestMeanAndVariance(unittest.TestCase):

    def test_known_values(self):
        """[1, 2, 3, 4]: mean 2.5, sample variance 5/3, variance of mean 5/12."""
        mean, var = mean_and_variance(np.array([1.0, 2.0, 3.0, 4.0]))
        self.assertAlmostEqual(mean, 2.5)
        self.assertAlmostEqual(var, 5.0 / 12.0)

    def test_constant_energies_have_zero_variance(self):
        mean, var = mean_and_variance(np.full(10, -1.25))
        self.assertAlmostEqual(mean, -1.25)
        self.assertAlmostEqual(var, 0.0)

    def test_single_sample(self):
        self.assertEqual(mean_and_variance(np.array([-3.0])), (-3.0, 0.0))

    def test_empty_batch_raises(self):
        with self.assertRaises(ValueError):
            mean_and_variance(np.array([]))

    def test_variance_non_negative(self):
        rng = np.random.default_rng(0)
        for trial in range(5):
            with self.subTest(trial=trial):
                _, var = mean_and_variance(rng.normal(-2.0, 3.0, size=15))
                self.assertGreaterEqual(var, 0.0)


# ============================================================
# SECTION: Correlations
# ============================================================

class TestCorrelations(unittest.TestCase):

    def test_reference_index_is_middle(self):
        for n, ref in [(1, 0), (4, 2), (5, 2), (10, 5)]:
            with self.subTest(n=n):
                self.assertEqual(reference_index(n), ref)

    def test_aligned_samples(self):
        for value in (0, 1):
            with self.subTest(value=value):
                samples = np.full((6, 5), value, dtype=np.int8)
                np.testing.assert_array_equal(correlations(samples, 'F'), 1.0)

    def test_neel_ferromagnetic(self):
        """Reference at index 2 (bit 0): same-parity sites agree, odd ones disagree."""
        samples = _neel(5, 4)
        np.testing.assert_array_equal(correlations(samples, 'F'),
                                      [1.0, -1.0, 1.0, -1.0, 1.0])

    def test_neel_antiferromagnetic(self):
        """
        Odd site indices are flipped. With the reference at an even index a
        Neel pattern reads +1 everywhere; at an odd index every site other
        than the reference reads -1.
        """
        for n in (4, 5, 6, 7, 10):
            ref = reference_index(n)
            for start in (0, 1):
                with self.subTest(n=n, start=start):
                    samples = _neel(n, 3, start=start)
                    expected = np.full(n, 1.0 if ref % 2 == 0 else -1.0)
                    expected[ref] = 1.0
                    np.testing.assert_array_equal(correlations(samples, 'A'), expected)

    def test_antiferromagnetic_ten_spins(self):
        """Ten-spin chain, reference at index 5: flips land on j = 1, 3, 5, 7, 9."""
        samples = _neel(10, 2)
        np.testing.assert_array_equal(correlations(samples, 'A'),
                                      [-1.0, -1.0, -1.0, -1.0, -1.0,
                                       1.0, -1.0, -1.0, -1.0, -1.0])
        aligned = np.zeros((2, 10), dtype=np.int8)
        np.testing.assert_array_equal(correlations(aligned, 'A'),
                                      [1.0, -1.0, 1.0, -1.0, 1.0,
                                       1.0, 1.0, -1.0, 1.0, -1.0])

    def test_reference_is_one(self):
        rng = np.random.default_rng(1)
        samples = rng.integers(0, 2, size=(9, 6)).astype(np.int8)
        for alignment in ('F', 'A'):
            with self.subTest(alignment=alignment):
                corrs = correlations(samples, alignment)
                self.assertEqual(corrs[reference_index(6)], 1.0)
                self.assertTrue(np.all(np.abs(corrs) <= 1.0))

    def test_half_agreement(self):
        """Two samples, one agreeing and one disagreeing, give C = 0."""
        samples = np.array([[0, 0, 0], [1, 0, 0]], dtype=np.int8)
        corrs = correlations(samples, 'F')
        self.assertAlmostEqual(corrs[0], 0.0)


# ============================================================
# SECTION: Ground-State Accuracy
# ============================================================

class TestAccuracy(unittest.TestCase):

    def test_extremes(self):
        self.assertEqual(ground_state_accuracy(np.ones((3, 4), dtype=np.int8)), 1.0)
        self.assertEqual(ground_state_accuracy(np.zeros((3, 4), dtype=np.int8)), 0.0)

    def test_fraction_of_nonzero_bits(self):
        samples = np.array([[1, 0, 0, 0], [1, 1, 0, 1]], dtype=np.int8)
        self.assertAlmostEqual(ground_state_accuracy(samples), 4.0 / 8.0)


if __name__ == '__main__':
    unittest.main(verbosity=2)
