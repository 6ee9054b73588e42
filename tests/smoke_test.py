# tests/smoke_test.py
#
# Quick sanity check: verifies that every module imports correctly,
# produces outputs of the right shape, and doesn't crash. This is not a
# correctness test — just checking that the plumbing works end to end.

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import numpy as np

# ── 1. Hamiltonian ────────────────────────────────────────────────────────────
print("=" * 60)
print("Testing hamiltonian...")

from isingrbm.hamiltonians import IsingHamiltonian

N = 6  # small chain for fast testing

ising = IsingHamiltonian(n_spins=N, J=1.0, B=0.5)
assert ising.n_spins == N, "IsingHamiltonian.n_spins wrong"
assert ising.alignment == 'F', "J > 0 should be ferromagnetic"
print(f"  {ising} ... OK")

# ── 2. RBM ────────────────────────────────────────────────────────────────────
print("\nTesting complex RBM ansatz...")

from isingrbm.ansatz import ComplexRBM

rbm = ComplexRBM(n_spins=N, n_hidden=2 * N, rng=0)
print(f"  {rbm}")

expected_params = N + rbm.n_hidden + N * rbm.n_hidden
assert rbm.n_params == expected_params, (
    f"n_params mismatch: got {rbm.n_params}, expected {expected_params}"
)
print(f"  n_params = {rbm.n_params} (expected {expected_params}) ... OK")

spins = np.array([1, 0, 1, 1, 0, 1], dtype=np.int8)
theta = rbm.theta(spins)
assert theta.shape == (rbm.n_hidden,), f"theta shape mismatch: {theta.shape}"
ratio = rbm.flip_ratio(spins, theta, 0)
assert np.isfinite(ratio), f"flip ratio not finite: {ratio}"
print(f"  theta shape = {theta.shape}, psi(s^0)/psi(s) = {ratio:.6f} ... OK")

# ── 3. Local energy ───────────────────────────────────────────────────────────
print("\nTesting local energy computation...")

e_loc = ising.local_energy(spins, theta, rbm)
assert np.isfinite(e_loc), f"Ising local energy is not finite: {e_loc}"
print(f"  Ising local energy = {e_loc:.6f} ... OK")

# ── 4. Sampler ────────────────────────────────────────────────────────────────
print("\nTesting MetropolisSampler...")

from isingrbm.sampler import MetropolisSampler

sampler = MetropolisSampler(rbm, N, seed=42)
n_samples = 20
batch = sampler.draw(epoch=1, n_samples=n_samples, hamiltonian=ising)
assert batch.samples.shape == (n_samples, N), (
    f"samples shape mismatch: got {batch.samples.shape}, expected ({n_samples}, {N})"
)
assert set(np.unique(batch.samples)).issubset({0, 1}), "samples contain values outside {0, 1}"
print(f"  draw(epoch=1, n_samples={n_samples}) -> shape {batch.samples.shape} ... OK")
print(f"  acceptance_rate = {batch.acceptance_rate:.3f} ... OK")

# ── 5. SR step ────────────────────────────────────────────────────────────────
print("\nTesting stochastic reconfiguration step...")

from isingrbm.optimizer import StochasticReconfiguration

e = batch.local_energies
norm = StochasticReconfiguration().step(rbm, batch, e - e.mean(), epoch=1)
assert np.isfinite(norm) and norm > 0, f"bad update norm: {norm}"
print(f"  |delta alpha| = {norm:.6f} ... OK")

# ── 6. Two-worker training ────────────────────────────────────────────────────
print("\nTesting two-worker training loop...")

from isingrbm.trainer import train_ising

result = train_ising([1.0, 0.5], n_spins=4, n_hidden=4, n_workers=2,
                     max_epochs=5, verbose=False)
assert np.isfinite(result.energy), f"Final energy is not finite: {result.energy}"
print(f"  {result} ... OK")

# ── Summary ───────────────────────────────────────────────────────────────────
print()
print("=" * 60)
print("All smoke tests passed.")
print("=" * 60)
