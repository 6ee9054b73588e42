# isingrbm/sampler.py
#
# Metropolis-Hastings MCMC sampler for spin configurations.
#
# In VMC, we need to estimate <E> = sum_s |psi(s)|^2 * E_loc(s), but summing
# over all 2^n configurations is intractable. Instead, we use MCMC to draw
# samples from |psi(s)|^2 and estimate <E> as a sample average. The Metropolis
# algorithm proposes single spin flips and accepts/rejects based on the
# amplitude ratio |psi(new)/psi(old)|^2, satisfying detailed balance because
# the flip proposal is symmetric.
#
# Each epoch has two phases:
#   1. Thermalization: one sequential chain, started from the previous
#      epoch's stationary configuration, burns in for thermal_steps(epoch).
#   2. Stationary sampling: N independent chains all start from the
#      thermalized state and run passes(epoch) proposals each. Their random
#      indices and acceptance draws are generated up front, one column per
#      chain, so the chains share nothing mutable and can run on a thread pool.

from concurrent.futures import ThreadPoolExecutor

import numpy as np

from .ansatz.base import Ansatz


class SampleBatch:
    """
    One epoch's worth of samples.

    Attributes:
        samples:        (N, n) int8 configurations
        thetas:         (N, m) complex theta-cache paired with each configuration
        local_energies: (N,) real local energies, or None if not evaluated
        n_accepted:     accepted proposals during stationary sampling
        n_proposed:     proposals made during stationary sampling
    """

    def __init__(self, samples: np.ndarray, thetas: np.ndarray,
                 local_energies: np.ndarray = None,
                 n_accepted: int = 0, n_proposed: int = 0):
        self.samples = samples
        self.thetas = thetas
        self.local_energies = local_energies
        self.n_accepted = n_accepted
        self.n_proposed = n_proposed

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def acceptance_rate(self) -> float:
        if self.n_proposed == 0:
            return 0.0
        return self.n_accepted / self.n_proposed


class MetropolisSampler:
    """
    Metropolis-Hastings sampler for {0, 1} spin configurations from |psi(s)|^2.

    Proposes single spin flips and keeps the ansatz's theta-cache in sync with
    the chain: after every accepted flip theta is updated incrementally, never
    recomputed. Healthy acceptance rate: 0.3 - 0.7.
    """

    def __init__(self, ansatz: Ansatz, n_spins: int, seed=42,
                 min_thermal_steps: int = 1, n_threads: int = 1):
        """
        Args:
            ansatz:            Neural network wavefunction.
            n_spins:           Number of spins in the chain.
            seed:              Integer seed or numpy Generator owned by this
                               sampler. All proposals and acceptance draws come
                               from it, so a fixed seed gives identical batches.
            min_thermal_steps: Floor of the thermalization schedule.
            n_threads:         Thread-pool size for the stationary chains.
                               1 runs them sequentially. The result does not
                               depend on this value.
        """
        self.ansatz = ansatz
        self.n_spins = n_spins
        self.min_thermal_steps = min_thermal_steps
        self.n_threads = max(1, int(n_threads))
        self.rng = np.random.default_rng(seed)

        self.start_spins = self.rng.integers(0, 2, size=n_spins).astype(np.int8)
        self.start_theta = self.ansatz.theta(self.start_spins)

        self._n_proposed = 0
        self._n_accepted = 0

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    def thermal_steps(self, epoch: int) -> int:
        """
        Burn-in length for this epoch: 2001 - 2*epoch, floored.

        Later epochs start from a configuration that is already close to
        stationary, so they need less burn-in.
        """
        return max(2001 - 2 * epoch, self.min_thermal_steps)

    def passes(self, epoch: int) -> int:
        """Proposals per stationary chain: 2n - min(2*epoch, 2n - 1), always >= 1."""
        n = self.n_spins
        return 2 * n - min(2 * epoch, 2 * n - 1)

    # ------------------------------------------------------------------
    # Core Metropolis step
    # ------------------------------------------------------------------

    def _metropolis_step(self, spins: np.ndarray, proposal: np.ndarray,
                         theta: np.ndarray, i: int, r: float):
        """
        One Metropolis step: flip spin i in `proposal`, then accept or revert.

        `spins` and `proposal` hold the same configuration on entry and on
        exit; both are modified in place. Returns (theta, accepted).

        Acceptance ratio: A = |psi(proposal)|^2 / |psi(spins)|^2, accepted
        if a uniform draw r on [0, 1) is below it.
        """
        proposal[i] = 1 - proposal[i]
        acc_prob = self.ansatz.amplitude_ratio_squared(spins, proposal, theta)

        if r < acc_prob:
            ds = int(proposal[i]) - int(spins[i])
            theta = self.ansatz.incremental_theta(theta, i, ds)
            spins[i] = proposal[i]
            return theta, True

        proposal[i] = 1 - proposal[i]
        return theta, False

    # ------------------------------------------------------------------
    # Phase 1: thermalization
    # ------------------------------------------------------------------

    def thermalize(self, epoch: int) -> None:
        """
        Burn in the shared start state for thermal_steps(epoch) proposals.

        The start configuration and its theta are updated in place and seed
        the stationary chains of this epoch. Theta is refreshed first because
        the parameters have changed since the previous epoch.
        """
        self.refresh()
        n_steps = self.thermal_steps(epoch)
        indices = self.rng.integers(0, self.n_spins, size=n_steps)
        draws = self.rng.random(n_steps)

        spins = self.start_spins
        proposal = spins.copy()
        theta = self.start_theta

        for k in range(n_steps):
            theta, accepted = self._metropolis_step(spins, proposal, theta,
                                                    int(indices[k]), draws[k])
            self._n_accepted += accepted

        self._n_proposed += n_steps
        self.start_theta = theta

    # ------------------------------------------------------------------
    # Phase 2: stationary sampling
    # ------------------------------------------------------------------

    def _run_chain(self, k: int, indices: np.ndarray, draws: np.ndarray,
                   hamiltonian, samples: np.ndarray, thetas: np.ndarray,
                   energies: np.ndarray) -> int:
        """
        Run stationary chain k and write its result into row k of the outputs.

        Reads only the shared start state and column k of the pre-generated
        randomness; writes only row k. Returns the chain's accepted count.
        """
        spins = self.start_spins.copy()
        proposal = spins.copy()
        theta = self.start_theta.copy()
        n_accepted = 0

        for p in range(indices.shape[0]):
            theta, accepted = self._metropolis_step(spins, proposal, theta,
                                                    int(indices[p, k]), draws[p, k])
            n_accepted += accepted

        samples[k] = spins
        thetas[k] = theta
        if hamiltonian is not None:
            energies[k] = hamiltonian.local_energy(spins, theta, self.ansatz)
        return n_accepted

    def sample(self, epoch: int, n_samples: int, hamiltonian=None) -> SampleBatch:
        """
        Draw n_samples configurations with independent chains from the start state.

        Args:
            epoch:       Current epoch (sets the number of passes per chain).
            n_samples:   Number of chains, one sample each.
            hamiltonian: If given, each chain also evaluates its local energy.

        Returns:
            SampleBatch. The last chain's final state becomes the start state
            for the next epoch's thermalization.
        """
        n_passes = self.passes(epoch)
        indices = self.rng.integers(0, self.n_spins, size=(n_passes, n_samples))
        draws = self.rng.random((n_passes, n_samples))

        samples = np.empty((n_samples, self.n_spins), dtype=np.int8)
        thetas = np.empty((n_samples, self.ansatz.n_hidden), dtype=complex)
        energies = np.empty(n_samples, dtype=float) if hamiltonian is not None else None

        def run(k):
            return self._run_chain(k, indices, draws, hamiltonian,
                                   samples, thetas, energies)

        if self.n_threads > 1 and n_samples > 1:
            with ThreadPoolExecutor(max_workers=self.n_threads) as pool:
                accepted = list(pool.map(run, range(n_samples)))
        else:
            accepted = [run(k) for k in range(n_samples)]

        self.start_spins = samples[-1].copy()
        self.start_theta = thetas[-1].copy()

        n_accepted = int(sum(accepted))
        n_proposed = n_passes * n_samples
        self._n_accepted += n_accepted
        self._n_proposed += n_proposed

        return SampleBatch(samples, thetas, energies, n_accepted, n_proposed)

    def draw(self, epoch: int, n_samples: int, hamiltonian) -> SampleBatch:
        """Full epoch of sampling: thermalize, then sample with local energies."""
        self.thermalize(epoch)
        return self.sample(epoch, n_samples, hamiltonian=hamiltonian)

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    @property
    def acceptance_rate(self) -> float:
        """Fraction of proposed moves that were accepted."""
        if self._n_proposed == 0:
            return 0.0
        return self._n_accepted / self._n_proposed

    def reset_acceptance_stats(self) -> None:
        """Reset acceptance counters (call at the start of each epoch)."""
        self._n_proposed = 0
        self._n_accepted = 0

    def refresh(self) -> None:
        """
        Recompute the cached theta for the start configuration from scratch.

        Must be called after the parameters change (optimizer step, weight
        averaging); otherwise the cache no longer equals b + w s and the
        acceptance ratios are computed against the wrong denominator.
        """
        self.start_theta = self.ansatz.theta(self.start_spins)

    def reset_state(self, spins: np.ndarray = None) -> None:
        """
        Reset the start configuration (and recompute its theta).

        Args:
            spins: New configuration. If None, generates a random one.
        """
        if spins is None:
            self.start_spins = self.rng.integers(0, 2, size=self.n_spins).astype(np.int8)
        else:
            self.start_spins = np.asarray(spins, dtype=np.int8).copy()

        self.start_theta = self.ansatz.theta(self.start_spins)
        self.reset_acceptance_stats()
