# isingrbm/ansatz/base.py
#
# Abstract base class for neural network quantum state ansatze.
# An "ansatz" is a parameterized wavefunction psi(s; alpha) used to
# approximate the true quantum ground state. The sampler and the Ising
# estimator only ever touch it through amplitude ratios and the cached
# hidden pre-activations theta, so the wavefunction is never normalized.

from abc import ABC, abstractmethod
import numpy as np


class Ansatz(ABC):
    """
    Abstract base class for neural quantum state ansatze.

    Every ansatz must provide:
      - theta(s): hidden pre-activations for a configuration (the theta-cache)
      - incremental_theta(theta, i, ds): O(m) cache update after one flip
      - amplitude_ratio(s1, s2, theta1): psi(s2)/psi(s1) for a single flip
      - log_derivatives(samples, thetas): O_k = d(log psi)/d(alpha_k) per sample
      - parameters property: flat array of all trainable parameters
    """

    @abstractmethod
    def theta(self, spins: np.ndarray) -> np.ndarray:
        """
        Recompute the hidden pre-activations from scratch.

        Args:
            spins: array of shape (n_spins,) with values 0 or 1

        Returns:
            Complex array of shape (n_hidden,).
        """
        pass

    @abstractmethod
    def incremental_theta(self, theta: np.ndarray, i: int, ds: int) -> np.ndarray:
        """Return theta updated for a change ds of spin i (no full recompute)."""
        pass

    @abstractmethod
    def amplitude_ratio(self, s1: np.ndarray, s2: np.ndarray,
                        theta1: np.ndarray) -> complex:
        """
        Compute psi(s2)/psi(s1) for two configurations that differ at one index.

        Args:
            s1:     current configuration, shape (n_spins,)
            s2:     proposed configuration, identical to s1 except at one site
            theta1: cached theta for s1

        Returns:
            The complex amplitude ratio.
        """
        pass

    def amplitude_ratio_squared(self, s1: np.ndarray, s2: np.ndarray,
                                theta1: np.ndarray) -> float:
        """|psi(s2)/psi(s1)|^2 — the Metropolis acceptance ratio."""
        ratio = self.amplitude_ratio(s1, s2, theta1)
        return float((np.conj(ratio) * ratio).real)

    @abstractmethod
    def log_derivatives(self, samples: np.ndarray, thetas: np.ndarray) -> tuple:
        """
        Compute the log-derivatives of psi for every sample, grouped by parameter.

        Returns:
            Tuple of arrays, one per parameter group, each with the sample
            index on axis 0.
        """
        pass

    @property
    @abstractmethod
    def parameters(self) -> np.ndarray:
        """Return all trainable parameters as a single flat array."""
        pass

    @property
    def n_params(self) -> int:
        """Total number of trainable parameters."""
        return len(self.parameters)
