# isingrbm/ansatz/rbm.py
#
# Complex-valued Restricted Boltzmann Machine as a neural quantum state ansatz.
#
# The RBM has n visible units (physical spins, s_j in {0, 1}) and m hidden units.
# Tracing out the hidden layer gives an unnormalized closed-form wavefunction:
#
#   psi(s) = exp(a . s) * prod_i [1 + exp(theta_i)],   theta = b + w s
#
# The hidden biases b and weights w are complex so the RBM can carry a phase.
# Only ratios psi(s')/psi(s) between configurations that differ by one spin
# are ever needed, and those only touch one column of w, so we keep theta
# cached and update it in O(m) instead of recomputing w s in O(m*n).

import numpy as np

from .base import Ansatz
from ..errors import ValidationError


class ComplexRBM(Ansatz):
    """
    Complex Restricted Boltzmann Machine over {0, 1} spin configurations.

    Parameters:
        a (n,):    visible biases — real
        b (m,):    hidden biases — complex
        w (m, n):  weights connecting hidden unit i to visible unit j — complex

    Total parameters: n + m + m*n
    """

    # Moments of the weight initialisation: real and imaginary parts are drawn
    # independently. Only mean and sigma matter, not the exact generator.
    W_REAL_MEAN, W_REAL_SIGMA = 0.01, 1e-4
    W_IMAG_MEAN, W_IMAG_SIGMA = -0.005, 1e-5

    def __init__(self, n_spins: int, n_hidden: int, rng=None):
        """
        Args:
            n_spins:  Number of visible units (= physical spins).
            n_hidden: Number of hidden units. More hidden units capture more
                      multi-spin correlations but cost O(m) per flip.
            rng:      numpy Generator or integer seed for the initialisation.

        Raises:
            ValidationError: if n_spins < 1 or n_hidden < 1.
        """
        if int(n_spins) < 1 or int(n_hidden) < 1:
            raise ValidationError(
                f"RBM needs at least one visible and one hidden unit, "
                f"got n_spins={n_spins}, n_hidden={n_hidden}."
            )
        self.n_spins = int(n_spins)
        self.n_hidden = int(n_hidden)
        self.initialize(rng)

    def initialize(self, rng=None) -> None:
        """
        (Re-)initialise all parameters.

        Biases start at zero; weights start near a small constant so that the
        initial wavefunction is close to uniform but not exactly symmetric.
        """
        rng = np.random.default_rng(rng)
        n, m = self.n_spins, self.n_hidden

        self.a = np.zeros(n, dtype=float)
        self.b = np.zeros(m, dtype=complex)
        self.w = (rng.normal(self.W_REAL_MEAN, self.W_REAL_SIGMA, size=(m, n))
                  + 1j * rng.normal(self.W_IMAG_MEAN, self.W_IMAG_SIGMA, size=(m, n)))

    # ------------------------------------------------------------------
    # theta-cache
    # ------------------------------------------------------------------

    def theta(self, spins: np.ndarray) -> np.ndarray:
        """theta = b + w s, computed from scratch in O(m*n)."""
        return self.b + self.w @ np.asarray(spins, dtype=float)

    def incremental_theta(self, theta: np.ndarray, i: int, ds: int) -> np.ndarray:
        """theta + w[:, i] * ds — the cache update after spin i changes by ds."""
        return theta + self.w[:, i] * ds

    # ------------------------------------------------------------------
    # Amplitude ratios
    # ------------------------------------------------------------------

    def amplitude_ratio(self, s1: np.ndarray, s2: np.ndarray,
                        theta1: np.ndarray) -> complex:
        """
        psi(s2)/psi(s1) for configurations that differ at exactly one index i.

            ratio = exp( a_i ds + sum_k [log(1 + e^theta2_k) - log(1 + e^theta1_k)] )

        with ds = s2_i - s1_i and theta2 = theta1 + w[:, i] ds.
        """
        changed = np.flatnonzero(np.asarray(s1) != np.asarray(s2))
        if len(changed) != 1:
            raise ValueError(
                f"Configurations must differ at exactly one site, "
                f"they differ at {len(changed)}."
            )
        i = int(changed[0])
        ds = int(s2[i]) - int(s1[i])
        return self._ratio(theta1, i, ds)

    def flip_ratio(self, spins: np.ndarray, theta: np.ndarray, i: int) -> complex:
        """psi(s^i)/psi(s) where s^i is s with spin i flipped."""
        return self._ratio(theta, i, 1 - 2 * int(spins[i]))

    def flip_ratios(self, spins: np.ndarray, theta: np.ndarray) -> np.ndarray:
        """
        All n single-flip ratios psi(s^j)/psi(s) at once.

        Flipping spin j changes it by ds_j = 1 - 2 s_j, so column j of
        theta[:, None] + w * ds is the theta of the flipped configuration.
        """
        ds = 1.0 - 2.0 * np.asarray(spins, dtype=float)
        theta_flipped = theta[:, np.newaxis] + self.w * ds[np.newaxis, :]
        log_hidden = (np.log1p(np.exp(theta_flipped))
                      - np.log1p(np.exp(theta))[:, np.newaxis])
        return np.exp(self.a * ds + np.sum(log_hidden, axis=0))

    def _ratio(self, theta1: np.ndarray, i: int, ds: int) -> complex:
        theta2 = self.incremental_theta(theta1, i, ds)
        log_hidden = np.sum(np.log1p(np.exp(theta2)) - np.log1p(np.exp(theta1)))
        return complex(np.exp(self.a[i] * ds + log_hidden))

    # ------------------------------------------------------------------
    # Log-derivatives (for stochastic reconfiguration)
    # ------------------------------------------------------------------

    def log_derivatives(self, samples: np.ndarray, thetas: np.ndarray) -> tuple:
        """
        Log-derivatives O_k = d(log psi)/d(alpha_k) for every sample.

        Analytical form:
            d/d(a_j)   = s_j
            d/d(b_i)   = e^theta_i / (1 + e^theta_i)
            d/d(w_ij)  = s_j * e^theta_i / (1 + e^theta_i)

        Args:
            samples: shape (N, n) configurations
            thetas:  shape (N, m) cached theta for each configuration

        Returns:
            (O_a, O_b, O_w) with shapes (N, n) real, (N, m) and (N, m, n) complex.
        """
        O_a = np.asarray(samples, dtype=float)
        exp_theta = np.exp(thetas)
        O_b = exp_theta / (1.0 + exp_theta)
        O_w = O_b[:, :, np.newaxis] * O_a[:, np.newaxis, :]
        return O_a, O_b, O_w

    # ------------------------------------------------------------------
    # Parameter management
    # ------------------------------------------------------------------

    @property
    def parameters(self) -> np.ndarray:
        """All parameters as a flat complex vector: [a | b | w.flatten()]."""
        return np.concatenate([self.a.astype(complex), self.b, self.w.ravel()])

    def update_parameters(self, delta_a: np.ndarray, delta_b: np.ndarray,
                          delta_w: np.ndarray) -> None:
        """Apply an in-place update per parameter group: alpha <- alpha + delta."""
        self.a += np.real(delta_a)
        self.b += delta_b
        self.w += delta_w

    def __repr__(self) -> str:
        return (
            f"ComplexRBM(n_visible={self.n_spins}, n_hidden={self.n_hidden}, "
            f"n_params={self.n_params})"
        )
