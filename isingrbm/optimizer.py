# isingrbm/optimizer.py
#
# Stochastic Reconfiguration (SR) with ADAM smoothing.
#
# Standard gradient descent treats all parameter directions equally, but for
# wavefunctions this is wrong: different parameter changes can have wildly
# different effects on the quantum state. SR uses the covariance of the
# log-derivatives (the quantum geometric tensor) as a preconditioner:
#
#     S x = F,   S_kl = <dO_k^* dO_l>,   F_k = <dO_k^* dE_loc>
#
# x = S^{-1} F is the projection of -H|psi> onto the tangent space of the
# variational manifold, i.e. one step of imaginary-time evolution. Each
# parameter group (a, b, w) is solved independently; for w the matrix is
# block-diagonal across visible indices j, so there is one m x m solve per j.
# The SR direction is then passed through an ADAM moment filter before the
# update alpha <- alpha - dtau * x_hat.

from concurrent.futures import ThreadPoolExecutor

import numpy as np
from scipy.linalg import cho_factor, cho_solve

from .errors import SolverError


# ============================================================
# Time Step
# ============================================================

def time_step(n_spins: int) -> float:
    """Imaginary-time step dtau: 1/n for n < 100, else 10/n."""
    if n_spins < 100:
        return 1.0 / n_spins
    return 10.0 / n_spins


def imaginary_time(epoch: int, n_spins: int) -> float:
    """Imaginary time tau reached at the start of `epoch` (1-based)."""
    return (epoch - 1) * time_step(n_spins)


# ============================================================
# Hermitian Positive-Definite Solve
# ============================================================

def solve_hermitian(S_lower: np.ndarray, F: np.ndarray) -> np.ndarray:
    """
    Solve S x = F for a Hermitian positive-definite S given by its lower triangle.

    Only the lower triangle (diagonal included) of S_lower is read. Uses a
    Cholesky factorisation, which fails exactly when S is not positive definite.

    Raises:
        SolverError: S is not positive definite or contains non-finite values.
    """
    if not (np.all(np.isfinite(S_lower)) and np.all(np.isfinite(F))):
        raise SolverError("SR linear system contains non-finite entries.")
    try:
        factor = cho_factor(S_lower, lower=True, check_finite=False)
    except np.linalg.LinAlgError as exc:
        raise SolverError(
            f"SR matrix is not positive definite ({exc}); the regularizer "
            f"is too small for this sample covariance."
        ) from exc
    return cho_solve(factor, F, check_finite=False)


# ============================================================
# ADAM Moment Filter
# ============================================================

class AdamFilter:
    """
    ADAM (Kingma & Ba, 2014) moment filter for one parameter group.

    Maintains exponential moving averages of the update direction (first
    moment) and its square (second moment), and returns the bias-corrected
    ratio. The state has the shape of the parameter group it shadows and
    lives until reset().
    """

    def __init__(self, beta1: float = 0.99, beta2: float = 0.999,
                 epsilon: float = 1e-8):
        """
        Args:
            beta1:   Decay rate for the first moment.
            beta2:   Decay rate for the second moment.
            epsilon: Numerical stability constant.
        """
        self.beta1 = beta1
        self.beta2 = beta2
        self.epsilon = epsilon

        # Moment estimates, initialized lazily on first call
        self.p = None
        self.r = None

    def reset(self) -> None:
        self.p = None
        self.r = None

    def __call__(self, x: np.ndarray, epoch: int) -> np.ndarray:
        """Feed the SR direction x for `epoch` (1-based) and return x_hat."""
        if self.p is None:
            self.p = np.zeros_like(x)
            self.r = np.zeros_like(x)

        # Biased moment estimates. x**2 is the plain square, complex for b and w.
        self.p = self.beta1 * self.p + (1 - self.beta1) * x
        self.r = self.beta2 * self.r + (1 - self.beta2) * x ** 2

        # Bias correction (important in early epochs when p, r are near 0)
        p_hat = self.p / (1 - self.beta1 ** epoch)
        r_hat = self.r / (1 - self.beta2 ** epoch)

        return p_hat / (np.sqrt(r_hat) + self.epsilon)


# ============================================================
# Stochastic Reconfiguration
# ============================================================

class StochasticReconfiguration:
    """
    Stochastic Reconfiguration — the natural gradient for quantum states.

    Per epoch:
      1. log-derivatives O_a, O_b, O_w from the batch
      2. centre each column about its sample mean
      3. F = conj(O)^T e / (N - 1)
      4. S = conj(O)^T O / (N - 1), lower triangle, + delta on the diagonal
      5. Cholesky solve per group (per visible index j for w)
      6. ADAM filter per group
      7. alpha <- alpha - dtau * x_hat
    """

    def __init__(self, delta: float = 1e-5, beta1: float = 0.99,
                 beta2: float = 0.999, epsilon: float = 1e-8,
                 n_threads: int = 1):
        """
        Args:
            delta:     Regularizer added to every diagonal entry of S so the
                       matrix stays positive definite.
            beta1:     ADAM first-moment decay.
            beta2:     ADAM second-moment decay.
            epsilon:   ADAM stability constant.
            n_threads: Thread-pool size for the independent per-column solves
                       of the weight update. 1 solves sequentially.
        """
        self.delta = delta
        self.n_threads = max(1, int(n_threads))
        self.filters = {
            name: AdamFilter(beta1=beta1, beta2=beta2, epsilon=epsilon)
            for name in ('a', 'b', 'w')
        }

    def reset(self) -> None:
        """Clear the ADAM state. Call whenever the model is re-initialised."""
        for f in self.filters.values():
            f.reset()

    # ------------------------------------------------------------------
    # Linear system
    # ------------------------------------------------------------------

    @staticmethod
    def _centre(O: np.ndarray) -> np.ndarray:
        return O - np.mean(O, axis=0, keepdims=True)

    def build_system(self, O: np.ndarray, e_centered: np.ndarray) -> tuple:
        """
        Build the regularized SR system for one parameter group.

        Args:
            O:          (N, k) log-derivatives, or (N, k, J) for J independent
                        blocks sharing the sample axis.
            e_centered: (N,) centred local energies.

        Returns:
            (S_lower, F): S_lower of shape (k, k) or (J, k, k) holding only
            the lower triangle; F of shape (k,) or (J, k).

        Raises:
            SolverError: fewer than two samples (the covariance is undefined).
        """
        n_samples = O.shape[0]
        if n_samples < 2:
            raise SolverError(
                f"SR needs at least two samples to estimate a covariance, got {n_samples}."
            )
        covar_norm = 1.0 / (n_samples - 1)
        dO = self._centre(O)
        dO_conj = np.conj(dO)

        if dO.ndim == 2:
            F = covar_norm * (dO_conj.T @ e_centered)
            S = covar_norm * (dO_conj.T @ dO)
        else:
            F = covar_norm * np.einsum('kij,k->ji', dO_conj, e_centered)
            S = covar_norm * np.einsum('kij,klj->jil', dO_conj, dO)

        S = np.tril(S)
        diag = np.arange(S.shape[-1])
        S[..., diag, diag] = np.real(S[..., diag, diag]) + self.delta
        return S, F

    def natural_gradient(self, ansatz, batch, e_centered: np.ndarray) -> tuple:
        """
        Solve S x = F for every parameter group.

        Returns:
            (x_a, x_b, x_w) with the shapes of a, b and w.
        """
        O_a, O_b, O_w = ansatz.log_derivatives(batch.samples, batch.thetas)

        S_a, F_a = self.build_system(O_a, e_centered)
        x_a = np.real(solve_hermitian(S_a, F_a))

        S_b, F_b = self.build_system(O_b, e_centered)
        x_b = solve_hermitian(S_b, F_b)

        # One independent m x m system per visible index j
        S_w, F_w = self.build_system(O_w, e_centered)
        n_visible = S_w.shape[0]

        def solve_column(j):
            return solve_hermitian(S_w[j], F_w[j])

        if self.n_threads > 1 and n_visible > 1:
            with ThreadPoolExecutor(max_workers=self.n_threads) as pool:
                columns = list(pool.map(solve_column, range(n_visible)))
        else:
            columns = [solve_column(j) for j in range(n_visible)]
        x_w = np.stack(columns, axis=1)

        return x_a, x_b, x_w

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def step(self, ansatz, batch, e_centered: np.ndarray, epoch: int) -> float:
        """
        Apply one SR + ADAM update to the ansatz in place.

        Args:
            ansatz:     ComplexRBM to update.
            batch:      SampleBatch with samples and thetas.
            e_centered: local energies minus their batch mean.
            epoch:      current epoch (1-based), used for ADAM bias correction.

        Returns:
            Norm of the applied parameter change.

        Raises:
            SolverError: if any SR system is not positive definite.
        """
        dtau = time_step(ansatz.n_spins)
        x_a, x_b, x_w = self.natural_gradient(ansatz, batch, e_centered)

        delta_a = -dtau * self.filters['a'](x_a, epoch)
        delta_b = -dtau * self.filters['b'](x_b, epoch)
        delta_w = -dtau * self.filters['w'](x_w, epoch)

        ansatz.update_parameters(delta_a, delta_b, delta_w)

        return float(np.sqrt(np.sum(np.abs(delta_a) ** 2)
                             + np.sum(np.abs(delta_b) ** 2)
                             + np.sum(np.abs(delta_w) ** 2)))
