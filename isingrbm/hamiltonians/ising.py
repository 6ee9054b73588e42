# isingrbm/hamiltonians/ising.py
#
# 1D Transverse Field Ising Model (TFIM) on an open chain.
#
# H = -|J| * sum_j(sigma_j^z * sigma_{j+1}^z) - |B| * sum_j(sigma_j^x)
#
# Two competing terms:
#   - J term (diagonal): neighbouring spins want to align (or anti-align)
#   - B term (off-diagonal): transverse field flips spins into superpositions
#
# Configurations are stored as bits s_j in {0, 1}; the physical spin is
# sigma_j = 1 - 2 s_j. Only |J| enters the energy: the sign of J is carried
# separately as the chain's alignment, which fixes the sign convention of the
# spin-spin correlations.

import numpy as np

from .base import Hamiltonian
from ..errors import ValidationError


FERROMAGNETIC = 'F'
ANTIFERROMAGNETIC = 'A'


def validate_ising_strengths(ising_strengths) -> tuple:
    """
    Check an externally supplied [J, B] pair.

    Returns:
        (J, B) as floats.

    Raises:
        ValidationError: wrong shape, non-finite values, or |B| >= 1.
    """
    strengths = np.asarray(ising_strengths, dtype=float)
    if strengths.shape != (2,):
        raise ValidationError(
            f"Invalid size for ising_strengths: expected shape (2,), got "
            f"{strengths.shape}. Usage: ising_strengths = [J, B] where J is the "
            f"neighbour coupling strength and B is the transverse field strength."
        )
    if not np.all(np.isfinite(strengths)):
        raise ValidationError(f"Ising strengths must be finite, got {strengths}.")
    J, B = float(strengths[0]), float(strengths[1])
    if abs(B) >= 1.0:
        raise ValidationError(
            f"Invalid field strength B={B}: try again with |B| < 1."
        )
    return J, B


class IsingHamiltonian(Hamiltonian):
    """
    1D Transverse Field Ising Model with open boundary conditions.

    H = -|J| * sum_{j<n-1} sigma_j sigma_{j+1} - |B| * sum_j sigma_j^x
    """

    def __init__(self, n_spins: int, J: float = 1.0, B: float = 0.5):
        """
        Args:
            n_spins: Number of spins in the chain.
            J:       Coupling strength. J >= 0 is ferromagnetic, J < 0 is
                     anti-ferromagnetic.
            B:       Transverse field strength, |B| < 1.

        Raises:
            ValidationError: if n_spins < 1 or (J, B) is invalid.
        """
        if int(n_spins) < 1:
            raise ValidationError(f"n_spins must be positive, got {n_spins}.")
        self._n_spins = int(n_spins)
        self.J, self.B = validate_ising_strengths([J, B])
        self._alignment = ANTIFERROMAGNETIC if self.J < 0 else FERROMAGNETIC

    @classmethod
    def from_strengths(cls, n_spins: int, ising_strengths) -> 'IsingHamiltonian':
        """Build from an [J, B] array as supplied on the command line or config."""
        J, B = validate_ising_strengths(ising_strengths)
        return cls(n_spins, J=J, B=B)

    @property
    def n_spins(self) -> int:
        return self._n_spins

    @property
    def alignment(self) -> str:
        """'F' (ferromagnetic, J >= 0) or 'A' (anti-ferromagnetic, J < 0)."""
        return self._alignment

    @property
    def ising_strengths(self) -> np.ndarray:
        return np.array([self.J, self.B])

    def coupling_energy(self, spins: np.ndarray) -> float:
        """Diagonal term: -|J| * sum of nearest-neighbour products (open chain)."""
        sigma = 1.0 - 2.0 * np.asarray(spins, dtype=float)
        return -abs(self.J) * float(np.sum(sigma[:-1] * sigma[1:]))

    def local_energy(self, spins: np.ndarray, theta: np.ndarray, ansatz) -> float:
        """
        Compute E_loc(s) for the TFIM.

        Two contributions:
          1. Diagonal (ZZ): -|J| * sum_j sigma_j sigma_{j+1}
             Just a product of neighbouring spin values.

          2. Off-diagonal (X): -|B| * sum_j Re[psi(s^j) / psi(s)]
             s^j = configuration with spin j flipped. The ratios come from the
             cached theta, so no full wavefunction evaluation is needed. The
             imaginary part of the sum is discarded.

        Args:
            spins:  array of shape (n_spins,) with values 0 or 1
            theta:  cached theta = b + w s for `spins`
            ansatz: wavefunction exposing flip_ratios(spins, theta)

        Returns:
            Local energy as a real float.
        """
        ratios = ansatz.flip_ratios(spins, theta)
        transverse = -abs(self.B) * float(np.sum(np.real(ratios)))
        return self.coupling_energy(spins) + transverse

    def __repr__(self) -> str:
        return (f"IsingHamiltonian(n_spins={self._n_spins}, J={self.J}, "
                f"B={self.B}, alignment='{self._alignment}')")
