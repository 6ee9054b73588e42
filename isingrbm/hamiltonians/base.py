# isingrbm/hamiltonians/base.py
#
# Abstract base class for quantum Hamiltonians.
# The trainer and sampler only need the local energy of a configuration,
# evaluated from the ansatz and the configuration's cached theta.

from abc import ABC, abstractmethod
import numpy as np


class Hamiltonian(ABC):
    """
    Abstract base class for quantum Hamiltonians.

    Subclasses must implement `local_energy`, which computes
    E_loc(s) = <s|H|psi> / <s|psi> — the central quantity in VMC.
    The variational energy is the Monte Carlo average of E_loc over samples.
    """

    @abstractmethod
    def local_energy(self, spins: np.ndarray, theta: np.ndarray, ansatz) -> float:
        """
        Compute the local energy of one configuration.

        Args:
            spins:  numpy array of shape (n_spins,), values in {0, 1}
            theta:  cached hidden pre-activations for `spins`
            ansatz: the wavefunction providing single-flip amplitude ratios

        Returns:
            Local energy as a real number.
        """
        pass

    @property
    @abstractmethod
    def n_spins(self) -> int:
        """Return the number of spins in the system."""
        pass
