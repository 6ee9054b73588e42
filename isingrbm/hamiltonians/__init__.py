# isingrbm/hamiltonians/__init__.py
#
# Exposes the Ising Hamiltonian at the package level so you can write:
#
#   from isingrbm.hamiltonians import IsingHamiltonian

from .base import Hamiltonian
from .ising import (
    IsingHamiltonian,
    validate_ising_strengths,
    FERROMAGNETIC,
    ANTIFERROMAGNETIC,
)

__all__ = [
    "Hamiltonian",
    "IsingHamiltonian",
    "validate_ising_strengths",
    "FERROMAGNETIC",
    "ANTIFERROMAGNETIC",
]
