# isingrbm/ansatz/__init__.py
#
# Exposes the neural network ansatz at the package level so you can write:
#
#   from isingrbm.ansatz import ComplexRBM

from .base import Ansatz
from .rbm import ComplexRBM

__all__ = ["Ansatz", "ComplexRBM"]
