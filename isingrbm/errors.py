# isingrbm/errors.py
#
# Fatal error taxonomy for training. None of these are retried: each one
# means either bad input or a genuine numerical breakdown of the optimization.

import numpy as np


class NQSError(Exception):
    """Base class for all training errors raised by isingrbm."""


class ValidationError(NQSError, ValueError):
    """Malformed Ising parameters, |B| >= 1, or invalid network sizes."""


class NumericalInstabilityError(NQSError, FloatingPointError):
    """The averaged energy became NaN: the optimization diverged."""


class SolverError(NQSError, np.linalg.LinAlgError):
    """The stochastic-reconfiguration matrix is not positive definite."""
