"""
activation.py
~~~~~~~~~~~~~

Output functions applied to every unit after the weighted sum.

Derivatives are expressed in terms of the already-activated value, so
backpropagation can reuse the activations cached by a forward pass.
"""

from typing import Dict

import numpy as np


class Activation:
    """Base class for output functions."""

    name = 'base'

    def __call__(self, x: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def prime(self, a: np.ndarray) -> np.ndarray:
        """Derivative evaluated at the activated value ``a``."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class Sigmoid(Activation):
    """Logistic function 1 / (1 + e^-x)."""

    name = 'sigmoid'

    def __call__(self, x: np.ndarray) -> np.ndarray:
        # exp overflows to inf for very negative x, which saturates to 0
        with np.errstate(over='ignore'):
            return 1.0 / (1.0 + np.exp(-x))

    def prime(self, a: np.ndarray) -> np.ndarray:
        return a * (1.0 - a)


class Identity(Activation):
    """Linear output, for regression on unbounded targets."""

    name = 'identity'

    def __call__(self, x: np.ndarray) -> np.ndarray:
        return np.asarray(x, dtype=float)

    def prime(self, a: np.ndarray) -> np.ndarray:
        return np.ones_like(a, dtype=float)


ACTIVATIONS: Dict[str, type] = {
    Sigmoid.name: Sigmoid,
    Identity.name: Identity
}


def get_activation(name) -> Activation:
    """
    Look up an activation by name.

    Args:
        name: 'sigmoid', 'identity', or an Activation instance

    Returns:
        Activation instance

    Raises:
        ValueError: If the name is unknown
    """
    if isinstance(name, Activation):
        return name
    try:
        return ACTIVATIONS[str(name).lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown activation '{name}', expected one of "
            f"{sorted(ACTIVATIONS)}"
        ) from None
