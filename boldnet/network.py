"""
network.py
~~~~~~~~~~

A fully connected feedforward neural network without biases.

The network keeps one weight matrix per connectivity layer. Matrix ``n``
has shape ``(sizes[n], sizes[n + 1])`` and entry ``(i, j)`` is the weight
from unit ``i`` of activation layer ``n`` to unit ``j`` of layer ``n + 1``.
Weights are drawn from a zero-mean, unit-variance Gaussian.
"""

import logging
import numbers
from typing import List, Optional, Sequence

import numpy as np

from boldnet.activation import Activation, get_activation
from boldnet.exceptions import DimensionError, ShapeError

# Configure module logger
logger = logging.getLogger(__name__)


def _validate_sizes(sizes: Sequence[int]) -> List[int]:
    """Check the layer-size invariant and return the sizes as a list."""
    try:
        sizes = list(sizes)
    except TypeError:
        raise ShapeError(f"Layer sizes must be a sequence, got {sizes!r}") from None
    if any(isinstance(s, bool) or not isinstance(s, numbers.Integral) for s in sizes):
        raise ShapeError(f"Layer sizes must be integers, got {sizes!r}")
    sizes = [int(s) for s in sizes]

    if len(sizes) < 2:
        raise ShapeError(
            f"Need at least an input and an output layer, got {sizes}"
        )
    if any(s < 1 for s in sizes):
        raise ShapeError(f"Every layer needs at least one unit, got {sizes}")
    return sizes


def _validate_weights(weights: Sequence) -> List[np.ndarray]:
    """Convert weights to float matrices and check they chain together."""
    if len(weights) < 1:
        raise ShapeError("A network needs at least one weight matrix")

    matrices = []
    for n, w in enumerate(weights):
        matrix = np.array(w, dtype=float)
        if matrix.ndim != 2 or matrix.size == 0:
            raise ShapeError(
                f"Weight matrix {n} must be a non-empty 2-D array, "
                f"got shape {matrix.shape}"
            )
        matrices.append(matrix)

    for n in range(len(matrices) - 1):
        cols = matrices[n].shape[1]
        rows = matrices[n + 1].shape[0]
        if cols != rows:
            raise ShapeError(
                f"Weight matrix {n} has {cols} columns but matrix {n + 1} "
                f"has {rows} rows"
            )
    return matrices


class Network:
    """
    Feedforward network with a pluggable output function.

    Construct either from layer sizes (random weights) or from an explicit
    list of weight matrices:

        >>> net = Network([2, 2, 1])
        >>> net = Network(weights=[[[0.5, 0.5], [0.5, 0.5]], [[0.3], [0.3]]])
    """

    def __init__(
        self,
        sizes: Optional[Sequence[int]] = None,
        weights: Optional[Sequence] = None,
        activation='sigmoid',
        seed: Optional[int] = None
    ):
        """
        Initialize the network.

        Args:
            sizes: Number of units in each activation layer, input first
            weights: Explicit weight matrices, used instead of sizes
            activation: Output function name or Activation instance
            seed: Seed for the weight generator

        Raises:
            ShapeError: If the sizes or weights are not a valid network
            ValueError: If both or neither of sizes and weights are given
        """
        if (sizes is None) == (weights is None):
            raise ValueError("Provide exactly one of sizes or weights")

        self.activation: Activation = get_activation(activation)
        self._rng = np.random.default_rng(seed)

        if weights is not None:
            self._weights = _validate_weights(weights)
            self._sizes = [w.shape[0] for w in self._weights]
            self._sizes.append(self._weights[-1].shape[1])
        else:
            self._sizes = _validate_sizes(sizes)
            self._weights = []
            self.randomize_weights()

        self._activations: List[np.ndarray] = [
            np.zeros(size) for size in self._sizes
        ]

    @classmethod
    def from_file(cls, filename: str, activation='sigmoid') -> 'Network':
        """Build a network from a weights file."""
        from boldnet.weights_io import load_weights
        return cls(weights=load_weights(filename), activation=activation)

    def store_weights(self, filename: str) -> None:
        """Write the weights to a file in the text weights format."""
        from boldnet.weights_io import store_weights
        store_weights(self._weights, filename)

    @property
    def sizes(self) -> List[int]:
        """Number of units in each activation layer."""
        return list(self._sizes)

    @property
    def num_layers(self) -> int:
        """Number of connectivity layers (weight matrices)."""
        return len(self._weights)

    @property
    def activations(self) -> List[np.ndarray]:
        """Activation vectors from the most recent call to propagate."""
        return [a.copy() for a in self._activations]

    def get_weights(self) -> List[np.ndarray]:
        """Return a copy of every weight matrix."""
        return [w.copy() for w in self._weights]

    def set_weights(self, weights: Sequence) -> None:
        """
        Replace all weights, keeping the architecture.

        Raises:
            ShapeError: If the new weights describe a different architecture
        """
        matrices = _validate_weights(weights)
        self._check_shapes(matrices)
        self._weights = matrices

    def randomize_weights(self) -> None:
        """Redraw every weight from a standard normal distribution."""
        self._weights = [
            self._rng.standard_normal((self._sizes[n], self._sizes[n + 1]))
            for n in range(len(self._sizes) - 1)
        ]
        logger.debug(f"Randomized weights for architecture {self._sizes}")

    def apply_update(self, delta: Sequence[np.ndarray], scale: float = 1.0) -> None:
        """
        Add ``scale * delta`` to the weights, layer by layer.

        Args:
            delta: One array per weight matrix, with matching shapes
            scale: Multiplier applied to delta (negative to undo a step)

        Raises:
            ShapeError: If delta does not match the weight shapes
        """
        self._check_shapes(delta)
        for w, d in zip(self._weights, delta):
            w += scale * d

    def _check_shapes(self, matrices: Sequence) -> None:
        if len(matrices) != len(self._weights):
            raise ShapeError(
                f"Expected {len(self._weights)} matrices, got {len(matrices)}"
            )
        for n, (w, m) in enumerate(zip(self._weights, matrices)):
            if np.shape(m) != w.shape:
                raise ShapeError(
                    f"Matrix {n} has shape {np.shape(m)}, expected {w.shape}"
                )

    def propagate(self, inputs: Sequence[float]) -> np.ndarray:
        """
        Run the inputs through the network.

        Every intermediate activation vector is kept for backpropagation
        and can be read back through ``activations``.

        Args:
            inputs: One value per input unit

        Returns:
            np.ndarray: Activations of the output units

        Raises:
            DimensionError: If the input length does not match the input layer
        """
        a = np.asarray(inputs, dtype=float).reshape(-1)
        if a.shape[0] != self._sizes[0]:
            raise DimensionError(
                f"Expected {self._sizes[0]} inputs, got {a.shape[0]}"
            )

        self._activations[0] = a.copy()
        for n, w in enumerate(self._weights):
            a = self.activation(a @ w)
            self._activations[n + 1] = a

        return a.copy()

    def propagate_batch(self, inputs: np.ndarray) -> np.ndarray:
        """
        Propagate several input vectors at once, one per row.

        The activation cache is left untouched.

        Returns:
            np.ndarray: Output matrix with one row per input row
        """
        a = np.asarray(inputs, dtype=float)
        if a.ndim != 2 or a.shape[1] != self._sizes[0]:
            raise DimensionError(
                f"Expected an (m, {self._sizes[0]}) input matrix, "
                f"got shape {a.shape}"
            )
        for w in self._weights:
            a = self.activation(a @ w)
        return a

    def __repr__(self) -> str:
        return (
            f"Network(sizes={self._sizes}, "
            f"activation={self.activation.name!r})"
        )
