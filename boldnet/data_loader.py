"""
data_loader.py
~~~~~~~~~~~~~~

Loading and saving training data.

A training data file starts with the number of cases, the number of
inputs and the number of outputs. Each case then gives its input values
followed by its expected output values, space separated:

    4 2 1
    0 0
    0
    0 1
    1
    1 0
    1
    1 1
    0

Only the token order matters, line breaks are not significant.
"""

import logging
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from boldnet.exceptions import DimensionError, MalformedPersistedState

logger = logging.getLogger(__name__)


class TrainingSet:
    """
    An ordered collection of (input, expected output) training cases.

    Inputs and expected outputs are stored as two 2-D float arrays with
    one row per case.
    """

    def __init__(self, inputs, expected):
        self.inputs = np.atleast_2d(np.asarray(inputs, dtype=float))
        self.expected = np.atleast_2d(np.asarray(expected, dtype=float))

        if self.inputs.ndim != 2 or self.expected.ndim != 2:
            raise DimensionError("Inputs and expected outputs must be 2-D")
        if self.inputs.shape[0] != self.expected.shape[0]:
            raise DimensionError(
                f"{self.inputs.shape[0]} inputs but "
                f"{self.expected.shape[0]} expected outputs"
            )

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[Sequence[float], Sequence[float]]]) -> 'TrainingSet':
        """Build a training set from (input, expected) pairs."""
        pairs = list(pairs)
        if not pairs:
            raise DimensionError("A training set needs at least one case")
        inputs = [list(x) for x, _ in pairs]
        expected = [list(y) for _, y in pairs]
        if len({len(x) for x in inputs}) != 1 or len({len(y) for y in expected}) != 1:
            raise DimensionError("All cases must have the same widths")
        return cls(inputs, expected)

    @property
    def input_size(self) -> int:
        return self.inputs.shape[1]

    @property
    def output_size(self) -> int:
        return self.expected.shape[1]

    def validate_for(self, sizes: Sequence[int]) -> None:
        """
        Check that every case fits a network with the given layer sizes.

        Raises:
            DimensionError: If the input or output width is wrong
        """
        if self.input_size != sizes[0]:
            raise DimensionError(
                f"Training inputs have {self.input_size} values, "
                f"network expects {sizes[0]}"
            )
        if self.output_size != sizes[-1]:
            raise DimensionError(
                f"Expected outputs have {self.output_size} values, "
                f"network produces {sizes[-1]}"
            )

    def __len__(self) -> int:
        return self.inputs.shape[0]

    def __iter__(self) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
        return iter(zip(self.inputs, self.expected))

    def __getitem__(self, index: int) -> Tuple[np.ndarray, np.ndarray]:
        return self.inputs[index], self.expected[index]

    def __repr__(self) -> str:
        return (
            f"TrainingSet(cases={len(self)}, inputs={self.input_size}, "
            f"outputs={self.output_size})"
        )


def _tokens(text: str) -> Iterator[Tuple[int, str]]:
    for number, line in enumerate(text.splitlines(), start=1):
        for token in line.split():
            yield number, token


def loads_training_data(text: str, filename: Optional[str] = None) -> TrainingSet:
    """
    Parse the training data text format.

    Raises:
        MalformedPersistedState: On a bad header, a missing value or a
            non-numeric token
    """
    tokens = _tokens(text)

    def next_value(kind, what):
        try:
            number, token = next(tokens)
        except StopIteration:
            raise MalformedPersistedState(
                f"unexpected end of file while reading {what}", filename
            ) from None
        try:
            return kind(token)
        except ValueError:
            raise MalformedPersistedState(
                f"expected a number for {what}, got '{token}'",
                filename, number
            ) from None

    count = next_value(int, 'case count')
    n_in = next_value(int, 'input width')
    n_out = next_value(int, 'output width')
    if count < 1 or n_in < 1 or n_out < 1:
        raise MalformedPersistedState(
            f"header values must be positive, got {count} {n_in} {n_out}",
            filename, 1
        )

    inputs = np.empty((count, n_in))
    expected = np.empty((count, n_out))
    for case in range(count):
        for i in range(n_in):
            inputs[case, i] = next_value(float, f'input {i} of case {case}')
        for i in range(n_out):
            expected[case, i] = next_value(float, f'output {i} of case {case}')

    leftover = next(tokens, None)
    if leftover is not None:
        raise MalformedPersistedState(
            f"unexpected token '{leftover[1]}' after {count} cases",
            filename, leftover[0]
        )

    return TrainingSet(inputs, expected)


def load_training_data(filename: str) -> TrainingSet:
    """
    Load a training set from a file.

    Args:
        filename: Path to the training data file

    Returns:
        TrainingSet: The parsed cases
    """
    with open(filename, 'r') as f:
        training_set = loads_training_data(f.read(), filename)
    logger.info(f"Loaded {training_set!r} from {filename}")
    return training_set


def dumps_training_data(training_set: TrainingSet) -> str:
    """Serialize a training set, one line per vector."""
    lines: List[str] = [
        f"{len(training_set)} {training_set.input_size} "
        f"{training_set.output_size}"
    ]
    for x, y in training_set:
        lines.append(' '.join(repr(float(v)) for v in x))
        lines.append(' '.join(repr(float(v)) for v in y))
    return '\n'.join(lines) + '\n'


def save_training_data(filename: str, training_set: TrainingSet) -> None:
    """Write a training set to a file."""
    with open(filename, 'w') as f:
        f.write(dumps_training_data(training_set))
    logger.info(f"Saved {training_set!r} to {filename}")
