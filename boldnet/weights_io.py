"""
weights_io.py
~~~~~~~~~~~~~

Text format for network weights.

The first line holds the size of every activation layer. Each weight
matrix follows as a block of space-separated rows, blocks separated by a
blank line:

    2 2 1

    0.5 0.5
    0.5 0.5

    0.3
    0.3

Values are written with ``repr`` so reading a file back gives the exact
same floats.
"""

import logging
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from boldnet.exceptions import MalformedPersistedState

logger = logging.getLogger(__name__)


def dumps_weights(weights: Sequence[np.ndarray]) -> str:
    """
    Serialize weight matrices to the text weights format.

    Args:
        weights: Weight matrices, matrix n shaped (sizes[n], sizes[n + 1])

    Returns:
        str: File contents
    """
    sizes = [np.shape(w)[0] for w in weights] + [np.shape(weights[-1])[1]]
    lines = [' '.join(str(s) for s in sizes), '']
    for w in weights:
        for row in np.asarray(w, dtype=float):
            lines.append(' '.join(repr(float(v)) for v in row))
        lines.append('')
    return '\n'.join(lines) + '\n'


def _content_lines(text: str) -> Iterator[Tuple[int, str]]:
    """Yield (line_number, stripped_line) for every non-blank line."""
    for number, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if stripped:
            yield number, stripped


def loads_weights(text: str, filename: Optional[str] = None) -> List[np.ndarray]:
    """
    Parse the text weights format.

    Args:
        text: File contents
        filename: Used in error messages only

    Returns:
        list: One weight matrix per connectivity layer

    Raises:
        MalformedPersistedState: If the text does not follow the format
    """
    lines = _content_lines(text)

    try:
        number, header = next(lines)
    except StopIteration:
        raise MalformedPersistedState(
            "missing layer size header", filename, 1
        ) from None

    try:
        sizes = [int(token) for token in header.split()]
    except ValueError:
        raise MalformedPersistedState(
            f"layer sizes must be integers, got '{header}'", filename, number
        ) from None
    if len(sizes) < 2 or any(s < 1 for s in sizes):
        raise MalformedPersistedState(
            f"invalid layer sizes {sizes}", filename, number
        )

    weights = []
    for n in range(len(sizes) - 1):
        rows, cols = sizes[n], sizes[n + 1]
        matrix = np.empty((rows, cols))
        for i in range(rows):
            try:
                number, line = next(lines)
            except StopIteration:
                raise MalformedPersistedState(
                    f"layer {n} ended after {i} of {rows} rows",
                    filename, None
                ) from None

            tokens = line.split()
            if len(tokens) != cols:
                raise MalformedPersistedState(
                    f"layer {n} row {i} has {len(tokens)} values, "
                    f"expected {cols}",
                    filename, number
                )
            try:
                matrix[i] = [float(token) for token in tokens]
            except ValueError:
                raise MalformedPersistedState(
                    f"non-numeric weight in '{line}'", filename, number
                ) from None
        weights.append(matrix)

    leftover = next(lines, None)
    if leftover is not None:
        raise MalformedPersistedState(
            "unexpected data after the last layer", filename, leftover[0]
        )

    return weights


def load_weights(filename: str) -> List[np.ndarray]:
    """Read weight matrices from a file."""
    with open(filename, 'r') as f:
        weights = loads_weights(f.read(), filename)
    logger.debug(f"Loaded {len(weights)} weight matrices from {filename}")
    return weights


def store_weights(weights: Sequence[np.ndarray], filename: str) -> None:
    """Write weight matrices to a file, replacing it."""
    with open(filename, 'w') as f:
        f.write(dumps_weights(weights))
    logger.debug(f"Stored {len(weights)} weight matrices to {filename}")
