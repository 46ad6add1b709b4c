"""
exceptions.py
~~~~~~~~~~~~~

Error taxonomy shared by the network, the trainer and the file formats.
"""

from typing import Optional


class BoldnetError(Exception):
    """Base class for all errors raised by boldnet."""


class ShapeError(BoldnetError, ValueError):
    """Weight matrices are not chain-consistent, or layer sizes are invalid."""


class DimensionError(BoldnetError, ValueError):
    """A vector has the wrong length for the layer it is fed to."""


class NumericDegeneracy(BoldnetError, ArithmeticError):
    """The error became NaN/Infinity or the learning rate underflowed."""


class MalformedPersistedState(BoldnetError, ValueError):
    """
    A weights, training data or config file could not be parsed.

    Attributes:
        filename: Path of the offending file (may be None for in-memory text)
        line_number: 1-based line where parsing failed (None if unknown)
    """

    def __init__(
        self,
        message: str,
        filename: Optional[str] = None,
        line_number: Optional[int] = None
    ):
        self.filename = filename
        self.line_number = line_number
        self.reason = message

        location = filename or '<string>'
        if line_number is not None:
            location = f"{location}:{line_number}"
        super().__init__(f"{location}: {message}")
