"""
config.py
~~~~~~~~~

Training configuration and logging setup.

A config file follows the layout used by the training drivers: a free
text header line, a line with the hidden layer sizes, then one
``label value`` line per setting in a fixed order:

    Hidden layer sizes:
    5 3
    lambdaMult 1.001
    learningRate 0.001
    epochs 100000
    maxIterations 10
    errorThreshold 0
    printingRate 10

Labels are ignored, only their position matters. Optional ``activation``
and ``seed`` lines may follow. Input and output widths come from the
training data.
"""

import logging
import numbers
import os
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from boldnet.activation import ACTIVATIONS
from boldnet.exceptions import MalformedPersistedState


def configure_logging(level: Optional[str] = None) -> None:
    """
    Set up logging based on environment.

    - In production: Show fewer logs (less noise) but keep important logs
    - In development: Show more detailed logs for debugging
    """
    log_level_str = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('BOLDNET_ENV') == 'production'

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if is_production:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('boldnet').setLevel(logging.INFO)


@dataclass(frozen=True)
class TrainingConfig:
    """
    Settings for a training run.

    Attributes:
        hidden_layers: Units in each hidden layer, may be empty
        lambda_mult: Learning rate growth/shrink factor, > 1
        learning_rate: Initial learning rate, > 0
        epochs: Epochs per training run, > 0
        max_iterations: Random restarts tried by the error minimizer
        error_threshold: Stop restarting once the root error is at most this
        printing_rate: Progress reports per training run, 0 for none
        activation: Output function name
        seed: Seed for weight generation, None for a random seed
    """

    hidden_layers: Tuple[int, ...] = (2,)
    lambda_mult: float = 1.01
    learning_rate: float = 0.5
    epochs: int = 20000
    max_iterations: int = 1
    error_threshold: float = 0.0
    printing_rate: int = 0
    activation: str = 'sigmoid'
    seed: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, 'hidden_layers', tuple(self.hidden_layers))
        self.validate()

    def validate(self) -> None:
        """
        Check every setting.

        Raises:
            ValueError: If a setting is out of range
        """
        if any(
            isinstance(s, bool) or not isinstance(s, numbers.Integral) or s < 1
            for s in self.hidden_layers
        ):
            raise ValueError(
                f"hidden layer sizes must be positive integers, got {list(self.hidden_layers)}"
            )
        if not self.lambda_mult > 1:
            raise ValueError(f"lambda_mult must be > 1, got {self.lambda_mult}")
        if not self.learning_rate > 0:
            raise ValueError(
                f"learning_rate must be > 0, got {self.learning_rate}"
            )
        if self.epochs < 1:
            raise ValueError(f"epochs must be a positive integer, got {self.epochs}")
        if self.max_iterations < 1:
            raise ValueError(
                f"max_iterations must be a positive integer, got {self.max_iterations}"
            )
        if not self.error_threshold >= 0:
            raise ValueError(
                f"error_threshold must be non-negative, got {self.error_threshold}"
            )
        if self.printing_rate < 0:
            raise ValueError(
                f"printing_rate must be non-negative, got {self.printing_rate}"
            )
        if self.activation not in ACTIVATIONS:
            raise ValueError(
                f"Unknown activation '{self.activation}', expected one of "
                f"{sorted(ACTIVATIONS)}"
            )

    def layer_sizes(self, input_size: int, output_size: int) -> List[int]:
        """Full layer-size vector for the given input and output widths."""
        return [input_size, *self.hidden_layers, output_size]

    def with_overrides(self, **changes) -> 'TrainingConfig':
        """Copy of this config with some settings replaced."""
        changes = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **changes)


# (attribute, converter) for the positional settings, in file order
_SETTINGS = [
    ('lambda_mult', float),
    ('learning_rate', float),
    ('epochs', int),
    ('max_iterations', int),
    ('error_threshold', float),
    ('printing_rate', int)
]

_OPTIONAL_SETTINGS = {
    'activation': str,
    'seed': int
}


def loads_config(text: str, filename: Optional[str] = None) -> TrainingConfig:
    """
    Parse a config file's contents.

    Raises:
        MalformedPersistedState: If the layout or a value is wrong
    """
    lines = text.splitlines()
    if len(lines) < 2:
        raise MalformedPersistedState(
            "expected a header line and a hidden layer line",
            filename, len(lines) + 1
        )

    try:
        hidden = tuple(int(token) for token in lines[1].split())
    except ValueError:
        raise MalformedPersistedState(
            f"hidden layer sizes must be integers, got '{lines[1].strip()}'",
            filename, 2
        ) from None

    settings = {}
    entries = [
        (number, line.split())
        for number, line in enumerate(lines[2:], start=3)
        if line.strip()
    ]
    if len(entries) < len(_SETTINGS):
        raise MalformedPersistedState(
            f"expected {len(_SETTINGS)} settings, found {len(entries)}",
            filename, len(lines)
        )

    for (number, tokens), (name, kind) in zip(entries, _SETTINGS):
        try:
            settings[name] = kind(tokens[-1])
        except ValueError:
            raise MalformedPersistedState(
                f"invalid value '{tokens[-1]}' for {name}", filename, number
            ) from None

    for number, tokens in entries[len(_SETTINGS):]:
        name = tokens[0].lower()
        if name not in _OPTIONAL_SETTINGS or len(tokens) != 2:
            raise MalformedPersistedState(
                f"unexpected setting '{' '.join(tokens)}'", filename, number
            )
        try:
            settings[name] = _OPTIONAL_SETTINGS[name](tokens[1])
        except ValueError:
            raise MalformedPersistedState(
                f"invalid value '{tokens[1]}' for {name}", filename, number
            ) from None

    try:
        return TrainingConfig(hidden_layers=hidden, **settings)
    except ValueError as e:
        raise MalformedPersistedState(str(e), filename) from None


def load_config(filename: str) -> TrainingConfig:
    """Read a TrainingConfig from a config file."""
    with open(filename, 'r') as f:
        return loads_config(f.read(), filename)
