"""
boldnet package
~~~~~~~~~~~~~~~

Fully connected feedforward neural networks trained by online gradient
descent with a bold-driver learning rate. Contains the core network
implementation, the trainer, data and weight file formats, model
persistence, and API server.
"""

__version__ = "1.0.0"

from boldnet.exceptions import (
    BoldnetError,
    ShapeError,
    DimensionError,
    NumericDegeneracy,
    MalformedPersistedState
)
from boldnet.network import Network
from boldnet.trainer import Trainer, TrainingSummary, TerminationReason
from boldnet.data_loader import TrainingSet
from boldnet.config import TrainingConfig
