"""
minimize.py
~~~~~~~~~~~

Random-restart error minimization.

Training from a single random start can stall on a plateau. The
minimizer retrains the same network from fresh random weights several
times and keeps the best result, storing it to disk whenever it improves.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from boldnet.config import TrainingConfig
from boldnet.data_loader import TrainingSet
from boldnet.network import Network
from boldnet.trainer import Trainer, TrainingSummary

logger = logging.getLogger(__name__)


@dataclass
class MinimizeResult:
    """Outcome of minimize_error."""

    best_error: float
    iterations: int
    best_iteration: Optional[int] = None
    summaries: List[TrainingSummary] = field(default_factory=list)

    @property
    def root_error(self) -> float:
        return math.sqrt(self.best_error)


def _format_vector(values, scale: float, offset: float) -> str:
    return ','.join(repr(float(scale * v + offset)) for v in values)


def format_case_report(
    network: Network,
    training_set: TrainingSet,
    scale: float = 1.0,
    offset: float = 0.0
) -> str:
    """
    Compare the network's output with the expected output for every case.

    Expected and actual outputs are shown as ``scale * value + offset``,
    which undoes any scaling applied when the training data was prepared.
    """
    blocks = []
    for x, y in training_set:
        output = network.propagate(x)
        blocks.append(
            f"Input:    {_format_vector(x, 1.0, 0.0)}\n"
            f"Expected: {_format_vector(y, scale, offset)}\n"
            f"Output:   {_format_vector(output, scale, offset)}"
        )
    return '\n\n'.join(blocks)


def minimize_error(
    network: Network,
    training_set: TrainingSet,
    config: TrainingConfig,
    weights_path: Optional[str] = None,
    trainer: Optional[Trainer] = None
) -> MinimizeResult:
    """
    Retrain from random weights until the error is small enough.

    Each iteration redraws the weights, trains for ``config.epochs``
    epochs and measures the error. A strictly better error is kept,
    written to ``weights_path`` when given, and reported case by case.
    The loop ends after ``config.max_iterations`` iterations or once the
    best root error is at most ``config.error_threshold``. The network
    is left holding the best weights found.

    Args:
        network: Network to train, its architecture is kept
        training_set: Cases to fit
        config: Learning rate, epochs, restart limits
        weights_path: File to store the best weights in
        trainer: Trainer to use, built from config when omitted

    Returns:
        MinimizeResult: Best error and per-iteration summaries
    """
    trainer = trainer or Trainer.from_config(config)
    training_set.validate_for(network.sizes)
    threshold = config.error_threshold ** 2

    result = MinimizeResult(best_error=math.inf, iterations=0)
    best_weights = network.get_weights()

    while result.iterations < config.max_iterations and result.best_error > threshold:
        iteration = result.iterations
        network.randomize_weights()

        summary = trainer.train(
            network,
            training_set,
            learning_rate=config.learning_rate,
            epochs=config.epochs
        )
        result.summaries.append(summary)
        result.iterations += 1

        cur_error = trainer.calculate_error(network, training_set)
        if not np.isfinite(cur_error) or cur_error >= result.best_error:
            logger.debug(f"Iteration {iteration}: no improvement ({cur_error})")
            continue

        result.best_error = cur_error
        result.best_iteration = iteration
        best_weights = network.get_weights()

        if weights_path:
            network.store_weights(weights_path)

        logger.info(f"Iteration {iteration}: Error = {math.sqrt(cur_error)}")
        logger.info("\n" + format_case_report(network, training_set))

    network.set_weights(best_weights)
    logger.info(
        f"Minimization finished after {result.iterations} iteration(s): "
        f"best error = {result.root_error}"
    )
    return result
