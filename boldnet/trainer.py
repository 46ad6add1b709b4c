"""
trainer.py
~~~~~~~~~~

Online gradient descent with a bold-driver learning rate.

For every training case the trainer takes one gradient step, then
measures the error over the whole training set. An improvement grows the
learning rate by ``lambda_mult``; anything else rolls the step back and
shrinks the learning rate by the same factor. Training stops when the
epochs run out or the learning rate underflows to zero.

The training-set error is the sum over cases of the squared case error,
where the case error is ``0.5 * sum((expected - output) ** 2)``.
"""

import enum
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from boldnet.data_loader import TrainingSet
from boldnet.exceptions import DimensionError, NumericDegeneracy
from boldnet.network import Network

# Configure module logger
logger = logging.getLogger(__name__)


class TerminationReason(str, enum.Enum):
    """Why a call to Trainer.train returned."""

    EPOCHS_EXHAUSTED = 'epochs_exhausted'
    LEARNING_RATE_UNDERFLOW = 'learning_rate_underflow'
    NON_FINITE_ERROR = 'non_finite_error'


class StepOutcome(str, enum.Enum):
    """What the bold driver did with a single update."""

    INITIAL = 'initial'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    NON_FINITE = 'non_finite'


@dataclass
class DriverState:
    """Mutable state of the bold driver between updates."""

    learning_rate: float
    min_error: Optional[float] = None
    accepted: int = 0
    rejected: int = 0


@dataclass
class TrainingSummary:
    """Diagnostics returned by Trainer.train."""

    epochs: int
    learning_rate: float
    error: float
    reason: TerminationReason
    accepted: int = 0
    rejected: int = 0
    elapsed_time: float = 0.0
    history: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def degenerate(self) -> bool:
        """True if training ended on a numeric degeneracy."""
        return self.reason is not TerminationReason.EPOCHS_EXHAUSTED

    def __str__(self) -> str:
        return (
            f"Stopped after epoch {self.epochs} ({self.reason.value}): "
            f"error = {math.sqrt(self.error)}, "
            f"learning rate = {self.learning_rate}, "
            f"{self.accepted} accepted / {self.rejected} rejected steps, "
            f"{self.elapsed_time:.2f}s"
        )


class Trainer:
    """
    Trains a Network on a TrainingSet.

    The trainer never touches the weights directly: it reads them through
    ``Network.get_weights`` and changes them only through
    ``Network.apply_update`` and ``Network.set_weights``.
    """

    def __init__(
        self,
        lambda_mult: float = 1.01,
        printing_rate: int = 0,
        callback: Optional[Callable[[Dict[str, Any]], None]] = None,
        yield_func: Optional[Callable[[], None]] = None
    ):
        """
        Initialize the trainer.

        Args:
            lambda_mult: Factor applied to the learning rate, must be > 1
            printing_rate: How many progress reports to emit over a run,
                0 disables them
            callback: Called with a progress dict at every report
            yield_func: Called after every epoch, lets a cooperative
                scheduler run other tasks
        """
        if lambda_mult <= 1:
            raise ValueError(f"lambda_mult must be > 1, got {lambda_mult}")
        if printing_rate < 0:
            raise ValueError(
                f"printing_rate must be non-negative, got {printing_rate}"
            )
        self.lambda_mult = lambda_mult
        self.printing_rate = printing_rate
        self.callback = callback
        self.yield_func = yield_func

    @classmethod
    def from_config(cls, config, **kwargs) -> 'Trainer':
        """Build a trainer from a TrainingConfig."""
        return cls(
            lambda_mult=config.lambda_mult,
            printing_rate=config.printing_rate,
            **kwargs
        )

    @staticmethod
    def case_error(network: Network, inputs, expected) -> float:
        """Half the summed squared difference for a single case."""
        output = network.propagate(inputs)
        diff = np.asarray(expected, dtype=float) - output
        return 0.5 * float(np.dot(diff, diff))

    def calculate_error(
        self,
        network: Network,
        training_set: TrainingSet,
        strict: bool = False
    ) -> float:
        """
        Total error of the network over a training set.

        Args:
            network: Network to evaluate
            training_set: Cases to evaluate on
            strict: Raise instead of returning a non-finite error

        Returns:
            float: Sum of the squared case errors

        Raises:
            NumericDegeneracy: If strict and the error is NaN or infinite
        """
        outputs = network.propagate_batch(training_set.inputs)
        case_errors = 0.5 * np.sum((training_set.expected - outputs) ** 2, axis=1)
        error = float(np.sum(case_errors ** 2))

        if strict and not math.isfinite(error):
            raise NumericDegeneracy(f"Training error is {error}")
        return error

    def gradient(self, network: Network, inputs, expected) -> List[np.ndarray]:
        """
        Backpropagate a single case.

        Returns the negative gradient of the case error with respect to
        every weight, so that adding it (times the learning rate) to the
        weights moves downhill.

        Args:
            network: Network to differentiate
            inputs: Input vector of the case
            expected: Expected output vector of the case

        Returns:
            list: One array per weight matrix, with matching shapes
        """
        output = network.propagate(inputs)
        activations = network.activations
        weights = network.get_weights()
        prime = network.activation.prime

        expected = np.asarray(expected, dtype=float).reshape(-1)
        if expected.shape != output.shape:
            raise DimensionError(
                f"Expected {output.shape[0]} outputs, got {expected.shape[0]}"
            )

        delta = (expected - output) * prime(activations[-1])
        gradients: List[np.ndarray] = [None] * network.num_layers
        for n in reversed(range(network.num_layers)):
            gradients[n] = np.outer(activations[n], delta)
            if n > 0:
                delta = (weights[n] @ delta) * prime(activations[n])

        return gradients

    def train_case(
        self,
        network: Network,
        training_set: TrainingSet,
        inputs,
        expected,
        state: DriverState
    ) -> StepOutcome:
        """
        Take one bold-driver step on a single case.

        A rejected step restores the exact weights from before the step.
        """
        previous = network.get_weights()
        step = state.learning_rate
        network.apply_update(self.gradient(network, inputs, expected), step)

        cur_error = self.calculate_error(network, training_set)

        if not math.isfinite(cur_error):
            network.set_weights(previous)
            return StepOutcome.NON_FINITE

        if state.min_error is None:
            state.min_error = cur_error
            return StepOutcome.INITIAL

        if cur_error < state.min_error:
            state.learning_rate *= self.lambda_mult
            state.min_error = cur_error
            state.accepted += 1
            return StepOutcome.ACCEPTED

        network.set_weights(previous)
        state.learning_rate /= self.lambda_mult
        state.rejected += 1
        return StepOutcome.REJECTED

    def train(
        self,
        network: Network,
        training_set: TrainingSet,
        learning_rate: float,
        epochs: int
    ) -> TrainingSummary:
        """
        Train the network in place.

        Args:
            network: Network to train
            training_set: Cases, visited in order, one update per case
            learning_rate: Initial learning rate, must be > 0
            epochs: Maximum number of sweeps over the training set

        Returns:
            TrainingSummary: Final epoch, learning rate, error and the
                reason training stopped
        """
        if learning_rate <= 0:
            raise ValueError(f"learning_rate must be > 0, got {learning_rate}")
        if epochs < 1:
            raise ValueError(f"epochs must be a positive integer, got {epochs}")
        training_set.validate_for(network.sizes)

        state = DriverState(learning_rate=learning_rate)
        reason = TerminationReason.EPOCHS_EXHAUSTED
        interval = max(1, epochs // self.printing_rate) if self.printing_rate else 0
        history: List[Dict[str, Any]] = []
        start_time = time.time()

        logger.info(
            f"Training {network!r} on {len(training_set)} cases: "
            f"epochs={epochs}, lr={learning_rate}, lambda={self.lambda_mult}"
        )

        epoch = 0
        while epoch < epochs and reason is TerminationReason.EPOCHS_EXHAUSTED:
            epoch += 1
            for x, y in training_set:
                outcome = self.train_case(network, training_set, x, y, state)

                if outcome is StepOutcome.NON_FINITE:
                    reason = TerminationReason.NON_FINITE_ERROR
                    break
                if state.learning_rate == 0:
                    reason = TerminationReason.LEARNING_RATE_UNDERFLOW
                    break

            if interval and epoch % interval == 0:
                history.append(self._report(epoch, epochs, state, start_time))

            if self.yield_func:
                self.yield_func()

        if state.min_error is None:
            state.min_error = self.calculate_error(network, training_set)

        summary = TrainingSummary(
            epochs=epoch,
            learning_rate=state.learning_rate,
            error=state.min_error,
            reason=reason,
            accepted=state.accepted,
            rejected=state.rejected,
            elapsed_time=time.time() - start_time,
            history=history
        )

        if summary.degenerate:
            logger.warning(f"Training ended early: {summary}")
        else:
            logger.info(str(summary))
        return summary

    def _report(
        self,
        epoch: int,
        epochs: int,
        state: DriverState,
        start_time: float
    ) -> Dict[str, Any]:
        """Log progress and hand it to the callback."""
        error = math.sqrt(state.min_error) if state.min_error is not None else float('nan')
        data = {
            'epoch': epoch,
            'total_epochs': epochs,
            'learning_rate': state.learning_rate,
            'error': error,
            'elapsed_time': time.time() - start_time
        }
        logger.info(f"Epoch {epoch}: Error = {error}")

        if self.callback:
            self.callback(data)
        return data


def numeric_gradient(
    network: Network,
    inputs,
    expected,
    epsilon: float = 1e-5
) -> List[np.ndarray]:
    """
    Centered finite-difference estimate of the negative case-error gradient.

    Used to check backpropagation. The network's weights are left as they
    were.
    """
    original = network.get_weights()
    estimates = []
    for n, w in enumerate(original):
        estimate = np.zeros_like(w)
        for index in np.ndindex(w.shape):
            for sign in (1, -1):
                perturbed = [m.copy() for m in original]
                perturbed[n][index] += sign * epsilon
                network.set_weights(perturbed)
                estimate[index] -= sign * Trainer.case_error(network, inputs, expected)
            estimate[index] /= 2 * epsilon
        estimates.append(estimate)
    network.set_weights(original)
    return estimates
