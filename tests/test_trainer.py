"""
test_trainer.py
~~~~~~~~~~~~~~~

Tests for the error function, backpropagation and the bold-driver loop.
"""

import math

import numpy as np
import pytest

from boldnet.data_loader import TrainingSet
from boldnet.exceptions import DimensionError, NumericDegeneracy
from boldnet.network import Network
from boldnet.trainer import (
    DriverState,
    StepOutcome,
    TerminationReason,
    Trainer,
    numeric_gradient
)


@pytest.fixture
def trainer():
    return Trainer(lambda_mult=1.01)


@pytest.mark.unit
class TestCalculateError:
    """Test the training-set error."""

    def test_sum_of_squared_case_errors(self, trainer, fixed_network, xor_set):
        """Test the error against an explicit loop over cases."""
        expected_error = 0.0
        for x, y in xor_set:
            output = fixed_network.propagate(x)
            single = np.sum((y - output) ** 2)
            expected_error += (0.5 * single) * (0.5 * single)

        assert trainer.calculate_error(fixed_network, xor_set) == pytest.approx(
            expected_error, rel=1e-12
        )

    def test_perfect_fit_has_zero_error(self, trainer):
        """Test that identical outputs give zero error."""
        net = Network(weights=[[[1.0], [1.0]]], activation='identity')
        cases = TrainingSet.from_pairs([([1, 2], [3]), ([0, 0], [0])])

        assert trainer.calculate_error(net, cases) == 0.0

    def test_does_not_change_weights(self, trainer, simple_network, xor_set):
        before = simple_network.get_weights()
        trainer.calculate_error(simple_network, xor_set)

        for a, b in zip(before, simple_network.get_weights()):
            assert np.array_equal(a, b)

    def test_strict_raises_on_non_finite(self, trainer):
        """Test that strict mode surfaces an overflowing error."""
        net = Network(weights=[[[1e200]]], activation='identity')
        cases = TrainingSet.from_pairs([([1e200], [0])])

        assert math.isinf(trainer.calculate_error(net, cases))
        with pytest.raises(NumericDegeneracy):
            trainer.calculate_error(net, cases, strict=True)


@pytest.mark.unit
class TestGradient:
    """Test backpropagation against finite differences."""

    @pytest.mark.parametrize('sizes,activation', [
        ([2, 2, 1], 'sigmoid'),
        ([3, 4, 2], 'sigmoid'),
        ([2, 3, 3, 2], 'sigmoid'),
        ([3, 2, 2], 'identity'),
        ([2, 1], 'sigmoid')
    ])
    def test_matches_finite_differences(self, trainer, sizes, activation):
        """Test every weight's gradient against a centered difference."""
        net = Network(sizes, activation=activation, seed=11)
        rng = np.random.default_rng(5)
        x = rng.uniform(0, 1, sizes[0])
        y = rng.uniform(0, 1, sizes[-1])

        analytic = trainer.gradient(net, x, y)
        numeric = numeric_gradient(net, x, y, epsilon=1e-5)

        for a, n in zip(analytic, numeric):
            assert a.shape == n.shape
            assert np.allclose(a, n, atol=1e-4)

    def test_shape_matches_weights(self, trainer):
        net = Network([4, 3, 2, 5], seed=1)

        gradient = trainer.gradient(net, np.ones(4), np.zeros(5))

        assert [g.shape for g in gradient] == [w.shape for w in net.get_weights()]

    def test_points_downhill(self, trainer, simple_network):
        """Test that a small step along the gradient lowers the case error."""
        x, y = [0.0, 1.0], [1.0]
        before = Trainer.case_error(simple_network, x, y)

        simple_network.apply_update(trainer.gradient(simple_network, x, y), 1e-3)

        assert Trainer.case_error(simple_network, x, y) < before

    def test_does_not_change_weights(self, trainer, simple_network):
        before = simple_network.get_weights()
        trainer.gradient(simple_network, [1.0, 0.0], [1.0])

        for a, b in zip(before, simple_network.get_weights()):
            assert np.array_equal(a, b)

    def test_wrong_expected_length(self, trainer, simple_network):
        with pytest.raises(DimensionError):
            trainer.gradient(simple_network, [1.0, 0.0], [1.0, 0.0])


@pytest.mark.unit
class TestBoldDriverStep:
    """Test single bold-driver updates."""

    def test_first_step_records_error(self, trainer, simple_network, xor_set):
        """Test that the first step only records the error."""
        state = DriverState(learning_rate=0.5)
        x, y = xor_set[0]

        outcome = trainer.train_case(simple_network, xor_set, x, y, state)

        assert outcome is StepOutcome.INITIAL
        assert state.learning_rate == 0.5
        assert state.min_error == pytest.approx(
            trainer.calculate_error(simple_network, xor_set)
        )

    def test_accept_decreases_error_and_reject_restores_weights(self, trainer, xor_set):
        """Test the accept/reject invariants over many steps."""
        net = Network([2, 2, 1], seed=2)
        state = DriverState(learning_rate=2.0)
        outcomes = set()

        for _ in range(50):
            for x, y in xor_set:
                error_before = trainer.calculate_error(net, xor_set)
                weights_before = net.get_weights()
                lr_before = state.learning_rate

                outcome = trainer.train_case(net, xor_set, x, y, state)
                outcomes.add(outcome)

                if outcome is StepOutcome.ACCEPTED:
                    assert trainer.calculate_error(net, xor_set) < error_before
                    assert state.learning_rate == pytest.approx(lr_before * 1.01)
                elif outcome is StepOutcome.REJECTED:
                    for a, b in zip(weights_before, net.get_weights()):
                        assert np.array_equal(a, b)
                    assert state.learning_rate == pytest.approx(lr_before / 1.01)

        assert StepOutcome.ACCEPTED in outcomes
        assert StepOutcome.REJECTED in outcomes

    def test_single_case_training_set(self, trainer):
        """Test that one case takes the initial branch exactly once."""
        net = Network([2, 2, 1], seed=4)
        cases = TrainingSet.from_pairs([([1, 0], [1])])
        state = DriverState(learning_rate=0.5)

        outcomes = [
            trainer.train_case(net, cases, *cases[0], state)
            for _ in range(20)
        ]

        assert outcomes.count(StepOutcome.INITIAL) == 1
        assert outcomes[0] is StepOutcome.INITIAL
        assert state.accepted + state.rejected == 19


@pytest.mark.unit
class TestTrain:
    """Test the epoch loop."""

    def test_summary_after_epochs(self, trainer, simple_network, xor_set):
        """Test the summary of a short run."""
        summary = trainer.train(simple_network, xor_set, learning_rate=0.5, epochs=25)

        assert summary.epochs == 25
        assert summary.reason is TerminationReason.EPOCHS_EXHAUSTED
        assert not summary.degenerate
        assert summary.accepted + summary.rejected == 25 * len(xor_set) - 1
        assert summary.error == pytest.approx(
            trainer.calculate_error(simple_network, xor_set)
        )

    def test_training_reduces_error(self, trainer, simple_network, xor_set):
        before = trainer.calculate_error(simple_network, xor_set)

        trainer.train(simple_network, xor_set, learning_rate=0.5, epochs=200)

        assert trainer.calculate_error(simple_network, xor_set) < before

    def test_single_case_does_not_crash(self, trainer):
        net = Network([2, 3, 1], seed=9)
        cases = TrainingSet.from_pairs([([0, 1], [1])])

        summary = trainer.train(net, cases, learning_rate=0.5, epochs=1000)

        assert summary.epochs == 1000
        assert summary.error < 0.01

    def test_learning_rate_underflow_stops_training(self, simple_network, xor_set):
        """Test that a learning rate shrinking to zero ends the run."""
        trainer = Trainer(lambda_mult=1e300)

        summary = trainer.train(simple_network, xor_set, learning_rate=1e-300, epochs=1000)

        assert summary.reason is TerminationReason.LEARNING_RATE_UNDERFLOW
        assert summary.learning_rate == 0
        assert summary.degenerate
        assert summary.epochs < 1000

    def test_non_finite_error_stops_training(self):
        """Test that an overflowing error is reported, not ignored."""
        net = Network(weights=[[[1.0]]], activation='identity')
        cases = TrainingSet.from_pairs([([1e100], [0.0]), ([1e100], [1.0])])
        trainer = Trainer(lambda_mult=2.0)

        summary = trainer.train(net, cases, learning_rate=1e100, epochs=10)

        assert summary.reason is TerminationReason.NON_FINITE_ERROR
        assert summary.degenerate
        assert np.array_equal(net.get_weights()[0], [[1.0]])

    def test_progress_reports(self, simple_network, xor_set):
        """Test that the callback fires printing_rate times."""
        reports = []
        trainer = Trainer(lambda_mult=1.01, printing_rate=5, callback=reports.append)

        summary = trainer.train(simple_network, xor_set, learning_rate=0.5, epochs=50)

        assert [r['epoch'] for r in reports] == [10, 20, 30, 40, 50]
        assert reports == summary.history
        assert reports[-1]['error'] == pytest.approx(math.sqrt(summary.error))

    def test_yield_func_called_every_epoch(self, simple_network, xor_set):
        calls = []
        trainer = Trainer(yield_func=lambda: calls.append(1))

        trainer.train(simple_network, xor_set, learning_rate=0.5, epochs=12)

        assert len(calls) == 12

    def test_rejects_mismatched_training_set(self, trainer, simple_network):
        cases = TrainingSet.from_pairs([([0, 1, 1], [1])])

        with pytest.raises(DimensionError):
            trainer.train(simple_network, cases, learning_rate=0.5, epochs=1)

    @pytest.mark.parametrize('kwargs', [
        {'learning_rate': 0, 'epochs': 10},
        {'learning_rate': 0.5, 'epochs': 0}
    ])
    def test_rejects_invalid_arguments(self, trainer, simple_network, xor_set, kwargs):
        with pytest.raises(ValueError):
            trainer.train(simple_network, xor_set, **kwargs)

    def test_lambda_must_exceed_one(self):
        with pytest.raises(ValueError):
            Trainer(lambda_mult=1.0)


@pytest.mark.integration
class TestXor:
    """End-to-end: a hidden layer makes XOR learnable."""

    def test_single_layer_cannot_fit_xor(self, trainer, xor_set):
        """Test that a [2, 1] network stays far from the targets."""
        net = Network([2, 1], seed=0)

        trainer.train(net, xor_set, learning_rate=0.5, epochs=2000)

        assert trainer.calculate_error(net, xor_set) > 0.01

    def test_hidden_layer_learns_xor(self, trainer, xor_set):
        """Test that [2, 2, 1] trained from inside the XOR basin gets below 0.01."""
        # h1 = sigmoid(4 * (x1 + x2)) is nearly a step and h2 = sigmoid(x1 + x2)
        # is shallow; the output subtracts them. Scaling the output weights up
        # lowers every case error from here.
        net = Network(weights=[[[4.0, 1.0], [4.0, 1.0]], [[7.0], [-8.5]]])
        start_error = trainer.calculate_error(net, xor_set)

        summary = trainer.train(net, xor_set, learning_rate=0.5, epochs=20000)

        assert 0.01 < start_error < 0.02
        assert summary.accepted > 0
        assert trainer.calculate_error(net, xor_set) < 0.01
        assert net.propagate([0, 1])[0] > 0.5
        assert net.propagate([1, 0])[0] > 0.5
        assert net.propagate([0, 0])[0] < 0.5
        assert net.propagate([1, 1])[0] < 0.5

    def test_random_start_ends_on_best_weights(self, trainer, xor_set):
        """Test that a random start finishes on the weights of its last kept step."""
        net = Network([2, 2, 1], seed=1)

        summary = trainer.train(net, xor_set, learning_rate=0.5, epochs=500)

        assert summary.error == pytest.approx(trainer.calculate_error(net, xor_set))
