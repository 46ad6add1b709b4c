"""
test_weights_io.py
~~~~~~~~~~~~~~~~~~

Tests for the text weights format.
"""

import numpy as np
import pytest

from boldnet.exceptions import MalformedPersistedState
from boldnet.network import Network
from boldnet.weights_io import dumps_weights, load_weights, loads_weights, store_weights

EXAMPLE = """2 2 1

0.5 0.5
0.5 0.5

0.3
0.3
"""


@pytest.mark.unit
class TestFormat:
    """Test reading and writing weight text."""

    def test_parses_documented_example(self):
        weights = loads_weights(EXAMPLE)

        assert [w.shape for w in weights] == [(2, 2), (2, 1)]
        assert np.array_equal(weights[0], [[0.5, 0.5], [0.5, 0.5]])
        assert np.array_equal(weights[1], [[0.3], [0.3]])

    def test_dumps_layout(self):
        """Test header, blank separators and row layout."""
        text = dumps_weights([np.array([[0.5, 0.5], [0.5, 0.5]]), np.array([[0.3], [0.3]])])

        assert text == EXAMPLE + "\n"

    def test_tolerates_trailing_spaces_and_extra_blank_lines(self):
        """Test files written with a trailing space after every value."""
        text = "2 2 1 \n\n\n0.5 0.5 \n0.5 0.5 \n\n0.3 \n0.3 \n\n"

        weights = loads_weights(text)

        assert np.array_equal(weights[1], [[0.3], [0.3]])

    def test_round_trip_is_exact(self):
        rng = np.random.default_rng(0)
        weights = [rng.standard_normal((3, 4)), rng.standard_normal((4, 2))]

        for original, loaded in zip(weights, loads_weights(dumps_weights(weights))):
            assert np.array_equal(original, loaded)


@pytest.mark.unit
class TestMalformed:
    """Test that bad files are reported with their location."""

    def test_empty_file(self):
        with pytest.raises(MalformedPersistedState) as exc_info:
            loads_weights("", "weights.txt")
        assert exc_info.value.filename == "weights.txt"

    def test_non_integer_header(self):
        with pytest.raises(MalformedPersistedState) as exc_info:
            loads_weights("2 x 1\n", "weights.txt")
        assert exc_info.value.line_number == 1
        assert "weights.txt:1" in str(exc_info.value)

    def test_wrong_number_of_columns(self):
        text = "2 2 1\n\n0.5 0.5\n0.5\n\n0.3\n0.3\n"

        with pytest.raises(MalformedPersistedState) as exc_info:
            loads_weights(text)
        assert exc_info.value.line_number == 4

    def test_non_numeric_weight(self):
        text = "2 1\n\nabc\n0.3\n"

        with pytest.raises(MalformedPersistedState) as exc_info:
            loads_weights(text)
        assert exc_info.value.line_number == 3

    def test_missing_rows(self):
        with pytest.raises(MalformedPersistedState):
            loads_weights("2 2 1\n\n0.5 0.5\n0.5 0.5\n\n0.3\n")

    def test_trailing_data(self):
        with pytest.raises(MalformedPersistedState) as exc_info:
            loads_weights(EXAMPLE + "\n0.1\n")
        assert exc_info.value.line_number == 9

    def test_invalid_sizes(self):
        with pytest.raises(MalformedPersistedState):
            loads_weights("3\n")


@pytest.mark.integration
class TestNetworkFiles:
    """Test storing and loading whole networks."""

    def test_store_and_load_preserves_outputs(self, tmp_path):
        """Test that a reloaded network computes the same outputs."""
        path = str(tmp_path / "weights.txt")
        net = Network([3, 5, 2], seed=8)
        net.store_weights(path)

        loaded = Network.from_file(path)

        assert loaded.sizes == net.sizes
        for x in ([0.0, 0.0, 0.0], [0.2, -1.3, 4.0], [1.0, 1.0, 1.0]):
            assert np.allclose(loaded.propagate(x), net.propagate(x), atol=1e-9, rtol=0)

    def test_load_weights_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            load_weights(str(tmp_path / "missing.txt"))

    def test_store_weights_overwrites(self, tmp_path):
        path = str(tmp_path / "weights.txt")
        store_weights([np.ones((2, 2))], path)
        store_weights([np.zeros((1, 1))], path)

        assert [w.shape for w in load_weights(path)] == [(1, 1)]
