"""
conftest.py
~~~~~~~~~~~

Shared fixtures for the boldnet test suite.
"""

import os
import sys
import tempfile

import pytest

# Add repository root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# The API server reloads saved networks at import time, keep it away from ./models
os.environ.setdefault('BOLDNET_MODEL_DIR', tempfile.mkdtemp(prefix='boldnet-models-'))

from boldnet.data_loader import TrainingSet  # noqa: E402
from boldnet.network import Network  # noqa: E402


XOR_CASES = [
    ([0, 0], [0]),
    ([0, 1], [1]),
    ([1, 0], [1]),
    ([1, 1], [0])
]


@pytest.fixture
def xor_set():
    """Truth table of XOR as a training set."""
    return TrainingSet.from_pairs(XOR_CASES)


@pytest.fixture
def simple_network():
    """Create a small seeded 3-layer network for testing."""
    return Network([2, 2, 1], seed=7)


@pytest.fixture
def fixed_network():
    """A network with hand-picked weights."""
    return Network(weights=[
        [[0.5, -0.25], [0.75, 1.0]],
        [[0.3], [-0.6]]
    ])
