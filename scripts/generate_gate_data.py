#!/usr/bin/env python3
"""
Write training data files for two-input boolean logic gates.

Usage:
    python scripts/generate_gate_data.py [gate ...]

With no arguments every gate is written. Files land in data/ as
<gate>_training.txt and can be passed to ``boldnet train --data``.
"""

import os
import sys
from itertools import product
from typing import Callable, Dict

from boldnet.data_loader import TrainingSet, save_training_data

GATES: Dict[str, Callable[[int, int], int]] = {
    'and': lambda a, b: a & b,
    'or': lambda a, b: a | b,
    'xor': lambda a, b: a ^ b,
    'nand': lambda a, b: 1 - (a & b),
    'nor': lambda a, b: 1 - (a | b),
    'xnor': lambda a, b: 1 - (a ^ b)
}


def gate_training_set(gate: str) -> TrainingSet:
    """Truth table of a gate as a training set."""
    func = GATES[gate]
    return TrainingSet.from_pairs(
        ([a, b], [func(a, b)]) for a, b in product((0, 1), repeat=2)
    )


def main() -> None:
    """Write one training file per requested gate."""
    gates = [g.lower() for g in sys.argv[1:]] or sorted(GATES)
    unknown = [g for g in gates if g not in GATES]
    if unknown:
        print(f"❌ Unknown gate(s): {', '.join(unknown)}. "
              f"Choose from {', '.join(sorted(GATES))}")
        sys.exit(1)

    script_dir = os.path.dirname(os.path.abspath(__file__))
    data_dir = os.path.join(os.path.dirname(script_dir), 'data')
    os.makedirs(data_dir, exist_ok=True)

    for gate in gates:
        path = os.path.join(data_dir, f'{gate}_training.txt')
        save_training_data(path, gate_training_set(gate))
        print(f"✅ {gate.upper()}: {path}")


if __name__ == '__main__':
    main()
