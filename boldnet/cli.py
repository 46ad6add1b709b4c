"""
cli.py
~~~~~~

Command line entry point.

    boldnet train --config config.txt --data trainingData.txt --weights weights.txt
    boldnet run --weights weights.txt --input "0 1"
    boldnet report --weights weights.txt --data trainingData.txt --scale 4 --offset 1
    boldnet images --manifest imageTrainingData.txt --out trainingData.txt
    boldnet render --weights weights.txt --data trainingData.txt --height 8 --width 8 --out out.png
"""

import argparse
import logging
import sys
from typing import List, Optional, TextIO

from boldnet.config import configure_logging, load_config
from boldnet.data_loader import load_training_data
from boldnet.exceptions import BoldnetError
from boldnet.image_codec import array_to_image, build_image_training_data
from boldnet.minimize import format_case_report, minimize_error
from boldnet.network import Network

logger = logging.getLogger(__name__)

EXIT_WORD = 'exit'


def _parse_vector(line: str) -> List[float]:
    return [float(token) for token in line.replace(',', ' ').split()]


def cmd_train(args: argparse.Namespace) -> int:
    config = load_config(args.config).with_overrides(
        seed=args.seed,
        max_iterations=args.max_iterations
    )
    training_set = load_training_data(args.data)

    sizes = config.layer_sizes(training_set.input_size, training_set.output_size)
    network = Network(sizes, activation=config.activation, seed=config.seed)

    result = minimize_error(network, training_set, config, weights_path=args.weights)
    print(f"Best error = {result.root_error} "
          f"(iteration {result.best_iteration} of {result.iterations})")
    for summary in result.summaries:
        print(summary)
    return 0


def cmd_run(args: argparse.Namespace, stdin: Optional[TextIO] = None) -> int:
    stdin = stdin or sys.stdin
    network = Network.from_file(args.weights, activation=args.activation)

    if args.input:
        for line in args.input:
            print(' '.join(repr(float(v)) for v in network.propagate(_parse_vector(line))))
        return 0

    print("Give the input values as space-separated numbers, for example '0.6 1.0'. "
          f"Type '{EXIT_WORD}' to quit.")
    for line in stdin:
        line = line.strip()
        if line == EXIT_WORD:
            break
        if not line:
            continue
        try:
            output = network.propagate(_parse_vector(line))
        except (BoldnetError, ValueError) as e:
            print(f"Invalid input: {e}")
            continue
        print(' '.join(repr(float(v)) for v in output))
    return 0


def cmd_report(args: argparse.Namespace) -> int:
    network = Network.from_file(args.weights, activation=args.activation)
    training_set = load_training_data(args.data)
    training_set.validate_for(network.sizes)
    print(format_case_report(network, training_set, args.scale, args.offset))
    return 0


def cmd_images(args: argparse.Namespace) -> int:
    height, width = build_image_training_data(args.manifest, args.out)
    print(f"Wrote {args.out} ({height}x{width} images)")
    return 0


def cmd_render(args: argparse.Namespace) -> int:
    network = Network.from_file(args.weights, activation=args.activation)
    training_set = load_training_data(args.data)
    inputs, _ = training_set[args.case]
    array_to_image(network.propagate(inputs), args.height, args.width, args.out)
    print(f"Wrote {args.out}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='boldnet',
        description='Train and run feedforward networks with a bold-driver learning rate'
    )
    parser.add_argument('--log-level', default=None,
                        help='logging level (default: $LOG_LEVEL or INFO)')
    subparsers = parser.add_subparsers(dest='command', required=True)

    train = subparsers.add_parser('train', help='train from random restarts')
    train.add_argument('--config', required=True, help='config file')
    train.add_argument('--data', required=True, help='training data file')
    train.add_argument('--weights', default='weights.txt',
                       help='where to store the best weights (default: weights.txt)')
    train.add_argument('--seed', type=int, default=None, help='random seed')
    train.add_argument('--max-iterations', type=int, default=None,
                       help='override the number of restarts')
    train.set_defaults(func=cmd_train)

    for name, func, help_text in [
        ('run', cmd_run, 'propagate input vectors'),
        ('report', cmd_report, 'compare outputs with training data'),
        ('render', cmd_render, 'save a network output as an image')
    ]:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('--weights', default='weights.txt', help='weights file')
        sub.add_argument('--activation', default='sigmoid',
                         choices=['sigmoid', 'identity'],
                         help='output function (default: sigmoid)')
        sub.set_defaults(func=func)

        if name == 'run':
            sub.add_argument('--input', action='append',
                             help='input vector, may be repeated; reads stdin when omitted')
        elif name == 'report':
            sub.add_argument('--data', required=True, help='training data file')
            sub.add_argument('--scale', type=float, default=1.0,
                             help='multiply outputs by this (default: 1)')
            sub.add_argument('--offset', type=float, default=0.0,
                             help='then add this (default: 0)')
        else:
            sub.add_argument('--data', required=True, help='training data file')
            sub.add_argument('--case', type=int, default=0,
                             help='index of the case to render (default: 0)')
            sub.add_argument('--height', type=int, required=True)
            sub.add_argument('--width', type=int, required=True)
            sub.add_argument('--out', required=True, help='output image file')

    images = subparsers.add_parser('images', help='build training data from images')
    images.add_argument('--manifest', required=True, help='image pair list')
    images.add_argument('--out', required=True, help='training data file to write')
    images.set_defaults(func=cmd_images)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        return args.func(args)
    except (BoldnetError, OSError, ValueError) as e:
        logger.error(str(e))
        return 1


if __name__ == '__main__':
    sys.exit(main())
