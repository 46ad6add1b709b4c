"""
image_codec.py
~~~~~~~~~~~~~~

Conversion between images and network input/output vectors.

Each pixel's 8-bit RGB channels are packed into one 24-bit integer
``(r << 16) | (g << 8) | b`` and scaled by ``2 ** -24`` into [0, 1).
Pixels are laid out row by row.
"""

import logging
import os
from typing import Tuple

import numpy as np

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.image as mpimg

from boldnet.data_loader import TrainingSet, save_training_data
from boldnet.exceptions import DimensionError, MalformedPersistedState

logger = logging.getLogger(__name__)

SCALING_FACTOR = float(1 << 24)


def _to_rgb8(image: np.ndarray) -> np.ndarray:
    """Normalize an image from imread to an (h, w, 3) uint8 array."""
    if np.issubdtype(image.dtype, np.floating):
        image = np.round(np.clip(image, 0.0, 1.0) * 255).astype(np.uint8)
    else:
        image = image.astype(np.uint8)

    if image.ndim == 2:
        image = np.stack([image] * 3, axis=-1)
    return image[:, :, :3]


def pack_pixels(rgb: np.ndarray) -> np.ndarray:
    """Pack an (h, w, 3) uint8 image into an (h, w) array of floats."""
    rgb = rgb.astype(np.int64)
    packed = (rgb[:, :, 0] << 16) | (rgb[:, :, 1] << 8) | rgb[:, :, 2]
    return packed / SCALING_FACTOR


def unpack_pixels(values: np.ndarray) -> np.ndarray:
    """Invert pack_pixels, clipping values to [0, 1)."""
    packed = np.floor(
        np.clip(values, 0.0, 1.0) * SCALING_FACTOR
    ).astype(np.int64)
    packed = np.minimum(packed, (1 << 24) - 1)
    rgb = np.stack(
        [(packed >> 16) & 0xff, (packed >> 8) & 0xff, packed & 0xff],
        axis=-1
    )
    return rgb.astype(np.uint8)


def image_to_array(filename: str) -> Tuple[np.ndarray, int, int]:
    """
    Read an image as a flat vector of packed pixels.

    Args:
        filename: Path to a PNG, BMP or JPEG image

    Returns:
        tuple: (values, height, width)
    """
    rgb = _to_rgb8(mpimg.imread(filename))
    height, width = rgb.shape[:2]
    return pack_pixels(rgb).reshape(-1), height, width


def array_to_image(values, height: int, width: int, filename: str) -> None:
    """
    Write a flat vector of packed pixels as an image.

    Raises:
        DimensionError: If the vector does not hold height * width pixels
    """
    values = np.asarray(values, dtype=float).reshape(-1)
    if values.shape[0] != height * width:
        raise DimensionError(
            f"Cannot show {values.shape[0]} values as a "
            f"{height}x{width} image"
        )
    mpimg.imsave(filename, unpack_pixels(values.reshape(height, width)))
    logger.debug(f"Wrote {height}x{width} image to {filename}")


def build_image_training_data(manifest: str, out_filename: str) -> Tuple[int, int]:
    """
    Turn a list of image pairs into a training data file.

    The manifest starts with the number of cases, input width and output
    width, followed by an input image and an expected-output image file
    name for every case. Relative names are resolved against the
    manifest's directory.

    Returns:
        tuple: (height, width) of the last input image
    """
    base_dir = os.path.dirname(os.path.abspath(manifest))
    with open(manifest, 'r') as f:
        tokens = f.read().split()

    try:
        count, n_in, n_out = (int(t) for t in tokens[:3])
    except ValueError:
        raise MalformedPersistedState(
            "header must be three integers", manifest, 1
        ) from None
    names = tokens[3:]
    if len(names) != 2 * count:
        raise MalformedPersistedState(
            f"expected {2 * count} image names, found {len(names)}", manifest
        )

    inputs = np.empty((count, n_in))
    expected = np.empty((count, n_out))
    height = width = 0
    for case in range(count):
        in_name, out_name = (
            os.path.join(base_dir, name) for name in names[2 * case:2 * case + 2]
        )
        in_values, height, width = image_to_array(in_name)
        out_values, _, _ = image_to_array(out_name)

        if in_values.shape[0] != n_in or out_values.shape[0] != n_out:
            raise MalformedPersistedState(
                f"case {case} images have {in_values.shape[0]} and "
                f"{out_values.shape[0]} pixels, expected {n_in} and {n_out}",
                manifest
            )
        inputs[case] = in_values
        expected[case] = out_values

    save_training_data(out_filename, TrainingSet(inputs, expected))
    logger.info(f"Built {count} image cases into {out_filename}")
    return height, width
