"""
test_image_codec.py
~~~~~~~~~~~~~~~~~~~

Tests for converting images to and from network vectors.
"""

import numpy as np
import pytest

import matplotlib.image as mpimg

from boldnet.data_loader import load_training_data
from boldnet.exceptions import DimensionError, MalformedPersistedState
from boldnet.image_codec import (
    SCALING_FACTOR,
    array_to_image,
    build_image_training_data,
    image_to_array,
    pack_pixels,
    unpack_pixels
)


def _image(seed, height=2, width=3):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)


@pytest.mark.unit
class TestPixelPacking:
    """Test packing RGB pixels into floats."""

    def test_known_pixels(self):
        rgb = np.array([[[0, 0, 0], [255, 255, 255], [1, 2, 3]]], dtype=np.uint8)

        values = pack_pixels(rgb)

        assert values[0, 0] == 0.0
        assert values[0, 1] == ((1 << 24) - 1) / SCALING_FACTOR
        assert values[0, 2] == ((1 << 16) + (2 << 8) + 3) / SCALING_FACTOR
        assert np.all(values < 1.0)

    def test_unpack_inverts_pack(self):
        rgb = _image(0)

        assert np.array_equal(unpack_pixels(pack_pixels(rgb)), rgb)

    def test_unpack_clips_out_of_range(self):
        rgb = unpack_pixels(np.array([[-0.5, 1.5]]))

        assert rgb[0, 0].tolist() == [0, 0, 0]
        assert rgb[0, 1].tolist() == [255, 255, 255]


@pytest.mark.integration
class TestImageFiles:
    """Test reading and writing image files."""

    def test_write_then_read(self, tmp_path):
        path = str(tmp_path / "out.png")
        values = pack_pixels(_image(1)).reshape(-1)

        array_to_image(values, 2, 3, path)
        loaded, height, width = image_to_array(path)

        assert (height, width) == (2, 3)
        assert np.array_equal(loaded, values)

    def test_wrong_pixel_count(self, tmp_path):
        with pytest.raises(DimensionError):
            array_to_image(np.zeros(5), 2, 3, str(tmp_path / "out.png"))

    def test_build_image_training_data(self, tmp_path):
        for name, seed in [("in0.png", 2), ("out0.png", 3), ("in1.png", 4), ("out1.png", 5)]:
            mpimg.imsave(str(tmp_path / name), _image(seed))
        manifest = tmp_path / "images.txt"
        manifest.write_text("2 6 6\nin0.png out0.png\nin1.png out1.png\n")
        out = str(tmp_path / "trainingData.txt")

        assert build_image_training_data(str(manifest), out) == (2, 3)

        training_set = load_training_data(out)
        assert len(training_set) == 2
        assert np.array_equal(
            training_set.expected[1], pack_pixels(_image(5)).reshape(-1)
        )

    def test_manifest_size_mismatch(self, tmp_path):
        mpimg.imsave(str(tmp_path / "a.png"), _image(6))
        manifest = tmp_path / "images.txt"
        manifest.write_text("1 4 6\na.png a.png\n")

        with pytest.raises(MalformedPersistedState):
            build_image_training_data(str(manifest), str(tmp_path / "out.txt"))

    def test_manifest_missing_names(self, tmp_path):
        manifest = tmp_path / "images.txt"
        manifest.write_text("2 6 6\na.png b.png\n")

        with pytest.raises(MalformedPersistedState):
            build_image_training_data(str(manifest), str(tmp_path / "out.txt"))
