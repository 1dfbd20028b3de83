"""Pytest fixtures for treedangler tests."""

import tempfile

import numpy as np
import pytest


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def default_config():
    """Create default pipeline configuration."""
    from treedangler.config import PipelineConfig
    return PipelineConfig()


@pytest.fixture
def small_config():
    """Pipeline configuration with a small raster for fast runs."""
    from treedangler.config import PipelineConfig

    config = PipelineConfig()
    config.raster.width = 120
    config.raster.height = 120
    config.scheduler.quiescence_delay = 0.01
    return config


def make_segment(segment_id, x1, y1, x2, y2, label=""):
    from treedangler.models import LineSegment, Point
    return LineSegment(id=segment_id, start=Point(x=x1, y=y1), end=Point(x=x2, y=y2), label=label)


def make_mask(x1, y1, x2, y2):
    from treedangler.models import MaskPolygon
    return MaskPolygon.from_coords("mask", [(x1, y1), (x2, y1), (x2, y2), (x1, y2)])


@pytest.fixture
def square_mask():
    """A 100x100 square mask inside a 120x120 raster."""
    return make_mask(10, 10, 110, 110)


@pytest.fixture
def two_spines():
    """Two parallel vertical spines splitting the square mask in half."""
    return [
        make_segment("left", 35, 25, 35, 95, label="L"),
        make_segment("right", 85, 25, 85, 95, label="R"),
    ]


@pytest.fixture
def connector():
    """A connector bridging the two spines."""
    return make_segment("c1", 35, 60, 85, 60)


@pytest.fixture
def square_scene(square_mask, two_spines, connector):
    """Scene with two spines, one connector and no noise."""
    from treedangler.io.scene import Scene
    from treedangler.models import ShapeConfig

    return Scene(
        mask=square_mask,
        spines=two_spines,
        connectors=[connector],
        shape=ShapeConfig(gap=6, round=4, noise_amplitude=0, noise_seed=0),
    )


@pytest.fixture
def make_request(square_mask, two_spines, connector):
    """Factory for generation requests over the square scene."""
    from treedangler.models import GenerateRequest, ShapeConfig

    def _make(request_id, gap=6, round=4, noise_amplitude=0, noise_seed=0):
        return GenerateRequest(
            id=request_id,
            mask=square_mask,
            spines=two_spines,
            connectors=[connector],
            config=ShapeConfig(gap=gap, round=round, noise_amplitude=noise_amplitude,
                               noise_seed=noise_seed),
        )

    return _make


@pytest.fixture
def block_bitmap():
    """40x40 opaque bitmap with a white 20x20 block in the middle."""
    from treedangler.models import BinaryBitmap

    mask = np.zeros((40, 40), dtype=bool)
    mask[10:30, 10:30] = True
    return BinaryBitmap.from_mask(mask)
