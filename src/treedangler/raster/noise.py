"""
Seeded organic noise for piece outlines.

Three octaves of OpenSimplex noise, a pure function of (seed, x, y).
"""

import functools

import numpy as np
from opensimplex import OpenSimplex


DEFAULT_FREQUENCY = 0.01

# (frequency multiplier, phase offset, weight) per octave
OCTAVES = (
    (1.0, 0.0, 1.0),
    (2.0, 100.0, 0.5),
    (3.0, 200.0, 0.25),
)


@functools.lru_cache(maxsize=16)
def get_noise_generator(seed):
    """Generator for a seed, built once and reused."""
    return OpenSimplex(seed=int(seed))


def octave_noise(width, height, seed, base_frequency=DEFAULT_FREQUENCY):
    """
    Sample the combined octave noise over a pixel grid.

    Returns a (height, width) float array with values in roughly [-1, 1].
    """
    generator = get_noise_generator(seed)
    xs = np.arange(width, dtype=np.float64)
    ys = np.arange(height, dtype=np.float64)

    combined = np.zeros((height, width), dtype=np.float64)
    total_weight = 0.0
    for multiplier, offset, weight in OCTAVES:
        frequency = base_frequency * multiplier
        layer = generator.noise2array(xs * frequency + offset, ys * frequency + offset)
        combined += weight * layer
        total_weight += weight

    return combined / total_weight
