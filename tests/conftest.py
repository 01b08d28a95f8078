"""
Pytest configuration and shared fixtures for the palette generator tests.
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import matplotlib  # noqa: E402

matplotlib.use("Agg")


@pytest.fixture
def rng():
    """Seeded generator so palette tests are reproducible."""
    return np.random.default_rng(12345)


@pytest.fixture
def make_rng():
    """Factory for independent generators sharing a seed."""
    def _make(seed=0):
        return np.random.default_rng(seed)
    return _make


@pytest.fixture
def quantized_colors():
    """A spread of 8-bit colors, including the gamut corners."""
    from cvd_palette_generator import Color

    levels = (0, 1, 17, 64, 127, 128, 200, 254, 255)
    colors = []
    for r in levels:
        for g in levels[::2]:
            for b in levels[::3]:
                colors.append(Color(r / 255.0, g / 255.0, b / 255.0))
    return colors
