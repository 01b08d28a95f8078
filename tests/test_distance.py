"""
Unit tests for the mode-aware perceptual distance metric.
"""

import numpy as np
import pytest

from cvd_palette_generator import (
    Color, Mode, PerceptualMetric, color_to_oklab, distance,
)

ALL_MODES = list(Mode)


@pytest.fixture
def color_pairs():
    rgb = np.random.default_rng(7).random((12, 3))
    colors = [Color.from_array(row) for row in rgb]
    return list(zip(colors[:6], colors[6:])) + [
        (Color(1.0, 0.0, 0.0), Color(0.0, 1.0, 0.0)),
        (Color(0.0, 0.0, 0.0), Color(1.0, 1.0, 1.0)),
    ]


@pytest.mark.parametrize("mode", ALL_MODES)
def test_symmetric(mode, color_pairs):
    for a, b in color_pairs:
        assert distance(a, b, mode) == distance(b, a, mode)


@pytest.mark.parametrize("mode", ALL_MODES)
def test_zero_for_identical_colors(mode, color_pairs):
    for a, _ in color_pairs:
        assert distance(a, a, mode) == 0.0


@pytest.mark.parametrize("mode", ALL_MODES)
def test_non_negative(mode, color_pairs):
    for a, b in color_pairs:
        assert distance(a, b, mode) >= 0.0


def test_both_is_minimum_of_normal_and_deuteranopia(color_pairs):
    for a, b in color_pairs:
        expected = min(distance(a, b, Mode.NORMAL), distance(a, b, Mode.DEUTERANOPIA))
        assert distance(a, b, Mode.BOTH) == expected


def test_normal_is_oklab_euclidean():
    a, b = Color(0.9, 0.2, 0.1), Color(0.1, 0.3, 0.8)
    expected = np.linalg.norm(color_to_oklab(a).as_array() - color_to_oklab(b).as_array())
    assert distance(a, b, Mode.NORMAL) == pytest.approx(expected, rel=1e-12)


def test_accepts_mode_strings():
    a, b = Color(0.9, 0.2, 0.1), Color(0.1, 0.3, 0.8)
    assert distance(a, b, "tritanopia") == distance(a, b, Mode.TRITANOPIA)


def test_unknown_mode_is_rejected():
    with pytest.raises(ValueError):
        distance(Color(0, 0, 0), Color(1, 1, 1), "monochrome")


@pytest.mark.parametrize("mode", ALL_MODES)
def test_bulk_pairwise_matches_scalar(mode):
    metric = PerceptualMetric(mode)
    rgb = np.random.default_rng(11).random((8, 3))
    embedded = metric.embed(rgb)
    matrix = metric.pairwise(embedded, embedded)
    assert matrix.shape == (8, 8)
    for i in range(8):
        for j in range(8):
            scalar = metric.distance(Color.from_array(rgb[i]), Color.from_array(rgb[j]))
            assert matrix[i, j] == pytest.approx(scalar, abs=1e-9)


def test_both_mode_has_two_views():
    metric = PerceptualMetric(Mode.BOTH)
    assert [s.name for s in metric.simulators] == ["normal", "deuteranopia"]
    assert metric.anchor.name == "normal"
    assert metric.embed(np.zeros((3, 3))).shape == (2, 3, 3)
