"""
Unit tests for the color vision deficiency simulators.
"""

import re

import numpy as np
import pytest

from cvd_palette_generator import (
    Color, Mode, DICHROMACY_MODES, IDENTITY_SIMULATOR, MachadoSimulator,
    simulator_for, simulate, simulate_hex, distance,
)

RED = Color(1.0, 0.0, 0.0)
GREEN = Color(0.0, 0.6, 0.0)


def test_normal_and_both_resolve_to_identity():
    assert simulator_for(Mode.NORMAL) is IDENTITY_SIMULATOR
    assert simulator_for("both") is IDENTITY_SIMULATOR
    assert simulate(RED, Mode.NORMAL) == RED


@pytest.mark.parametrize("variant", DICHROMACY_MODES)
def test_each_variant_has_its_own_simulator(variant):
    simulator = simulator_for(variant)
    assert isinstance(simulator, MachadoSimulator)
    assert simulator.name == variant.value
    assert simulator_for(variant.value) is simulator


@pytest.mark.parametrize("variant", DICHROMACY_MODES)
def test_simulation_is_deterministic_and_in_range(variant):
    first = simulate(Color(0.8, 0.3, 0.6), variant)
    second = simulate(Color(0.8, 0.3, 0.6), variant)
    assert first == second
    assert all(0.0 <= c <= 1.0 for c in first.as_tuple())


@pytest.mark.parametrize("variant", DICHROMACY_MODES)
def test_vectorised_matches_single_color(variant):
    rgb = np.random.default_rng(3).random((20, 3))
    simulator = simulator_for(variant)
    batch = simulator.simulate_rgb(rgb)
    assert batch.shape == rgb.shape
    for row, single in zip(batch, rgb):
        assert row == pytest.approx(simulator.simulate(Color.from_array(single)).as_array(), abs=1e-9)


def test_red_changes_under_red_green_deficiencies():
    assert simulate(RED, Mode.DEUTERANOPIA) != RED
    assert simulate(RED, Mode.PROTANOPIA) != RED


@pytest.mark.parametrize("variant", [Mode.DEUTERANOPIA, Mode.PROTANOPIA])
def test_red_green_confusion_shrinks_distance(variant):
    assert distance(RED, GREEN, variant) < distance(RED, GREEN, Mode.NORMAL)


@pytest.mark.parametrize("variant", DICHROMACY_MODES)
def test_simulate_hex_returns_hex(variant):
    assert re.fullmatch(r"#[0-9a-f]{6}", simulate_hex("#3366CC", variant))


def test_machado_rejects_non_dichromacy():
    with pytest.raises(ValueError):
        MachadoSimulator(Mode.BOTH)
    with pytest.raises(ValueError):
        MachadoSimulator("achromatopsia")
