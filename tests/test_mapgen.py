import math
import os
import sys

import numpy as np
import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import mapgen
from mapgen import terrain_height, smootherstep, grid_round

SEED = 1234567


def _clear_caches():
    mapgen.land_mass.cache_clear()
    mapgen.cell_feature.cache_clear()
    mapgen.trenches_at.cache_clear()


def _islands(seed, radius=20):
    found = []
    for gx in range(-radius, radius + 1):
        for gz in range(-radius, radius + 1):
            feature = mapgen.cell_feature(seed, gx, gz)
            if isinstance(feature, mapgen.Island):
                found.append(feature)
    return found


def test_missing_seed_is_flat():
    for x, z in ((0, 0), (123.5, -77.25), (8000, 8000)):
        assert terrain_height(0, x, z) == 0.0
        assert terrain_height(None, x, z) == 0.0


def test_smootherstep():
    assert smootherstep(0, 1, 0) == 0.0
    assert smootherstep(0, 1, 1) == 1.0
    assert smootherstep(0, 1, 0.5) == 0.5
    assert smootherstep(0, 1, -3) == 0.0
    assert smootherstep(0, 1, 7) == 1.0
    # reversed edges fall from 1 to 0
    assert smootherstep(10, 5, 2) == 1.0
    assert smootherstep(10, 5, 12) == 0.0


def test_grid_round_rounds_halves_up():
    assert grid_round(500, 1000) == 1
    assert grid_round(499, 1000) == 0
    assert grid_round(-500, 1000) == 0
    assert grid_round(-501, 1000) == -1
    assert grid_round(12000, 8000) == 2


def test_height_is_deterministic():
    points = [(x * 137.3, z * 91.7) for x in range(-10, 10) for z in range(-10, 10)]
    first = [terrain_height(SEED, x, z) for x, z in points]
    _clear_caches()
    second = [terrain_height(SEED, x, z) for x, z in points]
    assert first == second
    assert all(math.isfinite(h) for h in first)


def test_seed_changes_terrain():
    points = [(x * 211.0, z * 173.0) for x in range(-5, 5) for z in range(-5, 5)]
    a = np.array([terrain_height(11, x, z) for x, z in points])
    b = np.array([terrain_height(12, x, z) for x, z in points])
    assert not np.array_equal(a, b)


def test_origin_cell_is_reserved_for_main_deep_spot():
    for seed in (1, 2, 3, SEED):
        assert mapgen.cell_feature(seed, 0, 0) is None
        assert mapgen.main_deep_blend(seed, 0, 0) == 1.0
        assert mapgen.main_deep_blend(seed, 1000, 0) == 0.0


def test_island_variant_bands():
    assert mapgen.island_variant(0.0) == 'ridge'
    assert mapgen.island_variant(0.18) == 'tall'
    assert mapgen.island_variant(0.5) == 'wide'
    assert mapgen.island_variant(0.7) == 'arch'
    assert mapgen.island_variant(0.8) == 'rocky'
    assert mapgen.island_variant(0.9) == 'curvy_wide'
    assert mapgen.island_variant(0.99) == 'cliff'


def test_every_island_variant_occurs_and_is_finite():
    islands = _islands(SEED)
    variants = set(i.variant for i in islands)
    assert variants == set(name for _, name in mapgen.ISLAND_VARIANTS)
    for island in islands:
        for dx, dz in ((0, 0), (120, -40), (-300, 250), (599, 0)):
            blend, height = island.sample(island.center_x + dx, island.center_z + dz)
            assert 0.0 <= blend <= 1.0
            assert math.isfinite(height)


def test_island_blend_falls_off_with_distance():
    island = _islands(SEED, radius=5)[0]
    blend, _ = island.sample(island.center_x, island.center_z)
    assert blend == 1.0
    blend, height = island.sample(island.center_x + mapgen.ISLAND_SIZE, island.center_z)
    assert blend == 0.0


def test_island_shape_rebuilds_identically():
    before = _islands(SEED, radius=4)
    _clear_caches()
    after = _islands(SEED, radius=4)
    assert len(before) == len(after)
    for a, b in zip(before, after):
        assert a is not b
        assert a.variant == b.variant
        assert a.params == b.params
        assert a.octaves == b.octaves
        assert (a.skew_angle, a.warp_amp, a.blend_curve) == (b.skew_angle, b.warp_amp, b.blend_curve)


def test_land_mass_dominates_and_is_not_carved():
    found = None
    for gx in range(-15, 16):
        for gz in range(-15, 16):
            land = mapgen.land_mass(SEED, gx, gz)
            if land is not None:
                found = land
                break
        if found is not None:
            break
    assert found is not None
    blend, height = found.sample(found.center_x, found.center_z)
    assert blend == 1.0
    expected = (80 + math.sin(found.phase1) * 60 + math.cos(found.phase2) * 40 + 120
                + math.sin(found.phase3) * 8)
    assert height == pytest.approx(expected)
    assert terrain_height(SEED, found.center_x, found.center_z) == pytest.approx(expected)


def test_trench_layers_are_built_from_their_own_streams():
    wide = snake = None
    for cx in range(-10, 11):
        for cz in range(-10, 11):
            for trench in mapgen.trenches_at(SEED, cx, cz):
                assert trench.center_x == cx * mapgen.TRENCH_GRID
                if trench.layer is mapgen.WIDE_TRENCHES and wide is None:
                    wide = trench
                if trench.layer is mapgen.SNAKE_TRENCHES and snake is None:
                    snake = trench
    assert wide is not None and snake is not None
    assert 1200 <= wide.length <= 5200
    assert 80 <= wide.width <= 400
    assert wide.depth < 0
    assert 600 <= snake.length <= 1800
    assert 30 <= snake.width <= 90
    assert snake.depth < 0
    assert snake.fork is None


def test_trench_carves_inside_footprint_only():
    trench = None
    for cx in range(-10, 11):
        for cz in range(-10, 11):
            for t in mapgen.trenches_at(SEED, cx, cz):
                if t.layer is mapgen.WIDE_TRENCHES:
                    trench = t
                    break
            if trench is not None:
                break
        if trench is not None:
            break
    wiggle = (0.5, 0.5, 0.5)
    cos_a, sin_a = math.cos(trench.angle), math.sin(trench.angle)
    deepest = 0.0
    for along in np.linspace(-trench.length * 0.4, trench.length * 0.4, 41):
        for across in np.arange(-800.0, 800.0, 10.0):
            x = trench.center_x + along * cos_a - across * sin_a
            z = trench.center_z + along * sin_a + across * cos_a
            carved = trench.carve(x, z, 0.0, wiggle)
            if carved is not None:
                deepest = min(deepest, carved)
    assert deepest < -50
    far_x = trench.center_x + trench.length * 2 * cos_a
    far_z = trench.center_z + trench.length * 2 * sin_a
    assert trench.carve(far_x, far_z, 0.0, wiggle) is None


class _FixedTrench(object):
    def __init__(self, result):
        self.result = result

    def carve(self, x, z, base, wiggle):
        return self.result


def test_deepest_trench_wins(monkeypatch):
    def fake_trenches(seed, cx, cz):
        if (cx, cz) == (0, 0):
            return (_FixedTrench(-50.0), _FixedTrench(-80.0), _FixedTrench(None))
        return ()
    monkeypatch.setattr(mapgen, 'trenches_at', fake_trenches)
    assert mapgen.carve_trenches(SEED, 10.0, 10.0, 5.0) == -80.0


def test_no_trench_leaves_height_alone(monkeypatch):
    monkeypatch.setattr(mapgen, 'trenches_at', lambda seed, cx, cz: (_FixedTrench(None),))
    assert mapgen.carve_trenches(SEED, 10.0, 10.0, 5.0) == 5.0
    monkeypatch.setattr(mapgen, 'trenches_at', lambda seed, cx, cz: ())
    assert mapgen.carve_trenches(SEED, 10.0, 10.0, 5.0) == 5.0
