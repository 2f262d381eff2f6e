import os
import sys

import numpy as np

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from world import TerrainWorld, random_seed
from regeneration import RegenerationTransition


def _world(seed=101):
    world = TerrainWorld(seed, chunk_size=100, resolution=4, render_distance=150)
    world.update(0.0, (0, 0))
    assert len(world.cache) == 9
    return world


def _heights(world):
    return dict((key, chunk.heights.copy()) for key, chunk in world.cache.items())


def test_seed_adopted_without_chunks():
    world = TerrainWorld(5, chunk_size=100, resolution=2, render_distance=150)
    world.apply_seed(6, duration=1.0)
    assert world.seed == 6
    assert world.transition is None
    world.update(0.0, (0, 0))
    for key, chunk in world.cache.items():
        assert np.array_equal(chunk.heights, chunk.sample(6))


def test_interpolation_halfway_and_finish():
    world = _world()
    old = _heights(world)
    new = dict((key, chunk.sample(202)) for key, chunk in world.cache.items())
    world.on_host_seed_received(202, 1.0)
    assert world.seed == 101
    assert world.target_seed == 202

    world.update(0.5, (0, 0))
    for key, chunk in world.cache.items():
        assert np.allclose(chunk.heights, old[key] + (new[key] - old[key]) * 0.5)
    assert world.transition is not None

    world.update(0.5, (0, 0))
    for key, chunk in world.cache.items():
        assert np.array_equal(chunk.heights, new[key])
    assert world.transition is None
    assert world.seed == 202


def test_overshoot_clamps_to_new_heights():
    world = _world()
    new = dict((key, chunk.sample(303)) for key, chunk in world.cache.items())
    world.apply_seed(303, duration=1.0)
    world.update(5.0, (0, 0))
    for key, chunk in world.cache.items():
        assert np.array_equal(chunk.heights, new[key])
    assert world.seed == 303


def test_zero_duration_is_immediate():
    world = _world()
    world.apply_seed(404, duration=0)
    assert world.transition is None
    assert world.seed == 404
    for key, chunk in world.cache.items():
        assert np.array_equal(chunk.heights, chunk.sample(404))


def test_new_seed_restarts_from_interpolated_state():
    world = _world()
    world.apply_seed(202, duration=1.0)
    world.update(0.5, (0, 0))
    midway = _heights(world)
    world.apply_seed(303, duration=2.0)
    transition = world.transition
    assert transition.seed == 303
    assert transition.elapsed == 0.0
    for key in midway:
        assert np.array_equal(transition.old_heights[key], midway[key])
    world.update(2.0, (0, 0))
    assert world.seed == 303
    for key, chunk in world.cache.items():
        assert np.array_equal(chunk.heights, chunk.sample(303))


def test_repeated_seed_does_not_restart():
    world = _world()
    world.apply_seed(202, duration=1.0)
    world.update(0.25, (0, 0))
    transition = world.transition
    world.apply_seed(202, duration=1.0)
    assert world.transition is transition
    assert transition.elapsed == 0.25


def test_streaming_during_transition():
    world = _world()
    world.apply_seed(202, duration=1.0)
    world.update(0.25, (300, 0))
    # chunks that left are forgotten, new ones start on the pending seed
    assert (-1, 0) not in world.cache
    assert (-1, 0) not in world.transition.old_heights
    assert (4, 0) in world.cache
    assert np.array_equal(world.cache[(4, 0)].heights, world.cache[(4, 0)].sample(202))
    world.update(1.0, (300, 0))
    assert world.transition is None
    for key, chunk in world.cache.items():
        assert np.array_equal(chunk.heights, chunk.sample(202))


def test_transition_progress():
    t = RegenerationTransition(1, 2.0, {}, {})
    assert t.progress == 0.0
    t.elapsed = 1.0
    assert t.progress == 0.5
    t.elapsed = 3.0
    assert t.progress == 1.0 and t.finished
    assert RegenerationTransition(1, 0, {}, {}).progress == 1.0


def test_random_seed_range():
    for _ in range(100):
        seed = random_seed()
        assert 1 <= seed < 1000000000
