import os
import sys

import pyglet.clock

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import config
from main import Simulation
from world import TerrainWorld


class FakeConnection(object):
    def __init__(self, incoming=()):
        self.incoming = list(incoming)
        self.sent = []

    def messages(self):
        while self.incoming:
            yield self.incoming.pop(0)

    def broadcast(self, kind, payload):
        self.sent.append((kind, payload))


def _sim(incoming=()):
    world = TerrainWorld(111, chunk_size=100, resolution=2, render_distance=150)
    connection = FakeConnection(incoming)
    now = [0.0]
    clock = pyglet.clock.Clock(time_function=lambda: now[0])
    return Simulation(world, connection, clock=clock), connection


def test_update_streams_and_publishes():
    sim, connection = _sim([('state', 'leader'), ('roster', ['A'])])
    sim.update(0.5)
    assert sim.frame_id == 1
    assert len(sim.world.cache) > 0
    assert sim.position != [0.0, 0.0]
    assert connection.sent[0][0] == 'player_state'
    assert connection.sent[0][1]['seed'] == 111


def test_update_follows_host_seed():
    sim, connection = _sim([
        ('state', 'in_lobby'),
        ('roster', ['A', 'B']),
        ('network_data', {'type': 'player_state', 'peerId': 'A',
                          'payload': {'position': [0, 0], 'rotation': 0, 'seed': 222}}),
    ])
    sim.update(0.0)
    # chunks were streamed after the seed arrived, so the seed was adopted outright
    assert sim.world.seed == 222
    assert 'seed' not in connection.sent[0][1]


def test_background_pacing():
    sim, _ = _sim()
    sim.set_background(True)
    assert sim.background
    assert sim.replicator.throttle.interval == config.BACKGROUND_BROADCAST_INTERVAL
    sim.set_background(False)
    assert sim.replicator.throttle.interval == config.BROADCAST_INTERVAL


def test_headless_render_distance():
    world = TerrainWorld.from_config(config.HEADLESS_RENDER_DISTANCE)
    assert world.cache.render_distance == config.HEADLESS_RENDER_DISTANCE
    assert world.cache.render_distance < config.RENDER_DISTANCE
    assert world.seed
