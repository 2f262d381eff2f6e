'''
world.py -- terrain world owned by the simulation thread

Holds the seed, the chunk cache and at most one regeneration transition. The replication
layer is the only caller of on_host_seed_received().
'''
import random

import config
import logutil
import mapgen
from world_loader import ChunkCache
from regeneration import RegenerationTransition


def random_seed():
    return random.randrange(1, 1000000000)


class TerrainWorld(object):
    def __init__(self, seed=None, chunk_size=None, resolution=None, render_distance=None):
        self.seed = seed
        self.cache = ChunkCache(chunk_size, resolution, render_distance)
        self.transition = None

    @classmethod
    def from_config(cls, render_distance=None):
        seed = getattr(config, 'TERRAIN_SEED', None)
        if seed is None:
            seed = random_seed()
            logutil.log('WORLD', f'generated random terrain seed {seed}')
        return cls(seed, render_distance=render_distance)

    @property
    def target_seed(self):
        '''the seed the world is converging to: the pending one during a transition'''
        if self.transition is not None:
            return self.transition.seed
        return self.seed

    def height_at(self, x, z):
        return mapgen.terrain_height(self.target_seed, x, z)

    def apply_seed(self, seed, duration=None):
        '''
        Move the world to `seed`. With no cached chunks the seed is simply adopted. Otherwise
        every cached chunk blends from its current heights to the new ones over `duration`
        seconds; a call during an active blend restarts it from the interpolated state.
        '''
        if duration is None:
            duration = config.REGEN_DURATION
        if seed == self.target_seed:
            return
        if len(self.cache) == 0:
            logutil.log('WORLD', f'adopting seed {seed}')
            self.seed = seed
            self.transition = None
            return
        self.transition = RegenerationTransition.start(self.cache, seed, duration)
        if duration <= 0:
            self._step_transition(0.0)

    def on_host_seed_received(self, seed, transition_duration=None):
        logutil.log('WORLD', f'host seed received {seed}')
        self.apply_seed(seed, transition_duration)

    def _step_transition(self, dt):
        if self.transition.advance(dt, self.cache):
            self.seed = self.transition.seed
            self.transition = None
            logutil.log('WORLD', f'regeneration finished, seed now {self.seed}')

    def update(self, dt, reference):
        '''stream chunks around `reference` (an x, z pair) then step any active blend'''
        created, evicted = self.cache.update(reference, self.target_seed)
        if self.transition is not None:
            for key in evicted:
                self.transition.drop(key)
            self._step_transition(dt)
        return created, evicted
