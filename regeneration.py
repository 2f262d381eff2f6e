'''
regeneration.py -- blends cached chunks from their current heights to the heights of a new seed
'''
import logutil


class RegenerationTransition(object):
    '''
    Per chunk old/new height arrays plus elapsed/duration. Each advance() writes
    old + (new - old) * t into the chunks, t = min(1, elapsed/duration). At t == 1 the new
    heights are written exactly and the transition reports itself finished.
    '''
    def __init__(self, seed, duration, old_heights, new_heights):
        self.seed = seed
        self.duration = duration
        self.elapsed = 0.0
        self.old_heights = old_heights
        self.new_heights = new_heights

    @classmethod
    def start(cls, cache, seed, duration):
        old = {}
        new = {}
        for key, chunk in cache.items():
            # current heights, so a restart mid-blend continues from what is on screen
            old[key] = chunk.heights.copy()
            new[key] = chunk.sample(seed)
        logutil.log('REGEN', f'regenerating {len(old)} chunks to seed {seed} over {duration}s')
        return cls(seed, duration, old, new)

    @property
    def progress(self):
        if self.duration <= 0:
            return 1.0
        return min(1.0, self.elapsed / self.duration)

    @property
    def finished(self):
        return self.progress >= 1.0

    def heights_at(self, key, t):
        old = self.old_heights[key]
        new = self.new_heights[key]
        if t >= 1.0:
            return new
        return old + (new - old) * t

    def drop(self, key):
        '''forget a chunk that left the cache'''
        self.old_heights.pop(key, None)
        self.new_heights.pop(key, None)

    def advance(self, dt, cache):
        '''step the blend and write heights into the cached chunks; returns True once finished'''
        self.elapsed += dt
        t = self.progress
        for key in self.old_heights:
            if key in cache:
                cache[key].set_heights(self.heights_at(key, t))
        return t >= 1.0
