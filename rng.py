'''
rng.py -- deterministic integer hash and seeded random streams used by terrain generation

Every peer must derive the same world from the same seed, so nothing in here may depend
on process state: the hash uses 32-bit integer arithmetic only and a stream is fully
determined by the number it was seeded with.
'''
import math


def to_int32(value):
    '''wrap an integer to a signed 32-bit value'''
    value = int(value) & 0xFFFFFFFF
    if value & 0x80000000:
        return value - 0x100000000
    return value


def salt(seed, layer_salt):
    '''xor a seed with a per-layer constant, keeping it a signed 32-bit value'''
    return to_int32(to_int32(seed) ^ to_int32(layer_salt))


def hash2d(seed, x, z):
    '''
    mix a seed and an integer grid coordinate into an unsigned 32-bit value

    hash2d(0, 0, 0) == 0
    '''
    h = to_int32(seed) ^ to_int32(int(x) * 374761393) ^ to_int32(int(z) * 668265263)
    h = to_int32((h ^ (h >> 13)) * 1274126177)
    h = h ^ (h >> 16)
    return h & 0xFFFFFFFF


class RandomStream(object):
    '''
    Infinite stream of floats in [0, 1) produced by repeatedly scrambling a running scalar.

    A seed of 0 is a fixed point of the scramble and yields 0.0 forever. That is kept as
    defined behaviour: every peer running the same seed sees the same values.
    '''
    def __init__(self, seed):
        self.seed = seed
        self.reset()

    def reset(self):
        self._x = math.sin(self.seed) * 10000

    def random(self):
        self._x = math.sin(self._x) * 10000
        return self._x - math.floor(self._x)

    __call__ = random

    def __iter__(self):
        return self

    def __next__(self):
        return self.random()


def random_stream(seed):
    return RandomStream(seed)
