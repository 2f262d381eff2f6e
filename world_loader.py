'''
world_loader.py -- terrain chunks and the cache that streams them around a moving reference point

Chunks hold structured per-vertex records (x, z, height, color). The interleaved float
buffers a renderer wants are only produced by Chunk.export().
'''

# standard library imports
import math
import numpy

# local imports
import config
import logutil
import mapgen


VERTEX_DTYPE = numpy.dtype([
    ('x', 'f8'),
    ('z', 'f8'),
    ('height', 'f8'),
    ('color', 'f4', (3,)),
])

# (upper bound, rgb) -- a vertex takes the first band whose bound its height is below
COLOR_BANDS = (
    (-15.0, (0.81, 0.80, 0.60)), # deep sand
    (-5.0, (0.81, 0.87, 0.60)),
    (0.0, (0.71, 0.69, 0.51)),
    (8.0, (0.8, 0.8, 0.7)),
    (15.0, (0.55, 0.48, 0.32)), # tan
    (22.0, (0.8, 0.8, 0.7)),
    (25.5, (0.8, 0.8, 0.7)),
    (31.2, (0.0, 0.5, 0.3)), # shoreline
    (42.0, (0.2, 0.6, 0.2)), # low land
    (47.0, (0.8, 0.8, 0.7)),
)
PEAK_COLOR = (1.0, 1.0, 0.9)

_BAND_BOUNDS = numpy.array([b for b, _ in COLOR_BANDS])
_BAND_COLORS = numpy.array([c for _, c in COLOR_BANDS] + [PEAK_COLOR], dtype=numpy.float32)


def loader_log(msg, level='INFO'):
    logutil.log('LOADER', msg, level)


def band_colors(heights):
    '''rgb colour for every height in the array'''
    return _BAND_COLORS[numpy.searchsorted(_BAND_BOUNDS, heights, side='right')]


def vertex_color(height):
    return tuple(float(c) for c in band_colors(numpy.array([height]))[0])


def grid_indices(resolution):
    '''
    triangle indices for a (resolution+1)**2 vertex grid stored row by row (z outer, x inner),
    two triangles per cell: (i0, i1, i2) and (i1, i3, i2)
    '''
    row = resolution + 1
    z, x = numpy.mgrid[0:resolution, 0:resolution]
    i0 = (z * row + x).ravel()
    i1 = i0 + 1
    i2 = i0 + row
    i3 = i2 + 1
    return numpy.stack([i0, i1, i2, i1, i3, i2], axis=1).ravel().astype(numpy.uint32)


def sample_heights(seed, xs, zs):
    '''evaluate the height field at every (x, z) pair'''
    return numpy.array([mapgen.terrain_height(seed, float(x), float(z)) for x, z in zip(xs, zs)],
        dtype=numpy.float64)


class Chunk(object):
    '''
    A square tile of the height field centred on (key[0]*size, key[1]*size).
    Vertices are laid out z-major: index = z*(resolution+1) + x.
    '''
    def __init__(self, key, size, resolution, seed):
        self.key = key
        self.size = size
        self.resolution = resolution
        row = resolution + 1
        steps = numpy.arange(row) / resolution
        xs = key[0] * size + steps * size - size / 2
        zs = key[1] * size + steps * size - size / 2
        self.vertices = numpy.zeros(row * row, dtype=VERTEX_DTYPE)
        self.vertices['x'] = numpy.tile(xs, row)
        self.vertices['z'] = numpy.repeat(zs, row)
        self.set_heights(self.sample(seed))

    @property
    def heights(self):
        return self.vertices['height']

    @property
    def released(self):
        return self.vertices is None

    def sample(self, seed):
        '''heights this chunk would have under `seed`, without touching the chunk'''
        return sample_heights(seed, self.vertices['x'], self.vertices['z'])

    def set_heights(self, heights):
        self.vertices['height'] = heights
        self.vertices['color'] = band_colors(self.vertices['height'])

    def vertex(self, ix, iz):
        return self.vertices[iz * (self.resolution + 1) + ix]

    def export(self):
        '''
        returns (positions, colors, indices): float32 x,y,z triples with y the height,
        float32 r,g,b triples and uint32 triangle indices
        '''
        v = self.vertices
        positions = numpy.empty((len(v), 3), dtype=numpy.float32)
        positions[:, 0] = v['x']
        positions[:, 1] = v['height']
        positions[:, 2] = v['z']
        return positions.ravel(), v['color'].astype(numpy.float32).ravel(), grid_indices(self.resolution)

    def release(self):
        self.vertices = None


class ChunkCache(object):
    '''
    The set of materialised chunks around a reference point. After update() the cache holds
    exactly the chunks whose centre is within render_distance of the reference.
    '''
    def __init__(self, chunk_size=None, resolution=None, render_distance=None):
        self.chunk_size = chunk_size if chunk_size is not None else config.CHUNK_SIZE
        self.resolution = resolution if resolution is not None else config.CHUNK_RESOLUTION
        self.render_distance = render_distance if render_distance is not None else config.RENDER_DISTANCE
        self.chunks = {}

    def __len__(self):
        return len(self.chunks)

    def __contains__(self, key):
        return key in self.chunks

    def __iter__(self):
        return iter(self.chunks)

    def __getitem__(self, key):
        return self.chunks[key]

    def items(self):
        return self.chunks.items()

    def required_keys(self, reference):
        rx, rz = reference
        size = self.chunk_size
        reach = self.render_distance
        keys = set()
        for cx in range(int(math.floor((rx - reach) / size)), int(math.ceil((rx + reach) / size)) + 1):
            for cz in range(int(math.floor((rz - reach) / size)), int(math.ceil((rz + reach) / size)) + 1):
                if math.hypot(cx * size - rx, cz * size - rz) <= reach:
                    keys.add((cx, cz))
        return keys

    def update(self, reference, seed):
        '''
        Create the missing required chunks under `seed` and release the ones out of range.
        Returns (created, evicted) key lists.
        '''
        required = self.required_keys(reference)
        evicted = [key for key in self.chunks if key not in required]
        for key in evicted:
            self.chunks.pop(key).release()
        created = []
        for key in sorted(required):
            if key not in self.chunks:
                self.chunks[key] = Chunk(key, self.chunk_size, self.resolution, seed)
                created.append(key)
        if created or evicted:
            loader_log(f'chunks +{len(created)} -{len(evicted)} now {len(self.chunks)}', level='DEBUG')
        return created, evicted

    def clear(self):
        for chunk in self.chunks.values():
            chunk.release()
        self.chunks.clear()
