'''
mapgen.py -- seeded height field for the open ocean world

terrain_height(seed, x, z) is a pure function: every feature is anchored to a coarse grid
cell and its presence/shape comes only from hash2d(seed ^ layer salt, cell) and the random
stream seeded from that hash. Any peer can therefore compute any chunk on its own and get
the same numbers as everybody else running the same seed.

Layers, in order of precedence:
    land masses (8000 unit grid, rare) -- never carved by trenches once dominant
    the deep spot at the origin (spawn)
    per-cell deep spots and islands (1000 unit grid)
    normal terrain (sum of low/mid frequency waves)
and finally two trench layers (1200 unit grid) carved over whatever is left.
'''
#std libs
import math
import functools

#local libs
from rng import RandomStream, hash2d, salt

TWO_PI = math.pi * 2

LAND_MASS_INTERVAL = 8000
LAND_MASS_SIZE = 5000
LAND_MASS_CHANCE = 0.08

ISLAND_INTERVAL = 1000
ISLAND_SIZE = 600

MAIN_DEEP_RADIUS = 300

TRENCH_GRID = 1200
TRENCH_SEARCH_RADIUS = 2 # cells searched in each direction, 5x5 neighbourhood

LAND_CELL_SALT = 0x1A2B3C4D
LAND_SHAPE_SALT = 0x5EEDBEEF
ISLAND_DENSITY_SALT = 0xD3A5171
MAIN_DEEP_SALT = 0xDEEFACE
ISLAND_SHAPE_SALT = 0xA1A1A1
ISLAND_NOISE_SALT = 0xBADA55
TRENCH_SALT = 0xBEEFCAFE
SNAKE_TRENCH_SALT = 0xDEADBEEF
TRENCH_DENSITY_SALT = 0x7A7A7A7
TRENCH_ROUGH_SALT = 0xA7A7A7A7
WIGGLE_SALT = 0xF00DF00D

# Upper bounds of the variant bands over [0, 1).
ISLAND_VARIANTS = (
    (0.18, 'ridge'),
    (0.36, 'tall'),
    (0.60, 'wide'),
    (0.72, 'arch'),
    (0.86, 'rocky'),
    (0.93, 'curvy_wide'),
    (1.00, 'cliff'),
)


def smootherstep(edge0, edge1, x):
    x = max(0.0, min(1.0, (x - edge0) / (edge1 - edge0)))
    return x * x * x * (x * (x * 6 - 15) + 10)


def grid_round(value, interval):
    '''index of the nearest grid line, halves rounding up'''
    return int(math.floor(value / interval + 0.5))


# -------- land masses --------

class LandMass(object):
    __slots__ = ('center_x', 'center_z', 'phase1', 'phase2', 'phase3')

    def __init__(self, center_x, center_z, phase1, phase2, phase3):
        self.center_x = center_x
        self.center_z = center_z
        self.phase1 = phase1
        self.phase2 = phase2
        self.phase3 = phase3

    def sample(self, x, z):
        '''returns (blend, height) at a world point'''
        dx = x - self.center_x
        dz = z - self.center_z
        dist = math.sqrt(dx * dx + dz * dz)
        if dist >= LAND_MASS_SIZE:
            return 0.0, 0.0
        blend = smootherstep(0, 1, 1 - dist / LAND_MASS_SIZE)
        hill1 = math.sin(dx * 0.0007 + self.phase1) * 60
        hill2 = math.cos(dz * 0.0009 + self.phase2) * 40
        plateau = max(0.0, 1 - dist / (LAND_MASS_SIZE * 0.7)) * 120
        rough = math.sin(dx * 0.005 + dz * 0.005 + self.phase3) * 8
        return blend, 80 + hill1 + hill2 + plateau + rough


@functools.lru_cache(maxsize=1024)
def land_mass(seed, grid_x, grid_z):
    '''the land mass anchored at a land grid cell, or None (most cells)'''
    presence = RandomStream(hash2d(salt(seed, LAND_CELL_SALT), grid_x, grid_z))
    if presence() >= LAND_MASS_CHANCE:
        return None
    shape = RandomStream(hash2d(salt(seed, LAND_SHAPE_SALT), grid_x, grid_z))
    phase1 = shape() * 10
    phase2 = shape() * 20
    phase3 = shape() * 12
    return LandMass(grid_x * LAND_MASS_INTERVAL, grid_z * LAND_MASS_INTERVAL, phase1, phase2, phase3)


# -------- origin deep spot --------

def main_deep_blend(seed, x, z):
    s = salt(seed, MAIN_DEEP_SALT)
    density = 1.0 + math.sin(s * 0.0001) * math.cos(s * 0.0002) * 0.3
    radius = MAIN_DEEP_RADIUS * density
    dist = math.sqrt(x * x + z * z)
    if dist >= radius:
        return 0.0
    return smootherstep(0, 1, 1 - dist / radius)


# -------- per-cell deep spots and islands --------

DEEP_SPOT = 'deep'


class Island(object):
    '''
    Shape of one island. All values are drawn once from the cell's streams in a fixed
    order so the same seed always rebuilds the same island.
    '''
    def __init__(self, grid_x, grid_z, variant, params):
        self.grid_x = grid_x
        self.grid_z = grid_z
        self.center_x = grid_x * ISLAND_INTERVAL
        self.center_z = grid_z * ISLAND_INTERVAL
        self.variant = variant
        self.params = params

    def _draw_shape(self, seed):
        island_seed = hash2d(salt(seed, ISLAND_SHAPE_SALT), self.grid_x, self.grid_z)
        rand = RandomStream(island_seed)
        # skew/warp filter breaking the radial symmetry
        self.skew_angle = rand() * TWO_PI
        self.skew_strength = 0.18 + rand() * 0.32
        self.warp_freq = 0.001 + rand() * 0.003
        self.warp_amp = 30 + rand() * 60
        self.noise_freq = 0.012 + rand() * 0.018
        self.noise_amp = 8 + rand() * 18
        self.noise_phase_x = rand() * 10
        self.noise_phase_z = rand() * 10

        # surface detail uses its own stream so it never shifts the shape draws
        detail = RandomStream(salt(island_seed, ISLAND_NOISE_SALT))
        freq = 0.012 + detail() * 0.01
        amp = 7 + detail() * 5
        phase_x = detail() * 1000
        phase_z = detail() * 1000
        self.octaves = []
        for _ in range(4):
            self.octaves.append((freq, amp, phase_x, phase_z, detail() * 10, detail() * 10))
            freq *= 2.1 + detail() * 0.3
            amp *= 0.45 + detail() * 0.15
            phase_x += detail() * 1000
            phase_z += detail() * 1000

        self.freq1 = 0.008 + rand() * 0.012
        self.freq2 = 0.05 + rand() * 0.09
        self.freq3 = 0.1 + rand() * 0.12
        self.amp1 = 8 + rand() * 16
        self.amp2 = 10 + rand() * 18
        self.amp3 = 12 + rand() * 20
        self.jitter_amp = 2 + rand() * 6
        self.blend_curve = 0.5 + rand() * 1.2
        _VARIANT_DRAWS[self.variant](self, rand)

    def fractal(self, x, z):
        total = 0.0
        for freq, amp, phase_x, phase_z, phase_a, phase_b in self.octaves:
            total += math.sin((x + phase_x) * freq + phase_a) * math.cos((z + phase_z) * freq + phase_b) * amp
        return total

    def sample(self, x, z):
        '''returns (blend, height) at a world point'''
        dx = x - self.center_x
        dz = z - self.center_z
        dist = math.sqrt(dx * dx + dz * dz)
        if dist >= ISLAND_SIZE:
            return 0.0, 0.0
        blend = smootherstep(0, 1, 1 - dist / ISLAND_SIZE)
        skewed_x = dx + math.sin(self.skew_angle) * dz * self.skew_strength
        skewed_z = dz + math.cos(self.skew_angle) * dx * self.skew_strength
        warped_x = skewed_x + math.sin(skewed_z * self.warp_freq) * self.warp_amp
        warped_z = skewed_z + math.cos(skewed_x * self.warp_freq) * self.warp_amp
        shape_noise = (math.sin(skewed_x * self.noise_freq + self.noise_phase_x)
            * math.cos(skewed_z * self.noise_freq + self.noise_phase_z) * self.noise_amp)
        fractal = self.fractal(warped_x, warped_z)
        height, exponent = _VARIANT_HEIGHTS[self.variant](self, warped_x, warped_z, shape_noise, fractal)
        if exponent != 1.0:
            blend = blend ** exponent
        return blend, height


def _draw_jitter(island, rand):
    island.jitter = rand() - 0.5


def _draw_arch(island, rand):
    island.arch_offset = 100 + rand() * 60
    island.arch_spread = 60 + rand() * 40
    island.jitter = rand() - 0.5


def _draw_rocky(island, rand):
    island.outcrop_freq = 0.09 + rand() * 0.07
    island.outcrop_phase_x = rand() * 10
    island.outcrop_phase_z = rand() * 10
    island.outcrop_phase_xz = rand() * 10
    island.jitter = rand() - 0.5


def _draw_cliff(island, rand):
    island.cliff_radius = 140 + rand() * 120
    island.overhang = 0.15 + rand() * 0.25
    island.jitter = rand() - 0.5


_VARIANT_DRAWS = {
    'ridge': _draw_jitter,
    'tall': _draw_jitter,
    'wide': _draw_jitter,
    'curvy_wide': _draw_jitter,
    'arch': _draw_arch,
    'rocky': _draw_rocky,
    'cliff': _draw_cliff,
}


def _ridge_height(i, wx, wz, shape_noise, fractal):
    p = i.params
    return (p['base'] + p['jagged']
        + math.sin(wx * i.freq1) * math.cos(wz * i.freq1) * (i.amp1 * 0.35)
        + math.sin(wx * i.freq2 + wz * i.freq3) * (i.amp2 * 0.25)
        + abs(math.sin(wx * i.freq3) * math.cos(wz * i.freq3)) * (i.amp3 * 0.18)
        + i.jitter * (i.jitter_amp * 0.5)
        + shape_noise * 0.7
        + fractal), 1.0


def _tall_height(i, wx, wz, shape_noise, fractal):
    return (i.params['tall']
        + math.sin(wx * (i.freq1 * 0.5)) * math.cos(wz * (i.freq1 * 0.5)) * (i.amp1 * 0.28)
        + abs(math.sin(wx * (i.freq2 * 0.4)) * math.cos(wz * (i.freq2 * 0.4))) * (i.amp2 * 0.22)
        + i.jitter * (i.jitter_amp * 0.3)
        + shape_noise * 0.7
        + fractal), 1.0


def _wide_height(i, wx, wz, shape_noise, fractal):
    return (i.params['base']
        + math.sin(wx * (i.freq1 * 0.2)) * math.cos(wz * (i.freq1 * 0.2)) * (i.amp1 * 0.08)
        + math.sin(wx * (i.freq2 * 0.5)) * math.cos(wz * (i.freq2 * 0.5)) * (i.amp2 * 0.04)
        + i.jitter * (i.jitter_amp * 0.08)
        + shape_noise * 0.7
        + fractal), i.blend_curve


def _curvy_wide_height(i, wx, wz, shape_noise, fractal):
    curve = math.sin(wx * i.freq1 * 0.22 + math.cos(wz * i.freq1 * 0.18)) * (i.amp1 * 0.09)
    curve += math.cos(wz * i.freq2 * 0.51 + math.sin(wx * i.freq2 * 0.47)) * (i.amp2 * 0.05)
    curve += math.sin((wx + wz) * i.freq3 * 0.33 + math.cos(wx * i.freq3 * 0.29)) * (i.amp3 * 0.04)
    curve += math.sin(wx * 0.021 + wz * 0.017) * math.cos(wz * 0.019 + wx * 0.013) * 2.2
    curve += math.sin(wx * 0.09 + wz * 0.11) * math.sin(wz * 0.07 + wx * 0.05) * 1.1
    curve += i.jitter * (i.jitter_amp * 0.09)
    return (i.params['base'] + i.params['wide'] * 0.9 + curve
        + shape_noise * 0.7
        + fractal), i.blend_curve * 0.95


def _arch_height(i, wx, wz, shape_noise, fractal):
    spread = 2 * i.arch_spread ** 2
    arch1 = math.exp(-((wx - i.arch_offset) ** 2 + wz ** 2) / spread) * i.params['arch']
    arch2 = math.exp(-((wx + i.arch_offset) ** 2 + wz ** 2) / spread) * i.params['arch']
    return (arch1 + arch2
        + math.sin(wx * i.freq1) * math.cos(wz * i.freq1) * (i.amp1 * 0.08)
        + i.jitter * (i.jitter_amp * 0.2)
        + shape_noise * 0.7
        + fractal), 1.0


def _rocky_height(i, wx, wz, shape_noise, fractal):
    amp = i.params['rocky']
    freq = i.outcrop_freq
    mask = math.exp(-(wx ** 2 + wz ** 2) / (2 * 120 ** 2))
    rocky = math.sin(wx * freq + i.outcrop_phase_x) * math.cos(wz * freq + i.outcrop_phase_z) * amp
    rocky += math.sin(wx * freq * 1.7 + wz * freq * 1.3 + i.outcrop_phase_xz) * amp * 0.5
    rocky += i.jitter * amp * 0.2
    # vertical spikes
    rocky += abs(math.sin(wx * 0.23 + wz * 0.19)) * amp * 0.7
    return (i.params['base']
        + rocky * mask
        + shape_noise * 3.5
        + fractal * 3.7), 1.0


def _cliff_height(i, wx, wz, shape_noise, fractal):
    # flat-topped plateau whose wall drops over a narrow band at cliff_radius
    dist = math.sqrt(wx * wx + wz * wz)
    wall = smootherstep(i.cliff_radius, i.cliff_radius * (1 - i.overhang), dist)
    return (i.params['base']
        + i.params['cliff'] * wall
        + i.jitter * (i.jitter_amp * 0.2)
        + shape_noise * 0.7
        + fractal), 1.0


_VARIANT_HEIGHTS = {
    'ridge': _ridge_height,
    'tall': _tall_height,
    'wide': _wide_height,
    'curvy_wide': _curvy_wide_height,
    'arch': _arch_height,
    'rocky': _rocky_height,
    'cliff': _cliff_height,
}


def island_variant(roll):
    for upper, name in ISLAND_VARIANTS:
        if roll < upper:
            return name
    return ISLAND_VARIANTS[-1][1]


@functools.lru_cache(maxsize=4096)
def cell_feature(seed, grid_x, grid_z):
    '''
    The feature anchored at an island grid cell: DEEP_SPOT, an Island, or None.
    The origin cell is reserved for the main deep spot.
    '''
    if grid_x == 0 and grid_z == 0:
        return None
    rand = RandomStream(hash2d(seed, grid_x, grid_z))
    roll = rand()
    s = salt(seed, ISLAND_DENSITY_SALT)
    density = 1.0 + math.sin(grid_x * 0.07 + s * 0.0001) * math.cos(grid_z * 0.09 + s * 0.0002) * 0.3
    if roll < 0.20 * density:
        return DEEP_SPOT
    if roll >= 0.86 * density:
        return None
    variant = island_variant(rand())
    params = {}
    params['base'] = 10 + rand() * 20
    params['jagged'] = rand() * 10 + 5
    params['tall'] = 20 + rand() * 30
    params['wide'] = 1.2 + rand() * 1.5
    params['arch'] = 10 + rand() * 10
    params['rocky'] = 8 + rand() * 12
    params['cliff'] = 18 + rand() * 22
    params['noise'] = rand() * 2.5 + 0.5
    island = Island(grid_x, grid_z, variant, params)
    island._draw_shape(seed)
    return island


# -------- trenches --------

class Trench(object):
    '''One trench instance; every field is drawn from the trench's own stream.'''

    def carve(self, x, z, base, wiggle):
        '''
        Blend this trench into `base` at (x, z). Returns None when the point lies outside
        the trench footprint. `wiggle` holds the three per-point draws shared by all trenches.
        '''
        layer = self.layer
        dx = x - self.center_x
        dz = z - self.center_z
        cos_a = math.cos(self.angle)
        sin_a = math.sin(self.angle)
        along = dx * cos_a + dz * sin_a
        across = -dx * sin_a + dz * cos_a
        c = self.curves
        p = self.curve_phases
        offset = (math.sin(along * c[1] + p[0]) * c[0]
            + math.cos(along * c[3] + p[1]) * c[2]
            + math.sin(along * c[5] + p[2]) * c[4]
            + math.sin(along * c[7] + p[3]) * c[6]
            + math.cos(along * c[9] + p[4]) * c[8]
            + math.sin((along + across) * 0.001 + p[5]) * layer.cross_amps[0]
            + math.cos((along - across) * 0.0012 + p[6]) * layer.cross_amps[1]
            + (wiggle[0] - 0.5) * layer.wiggle)
        if layer.snaking:
            twist = math.sin(along * 0.002 + self.twist_phase) * 22
            bend = math.cos(across * 0.002 + self.bend_phase) * 14
            across = across - offset + twist + bend
        else:
            fork_offset = 0.0
            if self.fork is not None:
                fork_angle, fork_phase = self.fork
                fork_along = dx * math.cos(fork_angle) + dz * math.sin(fork_angle)
                if abs(fork_along) < self.length * 0.4:
                    fork_offset = math.sin(fork_along * 0.001 + fork_phase) * 30
            across = across - offset + fork_offset
        width = (self.width
            + math.sin(along * 0.001 + self.width_phases[0]) * self.width * layer.width_var[0]
            + math.cos(along * 0.0012 + self.width_phases[1]) * self.width * layer.width_var[1]
            + (wiggle[1] - 0.5) * layer.width_noise)
        length = self.length * (0.98 + (wiggle[2] - 0.5) * 0.03)
        half = length / 2
        if abs(along) >= half or abs(across) >= width:
            return None
        core = 1 - abs(across) / width
        end_blend = smootherstep(0, 1, 1 - abs(along) / half)
        blend = smootherstep(0, 1, core) ** layer.core_exponent * end_blend
        r = self.rock
        rock = math.sin(x * 0.011 + r[1]) * math.cos(z * 0.013 + r[2]) * r[0] * layer.rock_coeffs[0]
        rock += math.sin(x * 0.003 + z * 0.005 + r[3]) * (r[0] * layer.rock_coeffs[1])
        rock += r[4] * r[0] * layer.rock_coeffs[2]
        along_norm = (along + half) / length
        depth_var = (math.sin(along_norm * TWO_PI + self.depth_phases[0]) * layer.depth_var[0]
            + math.cos(along_norm * TWO_PI * 2 + self.depth_phases[1]) * layer.depth_var[1])
        target = self.depth + rock * blend + depth_var - self.roughness(x, z)
        return target * blend + base * (1 - blend)

    def roughness(self, x, z):
        '''mountain-like ridges on the floor of wide trenches'''
        if self.rough_seed is None:
            return 0.0
        s = self.rough_seed
        factor = max(0.0, math.sin(x * 0.00013 + s * 0.0001) * math.cos(z * 0.00019 + s * 0.0002) * 0.5 + 0.5)
        if factor <= 0.6:
            return 0.0
        ridges = (math.sin(x * 0.008 + z * 0.011 + s * 0.1) * 5.5
            + math.cos(x * 0.014 + z * 0.017 + s * 0.2) * 3.2
            + math.sin(x * 0.021 + z * 0.019 + s * 0.3) * 2.1
            + math.sin(x * 0.09 + z * 0.07 + s * 0.4) * 0.8)
        return ridges * ((factor - 0.6) / 0.4) ** 1.3


class TrenchLayer(object):
    '''
    Constants for one family of trenches. The wide layer forks and has a rough floor,
    the snaking layer twists and bends instead.
    '''
    def __init__(self, name, layer_salt, chance, length, width, base_depth, depth_scale,
                 depth_noise, curve_ranges, cross_amps, wiggle, width_var, width_noise,
                 core_exponent, rock_amp, rock_coeffs, depth_var, snaking):
        self.name = name
        self.salt = layer_salt
        self.chance = chance
        self.length = length
        self.width = width
        self.base_depth = base_depth
        self.depth_scale = depth_scale
        self.depth_noise = depth_noise
        self.curve_ranges = curve_ranges
        self.cross_amps = cross_amps
        self.wiggle = wiggle
        self.width_var = width_var
        self.width_noise = width_noise
        self.core_exponent = core_exponent
        self.rock_amp = rock_amp
        self.rock_coeffs = rock_coeffs
        self.depth_var = depth_var
        self.snaking = snaking

    def build(self, seed, center_x, center_z, density):
        trench_seed = hash2d(salt(seed, self.salt), center_x, center_z)
        rand = RandomStream(trench_seed)
        if rand() >= self.chance * density:
            return None
        t = Trench()
        t.layer = self
        t.center_x = center_x
        t.center_z = center_z
        t.angle = rand() * TWO_PI
        t.length = self.length[0] + rand() * self.length[1]
        t.width = self.width[0] + rand() * self.width[1]
        base_depth = self.base_depth[0] - rand() * self.base_depth[1]
        k = self.depth_noise
        noise = 0.5 + abs(math.sin(center_x * k[0] + center_z * k[1] + trench_seed * k[2])) * k[3]
        t.depth = base_depth * (self.depth_scale[0] + noise * self.depth_scale[1])
        t.curves = [lo + rand() * span for lo, span in self.curve_ranges]
        t.curve_phases = [rand() * m for m in (10, 20, 30, 40, 50, 5, 7)]
        if self.snaking:
            t.fork = None
            t.twist_phase = rand() * 8
            t.bend_phase = rand() * 6
            t.rough_seed = None
        else:
            t.fork = None
            if rand() < 0.08:
                turn = math.pi / 4 if rand() < 0.5 else -math.pi / 4
                t.fork = (t.angle + turn, rand() * 5)
            t.rough_seed = salt(trench_seed, TRENCH_ROUGH_SALT)
        t.width_phases = (rand() * 5, rand() * 7)
        rock_amp = self.rock_amp[0] + rand() * self.rock_amp[1]
        t.rock = (rock_amp, rand() * 10, rand() * 8, rand() * 20, rand() - 0.5)
        t.depth_phases = (rand() * 6.28, rand() * 12.56)
        return t


WIDE_TRENCHES = TrenchLayer('wide', TRENCH_SALT, chance=0.33,
    length=(1200, 4000), width=(80, 320), base_depth=(-18, 32),
    depth_scale=(8, 2), depth_noise=(0.00021, 0.00017, 0.00001, 1.0),
    curve_ranges=((80, 100), (0.00035, 0.0007), (20, 40), (0.0007, 0.0015), (8, 16),
        (0.001, 0.002), (40, 60), (0.0015, 0.0025), (16, 24), (0.0025, 0.0035)),
    cross_amps=(22, 16), wiggle=6, width_var=(0.12, 0.05), width_noise=4,
    core_exponent=0.18, rock_amp=(2, 3), rock_coeffs=(0.18, 0.08, 0.02),
    depth_var=(2.5, 1.1), snaking=False)

SNAKE_TRENCHES = TrenchLayer('snake', SNAKE_TRENCH_SALT, chance=0.18,
    length=(600, 1200), width=(30, 60), base_depth=(-10, 18),
    depth_scale=(4, 1.2), depth_noise=(0.00031, 0.00027, 0.00003, 0.7),
    curve_ranges=((60, 60), (0.0007, 0.0012), (18, 22), (0.0012, 0.0021), (7, 9),
        (0.002, 0.003), (30, 40), (0.003, 0.004), (12, 18), (0.004, 0.005)),
    cross_amps=(18, 12), wiggle=3, width_var=(0.09, 0.04), width_noise=2,
    core_exponent=0.22, rock_amp=(1.2, 1.8), rock_coeffs=(0.12, 0.05, 0.01),
    depth_var=(1.2, 0.6), snaking=True)

TRENCH_LAYERS = (WIDE_TRENCHES, SNAKE_TRENCHES)


@functools.lru_cache(maxsize=8192)
def trenches_at(seed, cell_x, cell_z):
    '''all trenches anchored at one trench grid cell (0, 1 or 2 of them)'''
    center_x = cell_x * TRENCH_GRID
    center_z = cell_z * TRENCH_GRID
    s = salt(seed, TRENCH_DENSITY_SALT)
    density = 1.0 + math.sin(center_x * 0.00013 + s * 0.0001) * math.cos(center_z * 0.00019 + s * 0.0002) * 0.3
    found = []
    for layer in TRENCH_LAYERS:
        t = layer.build(seed, center_x, center_z, density)
        if t is not None:
            found.append(t)
    return tuple(found)


def carve_trenches(seed, x, z, height):
    '''
    Apply every trench whose footprint covers (x, z). When several do, the deepest
    blended result wins.
    '''
    cell_x = int(math.floor(x / TRENCH_GRID))
    cell_z = int(math.floor(z / TRENCH_GRID))
    wiggle = None
    best = None
    for tx in range(-TRENCH_SEARCH_RADIUS, TRENCH_SEARCH_RADIUS + 1):
        for tz in range(-TRENCH_SEARCH_RADIUS, TRENCH_SEARCH_RADIUS + 1):
            for trench in trenches_at(seed, cell_x + tx, cell_z + tz):
                if wiggle is None:
                    w = RandomStream(hash2d(salt(seed, WIGGLE_SALT), math.floor(x), math.floor(z)))
                    wiggle = (w(), w(), w())
                carved = trench.carve(x, z, height, wiggle)
                if carved is not None and (best is None or carved < best):
                    best = carved
    if best is None:
        return height
    return best


# -------- composition --------

def normal_height(x, z, jitter):
    h = math.sin(x * 0.01) * math.cos(z * 0.01) * 3.0
    h += math.sin(x * 0.015 + z * 0.01) * 2.0
    h += math.sin(x * 0.03) * math.cos(z * 0.025) * 1.5
    h += math.cos(x * 0.025 + z * 0.035) * 1.2
    h += math.sin(x * 0.08) * math.cos(z * 0.06) * 0.6
    h += math.sin(x * 0.05 + z * 0.07) * 0.8
    h += (jitter - 0.5) * 0.5
    return h


def terrain_height(seed, x, z):
    '''
    Height of the sea floor at world point (x, z) for `seed`.
    A missing or zero seed is a flat ocean: 0 everywhere.
    '''
    if not seed:
        return 0.0
    land_blend, land_height = 0.0, 0.0
    land = land_mass(seed, grid_round(x, LAND_MASS_INTERVAL), grid_round(z, LAND_MASS_INTERVAL))
    if land is not None:
        land_blend, land_height = land.sample(x, z)

    point = RandomStream(seed + math.floor(x * 1000 + z * 1000))
    deep_height = -10.0 + math.sin(x * 0.002) * math.cos(z * 0.002) * 0.5 + (point() - 0.5) * 0.1
    normal = normal_height(x, z, point())

    # land masses are never carved by trenches once they dominate
    if land_blend > 0.5:
        return land_height * land_blend + normal * (1 - land_blend)

    if land_blend > 0:
        height = land_height * land_blend + normal * (1 - land_blend)
    else:
        height = normal
        blend = main_deep_blend(seed, x, z)
        if blend > 0:
            height = deep_height * blend + normal * (1 - blend)
        else:
            feature = cell_feature(seed, grid_round(x, ISLAND_INTERVAL), grid_round(z, ISLAND_INTERVAL))
            if feature == DEEP_SPOT:
                gx = grid_round(x, ISLAND_INTERVAL) * ISLAND_INTERVAL
                gz = grid_round(z, ISLAND_INTERVAL) * ISLAND_INTERVAL
                dist = math.sqrt((x - gx) ** 2 + (z - gz) ** 2)
                if dist < ISLAND_SIZE:
                    blend = smootherstep(0, 1, 1 - dist / ISLAND_SIZE)
                    height = deep_height * blend + normal * (1 - blend)
            elif feature is not None:
                blend, island_height = feature.sample(x, z)
                if blend > 0:
                    height = island_height * blend + normal * (1 - blend)
    return carve_trenches(seed, x, z, height)
