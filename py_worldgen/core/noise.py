"""
Coherent noise generators.

Perlin, Simplex and Wavelet noise in one to four dimensions, with fractional
Brownian motion (fBm) and turbulence sums over octaves. A generator owns a
256-entry permutation table and 256 unit gradient vectors drawn from an
explicit AleaPRNG, so the same seed always yields the same field.

Kernels operate on arrays of points shaped (n, dimensions); the scalar
``get``/``get_fbm``/``get_turbulence`` methods are thin wrappers.
"""

import math
from enum import Enum
from typing import Callable, Optional, Sequence

import numpy as np
import structlog

from .alea_prng import AleaPRNG
from ..utils.random import ensure_prng

logger = structlog.get_logger()

MAX_OCTAVES = 128
MAX_DIMENSIONS = 4
DEFAULT_HURST = 0.5
DEFAULT_LACUNARITY = 2.0

SIMPLEX_SCALE = 0.5
WAVELET_SCALE = 2.0
WAVELET_TILE_SIZE = 32
WAVELET_ARAD = 16

# Fractional octave remainders below this are ignored
OCTAVE_DELTA = 1e-6

# Skewing factors for the simplex grids
F2 = 0.366025403  # 0.5 * (sqrt(3) - 1)
G2 = 0.211324865  # (3 - sqrt(3)) / 6
F3 = 0.333333333
G3 = 0.166666667
F4 = 0.309016994  # (sqrt(5) - 1) / 4
G4 = 0.138196601  # (5 - sqrt(5)) / 20

# Lookup table ranking the coordinates of a 4D simplex
SIMPLEX_4D = np.array(
    [
        [0, 1, 2, 3], [0, 1, 3, 2], [0, 0, 0, 0], [0, 2, 3, 1], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [1, 2, 3, 0],
        [0, 2, 1, 3], [0, 0, 0, 0], [0, 3, 1, 2], [0, 3, 2, 1], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [1, 3, 2, 0],
        [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0],
        [1, 2, 0, 3], [0, 0, 0, 0], [1, 3, 0, 2], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [2, 3, 0, 1], [2, 3, 1, 0],
        [1, 0, 2, 3], [1, 0, 3, 2], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [2, 0, 3, 1], [0, 0, 0, 0], [2, 1, 3, 0],
        [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0],
        [2, 0, 1, 3], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [3, 0, 1, 2], [3, 0, 2, 1], [0, 0, 0, 0], [3, 1, 2, 0],
        [2, 1, 0, 3], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0], [3, 1, 0, 2], [0, 0, 0, 0], [3, 2, 0, 1], [3, 2, 1, 0],
    ],
    dtype=np.int64,
)

# Wavelet analysis (downsampling) coefficients
WAVELET_A = np.array(
    [
        0.000334, -0.001528, 0.000410, 0.003545, -0.000938, -0.008233, 0.002172, 0.019120,
        -0.005040, -0.044412, 0.011655, 0.103311, -0.025936, -0.243780, 0.033979, 0.655340,
        0.655340, 0.033979, -0.243780, -0.025936, 0.103311, 0.011655, -0.044412, -0.005040,
        0.019120, 0.002172, -0.008233, -0.000938, 0.003546, 0.000410, -0.001528, 0.000334,
    ]
)

# Wavelet synthesis (upsampling) coefficients
WAVELET_P = np.array([0.25, 0.75, 0.75, 0.25])


class NoiseType(Enum):
    """Noise kernel selector."""

    PERLIN = "perlin"
    SIMPLEX = "simplex"
    WAVELET = "wavelet"


def _grad1(h: int, x: float) -> float:
    h &= 0xF
    grad = 1.0 + (h & 7)
    if h & 8:
        grad = -grad
    return grad * x


def _grad2(h: int, x: float, y: float) -> float:
    h &= 0x7
    if h < 4:
        u, v = x, 2.0 * y
    else:
        u, v = y, 2.0 * x
    n = -u if h & 1 else 0.0
    if h & 2:
        n -= v
    return n


def _grad3(h: int, x: float, y: float, z: float) -> float:
    h &= 0xF
    if h < 4:
        u, v = x, 2.0 * y
    elif h == 12 or h == 14:
        u, v = y, x
    else:
        u, v = z, y
    n = -u if h & 1 else 0.0
    if h & 2:
        n -= v
    return n


def _grad4(h: int, x: float, y: float, z: float, t: float) -> float:
    h &= 0x1F
    if h < 16:
        u, v, w = x, y, z
    elif h < 24:
        u, v, w = y, y, t
    else:
        u, v, w = z, t, z
    n = -u if h & 1 else 0.0
    if h & 2:
        n -= v
    if h & 4:
        n -= w
    return n


def _wavelet_filter_matrix() -> np.ndarray:
    """Combined downsample-then-upsample operator along one tile axis."""
    n = WAVELET_TILE_SIZE
    down = np.zeros((n // 2, n))
    for i in range(n // 2):
        for k in range(2 * i - WAVELET_ARAD, 2 * i + WAVELET_ARAD):
            down[i, k % n] += WAVELET_A[WAVELET_ARAD + k - 2 * i]
    up = np.zeros((n, n // 2))
    p = WAVELET_P[2:]
    for i in range(n):
        up[i, (i // 2) % (n // 2)] += p[i - 2 * (i // 2)]
    return up @ down


class Noise:
    """
    Seeded coherent noise generator.

    Args:
        dimensions: Number of input coordinates, 1 to 4
        hurst: Hurst exponent controlling octave amplitude decay
        lacunarity: Frequency multiplier between octaves
        prng: Generator or seed used to build the tables
        noise_type: Kernel used by get, get_fbm and get_turbulence
    """

    def __init__(
        self,
        dimensions: int,
        hurst: float = DEFAULT_HURST,
        lacunarity: float = DEFAULT_LACUNARITY,
        prng: Optional[AleaPRNG] = None,
        noise_type: NoiseType = NoiseType.PERLIN,
    ):
        if not 1 <= dimensions <= MAX_DIMENSIONS:
            raise ValueError(f"Noise dimensions must be in 1..{MAX_DIMENSIONS}, got {dimensions}")
        self.dimensions = dimensions
        self.hurst = hurst
        self.lacunarity = lacunarity
        self.noise_type = noise_type
        self._prng = ensure_prng(prng)

        # Unit gradient per permutation slot
        buffer = np.zeros((256, dimensions))
        for i in range(256):
            for j in range(dimensions):
                buffer[i, j] = self._prng.uniform(-0.5, 0.5)
            length = math.sqrt(float(np.dot(buffer[i], buffer[i])))
            if length > 0:
                buffer[i] /= length
        self.buffer = buffer

        perm = list(range(256))
        for i in range(255, -1, -1):
            j = self._prng.randint(0, 255)
            perm[i], perm[j] = perm[j], perm[i]
        self.perm = np.array(perm, dtype=np.int64)

        self.exponent = lacunarity ** (-np.arange(MAX_OCTAVES) * hurst)
        self._wavelet_tile: Optional[np.ndarray] = None

        logger.debug("Noise generator created", dimensions=dimensions, hurst=hurst, lacunarity=lacunarity)

    # Point handling

    def _points(self, x, y=None, z=None, w=None) -> np.ndarray:
        x = np.atleast_1d(np.asarray(x, dtype=np.float64))
        points = np.zeros((x.size, self.dimensions))
        points[:, 0] = x.ravel()
        for axis, coords in enumerate((y, z, w), start=1):
            if coords is not None and self.dimensions > axis:
                points[:, axis] = np.asarray(coords, dtype=np.float64).ravel()
        return points

    def _as_point(self, f: Sequence[float]) -> np.ndarray:
        point = np.zeros((1, self.dimensions))
        values = list(f)[: self.dimensions]
        point[0, : len(values)] = values
        return point

    # Kernels

    def _kernel(self, noise_type: NoiseType) -> Callable[[np.ndarray], np.ndarray]:
        if noise_type == NoiseType.PERLIN:
            return self.perlin
        if noise_type == NoiseType.SIMPLEX:
            return self.simplex
        if noise_type == NoiseType.WAVELET:
            return self.wavelet
        raise ValueError(f"Unknown noise type: {noise_type}")

    def perlin(self, points: np.ndarray) -> np.ndarray:
        """Gradient noise on the integer lattice, points shaped (n, dimensions)."""
        points = np.asarray(points, dtype=np.float64).reshape(-1, self.dimensions)
        d = self.dimensions
        lattice = np.floor(points).astype(np.int64)
        r = points - lattice
        weight = r * r * (3.0 - 2.0 * r)

        corners = []
        for corner in range(1 << d):
            bits = [(corner >> i) & 1 for i in range(d)]
            idx = np.zeros(points.shape[0], dtype=np.int64)
            for i in range(d):
                idx = self.perm[(idx + lattice[:, i] + bits[i]) & 0xFF]
            value = np.zeros(points.shape[0])
            for i in range(d):
                value += self.buffer[idx, i] * (r[:, i] - bits[i])
            corners.append(value)

        # Collapse one axis at a time, first axis first
        for i in range(d):
            corners = [
                corners[k] + weight[:, i] * (corners[k + 1] - corners[k])
                for k in range(0, len(corners), 2)
            ]
        return np.clip(corners[0], -1.0, 1.0)

    def simplex(self, points: np.ndarray) -> np.ndarray:
        """Simplex noise, points shaped (n, dimensions)."""
        points = np.asarray(points, dtype=np.float64).reshape(-1, self.dimensions)
        sample = {
            1: self._simplex1,
            2: self._simplex2,
            3: self._simplex3,
            4: self._simplex4,
        }[self.dimensions]
        return np.array([sample(*p) for p in points.tolist()], dtype=np.float64)

    def _simplex1(self, fx: float) -> float:
        perm = self.perm
        i0 = int(math.floor(fx * SIMPLEX_SCALE))
        i1 = i0 + 1
        x0 = fx * SIMPLEX_SCALE - i0
        x1 = x0 - 1.0
        t0 = 1.0 - x0 * x0
        t1 = 1.0 - x1 * x1
        t0 *= t0
        t1 *= t1
        n0 = _grad1(int(perm[i0 & 0xFF]), x0) * t0 * t0
        n1 = _grad1(int(perm[i1 & 0xFF]), x1) * t1 * t1
        return min(max(0.25 * (n0 + n1), -1.0), 1.0)

    def _simplex2(self, fx: float, fy: float) -> float:
        perm = self.perm
        fx *= SIMPLEX_SCALE
        fy *= SIMPLEX_SCALE
        s = (fx + fy) * F2
        i = int(math.floor(fx + s))
        j = int(math.floor(fy + s))
        t = (i + j) * G2
        x0 = fx - (i - t)
        y0 = fy - (j - t)
        ii = i & 0xFF
        jj = j & 0xFF
        if x0 > y0:
            i1, j1 = 1, 0
        else:
            i1, j1 = 0, 1
        x1 = x0 - i1 + G2
        y1 = y0 - j1 + G2
        x2 = x0 - 1.0 + 2.0 * G2
        y2 = y0 - 1.0 + 2.0 * G2

        n0 = n1 = n2 = 0.0
        t0 = 0.5 - x0 * x0 - y0 * y0
        if t0 >= 0.0:
            idx = int(perm[(ii + int(perm[jj])) & 0xFF])
            t0 *= t0
            n0 = _grad2(idx, x0, y0) * t0 * t0
        t1 = 0.5 - x1 * x1 - y1 * y1
        if t1 >= 0.0:
            idx = int(perm[(ii + i1 + int(perm[(jj + j1) & 0xFF])) & 0xFF])
            t1 *= t1
            n1 = _grad2(idx, x1, y1) * t1 * t1
        t2 = 0.5 - x2 * x2 - y2 * y2
        if t2 >= 0.0:
            idx = int(perm[(ii + 1 + int(perm[(jj + 1) & 0xFF])) & 0xFF])
            t2 *= t2
            n2 = _grad2(idx, x2, y2) * t2 * t2
        return min(max(40.0 * (n0 + n1 + n2), -1.0), 1.0)

    def _simplex3(self, fx: float, fy: float, fz: float) -> float:
        perm = self.perm
        fx *= SIMPLEX_SCALE
        fy *= SIMPLEX_SCALE
        fz *= SIMPLEX_SCALE
        s = (fx + fy + fz) * F3
        i = int(math.floor(fx + s))
        j = int(math.floor(fy + s))
        k = int(math.floor(fz + s))
        t = (i + j + k) * G3
        x0 = fx - (i - t)
        y0 = fy - (j - t)
        z0 = fz - (k - t)
        if x0 >= y0:
            if y0 >= z0:
                i1, j1, k1, i2, j2, k2 = 1, 0, 0, 1, 1, 0
            elif x0 >= z0:
                i1, j1, k1, i2, j2, k2 = 1, 0, 0, 1, 0, 1
            else:
                i1, j1, k1, i2, j2, k2 = 0, 0, 1, 1, 0, 1
        else:
            if y0 < z0:
                i1, j1, k1, i2, j2, k2 = 0, 0, 1, 0, 1, 1
            elif x0 < z0:
                i1, j1, k1, i2, j2, k2 = 0, 1, 0, 0, 1, 1
            else:
                i1, j1, k1, i2, j2, k2 = 0, 1, 0, 1, 1, 0

        offsets = (
            (0, 0, 0, x0, y0, z0),
            (i1, j1, k1, x0 - i1 + G3, y0 - j1 + G3, z0 - k1 + G3),
            (i2, j2, k2, x0 - i2 + 2.0 * G3, y0 - j2 + 2.0 * G3, z0 - k2 + 2.0 * G3),
            (1, 1, 1, x0 - 1.0 + 3.0 * G3, y0 - 1.0 + 3.0 * G3, z0 - 1.0 + 3.0 * G3),
        )
        ii, jj, kk = i & 0xFF, j & 0xFF, k & 0xFF
        total = 0.0
        for oi, oj, ok, x, y, z in offsets:
            t = 0.6 - x * x - y * y - z * z
            if t >= 0:
                idx = int(perm[(ii + oi + int(perm[(jj + oj + int(perm[(kk + ok) & 0xFF])) & 0xFF])) & 0xFF])
                t *= t
                total += _grad3(idx, x, y, z) * t * t
        return min(max(32.0 * total, -1.0), 1.0)

    def _simplex4(self, fx: float, fy: float, fz: float, fw: float) -> float:
        perm = self.perm
        fx *= SIMPLEX_SCALE
        fy *= SIMPLEX_SCALE
        fz *= SIMPLEX_SCALE
        fw *= SIMPLEX_SCALE
        s = (fx + fy + fz + fw) * F4
        i = int(math.floor(fx + s))
        j = int(math.floor(fy + s))
        k = int(math.floor(fz + s))
        m = int(math.floor(fw + s))
        t = (i + j + k + m) * G4
        x0 = fx - (i - t)
        y0 = fy - (j - t)
        z0 = fz - (k - t)
        w0 = fw - (m - t)

        c = (
            (32 if x0 > y0 else 0)
            + (16 if x0 > z0 else 0)
            + (8 if y0 > z0 else 0)
            + (4 if x0 > w0 else 0)
            + (2 if y0 > w0 else 0)
            + (1 if z0 > w0 else 0)
        )
        rank = SIMPLEX_4D[c]
        steps = [(0, 0, 0, 0)]
        for threshold in (3, 2, 1):
            steps.append(tuple(1 if rank[a] >= threshold else 0 for a in range(4)))
        steps.append((1, 1, 1, 1))

        ii, jj, kk, ll = i & 0xFF, j & 0xFF, k & 0xFF, m & 0xFF
        total = 0.0
        for n, (oi, oj, ok, ol) in enumerate(steps):
            x = x0 - oi + n * G4
            y = y0 - oj + n * G4
            z = z0 - ok + n * G4
            w = w0 - ol + n * G4
            t = 0.6 - x * x - y * y - z * z - w * w
            if t >= 0:
                idx = int(
                    perm[
                        (ii + oi + int(perm[(jj + oj + int(perm[(kk + ok + int(perm[(ll + ol) & 0xFF])) & 0xFF])) & 0xFF]))
                        & 0xFF
                    ]
                )
                t *= t
                total += _grad4(idx, x, y, z, w) * t * t
        return min(max(27.0 * total, -1.0), 1.0)

    def _init_wavelet(self) -> None:
        """Build the band-pass 32^3 tile on first use."""
        n = WAVELET_TILE_SIZE
        samples = [self._prng.uniform(-1.0, 1.0) for _ in range(n * n * n)]
        # Flat index x + y*n + z*n*n, stored as [z, y, x]
        tile = np.array(samples).reshape(n, n, n)

        m = _wavelet_filter_matrix()
        low = np.einsum("ij,zyj->zyi", m, tile)
        low = np.einsum("ij,zjx->zix", m, low)
        low = np.einsum("ij,jyx->iyx", m, low)
        tile = tile - low

        offset = n // 2
        if offset & 1 == 0:
            offset += 1
        rolled = np.roll(tile, -offset, axis=(0, 1, 2))
        tile = tile + rolled.transpose(2, 1, 0)

        self._wavelet_tile = tile
        logger.debug("Wavelet tile initialised", size=n)

    def wavelet(self, points: np.ndarray) -> np.ndarray:
        """Wavelet noise for 1 to 3 dimensions; NaN for 4."""
        points = np.asarray(points, dtype=np.float64).reshape(-1, self.dimensions)
        if self.dimensions > 3:
            return np.full(points.shape[0], np.nan)
        if self._wavelet_tile is None:
            self._init_wavelet()
        n = WAVELET_TILE_SIZE
        pf = np.zeros((points.shape[0], 3))
        pf[:, : self.dimensions] = points * WAVELET_SCALE

        mid = np.ceil(pf - 0.5).astype(np.int64)
        t = mid - (pf - 0.5)
        w0 = t * t * 0.5
        w2 = (1.0 - t) * (1.0 - t) * 0.5
        weights = (w0, 1.0 - w0 - w2, w2)

        result = np.zeros(points.shape[0])
        for p2 in (-1, 0, 1):
            c2 = (mid[:, 2] + p2) % n
            for p1 in (-1, 0, 1):
                c1 = (mid[:, 1] + p1) % n
                for p0 in (-1, 0, 1):
                    c0 = (mid[:, 0] + p0) % n
                    weight = weights[p0 + 1][:, 0] * weights[p1 + 1][:, 1] * weights[p2 + 1][:, 2]
                    result += weight * self._wavelet_tile[c2, c1, c0]
        return np.clip(result, -1.0, 1.0)

    # Octave sums

    def _octaves(self, points: np.ndarray, octaves: float, kernel, absolute: bool) -> np.ndarray:
        tf = np.array(points, dtype=np.float64)
        value = np.zeros(tf.shape[0])
        whole = int(octaves)
        for i in range(whole):
            sample = kernel(tf)
            value += (np.abs(sample) if absolute else sample) * self.exponent[i]
            tf *= self.lacunarity
        remainder = octaves - whole
        if remainder > OCTAVE_DELTA and whole < MAX_OCTAVES:
            sample = kernel(tf)
            value += remainder * (np.abs(sample) if absolute else sample) * self.exponent[whole]
        return np.clip(value, -1.0, 1.0)

    def fbm(self, points: np.ndarray, octaves: float, noise_type: Optional[NoiseType] = None) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64).reshape(-1, self.dimensions)
        return self._octaves(points, octaves, self._kernel(noise_type or self.noise_type), absolute=False)

    def turbulence(self, points: np.ndarray, octaves: float, noise_type: Optional[NoiseType] = None) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64).reshape(-1, self.dimensions)
        return self._octaves(points, octaves, self._kernel(noise_type or self.noise_type), absolute=True)

    # Public entry points dispatching on the configured type

    def get(self, f: Sequence[float], noise_type: Optional[NoiseType] = None) -> float:
        """Sample the configured kernel at point f."""
        return float(self._kernel(noise_type or self.noise_type)(self._as_point(f))[0])

    def get_fbm(self, f: Sequence[float], octaves: float, noise_type: Optional[NoiseType] = None) -> float:
        return float(self.fbm(self._as_point(f), octaves, noise_type)[0])

    def get_turbulence(self, f: Sequence[float], octaves: float, noise_type: Optional[NoiseType] = None) -> float:
        return float(self.turbulence(self._as_point(f), octaves, noise_type)[0])

    def get_vectorized(self, x, y=None, z=None, w=None, noise_type: Optional[NoiseType] = None) -> np.ndarray:
        """
        Sample parallel coordinate arrays.

        Coordinates beyond the generator's dimensions are ignored.
        """
        return self._kernel(noise_type or self.noise_type)(self._points(x, y, z, w))

    def get_fbm_vectorized(
        self, octaves: float, x, y=None, z=None, w=None, noise_type: Optional[NoiseType] = None
    ) -> np.ndarray:
        return self.fbm(self._points(x, y, z, w), octaves, noise_type)

    def get_turbulence_vectorized(
        self, octaves: float, x, y=None, z=None, w=None, noise_type: Optional[NoiseType] = None
    ) -> np.ndarray:
        return self.turbulence(self._points(x, y, z, w), octaves, noise_type)
