"""
Scalar grid module for terrain composition.

A Heightmap is a dense W x H field of float64 values stored row-major in a
single NumPy buffer, addressed as ``x + y * width``. It offers the compositing
primitives used to build terrain: hill stamps, fBm layers, pointwise algebra,
normalisation, erosion, kernel transforms, Voronoi and midpoint displacement.

Out-of-bounds reads return 0 and out-of-bounds writes are ignored. Binary
operations on grids of different shapes are silent no-ops.
"""

import math
from typing import TYPE_CHECKING, Optional, Sequence, Tuple

import numpy as np
import structlog

from .alea_prng import AleaPRNG

if TYPE_CHECKING:
    from .noise import Noise

logger = structlog.get_logger()

# Ranges narrower than this are treated as flat by normalize()
NORMALIZE_EPSILON = np.finfo(np.float64).eps

# Neighbour order shared by slope and erosion scans
_DIX = (-1, 0, 1, -1, 1, -1, 0, 1)
_DIY = (-1, -1, -1, 0, 0, 1, 1, 1)


class Heightmap:
    """
    Dense 2-D scalar field with algebraic and compositing operations.

    Dimensions are fixed at construction; ``values`` always holds exactly
    ``width * height`` doubles.
    """

    def __init__(self, width: int, height: int):
        """
        Create a zero-filled grid.

        Args:
            width: Number of columns, must be positive
            height: Number of rows, must be positive
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"Heightmap dimensions must be positive, got {width}x{height}")
        self._width = int(width)
        self._height = int(height)
        self.values = np.zeros(self._width * self._height, dtype=np.float64)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "Heightmap":
        """Build a grid from a (height, width) array."""
        array = np.asarray(array, dtype=np.float64)
        hm = cls(array.shape[1], array.shape[0])
        hm.values[:] = array.ravel()
        return hm

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def grid(self) -> np.ndarray:
        """View of the values shaped (height, width)."""
        return self.values.reshape(self._height, self._width)

    def to_array(self) -> np.ndarray:
        """Copy of the values shaped (height, width)."""
        return self.grid.copy()

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self._width and 0 <= y < self._height

    def is_same_size(self, other: Optional["Heightmap"]) -> bool:
        return other is not None and self._width == other.width and self._height == other.height

    def get_value(self, x: int, y: int) -> float:
        if not self.in_bounds(x, y):
            return 0.0
        return float(self.values[x + y * self._width])

    def set_value(self, x: int, y: int, value: float) -> None:
        if not self.in_bounds(x, y):
            return
        self.values[x + y * self._width] = value

    def clear(self) -> None:
        self.values.fill(0.0)

    def min_max(self) -> Tuple[float, float]:
        """Return (min, max) of the grid, (0, 0) when empty."""
        if self.values.size == 0:
            return 0.0, 0.0
        return float(self.values.min()), float(self.values.max())

    def normalize(self, min_value: float = 0.0, max_value: float = 1.0) -> None:
        """
        Rescale affinely so the extremes become min_value and max_value.

        A flat grid is flooded with min_value.
        """
        current_min, current_max = self.min_max()
        if current_max - current_min < NORMALIZE_EPSILON:
            self.values.fill(min_value)
            return
        scale = (max_value - min_value) / (current_max - current_min)
        self.values[:] = min_value + (self.values - current_min) * scale

    # Hill stamps

    def _box(self, cx: float, cy: float, radius: float) -> Tuple[int, int, int, int]:
        min_x = int(max(cx - radius, 0))
        min_y = int(max(cy - radius, 0))
        max_x = int(min(math.ceil(cx + radius), self._width))
        max_y = int(min(math.ceil(cy + radius), self._height))
        return min_x, min_y, max_x, max_y

    def add_hill(self, cx: float, cy: float, radius: float, height: float) -> None:
        """
        Add a paraboloid bump of the given radius and peak height.

        Each cell of the disk receives ``height * (r^2 - dx^2 - dy^2) / r^2``.
        """
        if radius <= 0:
            return
        radius2 = radius * radius
        coef = height / radius2
        min_x, min_y, max_x, max_y = self._box(cx, cy, radius)
        if min_x >= max_x or min_y >= max_y:
            return
        xs = np.arange(min_x, max_x, dtype=np.float64)
        ys = np.arange(min_y, max_y, dtype=np.float64)
        z = radius2 - (xs[np.newaxis, :] - cx) ** 2 - (ys[:, np.newaxis] - cy) ** 2
        window = self.grid[min_y:max_y, min_x:max_x]
        window += np.where(z > 0, z * coef, 0.0)

    def dig_hill(self, cx: float, cy: float, radius: float, height: float) -> None:
        """
        Stamp the hill envelope without accumulating.

        With a positive height a cell is raised to the envelope when below it;
        with a negative height it is lowered to the envelope when above it.
        """
        if radius <= 0:
            return
        radius2 = radius * radius
        coef = height / radius2
        min_x, min_y, max_x, max_y = self._box(cx, cy, radius)
        if min_x >= max_x or min_y >= max_y:
            return
        xs = np.arange(min_x, max_x, dtype=np.float64)
        ys = np.arange(min_y, max_y, dtype=np.float64)
        dist = (xs[np.newaxis, :] - cx) ** 2 + (ys[:, np.newaxis] - cy) ** 2
        z = (radius2 - dist) * coef
        window = self.grid[min_y:max_y, min_x:max_x]
        inside = dist < radius2
        if height > 0:
            mask = inside & (window < z)
        else:
            mask = inside & (window > z)
        window[mask] = z[mask]

    def dig_bezier(
        self,
        px: Sequence[int],
        py: Sequence[int],
        start_radius: float,
        start_depth: float,
        end_radius: float,
        end_depth: float,
    ) -> None:
        """Dig a canyon along a cubic Bezier curve given by four control points."""
        x_from, y_from = int(px[0]), int(py[0])
        for i in range(1001):
            t = i / 1000.0
            it = 1.0 - t
            x_to = int(px[0] * it * it * it + 3 * px[1] * t * it * it + 3 * px[2] * t * t * it + px[3] * t * t * t)
            y_to = int(py[0] * it * it * it + 3 * py[1] * t * it * it + 3 * py[2] * t * t * it + py[3] * t * t * t)
            if x_to != x_from or y_to != y_from:
                radius = start_radius + (end_radius - start_radius) * t
                depth = start_depth + (end_depth - start_depth) * t
                self.dig_hill(x_to, y_to, radius, depth)
                x_from, y_from = x_to, y_to

    # Noise layers

    def _fbm_layer(self, noise: "Noise", mul_x, mul_y, add_x, add_y, octaves) -> np.ndarray:
        x_coef = mul_x / self._width
        y_coef = mul_y / self._height
        xs, ys = np.meshgrid(
            (np.arange(self._width) + add_x) * x_coef,
            (np.arange(self._height) + add_y) * y_coef,
        )
        return noise.get_fbm_vectorized(octaves, xs.ravel(), ys.ravel())

    def add_fbm(
        self,
        noise: "Noise",
        mul_x: float,
        mul_y: float,
        add_x: float,
        add_y: float,
        octaves: float,
        delta: float,
        scale: float,
    ) -> None:
        """Add ``delta + scale * fbm`` sampled at ((x+add_x)*mul_x/W, (y+add_y)*mul_y/H)."""
        layer = self._fbm_layer(noise, mul_x, mul_y, add_x, add_y, octaves)
        self.values += delta + layer * scale

    def scale_fbm(
        self,
        noise: "Noise",
        mul_x: float,
        mul_y: float,
        add_x: float,
        add_y: float,
        octaves: float,
        delta: float,
        scale: float,
    ) -> None:
        """Multiply each cell by ``delta + scale * fbm``, sampled as in add_fbm."""
        layer = self._fbm_layer(noise, mul_x, mul_y, add_x, add_y, octaves)
        self.values *= delta + layer * scale

    # Pointwise operations

    @staticmethod
    def copy(source: "Heightmap", dest: "Heightmap") -> None:
        if source is None or not source.is_same_size(dest):
            return
        dest.values[:] = source.values

    def add_value(self, value: float) -> None:
        self.values += value

    add = add_value

    def scale(self, value: float) -> None:
        self.values *= value

    def clamp(self, min_value: float, max_value: float) -> None:
        np.clip(self.values, min_value, max_value, out=self.values)

    def count_cells(self, min_value: float, max_value: float) -> int:
        """Number of cells with min_value <= v <= max_value."""
        return int(np.count_nonzero((self.values >= min_value) & (self.values <= max_value)))

    def has_land_on_border(self, water_level: float) -> bool:
        grid = self.grid
        return bool(
            (grid[0, :] > water_level).any()
            or (grid[-1, :] > water_level).any()
            or (grid[:, 0] > water_level).any()
            or (grid[:, -1] > water_level).any()
        )

    @staticmethod
    def lerp_hm(hm1: "Heightmap", hm2: "Heightmap", coef: float, out: "Heightmap") -> None:
        if hm1 is None or not hm1.is_same_size(hm2) or not hm1.is_same_size(out):
            return
        out.values[:] = hm1.values + (hm2.values - hm1.values) * coef

    @staticmethod
    def add_hm(hm1: "Heightmap", hm2: "Heightmap", out: "Heightmap") -> None:
        if hm1 is None or not hm1.is_same_size(hm2) or not hm1.is_same_size(out):
            return
        out.values[:] = hm1.values + hm2.values

    @staticmethod
    def multiply_hm(hm1: "Heightmap", hm2: "Heightmap", out: "Heightmap") -> None:
        if hm1 is None or not hm1.is_same_size(hm2) or not hm1.is_same_size(out):
            return
        out.values[:] = hm1.values * hm2.values

    # Sampling

    def get_interpolated_value(self, x: float, y: float) -> float:
        """Bilinear sample with coordinates clamped into the grid."""
        x = min(max(x, 0.0), self._width - 1.0)
        y = min(max(y, 0.0), self._height - 1.0)
        ix = int(math.floor(x))
        iy = int(math.floor(y))
        fx = x - ix
        fy = y - iy
        if ix >= self._width - 1:
            ix = max(self._width - 2, 0)
            fx = 1.0 if self._width > 1 else 0.0
        if iy >= self._height - 1:
            iy = max(self._height - 2, 0)
            fy = 1.0 if self._height > 1 else 0.0
        c1 = self.get_value(ix, iy)
        c2 = self.get_value(ix + 1, iy)
        c3 = self.get_value(ix, iy + 1)
        c4 = self.get_value(ix + 1, iy + 1)
        top = c1 + (c2 - c1) * fx
        bottom = c3 + (c4 - c3) * fx
        return top + (bottom - top) * fy

    def get_normal(self, x: float, y: float, water_level: float) -> Tuple[float, float, float]:
        """
        Unit surface normal from forward differences of the interpolated field.

        Heights below water_level are raised to it first, so seas are flat.
        Samples on the last row or column return (0, 0, 1).
        """
        if x >= self._width - 1 or y >= self._height - 1:
            return 0.0, 0.0, 1.0
        h0 = max(self.get_interpolated_value(x, y), water_level)
        hx = max(self.get_interpolated_value(x + 1, y), water_level)
        hy = max(self.get_interpolated_value(x, y + 1), water_level)
        nx = 255.0 * (h0 - hx)
        ny = 255.0 * (h0 - hy)
        nz = 16.0
        inv_len = 1.0 / math.sqrt(nx * nx + ny * ny + nz * nz)
        return nx * inv_len, ny * inv_len, nz * inv_len

    def normal_field(self, water_level: float = 0.0) -> np.ndarray:
        """get_normal for every cell, shaped (height, width, 3)."""
        field = np.zeros((self._height, self._width, 3), dtype=np.float64)
        for y in range(self._height):
            for x in range(self._width):
                field[y, x] = self.get_normal(x, y, water_level)
        return field

    def get_slope(self, x: int, y: int) -> float:
        """atan2 of the sum of the extreme signed differences to the 8 neighbours."""
        if not self.in_bounds(x, y):
            return 0.0
        v = self.get_value(x, y)
        min_dy = 0.0
        max_dy = 0.0
        for dx, dy in zip(_DIX, _DIY):
            nx, ny = x + dx, y + dy
            if self.in_bounds(nx, ny):
                n_slope = self.get_value(nx, ny) - v
                min_dy = min(min_dy, n_slope)
                max_dy = max(max_dy, n_slope)
        return math.atan2(max_dy + min_dy, 1.0)

    # Erosion

    def rain_erosion(
        self, prng: AleaPRNG, drops: int, erosion_coef: float, aggregation_coef: float
    ) -> float:
        """
        Simulate raindrops carving the terrain.

        Each drop starts on a random cell and follows the steepest descent,
        lowering every cell it leaves by ``erosion_coef * slope``. In a pit it
        deposits ``aggregation_coef`` times the sediment it collected.

        Returns:
            Total sediment collected by all drops
        """
        w, h = self._width, self._height
        values = self.values.tolist()
        total_sediment = 0.0
        for _ in range(drops):
            cur_x = prng.randint(0, w - 1)
            cur_y = prng.randint(0, h - 1)
            sediment = 0.0
            while True:
                v = values[cur_x + cur_y * w]
                slope = -math.inf
                next_x = next_y = 0
                for dx, dy in zip(_DIX, _DIY):
                    nx, ny = cur_x + dx, cur_y + dy
                    if not (0 <= nx < w and 0 <= ny < h):
                        continue
                    n_slope = v - values[nx + ny * w]
                    if n_slope > slope:
                        slope = n_slope
                        next_x, next_y = nx, ny
                if slope > 0.0:
                    values[cur_x + cur_y * w] -= erosion_coef * slope
                    cur_x, cur_y = next_x, next_y
                    sediment += slope
                else:
                    values[cur_x + cur_y * w] += aggregation_coef * sediment
                    break
            total_sediment += sediment
        self.values[:] = values
        logger.debug("Rain erosion completed", drops=drops, sediment=total_sediment)
        return total_sediment

    def heat_erosion(
        self, passes: int, min_slope: float, erosion_coef: float, aggregation_coef: float
    ) -> None:
        """
        Move material down slopes steeper than min_slope.

        Cells are scanned row by row and each transfer is visible to later
        cells of the same pass.
        """
        w, h = self._width, self._height
        values = self.values.tolist()
        for _ in range(passes):
            for y in range(h):
                for x in range(w):
                    v = values[x + y * w]
                    slope = 0.0
                    next_x = next_y = 0
                    for dx, dy in zip(_DIX, _DIY):
                        nx, ny = x + dx, y + dy
                        if 0 <= nx < w and 0 <= ny < h:
                            n_slope = v - values[nx + ny * w]
                            if n_slope > slope:
                                slope = n_slope
                                next_x, next_y = nx, ny
                    if slope > min_slope:
                        excess = slope - min_slope
                        values[x + y * w] -= erosion_coef * excess
                        values[next_x + next_y * w] += aggregation_coef * excess
        self.values[:] = values

    def thermal_erosion(self, tan_threshold: float = 0.6, amplitude: float = 0.1) -> None:
        """
        Talus erosion over a wrapped 3x3 neighbourhood.

        A cell gains ``amplitude`` when a neighbour towers above it by more than
        tan_threshold and loses ``amplitude`` when it towers above a neighbour.
        """
        grid = self.grid
        receive = np.zeros(grid.shape, dtype=bool)
        distribute = np.zeros(grid.shape, dtype=bool)
        for dy in (-1, 0, 1):
            for dx in (-1, 0, 1):
                shifted = np.roll(grid, shift=(-dy, -dx), axis=(0, 1))
                receive |= shifted - grid > tan_threshold
                distribute |= grid - shifted > tan_threshold
        out = grid + amplitude * receive - amplitude * distribute
        self.values[:] = out.ravel()

    # Filters and generators

    def kernel_transform(
        self,
        dx: Sequence[int],
        dy: Sequence[int],
        weight: Sequence[float],
        min_level: float,
        max_level: float,
    ) -> None:
        """
        Replace cells in [min_level, max_level] by the weighted mean of their kernel.

        Kernel taps falling outside the grid are left out of both sums. The
        scan is in place, row by row.
        """
        w, h = self._width, self._height
        values = self.values.tolist()
        taps = list(zip(dx, dy, weight))
        for y in range(h):
            for x in range(w):
                v = values[x + y * w]
                if v < min_level or v > max_level:
                    continue
                total = 0.0
                total_weight = 0.0
                for kx, ky, kw in taps:
                    nx, ny = x + kx, y + ky
                    if 0 <= nx < w and 0 <= ny < h:
                        total += kw * values[nx + ny * w]
                        total_weight += kw
                if total_weight != 0.0:
                    values[x + y * w] = total / total_weight
        self.values[:] = values

    def add_voronoi(self, prng: AleaPRNG, n_points: int, n_coef: int, coef: Sequence[float]) -> None:
        """
        Add a Voronoi distance field.

        For every cell, the k-th closest seed point contributes
        ``coef[k] * squared_distance`` for k < n_coef.
        """
        if n_points <= 0:
            return
        n_coef = min(n_coef, n_points, len(coef))
        points = np.array(
            [(prng.randint(0, self._width - 1), prng.randint(0, self._height - 1)) for _ in range(n_points)],
            dtype=np.float64,
        )
        ys, xs = np.divmod(np.arange(self.values.size), self._width)
        dist = (points[np.newaxis, :, 0] - xs[:, np.newaxis]) ** 2 + (points[np.newaxis, :, 1] - ys[:, np.newaxis]) ** 2
        dist.sort(axis=1)
        for k in range(n_coef):
            self.values += coef[k] * dist[:, k]

    def midpoint_displacement(self, prng: AleaPRNG, roughness: float) -> None:
        """
        Diamond-square fractal on the largest square of side min(W, H) - 1.

        Corners are seeded in [0, 1); the random offset is multiplied by
        roughness after every diamond step.
        """
        init_size = min(self._width, self._height) - 1
        if init_size < 1:
            return
        step = 1
        offset = 1.0
        size = init_size
        self.set_value(0, 0, prng.uniform(0.0, 1.0))
        self.set_value(size, 0, prng.uniform(0.0, 1.0))
        self.set_value(0, size, prng.uniform(0.0, 1.0))
        self.set_value(size, size, prng.uniform(0.0, 1.0))
        while size > 0:
            half = size // 2
            # diamond step
            for y in range(step):
                for x in range(step):
                    z = self.get_value(x * size, y * size)
                    z += self.get_value((x + 1) * size, y * size)
                    z += self.get_value((x + 1) * size, (y + 1) * size)
                    z += self.get_value(x * size, (y + 1) * size)
                    z *= 0.25
                    self._set_mpd_height(prng, half + x * size, half + y * size, z, offset)
            offset *= roughness
            # square step
            for y in range(step):
                for x in range(step):
                    diamond_x = half + x * size
                    diamond_y = half + y * size
                    self._set_mpd_square(prng, diamond_x, diamond_y - half, init_size, half, offset)
                    self._set_mpd_square(prng, diamond_x, diamond_y + half, init_size, half, offset)
                    self._set_mpd_square(prng, diamond_x - half, diamond_y, init_size, half, offset)
                    self._set_mpd_square(prng, diamond_x + half, diamond_y, init_size, half, offset)
            size //= 2
            step *= 2

    def _set_mpd_height(self, prng: AleaPRNG, x: int, y: int, z: float, offset: float) -> None:
        self.set_value(x, y, z + prng.uniform(-offset, offset))

    def _set_mpd_square(
        self, prng: AleaPRNG, x: int, y: int, init_size: int, size: int, offset: float
    ) -> None:
        z = 0.0
        count = 0
        if y >= size:
            z += self.get_value(x, y - size)
            count += 1
        if x >= size:
            z += self.get_value(x - size, y)
            count += 1
        if y + size < init_size:
            z += self.get_value(x, y + size)
            count += 1
        if x + size < init_size:
            z += self.get_value(x + size, y)
            count += 1
        if count:
            z /= count
        self._set_mpd_height(prng, x, y, z, offset)

    def __repr__(self) -> str:
        return f"Heightmap({self._width}x{self._height})"
