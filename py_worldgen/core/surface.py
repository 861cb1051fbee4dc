"""
Surface topology contract used by the hydrology engine.

Hydrology only needs to know how many regions a surface has, which regions
touch, how high each region is and the planar offset between two regions.
A flat W x H grid implements this directly; the sphere adapters in
``sphere.py`` implement it for spherical point sets.
"""

from typing import List, Protocol, Sequence, Tuple

import numpy as np

# Neighbour order: -x, +x, -y, +y, then the diagonals
_ORTHOGONAL = ((-1, 0), (1, 0), (0, -1), (0, 1))
_DIAGONAL = ((-1, -1), (1, -1), (-1, 1), (1, 1))


class TerrainSurface(Protocol):
    """Capability contract for anything hydrology can run on."""

    @property
    def num_regions(self) -> int: ...

    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    def neighbours(self, region: int) -> List[int]: ...

    def elevation(self, region: int) -> float: ...

    def elevations(self) -> np.ndarray: ...

    def offset(self, a: int, b: int) -> Tuple[float, float]: ...

    def position(self, region: int) -> Tuple[float, float]: ...

    def is_border(self, region: int) -> bool: ...


class GridSurface:
    """
    Rectangular grid exposed through the TerrainSurface contract.

    Region ``i`` is cell ``(i % width, i // width)``. Neighbours are the
    4-connected cells, followed by the diagonals when ``diagonal`` is set.
    """

    def __init__(self, width: int, height: int, elevations: Sequence[float], diagonal: bool = True):
        if width <= 0 or height <= 0:
            raise ValueError(f"Grid dimensions must be positive, got {width}x{height}")
        self._width = width
        self._height = height
        self._elevations = np.asarray(elevations, dtype=np.float64).reshape(-1)
        if self._elevations.size != width * height:
            raise ValueError(
                f"Expected {width * height} elevations, got {self._elevations.size}"
            )
        self.diagonal = diagonal
        self._directions = _ORTHOGONAL + _DIAGONAL if diagonal else _ORTHOGONAL
        self._neighbour_table = self._build_neighbour_table()

    @classmethod
    def from_heightmap(cls, heightmap, diagonal: bool = True) -> "GridSurface":
        return cls(heightmap.width, heightmap.height, heightmap.values, diagonal=diagonal)

    def _build_neighbour_table(self) -> np.ndarray:
        # (num_regions, k) table, -1 where the neighbour is off the grid
        ys, xs = np.divmod(np.arange(self.num_regions), self._width)
        table = np.full((self.num_regions, len(self._directions)), -1, dtype=np.int64)
        for k, (dx, dy) in enumerate(self._directions):
            nx = xs + dx
            ny = ys + dy
            valid = (nx >= 0) & (nx < self._width) & (ny >= 0) & (ny < self._height)
            table[valid, k] = nx[valid] + ny[valid] * self._width
        return table

    @property
    def num_regions(self) -> int:
        return self._width * self._height

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def neighbour_table(self) -> np.ndarray:
        return self._neighbour_table

    def neighbours(self, region: int) -> List[int]:
        row = self._neighbour_table[region]
        return [int(n) for n in row if n >= 0]

    def elevation(self, region: int) -> float:
        return float(self._elevations[region])

    def elevations(self) -> np.ndarray:
        return self._elevations

    def set_elevations(self, elevations: Sequence[float]) -> None:
        self._elevations = np.asarray(elevations, dtype=np.float64).reshape(-1)

    def position(self, region: int) -> Tuple[float, float]:
        return float(region % self._width), float(region // self._width)

    def offset(self, a: int, b: int) -> Tuple[float, float]:
        """Planar vector from region a to region b."""
        return float(b % self._width - a % self._width), float(b // self._width - a // self._width)

    def is_border(self, region: int) -> bool:
        x = region % self._width
        y = region // self._width
        return x == 0 or y == 0 or x == self._width - 1 or y == self._height - 1

    def border_mask(self) -> np.ndarray:
        grid = np.zeros((self._height, self._width), dtype=bool)
        grid[0, :] = grid[-1, :] = True
        grid[:, 0] = grid[:, -1] = True
        return grid.ravel()
