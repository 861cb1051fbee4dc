"""
Spherical sampling domains.

This module implements:
- CubeSphere: six S x S face grids projected onto the unit sphere, with
  in-face and cross-face direct neighbours
- FibonacciSphere: N points on a golden-angle spiral with approximate
  above/below/left/right neighbours
- SphereSurface: adapter exposing either sphere to the hydrology engine

Cube faces are numbered front (+Y), right (+X), back (-Y), left (-X),
north (+Z), south (-Z).
"""

import math
from enum import IntEnum
from pathlib import Path
from typing import List, Sequence, Tuple, Union

import numpy as np
import structlog

from . import raster

logger = structlog.get_logger()

GOLDEN_RATIO = (1.0 + math.sqrt(5.0)) / 2.0

_Z_AXIS = np.array([0.0, 0.0, 1.0])
_X_AXIS = np.array([1.0, 0.0, 0.0])


class Face(IntEnum):
    FRONT = 0
    RIGHT = 1
    BACK = 2
    LEFT = 3
    NORTH = 4
    SOUTH = 5


class Side(IntEnum):
    TOP = 0
    RIGHT = 1
    BOTTOM = 2
    LEFT = 3


# For each face and each of its sides (top, right, bottom, left): the face across
# that edge, the side of that face touching it, and whether the run is reversed.
_ADJACENT_SIDES = {
    Face.FRONT: (
        (Face.NORTH, Side.BOTTOM, False),
        (Face.RIGHT, Side.LEFT, False),
        (Face.SOUTH, Side.TOP, False),
        (Face.LEFT, Side.RIGHT, False),
    ),
    Face.RIGHT: (
        (Face.NORTH, Side.RIGHT, True),
        (Face.BACK, Side.LEFT, False),
        (Face.SOUTH, Side.RIGHT, False),
        (Face.FRONT, Side.RIGHT, False),
    ),
    Face.BACK: (
        (Face.NORTH, Side.TOP, True),
        (Face.LEFT, Side.LEFT, False),
        (Face.SOUTH, Side.BOTTOM, True),
        (Face.RIGHT, Side.RIGHT, False),
    ),
    Face.LEFT: (
        (Face.NORTH, Side.LEFT, False),
        (Face.FRONT, Side.LEFT, False),
        (Face.SOUTH, Side.LEFT, True),
        (Face.BACK, Side.RIGHT, False),
    ),
    Face.NORTH: (
        (Face.BACK, Side.TOP, True),
        (Face.RIGHT, Side.TOP, True),
        (Face.FRONT, Side.TOP, False),
        (Face.LEFT, Side.TOP, False),
    ),
    Face.SOUTH: (
        (Face.FRONT, Side.BOTTOM, False),
        (Face.RIGHT, Side.BOTTOM, False),
        (Face.BACK, Side.BOTTOM, True),
        (Face.LEFT, Side.BOTTOM, True),
    ),
}


class CubeSphere:
    """
    Cube-sphere index space with ``6 * S * S`` points.

    Index ``i`` lies on face ``i // S²`` at column ``(i % S²) % S`` and row
    ``(i % S²) // S``. Points sit at cell centres before projection.
    """

    def __init__(self, num_points: int):
        """
        Args:
            num_points: Requested number of points; rounded down to the
                nearest ``6 * S * S``
        """
        points_per_side = int(math.sqrt(num_points // 6)) if num_points > 0 else 0
        if points_per_side < 1:
            raise ValueError(f"Cube sphere needs at least 6 points, got {num_points}")
        self.points_per_side = points_per_side
        self.points_per_face = points_per_side * points_per_side
        self.num_points = 6 * self.points_per_face
        self.half_cell_size = 0.5 / points_per_side

        self._coordinates = np.array([self._project(i) for i in range(self.num_points)])
        logger.debug("Cube sphere created", points=self.num_points, points_per_side=points_per_side)

    def index_to_face(self, index: int) -> int:
        return index // self.points_per_face

    def index_to_face_coordinates(self, index: int) -> Tuple[float, float]:
        """Face-local (u, v) in (0, 1) for the cell centre of ``index``."""
        on_face = index % self.points_per_face
        u = (on_face % self.points_per_side) / self.points_per_side + self.half_cell_size
        v = (on_face // self.points_per_side) / self.points_per_side + self.half_cell_size
        return u, v

    def index_on_face_to_cube_index(self, index_on_face: int, face: int) -> int:
        return index_on_face + face * self.points_per_face

    @staticmethod
    def face_to_cube_coordinates(face: int, u: float, v: float) -> Tuple[float, float, float]:
        """Map face-local (u, v) onto the surface of the [-1, 1]³ cube."""
        if face == Face.FRONT:
            return 2.0 * u - 1.0, 1.0, 1.0 - 2.0 * v
        if face == Face.RIGHT:
            return 1.0, 1.0 - 2.0 * u, 1.0 - 2.0 * v
        if face == Face.BACK:
            return 1.0 - 2.0 * u, -1.0, 1.0 - 2.0 * v
        if face == Face.LEFT:
            return -1.0, 2.0 * u - 1.0, 1.0 - 2.0 * v
        if face == Face.NORTH:
            return 2.0 * u - 1.0, 2.0 * v - 1.0, 1.0
        if face == Face.SOUTH:
            return 2.0 * u - 1.0, 1.0 - 2.0 * v, -1.0
        raise ValueError(f"Unknown cube face {face}")

    def _project(self, index: int) -> np.ndarray:
        u, v = self.index_to_face_coordinates(index)
        point = np.array(self.face_to_cube_coordinates(self.index_to_face(index), u, v))
        return point / np.linalg.norm(point)

    @property
    def coordinates(self) -> np.ndarray:
        """(num_points, 3) unit vectors."""
        return self._coordinates

    def index_to_coordinates(self, index: int) -> Tuple[float, float, float]:
        x, y, z = self._coordinates[index]
        return float(x), float(y), float(z)

    def index_to_lat_lon_deg(self, index: int) -> Tuple[float, float]:
        """Latitude from the z axis, longitude measured from +Y towards +X."""
        x, y, z = self.index_to_coordinates(index)
        lat = math.asin(max(-1.0, min(1.0, z)))
        lon = math.atan2(x, y)
        return math.degrees(lat), math.degrees(lon)

    @staticmethod
    def lat_lon_deg_to_face(lat: float, lon: float) -> int:
        """Face hit by the ray at (lat, lon): the dominant axis of its direction."""
        lat_r, lon_r = math.radians(lat), math.radians(lon)
        z = math.sin(lat_r)
        x = math.cos(lat_r) * math.sin(lon_r)
        y = math.cos(lat_r) * math.cos(lon_r)
        ax, ay, az = abs(x), abs(y), abs(z)
        if az >= ax and az >= ay:
            return Face.NORTH if z >= 0 else Face.SOUTH
        if ax >= ay:
            return Face.RIGHT if x >= 0 else Face.LEFT
        return Face.FRONT if y >= 0 else Face.BACK

    def _nth_index_on_side(self, side: int, n: int) -> int:
        s = self.points_per_side
        if side == Side.TOP:
            return n
        if side == Side.RIGHT:
            return (s - 1) + n * s
        if side == Side.BOTTOM:
            return self.points_per_face - s + n
        return n * s

    def _across(self, face: int, side: int, n: int) -> int:
        adjacent_face, adjacent_side, reversed_run = _ADJACENT_SIDES[Face(face)][side]
        if reversed_run:
            n = self.points_per_side - 1 - n
        return self.index_on_face_to_cube_index(self._nth_index_on_side(adjacent_side, n), adjacent_face)

    def find_direct_neighbors(self, index: int) -> List[int]:
        """
        In-face neighbours (-u, +u, -v, +v), then the cells across any face
        edge the point touches.
        """
        s = self.points_per_side
        face = self.index_to_face(index)
        on_face = index % self.points_per_face
        x, y = on_face % s, on_face // s
        start = face * self.points_per_face

        neighbours = []
        for dx, dy in ((-1, 0), (1, 0), (0, -1), (0, 1)):
            nx, ny = x + dx, y + dy
            if 0 <= nx < s and 0 <= ny < s:
                neighbours.append(start + nx + ny * s)

        if x == 0:
            neighbours.append(self._across(face, Side.LEFT, y))
        if x == s - 1:
            neighbours.append(self._across(face, Side.RIGHT, y))
        if y == 0:
            neighbours.append(self._across(face, Side.TOP, x))
        if y == s - 1:
            neighbours.append(self._across(face, Side.BOTTOM, x))
        return neighbours

    neighbours = find_direct_neighbors

    def export_obj(self, path: Union[str, Path]):
        """Write the points as an OBJ point cloud in a y-up frame."""
        vertices = [(x, z, -y) for x, y, z in self._coordinates]
        return raster.write_obj(path, vertices)


class FibonacciSphere:
    """
    Golden-angle spiral of ``N`` points.

    Point ``i`` has ``y = 1 - 2i/N`` and azimuth ``θ = 2π·φ·i`` around the y axis.
    """

    def __init__(self, num_points: int):
        if num_points < 2:
            raise ValueError(f"Fibonacci sphere needs at least 2 points, got {num_points}")
        self.num_points = int(num_points)
        self.step_size = 2.0 * math.pi / (GOLDEN_RATIO * self.num_points)

        i = np.arange(self.num_points, dtype=np.float64)
        y = 1.0 - 2.0 * i / self.num_points
        theta = 2.0 * math.pi * GOLDEN_RATIO * i
        radius = np.sqrt(np.maximum(1.0 - y * y, 0.0))
        self._coordinates = np.stack([np.cos(theta) * radius, y, np.sin(theta) * radius], axis=1)

    @property
    def coordinates(self) -> np.ndarray:
        return self._coordinates

    def index_to_coordinates(self, index: int) -> Tuple[float, float, float]:
        x, y, z = self._coordinates[index]
        return float(x), float(y), float(z)

    def index_to_lat_lon_deg(self, index: int) -> Tuple[float, float]:
        x, y, z = self.index_to_coordinates(index)
        return math.degrees(math.asin(max(-1.0, min(1.0, y)))), math.degrees(math.atan2(z, x))

    def coordinates_to_index(self, lat: float, lon: float) -> int:
        """Index of the point closest to (lat, lon) in degrees."""
        lat_r, lon_r = math.radians(lat), math.radians(lon)
        target = np.array(
            [math.cos(lat_r) * math.cos(lon_r), math.sin(lat_r), math.cos(lat_r) * math.sin(lon_r)]
        )
        return int(np.argmin(((self._coordinates - target) ** 2).sum(axis=1)))

    def euclidean_distance_square(self, a: int, b: int) -> float:
        d = self._coordinates[a] - self._coordinates[b]
        return float(d @ d)

    @staticmethod
    def great_arc_distance_lat_lon(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Great-circle angle between two lat/lon positions, all in degrees."""
        lat1, lon1, lat2, lon2 = map(math.radians, (lat1, lon1, lat2, lon2))
        cos_angle = math.sin(lat1) * math.sin(lat2) + math.cos(lat1) * math.cos(lat2) * math.cos(lon1 - lon2)
        return math.degrees(math.acos(max(-1.0, min(1.0, cos_angle))))

    def _closest_along(self, index: int, candidate: int) -> int:
        # Walk from the candidate in both directions while the distance strictly drops
        distance = self.euclidean_distance_square(index, candidate)
        for direction in (1, -1):
            idx = candidate + direction
            while 0 <= idx < self.num_points and idx != index:
                new_distance = self.euclidean_distance_square(index, idx)
                if new_distance >= distance:
                    break
                distance = new_distance
                candidate = idx
                idx += direction
        return candidate

    def find_nearest_neighbors(self, index: int) -> Tuple[int, int, int, int]:
        """
        Approximate (above, below, left, right) neighbours.

        Left and right are the spiral predecessor and successor, -1 past
        either end.
        """
        _, y, z = self._coordinates[index]
        circumference = 2.0 * math.pi * math.sqrt(y * y + z * z)
        steps = max(int(circumference / self.step_size), 1)
        last = self.num_points - 1

        above = min(max(index + steps, 0), last)
        below = min(max(index - steps, 0), last)
        above = self._closest_along(index, above) if above != index else above
        below = self._closest_along(index, below) if below != index else below

        left = index - 1 if index > 0 else -1
        right = index + 1 if index < last else -1
        return above, below, left, right

    def neighbours(self, index: int) -> List[int]:
        """Distinct valid neighbours from find_nearest_neighbors."""
        result: List[int] = []
        for n in self.find_nearest_neighbors(index):
            if n >= 0 and n != index and n not in result:
                result.append(n)
        return result

    def export_obj(self, path: Union[str, Path]):
        return raster.write_obj(path, [tuple(p) for p in self._coordinates])


Sphere = Union[CubeSphere, FibonacciSphere]


class SphereSurface:
    """
    A sphere plus per-point elevations, exposed through the TerrainSurface
    contract.

    The surface is reported as a single row of ``num_points`` regions; the
    planar offset from a to b is the chord projected onto the tangent plane
    at a.
    """

    def __init__(self, sphere: Sphere, elevations: Sequence[float]):
        self.sphere = sphere
        self._elevations = np.asarray(elevations, dtype=np.float64).reshape(-1)
        if self._elevations.size != sphere.num_points:
            raise ValueError(f"Expected {sphere.num_points} elevations, got {self._elevations.size}")
        self._neighbours = [sphere.neighbours(i) for i in range(sphere.num_points)]

    @property
    def num_regions(self) -> int:
        return self.sphere.num_points

    @property
    def width(self) -> int:
        return self.sphere.num_points

    @property
    def height(self) -> int:
        return 1

    def neighbours(self, region: int) -> List[int]:
        return list(self._neighbours[region])

    def elevation(self, region: int) -> float:
        return float(self._elevations[region])

    def elevations(self) -> np.ndarray:
        return self._elevations

    def _tangent_frame(self, region: int) -> Tuple[np.ndarray, np.ndarray]:
        p = self.sphere.coordinates[region]
        east = np.cross(_Z_AXIS, p)
        length = np.linalg.norm(east)
        east = east / length if length > 1e-12 else _X_AXIS
        north = np.cross(p, east)
        return east, north

    def offset(self, a: int, b: int) -> Tuple[float, float]:
        east, north = self._tangent_frame(a)
        d = self.sphere.coordinates[b] - self.sphere.coordinates[a]
        return float(d @ east), float(d @ north)

    def position(self, region: int) -> Tuple[float, float]:
        """(lon, lat) in degrees, used for triangulation."""
        lat, lon = self.sphere.index_to_lat_lon_deg(region)
        return lon, lat

    def is_border(self, region: int) -> bool:
        return False
