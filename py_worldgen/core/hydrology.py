"""
Hydrology engine for water routing and fluvial erosion.

This module implements:
- Downhill routing to the lowest strictly lower neighbour
- Planchon-Darboux sink filling
- Flux accumulation with propagated 2-D flow vectors
- Per-region surface normals, slopes and erosion rates
- River-bed erosion and bank erosion (meandering) driven by flow pressure

The engine runs on any TerrainSurface. Elevation is the base surface height
plus a ``soil`` delta that erosion and sink filling rewrite each tick.
"""

import math
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import structlog
from scipy.spatial import Delaunay

from . import raster
from .alea_prng import AleaPRNG
from .surface import TerrainSurface
from ..utils.random import ensure_prng

logger = structlog.get_logger()

_Z_AXIS = np.array([0.0, 0.0, 1.0])

# Fraction of the elevation range below which cells act as outlets
SINK_THRESHOLD_FRACTION = 0.001

# Share of a region's erosion rate passed to each neighbour
NEIGHBOUR_EROSION_SHARE = 0.25

MAX_EROSION_RATE = 0.2


@dataclass
class HydrologyOptions:
    """Erosion parameters for the hydrology engine."""

    erosion_amount: float = 0.05  # River-bed erosion per tick
    bank_erosion_amount: float = 0.05  # Bank material removed per unit of pressure
    bank_deposition_amount: float = 0.05  # Material deposited on the channel
    use_slope_modifier: bool = False  # Shallow, high-flux reaches meander more
    vertical_scaling: float = 100.0  # Height multiplier for OBJ export
    random_epsilon: bool = True  # Randomise the sink-fill epsilon per sweep

    @classmethod
    def from_settings(cls) -> "HydrologyOptions":
        from ..config import settings

        return cls(
            erosion_amount=settings.erosion_amount,
            bank_erosion_amount=settings.bank_erosion_amount,
            bank_deposition_amount=settings.bank_deposition_amount,
            use_slope_modifier=settings.use_slope_modifier,
            vertical_scaling=settings.vertical_scaling,
        )


def _normalize_rows(vectors: np.ndarray) -> np.ndarray:
    """Normalise each row, leaving zero rows at zero."""
    length = np.linalg.norm(vectors, axis=-1, keepdims=True)
    return np.divide(vectors, length, out=np.zeros_like(vectors), where=length > 0)


def _normalize2(x: float, y: float) -> Tuple[float, float]:
    length = math.hypot(x, y)
    if length == 0:
        return 0.0, 0.0
    return x / length, y / length


def neighbour_table(surface: TerrainSurface) -> np.ndarray:
    """
    Pad the surface's neighbour lists into a (num_regions, k) matrix.

    Missing entries are -1. Column order follows each region's list.
    """
    lists = [surface.neighbours(r) for r in range(surface.num_regions)]
    width = max((len(nbs) for nbs in lists), default=0)
    table = np.full((surface.num_regions, width), -1, dtype=np.int64)
    for r, nbs in enumerate(lists):
        table[r, : len(nbs)] = nbs
    return table


def compute_downhill(elevation: np.ndarray, table: np.ndarray) -> np.ndarray:
    """
    Downhill map: the lowest strictly lower neighbour of each region, else -1.

    Ties between equally low neighbours go to the first in neighbour order.
    """
    elevation = np.asarray(elevation, dtype=np.float64)
    if table.shape[1] == 0:
        return np.full(elevation.size, -1, dtype=np.int64)
    valid = table >= 0
    nb_elev = np.where(valid, elevation[np.where(valid, table, 0)], np.inf)
    best = np.argmin(nb_elev, axis=1)
    rows = np.arange(elevation.size)
    lowest = nb_elev[rows, best]
    return np.where(lowest < elevation, table[rows, best], -1)


def sink_outlets(elevation: np.ndarray, border: Optional[np.ndarray] = None) -> np.ndarray:
    """Cells that keep their height during sink filling: border and near-minimum cells."""
    elevation = np.asarray(elevation, dtype=np.float64)
    low, high = float(elevation.min()), float(elevation.max())
    outlets = elevation <= low + (high - low) * SINK_THRESHOLD_FRACTION
    if border is not None:
        outlets |= np.asarray(border, dtype=bool)
    return outlets


def fill_sinks(
    elevation: Sequence[float],
    neighbours: Sequence[Sequence[int]],
    outlets: Sequence[bool],
    prng: Optional[AleaPRNG] = None,
    random_epsilon: bool = False,
    max_sweeps: Optional[int] = None,
) -> Tuple[np.ndarray, int]:
    """
    Planchon-Darboux depression filling.

    Every non-outlet cell starts at +inf and is lowered until it either sits
    at its own elevation or exactly epsilon above a neighbour, so that water
    can always drain to an outlet.

    Args:
        elevation: Heights per region
        neighbours: Neighbour list per region
        outlets: Regions that keep their elevation
        prng: Generator for the visiting order and random epsilon
        random_epsilon: Scale epsilon by a fresh uniform factor each sweep
        max_sweeps: Sweep budget, defaults to 10 * N

    Returns:
        Tuple of (filled heights, number of sweeps run)
    """
    prng = ensure_prng(prng)
    elev = [float(e) for e in elevation]
    n = len(elev)
    if n == 0:
        return np.zeros(0), 0
    base_epsilon = 1.0 / n
    outlets = np.asarray(outlets, dtype=bool)
    new = [e if outlets[i] else math.inf for i, e in enumerate(elev)]
    max_sweeps = 10 * n if max_sweeps is None else max_sweeps

    sweeps = 0
    while True:
        if sweeps >= max_sweeps:
            logger.warning("Sink fill did not converge", sweeps=sweeps, regions=n)
            break
        sweeps += 1
        epsilon = base_epsilon * prng.random() if random_epsilon else base_epsilon
        changed = False
        for r in prng.permutation(n):
            e = elev[r]
            if new[r] == e:
                continue
            for nb in neighbours[r]:
                if e >= new[nb] + epsilon:
                    new[r] = e
                    changed = True
                    break
                oh = new[nb] + epsilon
                if new[r] > oh > e:
                    new[r] = oh
                    changed = True
        if not changed:
            break

    return np.array(new, dtype=np.float64), sweeps


class Hydrology:
    """
    Water routing and erosion state over a terrain surface.

    Attributes:
        soil: Deposited (positive) or eroded (negative) material per region
        suspension: Bank material carried by the flow
        flux: Accumulated water per region
        precipitation: Water each region contributes before routing
        downhill: Downhill neighbour per region, -1 for sinks
        flow: 2-D flow vectors accumulated along the downhill graph
    """

    def __init__(
        self,
        surface: TerrainSurface,
        options: Optional[HydrologyOptions] = None,
        prng: Optional[AleaPRNG] = None,
    ):
        self.surface = surface
        self.options = options or HydrologyOptions()
        self.prng = ensure_prng(prng)

        n = surface.num_regions
        self.base = np.array(surface.elevations(), dtype=np.float64)
        self.table = neighbour_table(surface)
        self._valid = self.table >= 0
        self._neighbour_lists = [list(row[row >= 0]) for row in self.table]
        self._border = np.array([surface.is_border(r) for r in range(n)], dtype=bool)

        # Planar offsets to every neighbour, shape (n, k, 2)
        self._offsets = np.zeros(self.table.shape + (2,))
        for r in range(n):
            for k, nb in enumerate(self._neighbour_lists[r]):
                self._offsets[r, k] = surface.offset(r, int(nb))

        self.reset()

    @property
    def num_regions(self) -> int:
        return self.surface.num_regions

    def reset(self) -> None:
        n = self.num_regions
        self.soil = np.zeros(n)
        self.suspension = np.zeros(n)
        self.flux = np.zeros(n)
        self.precipitation = np.full(n, 1.0 / n)
        self.downhill = np.full(n, -1, dtype=np.int64)
        self.flow = np.zeros((n, 2))
        self._downhill_column = np.full(n, -1, dtype=np.int64)

    @property
    def elevation(self) -> np.ndarray:
        """Current elevation: base height plus soil."""
        return self.base + self.soil

    def sorted_by_elevation(self) -> np.ndarray:
        """Regions from high to low; ties keep index order."""
        return np.argsort(-self.elevation, kind="stable")

    # Routing

    def generate_downhill(self) -> np.ndarray:
        elevation = self.elevation
        self.downhill = compute_downhill(elevation, self.table)
        column = np.full(self.num_regions, -1, dtype=np.int64)
        has_down = self.downhill >= 0
        if has_down.any():
            column[has_down] = np.argmax(self.table[has_down] == self.downhill[has_down, None], axis=1)
        self._downhill_column = column
        return self.downhill

    def fill_sinks(self, random_epsilon: Optional[bool] = None) -> int:
        """
        Fill depressions and store the result as soil.

        Returns:
            Number of sweeps run
        """
        if random_epsilon is None:
            random_epsilon = self.options.random_epsilon
        elevation = self.elevation
        outlets = sink_outlets(elevation, self._border)
        filled, sweeps = fill_sinks(
            elevation, self._neighbour_lists, outlets, prng=self.prng, random_epsilon=random_epsilon
        )
        self.soil = np.where(filled < 0, -self.base, filled - self.base)
        logger.debug("Sinks filled", sweeps=sweeps, outlets=int(outlets.sum()))
        return sweeps

    def calculate_flux(self) -> np.ndarray:
        """
        Accumulate water from high to low along the downhill graph.

        Each region starts with its precipitation; its 2-D flow vector starts
        as the unit direction to its downhill neighbour scaled by that amount.
        """
        n = self.num_regions
        self.flux = self.precipitation.copy()
        self.flow = np.zeros((n, 2))
        has_down = self.downhill >= 0
        rows = np.nonzero(has_down)[0]
        if rows.size:
            directions = _normalize_rows(self._offsets[rows, self._downhill_column[rows]])
            self.flow[rows] = directions * self.flux[rows, None]

        flux = self.flux.tolist()
        flow = self.flow.tolist()
        downhill = self.downhill.tolist()
        for r in self.sorted_by_elevation().tolist():
            d = downhill[r]
            if d == -1:
                continue
            flux[d] += flux[r]
            flow[d][0] += flow[r][0]
            flow[d][1] += flow[r][1]
        self.flux = np.array(flux)
        self.flow = np.array(flow).reshape(n, 2)
        return self.flux

    # Surface shape

    def surface_normals(self) -> np.ndarray:
        """
        Unit surface normal per region.

        Each neighbour contributes the normal of the plane through the
        neighbour vector and its horizontal perpendicular, weighted by the
        neighbour distance. Regions without neighbours point straight up.
        """
        elevation = self.elevation
        normals = np.zeros((self.num_regions, 3))
        for k in range(self.table.shape[1]):
            rows = np.nonzero(self._valid[:, k])[0]
            if rows.size == 0:
                continue
            nbs = self.table[rows, k]
            vectors = np.column_stack(
                (self._offsets[rows, k, 0], self._offsets[rows, k, 1], elevation[nbs] - elevation[rows])
            )
            dist = np.linalg.norm(vectors, axis=1)
            unit = _normalize_rows(vectors)
            perpendicular = _normalize_rows(np.cross(unit, _Z_AXIS))
            plane_normal = _normalize_rows(np.cross(perpendicular, unit))
            normals[rows] += plane_normal * dist[:, None]
        normals = _normalize_rows(normals)
        flat = ~normals.any(axis=1)
        normals[flat] = _Z_AXIS
        return normals

    def calculate_slopes(self) -> np.ndarray:
        """Horizontal magnitude of each surface normal, 0 for flat regions."""
        normals = self.surface_normals()
        return np.hypot(normals[:, 0], normals[:, 1])

    def _slope_modifier(self, slope: np.ndarray, flux: np.ndarray) -> np.ndarray:
        return np.sqrt(np.maximum(0.0, 1.0 - ((1.0 - slope) + flux) / 2.0))

    def erosion_rate(self, slopes: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Stream-power erosion rate with a quarter shared to each neighbour.

        ``rate = min(0.2, sqrt(flux) * slope + slope^2 / 1000)``
        """
        slope = self.calculate_slopes() if slopes is None else slopes
        rate = np.minimum(MAX_EROSION_RATE, np.sqrt(self.flux) * slope + slope * slope / 1000.0)
        rate = np.nan_to_num(rate)
        total = rate.copy()
        rows, cols = np.nonzero(self._valid)
        np.add.at(total, self.table[rows, cols], rate[rows] * NEIGHBOUR_EROSION_SHARE)
        return total

    def erode(self) -> np.ndarray:
        """
        Lower each region by its erosion rate and store the result as soil.

        Heights never drop below zero.
        """
        slopes = self.calculate_slopes()
        rate = self.erosion_rate(slopes)
        modifier = 1.0
        if self.options.use_slope_modifier:
            modifier = self._slope_modifier(slopes, self.flux)
        new_height = np.maximum(0.0, self.elevation - rate * self.options.erosion_amount * modifier)
        self.soil = new_height - self.base
        return self.soil

    def bank_erosion(self) -> np.ndarray:
        """
        Erode river banks on the outside of bends.

        The pressure direction at a region is the difference between its
        accumulated flow direction and the direction to its downhill
        neighbour. Higher neighbours lying along that direction lose material,
        which is deposited on the channel region.

        Returns:
            Material removed per region (positive where banks were cut)
        """
        n = self.num_regions
        elevation = self.elevation.tolist()
        flux = self.flux.tolist()
        downhill = self.downhill.tolist()
        soil = self.soil.copy()
        suspension = np.zeros(n)
        eroded_total = np.zeros(n)
        opts = self.options

        slopes = None
        if opts.use_slope_modifier:
            slopes = self.calculate_slopes()

        for r in self.sorted_by_elevation().tolist():
            d = downhill[r]
            if d == -1:
                continue
            k_down = self._downhill_column[r]
            v1 = _normalize2(*self._offsets[r, k_down])
            v2 = _normalize2(*self.flow[r])
            pressure = _normalize2(v2[0] - v1[0], v2[1] - v1[1])
            turn = 1.0 - abs(v1[0] * v2[0] + v1[1] * v2[1])
            if turn <= 0.0 or pressure == (0.0, 0.0):
                suspension[d] += suspension[r]
                continue

            modifier = 1.0
            if slopes is not None:
                modifier = math.sqrt(max(0.0, 1.0 - ((1.0 - slopes[d]) + flux[d]) / 2.0))

            for k, nb in enumerate(self._neighbour_lists[r]):
                if nb == d:
                    continue
                height_diff = elevation[nb] - elevation[r]
                if height_diff <= 0:
                    continue
                direction = _normalize2(*self._offsets[r, k])
                dot = direction[0] * pressure[0] + direction[1] * pressure[1]
                if dot <= 0:
                    continue
                erosion = height_diff * dot * flux[r] * turn * modifier
                eroded = min(erosion * opts.bank_erosion_amount, height_diff)
                deposit = min(erosion * opts.bank_deposition_amount, height_diff)
                soil[nb] -= eroded
                soil[r] += deposit
                eroded_total[nb] += eroded
                suspension[r] += max(eroded - deposit, 0.0)

            suspension[d] += suspension[r]

        self.soil = soil
        self.suspension = suspension
        return eroded_total

    # Driver

    def tick(self) -> None:
        """One erosion iteration."""
        self.generate_downhill()
        self.calculate_flux()
        self.erode()
        self.generate_downhill()
        self.calculate_flux()
        self.bank_erosion()
        self.generate_downhill()
        self.calculate_flux()
        self.fill_sinks()

    def run(self, ticks: Optional[int] = None) -> None:
        """Fill the initial sinks, then run ``ticks`` iterations (settings.hydrology_ticks by default)."""
        if ticks is None:
            from ..config import settings

            ticks = settings.hydrology_ticks
        logger.info("Running hydrology", regions=self.num_regions, ticks=ticks)
        self.fill_sinks()
        for i in range(ticks):
            self.tick()
            logger.debug("Hydrology tick", tick=i, sinks=int((self.downhill == -1).sum()))
        logger.info(
            "Hydrology completed",
            ticks=ticks,
            max_flux=float(self.flux.max()) if self.flux.size else 0.0,
            eroded=float(-self.soil[self.soil < 0].sum()),
        )

    # Exports

    def _grid(self, values: np.ndarray) -> np.ndarray:
        return np.asarray(values, dtype=np.float64).reshape(self.surface.height, self.surface.width)

    def export_png(self, path: Union[str, Path]):
        return raster.write_gray16(path, self._grid(self.elevation))

    def export_flux_png(self, path: Union[str, Path]):
        return raster.write_gray8(path, self._grid(self.flux))

    def export_soil_png(self, path: Union[str, Path]):
        return raster.write_gray8(path, self._grid(self.soil))

    def export_sinks_png(self, path: Union[str, Path]):
        return raster.write_gray8(path, self._grid((self.downhill == -1).astype(np.float64)))

    def export_erosion_rate_png(self, path: Union[str, Path]):
        return raster.write_gray8(path, self._grid(self.erosion_rate()))

    def triangulate(self) -> np.ndarray:
        """Delaunay triangles over region positions, shape (m, 3)."""
        points = np.array([self.surface.position(r) for r in range(self.num_regions)], dtype=np.float64)
        return Delaunay(points).simplices

    def export_obj(self, path: Union[str, Path]):
        """Write the eroded surface as a triangulated OBJ mesh."""
        try:
            faces = self.triangulate()
        except (ValueError, RuntimeError) as e:
            logger.error("Triangulation failed", error=str(e))
            return None, e
        elevation = self.elevation
        vertices: List[Tuple[float, float, float]] = []
        for r in range(self.num_regions):
            x, y = self.surface.position(r)
            vertices.append((x, elevation[r] * self.options.vertical_scaling, y))
        return raster.write_obj(path, vertices, faces)
