"""
Terrain pipeline: heightmap composition, climate fields and the tile world.

The pipeline runs in two halves. ``generate_heightmap`` stamps hills,
modulates them with fBm, flattens the poles, raises tectonic ridges and rain-
erodes the result. ``build_world`` derives temperature, precipitation and
drainage from any heightmap, materialises the tiles, then computes prosperity,
classifies biomes and traces rivers.

Map modes colour one tile attribute for display and are written as RGBA PNG.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

import numpy as np
import structlog

from . import raster
from .alea_prng import AleaPRNG
from .biomes import BIOME_COLORS, RIVER_COLOR, RIVER_SYMBOL, BiomeType, biome_symbol, classify_world
from .heightmap import Heightmap
from .noise import DEFAULT_HURST, DEFAULT_LACUNARITY, Noise
from .rivers import MIN_RIVER_LENGTH, RIVER_ATTEMPTS, generate_rivers
from ..utils.random import ensure_prng

logger = structlog.get_logger()

POLE_HEIGHT = 0.31
POLE_MIN_WIDTH = 2
POLE_MAX_WIDTH = 5

RIDGE_MIN_HEIGHT = 0.3
RIDGE_HILL_BASE = 0.15
RIDGE_HILL_JITTER = 0.03

FBM_OCTAVES = 32
RAIN_EROSION_COEF = 0.07
PROSPERITY_RIVER_BOOST = 1.5

_WHITE = (1.0, 1.0, 1.0)
_BLACK = (0.0, 0.0, 0.0)
_RED = (1.0, 0.0, 0.0)
_LIGHT_BLUE = (128 / 255, 192 / 255, 1.0)
_DARKEST_ORANGE = (128 / 255, 64 / 255, 0.0)
_DARKER_GREEN = (0.0, 128 / 255, 0.0)


@dataclass
class TerrainOptions:
    """Parameters of the terrain pipeline."""

    width: int = 64
    height: int = 64
    seed: int = 1
    large_hills: int = 250
    large_hill_radius: Tuple[int, int] = (12, 15)
    small_hills: int = 1000
    small_hill_radius: Tuple[int, int] = (2, 3)
    hill_amplitude: Tuple[int, int] = (6, 9)
    river_count: int = 1
    min_river_length: int = MIN_RIVER_LENGTH
    river_attempts: int = RIVER_ATTEMPTS
    noise_hurst: float = DEFAULT_HURST
    noise_lacunarity: float = DEFAULT_LACUNARITY

    @classmethod
    def from_settings(cls) -> "TerrainOptions":
        from ..config import settings

        return cls(
            width=settings.world_width,
            height=settings.world_height,
            seed=settings.seed,
            river_count=settings.river_count,
            min_river_length=settings.min_river_length,
            river_attempts=settings.river_attempts,
            noise_hurst=settings.noise_hurst,
            noise_lacunarity=settings.noise_lacunarity,
        )


@dataclass
class Tile:
    height: float = 0.0
    temp: float = 0.0
    precip: float = 0.0
    drainage: float = 0.0
    biome_id: int = BiomeType.WATER
    has_river: bool = False
    is_civ: bool = False
    prosperity: float = 0.0


@dataclass
class World:
    """
    W x H tiles stored row-major: tile (x, y) is ``tiles[x + y * width]``.

    Attributes:
        rivers: Traced river paths as (x, y) lists, source first
    """

    width: int
    height: int
    tiles: List[Tile]
    rivers: List[List[Tuple[int, int]]] = field(default_factory=list)

    @classmethod
    def from_fields(
        cls, height: Heightmap, temp: Heightmap, precip: Heightmap, drainage: Heightmap
    ) -> "World":
        """Copy four same-shape grids into a fresh tile array."""
        tiles = [
            Tile(height=float(h), temp=float(t), precip=float(p), drainage=float(d))
            for h, t, p, d in zip(height.values, temp.values, precip.values, drainage.values)
        ]
        return cls(height.width, height.height, tiles)

    def tile(self, x: int, y: int) -> Tile:
        return self.tiles[x + y * self.width]

    def attribute(self, name: str) -> np.ndarray:
        """One tile attribute as a (height, width) array."""
        values = np.array([getattr(t, name) for t in self.tiles], dtype=np.float64)
        return values.reshape(self.height, self.width)

    def heights(self) -> np.ndarray:
        return self.attribute("height")

    def river_mask(self) -> np.ndarray:
        return self.attribute("has_river").astype(bool)

    def biome_ids(self) -> np.ndarray:
        return self.attribute("biome_id").astype(np.int64)


def pole_gen(hm: Heightmap, prng: AleaPRNG, north: int) -> None:
    """
    Flatten a ragged strip along the south (0) or north (1) edge to 0.31.

    The strip starts 2..5 rows deep and random-walks by -1, 0 or +1 per
    column, clamped to 2..5.
    """
    depth = prng.rand_int(4) + 2
    for x in range(hm.width):
        for j in range(depth):
            y = j if north else hm.height - 1 - j
            hm.set_value(x, y, POLE_HEIGHT)
        depth += prng.rand_int(3) - 1
        depth = min(max(depth, POLE_MIN_WIDTH), POLE_MAX_WIDTH)


def tectonic_gen(hm: Heightmap, prng: AleaPRNG, horizontal: int) -> List[Tuple[int, int]]:
    """
    Raise a mountain chain along a random ridge.

    A horizontal ridge (1) crosses every column, a vertical one (0) every row.
    Its lateral position starts in the first tenth of the grid and walks by
    -2..+2 per step, kept a tenth of the grid away from either edge. Interior
    ridge cells above 0.3 receive a hill of radius 2..4 and height 0.15..0.18.

    Returns:
        The ridge cells as (x, y), in walk order
    """
    w, h = hm.width, hm.height
    span = h if horizontal else w
    length = w if horizontal else h
    margin = span // 10
    pos = prng.rand_int(span // 10) + margin

    ridge: List[Tuple[int, int]] = []
    on_ridge = np.zeros((h, w), dtype=bool)
    for step in range(length):
        x, y = (step, pos) if horizontal else (pos, step)
        ridge.append((x, y))
        on_ridge[y, x] = True
        pos += prng.rand_int(5) - 2
        pos = min(max(pos, margin), span - 1 - margin)

    hills = 0
    for x in range(w // 10, w - w // 10):
        for y in range(h // 10, h - h // 10):
            if on_ridge[y, x] and hm.get_value(x, y) > RIDGE_MIN_HEIGHT:
                hm.add_hill(x, y, prng.rand_int(3) + 2, prng.random() * RIDGE_HILL_JITTER + RIDGE_HILL_BASE)
                hills += 1

    logger.debug("Tectonic ridge raised", horizontal=bool(horizontal), cells=len(ridge), hills=hills)
    return ridge


def temperature_field(hm: Heightmap) -> Heightmap:
    """
    Latitude-based temperature, cooled on peaks and deep water, normalised.

    Rows are warmest in the middle of the map; cells above 0.8 lose
    ``5 * elevation`` and cells below 0.25 lose ``10 * elevation``.
    """
    w, h = hm.width, hm.height
    rows = np.arange(h, dtype=np.float64)[:, np.newaxis]
    base = np.where(rows > h // 2, h - rows, rows)
    elevation = hm.grid
    effect = np.where(elevation > 0.8, elevation * 5.0, np.where(elevation < 0.25, elevation * 10.0, 0.0))

    temp = Heightmap(w, h)
    temp.grid[:] = base - effect
    temp.normalize(0.0, 1.0)
    return temp


def precipitation_field(width: int, height: int, noise: Noise) -> Heightmap:
    """Constant 2 plus 2-frequency fBm, normalised."""
    precip = Heightmap(width, height)
    precip.add_value(2.0)
    precip.add_fbm(noise, 2, 2, 0, 0, FBM_OCTAVES, 1, 1)
    precip.normalize(0.0, 1.0)
    return precip


def drainage_field(width: int, height: int, noise: Noise) -> Heightmap:
    drainage = Heightmap(width, height)
    drainage.add_fbm(noise, 2, 2, 0, 0, FBM_OCTAVES, 1, 1)
    drainage.normalize(0.0, 1.0)
    return drainage


def compute_prosperity(world: World) -> None:
    """Mean of precipitation near 0.6, temperature near 0.5 and drainage."""
    for tile in world.tiles:
        tile.prosperity = ((1.0 - abs(tile.precip - 0.6)) + (1.0 - abs(tile.temp - 0.5)) + tile.drainage) / 3.0


class TerrainGenerator:
    """
    Runs the terrain pipeline with a single seeded generator.

    Every random draw, including noise tables, comes from ``self.prng`` in
    pipeline order, so one seed reproduces one world.
    """

    def __init__(self, options: Optional[TerrainOptions] = None, prng: Optional[AleaPRNG] = None):
        self.options = options or TerrainOptions()
        self.prng = ensure_prng(prng if prng is not None else self.options.seed)

    def _noise(self) -> Noise:
        return Noise(2, self.options.noise_hurst, self.options.noise_lacunarity, prng=self.prng)

    def _stamp_hills(self, hm: Heightmap, count: int, radius: Tuple[int, int]) -> None:
        low_a, high_a = self.options.hill_amplitude
        for _ in range(count):
            hm.add_hill(
                self.prng.rand_int(hm.width),
                self.prng.rand_int(hm.height),
                self.prng.randint(*radius),
                self.prng.randint(low_a, high_a),
            )

    def generate_heightmap(self) -> Heightmap:
        """Hills, fBm modulation, poles, tectonic ridges and rain erosion."""
        opts = self.options
        hm = Heightmap(opts.width, opts.height)

        self._stamp_hills(hm, opts.large_hills, opts.large_hill_radius)
        self._stamp_hills(hm, opts.small_hills, opts.small_hill_radius)
        hm.normalize(0.0, 1.0)
        logger.info("Hills stamped", large=opts.large_hills, small=opts.small_hills)

        modulation = Heightmap(opts.width, opts.height)
        modulation.add_fbm(self._noise(), 6, 6, 0, 0, FBM_OCTAVES, 1, 1)
        modulation.normalize(0.0, 1.0)
        Heightmap.multiply_hm(hm, modulation, hm)

        pole_gen(hm, self.prng, 0)
        pole_gen(hm, self.prng, 1)

        tectonic_gen(hm, self.prng, 0)
        tectonic_gen(hm, self.prng, 1)

        hm.rain_erosion(self.prng, opts.width * opts.height, RAIN_EROSION_COEF, 0.0)
        hm.clamp(0.0, 1.0)

        low, high = hm.min_max()
        logger.info("Heightmap generated", width=opts.width, height=opts.height, min=low, max=high)
        return hm

    def build_world(self, hm: Heightmap) -> World:
        """Climate fields, tiles, prosperity, biomes and rivers for a heightmap."""
        temp = temperature_field(hm)
        precip = precipitation_field(hm.width, hm.height, self._noise())
        drainage = drainage_field(hm.width, hm.height, self._noise())

        world = World.from_fields(hm, temp, precip, drainage)
        compute_prosperity(world)
        classify_world(world, self.prng)
        world.rivers = generate_rivers(
            world,
            self.prng,
            count=self.options.river_count,
            min_length=self.options.min_river_length,
            attempts=self.options.river_attempts,
        )
        logger.info("World built", tiles=len(world.tiles), rivers=len(world.rivers))
        return world

    def generate(self) -> World:
        return self.build_world(self.generate_heightmap())

    def symbol_map(self, world: World) -> np.ndarray:
        """Display glyph per tile; rivers draw as 'o'."""
        symbols = np.zeros((world.height, world.width), dtype=np.int64)
        for index, tile in enumerate(world.tiles):
            y, x = divmod(index, world.width)
            symbols[y, x] = RIVER_SYMBOL if tile.has_river else biome_symbol(tile.biome_id, self.prng)
        return symbols


# Map modes


def height_map_mode(world: World) -> np.ndarray:
    return raster.gradient_image(world.heights(), (_BLACK, _WHITE), "height")


def temperature_map_mode(world: World) -> np.ndarray:
    return raster.gradient_image(world.attribute("temp"), (_WHITE, _RED), "temperature")


def precipitation_map_mode(world: World) -> np.ndarray:
    return raster.gradient_image(world.attribute("precip"), (_WHITE, _LIGHT_BLUE), "precipitation")


def drainage_map_mode(world: World) -> np.ndarray:
    return raster.gradient_image(world.attribute("drainage"), (_DARKEST_ORANGE, _WHITE), "drainage")


def prosperity_map_mode(world: World) -> np.ndarray:
    """Prosperity shaded black to green, boosted on river tiles."""
    prosperity = world.attribute("prosperity")
    prosperity = np.where(world.river_mask(), prosperity * PROSPERITY_RIVER_BOOST, prosperity)
    return raster.gradient_image(prosperity, (_BLACK, _DARKER_GREEN), "prosperity")


def biome_map_mode(world: World) -> np.ndarray:
    image = np.full((world.height, world.width, 4), 255, dtype=np.uint8)
    for index, tile in enumerate(world.tiles):
        y, x = divmod(index, world.width)
        image[y, x, :3] = RIVER_COLOR if tile.has_river else BIOME_COLORS[BiomeType(tile.biome_id)]
    return image


MAP_MODES: Dict[str, Callable[[World], np.ndarray]] = {
    "height": height_map_mode,
    "temperature": temperature_map_mode,
    "precipitation": precipitation_map_mode,
    "drainage": drainage_map_mode,
    "prosperity": prosperity_map_mode,
    "biome": biome_map_mode,
}


def export_map_modes(world: World, output_dir: Union[str, Path, None] = None) -> Dict[str, Optional[Exception]]:
    """
    Write every map mode as ``<mode>.png`` under output_dir.

    Returns:
        Mode name to the write error, None for modes written successfully
    """
    if output_dir is None:
        from ..config import settings

        output_dir = settings.output_dir
    errors = {}
    for name, render in MAP_MODES.items():
        _, error = raster.write_image(Path(output_dir) / f"{name}.png", render(world))
        errors[name] = error
    logger.info("Map modes exported", output_dir=str(output_dir), failed=[n for n, e in errors.items() if e])
    return errors
