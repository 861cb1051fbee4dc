"""
Biome classification from climate and elevation.

This module implements:
- The biome enumeration with display names, colours and map glyphs
- A decision list mapping (temperature, precipitation, drainage, height)
  to a biome, with a bounded number of PRNG draws per cell
- World-level classification with a biome histogram
"""

from collections import Counter
from enum import IntEnum
from typing import TYPE_CHECKING, Dict, Tuple

import structlog

from .alea_prng import AleaPRNG

if TYPE_CHECKING:
    from .terrain import World

logger = structlog.get_logger()

RGB = Tuple[int, int, int]


class BiomeType(IntEnum):
    """Biome identifiers. 7 is unused."""

    WATER = 0
    FOREST = 1
    LIGHT_FOREST = 2
    PLAIN = 3
    DESERT = 4
    SAVANNA = 5
    JUNGLE = 6
    BADLANDS = 8
    MOUNTAIN = 9
    HIGH_MOUNTAIN = 10
    ICE = 11
    GLACIER = 12
    ICE_SHEET = 13
    ROCKY_SHRUBLAND = 14
    SHRUBLAND = 15
    STEPPE = 16


BIOME_NAMES = {
    BiomeType.WATER: "Water",
    BiomeType.FOREST: "Forest",
    BiomeType.LIGHT_FOREST: "Light Forest",
    BiomeType.PLAIN: "Plain",
    BiomeType.DESERT: "Desert",
    BiomeType.SAVANNA: "Savanna",
    BiomeType.JUNGLE: "Jungle",
    BiomeType.BADLANDS: "Badlands",
    BiomeType.MOUNTAIN: "Mountain",
    BiomeType.HIGH_MOUNTAIN: "High Mountain",
    BiomeType.ICE: "Ice",
    BiomeType.GLACIER: "Glacier",
    BiomeType.ICE_SHEET: "Ice Sheet",
    BiomeType.ROCKY_SHRUBLAND: "Rocky Shrubland",
    BiomeType.SHRUBLAND: "Shrubland",
    BiomeType.STEPPE: "Steppe",
}

_WATER: RGB = (13, 103, 196)
_DARK_GREEN: RGB = (68, 158, 53)
_LIGHT_GREEN: RGB = (131, 212, 82)
_DESERT: RGB = (255, 218, 90)
_BADLANDS: RGB = (204, 159, 81)
_MOUNTAIN: RGB = (185, 192, 162)
_ICE: RGB = (176, 223, 215)

BIOME_COLORS: Dict[BiomeType, RGB] = {
    BiomeType.WATER: _WATER,
    BiomeType.FOREST: _DARK_GREEN,
    BiomeType.LIGHT_FOREST: _LIGHT_GREEN,
    BiomeType.PLAIN: _LIGHT_GREEN,
    BiomeType.DESERT: _DESERT,
    BiomeType.SAVANNA: _DARK_GREEN,
    BiomeType.JUNGLE: _DARK_GREEN,
    BiomeType.BADLANDS: _BADLANDS,
    BiomeType.MOUNTAIN: _MOUNTAIN,
    BiomeType.HIGH_MOUNTAIN: _MOUNTAIN,
    BiomeType.ICE: _ICE,
    BiomeType.GLACIER: _ICE,
    BiomeType.ICE_SHEET: _ICE,
    BiomeType.ROCKY_SHRUBLAND: _DARK_GREEN,
    BiomeType.SHRUBLAND: _LIGHT_GREEN,
    BiomeType.STEPPE: _DARK_GREEN,
}

RIVER_COLOR: RGB = (128, 192, 255)
RIVER_SYMBOL = ord("o")

# Code page 437 glyphs; biomes with two glyphs pick one at random
_FIXED_SYMBOLS = {
    BiomeType.WATER: 0xFB,
    BiomeType.PLAIN: ord("n"),
    BiomeType.DESERT: 0xFB,
    BiomeType.SAVANNA: 24,
    BiomeType.MOUNTAIN: 127,
    BiomeType.HIGH_MOUNTAIN: 30,
    BiomeType.ICE: 176,
    BiomeType.GLACIER: 177,
    BiomeType.ICE_SHEET: 178,
    BiomeType.ROCKY_SHRUBLAND: ord("n"),
    BiomeType.STEPPE: 139,
}

_SYMBOL_VARIANTS = {
    BiomeType.FOREST: (244, 131),
    BiomeType.LIGHT_FOREST: (ord('"'), 163),
    BiomeType.JUNGLE: (6, 5),
    BiomeType.BADLANDS: (251, ord(",")),
    BiomeType.SHRUBLAND: (251, ord(",")),
}


def biome_symbol(biome_id: int, prng: AleaPRNG) -> int:
    """Map glyph for a biome; one PRNG draw for biomes with variants."""
    biome = BiomeType(biome_id)
    if biome in _SYMBOL_VARIANTS:
        first, second = _SYMBOL_VARIANTS[biome]
        return first if prng.chance(0.5) else second
    return _FIXED_SYMBOLS[biome]


def classify_biome(
    temp: float, precip: float, drainage: float, height: float, prng: AleaPRNG
) -> BiomeType:
    """
    Classify one cell.

    Rules are evaluated in order and later matches overwrite earlier ones,
    so elevation and cold override the climate-based choices.

    Args:
        temp: Temperature in [0, 1]
        precip: Precipitation in [0, 1]
        drainage: Drainage in [0, 1]
        height: Elevation in [0, 1]
        prng: Generator for the random upgrades

    Returns:
        BiomeType of the cell
    """
    biome = BiomeType.WATER

    if 0.10 <= precip < 0.33 and drainage < 0.5:
        biome = BiomeType.PLAIN
        if prng.chance(0.5):
            biome = BiomeType.STEPPE

    if precip >= 0.10 and precip >= 0.33:
        biome = BiomeType.LIGHT_FOREST
        if precip >= 0.66:
            biome = BiomeType.FOREST

    if 0.33 <= precip < 0.66 and drainage >= 0.33:
        biome = BiomeType.SHRUBLAND
        if prng.chance(0.2):
            biome = BiomeType.SAVANNA

    if temp > 0.2 and precip >= 0.66 and drainage > 0.33:
        biome = BiomeType.SAVANNA
        if precip >= 0.75:
            biome = BiomeType.JUNGLE
        if prng.chance(0.2):
            biome = BiomeType.SHRUBLAND

    if 0.10 <= precip < 0.33 and drainage >= 0.5:
        biome = BiomeType.STEPPE
        if prng.chance(0.5):
            biome = BiomeType.ROCKY_SHRUBLAND

    if precip < 0.10:
        biome = BiomeType.DESERT
        if drainage > 0.5:
            biome = BiomeType.STEPPE
            if prng.chance(0.5):
                biome = BiomeType.ROCKY_SHRUBLAND
        if drainage >= 0.66:
            biome = BiomeType.BADLANDS

    if height <= 0.2:
        biome = BiomeType.WATER

    if temp <= 0.2 and height > 0.15:
        biome = BiomeType(prng.randint(BiomeType.ICE, BiomeType.GLACIER))

    if height > 0.6:
        biome = BiomeType.MOUNTAIN
    if height > 0.9:
        biome = BiomeType.HIGH_MOUNTAIN

    return biome


def classify_world(world: "World", prng: AleaPRNG) -> Counter:
    """
    Assign a biome to every tile of the world in row-major order.

    Returns:
        Counter of tiles per biome
    """
    histogram: Counter = Counter()
    for tile in world.tiles:
        tile.biome_id = int(classify_biome(tile.temp, tile.precip, tile.drainage, tile.height, prng))
        histogram[BiomeType(tile.biome_id)] += 1

    logger.info(
        "Biomes classified",
        tiles=len(world.tiles),
        histogram={BIOME_NAMES[b]: n for b, n in sorted(histogram.items())},
    )
    return histogram
