"""Tests for biome classification."""

import pytest

from py_worldgen.core.alea_prng import AleaPRNG
from py_worldgen.core.biomes import (
    BIOME_COLORS,
    BIOME_NAMES,
    RIVER_SYMBOL,
    BiomeType,
    biome_symbol,
    classify_biome,
    classify_world,
)
from py_worldgen.core.terrain import Tile, World


class TestClassifyBiome:
    """Test the biome decision list."""

    @pytest.fixture
    def prng(self):
        return AleaPRNG("biomes")

    def test_low_ground_is_water(self, prng):
        assert classify_biome(0.5, 0.5, 0.2, 0.1, prng) == BiomeType.WATER
        assert classify_biome(0.5, 0.8, 0.2, 0.2, prng) == BiomeType.WATER

    def test_mountains_override_climate(self, prng):
        assert classify_biome(0.5, 0.8, 0.2, 0.7, prng) == BiomeType.MOUNTAIN
        assert classify_biome(0.1, 0.8, 0.2, 0.95, prng) == BiomeType.HIGH_MOUNTAIN

    def test_cold_land_freezes(self, prng):
        for _ in range(20):
            assert classify_biome(0.1, 0.5, 0.5, 0.4, prng) in (BiomeType.ICE, BiomeType.GLACIER)

    def test_forest_without_draws(self, prng):
        before = prng.call_count
        assert classify_biome(0.5, 0.8, 0.2, 0.4, prng) == BiomeType.FOREST
        assert classify_biome(0.5, 0.5, 0.1, 0.4, prng) == BiomeType.LIGHT_FOREST
        assert prng.call_count == before

    def test_light_forest_threshold_inclusive(self, prng):
        assert classify_biome(0.5, 0.33, 0.1, 0.4, prng) == BiomeType.LIGHT_FOREST

    def test_desert_and_badlands(self, prng):
        assert classify_biome(0.5, 0.05, 0.2, 0.4, prng) == BiomeType.DESERT
        assert classify_biome(0.5, 0.05, 0.7, 0.4, prng) == BiomeType.BADLANDS

    def test_dry_plains(self, prng):
        seen = {classify_biome(0.5, 0.2, 0.2, 0.4, prng) for _ in range(50)}
        assert seen == {BiomeType.PLAIN, BiomeType.STEPPE}

    def test_wet_tropics(self, prng):
        seen = {classify_biome(0.5, 0.9, 0.5, 0.4, prng) for _ in range(100)}
        assert seen <= {BiomeType.JUNGLE, BiomeType.SHRUBLAND}
        assert BiomeType.JUNGLE in seen

    def test_bounded_draws(self, prng):
        for temp in (0.1, 0.5):
            for precip in (0.05, 0.2, 0.5, 0.7, 0.9):
                for drainage in (0.1, 0.4, 0.6, 0.8):
                    before = prng.call_count
                    classify_biome(temp, precip, drainage, 0.4, prng)
                    assert prng.call_count - before <= 3

    def test_deterministic(self):
        a, b = AleaPRNG(11), AleaPRNG(11)
        cells = [(t / 10, p / 10, 0.5, 0.4) for t in range(10) for p in range(10)]
        assert [classify_biome(*c, a) for c in cells] == [classify_biome(*c, b) for c in cells]


class TestBiomeTables:
    """Test names, colours and glyphs."""

    def test_every_biome_described(self):
        for biome in BiomeType:
            assert biome in BIOME_NAMES
            assert biome in BIOME_COLORS

    def test_seven_unused(self):
        with pytest.raises(ValueError):
            BiomeType(7)

    def test_fixed_symbols(self):
        prng = AleaPRNG(1)
        assert biome_symbol(BiomeType.PLAIN, prng) == ord("n")
        assert biome_symbol(BiomeType.MOUNTAIN, prng) == 127
        assert prng.call_count == 0

    def test_symbol_variants(self):
        prng = AleaPRNG(1)
        seen = {biome_symbol(BiomeType.FOREST, prng) for _ in range(50)}
        assert seen == {244, 131}
        assert RIVER_SYMBOL == ord("o")


class TestClassifyWorld:
    """Test classification over a whole world."""

    def test_histogram(self):
        tiles = [Tile(height=0.1), Tile(height=0.1), Tile(height=0.95, temp=0.5), Tile(height=0.7, temp=0.5)]
        world = World(2, 2, tiles)
        histogram = classify_world(world, AleaPRNG(1))
        assert histogram[BiomeType.WATER] == 2
        assert histogram[BiomeType.HIGH_MOUNTAIN] == 1
        assert histogram[BiomeType.MOUNTAIN] == 1
        assert sum(histogram.values()) == 4
        assert [t.biome_id for t in tiles] == [0, 0, 10, 9]
