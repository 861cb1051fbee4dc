"""Tests for the terrain pipeline, the tile world and map modes."""

import numpy as np
import pytest

from py_worldgen.core.alea_prng import AleaPRNG
from py_worldgen.core.biomes import BIOME_COLORS, RIVER_COLOR, RIVER_SYMBOL, BiomeType
from py_worldgen.core.heightmap import Heightmap
from py_worldgen.core.noise import Noise
from py_worldgen.core.raster import read_gray
from py_worldgen.core.terrain import (
    MAP_MODES,
    POLE_HEIGHT,
    TerrainGenerator,
    TerrainOptions,
    Tile,
    World,
    biome_map_mode,
    compute_prosperity,
    drainage_field,
    export_map_modes,
    height_map_mode,
    pole_gen,
    precipitation_field,
    prosperity_map_mode,
    tectonic_gen,
    temperature_field,
    temperature_map_mode,
)


def _flat(width, height, value):
    hm = Heightmap(width, height)
    hm.add_value(value)
    return hm


@pytest.fixture
def small_options():
    return TerrainOptions(
        width=24,
        height=24,
        seed=3,
        large_hills=12,
        large_hill_radius=(4, 6),
        small_hills=40,
    )


class TestPoles:
    """Test polar flattening."""

    def test_north_strip(self):
        hm = _flat(20, 20, 1.0)
        pole_gen(hm, AleaPRNG(1), 1)
        np.testing.assert_array_equal(hm.grid[:2], POLE_HEIGHT)
        np.testing.assert_array_equal(hm.grid[5:], 1.0)

    def test_south_strip(self):
        hm = _flat(20, 20, 1.0)
        pole_gen(hm, AleaPRNG(1), 0)
        np.testing.assert_array_equal(hm.grid[-2:], POLE_HEIGHT)
        np.testing.assert_array_equal(hm.grid[:-5], 1.0)

    def test_strip_depth_walk(self):
        hm = _flat(40, 20, 1.0)
        pole_gen(hm, AleaPRNG("walk"), 1)
        depths = (hm.grid == POLE_HEIGHT).sum(axis=0)
        assert depths.min() >= 2 and depths.max() <= 5
        assert np.all(np.abs(np.diff(depths)) <= 1)


class TestTectonics:
    """Test mountain ridges."""

    @pytest.mark.parametrize("horizontal", [0, 1])
    def test_ridge_walk(self, horizontal):
        hm = _flat(50, 40, 0.5)
        ridge = tectonic_gen(hm, AleaPRNG(1), horizontal)
        span = 40 if horizontal else 50
        assert len(ridge) == (50 if horizontal else 40)
        lateral = [y if horizontal else x for x, y in ridge]
        along = [x if horizontal else y for x, y in ridge]
        assert along == list(range(len(ridge)))
        assert min(lateral) >= span // 10
        assert max(lateral) <= span - 1 - span // 10
        assert np.all(np.abs(np.diff(lateral)) <= 2)

    def test_ridge_raised(self):
        hm = _flat(50, 40, 0.5)
        ridge = tectonic_gen(hm, AleaPRNG(2), 1)
        for x, y in ridge:
            if 5 <= x < 45:
                assert hm.get_value(x, y) >= 0.65 - 1e-12

    def test_low_ground_untouched(self):
        hm = _flat(50, 40, 0.2)
        tectonic_gen(hm, AleaPRNG(2), 0)
        np.testing.assert_array_equal(hm.grid, 0.2)


class TestClimateFields:
    """Test temperature, precipitation and drainage."""

    def test_temperature_by_latitude(self):
        temp = temperature_field(_flat(8, 10, 0.5))
        np.testing.assert_allclose(temp.grid[0], 0.0)
        np.testing.assert_allclose(temp.grid[5], 1.0)
        np.testing.assert_allclose(temp.grid[4], temp.grid[6])

    def test_peaks_and_water_are_colder(self):
        hm = _flat(8, 10, 0.5)
        hm.set_value(3, 5, 0.9)
        hm.set_value(4, 5, 0.1)
        temp = temperature_field(hm)
        assert temp.get_value(3, 5) < temp.get_value(2, 5)
        assert temp.get_value(4, 5) < temp.get_value(5, 5)

    def test_noise_fields_normalised(self):
        noise = Noise(2, prng=AleaPRNG(5))
        for field in (precipitation_field(16, 12, noise), drainage_field(16, 12, noise)):
            low, high = field.min_max()
            assert low == pytest.approx(0.0)
            assert high == pytest.approx(1.0)
            assert field.grid.shape == (12, 16)


class TestWorld:
    """Test tile storage and prosperity."""

    @pytest.fixture
    def world(self):
        height = Heightmap.from_array(np.array([[0.1, 0.5, 0.9], [0.3, 0.7, 1.0]]))
        temp = _flat(3, 2, 0.5)
        precip = _flat(3, 2, 0.6)
        drainage = _flat(3, 2, 1.0)
        return World.from_fields(height, temp, precip, drainage)

    def test_row_major_tiles(self, world):
        assert len(world.tiles) == 6
        assert world.tile(2, 0).height == pytest.approx(0.9)
        assert world.tile(0, 1).height == pytest.approx(0.3)
        assert world.heights().shape == (2, 3)

    def test_prosperity(self, world):
        compute_prosperity(world)
        np.testing.assert_allclose(world.attribute("prosperity"), 1.0)

    def test_masks(self, world):
        world.tile(1, 1).has_river = True
        assert world.river_mask().sum() == 1
        assert world.river_mask()[1, 1]
        assert world.biome_ids().dtype == np.int64


class TestTerrainGenerator:
    """Test the full pipeline on small worlds."""

    def test_heightmap_range(self, small_options):
        hm = TerrainGenerator(small_options).generate_heightmap()
        low, high = hm.min_max()
        assert low >= 0.0 and high <= 1.0
        assert hm.grid.shape == (24, 24)

    def test_deterministic(self, small_options):
        a = TerrainGenerator(small_options).generate()
        b = TerrainGenerator(small_options).generate()
        np.testing.assert_array_equal(a.heights(), b.heights())
        np.testing.assert_array_equal(a.biome_ids(), b.biome_ids())
        assert a.rivers == b.rivers

    def test_seed_changes_world(self, small_options):
        a = TerrainGenerator(small_options).generate_heightmap()
        b = TerrainGenerator(small_options, prng=AleaPRNG(99)).generate_heightmap()
        assert not np.array_equal(a.grid, b.grid)

    def test_world_fields(self, small_options):
        world = TerrainGenerator(small_options).generate()
        for name in ("temp", "precip", "drainage"):
            values = world.attribute(name)
            assert values.min() >= -1e-12 and values.max() <= 1.0 + 1e-12
        valid = {int(b) for b in BiomeType}
        assert set(world.biome_ids().ravel().tolist()) <= valid
        for path in world.rivers:
            assert all(world.tile(x, y).has_river for x, y in path if world.tile(x, y).height >= 0.2)

    def test_symbol_map(self, small_options):
        generator = TerrainGenerator(small_options)
        world = generator.generate()
        world.tile(0, 0).has_river = True
        symbols = generator.symbol_map(world)
        assert symbols.shape == (24, 24)
        assert symbols[0, 0] == RIVER_SYMBOL


class TestMapModes:
    """Test map-mode rendering and export."""

    @pytest.fixture
    def world(self):
        tiles = [
            Tile(height=0.0, temp=0.0, precip=0.0, drainage=0.0, prosperity=0.5),
            Tile(height=1.0, temp=1.0, precip=1.0, drainage=1.0, prosperity=0.5, has_river=True),
        ]
        tiles[0].biome_id = BiomeType.DESERT
        return World(2, 1, tiles)

    def test_shapes(self, world):
        for render in MAP_MODES.values():
            image = render(world)
            assert image.shape == (1, 2, 4)
            assert image.dtype == np.uint8

    def test_height_ramp(self, world):
        image = height_map_mode(world).astype(np.int16)
        assert np.all(np.abs(image[0, 0] - [0, 0, 0, 255]) <= 1)
        assert np.all(np.abs(image[0, 1] - [255, 255, 255, 255]) <= 1)

    def test_temperature_ramp(self, world):
        image = temperature_map_mode(world).astype(np.int16)
        assert np.all(np.abs(image[0, 1, :3] - [255, 0, 0]) <= 1)

    def test_prosperity_river_boost(self, world):
        image = prosperity_map_mode(world)
        assert image[0, 1, 1] > image[0, 0, 1]

    def test_biome_colours(self, world):
        image = biome_map_mode(world)
        assert tuple(image[0, 0, :3]) == BIOME_COLORS[BiomeType.DESERT]
        assert tuple(image[0, 1, :3]) == RIVER_COLOR

    def test_export(self, world, tmp_path):
        errors = export_map_modes(world, tmp_path / "maps")
        assert set(errors) == set(MAP_MODES)
        assert all(error is None for error in errors.values())
        grid, error = read_gray(tmp_path / "maps" / "height.png")
        assert error is None
        assert grid.shape == (1, 2)
        assert grid[0, 0] < grid[0, 1]

    def test_export_failure(self, world, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        errors = export_map_modes(world, blocker)
        assert all(error is not None for error in errors.values())
