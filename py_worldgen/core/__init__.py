"""
Core world generation functionality.
"""

from .alea_prng import AleaPRNG
from .heightmap import Heightmap
from .noise import Noise, NoiseType
from .surface import GridSurface, TerrainSurface
from .hydrology import Hydrology, HydrologyOptions, compute_downhill, fill_sinks
from .biomes import BiomeType, classify_biome, classify_world
from .rivers import RiverTracer, generate_rivers
from .sphere import CubeSphere, FibonacciSphere, SphereSurface
from .terrain import TerrainGenerator, TerrainOptions, Tile, World, export_map_modes

__all__ = ['AleaPRNG', 'Heightmap', 'Noise', 'NoiseType', 'GridSurface', 'TerrainSurface',
           'Hydrology', 'HydrologyOptions', 'compute_downhill', 'fill_sinks',
           'BiomeType', 'classify_biome', 'classify_world', 'RiverTracer', 'generate_rivers',
           'CubeSphere', 'FibonacciSphere', 'SphereSurface',
           'TerrainGenerator', 'TerrainOptions', 'Tile', 'World', 'export_map_modes']
