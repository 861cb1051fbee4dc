"""
Procedural world generation: heightmaps, coherent noise, hydrology and biomes.
"""
