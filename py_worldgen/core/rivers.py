"""
River tracing on the tile world.

A river starts on a high tile and follows the 4-connected downhill map
until it reaches low ground, merges into an existing river or stalls.
"""

from typing import TYPE_CHECKING, List, Optional, Tuple

import numpy as np
import structlog

from .alea_prng import AleaPRNG
from .hydrology import compute_downhill
from .surface import GridSurface

if TYPE_CHECKING:
    from .terrain import World

logger = structlog.get_logger()

MIN_RIVER_LENGTH = 3
RIVER_ATTEMPTS = 2000
SOURCE_MIN_HEIGHT = 0.8
RIVER_MIN_HEIGHT = 0.2

Path = List[Tuple[int, int]]


class RiverTracer:
    """Traces rivers over a world's tile heights."""

    def __init__(
        self,
        world: "World",
        prng: AleaPRNG,
        min_length: int = MIN_RIVER_LENGTH,
        attempts: int = RIVER_ATTEMPTS,
    ):
        self.world = world
        self.prng = prng
        self.min_length = min_length
        self.attempts = attempts

        self.heights = np.array([tile.height for tile in world.tiles], dtype=np.float64)
        surface = GridSurface(world.width, world.height, self.heights, diagonal=False)
        self.downhill = compute_downhill(self.heights, surface.neighbour_table)

    def _has_river_near(self, index: int) -> bool:
        """True if the tile or one of its 4-neighbours carries a river."""
        w, h = self.world.width, self.world.height
        x, y = index % w, index // w
        for dx, dy in ((0, 0), (1, 0), (-1, 0), (0, 1), (0, -1)):
            nx, ny = x + dx, y + dy
            if 0 <= nx < w and 0 <= ny < h and self.world.tiles[nx + ny * w].has_river:
                return True
        return False

    def _pick_source(self) -> Optional[int]:
        w, h = self.world.width, self.world.height
        index = self.prng.rand_int(w) + self.prng.rand_int(h) * w
        tries = 0
        while self.heights[index] < SOURCE_MIN_HEIGHT:
            tries += 1
            if tries > self.attempts:
                return None
            index = self.prng.rand_int(w) + self.prng.rand_int(h) * w
        return index

    def trace(self, start: Optional[Tuple[int, int]] = None) -> Optional[Path]:
        """
        Trace one river and stamp it onto the world.

        Args:
            start: Source tile; a random tile above 0.8 is chosen when omitted

        Returns:
            The river as (x, y) tiles from source to mouth, or None when no
            source was found or the path was too short
        """
        w = self.world.width
        if start is None:
            current = self._pick_source()
            if current is None:
                logger.info("No river source found", attempts=self.attempts)
                return None
        else:
            current = start[0] + start[1] * w

        path = [current]
        visited = {current}
        while self.heights[current] >= RIVER_MIN_HEIGHT:
            nxt = int(self.downhill[current])
            if nxt == -1:
                break
            if self._has_river_near(nxt):
                break
            if nxt in visited:
                break
            path.append(nxt)
            visited.add(nxt)
            current = nxt

        if len(path) <= self.min_length:
            logger.debug("River discarded", length=len(path))
            return None

        for index in path:
            if self.heights[index] < RIVER_MIN_HEIGHT:
                break
            self.world.tiles[index].has_river = True

        logger.debug("River traced", length=len(path), source=(path[0] % w, path[0] // w))
        return [(index % w, index // w) for index in path]


def generate_rivers(world: "World", prng: AleaPRNG, count: int = 1, **kwargs) -> List[Path]:
    """Trace up to ``count`` rivers, returning the ones that were kept."""
    tracer = RiverTracer(world, prng, **kwargs)
    rivers = []
    for _ in range(count):
        path = tracer.trace()
        if path is not None:
            rivers.append(path)
    logger.info("Rivers generated", requested=count, kept=len(rivers))
    return rivers
