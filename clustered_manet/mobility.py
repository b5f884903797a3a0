import logging
from enum import Enum

import numpy as np

logger = logging.getLogger(__name__)


class PlacementPolicy(Enum):
    RANDOM_RECTANGLE = "random-rectangle"
    GRID = "grid"


# ====================================
# Position allocators
# ====================================
class RandomRectanglePositionAllocator:
    """Independent uniform positions in [0, width] x [0, height]."""

    def __init__(self, width, height, np_rng):
        self.width = width
        self.height = height
        self._rng = np_rng

    def next_position(self):
        x = self._rng.uniform(0.0, self.width)
        y = self._rng.uniform(0.0, self.height)
        return np.array([x, y])


class GridPositionAllocator:
    """Row-first grid with fixed spacing, ``grid_width`` columns per row."""

    def __init__(self, min_x, min_y, delta_x, delta_y, grid_width):
        self.min_x = min_x
        self.min_y = min_y
        self.delta_x = delta_x
        self.delta_y = delta_y
        self.grid_width = grid_width
        self._index = 0

    def next_position(self):
        row, col = divmod(self._index, self.grid_width)
        self._index += 1
        return np.array([self.min_x + col * self.delta_x, self.min_y + row * self.delta_y])


def configure_mobility(config, width, height, np_rng):
    """Build the placement policy for the run; nodes never move afterwards."""
    if config.placement is PlacementPolicy.GRID:
        allocator = GridPositionAllocator(
            config.grid_min_x, config.grid_min_y,
            config.grid_delta_x, config.grid_delta_y,
            config.grid_width,
        )
    else:
        allocator = RandomRectanglePositionAllocator(width, height, np_rng)
    logger.info("Mobility configured: %s placement, constant position", config.placement.value)
    return allocator
