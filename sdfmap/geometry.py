"""Grid indexing helpers and rigid transformations."""

from __future__ import annotations

import math
from typing import Iterable

import numpy as np

EPSILON = 1e-6

GridIndex = tuple[int, int, int]


class Transformation:
    """A rigid transformation made of a rotation matrix and a translation."""

    def __init__(self, rotation=None, translation=None):
        self.rotation = (
            np.eye(3) if rotation is None else np.array(rotation, dtype=float)
        )
        if self.rotation.shape != (3, 3):
            raise ValueError("rotation must be a 3x3 matrix")
        self.translation = (
            np.zeros(3)
            if translation is None
            else np.array(translation, dtype=float).reshape(3)
        )

    def apply(self, point) -> np.ndarray:
        """Transform a single point."""
        return self.rotation @ np.asarray(point, dtype=float) + self.translation

    def inverse(self) -> Transformation:
        """Return the inverse transformation."""
        rotation_t = self.rotation.T
        return Transformation(rotation_t, -(rotation_t @ self.translation))

    def position(self) -> np.ndarray:
        """Return the translation part, i.e. the frame origin."""
        return self.translation.copy()

    def __repr__(self) -> str:
        return (
            f"Transformation(rotation={self.rotation.tolist()}, "
            f"translation={self.translation.tolist()})"
        )


def signum(value) -> int:
    """Return -1, 0 or 1 according to the sign of value."""
    return int(value > 0) - int(value < 0)


def grid_index_from_point(point: Iterable[float], grid_size_inv: float = 1.0) -> GridIndex:
    """Return the grid cell that contains point, for cells of 1/grid_size_inv."""
    x, y, z = (int(math.floor(float(c) * grid_size_inv + EPSILON)) for c in point)
    return (x, y, z)


def center_point_from_grid_index(index: Iterable[int], grid_size: float) -> np.ndarray:
    """Return the center of the grid cell with the given index."""
    return (np.asarray(tuple(index), dtype=float) + 0.5) * grid_size


def block_index_from_global(global_index: Iterable[int], voxels_per_side: int) -> GridIndex:
    """Return the block that holds the voxel with the given global index."""
    x, y, z = (int(c) // voxels_per_side for c in global_index)
    return (x, y, z)


def local_from_global(global_index: Iterable[int], voxels_per_side: int) -> GridIndex:
    """Return the voxel index inside its block for a global voxel index."""
    x, y, z = (int(c) % voxels_per_side for c in global_index)
    return (x, y, z)


def global_from_block_and_voxel(
    block_index: Iterable[int], voxel_index: Iterable[int], voxels_per_side: int
) -> GridIndex:
    """Combine a block index and a local voxel index into a global voxel index."""
    x, y, z = (
        int(b) * voxels_per_side + int(v) for b, v in zip(block_index, voxel_index)
    )
    return (x, y, z)