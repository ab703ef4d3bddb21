"""Voxel types, blocks of voxels and layers of blocks."""

from __future__ import annotations

import copy
import enum
import math
from dataclasses import dataclass, field
from typing import Iterator

import numpy as np

from sdfmap.geometry import GridIndex, block_index_from_global, local_from_global


class Update(enum.Enum):
    """Consumers that track whether a block changed since they last looked."""

    MAP = "map"
    MESH = "mesh"
    ESDF = "esdf"


@dataclass(frozen=True)
class Color:
    """An RGBA color with 8-bit channels."""

    r: int = 0
    g: int = 0
    b: int = 0
    a: int = 255

    @classmethod
    def blend(cls, first: Color, first_weight: float, second: Color, second_weight: float) -> Color:
        """Weighted average of two colors, rounded to the nearest channel value."""
        total = first_weight + second_weight
        w1 = first_weight / total
        w2 = second_weight / total

        def mix(a: int, b: int) -> int:
            value = math.floor(a * w1 + b * w2 + 0.5)
            return min(max(value, 0), 255)

        return cls(
            mix(first.r, second.r),
            mix(first.g, second.g),
            mix(first.b, second.b),
            mix(first.a, second.a),
        )


@dataclass
class TsdfVoxel:
    distance: float = 0.0
    weight: float = 0.0
    color: Color = field(default_factory=Color)


@dataclass
class EsdfVoxel:
    distance: float = 0.0
    observed: bool = False
    hallucinated: bool = False
    in_queue: bool = False
    fixed: bool = False
    parent: GridIndex = (0, 0, 0)


@dataclass
class OccupancyVoxel:
    probability_log: float = 0.0
    observed: bool = False


class Block:
    """A cube of voxels_per_side^3 voxels anchored at origin."""

    def __init__(self, voxels_per_side: int, voxel_size: float, origin, voxel_type: type):
        if voxels_per_side <= 0 or voxel_size <= 0:
            raise ValueError("voxels_per_side and voxel_size must be positive")
        self.voxels_per_side = int(voxels_per_side)
        self.voxel_size = float(voxel_size)
        self.origin = np.asarray(origin, dtype=float).reshape(3)
        self.voxel_type = voxel_type
        self.voxels = [voxel_type() for _ in range(self.voxels_per_side**3)]
        self.updated: set[Update] = set()
        self.has_data = False

    @property
    def num_voxels(self) -> int:
        return len(self.voxels)

    @property
    def block_size(self) -> float:
        return self.voxel_size * self.voxels_per_side

    def is_valid_voxel_index(self, voxel_index) -> bool:
        return all(0 <= int(c) < self.voxels_per_side for c in voxel_index)

    def voxel(self, voxel_index):
        """Return the voxel at a local (x, y, z) index."""
        if not self.is_valid_voxel_index(voxel_index):
            raise IndexError(f"voxel index {tuple(voxel_index)} outside block")
        x, y, z = (int(c) for c in voxel_index)
        vps = self.voxels_per_side
        return self.voxels[x + vps * (y + vps * z)]

    def voxel_at_linear(self, linear_index: int):
        if not 0 <= linear_index < self.num_voxels:
            raise IndexError(f"linear index {linear_index} outside block")
        return self.voxels[linear_index]

    def voxel_index_from_linear(self, linear_index: int) -> GridIndex:
        vps = self.voxels_per_side
        z, rem = divmod(int(linear_index), vps * vps)
        y, x = divmod(rem, vps)
        return (x, y, z)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Block):
            return NotImplemented
        return (
            self.voxels_per_side == other.voxels_per_side
            and self.voxel_size == other.voxel_size
            and self.voxel_type is other.voxel_type
            and np.array_equal(self.origin, other.origin)
            and self.voxels == other.voxels
        )

    __hash__ = None


class Layer:
    """A sparse grid of blocks that share voxel size and block resolution."""

    def __init__(self, voxel_size: float, voxels_per_side: int, voxel_type: type):
        if voxel_size <= 0:
            raise ValueError("voxel_size must be positive")
        if voxels_per_side <= 0:
            raise ValueError("voxels_per_side must be positive")
        self.voxel_size = float(voxel_size)
        self.voxels_per_side = int(voxels_per_side)
        self.voxel_type = voxel_type
        self.blocks: dict[GridIndex, Block] = {}

    @property
    def block_size(self) -> float:
        return self.voxel_size * self.voxels_per_side

    @property
    def voxel_size_inv(self) -> float:
        return 1.0 / self.voxel_size

    @property
    def block_size_inv(self) -> float:
        return 1.0 / self.block_size

    @property
    def voxels_per_side_inv(self) -> float:
        return 1.0 / self.voxels_per_side

    def __len__(self) -> int:
        return len(self.blocks)

    def __contains__(self, block_index) -> bool:
        return tuple(block_index) in self.blocks

    def __iter__(self) -> Iterator[tuple[GridIndex, Block]]:
        return iter(self.blocks.items())

    def block(self, block_index) -> Block | None:
        """Return the block at block_index, or None if it is not allocated."""
        return self.blocks.get(tuple(block_index))

    def allocate_block(self, block_index) -> Block:
        """Return the block at block_index, creating it if needed."""
        key = tuple(int(c) for c in block_index)
        block = self.blocks.get(key)
        if block is None:
            origin = np.asarray(key, dtype=float) * self.block_size
            block = Block(self.voxels_per_side, self.voxel_size, origin, self.voxel_type)
            self.blocks[key] = block
        return block

    def insert_block(self, block_index, block: Block) -> None:
        key = tuple(int(c) for c in block_index)
        if key in self.blocks:
            raise ValueError(f"block already exists at {key}")
        self.blocks[key] = block

    def remove_block(self, block_index) -> None:
        self.blocks.pop(tuple(block_index), None)

    def remove_all_blocks(self) -> None:
        self.blocks.clear()

    def block_indices(self) -> list[GridIndex]:
        return list(self.blocks)

    def updated_block_indices(self, flag: Update) -> list[GridIndex]:
        return [index for index, block in self.blocks.items() if flag in block.updated]

    def voxel_by_global_index(self, global_index):
        """Return the voxel at a global index, or None if its block is absent."""
        block = self.blocks.get(block_index_from_global(global_index, self.voxels_per_side))
        if block is None:
            return None
        return block.voxel(local_from_global(global_index, self.voxels_per_side))

    def copy(self) -> Layer:
        """Return a deep copy of the layer."""
        return copy.deepcopy(self)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Layer):
            return NotImplemented
        return (
            self.voxel_size == other.voxel_size
            and self.voxels_per_side == other.voxels_per_side
            and self.voxel_type is other.voxel_type
            and self.blocks == other.blocks
        )

    __hash__ = None