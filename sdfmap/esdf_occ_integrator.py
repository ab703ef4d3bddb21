"""Builds an ESDF layer out of an occupancy layer."""

from __future__ import annotations

import dataclasses
import logging
import math
from dataclasses import dataclass
from typing import Iterable

from sdfmap.esdf_propagation import BucketQueue
from sdfmap.geometry import GridIndex
from sdfmap.layer import Layer

logger = logging.getLogger(__name__)

_SQRT2 = math.sqrt(2.0)
_SQRT3 = math.sqrt(3.0)
_NUM_NEIGHBORS = 26

VoxelKey = tuple[GridIndex, GridIndex]


def _direction_set() -> list[tuple[GridIndex, float]]:
    """The 26 neighbor directions with their distances in voxels."""
    result: list[tuple[GridIndex, float]] = []
    # Faces.
    for axis in range(3):
        for step in (-1, 1):
            direction = [0, 0, 0]
            direction[axis] = step
            result.append((tuple(direction), 1.0))
    # Edges.
    for axis in range(3):
        next_axis = (axis + 1) % 3
        for first in (-1, 1):
            for second in (-1, 1):
                direction = [0, 0, 0]
                direction[axis] = first
                direction[next_axis] = second
                result.append((tuple(direction), _SQRT2))
    # Corners.
    for x in (-1, 1):
        for y in (-1, 1):
            for z in (-1, 1):
                result.append(((x, y, z), _SQRT3))
    return result


_DIRECTIONS = _direction_set()


@dataclass
class EsdfOccIntegratorConfig:
    # Distances above this are not propagated; such voxels keep default_distance_m.
    max_distance_m: float = 2.0
    # Distance given to free voxels before propagation.
    default_distance_m: float = 2.0
    num_buckets: int = 20


class EsdfOccIntegrator:
    """Computes distances to occupied voxels; occupied voxels are marked fixed.

    Only batch updates are supported.
    """

    def __init__(self, config: EsdfOccIntegratorConfig, occ_layer: Layer, esdf_layer: Layer):
        if occ_layer is None or esdf_layer is None:
            raise ValueError("occ_layer and esdf_layer must not be None")
        self.config = dataclasses.replace(config)
        self.occ_layer = occ_layer
        self.esdf_layer = esdf_layer
        self.voxels_per_side = esdf_layer.voxels_per_side
        self.voxel_size = esdf_layer.voxel_size
        self.open_queue = BucketQueue(self.config.num_buckets, self.config.max_distance_m)

    def update_from_occ_layer_batch(self) -> None:
        """Rebuild the whole ESDF layer from the occupancy layer."""
        self.esdf_layer.remove_all_blocks()
        self.update_from_occ_blocks(self.occ_layer.block_indices())

    def update_from_occ_blocks(self, occ_blocks: Iterable) -> None:
        """Seed the ESDF from the given occupancy blocks and propagate."""
        if self.occ_layer.voxels_per_side != self.esdf_layer.voxels_per_side:
            raise ValueError("occupancy and ESDF layers must have the same voxels per side")
        config = self.config
        num_lower = num_new = 0
        occ_blocks = [tuple(int(c) for c in index) for index in occ_blocks]
        logger.debug("[ESDF update]: Propagating %d updated blocks.", len(occ_blocks))

        for block_index in occ_blocks:
            occ_block = self.occ_layer.block(block_index)
            if occ_block is None:
                raise KeyError(f"no occupancy block at {block_index}")
            esdf_block = self.esdf_layer.allocate_block(block_index)

            for lin_index, (occ_voxel, esdf_voxel) in enumerate(
                zip(occ_block.voxels, esdf_block.voxels)
            ):
                if not occ_voxel.observed:
                    continue
                esdf_voxel.observed = True
                esdf_voxel.parent = (0, 0, 0)
                if occ_voxel.probability_log > 0.0:
                    esdf_voxel.distance = 0.0
                    esdf_voxel.fixed = True
                    esdf_voxel.in_queue = True
                    voxel_index = tuple(esdf_block.voxel_index_from_linear(lin_index))
                    self.open_queue.push((block_index, voxel_index), esdf_voxel.distance)
                    num_lower += 1
                else:
                    esdf_voxel.distance = config.default_distance_m
                    esdf_voxel.fixed = False
                    num_new += 1

        logger.debug("[ESDF update]: Lower: %d Raise: 0 New: %d", num_lower, num_new)
        self.process_open_set()

    def process_open_set(self) -> None:
        """Spread distances from queued voxels until the queue is empty."""
        config = self.config
        num_updates = 0
        while self.open_queue:
            block_index, voxel_index = self.open_queue.pop()
            esdf_block = self.esdf_layer.block(block_index)
            if esdf_block is None:
                raise LookupError(f"no ESDF block at {block_index}")
            voxel = esdf_block.voxel(voxel_index)

            if not voxel.observed or voxel.distance >= config.max_distance_m:
                voxel.in_queue = False
                continue

            for neighbor_key, unit_distance, direction in self.neighbors_and_distances(
                block_index, voxel_index
            ):
                neighbor_block_index, neighbor_voxel_index = neighbor_key
                if neighbor_block_index == block_index:
                    neighbor_block = esdf_block
                else:
                    neighbor_block = self.esdf_layer.block(neighbor_block_index)
                if neighbor_block is None:
                    continue
                if not neighbor_block.is_valid_voxel_index(neighbor_voxel_index):
                    raise IndexError(f"invalid neighbor voxel index {neighbor_voxel_index}")
                neighbor = neighbor_block.voxel(neighbor_voxel_index)
                if not neighbor.observed:
                    continue

                distance = unit_distance * self.voxel_size
                back = (-direction[0], -direction[1], -direction[2])

                if not neighbor.fixed and voxel.distance + distance < neighbor.distance:
                    neighbor.distance = voxel.distance + distance
                    neighbor.parent = back
                    # Only propagate further while below the maximum distance.
                    if neighbor.distance < config.max_distance_m and not neighbor.in_queue:
                        self.open_queue.push(neighbor_key, neighbor.distance)
                        neighbor.in_queue = True

                if neighbor.fixed and voxel.distance - distance > neighbor.distance:
                    neighbor.distance = voxel.distance - distance
                    neighbor.parent = back
                    if not neighbor.in_queue:
                        self.open_queue.push(neighbor_key, neighbor.distance)
                        neighbor.in_queue = True

            num_updates += 1
            voxel.in_queue = False

        logger.debug("[ESDF update]: made %d voxel updates.", num_updates)

    def neighbors_and_distances(
        self, block_index, voxel_index
    ) -> list[tuple[VoxelKey, float, GridIndex]]:
        """Return (neighbor key, distance in voxels, direction) for the 26 neighbors.

        The direction points from this voxel to the neighbor.
        """
        result = [
            (self.neighbor(block_index, voxel_index, direction), distance, direction)
            for direction, distance in _DIRECTIONS
        ]
        assert len(result) == _NUM_NEIGHBORS
        return result

    def neighbor(self, block_index, voxel_index, direction) -> VoxelKey:
        """Return (block index, voxel index) of the voxel one step along direction."""
        vps = self.voxels_per_side
        block = [int(c) for c in block_index]
        voxel = [int(v) + int(d) for v, d in zip(voxel_index, direction)]
        for axis in range(3):
            if voxel[axis] < 0:
                block[axis] -= 1
                voxel[axis] += vps
            elif voxel[axis] >= vps:
                block[axis] += 1
                voxel[axis] -= vps
        return (tuple(block), tuple(voxel))