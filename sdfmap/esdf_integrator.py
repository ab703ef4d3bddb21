"""Builds and incrementally maintains an ESDF layer from a TSDF layer."""

from __future__ import annotations

import dataclasses
import logging
import math
from typing import Iterable

import numpy as np

from sdfmap.esdf_propagation import EsdfIntegratorConfig, EsdfPropagator
from sdfmap.geometry import (
    GridIndex,
    block_index_from_global,
    center_point_from_grid_index,
    global_from_block_and_voxel,
    grid_index_from_point,
    local_from_global,
    signum,
)
from sdfmap.layer import EsdfVoxel, Layer, Update

logger = logging.getLogger(__name__)

_VOXEL_SIZE_TOLERANCE = 1e-6


class EsdfIntegrator:
    """Turns TSDF values into Euclidean signed distances by wavefront propagation."""

    def __init__(self, config: EsdfIntegratorConfig, tsdf_layer: Layer, esdf_layer: Layer):
        if tsdf_layer is None or esdf_layer is None:
            raise ValueError("tsdf_layer and esdf_layer must not be None")
        if esdf_layer.voxels_per_side != tsdf_layer.voxels_per_side:
            raise ValueError("TSDF and ESDF layers must have the same voxels per side")
        if abs(esdf_layer.voxel_size - tsdf_layer.voxel_size) > _VOXEL_SIZE_TOLERANCE:
            raise ValueError("TSDF and ESDF layers must have the same voxel size")
        self.config = dataclasses.replace(config)
        self.tsdf_layer = tsdf_layer
        self.esdf_layer = esdf_layer
        self.voxels_per_side = esdf_layer.voxels_per_side
        self.voxel_size = esdf_layer.voxel_size
        self.propagator = EsdfPropagator(self.config, esdf_layer)
        self.updated_blocks: set[GridIndex] = set()

    # Settings ---------------------------------------------------------------

    @property
    def max_distance(self) -> float:
        return self.config.max_distance_m

    def set_max_distance(self, max_distance: float) -> None:
        """Change the propagation limit, raising the default distance to match."""
        self.config.max_distance_m = max_distance
        if self.config.default_distance_m < max_distance:
            self.config.default_distance_m = max_distance

    @property
    def full_euclidean(self) -> bool:
        return self.config.full_euclidean_distance

    @full_euclidean.setter
    def full_euclidean(self, value: bool) -> None:
        self.config.full_euclidean_distance = bool(value)

    def clear(self) -> None:
        """Forget pending work, e.g. after robot-position clearing was used."""
        self.updated_blocks.clear()
        self.propagator.open_queue.clear()
        self.propagator.raise_queue.clear()

    # Robot position ---------------------------------------------------------

    def _sphere_around_point(self, position, radius: float) -> dict[GridIndex, list[GridIndex]]:
        """Voxels whose centers lie within radius of position, grouped by block.

        Blocks holding these voxels are allocated in the ESDF layer.
        """
        position = np.asarray(position, dtype=float).reshape(3)
        center = grid_index_from_point(position, 1.0 / self.voxel_size)
        reach = int(math.ceil(radius / self.voxel_size))
        span = range(-reach, reach + 1)
        result: dict[GridIndex, list[GridIndex]] = {}
        for dx in span:
            for dy in span:
                for dz in span:
                    index = (center[0] + dx, center[1] + dy, center[2] + dz)
                    voxel_center = center_point_from_grid_index(index, self.voxel_size)
                    if float(np.linalg.norm(voxel_center - position)) > radius:
                        continue
                    block_index = block_index_from_global(index, self.voxels_per_side)
                    result.setdefault(block_index, []).append(
                        local_from_global(index, self.voxels_per_side)
                    )
        for block_index in result:
            self.esdf_layer.allocate_block(block_index)
        return result

    def add_new_robot_position(self, position) -> None:
        """Mark unknown space near the robot: free in an inner sphere, occupied beyond.

        Voxels set this way are hallucinated and may later be overwritten.
        """
        config = self.config
        propagator = self.propagator

        for block_index, voxel_indices in self._sphere_around_point(
            position, config.clear_sphere_radius
        ).items():
            block = self.esdf_layer.block(block_index)
            for voxel_index in voxel_indices:
                voxel: EsdfVoxel = block.voxel(voxel_index)
                if voxel.observed and not voxel.hallucinated:
                    continue
                if voxel.hallucinated:
                    propagator.raise_queue.append(
                        global_from_block_and_voxel(
                            block_index, voxel_index, self.voxels_per_side
                        )
                    )
                voxel.distance = config.default_distance_m
                voxel.observed = True
                voxel.hallucinated = True
                voxel.parent = (0, 0, 0)
                self.updated_blocks.add(block_index)

        for block_index, voxel_indices in self._sphere_around_point(
            position, config.occupied_sphere_radius
        ).items():
            block = self.esdf_layer.block(block_index)
            for voxel_index in voxel_indices:
                voxel = block.voxel(voxel_index)
                if not voxel.observed:
                    voxel.distance = -config.default_distance_m
                    voxel.observed = True
                    voxel.hallucinated = True
                    voxel.parent = (0, 0, 0)
                    self.updated_blocks.add(block_index)
                elif not voxel.in_queue:
                    propagator.open_queue.push(
                        global_from_block_and_voxel(
                            block_index, voxel_index, self.voxels_per_side
                        ),
                        voxel.distance,
                    )

        logger.debug(
            "Changed %d blocks from unknown to free or occupied near the robot.",
            len(self.updated_blocks),
        )

    # Updates from the TSDF --------------------------------------------------

    def update_from_tsdf_layer_batch(self) -> None:
        """Rebuild the whole ESDF layer from the TSDF layer."""
        self.esdf_layer.remove_all_blocks()
        blocks = self.tsdf_layer.block_indices() + list(self.updated_blocks)
        self.updated_blocks.clear()
        self.update_from_tsdf_blocks(blocks)

    def update_from_tsdf_layer(self, clear_updated_flag: bool) -> None:
        """Update from TSDF blocks changed since the last ESDF update."""
        blocks = self.tsdf_layer.updated_block_indices(Update.ESDF) + list(self.updated_blocks)
        self.updated_blocks.clear()
        self.update_from_tsdf_blocks(blocks, incremental=True)
        if clear_updated_flag:
            for block_index in blocks:
                block = self.tsdf_layer.block(block_index)
                if block is not None:
                    block.updated.discard(Update.ESDF)

    def _enqueue(self, global_index: GridIndex, voxel: EsdfVoxel) -> None:
        voxel.in_queue = True
        self.propagator.open_queue.push(global_index, voxel.distance)

    def update_from_tsdf_blocks(self, tsdf_blocks: Iterable, incremental: bool = False) -> None:
        """Copy TSDF values of the given blocks into the ESDF and propagate."""
        if self.tsdf_layer.voxels_per_side != self.esdf_layer.voxels_per_side:
            raise ValueError("TSDF and ESDF layers must have the same voxels per side")
        config = self.config
        propagator = self.propagator
        raise_queue = propagator.raise_queue
        num_lower = num_raise = num_new = 0
        tsdf_blocks = [tuple(int(c) for c in index) for index in tsdf_blocks]
        logger.debug("[ESDF update]: Propagating %d updated blocks from the TSDF.", len(tsdf_blocks))

        for block_index in tsdf_blocks:
            tsdf_block = self.tsdf_layer.block(block_index)
            if tsdf_block is None:
                continue
            esdf_block = self.esdf_layer.allocate_block(block_index)
            esdf_block.updated.update(Update)

            for lin_index, (tsdf_voxel, esdf_voxel) in enumerate(
                zip(tsdf_block.voxels, esdf_block.voxels)
            ):
                if tsdf_voxel.weight < config.min_weight:
                    if not incremental and config.add_occupied_crust:
                        esdf_voxel.distance = -config.default_distance_m
                        esdf_voxel.observed = True
                        esdf_voxel.hallucinated = True
                        esdf_voxel.fixed = False
                    continue

                global_index = global_from_block_and_voxel(
                    block_index,
                    esdf_block.voxel_index_from_linear(lin_index),
                    self.voxels_per_side,
                )
                tsdf_distance = tsdf_voxel.distance
                tsdf_fixed = propagator.is_fixed(tsdf_distance)
                signed_default = signum(tsdf_distance) * config.default_distance_m

                if not esdf_voxel.observed or esdf_voxel.hallucinated:
                    if esdf_voxel.hallucinated:
                        raise_queue.append(global_index)
                    if tsdf_fixed:
                        esdf_voxel.distance = tsdf_distance
                        esdf_voxel.fixed = True
                        self._enqueue(global_index, esdf_voxel)
                    else:
                        esdf_voxel.distance = signed_default
                        esdf_voxel.fixed = False
                        if incremental and propagator.update_voxel_from_neighbors(global_index):
                            self._enqueue(global_index, esdf_voxel)
                    esdf_voxel.parent = (0, 0, 0)
                    num_new += 1
                elif tsdf_fixed or esdf_voxel.fixed:
                    esdf_distance = esdf_voxel.distance
                    if not tsdf_fixed:
                        # No longer in the fixed band: raise.
                        esdf_voxel.distance = signed_default
                        esdf_voxel.parent = (0, 0, 0)
                        esdf_voxel.fixed = False
                        raise_queue.append(global_index)
                        self._enqueue(global_index, esdf_voxel)
                        num_raise += 1
                    elif (
                        esdf_distance > 0.0
                        and tsdf_distance + config.min_diff_m < esdf_distance
                    ) or (
                        esdf_distance <= 0.0
                        and tsdf_distance - config.min_diff_m > esdf_distance
                    ):
                        # Closer to the surface than before: lower.
                        esdf_voxel.fixed = True
                        esdf_voxel.distance = tsdf_distance
                        esdf_voxel.parent = (0, 0, 0)
                        self._enqueue(global_index, esdf_voxel)
                        num_lower += 1
                    elif (
                        esdf_distance > 0.0
                        and tsdf_distance - config.min_diff_m > esdf_distance
                    ) or (
                        esdf_distance <= 0.0
                        and tsdf_distance + config.min_diff_m < esdf_distance
                    ):
                        # Further from the surface than before: raise.
                        esdf_voxel.fixed = True
                        esdf_voxel.distance = tsdf_distance
                        esdf_voxel.parent = (0, 0, 0)
                        raise_queue.append(global_index)
                        self._enqueue(global_index, esdf_voxel)
                        num_raise += 1
                elif signum(tsdf_distance) != signum(esdf_voxel.distance):
                    if tsdf_distance < esdf_voxel.distance:
                        esdf_voxel.distance = signed_default
                        esdf_voxel.parent = (0, 0, 0)
                        self._enqueue(global_index, esdf_voxel)
                        num_lower += 1
                    else:
                        esdf_voxel.distance = signed_default
                        esdf_voxel.parent = (0, 0, 0)
                        raise_queue.append(global_index)
                        num_raise += 1

                esdf_voxel.observed = True
                esdf_voxel.hallucinated = False

        logger.debug(
            "[ESDF update]: Lower: %d Raise: %d New: %d", num_lower, num_raise, num_new
        )
        propagator.process_raise_set()
        propagator.process_open_set()