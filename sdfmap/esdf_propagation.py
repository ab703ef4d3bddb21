"""Wavefront propagation of Euclidean signed distances through an ESDF layer."""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Hashable

from sdfmap.geometry import GridIndex, signum
from sdfmap.layer import EsdfVoxel, Layer

logger = logging.getLogger(__name__)

_SQRT2 = math.sqrt(2.0)
_SQRT3 = math.sqrt(3.0)

# The 26-connected neighborhood: 6 faces, then 12 edges, then 8 corners.
NEIGHBOR_OFFSETS: tuple[GridIndex, ...] = tuple(
    zip(
        (-1, 1, 0, 0, 0, 0, -1, -1, 1, 1, 0, 0, 0, 0, -1, 1, -1, 1,
         -1, -1, -1, -1, 1, 1, 1, 1),
        (0, 0, -1, 1, 0, 0, -1, 1, -1, 1, -1, -1, 1, 1, 0, 0, 0, 0,
         -1, -1, 1, 1, -1, -1, 1, 1),
        (0, 0, 0, 0, -1, 1, 0, 0, 0, 0, -1, 1, -1, 1, -1, -1, 1, 1,
         -1, 1, -1, 1, -1, 1, -1, 1),
    )
)
NEIGHBOR_DISTANCES: tuple[float, ...] = (1.0,) * 6 + (_SQRT2,) * 12 + (_SQRT3,) * 8


def neighbors_of(global_index) -> list[tuple[GridIndex, GridIndex, float]]:
    """Return (neighbor index, offset, distance in voxels) for all 26 neighbors."""
    x, y, z = (int(c) for c in global_index)
    return [
        ((x + dx, y + dy, z + dz), (dx, dy, dz), distance)
        for (dx, dy, dz), distance in zip(NEIGHBOR_OFFSETS, NEIGHBOR_DISTANCES)
    ]


class BucketQueue:
    """Approximate priority queue that sorts items into buckets by |value|.

    Items in the lowest non-empty bucket come out first, in insertion order.
    """

    def __init__(self, num_buckets: int, max_value: float):
        if num_buckets <= 0:
            raise ValueError("num_buckets must be positive")
        if max_value <= 0:
            raise ValueError("max_value must be positive")
        self.num_buckets = int(num_buckets)
        self.max_value = float(max_value)
        self._buckets: list[deque] = [deque() for _ in range(self.num_buckets)]
        self._lowest = self.num_buckets
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def __bool__(self) -> bool:
        return self._size > 0

    def push(self, item: Hashable, value: float) -> None:
        """Add item with priority value."""
        magnitude = min(abs(float(value)), self.max_value)
        bucket = int(math.floor(magnitude / self.max_value * (self.num_buckets - 1)))
        bucket = min(max(bucket, 0), self.num_buckets - 1)
        self._buckets[bucket].append(item)
        self._lowest = min(self._lowest, bucket)
        self._size += 1

    def pop(self):
        """Remove and return the first item of the lowest non-empty bucket."""
        if not self._size:
            raise IndexError("pop from an empty BucketQueue")
        while not self._buckets[self._lowest]:
            self._lowest += 1
        self._size -= 1
        return self._buckets[self._lowest].popleft()

    def clear(self) -> None:
        for bucket in self._buckets:
            bucket.clear()
        self._lowest = self.num_buckets
        self._size = 0


@dataclass
class EsdfIntegratorConfig:
    # Full Euclidean distances (slightly more accurate, slower) or quasi-Euclidean.
    full_euclidean_distance: bool = False
    # Distances above this are not computed; such voxels get default_distance_m.
    max_distance_m: float = 2.0
    # Should mirror, or be smaller than, the TSDF truncation distance.
    min_distance_m: float = 0.2
    default_distance_m: float = 2.0
    # Smallest change in a voxel distance that is propagated further.
    min_diff_m: float = 0.001
    # Minimum TSDF weight for a voxel to count as observed.
    min_weight: float = 1e-6
    num_buckets: int = 20
    # Push voxels to the open queue again each time their distance improves.
    multi_queue: bool = False
    # Mark unknown voxels in allocated blocks as occupied (batch updates only).
    add_occupied_crust: bool = False
    clear_sphere_radius: float = 1.5
    occupied_sphere_radius: float = 5.0


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _negate(index) -> GridIndex:
    return (-int(index[0]), -int(index[1]), -int(index[2]))


def _norm(index) -> float:
    return math.sqrt(sum(float(c) * float(c) for c in index))


class EsdfPropagator:
    """Holds the open and raise queues and spreads distances between voxels."""

    def __init__(self, config: EsdfIntegratorConfig, esdf_layer: Layer):
        if esdf_layer is None:
            raise ValueError("esdf_layer must not be None")
        self.config = config
        self.esdf_layer = esdf_layer
        self.voxel_size = esdf_layer.voxel_size
        self.voxels_per_side = esdf_layer.voxels_per_side
        self.open_queue = BucketQueue(config.num_buckets, config.max_distance_m)
        self.raise_queue: deque[GridIndex] = deque()

    def is_fixed(self, distance: float) -> bool:
        """Whether a distance lies in the band copied directly from the TSDF."""
        return abs(distance) < self.config.min_distance_m

    def _voxel(self, global_index) -> EsdfVoxel:
        voxel = self.esdf_layer.voxel_by_global_index(global_index)
        if voxel is None:
            raise LookupError(f"no ESDF voxel allocated at {tuple(global_index)}")
        return voxel

    def process_raise_set(self) -> None:
        """Invalidate every voxel whose distance came from a raised voxel."""
        num_updates = 0
        while self.raise_queue:
            global_index = self.raise_queue.popleft()
            self._voxel(global_index)
            for neighbor_index, direction, _ in neighbors_of(global_index):
                neighbor = self.esdf_layer.voxel_by_global_index(neighbor_index)
                if neighbor is None or not neighbor.observed or neighbor.fixed:
                    continue
                back = _negate(direction)
                if self.config.full_euclidean_distance:
                    norm = _norm(neighbor.parent)
                    unit = (
                        [float(c) / norm for c in neighbor.parent]
                        if norm > 0.0
                        else [0.0, 0.0, 0.0]
                    )
                    is_parent = tuple(_round_half_away(c) for c in unit) == back
                else:
                    is_parent = tuple(neighbor.parent) == back
                if is_parent:
                    neighbor.distance = (
                        signum(neighbor.distance) * self.config.default_distance_m
                    )
                    neighbor.parent = (0, 0, 0)
                    self.raise_queue.append(neighbor_index)
                elif not neighbor.in_queue:
                    self.open_queue.push(neighbor_index, neighbor.distance)
                    neighbor.in_queue = True
            num_updates += 1
        logger.debug("[ESDF update]: raised %d voxels.", num_updates)

    def _push_updated(self, neighbor_index: GridIndex, neighbor: EsdfVoxel) -> None:
        if self.config.multi_queue or not neighbor.in_queue:
            self.open_queue.push(neighbor_index, neighbor.distance)
            neighbor.in_queue = True

    def process_open_set(self) -> None:
        """Lower neighbor distances from queued voxels until the queue is empty."""
        config = self.config
        num_updates = num_inside = num_outside = num_flipped = 0

        while self.open_queue:
            global_index = self.open_queue.pop()
            voxel = self._voxel(global_index)
            voxel.in_queue = False

            if (
                not voxel.observed
                or voxel.distance >= config.max_distance_m
                or voxel.distance <= -config.max_distance_m
            ):
                continue

            for neighbor_index, direction, unit_distance in neighbors_of(global_index):
                distance = unit_distance * self.voxel_size
                neighbor = self.esdf_layer.voxel_by_global_index(neighbor_index)
                if neighbor is None or not neighbor.observed or neighbor.fixed:
                    continue

                new_parent = _negate(direction)
                if config.full_euclidean_distance:
                    # The neighbor inherits this voxel's parent.
                    new_parent = tuple(
                        int(p) - int(d) for p, d in zip(voxel.parent, direction)
                    )
                    distance = self.voxel_size * (_norm(new_parent) - _norm(voxel.parent))
                    if distance < 0.0:
                        continue

                if voxel.distance > 0 and neighbor.distance > 0:
                    if voxel.distance + distance + config.min_diff_m < neighbor.distance:
                        num_updates += 1
                        num_outside += 1
                        neighbor.distance = voxel.distance + distance
                        neighbor.parent = new_parent
                        self._push_updated(neighbor_index, neighbor)
                elif voxel.distance <= 0 and neighbor.distance <= 0:
                    if voxel.distance - distance - config.min_diff_m > neighbor.distance:
                        num_updates += 1
                        num_inside += 1
                        neighbor.distance = voxel.distance - distance
                        neighbor.parent = new_parent
                        self._push_updated(neighbor_index, neighbor)
                else:
                    potential = voxel.distance - signum(voxel.distance) * distance
                    if abs(potential - neighbor.distance) > distance:
                        num_updates += 1
                        num_flipped += 1
                        if signum(potential) == neighbor.distance:
                            neighbor.distance = potential
                        else:
                            neighbor.distance = signum(neighbor.distance) * distance
                        neighbor.parent = new_parent
                        self._push_updated(neighbor_index, neighbor)

        logger.debug(
            "[ESDF update]: made %d voxel updates, of which outside: %d inside: %d "
            "flipped: %d",
            num_updates,
            num_outside,
            num_inside,
            num_flipped,
        )

    def update_voxel_from_neighbors(self, global_index) -> bool:
        """Take a smaller same-signed distance from a neighbor; True if one was found."""
        config = self.config
        global_index = tuple(int(c) for c in global_index)
        voxel = self._voxel(global_index)
        for neighbor_index, _, distance in neighbors_of(global_index):
            neighbor = self.esdf_layer.voxel_by_global_index(neighbor_index)
            if neighbor is None:
                continue
            if (
                not neighbor.observed
                or neighbor.distance >= config.max_distance_m
                or neighbor.distance <= -config.max_distance_m
            ):
                continue
            if signum(neighbor.distance) == signum(voxel.distance) and abs(
                neighbor.distance
            ) < abs(voxel.distance):
                voxel.distance = neighbor.distance + signum(voxel.distance) * distance
                voxel.parent = tuple(g - n for g, n in zip(global_index, neighbor_index))
                return True
        return False