import itertools

import pytest

from sdfmap.esdf_propagation import (
    NEIGHBOR_DISTANCES,
    BucketQueue,
    EsdfIntegratorConfig,
    EsdfPropagator,
    neighbors_of,
)
from sdfmap.layer import EsdfVoxel, Layer

VOXEL_SIZE = 0.1
VPS = 8
CENTER = (4, 4, 4)


def make_layer(distance=2.0):
    layer = Layer(VOXEL_SIZE, VPS, EsdfVoxel)
    block = layer.allocate_block((0, 0, 0))
    for voxel in block.voxels:
        voxel.observed = True
        voxel.distance = distance
    return layer


def seed(propagator, index, distance):
    voxel = propagator.esdf_layer.voxel_by_global_index(index)
    voxel.distance = distance
    voxel.fixed = True
    voxel.in_queue = True
    propagator.open_queue.push(index, distance)
    return voxel


def all_indices():
    return itertools.product(range(VPS), repeat=3)


# BucketQueue ---------------------------------------------------------------


def test_bucket_queue_lowest_bucket_first():
    queue = BucketQueue(10, 2.0)
    queue.push("far", 1.9)
    queue.push("near", 0.0)
    queue.push("middle", 1.0)
    assert [queue.pop() for _ in range(3)] == ["near", "middle", "far"]


def test_bucket_queue_fifo_within_bucket_and_abs_value():
    queue = BucketQueue(5, 2.0)
    queue.push("a", 0.01)
    queue.push("b", -0.02)
    queue.push("c", 0.03)
    assert [queue.pop() for _ in range(3)] == ["a", "b", "c"]


def test_bucket_queue_clamps_large_values():
    queue = BucketQueue(4, 1.0)
    queue.push("huge", 100.0)
    queue.push("small", 0.1)
    assert len(queue) == 2
    assert queue.pop() == "small"
    assert queue.pop() == "huge"


def test_bucket_queue_clear_and_empty_pop():
    queue = BucketQueue(4, 1.0)
    queue.push((1, 2, 3), 0.5)
    queue.clear()
    assert not queue
    with pytest.raises(IndexError):
        queue.pop()


def test_bucket_queue_push_after_pop_lower_value():
    queue = BucketQueue(10, 1.0)
    queue.push("x", 0.9)
    queue.push("y", 0.9)
    assert queue.pop() == "x"
    queue.push("z", 0.0)
    assert queue.pop() == "z"
    assert queue.pop() == "y"


@pytest.mark.parametrize("buckets,max_value", [(0, 1.0), (5, 0.0)])
def test_bucket_queue_rejects_bad_parameters(buckets, max_value):
    with pytest.raises(ValueError):
        BucketQueue(buckets, max_value)


# neighbors_of ----------------------------------------------------------------


def test_neighbors_cover_26_distinct_cells():
    neighbors = neighbors_of((0, 0, 0))
    cells = {cell for cell, _, _ in neighbors}
    assert len(neighbors) == 26
    assert len(cells) == 26
    assert (0, 0, 0) not in cells
    assert cells == {
        c for c in itertools.product((-1, 0, 1), repeat=3) if c != (0, 0, 0)
    }


def test_neighbor_distances_match_offsets():
    for cell, offset, distance in neighbors_of((5, -3, 2)):
        assert tuple(c - o for c, o in zip(cell, offset)) == (5, -3, 2)
        assert distance == pytest.approx(sum(o * o for o in offset) ** 0.5)
    assert NEIGHBOR_DISTANCES[:6] == (1.0,) * 6


# EsdfPropagator --------------------------------------------------------------


def test_is_fixed():
    propagator = EsdfPropagator(EsdfIntegratorConfig(min_distance_m=0.2), make_layer())
    assert propagator.is_fixed(0.1)
    assert propagator.is_fixed(-0.1)
    assert not propagator.is_fixed(0.2)
    assert not propagator.is_fixed(-1.0)


def test_open_set_outside_propagation():
    layer = make_layer()
    propagator = EsdfPropagator(EsdfIntegratorConfig(), layer)
    seed(propagator, CENTER, 0.0)
    propagator.process_open_set()

    face = layer.voxel_by_global_index((5, 4, 4))
    assert face.distance == pytest.approx(VOXEL_SIZE)
    assert face.parent == (-1, 0, 0)
    assert layer.voxel_by_global_index((3, 4, 4)).distance == pytest.approx(face.distance)
    assert not propagator.open_queue

    for index in all_indices():
        voxel = layer.voxel_by_global_index(index)
        assert not voxel.in_queue
        if index == CENTER:
            assert voxel.distance == 0.0
            continue
        assert 0.0 < voxel.distance < 2.0
        parent_index = tuple(i + p for i, p in zip(index, voxel.parent))
        assert layer.voxel_by_global_index(parent_index).distance < voxel.distance


def test_open_set_inside_propagation():
    layer = make_layer(distance=-2.0)
    propagator = EsdfPropagator(EsdfIntegratorConfig(), layer)
    seed(propagator, CENTER, -0.05)
    propagator.process_open_set()
    assert layer.voxel_by_global_index((4, 5, 4)).distance == pytest.approx(-0.15)
    for index in all_indices():
        assert layer.voxel_by_global_index(index).distance <= -0.05


def test_open_set_skips_voxels_beyond_max_distance():
    layer = make_layer()
    propagator = EsdfPropagator(EsdfIntegratorConfig(max_distance_m=2.0), layer)
    seed(propagator, CENTER, 2.0)
    propagator.process_open_set()
    assert layer.voxel_by_global_index((5, 4, 4)).distance == 2.0
    assert layer.voxel_by_global_index(CENTER).in_queue is False


def test_open_set_does_not_touch_unobserved_or_fixed():
    layer = make_layer()
    layer.voxel_by_global_index((5, 4, 4)).observed = False
    blocked = layer.voxel_by_global_index((3, 4, 4))
    blocked.fixed = True
    propagator = EsdfPropagator(EsdfIntegratorConfig(), layer)
    seed(propagator, CENTER, 0.0)
    propagator.process_open_set()
    assert layer.voxel_by_global_index((5, 4, 4)).distance == 2.0
    assert blocked.distance == 2.0


def test_open_set_full_euclidean():
    layer = make_layer()
    config = EsdfIntegratorConfig(full_euclidean_distance=True)
    propagator = EsdfPropagator(config, layer)
    seed(propagator, CENTER, 0.0)
    propagator.process_open_set()
    face = layer.voxel_by_global_index((4, 4, 5))
    assert face.distance == pytest.approx(VOXEL_SIZE)
    assert face.parent == (0, 0, -1)


def test_raise_set_resets_children():
    layer = make_layer()
    config = EsdfIntegratorConfig()
    propagator = EsdfPropagator(config, layer)
    source = seed(propagator, CENTER, 0.0)
    propagator.process_open_set()

    source.fixed = False
    source.distance = config.default_distance_m
    propagator.raise_queue.append(CENTER)
    propagator.process_raise_set()

    face = layer.voxel_by_global_index((5, 4, 4))
    assert face.distance == config.default_distance_m
    assert face.parent == (0, 0, 0)
    assert not propagator.raise_queue


def test_raise_set_missing_voxel_raises():
    propagator = EsdfPropagator(EsdfIntegratorConfig(), make_layer())
    propagator.raise_queue.append((100, 100, 100))
    with pytest.raises(LookupError):
        propagator.process_raise_set()


def test_update_voxel_from_neighbors():
    layer = make_layer()
    layer.voxel_by_global_index((5, 4, 4)).distance = 0.5
    propagator = EsdfPropagator(EsdfIntegratorConfig(), layer)
    assert propagator.update_voxel_from_neighbors(CENTER)
    voxel = layer.voxel_by_global_index(CENTER)
    assert voxel.distance < 2.0
    assert voxel.distance > 0.5
    neighbor = tuple(c - p for c, p in zip(CENTER, voxel.parent))
    assert neighbor == (5, 4, 4)


def test_update_voxel_from_neighbors_no_better_neighbor():
    layer = make_layer(distance=1.0)
    propagator = EsdfPropagator(EsdfIntegratorConfig(), layer)
    assert propagator.update_voxel_from_neighbors(CENTER) is False
    assert layer.voxel_by_global_index(CENTER).distance == 1.0


def test_update_voxel_from_neighbors_missing_voxel():
    propagator = EsdfPropagator(EsdfIntegratorConfig(), make_layer())
    with pytest.raises(LookupError):
        propagator.update_voxel_from_neighbors((-50, 0, 0))


def test_propagator_requires_layer():
    with pytest.raises(ValueError):
        EsdfPropagator(EsdfIntegratorConfig(), None)