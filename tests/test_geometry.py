import math

import numpy as np
import pytest

from sdfmap.geometry import (
    Transformation,
    block_index_from_global,
    center_point_from_grid_index,
    global_from_block_and_voxel,
    grid_index_from_point,
    local_from_global,
    signum,
)


def _rotation_z(angle):
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


@pytest.mark.parametrize("value, expected", [(2.5, 1), (-0.1, -1), (0.0, 0)])
def test_signum(value, expected):
    assert signum(value) == expected


def test_transformation_round_trip():
    transform = Transformation(_rotation_z(0.7), [0.3, -1.2, 2.0])
    point = np.array([1.5, -0.25, 4.0])
    moved = transform.apply(point)
    assert np.allclose(transform.inverse().apply(moved), point)


def test_transformation_identity_and_position():
    identity = Transformation()
    point = np.array([0.1, 0.2, 0.3])
    assert np.allclose(identity.apply(point), point)
    transform = Transformation(_rotation_z(1.1), [4.0, 5.0, 6.0])
    assert np.allclose(transform.position(), [4.0, 5.0, 6.0])
    assert np.allclose(transform.apply([0.0, 0.0, 0.0]), transform.position())


def test_transformation_rejects_bad_rotation():
    with pytest.raises(ValueError):
        Transformation(np.eye(2))


def test_double_inverse_matches_original():
    transform = Transformation(_rotation_z(-2.0), [1.0, 2.0, 3.0])
    twice = transform.inverse().inverse()
    point = [0.5, 0.6, 0.7]
    assert np.allclose(twice.apply(point), transform.apply(point))


@pytest.mark.parametrize("index", [(0, 0, 0), (-3, 4, 7), (12, -1, -20)])
@pytest.mark.parametrize("grid_size", [0.1, 0.32, 1.0])
def test_center_point_round_trip(index, grid_size):
    center = center_point_from_grid_index(index, grid_size)
    assert grid_index_from_point(center, 1.0 / grid_size) == index


def test_grid_index_tolerates_tiny_undershoot():
    assert grid_index_from_point((1.0 - 1e-7, 2.0, 0.0)) == grid_index_from_point(
        (1.0, 2.0, 0.0)
    )


@pytest.mark.parametrize("global_index", [(0, 0, 0), (-1, -17, 33), (15, 16, -16)])
def test_block_and_local_round_trip(global_index):
    vps = 16
    block = block_index_from_global(global_index, vps)
    local = local_from_global(global_index, vps)
    assert all(0 <= c < vps for c in local)
    assert global_from_block_and_voxel(block, local, vps) == global_index