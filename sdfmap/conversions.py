"""Conversions between map types and plain message-style values."""

from __future__ import annotations

import enum
import math
from typing import Sequence

import numpy as np

from sdfmap.layer import Color


class MapDeserializationAction(enum.IntEnum):
    """What to do with an existing layer when a serialized one arrives."""

    UPDATE = 0
    MERGE = 1
    RESET = 2


def color_to_unit(color: Color) -> tuple[float, float, float, float]:
    """Return the color as (r, g, b, a) floats in [0, 1]."""
    return (color.r / 255.0, color.g / 255.0, color.b / 255.0, color.a / 255.0)


def unit_to_color(rgba: Sequence[float]) -> Color:
    """Build a color from (r, g, b, a) floats in [0, 1]; channels are truncated."""
    values = tuple(float(c) for c in rgba)
    if len(values) != 4:
        raise ValueError("expected four channels (r, g, b, a)")
    if any(not 0.0 <= c <= 1.0 for c in values):
        raise ValueError("color channels must lie in [0, 1]")
    r, g, b, a = (int(c * 255.0) for c in values)
    return Color(r=r, g=g, b=b, a=a)


def is_point_finite(point) -> bool:
    """Whether all three coordinates of point are finite."""
    return all(math.isfinite(float(c)) for c in tuple(point)[:3])


def convert_pointcloud(points, colors: Sequence) -> tuple[np.ndarray, list]:
    """Drop points with non-finite coordinates, keeping colors aligned.

    Returns an (n, 3) array of points and the matching list of colors.
    """
    points = list(points)
    colors = list(colors)
    if len(points) != len(colors):
        raise ValueError(f"{len(points)} points but {len(colors)} colors were given")
    kept_points = []
    kept_colors = []
    for point, color in zip(points, colors):
        if not is_point_finite(point):
            continue
        x, y, z = (float(c) for c in tuple(point)[:3])
        kept_points.append((x, y, z))
        kept_colors.append(color)
    array = np.array(kept_points, dtype=float).reshape(-1, 3)
    return array, kept_colors