"""Triangle meshes and their ASCII PLY representation."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from sdfmap.layer import Color


@dataclass
class Mesh:
    """Vertices with optional per-vertex normals and colors, and triangle indices."""

    vertices: list = field(default_factory=list)
    normals: list = field(default_factory=list)
    colors: list[Color] = field(default_factory=list)
    indices: list[int] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.vertices)

    @property
    def has_vertices(self) -> bool:
        return bool(self.vertices)

    @property
    def has_normals(self) -> bool:
        return bool(self.normals)

    @property
    def has_colors(self) -> bool:
        return bool(self.colors)

    @property
    def has_triangles(self) -> bool:
        return bool(self.indices)


def _fmt(value) -> str:
    return format(float(value), "g")


def format_mesh_ply(mesh: Mesh) -> str:
    """Return the mesh as the text of an ASCII PLY file."""
    num_points = len(mesh.vertices)
    if mesh.has_normals and len(mesh.normals) != num_points:
        raise ValueError("mesh has a different number of normals than vertices")
    if mesh.has_colors and len(mesh.colors) != num_points:
        raise ValueError("mesh has a different number of colors than vertices")
    if len(mesh.indices) % 3:
        raise ValueError("mesh indices do not form whole triangles")

    lines = ["ply", "format ascii 1.0", f"element vertex {num_points}"]
    lines += ["property float x", "property float y", "property float z"]
    if mesh.has_normals:
        lines += [
            "property float normal_x",
            "property float normal_y",
            "property float normal_z",
        ]
    if mesh.has_colors:
        lines += [
            "property uchar red",
            "property uchar green",
            "property uchar blue",
            "property uchar alpha",
        ]
    if mesh.has_triangles:
        lines.append(f"element face {len(mesh.indices) // 3}")
        # Deliberately "vertex_indices" rather than "vertex_index", for PCL.
        lines.append("property list uchar int vertex_indices")
    lines.append("end_header")

    for vert_idx, vertex in enumerate(mesh.vertices):
        parts = [_fmt(c) for c in tuple(vertex)[:3]]
        if mesh.has_normals:
            parts += [_fmt(c) for c in tuple(mesh.normals[vert_idx])[:3]]
        if mesh.has_colors:
            color = mesh.colors[vert_idx]
            parts += [str(int(color.r)), str(int(color.g)), str(int(color.b)), str(int(color.a))]
        lines.append(" ".join(parts))

    for start in range(0, len(mesh.indices), 3):
        triangle = mesh.indices[start : start + 3]
        lines.append("3 " + "".join(f"{int(i)} " for i in triangle))

    return "".join(line + "\n" for line in lines)


def write_mesh_ply(path: str | os.PathLike, mesh: Mesh) -> None:
    """Write the mesh to path as an ASCII PLY file."""
    text = format_mesh_ply(mesh)
    with open(path, "w", encoding="ascii", newline="\n") as stream:
        stream.write(text)