"""Sparse voxel layers, ESDF propagation from TSDF or occupancy layers, and PLY mesh output."""

__version__ = "0.1.0"

__all__ = [
    "conversions",
    "esdf_integrator",
    "esdf_occ_integrator",
    "esdf_propagation",
    "geometry",
    "layer",
    "mesh_ply",
]