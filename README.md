# sdfmap

Sparse voxel maps and Euclidean signed distance fields (ESDF). Voxels are
stored in fixed-size blocks that are allocated on demand. Signed distances
can be propagated into an ESDF layer from a TSDF layer or from an occupancy
layer, and meshes can be written as ASCII PLY.

## Modules

- `sdfmap.layer`: the sparse grid. A `Layer` maps block indices to `Block`s,
  and each block holds voxels of one type: `TsdfVoxel`, `EsdfVoxel` or
  `OccupancyVoxel`. Blocks carry a set of `Update` flags (`MAP`, `MESH`,
  `ESDF`) that record which consumers have yet to see a change.
  `Color.blend` mixes two weighted RGBA colors.
- `sdfmap.geometry`: a rigid `Transformation` (rotation matrix plus
  translation) with `apply`, `inverse` and `position`, and the index helpers
  `grid_index_from_point`, `center_point_from_grid_index`,
  `block_index_from_global`, `local_from_global`,
  `global_from_block_and_voxel` and `signum`.
- `sdfmap.esdf_propagation`: `BucketQueue`, an approximate priority queue;
  `neighbors_of`, the 26-connected neighborhood; `EsdfIntegratorConfig`; and
  `EsdfPropagator`, which runs the raise and open queues over an ESDF layer,
  with quasi-Euclidean or full Euclidean distances.
- `sdfmap.esdf_integrator`: `EsdfIntegrator` copies TSDF values into the ESDF
  layer and propagates them, either as a batch rebuild
  (`update_from_tsdf_layer_batch`) or incrementally from blocks flagged
  `Update.ESDF` (`update_from_tsdf_layer`). `add_new_robot_position` marks
  unknown space near a position as free inside `clear_sphere_radius` and as
  occupied out to `occupied_sphere_radius`.
- `sdfmap.esdf_occ_integrator`: `EsdfOccIntegrator` builds an ESDF layer from
  an occupancy layer in batch; voxels with positive log-odds are treated as
  occupied and fixed at distance 0.
- `sdfmap.mesh_ply`: `Mesh` (vertices, optional normals and colors, triangle
  indices), `format_mesh_ply` returning the PLY text and `write_mesh_ply`
  writing it to a file.
- `sdfmap.conversions`: `color_to_unit` and `unit_to_color` convert between
  `Color` and floats in [0, 1]; `convert_pointcloud` drops non-finite points
  while keeping colors aligned; `MapDeserializationAction` names the
  update, merge and reset actions.

## Installation

```
pip install .
```

## Example

```python
from sdfmap.esdf_integrator import EsdfIntegrator
from sdfmap.esdf_propagation import EsdfIntegratorConfig
from sdfmap.layer import EsdfVoxel, Layer, TsdfVoxel
from sdfmap.mesh_ply import Mesh, write_mesh_ply

tsdf_layer = Layer(0.1, 8, TsdfVoxel)
block = tsdf_layer.allocate_block((0, 0, 0))
for voxel in block.voxels:
    voxel.distance = 0.1
    voxel.weight = 1.0
block.voxel((0, 0, 0)).distance = 0.0  # a surface voxel

esdf_layer = Layer(0.1, 8, EsdfVoxel)
esdf = EsdfIntegrator(EsdfIntegratorConfig(), tsdf_layer, esdf_layer)
esdf.update_from_tsdf_layer_batch()
print(esdf_layer.voxel_by_global_index((3, 0, 0)).distance)

mesh = Mesh(vertices=[(0, 0, 0), (1, 0, 0), (0, 1, 0)], indices=[0, 1, 2])
write_mesh_ply("triangle.ply", mesh)
```

## What it does not do

The package does not turn point clouds into maps: it has no ray casting and
no TSDF or occupancy integration of sensor data. TSDF and occupancy layers
must be filled by the caller, as in the example above. There is no mesh
extraction from a layer either; `sdfmap.mesh_ply` only writes a `Mesh` that
has already been built. Layers are kept in memory and are not saved to or
loaded from files.

## Running the tests

```
pip install .[test]
pytest
```