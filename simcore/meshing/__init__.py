"""Mesh producers: Gmsh for primitives and CAD files, JSON for stored meshes."""

from .mesh_io import read_mesh_json, write_mesh_json
from .producer import MeshProducer

__all__ = ["MeshProducer", "read_mesh_json", "write_mesh_json"]
