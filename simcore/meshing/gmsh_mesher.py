"""Gmsh-based tetrahedral mesher.

Generates linear tetrahedral (TET4) meshes with the Gmsh Python API and
the OpenCASCADE (OCC) kernel, either from a built-in primitive or from a
geometry file (``.geo``, ``.step``/``.stp``, ``.brep``, ``.iges``/``.igs``,
or an existing ``.msh``).

Boundary regions attached to the mesh:

- every named physical surface group, under its own name;
- the six bounding-box faces ``face_{x,y,z}_{neg,pos}``: nodes lying on
  the minimum / maximum coordinate plane of each axis.
"""
from __future__ import annotations

import logging
import os

import gmsh
import numpy as np

from simcore.core.models import Mesh

logger = logging.getLogger(__name__)

# Gmsh element type code for the 4-node tetrahedron
_GMSH_TET4 = 4

# Relative tolerance (of the bounding-box extent) for face detection
_FACE_RTOL = 1e-6

_CAD_EXTENSIONS = (".step", ".stp", ".brep", ".iges", ".igs")
_GMSH_EXTENSIONS = (".geo", ".msh")

TETRAHEDRON = "Tetrahedron"


class GmshMesher:
    """Generate TET4 meshes for primitives and geometry files."""

    # shape name -> number of dimensions expected
    PRIMITIVES: dict[str, int] = {
        "cube": 3,      # [lx, ly, lz]
        "cylinder": 2,  # [radius, height]
    }

    def __init__(self, mesh_size: float = 0.25):
        if not mesh_size > 0.0:
            raise ValueError(f"mesh_size must be positive, got {mesh_size}")
        self.mesh_size = float(mesh_size)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def mesh_primitive(self, shape: str, dimensions) -> Mesh:
        """Mesh a built-in primitive.

        Parameters
        ----------
        shape : str
            ``"cube"`` (box with a corner at the origin) or ``"cylinder"``
            (axis along +Z, base at z = 0).
        dimensions : sequence of float
            ``[lx, ly, lz]`` for a cube (a single value gives equal
            edges), ``[radius, height]`` for a cylinder.

        Raises
        ------
        ValueError
            If the shape is unknown or the dimensions are invalid.
        RuntimeError
            If Gmsh produces no tetrahedra.
        """
        dims = self._validate_primitive(shape, dimensions)

        gmsh.initialize(interruptible=False)
        try:
            gmsh.option.setNumber("General.Terminal", 0)
            gmsh.model.add(shape)

            if shape == "cube":
                gmsh.model.occ.addBox(0.0, 0.0, 0.0, dims[0], dims[1], dims[2])
            else:
                radius, height = dims
                gmsh.model.occ.addCylinder(0.0, 0.0, 0.0, 0.0, 0.0, height, radius)
            gmsh.model.occ.synchronize()

            entities = gmsh.model.getEntities(0)
            gmsh.model.mesh.setSize(entities, self.mesh_size)
            gmsh.model.mesh.generate(3)

            return self._build_mesh(label=f"{shape} {list(dims)}")
        finally:
            gmsh.finalize()

    def mesh_file(self, path: str) -> Mesh:
        """Import a geometry or mesh file and return its tetrahedral mesh.

        Raises
        ------
        FileNotFoundError
            If *path* does not exist.
        ValueError
            If the extension is unsupported or the file cannot be read.
        RuntimeError
            If meshing fails or yields no tetrahedra.
        """
        ext = self._validate_file(path)

        gmsh.initialize(interruptible=False)
        try:
            gmsh.option.setNumber("General.Terminal", 0)
            gmsh.option.setNumber("Mesh.MeshSizeMax", self.mesh_size)

            if ext in _CAD_EXTENSIONS:
                gmsh.model.add("cad_import")
                try:
                    shapes = gmsh.model.occ.importShapes(path)
                except Exception as exc:
                    raise ValueError(f"Failed to import {path!r}: {exc}") from exc
                if not shapes:
                    raise ValueError(f"No shapes found in {path!r}")
                gmsh.model.occ.synchronize()
            else:
                try:
                    gmsh.open(path)
                except Exception as exc:
                    raise ValueError(f"Failed to open {path!r}: {exc}") from exc

            if not self._has_tetrahedra():
                gmsh.model.mesh.generate(3)

            return self._build_mesh(label=os.path.basename(path))
        finally:
            gmsh.finalize()

    # ------------------------------------------------------------------
    # Mesh data extraction helpers
    # ------------------------------------------------------------------

    def _build_mesh(self, label: str) -> Mesh:
        node_tags, coords = self._extract_nodes()
        tets = self._extract_tetrahedra()

        tag_to_idx = self._build_tag_map(node_tags)
        elements = tag_to_idx[tets]
        if np.any(elements < 0):
            raise RuntimeError("Volume element references unmapped node tag")

        regions = self._physical_surface_regions(tag_to_idx)
        regions.update(self._bounding_box_regions(coords))

        mesh = Mesh(
            nodes=coords,
            elements=elements.tolist(),
            element_type=TETRAHEDRON,
            boundary_regions={name: idx.tolist() for name, idx in regions.items()},
        )
        mesh.validate()
        logger.info(
            "Generated TET4 mesh for %s: %d nodes, %d elements, %d regions",
            label, mesh.n_nodes, mesh.n_elements, len(mesh.boundary_regions),
        )
        return mesh

    @staticmethod
    def _extract_nodes() -> tuple[np.ndarray, np.ndarray]:
        """Return (node_tags, coordinates) from the Gmsh model."""
        node_tags, coord_flat, _ = gmsh.model.mesh.getNodes()
        node_tags = np.asarray(node_tags, dtype=np.int64)
        coords = np.asarray(coord_flat, dtype=np.float64).reshape(-1, 3)
        return node_tags, coords

    @staticmethod
    def _has_tetrahedra() -> bool:
        elem_types, _, _ = gmsh.model.mesh.getElements(dim=3)
        return any(int(t) == _GMSH_TET4 for t in elem_types)

    @staticmethod
    def _extract_tetrahedra() -> np.ndarray:
        """Connectivity of all TET4 elements, shape (E, 4), in Gmsh tags."""
        elem_types, _, elem_nodes = gmsh.model.mesh.getElements(dim=3)
        for i, etype in enumerate(elem_types):
            if int(etype) == _GMSH_TET4:
                return np.asarray(elem_nodes[i], dtype=np.int64).reshape(-1, 4)
        raise RuntimeError("No TET4 elements found in mesh")

    @staticmethod
    def _build_tag_map(node_tags: np.ndarray) -> np.ndarray:
        """Mapping array where ``result[gmsh_tag] = 0-based index``."""
        max_tag = int(node_tags.max()) if node_tags.size else 0
        tag_to_idx = np.full(max_tag + 1, -1, dtype=np.int64)
        tag_to_idx[node_tags] = np.arange(node_tags.size, dtype=np.int64)
        return tag_to_idx

    @staticmethod
    def _physical_surface_regions(tag_to_idx: np.ndarray) -> dict[str, np.ndarray]:
        """Node sets of every named 2-D physical group."""
        regions: dict[str, np.ndarray] = {}
        for dim, tag in gmsh.model.getPhysicalGroups(dim=2):
            name = gmsh.model.getPhysicalName(dim, tag)
            if not name:
                continue
            ntags, _ = gmsh.model.mesh.getNodesForPhysicalGroup(dim, tag)
            idx = tag_to_idx[np.asarray(ntags, dtype=np.int64)]
            regions[name] = np.unique(idx[idx >= 0])
        return regions

    @staticmethod
    def _bounding_box_regions(coords: np.ndarray) -> dict[str, np.ndarray]:
        """Nodes on the min / max plane of each axis."""
        regions: dict[str, np.ndarray] = {}
        if coords.size == 0:
            return regions
        lo = coords.min(axis=0)
        hi = coords.max(axis=0)
        tol = _FACE_RTOL * max(float((hi - lo).max()), 1.0)
        for axis, name in enumerate("xyz"):
            values = coords[:, axis]
            regions[f"face_{name}_neg"] = np.where(np.abs(values - lo[axis]) <= tol)[0]
            regions[f"face_{name}_pos"] = np.where(np.abs(values - hi[axis]) <= tol)[0]
        return regions

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_primitive(self, shape: str, dimensions) -> tuple:
        if shape not in self.PRIMITIVES:
            raise ValueError(
                f"Unsupported primitive {shape!r}. "
                f"Must be one of {tuple(self.PRIMITIVES)}."
            )
        dims = tuple(float(d) for d in dimensions)
        if shape == "cube" and len(dims) == 1:
            dims = dims * 3
        expected = self.PRIMITIVES[shape]
        if len(dims) != expected:
            raise ValueError(
                f"Primitive {shape!r} needs {expected} dimensions, got {len(dims)}"
            )
        if not all(np.isfinite(d) and d > 0.0 for d in dims):
            raise ValueError(f"Primitive {shape!r} dimensions must be positive: {list(dims)}")
        return dims

    @staticmethod
    def _validate_file(path: str) -> str:
        if not os.path.isfile(path):
            raise FileNotFoundError(f"Geometry file not found: {path!r}")
        ext = os.path.splitext(path)[1].lower()
        if ext not in _CAD_EXTENSIONS + _GMSH_EXTENSIONS:
            raise ValueError(
                f"Unsupported geometry file extension {ext!r}. "
                f"Expected one of {_CAD_EXTENSIONS + _GMSH_EXTENSIONS}."
            )
        return ext
