"""Mesh producer: geometry descriptor -> :class:`Mesh`.

``FileGeometry`` paths ending in ``.json`` are loaded as serialized meshes
and need no Gmsh.  Every other geometry goes through :class:`GmshMesher`,
which is imported on first use so the JSON path works without the ``gmsh``
package installed.
"""
from __future__ import annotations

import logging

from simcore.core.errors import MeshingFailed
from simcore.core.models import FileGeometry, Mesh, PrimitiveGeometry
from .mesh_io import read_mesh_json

logger = logging.getLogger(__name__)


class MeshProducer:
    def __init__(self, mesh_size: float = 0.25):
        self.mesh_size = float(mesh_size)

    def generate(self, geometry) -> Mesh:
        """Produce a mesh for *geometry*.

        Raises
        ------
        MeshingFailed
            With the underlying reason when the file cannot be read, the
            primitive is invalid, or Gmsh fails.
        """
        if isinstance(geometry, FileGeometry):
            if geometry.path.lower().endswith(".json"):
                try:
                    return read_mesh_json(geometry.path)
                except (OSError, ValueError) as exc:
                    raise MeshingFailed(str(exc)) from exc
            return self._with_gmsh(lambda mesher: mesher.mesh_file(geometry.path))

        if isinstance(geometry, PrimitiveGeometry):
            return self._with_gmsh(
                lambda mesher: mesher.mesh_primitive(geometry.shape, geometry.dimensions)
            )

        raise MeshingFailed(f"Unsupported geometry descriptor: {type(geometry).__name__}")

    def _with_gmsh(self, action) -> Mesh:
        try:
            from .gmsh_mesher import GmshMesher
        except (ImportError, OSError) as exc:
            raise MeshingFailed(f"Gmsh is not available: {exc}") from exc

        try:
            return action(GmshMesher(mesh_size=self.mesh_size))
        except MeshingFailed:
            raise
        except Exception as exc:
            # The Gmsh API reports every failure as a plain Exception.
            logger.warning("Gmsh meshing failed: %s", exc)
            raise MeshingFailed(str(exc)) from exc
