"""Read and write meshes as JSON documents.

The document layout is :meth:`Mesh.to_dict`::

    {
      "nodes": [[x, y, z], ...],
      "elements": [[n0, n1, n2, n3], ...],
      "element_type": "Tetrahedron",
      "boundary_regions": {"face_x_neg": [0, 3, ...], ...}
    }
"""
from __future__ import annotations

import json
import logging
import os

from simcore.core.models import Mesh

logger = logging.getLogger(__name__)


def read_mesh_json(path: str) -> Mesh:
    """Load and validate a mesh written by :func:`write_mesh_json`.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If the document is not a valid mesh.
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Mesh file not found: {path!r}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            raw = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Mesh file {path!r} is not valid JSON: {exc}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Mesh file {path!r} must contain a JSON object")
    try:
        mesh = Mesh.from_dict(raw)
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Mesh file {path!r} is malformed: {exc}") from exc

    mesh.validate()
    logger.info(
        "Loaded %s mesh from %s: %d nodes, %d elements",
        mesh.element_type, path, mesh.n_nodes, mesh.n_elements,
    )
    return mesh


def write_mesh_json(mesh: Mesh, path: str) -> str:
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(mesh.to_dict(), f, indent=2)
    return path
