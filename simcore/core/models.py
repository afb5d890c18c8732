"""Core data models for SimCore."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import numpy as np


def _encode_float(value: float) -> Optional[float]:
    # Non-finite components are not valid JSON; write them as null.
    value = float(value)
    return value if math.isfinite(value) else None


def _decode_float(value: Any) -> float:
    return float("nan") if value is None else float(value)


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FileGeometry:
    """Geometry read from a file (CAD, Gmsh .geo/.msh or a serialized mesh)."""
    path: str

    @property
    def kind(self) -> str:
        return "file"

    def to_dict(self) -> dict:
        return {"kind": self.kind, "path": self.path}


@dataclass(frozen=True)
class PrimitiveGeometry:
    """A built-in shape, e.g. ``cube`` with ``[lx, ly, lz]``."""
    shape: str
    dimensions: tuple = ()

    @property
    def kind(self) -> str:
        return "primitive"

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "shape": self.shape,
            "dimensions": [float(d) for d in self.dimensions],
        }


GeometryDefinition = Union[FileGeometry, PrimitiveGeometry]


def geometry_from_dict(data: dict) -> GeometryDefinition:
    kind = data.get("kind")
    if kind == "file":
        return FileGeometry(path=str(data["path"]))
    if kind == "primitive":
        return PrimitiveGeometry(
            shape=str(data["shape"]),
            dimensions=tuple(float(d) for d in data.get("dimensions", [])),
        )
    raise ValueError(f"Unknown geometry kind: {kind!r}")


# ---------------------------------------------------------------------------
# Physics
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Material:
    youngs_modulus: float
    poissons_ratio: float

    def to_dict(self) -> dict:
        return {
            "youngs_modulus": float(self.youngs_modulus),
            "poissons_ratio": float(self.poissons_ratio),
        }


@dataclass(frozen=True)
class BoundaryCondition:
    """A condition applied to every node of a named mesh region.

    ``value`` has one component per spatial DOF.  For ``Dirichlet`` a NaN
    component leaves that axis unconstrained; for ``Force`` the components
    are nodal force contributions.
    """
    region: str
    condition_type: str
    value: tuple = (0.0, 0.0, 0.0)

    def to_dict(self) -> dict:
        return {
            "region": self.region,
            "condition_type": self.condition_type,
            "value": [_encode_float(v) for v in self.value],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BoundaryCondition":
        return cls(
            region=str(data["region"]),
            condition_type=str(data["condition_type"]),
            value=tuple(_decode_float(v) for v in data.get("value", [])),
        )


@dataclass
class ProcessedEquations:
    simplified_forms: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"simplified_forms": list(self.simplified_forms)}

    @classmethod
    def from_dict(cls, data: dict) -> "ProcessedEquations":
        return cls(simplified_forms=[str(s) for s in data.get("simplified_forms", [])])


@dataclass
class PhysicsDefinition:
    equations: list = field(default_factory=list)
    boundary_conditions: list = field(default_factory=list)
    material: Material = field(default_factory=lambda: Material(1.0, 0.0))
    processed_equations: Optional[ProcessedEquations] = None

    def to_dict(self) -> dict:
        return {
            "equations": list(self.equations),
            "boundary_conditions": [bc.to_dict() for bc in self.boundary_conditions],
            "material": self.material.to_dict(),
            "processed_equations": (
                self.processed_equations.to_dict() if self.processed_equations else None
            ),
        }


@dataclass(frozen=True)
class SolverSettings:
    """Solver selection.  ``parameters`` carries solver-specific inputs."""
    solver_name: str
    tolerance: float = 1e-5
    max_iterations: int = 10
    parameters: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "solver_name": self.solver_name,
            "tolerance": float(self.tolerance),
            "max_iterations": int(self.max_iterations),
            "parameters": dict(self.parameters),
        }


# ---------------------------------------------------------------------------
# Mesh
# ---------------------------------------------------------------------------

@dataclass
class Mesh:
    """Discretized simulation domain passed from the mesher to the solvers."""
    nodes: np.ndarray                  # (N, 3) coordinates
    elements: list                     # per-element node index lists
    element_type: str                  # "Tetrahedron", "Hexahedron", ...
    boundary_regions: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.nodes = np.asarray(self.nodes, dtype=np.float64).reshape(-1, 3)

    @property
    def n_nodes(self) -> int:
        return int(self.nodes.shape[0])

    @property
    def n_elements(self) -> int:
        return len(self.elements)

    def validate(self) -> None:
        """Raise ``ValueError`` if an element references a missing node."""
        n = self.n_nodes
        for idx, element in enumerate(self.elements):
            for node in element:
                if not 0 <= int(node) < n:
                    raise ValueError(
                        f"Element {idx} references node {node} but the mesh has {n} nodes"
                    )

    def to_dict(self) -> dict:
        return {
            "nodes": self.nodes.tolist(),
            "elements": [[int(n) for n in e] for e in self.elements],
            "element_type": self.element_type,
            "boundary_regions": {
                name: [int(n) for n in nodes]
                for name, nodes in self.boundary_regions.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Mesh":
        return cls(
            nodes=np.asarray(data.get("nodes", []), dtype=np.float64),
            elements=[[int(n) for n in e] for e in data.get("elements", [])],
            element_type=str(data["element_type"]),
            boundary_regions={
                str(name): [int(n) for n in nodes]
                for name, nodes in data.get("boundary_regions", {}).items()
            },
        )


# ---------------------------------------------------------------------------
# Problem and solution
# ---------------------------------------------------------------------------

@dataclass
class ProblemDefinition:
    id: str
    geometry: GeometryDefinition
    physics: PhysicsDefinition
    solver_settings: SolverSettings
    mesh: Optional[Mesh] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "geometry": self.geometry.to_dict(),
            "physics": self.physics.to_dict(),
            "solver_settings": self.solver_settings.to_dict(),
            "mesh": self.mesh.to_dict() if self.mesh is not None else None,
        }


@dataclass
class Solution:
    id: str
    mesh: Mesh
    processed_equations: Optional[ProcessedEquations]
    data: np.ndarray
    provenance_chain: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "mesh": self.mesh.to_dict(),
            "processed_equations": (
                self.processed_equations.to_dict() if self.processed_equations else None
            ),
            "data": np.asarray(self.data, dtype=np.float64).tolist(),
            "provenance_chain": [r.to_dict() for r in self.provenance_chain],
        }
