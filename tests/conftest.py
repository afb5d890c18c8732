"""Shared fixtures: small hand-built tetrahedral meshes and problem factories."""
from __future__ import annotations

import numpy as np
import pytest

from simcore.core.models import (
    BoundaryCondition,
    FileGeometry,
    Material,
    Mesh,
    PhysicsDefinition,
    ProblemDefinition,
    SolverSettings,
)
from simcore.meshing import write_mesh_json


def _unit_cube_mesh() -> Mesh:
    # Node index i = x + 2y + 4z on the unit cube corners.
    nodes = np.array(
        [[i & 1, (i >> 1) & 1, (i >> 2) & 1] for i in range(8)], dtype=np.float64
    )
    # Kuhn decomposition along the 0-7 diagonal.
    elements = [
        [0, 1, 3, 7],
        [0, 1, 5, 7],
        [0, 2, 3, 7],
        [0, 2, 6, 7],
        [0, 4, 5, 7],
        [0, 4, 6, 7],
    ]
    return Mesh(
        nodes=nodes,
        elements=elements,
        element_type="Tetrahedron",
        boundary_regions={
            "face_x_neg": [0, 2, 4, 6],
            "face_x_pos": [1, 3, 5, 7],
            "all": list(range(8)),
        },
    )


@pytest.fixture
def single_tet_mesh():
    return Mesh(
        nodes=np.array([
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [0.0, 1.0, 0.0],
            [0.0, 0.0, 1.0],
        ]),
        elements=[[0, 1, 2, 3]],
        element_type="Tetrahedron",
        boundary_regions={"base": [0, 1, 2], "tip": [3], "all": [0, 1, 2, 3]},
    )


@pytest.fixture
def cube_mesh():
    return _unit_cube_mesh()


@pytest.fixture
def cube_mesh_file(tmp_path):
    path = tmp_path / "cube_mesh.json"
    write_mesh_json(_unit_cube_mesh(), str(path))
    return str(path)


@pytest.fixture
def make_problem():
    """Factory building a ProblemDefinition with sensible defaults."""

    def _make(
        solver_name="DummySolver",
        geometry=None,
        equations=None,
        boundary_conditions=None,
        material=None,
        mesh=None,
        parameters=None,
        problem_id="test-problem",
    ):
        return ProblemDefinition(
            id=problem_id,
            geometry=geometry if geometry is not None else FileGeometry(path="unused.json"),
            physics=PhysicsDefinition(
                equations=list(equations or []),
                boundary_conditions=list(boundary_conditions or []),
                material=material or Material(youngs_modulus=200.0, poissons_ratio=0.3),
            ),
            solver_settings=SolverSettings(
                solver_name=solver_name, parameters=dict(parameters or {}),
            ),
            mesh=mesh,
        )

    return _make


@pytest.fixture
def cantilever_conditions():
    return [
        BoundaryCondition("face_x_neg", "Dirichlet", (0.0, 0.0, 0.0)),
        BoundaryCondition("face_x_pos", "Force", (1.0, 0.0, 0.0)),
    ]
