"""Solver abstraction layer -- uniform interface for all solver variants.

A solver is anything that exposes a stable ``name`` and a ``solve`` method
turning a fully prepared :class:`ProblemDefinition` (mesh attached, optional
processed equations attached) into a flat solution vector.

Bundled solvers:
  - ``DummySolver`` -- zero vector per node, for exercising the pipeline
  - ``FemSolver``   -- linear elasticity on tetrahedral meshes
  - ``FdmSolver``   -- 1-D steady-state heat conduction
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np

from simcore.core.errors import SolverFailed
from simcore.core.models import Mesh, ProblemDefinition


@dataclass
class SolverSolutionData:
    """Raw solver output.

    Length and meaning of ``data`` are solver specific:
    ``FemSolver`` returns one displacement per DOF (``3 * n_nodes``),
    ``FdmSolver`` one temperature per grid node, ``DummySolver`` one zero
    per mesh node.
    """
    data: np.ndarray

    def __post_init__(self) -> None:
        self.data = np.asarray(self.data, dtype=np.float64).reshape(-1)

    def to_dict(self) -> dict:
        return {"data": self.data.tolist()}


class Solver(ABC):
    """Base class for all solvers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable identifier used for registry lookup."""
        ...

    @abstractmethod
    def solve(self, problem: ProblemDefinition) -> SolverSolutionData:
        """Solve *problem*, raising :class:`SolverFailed` on any failure."""
        ...

    def describe(self) -> str:
        doc = (type(self).__doc__ or "").strip()
        return doc.splitlines()[0] if doc else ""

    @staticmethod
    def require_mesh(problem: ProblemDefinition) -> Mesh:
        if problem.mesh is None:
            raise SolverFailed("Mesh not found in problem definition")
        return problem.mesh

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
