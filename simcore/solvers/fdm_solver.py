"""Finite Difference Method solver for 1-D steady-state heat conduction.

Solves ``d^2 T / dx^2 = 0`` on ``[0, length]`` with fixed end temperatures
using a uniform grid of ``num_nodes`` points:

- interior row i:  ``T[i-1] - 2 T[i] + T[i+1] = 0``
- boundary rows:   ``T[0] = left_temperature``,
                   ``T[n-1] = right_temperature``

The mesh attached to the problem only has to be present; the grid is
independent of it.  Per-problem inputs come from
``solver_settings.parameters`` and fall back to the constructor values.
"""
from __future__ import annotations

import logging
import math

import numpy as np
import scipy.sparse as sp

from simcore.core.errors import SolverFailed
from simcore.core.models import ProblemDefinition
from .base import Solver, SolverSolutionData
from .linalg import DEFAULT_DENSE_MAX_DOF, solve_linear_system

logger = logging.getLogger(__name__)

PARAMETER_NAMES = ("length", "num_nodes", "left_temperature", "right_temperature")


class FdmSolver(Solver):
    """1-D steady heat conduction; returns one temperature per grid node."""

    def __init__(
        self,
        length: float = 1.0,
        num_nodes: int = 11,
        left_temperature: float = 100.0,
        right_temperature: float = 0.0,
        dense_max_dof: int = DEFAULT_DENSE_MAX_DOF,
    ):
        self.length = float(length)
        self.num_nodes = int(num_nodes)
        self.left_temperature = float(left_temperature)
        self.right_temperature = float(right_temperature)
        self._dense_max_dof = int(dense_max_dof)

    @property
    def name(self) -> str:
        return "FdmSolver"

    def resolve_parameters(self, problem: ProblemDefinition) -> dict:
        """Merge per-problem overrides over the solver defaults."""
        params = {
            "length": self.length,
            "num_nodes": self.num_nodes,
            "left_temperature": self.left_temperature,
            "right_temperature": self.right_temperature,
        }
        overrides = problem.solver_settings.parameters or {}
        for key in PARAMETER_NAMES:
            if key in overrides:
                params[key] = overrides[key]

        try:
            params["length"] = float(params["length"])
            params["num_nodes"] = int(params["num_nodes"])
            params["left_temperature"] = float(params["left_temperature"])
            params["right_temperature"] = float(params["right_temperature"])
        except (TypeError, ValueError) as exc:
            raise SolverFailed(f"Invalid FDM parameter: {exc}") from exc

        if params["num_nodes"] < 2:
            raise SolverFailed(
                f"FDM grid needs at least 2 nodes, got {params['num_nodes']}"
            )
        if not (math.isfinite(params["length"]) and params["length"] > 0.0):
            raise SolverFailed(
                f"FDM domain length must be positive, got {params['length']}"
            )
        return params

    def solve(self, problem: ProblemDefinition) -> SolverSolutionData:
        self.require_mesh(problem)
        params = self.resolve_parameters(problem)
        n = params["num_nodes"]
        dx = params["length"] / (n - 1)

        A, b = self.assemble_system(n, params["left_temperature"], params["right_temperature"])
        T = solve_linear_system(A, b, label="FDM matrix", dense_max_dof=self._dense_max_dof)

        logger.info(
            "FDM solve for %r: %d nodes, dx = %.4g, T in [%.4g, %.4g]",
            problem.id, n, dx, float(T.min()), float(T.max()),
        )
        return SolverSolutionData(data=T)

    @staticmethod
    def assemble_system(
        n: int,
        left_temperature: float,
        right_temperature: float,
    ) -> tuple[sp.csr_matrix, np.ndarray]:
        """Build the ``n x n`` finite-difference matrix and right-hand side."""
        main = np.full(n, -2.0)
        lower = np.ones(n - 1)
        upper = np.ones(n - 1)

        # Boundary rows become identity rows.
        main[0] = 1.0
        main[-1] = 1.0
        upper[0] = 0.0
        lower[-1] = 0.0

        A = sp.diags([lower, main, upper], offsets=[-1, 0, 1], format="csr")

        b = np.zeros(n, dtype=np.float64)
        b[0] = left_temperature
        b[-1] = right_temperature
        return A, b
