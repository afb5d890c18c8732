"""Placeholder solver used to exercise the pipeline end to end."""
from __future__ import annotations

import logging

import numpy as np

from simcore.core.models import ProblemDefinition
from .base import Solver, SolverSolutionData

logger = logging.getLogger(__name__)


class DummySolver(Solver):
    """Returns a zero value for every mesh node."""

    @property
    def name(self) -> str:
        return "DummySolver"

    def solve(self, problem: ProblemDefinition) -> SolverSolutionData:
        mesh = self.require_mesh(problem)
        processed = problem.physics.processed_equations
        if processed is not None:
            for form in processed.simplified_forms:
                logger.info("DummySolver received equation: %s", form)
        return SolverSolutionData(data=np.zeros(mesh.n_nodes, dtype=np.float64))
