"""Solver abstraction layer.

  - :class:`Solver`          -- abstract base class
  - :class:`SolverRegistry`  -- immutable name -> solver table
  - :class:`DummySolver`     -- zero vector per node (pipeline checks)
  - :class:`FemSolver`       -- linear elasticity on TET4 meshes
  - :class:`FdmSolver`       -- 1-D steady heat conduction
"""

from .base import Solver, SolverSolutionData
from .dummy_solver import DummySolver
from .fdm_solver import FdmSolver
from .fem_solver import FemSolver
from .registry import SolverRegistry

__all__ = [
    "DummySolver",
    "FdmSolver",
    "FemSolver",
    "Solver",
    "SolverRegistry",
    "SolverSolutionData",
]
