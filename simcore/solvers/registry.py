"""Solver registry -- retrieve solver instances by exact name.

The registry is assembled once, when the engine is initialized, from a
fixed list of solver instances.  It never changes afterwards and does no
computation of its own::

    registry = SolverRegistry([FemSolver(), FdmSolver()])
    solver = registry.get_solver("FemSolver")
"""
from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Iterable, Iterator

from simcore.core.errors import PluginNotFound
from .base import Solver

logger = logging.getLogger(__name__)


class SolverRegistry:
    def __init__(self, solvers: Iterable[Solver]):
        table: dict = {}
        for solver in solvers:
            name = solver.name
            if name in table:
                raise ValueError(
                    f"Duplicate solver name {name!r} "
                    f"({type(table[name]).__name__} and {type(solver).__name__})"
                )
            table[name] = solver
        self._solvers = MappingProxyType(table)
        logger.info("Solver registry initialized: %s", ", ".join(table) or "(none)")

    def get_solver(self, name: str) -> Solver:
        """Return the solver whose ``name`` equals *name* exactly.

        Raises :class:`PluginNotFound` carrying the requested name.
        """
        try:
            return self._solvers[name]
        except KeyError:
            logger.warning(
                "No solver registered with name %r. Available solvers: %s",
                name, ", ".join(sorted(self._solvers)) or "(none)",
            )
            raise PluginNotFound(name) from None

    def names(self) -> list:
        return list(self._solvers)

    def list_solvers(self) -> list:
        """Metadata for all registered solvers, in registration order."""
        return [
            {
                "name": solver.name,
                "class": type(solver).__qualname__,
                "description": solver.describe(),
            }
            for solver in self._solvers.values()
        ]

    def __contains__(self, name: object) -> bool:
        return name in self._solvers

    def __len__(self) -> int:
        return len(self._solvers)

    def __iter__(self) -> Iterator[Solver]:
        return iter(self._solvers.values())
