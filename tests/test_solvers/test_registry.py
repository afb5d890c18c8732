from __future__ import annotations

import numpy as np
import pytest

from simcore.core.errors import PluginNotFound
from simcore.solvers import DummySolver, FdmSolver, FemSolver, SolverRegistry


@pytest.fixture
def registry():
    return SolverRegistry([DummySolver(), FemSolver(), FdmSolver()])


class TestSolverRegistry:
    def test_lookup_by_exact_name(self, registry):
        assert isinstance(registry.get_solver("FemSolver"), FemSolver)
        assert isinstance(registry.get_solver("FdmSolver"), FdmSolver)
        assert isinstance(registry.get_solver("DummySolver"), DummySolver)

    def test_unknown_name(self, registry):
        with pytest.raises(PluginNotFound) as excinfo:
            registry.get_solver("femsolver")
        assert excinfo.value.name == "femsolver"
        assert len(registry) == 3
        assert registry.names() == ["DummySolver", "FemSolver", "FdmSolver"]

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError, match="Duplicate solver name"):
            SolverRegistry([FemSolver(), FemSolver()])

    def test_contains_and_iter(self, registry):
        assert "FdmSolver" in registry
        assert "Other" not in registry
        assert [s.name for s in registry] == registry.names()

    def test_list_solvers(self, registry):
        info = registry.list_solvers()
        assert [i["name"] for i in info] == ["DummySolver", "FemSolver", "FdmSolver"]
        assert info[0]["class"] == "DummySolver"
        assert info[0]["description"]

    def test_mapping_is_read_only(self, registry):
        with pytest.raises(TypeError):
            registry._solvers["X"] = DummySolver()


class TestDummySolver:
    def test_zero_per_node(self, make_problem, cube_mesh):
        result = DummySolver().solve(make_problem(mesh=cube_mesh))
        np.testing.assert_array_equal(result.data, np.zeros(8))
