from __future__ import annotations

import numpy as np
import pytest

from simcore.core.errors import SolverFailed
from simcore.core.models import BoundaryCondition, Material, Mesh
from simcore.solvers.fem_solver import FemSolver, dof_index

NAN = float("nan")


class TestDofIndex:
    def test_layout(self):
        assert dof_index(0, 0) == 0
        assert dof_index(2, 1) == 7
        assert dof_index(5, 2) == 17


class TestAssembly:
    def test_shape_and_symmetry(self, cube_mesh):
        K = FemSolver().assemble_stiffness(cube_mesh, Material(200.0, 0.3))
        assert K.shape == (24, 24)
        dense = K.toarray()
        np.testing.assert_allclose(dense, dense.T, atol=1e-12 * np.abs(dense).max())

    def test_rigid_translation_in_null_space(self, cube_mesh):
        K = FemSolver().assemble_stiffness(cube_mesh, Material(1.0, 0.25))
        for c in range(3):
            u = np.zeros(24)
            u[c::3] = 1.0
            np.testing.assert_allclose(K @ u, 0.0, atol=1e-12)

    def test_shared_nodes_accumulate(self, single_tet_mesh):
        solver = FemSolver()
        material = Material(1.0, 0.25)
        K1 = solver.assemble_stiffness(single_tet_mesh, material).toarray()
        doubled = Mesh(
            nodes=single_tet_mesh.nodes,
            elements=[[0, 1, 2, 3], [0, 1, 2, 3]],
            element_type="Tetrahedron",
        )
        K2 = solver.assemble_stiffness(doubled, material).toarray()
        np.testing.assert_allclose(K2, 2.0 * K1)

    def test_scales_with_youngs_modulus(self, single_tet_mesh):
        solver = FemSolver()
        Ka = solver.assemble_stiffness(single_tet_mesh, Material(1.0, 0.3)).toarray()
        Kb = solver.assemble_stiffness(single_tet_mesh, Material(10.0, 0.3)).toarray()
        np.testing.assert_allclose(Kb, 10.0 * Ka)


class TestBoundaryConditions:
    def test_dirichlet_nan_component_left_free(self, single_tet_mesh):
        bcs = [BoundaryCondition("base", "Dirichlet", (0.0, NAN, 0.5))]
        F, prescribed = FemSolver.apply_boundary_conditions(single_tet_mesh, bcs)
        assert np.all(F == 0.0)
        for node in (0, 1, 2):
            assert prescribed[dof_index(node, 0)] == 0.0
            assert dof_index(node, 1) not in prescribed
            assert prescribed[dof_index(node, 2)] == 0.5

    def test_forces_accumulate(self, single_tet_mesh):
        bcs = [
            BoundaryCondition("tip", "Force", (1.0, 2.0, 3.0)),
            BoundaryCondition("tip", "Force", (1.0, 0.0, -1.0)),
        ]
        F, prescribed = FemSolver.apply_boundary_conditions(single_tet_mesh, bcs)
        np.testing.assert_allclose(F[9:12], [2.0, 2.0, 2.0])
        assert prescribed == {}

    def test_later_dirichlet_wins(self, single_tet_mesh):
        bcs = [
            BoundaryCondition("tip", "Dirichlet", (1.0, 1.0, 1.0)),
            BoundaryCondition("tip", "Dirichlet", (2.0, NAN, NAN)),
        ]
        _, prescribed = FemSolver.apply_boundary_conditions(single_tet_mesh, bcs)
        assert prescribed[dof_index(3, 0)] == 2.0
        assert prescribed[dof_index(3, 1)] == 1.0

    def test_unknown_region_inert(self, single_tet_mesh):
        bcs = [BoundaryCondition("nowhere", "Force", (5.0, 5.0, 5.0))]
        F, prescribed = FemSolver.apply_boundary_conditions(single_tet_mesh, bcs)
        assert not F.any()
        assert prescribed == {}

    def test_unsupported_type(self, single_tet_mesh):
        bcs = [BoundaryCondition("tip", "Pressure", (1.0, 0.0, 0.0))]
        with pytest.raises(SolverFailed, match="Unsupported boundary condition type: Pressure"):
            FemSolver.apply_boundary_conditions(single_tet_mesh, bcs)

    def test_wrong_component_count(self, single_tet_mesh):
        bcs = [BoundaryCondition("tip", "Force", (1.0, 0.0))]
        with pytest.raises(SolverFailed, match="3 components"):
            FemSolver.apply_boundary_conditions(single_tet_mesh, bcs)

    @pytest.mark.parametrize("bad", [NAN, float("inf")])
    def test_non_finite_force_component(self, single_tet_mesh, bad):
        bcs = [BoundaryCondition("tip", "Force", (0.0, bad, 0.0))]
        with pytest.raises(SolverFailed, match="Force on region 'tip' has non-finite component y"):
            FemSolver.apply_boundary_conditions(single_tet_mesh, bcs)

    def test_region_node_out_of_range(self, single_tet_mesh):
        single_tet_mesh.boundary_regions["bad"] = [0, 12]
        bcs = [BoundaryCondition("bad", "Dirichlet", (0.0, 0.0, 0.0))]
        with pytest.raises(SolverFailed, match="node 12"):
            FemSolver.apply_boundary_conditions(single_tet_mesh, bcs)

    def test_elimination_zeroes_row_and_column(self, single_tet_mesh):
        solver = FemSolver()
        K = solver.assemble_stiffness(single_tet_mesh, Material(1.0, 0.25))
        F = np.arange(12, dtype=np.float64)
        K_bc, F_bc = solver.eliminate_prescribed(K, F, {0: 0.25, 7: -1.0})
        dense = K_bc.toarray()
        original = K.toarray()
        for d, v in ((0, 0.25), (7, -1.0)):
            expected = np.zeros(12)
            expected[d] = 1.0
            np.testing.assert_array_equal(dense[d, :], expected)
            np.testing.assert_array_equal(dense[:, d], expected)
            assert F_bc[d] == v
        free = [i for i in range(12) if i not in (0, 7)]
        np.testing.assert_allclose(dense[np.ix_(free, free)], original[np.ix_(free, free)])
        np.testing.assert_array_equal(F_bc[free], F[free])


class TestFemSolve:
    def test_fully_fixed_gives_zero(self, make_problem, cube_mesh):
        problem = make_problem(
            "FemSolver",
            mesh=cube_mesh,
            boundary_conditions=[BoundaryCondition("all", "Dirichlet", (0.0, 0.0, 0.0))],
        )
        result = FemSolver().solve(problem)
        assert result.data.shape == (24,)
        np.testing.assert_array_equal(result.data, np.zeros(24))

    def test_prescribed_values_returned(self, make_problem, single_tet_mesh):
        problem = make_problem(
            "FemSolver",
            mesh=single_tet_mesh,
            boundary_conditions=[BoundaryCondition("all", "Dirichlet", (0.1, -0.2, 0.3))],
        )
        result = FemSolver().solve(problem)
        np.testing.assert_allclose(result.data, np.tile([0.1, -0.2, 0.3], 4))

    def test_pulled_cube(self, make_problem, cube_mesh, cantilever_conditions):
        problem = make_problem("FemSolver", mesh=cube_mesh, boundary_conditions=cantilever_conditions)
        u = FemSolver().solve(problem).data
        fixed = [dof_index(n, c) for n in cube_mesh.boundary_regions["face_x_neg"] for c in range(3)]
        np.testing.assert_allclose(u[fixed], 0.0, atol=1e-15)
        pulled_x = [dof_index(n, 0) for n in cube_mesh.boundary_regions["face_x_pos"]]
        assert np.sum(u[pulled_x]) > 0.0
        assert np.all(np.isfinite(u))

    def test_sparse_path_matches_dense(self, make_problem, cube_mesh, cantilever_conditions):
        problem = make_problem("FemSolver", mesh=cube_mesh, boundary_conditions=cantilever_conditions)
        dense = FemSolver().solve(problem).data
        sparse = FemSolver(dense_max_dof=0).solve(problem).data
        np.testing.assert_allclose(sparse, dense, rtol=1e-10, atol=1e-14)

    @pytest.mark.parametrize("dense_max_dof", [6000, 0])
    def test_nan_force_fails_cleanly(self, make_problem, cube_mesh, dense_max_dof):
        problem = make_problem(
            "FemSolver",
            mesh=cube_mesh,
            boundary_conditions=[
                BoundaryCondition("face_x_neg", "Dirichlet", (0.0, 0.0, 0.0)),
                BoundaryCondition("face_x_pos", "Force", (NAN, 0.0, 0.0)),
            ],
        )
        with pytest.raises(SolverFailed, match="non-finite component x"):
            FemSolver(dense_max_dof=dense_max_dof).solve(problem)

    def test_orphan_node_is_singular(self, make_problem, single_tet_mesh):
        # Node 4 belongs to no element, so its rows and columns stay empty.
        mesh = Mesh(
            nodes=np.vstack([single_tet_mesh.nodes, [[2.0, 2.0, 2.0]]]),
            elements=single_tet_mesh.elements,
            element_type="Tetrahedron",
            boundary_regions={"all": [0, 1, 2, 3]},
        )
        problem = make_problem(
            "FemSolver",
            mesh=mesh,
            boundary_conditions=[BoundaryCondition("all", "Dirichlet", (0.0, 0.0, 0.0))],
        )
        with pytest.raises(SolverFailed, match="singular"):
            FemSolver().solve(problem)

    def test_wrong_element_type(self, make_problem, single_tet_mesh):
        single_tet_mesh.element_type = "Hexahedron"
        with pytest.raises(SolverFailed, match="Tetrahedral"):
            FemSolver().solve(make_problem("FemSolver", mesh=single_tet_mesh))

    def test_missing_mesh(self, make_problem):
        with pytest.raises(SolverFailed, match="Mesh not found"):
            FemSolver().solve(make_problem("FemSolver"))

    @pytest.mark.parametrize("bad_element", [[0, 1, 2], [0, 1, 2, 3, 3]])
    def test_malformed_element_named(self, make_problem, single_tet_mesh, bad_element):
        single_tet_mesh.elements.append(bad_element)
        with pytest.raises(SolverFailed, match="Element 1"):
            FemSolver().solve(make_problem("FemSolver", mesh=single_tet_mesh))

    def test_out_of_bounds_node_named(self, make_problem, single_tet_mesh):
        single_tet_mesh.elements.append([0, 1, 2, 4])
        with pytest.raises(SolverFailed, match="Element 1"):
            FemSolver().solve(make_problem("FemSolver", mesh=single_tet_mesh))

    def test_degenerate_element_named(self, make_problem):
        flat = Mesh(
            nodes=[[0, 0, 0], [1, 0, 0], [0, 1, 0], [1, 1, 0]],
            elements=[[0, 1, 2, 3]],
            element_type="Tetrahedron",
        )
        with pytest.raises(SolverFailed, match="Element 0"):
            FemSolver().solve(make_problem("FemSolver", mesh=flat))

    def test_unsupported_condition_fails_before_solve(self, make_problem, single_tet_mesh):
        problem = make_problem(
            "FemSolver",
            mesh=single_tet_mesh,
            boundary_conditions=[BoundaryCondition("nowhere", "Traction", (0.0, 0.0, 0.0))],
        )
        with pytest.raises(SolverFailed, match="Traction"):
            FemSolver().solve(problem)

    @pytest.mark.parametrize("material", [Material(0.0, 0.3), Material(1.0, 0.5), Material(NAN, 0.2)])
    def test_invalid_material(self, make_problem, single_tet_mesh, material):
        problem = make_problem("FemSolver", mesh=single_tet_mesh, material=material)
        with pytest.raises(SolverFailed):
            FemSolver().solve(problem)
