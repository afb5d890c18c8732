"""Finite Element Method solver for 3-D linear elasticity on TET4 meshes.

Algorithm
---------
1. Check the mesh is tetrahedral and the material is admissible.
2. Assemble the global stiffness matrix K (3 DOFs per node, global DOF
   ``3 * node + component``) by scattering every 12x12 element matrix into
   COO triplets; duplicate (row, col) pairs are summed when converting to
   CSR, so elements sharing a node accumulate.
3. Walk the boundary conditions:
   - ``Dirichlet``: every finite component prescribes its DOF;
     non-finite components leave the DOF free.
   - ``Force``: components are added into the force vector F.
   Conditions on unknown regions have no nodes and are inert.
4. Enforce prescribed DOFs by row/column elimination: zero row d and
   column d of K, set ``K[d, d] = 1`` and ``F[d] = v``.
5. Solve ``K u = F`` directly for the nodal displacements.
"""
from __future__ import annotations

import logging
import math
import time

import numpy as np
import scipy.sparse as sp
from numpy.typing import NDArray

from simcore.core.errors import SolverFailed
from simcore.core.models import Material, Mesh, ProblemDefinition
from .base import Solver, SolverSolutionData
from .elements import TET4Element
from .linalg import DEFAULT_DENSE_MAX_DOF, solve_linear_system

logger = logging.getLogger(__name__)

DOF_PER_NODE = 3
_NODES_PER_ELEM = TET4Element.N_NODES
_DOFS_PER_ELEM = TET4Element.N_DOF
_ENTRIES_PER_ELEM = _DOFS_PER_ELEM * _DOFS_PER_ELEM  # 144

SUPPORTED_ELEMENT_TYPE = "Tetrahedron"
DIRICHLET = "Dirichlet"
FORCE = "Force"


def dof_index(node: int, component: int) -> int:
    """Global DOF index of *component* (0=x, 1=y, 2=z) at *node*."""
    return int(node) * DOF_PER_NODE + int(component)


class FemSolver(Solver):
    """Linear-elastic FEM solver; returns one displacement per DOF."""

    def __init__(self, dense_max_dof: int = DEFAULT_DENSE_MAX_DOF):
        self._dense_max_dof = int(dense_max_dof)
        self._element = TET4Element()

    @property
    def name(self) -> str:
        return "FemSolver"

    def solve(self, problem: ProblemDefinition) -> SolverSolutionData:
        t0 = time.perf_counter()
        mesh = self.require_mesh(problem)
        if mesh.element_type != SUPPORTED_ELEMENT_TYPE:
            raise SolverFailed(
                f"FemSolver currently only supports Tetrahedral meshes, "
                f"but found {mesh.element_type!r}"
            )
        material = problem.physics.material
        self._check_material(material)

        logger.info(
            "FEM solve for %r: %d nodes, %d elements",
            problem.id, mesh.n_nodes, mesh.n_elements,
        )
        K = self.assemble_stiffness(mesh, material)
        F, prescribed = self.apply_boundary_conditions(
            mesh, problem.physics.boundary_conditions,
        )
        K_bc, F_bc = self.eliminate_prescribed(K, F, prescribed)

        u = solve_linear_system(
            K_bc, F_bc, label="Global stiffness matrix", dense_max_dof=self._dense_max_dof,
        )
        logger.info(
            "FEM solve finished in %.3f s: %d DOFs, %d prescribed, max |u| = %.6e",
            time.perf_counter() - t0, u.size, len(prescribed),
            float(np.max(np.abs(u))) if u.size else 0.0,
        )
        return SolverSolutionData(data=u)

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def assemble_stiffness(self, mesh: Mesh, material: Material) -> sp.csr_matrix:
        """Assemble the global stiffness matrix, shape ``(3N, 3N)``.

        Raises :class:`SolverFailed` naming the first element that does not
        have exactly four valid node indices or has zero volume.
        """
        n_nodes = mesh.n_nodes
        n_dof = n_nodes * DOF_PER_NODE
        n_elements = mesh.n_elements
        D = TET4Element.isotropic_elasticity_matrix(
            material.youngs_modulus, material.poissons_ratio,
        )

        rows = np.empty(n_elements * _ENTRIES_PER_ELEM, dtype=np.int64)
        cols = np.empty(n_elements * _ENTRIES_PER_ELEM, dtype=np.int64)
        vals = np.empty(n_elements * _ENTRIES_PER_ELEM, dtype=np.float64)

        # Local entry k = a * 12 + b maps to (local_i[k], local_j[k]) = (a, b).
        local_i, local_j = np.divmod(np.arange(_ENTRIES_PER_ELEM), _DOFS_PER_ELEM)

        for e, element in enumerate(mesh.elements):
            node_indices = self._checked_element(e, element, n_nodes)
            try:
                Ke = self._element.stiffness_matrix(mesh.nodes[node_indices], D)
            except ValueError as exc:
                raise SolverFailed(f"Element {e} is invalid: {exc}") from exc

            dof_map = (
                DOF_PER_NODE * node_indices[:, None] + np.arange(DOF_PER_NODE)[None, :]
            ).reshape(-1)

            start = e * _ENTRIES_PER_ELEM
            end = start + _ENTRIES_PER_ELEM
            rows[start:end] = dof_map[local_i]
            cols[start:end] = dof_map[local_j]
            vals[start:end] = Ke.ravel()

        # COO -> CSR sums duplicate entries.
        return sp.coo_matrix((vals, (rows, cols)), shape=(n_dof, n_dof)).tocsr()

    @staticmethod
    def _checked_element(e: int, element, n_nodes: int) -> NDArray[np.int64]:
        if len(element) != _NODES_PER_ELEM:
            raise SolverFailed(
                f"Element {e} is not a tetrahedron (node count: {len(element)})"
            )
        node_indices = np.asarray(element, dtype=np.int64)
        if np.any(node_indices < 0) or np.any(node_indices >= n_nodes):
            raise SolverFailed(
                f"Element {e} contains out-of-bounds node index "
                f"(nodes {node_indices.tolist()}, mesh has {n_nodes} nodes)"
            )
        return node_indices

    @staticmethod
    def _check_material(material: Material) -> None:
        E = float(material.youngs_modulus)
        nu = float(material.poissons_ratio)
        if not (math.isfinite(E) and E > 0.0):
            raise SolverFailed(f"Young's modulus must be positive and finite, got {E!r}")
        if not (math.isfinite(nu) and -1.0 < nu < 0.5):
            raise SolverFailed(f"Poisson's ratio must lie in (-1, 0.5), got {nu!r}")

    # ------------------------------------------------------------------
    # Boundary conditions
    # ------------------------------------------------------------------

    @staticmethod
    def apply_boundary_conditions(
        mesh: Mesh,
        boundary_conditions: list,
    ) -> tuple[NDArray[np.float64], dict]:
        """Build the force vector and the prescribed-DOF table.

        Returns
        -------
        F : ndarray, shape (3N,)
            Sum of all ``Force`` contributions.
        prescribed : dict
            Global DOF -> prescribed value.  A DOF constrained twice keeps
            the value of the later condition.
        """
        n_nodes = mesh.n_nodes
        F = np.zeros(n_nodes * DOF_PER_NODE, dtype=np.float64)
        prescribed: dict = {}

        for bc in boundary_conditions:
            if bc.condition_type not in (DIRICHLET, FORCE):
                raise SolverFailed(
                    f"Unsupported boundary condition type: {bc.condition_type}"
                )
            value = [float(v) for v in bc.value]
            if len(value) != DOF_PER_NODE:
                raise SolverFailed(
                    f"Boundary condition on region {bc.region!r} needs "
                    f"{DOF_PER_NODE} components, got {len(value)}"
                )
            if bc.condition_type == FORCE:
                for c, component in enumerate(value):
                    if not math.isfinite(component):
                        raise SolverFailed(
                            f"Force on region {bc.region!r} has non-finite "
                            f"component {'xyz'[c]}: {component}"
                        )

            region_nodes = mesh.boundary_regions.get(bc.region)
            if region_nodes is None:
                logger.debug("Boundary region %r not in mesh; condition inert", bc.region)
                continue

            for node in region_nodes:
                node = int(node)
                if not 0 <= node < n_nodes:
                    raise SolverFailed(
                        f"Boundary region {bc.region!r} references node {node} "
                        f"but the mesh has {n_nodes} nodes"
                    )
                for c in range(DOF_PER_NODE):
                    if bc.condition_type == DIRICHLET:
                        if math.isfinite(value[c]):
                            prescribed[dof_index(node, c)] = value[c]
                    else:
                        F[dof_index(node, c)] += value[c]

        return F, prescribed

    @staticmethod
    def eliminate_prescribed(
        K: sp.spmatrix,
        F: NDArray[np.float64],
        prescribed: dict,
    ) -> tuple[sp.csr_matrix, NDArray[np.float64]]:
        """Row/column elimination of every prescribed DOF.

        Equivalent to zeroing row d and column d, then setting
        ``K[d, d] = 1`` and ``F[d] = v``, applied for all DOFs at once.
        """
        F_bc = F.copy()
        if not prescribed:
            return sp.csr_matrix(K), F_bc

        n_dof = K.shape[0]
        dofs = np.fromiter(prescribed.keys(), dtype=np.int64, count=len(prescribed))
        values = np.fromiter(prescribed.values(), dtype=np.float64, count=len(prescribed))

        keep = np.ones(n_dof, dtype=np.float64)
        keep[dofs] = 0.0
        P = sp.diags(keep)
        K_bc = (P @ K @ P + sp.diags(1.0 - keep)).tocsr()
        K_bc.eliminate_zeros()

        F_bc[dofs] = values
        return K_bc, F_bc
