"""TET4 linear tetrahedral element formulation.

Implements the 4-node constant-strain tetrahedron with:
- Linear shape functions N_i = a_i + b_i x + c_i y + d_i z
- Constant strain-displacement (B) matrix (6x12)
- Element stiffness matrix K_e = V * B^T D B (12x12)

Local DOF ordering is node-major: local DOF ``3 * a + c`` is component
``c`` (x, y, z) of element node ``a``, matching the global ordering
``3 * node + c`` used by the assembler.
"""
from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

# Volumes below this fraction of the bounding-box volume count as degenerate.
_DEGENERATE_RTOL = 1e-12


class TET4Element:
    """4-node linear tetrahedral finite element (TET4).

    Each node has 3 translational DOFs (u_x, u_y, u_z), giving 12 DOFs
    per element.  Strain is constant over the element, so the stiffness
    integral reduces to a product with the element volume.
    """

    N_NODES: int = 4
    N_DOF: int = 12

    @staticmethod
    def signed_volume(coords: NDArray[np.float64]) -> float:
        """Signed volume; positive for right-handed node ordering."""
        p = np.asarray(coords, dtype=np.float64)
        return float(np.linalg.det(np.stack([p[1] - p[0], p[2] - p[0], p[3] - p[0]]))) / 6.0

    def volume(self, coords: NDArray[np.float64]) -> float:
        return abs(self.signed_volume(coords))

    def shape_gradients(self, coords: NDArray[np.float64]) -> tuple[NDArray[np.float64], float]:
        """Return (grads, volume) where ``grads[i] = [dN_i/dx, dN_i/dy, dN_i/dz]``.

        Raises
        ------
        ValueError
            If the element is degenerate (zero volume).
        """
        coords = np.asarray(coords, dtype=np.float64).reshape(4, 3)
        extent = float(np.ptp(coords, axis=0).max())
        vol = self.volume(coords)
        if extent == 0.0 or vol <= _DEGENERATE_RTOL * extent ** 3:
            raise ValueError(f"Degenerate TET4 (volume {vol:.6e})")

        # Rows [1, x, y, z]; the inverse holds the shape function coefficients.
        M = np.hstack([np.ones((4, 1)), coords])
        C = np.linalg.inv(M)
        grads = C[1:4, :].T  # (4, 3)
        return grads, vol

    def strain_displacement(self, coords: NDArray[np.float64]) -> tuple[NDArray[np.float64], float]:
        """Compute the constant B matrix (6x12) and the element volume.

        Voigt rows: [eps_xx, eps_yy, eps_zz, gamma_xy, gamma_yz, gamma_xz].
        """
        grads, vol = self.shape_gradients(coords)
        B = np.zeros((6, 12), dtype=np.float64)
        for i in range(4):
            col = 3 * i
            dNx, dNy, dNz = grads[i]
            B[0, col] = dNx
            B[1, col + 1] = dNy
            B[2, col + 2] = dNz
            B[3, col] = dNy
            B[3, col + 1] = dNx
            B[4, col + 1] = dNz
            B[4, col + 2] = dNy
            B[5, col] = dNz
            B[5, col + 2] = dNx
        return B, vol

    def stiffness_matrix(
        self,
        coords: NDArray[np.float64],
        D: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Compute the 12x12 element stiffness matrix K_e = V * B^T D B."""
        B, vol = self.strain_displacement(coords)
        Ke = (B.T @ (D @ B)) * vol
        # Exact symmetry for the scatter step.
        return 0.5 * (Ke + Ke.T)

    @staticmethod
    def isotropic_elasticity_matrix(E: float, nu: float) -> NDArray[np.float64]:
        """Build the 6x6 isotropic linear-elastic constitutive matrix.

        Voigt ordering: [sigma_xx, sigma_yy, sigma_zz, tau_xy, tau_yz, tau_xz].
        """
        lam = E * nu / ((1.0 + nu) * (1.0 - 2.0 * nu))
        mu = E / (2.0 * (1.0 + nu))

        D = np.array([
            [lam + 2 * mu, lam,          lam,          0.0, 0.0, 0.0],
            [lam,          lam + 2 * mu, lam,          0.0, 0.0, 0.0],
            [lam,          lam,          lam + 2 * mu, 0.0, 0.0, 0.0],
            [0.0,          0.0,          0.0,          mu,  0.0, 0.0],
            [0.0,          0.0,          0.0,          0.0, mu,  0.0],
            [0.0,          0.0,          0.0,          0.0, 0.0, mu ],
        ], dtype=np.float64)

        return D

    def __repr__(self) -> str:
        return f"TET4Element(nodes={self.N_NODES}, dofs={self.N_DOF})"
