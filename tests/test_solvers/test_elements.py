from __future__ import annotations

import numpy as np
import pytest

from simcore.solvers.elements import TET4Element

UNIT_TET = np.array([
    [0.0, 0.0, 0.0],
    [1.0, 0.0, 0.0],
    [0.0, 1.0, 0.0],
    [0.0, 0.0, 1.0],
])


class TestTET4Element:
    def test_volume(self):
        elem = TET4Element()
        assert elem.volume(UNIT_TET) == pytest.approx(1.0 / 6.0)
        # Swapping two nodes flips the orientation only.
        swapped = UNIT_TET[[0, 2, 1, 3]]
        assert TET4Element.signed_volume(swapped) == pytest.approx(-1.0 / 6.0)
        assert elem.volume(swapped) == pytest.approx(1.0 / 6.0)

    def test_shape_gradients_partition_of_unity(self):
        grads, vol = TET4Element().shape_gradients(UNIT_TET)
        assert grads.shape == (4, 3)
        np.testing.assert_allclose(grads.sum(axis=0), 0.0, atol=1e-14)
        np.testing.assert_allclose(grads[0], [-1.0, -1.0, -1.0])
        np.testing.assert_allclose(grads[1:], np.eye(3))

    def test_degenerate_rejected(self):
        flat = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [1, 1, 0]], dtype=np.float64)
        with pytest.raises(ValueError, match="Degenerate"):
            TET4Element().shape_gradients(flat)

    def test_coincident_nodes_rejected(self):
        with pytest.raises(ValueError, match="Degenerate"):
            TET4Element().shape_gradients(np.zeros((4, 3)))

    def test_stiffness_symmetric_rank_six(self):
        elem = TET4Element()
        D = elem.isotropic_elasticity_matrix(210e9, 0.3)
        Ke = elem.stiffness_matrix(UNIT_TET, D)
        assert Ke.shape == (12, 12)
        np.testing.assert_allclose(Ke, Ke.T)
        # Six rigid-body modes.
        assert np.linalg.matrix_rank(Ke / 210e9, tol=1e-10) == 6

    def test_uniaxial_strain_energy(self):
        # u_x = eps * x gives strain energy 0.5 * V * eps^2 * D[0, 0].
        elem = TET4Element()
        D = elem.isotropic_elasticity_matrix(1.0, 0.25)
        Ke = elem.stiffness_matrix(UNIT_TET, D)
        eps = 1e-3
        u = np.zeros(12)
        u[0::3] = eps * UNIT_TET[:, 0]
        energy = 0.5 * u @ Ke @ u
        assert energy == pytest.approx(0.5 * (1.0 / 6.0) * eps ** 2 * D[0, 0])

    def test_elasticity_matrix(self):
        D = TET4Element.isotropic_elasticity_matrix(1.0, 0.0)
        np.testing.assert_allclose(np.diag(D), [1.0, 1.0, 1.0, 0.5, 0.5, 0.5])
        np.testing.assert_allclose(D, D.T)
