"""Direct linear solve shared by the FEM and FDM solvers.

Small systems are densified and factorized with LAPACK (``getrf``, with
the reciprocal condition number estimated by ``gecon``); larger ones go
through SuperLU (``scipy.sparse.linalg.splu``).  In both paths a singular
or numerically singular matrix raises :class:`SolverFailed` instead of
returning NaNs.

Conditioning is checked from the factorization itself rather than by
turning solver warnings into errors, so concurrent solves in different
threads do not interfere.
"""
from __future__ import annotations

import logging

import numpy as np
import scipy.linalg as la
import scipy.sparse as sp
import scipy.sparse.linalg as spla
from numpy.typing import NDArray

from simcore.core.errors import SolverFailed

logger = logging.getLogger(__name__)

DEFAULT_DENSE_MAX_DOF = 6000

# Reciprocal condition numbers (or pivot ratios) below this are singular.
_RCOND_MIN = np.finfo(np.float64).eps


def solve_linear_system(
    A,
    b: NDArray[np.float64],
    label: str = "System",
    dense_max_dof: int = DEFAULT_DENSE_MAX_DOF,
) -> NDArray[np.float64]:
    """Solve ``A x = b`` directly.

    Parameters
    ----------
    A : ndarray or scipy.sparse matrix, shape (n, n)
    b : ndarray, shape (n,)
    label : str
        Used in error messages, e.g. ``"Global stiffness matrix"``.
    dense_max_dof : int
        Systems with at most this many unknowns use the dense path.

    Raises
    ------
    SolverFailed
        If the inputs are not finite, the matrix is singular, or the
        result is not finite.
    """
    n = A.shape[0]
    if A.shape != (n, n) or b.shape != (n,):
        raise SolverFailed(
            f"{label} has inconsistent shapes: matrix {A.shape}, vector {b.shape}"
        )
    if n == 0:
        return np.zeros(0, dtype=np.float64)

    b = np.asarray(b, dtype=np.float64)
    if not np.all(np.isfinite(b)):
        raise SolverFailed(f"{label}: right-hand side contains non-finite values")

    if sp.issparse(A) and n > dense_max_dof:
        x = _solve_sparse(sp.csc_matrix(A, dtype=np.float64), b, label)
    else:
        dense = A.toarray() if sp.issparse(A) else np.array(A, dtype=np.float64)
        x = _solve_dense(np.asarray(dense, dtype=np.float64), b, label)

    x = np.asarray(x, dtype=np.float64).reshape(-1)
    if not np.all(np.isfinite(x)):
        raise SolverFailed(f"{label} is singular: solution contains non-finite values")
    logger.debug("Solved %s with %d unknowns", label, n)
    return x


def _solve_dense(A: NDArray[np.float64], b: NDArray[np.float64], label: str):
    if not np.all(np.isfinite(A)):
        raise SolverFailed(f"{label} contains non-finite entries")

    getrf, gecon, getrs = la.get_lapack_funcs(("getrf", "gecon", "getrs"), (A,))
    anorm = np.linalg.norm(A, 1)
    lu, piv, info = getrf(A)
    if info > 0:
        raise SolverFailed(f"{label} is singular: zero pivot in row {info - 1}")
    if info < 0:
        raise SolverFailed(f"{label}: LU factorization rejected argument {-info}")

    rcond, _ = gecon(lu, anorm)
    if rcond < _RCOND_MIN:
        raise SolverFailed(
            f"{label} is singular: reciprocal condition number {rcond:.3e}"
        )

    x, info = getrs(lu, piv, b)
    if info != 0:
        raise SolverFailed(f"{label}: triangular solve failed (info={info})")
    return x


def _solve_sparse(A: sp.csc_matrix, b: NDArray[np.float64], label: str):
    if not np.all(np.isfinite(A.data)):
        raise SolverFailed(f"{label} contains non-finite entries")

    try:
        factor = spla.splu(A)
    except RuntimeError as exc:
        # SuperLU reports an exactly singular factor this way.
        raise SolverFailed(f"{label} is singular: {exc}") from exc

    pivots = np.abs(factor.U.diagonal())
    if pivots.min() < _RCOND_MIN * pivots.max():
        raise SolverFailed(
            f"{label} is singular: pivot ratio {pivots.min() / pivots.max():.3e}"
        )
    return factor.solve(b)
