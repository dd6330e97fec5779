"""
Matrix-free eigensolvers.

Every backend computes the eigenpair with the largest real part of an operator
known only through its action ``op @ x``. The spectral initializer depends on
the ``Eigensolver`` interface only, so backends can be swapped through
``SpectralConfig.eigensolver``.
"""

from abc import abstractmethod
from typing import Optional, Tuple

import numpy as np
import torch as th
from scipy.sparse.linalg import ArpackError, ArpackNoConvergence, LinearOperator, eigs

from pyspectralinit import algos
from pyspectralinit.base_linop import LinOp
from pyspectralinit.config import SpectralConfig
from pyspectralinit.errors import ConvergenceError, InvalidArgumentError


class Eigensolver:
    def __init__(self, tol: float = 1e-8, maxiter: Optional[int] = None):
        self.tol = tol
        self.maxiter = maxiter

    @abstractmethod
    def leading_eigenpair(self, op: LinOp, x0: th.Tensor) -> Tuple[complex, th.Tensor]:
        """Eigenvalue of largest real part of ``op`` and its unit-norm eigenvector.

        ``x0`` is the start vector; it also fixes the size, dtype and device of
        the computation.
        """
        pass


class ArpackEigensolver(Eigensolver):
    """Implicitly restarted Arnoldi method (ARPACK through SciPy).

    The operator is treated as a general complex one, so no Hermitian structure
    is assumed and complex eigenvectors are returned.
    """

    def leading_eigenpair(self, op, x0):
        n = x0.numel()
        if n < 3:
            raise InvalidArgumentError(
                f"ARPACK needs a signal of length at least 3, got {n}; use the 'power' eigensolver"
            )
        np_dtype = np.complex64 if x0.dtype == th.complex64 else np.complex128

        def matvec(v):
            v = th.from_numpy(np.array(v, dtype=np_dtype).ravel())
            return (op @ v.to(x0.device)).detach().cpu().numpy()

        Y = LinearOperator(shape=(n, n), matvec=matvec, dtype=np_dtype)
        # 0 asks ARPACK for machine precision
        tol = self.tol if self.tol >= np.finfo(np_dtype).eps else 0
        try:
            eigvals, eigvecs = eigs(
                Y,
                k=1,
                which="LR",
                v0=x0.detach().cpu().numpy().astype(np_dtype),
                tol=tol,
                maxiter=self.maxiter,
            )
        except ArpackNoConvergence as e:
            raise ConvergenceError(
                f"ARPACK did not converge to the leading eigenvector: {e}"
            ) from e
        except ArpackError as e:
            raise ConvergenceError(f"ARPACK failed: {e}") from e

        x = th.from_numpy(np.array(eigvecs[:, 0])).to(
            device=x0.device, dtype=x0.dtype
        )
        return complex(eigvals[0]), x / th.linalg.vector_norm(x)


class PowerIterationEigensolver(Eigensolver):
    """Power method; valid for positive semi-definite operators, where the
    eigenvalue of largest magnitude is also the one of largest real part."""

    def __init__(self, tol: float = 1e-8, maxiter: Optional[int] = None):
        super().__init__(tol, 1000 if maxiter is None else maxiter)

    def leading_eigenpair(self, op, x0):
        tol = max(self.tol, 10 * th.finfo(x0.real.dtype).eps)
        eigval, x = algos.power_iteration(op, x0, n_iter=self.maxiter, tol=tol)
        return complex(eigval.item()), x / th.linalg.vector_norm(x)


EIGENSOLVERS = {
    "arpack": ArpackEigensolver,
    "power": PowerIterationEigensolver,
}


def get_eigensolver(config: SpectralConfig) -> Eigensolver:
    try:
        solver_cls = EIGENSOLVERS[config.eigensolver]
    except KeyError:
        raise InvalidArgumentError(
            f"Unknown eigensolver '{config.eigensolver}', choose among {sorted(EIGENSOLVERS)}"
        ) from None
    return solver_cls(tol=config.tol, maxiter=config.maxiter)
