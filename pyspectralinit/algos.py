import torch as th
from pyspectralinit.base_linop import LinOp
from pyspectralinit.errors import ConvergenceError


def power_iteration(
    A: LinOp,
    x0: th.Tensor,
    n_iter: int = 1000,
    tol: float = 1e-8,
    callback=lambda x: None,
):
    """Leading eigenpair of a positive semi-definite operator.

    Stops once ``||A x - lambda x|| <= tol * |lambda|`` with ``lambda`` the
    Rayleigh quotient of the current iterate; raises ConvergenceError when
    ``n_iter`` iterations were not enough.
    """
    x = x0 / th.linalg.vector_norm(x0)
    residual = th.tensor(float("inf"))

    for _ in range(n_iter):
        ax = A @ x
        eigval = th.vdot(x, ax)
        residual = th.linalg.vector_norm(ax - eigval * x)
        norm_ax = th.linalg.vector_norm(ax)
        if norm_ax == 0:
            raise ConvergenceError(
                "Power iteration stalled, the iterate lies in the null space of the operator"
            )
        if residual <= tol * eigval.abs():
            return eigval, x
        x = ax / norm_ax
        callback(x)

    raise ConvergenceError(
        f"Power iteration did not converge in {n_iter} iterations "
        f"(residual {residual.item():.3e}, tolerance {tol:.1e})"
    )
