import numpy as np
import torch as th
from typing import Callable, Optional
from pyspectralinit.base_linop import LinOp
from pyspectralinit.errors import InvalidArgumentError


def complex_dtype(dtype: th.dtype) -> th.dtype:
    """Complex dtype with the precision of ``dtype``."""
    if dtype in (th.float16, th.bfloat16, th.float32, th.complex64):
        return th.complex64
    return th.complex128


class DenseOperator(LinOp):
    """Explicit m x n matrix; the adjoint is its conjugate transpose."""

    def __init__(self, matrix):
        self.H = matrix
        self.in_shape = (matrix.shape[1],)
        self.out_shape = (matrix.shape[0],)

    def apply(self, x):
        return self.H @ x

    def applyT(self, x):
        return self.H.T.conj() @ x


class CallableOperator(LinOp):
    """Operator given by a forward callable and its adjoint.

    Outputs of the callables are converted to tensors and flattened. When the
    sizes are known, outputs of the wrong length raise InvalidArgumentError.

    Callables that only accept real vectors (e.g. a product with a real tensor)
    are applied to the real and imaginary parts of complex inputs separately,
    which gives the same result for any linear map.
    """

    def __init__(
        self,
        forward: Callable,
        adjoint: Callable,
        n: int,
        m: Optional[int] = None,
    ):
        self.forward = forward
        self.adjoint = adjoint
        self.in_shape = (n,)
        self.out_shape = (-1,) if m is None else (m,)
        # callables found to need real inputs
        self.real_only = set()

    def _call(self, f, x, name):
        if x.is_complex() and name in self.real_only:
            return self._call_split(f, x, name)
        try:
            return th.as_tensor(f(x), device=x.device)
        except (RuntimeError, TypeError) as e:
            if not x.is_complex():
                raise InvalidArgumentError(f"{name} failed on a {x.dtype} vector: {e}") from e
            out = self._call_split(f, x, name)
            self.real_only.add(name)
            return out

    def _call_split(self, f, x, name):
        try:
            real = th.as_tensor(f(x.real), device=x.device)
            imag = th.as_tensor(f(x.imag), device=x.device)
        except (RuntimeError, TypeError) as e:
            raise InvalidArgumentError(
                f"{name} must accept real or complex vectors of dtype {x.real.dtype}: {e}"
            ) from e
        return real + 1j * imag

    def _checked(self, out, shape, name):
        out = out.reshape(-1)
        if shape != (-1,) and out.shape != shape:
            raise InvalidArgumentError(
                f"{name} returned a vector of length {out.numel()}, expected {shape[0]}"
            )
        return out

    def apply(self, x):
        return self._checked(self._call(self.forward, x, "A"), self.out_shape, "A")

    def applyT(self, x):
        return self._checked(self._call(self.adjoint, x, "At"), self.in_shape, "At")


class Mul(LinOp):
    """coefs is for element-wise multiplication"""

    def __init__(self, coefs):
        self.coefs = coefs
        self.in_shape = coefs.shape
        self.out_shape = coefs.shape

    def apply(self, x):
        return self.coefs * x

    def applyT(self, x):
        return self.coefs.conj() * x


def as_linop(
    A,
    At: Optional[Callable] = None,
    n: Optional[int] = None,
    m: Optional[int] = None,
    dtype: Optional[th.dtype] = None,
    device=None,
) -> LinOp:
    """Brings a measurement operator into ``LinOp`` form.

    - dense matrix (tensor or ndarray): ``At`` and ``n`` are ignored and inferred
      from the matrix, which is cast to ``dtype`` when given
    - ``DenseOperator``: its matrix is cast the same way
    - other ``LinOp``: used as is, ``n`` is read from ``in_shape`` when known
    - callable: ``At`` (adjoint callable) and ``n`` are mandatory
    """
    if isinstance(A, np.ndarray) or isinstance(A, th.Tensor):
        op = DenseOperator(_as_matrix(A, dtype, device))
    elif isinstance(A, DenseOperator):
        matrix = _as_matrix(A.H, dtype, device)
        op = A if matrix is A.H else DenseOperator(matrix)
    elif isinstance(A, LinOp):
        if A.in_shape == (-1,) and n is None:
            raise InvalidArgumentError(
                "The input size of the operator is unknown, `n` must be provided"
            )
        op = A
    elif callable(A):
        if At is None or not callable(At):
            raise InvalidArgumentError(
                "When A is a function handle, its adjoint At must be provided"
            )
        if n is None:
            raise InvalidArgumentError(
                "When A is a function handle, the signal size n must be provided"
            )
        op = CallableOperator(A, At, _positive_int(n), m)
    else:
        raise InvalidArgumentError(
            f"Unsupported operator of type {type(A).__name__}, expected a matrix, a LinOp or a callable"
        )

    if m is not None and op.out_shape not in ((-1,), (m,)):
        raise InvalidArgumentError(
            f"The operator maps to {op.out_shape[0]} measurements but b0 has {m}"
        )
    return op


def _as_matrix(A, dtype=None, device=None) -> th.Tensor:
    matrix = th.as_tensor(A, device=device)
    if matrix.ndim != 2:
        raise InvalidArgumentError(
            f"A dense operator must be a 2-D matrix, got shape {tuple(matrix.shape)}"
        )
    if dtype is not None:
        matrix = matrix.to(dtype)
    return matrix


def signal_size(op: LinOp, n: Optional[int] = None) -> int:
    if op.in_shape != (-1,):
        return op.in_shape[0]
    return _positive_int(n)


def _positive_int(n) -> int:
    if isinstance(n, bool) or int(n) != n or n < 1:
        raise InvalidArgumentError(f"The signal size must be a positive integer, got {n}")
    return int(n)
