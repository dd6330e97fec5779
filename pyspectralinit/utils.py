import torch as th
from typing import Optional


def correlation(x: th.Tensor, ref: th.Tensor) -> float:
    """|<x, ref>| / (||x|| ||ref||), insensitive to the global phase of x."""
    dtype = th.promote_types(x.dtype, ref.dtype)
    x = x.reshape(-1).to(dtype)
    ref = ref.reshape(-1).to(dtype)
    return (
        th.vdot(x, ref).abs() / (th.linalg.vector_norm(x) * th.linalg.vector_norm(ref))
    ).item()


def relative_error(x: th.Tensor, ref: th.Tensor) -> float:
    """min over |c| = 1 of ||c x - ref|| / ||ref||."""
    dtype = th.promote_types(x.dtype, ref.dtype)
    x = x.reshape(-1).to(dtype)
    ref = ref.reshape(-1).to(dtype)
    inner = th.vdot(x, ref)
    phase = inner / inner.abs() if inner.abs() > 0 else 1.0
    return (th.linalg.vector_norm(phase * x - ref) / th.linalg.vector_norm(ref)).item()


def random_gaussian_problem(
    m: int,
    n: int,
    is_complex: bool = True,
    seed: Optional[int] = None,
    dtype: th.dtype = th.float64,
):
    """Random phase retrieval problem b0 = |A x_true|.

    A has i.i.d. standard (complex) Gaussian entries, x_true has unit norm.
    """
    generator = th.Generator()
    if seed is not None:
        generator.manual_seed(seed)
    else:
        generator.seed()

    if is_complex:
        cdtype = th.complex64 if dtype == th.float32 else th.complex128
        A = th.randn((m, n), dtype=cdtype, generator=generator)
        x_true = th.randn(n, dtype=cdtype, generator=generator)
    else:
        A = th.randn((m, n), dtype=dtype, generator=generator)
        x_true = th.randn(n, dtype=dtype, generator=generator)
    x_true = x_true / th.linalg.vector_norm(x_true)
    b0 = th.abs(A @ x_true)
    return A, x_true, b0
