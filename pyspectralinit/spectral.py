"""
Spectral initialization for phase retrieval.

The estimate is the leading eigenvector of

    Y = 1/m sum_i idx_i * y_i * a_i a_i^H,    y_i = b0_i^2,

where a_i^H is the i-th row of the measurement operator A, optionally rescaled to
fit the measured magnitudes. With idx_i = 1 for all i this is the initializer of
Wirtinger flow (Candes, Li & Soltanolkotabi, 2015, Algorithm 1); with truncation,
measurements much larger than the mean are discarded as in truncated Wirtinger
flow (Chen & Candes, 2015, Algorithm 1), which makes the estimate more robust to
outliers.
"""

import dataclasses
from dataclasses import dataclass
from typing import Optional

import numpy as np
import torch as th

from pyspectralinit.base_linop import LinOp
from pyspectralinit.config import ALPHA_Y, SpectralConfig
from pyspectralinit.eigensolvers import get_eigensolver
from pyspectralinit.errors import DegenerateScaleError, InvalidArgumentError
from pyspectralinit.linop import (
    DenseOperator,
    Mul,
    as_linop,
    complex_dtype,
    signal_size,
)


@dataclass
class SpectralEstimate:
    x0: th.Tensor
    eigenvalue: complex
    mask: th.Tensor
    scale: Optional[float] = None


def inclusion_mask(
    b0: th.Tensor, is_truncated: bool, alpha_y: float = ALPHA_Y
) -> th.Tensor:
    """Boolean mask of the measurements entering the weighted operator.

    With truncation, y_i = b0_i^2 is kept iff y_i <= alpha_y^2 * lambda0^2 where
    lambda0^2 = mean(y).
    """
    if not is_truncated:
        return th.ones(b0.shape, dtype=th.bool, device=b0.device)
    y = b0**2
    lambda0 = th.sqrt(y.mean())
    return y.abs() <= alpha_y**2 * lambda0**2


def weighted_operator(A: LinOp, b0: th.Tensor, idx: th.Tensor) -> LinOp:
    """Y = 1/m A^H diag(idx * b0^2) A, applied without being formed."""
    m = b0.numel()
    return (1 / m) * (A.T @ Mul(idx * b0**2) @ A)


def least_squares_scale(ax: th.Tensor, b: th.Tensor) -> float:
    """Solves min_s || s * ax - b ||_2 for real, non-negative ax and b."""
    denom = (ax * ax).sum()
    if denom == 0:
        raise DegenerateScaleError(
            "|A x0| vanishes on every included measurement, the scale is undefined"
        )
    if (b * b).sum() == 0:
        raise DegenerateScaleError(
            "The included measurements carry no energy, the scale is undefined"
        )
    return ((ax * b).sum() / denom).item()


def check_measurements(b0) -> th.Tensor:
    b0 = th.as_tensor(b0)
    if b0.is_complex():
        raise InvalidArgumentError("b0 must be real, it holds measured magnitudes")
    if not b0.is_floating_point():
        b0 = b0.to(th.float64)
    b0 = b0.reshape(-1)
    if b0.numel() == 0:
        raise InvalidArgumentError("b0 is empty")
    if not th.isfinite(b0).all():
        raise InvalidArgumentError("b0 contains non-finite values")
    if (b0 < 0).any():
        raise InvalidArgumentError("b0 must be non-negative")
    return b0


class SpectralInitializer:
    """Spectral initializer of a phase retrieval problem b0 = |A x|.

    Parameters:
    - config: a ``SpectralConfig``, the defaults are used when omitted

    The instance only holds its configuration, so it can be reused for any
    number of problems. The truncation and scaling modes are chosen per call.
    """

    def __init__(self, config: Optional[SpectralConfig] = None):
        self.config = SpectralConfig() if config is None else config
        self.eigensolver = get_eigensolver(self.config)

    def __call__(self, A, b0, is_truncated, is_scaled, At=None, n=None):
        return self.estimate(A, b0, is_truncated, is_scaled, At, n).x0

    def estimate(
        self,
        A,
        b0,
        is_truncated: bool,
        is_scaled: bool,
        At=None,
        n: Optional[int] = None,
    ) -> SpectralEstimate:
        """
        Parameters:
        - A: m x n matrix (tensor or ndarray), ``LinOp``, or function computing A @ x
        - b0: m real, non-negative magnitude measurements
        - is_truncated: discard the measurements much larger than the mean
        - is_scaled: rescale the eigenvector to fit the measured magnitudes
        - At: adjoint of A, mandatory iff A is a function
        - n: size of the unknown signal, mandatory iff A is a function

        Output:
        - a ``SpectralEstimate``; its ``x0`` is a complex vector of size n, of unit
          norm when ``is_scaled`` is False
        """
        b0 = check_measurements(b0)
        m = b0.numel()
        dtype = complex_dtype(b0.dtype)
        matrix = A.H if isinstance(A, DenseOperator) else A
        if isinstance(matrix, (np.ndarray, th.Tensor)):
            # the precision follows the most precise of A and b0
            dtype = th.promote_types(dtype, complex_dtype(th.as_tensor(matrix).dtype))
        A = as_linop(A, At, n, m=m, dtype=dtype, device=b0.device)
        n = signal_size(A, n)

        if self.config.verbose:
            print(
                f"Estimating signal of length {n} using a spectral initializer "
                f"with {m} measurements..."
            )

        idx = inclusion_mask(b0, is_truncated, self.config.alpha_y)
        Y = weighted_operator(A, b0, idx)

        x_start = self.start_vector(n, dtype, b0.device)
        if th.count_nonzero(idx * b0) == 0:
            # Y is zero: every unit vector is a leading eigenvector
            eigval, x0 = 0j, x_start
        else:
            eigval, x0 = self.eigensolver.leading_eigenpair(Y, x_start)

        scale = None
        if is_scaled:
            b = b0 * idx
            ax = th.abs(A @ x0) * idx
            scale = least_squares_scale(ax, b)
            x0 = x0 * scale

        if self.config.verbose:
            print("Initialization finished.")

        return SpectralEstimate(x0=x0, eigenvalue=eigval, mask=idx, scale=scale)

    def start_vector(self, n: int, dtype: th.dtype, device=None) -> th.Tensor:
        generator = th.Generator().manual_seed(self.config.seed)
        x = th.randn(n, dtype=dtype, generator=generator).to(device)
        return x / th.linalg.vector_norm(x)


def init_spectral(
    A,
    At,
    b0,
    n: Optional[int],
    is_truncated: bool,
    is_scaled: bool,
    verbose: Optional[bool] = None,
    config: Optional[SpectralConfig] = None,
) -> th.Tensor:
    """Functional form of ``SpectralInitializer``.

    ``verbose`` overrides ``config.verbose`` when given.
    """
    config = SpectralConfig() if config is None else config
    if verbose is not None:
        config = dataclasses.replace(config, verbose=verbose)
    return SpectralInitializer(config)(A, b0, is_truncated, is_scaled, At=At, n=n)
