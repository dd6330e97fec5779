"""
Configuration of the spectral initializer.
"""

from dataclasses import dataclass
from typing import Optional

# Measurements with y_i > ALPHA_Y**2 * mean(y) are discarded by truncation (4 also works fine)
ALPHA_Y = 3.0


@dataclass(frozen=True)
class SpectralConfig:
    """Options of :class:`pyspectralinit.spectral.SpectralInitializer`.

    - alpha_y: truncation constant, see ``ALPHA_Y``
    - eigensolver: ``"arpack"`` (implicitly restarted Arnoldi) or ``"power"``
    - tol: relative tolerance of the eigensolver
    - maxiter: iteration budget, ``None`` keeps the backend default
    - seed: seed of the random start vector of the eigensolver
    - verbose: print progress messages
    """
    alpha_y: float = ALPHA_Y
    eigensolver: str = "arpack"
    tol: float = 1e-8
    maxiter: Optional[int] = None
    seed: int = 0
    verbose: bool = True
