import numpy as np
import os
from pathlib import Path

import matplotlib.pyplot as plt
from pyspectralinit.config import SpectralConfig
from pyspectralinit.spectral import SpectralInitializer
from pyspectralinit.utils import correlation, random_gaussian_problem


def correlation_sweep(
    n: int, ratios: list[float], n_trials: int, is_truncated: bool, is_scaled: bool
) -> np.ndarray:
    initializer = SpectralInitializer(SpectralConfig(verbose=False))
    corr = np.zeros((len(ratios), n_trials))
    for i, ratio in enumerate(ratios):
        m = int(ratio * n)
        for trial in range(n_trials):
            A, x_true, b0 = random_gaussian_problem(m, n, seed=1000 * i + trial)
            x0 = initializer(A, b0, is_truncated=is_truncated, is_scaled=is_scaled)
            corr[i, trial] = correlation(x0, x_true)
    return corr


output_root = (
    Path(os.environ.get("EXPERIMENTS_ROOT", ".")) / "spectralinit" / "simulation"
)
if not os.path.exists(output_root):
    os.makedirs(output_root)

n = 64
n_trials = 10
ratios = [2, 4, 6, 8, 10, 15, 20, 40, 70, 100]

# With these ratios almost no measurement is truncated for noiseless Gaussian
# data, the two curves only differ for heavy-tailed or corrupted measurements
corr_spectral = correlation_sweep(n, ratios, n_trials, is_truncated=False, is_scaled=True)
corr_truncated = correlation_sweep(n, ratios, n_trials, is_truncated=True, is_scaled=True)

vals = np.stack(
    (np.array(ratios), corr_spectral.mean(1), corr_truncated.mean(1))
).T
np.savetxt(
    output_root / "correlations.csv",
    vals,
    delimiter=",",
    header="ratio,spectral,truncated",
    comments="",
    fmt="%.5f",
)

fig, ax = plt.subplots(figsize=(5, 4))
ax.plot(ratios, corr_spectral.mean(1), "o-", label="spectral")
ax.plot(ratios, corr_truncated.mean(1), "s--", label="truncated spectral")
ax.set_xscale("log")
ax.set_xlabel("oversampling ratio m / n")
ax.set_ylabel(r"$|\langle x_0, x \rangle| / (\|x_0\| \|x\|)$")
ax.set_ylim(0, 1)
ax.legend()
fig.tight_layout()
fig.savefig(output_root / "correlations.pdf", transparent=True)
plt.close()
