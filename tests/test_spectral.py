import io
import torch as th
import unittest
from contextlib import redirect_stdout

from pyspectralinit.config import SpectralConfig
from pyspectralinit.errors import (
    ConvergenceError,
    DegenerateScaleError,
    InvalidArgumentError,
)
from pyspectralinit.linop import DenseOperator
from pyspectralinit.spectral import (
    SpectralInitializer,
    inclusion_mask,
    init_spectral,
    least_squares_scale,
)
from pyspectralinit.utils import correlation, random_gaussian_problem, relative_error


class SpectralTestCase(unittest.TestCase):
    # m / n = 200, well above the oversampling needed for a correlation above 0.9
    m = 4000
    n = 20

    def setUp(self):
        self.A, self.x, self.b0 = random_gaussian_problem(self.m, self.n, seed=0)
        self.initializer = SpectralInitializer(SpectralConfig(verbose=False))


class TestRecovery(SpectralTestCase):
    def test_noiseless_consistent_system(self):
        x0 = self.initializer(self.A, self.b0, is_truncated=False, is_scaled=True)
        self.assertEqual(x0.shape, (self.n,))
        self.assertTrue(x0.is_complex())
        self.assertGreater(correlation(x0, self.x), 0.9)
        self.assertLess(relative_error(x0, self.x), 0.5)
        norm_ratio = th.linalg.vector_norm(x0) / th.linalg.vector_norm(self.x)
        self.assertTrue(0.7 < norm_ratio < 1.3)

    def test_truncated_and_untruncated_correlation(self):
        for is_truncated in (False, True):
            x0 = self.initializer(
                self.A, self.b0, is_truncated=is_truncated, is_scaled=True
            )
            self.assertGreater(correlation(x0, self.x), 0.9)

    def test_real_signal(self):
        A, x, b0 = random_gaussian_problem(self.m, self.n, is_complex=False, seed=1)
        x0 = self.initializer(A, b0, is_truncated=True, is_scaled=True)
        self.assertGreater(correlation(x0, x), 0.9)

    def test_unscaled_estimate_has_unit_norm(self):
        estimate = self.initializer.estimate(
            self.A, self.b0, is_truncated=True, is_scaled=False
        )
        self.assertIsNone(estimate.scale)
        self.assertAlmostEqual(th.linalg.vector_norm(estimate.x0).item(), 1.0, places=10)
        self.assertGreater(estimate.eigenvalue.real, 0)

    def test_power_iteration_matches_arpack(self):
        power = SpectralInitializer(SpectralConfig(eigensolver="power", verbose=False))
        x_arpack = self.initializer(self.A, self.b0, is_truncated=True, is_scaled=False)
        x_power = power(self.A, self.b0, is_truncated=True, is_scaled=False)
        self.assertGreater(correlation(x_power, x_arpack), 1 - 1e-6)

    def test_single_precision(self):
        x0 = self.initializer(
            self.A.to(th.complex64), self.b0.to(th.float32), True, True
        )
        self.assertEqual(x0.dtype, th.complex64)
        self.assertGreater(correlation(x0, self.x), 0.9)


class TestTruncation(SpectralTestCase):
    def test_outliers_are_excluded(self):
        b0 = self.b0.clone()
        b0[7] = 1e3
        idx = inclusion_mask(b0, is_truncated=True)
        y = b0**2

        self.assertEqual(idx.shape, b0.shape)
        self.assertEqual(idx.dtype, th.bool)
        self.assertFalse(idx[7])
        self.assertTrue(th.equal(idx, y <= 9 * y.mean()))

        estimate = self.initializer.estimate(self.A, b0, True, True)
        self.assertTrue(th.equal(estimate.mask, idx))

    def test_untruncated_mask_keeps_everything(self):
        b0 = self.b0.clone()
        b0[7] = 1e3
        self.assertTrue(inclusion_mask(b0, is_truncated=False).all())

    def test_alpha_y(self):
        b0 = th.tensor([1.0, 1.0, 1.0, 2.0])
        # mean(y) = 7 / 4
        self.assertTrue(inclusion_mask(b0, True, alpha_y=3).all())
        self.assertTrue(th.equal(
            inclusion_mask(b0, True, alpha_y=1.2),
            th.tensor([True, True, True, False]),
        ))

    def test_no_outliers(self):
        generator = th.Generator().manual_seed(2)
        b0 = 0.5 + th.rand(self.m, dtype=th.float64, generator=generator)
        self.assertTrue(inclusion_mask(b0, is_truncated=True).all())

        x_truncated = self.initializer(self.A, b0, is_truncated=True, is_scaled=True)
        x_full = self.initializer(self.A, b0, is_truncated=False, is_scaled=True)
        self.assertTrue(th.allclose(x_truncated, x_full))


class TestScale(SpectralTestCase):
    def test_scale_is_least_squares(self):
        estimate = self.initializer.estimate(self.A, self.b0, True, True)
        s = estimate.scale
        x_unit = estimate.x0 / s
        ax = th.abs(self.A @ x_unit) * estimate.mask
        b = self.b0 * estimate.mask

        residual = th.linalg.vector_norm(s * ax - b)
        for k in th.linspace(0, 2 * s, 41, dtype=th.float64):
            self.assertLessEqual(
                residual.item(), th.linalg.vector_norm(k * ax - b).item() + 1e-12
            )

    def test_closed_form(self):
        ax = th.tensor([1.0, 2.0, 3.0])
        self.assertAlmostEqual(least_squares_scale(ax, 2 * ax), 2.0)
        self.assertAlmostEqual(
            least_squares_scale(ax, th.tensor([1.0, 0.0, 0.0])), 1 / 14
        )

    def test_degenerate_scale(self):
        with self.assertRaises(DegenerateScaleError):
            least_squares_scale(th.zeros(3), th.ones(3))
        with self.assertRaises(DegenerateScaleError):
            least_squares_scale(th.ones(3), th.zeros(3))

    def test_zero_measurements(self):
        b0 = th.zeros(self.m, dtype=th.float64)
        with self.assertRaises(DegenerateScaleError):
            self.initializer(self.A, b0, is_truncated=True, is_scaled=True)
        with self.assertRaises(DegenerateScaleError):
            self.initializer(self.A, b0, is_truncated=False, is_scaled=True)

        x0 = self.initializer(self.A, b0, is_truncated=True, is_scaled=False)
        self.assertTrue(th.isfinite(x0).all())
        self.assertAlmostEqual(th.linalg.vector_norm(x0).item(), 1.0, places=10)


class TestOperatorForms(SpectralTestCase):
    def test_matrix_and_callables_agree(self):
        x_matrix = init_spectral(self.A, None, self.b0, None, True, True, verbose=False)
        x_callable = init_spectral(
            lambda x: self.A @ x,
            lambda y: self.A.conj().T @ y,
            self.b0,
            self.n,
            True,
            True,
            verbose=False,
        )
        x_linop = init_spectral(
            DenseOperator(self.A), None, self.b0, None, True, True, verbose=False
        )
        self.assertTrue(th.allclose(x_matrix, x_callable))
        self.assertTrue(th.allclose(x_matrix, x_linop))

    def test_real_operator_forms_agree(self):
        A, x, b0 = random_gaussian_problem(self.m, self.n, is_complex=False, seed=4)
        x_matrix = init_spectral(A, None, b0, None, True, True, verbose=False)
        x_callable = init_spectral(
            lambda v: A @ v, lambda y: A.T @ y, b0, self.n, True, True, verbose=False
        )
        x_linop = init_spectral(
            DenseOperator(A), None, b0, None, True, True, verbose=False
        )
        self.assertTrue(th.allclose(x_matrix, x_callable))
        self.assertTrue(th.allclose(x_matrix, x_linop))
        self.assertGreater(correlation(x_callable, x), 0.9)

    def test_modes_are_required(self):
        with self.assertRaises(TypeError):
            self.initializer(self.A, self.b0)
        with self.assertRaises(TypeError):
            self.initializer.estimate(self.A, self.b0)

    def test_matrix_ignores_adjoint_and_size(self):
        x_ref = init_spectral(self.A, None, self.b0, None, False, True, verbose=False)
        x0 = init_spectral(self.A, "unused", self.b0, 3, False, True, verbose=False)
        self.assertTrue(th.allclose(x_ref, x0))

    def test_numpy_inputs(self):
        x_ref = init_spectral(self.A, None, self.b0, None, True, True, verbose=False)
        x0 = init_spectral(
            self.A.numpy(), None, self.b0.numpy()[:, None], None, True, True, verbose=False
        )
        self.assertTrue(th.allclose(x_ref, x0))


class TestInvalidArguments(SpectralTestCase):
    def test_negative_measurements(self):
        b0 = self.b0.clone()
        b0[0] = -1.0
        with self.assertRaises(InvalidArgumentError):
            self.initializer(self.A, b0, True, True)

    def test_bad_measurements(self):
        b0 = self.b0.clone()
        b0[0] = float("nan")
        with self.assertRaises(InvalidArgumentError):
            self.initializer(self.A, b0, True, True)
        with self.assertRaises(InvalidArgumentError):
            self.initializer(self.A, self.b0.to(th.complex128), True, True)
        with self.assertRaises(InvalidArgumentError):
            self.initializer(self.A, th.zeros(0), True, True)

    def test_missing_adjoint_or_size(self):
        forward = lambda x: self.A @ x
        with self.assertRaises(InvalidArgumentError):
            init_spectral(forward, None, self.b0, self.n, True, True, verbose=False)
        with self.assertRaises(InvalidArgumentError):
            init_spectral(
                forward, lambda y: self.A.conj().T @ y, self.b0, None, True, True,
                verbose=False,
            )

    def test_dimension_mismatch(self):
        with self.assertRaises(InvalidArgumentError):
            self.initializer(self.A[:-1], self.b0, True, True)
        with self.assertRaises(InvalidArgumentError):
            self.initializer(
                lambda x: self.A[:-1] @ x,
                self.b0,
                True,
                True,
                At=lambda y: self.A[:-1].conj().T @ y,
                n=self.n,
            )

    def test_small_signal_needs_power_iteration(self):
        A, x, b0 = random_gaussian_problem(50, 2, seed=3)
        with self.assertRaises(InvalidArgumentError):
            self.initializer(A, b0, True, True)
        power = SpectralInitializer(SpectralConfig(eigensolver="power", verbose=False))
        self.assertEqual(power(A, b0, True, True).shape, (2,))

    def test_convergence_failure(self):
        initializer = SpectralInitializer(
            SpectralConfig(eigensolver="power", tol=1e-14, maxiter=2, verbose=False)
        )
        with self.assertRaises(ConvergenceError):
            initializer(self.A, self.b0, True, True)


class TestVerbose(SpectralTestCase):
    def test_progress_messages(self):
        out = io.StringIO()
        with redirect_stdout(out):
            init_spectral(self.A, None, self.b0, None, True, True)
        self.assertEqual(
            out.getvalue().splitlines(),
            [
                f"Estimating signal of length {self.n} using a spectral initializer "
                f"with {self.m} measurements...",
                "Initialization finished.",
            ],
        )

    def test_silent(self):
        out = io.StringIO()
        with redirect_stdout(out):
            init_spectral(self.A, None, self.b0, None, True, True, verbose=False)
        self.assertEqual(out.getvalue(), "")


if __name__ == "__main__":
    unittest.main()
