"""
Tests for gnss_qc.combinations module.

Tests the linear combinations and the denoising used for cycle slip
detection.
"""

import pytest
import numpy as np

from gnss_qc.combinations import (
    jump_coefficients,
    moving_median,
    moving_sigma,
    mw_like,
    tec_like,
    total_variation_denoise,
)
from gnss_qc.config import FREQ, SPEED_OF_LIGHT


def _dual_frequency(rho, iono1, prn="G01"):
    """Code in meters and phase in cycles for a range and an ionosphere on f1."""
    f1 = FREQ[prn[0]]["f1"]
    f2 = FREQ[prn[0]]["f2"]
    iono2 = iono1 * (f1 / f2) ** 2
    c1 = rho + iono1
    c2 = rho + iono2
    l1 = (rho - iono1) * f1 / SPEED_OF_LIGHT
    l2 = (rho - iono2) * f2 / SPEED_OF_LIGHT
    return c1, c2, l1, l2


class TestTecLike:
    """Test geometry-free phase combination."""

    def test_geometry_free(self):
        """Test the range cancels."""
        c1, c2, l1, l2 = _dual_frequency(np.array([2.0e7, 2.1e7]), np.zeros(2))
        assert np.allclose(tec_like("G01", l1, l2), 0.0, atol=1e-5)

    def test_proportional_to_ionosphere(self):
        """Test the combination grows with the ionosphere."""
        c1, c2, l1, l2 = _dual_frequency(np.full(3, 2.0e7), np.array([1.0, 2.0, 4.0]))
        tec = tec_like("G01", l1, l2)
        assert np.all(tec > 0)
        assert np.allclose(tec / tec[0], [1.0, 2.0, 4.0], rtol=1e-6)

    def test_unit_is_l1_cycles(self):
        """Test one cycle on L1 changes the combination by one."""
        assert tec_like("G01", np.array([1.0]), np.array([0.0]))[0] == 1.0


class TestMwLike:
    """Test Melbourne-Wuebbena combination."""

    def test_geometry_and_ionosphere_free(self):
        """Test range and ionosphere cancel."""
        c1, c2, l1, l2 = _dual_frequency(np.array([2.0e7, 2.2e7]), np.array([3.0, 8.0]))
        assert np.allclose(mw_like("G01", c1, c2, l1, l2), 0.0, atol=1e-5)

    def test_wide_lane_cycles(self):
        """Test a one cycle L1 jump changes the combination by one."""
        c1, c2, l1, l2 = _dual_frequency(np.array([2.0e7]), np.array([3.0]))
        base = mw_like("G01", c1, c2, l1, l2)
        jumped = mw_like("G01", c1, c2, l1 + 1, l2)
        assert np.isclose(jumped - base, 1.0)

    @pytest.mark.parametrize("prn", ["G05", "E11", "R03", "C20", "J01"])
    def test_constellations(self, prn):
        """Test all constellations give finite values."""
        c1, c2, l1, l2 = _dual_frequency(np.array([2.0e7]), np.array([3.0]), prn=prn)
        assert np.all(np.isfinite(mw_like(prn, c1, c2, l1, l2)))


class TestJumpCoefficients:
    """Test the effect of integer jumps on the combinations."""

    def test_single_frequency_jump(self):
        """Test a 2 cycle L1 jump moves both combinations by 2."""
        assert np.allclose(jump_coefficients("G01") @ [2, 0], [2.0, 2.0])

    def test_equal_jumps(self):
        """Test equal jumps leave MW-like unchanged."""
        mw, tec = jump_coefficients("G01") @ [1, 1]
        assert mw == 0.0
        assert np.isclose(tec, 1 - 1575.42 / 1227.60)


class TestTotalVariationDenoise:
    """Test total variation denoising."""

    def test_step(self):
        """Test a clean step shrinks by lambda over the segment lengths."""
        denoised = total_variation_denoise(np.array([0.0, 0.0, 10.0, 10.0]), 1.0)
        assert np.allclose(denoised, [0.5, 0.5, 9.5, 9.5])

    def test_zero_lambda(self):
        """Test lambda 0 returns the input."""
        y = np.array([1.0, 5.0, 2.0])
        assert np.array_equal(total_variation_denoise(y, 0.0), y)

    def test_short_input(self):
        """Test empty and single sample input."""
        assert len(total_variation_denoise(np.array([]), 1.0)) == 0
        assert np.array_equal(total_variation_denoise(np.array([3.0]), 1.0), [3.0])

    def test_constant(self):
        """Test a constant signal is unchanged."""
        assert np.allclose(total_variation_denoise(np.full(10, 4.2), 5.0), 4.2)

    def test_noisy_step(self):
        """Test noise is removed while the step is preserved."""
        rng = np.random.default_rng(4)
        truth = np.where(np.arange(80) < 40, 0.0, 2.0)
        y = truth + rng.normal(0, 0.1, 80)
        denoised = total_variation_denoise(y, 1.0)

        assert np.std(denoised[5:35]) < np.std(y[5:35])
        assert np.argmax(np.abs(np.diff(denoised))) == 39
        assert np.isclose(denoised[45] - denoised[35], 2.0, atol=0.2)

    def test_mean_preserved(self):
        """Test the mean of the signal is preserved."""
        rng = np.random.default_rng(5)
        y = rng.normal(0, 1, 50)
        assert np.isclose(np.mean(total_variation_denoise(y, 2.0)), np.mean(y))

    def test_large_lambda_flattens(self):
        """Test a very large lambda gives the mean."""
        y = np.array([1.0, 3.0, 2.0, 6.0])
        assert np.allclose(total_variation_denoise(y, 100.0), 3.0)


class TestMovingStatistics:
    """Test moving window statistics."""

    def test_moving_sigma_floor(self):
        """Test a constant series gives the floor."""
        assert np.allclose(moving_sigma(np.ones(20), 5), 1e-3)

    def test_moving_sigma_noise(self):
        """Test white noise gives its standard deviation."""
        rng = np.random.default_rng(3)
        sigma = moving_sigma(rng.normal(0, 0.5, 2000), 201)
        assert np.median(sigma[100:-100]) == pytest.approx(0.5, abs=0.05)

    def test_moving_sigma_ignores_jump(self):
        """Test a jump inside the window does not raise the estimate."""
        values = np.where(np.arange(40) >= 20, 0.6, 0.0) + np.tile([0.01, -0.01], 20)
        assert np.all(moving_sigma(values, 15) < 0.05)

    def test_moving_median_ignores_single_spike(self):
        """Test the median is not affected by one spike."""
        values = np.ones(15)
        values[7] = 100.0
        assert np.allclose(moving_median(values, 5), 1.0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
