"""Tests for hrvlab.analytics.kernels -- RMSSD, SDRR and Poincaré metrics."""

import math

import numpy as np
import pytest

from hrvlab.analytics.kernels import (
    DFA_SCALES,
    dfa_alpha,
    dfa_min_length,
    mean_hr_from_rr,
    poincare,
    rmssd,
    sdrr,
)


class TestRMSSD:
    """Root mean square of successive differences."""

    def test_two_intervals(self):
        assert rmssd([800.0, 900.0]) == pytest.approx(100.0)

    def test_constant_intervals(self):
        assert rmssd([800.0, 800.0, 800.0, 800.0]) == 0.0

    def test_known_values(self):
        # diffs: 10, -20, 30 → squares: 100, 400, 900 → mean=466.67 → sqrt≈21.6
        assert rmssd([800.0, 810.0, 790.0, 820.0]) == pytest.approx(math.sqrt(1400 / 3))

    def test_increasing_series_positive(self):
        assert rmssd([1000.0, 1010.0, 1020.0, 1030.0, 1040.0]) > 0.0

    def test_numpy_input(self):
        assert rmssd(np.array([800.0, 810.0])) == pytest.approx(10.0)

    def test_single_interval_is_a_programming_error(self):
        with pytest.raises(AssertionError):
            rmssd([800.0])


class TestSDRR:
    """Sample standard deviation (ddof=1)."""

    def test_sample_standard_deviation(self):
        data = [800.0, 820.0, 780.0, 810.0]
        assert sdrr(data) == pytest.approx(float(np.std(data, ddof=1)))

    def test_constant(self):
        assert sdrr([800.0, 800.0, 800.0]) == 0.0

    def test_empty_is_a_programming_error(self):
        with pytest.raises(AssertionError):
            sdrr([])


class TestPoincare:
    """SD1/SD2 from the eigendecomposition of the pair covariance."""

    def test_positive_axes(self):
        result = poincare([1000.0, 1010.0, 1001.0, 1030.0, 1049.0])
        assert result.sd1 > 0.0
        assert result.sd2 > 0.0
        assert result.sd1_eigenvector[0] != 0.0
        assert result.sd2_eigenvector[0] != 0.0

    def test_sd1_not_larger_than_sd2(self):
        result = poincare([800.0, 820.0, 810.0, 830.0, 805.0, 825.0, 815.0])
        assert result.sd1 <= result.sd2

    def test_collinear_series_has_zero_sd1(self):
        result = poincare([1000.0, 1010.0, 1020.0, 1030.0, 1040.0])
        assert result.sd1 == pytest.approx(0.0, abs=1e-6)
        assert result.sd2 > 0.0

    def test_eigenvectors_are_unit_and_orthogonal(self):
        result = poincare([812.0, 790.0, 845.0, 801.0, 833.0, 799.0])
        v1 = np.array(result.sd1_eigenvector)
        v2 = np.array(result.sd2_eigenvector)
        assert np.linalg.norm(v1) == pytest.approx(1.0)
        assert np.linalg.norm(v2) == pytest.approx(1.0)
        assert float(v1 @ v2) == pytest.approx(0.0, abs=1e-9)

    def test_matches_sample_covariance(self):
        rr = np.array([812.0, 790.0, 845.0, 801.0, 833.0, 799.0, 820.0])
        eigenvalues = np.linalg.eigvalsh(np.cov(rr[:-1], rr[1:]))
        result = poincare(rr)
        assert result.sd1 == pytest.approx(np.sqrt(eigenvalues[0]))
        assert result.sd2 == pytest.approx(np.sqrt(eigenvalues[1]))

    def test_needs_three_intervals(self):
        with pytest.raises(AssertionError):
            poincare([800.0, 810.0])


class TestMeanHrFromRR:
    """Average bpm implied by a run of RR intervals."""

    def test_one_second_beats(self):
        assert mean_hr_from_rr([1000.0, 1000.0]) == pytest.approx(60.0)

    def test_mixed(self):
        assert mean_hr_from_rr([750.0, 850.0]) == pytest.approx(75.0)


class TestDFAAlpha:
    """Short-term detrended fluctuation analysis over scales 4..16."""

    def test_default_scales(self):
        assert DFA_SCALES[0] == 4
        assert DFA_SCALES[-1] == 16
        assert dfa_min_length() == 32

    def test_white_noise_is_uncorrelated(self):
        rr = 800.0 + 40.0 * np.random.default_rng(7).standard_normal(2000)
        assert dfa_alpha(rr) == pytest.approx(0.5, abs=0.15)

    def test_random_walk_is_strongly_correlated(self):
        rr = 800.0 + np.cumsum(np.random.default_rng(7).standard_normal(2000))
        assert dfa_alpha(rr) == pytest.approx(1.5, abs=0.2)

    def test_offset_invariant(self):
        rr = 40.0 * np.random.default_rng(3).standard_normal(200)
        assert dfa_alpha(rr + 800.0) == pytest.approx(dfa_alpha(rr + 1200.0))

    def test_constant_series_is_nan(self):
        assert math.isnan(dfa_alpha([800.0] * 40))

    def test_too_short_is_a_programming_error(self):
        with pytest.raises(AssertionError):
            dfa_alpha([800.0, 810.0] * 15)
