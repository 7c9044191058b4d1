"""
Unit tests for SRS and stratified basal area estimates.
"""

import math

import pandas as pd
import pytest
from scipy import stats

from inventory_tools.sampling import (
    required_sample_size,
    srs_estimate,
    stratified_estimate,
)


class TestSrsEstimate:
    """Tests for srs_estimate function."""

    def test_hand_computed_values(self):
        """Mean, SD, SE and CI for 10, 20, 30, 40."""
        est = srs_estimate([10, 20, 30, 40], confidence=0.95)

        t_value = stats.t.ppf(0.975, 3)
        se = math.sqrt(500 / 3) / 2

        assert est.n == 4
        assert est.mean == pytest.approx(25.0)
        assert est.variance == pytest.approx(500 / 3)
        assert est.std_dev == pytest.approx(math.sqrt(500 / 3))
        assert est.std_error == pytest.approx(se)
        assert est.df == 3
        assert est.t_value == pytest.approx(t_value)
        assert est.ci_lower == pytest.approx(25.0 - t_value * se)
        assert est.ci_upper == pytest.approx(25.0 + t_value * se)
        assert est.percent_error == pytest.approx(t_value * se / 25.0 * 100)
        assert est.total is None

    def test_finite_population_correction(self):
        """SE shrinks by sqrt(1 - n/N)."""
        plain = srs_estimate([10, 20, 30, 40])
        corrected = srs_estimate([10, 20, 30, 40], population_size=8)
        assert corrected.std_error == pytest.approx(plain.std_error * math.sqrt(0.5))

    def test_total_from_area(self):
        """Total and its SE scale with the area."""
        est = srs_estimate([10, 20, 30, 40], area=200.0)
        assert est.total == pytest.approx(5000.0)
        assert est.total_std_error == pytest.approx(est.std_error * 200.0)

    def test_ignores_missing_values(self):
        """NaN plot values are dropped before estimating."""
        est = srs_estimate(pd.Series([10.0, None, 30.0]))
        assert est.n == 2
        assert est.mean == pytest.approx(20.0)

    def test_cv_percent(self):
        """CV is the standard deviation as a percent of the mean."""
        est = srs_estimate([10, 20, 30, 40])
        assert est.cv_percent == pytest.approx(est.std_dev / 25.0 * 100)

    def test_single_value_raises(self):
        """One plot gives no variance estimate."""
        with pytest.raises(ValueError, match="at least 2 plots"):
            srs_estimate([12.0])

    def test_population_smaller_than_sample_raises(self):
        """Population size must be at least the sample size."""
        with pytest.raises(ValueError, match="population_size"):
            srs_estimate([1, 2, 3], population_size=2)

    def test_invalid_confidence_raises(self):
        """Confidence must lie strictly between 0 and 1."""
        with pytest.raises(ValueError, match="confidence must be in"):
            srs_estimate([1, 2, 3], confidence=95)


class TestStratifiedEstimate:
    """Tests for stratified_estimate function."""

    def test_hand_computed_values(self, stratified_plots):
        """A: 10,12,14 on 100 ac; B: 30,34 on 300 ac."""
        est = stratified_estimate(stratified_plots, {"A": 100.0, "B": 300.0})

        # W = 0.25, 0.75; means 12 and 32
        assert est.mean == pytest.approx(0.25 * 12 + 0.75 * 32)
        # 0.25² * 4 / 3 + 0.75² * 8 / 2
        assert est.variance == pytest.approx(0.0625 * 4 / 3 + 0.5625 * 4)
        assert est.std_error == pytest.approx(math.sqrt(est.variance))
        assert est.df == 3
        assert est.t_value == pytest.approx(stats.t.ppf(0.975, 3))
        assert est.ci_lower == pytest.approx(est.mean - est.t_value * est.std_error)
        assert est.n == 5
        assert est.n_strata == 2
        assert est.total_area == pytest.approx(400.0)
        assert est.total == pytest.approx(27.0 * 400.0)

    def test_stratum_table(self, stratified_plots):
        """Per-stratum table carries weights, means and standard errors."""
        est = stratified_estimate(stratified_plots, {"A": 100.0, "B": 300.0})
        strata = est.strata

        assert list(strata.index) == ["A", "B"]
        assert list(strata.columns) == [
            "area", "weight", "n", "mean", "std_dev", "variance", "std_error",
        ]
        assert strata.loc["A", "weight"] == pytest.approx(0.25)
        assert strata.loc["B", "n"] == 2
        assert strata.loc["B", "variance"] == pytest.approx(8.0)
        assert strata.loc["A", "std_error"] == pytest.approx(2.0 / math.sqrt(3))

    def test_areas_from_plot_column(self, stratified_plots):
        """Without explicit areas the plot area column is used."""
        from_column = stratified_estimate(stratified_plots)
        explicit = stratified_estimate(stratified_plots, {"A": 100.0, "B": 300.0})
        assert from_column.mean == pytest.approx(explicit.mean)
        assert from_column.variance == pytest.approx(explicit.variance)

    def test_integer_strata_match_string_areas(self):
        """Integer stratum ids match string keys in the areas."""
        plots = pd.DataFrame({"stratum": [1, 1, 2, 2], "bapa": [10, 20, 30, 50]})
        est = stratified_estimate(plots, {"1": 50.0, "2": 50.0})
        assert est.mean == pytest.approx(0.5 * 15 + 0.5 * 40)

    def test_satterthwaite_df(self, stratified_plots):
        """Satterthwaite df matches the hand-computed value."""
        est = stratified_estimate(
            stratified_plots, {"A": 100.0, "B": 300.0}, df_method="satterthwaite"
        )
        g_a = 0.0625 * 4 / 3
        g_b = 0.5625 * 8 / 2
        expected = (g_a + g_b) ** 2 / (g_a**2 / 2 + g_b**2 / 1)
        assert est.df == pytest.approx(expected)
        assert est.t_value == pytest.approx(stats.t.ppf(0.975, expected))

    def test_relative_efficiency(self, stratified_plots):
        """Strata with very different means make stratification efficient."""
        areas = {"A": 100.0, "B": 300.0}
        srs = srs_estimate(stratified_plots["bapa"])
        est = stratified_estimate(stratified_plots, areas)
        assert est.relative_efficiency(srs) == pytest.approx(
            srs.std_error**2 / est.variance
        )
        assert est.relative_efficiency(srs) > 1.0

    def test_single_plot_stratum_raises(self, stratified_plots):
        """A stratum with one plot has no variance."""
        plots = stratified_plots[stratified_plots["plot"] != 5]
        with pytest.raises(ValueError, match="at least 2 plots"):
            stratified_estimate(plots, {"A": 100.0, "B": 300.0})

    def test_missing_area_raises(self, stratified_plots):
        """A sampled stratum needs an area."""
        with pytest.raises(ValueError, match="No area given for sampled strata"):
            stratified_estimate(stratified_plots, {"A": 100.0})

    def test_unsampled_stratum_raises(self, stratified_plots):
        """A stratum with area but no plots is rejected."""
        with pytest.raises(ValueError, match="area but no plots"):
            stratified_estimate(stratified_plots, {"A": 100.0, "B": 300.0, "C": 50.0})

    def test_unknown_df_method_raises(self, stratified_plots):
        """Only the known df methods are accepted."""
        with pytest.raises(ValueError, match="Unknown df_method"):
            stratified_estimate(stratified_plots, df_method="welch")


class TestRequiredSampleSize:
    """Tests for required_sample_size function."""

    def test_cv30_error10(self):
        """Iteration settles on the larger of the two alternating values."""
        assert required_sample_size(30.0, 10.0, confidence=0.95) == 38

    def test_larger_error_needs_fewer_plots(self):
        """A looser target needs fewer plots."""
        assert required_sample_size(30.0, 20.0) < required_sample_size(30.0, 10.0)

    def test_finite_population_reduces_n(self):
        """The finite population correction lowers n."""
        assert required_sample_size(30.0, 10.0, population_size=50) < 38

    def test_zero_cv_returns_minimum(self):
        """No variability still needs two plots for a variance."""
        assert required_sample_size(0.0, 10.0) == 2

    def test_invalid_error_raises(self):
        """A non-positive allowable error is rejected."""
        with pytest.raises(ValueError, match="allowable_error_percent"):
            required_sample_size(30.0, 0.0)

    def test_longer_cycle_returns_largest_value(self, monkeypatch):
        """A cycle 16 -> 36 -> 25 -> 16 resolves to 36, not the last pair."""
        import inventory_tools.sampling as sampling

        t_by_df = {3: 3.0, 8: 4.0, 15: 6.0, 35: 5.0, 24: 4.0}
        monkeypatch.setattr(sampling, "_t_value", lambda confidence, df: t_by_df[df])

        # CV equal to the allowable error, so n = ceil(t ** 2); start is n = 4
        assert sampling.required_sample_size(10.0, 10.0) == 36
