"""
Unit tests for biomass model fitting and prediction.
"""

import numpy as np
import pandas as pd
import pytest

from inventory_tools.biomass import (
    BiomassFit,
    BiomassFitError,
    compare_species_models,
    fit_biomass_model,
    fit_by_species,
    fit_summary_table,
    log_power_law,
    predict_biomass,
)


class TestLogPowerLaw:
    """Tests for the model function."""

    def test_matches_power_form(self):
        """exp(b0 + b1 ln d) equals e^b0 * d^b1."""
        dbh = np.array([1.0, 10.0, 30.0])
        expected = np.exp(-2.0) * dbh**2.5
        np.testing.assert_allclose(log_power_law(dbh, -2.0, 2.5), expected)

    def test_unit_dbh_returns_exp_b0(self):
        """At DBH = 1 the model reduces to exp(b0)."""
        assert log_power_law(1.0, 0.7, 3.0) == pytest.approx(np.exp(0.7))


class TestFitBiomassModel:
    """Tests for fit_biomass_model function."""

    def test_recovers_exact_parameters(self, exact_trees):
        """Noise-free data returns the generating coefficients."""
        fit = fit_biomass_model(exact_trees, start=(-2.0, 2.4))

        assert fit.b0 == pytest.approx(-2.5, abs=1e-4)
        assert fit.b1 == pytest.approx(2.4, abs=1e-4)
        assert fit.r_squared == pytest.approx(1.0, abs=1e-8)
        assert fit.species is None
        assert fit.label == "ALL"

    def test_fit_statistics(self, mixed_trees):
        """n, df, RSS and residual SE are consistent."""
        pipo = mixed_trees[mixed_trees["species"] == "PIPO"]
        fit = fit_biomass_model(pipo, start=(-2.0, 2.4), species="PIPO")

        assert fit.n == 12
        assert fit.df == 10
        assert fit.rss > 0
        assert fit.residual_se == pytest.approx(np.sqrt(fit.rss / 10))
        assert fit.se_b0 > 0 and fit.se_b1 > 0
        assert fit.dbh_min == pytest.approx(5.0)
        assert fit.dbh_max == pytest.approx(50.0)
        assert np.isfinite(fit.aic)
        assert fit.b1 == pytest.approx(2.4, abs=0.1)

    def test_too_few_trees_raises(self, exact_trees):
        """Two trees cannot support a two-parameter fit."""
        with pytest.raises(ValueError, match="Need at least 3 trees"):
            fit_biomass_model(exact_trees.head(2))

    def test_solver_failure_raises_fit_error(self, exact_trees, monkeypatch):
        """RuntimeError from the solver becomes BiomassFitError."""

        def failing_curve_fit(*args, **kwargs):
            raise RuntimeError("Optimal parameters not found")

        monkeypatch.setattr("inventory_tools.biomass.curve_fit", failing_curve_fit)

        with pytest.raises(BiomassFitError, match="did not converge for species PIPO") as exc:
            fit_biomass_model(exact_trees, species="PIPO")
        assert exc.value.species == "PIPO"

    def test_predict_and_confidence_interval(self, mixed_trees):
        """Predictions follow the curve and intervals bracket the estimates."""
        pipo = mixed_trees[mixed_trees["species"] == "PIPO"]
        fit = fit_biomass_model(pipo, start=(-2.0, 2.4))

        np.testing.assert_allclose(
            fit.predict([10.0, 20.0]), log_power_law(np.array([10.0, 20.0]), fit.b0, fit.b1)
        )

        ci = fit.confidence_interval(0.95)
        assert ci["b0"][0] < fit.b0 < ci["b0"][1]
        assert ci["b1"][0] < fit.b1 < ci["b1"][1]

        with pytest.raises(ValueError, match="level must be in"):
            fit.confidence_interval(1.5)

    def test_to_dict_drops_covariance(self, exact_trees):
        """Serialized fit omits the covariance matrix."""
        data = fit_biomass_model(exact_trees).to_dict()
        assert "covariance" not in data
        assert data["species"] == "ALL"


class TestFitBySpecies:
    """Tests for fit_by_species function."""

    def test_skips_rare_species(self, mixed_trees):
        """Species below min_trees are reported, others are fit."""
        fits, failures = fit_by_species(mixed_trees, start=(-2.0, 2.4), min_trees=5)

        assert set(fits) == {"PIPO", "PSME"}
        assert all(isinstance(f, BiomassFit) for f in fits.values())
        assert fits["PSME"].species == "PSME"
        assert fits["PSME"].b1 == pytest.approx(2.0, abs=0.1)

        assert len(failures) == 1
        assert failures[0]["species"] == "LAOC"
        assert failures[0]["n"] == 2
        assert "insufficient trees" in failures[0]["reason"]

    def test_failed_fit_recorded_and_others_continue(self, mixed_trees, monkeypatch, capsys):
        """A solver failure for one species does not stop the rest."""
        import inventory_tools.biomass as biomass

        real_curve_fit = biomass.curve_fit

        def flaky_curve_fit(f, x, y, **kwargs):
            if len(x) == 12 and x.min() == pytest.approx(6.0):
                raise RuntimeError("Optimal parameters not found")
            return real_curve_fit(f, x, y, **kwargs)

        monkeypatch.setattr(biomass, "curve_fit", flaky_curve_fit)

        fits, failures = fit_by_species(mixed_trees, min_trees=5)

        assert set(fits) == {"PIPO"}
        failed = {f["species"]: f["reason"] for f in failures}
        assert "did not converge" in failed["PSME"]
        out = capsys.readouterr().out
        assert "Warning: Fit did not converge for species PSME" in out

    def test_rare_species_print_warning(self, mixed_trees, capsys):
        """Species skipped for too few trees are announced as well."""
        fit_by_species(mixed_trees, min_trees=5)
        out = capsys.readouterr().out
        assert "Warning: skipping species LAOC: insufficient trees (2 < 5)" in out

    def test_min_trees_below_parameter_count_raises(self, mixed_trees):
        """A threshold that would let a 2-tree species reach the solver is refused."""
        with pytest.raises(ValueError, match="min_trees must be >= 3"):
            fit_by_species(mixed_trees, min_trees=2)


class TestFitSummaryTable:
    """Tests for fit_summary_table function."""

    def test_pooled_fit_listed_first(self, mixed_trees):
        """Pooled fit row comes first regardless of input order."""
        global_fit = fit_biomass_model(mixed_trees)
        fits, _ = fit_by_species(mixed_trees)

        table = fit_summary_table([*fits.values(), global_fit])

        assert list(table["species"]) == ["ALL", "PIPO", "PSME"]
        assert table.loc[0, "n"] == len(mixed_trees)
        assert {"b0", "se_b0", "b1", "se_b1", "residual_se", "r_squared"} <= set(table.columns)

    def test_accepts_dict(self, mixed_trees):
        """A dict of species fits is tabulated from its values."""
        fits, _ = fit_by_species(mixed_trees)
        table = fit_summary_table(fits)
        assert len(table) == 2


class TestPredictBiomass:
    """Tests for predict_biomass function."""

    def test_single_fit_residuals(self, mixed_trees):
        """Residuals are observed minus predicted, scaled by residual SE."""
        fit = fit_biomass_model(mixed_trees)
        result = predict_biomass(mixed_trees, fit)

        assert len(result) == len(mixed_trees)
        np.testing.assert_allclose(
            result["residual"], result["biomass"] - result["predicted"]
        )
        np.testing.assert_allclose(
            result["std_residual"], result["residual"] / fit.residual_se
        )
        # Input is not modified
        assert "predicted" not in mixed_trees.columns

    def test_species_fits_with_fallback(self, mixed_trees):
        """Species without their own fit use the fallback."""
        global_fit = fit_biomass_model(mixed_trees)
        fits, _ = fit_by_species(mixed_trees)

        result = predict_biomass(mixed_trees, fits, fallback=global_fit)
        laoc = result[result["species"] == "LAOC"]
        psme = result[result["species"] == "PSME"]

        np.testing.assert_allclose(laoc["predicted"], global_fit.predict(laoc["dbh"]))
        np.testing.assert_allclose(psme["predicted"], fits["PSME"].predict(psme["dbh"]))

    def test_species_fits_without_fallback_leave_nan(self, mixed_trees):
        """Species with no fit and no fallback get NaN predictions."""
        fits, _ = fit_by_species(mixed_trees)
        result = predict_biomass(mixed_trees, fits)

        assert result.loc[result["species"] == "LAOC", "predicted"].isna().all()
        assert result.loc[result["species"] != "LAOC", "predicted"].notna().all()


class TestCompareSpeciesModels:
    """Tests for compare_species_models function."""

    def test_different_species_curves_detected(self, mixed_trees):
        """Distinct species curves give a significant F test."""
        global_fit = fit_biomass_model(mixed_trees)
        fits, _ = fit_by_species(mixed_trees)

        result = compare_species_models(mixed_trees, global_fit, fits)

        assert result["df_pooled"] == 22
        assert result["df_species"] == 20
        assert result["rss_pooled"] > result["rss_species"]
        assert result["f_statistic"] > 0
        assert result["p_value"] < 0.01

    def test_needs_two_species(self, mixed_trees):
        """The F test needs at least two species fits."""
        global_fit = fit_biomass_model(mixed_trees)
        fits, _ = fit_by_species(mixed_trees)

        with pytest.raises(ValueError, match="at least two species"):
            compare_species_models(mixed_trees, global_fit, {"PIPO": fits["PIPO"]})

    def test_pooled_fit_uses_only_fitted_species(self):
        """Trees of unfit species do not enter the pooled RSS."""
        trees = pd.DataFrame(
            {
                "species": ["A"] * 4 + ["B"] * 4 + ["C"],
                "dbh": [5.0, 10.0, 20.0, 40.0] * 2 + [15.0],
                "biomass": [5.0, 25.0, 100.0, 400.0, 6.0, 30.0, 120.0, 480.0, 1e6],
            }
        )
        global_fit = fit_biomass_model(trees[trees["species"] != "C"], start=(0.0, 2.0))
        fits, _ = fit_by_species(trees, start=(0.0, 2.0), min_trees=4)

        result = compare_species_models(trees, global_fit, fits)
        assert result["df_pooled"] == 6
