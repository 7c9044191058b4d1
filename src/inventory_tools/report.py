"""
Console reports for biomass fits, sampling estimates and allocations.
"""

import pandas as pd

from .sampling import SampleEstimate, StratifiedEstimate


def _banner(title: str) -> None:
    print()
    print("=" * 60)
    print(title)
    print("=" * 60)


def print_fit_summary(
    fit_table: pd.DataFrame,
    failures: list[dict] | None = None,
    comparison: dict | None = None,
) -> None:
    """
    Print biomass model coefficients, one line per fit.

    Args:
        fit_table: DataFrame from fit_summary_table()
        failures: Skipped species from fit_by_species()
        comparison: Result of compare_species_models()
    """
    _banner("Biomass model: exp(b0 + b1 * ln(DBH))")
    print(
        f"{'Species':<10}{'n':>5}{'b0':>10}{'SE':>8}{'b1':>9}{'SE':>8}"
        f"{'RSE':>10}{'R²':>7}"
    )
    for _, row in fit_table.iterrows():
        print(
            f"{row['species']:<10}{int(row['n']):>5}"
            f"{row['b0']:>10.4f}{row['se_b0']:>8.4f}"
            f"{row['b1']:>9.4f}{row['se_b1']:>8.4f}"
            f"{row['residual_se']:>10.3f}{row['r_squared']:>7.3f}"
        )

    if failures:
        print("\n  Species not fit:")
        for failure in failures:
            print(f"    {failure['species']} (n={failure['n']}): {failure['reason']}")

    if comparison:
        print(
            f"\n  Pooled vs species models: F = {comparison['f_statistic']:.3f}, "
            f"p = {comparison['p_value']:.4g}"
        )


def print_srs_summary(estimate: SampleEstimate, units: str = "ft²/ac") -> None:
    """Print a simple random sample estimate."""
    pct = int(round(estimate.confidence * 100))

    _banner("Simple random sample")
    print(f"  Plots:            {estimate.n}")
    print(f"  Mean:             {estimate.mean:.2f} {units}")
    print(f"  Std deviation:    {estimate.std_dev:.2f}")
    print(f"  CV:               {estimate.cv_percent:.1f}%")
    print(f"  Std error:        {estimate.std_error:.3f}")
    print(f"  t ({estimate.df} df):       {estimate.t_value:.3f}")
    print(f"  {pct}% CI:           {estimate.ci_lower:.2f} to {estimate.ci_upper:.2f}")
    print(f"  Sampling error:   ±{estimate.percent_error:.1f}%")
    if estimate.total is not None:
        print(f"  Total:            {estimate.total:,.0f} ± {estimate.total_std_error:,.0f} (SE)")


def print_stratified_summary(
    estimate: StratifiedEstimate,
    srs: SampleEstimate | None = None,
    units: str = "ft²/ac",
) -> None:
    """
    Print a stratified estimate with its per-stratum table.

    Args:
        estimate: Result of stratified_estimate()
        srs: SRS estimate of the same plots, to report relative efficiency
        units: Units label for the mean
    """
    pct = int(round(estimate.confidence * 100))

    _banner("Stratified random sample")
    print(estimate.strata.round(3).to_string())
    print()
    print(f"  Plots / strata:   {estimate.n} / {estimate.n_strata}")
    print(f"  Total area:       {estimate.total_area:,.1f} ac")
    print(f"  Stratified mean:  {estimate.mean:.2f} {units}")
    print(f"  Std error:        {estimate.std_error:.3f}")
    print(f"  t ({estimate.df:.1f} df):   {estimate.t_value:.3f}")
    print(f"  {pct}% CI:           {estimate.ci_lower:.2f} to {estimate.ci_upper:.2f}")
    print(f"  Sampling error:   ±{estimate.percent_error:.1f}%")
    print(f"  Total:            {estimate.total:,.0f} ± {estimate.total_std_error:,.0f} (SE)")
    if srs is not None:
        print(f"  Relative efficiency vs SRS: {estimate.relative_efficiency(srs):.2f}")


def print_allocation_table(table: pd.DataFrame, n_total: int) -> None:
    """Print proportional vs optimal allocation of n_total plots."""
    _banner(f"Allocation of {n_total} plots")
    print(table.round(2).to_string())
    print()
    print(
        f"  Totals: proportional {table['proportional'].sum():.1f} "
        f"({int(table['proportional_plots'].sum())} whole plots), "
        f"optimal {table['optimal'].sum():.1f} "
        f"({int(table['optimal_plots'].sum())} whole plots)"
    )
