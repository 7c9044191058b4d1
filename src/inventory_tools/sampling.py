"""
Sample-based estimates of stand basal area per acre.

Simple random sampling (SRS):

    ȳ = Σ y_i / n,   SE = s / √n · √(1 - n/N)   (FPC only when N is given)

Stratified random sampling, strata weighted by area (W_h = A_h / Σ A_h):

    ȳ_st = Σ_h W_h ȳ_h
    V(ȳ_st) = Σ_h W_h² s²_h / n_h

Confidence intervals use Student's t. For the stratified estimate the degrees
of freedom are either n - L (L strata) or the Satterthwaite effective df.
"""

import math
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from scipy import stats

from .data_loader import stratum_areas


@dataclass
class SampleEstimate:
    """
    Simple random sample estimate of a per-acre mean.

    Attributes:
        n: Number of plots
        mean: Sample mean
        std_dev: Sample standard deviation (ddof=1)
        variance: Sample variance (ddof=1)
        std_error: Standard error of the mean
        df: Degrees of freedom (n - 1)
        t_value: Two-sided t quantile for the confidence level
        confidence: Confidence level
        ci_lower: Lower confidence limit
        ci_upper: Upper confidence limit
        margin_of_error: t × SE
        percent_error: Margin of error as a percent of the mean
        total: Mean × area, when an area was supplied
        total_std_error: SE × area, when an area was supplied
    """

    n: int
    mean: float
    std_dev: float
    variance: float
    std_error: float
    df: int
    t_value: float
    confidence: float
    ci_lower: float
    ci_upper: float
    margin_of_error: float
    percent_error: float
    total: float | None = None
    total_std_error: float | None = None

    @property
    def cv_percent(self) -> float:
        """Coefficient of variation (%) of the plot values."""
        return self.std_dev / self.mean * 100 if self.mean else float("nan")


@dataclass
class StratifiedEstimate:
    """
    Stratified random sample estimate of a per-acre mean.

    Attributes:
        mean: Stratified mean Σ W_h ȳ_h
        variance: Variance of the stratified mean
        std_error: Standard error of the stratified mean
        df: Degrees of freedom used for the t value
        t_value: Two-sided t quantile for the confidence level
        confidence: Confidence level
        ci_lower: Lower confidence limit
        ci_upper: Upper confidence limit
        margin_of_error: t × SE
        percent_error: Margin of error as a percent of the mean
        n: Total plots
        n_strata: Number of strata
        total_area: Σ A_h
        total: Stratified mean × total area
        total_std_error: SE × total area
        strata: Per-stratum table indexed by stratum with columns
            area, weight, n, mean, std_dev, variance, std_error
    """

    mean: float
    variance: float
    std_error: float
    df: float
    t_value: float
    confidence: float
    ci_lower: float
    ci_upper: float
    margin_of_error: float
    percent_error: float
    n: int
    n_strata: int
    total_area: float
    total: float
    total_std_error: float
    strata: pd.DataFrame = field(repr=False)

    def relative_efficiency(self, srs: SampleEstimate) -> float:
        """Variance of the SRS mean divided by variance of the stratified mean."""
        if self.variance == 0:
            return float("inf")
        return srs.std_error**2 / self.variance


def _t_value(confidence: float, df: float) -> float:
    if not 0.0 < confidence < 1.0:
        raise ValueError(f"confidence must be in (0, 1), got {confidence}")
    return float(stats.t.ppf(0.5 + confidence / 2, df))


def srs_estimate(
    values,
    confidence: float = 0.95,
    population_size: int | None = None,
    area: float | None = None,
) -> SampleEstimate:
    """
    Estimate a mean, its standard error and confidence interval under SRS.

    Args:
        values: Plot values (e.g. BAPA); NaNs are ignored
        confidence: Two-sided confidence level
        population_size: Number of possible plots N; applies the finite
            population correction when given
        area: Area represented (acres); adds total and its SE

    Returns:
        SampleEstimate

    Raises:
        ValueError: If fewer than 2 values, or population_size < n

    Example:
        >>> est = srs_estimate(plots["bapa"], confidence=0.95)
        >>> print(f"{est.mean:.1f} ± {est.margin_of_error:.1f} ft²/ac")
    """
    y = pd.Series(values, dtype=float).dropna().to_numpy()
    n = len(y)

    if n < 2:
        raise ValueError(f"Need at least 2 plots for a variance estimate, got {n}")
    if population_size is not None and population_size < n:
        raise ValueError(
            f"population_size ({population_size}) must be >= sample size ({n})"
        )

    mean = float(y.mean())
    variance = float(y.var(ddof=1))
    std_dev = math.sqrt(variance)

    fpc = 1.0 if population_size is None else 1.0 - n / population_size
    std_error = std_dev / math.sqrt(n) * math.sqrt(fpc)

    df = n - 1
    t_value = _t_value(confidence, df)
    margin = t_value * std_error

    return SampleEstimate(
        n=n,
        mean=mean,
        std_dev=std_dev,
        variance=variance,
        std_error=std_error,
        df=df,
        t_value=t_value,
        confidence=confidence,
        ci_lower=mean - margin,
        ci_upper=mean + margin,
        margin_of_error=margin,
        percent_error=margin / mean * 100 if mean else float("nan"),
        total=None if area is None else mean * area,
        total_std_error=None if area is None else std_error * area,
    )


def _satterthwaite_df(strata: pd.DataFrame) -> float | None:
    """Effective degrees of freedom for Σ g_h s²_h with g_h = W_h² / n_h."""
    terms = strata["weight"] ** 2 / strata["n"] * strata["variance"]
    denominator = (terms**2 / (strata["n"] - 1)).sum()
    if denominator == 0:
        return None
    return float(terms.sum() ** 2 / denominator)


def stratified_estimate(
    plots: pd.DataFrame,
    areas: pd.Series | dict | None = None,
    confidence: float = 0.95,
    df_method: str = "n_minus_strata",
    value_col: str = "bapa",
    stratum_col: str = "stratum",
) -> StratifiedEstimate:
    """
    Stratified estimate of the mean per acre, strata weighted by area.

    Stratum labels are compared as strings, so integer ids in one table
    match string ids in the other.

    Args:
        plots: Plot DataFrame with stratum and value columns
        areas: Stratum areas indexed by stratum. If None, taken from an
            area column on the plots (see attach_stratum_areas)
        confidence: Two-sided confidence level
        df_method: "n_minus_strata" (n - L) or "satterthwaite"
        value_col: Column holding the plot values
        stratum_col: Column holding the stratum id

    Returns:
        StratifiedEstimate

    Raises:
        ValueError: If a stratum has fewer than 2 plots, a sampled stratum has
            no area, a stratum with area has no plots, or df_method is unknown
    """
    if df_method not in ("n_minus_strata", "satterthwaite"):
        raise ValueError(f"Unknown df_method: {df_method}")

    data = plots[[stratum_col, value_col]].copy()
    data.columns = ["stratum", "value"]
    data["value"] = pd.to_numeric(data["value"], errors="coerce")
    data = data.dropna()
    data["stratum"] = data["stratum"].astype(str)

    if areas is None:
        areas = stratum_areas(plots.rename(columns={stratum_col: "stratum"}))
    areas = pd.Series(areas, dtype=float)
    areas.index = areas.index.astype(str)

    sampled = set(data["stratum"])
    no_area = sorted(sampled - set(areas.index))
    if no_area:
        raise ValueError(f"No area given for sampled strata: {no_area}")
    unsampled = sorted(set(areas.index[areas > 0]) - sampled)
    if unsampled:
        raise ValueError(f"Strata have area but no plots: {unsampled}")

    strata = data.groupby("stratum", sort=True)["value"].agg(
        n="count", mean="mean", std_dev="std", variance="var"
    )
    too_small = strata.index[strata["n"] < 2].tolist()
    if too_small:
        raise ValueError(f"Strata need at least 2 plots for a variance: {too_small}")

    strata.insert(0, "area", areas.reindex(strata.index))
    total_area = float(strata["area"].sum())
    if total_area <= 0:
        raise ValueError("Total stratum area must be positive")
    strata.insert(1, "weight", strata["area"] / total_area)
    strata["std_error"] = strata["std_dev"] / np.sqrt(strata["n"])
    strata.index.name = "stratum"

    mean = float((strata["weight"] * strata["mean"]).sum())
    variance = float((strata["weight"] ** 2 * strata["variance"] / strata["n"]).sum())
    std_error = math.sqrt(variance)

    n = int(strata["n"].sum())
    n_strata = len(strata)
    df = float(n - n_strata)
    if df_method == "satterthwaite":
        df = _satterthwaite_df(strata) or df

    t_value = _t_value(confidence, df)
    margin = t_value * std_error

    return StratifiedEstimate(
        mean=mean,
        variance=variance,
        std_error=std_error,
        df=df,
        t_value=t_value,
        confidence=confidence,
        ci_lower=mean - margin,
        ci_upper=mean + margin,
        margin_of_error=margin,
        percent_error=margin / mean * 100 if mean else float("nan"),
        n=n,
        n_strata=n_strata,
        total_area=total_area,
        total=mean * total_area,
        total_std_error=std_error * total_area,
        strata=strata,
    )


def required_sample_size(
    cv_percent: float,
    allowable_error_percent: float,
    confidence: float = 0.95,
    population_size: int | None = None,
    max_iter: int = 50,
) -> int:
    """
    Plots needed to reach an allowable error under SRS.

    Iterates n = (t · CV / E)² with t taken at n - 1 df until n stabilises,
    starting from the normal quantile.

    Args:
        cv_percent: Coefficient of variation of plot values (%)
        allowable_error_percent: Target half-width of the CI as % of the mean
        confidence: Two-sided confidence level
        population_size: Optional N for the finite population correction
        max_iter: Iteration cap

    Returns:
        Required number of plots (at least 2)
    """
    if cv_percent < 0:
        raise ValueError(f"cv_percent cannot be negative, got {cv_percent}")
    if allowable_error_percent <= 0:
        raise ValueError(
            f"allowable_error_percent must be positive, got {allowable_error_percent}"
        )
    if not 0.0 < confidence < 1.0:
        raise ValueError(f"confidence must be in (0, 1), got {confidence}")

    ratio = cv_percent / allowable_error_percent
    z = stats.norm.ppf(0.5 + confidence / 2)
    n = max(2, math.ceil((z * ratio) ** 2))
    history = [n]

    for _ in range(max_iter):
        t_value = _t_value(confidence, n - 1)
        n_next = max(2, math.ceil((t_value * ratio) ** 2))
        if population_size is not None:
            n_next = max(2, math.ceil(n_next / (1 + n_next / population_size)))
        if n_next in history:
            # Converged, or cycling: keep the largest n in the cycle
            return max(history[history.index(n_next):])
        history.append(n_next)
        n = n_next

    return n
