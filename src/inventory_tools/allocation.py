"""
Allocation of sample plots among strata.

Proportional allocation:   n_h = n · A_h / Σ A_h
Optimal (Neyman):          n_h = n · A_h S_h / Σ (A_h S_h)

Raw allocations are fractional and sum to n. Rounded allocations use the
largest-remainder method, so they sum to exactly n. Strata below a
per-stratum minimum are held at it and the rest reallocated; the total
exceeds n only when the minimum times the number of strata does.
"""

import math

import pandas as pd


def _as_series(values, name: str) -> pd.Series:
    series = pd.Series(values, dtype=float, name=name)
    if series.isna().any():
        raise ValueError(f"{name} contains missing values")
    if (series < 0).any():
        raise ValueError(f"{name} cannot be negative")
    return series


def _largest_remainder(share: pd.Series, total: int) -> pd.Series:
    floors = share.apply(math.floor).astype(int)
    shortfall = total - int(floors.sum())
    if shortfall > 0:
        remainders = (share - floors).sort_values(ascending=False, kind="mergesort")
        for stratum in remainders.index[:shortfall]:
            floors.loc[stratum] += 1
    return floors


def _round_allocation(raw: pd.Series, n_total: int, min_per_stratum: int) -> pd.Series:
    """
    Whole-plot allocation with a per-stratum floor.

    Strata whose share falls below the floor are fixed at the floor and the
    remaining plots are reallocated among the other strata, repeating until
    no share is below the floor. The total exceeds n_total only when
    min_per_stratum × L already does.
    """
    result = pd.Series(min_per_stratum, index=raw.index, dtype=int)
    if min_per_stratum * len(raw) >= n_total:
        return result

    free = raw.index
    while True:
        remaining = n_total - min_per_stratum * (len(raw) - len(free))
        share = remaining * raw.loc[free] / raw.loc[free].sum()
        below = share.index[share < min_per_stratum]
        if below.empty:
            break
        free = free[~free.isin(below)]

    rounded = _largest_remainder(share, remaining)
    result.loc[rounded.index] = rounded
    return result


def _allocate(
    size: pd.Series,
    n_total: int,
    rounded: bool,
    min_per_stratum: int,
    name: str,
) -> pd.Series:
    if n_total <= 0:
        raise ValueError(f"n_total must be positive, got {n_total}")
    if min_per_stratum < 0:
        raise ValueError("min_per_stratum cannot be negative")

    total_size = size.sum()
    if total_size <= 0:
        raise ValueError("Allocation weights must have a positive sum")

    raw = n_total * size / total_size
    result = _round_allocation(raw, n_total, min_per_stratum) if rounded else raw
    result.index.name = "stratum"

    return result.rename(name)


def proportional_allocation(
    areas,
    n_total: int,
    rounded: bool = False,
    min_per_stratum: int = 0,
) -> pd.Series:
    """
    Allocate plots to strata in proportion to stratum area.

    Args:
        areas: Stratum areas (Series or dict keyed by stratum)
        n_total: Total number of plots to allocate
        rounded: Return whole plots (largest-remainder rounding)
        min_per_stratum: Floor applied to rounded allocations

    Returns:
        Series of plots per stratum

    Example:
        >>> proportional_allocation({"A": 300, "B": 100}, 20)
        stratum
        A    15.0
        B     5.0
        Name: proportional, dtype: float64
    """
    size = _as_series(areas, "areas")
    return _allocate(size, n_total, rounded, min_per_stratum, "proportional")


def optimal_allocation(
    areas,
    std_devs,
    n_total: int,
    rounded: bool = False,
    min_per_stratum: int = 0,
) -> pd.Series:
    """
    Allocate plots to strata in proportion to area × standard deviation.

    Args:
        areas: Stratum areas (Series or dict keyed by stratum)
        std_devs: Within-stratum standard deviations, same strata as areas
        n_total: Total number of plots to allocate
        rounded: Return whole plots (largest-remainder rounding)
        min_per_stratum: Floor applied to rounded allocations

    Returns:
        Series of plots per stratum

    Raises:
        ValueError: If the strata in areas and std_devs differ
    """
    area_series = _as_series(areas, "areas")
    sd_series = _as_series(std_devs, "std_devs")

    if set(area_series.index) != set(sd_series.index):
        raise ValueError(
            f"Strata differ between areas {sorted(area_series.index)} "
            f"and std_devs {sorted(sd_series.index)}"
        )

    size = area_series * sd_series.reindex(area_series.index)
    return _allocate(size, n_total, rounded, min_per_stratum, "optimal")


def allocation_table(
    areas,
    std_devs,
    n_total: int,
    min_per_stratum: int = 0,
) -> pd.DataFrame:
    """
    Side-by-side proportional and optimal allocations.

    Returns:
        DataFrame indexed by stratum with columns area, std_dev,
        proportional, proportional_plots, optimal, optimal_plots
        (the *_plots columns are rounded whole plots)
    """
    area_series = _as_series(areas, "areas")
    sd_series = _as_series(std_devs, "std_devs")

    table = pd.DataFrame(
        {
            "area": area_series,
            "std_dev": sd_series.reindex(area_series.index),
            "proportional": proportional_allocation(area_series, n_total),
            "proportional_plots": proportional_allocation(
                area_series, n_total, rounded=True, min_per_stratum=min_per_stratum
            ),
            "optimal": optimal_allocation(area_series, sd_series, n_total),
            "optimal_plots": optimal_allocation(
                area_series,
                sd_series,
                n_total,
                rounded=True,
                min_per_stratum=min_per_stratum,
            ),
        }
    )
    table.index.name = "stratum"

    return table
