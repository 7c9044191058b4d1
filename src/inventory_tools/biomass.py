"""
Nonlinear regression of aboveground biomass on stem diameter.

Model (log-log power law, fit on the original biomass scale):

    biomass = exp(b0 + b1 * ln(DBH))

Fits are made by nonlinear least squares (scipy.optimize.curve_fit) from
supplied starting values, either on the pooled dataset or one per species.
"""

from dataclasses import asdict, dataclass, field

import numpy as np
import pandas as pd
from scipy import stats
from scipy.optimize import curve_fit

from .config import DEFAULT_START_PARAMS

N_PARAMS = 2


class BiomassFitError(RuntimeError):
    """Raised when the least squares solver fails for a biomass model."""

    def __init__(self, message: str, species: str | None = None):
        super().__init__(message)
        self.species = species


def log_power_law(dbh, b0: float, b1: float):
    """Biomass predicted from DBH: exp(b0 + b1 * ln(dbh))."""
    return np.exp(b0 + b1 * np.log(dbh))


@dataclass
class BiomassFit:
    """
    Result of a biomass model fit.

    Attributes:
        species: Species code, or None for the pooled (all species) fit
        b0: Intercept on the log scale
        b1: DBH exponent
        se_b0: Standard error of b0
        se_b1: Standard error of b1
        n: Number of trees
        df: Residual degrees of freedom (n - 2)
        rss: Residual sum of squares
        residual_se: Residual standard error sqrt(rss / df)
        r_squared: 1 - RSS/TSS on the biomass scale
        aic: Akaike information criterion (Gaussian errors)
        dbh_min: Smallest DBH in the fitting data
        dbh_max: Largest DBH in the fitting data
        covariance: 2x2 parameter covariance matrix
    """

    species: str | None
    b0: float
    b1: float
    se_b0: float
    se_b1: float
    n: int
    df: int
    rss: float
    residual_se: float
    r_squared: float
    aic: float
    dbh_min: float
    dbh_max: float
    covariance: np.ndarray = field(repr=False)

    @property
    def label(self) -> str:
        return "ALL" if self.species is None else str(self.species)

    def predict(self, dbh):
        """Predict biomass for one or more DBH values."""
        return log_power_law(np.asarray(dbh, dtype=float), self.b0, self.b1)

    def confidence_interval(self, level: float = 0.95) -> dict[str, tuple[float, float]]:
        """t-based confidence intervals for b0 and b1."""
        if not 0.0 < level < 1.0:
            raise ValueError(f"level must be in (0, 1), got {level}")
        t_value = stats.t.ppf(0.5 + level / 2, self.df)
        return {
            "b0": (self.b0 - t_value * self.se_b0, self.b0 + t_value * self.se_b0),
            "b1": (self.b1 - t_value * self.se_b1, self.b1 + t_value * self.se_b1),
        }

    def to_dict(self) -> dict:
        """Scalar fields only (covariance dropped), with species labelled."""
        data = asdict(self)
        data.pop("covariance")
        data["species"] = self.label
        return data


def fit_biomass_model(
    trees: pd.DataFrame,
    start: tuple[float, float] = DEFAULT_START_PARAMS,
    species: str | None = None,
    max_evals: int = 5000,
) -> BiomassFit:
    """
    Fit exp(b0 + b1 * ln(DBH)) to tree biomass by nonlinear least squares.

    Args:
        trees: Cleaned tree DataFrame with dbh and biomass columns
        start: Starting values (b0, b1)
        species: Label stored on the result (None = pooled fit)
        max_evals: Maximum function evaluations for the solver

    Returns:
        BiomassFit with coefficients and fit statistics

    Raises:
        ValueError: If there are fewer than 3 trees
        BiomassFitError: If the solver does not converge or the parameter
            covariance cannot be estimated

    Example:
        >>> valid, _ = clean_trees(load_trees())
        >>> fit = fit_biomass_model(valid, start=(-2.0, 2.4))
        >>> fit.predict([10.0, 20.0])
    """
    x = trees["dbh"].to_numpy(dtype=float)
    y = trees["biomass"].to_numpy(dtype=float)
    n = len(x)
    label = "all species" if species is None else f"species {species}"

    if n < N_PARAMS + 1:
        raise ValueError(f"Need at least {N_PARAMS + 1} trees to fit {label}, got {n}")

    try:
        params, covariance = curve_fit(
            log_power_law, x, y, p0=list(start), maxfev=max_evals
        )
    except RuntimeError as e:
        raise BiomassFitError(f"Fit did not converge for {label}: {e}", species) from e

    if not np.all(np.isfinite(covariance)):
        raise BiomassFitError(
            f"Parameter covariance could not be estimated for {label}", species
        )

    b0, b1 = (float(p) for p in params)
    residuals = y - log_power_law(x, b0, b1)
    rss = float(np.sum(residuals**2))
    df = n - N_PARAMS
    tss = float(np.sum((y - y.mean()) ** 2))

    r_squared = 1.0 - rss / tss if tss > 0 else float("nan")
    if rss > 0:
        # Same convention as R's AIC() for nls: sigma counts as a parameter
        aic = n * (np.log(2 * np.pi) + np.log(rss / n) + 1) + 2 * (N_PARAMS + 1)
    else:
        aic = float("nan")

    return BiomassFit(
        species=species,
        b0=b0,
        b1=b1,
        se_b0=float(np.sqrt(covariance[0, 0])),
        se_b1=float(np.sqrt(covariance[1, 1])),
        n=n,
        df=df,
        rss=rss,
        residual_se=float(np.sqrt(rss / df)),
        r_squared=float(r_squared),
        aic=float(aic),
        dbh_min=float(x.min()),
        dbh_max=float(x.max()),
        covariance=covariance,
    )


def fit_by_species(
    trees: pd.DataFrame,
    start: tuple[float, float] = DEFAULT_START_PARAMS,
    min_trees: int = 5,
    max_evals: int = 5000,
) -> tuple[dict[str, BiomassFit], list[dict]]:
    """
    Fit one biomass model per species.

    Species with fewer than `min_trees` trees, or whose fit fails, are
    skipped and recorded in the failure list; the remaining species are
    still fit.

    Args:
        trees: Cleaned tree DataFrame with species, dbh, biomass columns
        start: Starting values (b0, b1) used for every species
        min_trees: Minimum trees required for a species fit
        max_evals: Maximum function evaluations per fit

    Returns:
        Tuple of (fits, failures)
            - fits: Dict mapping species code to BiomassFit
            - failures: List of dicts with species, n, reason

    Raises:
        ValueError: If min_trees is below the number of trees a fit needs
    """
    if min_trees < N_PARAMS + 1:
        raise ValueError(f"min_trees must be >= {N_PARAMS + 1}, got {min_trees}")

    fits = {}
    failures = []

    for species, group in trees.groupby("species", sort=True):
        n = len(group)
        if n < min_trees:
            reason = f"insufficient trees ({n} < {min_trees})"
            print(f"Warning: skipping species {species}: {reason}", flush=True)
            failures.append({"species": species, "n": n, "reason": reason})
            continue

        try:
            fits[species] = fit_biomass_model(
                group, start=start, species=species, max_evals=max_evals
            )
        except BiomassFitError as e:
            print(f"Warning: {e}", flush=True)
            failures.append({"species": species, "n": n, "reason": str(e)})

    return fits, failures


def fit_summary_table(fits) -> pd.DataFrame:
    """
    Tabulate fit coefficients and statistics, one row per fit.

    Args:
        fits: BiomassFit objects as a list or a dict (values are used).
            The pooled fit, if present, is placed first.

    Returns:
        DataFrame with columns species, n, b0, se_b0, b1, se_b1,
        residual_se, r_squared, aic, dbh_min, dbh_max
    """
    if isinstance(fits, dict):
        fits = list(fits.values())

    ordered = sorted(fits, key=lambda f: (f.species is not None, f.label))
    columns = [
        "species",
        "n",
        "b0",
        "se_b0",
        "b1",
        "se_b1",
        "residual_se",
        "r_squared",
        "aic",
        "dbh_min",
        "dbh_max",
    ]
    rows = [fit.to_dict() for fit in ordered]

    return pd.DataFrame(rows, columns=columns)


def predict_biomass(
    trees: pd.DataFrame,
    fit: BiomassFit | dict[str, BiomassFit],
    fallback: BiomassFit | None = None,
) -> pd.DataFrame:
    """
    Add predictions and residual diagnostics to a tree table.

    Args:
        trees: Tree DataFrame with species, dbh, biomass columns
        fit: A single fit applied to every tree, or a dict of per-species fits
        fallback: Fit used for species missing from a per-species dict
            (typically the pooled fit). Without it those trees get NaN.

    Returns:
        Copy of trees with predicted, residual (observed - predicted) and
        std_residual (residual / residual standard error) columns
    """
    result = trees.copy()
    result["predicted"] = np.nan
    result["residual"] = np.nan
    result["std_residual"] = np.nan

    if isinstance(fit, BiomassFit):
        groups = [(fit, result.index)]
    else:
        groups = []
        for species, group in result.groupby("species", sort=False):
            model = fit.get(species, fallback)
            if model is not None:
                groups.append((model, group.index))

    for model, index in groups:
        predicted = model.predict(result.loc[index, "dbh"])
        residual = result.loc[index, "biomass"].to_numpy(dtype=float) - predicted
        result.loc[index, "predicted"] = predicted
        result.loc[index, "residual"] = residual
        if model.residual_se > 0:
            result.loc[index, "std_residual"] = residual / model.residual_se

    return result


def compare_species_models(
    trees: pd.DataFrame,
    global_fit: BiomassFit,
    fits: dict[str, BiomassFit],
) -> dict[str, float]:
    """
    Extra-sum-of-squares F test: pooled model vs species-specific models.

    The pooled model is refit on the trees of the species that have their
    own fit (starting from the global coefficients) so both models describe
    the same data.

    Returns:
        Dict with rss_pooled, df_pooled, rss_species, df_species,
        f_statistic, p_value

    Raises:
        ValueError: If fewer than two species fits are given
    """
    if len(fits) < 2:
        raise ValueError("Need at least two species fits to compare models")

    subset = trees[trees["species"].isin(fits)]
    pooled = fit_biomass_model(subset, start=(global_fit.b0, global_fit.b1))

    rss_species = sum(f.rss for f in fits.values())
    df_species = sum(f.df for f in fits.values())
    df_extra = pooled.df - df_species

    if rss_species > 0:
        f_statistic = ((pooled.rss - rss_species) / df_extra) / (
            rss_species / df_species
        )
        p_value = float(stats.f.sf(f_statistic, df_extra, df_species))
    else:
        f_statistic = float("inf")
        p_value = 0.0

    return {
        "rss_pooled": pooled.rss,
        "df_pooled": pooled.df,
        "rss_species": rss_species,
        "df_species": df_species,
        "f_statistic": float(f_statistic),
        "p_value": p_value,
    }
