"""
Visualization functions for biomass fits and sampling results.
"""

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from scipy import stats

from .biomass import BiomassFit
from .sampling import StratifiedEstimate

sns.set_theme(style="whitegrid")
sns.set_palette("husl")


def _finish(fig, save_path) -> None:
    """Save or show the figure, then release it."""
    fig.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=300, bbox_inches="tight")
    else:
        plt.show()
    plt.close(fig)


def plot_biomass_fit(
    trees: pd.DataFrame,
    global_fit: BiomassFit | None = None,
    species_fits: dict[str, BiomassFit] | None = None,
    save_path=None,
    log_scale: bool = False,
):
    """Plot biomass against DBH with fitted curves.

    Args:
        trees: Tree DataFrame with species, dbh, biomass columns
        global_fit: Pooled fit, drawn as a black dashed line
        species_fits: Per-species fits, drawn in each species' colour
        save_path: Optional path to save the plot
        log_scale: Use log-log axes (the model is a straight line there)
    """
    fig, ax = plt.subplots(figsize=(10, 7))

    species_list = sorted(trees["species"].unique())
    palette = dict(zip(species_list, sns.color_palette("husl", len(species_list))))

    sns.scatterplot(
        data=trees, x="dbh", y="biomass", hue="species",
        hue_order=species_list, palette=palette, alpha=0.6, ax=ax,
    )

    grid = np.linspace(trees["dbh"].min(), trees["dbh"].max(), 200)

    for species, fit in (species_fits or {}).items():
        species_grid = grid[(grid >= fit.dbh_min) & (grid <= fit.dbh_max)]
        ax.plot(species_grid, fit.predict(species_grid), color=palette.get(species), lw=1.5)

    if global_fit is not None:
        ax.plot(
            grid, global_fit.predict(grid), "k--", lw=2,
            label=f"All species (b1 = {global_fit.b1:.2f})",
        )

    if log_scale:
        ax.set_xscale("log")
        ax.set_yscale("log")

    ax.set_xlabel("DBH")
    ax.set_ylabel("Aboveground biomass")
    ax.set_title("Biomass vs. DBH")
    ax.legend(fontsize=8)

    _finish(fig, save_path)


def plot_residuals(predictions: pd.DataFrame, save_path=None):
    """Plot residual diagnostics.

    Left: residuals against fitted values. Right: normal Q-Q plot of the
    standardized residuals.

    Args:
        predictions: Output of predict_biomass()
        save_path: Optional path to save the plot
    """
    data = predictions.dropna(subset=["predicted", "residual"])

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(12, 5))

    sns.scatterplot(data=data, x="predicted", y="residual", hue="species", alpha=0.6, ax=ax1)
    ax1.axhline(0, color="k", lw=1)
    ax1.set_xlabel("Fitted biomass")
    ax1.set_ylabel("Residual (observed - fitted)")
    ax1.set_title("Residuals vs. Fitted")

    std_resid = data["std_residual"].dropna()
    if len(std_resid) == 0:
        std_resid = data["residual"]
    stats.probplot(std_resid, dist="norm", plot=ax2)
    ax2.set_title("Normal Q-Q")

    _finish(fig, save_path)


def plot_stratum_means(estimate: StratifiedEstimate, save_path=None, units: str = "ft²/ac"):
    """Plot per-stratum means with t-based confidence bars.

    The stratified mean and its interval are drawn as horizontal lines.

    Args:
        estimate: Result of stratified_estimate()
        save_path: Optional path to save the plot
        units: Units label for the y axis
    """
    strata = estimate.strata
    t_values = stats.t.ppf(0.5 + estimate.confidence / 2, strata["n"] - 1)
    margins = t_values * strata["std_error"]
    labels = [str(s) for s in strata.index]

    fig, ax = plt.subplots(figsize=(10, 6))

    ax.bar(labels, strata["mean"], yerr=margins, capsize=5, alpha=0.7)
    ax.axhline(estimate.mean, color="k", ls="--", label=f"Stratified mean {estimate.mean:.1f}")
    ax.axhspan(estimate.ci_lower, estimate.ci_upper, color="grey", alpha=0.2, label="CI")

    ax.set_xlabel("Stratum")
    ax.set_ylabel(f"Basal area ({units})")
    ax.set_title("Mean basal area by stratum")
    ax.legend()

    _finish(fig, save_path)


def plot_allocation(table: pd.DataFrame, save_path=None):
    """Plot proportional vs. optimal plot allocation.

    Args:
        table: Output of allocation_table()
        save_path: Optional path to save the plot
    """
    long = (
        table[["proportional", "optimal"]]
        .reset_index()
        .melt(id_vars="stratum", var_name="allocation", value_name="plots")
    )
    long["stratum"] = long["stratum"].astype(str)

    fig, ax = plt.subplots(figsize=(10, 6))
    sns.barplot(data=long, x="stratum", y="plots", hue="allocation", ax=ax)
    ax.set_xlabel("Stratum")
    ax.set_ylabel("Plots")
    ax.set_title("Plot allocation")

    _finish(fig, save_path)
