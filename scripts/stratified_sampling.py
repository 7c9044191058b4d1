#!/usr/bin/env python3
"""
Stand basal area: simple random vs. stratified sampling, and plot allocation.

Steps:
1. Load and clean the plot spreadsheet, attach stratum (management unit) areas
2. SRS estimate of BAPA, ignoring strata
3. Stratified estimate of BAPA, strata weighted by area
4. Proportional and optimal (Neyman) allocation of TOTAL_PLOTS plots
5. Print tables, save plots, archive results

Set PLOT_DATA_URL / STRATA_DATA_URL to read the published spreadsheets.

Output: outputs/sampling/
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import inventory_tools as inv
from inventory_tools.config import (
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PLOT_DATA,
    DEFAULT_STRATA_DATA,
)
from inventory_tools.plots import plot_allocation, plot_stratum_means
from inventory_tools.results_db import (
    create_results_database,
    write_allocation,
    write_run_meta,
    write_sampling_estimate,
)

# Configuration
TOTAL_PLOTS = 30
CONFIDENCE = 0.95
BAF = None  # Set when the plot sheet holds prism tallies instead of BAPA
ALLOWABLE_ERROR_PCT = 10.0
OUTPUT_DIR = DEFAULT_OUTPUT_DIR / "sampling"


def main():
    """Run the sampling analysis."""
    config = inv.SamplingConfig(
        confidence=CONFIDENCE,
        total_plots=TOTAL_PLOTS,
        baf=BAF,
    )
    run_id = f"sampling_{config.run_id}"
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

    print("=" * 70)
    print("Stratified Sampling of Basal Area")
    print("=" * 70)
    print(f"Plots: {DEFAULT_PLOT_DATA}")
    print(f"Strata: {DEFAULT_STRATA_DATA or 'area column on plot sheet'}")
    print(f"Output: {OUTPUT_DIR}")

    plots = inv.load_plots(DEFAULT_PLOT_DATA, baf=config.baf)
    plots, report = inv.clean_plots(plots)
    inv.print_validation_report(report, label="Plot")

    if DEFAULT_STRATA_DATA:
        plots = inv.attach_stratum_areas(plots, inv.load_strata(DEFAULT_STRATA_DATA))
    areas = inv.stratum_areas(plots)

    srs = inv.srs_estimate(
        plots["bapa"], confidence=config.confidence, area=float(areas.sum())
    )
    inv.print_srs_summary(srs)

    needed = inv.required_sample_size(
        srs.cv_percent, ALLOWABLE_ERROR_PCT, confidence=config.confidence
    )
    print(f"  Plots for ±{ALLOWABLE_ERROR_PCT:.0f}% under SRS: {needed}")

    stratified = inv.stratified_estimate(
        plots, areas, confidence=config.confidence, df_method=config.df_method
    )
    inv.print_stratified_summary(stratified, srs)

    table = inv.allocation_table(
        stratified.strata["area"],
        stratified.strata["std_dev"],
        config.total_plots,
        min_per_stratum=config.min_plots_per_stratum,
    )
    inv.print_allocation_table(table, config.total_plots)

    plot_stratum_means(stratified, save_path=OUTPUT_DIR / "stratum_means.png")
    plot_allocation(table, save_path=OUTPUT_DIR / "allocation.png")

    conn = create_results_database(DEFAULT_OUTPUT_DIR / "results.db")
    try:
        write_run_meta(conn, run_id, "sampling", config, data_source=str(DEFAULT_PLOT_DATA))
        write_sampling_estimate(conn, run_id, "srs", srs)
        write_sampling_estimate(conn, run_id, "stratified", stratified)
        write_allocation(conn, run_id, table)
    finally:
        conn.close()

    print()
    print("=" * 70)
    print(f"Run {run_id} complete. Results: {OUTPUT_DIR}")
    print("=" * 70)


if __name__ == "__main__":
    main()
