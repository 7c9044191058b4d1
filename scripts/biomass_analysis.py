#!/usr/bin/env python3
"""
Biomass regression: exp(b0 + b1 * ln(DBH)) fit to all trees and per species.

Steps:
1. Load and clean the tree spreadsheet
2. Fit the pooled model, then one model per species
3. Test pooled vs species-specific models
4. Print coefficients, save fit and residual plots, archive results

Set TREE_DATA_URL to read the published spreadsheet directly.

Output: outputs/biomass/
"""

import sys
from datetime import datetime
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import inventory_tools as inv
from inventory_tools.config import DEFAULT_OUTPUT_DIR, DEFAULT_TREE_DATA
from inventory_tools.plots import plot_biomass_fit, plot_residuals
from inventory_tools.results_db import (
    create_results_database,
    write_biomass_fits,
    write_run_meta,
)

OUTPUT_DIR = DEFAULT_OUTPUT_DIR / "biomass"
SPECIES_FILE = None  # Optional species code lookup (species, common_name)


def main():
    """Run the biomass regression analysis."""
    config = inv.BiomassModelConfig(start_params=(-2.0, 2.4), min_trees=5)
    run_id = f"biomass_{datetime.now():%Y%m%d_%H%M%S}"
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

    print("=" * 70)
    print("Biomass Regression")
    print("=" * 70)
    print(f"Data: {DEFAULT_TREE_DATA}")
    print(f"Start values: b0={config.start_params[0]}, b1={config.start_params[1]}")
    print(f"Output: {OUTPUT_DIR}")

    trees = inv.load_trees(DEFAULT_TREE_DATA)
    if SPECIES_FILE is not None:
        trees = inv.join_species_names(trees, inv.load_species(SPECIES_FILE))

    trees, report = inv.clean_trees(trees)
    inv.print_validation_report(report, label="Tree")

    global_fit = inv.fit_biomass_model(
        trees, start=config.start_params, max_evals=config.max_evals
    )

    species_fits, failures = {}, []
    if config.fit_species:
        species_fits, failures = inv.fit_by_species(
            trees,
            start=config.start_params,
            min_trees=config.min_trees,
            max_evals=config.max_evals,
        )

    comparison = None
    if len(species_fits) >= 2:
        comparison = inv.compare_species_models(trees, global_fit, species_fits)

    fit_table = inv.fit_summary_table([global_fit, *species_fits.values()])
    inv.print_fit_summary(fit_table, failures, comparison)

    predictions = inv.predict_biomass(trees, species_fits, fallback=global_fit)
    predictions.to_csv(OUTPUT_DIR / "predictions.csv", index=False)

    plot_biomass_fit(
        trees, global_fit, species_fits, save_path=OUTPUT_DIR / "biomass_fit.png"
    )
    plot_biomass_fit(
        trees,
        global_fit,
        species_fits,
        save_path=OUTPUT_DIR / "biomass_fit_loglog.png",
        log_scale=True,
    )
    plot_residuals(predictions, save_path=OUTPUT_DIR / "residuals.png")

    conn = create_results_database(DEFAULT_OUTPUT_DIR / "results.db")
    try:
        write_run_meta(conn, run_id, "biomass", config, data_source=str(DEFAULT_TREE_DATA))
        write_biomass_fits(conn, run_id, fit_table, failures)
    finally:
        conn.close()

    print()
    print("=" * 70)
    print(f"Run {run_id} complete. Results: {OUTPUT_DIR}")
    print("=" * 70)


if __name__ == "__main__":
    main()
