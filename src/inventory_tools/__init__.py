"""
Inventory Tools - statistics for forest inventory data in Python.

This package provides utilities for:
- Loading and cleaning tree and plot spreadsheets
- Fitting power-law biomass models, pooled and per species
- Simple random and stratified estimates of basal area per acre
- Proportional and optimal (Neyman) plot allocation
- Console reports, diagnostic plots and a SQLite results archive
"""

from .config import BiomassModelConfig, SamplingConfig
from .data_loader import (
    load_trees,
    load_plots,
    load_strata,
    load_species,
    clean_trees,
    clean_plots,
    join_species_names,
    attach_stratum_areas,
    stratum_areas,
    print_validation_report,
)
from .biomass import (
    BiomassFit,
    BiomassFitError,
    log_power_law,
    fit_biomass_model,
    fit_by_species,
    fit_summary_table,
    predict_biomass,
    compare_species_models,
)
from .sampling import (
    SampleEstimate,
    StratifiedEstimate,
    srs_estimate,
    stratified_estimate,
    required_sample_size,
)
from .allocation import proportional_allocation, optimal_allocation, allocation_table
from .report import (
    print_fit_summary,
    print_srs_summary,
    print_stratified_summary,
    print_allocation_table,
)

__all__ = [
    "BiomassModelConfig",
    "SamplingConfig",
    "load_trees",
    "load_plots",
    "load_strata",
    "load_species",
    "clean_trees",
    "clean_plots",
    "join_species_names",
    "attach_stratum_areas",
    "stratum_areas",
    "print_validation_report",
    "BiomassFit",
    "BiomassFitError",
    "log_power_law",
    "fit_biomass_model",
    "fit_by_species",
    "fit_summary_table",
    "predict_biomass",
    "compare_species_models",
    "SampleEstimate",
    "StratifiedEstimate",
    "srs_estimate",
    "stratified_estimate",
    "required_sample_size",
    "proportional_allocation",
    "optimal_allocation",
    "allocation_table",
    "print_fit_summary",
    "print_srs_summary",
    "print_stratified_summary",
    "print_allocation_table",
]
