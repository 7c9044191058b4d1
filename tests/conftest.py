"""
Shared fixtures for inventory_tools tests.
"""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest


def power_law_trees(species, b0, b1, dbh, noise=0.0):
    """Trees on an exact power-law curve, with optional deterministic noise."""
    dbh = np.asarray(dbh, dtype=float)
    biomass = np.exp(b0) * dbh**b1
    if noise:
        biomass = biomass * (1 + noise * np.sin(np.arange(len(dbh)) * 1.7))
    return pd.DataFrame({"species": species, "dbh": dbh, "biomass": biomass})


@pytest.fixture
def exact_trees():
    """Twenty trees exactly on biomass = exp(-2.5) * DBH^2.4."""
    return power_law_trees("PIPO", -2.5, 2.4, np.linspace(5, 50, 20))


@pytest.fixture
def mixed_trees():
    """Two well-sampled species with different curves plus one rare species."""
    return pd.concat(
        [
            power_law_trees("PIPO", -2.5, 2.4, np.linspace(5, 50, 12), noise=0.01),
            power_law_trees("PSME", -1.0, 2.0, np.linspace(6, 48, 12), noise=0.01),
            power_law_trees("LAOC", -2.0, 2.3, [10.0, 20.0], noise=0.0),
        ],
        ignore_index=True,
    )


@pytest.fixture
def stratified_plots():
    """Five plots in two strata: A (100 ac) and B (300 ac)."""
    return pd.DataFrame(
        {
            "plot": [1, 2, 3, 4, 5],
            "stratum": ["A", "A", "A", "B", "B"],
            "bapa": [10.0, 12.0, 14.0, 30.0, 34.0],
            "area": [100.0, 100.0, 100.0, 300.0, 300.0],
        }
    )
