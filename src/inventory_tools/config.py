"""
Configuration dataclasses and constants for inventory analyses.

Data sources default to local copies of the course spreadsheets. Set
TREE_DATA_URL / PLOT_DATA_URL / STRATA_DATA_URL to read the published
spreadsheets (CSV export or .xlsx link) directly instead.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path


# Default data sources (path or URL)
DEFAULT_DATA_DIR = Path(os.environ.get("INVENTORY_DATA_DIR", "data"))
DEFAULT_TREE_DATA = os.environ.get(
    "TREE_DATA_URL", str(DEFAULT_DATA_DIR / "biomass_trees.csv")
)
DEFAULT_PLOT_DATA = os.environ.get(
    "PLOT_DATA_URL", str(DEFAULT_DATA_DIR / "stand_plots.csv")
)
DEFAULT_STRATA_DATA = os.environ.get("STRATA_DATA_URL")

# Default output location for plots and the results database
DEFAULT_OUTPUT_DIR = Path(os.environ.get("INVENTORY_OUTPUT_DIR", "outputs"))

# Starting values for exp(b0 + b1 * ln(DBH))
DEFAULT_START_PARAMS = (-2.0, 2.4)

VALID_DF_METHODS = {"n_minus_strata", "satterthwaite"}


@dataclass
class BiomassModelConfig:
    """
    Configuration for the biomass regression.

    Attributes:
        start_params: Starting values (b0, b1) handed to the least squares solver
        min_trees: Minimum trees for a species to get its own fit
        max_evals: Maximum function evaluations before the fit is abandoned
        fit_species: Also fit one model per species
    """

    start_params: tuple[float, float] = DEFAULT_START_PARAMS
    min_trees: int = 5
    max_evals: int = 5000
    fit_species: bool = True

    def __post_init__(self):
        """Validate configuration."""
        if len(self.start_params) != 2:
            raise ValueError(
                f"start_params must be (b0, b1), got {self.start_params}"
            )
        # Two parameters plus at least one residual degree of freedom
        if self.min_trees < 3:
            raise ValueError(f"min_trees must be >= 3, got {self.min_trees}")
        if self.max_evals <= 0:
            raise ValueError("max_evals must be positive")
        self.start_params = tuple(float(p) for p in self.start_params)


@dataclass
class SamplingConfig:
    """
    Configuration for basal area sampling estimates and plot allocation.

    Attributes:
        confidence: Two-sided confidence level for intervals
        total_plots: Plot count to distribute across strata
        baf: Basal area factor (ft²/ac per tallied tree), used when plots
            carry prism counts instead of BAPA
        df_method: Degrees of freedom for the stratified t value
            ("n_minus_strata" or "satterthwaite")
        min_plots_per_stratum: Floor applied to rounded allocations
        run_id: Identifier used when archiving results
    """

    confidence: float = 0.95
    total_plots: int = 30
    baf: float | None = None
    df_method: str = "n_minus_strata"
    min_plots_per_stratum: int = 2

    run_id: str = field(
        default_factory=lambda: datetime.now().strftime("%Y%m%d_%H%M%S")
    )

    def __post_init__(self):
        """Validate configuration."""
        if not 0.0 < self.confidence < 1.0:
            raise ValueError(
                f"confidence must be in (0, 1), got {self.confidence}"
            )
        if self.total_plots <= 0:
            raise ValueError(
                f"total_plots must be positive, got {self.total_plots}"
            )
        if self.baf is not None and self.baf <= 0:
            raise ValueError(f"baf must be positive, got {self.baf}")
        if self.df_method not in VALID_DF_METHODS:
            raise ValueError(
                f"Invalid df_method '{self.df_method}'. "
                f"Valid methods: {sorted(VALID_DF_METHODS)}"
            )
        if self.min_plots_per_stratum < 0:
            raise ValueError("min_plots_per_stratum cannot be negative")
