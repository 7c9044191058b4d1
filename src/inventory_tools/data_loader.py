"""
Data loading utilities for tree and plot inventory spreadsheets.

Spreadsheet headers are not consistent between field seasons, so each logical
column is located from a list of candidate names and renamed to a canonical
lower-case name (species, dbh, biomass, plot, stratum, bapa, area, count).
"""

from pathlib import Path

import pandas as pd

from .config import DEFAULT_PLOT_DATA, DEFAULT_TREE_DATA


# ============================================================================
# Column Name Candidates
# ============================================================================

TREE_COLUMNS = {
    "species": ["species", "spp", "species_code", "spcd", "sp"],
    "dbh": ["dbh", "dbh_cm", "dbh_in", "diameter", "d"],
    "biomass": ["biomass", "agb", "agb_kg", "biomass_kg", "total_biomass", "mass"],
}

PLOT_COLUMNS = {
    "plot": ["plot", "plot_id", "plotid", "plot_no"],
    "stratum": ["stratum", "strata", "unit", "mgmt_unit", "management_unit", "stand"],
    "bapa": ["bapa", "ba", "ba_ac", "basal_area", "ba_per_acre"],
    "count": ["count", "tally", "tree_count", "in_trees"],
    "area": ["area", "acres", "area_ac", "stratum_area"],
}

STRATA_COLUMNS = {
    "stratum": PLOT_COLUMNS["stratum"],
    "area": PLOT_COLUMNS["area"],
}

SPECIES_COLUMNS = {
    "species": TREE_COLUMNS["species"],
    "common_name": ["common_name", "common", "name", "species_name"],
}


# ============================================================================
# Helper Functions
# ============================================================================


def _find_column(df: pd.DataFrame, candidates: list[str]) -> str | None:
    """
    Find first column matching a candidate name (case-insensitive).

    Args:
        df: DataFrame to search
        candidates: List of possible column names

    Returns:
        Actual column name in df, or None if no match
    """
    lookup = {str(col).strip().lower(): col for col in df.columns}
    for name in candidates:
        if name in lookup:
            return lookup[name]
    return None


def _standardize_columns(
    df: pd.DataFrame, column_map: dict[str, list[str]]
) -> pd.DataFrame:
    """Rename recognised columns to their canonical names."""
    renames = {}
    for canonical, candidates in column_map.items():
        found = _find_column(df, candidates)
        if found is not None and found != canonical:
            renames[found] = canonical
    return df.rename(columns=renames)


def _read_table(source: Path | str) -> pd.DataFrame:
    """
    Read a CSV or Excel table from a local path or URL.

    Raises:
        FileNotFoundError: If a local path does not exist
    """
    source_str = str(source)
    is_url = source_str.startswith(("http://", "https://"))

    if not is_url and not Path(source_str).exists():
        raise FileNotFoundError(f"Data file not found: {source_str}")

    suffix = Path(source_str.split("?")[0]).suffix.lower()
    if suffix in (".xlsx", ".xls"):
        return pd.read_excel(source_str)
    return pd.read_csv(source_str)


def _require_columns(df: pd.DataFrame, required: list[str], label: str) -> None:
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise ValueError(f"{label} data missing required columns: {missing}")


# ============================================================================
# Loading
# ============================================================================


def load_trees(source: Path | str | None = None) -> pd.DataFrame:
    """
    Load tree measurements (species, DBH, aboveground biomass).

    Args:
        source: Path or URL of the tree spreadsheet (defaults to DEFAULT_TREE_DATA)

    Returns:
        DataFrame with canonical columns species, dbh, biomass (plus any
        other columns in the source)
    """
    if source is None:
        source = DEFAULT_TREE_DATA

    df = _standardize_columns(_read_table(source), TREE_COLUMNS)
    _require_columns(df, ["species", "dbh", "biomass"], "Tree")
    df["species"] = df["species"].astype(str).str.strip()

    return df


def load_plots(
    source: Path | str | None = None, baf: float | None = None
) -> pd.DataFrame:
    """
    Load stand plot measurements.

    If the source has no basal area column but has a prism tally column,
    BAPA is derived as count × BAF.

    Args:
        source: Path or URL of the plot spreadsheet (defaults to DEFAULT_PLOT_DATA)
        baf: Basal area factor for prism tallies

    Returns:
        DataFrame with canonical columns plot, stratum, bapa
    """
    if source is None:
        source = DEFAULT_PLOT_DATA

    df = _standardize_columns(_read_table(source), PLOT_COLUMNS)

    if "bapa" not in df.columns and "count" in df.columns:
        if baf is None:
            raise ValueError(
                "Plot data has tree counts but no basal area; a BAF is required"
            )
        df["bapa"] = pd.to_numeric(df["count"], errors="coerce") * baf

    if "plot" not in df.columns:
        df["plot"] = range(1, len(df) + 1)

    _require_columns(df, ["plot", "stratum", "bapa"], "Plot")

    return df


def load_strata(source: Path | str) -> pd.DataFrame:
    """
    Load the stratum (management unit) area table.

    Args:
        source: Path or URL of the strata spreadsheet

    Returns:
        DataFrame with canonical columns stratum, area (acres)
    """
    df = _standardize_columns(_read_table(source), STRATA_COLUMNS)
    _require_columns(df, ["stratum", "area"], "Strata")
    return df


def load_species(source: Path | str) -> pd.DataFrame:
    """Load a species code lookup table (species, common_name)."""
    df = _standardize_columns(_read_table(source), SPECIES_COLUMNS)
    _require_columns(df, ["species", "common_name"], "Species")
    df["species"] = df["species"].astype(str).str.strip()
    return df


# ============================================================================
# Cleaning
# ============================================================================


def _clean_numeric(
    df: pd.DataFrame,
    numeric_cols: list[str],
    key_cols: list[str],
    id_col: str,
    allow_zero: bool,
) -> tuple[pd.DataFrame, dict]:
    """
    Drop rows with missing keys or missing/invalid numeric values.

    Returns:
        Tuple of (valid_rows, report)
    """
    data = df.copy()
    for col in numeric_cols:
        data[col] = pd.to_numeric(data[col], errors="coerce")

    excluded = []
    keep = pd.Series(True, index=data.index)

    for idx, row in data.iterrows():
        reason = None
        for col in key_cols:
            if pd.isna(row[col]) or str(row[col]).strip() in ("", "nan"):
                reason = f"missing {col}"
                break
        if reason is None:
            for col in numeric_cols:
                value = row[col]
                if pd.isna(value):
                    reason = f"missing {col}"
                elif value < 0 or (value == 0 and not allow_zero):
                    reason = f"non-positive {col} ({value})"
                if reason:
                    break
        if reason:
            keep[idx] = False
            excluded.append({"row": idx, "id": row[id_col], "reason": reason})

    valid = data[keep].copy()

    report = {
        "total_rows": len(df),
        "valid_rows": len(valid),
        "excluded_rows": excluded,
    }

    return valid, report


def clean_trees(trees: pd.DataFrame) -> tuple[pd.DataFrame, dict]:
    """
    Remove trees that cannot enter the log-log biomass model.

    DBH and biomass must be present and strictly positive.

    Args:
        trees: Tree DataFrame from load_trees()

    Returns:
        Tuple of (valid_trees, validation_report)

        validation_report contains:
            - total_rows: Original number of trees
            - valid_rows: Number of trees kept
            - excluded_rows: List of dicts with row, id (species), reason

    Example:
        >>> trees = load_trees()
        >>> valid, report = clean_trees(trees)
        >>> print(f"Kept {report['valid_rows']}/{report['total_rows']} trees")
    """
    return _clean_numeric(
        trees,
        numeric_cols=["dbh", "biomass"],
        key_cols=["species"],
        id_col="species",
        allow_zero=False,
    )


def clean_plots(plots: pd.DataFrame) -> tuple[pd.DataFrame, dict]:
    """
    Remove plots without a stratum or a usable basal area.

    Zero BAPA is a valid observation (a plot with no in-trees).

    Args:
        plots: Plot DataFrame from load_plots()

    Returns:
        Tuple of (valid_plots, validation_report)
    """
    return _clean_numeric(
        plots,
        numeric_cols=["bapa"],
        key_cols=["stratum"],
        id_col="plot",
        allow_zero=True,
    )


def print_validation_report(report: dict, label: str = "Row") -> None:
    """
    Print a human-readable validation report.

    Args:
        report: Validation report from clean_trees() or clean_plots()
        label: Noun for the records being validated (e.g. "Tree", "Plot")
    """
    excluded = report["excluded_rows"]

    print(f"\n{label} Validation Report:")
    print(f"  Total rows:    {report['total_rows']}")
    print(f"  Valid rows:    {report['valid_rows']}")
    print(f"  Excluded rows: {len(excluded)}")

    if excluded:
        print("\n  Excluded rows:")
        for exc in excluded:
            print(f"    row {exc['row']} ({exc['id']}): {exc['reason']}")


# ============================================================================
# Joins
# ============================================================================


def join_species_names(trees: pd.DataFrame, species: pd.DataFrame) -> pd.DataFrame:
    """
    Attach common names to trees by species code.

    Trees whose code is not in the lookup keep the code as their name.
    """
    lookup = species[["species", "common_name"]].drop_duplicates("species")
    result = trees.drop(columns=["common_name"], errors="ignore").merge(
        lookup, on="species", how="left"
    )
    result["common_name"] = result["common_name"].fillna(result["species"])
    return result


def stratum_areas(df: pd.DataFrame) -> pd.Series:
    """
    Get stratum areas as a Series indexed by stratum.

    Works on a strata table (one row per stratum) or on plot data carrying a
    per-plot area column, where the first area seen for each stratum is used.

    Raises:
        ValueError: If there is no area column or an area is missing/negative
    """
    if "area" not in df.columns:
        raise ValueError("No area column available for strata")

    areas = df.groupby("stratum", sort=True)["area"].first()
    areas = pd.to_numeric(areas, errors="coerce")

    if areas.isna().any():
        missing = areas[areas.isna()].index.tolist()
        raise ValueError(f"Missing area for strata: {missing}")
    if (areas < 0).any():
        raise ValueError("Stratum areas cannot be negative")

    return areas.rename("area")


def attach_stratum_areas(plots: pd.DataFrame, strata: pd.DataFrame) -> pd.DataFrame:
    """
    Join stratum areas onto plot records.

    Args:
        plots: Plot DataFrame with a stratum column
        strata: Strata DataFrame with stratum and area columns

    Returns:
        Copy of plots with an area column

    Raises:
        ValueError: If any plot's stratum is absent from the strata table
    """
    areas = stratum_areas(strata).reset_index()
    areas["stratum"] = areas["stratum"].astype(str)

    # Stratum ids may be read as int in one table and str in the other
    result = plots.drop(columns=["area"], errors="ignore").copy()
    result["stratum"] = result["stratum"].astype(str)
    result = result.merge(areas, on="stratum", how="left")

    unmatched = sorted(result.loc[result["area"].isna(), "stratum"].unique())
    if unmatched:
        raise ValueError(f"No area found for strata: {unmatched}")

    return result
