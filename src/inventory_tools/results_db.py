"""
SQLite archive for analysis results.

Stores one row of metadata per analysis run plus its outputs, so repeated
runs (different data pulls, starting values, plot totals) can be compared:
- Run metadata and configuration
- Biomass fit coefficients and skipped species
- SRS and stratified estimates, with per-stratum statistics
- Plot allocations
"""

import json
import sqlite3
from dataclasses import asdict
from datetime import datetime
from pathlib import Path

import pandas as pd

from .sampling import SampleEstimate, StratifiedEstimate


# SQL Schema Definitions
SCHEMA_RUN_META = """
CREATE TABLE IF NOT EXISTS Run_Meta (
    run_id       TEXT PRIMARY KEY,
    analysis     TEXT NOT NULL,  -- biomass/sampling
    data_source  TEXT,
    created_at   TEXT NOT NULL,
    config_json  TEXT NOT NULL
);
"""

SCHEMA_BIOMASS_FITS = """
CREATE TABLE IF NOT EXISTS Biomass_Fits (
    run_id       TEXT NOT NULL,
    species      TEXT NOT NULL,  -- ALL for the pooled fit
    n            INTEGER NOT NULL,
    b0           REAL,
    se_b0        REAL,
    b1           REAL,
    se_b1        REAL,
    residual_se  REAL,
    r_squared    REAL,
    aic          REAL,
    dbh_min      REAL,
    dbh_max      REAL,
    PRIMARY KEY (run_id, species),
    FOREIGN KEY (run_id) REFERENCES Run_Meta(run_id)
);
"""

SCHEMA_FIT_FAILURES = """
CREATE TABLE IF NOT EXISTS Fit_Failures (
    run_id   TEXT NOT NULL,
    species  TEXT NOT NULL,
    n        INTEGER,
    reason   TEXT NOT NULL,
    PRIMARY KEY (run_id, species)
);
"""

SCHEMA_SAMPLING_ESTIMATES = """
CREATE TABLE IF NOT EXISTS Sampling_Estimates (
    run_id           TEXT NOT NULL,
    label            TEXT NOT NULL,  -- e.g. srs, stratified
    design           TEXT NOT NULL,  -- srs/stratified
    n                INTEGER NOT NULL,
    mean             REAL,
    std_error        REAL,
    df               REAL,
    confidence       REAL,
    ci_lower         REAL,
    ci_upper         REAL,
    percent_error    REAL,
    total            REAL,
    total_std_error  REAL,
    PRIMARY KEY (run_id, label)
);
"""

SCHEMA_STRATUM_STATS = """
CREATE TABLE IF NOT EXISTS Stratum_Stats (
    run_id     TEXT NOT NULL,
    label      TEXT NOT NULL,
    stratum    TEXT NOT NULL,
    area       REAL,
    weight     REAL,
    n          INTEGER,
    mean       REAL,
    std_dev    REAL,
    variance   REAL,
    std_error  REAL,
    PRIMARY KEY (run_id, label, stratum),
    FOREIGN KEY (run_id, label) REFERENCES Sampling_Estimates(run_id, label)
);
"""

SCHEMA_PLOT_ALLOCATION = """
CREATE TABLE IF NOT EXISTS Plot_Allocation (
    run_id              TEXT NOT NULL,
    stratum             TEXT NOT NULL,
    area                REAL,
    std_dev             REAL,
    proportional        REAL,
    proportional_plots  INTEGER,
    optimal             REAL,
    optimal_plots       INTEGER,
    PRIMARY KEY (run_id, stratum)
);
"""

TABLES = {
    "run_meta": "Run_Meta",
    "biomass_fits": "Biomass_Fits",
    "fit_failures": "Fit_Failures",
    "sampling_estimates": "Sampling_Estimates",
    "stratum_stats": "Stratum_Stats",
    "plot_allocation": "Plot_Allocation",
}


def create_results_database(db_path: Path | str) -> sqlite3.Connection:
    """
    Create SQLite database with the results schema.

    Safe to call on an existing database (uses IF NOT EXISTS).

    Args:
        db_path: Path to SQLite database file

    Returns:
        Open connection to the database
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)

    for schema in (
        SCHEMA_RUN_META,
        SCHEMA_BIOMASS_FITS,
        SCHEMA_FIT_FAILURES,
        SCHEMA_SAMPLING_ESTIMATES,
        SCHEMA_STRATUM_STATS,
        SCHEMA_PLOT_ALLOCATION,
    ):
        conn.execute(schema)

    conn.commit()
    return conn


def _insert_frame(conn: sqlite3.Connection, table: str, df: pd.DataFrame) -> None:
    """Insert DataFrame rows into an existing table, one row per record."""
    columns = ", ".join(df.columns)
    placeholders = ", ".join(f":{col}" for col in df.columns)
    records = df.astype(object).where(df.notna(), None).to_dict("records")
    conn.executemany(
        f"INSERT INTO {table} ({columns}) VALUES ({placeholders})", records
    )


def write_run_meta(
    conn: sqlite3.Connection,
    run_id: str,
    analysis: str,
    config: object,
    data_source: str | None = None,
) -> None:
    """
    Record an analysis run.

    Args:
        conn: Database connection
        run_id: Run identifier
        analysis: "biomass" or "sampling"
        config: Config dataclass (or dict) serialised to JSON
        data_source: Path or URL the data came from
    """
    config_dict = config if isinstance(config, dict) else asdict(config)
    conn.execute(
        """
        INSERT OR REPLACE INTO Run_Meta (run_id, analysis, data_source, created_at, config_json)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            run_id,
            analysis,
            data_source,
            datetime.now().isoformat(),
            json.dumps(config_dict, indent=2, default=str),
        ),
    )
    conn.commit()


def write_biomass_fits(
    conn: sqlite3.Connection,
    run_id: str,
    fit_table: pd.DataFrame,
    failures: list[dict] | None = None,
) -> None:
    """
    Write biomass fit coefficients for a run.

    Args:
        conn: Database connection
        run_id: Run identifier
        fit_table: DataFrame from fit_summary_table()
        failures: Failure records from fit_by_species()
    """
    df = fit_table.copy()
    df["species"] = df["species"].astype(str)
    df.insert(0, "run_id", run_id)
    _insert_frame(conn, "Biomass_Fits", df)

    if failures:
        conn.executemany(
            """
            INSERT INTO Fit_Failures (run_id, species, n, reason)
            VALUES (?, ?, ?, ?)
            """,
            [(run_id, str(f["species"]), f["n"], f["reason"]) for f in failures],
        )

    conn.commit()


def write_sampling_estimate(
    conn: sqlite3.Connection,
    run_id: str,
    label: str,
    estimate: SampleEstimate | StratifiedEstimate,
) -> None:
    """
    Write an SRS or stratified estimate (and its stratum table) for a run.

    Args:
        conn: Database connection
        run_id: Run identifier
        label: Name of the estimate within the run (e.g. "srs", "stratified")
        estimate: Result of srs_estimate() or stratified_estimate()
    """
    design = "stratified" if isinstance(estimate, StratifiedEstimate) else "srs"

    conn.execute(
        """
        INSERT INTO Sampling_Estimates (
            run_id, label, design, n, mean, std_error, df, confidence,
            ci_lower, ci_upper, percent_error, total, total_std_error
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            run_id,
            label,
            design,
            estimate.n,
            estimate.mean,
            estimate.std_error,
            estimate.df,
            estimate.confidence,
            estimate.ci_lower,
            estimate.ci_upper,
            estimate.percent_error,
            estimate.total,
            estimate.total_std_error,
        ),
    )

    if design == "stratified":
        strata = estimate.strata.reset_index()
        strata["stratum"] = strata["stratum"].astype(str)
        strata.insert(0, "label", label)
        strata.insert(0, "run_id", run_id)
        _insert_frame(conn, "Stratum_Stats", strata)

    conn.commit()


def write_allocation(
    conn: sqlite3.Connection, run_id: str, table: pd.DataFrame
) -> None:
    """
    Write a plot allocation table for a run.

    Args:
        conn: Database connection
        run_id: Run identifier
        table: DataFrame from allocation_table()
    """
    df = table.reset_index()
    df["stratum"] = df["stratum"].astype(str)
    df.insert(0, "run_id", run_id)
    _insert_frame(conn, "Plot_Allocation", df)
    conn.commit()


def load_results(db_path: Path | str) -> dict[str, pd.DataFrame]:
    """
    Load every results table from the archive.

    Args:
        db_path: Path to the results database

    Returns:
        Dictionary with keys run_meta, biomass_fits, fit_failures,
        sampling_estimates, stratum_stats, plot_allocation

    Raises:
        FileNotFoundError: If the database does not exist
    """
    db_path = Path(db_path)
    if not db_path.exists():
        raise FileNotFoundError(f"Results database not found: {db_path}")

    conn = sqlite3.connect(db_path)

    try:
        return {
            key: pd.read_sql_query(f"SELECT * FROM {table}", conn)
            for key, table in TABLES.items()
        }
    finally:
        conn.close()
