"""
Per-sample read tracking through the pipeline.
"""

import logging
from dataclasses import asdict, dataclass, fields
from typing import Mapping

import pandas as pd

logger = logging.getLogger(__name__)


@dataclass
class SampleDiagnostics:
    """Read counts of one sample after each stage."""
    input: int = 0
    excluded: int = 0
    denoised_f: int = 0
    denoised_r: int = 0
    merged: int = 0
    merge_rejected: int = 0
    chimeric: int = 0
    nonchim: int = 0
    asvs: int = 0
    converged: bool = True


DIAGNOSTIC_COLUMNS = [f.name for f in fields(SampleDiagnostics)]


def diagnostics_frame(records: Mapping[str, SampleDiagnostics]) -> pd.DataFrame:
    """One row per sample, columns in pipeline order."""
    df = pd.DataFrame([asdict(r) for r in records.values()],
                      index=pd.Index(list(records), name="sample"),
                      columns=DIAGNOSTIC_COLUMNS)
    return df


def retention(df: pd.DataFrame) -> pd.Series:
    """Fraction of input reads that reach the final table, per sample."""
    return (df["nonchim"] / df["input"].where(df["input"] > 0)).fillna(0.0)


def log_summary(df: pd.DataFrame):
    """Log a short pipeline summary."""
    if df.empty:
        logger.info("No samples processed")
        return
    kept = retention(df)
    logger.info("=" * 50)
    logger.info(f"Samples: {len(df)}")
    logger.info(f"Input reads: {int(df['input'].sum())}")
    logger.info(f"Merged reads: {int(df['merged'].sum())}")
    logger.info(f"Chimeric reads: {int(df['chimeric'].sum())}")
    logger.info(f"Non-chimeric reads: {int(df['nonchim'].sum())}")
    logger.info(f"Median retention: {kept.median():.1%}")
    not_converged = df.index[~df["converged"].astype(bool)].tolist()
    if not_converged:
        logger.warning(f"Denoising did not converge for: {', '.join(map(str, not_converged))}")
    logger.info("=" * 50)
