"""
Sample x sequence count table.
"""

import logging
from typing import Dict, List, Mapping, Sequence, Tuple, Union

import pandas as pd

logger = logging.getLogger(__name__)

SampleCounts = Union[Mapping[str, int], Sequence[Tuple[str, int]]]


def build_table(samples: Mapping[str, SampleCounts]) -> Tuple[pd.DataFrame, List[str]]:
    """
    Combine per-sample ``{sequence: abundance}`` mappings into one table.

    Args:
        samples: Sample name -> mapping (or list of pairs) of sequence counts

    Returns:
        (DataFrame with samples as rows and sequences as columns, column
        sequences in order of first appearance). Absent cells are 0.
    """
    columns: List[str] = []
    seen = set()
    rows: Dict[str, Dict[str, int]] = {}

    for sample, counts in samples.items():
        items = counts.items() if isinstance(counts, Mapping) else counts
        row: Dict[str, int] = {}
        for seq, abundance in items:
            if abundance < 0:
                raise ValueError(f"Sample {sample}: negative abundance for a sequence")
            row[seq] = row.get(seq, 0) + int(abundance)
            if seq not in seen:
                seen.add(seq)
                columns.append(seq)
        rows[sample] = row

    table = pd.DataFrame(0, index=pd.Index(list(rows), name="sample"),
                         columns=columns, dtype="int64")
    for sample, row in rows.items():
        if row:
            table.loc[sample, list(row)] = list(row.values())

    logger.info(f"Sequence table: {table.shape[0]} samples x {table.shape[1]} sequences")
    return table, columns


def table_totals(table: pd.DataFrame) -> pd.Series:
    """Reads per sample."""
    return table.sum(axis=1).astype("int64")


def collapse_no_mismatch(table: pd.DataFrame) -> pd.DataFrame:
    """
    Merge columns whose sequences differ only in length at the ends.

    A sequence contained in a more abundant one is folded into it; the more
    abundant column's sequence is kept and column order is preserved.
    """
    totals = table.sum(axis=0)
    position = {s: i for i, s in enumerate(table.columns)}
    order = sorted(table.columns, key=lambda s: (-int(totals[s]), position[s]))
    target: Dict[str, str] = {}
    kept: List[str] = []
    for seq in order:
        home = next((k for k in kept if seq in k or k in seq), None)
        if home is None:
            kept.append(seq)
            target[seq] = seq
        else:
            target[seq] = home

    out = table[[c for c in table.columns if target[c] == c]].copy()
    for seq, home in target.items():
        if seq != home:
            out[home] += table[seq]
    n = table.shape[1] - out.shape[1]
    if n:
        logger.info(f"Collapsed {n} sequences differing only in end length")
    return out
