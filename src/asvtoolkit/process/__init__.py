"""
Post-denoising steps: pair merging, chimera removal and the sequence table.
"""

from .merge import merge_pairs, merge_sequences
from .chimera import detect_chimeras, remove_chimeras_from_table
from .table import build_table, collapse_no_mismatch
from .report import SampleDiagnostics, diagnostics_frame

__all__ = [
    'merge_pairs',
    'merge_sequences',
    'detect_chimeras',
    'remove_chimeras_from_table',
    'build_table',
    'collapse_no_mismatch',
    'SampleDiagnostics',
    'diagnostics_frame',
]
