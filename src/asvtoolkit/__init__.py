"""
asvtoolkit: exact amplicon sequence variants from sequencing reads.

This package provides:
- Dereplication of quality-scored reads
- Self-trained substitution error models
- Divisive denoising of unique sequences into sequence variants
- Paired-read merging
- De novo bimera detection
- Sample x sequence tables
"""

__version__ = "0.1.0"
__author__ = "asvtoolkit Team"
