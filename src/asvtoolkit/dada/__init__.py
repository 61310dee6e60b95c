"""
Amplicon denoising core.

Dereplicate reads, learn substitution error rates, and partition unique
sequences into exact sequence variants.
"""

from .config import (
    AlignParams, ChimeraParams, DenoiseParams, LearnParams, MergeParams, PipelineConfig,
    get_default_config,
)
from .models import (
    Read, UniqueSequence, UniqueSequenceSet, Comparison, Cluster, ClusterSet, Budget,
    MergedPair, MergeResult, ChimeraCall, ChimeraReport, ExcludedSequence,
)
from .errors import AsvToolkitError, InputError, AlignmentDegenerate, ConvergenceWarning
from .derep import dereplicate, dereplicate_weighted, rereplicate
from .align import Alignment, align, hamming
from .error_models import ErrorModel, get_error_model
from .dada import abundance_pvalue, denoise
from .learn import LearnDiagnostics, learn_error_model

__all__ = [
    'AlignParams',
    'ChimeraParams',
    'DenoiseParams',
    'LearnParams',
    'MergeParams',
    'PipelineConfig',
    'get_default_config',
    'Read',
    'UniqueSequence',
    'UniqueSequenceSet',
    'Comparison',
    'Cluster',
    'ClusterSet',
    'Budget',
    'MergedPair',
    'MergeResult',
    'ChimeraCall',
    'ChimeraReport',
    'ExcludedSequence',
    'AsvToolkitError',
    'InputError',
    'AlignmentDegenerate',
    'ConvergenceWarning',
    'dereplicate',
    'dereplicate_weighted',
    'rereplicate',
    'Alignment',
    'align',
    'hamming',
    'ErrorModel',
    'get_error_model',
    'abundance_pvalue',
    'denoise',
    'LearnDiagnostics',
    'learn_error_model',
]
