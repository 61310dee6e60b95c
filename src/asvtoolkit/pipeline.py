"""
End-to-end pipeline: reads of many samples -> chimera-filtered ASV table.

Flow:
1. dereplicate every sample (forward and, if present, reverse reads)
2. learn one error model per read direction from a subset of samples
3. per sample: denoise, merge pairs, collect {sequence: abundance}
4. build the table and remove bimeras
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .dada.config import PipelineConfig
from .dada.dada import denoise
from .dada.derep import ReadLike, dereplicate, subsample_for_learning
from .dada.error_models import ErrorModel
from .dada.errors import InputError
from .dada.learn import LearnDiagnostics, learn_error_model
from .dada.models import ChimeraReport, UniqueSequenceSet
from .dada.parallel import map_samples
from .process.chimera import remove_chimeras_from_table
from .process.merge import merge_pairs
from .process.report import SampleDiagnostics, diagnostics_frame, log_summary
from .process.table import build_table
from .utils.logging_utils import log_stage

logger = logging.getLogger(__name__)


@dataclass
class SampleInput:
    """Reads of one sample; ``reverse[i]`` is the mate of ``forward[i]``."""
    name: str
    forward: Sequence[ReadLike]
    reverse: Optional[Sequence[ReadLike]] = None

    @property
    def paired(self) -> bool:
        return self.reverse is not None


@dataclass
class PipelineResult:
    """Outputs of :func:`run_pipeline`."""
    table: pd.DataFrame
    diagnostics: pd.DataFrame
    chimera_report: ChimeraReport
    models: Dict[str, ErrorModel]
    raw_table: Optional[pd.DataFrame] = None
    learn_diagnostics: Dict[str, LearnDiagnostics] = field(default_factory=dict)

    @property
    def sequences(self) -> List[str]:
        return list(self.table.columns)


def _is_read_pair_lists(reads) -> bool:
    """``(forward_reads, reverse_reads)`` rather than a list of reads."""
    if not isinstance(reads, tuple) or len(reads) != 2:
        return False
    first = reads[0]
    return isinstance(first, (list, tuple)) and len(first) > 0 and not isinstance(first[0], str)


def _as_inputs(samples) -> List[SampleInput]:
    if isinstance(samples, Mapping):
        inputs = []
        for name, reads in samples.items():
            if isinstance(reads, SampleInput):
                inputs.append(reads)
            elif _is_read_pair_lists(reads):
                inputs.append(SampleInput(str(name), reads[0], reads[1]))
            else:
                inputs.append(SampleInput(str(name), reads))
        return inputs
    return list(samples)


def process_sample(
    name: str,
    forward: UniqueSequenceSet,
    reverse: Optional[UniqueSequenceSet],
    model_f: ErrorModel,
    model_r: Optional[ErrorModel],
    config: PipelineConfig,
    num_workers: int = 1,
) -> Tuple[str, Dict[str, int], SampleDiagnostics]:
    """
    Denoise (and merge) one dereplicated sample.

    Returns:
        (name, {sequence: abundance}, diagnostics without the chimera columns)
    """
    diag = SampleDiagnostics(input=forward.total_reads)

    clusters_f = denoise(forward, model_f, config.denoise, config.align, num_workers=num_workers)
    diag.denoised_f = clusters_f.total_abundance
    diag.converged = clusters_f.converged

    if reverse is None:
        diag.excluded = clusters_f.excluded_abundance
        counts = clusters_f.sequence_abundances()
        diag.merged = diag.denoised_f
        logger.info(f"{name}: {len(counts)} sequence variants from {diag.input} reads")
        return name, counts, diag

    clusters_r = denoise(reverse, model_r, config.denoise, config.align, num_workers=num_workers)
    diag.denoised_r = clusters_r.total_abundance
    diag.converged = diag.converged and clusters_r.converged

    merged = merge_pairs((forward, clusters_f), (reverse, clusters_r), config.merge)
    diag.excluded = merged.unpaired_reads
    diag.merged = merged.merged_reads
    diag.merge_rejected = merged.rejected_reads
    counts = merged.sequence_abundances()
    logger.info(f"{name}: {len(counts)} merged sequences from {diag.input} read pairs")
    return name, counts, diag


def _learn(
    samples: List[UniqueSequenceSet],
    config: PipelineConfig,
    num_workers: int,
    label: str,
) -> Tuple[ErrorModel, LearnDiagnostics]:
    if config.seed is not None:
        order = np.random.default_rng(config.seed).permutation(len(samples))
        samples = [samples[i] for i in order]
    subset = subsample_for_learning(samples, config.learn.nbases)
    logger.info(f"Learning {label} error rates")
    return learn_error_model(
        subset,
        params=config.learn,
        denoise_params=config.denoise,
        align_params=config.align,
        num_workers=num_workers,
    )


def run_pipeline(
    samples: Union[Sequence[SampleInput], Mapping[str, object]],
    config: Optional[PipelineConfig] = None,
    num_workers: int = 1,
    error_models: Optional[Mapping[str, ErrorModel]] = None,
) -> PipelineResult:
    """
    Run the full pipeline.

    Args:
        samples: SampleInput list, or mapping sample name -> reads (or
            ``(forward_reads, reverse_reads)``)
        config: Pipeline configuration (default PipelineConfig())
        num_workers: Worker processes
        error_models: Pre-learned models keyed "forward" / "reverse"; learning
            is skipped for the directions given

    Returns:
        PipelineResult

    Raises:
        InputError: On an invalid configuration, no samples, mixed single and
            paired samples, or a sample without reads
    """
    config = config or PipelineConfig()
    problems = config.validate()
    if problems:
        raise InputError("Invalid configuration: " + "; ".join(problems))

    inputs = _as_inputs(samples)
    if not inputs:
        raise InputError("No samples given")
    paired = {s.paired for s in inputs}
    if len(paired) > 1:
        raise InputError("Samples mix single-end and paired-end reads")
    paired = paired.pop()
    names = [s.name for s in inputs]
    if len(set(names)) != len(names):
        raise InputError("Sample names must be unique")

    logger.info(f"Processing {len(inputs)} {'paired-end' if paired else 'single-end'} samples")

    derep_f = []
    derep_r = []
    with log_stage(logger, "dereplicate"):
        for sample in inputs:
            try:
                derep_f.append(dereplicate(sample.forward))
                if paired:
                    derep_r.append(dereplicate(sample.reverse))
            except InputError as e:
                raise InputError(f"Sample {sample.name}: {e}") from e

    models: Dict[str, ErrorModel] = dict(error_models or {})
    learn_diags: Dict[str, LearnDiagnostics] = {}
    directions = [("forward", derep_f)] + ([("reverse", derep_r)] if paired else [])
    for direction, derep in directions:
        if direction not in models:
            with log_stage(logger, f"learn {direction} errors"):
                models[direction], learn_diags[direction] = _learn(
                    derep, config, num_workers, direction)

    # one pool level: across samples, or within the only sample
    outer = num_workers if len(inputs) > 1 else 1
    inner = 1 if len(inputs) > 1 else num_workers
    tasks = [
        (s.name, derep_f[i], derep_r[i] if paired else None,
         models["forward"], models.get("reverse"), config, inner)
        for i, s in enumerate(inputs)
    ]
    with log_stage(logger, "denoise"):
        results = map_samples(process_sample, tasks, outer)

    counts = {name: c for name, c, _ in results}
    records = {name: d for name, _, d in results}
    raw_table, _ = build_table(counts)

    if config.remove_chimeras:
        with log_stage(logger, "remove chimeras"):
            table, report = remove_chimeras_from_table(raw_table, config.chimera)
    else:
        table, report = raw_table.copy(), ChimeraReport()

    for name, diag in records.items():
        row = table.loc[name]
        diag.nonchim = int(row.sum())
        diag.chimeric = int(raw_table.loc[name].sum()) - diag.nonchim
        diag.asvs = int((row > 0).sum())

    diagnostics = diagnostics_frame(records)
    log_summary(diagnostics)

    return PipelineResult(
        table=table,
        diagnostics=diagnostics,
        chimera_report=report,
        models=models,
        raw_table=raw_table,
        learn_diagnostics=learn_diags,
    )
