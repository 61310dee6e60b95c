"""
Multiprocessing support.

Two levels of parallelism:
- samples: independent per-sample pipelines mapped over a Pool
- comparisons: within one sample, unique-vs-center comparisons split into
  chunks; each worker holds its own read-only Comparer
"""

import logging
import multiprocessing as mp
from typing import Any, Callable, List, Optional, Sequence, Tuple

import numpy as np

from .compare import Comparer
from .config import AlignParams, DenoiseParams
from .error_models import ErrorModel
from .models import Comparison, UniqueSequence

logger = logging.getLogger(__name__)

_COMPARER: Optional[Comparer] = None


def get_optimal_workers(requested: int = 0) -> int:
    """
    Resolve the ``-t/--threads`` value of the asv commands.

    0 (or less) means every core but one; larger requests are capped at the
    core count.
    """
    cores = mp.cpu_count()
    if requested <= 0:
        workers = max(1, cores - 1)
        logger.debug(f"Using {workers} of {cores} cores")
        return workers
    return min(requested, cores)


def split_round_robin(items: Sequence[Any], n_chunks: int) -> List[List[Any]]:
    """Deal ``items`` into ``n_chunks`` buckets; empty buckets are dropped."""
    buckets: List[List[Any]] = [[] for _ in range(max(1, n_chunks))]
    for idx, item in enumerate(items):
        buckets[idx % len(buckets)].append(item)
    return [b for b in buckets if b]


def _init_compare_worker(
    uniques: List[UniqueSequence],
    error_model: ErrorModel,
    align_params: AlignParams,
    denoise_params: DenoiseParams,
):
    global _COMPARER
    _COMPARER = Comparer(uniques, error_model, align_params, denoise_params)


def _worker_compare(center, center_quality, indices, screen):
    if _COMPARER is None:
        raise RuntimeError("Comparer not initialized in worker process")
    return _COMPARER.compare_many(center, center_quality, indices, screen)


class ComparisonPool:
    """
    Persistent worker pool for the comparisons of one sample.

    With ``num_workers <= 1`` no processes are started and comparisons run in
    the calling process.
    """

    def __init__(
        self,
        uniques: List[UniqueSequence],
        error_model: ErrorModel,
        align_params: AlignParams,
        denoise_params: DenoiseParams,
        num_workers: int = 1,
        chunks_per_worker: int = 4,
    ):
        self.num_workers = max(1, num_workers)
        self.chunks_per_worker = chunks_per_worker
        self._local = Comparer(uniques, error_model, align_params, denoise_params)
        self._pool = None
        if self.num_workers > 1:
            self._pool = mp.Pool(
                self.num_workers,
                initializer=_init_compare_worker,
                initargs=(uniques, error_model, align_params, denoise_params),
            )

    def compare(
        self,
        center: str,
        center_quality: Optional[np.ndarray],
        indices: Sequence[int],
        screen: bool = True,
    ) -> List[Tuple[int, Optional[Comparison], Optional[str]]]:
        if self._pool is None or len(indices) < 2 * self.num_workers:
            return self._local.compare_many(center, center_quality, indices, screen)

        chunks = split_round_robin(list(indices), self.num_workers * self.chunks_per_worker)
        tasks = [(center, center_quality, chunk, screen) for chunk in chunks]
        results = self._pool.starmap(_worker_compare, tasks)

        merged = [item for chunk_result in results for item in chunk_result]
        merged.sort(key=lambda item: item[0])
        return merged

    def close(self):
        if self._pool is not None:
            self._pool.close()
            self._pool.join()
            self._pool = None

    def terminate(self):
        if self._pool is not None:
            self._pool.terminate()
            self._pool.join()
            self._pool = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.terminate()
        else:
            self.close()


def map_samples(
    func: Callable,
    tasks: Sequence[Tuple],
    num_workers: int = 1,
) -> List[Any]:
    """
    ``func(*task)`` for every task, over a process pool when num_workers > 1.

    Results are returned in task order.
    """
    num_workers = min(max(1, num_workers), max(1, len(tasks)))
    if num_workers <= 1:
        return [func(*task) for task in tasks]

    logger.info(f"Using {num_workers} workers for {len(tasks)} samples")
    with mp.Pool(num_workers) as pool:
        return pool.starmap(func, tasks, chunksize=1)

