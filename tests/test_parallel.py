"""Tests for parallel processing functionality."""

import multiprocessing as mp

import pytest


class TestGetOptimalWorkers:
    """Test resolving the --threads value."""

    def test_auto_leaves_one_core(self):
        """0 uses every core but one."""
        from asvtoolkit.dada.parallel import get_optimal_workers

        assert get_optimal_workers(0) == max(1, mp.cpu_count() - 1)
        assert get_optimal_workers(-3) == get_optimal_workers(0)

    def test_capped_at_core_count(self):
        from asvtoolkit.dada.parallel import get_optimal_workers

        assert get_optimal_workers(mp.cpu_count() + 50) == mp.cpu_count()

    def test_single_worker(self):
        """Test single worker mode."""
        from asvtoolkit.dada.parallel import get_optimal_workers

        assert get_optimal_workers(1) == 1


class TestSplitRoundRobin:
    """Test chunking of comparison work."""

    def test_round_robin(self):
        from asvtoolkit.dada.parallel import split_round_robin

        assert split_round_robin(list(range(7)), 3) == [[0, 3, 6], [1, 4], [2, 5]]

    def test_empty_buckets_dropped(self):
        from asvtoolkit.dada.parallel import split_round_robin

        assert split_round_robin([1, 2], 5) == [[1], [2]]
        assert split_round_robin([], 3) == []


class TestComparisonPool:
    """Test that worker comparisons match in-process comparisons."""

    @staticmethod
    def _uniques():
        import numpy as np
        from asvtoolkit.dada.derep import dereplicate
        from asvtoolkit.simulate import IlluminaReadSimulator, random_sequence, simulate_sample

        rng = np.random.default_rng(8)
        template = random_sequence(60, rng)
        reads = simulate_sample({template: 200}, IlluminaReadSimulator(rng=rng, error_scale=5.0))
        return dereplicate(reads), template

    def test_local_pool(self):
        """Test in-process comparisons."""
        from asvtoolkit.dada.config import AlignParams, DenoiseParams
        from asvtoolkit.dada.error_models import nominal_error_model
        from asvtoolkit.dada.parallel import ComparisonPool

        uniques, template = self._uniques()
        with ComparisonPool(list(uniques), nominal_error_model(), AlignParams(),
                            DenoiseParams()) as pool:
            results = pool.compare(template, None, range(len(uniques)))
        assert [idx for idx, _, _ in results] == list(range(len(uniques)))
        assert all(comparison is not None for _, comparison, _ in results)

    @pytest.mark.slow
    def test_workers_match_local(self):
        """Test that two workers give the same comparisons in index order."""
        from asvtoolkit.dada.config import AlignParams, DenoiseParams
        from asvtoolkit.dada.error_models import nominal_error_model
        from asvtoolkit.dada.parallel import ComparisonPool

        uniques, template = self._uniques()
        args = (list(uniques), nominal_error_model(), AlignParams(), DenoiseParams())
        indices = list(range(len(uniques)))
        with ComparisonPool(*args) as local:
            expected = local.compare(template, None, indices)
        with ComparisonPool(*args, num_workers=2) as pool:
            actual = pool.compare(template, None, indices)

        assert [r[0] for r in actual] == [r[0] for r in expected]
        for (_, a, _), (_, b, _) in zip(actual, expected):
            assert a.lambda_ == pytest.approx(b.lambda_)
            assert a.distance == b.distance


class TestMapSamples:
    """Test per-sample mapping."""

    def test_sequential(self):
        from asvtoolkit.dada.parallel import map_samples

        assert map_samples(pow, [(2, 3), (3, 2)]) == [8, 9]

    @pytest.mark.slow
    def test_pool_keeps_order(self):
        """Test that pooled results come back in task order."""
        from asvtoolkit.dada.parallel import map_samples

        tasks = [(n, 2) for n in range(10)]
        assert map_samples(pow, tasks, num_workers=2) == [n ** 2 for n in range(10)]
