import pytest
import torch

from RC.stats import BasicStat, BinDistribution, BinErrStat


def test_basic_stat_scalar_moments():
    stat = BasicStat()
    for v in (1.0, 2.0, 3.0, 4.0):
        stat.add_sample_value(v)
    assert stat.num_samples == 4
    assert stat.sum.item() == pytest.approx(10.0)
    assert stat.arith_avg.item() == pytest.approx(2.5)
    assert stat.min.item() == 1.0
    assert stat.max.item() == 4.0
    assert stat.span.item() == 3.0
    assert stat.variance.item() == pytest.approx(1.25)
    assert stat.root_mean_square.item() == pytest.approx((30.0 / 4) ** 0.5)


def test_basic_stat_empty_reports_zeros():
    stat = BasicStat((3,))
    assert stat.empty
    assert torch.equal(stat.min, torch.zeros(3, dtype=torch.float64))
    assert torch.equal(stat.arith_avg, torch.zeros(3, dtype=torch.float64))


def test_basic_stat_vector_batch_matches_per_sample():
    samples = torch.tensor([[0.0, 1.0], [2.0, -1.0], [4.0, 3.0]], dtype=torch.float64)
    one_by_one, batched = BasicStat((2,)), BasicStat((2,))
    for row in samples:
        one_by_one.add_sample_value(row)
    batched.add_sample_values(samples)
    assert one_by_one.num_samples == batched.num_samples == 3
    assert torch.allclose(one_by_one.std_dev, batched.std_dev)
    assert torch.equal(batched.max, torch.tensor([4.0, 3.0], dtype=torch.float64))


def test_basic_stat_shape_mismatch_raises():
    stat = BasicStat((2,))
    with pytest.raises(ValueError):
        stat.add_sample_value(torch.zeros(3))


def test_basic_stat_clone_is_independent():
    stat = BasicStat()
    stat.add_sample_value(1.0)
    copy = stat.clone()
    stat.add_sample_value(5.0)
    assert copy.num_samples == 1
    assert copy.max.item() == 1.0


def test_bin_distribution_counts_around_border():
    distr = BinDistribution(0.0)
    distr.update(torch.tensor([-1.0, -0.5, 0.0, 1.0, 1.0]))
    assert distr.num_of == [2, 3]
    assert distr.bin_of(0.0) == 1


def test_bin_err_stat_counts_errors_per_ideal_bin():
    stat = BinErrStat(0.0)
    stat.update(0.3, 1.0)
    stat.update(-0.2, 1.0)
    stat.update(-0.9, -1.0)
    stat.update(0.1, -1.0)
    assert stat.num_samples == [2, 2]
    assert stat.num_errors == [1, 1]
    assert stat.total_err_rate == pytest.approx(0.5)
    assert stat.bin_err_rate(1) == pytest.approx(0.5)
