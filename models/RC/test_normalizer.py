import pytest
import torch

from RC.normalizer import Normalizer


def test_use_before_adjust_raises():
    norm = Normalizer(0.0)
    with pytest.raises(RuntimeError):
        norm.normalize(1.0)
    norm.adjust(3.0)
    norm.adjust(3.0)
    assert not norm.initialized
    with pytest.raises(RuntimeError):
        norm.naturalize(0.0)


def test_plain_range_normalisation():
    norm = Normalizer(0.0, standardize=False)
    norm.adjust(torch.arange(11, dtype=torch.float64))
    assert norm.normalize(0.0) == pytest.approx(-1.0)
    assert norm.normalize(10.0) == pytest.approx(1.0)
    assert norm.normalize(5.0) == pytest.approx(0.0)
    assert norm.naturalize(0.5) == pytest.approx(7.5)
    assert norm.compute_natural_span(2.0) == pytest.approx(10.0)


def test_reserve_ratio_widens_the_range():
    norm = Normalizer(0.2, standardize=False)
    norm.adjust(torch.tensor([0.0, 10.0]))
    # natural range widens to <-1; 11>
    assert norm.normalize(-1.0) == pytest.approx(-1.0)
    assert norm.normalize(11.0) == pytest.approx(1.0)


def test_standardized_round_trip_and_bounds():
    values = torch.tensor([1.0, 2.0, 2.5, 4.0, 9.0], dtype=torch.float64)
    norm = Normalizer(0.1, standardize=True, norm_range=(0.0, 1.0))
    norm.adjust(values)
    normalized = norm.normalize(values)
    assert normalized.min().item() >= 0.0
    assert normalized.max().item() <= 1.0
    assert torch.allclose(norm.naturalize(normalized), values)


def test_invalid_arguments_raise():
    with pytest.raises(ValueError):
        Normalizer(-0.1)
    with pytest.raises(ValueError):
        Normalizer(0.0, norm_range=(1.0, 1.0))
