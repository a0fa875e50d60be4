import math

import pytest
import torch

from RC.config import (
    NetworkConfig,
    ReadoutLayerCfg,
    ReadoutUnitCfg,
    ReservoirConfig,
    ReservoirInstanceCfg,
    TaskType,
)
from RC.data import PatternBundle, TimeSeriesBundle
from RC.network import EchoStateNetwork


def _prediction_cfg(**overrides):
    params = dict(
        input_fields=["x", "y"],
        instances=[
            ReservoirInstanceCfg(
                name="a",
                reservoir=ReservoirConfig(size=12, internal_weight_scale=0.4, feedback_connection_density=0.25),
                input_fields=["x", "y"],
                feedback_fields=["next_x"],
            ),
            ReservoirInstanceCfg(
                name="b",
                reservoir=ReservoirConfig(size=8, topology="ring", internal_weight_scale=0.6),
                input_fields=["y"],
                augmented_states=True,
            ),
        ],
        readout=ReadoutLayerCfg(units=[ReadoutUnitCfg("next_x"), ReadoutUnitCfg("next_y")]),
        task_type=TaskType.PREDICTION,
        randomizer_seed=0,
    )
    params.update(overrides)
    return NetworkConfig(**params)


def _classification_cfg(**overrides):
    params = dict(
        input_fields=["s"],
        instances=[
            ReservoirInstanceCfg(
                name="c",
                reservoir=ReservoirConfig(size=15, internal_weight_scale=0.5),
                input_fields=["s"],
            )
        ],
        readout=ReadoutLayerCfg(
            units=[ReadoutUnitCfg("cls", task_type=TaskType.CLASSIFICATION, test_data_ratio=0.2)]
        ),
        task_type=TaskType.CLASSIFICATION,
        randomizer_seed=1,
    )
    params.update(overrides)
    return NetworkConfig(**params)


def _series(n=120):
    t = torch.arange(n + 1, dtype=torch.float64) * 0.2
    return torch.stack([torch.sin(t), 0.5 * torch.cos(t)], dim=1)


def _patterns(n=30):
    bundle = PatternBundle()
    for i in range(n):
        freq = 0.4 if i % 2 else 1.2
        steps = torch.arange(10, dtype=torch.float64)
        bundle.add_pair(torch.sin(freq * steps + 0.1 * i).unsqueeze(1), [1.0 if i % 2 else -1.0])
    return bundle


def test_num_predictors_counts_instances_and_passthrough():
    net = EchoStateNetwork(_prediction_cfg())
    assert net.num_predictors == 12 + 16
    routed = EchoStateNetwork(_prediction_cfg(route_input_to_readout=True))
    assert routed.num_predictors == 12 + 16 + 2
    out = routed.compute_predictors(torch.tensor([0.3, -0.7], dtype=torch.float64))
    assert out.shape == (30,)
    assert torch.equal(out[-2:], torch.tensor([0.3, -0.7], dtype=torch.float64))


def test_unknown_field_name_raises():
    cfg = _prediction_cfg()
    cfg.instances[0].input_fields = ["x", "z"]
    with pytest.raises(ValueError):
        EchoStateNetwork(cfg)
    cfg = _prediction_cfg()
    cfg.instances[0].feedback_fields = ["missing"]
    with pytest.raises(ValueError):
        EchoStateNetwork(cfg)


def test_instances_are_seeded_distinctly_but_reproducibly():
    same = ReservoirConfig(size=10)
    instances = [
        ReservoirInstanceCfg(name="p", reservoir=same, input_fields=["x"]),
        ReservoirInstanceCfg(name="q", reservoir=same, input_fields=["x"]),
    ]
    cfg = _prediction_cfg(input_fields=["x"], instances=instances)
    a, b = EchoStateNetwork(cfg), EchoStateNetwork(cfg)
    pa = a.compute_predictors([0.5])
    pb = b.compute_predictors([0.5])
    assert torch.equal(pa, pb)
    assert not torch.equal(pa[:10], pa[10:])


def test_thread_pool_gives_same_predictors():
    seq = EchoStateNetwork(_prediction_cfg())
    with EchoStateNetwork(_prediction_cfg(max_workers=2)) as par:
        for row in _series(10):
            assert torch.equal(seq.compute_predictors(row), par.compute_predictors(row))


def test_context_manager_shuts_the_thread_pool_down():
    with EchoStateNetwork(_prediction_cfg(max_workers=2)) as net:
        assert net._executor is not None
        net.compute_predictors(_series(1)[0])
    assert net._executor is None
    # closing twice is harmless
    net.close()
    assert EchoStateNetwork(_prediction_cfg())._executor is None


def test_boot_samples_are_discarded_and_not_in_statistics():
    net = EchoStateNetwork(_prediction_cfg())
    bundle = TimeSeriesBundle.from_series(_series(40))
    rsi = net.prepare_regression_input(bundle, num_boot_samples=10)
    assert rsi.predictors.shape == (30, net.num_predictors)
    assert rsi.ideal_outputs.shape == (30, 2)
    assert net.instances[0].reservoir.neurons.states_stat.num_samples == 30
    assert [s.name for s in rsi.reservoir_stats] == ["a", "b"]


def test_boot_samples_must_leave_data():
    net = EchoStateNetwork(_prediction_cfg())
    bundle = TimeSeriesBundle.from_series(_series(10))
    with pytest.raises(ValueError):
        net.prepare_regression_input(bundle, num_boot_samples=10)


def test_true_outputs_are_fed_back_during_preparation():
    net = EchoStateNetwork(_prediction_cfg())
    series = _series(20)
    net.prepare_regression_input(TimeSeriesBundle.from_series(series))
    reservoir = net.instances[0].reservoir
    assert reservoir.feedback_feature
    assert torch.equal(reservoir.feedback, series[-1, :1])
    assert not net.instances[1].reservoir.feedback_feature


def test_informative_callback_reports_progress():
    net = EchoStateNetwork(_prediction_cfg())
    calls = []
    bundle = TimeSeriesBundle.from_series(_series(15))
    net.prepare_regression_input(
        bundle, informative_callback=lambda total, done, obj: calls.append((total, done, obj)), user_object="tag"
    )
    assert calls == [(15, i, "tag") for i in range(1, 16)]


def test_time_series_forecast_end_to_end():
    net = EchoStateNetwork(_prediction_cfg(route_input_to_readout=True))
    series = _series(200)
    rsi = net.prepare_regression_input(TimeSeriesBundle.from_series(series), num_boot_samples=20)
    bundle = net.build_readout(rsi)
    assert bundle.computed_outputs.shape == (180, 2)
    stats = net.cluster_error_statistics
    assert [s.name for s in stats] == ["next_x", "next_y"]
    assert all(s.precision_err_stat.arith_avg.item() < 0.1 for s in stats)

    # first call after training keeps the feedback set during preparation
    feedback_before = net.instances[0].reservoir.feedback.clone()
    t = 201 * 0.2
    out = net.compute(series[-1])
    assert torch.equal(net.instances[0].reservoir.feedback, feedback_before)
    assert out.shape == (2,)
    assert out[0].item() == pytest.approx(math.sin(t), abs=0.1)
    net.push_feedback([math.sin(t), 0.5 * math.cos(t)])
    assert net.instances[0].reservoir.feedback.item() == pytest.approx(math.sin(t))


def test_compute_before_build_raises():
    net = EchoStateNetwork(_prediction_cfg())
    with pytest.raises(RuntimeError):
        net.compute([0.0, 0.0])
    with pytest.raises(RuntimeError):
        net.compute_output(torch.zeros(net.num_predictors))


def test_prediction_only_operations_fail_on_classification_network():
    net = EchoStateNetwork(_classification_cfg())
    with pytest.raises(RuntimeError):
        net.push_feedback([1.0])
    with pytest.raises(RuntimeError):
        net.compute([0.0])
    with pytest.raises(RuntimeError):
        net.prepare_regression_input(TimeSeriesBundle.from_series(_series(10)[:, :1]))


def test_classification_only_operations_fail_on_prediction_network():
    net = EchoStateNetwork(_prediction_cfg())
    with pytest.raises(RuntimeError):
        net.compute_pattern(torch.zeros(5, 2))
    with pytest.raises(RuntimeError):
        net.prepare_regression_input(_patterns())


def test_feedback_is_rejected_for_classification_config():
    inst = ReservoirInstanceCfg(
        name="c",
        reservoir=ReservoirConfig(size=10, feedback_connection_density=0.2),
        input_fields=["s"],
        feedback_fields=["cls"],
    )
    with pytest.raises(ValueError):
        _classification_cfg(instances=[inst])


def test_pattern_predictors_start_from_reset_state():
    net = EchoStateNetwork(_classification_cfg(route_input_to_readout=True))
    pattern = torch.linspace(-1, 1, 8, dtype=torch.float64).unsqueeze(1)
    first = net.compute_pattern_predictors(pattern)
    net.compute_pattern_predictors(torch.ones(3, 1))
    assert torch.equal(net.compute_pattern_predictors(pattern), first)
    assert first[-1].item() == pytest.approx(1.0)
    assert net.instances[0].reservoir.neurons.states_stat.num_samples == 8 + 3 + 8


def test_pattern_classification_end_to_end():
    net = EchoStateNetwork(_classification_cfg())
    bundle = _patterns(40)
    rsi = net.prepare_regression_input(bundle)
    assert rsi.predictors.shape == (40, 15)
    net.build_readout(rsi)
    ces = net.cluster_error_statistics[0]
    assert ces.task_type == TaskType.CLASSIFICATION
    assert ces.binary_err_stat.total_num_samples == 40
    out = net.compute_pattern(bundle.input_patterns[0])
    assert out.shape == (1,)
