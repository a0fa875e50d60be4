import pytest
import torch

from RC.config import (
    NetworkConfig,
    ReadoutLayerCfg,
    ReadoutUnitCfg,
    ReservoirConfig,
    ReservoirInstanceCfg,
    RingTopologyCfg,
    TaskType,
    TopologyKind,
)
from RC.data import PatternBundle, TimeSeriesBundle


def test_reservoir_config_accepts_strings_for_enums():
    cfg = ReservoirConfig(size=10, topology="dtt")
    assert cfg.topology is TopologyKind.DTT
    assert ReadoutUnitCfg("y", task_type="classification").task_type is TaskType.CLASSIFICATION


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(size=0),
        dict(input_connection_density=1.5),
        dict(feedback_connection_density=-0.1),
        dict(retainment_min_rate=0.5, retainment_max_rate=0.3),
        dict(retainment_max_rate=0.995),
        dict(activation="relu"),
        dict(topology="grid"),
    ],
)
def test_invalid_reservoir_config_raises(kwargs):
    with pytest.raises(ValueError):
        ReservoirConfig(**kwargs)


def test_feature_flags_follow_densities():
    cfg = ReservoirConfig(size=10, context_neuron_feedback_density=0.04, feedback_connection_density=0.1)
    assert not cfg.context_neuron_feature
    assert cfg.feedback_feature


def test_invalid_topology_densities_raise():
    with pytest.raises(ValueError):
        RingTopologyCfg(inter_connections_density=2.0)


def test_readout_configs_validate_ranges():
    with pytest.raises(ValueError):
        ReadoutUnitCfg("y", output_range=(1.0, -1.0))
    with pytest.raises(ValueError):
        ReadoutUnitCfg("y", test_data_ratio=0.0)
    with pytest.raises(ValueError):
        ReadoutLayerCfg(units=[])


def test_network_config_validation():
    inst = ReservoirInstanceCfg(name="r", reservoir=ReservoirConfig(size=5), input_fields=["x"])
    readout = ReadoutLayerCfg(units=[ReadoutUnitCfg("y")])
    cfg = NetworkConfig(input_fields=["x"], instances=[inst], readout=readout)
    assert cfg.output_fields == ["y"]
    with pytest.raises(ValueError):
        NetworkConfig(input_fields=["x", "x"], instances=[inst], readout=readout)
    with pytest.raises(ValueError):
        NetworkConfig(input_fields=["x"], instances=[], readout=readout)
    with pytest.raises(ValueError):
        NetworkConfig(input_fields=["x"], instances=[inst], readout=readout, max_workers=0)
    with pytest.raises(ValueError):
        ReservoirInstanceCfg(name="r", reservoir=ReservoirConfig(size=5), input_fields=[])


def test_prediction_feedback_density_needs_feedback_fields():
    readout = ReadoutLayerCfg(units=[ReadoutUnitCfg("y")])
    fed = ReservoirConfig(size=10, feedback_connection_density=0.2)
    bare = ReservoirInstanceCfg(name="r", reservoir=fed, input_fields=["x"])
    with pytest.raises(ValueError):
        NetworkConfig(input_fields=["x"], instances=[bare], readout=readout, task_type=TaskType.PREDICTION)
    wired = ReservoirInstanceCfg(name="r", reservoir=fed, input_fields=["x"], feedback_fields=["y"])
    cfg = NetworkConfig(input_fields=["x"], instances=[wired], readout=readout, task_type=TaskType.PREDICTION)
    assert cfg.instances[0].feedback_fields == ["y"]


def test_time_series_bundle_from_series_pairs_next_steps():
    series = torch.arange(6, dtype=torch.float64).reshape(3, 2)
    bundle = TimeSeriesBundle.from_series(series)
    assert len(bundle) == 2
    assert torch.equal(bundle.input_vectors[1], series[1])
    assert torch.equal(bundle.output_vectors[1], series[2])
    with pytest.raises(ValueError):
        TimeSeriesBundle([[0.0]], [])


def test_pattern_bundle_rejects_empty_patterns():
    bundle = PatternBundle()
    bundle.add_pair([[0.0, 1.0], [1.0, 2.0]], [1.0])
    assert len(bundle) == 1
    with pytest.raises(ValueError):
        bundle.add_pair(torch.zeros(0, 2), [1.0])
