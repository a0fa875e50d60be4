"""Reservoir computing (RC) module.

This module builds sparse random reservoirs of analog neurons, drives them
with external input vectors and trains a cross-validated ensemble readout on
the harvested reservoir states. Several reservoir instances can share one
network; their predictors are concatenated in instance order.

Core Components:
    AnalogReservoir: Reservoir with input block, Random/Ring/DTT topology,
        optional context neuron, output feedback and augmented states.
    EchoStateNetwork: Orchestrates reservoir instances and the readout layer.
    ReadoutLayer: One cluster of fold-trained units per output field,
        combined into a sample-count-weighted ensemble.

Configuration:
    ReservoirConfig, RandomTopologyCfg, RingTopologyCfg, DTTTopologyCfg,
    ReservoirInstanceCfg, ReadoutUnitCfg, ReadoutLayerCfg, NetworkConfig.

Trainers:
    RidgeTrainer: Closed-form ridge regression (default).
    RPropTrainer: Resilient backpropagation of a linear unit.

Utilities:
    Normalizer: Range normalisation with optional Gaussian standardisation.
    BasicStat, BinErrStat: Running statistics.
    get_activation: Activation unit factory.

Example:
    >>> from RC import EchoStateNetwork, NetworkConfig, ReservoirConfig
    >>> from RC import ReservoirInstanceCfg, ReadoutLayerCfg, ReadoutUnitCfg
    >>> from RC import TimeSeriesBundle
    >>> import torch
    >>>
    >>> cfg = NetworkConfig(
    ...     input_fields=["x"],
    ...     instances=[
    ...         ReservoirInstanceCfg(
    ...             name="main",
    ...             reservoir=ReservoirConfig(size=50, internal_weight_scale=0.5),
    ...             input_fields=["x"],
    ...         )
    ...     ],
    ...     readout=ReadoutLayerCfg(units=[ReadoutUnitCfg("next_x")]),
    ...     randomizer_seed=0,
    ... )
    >>> net = EchoStateNetwork(cfg)
    >>> series = torch.sin(torch.arange(300) * 0.1).unsqueeze(1)
    >>> rsi = net.prepare_regression_input(
    ...     TimeSeriesBundle.from_series(series), num_boot_samples=20
    ... )
    >>> bundle = net.build_readout(rsi)
    >>> y = net.compute(series[-1])  # next value, shape (1,)
"""

from .activation import (
    ActivationUnit,
    Elliot,
    Gaussian,
    Identity,
    SimpleIF,
    Sinc,
    TanH,
    get_activation,
)
from .config import (
    DTTTopologyCfg,
    NetworkConfig,
    RandomTopologyCfg,
    ReadoutLayerCfg,
    ReadoutUnitCfg,
    ReservoirConfig,
    ReservoirInstanceCfg,
    RingTopologyCfg,
    TaskType,
    TopologyKind,
)
from .data import PatternBundle, TimeSeriesBundle
from .network import EchoStateNetwork, RegressionStageInput
from .normalizer import Normalizer
from .readout import (
    ReadoutUnit,
    RidgeTrainer,
    RPropTrainer,
    ridge_readout_fit,
    ridge_readout_predict,
)
from .readout_layer import ClusterErrStatistics, ReadoutLayer, ValidationBundle
from .reservoir import AnalogReservoir, ReservoirStat
from .stats import BasicStat, BinDistribution, BinErrStat

__all__ = [
    # Core components
    "AnalogReservoir",
    "ReservoirStat",
    "EchoStateNetwork",
    "RegressionStageInput",
    "ReadoutLayer",
    "ValidationBundle",
    "ClusterErrStatistics",
    # Configuration
    "TaskType",
    "TopologyKind",
    "RandomTopologyCfg",
    "RingTopologyCfg",
    "DTTTopologyCfg",
    "ReservoirConfig",
    "ReservoirInstanceCfg",
    "ReadoutUnitCfg",
    "ReadoutLayerCfg",
    "NetworkConfig",
    # Data
    "TimeSeriesBundle",
    "PatternBundle",
    # Readout
    "ReadoutUnit",
    "RidgeTrainer",
    "RPropTrainer",
    "ridge_readout_fit",
    "ridge_readout_predict",
    # Activations
    "ActivationUnit",
    "Identity",
    "TanH",
    "Elliot",
    "Gaussian",
    "Sinc",
    "SimpleIF",
    "get_activation",
    # Utilities
    "Normalizer",
    "BasicStat",
    "BinDistribution",
    "BinErrStat",
]

__version__ = "0.1.0"
