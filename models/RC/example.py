# Reservoir computing demos: next-step forecast of a noisy sine pair and
# two-class pattern classification.
# Dependencies: pip install torch numpy matplotlib
import argparse
import logging

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import torch  # noqa: E402

from RC import (  # noqa: E402
    EchoStateNetwork,
    NetworkConfig,
    PatternBundle,
    ReadoutLayerCfg,
    ReadoutUnitCfg,
    ReservoirConfig,
    ReservoirInstanceCfg,
    RingTopologyCfg,
    RPropTrainer,
    TaskType,
    TimeSeriesBundle,
    Normalizer,
)


def _progress(total, processed, label):
    if processed == total or processed % 200 == 0:
        print(f"[{label}] {processed}/{total}")


# ========== Demo: time-series forecast ==========
def demo_forecast(plot_path=None):
    rng = np.random.default_rng(0)
    t = np.arange(1200) * 0.05
    raw = np.stack([np.sin(t), 0.5 * np.cos(1.7 * t)], axis=1) + rng.normal(0, 0.02, (1200, 2))

    # normalise every field into <-1; 1> before it reaches the reservoir
    normalizers = [Normalizer(reserve_ratio=0.1, standardize=False) for _ in range(2)]
    for i, norm in enumerate(normalizers):
        norm.adjust(torch.as_tensor(raw[:, i]))
    series = np.stack([normalizers[i].normalize(raw[:, i]) for i in range(2)], axis=1)

    cfg = NetworkConfig(
        input_fields=["sin", "cos"],
        instances=[
            ReservoirInstanceCfg(
                name="main",
                reservoir=ReservoirConfig(
                    size=150,
                    topology="ring",
                    ring_topology=RingTopologyCfg(
                        bidirection=True, self_connections_density=0.2, inter_connections_density=0.01
                    ),
                    input_weight_scale=0.6,
                    internal_weight_scale=0.5,
                    retainment_neurons_density=0.5,
                    retainment_max_rate=0.6,
                    context_neuron_feedback_density=0.1,
                    feedback_connection_density=0.05,
                ),
                input_fields=["sin", "cos"],
                feedback_fields=["next_sin", "next_cos"],
                augmented_states=True,
            )
        ],
        readout=ReadoutLayerCfg(
            units=[ReadoutUnitCfg("next_sin"), ReadoutUnitCfg("next_cos")],
            randomizer_seed=1,
        ),
        task_type=TaskType.PREDICTION,
        route_input_to_readout=True,
        randomizer_seed=42,
    )
    train = TimeSeriesBundle.from_series(series[:1000])
    with EchoStateNetwork(cfg) as net:
        rsi = net.prepare_regression_input(train, num_boot_samples=100, informative_callback=_progress, user_object="forecast")
        net.build_readout(rsi)
        for ces in net.cluster_error_statistics:
            print(f"[Forecast] {ces.name}: folds={ces.num_of_readout_units}  "
                  f"mean abs err={ces.precision_err_stat.arith_avg.item():.4f}")

        # continue from the state left by the training run
        outputs = []
        for step in range(1000, len(series) - 1):
            outputs.append(net.compute(series[step]).numpy())
            net.push_feedback(series[step + 1])
    outputs = np.array(outputs)
    mse = float(np.mean((outputs - series[1001:]) ** 2))
    print(f"[Forecast] test steps={len(outputs)}  MSE={mse:.5f}")

    if plot_path:
        fig, ax = plt.subplots(figsize=(8, 3))
        ax.plot(series[1001:, 0], label="ideal")
        ax.plot(outputs[:, 0], label="computed", linestyle="--")
        ax.legend()
        plt.tight_layout()
        plt.savefig(plot_path, dpi=140)
        plt.close(fig)
    return mse


# ========== Demo: pattern classification ==========
def demo_classification():
    rng = np.random.default_rng(7)
    bundle = PatternBundle()
    for _ in range(120):
        cls = int(rng.integers(0, 2))
        freq = 0.3 if cls == 0 else 0.8
        phase = rng.uniform(0, np.pi)
        steps = np.arange(20)
        pattern = np.stack([np.sin(freq * steps + phase), rng.normal(0, 0.1, 20)], axis=1)
        bundle.add_pair(pattern, [1.0 if cls == 1 else -1.0])

    cfg = NetworkConfig(
        input_fields=["signal", "noise"],
        instances=[
            ReservoirInstanceCfg(
                name="rand",
                reservoir=ReservoirConfig(size=60, input_weight_scale=0.8, internal_weight_scale=0.3),
                input_fields=["signal", "noise"],
            ),
            ReservoirInstanceCfg(
                name="dtt",
                reservoir=ReservoirConfig(size=49, topology="dtt", activation="elliot", internal_weight_scale=0.5),
                input_fields=["signal"],
            ),
        ],
        readout=ReadoutLayerCfg(
            units=[ReadoutUnitCfg("class", task_type=TaskType.CLASSIFICATION, test_data_ratio=0.2)],
        ),
        task_type=TaskType.CLASSIFICATION,
        randomizer_seed=3,
        max_workers=2,
    )
    with EchoStateNetwork(cfg) as net:
        rsi = net.prepare_regression_input(bundle)
        net.build_readout(rsi, trainer=RPropTrainer(epochs=200))
        ces = net.cluster_error_statistics[0]
    print(f"[Classification] N={len(bundle)}  folds={ces.num_of_readout_units}  "
          f"validation err rate={ces.binary_err_stat.total_err_rate:.3f}")
    return ces.binary_err_stat.total_err_rate


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Reservoir computing demos")
    parser.add_argument("--plot", default=None, help="save the forecast plot to this png")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    demo_forecast(plot_path=args.plot)
    demo_classification()
