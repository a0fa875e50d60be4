"""Input block mapping an external input vector onto reservoir neurons."""

import torch

from .rand import shuffled_indices, uniform


class InputBlock:
    """Sparse weighted connections from input fields to reservoir neurons.

    Each input field fans out to ``neurons_per_input`` randomly chosen neurons.
    A neuron may receive zero or more input connections; only connected neurons
    receive their bias.

    Attributes:
        num_inputs (int): Input vector length.
        size (int): Number of reservoir neurons.
        biases (torch.Tensor): Per-neuron bias ``(size,)``.
        weights (torch.Tensor): ``weights[n, f]`` summed weight of field ``f``
            connections into neuron ``n``.
        connected (torch.Tensor): Boolean mask of neurons with input connections.
    """

    def __init__(
        self,
        num_inputs: int,
        size: int,
        bias_scale: float,
        input_weight_scale: float,
        neurons_per_input: int,
        gen: torch.Generator,
        dtype: torch.dtype = torch.float64,
    ):
        if num_inputs <= 0:
            raise ValueError(f"input block needs at least one input, got {num_inputs}")
        if not 0 < neurons_per_input <= size:
            raise ValueError(
                f"neurons_per_input must be within [1, {size}], got {neurons_per_input}"
            )
        self.num_inputs = num_inputs
        self.size = size
        self.dtype = dtype
        self.biases = uniform(gen, size, bias_scale, dtype=dtype)
        self.weights = torch.zeros(size, num_inputs, dtype=dtype)
        self.connected = torch.zeros(size, dtype=torch.bool)
        for field_idx in range(num_inputs):
            targets = shuffled_indices(gen, size)[:neurons_per_input]
            field_weights = uniform(gen, neurons_per_input, input_weight_scale, dtype=dtype)
            for neuron_idx, weight in zip(targets.tolist(), field_weights.tolist()):
                self.weights[neuron_idx, field_idx] += weight
                self.connected[neuron_idx] = True
        self.input_values = torch.zeros(num_inputs, dtype=dtype)

    def update(self, values: torch.Tensor) -> None:
        """Overwrite the stored input vector."""
        values = torch.as_tensor(values, dtype=self.dtype).reshape(-1)
        if values.numel() != self.num_inputs:
            raise ValueError(
                f"expected {self.num_inputs} input values, got {values.numel()}"
            )
        self.input_values.copy_(values)

    def signal(self) -> torch.Tensor:
        """Input signal ``(size,)``: bias plus weighted inputs, connected neurons only."""
        s = self.biases + self.weights @ self.input_values
        s = torch.where(self.connected, s, torch.zeros_like(s))
        return s
