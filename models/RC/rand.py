"""Seeded random helpers shared by reservoir construction and the readout layer.

Every random draw in the package goes through an explicit ``torch.Generator``
so that experiments are reproducible from a single seed.
"""

from typing import Optional, Tuple, Union

import torch


def create_generator(
    seed: int = -1, device: Optional[torch.device] = None
) -> torch.Generator:
    """Create a generator seeded with ``seed``.

    Args:
        seed (int): Non-negative seed for deterministic draws. A negative seed
            falls back to non-deterministic seeding.
        device (Optional[torch.device]): Device the generator is bound to.

    Returns:
        torch.Generator: The seeded generator.
    """
    gen = torch.Generator(device=device) if device is not None else torch.Generator()
    if seed < 0:
        gen.seed()
    else:
        gen.manual_seed(seed)
    return gen


def uniform(
    gen: torch.Generator,
    shape: Union[int, Tuple[int, ...]],
    scale: float = 1.0,
    dtype: torch.dtype = torch.float64,
) -> torch.Tensor:
    """Draw values uniformly from ``[-scale, +scale]``."""
    if isinstance(shape, int):
        shape = (shape,)
    return (torch.rand(shape, generator=gen, dtype=dtype) * 2 - 1) * scale


def uniform_between(
    gen: torch.Generator,
    count: int,
    low: float,
    high: float,
    dtype: torch.dtype = torch.float64,
) -> torch.Tensor:
    """Draw ``count`` values uniformly from ``[low, high]``."""
    return low + (high - low) * torch.rand(count, generator=gen, dtype=dtype)


def shuffled_indices(gen: torch.Generator, n: int) -> torch.Tensor:
    """Return a random permutation of ``range(n)``."""
    return torch.randperm(n, generator=gen)
