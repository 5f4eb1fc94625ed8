"""
Fixed-topology feed-forward policy driven by a flat genome.

Genome layout, for each layer in order and each output unit of that layer:
[bias, w_1, ..., w_in] stored contiguously. The network keeps its own copy of
the weights plus one pre-allocated activation buffer per layer, so a forward
pass only writes into existing tensors.
"""

from typing import List

import numpy as np
import torch

import config
from config import ConfigError, NUM_ACTIONS


def layer_sizes(input_size: int, hidden1: int, hidden2: int = 0,
                output_size: int = NUM_ACTIONS) -> List[int]:
    sizes = [input_size, hidden1]
    if hidden2 > 0:
        sizes.append(hidden2)
    sizes.append(output_size)
    return sizes


def genome_size(input_size: int, hidden1: int, hidden2: int = 0,
                output_size: int = NUM_ACTIONS) -> int:
    """Total number of weights including biases."""
    sizes = layer_sizes(input_size, hidden1, hidden2, output_size)
    return sum((n_in + 1) * n_out for n_in, n_out in zip(sizes[:-1], sizes[1:]))


def random_genome(size: int, rng: np.random.Generator) -> np.ndarray:
    """Xavier-like initialisation: every weight ~ N(0, 2 / size)."""
    scale = np.sqrt(2.0 / size)
    return (rng.standard_normal(size) * scale).astype(np.float32)


def clone_genome(genome: np.ndarray) -> np.ndarray:
    return np.array(genome, dtype=np.float32, copy=True)


class PolicyNetwork:
    """Input -> hidden1 (ReLU) -> [hidden2 (ReLU)] -> 3 outputs, argmax action."""

    def __init__(self, input_size: int, hidden1: int, hidden2: int = 0,
                 output_size: int = NUM_ACTIONS, genome=None):
        if input_size < 1 or hidden1 < 1 or hidden2 < 0 or output_size < 1:
            raise ConfigError(
                f"invalid network topology: {input_size}-{hidden1}-{hidden2}-{output_size}")

        self.input_size = input_size
        self.hidden1 = hidden1
        self.hidden2 = hidden2
        self.output_size = output_size
        self.sizes = layer_sizes(input_size, hidden1, hidden2, output_size)
        self.genome_size = genome_size(input_size, hidden1, hidden2, output_size)

        self.weights = torch.zeros(self.genome_size, dtype=torch.float32)

        # Per-layer (weight, bias) views into the flat buffer plus scratch outputs
        self.layers = []
        self.activations = []
        offset = 0
        for n_in, n_out in zip(self.sizes[:-1], self.sizes[1:]):
            block = self.weights[offset:offset + (n_in + 1) * n_out].view(n_out, n_in + 1)
            self.layers.append((block[:, 1:], block[:, 0]))
            self.activations.append(torch.zeros(n_out, dtype=torch.float32))
            offset += (n_in + 1) * n_out
        self._max_val = torch.zeros((), dtype=torch.float32)
        self._max_idx = torch.zeros((), dtype=torch.int64)

        if genome is not None:
            self.load_genome(genome)

    @classmethod
    def from_config(cls, cfg: dict, genome=None) -> "PolicyNetwork":
        return cls(config.obs_dim(cfg), cfg['nn']['hidden1'], cfg['nn']['hidden2'],
                   NUM_ACTIONS, genome)

    def load_genome(self, genome):
        """Copy a genome into the weight buffer; the genome itself is never aliased."""
        flat = np.asarray(genome, dtype=np.float32)
        if flat.ndim != 1 or flat.shape[0] != self.genome_size:
            raise ConfigError(
                f"genome has {flat.size} weights, network {self.sizes} needs {self.genome_size}")
        self.weights.copy_(torch.from_numpy(flat))

    def forward(self, x) -> int:
        """Index of the largest output (first one wins ties)."""
        h = torch.as_tensor(x, dtype=torch.float32)
        last = len(self.layers) - 1
        for i, (w, b) in enumerate(self.layers):
            out = self.activations[i]
            torch.addmv(b, w, h, out=out)
            if i < last:
                out.clamp_(min=0.0)
            h = out
        torch.max(h, 0, out=(self._max_val, self._max_idx))
        return int(self._max_idx)

    def forward_raw(self, x) -> np.ndarray:
        """Forward pass returning a copy of the raw output values."""
        self.forward(x)
        return self.activations[-1].numpy().copy()
