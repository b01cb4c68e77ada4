"""Bucketing of continuous values and mixed-radix state indices."""

from typing import Sequence, Tuple

import numpy as np


def linspace(start: float, end: float, n: int) -> np.ndarray:
    """``n`` evenly spaced values from ``start`` to ``end`` inclusive."""
    return np.linspace(start, end, n)


def bin_edges(low: float, high: float, n_bins: int) -> np.ndarray:
    """Interior edges splitting ``[low, high]`` into ``n_bins`` equal bins.

    Values outside the domain fall into the first or last bin.
    """
    if n_bins < 1:
        raise ValueError(f"n_bins must be positive, got {n_bins}")
    return linspace(low, high, n_bins + 1)[1:-1]


def digitize(value: float, edges: Sequence[float]) -> int:
    """Bucket index of ``value`` in ``[0, len(edges)]``.

    ``value < edges[0]`` gives 0, ``edges[i-1] <= value < edges[i]`` gives
    ``i``, and ``value >= edges[-1]`` gives ``len(edges)``.
    """
    edges = np.asarray(edges, dtype=np.float64)
    if np.any(np.diff(edges) < 0):
        raise ValueError("`edges` must be sorted in ascending order")
    return int(np.digitize(value, edges))


def encode_state(buckets: Sequence[int], sizes: Sequence[int]) -> int:
    """Flatten per-axis buckets into one index; the first axis varies fastest."""
    if len(buckets) != len(sizes):
        raise ValueError(f"{len(buckets)} buckets for {len(sizes)} axes")
    return int(np.ravel_multi_index(tuple(reversed(buckets)), tuple(reversed(sizes))))


def decode_state(index: int, sizes: Sequence[int]) -> Tuple[int, ...]:
    """Inverse of ``encode_state``."""
    unravelled = np.unravel_index(index, tuple(reversed(sizes)))
    return tuple(int(i) for i in reversed(unravelled))


def uniform(low: float, high: float, rng: np.random.Generator) -> float:
    return float(rng.uniform(low, high))
