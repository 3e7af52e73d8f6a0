"""
Transition Counters
Single-pass accumulation of pattern -> next-state frequencies and of
per-state return sums. Supports train/eval mode so a finished count table
cannot be contaminated while a model built from it is being evaluated.
"""

import numpy as np
from typing import Dict, Iterable, List, Sequence

from state_space import NUM_STATES, STATE_ORDER, state_to_index
from forecast_schema import Distribution, Pattern, UNIFORM_DISTRIBUTION


def _check_mode(mode: str):
    if mode not in ["train", "eval"]:
        raise ValueError(f"Mode must be 'train' or 'eval', got '{mode}'")


def laplace_smooth(counts: Sequence[float], alpha: float) -> Distribution:
    """
    Convert a 3-slot count vector into a probability distribution.

    p_i = (count_i + alpha) / sum_j(count_j + alpha)

    Falls back to uniform when the smoothed total is not positive,
    which only happens for alpha = 0 and an all-zero count vector.

    Args:
        counts: Next-state counts in STATE_ORDER
        alpha: Additive smoothing strength (>= 0)

    Returns:
        Distribution summing to 1
    """
    if not (np.isfinite(alpha) and alpha >= 0):
        raise ValueError(f"alpha must be finite and non-negative, got {alpha}")
    if len(counts) != NUM_STATES:
        raise ValueError(f"Expected {NUM_STATES} counts, got {len(counts)}")

    adjusted = np.asarray(counts, dtype=float) + alpha
    total = adjusted.sum()

    if total <= 0:
        return UNIFORM_DISTRIBUTION

    probs = adjusted / total
    return (float(probs[0]), float(probs[1]), float(probs[2]))


class TransitionCounts:
    """
    Frequency table of next states, keyed by the preceding pattern.

    Keeps two tables:
    - per-pattern counts: pattern -> [n_down, n_neutral, n_up]
    - global counts: [n_down, n_neutral, n_up] irrespective of pattern

    Modes:
    - train: allows updates
    - eval: frozen, raises on update attempts
    """

    def __init__(self, memory: int, mode: str = "train"):
        """
        Args:
            memory: Pattern length every update must match
            mode: "train" or "eval"
        """
        _check_mode(mode)
        if memory < 1:
            raise ValueError(f"memory must be >= 1, got {memory}")

        self.memory = memory
        self.mode = mode
        self.pattern_counts: Dict[Pattern, List[float]] = {}
        self.global_counts: List[float] = [0.0] * NUM_STATES
        self.total = 0

    def set_mode(self, mode: str):
        """Set the mode (train/eval)."""
        _check_mode(mode)
        self.mode = mode

    def update(self, pattern: Pattern, next_state: int):
        """
        Record one observation of `next_state` following `pattern`.

        Raises:
            RuntimeError: If called in eval mode
            ValueError: If the pattern has the wrong length or a bad symbol
        """
        if self.mode == "eval":
            raise RuntimeError(
                "Cannot update TransitionCounts in eval mode. "
                "Set mode='train' before updating."
            )

        if len(pattern) != self.memory:
            raise ValueError(
                f"Pattern length {len(pattern)} does not match memory {self.memory}"
            )

        idx = state_to_index(next_state)

        counts = self.pattern_counts.get(pattern)
        if counts is None:
            counts = [0.0] * NUM_STATES
            self.pattern_counts[pattern] = counts

        counts[idx] += 1
        self.global_counts[idx] += 1
        self.total += 1

    def distributions(self, alpha: float) -> Dict[Pattern, Distribution]:
        """Smoothed distribution for every observed pattern."""
        return {
            pattern: laplace_smooth(counts, alpha)
            for pattern, counts in self.pattern_counts.items()
        }

    def global_distribution(self, alpha: float) -> Distribution:
        """Smoothed next-state distribution ignoring the pattern."""
        return laplace_smooth(self.global_counts, alpha)

    def __len__(self) -> int:
        return len(self.pattern_counts)

    def __repr__(self) -> str:
        return (
            f"TransitionCounts(mode={self.mode}, memory={self.memory}, "
            f"patterns={len(self.pattern_counts)}, total={self.total})"
        )


class StateReturnStats:
    """
    Sum and count of returns grouped by the state each return encodes to.

    mean(state) = sum / count, or 0.0 when the state never occurred.
    """

    def __init__(self, mode: str = "train"):
        _check_mode(mode)
        self.mode = mode
        self.sums: Dict[int, float] = {int(s): 0.0 for s in STATE_ORDER}
        self.counts: Dict[int, int] = {int(s): 0 for s in STATE_ORDER}

    def set_mode(self, mode: str):
        _check_mode(mode)
        self.mode = mode

    def update(self, state: int, value: float):
        """
        Raises:
            RuntimeError: If called in eval mode
            ValueError: If state is not a valid symbol or value is not finite
        """
        if self.mode == "eval":
            raise RuntimeError(
                "Cannot update StateReturnStats in eval mode. "
                "Set mode='train' before updating."
            )

        if not np.isfinite(value):
            raise ValueError(f"Cannot update with non-finite value: {value}")

        state_to_index(state)  # validates
        self.sums[int(state)] += float(value)
        self.counts[int(state)] += 1

    def update_batch(self, states: Iterable[int], values: Iterable[float]):
        for state, value in zip(states, values):
            self.update(state, value)

    def mean(self, state: int) -> float:
        count = self.counts[int(state)]
        if count == 0:
            return 0.0
        return self.sums[int(state)] / count

    def means(self) -> Dict[int, float]:
        return {int(s): self.mean(s) for s in STATE_ORDER}

    def __repr__(self) -> str:
        return f"StateReturnStats(mode={self.mode}, counts={self.counts})"
