"""
Leakage Prevention Assertions
Keeps the evaluation range out of training and keeps every pattern window
strictly in the past of the step it conditions.
All violations raise loud exceptions - no silent failures.
"""

from typing import Sequence
import numpy as np


class LeakageValidator:
    """
    Validates the train/evaluation split of a return series.

    All methods raise ValueError on detection of potential leakage
    or of a split that cannot be evaluated.
    """

    @staticmethod
    def validate_training_window(
        train_returns_count: int,
        memory: int,
        total_returns: int
    ):
        """
        Validate the boundary between training and evaluation.

        Requires memory < train_returns_count < total_returns, so at least
        one pattern can be formed in training and at least one step is
        left to evaluate.

        Raises:
            ValueError: If the split is unusable
        """
        if memory < 1:
            raise ValueError(f"INVALID MEMORY: memory must be >= 1, got {memory}")

        if train_returns_count <= memory:
            raise ValueError(
                f"TRAINING WINDOW TOO SHORT: {train_returns_count} training returns "
                f"cannot support memory {memory} (need more than {memory})"
            )

        if train_returns_count >= total_returns:
            raise ValueError(
                f"NO EVALUATION RANGE: training uses {train_returns_count} of "
                f"{total_returns} returns, nothing left to forecast"
            )

    @staticmethod
    def validate_pattern_window(
        current_index: int,
        memory: int,
        lookback_start: int
    ):
        """
        Validate a pattern window ends immediately before the predicted step.

        The window [lookback_start, lookback_start + memory) must end at
        current_index exactly: ending later reads the value being predicted,
        ending earlier skips real history.

        Raises:
            ValueError: If the window is misplaced
        """
        lookback_end = lookback_start + memory

        if lookback_start < 0:
            raise ValueError(
                f"INVALID WINDOW: Lookback start {lookback_start} is negative"
            )

        if lookback_end > current_index:
            raise ValueError(
                f"FUTURE LEAKAGE: Pattern window extends to index {lookback_end} "
                f"but the predicted step is {current_index}"
            )

        if lookback_end < current_index:
            raise ValueError(
                f"STALE WINDOW: Pattern window ends at {lookback_end}, "
                f"{current_index - lookback_end} steps before predicted step {current_index}"
            )

    @staticmethod
    def validate_series_values(values: Sequence[float], field_name: str = "series"):
        """
        Validate a numeric series contains no NaN or infinite values.

        Raises:
            ValueError: If any value is NaN or infinite
        """
        arr = np.asarray(values, dtype=float)
        bad = np.flatnonzero(~np.isfinite(arr))
        if bad.size:
            first = int(bad[0])
            raise ValueError(
                f"INVALID VALUE in {field_name}[{first}]: "
                f"Value is {arr[first]} (NaN or Inf)"
            )

    @staticmethod
    def validate_parallel_lengths(
        first: Sequence,
        second: Sequence,
        first_name: str,
        second_name: str
    ):
        if len(first) != len(second):
            raise ValueError(
                f"LENGTH MISMATCH: {first_name} has {len(first)} entries "
                f"but {second_name} has {len(second)}"
            )


# Convenience functions for common validation patterns

def assert_no_future_leakage(
    train_states: Sequence[int],
    full_states: Sequence[int],
    train_returns_count: int
):
    """
    Check a training slice is exactly the prefix before the boundary.

    Raises:
        ValueError: If the slice is longer than the boundary or differs
            from the prefix of the full series
    """
    if len(train_states) > train_returns_count:
        raise ValueError(
            f"FUTURE LEAKAGE: training slice has {len(train_states)} states "
            f"but the boundary is {train_returns_count}"
        )

    if len(train_states) < train_returns_count:
        raise ValueError(
            f"TRUNCATED TRAINING: training slice has {len(train_states)} states, "
            f"expected {train_returns_count}"
        )

    if list(train_states) != list(full_states[:train_returns_count]):
        raise ValueError(
            "TEMPORAL INCONSISTENCY: training slice is not the prefix of the series"
        )
