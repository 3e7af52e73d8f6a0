"""
Forecast Error Metrics
MAE, MSE, RMSE and MAPE% between actual and predicted prices, plus the
error-relative-to-level percentages reported for the selected depth.
"""

import numpy as np
from typing import Dict, Optional, Sequence, Tuple

# |actual| below this is treated as zero
ZERO_TOLERANCE = 1e-12


def _validate(actual: Sequence[float], predicted: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Both sequences must be non-empty and of equal length.

    Raises:
        ValueError: On empty input or length mismatch
    """
    actual_arr = np.asarray(actual, dtype=float)
    predicted_arr = np.asarray(predicted, dtype=float)

    if actual_arr.size == 0 or predicted_arr.size == 0:
        raise ValueError("Input sequences must not be empty")

    if actual_arr.shape != predicted_arr.shape:
        raise ValueError(
            f"Input sequences must have equal length, got "
            f"{actual_arr.size} actual and {predicted_arr.size} predicted"
        )

    return actual_arr, predicted_arr


def compute_mae(actual: Sequence[float], predicted: Sequence[float]) -> float:
    """Mean absolute error."""
    actual_arr, predicted_arr = _validate(actual, predicted)
    return float(np.mean(np.abs(actual_arr - predicted_arr)))


def compute_mse(actual: Sequence[float], predicted: Sequence[float]) -> float:
    """Mean squared error."""
    actual_arr, predicted_arr = _validate(actual, predicted)
    diff = actual_arr - predicted_arr
    return float(np.mean(diff * diff))


def compute_rmse(actual: Sequence[float], predicted: Sequence[float]) -> float:
    """Root mean squared error, sqrt(MSE)."""
    return float(np.sqrt(compute_mse(actual, predicted)))


def compute_mape_percent(actual: Sequence[float], predicted: Sequence[float]) -> float:
    """
    Mean absolute percentage error, in percent.

    Only indices with |actual| >= ZERO_TOLERANCE contribute.

    Raises:
        ValueError: If no index qualifies (percentage error undefined),
            or on empty / mismatched input
    """
    actual_arr, predicted_arr = _validate(actual, predicted)

    abs_actual = np.abs(actual_arr)
    usable = abs_actual >= ZERO_TOLERANCE

    if not np.any(usable):
        raise ValueError(
            "MAPE is undefined: every actual value is zero"
        )

    ratios = np.abs(actual_arr[usable] - predicted_arr[usable]) / abs_actual[usable]
    return float(100.0 * np.mean(ratios))


def score_forecast(actual: Sequence[float], predicted: Sequence[float]) -> Dict[str, float]:
    """
    All four error scalars at once.

    Returns:
        {"mae": ..., "mse": ..., "rmse": ..., "mape_percent": ...}
    """
    return {
        "mae": compute_mae(actual, predicted),
        "mse": compute_mse(actual, predicted),
        "rmse": compute_rmse(actual, predicted),
        "mape_percent": compute_mape_percent(actual, predicted),
    }


def compute_relative_percent(metric_value: float, actual: Sequence[float]) -> Optional[float]:
    """
    Express an error in price units as a percent of the mean |actual|.

    Used for MAE% and RMSE%.

    Returns:
        Percentage, or None if actual is empty or its mean magnitude is ~0
    """
    actual_arr = np.asarray(actual, dtype=float)
    if actual_arr.size == 0:
        return None

    mean_abs = float(np.mean(np.abs(actual_arr)))
    if mean_abs < ZERO_TOLERANCE:
        return None

    return (metric_value / mean_abs) * 100.0


def compute_relative_squared_percent(metric_value: float, actual: Sequence[float]) -> Optional[float]:
    """
    Express an error in squared price units as a percent of mean(actual^2).

    Used for MSE%.

    Returns:
        Percentage, or None if actual is empty or its mean square is ~0
    """
    actual_arr = np.asarray(actual, dtype=float)
    if actual_arr.size == 0:
        return None

    mean_square = float(np.mean(actual_arr * actual_arr))
    if mean_square < ZERO_TOLERANCE:
        return None

    return (metric_value / mean_square) * 100.0
