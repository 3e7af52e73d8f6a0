# state_pipeline.py
# Perception engine - turns prices into log-returns and ternary states
# No fitting, no lookahead, no smoothing

import pandas as pd
import numpy as np
from typing import Any, Optional, Sequence, Union

from forecast_schema import EncodedSeries
from leakage_prevention import LeakageValidator
from state_space import State


PriceInput = Union[Sequence[float], np.ndarray, pd.Series, pd.DataFrame]

DATE_COLUMNS = ("time", "date")


def compute_log_returns(prices: Sequence[float]) -> np.ndarray:
    """
    Log-return of every adjacent price pair.

    return[i] = ln(price[i + 1] / price[i])

    Args:
        prices: Ordered positive prices, at least two

    Returns:
        Array of length len(prices) - 1

    Raises:
        ValueError: Fewer than two prices, non-finite or non-positive price
    """
    arr = np.asarray(prices, dtype=float)

    if arr.ndim != 1:
        raise ValueError(f"Prices must be one-dimensional, got shape {arr.shape}")

    if len(arr) < 2:
        raise ValueError(f"At least two prices are required, got {len(arr)}")

    LeakageValidator.validate_series_values(arr, "prices")

    non_positive = np.flatnonzero(arr <= 0)
    if non_positive.size:
        first = int(non_positive[0])
        raise ValueError(
            f"Invalid price: prices[{first}] = {arr[first]} "
            f"(prices must be positive for log-returns)"
        )

    return np.log(arr[1:] / arr[:-1])


def encode_states(returns: Sequence[float], k: float) -> np.ndarray:
    """
    Quantize each return into DOWN / NEUTRAL / UP.

    - return > k   -> UP (+1)
    - return < -k  -> DOWN (-1)
    - otherwise    -> NEUTRAL (0)

    k = 0 collapses the neutral band to exactly zero.

    Raises:
        ValueError: If k is negative or not finite
    """
    if not (np.isfinite(k) and k >= 0):
        raise ValueError(f"Threshold k must be finite and non-negative, got {k}")

    arr = np.asarray(returns, dtype=float)

    states = np.full(arr.shape, int(State.NEUTRAL), dtype=int)
    states[arr > k] = int(State.UP)
    states[arr < -k] = int(State.DOWN)
    return states


class StatePipeline:
    """
    Transforms a raw price series into an EncodedSeries.

    Philosophy:
    - Perception, not prediction
    - Dates ride along untouched, never interpreted
    - Fails loudly on invalid input
    """

    def __init__(self, k: float = 0.002):
        if not (np.isfinite(k) and k >= 0):
            raise ValueError(f"Threshold k must be finite and non-negative, got {k}")
        self.k = k

    def _extract(self, data: PriceInput, dates: Optional[Sequence[Any]]):
        """Pull prices (and dates, if not given) out of pandas containers."""
        if isinstance(data, pd.DataFrame):
            if "close" not in data.columns:
                raise ValueError(f"Missing required column: close (have {list(data.columns)})")
            prices = data["close"].to_numpy(dtype=float)
            if dates is None:
                for col in DATE_COLUMNS:
                    if col in data.columns:
                        dates = list(pd.to_datetime(data[col]))
                        break
            return prices, dates

        if isinstance(data, pd.Series):
            prices = data.to_numpy(dtype=float)
            if dates is None and isinstance(data.index, pd.DatetimeIndex):
                dates = list(data.index)
            return prices, dates

        return np.asarray(data, dtype=float), dates

    def observe(
        self,
        data: PriceInput,
        dates: Optional[Sequence[Any]] = None
    ) -> EncodedSeries:
        """
        Main observation function.

        Input: prices as a sequence, numpy array, pandas Series
               or DataFrame with a `close` column
        Output: EncodedSeries with returns and states

        Raises:
            ValueError: On invalid prices, or dates not parallel to prices
        """
        prices, dates = self._extract(data, dates)

        if dates is not None:
            LeakageValidator.validate_parallel_lengths(prices, dates, "prices", "dates")

        returns = compute_log_returns(prices)
        states = encode_states(returns, self.k)

        return EncodedSeries(
            prices=tuple(float(p) for p in prices),
            returns=tuple(float(r) for r in returns),
            states=tuple(int(s) for s in states),
            k=self.k,
            dates=tuple(dates) if dates is not None else None,
        )
