"""
Memory Depth Grid Search
Trains, forecasts and scores every candidate memory depth and keeps the
one with the lowest out-of-sample RMSE. Also hosts the end-to-end entry
point that goes from raw prices to a ForecastReport.
"""

import math
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional, Sequence, Tuple

from forecast_config import ForecastConfig
from forecast_schema import (
    DepthMetrics,
    EncodedSeries,
    ForecastReport,
    ForecastResult,
    GridSearchResult,
)
from forecaster import forecast
from leakage_prevention import LeakageValidator
from metrics import compute_relative_percent, compute_relative_squared_percent
from rule_trainer import RuleTrainer
from state_pipeline import StatePipeline

logger = logging.getLogger(__name__)


def compute_train_returns_count(return_count: int, train_percent: float) -> int:
    """
    Training-set sizing policy shared by every caller.

    round(return_count * train_percent / 100), halves rounded away from
    zero, then clamped to [2, return_count - 1] so there are always at
    least 2 training returns and at least 1 evaluation return.

    Raises:
        ValueError: If train_percent is outside (0, 100) or there are
            fewer than 3 returns (the clamp range would be empty)
    """
    if not (0.0 < train_percent < 100.0):
        raise ValueError(f"train_percent must be in (0, 100), got {train_percent}")

    if return_count < 3:
        raise ValueError(
            f"At least 3 returns are needed to split training and evaluation, "
            f"got {return_count}"
        )

    raw = return_count * (train_percent / 100.0)
    count = int(math.floor(raw + 0.5))
    return max(2, min(count, return_count - 1))


def candidate_depths(max_memory: int, train_returns_count: int) -> List[int]:
    """Depths 1..max_memory, stopping before m >= train_returns_count."""
    depths = []
    for m in range(1, max_memory + 1):
        if m >= train_returns_count:
            logger.info(
                f"Stopping depth search at m={m}: training window has only "
                f"{train_returns_count} returns"
            )
            break
        depths.append(m)
    return depths


def select_best(results: Sequence[ForecastResult]) -> Optional[ForecastResult]:
    """
    Lowest RMSE wins; on an exact tie the smallest depth wins.

    Independent of the order results arrive in.
    """
    best = None
    for result in sorted(results, key=lambda r: r.memory):
        if best is None or result.rmse < best.rmse:
            best = result
    return best


def _depth_metrics(result: ForecastResult) -> DepthMetrics:
    return DepthMetrics(
        memory=result.memory,
        mae=result.mae,
        mse=result.mse,
        rmse=result.rmse,
        mape_percent=result.mape_percent,
    )


class MemoryGridSearch:
    """
    Runs the train -> forecast -> score loop for every candidate depth.

    Each depth is independent, so depths may run on a thread pool;
    the winner is picked only after all depths finish.
    Cancellation is checked once per depth.
    """

    def __init__(
        self,
        trainer: Optional[RuleTrainer] = None,
        max_workers: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Args:
            trainer: Rule trainer shared by all depths
            max_workers: Thread count, None or 1 for sequential
            cancel_event: Set it to stop before the next depth starts
        """
        if max_workers is not None and max_workers < 1:
            raise ValueError(f"max_workers must be None or >= 1, got {max_workers}")

        self.trainer = trainer or RuleTrainer()
        self.max_workers = max_workers
        self.cancel_event = cancel_event

    def _check_cancelled(self, memory: int):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise RuntimeError(f"Grid search cancelled before memory depth {memory}")

    def _evaluate_depth(
        self,
        memory: int,
        prices: Sequence[float],
        returns: Sequence[float],
        states: Sequence[int],
        train_returns_count: int,
        alpha: float,
    ) -> ForecastResult:
        self._check_cancelled(memory)

        result = forecast(
            prices, returns, states, train_returns_count, memory, alpha, self.trainer
        )

        logger.info(
            f"memory={memory}: RMSE={result.rmse:.6f} MAE={result.mae:.6f} "
            f"MAPE={result.mape_percent:.4f}%"
        )
        return result

    def run(
        self,
        prices: Sequence[float],
        returns: Sequence[float],
        states: Sequence[int],
        train_returns_count: int,
        max_memory: int,
        alpha: float,
    ) -> GridSearchResult:
        """
        Evaluate depths 1..max_memory and keep the best.

        Returns:
            GridSearchResult with the winning ForecastResult and one
            DepthMetrics row per evaluated depth (ascending)

        Raises:
            ValueError: On invalid inputs (from the trainer/forecaster)
            RuntimeError: If no depth could be evaluated, or on cancellation
        """
        LeakageValidator.validate_parallel_lengths(returns, states, "returns", "states")

        depths = candidate_depths(max_memory, train_returns_count)

        if not depths:
            raise RuntimeError(
                f"No memory depth could be evaluated: max_memory={max_memory}, "
                f"train_returns_count={train_returns_count}. "
                f"Increase the training share or max_memory."
            )

        args = (prices, returns, states, train_returns_count, alpha)

        if self.max_workers is not None and self.max_workers > 1 and len(depths) > 1:
            results = self._run_parallel(depths, args)
        else:
            results = []
            for m in depths:
                results.append(self._evaluate_depth(m, *args))

        results.sort(key=lambda r: r.memory)
        best = select_best(results)

        logger.info(
            f"Selected memory={best.memory} (RMSE={best.rmse:.6f}) "
            f"out of {len(results)} depths"
        )

        return GridSearchResult(
            best=best,
            depth_metrics=tuple(_depth_metrics(r) for r in results),
        )

    def _run_parallel(self, depths: List[int], args: Tuple) -> List[ForecastResult]:
        results: Dict[int, ForecastResult] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {}
            for m in depths:
                self._check_cancelled(m)
                futures[executor.submit(self._evaluate_depth, m, *args)] = m

            try:
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
            except Exception:
                for future in futures:
                    future.cancel()
                raise

        return [results[m] for m in depths]


def align_forecast_dates(
    dates: Optional[Sequence[Any]],
    train_returns_count: int,
    forecast_count: int
) -> Tuple[Optional[Any], ...]:
    """
    Label each forecast point with the date of the price it predicts.

    Point i predicts prices[train_returns_count + 1 + i]; indices past
    the end of dates (or no dates at all) give None.
    """
    aligned = []
    for i in range(forecast_count):
        date_index = train_returns_count + 1 + i
        if dates is not None and 0 <= date_index < len(dates):
            aligned.append(dates[date_index])
        else:
            aligned.append(None)
    return tuple(aligned)


def run_forecast(
    prices,
    dates: Optional[Sequence[Any]] = None,
    config: Optional[ForecastConfig] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ForecastReport:
    """
    Full pipeline for one price series.

    prices -> returns -> states -> training split -> depth search
    -> relative error percentages and dated forecast points.

    Args:
        prices: Sequence, numpy array, pandas Series or DataFrame
            (see StatePipeline.observe)
        dates: Optional labels parallel to prices, passed through untouched
        config: Parameters, defaults to ForecastConfig()
        cancel_event: Optional cancellation flag, checked once per depth

    Raises:
        ValueError: On invalid prices or parameters
        RuntimeError: If no depth could be evaluated, or on cancellation
    """
    config = config or ForecastConfig()

    series: EncodedSeries = StatePipeline(k=config.k).observe(prices, dates)

    train_returns_count = compute_train_returns_count(
        len(series.returns), config.train_percent
    )

    logger.info(
        f"Forecasting {len(series.prices)} prices: {train_returns_count} training "
        f"returns, {len(series.returns) - train_returns_count} evaluation steps, "
        f"k={config.k} alpha={config.alpha} max_memory={config.max_memory}"
    )

    search = MemoryGridSearch(
        max_workers=config.max_workers,
        cancel_event=cancel_event,
    ).run(
        series.prices,
        series.returns,
        series.states,
        train_returns_count,
        config.max_memory,
        config.alpha,
    )

    best = search.best
    return ForecastReport(
        series=series,
        search=search,
        train_returns_count=train_returns_count,
        mae_percent=compute_relative_percent(best.mae, best.actual_prices),
        mse_percent=compute_relative_squared_percent(best.mse, best.actual_prices),
        rmse_percent=compute_relative_percent(best.rmse, best.actual_prices),
        forecast_dates=align_forecast_dates(
            series.dates, train_returns_count, len(best.actual_prices)
        ),
    )
