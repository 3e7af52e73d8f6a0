"""
Run the memory-depth grid search on synthetic prices.
Prints the per-depth error table and the selected model.
"""

import logging
import sys

import numpy as np
import pandas as pd

from forecast_config import ForecastConfig
from grid_search import run_forecast
from state_space import STATE_NAMES, STATE_ORDER


def load_sample_data(n: int = 500, seed: int = 42) -> pd.DataFrame:
    """Create a synthetic daily close series (geometric random walk)."""
    print("  Generating synthetic market data...")

    dates = pd.date_range(start='2024-01-01', periods=n, freq='D')

    rng = np.random.default_rng(seed)
    returns = rng.normal(0.0003, 0.015, size=n)
    close_prices = 100.0 * np.exp(np.cumsum(returns))

    data = pd.DataFrame({
        'time': dates,
        'close': close_prices,
    })

    print(f"  Generated {len(data)} closes")
    print(f"  Price range: {data['close'].min():.2f} - {data['close'].max():.2f}")

    return data


def format_percent(value) -> str:
    """Relative errors are None when the mean price is ~0."""
    return f"{value:.3f}%" if value is not None else "n/a"


def main(config_path: str = None):
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("="*60)
    print("MEMORY DEPTH GRID SEARCH")
    print("="*60)

    print("\n[1/3] Loading data...")
    data = load_sample_data()

    print("\n[2/3] Loading config...")
    config = ForecastConfig.load(config_path) if config_path else ForecastConfig()
    for key, value in config.to_dict().items():
        print(f"  {key}: {value}")

    print("\n[3/3] Running grid search...")
    print("-"*60)
    report = run_forecast(data, config=config)

    print("\n" + "="*60)
    print("PER-DEPTH ERRORS")
    print("="*60)
    print(f"{'m':<4} {'MAE':<12} {'MSE':<12} {'RMSE':<12} {'MAPE %':<10}")
    print("-"*50)
    for row in report.search.depth_metrics:
        marker = " <" if row.memory == report.best_memory else ""
        print(
            f"{row.memory:<4} {row.mae:<12.4f} {row.mse:<12.4f} "
            f"{row.rmse:<12.4f} {row.mape_percent:<10.4f}{marker}"
        )

    best = report.best
    print("\n" + "="*60)
    print("SELECTED MODEL")
    print("="*60)
    print(f"  Memory depth: {best.memory}")
    print(f"  Training returns: {report.train_returns_count}")
    print(f"  Evaluation steps: {len(best.actual_prices)}")
    print(f"  Fallback steps: {best.fallback_count}")
    print(f"  RMSE: {best.rmse:.4f} ({format_percent(report.rmse_percent)} of mean price)")
    print(f"  MAE%: {format_percent(report.mae_percent)}  MSE%: {format_percent(report.mse_percent)}")
    print(f"  MAPE: {best.mape_percent:.3f}%")
    predicted_mix = ", ".join(
        f"{STATE_NAMES[s]}={best.predicted_states.count(int(s))}" for s in STATE_ORDER
    )
    print(f"  Predicted states: {predicted_mix}")

    print("\nFirst forecast points:")
    print(f"{'Date':<12} {'Actual':<12} {'Predicted':<12}")
    for date, actual, predicted in list(zip(
        report.forecast_dates, best.actual_prices, best.predicted_prices
    ))[:5]:
        label = date.strftime("%Y-%m-%d") if date is not None else ""
        print(f"{label:<12} {actual:<12.4f} {predicted:<12.4f}")


if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else None)
