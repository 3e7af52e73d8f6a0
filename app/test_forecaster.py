# test_forecaster.py
# Sanity tests for the walk-forward forecaster
# Tests BEFORE any depth search - validates a single model evaluation isn't broken

import math
import pytest
import numpy as np

from forecaster import WalkForwardForecaster, forecast, predict_state
from forecast_schema import RuleModel
from rule_trainer import RuleTrainer
from state_pipeline import compute_log_returns, encode_states
from state_space import State


def create_test_series(n_prices: int = 300, k: float = 0.002, seed: int = 11):
    """Create synthetic prices with returns and states"""
    rng = np.random.default_rng(seed)
    prices = 100.0 * np.exp(np.cumsum(rng.normal(0.0002, 0.01, n_prices)))
    returns = compute_log_returns(prices)
    states = encode_states(returns, k)
    return list(prices), list(returns), list(states)


def make_model(transitions, global_distribution, means, memory=1, train_size=2):
    return RuleModel(
        memory=memory,
        alpha=0.0,
        transition_probabilities=transitions,
        global_distribution=global_distribution,
        mean_returns_by_state=means,
        train_size=train_size,
    )


def test_reference_scenario():
    """
    Test 1: Six-price reference scenario

    prices [100, 102, 101, 105, 103, 108], k=0, m=1, alpha=1, 3 training returns.
    States are [+1, -1, +1, -1, +1]; training sees 1 -> -1 and -1 -> 1,
    so the walk predicts DOWN then UP.
    """
    print("\n" + "="*60)
    print("TEST 1: REFERENCE SCENARIO")
    print("="*60)

    prices = [100.0, 102.0, 101.0, 105.0, 103.0, 108.0]
    returns = compute_log_returns(prices)
    states = encode_states(returns, 0.0)

    assert list(states) == [1, -1, 1, -1, 1]

    model = RuleTrainer().train(list(states[:3]), list(returns[:3]), memory=1, alpha=1.0)
    result = WalkForwardForecaster(model, prices, returns, states, 3).run()

    print(f"Predicted states: {result.predicted_states}")
    print(f"Predicted prices: {result.predicted_prices}")
    print(f"MAE={result.mae:.4f} RMSE={result.rmse:.4f} MAPE={result.mape_percent:.4f}%")

    assert result.memory == 1
    assert result.train_returns_count == 3
    assert len(result.predicted_prices) == 2
    assert result.actual_prices == (103.0, 108.0)
    assert result.predicted_states == (int(State.DOWN), int(State.UP))
    assert result.fallback_count == 0

    mean_down = model.mean_returns_by_state[-1]
    assert abs(result.predicted_prices[0] - prices[3] * math.exp(mean_down)) < 1e-9
    # mean DOWN return is ln(101/102), the only down move in training
    assert abs(result.predicted_prices[0] - 105.0 * 101.0 / 102.0) < 1e-9

    for value in (result.mae, result.mse, result.rmse, result.mape_percent):
        assert math.isfinite(value) and value >= 0.0

    print("✅ Reference scenario matches hand calculation")


def test_tie_break():
    """
    Test 2: Arg-max tie-break

    Exact ties go to the lowest symbol: DOWN beats NEUTRAL beats UP.
    """
    print("\n" + "="*60)
    print("TEST 2: TIE-BREAK")
    print("="*60)

    third = 1.0 / 3.0
    assert predict_state((third, third, third)) == State.DOWN
    assert predict_state((0.4, 0.2, 0.4)) == State.DOWN
    assert predict_state((0.2, 0.4, 0.4)) == State.NEUTRAL
    assert predict_state((0.1, 0.2, 0.7)) == State.UP
    assert predict_state((0.3, 0.5, 0.2)) == State.NEUTRAL

    with pytest.raises(ValueError):
        predict_state((0.5, 0.5))

    print("✅ Ties resolve to the lowest-indexed state")


def test_fallback_for_unseen_patterns():
    """
    Test 3: Unseen pattern uses the global distribution
    """
    print("\n" + "="*60)
    print("TEST 3: GLOBAL FALLBACK")
    print("="*60)

    prices = [100.0, 101.0, 102.0, 103.0, 104.0, 105.0]
    returns = compute_log_returns(prices)
    states = encode_states(returns, 0.0)  # all UP

    # Only a DOWN pattern is known, so every UP pattern falls back
    model = make_model(
        transitions={(-1,): (1.0, 0.0, 0.0)},
        global_distribution=(0.1, 0.1, 0.8),
        means={-1: -0.05, 0: 0.0, 1: 0.01},
    )

    result = WalkForwardForecaster(model, prices, returns, states, 2).run()

    assert result.fallback_count == 3
    assert result.predicted_states == (1, 1, 1)
    assert result.predicted_returns == (0.01, 0.01, 0.01)

    print("✅ Unseen patterns fall back to the global distribution")


def test_predictions_compound_on_predictions():
    """
    Test 4: Compounding

    Predicted price i = prices[boundary] * exp(sum of predicted returns so far),
    regardless of what the real prices did.
    """
    print("\n" + "="*60)
    print("TEST 4: COMPOUNDING")
    print("="*60)

    prices, returns, states = create_test_series(120)

    model = make_model(
        transitions={},
        global_distribution=(0.0, 0.0, 1.0),
        means={-1: -0.02, 0: 0.0, 1: 0.01},
        memory=2,
        train_size=60,
    )

    forecaster = WalkForwardForecaster(model, prices, returns, states, 60)
    result = forecaster.run()

    base = prices[60]
    for i, predicted in enumerate(result.predicted_prices):
        expected = base * math.exp(0.01) ** (i + 1)
        assert abs(predicted - expected) / expected < 1e-9, \
            f"Step {i}: expected {expected}, got {predicted}"

    assert result.actual_prices == tuple(prices[61:])
    assert result.actual_returns == tuple(returns[60:])

    print("✅ Predictions compound on prior predictions")


def test_step_by_step_walk():
    """
    Test 5: reset / step / done cycle
    """
    print("\n" + "="*60)
    print("TEST 5: STEP-BY-STEP WALK")
    print("="*60)

    prices, returns, states = create_test_series(50)
    model = RuleTrainer().train(states[:40], returns[:40], memory=3, alpha=1.0)
    forecaster = WalkForwardForecaster(model, prices, returns, states, 40)

    with pytest.raises(RuntimeError, match="reset"):
        forecaster.step()

    forecaster.reset()
    records = []
    done = False
    while not done:
        record, done = forecaster.step()
        records.append(record)

    assert len(records) == len(returns) - 40
    assert [r.index for r in records] == list(range(40, len(returns)))
    for r in records:
        assert r.pattern == tuple(states[r.index - 3:r.index])

    with pytest.raises(RuntimeError, match="finished"):
        forecaster.step()

    # run() resets and reproduces the same walk
    result = forecaster.run()
    assert result.predicted_prices == tuple(r.predicted_price for r in records)

    print("✅ Step API walks the whole evaluation range")


def test_inputs_untouched_and_deterministic():
    """
    Test 6: No input mutation, identical output on identical input
    """
    print("\n" + "="*60)
    print("TEST 6: PURITY")
    print("="*60)

    prices, returns, states = create_test_series(200)
    snapshot = (list(prices), list(returns), list(states))

    first = forecast(prices, returns, states, 140, memory=2, alpha=0.5)
    second = forecast(prices, returns, states, 140, memory=2, alpha=0.5)

    assert (prices, returns, states) == snapshot
    assert first == second

    print("✅ Forecasting is pure and deterministic")


def test_invalid_boundaries():
    """
    Test 7: Precondition memory < train_returns_count < len(returns)
    """
    print("\n" + "="*60)
    print("TEST 7: INVALID BOUNDARIES")
    print("="*60)

    prices, returns, states = create_test_series(30)

    with pytest.raises(ValueError, match="TRAINING WINDOW TOO SHORT"):
        forecast(prices, returns, states, 3, memory=3, alpha=1.0)

    with pytest.raises(ValueError, match="NO EVALUATION RANGE"):
        forecast(prices, returns, states, len(returns), memory=1, alpha=1.0)

    with pytest.raises(ValueError, match="LENGTH MISMATCH"):
        forecast(prices, returns, states[:-1], 10, memory=1, alpha=1.0)

    model = RuleTrainer().train(states[:10], returns[:10], memory=1, alpha=1.0)

    with pytest.raises(ValueError, match="prices"):
        WalkForwardForecaster(model, prices[:-1], returns, states, 10)

    with pytest.raises(ValueError, match="FUTURE LEAKAGE"):
        WalkForwardForecaster(model, prices, returns, states, 8)

    print("✅ Invalid boundaries rejected")


if __name__ == "__main__":
    print("\n" + "="*60)
    print("WALK-FORWARD FORECASTER SANITY TESTS")
    print("="*60)

    test_reference_scenario()
    test_tie_break()
    test_fallback_for_unseen_patterns()
    test_predictions_compound_on_predictions()
    test_step_by_step_walk()
    test_inputs_untouched_and_deterministic()
    test_invalid_boundaries()

    print("\n" + "="*60)
    print("ALL FORECASTER TESTS PASSED ✅")
    print("="*60)
