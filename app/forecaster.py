# forecaster.py
# Walk-forward one-step-ahead forecaster
# Re-encodes from real history every step, compounds on its own predictions

import math
import logging
import numpy as np
from typing import List, Optional, Sequence, Tuple
from dataclasses import dataclass, field

from forecast_schema import Distribution, ForecastResult, ForecastStep, RuleModel
from leakage_prevention import LeakageValidator, assert_no_future_leakage
from metrics import score_forecast
from rule_trainer import RuleTrainer, build_pattern
from state_space import NUM_STATES, State, index_to_state

logger = logging.getLogger(__name__)


def predict_state(probabilities: Distribution) -> State:
    """
    Arg-max over (DOWN, NEUTRAL, UP).

    Only a strictly greater probability displaces the current best,
    so exact ties go to the earliest symbol: DOWN beats NEUTRAL beats UP.
    """
    if len(probabilities) != NUM_STATES:
        raise ValueError(f"Expected {NUM_STATES} probabilities, got {len(probabilities)}")

    best_index = 0
    best = probabilities[0]
    for i in range(1, NUM_STATES):
        if probabilities[i] > best:
            best = probabilities[i]
            best_index = i

    return index_to_state(best_index)


@dataclass
class WalkState:
    """
    Forecaster state variables.
    What the walk remembers between steps.
    """
    current_index: int                 # Next return index to predict
    predicted_price: float             # Last predicted price (compounding base)
    steps: List[ForecastStep] = field(default_factory=list)


class WalkForwardForecaster:
    """
    Evaluates one trained RuleModel over the held-out tail of a series.

    Step sequence for t = train_returns_count .. len(returns) - 1:
    1. Pattern = states[t - m : t] (real history, never predictions)
    2. Distribution for the pattern, or the global fallback
    3. Predicted state = arg-max (ties to the lowest symbol)
    4. Predicted return = model mean return of that state
    5. Predicted price = previous predicted price * exp(predicted return)
    6. Actual price = prices[t + 1]

    The first predicted price compounds on prices[train_returns_count],
    the last real price inside the training window.
    """

    def __init__(
        self,
        model: RuleModel,
        prices: Sequence[float],
        returns: Sequence[float],
        states: Sequence[int],
        train_returns_count: int,
    ):
        """
        Args:
            model: Rules trained on the first train_returns_count returns
            prices: Full price series (len(returns) + 1 values)
            returns: Full return series
            states: Full state series, parallel to returns
            train_returns_count: Boundary between training and evaluation

        Raises:
            ValueError: If lengths disagree or the boundary is unusable
        """
        LeakageValidator.validate_parallel_lengths(returns, states, "returns", "states")

        if len(prices) != len(returns) + 1:
            raise ValueError(
                f"Expected {len(returns) + 1} prices for {len(returns)} returns, "
                f"got {len(prices)}"
            )

        LeakageValidator.validate_training_window(
            train_returns_count, model.memory, len(returns)
        )

        if model.train_size > train_returns_count:
            raise ValueError(
                f"FUTURE LEAKAGE: model trained on {model.train_size} returns "
                f"but evaluation starts at {train_returns_count}"
            )

        self.model = model
        self.prices = [float(p) for p in prices]
        self.returns = [float(r) for r in returns]
        self.states = [int(s) for s in states]
        self.train_returns_count = train_returns_count

        self.state: Optional[WalkState] = None

    def reset(self) -> WalkState:
        """Rewind to the training/evaluation boundary."""
        self.state = WalkState(
            current_index=self.train_returns_count,
            predicted_price=self.prices[self.train_returns_count],
        )
        return self.state

    @property
    def done(self) -> bool:
        return self.state is not None and self.state.current_index >= len(self.returns)

    def step(self) -> Tuple[ForecastStep, bool]:
        """
        Predict one step ahead and advance.

        Returns:
            (step record, done)
        """
        if self.state is None:
            raise RuntimeError("Must call reset() before step()")

        if self.done:
            raise RuntimeError("Walk already finished, call reset() to start over")

        t = self.state.current_index
        memory = self.model.memory

        LeakageValidator.validate_pattern_window(t, memory, t - memory)
        pattern = build_pattern(self.states, t - memory, memory)

        probabilities, used_fallback = self.model.distribution_for(pattern)
        predicted_state = predict_state(probabilities)
        predicted_return = self.model.mean_return(predicted_state)

        self.state.predicted_price *= math.exp(predicted_return)

        record = ForecastStep(
            index=t,
            pattern=pattern,
            predicted_state=predicted_state,
            used_fallback=used_fallback,
            actual_return=self.returns[t],
            predicted_return=predicted_return,
            actual_price=self.prices[t + 1],
            predicted_price=self.state.predicted_price,
        )
        self.state.steps.append(record)

        self.state.current_index += 1
        return record, self.done

    def run(self) -> ForecastResult:
        """
        Walk the whole evaluation range and score it.

        Returns:
            ForecastResult with parallel actual/predicted sequences
            and MAE/MSE/RMSE/MAPE% over prices
        """
        self.reset()

        done = False
        while not done:
            _, done = self.step()

        steps = self.state.steps
        actual_prices = tuple(s.actual_price for s in steps)
        predicted_prices = tuple(s.predicted_price for s in steps)
        fallback_count = sum(1 for s in steps if s.used_fallback)

        if fallback_count:
            logger.debug(
                f"memory={self.model.memory}: {fallback_count}/{len(steps)} steps "
                f"used the global fallback distribution"
            )

        scores = score_forecast(actual_prices, predicted_prices)

        if not np.isfinite(scores["rmse"]):
            logger.warning(
                f"Non-finite RMSE for memory={self.model.memory} "
                f"(predicted prices overflowed)"
            )

        return ForecastResult(
            memory=self.model.memory,
            train_returns_count=self.train_returns_count,
            actual_returns=tuple(s.actual_return for s in steps),
            predicted_returns=tuple(s.predicted_return for s in steps),
            actual_prices=actual_prices,
            predicted_prices=predicted_prices,
            predicted_states=tuple(int(s.predicted_state) for s in steps),
            fallback_count=fallback_count,
            mae=scores["mae"],
            mse=scores["mse"],
            rmse=scores["rmse"],
            mape_percent=scores["mape_percent"],
        )


def forecast(
    prices: Sequence[float],
    returns: Sequence[float],
    states: Sequence[int],
    train_returns_count: int,
    memory: int,
    alpha: float,
    trainer: Optional[RuleTrainer] = None,
) -> ForecastResult:
    """
    Train on the prefix, walk forward over the rest, score.

    Raises:
        ValueError: If the inputs or the split are invalid
    """
    LeakageValidator.validate_parallel_lengths(returns, states, "returns", "states")
    LeakageValidator.validate_training_window(train_returns_count, memory, len(returns))

    train_states = list(states[:train_returns_count])
    assert_no_future_leakage(train_states, states, train_returns_count)

    trainer = trainer or RuleTrainer()
    model = trainer.train(
        train_states,
        list(returns[:train_returns_count]),
        memory,
        alpha,
    )

    return WalkForwardForecaster(
        model, prices, returns, states, train_returns_count
    ).run()
