# forecast_schema.py
# FROZEN SCHEMA v1.0.0 - DO NOT MODIFY WITHOUT VERSION BUMP
# Any change to this file = breaking change = major version increment

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, ClassVar, Mapping, Optional, Tuple

from state_space import State


# Ordered window of m consecutive states, used as a lookup key
Pattern = Tuple[int, ...]

# Probabilities over (DOWN, NEUTRAL, UP), in STATE_ORDER
Distribution = Tuple[float, float, float]

UNIFORM_DISTRIBUTION: Distribution = (1.0 / 3.0, 1.0 / 3.0, 1.0 / 3.0)


@dataclass(frozen=True)
class EncodedSeries:
    """
    A price series together with everything derived from it.

    Invariants:
    - len(returns) == len(prices) - 1
    - len(states) == len(returns)
    - dates, when present, run parallel to prices and are never interpreted
    """

    prices: Tuple[float, ...]
    returns: Tuple[float, ...]
    states: Tuple[int, ...]
    k: float
    dates: Optional[Tuple[Optional[Any], ...]] = None


@dataclass(frozen=True)
class RuleModel:
    """
    Trained pattern -> next-state rules.

    Design principles:
    - Built once per (states, returns, memory, alpha)
    - Never mutated after construction (mappings are read-only views)
    - Only patterns actually observed during training are keys
    - Unobserved patterns resolve to the global fallback distribution

    Schema Version: 1.0.0
    """

    SCHEMA_VERSION: ClassVar[str] = "1.0.0"

    memory: int                                   # Pattern length m
    alpha: float                                  # Laplace smoothing strength
    transition_probabilities: Mapping[Pattern, Distribution]
    global_distribution: Distribution             # Fallback for unseen patterns
    mean_returns_by_state: Mapping[int, float]    # Mean return per state, 0.0 if unseen
    train_size: int                               # Number of states/returns trained on

    def __post_init__(self):
        object.__setattr__(
            self, "transition_probabilities",
            MappingProxyType(dict(self.transition_probabilities)),
        )
        object.__setattr__(
            self, "mean_returns_by_state",
            MappingProxyType(dict(self.mean_returns_by_state)),
        )

    def distribution_for(self, pattern: Pattern) -> Tuple[Distribution, bool]:
        """Distribution for a pattern, and whether the fallback was used."""
        probs = self.transition_probabilities.get(pattern)
        if probs is None:
            return self.global_distribution, True
        return probs, False

    def mean_return(self, state: int) -> float:
        return self.mean_returns_by_state[int(state)]


@dataclass(frozen=True)
class ForecastStep:
    """
    One walk-forward step.

    `index` is the position in the return series being predicted;
    the actual price is the observation one step after it.
    """

    index: int
    pattern: Pattern
    predicted_state: State
    used_fallback: bool
    actual_return: float
    predicted_return: float
    actual_price: float
    predicted_price: float


@dataclass(frozen=True)
class ForecastResult:
    """
    Outcome of one model over one evaluation range.

    All sequences cover the evaluation range only and are parallel.
    """

    memory: int
    train_returns_count: int
    actual_returns: Tuple[float, ...]
    predicted_returns: Tuple[float, ...]
    actual_prices: Tuple[float, ...]
    predicted_prices: Tuple[float, ...]
    predicted_states: Tuple[int, ...]
    fallback_count: int    # Steps whose pattern was never seen in training
    mae: float
    mse: float
    rmse: float
    mape_percent: float


@dataclass(frozen=True)
class DepthMetrics:
    """Error scalars for one candidate memory depth."""

    memory: int
    mae: float
    mse: float
    rmse: float
    mape_percent: float

    @property
    def mape(self) -> float:
        """MAPE as a fraction (mape_percent / 100)."""
        return self.mape_percent / 100.0


@dataclass(frozen=True)
class GridSearchResult:
    """
    Best depth plus the full per-depth table.

    depth_metrics is in ascending depth order.
    """

    best: ForecastResult
    depth_metrics: Tuple[DepthMetrics, ...]

    @property
    def best_memory(self) -> int:
        return self.best.memory


@dataclass(frozen=True)
class ForecastReport:
    """
    End-to-end output for one price series and one parameter set.

    Relative percentages are None when undefined (see metrics.py).
    forecast_dates is parallel to best.actual_prices.
    """

    series: EncodedSeries
    search: GridSearchResult
    train_returns_count: int
    mae_percent: Optional[float]
    mse_percent: Optional[float]
    rmse_percent: Optional[float]
    forecast_dates: Tuple[Optional[Any], ...] = field(default_factory=tuple)

    @property
    def best(self) -> ForecastResult:
        return self.search.best

    @property
    def best_memory(self) -> int:
        return self.search.best_memory

