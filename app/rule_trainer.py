"""
Rule Trainer
Learns pattern -> next-state probabilities from a training prefix of
encoded states, with Laplace smoothing and a global fallback, plus the
mean return of each state. Trained models can be saved to and loaded
from JSON.
"""

import json
import logging
import numpy as np
from pathlib import Path
from typing import Dict, Sequence, Union

from forecast_schema import Distribution, Pattern, RuleModel
from leakage_prevention import LeakageValidator
from state_space import NUM_STATES, STATE_ORDER, is_valid_state
from transition_counts import StateReturnStats, TransitionCounts

logger = logging.getLogger(__name__)


def build_pattern(states: Sequence[int], start: int, memory: int) -> Pattern:
    """The `memory` states beginning at `start`, as a hashable key."""
    return tuple(int(s) for s in states[start:start + memory])


def pattern_to_key(pattern: Pattern) -> str:
    # (1, 0, -1) -> "(1,0,-1)"
    return "(" + ",".join(str(int(s)) for s in pattern) + ")"


def key_to_pattern(key: str) -> Pattern:
    body = key.strip()
    if not (body.startswith("(") and body.endswith(")")):
        raise ValueError(f"Malformed pattern key: {key!r}")
    pattern = tuple(int(part) for part in body[1:-1].split(",") if part.strip())
    if not all(is_valid_state(s) for s in pattern):
        raise ValueError(f"Pattern key contains an invalid state: {key!r}")
    return pattern


class RuleTrainer:
    """
    Builds a RuleModel from one contiguous training prefix.

    Training is a single pass:
    1. For t in [memory, n): count next state states[t] after the
       pattern states[t - memory : t], per pattern and globally
    2. Smooth each pattern's counts, and the global counts, with alpha
    3. Average returns per state over the whole supplied sequence
    """

    def train(
        self,
        states: Sequence[int],
        returns: Sequence[float],
        memory: int,
        alpha: float
    ) -> RuleModel:
        """
        Args:
            states: Encoded states of the training prefix
            returns: Returns aligned with states
            memory: Pattern length m (>= 1, < len(states))
            alpha: Laplace smoothing strength (>= 0)

        Returns:
            Immutable RuleModel

        Raises:
            ValueError: Length mismatch, too-short training range,
                memory < 1, alpha negative or not finite, or an invalid state symbol
        """
        LeakageValidator.validate_parallel_lengths(states, returns, "states", "returns")

        if memory < 1:
            raise ValueError(f"memory must be >= 1, got {memory}")

        if len(states) <= memory:
            raise ValueError(
                f"Training range too short: {len(states)} states "
                f"for memory {memory}"
            )

        if not (np.isfinite(alpha) and alpha >= 0):
            raise ValueError(f"alpha must be finite and non-negative, got {alpha}")

        LeakageValidator.validate_series_values(returns, "returns")

        states = [int(s) for s in states]

        counts = TransitionCounts(memory=memory, mode="train")
        for t in range(memory, len(states)):
            counts.update(build_pattern(states, t - memory, memory), states[t])
        counts.set_mode("eval")

        return_stats = StateReturnStats(mode="train")
        return_stats.update_batch(states, returns)
        return_stats.set_mode("eval")

        logger.debug(
            f"Trained memory={memory} alpha={alpha} on {len(states)} states: "
            f"{len(counts)} distinct patterns, {counts.total} transitions"
        )

        return RuleModel(
            memory=memory,
            alpha=float(alpha),
            transition_probabilities=counts.distributions(alpha),
            global_distribution=counts.global_distribution(alpha),
            mean_returns_by_state=return_stats.means(),
            train_size=len(states),
        )


def _check_distribution(probs: Sequence[float], where: str) -> Distribution:
    if len(probs) != NUM_STATES:
        raise ValueError(f"{where}: expected {NUM_STATES} probabilities, got {len(probs)}")
    arr = np.asarray(probs, dtype=float)
    if not np.all(np.isfinite(arr)) or np.any(arr < 0):
        raise ValueError(f"{where}: probabilities must be finite and non-negative")
    if abs(arr.sum() - 1.0) > 1e-9:
        raise ValueError(f"{where}: probabilities sum to {arr.sum()}, expected 1")
    return (float(arr[0]), float(arr[1]), float(arr[2]))


def save_rule_model(model: RuleModel, filepath: Union[str, Path]):
    """
    Save a trained model to a JSON file.

    Args:
        model: Trained RuleModel
        filepath: Path to save file
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "schema_version": RuleModel.SCHEMA_VERSION,
        "memory": int(model.memory),
        "alpha": float(model.alpha),
        "train_size": int(model.train_size),
        "global_distribution": list(model.global_distribution),
        "mean_returns_by_state": {
            str(int(s)): float(model.mean_returns_by_state[int(s)]) for s in STATE_ORDER
        },
        "transition_probabilities": {
            pattern_to_key(pattern): list(probs)
            for pattern, probs in model.transition_probabilities.items()
        },
    }

    with open(filepath, 'w') as f:
        json.dump(data, f, indent=2)


def load_rule_model(filepath: Union[str, Path]) -> RuleModel:
    """
    Load a model written by save_rule_model.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: On schema mismatch or malformed content
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"Model file not found: {filepath}")

    with open(filepath, 'r') as f:
        data = json.load(f)

    version = data.get("schema_version")
    if version != RuleModel.SCHEMA_VERSION:
        raise ValueError(
            f"Model schema {version} does not match {RuleModel.SCHEMA_VERSION}"
        )

    memory = int(data["memory"])
    transitions: Dict[Pattern, Distribution] = {}
    for key, probs in data["transition_probabilities"].items():
        pattern = key_to_pattern(key)
        if len(pattern) != memory:
            raise ValueError(f"Pattern {key} does not match memory {memory}")
        transitions[pattern] = _check_distribution(probs, f"pattern {key}")

    means = {int(s): float(v) for s, v in data["mean_returns_by_state"].items()}
    if sorted(means) != [int(s) for s in STATE_ORDER]:
        raise ValueError(f"mean_returns_by_state must cover -1, 0, 1, got {sorted(means)}")

    return RuleModel(
        memory=memory,
        alpha=float(data["alpha"]),
        transition_probabilities=transitions,
        global_distribution=_check_distribution(data["global_distribution"], "global distribution"),
        mean_returns_by_state=means,
        train_size=int(data["train_size"]),
    )
