# state_space.py
# Frozen state space v1.0.0
# Ternary, ordered, direction-only

from enum import IntEnum


class State(IntEnum):
    """
    Quantized direction of a single log-return.

    Design constraints:
    - Exactly three symbols
    - Direction only, no magnitude
    - Symmetric dead zone around zero (width set by threshold k)

    Philosophy:
    If a pattern of directions carries no information,
    adding magnitude buckets won't rescue it.
    """

    DOWN = -1     # return < -k
    NEUTRAL = 0   # -k <= return <= k
    UP = 1        # return > k


# Canonical order. Distributions are stored in this order and
# arg-max ties go to the earliest entry.
STATE_ORDER = (State.DOWN, State.NEUTRAL, State.UP)

NUM_STATES = len(STATE_ORDER)

STATE_NAMES = {
    State.DOWN: "DOWN",
    State.NEUTRAL: "NEUTRAL",
    State.UP: "UP",
}


def is_valid_state(value: int) -> bool:
    """
    Check if a raw integer is one of the three state symbols.

    Args:
        value: Candidate state value

    Returns:
        True if value is -1, 0 or 1
    """
    return value in (-1, 0, 1)


def state_to_index(value: int) -> int:
    """Position of a state symbol in STATE_ORDER."""
    if not is_valid_state(value):
        raise ValueError(f"State must be -1, 0 or 1, got {value}")
    return int(value) + 1


def index_to_state(index: int) -> State:
    """Inverse of state_to_index."""
    if index < 0 or index >= NUM_STATES:
        raise ValueError(f"State index must be in [0, {NUM_STATES - 1}], got {index}")
    return STATE_ORDER[index]
