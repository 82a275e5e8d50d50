"""Score coercion shared by the graders."""

import re
from typing import Any

PASS_THRESHOLD = 8
MAX_SCORE = 10

_LEADING_NUMBER = re.compile(r"^\s*(-?\d+(?:\.\d+)?)")


def coerce_score(value: Any) -> int:
    """
    Turn a model-reported score (7, 7.5, "7", "7/10") into an int in 0..10.

    Raises:
        ValueError: when no number can be read
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a score: {value!r}")
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _LEADING_NUMBER.match(str(value or ""))
        if not match:
            raise ValueError(f"Not a score: {value!r}")
        number = float(match.group(1))
    return max(0, min(MAX_SCORE, int(round(number))))
