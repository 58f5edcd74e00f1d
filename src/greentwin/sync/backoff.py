"""Reconnect delay policy."""


def backoff(attempt: int, base: float = 1.0, cap: float = 30.0) -> float:
    """Delay in seconds before reconnect attempt number `attempt`.

    Doubles from `base` and is capped: 1, 2, 4, 8, 16, 30, 30, ...
    """
    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    # Avoid huge powers once we are past the cap
    if attempt > 32:
        return cap
    return min(base * 2 ** attempt, cap)
