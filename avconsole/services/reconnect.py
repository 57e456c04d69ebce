"""Backoff schedule and attempt ceiling for automatic reconnection.

Attempt 1 runs immediately. Attempt n > 1 first waits
BACKOFF_MS[min(n - 2, len(BACKOFF_MS) - 1)], so the delay caps at 10s.
"""

BACKOFF_MS: tuple[int, ...] = (1000, 1000, 2000, 3000, 5000, 5000, 10000)

UNLIMITED = -1
DISABLED = 0


def backoff_delay(attempt: int) -> float:
    """Seconds to wait before a reconnection attempt.

    Examples:
        >>> backoff_delay(1)
        0.0
        >>> backoff_delay(4)
        2.0
        >>> backoff_delay(50)
        10.0
    """
    if attempt <= 1:
        return 0.0
    index = min(attempt - 2, len(BACKOFF_MS) - 1)
    return BACKOFF_MS[index] / 1000


def retries_enabled(max_attempts: int) -> bool:
    """Whether a ceiling allows any automatic reconnection."""
    return max_attempts != DISABLED


def attempts_remaining(attempt: int, max_attempts: int) -> bool:
    """Whether another attempt may start after ``attempt`` attempts ran."""
    if max_attempts < 0:
        return True
    return attempt < max_attempts
