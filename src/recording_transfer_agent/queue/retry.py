"""
Политика повторов для очереди.

Назначение:
- ограниченное число попыток (attempts считает и первую попытку)
- экспоненциальный backoff: base, base*2, base*4 ...
- неповторяемые ошибки (например, невалидный вебхук) сразу уходят в failed
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class RetryDecision:
    retry: bool
    attempts_made: int
    max_attempts: int
    delay_ms: int = 0
    reason: str | None = None


def backoff_delay_ms(attempts_made: int, base_delay_ms: int) -> int:
    """
    Задержка перед следующей попыткой после attempts_made неудачных.
    """
    n = max(1, int(attempts_made))
    return int(base_delay_ms) * (2 ** (n - 1))


def decide_retry(
    *,
    attempts_made: int,
    max_attempts: int,
    base_delay_ms: int,
    retryable: bool = True,
) -> RetryDecision:
    if not retryable:
        return RetryDecision(
            retry=False,
            attempts_made=attempts_made,
            max_attempts=max_attempts,
            reason="unrecoverable",
        )

    if attempts_made >= max_attempts:
        return RetryDecision(
            retry=False,
            attempts_made=attempts_made,
            max_attempts=max_attempts,
            reason="attempts_exhausted",
        )

    return RetryDecision(
        retry=True,
        attempts_made=attempts_made,
        max_attempts=max_attempts,
        delay_ms=backoff_delay_ms(attempts_made, base_delay_ms),
    )
