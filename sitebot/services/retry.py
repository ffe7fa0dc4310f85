from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from sitebot.core.errors import RetryExhausted, TransientProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def linear_backoff(base_seconds: float, max_seconds: float) -> Callable[[int], float]:
    """Delay de `attempt * base`, limitado a `max_seconds`."""

    def _backoff(attempt: int) -> float:
        return float(min(attempt * base_seconds, max_seconds))

    return _backoff


def no_backoff(_attempt: int) -> float:
    return 0.0


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    backoff: Callable[[int], float] = no_backoff


def with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy,
    *,
    reason: str = "operation_failed",
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Callable[[int, BaseException], None] | None = None,
) -> T:
    """Executa `operation` repetindo apenas falhas transitórias.

    `on_retry(next_attempt, error)` é chamado antes de cada nova tentativa.
    Erros não transitórios sobem imediatamente; ao esgotar as tentativas
    levanta `RetryExhausted` com o último erro.
    """
    max_attempts = max(policy.max_attempts, 1)
    last_error: BaseException | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except TransientProviderError as exc:
            last_error = exc
            logger.warning(
                "Tentativa %s/%s falhou (%s): %s",
                attempt,
                max_attempts,
                reason,
                exc,
                extra={"attempt": attempt},
            )

        if attempt >= max_attempts:
            break

        delay = policy.backoff(attempt)
        if delay > 0:
            sleep(delay)
        if on_retry is not None:
            on_retry(attempt + 1, last_error)

    raise RetryExhausted(reason, max_attempts, last_error)
