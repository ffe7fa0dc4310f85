from __future__ import annotations


class SiteBotError(Exception):
    """Base de todos os erros de domínio do bot."""


class PromptValidationError(SiteBotError):
    """Prompt recusado pelo validador; o usuário precisa reenviar."""

    def __init__(self, reason: str, message: str, suggestion: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.suggestion = suggestion


class ProviderError(SiteBotError):
    def __init__(self, message: str, *, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class TransientProviderError(ProviderError):
    """Timeout, 429 ou 5xx de um colaborador externo. Pode ser repetido."""

    def __init__(self, message: str, *, provider: str | None = None, timeout: bool = False) -> None:
        super().__init__(message, provider=provider)
        self.timeout = timeout


class TerminalProviderError(ProviderError):
    """Erro não recuperável (4xx, payload malformado, retries esgotados)."""


class RetryExhausted(TerminalProviderError):
    def __init__(self, reason: str, attempts: int, last_error: BaseException | None) -> None:
        detail = str(last_error) if last_error else "unknown error"
        super().__init__(f"{reason}: {detail}")
        self.reason = reason
        self.attempts = attempts
        self.last_error = last_error

    @property
    def timed_out(self) -> bool:
        return isinstance(self.last_error, TransientProviderError) and self.last_error.timeout


class InvalidTransition(SiteBotError):
    def __init__(self, entity: str, current: str | None, requested: str) -> None:
        super().__init__(f"Transição inválida de {entity}: {current} -> {requested}")
        self.entity = entity
        self.current = current
        self.requested = requested


def is_timeout_error(exc: BaseException) -> bool:
    if isinstance(exc, RetryExhausted):
        return False
    if isinstance(exc, TransientProviderError):
        return exc.timeout
    return isinstance(exc, TimeoutError)
