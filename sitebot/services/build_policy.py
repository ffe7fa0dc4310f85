from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from sitebot.core import config
from sitebot.services.retry import linear_backoff
from sitebot.services.text import contains_term, normalize

COMPLEXITY_SIMPLE = "simple"
COMPLEXITY_COMPLEX = "complex"

COMPLEX_PROMPT_MAX_CHARS = 500
COMPLEX_PROMPT_MAX_WORDS = 80

COMPLEX_KEYWORDS = (
    "ecommerce",
    "e commerce",
    "loja online",
    "dashboard",
    "painel",
    "aplicativo",
    "sistema",
    "plataforma",
    "multi",
    "varias",
    "complex",
    "complexo",
    "store",
    "system",
)


def classify_prompt_complexity(prompt: str) -> str:
    """Heurística só para escolher timeouts; não muda o comportamento do build."""
    text = (prompt or "").strip()
    if len(text) > COMPLEX_PROMPT_MAX_CHARS:
        return COMPLEXITY_COMPLEX
    if len(text.split()) > COMPLEX_PROMPT_MAX_WORDS:
        return COMPLEXITY_COMPLEX
    normalized = normalize(text)
    if any(contains_term(normalized, keyword) for keyword in COMPLEX_KEYWORDS):
        return COMPLEXITY_COMPLEX
    return COMPLEXITY_SIMPLE


@dataclass(frozen=True)
class BuildPolicy:
    generation_timeout_simple: float = 180.0
    generation_timeout_complex: float = 600.0
    deploy_timeout_simple: float = 180.0
    deploy_timeout_complex: float = 480.0
    max_retries: int = 3
    retry_backoff: Callable[[int], float] = field(default=linear_backoff(30.0, 120.0))
    probe_attempts: int = 5
    probe_delay_seconds: float = 3.0
    probe_timeout_seconds: float = 10.0
    thumbnail_max_age_seconds: int = 24 * 60 * 60

    def generation_timeout(self, complexity: str) -> float:
        if complexity == COMPLEXITY_COMPLEX:
            return self.generation_timeout_complex
        return self.generation_timeout_simple

    def deploy_timeout(self, complexity: str) -> float:
        if complexity == COMPLEXITY_COMPLEX:
            return self.deploy_timeout_complex
        return self.deploy_timeout_simple

    def stuck_after_seconds(self) -> float:
        """Pior duração de um build vivo; acima disso o worker se perdeu."""
        attempts = max(self.max_retries, 1)
        checks = self.probe_attempts * (self.probe_delay_seconds + self.probe_timeout_seconds)
        per_attempt = self.generation_timeout_complex + self.deploy_timeout_complex + checks
        waits = sum(self.retry_backoff(attempt) for attempt in range(1, attempts))
        return attempts * per_attempt + waits


def default_build_policy() -> BuildPolicy:
    return BuildPolicy(
        generation_timeout_simple=config.GENERATION_TIMEOUT_SIMPLE_SECONDS,
        generation_timeout_complex=config.GENERATION_TIMEOUT_COMPLEX_SECONDS,
        deploy_timeout_simple=config.DEPLOY_TIMEOUT_SIMPLE_SECONDS,
        deploy_timeout_complex=config.DEPLOY_TIMEOUT_COMPLEX_SECONDS,
        max_retries=config.BUILD_MAX_RETRIES,
        retry_backoff=linear_backoff(config.BUILD_RETRY_DELAY_SECONDS, config.BUILD_RETRY_MAX_DELAY_SECONDS),
        probe_attempts=config.READINESS_PROBE_ATTEMPTS,
        probe_delay_seconds=config.READINESS_PROBE_DELAY_SECONDS,
        probe_timeout_seconds=config.READINESS_PROBE_TIMEOUT_SECONDS,
        thumbnail_max_age_seconds=config.THUMBNAIL_MAX_AGE_SECONDS,
    )
