from __future__ import annotations

import re
from dataclasses import dataclass

from sitebot.core.errors import PromptValidationError
from sitebot.services.text import contains_term, normalize

MIN_PROMPT_LENGTH = 10

REASON_TOO_SHORT = "too_short"
REASON_NOT_A_SITE_REQUEST = "not_a_site_request"

_TOO_SHORT_MESSAGE = "Mensagem muito curta. Por favor, descreva melhor seu site."
_NOT_A_SITE_MESSAGE = (
    "Não identifiquei que você quer criar um site. Por favor, diga algo como: "
    "'Quero um site para minha loja de roupas' ou 'Preciso de uma página para meu restaurante'."
)

SITE_KEYWORDS = (
    # tipos de site
    "site", "sites", "pagina", "paginas", "web", "website", "landing page", "lp", "homepage",
    "portfolio", "vitrine", "one page", "single page", "page", "store",
    # finalidades
    "loja", "ecommerce", "e commerce", "blog", "institucional", "empresa", "negocio",
    "servico", "servicos", "comercial", "vendas", "cardapio", "catalogo",
    # tecnologias
    "html", "css", "react", "wordpress",
)

INTENT_PATTERNS = (
    re.compile(r"(?:criar|fazer|desenvolver|construir|preciso|quero)\s+(?:de\s+)?(?:um|uma|o|a)?\s*(?:site|pagina|web)", re.IGNORECASE),
    re.compile(r"(?:site|pagina)\s+(?:para|de)\s+", re.IGNORECASE),
    re.compile(r"(?:ter|ter um|ter uma)\s+(?:site|homepage|landing page)", re.IGNORECASE),
    re.compile(r"\bi\s+(?:want|need)\s+(?:a|an)?\s*(?:web\s*)?(?:site|page)\b", re.IGNORECASE),
)


@dataclass(frozen=True)
class PromptValidation:
    valid: bool
    reason: str | None = None
    message: str | None = None
    suggestion: str | None = None

    def raise_for_invalid(self) -> None:
        if not self.valid:
            raise PromptValidationError(self.reason or REASON_NOT_A_SITE_REQUEST, self.message or "", self.suggestion)


def validate(text: str) -> PromptValidation:
    trimmed = (text or "").strip()
    if len(trimmed) < MIN_PROMPT_LENGTH:
        return PromptValidation(valid=False, reason=REASON_TOO_SHORT, message=_TOO_SHORT_MESSAGE)

    normalized = normalize(trimmed)
    has_keyword = any(contains_term(normalized, keyword) for keyword in SITE_KEYWORDS)
    has_pattern = any(pattern.search(normalized) for pattern in INTENT_PATTERNS)

    if not has_keyword and not has_pattern:
        return PromptValidation(
            valid=False,
            reason=REASON_NOT_A_SITE_REQUEST,
            message=_NOT_A_SITE_MESSAGE,
            suggestion=f"Site para {trimmed}",
        )

    return PromptValidation(valid=True)
