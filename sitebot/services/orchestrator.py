from __future__ import annotations

import logging
import time
from typing import Callable

from sqlalchemy.orm import Session

from sitebot.ai.base import SiteGenerator
from sitebot.ai.service import get_site_generator
from sitebot.core.database import SessionLocal
from sitebot.core.errors import (
    InvalidTransition,
    RetryExhausted,
    TerminalProviderError,
    TransientProviderError,
    is_timeout_error,
)
from sitebot.core.metrics import build_metrics
from sitebot.core.request_context import set_request_context
from sitebot.fsm import states
from sitebot.fsm.session import finish_build
from sitebot.hosting.base import Deployment, HostingProvider
from sitebot.hosting.probe import verify_live_url
from sitebot.hosting.service import get_hosting_provider
from sitebot.models.build_request import (
    BUILD_COMPLETED,
    BUILD_FAILED,
    BUILD_PENDING,
    BUILD_PROCESSING,
    BUILD_TIMEOUT,
    BuildRequest,
)
from sitebot.screenshots.base import ScreenshotProvider
from sitebot.screenshots.service import get_screenshot_provider
from sitebot.services import build_requests
from sitebot.services.build_policy import BuildPolicy, classify_prompt_complexity, default_build_policy
from sitebot.services.notifications import NotificationDispatcher
from sitebot.services.retry import RetryPolicy, no_backoff, with_retry
from sitebot.services.thumbnail_storage import persist_thumbnail as persist_thumbnail_to_r2

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (BUILD_FAILED, BUILD_TIMEOUT)
SCREENSHOT_RETRY_POLICY = RetryPolicy(max_attempts=2, backoff=no_backoff)

ProbeFn = Callable[..., bool]


def can_retry(record: BuildRequest, policy: BuildPolicy) -> bool:
    return record.status in RETRYABLE_STATUSES and (record.attempts or 0) < policy.max_retries


class BuildOrchestrator:
    """Conduz um BuildRequest de `pending` até `completed`/`failed`/`timeout`.

    Fases em ordem: geração -> deploy (+ probe da URL) -> thumbnail -> aviso.
    Nenhum erro de provedor sai de `start_build`/`retry_build`: todo caminho
    termina com o build num status persistido e uma notificação best-effort.

    `attempts` é o orçamento acumulado do build: o claim conta a primeira
    tentativa e cada nova chamada a um provedor (retry) soma mais uma.
    """

    def __init__(
        self,
        db: Session,
        *,
        generator: SiteGenerator,
        hosting: HostingProvider,
        screenshots: ScreenshotProvider,
        persist_thumbnail: Callable[[bytes], str],
        notifier: NotificationDispatcher,
        policy: BuildPolicy | None = None,
        probe: ProbeFn = verify_live_url,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.db = db
        self.generator = generator
        self.hosting = hosting
        self.screenshots = screenshots
        self.persist_thumbnail = persist_thumbnail
        self.notifier = notifier
        self.policy = policy or default_build_policy()
        self.probe = probe
        self.sleep = sleep

    def start_build(self, build_id: str) -> BuildRequest | None:
        record = build_requests.get_build(self.db, build_id)
        if record is None:
            logger.warning("Build não encontrado: %s", build_id)
            return None

        claimed = build_requests.try_transition(
            self.db,
            build_id,
            BUILD_PROCESSING,
            from_statuses=(BUILD_PENDING,),
            increment_attempts=True,
        )
        if not claimed:
            self.db.refresh(record)
            logger.info("Build %s não está pending (status=%s); nada a fazer", build_id, record.status)
            return record

        return self._run(record)

    def retry_build(self, build_id: str) -> BuildRequest | None:
        """Reexecuta um build `failed`/`timeout` mantendo o mesmo id."""
        record = build_requests.get_build(self.db, build_id)
        if record is None:
            logger.warning("Build não encontrado: %s", build_id)
            return None
        if not can_retry(record, self.policy):
            raise InvalidTransition("build", record.status, BUILD_PROCESSING)

        claimed = build_requests.try_transition(
            self.db,
            build_id,
            BUILD_PROCESSING,
            from_statuses=RETRYABLE_STATUSES,
            increment_attempts=True,
            max_attempts=self.policy.max_retries,
            values={"last_error": None},
        )
        if not claimed:
            self.db.refresh(record)
            logger.info("Retry do build %s perdeu a corrida (status=%s)", build_id, record.status)
            return record

        return self._run(record)

    def _run(self, record: BuildRequest) -> BuildRequest:
        self.db.refresh(record)
        set_request_context(build_id=record.id, user_id=record.user_id)
        started = time.perf_counter()
        logger.info(
            "Build iniciado: action=%s tentativa=%s",
            record.intended_action,
            record.attempts,
            extra={"status": record.status, "attempt": record.attempts},
        )

        try:
            complexity = classify_prompt_complexity(record.prompt)
            logger.info("Complexidade do prompt: %s", complexity, extra={"phase": "classify"})
            markup = self._generate(record, complexity)
            deployment = self._deploy(record, markup, complexity)
            thumbnail_url = self._thumbnail(deployment.url)
            record = build_requests.transition(
                self.db,
                record,
                BUILD_COMPLETED,
                result_url=deployment.url,
                thumbnail_url=thumbnail_url,
                last_error=None,
            )
        except Exception as exc:
            self.db.rollback()
            record = self._mark_failed(record, exc)
            if record.status in RETRYABLE_STATUSES:
                self.notifier.build_failed(record)
                self._finish_session(record, states.ERROR)
        else:
            logger.info("Build concluído: %s", record.result_url, extra={"status": record.status})
            self.notifier.build_completed(record)
            self._finish_session(record, states.COMPLETED)
        finally:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            build_metrics.observe(record.status, duration_ms)

        return record

    def _phase_policy(self, record: BuildRequest) -> RetryPolicy:
        # orçamento restante, contando a tentativa em curso
        remaining = self.policy.max_retries - (record.attempts or 0) + 1
        return RetryPolicy(max_attempts=max(remaining, 1), backoff=self.policy.retry_backoff)

    def _count_attempt(self, record: BuildRequest, phase: str) -> Callable[[int, BaseException], None]:
        def _on_retry(attempt: int, error: BaseException) -> None:
            build_requests.increment_attempts(self.db, record)
            logger.info(
                "Nova tentativa de %s (%s): %s",
                phase,
                attempt,
                error,
                extra={"phase": phase, "attempt": record.attempts},
            )

        return _on_retry

    def _generate(self, record: BuildRequest, complexity: str) -> str:
        timeout = self.policy.generation_timeout(complexity)

        def _call() -> str:
            markup = self.generator.generate_site_markup(record.prompt, timeout=timeout)
            if not markup or not markup.strip():
                raise TerminalProviderError("Gerador devolveu conteúdo vazio", provider=self.generator.name)
            return markup

        return with_retry(
            _call,
            self._phase_policy(record),
            reason="generation_failed",
            sleep=self.sleep,
            on_retry=self._count_attempt(record, "generation"),
        )

    def _deploy(self, record: BuildRequest, markup: str, complexity: str) -> Deployment:
        timeout = self.policy.deploy_timeout(complexity)

        if record.hosting_slot_id and build_requests.has_active_sibling(
            self.db, record.hosting_slot_id, exclude_id=record.id
        ):
            logger.warning("Outro build ativo no slot %s; último deploy prevalece", record.hosting_slot_id)

        if not record.hosting_slot_id:
            # slot gravado antes do primeiro deploy: toda tentativa reusa o mesmo projeto
            build_requests.assign_hosting_slot(self.db, record, self.hosting.reserve_slot(record.user_id))

        def _call() -> Deployment:
            deployment = self.hosting.deploy_site(
                markup,
                record.hosting_slot_id,
                record.user_id,
                timeout=timeout,
            )
            build_requests.assign_hosting_slot(self.db, record, deployment.slot_id)
            live = self.probe(
                deployment.url,
                attempts=self.policy.probe_attempts,
                delay_seconds=self.policy.probe_delay_seconds,
                timeout=self.policy.probe_timeout_seconds,
                sleep=self.sleep,
            )
            if not live:
                raise TransientProviderError(
                    f"URL {deployment.url} não respondeu após o deploy", provider=self.hosting.name
                )
            return deployment

        return with_retry(
            _call,
            self._phase_policy(record),
            reason="deployment_failed",
            sleep=self.sleep,
            on_retry=self._count_attempt(record, "deployment"),
        )

    def _thumbnail(self, url: str) -> str | None:
        try:
            cached = build_requests.find_fresh_thumbnail(
                self.db, url, max_age_seconds=self.policy.thumbnail_max_age_seconds
            )
            if cached:
                logger.info("Reaproveitando thumbnail de %s", url, extra={"phase": "thumbnail"})
                return cached

            image = with_retry(
                lambda: self.screenshots.capture_screenshot(url),
                SCREENSHOT_RETRY_POLICY,
                reason="screenshot_failed",
                sleep=self.sleep,
            )
            return self.persist_thumbnail(image)
        except Exception:
            # sem thumbnail o build segue normalmente
            logger.warning("Thumbnail indisponível para %s", url, exc_info=True, extra={"phase": "thumbnail"})
            self.db.rollback()
            return None

    def _mark_failed(self, record: BuildRequest, exc: Exception) -> BuildRequest:
        status = BUILD_TIMEOUT if is_timeout_error(exc) else BUILD_FAILED
        message = build_requests.truncate_error(str(exc) or exc.__class__.__name__)
        if isinstance(exc, RetryExhausted) and exc.timed_out:
            logger.warning("Build falhou por timeout em todas as tentativas: %s", message, extra={"status": status})
        elif isinstance(exc, (TransientProviderError, TerminalProviderError)):
            logger.warning("Build falhou: %s", message, extra={"status": status})
        else:
            logger.exception("Erro inesperado no build", extra={"status": status})

        moved = build_requests.try_transition(
            self.db,
            record.id,
            status,
            from_statuses=(BUILD_PROCESSING,),
            values={"last_error": message},
        )
        self.db.refresh(record)
        if not moved:
            logger.warning("Build %s saiu de processing antes de registrar a falha (status=%s)", record.id, record.status)
        return record

    def _finish_session(self, record: BuildRequest, next_step: str) -> None:
        finish_build(self.db, record.user_id, record.id, next_step)


def build_default_orchestrator(db: Session) -> BuildOrchestrator:
    return BuildOrchestrator(
        db,
        generator=get_site_generator(),
        hosting=get_hosting_provider(),
        screenshots=get_screenshot_provider(),
        persist_thumbnail=persist_thumbnail_to_r2,
        notifier=NotificationDispatcher(db),
    )


def run_build_in_background(build_id: str, *, retry: bool = False) -> None:
    """Executa o build com uma sessão de banco própria (BackgroundTasks)."""
    db = SessionLocal()
    try:
        orchestrator = build_default_orchestrator(db)
        if retry:
            orchestrator.retry_build(build_id)
        else:
            orchestrator.start_build(build_id)
    except InvalidTransition as exc:
        logger.warning("Build %s não pôde ser reexecutado: %s", build_id, exc)
    except Exception:
        logger.exception("Falha inesperada ao executar build %s", build_id)
    finally:
        db.close()
