"""Colaboradores falsos reutilizados pelos testes do orquestrador e do fluxo."""

from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

from sitebot.core.errors import TransientProviderError
from sitebot.hosting.base import Deployment
from sitebot.services.build_policy import BuildPolicy
from sitebot.services.notifications import NotificationDispatcher
from sitebot.services.orchestrator import BuildOrchestrator
from sitebot.services.retry import no_backoff
from sitebot.whatsapp.service import WhatsAppService

SITE_HTML = "<html><body><h1>Padaria</h1></body></html>"


class ScriptedGenerator:
    """Devolve (ou levanta) os itens do roteiro em ordem; repete o último."""

    name = "fake-ai"

    def __init__(self, *script):
        self.script = list(script) or [SITE_HTML]
        self.calls = []

    def generate_site_markup(self, prompt, *, timeout):
        self.calls.append((prompt, timeout))
        index = min(len(self.calls) - 1, len(self.script) - 1)
        item = self.script[index]
        if isinstance(item, BaseException):
            raise item
        return item


class AlwaysTimeoutGenerator(ScriptedGenerator):
    def __init__(self):
        super().__init__(TransientProviderError("timeout na geração", provider="fake-ai", timeout=True))


class FakeHosting:
    name = "fake-hosting"

    def __init__(self, *, error=None):
        self.error = error
        self.deploys = []
        self.released = []

    def deploy_site(self, markup, slot_id=None, owner_key=None, *, timeout):
        self.deploys.append({"markup": markup, "slot_id": slot_id, "owner_key": owner_key, "timeout": timeout})
        if self.error is not None:
            raise self.error
        slot = slot_id or self.reserve_slot(owner_key)
        return Deployment(url=f"https://{slot}.vercel.app", slot_id=slot)

    def reserve_slot(self, owner_key=None):
        return f"site-{uuid4().hex[:6]}"

    def release_slot(self, slot_id):
        self.released.append(slot_id)


class FakeScreenshots:
    name = "fake-shot"

    def __init__(self, *, error=None):
        self.error = error
        self.calls = []

    def capture_screenshot(self, url):
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return b"\xff\xd8jpeg\xff\xd9"


class FakeThumbnailStore:
    def __init__(self):
        self.uploads = []

    def __call__(self, image_bytes):
        self.uploads.append(image_bytes)
        return f"https://cdn.test/thumbnails/{len(self.uploads)}.jpg"


class RecordingWhatsAppProvider:
    def __init__(self, *, fail=False):
        self.fail = fail
        self.sent = []

    def _record(self, kind, to_phone, **payload):
        if self.fail:
            raise RuntimeError("WhatsApp fora do ar")
        self.sent.append({"kind": kind, "to": to_phone, **payload})
        return SimpleNamespace(status="sent", error=None)

    def send_text(self, db, *, to_phone, text, context=None):
        return self._record("text", to_phone, text=text)

    def send_image(self, db, *, to_phone, image_url, caption=None):
        return self._record("image", to_phone, image_url=image_url, caption=caption)

    def send_interactive(self, db, *, to_phone, payload):
        return self._record("interactive", to_phone, payload=payload)

    def texts(self):
        return [item["text"] for item in self.sent if item["kind"] == "text"]


def make_policy(**overrides):
    values = {"max_retries": 3, "retry_backoff": no_backoff, "probe_attempts": 1, "probe_delay_seconds": 0.0}
    values.update(overrides)
    return BuildPolicy(**values)


def make_orchestrator(
    db,
    *,
    generator=None,
    hosting=None,
    screenshots=None,
    thumbnails=None,
    whatsapp=None,
    policy=None,
    probe=None,
):
    whatsapp = whatsapp or RecordingWhatsAppProvider()
    orchestrator = BuildOrchestrator(
        db,
        generator=generator or ScriptedGenerator(),
        hosting=hosting or FakeHosting(),
        screenshots=screenshots or FakeScreenshots(),
        persist_thumbnail=thumbnails or FakeThumbnailStore(),
        notifier=NotificationDispatcher(db, WhatsAppService(provider=whatsapp)),
        policy=policy or make_policy(),
        probe=probe or (lambda *_args, **_kwargs: True),
        sleep=lambda _seconds: None,
    )
    return orchestrator, whatsapp
