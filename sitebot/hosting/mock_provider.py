from __future__ import annotations

import logging
from uuid import uuid4

from sitebot.hosting.base import Deployment

logger = logging.getLogger(__name__)


class MockHostingProvider:
    name = "mock"

    def __init__(self, base_domain: str = "sites.local") -> None:
        self.base_domain = base_domain
        self.deployments: dict[str, str] = {}
        self.released: list[str] = []

    def deploy_site(
        self,
        markup: str,
        slot_id: str | None = None,
        owner_key: str | None = None,
        *,
        timeout: float,
    ) -> Deployment:
        slot = slot_id or self.reserve_slot(owner_key)
        self.deployments[slot] = markup
        logger.info("Mock deploy: slot=%s", slot)
        return Deployment(url=f"https://{slot}.{self.base_domain}", slot_id=slot)

    def reserve_slot(self, owner_key: str | None = None) -> str:
        return f"mock-{uuid4().hex[:10]}"

    def release_slot(self, slot_id: str) -> None:
        self.deployments.pop(slot_id, None)
        self.released.append(slot_id)
