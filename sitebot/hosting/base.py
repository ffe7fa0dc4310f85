from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class Deployment:
    url: str
    slot_id: str


class HostingProvider(Protocol):
    name: str

    def deploy_site(
        self,
        markup: str,
        slot_id: str | None = None,
        owner_key: str | None = None,
        *,
        timeout: float,
    ) -> Deployment:
        ...

    def reserve_slot(self, owner_key: str | None = None) -> str:
        ...

    def release_slot(self, slot_id: str) -> None:
        ...


def ensure_complete_html(content: str) -> str:
    if "<html" in content and "</body>" in content:
        return content

    return f"""<!DOCTYPE html>
<html lang="pt-BR">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <script src="https://cdn.tailwindcss.com"></script>
</head>
<body class="bg-gray-50 min-h-screen">
  <main class="container mx-auto p-4">
    {content}
  </main>
</body>
</html>"""
