from __future__ import annotations

import html


class MockSiteGenerator:
    name = "mock"

    def generate_site_markup(self, prompt: str, *, timeout: float) -> str:
        title = html.escape(prompt.strip()[:80] or "Meu site")
        return (
            "<!DOCTYPE html>\n"
            '<html lang="pt-BR">\n'
            "<head>\n"
            '  <meta charset="UTF-8">\n'
            f"  <title>{title}</title>\n"
            "</head>\n"
            "<body>\n"
            f"  <header><h1>{title}</h1></header>\n"
            "  <main><section><p>Site gerado automaticamente.</p></section></main>\n"
            "  <footer><p>Feito via WhatsApp</p></footer>\n"
            "</body>\n"
            "</html>"
        )
