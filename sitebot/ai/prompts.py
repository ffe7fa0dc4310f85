SYSTEM_PROMPT = (
    "Você é um especialista em desenvolvimento web. Retorne SOMENTE código HTML/CSS/JS completo, "
    "sem comentários ou markdown. Inclua tudo inline. Use: Tailwind CSS via CDN, designs modernos "
    "e responsivos, componentes interativos com JS quando necessário. "
    "Estrutura típica: <header>, <main> com seções, <footer>."
)

USER_PROMPT_TEMPLATE = """Crie um site completo para: "{prompt}".
Siga estas diretrizes:
1. Layout profissional com no mínimo 3 seções
2. Design responsivo (mobile-first)
3. Interatividade básica (menu mobile, formulários)
4. Estilos com Tailwind CSS via CDN
5. Conteúdo relevante para o tema
Retorne APENAS o código HTML."""


def build_messages(prompt: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": USER_PROMPT_TEMPLATE.format(prompt=prompt.strip())},
    ]
