import re
import unicodedata


def normalize(text: str) -> str:
    text = (text or "").lower()
    text = unicodedata.normalize("NFKD", text)
    text = "".join(char for char in text if not unicodedata.combining(char))
    text = re.sub(r"[-_]", " ", text)
    text = re.sub(r"[^\w\s]", " ", text)
    text = re.sub(r"\s+", " ", text).strip()
    return text


def contains_term(normalized_text: str, term: str) -> bool:
    """Casa `term` como palavra (ou frase) inteira dentro de um texto já normalizado."""
    normalized_term = normalize(term)
    if not normalized_term or not normalized_text:
        return False
    return f" {normalized_term} " in f" {normalized_text} "
