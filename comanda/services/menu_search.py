from __future__ import annotations

import difflib
import re
import unicodedata
from typing import Iterable, Protocol, TypeVar


_ALIAS_PATTERNS = (
    (r"\bcoca\b", "coca cola"),
    (r"\brefri\b", "refrigerante"),
    (r"\bsem\s+acucar\b", "zero"),
)

# palavras que não ajudam a achar o produto
_FILLER_TOKENS = {
    "quero", "queria", "gostaria", "add", "adiciona", "adicionar", "me", "ve", "manda",
    "um", "uma", "uns", "umas", "o", "a", "os", "as", "de", "do", "da", "dos", "das",
    "por", "favor", "pf", "mais", "outro", "outra", "tambem", "e", "com", "pra", "para",
    "remove", "remover", "tira", "tirar", "sem",
}

_NUMBER_WORDS = {
    "um": 1,
    "uma": 1,
    "dois": 2,
    "duas": 2,
    "tres": 3,
    "quatro": 4,
    "cinco": 5,
    "seis": 6,
    "sete": 7,
    "oito": 8,
    "nove": 9,
    "dez": 10,
}


class _Named(Protocol):
    name: str


T = TypeVar("T", bound=_Named)


def _apply_aliases(text: str) -> str:
    for pattern, replacement in _ALIAS_PATTERNS:
        text = re.sub(pattern, replacement, text)
    return text


def normalize(text: str) -> str:
    text = text.lower()
    text = unicodedata.normalize("NFKD", text)
    text = "".join(char for char in text if not unicodedata.combining(char))
    text = re.sub(r"[-_]", " ", text)
    text = re.sub(r"[^\w\s]", " ", text)
    text = re.sub(r"\s+", " ", text).strip()
    if not text:
        return ""
    text = _apply_aliases(text)
    text = re.sub(r"\s+", " ", text).strip()
    return text


def strip_filler(normalized_text: str) -> str:
    tokens = [
        token
        for token in normalized_text.split()
        if token not in _FILLER_TOKENS and not token.isdigit() and token not in _NUMBER_WORDS
    ]
    return " ".join(tokens)


def parse_quantity(text: str) -> int:
    for token in normalize(text or "").split():
        if token.isdigit():
            return max(int(token), 1)
        if token in _NUMBER_WORDS:
            return _NUMBER_WORDS[token]
    return 1


def _score_match(normalized_query: str, normalized_name: str) -> float:
    if not normalized_query or not normalized_name:
        return 0.0

    if normalized_query == normalized_name:
        return 1.0

    query_tokens = set(normalized_query.split())
    name_tokens = set(normalized_name.split())
    if not query_tokens or not name_tokens:
        return 0.0

    shared_tokens = query_tokens & name_tokens
    token_match_ratio = len(shared_tokens) / max(len(query_tokens), 1)
    name_match_ratio = len(shared_tokens) / max(len(name_tokens), 1)
    score = (token_match_ratio * 0.75) + (name_match_ratio * 0.25)

    similarity = difflib.SequenceMatcher(None, normalized_query, normalized_name).ratio()
    score = max(score, similarity * 0.6)

    if normalized_query in normalized_name:
        score = max(score, 0.78)

    return min(score, 1.0)


def search_in_candidates(
    items: Iterable[T], query: str, limit: int = 3, min_score: float = 0.35
) -> list[tuple[T, float]]:
    normalized_query = strip_filler(normalize(query or ""))
    if not normalized_query:
        return []

    results: list[tuple[T, float]] = []
    for item in items:
        normalized_name = normalize(item.name or "")
        if not normalized_name:
            continue

        score = _score_match(normalized_query, normalized_name)
        if score >= min_score:
            results.append((item, score))

    results.sort(key=lambda entry: entry[1], reverse=True)
    return results[:limit]
