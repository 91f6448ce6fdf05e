"""Template search index and text helpers."""

from __future__ import annotations

import re
import unicodedata
from typing import TYPE_CHECKING, Dict, List

from rapidfuzz import fuzz

from .models import Template

if TYPE_CHECKING:
    from .templates import TemplateCatalog

TOKEN_PATTERN = re.compile(r"[^\w]+", re.UNICODE)


def normalise_whitespace(value: str) -> str:
    """Collapse multiple whitespace characters into a single space."""

    return " ".join(value.split())


def fold(value: str) -> str:
    """Lowercase ``value`` and strip accents for comparisons."""

    decomposed = unicodedata.normalize("NFKD", normalise_whitespace(value))
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()


def _tokenise(text: str) -> List[str]:
    cleaned = TOKEN_PATTERN.sub(" ", fold(text))
    return [token for token in cleaned.split(" ") if token]


class TemplateSearchIndex:
    """Lightweight inverted index with fuzzy scoring fallback."""

    def __init__(self, catalog: TemplateCatalog) -> None:
        self._catalog = catalog
        self._index: Dict[str, set[str]] = {}
        self.rebuild()

    def rebuild(self) -> None:
        self._index.clear()
        for template in self._catalog.list():
            tokens = set(_tokenise(template.name))
            tokens.update(_tokenise(template.authority))
            if template.description:
                tokens.update(_tokenise(template.description))
            for token in tokens:
                self._index.setdefault(token, set()).add(template.id)

    def search(self, query: str, limit: int = 10) -> List[tuple[float, Template]]:
        if not query.strip():
            return []

        folded_query = fold(query)
        tokens = _tokenise(query)
        candidates: Dict[str, int] = {}
        for token in tokens:
            for template_id in self._index.get(token, set()):
                candidates[template_id] = candidates.get(template_id, 0) + 1

        scored: List[tuple[float, Template]] = []
        if candidates:
            for template_id, count in candidates.items():
                template = self._catalog.get(template_id)
                if not template:
                    continue
                fuzzy = fuzz.partial_ratio(folded_query, fold(template.name))
                scored.append((float(count * 10 + fuzzy), template))
        else:
            for template in self._catalog.list():
                fuzzy = fuzz.partial_ratio(folded_query, fold(template.name))
                if fuzzy >= 40:
                    scored.append((float(fuzzy), template))

        scored.sort(key=lambda item: item[0], reverse=True)
        return scored[:limit]
