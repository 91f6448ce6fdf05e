"""Read-only catalog of procedure templates."""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from importlib import resources
from pathlib import Path
from typing import Dict, List

from .errors import NotFound
from .models import Template
from .search import TemplateSearchIndex

logger = logging.getLogger(__name__)

BUNDLED_TEMPLATES = "plantillas.json"


class TemplateCatalog:
    """Fixed lookup table of templates keyed by id, in insertion order."""

    def __init__(self, templates: Iterable[Template] = ()) -> None:
        self._templates: Dict[str, Template] = {}
        self._by_authority: Dict[str, List[str]] = defaultdict(list)
        for template in templates:
            if template.id in self._templates:
                raise ValueError(f"Duplicate template id '{template.id}'")
            self._templates[template.id] = template
            self._by_authority[template.authority.casefold()].append(template.id)
        self._index: TemplateSearchIndex | None = None

    def __len__(self) -> int:
        return len(self._templates)

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._templates

    def list(self) -> Sequence[Template]:
        return list(self._templates.values())

    def find(self, template_id: str) -> Template:
        try:
            return self._templates[template_id]
        except KeyError as exc:
            raise NotFound("Template", template_id) from exc

    def get(self, template_id: str) -> Template | None:
        return self._templates.get(template_id)

    def by_authority(self, authority: str) -> Sequence[Template]:
        ids = self._by_authority.get(authority.casefold(), [])
        return [self._templates[template_id] for template_id in ids]

    def authorities(self) -> List[str]:
        seen: Dict[str, str] = {}
        for template in self._templates.values():
            seen.setdefault(template.authority.casefold(), template.authority)
        return list(seen.values())

    def search(self, query: str, limit: int = 10) -> List[tuple[float, Template]]:
        """Return ``(score, template)`` pairs ranked by relevance."""

        if self._index is None:
            self._index = TemplateSearchIndex(self)
        return self._index.search(query, limit=limit)

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> "TemplateCatalog":
        templates_payload = payload.get("templates", []) or []
        return cls(Template.model_validate(item) for item in templates_payload)


def load_templates(path: Path | None = None) -> TemplateCatalog:
    """Load the template catalog from ``path`` or from the bundled seed file."""

    if path is None:
        source = resources.files("tramites.data").joinpath(BUNDLED_TEMPLATES)
        with source.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    else:
        with Path(path).open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    catalog = TemplateCatalog.from_dict(payload)
    logger.info("Loaded %d procedure templates", len(catalog))
    return catalog
