"""Reconciliation of the template catalog against the price catalog."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from .models import PricingNotification, Template, utcnow
from .pricing import PricingCatalog
from .search import fold
from .templates import TemplateCatalog

logger = logging.getLogger(__name__)

GapKey = Tuple[str, str]


def gap_key(procedure_name: str, authority: str) -> GapKey:
    return fold(procedure_name), fold(authority)


class PricingReconciler:
    """Detects procedures without an explicit price or with an outdated one.

    A gap is flagged once and stays flagged, read or not, until it is
    resolved. A gap that reopens after being resolved is flagged again.
    """

    def __init__(
        self,
        templates: TemplateCatalog,
        pricing: PricingCatalog,
        *,
        stale_after: timedelta = timedelta(days=180),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.templates = templates
        self.pricing = pricing
        self._stale_after = stale_after
        self._clock = clock
        self._missing: Dict[GapKey, PricingNotification] = {}
        self._stale: Dict[GapKey, Tuple[Optional[str], Optional[datetime], PricingNotification]] = {}
        self._known_templates: set[str] | None = None
        self._emitted: List[PricingNotification] = []

    @property
    def notifications(self) -> List[PricingNotification]:
        """Every notification emitted so far, oldest first."""

        return list(self._emitted)

    def open_gaps(self) -> List[PricingNotification]:
        return list(self._missing.values())

    @property
    def known_templates(self) -> List[str] | None:
        """Template ids seen by the last run, or ``None`` before any run."""

        if self._known_templates is None:
            return None
        return sorted(self._known_templates)

    def prime(
        self,
        notifications: Iterable[PricingNotification],
        known_templates: Iterable[str] | None = None,
    ) -> None:
        """Restore dedup state and the template baseline from a stored workspace."""

        if known_templates is not None:
            self._known_templates = set(known_templates)
        for notification in notifications:
            key = gap_key(notification.procedure_name, notification.authority)
            if notification.kind == "missingPrice":
                self._missing.setdefault(key, notification)
            elif notification.kind == "staleUpdate":
                self._stale.setdefault(key, (None, None, notification))

    def reconcile(self) -> List[PricingNotification]:
        now = self._clock()
        emitted: List[PricingNotification] = []

        emitted.extend(self._new_procedures(now))

        missing_keys: set[GapKey] = set()
        stale_keys: set[GapKey] = set()
        for template in self.templates.list():
            key = gap_key(template.name, template.authority)
            entry = self.pricing.explicit_entry_for(template)
            if entry is None:
                missing_keys.add(key)
                if key not in self._missing:
                    notification = self._missing_price(template, now)
                    self._missing[key] = notification
                    emitted.append(notification)
                continue

            if now - entry.updated_at <= self._stale_after:
                continue
            stale_keys.add(key)
            flagged = self._stale.get(key)
            if flagged is not None and (flagged[0] is None or flagged[:2] == (entry.id, entry.updated_at)):
                continue
            notification = self._stale_update(template, entry.updated_at, now)
            self._stale[key] = (entry.id, entry.updated_at, notification)
            emitted.append(notification)

        self._missing = {key: value for key, value in self._missing.items() if key in missing_keys}
        self._stale = {key: value for key, value in self._stale.items() if key in stale_keys}

        self._emitted.extend(emitted)
        if emitted:
            logger.info(
                "Reconciliation emitted %d notification(s); %d procedure(s) without price",
                len(emitted),
                len(self._missing),
            )
        else:
            logger.debug("Reconciliation found no new pricing gaps")
        return emitted

    def _new_procedures(self, now: datetime) -> List[PricingNotification]:
        current = self.templates.list()
        known = self._known_templates
        self._known_templates = {template.id for template in current}
        if known is None:
            return []
        return [
            PricingNotification(
                kind="newProcedure",
                procedure_name=template.name,
                authority=template.authority,
                template_id=template.id,
                message=f"Nuevo procedimiento en el catálogo: '{template.name}' ({template.authority}).",
                created_at=now,
            )
            for template in current
            if template.id not in known
        ]

    @staticmethod
    def _missing_price(template: Template, now: datetime) -> PricingNotification:
        return PricingNotification(
            kind="missingPrice",
            procedure_name=template.name,
            authority=template.authority,
            template_id=template.id,
            message=f"El procedimiento '{template.name}' ({template.authority}) no tiene precio asignado.",
            created_at=now,
        )

    @staticmethod
    def _stale_update(template: Template, updated_at: datetime, now: datetime) -> PricingNotification:
        return PricingNotification(
            kind="staleUpdate",
            procedure_name=template.name,
            authority=template.authority,
            template_id=template.id,
            message=(
                f"El precio de '{template.name}' ({template.authority}) no se actualiza "
                f"desde el {updated_at.date().isoformat()}."
            ),
            created_at=now,
        )
