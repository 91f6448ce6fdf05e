"""Mutable price catalog with template price resolution."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, List

from .errors import NotFound, ValidationError
from .models import PriceEntry, Template, utcnow
from .search import fold

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_PRICE = Decimal("10000")


def round_currency(value: Decimal) -> Decimal:
    """Round to the nearest whole currency unit, halves away from zero."""

    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


class PricingCatalog:
    """Registry of service prices keyed by entry id."""

    def __init__(
        self,
        entries: Iterable[PriceEntry] = (),
        *,
        fallback_price: Decimal = DEFAULT_FALLBACK_PRICE,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._entries: Dict[str, PriceEntry] = {}
        self._fallback_price = Decimal(fallback_price)
        self._clock = clock
        for entry in entries:
            self._entries[entry.id] = entry

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def fallback_price(self) -> Decimal:
        return self._fallback_price

    def list(self, *, active_only: bool = False) -> List[PriceEntry]:
        entries = list(self._entries.values())
        if active_only:
            return [entry for entry in entries if entry.active]
        return entries

    def find(self, entry_id: str) -> PriceEntry:
        try:
            return self._entries[entry_id]
        except KeyError as exc:
            raise NotFound("PriceEntry", entry_id) from exc

    def categories(self) -> List[str]:
        return sorted({entry.category for entry in self._entries.values()})

    def add(self, entry: PriceEntry) -> PriceEntry:
        if entry.id in self._entries:
            raise ValidationError(
                f"Price entry '{entry.id}' already exists.", identifiers=[entry.id]
            )
        if not entry.service_name.strip():
            raise ValidationError("Price entry requires a service name.")
        now = self._clock()
        stored = entry.model_copy(update={"created_at": now, "updated_at": now})
        self._entries[stored.id] = stored
        logger.info("Added price '%s' (%s)", stored.service_name, stored.price)
        return stored

    def update(self, entry: PriceEntry) -> PriceEntry:
        current = self.find(entry.id)
        if not entry.service_name.strip():
            raise ValidationError("Price entry requires a service name.")
        stored = entry.model_copy(
            update={"created_at": current.created_at, "updated_at": self._clock()}
        )
        self._entries[stored.id] = stored
        logger.info("Updated price '%s' (%s -> %s)", stored.service_name, current.price, stored.price)
        return stored

    def remove(self, entry_id: str) -> PriceEntry:
        entry = self.find(entry_id)
        del self._entries[entry_id]
        logger.info("Removed price '%s'", entry.service_name)
        return entry

    def explicit_entry_for(self, template: Template) -> PriceEntry | None:
        """Return the active entry priced for ``template``, if any.

        An entry linked through ``template_id`` wins over one whose service
        name equals the template name (case-insensitive).
        """

        active = [entry for entry in self._entries.values() if entry.active]
        for entry in active:
            if entry.template_id == template.id:
                return entry
        template_name = fold(template.name)
        for entry in active:
            if fold(entry.service_name) == template_name:
                return entry
        return None

    def price_for(self, template: Template) -> Decimal:
        entry = self.explicit_entry_for(template)
        if entry is not None:
            return entry.price
        if template.base_cost is not None:
            return template.base_cost
        logger.debug("No price for template '%s'; using fallback", template.id)
        return self._fallback_price

    def apply_increase(self, percent: Decimal | float | int | str, category: str | None = None) -> Sequence[PriceEntry]:
        """Raise every matching active price by ``percent`` in one step.

        New prices are computed for all matching entries before any entry
        is replaced, so a failure leaves the catalog untouched.
        """

        try:
            factor_percent = Decimal(str(percent))
        except InvalidOperation as exc:
            raise ValidationError(f"Invalid percentage '{percent}'.") from exc
        if not factor_percent.is_finite() or factor_percent < 0:
            raise ValidationError(f"Percentage must be a non-negative number, got '{percent}'.")
        if factor_percent == 0:
            return []

        factor = Decimal("1") + factor_percent / Decimal("100")
        now = self._clock()
        updated: Dict[str, PriceEntry] = {}
        for entry in self._entries.values():
            if not entry.active:
                continue
            if category is not None and entry.category != category:
                continue
            updated[entry.id] = entry.model_copy(
                update={"price": round_currency(entry.price * factor), "updated_at": now}
            )

        self._entries.update(updated)
        logger.info(
            "Applied %s%% increase to %d price(s)%s",
            factor_percent,
            len(updated),
            f" in category '{category}'" if category else "",
        )
        return list(updated.values())
