"""Budget book: priced quotes built from templates."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, FrozenSet, List

from .errors import InvalidTransition, NotFound, ValidationError
from .generator import CENT
from .models import Budget, BudgetItem, BudgetStatus, utcnow
from .pricing import PricingCatalog
from .templates import TemplateCatalog

logger = logging.getLogger(__name__)

DEFAULT_VAT_RATE = Decimal("0.21")

BUDGET_TRANSITIONS: Dict[BudgetStatus, FrozenSet[BudgetStatus]] = {
    BudgetStatus.DRAFT: frozenset({BudgetStatus.SENT, BudgetStatus.EXPIRED}),
    BudgetStatus.SENT: frozenset(
        {BudgetStatus.APPROVED, BudgetStatus.REJECTED, BudgetStatus.EXPIRED}
    ),
    BudgetStatus.APPROVED: frozenset(),
    BudgetStatus.REJECTED: frozenset(),
    BudgetStatus.EXPIRED: frozenset(),
}


def compute_totals(items: Sequence[BudgetItem], vat_rate: Decimal) -> tuple[Decimal, Decimal, Decimal]:
    subtotal = sum((item.line_total for item in items), Decimal("0"))
    tax = (subtotal * vat_rate).quantize(CENT, rounding=ROUND_HALF_UP)
    return subtotal, tax, subtotal + tax


class BudgetBook:
    """Owns budgets and their numbering."""

    def __init__(
        self,
        templates: TemplateCatalog,
        pricing: PricingCatalog,
        budgets: Iterable[Budget] = (),
        *,
        vat_rate: Decimal = DEFAULT_VAT_RATE,
        validity_days: int = 30,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.templates = templates
        self.pricing = pricing
        self._vat_rate = Decimal(vat_rate)
        self._validity = timedelta(days=validity_days)
        self._clock = clock
        self._budgets: Dict[str, Budget] = {budget.id: budget for budget in budgets}

    def __len__(self) -> int:
        return len(self._budgets)

    def list(self, *, status: BudgetStatus | None = None) -> List[Budget]:
        budgets = list(self._budgets.values())
        if status is not None:
            budgets = [budget for budget in budgets if budget.status is status]
        return budgets

    def find(self, budget_id: str) -> Budget:
        try:
            return self._budgets[budget_id]
        except KeyError as exc:
            raise NotFound("Budget", budget_id) from exc

    def _next_number(self, year: int) -> str:
        prefix = f"PRES-{year}-"
        issued = sum(1 for budget in self._budgets.values() if budget.number.startswith(prefix))
        return f"{prefix}{issued + 1:03d}"

    def create(
        self,
        client_id: str,
        template_ids: Sequence[str],
        *,
        operation_type: str | None = None,
        description: str | None = None,
    ) -> Budget:
        if not client_id:
            raise ValidationError("A client is required to create a budget.")
        selected = list(dict.fromkeys(template_ids))
        if not selected:
            raise ValidationError("Select at least one procedure for the budget.")
        unresolved = [template_id for template_id in selected if template_id not in self.templates]
        if unresolved:
            raise ValidationError(
                f"Unknown templates: {', '.join(unresolved)}.", identifiers=unresolved
            )

        items: List[BudgetItem] = []
        for template_id in selected:
            template = self.templates.find(template_id)
            price = self.pricing.price_for(template)
            items.append(
                BudgetItem(
                    description=f"{template.name} - {template.authority}",
                    quantity=1,
                    unit_price=price,
                    line_total=price,
                    template_id=template.id,
                )
            )
        subtotal, tax, total = compute_totals(items, self._vat_rate)
        now = self._clock()
        budget = Budget(
            number=self._next_number(now.year),
            client_id=client_id,
            template_ids=selected,
            items=items,
            subtotal=subtotal,
            tax=tax,
            total=total,
            status=BudgetStatus.DRAFT,
            operation_type=operation_type,
            description=description,
            created_at=now,
            valid_until=now + self._validity,
        )
        self._budgets[budget.id] = budget
        logger.info("Created budget %s for client %s (total %s)", budget.number, client_id, total)
        return budget

    def set_status(self, budget_id: str, status: BudgetStatus | str) -> Budget:
        budget = self.find(budget_id)
        try:
            target = BudgetStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Unknown budget status '{status}'.") from exc
        if target not in BUDGET_TRANSITIONS[budget.status]:
            raise InvalidTransition(budget.status.value, target.value, entity_id=budget.id)
        budget.status = target
        logger.info("Budget %s is now %s", budget.number, target.value)
        return budget

    def expire_overdue(self, now: datetime | None = None) -> List[Budget]:
        moment = now or self._clock()
        expired: List[Budget] = []
        for budget in self._budgets.values():
            if budget.valid_until is None or budget.valid_until >= moment:
                continue
            if BudgetStatus.EXPIRED in BUDGET_TRANSITIONS[budget.status]:
                budget.status = BudgetStatus.EXPIRED
                expired.append(budget)
        if expired:
            logger.info("Expired %d budget(s)", len(expired))
        return expired

    def remove(self, budget_id: str) -> Budget:
        budget = self.find(budget_id)
        if budget.process_ids:
            raise ValidationError(
                f"Budget '{budget.number}' already generated processes.", identifiers=[budget.id]
            )
        del self._budgets[budget_id]
        return budget
