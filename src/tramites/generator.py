"""Turns templates and approved budgets into trackable processes."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import List

from .config import slugify
from .errors import ValidationError
from .models import (
    Budget,
    Document,
    DocumentKind,
    DocumentStatus,
    Priority,
    Process,
    ProcessEvent,
    ProcessStatus,
    Template,
    utcnow,
)
from .pricing import PricingCatalog
from .templates import TemplateCatalog

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def allocate(total: Decimal, weights: Sequence[Decimal]) -> List[Decimal]:
    """Split ``total`` proportionally to ``weights``, to the cent.

    The last share absorbs rounding so the shares always sum to ``total``.
    Zero total weight splits evenly.
    """

    if not weights:
        return []
    weight_sum = sum(weights, Decimal("0"))
    if weight_sum <= 0:
        weights = [Decimal("1")] * len(weights)
        weight_sum = Decimal(len(weights))
    shares: List[Decimal] = []
    for weight in weights[:-1]:
        shares.append((total * weight / weight_sum).quantize(CENT, rounding=ROUND_HALF_UP))
    shares.append(total - sum(shares, Decimal("0")))
    return shares


class ProcessGenerator:
    """Builds processes with their document checklist and due date."""

    def __init__(
        self,
        templates: TemplateCatalog,
        pricing: PricingCatalog,
        *,
        authority_resolver: Callable[[str], str] = slugify,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.templates = templates
        self.pricing = pricing
        self._authority_resolver = authority_resolver
        self._clock = clock

    def _resolve(self, template_id: str) -> Template:
        template = self.templates.get(template_id)
        if template is None:
            logger.warning("Unknown template '%s'", template_id)
            raise ValidationError(
                f"Template '{template_id}' does not exist.", identifiers=[template_id]
            )
        return template

    def _authority_id(
        self, template: Template, override: Mapping[str, str] | None
    ) -> str:
        if override:
            for authority, authority_id in override.items():
                if authority.casefold() == template.authority.casefold():
                    return authority_id
        return self._authority_resolver(template.authority)

    def _build(
        self,
        template: Template,
        *,
        client_id: str,
        authority_id: str,
        cost: Decimal,
        now: datetime,
        description: str,
        title: str | None = None,
        priority: Priority = Priority.MEDIUM,
        budget_id: str | None = None,
        extra_tags: Sequence[str] = (),
    ) -> Process:
        documents = [
            Document(
                id=f"doc-{position}",
                name=name,
                kind=DocumentKind.REQUIRED,
                status=DocumentStatus.PENDING,
                validated=False,
            )
            for position, name in enumerate(template.required_documents, start=1)
        ]
        tags = {template.authority.lower()}
        tags.update(tag.lower() for tag in extra_tags if tag)
        return Process(
            title=title or template.name,
            description=description,
            client_id=client_id,
            authority_id=authority_id,
            status=ProcessStatus.PENDING,
            created_at=now,
            due_at=now + timedelta(days=template.estimated_days),
            documents=documents,
            progress=0,
            priority=priority,
            tags=tags,
            cost=cost,
            template_id=template.id,
            budget_id=budget_id,
            history=[ProcessEvent(kind="comment", message=description, created_at=now)],
        )

    def from_template(
        self,
        template_id: str,
        client_id: str,
        authority_mapping_override: Mapping[str, str] | None = None,
        *,
        title: str | None = None,
        priority: Priority | str = Priority.MEDIUM,
    ) -> Process:
        if not client_id:
            raise ValidationError("A client is required to create a process.")
        try:
            process_priority = Priority(priority)
        except ValueError as exc:
            raise ValidationError(f"Unknown priority '{priority}'.") from exc
        template = self._resolve(template_id)
        process = self._build(
            template,
            client_id=client_id,
            authority_id=self._authority_id(template, authority_mapping_override),
            cost=self.pricing.price_for(template),
            now=self._clock(),
            description=f"Proceso creado desde la plantilla '{template.name}'",
            title=title,
            priority=process_priority,
        )
        logger.info("Generated process %s from template %s", process.id, template.id)
        return process

    def from_budget(
        self,
        budget: Budget,
        authority_mapping_override: Mapping[str, str] | None = None,
    ) -> List[Process]:
        """Create one process per template referenced by ``budget``.

        Re-running on a budget that already has processes is not checked
        here; callers guard against duplicate fan-out.
        """

        template_ids = list(dict.fromkeys(budget.template_ids))
        if not template_ids:
            raise ValidationError(
                f"Budget '{budget.number}' does not reference any template.",
                identifiers=[budget.id],
            )
        unresolved = [template_id for template_id in template_ids if template_id not in self.templates]
        if unresolved:
            logger.warning("Budget %s references unknown templates %s", budget.id, unresolved)
            raise ValidationError(
                f"Budget '{budget.number}' references unknown templates: {', '.join(unresolved)}.",
                identifiers=unresolved,
            )

        templates = [self.templates.find(template_id) for template_id in template_ids]
        costs = allocate(budget.total, [self._contribution(budget, template) for template in templates])
        now = self._clock()
        processes = [
            self._build(
                template,
                client_id=budget.client_id,
                authority_id=self._authority_id(template, authority_mapping_override),
                cost=cost,
                now=now,
                description=f"Proceso creado desde el presupuesto {budget.number}",
                budget_id=budget.id,
                extra_tags=[budget.operation_type] if budget.operation_type else (),
            )
            for template, cost in zip(templates, costs)
        ]

        budget.process_ids.extend(process.id for process in processes)
        logger.info(
            "Budget %s fanned out into %d process(es)", budget.number, len(processes)
        )
        return processes

    def _contribution(self, budget: Budget, template: Template) -> Decimal:
        linked = [item.line_total for item in budget.items if item.template_id == template.id]
        if linked:
            return sum(linked, Decimal("0"))
        return self.pricing.price_for(template)
