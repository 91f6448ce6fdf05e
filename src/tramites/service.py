"""Application facade wiring catalogs, generation, lifecycle and notifications."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List

from .budgets import BudgetBook
from .config import Settings
from .errors import InvalidTransition, NotFound, TramitesError, ValidationError
from .filters import ProcessFilter, apply_filters
from .generator import ProcessGenerator
from .lifecycle import ProcessStateMachine
from .metrics import (
    record_notification,
    record_processes_generated,
    record_transition,
)
from .models import (
    Budget,
    BudgetStatus,
    Document,
    DocumentStatus,
    Notification,
    PriceEntry,
    PricingNotification,
    Priority,
    Process,
    ProcessStatus,
    SystemNotification,
    utcnow,
)
from .notifications import NotificationAggregator
from .pricing import PricingCatalog
from .reconciler import PricingReconciler
from .registry import WorkspaceState
from .templates import TemplateCatalog
from .validation import (
    DocumentValidator,
    ValidationState,
    ValidationTask,
    simulated_validator,
)

logger = logging.getLogger(__name__)


class TramitesService:
    """Entry point for every user-facing operation on the engine."""

    def __init__(
        self,
        templates: TemplateCatalog,
        pricing: PricingCatalog,
        *,
        settings: Settings | None = None,
        budgets: Iterable[Budget] = (),
        processes: Iterable[Process] = (),
        notifications: NotificationAggregator | None = None,
        validator: DocumentValidator | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings or Settings()
        self.templates = templates
        self.pricing = pricing
        self._clock = clock
        self.budgets = BudgetBook(
            templates,
            pricing,
            budgets,
            vat_rate=self.settings.vat_rate,
            validity_days=self.settings.budget_validity_days,
            clock=clock,
        )
        self.generator = ProcessGenerator(
            templates,
            pricing,
            authority_resolver=self.settings.authority_id_for,
            clock=clock,
        )
        self.state_machine = ProcessStateMachine(clock=clock)
        self.reconciler = PricingReconciler(
            templates,
            pricing,
            stale_after=timedelta(days=self.settings.price_stale_days),
            clock=clock,
        )
        self.notifications = notifications or NotificationAggregator()
        self._processes: Dict[str, Process] = {process.id: process for process in processes}
        self.validator = validator or DocumentValidator(
            simulated_validator(
                delay_seconds=self.settings.validation_delay_seconds,
                threshold=self.settings.validation_confidence_threshold,
            ),
        )
        self.validator.on_complete = self._on_validation_complete

    @classmethod
    def from_state(
        cls,
        templates: TemplateCatalog,
        state: WorkspaceState,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> "TramitesService":
        settings = settings or Settings()
        pricing = PricingCatalog(state.prices, fallback_price=settings.fallback_price, clock=clock)
        service = cls(
            templates,
            pricing,
            settings=settings,
            budgets=state.budgets,
            processes=state.processes,
            notifications=NotificationAggregator(state.notifications),
            clock=clock,
        )
        service.reconciler.prime(
            (
                notification
                for notification in state.notifications
                if isinstance(notification, PricingNotification)
            ),
            known_templates=state.known_templates,
        )
        return service

    def snapshot(self) -> WorkspaceState:
        return WorkspaceState(
            prices=self.pricing.list(),
            budgets=self.budgets.list(),
            processes=list(self._processes.values()),
            notifications=list(reversed(self.notifications.feed())),
            known_templates=self.reconciler.known_templates,
        )

    # Notifications -----------------------------------------------------

    def _publish(self, notification: Notification) -> Notification:
        self.notifications.add(notification)
        record_notification(notification.kind)
        return notification

    def _notify(
        self,
        kind: str,
        title: str,
        message: str,
        *,
        priority: str = "low",
        process_id: str | None = None,
        budget_id: str | None = None,
    ) -> SystemNotification:
        notification = SystemNotification(
            kind=kind,
            title=title,
            message=message,
            priority=priority,
            process_id=process_id,
            budget_id=budget_id,
            created_at=self._clock(),
        )
        self._publish(notification)
        return notification

    def reconcile(self) -> List[PricingNotification]:
        emitted = self.reconciler.reconcile()
        for notification in emitted:
            self._publish(notification)
        return emitted

    def mark_notification_read(self, notification_id: str) -> Notification:
        return self.notifications.mark_read(notification_id)

    # Pricing -----------------------------------------------------------

    def add_price(self, entry: PriceEntry) -> PriceEntry:
        stored = self.pricing.add(entry)
        self.reconcile()
        return stored

    def update_price(self, entry: PriceEntry) -> PriceEntry:
        stored = self.pricing.update(entry)
        self.reconcile()
        return stored

    def upsert_price(self, entry: PriceEntry) -> PriceEntry:
        try:
            self.pricing.find(entry.id)
        except NotFound:
            return self.add_price(entry)
        return self.update_price(entry)

    def remove_price(self, entry_id: str) -> PriceEntry:
        removed = self.pricing.remove(entry_id)
        self.reconcile()
        return removed

    def apply_price_increase(
        self, percent: Decimal | float | int | str, category: str | None = None
    ) -> List[PriceEntry]:
        updated = list(self.pricing.apply_increase(percent, category))
        if updated:
            self.reconcile()
        return updated

    # Budgets -----------------------------------------------------------

    def create_budget(
        self,
        client_id: str,
        template_ids: Sequence[str],
        *,
        operation_type: str | None = None,
        description: str | None = None,
    ) -> Budget:
        return self.budgets.create(
            client_id, template_ids, operation_type=operation_type, description=description
        )

    def set_budget_status(self, budget_id: str, status: BudgetStatus | str) -> Budget:
        return self.budgets.set_status(budget_id, status)

    # Processes ---------------------------------------------------------

    def get_process(self, process_id: str) -> Process:
        try:
            return self._processes[process_id]
        except KeyError as exc:
            raise NotFound("Process", process_id) from exc

    def list_processes(self, filters: Sequence[ProcessFilter] = ()) -> List[Process]:
        return apply_filters(self._processes.values(), filters)

    def board(self) -> Dict[ProcessStatus, List[Process]]:
        columns: Dict[ProcessStatus, List[Process]] = {status: [] for status in ProcessStatus}
        for process in self._processes.values():
            columns[process.status].append(process)
        return columns

    def generate_from_template(
        self,
        template_id: str,
        client_id: str,
        authority_mapping_override: Mapping[str, str] | None = None,
        *,
        title: str | None = None,
        priority: Priority | str = Priority.MEDIUM,
    ) -> Process:
        process = self.generator.from_template(
            template_id,
            client_id,
            authority_mapping_override,
            title=title,
            priority=priority,
        )
        self._processes[process.id] = process
        record_processes_generated("template", 1)
        self._notify(
            "newProcess",
            "Nuevo proceso",
            f"Se creó el proceso '{process.title}'.",
            process_id=process.id,
        )
        return process

    def generate_from_budget(
        self,
        budget_id: str,
        authority_mapping_override: Mapping[str, str] | None = None,
    ) -> List[Process]:
        budget = self.budgets.find(budget_id)
        if budget.status is not BudgetStatus.APPROVED:
            raise ValidationError(
                f"Budget '{budget.number}' must be approved before generating processes "
                f"(status: {budget.status.value}).",
                identifiers=[budget.id],
            )
        if budget.process_ids:
            raise ValidationError(
                f"Budget '{budget.number}' already generated {len(budget.process_ids)} process(es).",
                identifiers=[budget.id],
            )

        processes = self.generator.from_budget(budget, authority_mapping_override)
        for process in processes:
            self._processes[process.id] = process
        record_processes_generated("budget", len(processes))
        self._notify(
            "newProcess",
            "Procesos generados",
            f"Se crearon {len(processes)} proceso(s) desde el presupuesto {budget.number}.",
            budget_id=budget.id,
        )
        return processes

    def transition(
        self, process_id: str, target: ProcessStatus | str, *, author: str = "system"
    ) -> Process:
        process = self.get_process(process_id)
        source = process.status.value
        try:
            self.state_machine.transition(process, target, author=author)
        except InvalidTransition:
            record_transition(source, str(getattr(target, "value", target)), "rejected")
            raise
        record_transition(source, process.status.value, "applied")
        return process

    def set_document_status(
        self,
        process_id: str,
        document_id: str,
        status: DocumentStatus | str,
        *,
        author: str = "system",
    ) -> Document:
        process = self.get_process(process_id)
        document = self.state_machine.set_document_status(
            process, document_id, status, author=author
        )
        if document.status is DocumentStatus.LOADED:
            self._notify(
                "documentUploaded",
                "Documento cargado",
                f"Se cargó '{document.name}' en '{process.title}'.",
                process_id=process.id,
            )
        return document

    # Document validation -----------------------------------------------

    def validate_document(self, process_id: str, document_id: str) -> ValidationTask:
        process = self.get_process(process_id)
        if process.get_document(document_id) is None:
            raise NotFound("Document", f"{process_id}/{document_id}")
        return self.validator.submit(process_id, document_id)

    def get_validation(self, task_id: str) -> ValidationTask:
        return self.validator.get(task_id)

    def retry_validation(self, task_id: str) -> ValidationTask:
        return self.validator.retry(task_id)

    def cancel_validation(self, task_id: str) -> bool:
        return self.validator.cancel(task_id)

    def _on_validation_complete(self, task: ValidationTask) -> None:
        if task.state is not ValidationState.COMPLETED or task.result is None:
            self._notify(
                "error",
                "Validación fallida",
                f"No se pudo validar el documento {task.document_id}: {task.error}",
                priority="high",
                process_id=task.process_id,
            )
            return
        result = task.result
        status = DocumentStatus.APPROVED if result.valid else DocumentStatus.REJECTED
        try:
            self.set_document_status(task.process_id, task.document_id, status, author="validator")
        except TramitesError as exc:
            logger.warning("Validation %s result not applied: %s", task.id, exc)
        self._notify(
            "success" if result.valid else "error",
            "Validación completada",
            f"Documento {'aprobado' if result.valid else 'rechazado'} con "
            f"{result.confidence:.1f}% de confianza",
            priority="low" if result.valid else "high",
            process_id=task.process_id,
        )
