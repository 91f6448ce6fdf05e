import asyncio
from decimal import Decimal

import pytest

from tramites.errors import InvalidTransition, NotFound, ValidationError
from tramites.models import (
    BudgetStatus,
    DocumentStatus,
    PriceEntry,
    ProcessStatus,
    SystemNotification,
)
from tramites.registry import WorkspaceState
from tramites.service import TramitesService
from tramites.validation import DocumentValidator, ValidationResult, ValidationState


def _approved_budget(service, template_ids):
    budget = service.create_budget("client-1", template_ids, operation_type="Importación")
    service.set_budget_status(budget.id, "sent")
    service.set_budget_status(budget.id, "approved")
    return budget


def test_generate_from_template_is_tracked(service):
    process = service.generate_from_template("rne", "client-1")

    assert service.get_process(process.id) is process
    assert service.list_processes() == [process]
    latest = service.notifications.feed()[0]
    assert isinstance(latest, SystemNotification)
    assert latest.kind == "newProcess"
    assert latest.process_id == process.id


def test_get_unknown_process(service):
    with pytest.raises(NotFound):
        service.get_process("missing")


def test_budget_fan_out_requires_approval(service):
    budget = service.create_budget("client-1", ["rne"])

    with pytest.raises(ValidationError):
        service.generate_from_budget(budget.id)
    assert service.list_processes() == []


def test_budget_fan_out_runs_once(service):
    budget = _approved_budget(service, ["rne", "afidi"])

    processes = service.generate_from_budget(budget.id)

    assert len(processes) == 2
    assert service.budgets.find(budget.id).process_ids == [process.id for process in processes]
    assert sum(process.cost for process in processes) == budget.total

    with pytest.raises(ValidationError):
        service.generate_from_budget(budget.id)
    assert len(service.list_processes()) == 2


def test_transitions_and_document_notifications(service):
    process = service.generate_from_template("afidi", "client-1")
    service.transition(process.id, "collectingDocs")

    with pytest.raises(InvalidTransition):
        service.transition(process.id, "sent")
    assert process.status is ProcessStatus.COLLECTING_DOCS

    for document in process.documents:
        service.set_document_status(process.id, document.id, "loaded")
    uploads = [item for item in service.notifications.system() if item.kind == "documentUploaded"]
    assert len(uploads) == 2

    service.transition(process.id, ProcessStatus.SENT)
    assert process.status is ProcessStatus.SENT


def test_board_groups_by_status(service):
    first = service.generate_from_template("rne", "client-1")
    second = service.generate_from_template("afidi", "client-2")
    service.transition(second.id, "collectingDocs")

    board = service.board()

    assert list(board) == list(ProcessStatus)
    assert board[ProcessStatus.PENDING] == [first]
    assert board[ProcessStatus.COLLECTING_DOCS] == [second]
    assert board[ProcessStatus.ARCHIVED] == []


def test_pricing_changes_reconcile(service):
    emitted = service.reconcile()
    assert len(emitted) == 3

    service.upsert_price(
        PriceEntry(id="clv", service_name="Certificado de Libre Venta", price=Decimal("9000"), category="ANMAT")
    )
    assert len(service.reconciler.open_gaps()) == 2

    service.remove_price("clv")
    reopened = service.notifications.feed(source="pricing")[0]
    assert reopened.kind == "missingPrice"
    assert reopened.template_id == "libre-venta"


def test_price_increase_applies_to_catalog(service):
    entry = service.add_price(
        PriceEntry(service_name="Registro Nacional de Establecimiento", price=Decimal("20000"), category="ANMAT")
    )

    updated = service.apply_price_increase(5)

    assert [item.id for item in updated] == [entry.id]
    assert service.pricing.price_for(service.templates.find("rne")) == Decimal("21000")


def test_snapshot_restores_without_duplicate_notifications(service, templates, settings, clock):
    service.reconcile()
    process = service.generate_from_template("rne", "client-1")
    budget = service.create_budget("client-2", ["afidi"])

    restored = TramitesService.from_state(templates, service.snapshot(), settings=settings, clock=clock)

    assert restored.get_process(process.id) == process
    assert restored.budgets.find(budget.id).number == budget.number
    assert len(restored.notifications) == len(service.notifications)
    assert restored.reconcile() == []


@pytest.mark.asyncio
async def test_document_validation_updates_document(templates, pricing, settings, clock):
    async def _reject(process_id, document_id):
        return ValidationResult(valid=False, confidence=12.0, observations=["Documento incompleto"])

    validator = DocumentValidator(_reject)
    service = TramitesService(templates, pricing, settings=settings, validator=validator, clock=clock)
    process = service.generate_from_template("afidi", "client-1")

    task = service.validate_document(process.id, "doc-1")
    await validator.wait(task.id)

    assert task.state is ValidationState.COMPLETED
    assert process.get_document("doc-1").status is DocumentStatus.REJECTED
    latest = service.notifications.feed()[0]
    assert latest.kind == "error"
    assert latest.priority == "high"

    with pytest.raises(NotFound):
        service.validate_document(process.id, "doc-9")


def test_budget_status_check(service):
    budget = service.create_budget("client-1", ["rne"])
    assert budget.status is BudgetStatus.DRAFT
    with pytest.raises(InvalidTransition):
        service.set_budget_status(budget.id, "approved")


def test_unknown_priority_is_a_validation_error(service):
    with pytest.raises(ValidationError):
        service.generate_from_template("rne", "client-1", priority="bogus")

    assert service.list_processes() == []


def test_restart_reports_templates_added_to_the_catalog(templates, settings, clock):
    state = WorkspaceState.from_dict(
        {
            "prices": [
                {
                    "service_name": "Registro Nacional de Establecimiento",
                    "price": "15000",
                    "category": "ANMAT",
                    "template_id": "rne",
                    "created_at": "2026-01-10T09:00:00",
                    "updated_at": "2026-01-10T09:00:00",
                }
            ],
            "known_templates": ["rne", "libre-venta"],
        }
    )

    service = TramitesService.from_state(templates, state, settings=settings, clock=clock)
    emitted = service.reconcile()

    assert sorted((n.kind, n.template_id) for n in emitted) == [
        ("missingPrice", "afidi"),
        ("missingPrice", "libre-venta"),
        ("newProcedure", "afidi"),
    ]
    assert service.snapshot().known_templates == ["afidi", "libre-venta", "rne"]


def test_first_start_does_not_report_every_template_as_new(templates, settings, clock):
    service = TramitesService.from_state(templates, WorkspaceState(), settings=settings, clock=clock)

    emitted = service.reconcile()

    assert {n.kind for n in emitted} == {"missingPrice"}


@pytest.mark.asyncio
async def test_cancelled_validation_can_be_retried(templates, pricing, settings, clock):
    release = asyncio.Event()
    calls = []

    async def _hang_then_approve(process_id, document_id):
        calls.append(document_id)
        if len(calls) == 1:
            await release.wait()
        return ValidationResult(valid=True, confidence=88.0)

    validator = DocumentValidator(_hang_then_approve)
    service = TramitesService(templates, pricing, settings=settings, validator=validator, clock=clock)
    process = service.generate_from_template("afidi", "client-1")

    first = service.validate_document(process.id, "doc-2")
    await asyncio.sleep(0)
    assert service.get_validation(first.id).state is ValidationState.PROCESSING

    assert service.cancel_validation(first.id) is True
    await validator.wait(first.id)
    assert first.state is ValidationState.CANCELLED
    assert process.get_document("doc-2").status is DocumentStatus.PENDING
    assert service.cancel_validation(first.id) is False

    second = service.retry_validation(first.id)
    await validator.wait(second.id)

    assert second.id != first.id
    assert second.retry_of == first.id
    assert first.state is ValidationState.CANCELLED
    assert second.state is ValidationState.COMPLETED
    assert process.get_document("doc-2").status is DocumentStatus.APPROVED

    with pytest.raises(ValidationError):
        service.retry_validation(second.id)
    with pytest.raises(NotFound):
        service.get_validation("missing")
