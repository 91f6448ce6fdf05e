from datetime import timedelta
from decimal import Decimal

import pytest

from tramites.budgets import compute_totals
from tramites.errors import ValidationError
from tramites.generator import ProcessGenerator, allocate
from tramites.models import (
    Budget,
    BudgetItem,
    BudgetStatus,
    DocumentStatus,
    PriceEntry,
    Priority,
    ProcessStatus,
    Template,
)
from tramites.templates import TemplateCatalog


@pytest.fixture
def generator(templates, pricing, clock):
    return ProcessGenerator(templates, pricing, clock=clock)


def _budget(templates, pricing, template_ids, *, operation_type=None):
    items = []
    for template_id in template_ids:
        template = templates.find(template_id)
        price = pricing.price_for(template)
        items.append(
            BudgetItem(
                description=template.name,
                unit_price=price,
                line_total=price,
                template_id=template.id,
            )
        )
    subtotal, tax, total = compute_totals(items, Decimal("0.21"))
    return Budget(
        number="PRES-2026-001",
        client_id="client-1",
        template_ids=list(template_ids),
        items=items,
        subtotal=subtotal,
        tax=tax,
        total=total,
        status=BudgetStatus.APPROVED,
        operation_type=operation_type,
    )


def test_process_from_template(generator, clock):
    process = generator.from_template("rne", "client-1")

    assert process.status is ProcessStatus.PENDING
    assert process.progress == 0
    assert process.title == "Registro Nacional de Establecimiento"
    assert process.client_id == "client-1"
    assert process.authority_id == "anmat"
    assert process.template_id == "rne"
    assert process.budget_id is None
    assert process.cost == Decimal("15000")
    assert process.tags == {"anmat"}
    assert process.created_at == clock.now
    assert process.due_at == clock.now + timedelta(days=30)
    assert [document.id for document in process.documents] == ["doc-1", "doc-2", "doc-3", "doc-4"]
    assert all(document.status is DocumentStatus.PENDING for document in process.documents)
    assert all(not document.validated for document in process.documents)
    assert process.documents[0].document_type == "Documento requerido"


def test_process_uses_catalog_price_and_options(generator, pricing):
    pricing.add(
        PriceEntry(service_name="Certificado de Libre Venta", price=Decimal("9500"), category="ANMAT")
    )

    process = generator.from_template(
        "libre-venta",
        "client-2",
        {"anmat": "org-anmat"},
        title="CLV lote 4",
        priority="high",
    )

    assert process.cost == Decimal("9500")
    assert process.authority_id == "org-anmat"
    assert process.title == "CLV lote 4"
    assert process.priority is Priority.HIGH


def test_authority_resolver_is_configurable(templates, pricing, clock):
    generator = ProcessGenerator(templates, pricing, authority_resolver=lambda name: "1", clock=clock)

    assert generator.from_template("afidi", "client-1").authority_id == "1"


def test_unknown_template_or_client_rejected(generator):
    with pytest.raises(ValidationError) as excinfo:
        generator.from_template("missing", "client-1")
    assert excinfo.value.identifiers == ("missing",)

    with pytest.raises(ValidationError):
        generator.from_template("rne", "")


def test_budget_fan_out(generator, templates, pricing):
    budget = _budget(templates, pricing, ["rne", "afidi"], operation_type="Importación")

    processes = generator.from_budget(budget)

    assert [process.template_id for process in processes] == ["rne", "afidi"]
    assert budget.process_ids == [process.id for process in processes]
    assert all(process.budget_id == budget.id for process in processes)
    assert all(process.client_id == budget.client_id for process in processes)
    assert [process.cost for process in processes] == [Decimal("18150.00"), Decimal("10285.00")]
    assert sum(process.cost for process in processes) == budget.total
    assert "importación" in processes[0].tags
    assert processes[1].due_at - processes[1].created_at == timedelta(days=20)


def test_budget_with_unknown_template_creates_nothing(generator, templates, pricing):
    budget = _budget(templates, pricing, ["rne"])
    budget.template_ids.append("missing")

    with pytest.raises(ValidationError) as excinfo:
        generator.from_budget(budget)

    assert excinfo.value.identifiers == ("missing",)
    assert budget.process_ids == []


def test_budget_without_templates_rejected(generator):
    budget = Budget(number="PRES-2026-002", client_id="client-1")

    with pytest.raises(ValidationError):
        generator.from_budget(budget)


def test_allocate_keeps_the_total():
    shares = allocate(Decimal("100.00"), [Decimal("1"), Decimal("1"), Decimal("1")])

    assert shares == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
    assert allocate(Decimal("10"), [Decimal("0"), Decimal("0")]) == [Decimal("5.00"), Decimal("5.00")]
    assert allocate(Decimal("10"), []) == []


def test_three_document_template_due_in_thirty_days(pricing, clock):
    catalog = TemplateCatalog(
        [
            Template(
                id="tres",
                name="Trámite de tres documentos",
                authority="ENACOM",
                required_documents=("A", "B", "C"),
                estimated_days=30,
            )
        ]
    )
    process = ProcessGenerator(catalog, pricing, clock=clock).from_template("tres", "client-1")

    assert process.status is ProcessStatus.PENDING
    assert len(process.documents) == 3
    assert all(document.status is DocumentStatus.PENDING for document in process.documents)
    assert process.due_at - process.created_at == timedelta(days=30)
    assert process.cost == pricing.fallback_price
