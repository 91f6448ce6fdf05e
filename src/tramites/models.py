"""Data models for templates, prices, budgets, processes and notifications."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Union
from uuid import uuid4

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


def ensure_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


class ProcessStatus(str, Enum):
    """Lifecycle states of a process, in canonical board order."""

    PENDING = "pending"
    COLLECTING_DOCS = "collectingDocs"
    SENT = "sent"
    UNDER_REVIEW = "underReview"
    APPROVED = "approved"
    REJECTED = "rejected"
    ARCHIVED = "archived"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class DocumentKind(str, Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"


class DocumentStatus(str, Enum):
    PENDING = "pending"
    LOADED = "loaded"
    APPROVED = "approved"
    REJECTED = "rejected"


class BudgetStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class Template(BaseModel):
    """Procedure template from the catalog. Never mutated at runtime."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    authority: str
    required_documents: tuple[str, ...] = Field(default_factory=tuple)
    estimated_days: int = Field(default=0, ge=0)
    base_cost: Decimal | None = Field(default=None, ge=0)
    description: str | None = None


class PriceEntry(BaseModel):
    """Price of a service, optionally linked to a template."""

    id: str = Field(default_factory=new_id)
    service_name: str
    price: Decimal = Field(ge=0)
    category: str
    authority: str | None = None
    template_id: str | None = None
    description: str | None = None
    active: bool = True
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)


class BudgetItem(BaseModel):
    description: str
    quantity: int = Field(default=1, ge=1)
    unit_price: Decimal = Field(ge=0)
    line_total: Decimal = Field(ge=0)
    template_id: str | None = None


class Budget(BaseModel):
    """Priced quote referencing one or more templates."""

    id: str = Field(default_factory=new_id)
    number: str
    client_id: str
    template_ids: list[str] = Field(default_factory=list)
    items: list[BudgetItem] = Field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    status: BudgetStatus = BudgetStatus.DRAFT
    operation_type: str | None = None
    description: str | None = None
    created_at: UtcDatetime = Field(default_factory=utcnow)
    valid_until: UtcDatetime | None = None
    process_ids: list[str] = Field(default_factory=list)


class Document(BaseModel):
    """Checklist entry belonging to exactly one process."""

    id: str
    name: str
    kind: DocumentKind = DocumentKind.REQUIRED
    status: DocumentStatus = DocumentStatus.PENDING
    uploaded_at: UtcDatetime | None = None
    validated: bool = False
    document_type: str = "Documento requerido"


class ProcessEvent(BaseModel):
    """Entry in the history of a process."""

    kind: Literal["comment", "stateChange", "documentAdded"]
    message: str
    author: str = "system"
    created_at: UtcDatetime = Field(default_factory=utcnow)


class Process(BaseModel):
    """Tracked instance of a procedure for one client."""

    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    client_id: str
    authority_id: str
    status: ProcessStatus = ProcessStatus.PENDING
    created_at: UtcDatetime = Field(default_factory=utcnow)
    due_at: UtcDatetime | None = None
    documents: list[Document] = Field(default_factory=list)
    progress: int = Field(default=0, ge=0, le=100)
    priority: Priority = Priority.MEDIUM
    tags: set[str] = Field(default_factory=set)
    cost: Decimal = Decimal("0")
    template_id: str | None = None
    budget_id: str | None = None
    billed: bool = False
    history: list[ProcessEvent] = Field(default_factory=list)

    def get_document(self, document_id: str) -> Document | None:
        for document in self.documents:
            if document.id == document_id:
                return document
        return None


class PricingNotification(BaseModel):
    """Pricing gap detected by reconciliation; only ``read`` ever changes."""

    source: Literal["pricing"] = "pricing"
    id: str = Field(default_factory=new_id)
    kind: Literal["missingPrice", "newProcedure", "staleUpdate"]
    procedure_name: str
    authority: str
    template_id: str | None = None
    message: str
    created_at: UtcDatetime = Field(default_factory=utcnow)
    read: bool = False


class SystemNotification(BaseModel):
    """Ad-hoc notification raised by the application."""

    source: Literal["system"] = "system"
    id: str = Field(default_factory=new_id)
    kind: Literal["info", "success", "warning", "error", "newProcess", "documentUploaded"]
    title: str
    message: str
    priority: Literal["low", "medium", "high"] = "low"
    process_id: str | None = None
    budget_id: str | None = None
    created_at: UtcDatetime = Field(default_factory=utcnow)
    read: bool = False


Notification = Annotated[
    Union[PricingNotification, SystemNotification],
    Field(discriminator="source"),
]
