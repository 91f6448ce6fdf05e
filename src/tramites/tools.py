"""MCP tool handlers that orchestrate service calls and workspace persistence."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from decimal import Decimal
from typing import Any, TypeVar

from .errors import ValidationError
from .filters import parse_filters
from .lifecycle import ProcessStateMachine
from .metrics import record_tool_invocation
from .models import Notification, PriceEntry, Process
from .service import TramitesService

PersistCallable = Callable[[], Awaitable[None]] | None

T = TypeVar("T")


async def _persist(persist_state: PersistCallable) -> None:
    if not persist_state:
        return
    await persist_state()


async def _run_tool(
    tool: str,
    operation: Callable[[], T],
    *,
    persist_state: PersistCallable = None,
) -> T:
    start = time.perf_counter()
    status = "success"
    try:
        result = operation()
        await _persist(persist_state)
        return result
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.perf_counter() - start
        record_tool_invocation(tool, status, duration)


def _process_payload(process: Process) -> dict[str, Any]:
    return {
        "process": process.model_dump(mode="json"),
        "allowed_targets": [
            status.value for status in ProcessStateMachine.allowed_targets(process)
        ],
    }


def _notification_list(notifications: Sequence[Notification]) -> list[dict[str, Any]]:
    return [notification.model_dump(mode="json") for notification in notifications]


async def list_templates_tool(
    service: TramitesService,
    *,
    authority: str | None = None,
) -> dict[str, Any]:
    def operation() -> dict[str, Any]:
        catalog = service.templates
        templates = catalog.by_authority(authority) if authority else catalog.list()
        return {
            "templates": [template.model_dump(mode="json") for template in templates],
            "authorities": catalog.authorities(),
        }

    return await _run_tool("list_templates", operation)


async def search_templates_tool(
    service: TramitesService,
    *,
    query: str,
    limit: int = 10,
) -> dict[str, Any]:
    def operation() -> dict[str, Any]:
        hits = service.templates.search(query, limit=limit)
        return {
            "query": query,
            "results": [
                {"score": round(score, 2), "template": template.model_dump(mode="json")}
                for score, template in hits
            ],
        }

    return await _run_tool("search_templates", operation)


async def create_budget_tool(
    service: TramitesService,
    *,
    client_id: str,
    template_ids: Sequence[str],
    operation_type: str | None = None,
    description: str | None = None,
    persist_state: PersistCallable = None,
) -> dict[str, Any]:
    budget = await _run_tool(
        "create_budget",
        lambda: service.create_budget(
            client_id,
            template_ids,
            operation_type=operation_type,
            description=description,
        ),
        persist_state=persist_state,
    )
    return {"budget": budget.model_dump(mode="json")}


async def update_budget_status_tool(
    service: TramitesService,
    *,
    budget_id: str,
    status: str,
    persist_state: PersistCallable = None,
) -> dict[str, Any]:
    budget = await _run_tool(
        "update_budget_status",
        lambda: service.set_budget_status(budget_id, status),
        persist_state=persist_state,
    )
    return {"budget": budget.model_dump(mode="json")}


async def generate_from_template_tool(
    service: TramitesService,
    *,
    template_id: str,
    client_id: str,
    title: str | None = None,
    priority: str = "medium",
    authority_mapping: Mapping[str, str] | None = None,
    persist_state: PersistCallable = None,
) -> dict[str, Any]:
    process = await _run_tool(
        "generate_from_template",
        lambda: service.generate_from_template(
            template_id,
            client_id,
            authority_mapping,
            title=title,
            priority=priority,
        ),
        persist_state=persist_state,
    )
    return _process_payload(process)


async def generate_from_budget_tool(
    service: TramitesService,
    *,
    budget_id: str,
    authority_mapping: Mapping[str, str] | None = None,
    persist_state: PersistCallable = None,
) -> dict[str, Any]:
    processes = await _run_tool(
        "generate_from_budget",
        lambda: service.generate_from_budget(budget_id, authority_mapping),
        persist_state=persist_state,
    )
    budget = service.budgets.find(budget_id)
    return {
        "budget": budget.model_dump(mode="json"),
        "processes": [process.model_dump(mode="json") for process in processes],
    }


async def transition_process_tool(
    service: TramitesService,
    *,
    process_id: str,
    target: str,
    author: str = "mcp",
    persist_state: PersistCallable = None,
) -> dict[str, Any]:
    process = await _run_tool(
        "transition_process",
        lambda: service.transition(process_id, target, author=author),
        persist_state=persist_state,
    )
    return _process_payload(process)


async def set_document_status_tool(
    service: TramitesService,
    *,
    process_id: str,
    document_id: str,
    status: str,
    author: str = "mcp",
    persist_state: PersistCallable = None,
) -> dict[str, Any]:
    document = await _run_tool(
        "set_document_status",
        lambda: service.set_document_status(process_id, document_id, status, author=author),
        persist_state=persist_state,
    )
    process = service.get_process(process_id)
    return {
        "process_id": process.id,
        "document": document.model_dump(mode="json"),
        "progress": process.progress,
    }


async def apply_price_increase_tool(
    service: TramitesService,
    *,
    percent: float | int | str,
    category: str | None = None,
    persist_state: PersistCallable = None,
) -> dict[str, Any]:
    updated = await _run_tool(
        "apply_price_increase",
        lambda: service.apply_price_increase(percent, category),
        persist_state=persist_state,
    )
    return {
        "updated": [entry.model_dump(mode="json") for entry in updated],
        "count": len(updated),
    }


async def upsert_price_tool(
    service: TramitesService,
    *,
    entry: Mapping[str, Any],
    persist_state: PersistCallable = None,
) -> dict[str, Any]:
    def operation() -> tuple[PriceEntry, list[Notification]]:
        payload = dict(entry)
        if "price" in payload:
            payload["price"] = Decimal(str(payload["price"]))
        before = {notification.id for notification in service.notifications.pricing()}
        stored = service.upsert_price(PriceEntry.model_validate(payload))
        emitted = [
            notification
            for notification in service.notifications.pricing()
            if notification.id not in before
        ]
        return stored, emitted

    stored, emitted = await _run_tool("upsert_price", operation, persist_state=persist_state)
    return {
        "price": stored.model_dump(mode="json"),
        "notifications": _notification_list(emitted),
    }


async def list_notifications_tool(
    service: TramitesService,
    *,
    unread_only: bool = False,
    source: str | None = None,
) -> dict[str, Any]:
    def operation() -> dict[str, Any]:
        feed = service.notifications.feed(unread_only=unread_only, source=source)
        return {
            "notifications": _notification_list(feed),
            "unread_count": service.notifications.unread_count(),
        }

    return await _run_tool("list_notifications", operation)


async def mark_notification_read_tool(
    service: TramitesService,
    *,
    notification_id: str | None = None,
    persist_state: PersistCallable = None,
) -> dict[str, Any]:
    def operation() -> int:
        if notification_id:
            was_unread = not service.notifications.get(notification_id).read
            service.mark_notification_read(notification_id)
            return int(was_unread)
        return service.notifications.mark_all_read()

    marked = await _run_tool("mark_notification_read", operation, persist_state=persist_state)
    return {"marked": marked, "unread_count": service.notifications.unread_count()}


async def get_process_tool(service: TramitesService, *, process_id: str) -> dict[str, Any]:
    process = await _run_tool("get_process", lambda: service.get_process(process_id))
    return _process_payload(process)


async def list_processes_tool(
    service: TramitesService,
    *,
    filters: Sequence[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    def operation() -> list[Process]:
        try:
            parsed = parse_filters(filters)
        except ValueError as exc:
            raise ValidationError(f"Invalid process filters: {exc}") from exc
        return service.list_processes(parsed)

    processes = await _run_tool("list_processes", operation)
    return {
        "processes": [process.model_dump(mode="json") for process in processes],
        "total": len(processes),
    }


async def reconcile_pricing_tool(
    service: TramitesService,
    *,
    persist_state: PersistCallable = None,
) -> dict[str, Any]:
    emitted = await _run_tool("reconcile_pricing", service.reconcile, persist_state=persist_state)
    return {
        "emitted": _notification_list(emitted),
        "open_gaps": len(service.reconciler.open_gaps()),
    }


async def validate_document_tool(
    service: TramitesService,
    *,
    process_id: str,
    document_id: str,
) -> dict[str, Any]:
    task = await _run_tool(
        "validate_document", lambda: service.validate_document(process_id, document_id)
    )
    return {"task": task.to_dict()}


async def get_validation_tool(service: TramitesService, *, task_id: str) -> dict[str, Any]:
    task = await _run_tool("get_validation", lambda: service.get_validation(task_id))
    return {"task": task.to_dict()}


async def retry_validation_tool(service: TramitesService, *, task_id: str) -> dict[str, Any]:
    task = await _run_tool("retry_validation", lambda: service.retry_validation(task_id))
    return {"task": task.to_dict()}


async def cancel_validation_tool(service: TramitesService, *, task_id: str) -> dict[str, Any]:
    cancelled = await _run_tool("cancel_validation", lambda: service.cancel_validation(task_id))
    return {"cancelled": cancelled, "task": service.get_validation(task_id).to_dict()}
