"""Asynchronous document validation tasks."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from .errors import NotFound, ValidationError
from .models import new_id, utcnow

logger = logging.getLogger(__name__)


class ValidationState(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ValidationResult(BaseModel):
    valid: bool
    confidence: float = Field(ge=0, le=100)
    observations: list[str] = Field(default_factory=list)
    extracted_fields: dict[str, Any] = Field(default_factory=dict)


@dataclass
class ValidationTask:
    """One validation attempt; a retry is always a new task."""

    process_id: str
    document_id: str
    id: str = field(default_factory=new_id)
    state: ValidationState = ValidationState.PENDING
    created_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None
    result: ValidationResult | None = None
    error: str | None = None
    retry_of: str | None = None

    @property
    def done(self) -> bool:
        return self.state in (
            ValidationState.COMPLETED,
            ValidationState.FAILED,
            ValidationState.CANCELLED,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "process_id": self.process_id,
            "document_id": self.document_id,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "result": self.result.model_dump(mode="json") if self.result else None,
            "error": self.error,
            "retry_of": self.retry_of,
        }


ValidateCallable = Callable[[str, str], Awaitable[ValidationResult]]
CompletionCallback = Callable[[ValidationTask], None]


def simulated_validator(
    *,
    delay_seconds: float = 2.0,
    threshold: float = 70.0,
    rng: random.Random | None = None,
) -> ValidateCallable:
    """Fixed delay followed by a random confidence score."""

    generator = rng or random.Random()

    async def _validate(process_id: str, document_id: str) -> ValidationResult:
        await asyncio.sleep(delay_seconds)
        confidence = round(generator.uniform(0, 100), 1)
        valid = confidence > threshold
        observations = (
            ["Documento válido", "Formato correcto", "Información completa"]
            if valid
            else ["Documento incompleto", "Formato no válido", "Información faltante"]
        )
        return ValidationResult(valid=valid, confidence=confidence, observations=observations)

    return _validate


class DocumentValidator:
    """Runs validations as cancellable asyncio tasks."""

    def __init__(
        self,
        validate: ValidateCallable,
        *,
        on_complete: CompletionCallback | None = None,
    ) -> None:
        self._validate = validate
        self.on_complete = on_complete
        self._tasks: Dict[str, ValidationTask] = {}
        self._handles: Dict[str, asyncio.Task[None]] = {}

    def get(self, task_id: str) -> ValidationTask:
        try:
            return self._tasks[task_id]
        except KeyError as exc:
            raise NotFound("ValidationTask", task_id) from exc

    def tasks_for_document(self, process_id: str, document_id: str) -> List[ValidationTask]:
        return [
            task
            for task in self._tasks.values()
            if task.process_id == process_id and task.document_id == document_id
        ]

    def submit(self, process_id: str, document_id: str, *, retry_of: str | None = None) -> ValidationTask:
        task = ValidationTask(process_id=process_id, document_id=document_id, retry_of=retry_of)
        self._tasks[task.id] = task
        self._handles[task.id] = asyncio.create_task(self._run(task))
        logger.info("Submitted validation %s for %s/%s", task.id, process_id, document_id)
        return task

    async def _run(self, task: ValidationTask) -> None:
        task.state = ValidationState.PROCESSING
        try:
            task.result = await self._validate(task.process_id, task.document_id)
            task.state = ValidationState.COMPLETED
        except asyncio.CancelledError:
            task.state = ValidationState.CANCELLED
            task.finished_at = utcnow()
            logger.info("Validation %s cancelled", task.id)
            raise
        except Exception as exc:
            task.state = ValidationState.FAILED
            task.error = str(exc) or exc.__class__.__name__
            logger.warning("Validation %s failed: %s", task.id, task.error)
        task.finished_at = utcnow()
        if self.on_complete is not None:
            self.on_complete(task)

    def cancel(self, task_id: str) -> bool:
        task = self.get(task_id)
        handle = self._handles.get(task_id)
        if task.done or handle is None:
            return False
        if task.state is ValidationState.PENDING:
            task.state = ValidationState.CANCELLED
            task.finished_at = utcnow()
        return handle.cancel()

    def retry(self, task_id: str) -> ValidationTask:
        previous = self.get(task_id)
        if previous.state not in (ValidationState.FAILED, ValidationState.CANCELLED):
            raise ValidationError(
                f"Validation '{task_id}' is {previous.state.value}; only failed or cancelled validations can be retried.",
                identifiers=[task_id],
            )
        return self.submit(previous.process_id, previous.document_id, retry_of=previous.id)

    async def wait(self, task_id: str) -> ValidationTask:
        task = self.get(task_id)
        handle = self._handles.get(task_id)
        if handle is not None:
            try:
                await asyncio.shield(handle)
            except asyncio.CancelledError:
                if not handle.cancelled():
                    raise
        return task

    async def aclose(self) -> None:
        pending = [handle for handle in self._handles.values() if not handle.done()]
        for handle in pending:
            handle.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
