"""Process lifecycle: legal transitions, document gating and progress."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, FrozenSet, List

from .errors import InvalidTransition, NotFound, ValidationError
from .models import (
    Document,
    DocumentKind,
    DocumentStatus,
    Process,
    ProcessEvent,
    ProcessStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[ProcessStatus, FrozenSet[ProcessStatus]] = {
    ProcessStatus.PENDING: frozenset({ProcessStatus.COLLECTING_DOCS}),
    ProcessStatus.COLLECTING_DOCS: frozenset({ProcessStatus.SENT}),
    ProcessStatus.SENT: frozenset({ProcessStatus.UNDER_REVIEW}),
    ProcessStatus.UNDER_REVIEW: frozenset({ProcessStatus.APPROVED, ProcessStatus.REJECTED}),
    ProcessStatus.REJECTED: frozenset({ProcessStatus.COLLECTING_DOCS}),
    ProcessStatus.APPROVED: frozenset({ProcessStatus.ARCHIVED}),
    ProcessStatus.ARCHIVED: frozenset(),
}

SUBMITTABLE = frozenset({DocumentStatus.LOADED, DocumentStatus.APPROVED})


def compute_progress(process: Process) -> int:
    """Share of required documents approved, as a whole percentage."""

    if process.status is ProcessStatus.ARCHIVED:
        return 100
    required = [doc for doc in process.documents if doc.kind is DocumentKind.REQUIRED]
    approved = sum(1 for doc in required if doc.status is DocumentStatus.APPROVED)
    ratio = Decimal(100 * approved) / Decimal(max(1, len(required)))
    return min(100, int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


def pending_required_documents(process: Process) -> List[Document]:
    return [
        doc
        for doc in process.documents
        if doc.kind is DocumentKind.REQUIRED and doc.status not in SUBMITTABLE
    ]


class ProcessStateMachine:
    """Applies state and document changes to processes.

    Every check runs before the process is touched, so a rejected change
    leaves it exactly as it was.
    """

    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock

    @staticmethod
    def allowed_targets(process: Process) -> List[ProcessStatus]:
        targets = TRANSITIONS[process.status]
        return [status for status in ProcessStatus if status in targets]

    def can_transition(self, process: Process, target: ProcessStatus | str) -> bool:
        try:
            self._check(process, ProcessStatus(target))
        except (InvalidTransition, ValueError):
            return False
        return True

    def _check(self, process: Process, target: ProcessStatus) -> None:
        current = process.status
        if target not in TRANSITIONS[current]:
            logger.warning(
                "Rejected transition %s -> %s for process %s", current.value, target.value, process.id
            )
            raise InvalidTransition(current.value, target.value, entity_id=process.id)
        if current is ProcessStatus.COLLECTING_DOCS and target is ProcessStatus.SENT:
            missing = pending_required_documents(process)
            if missing:
                logger.warning(
                    "Process %s cannot be sent; %d required document(s) missing",
                    process.id,
                    len(missing),
                )
                raise InvalidTransition(
                    current.value,
                    target.value,
                    entity_id=process.id,
                    reason="Missing required documents: " + ", ".join(doc.name for doc in missing),
                )

    def transition(
        self,
        process: Process,
        target: ProcessStatus | str,
        *,
        author: str = "system",
    ) -> Process:
        try:
            target_status = ProcessStatus(target)
        except ValueError as exc:
            raise ValidationError(f"Unknown process state '{target}'.") from exc
        self._check(process, target_status)

        previous = process.status
        now = self._clock()
        if previous is ProcessStatus.REJECTED and target_status is ProcessStatus.COLLECTING_DOCS:
            for document in process.documents:
                if document.status is DocumentStatus.REJECTED:
                    document.status = DocumentStatus.PENDING
                    document.validated = False
                    document.uploaded_at = None

        process.status = target_status
        process.progress = compute_progress(process)
        process.history.append(
            ProcessEvent(
                kind="stateChange",
                message=f"Estado: {previous.value} -> {target_status.value}",
                author=author,
                created_at=now,
            )
        )
        logger.info(
            "Process %s moved %s -> %s", process.id, previous.value, target_status.value
        )
        return process

    def set_document_status(
        self,
        process: Process,
        document_id: str,
        status: DocumentStatus | str,
        *,
        author: str = "system",
    ) -> Document:
        try:
            new_status = DocumentStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Unknown document status '{status}'.") from exc
        document = process.get_document(document_id)
        if document is None:
            raise NotFound("Document", f"{process.id}/{document_id}")
        if process.status is ProcessStatus.ARCHIVED:
            raise ValidationError(
                f"Process '{process.id}' is archived; documents can no longer change.",
                identifiers=[process.id],
            )

        now = self._clock()
        document.status = new_status
        if new_status is DocumentStatus.PENDING:
            document.uploaded_at = None
        elif document.uploaded_at is None:
            document.uploaded_at = now
        document.validated = new_status is DocumentStatus.APPROVED

        process.progress = compute_progress(process)
        process.history.append(
            ProcessEvent(
                kind="documentAdded" if new_status is DocumentStatus.LOADED else "comment",
                message=f"Documento '{document.name}': {new_status.value}",
                author=author,
                created_at=now,
            )
        )
        logger.debug(
            "Document %s of process %s set to %s (progress %d%%)",
            document_id,
            process.id,
            new_status.value,
            process.progress,
        )
        return document
