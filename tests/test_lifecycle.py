import pytest

from tramites.errors import InvalidTransition, NotFound, ValidationError
from tramites.lifecycle import ProcessStateMachine, compute_progress
from tramites.models import Document, DocumentKind, DocumentStatus, Process, ProcessStatus


def _process(statuses, *, status=ProcessStatus.PENDING, optional=()):
    documents = [
        Document(id=f"doc-{index}", name=f"Documento {index}", status=value)
        for index, value in enumerate(statuses, start=1)
    ]
    documents.extend(
        Document(id=f"opt-{index}", name=f"Opcional {index}", kind=DocumentKind.OPTIONAL, status=value)
        for index, value in enumerate(optional, start=1)
    )
    return Process(
        title="RNE",
        client_id="client-1",
        authority_id="anmat",
        status=status,
        documents=documents,
    )


def test_progress_counts_approved_required_documents():
    process = _process(
        [DocumentStatus.APPROVED, DocumentStatus.APPROVED, DocumentStatus.LOADED, DocumentStatus.PENDING]
    )
    assert compute_progress(process) == 50


def test_progress_rounds_half_up():
    one_of_three = _process([DocumentStatus.APPROVED, DocumentStatus.PENDING, DocumentStatus.PENDING])
    two_of_three = _process([DocumentStatus.APPROVED, DocumentStatus.APPROVED, DocumentStatus.PENDING])
    one_of_eight = _process([DocumentStatus.APPROVED] + [DocumentStatus.PENDING] * 7)

    assert compute_progress(one_of_three) == 33
    assert compute_progress(two_of_three) == 67
    assert compute_progress(one_of_eight) == 13


def test_progress_ignores_optional_documents():
    process = _process([DocumentStatus.APPROVED], optional=[DocumentStatus.PENDING])
    assert compute_progress(process) == 100


def test_progress_without_required_documents_is_zero():
    assert compute_progress(_process([])) == 0


def test_archived_process_is_complete():
    process = _process([DocumentStatus.PENDING], status=ProcessStatus.ARCHIVED)
    assert compute_progress(process) == 100


def test_forward_transition_records_history(clock):
    machine = ProcessStateMachine(clock=clock)
    process = _process([DocumentStatus.PENDING])

    machine.transition(process, "collectingDocs", author="ana")

    assert process.status is ProcessStatus.COLLECTING_DOCS
    event = process.history[-1]
    assert event.kind == "stateChange"
    assert event.author == "ana"
    assert event.created_at == clock.now


def test_illegal_transition_leaves_process_untouched(clock):
    machine = ProcessStateMachine(clock=clock)
    process = _process([DocumentStatus.PENDING])
    before = process.model_copy(deep=True)

    with pytest.raises(InvalidTransition) as excinfo:
        machine.transition(process, ProcessStatus.SENT)

    assert excinfo.value.current == "pending"
    assert excinfo.value.target == "sent"
    assert process == before
    assert not machine.can_transition(process, "sent")


def test_send_requires_required_documents(clock):
    machine = ProcessStateMachine(clock=clock)
    process = _process(
        [DocumentStatus.LOADED, DocumentStatus.PENDING],
        status=ProcessStatus.COLLECTING_DOCS,
        optional=[DocumentStatus.PENDING],
    )

    with pytest.raises(InvalidTransition) as excinfo:
        machine.transition(process, "sent")
    assert "Documento 2" in excinfo.value.reason
    assert process.status is ProcessStatus.COLLECTING_DOCS

    machine.set_document_status(process, "doc-2", DocumentStatus.APPROVED)
    machine.transition(process, "sent")
    assert process.status is ProcessStatus.SENT


def test_review_outcomes_and_archive(clock):
    machine = ProcessStateMachine(clock=clock)
    process = _process([DocumentStatus.APPROVED], status=ProcessStatus.UNDER_REVIEW)

    assert [status.value for status in machine.allowed_targets(process)] == ["approved", "rejected"]
    machine.transition(process, "approved")
    machine.transition(process, "archived")

    assert process.progress == 100
    assert machine.allowed_targets(process) == []
    with pytest.raises(InvalidTransition):
        machine.transition(process, "pending")


def test_resubmission_resets_rejected_documents(clock):
    machine = ProcessStateMachine(clock=clock)
    process = _process(
        [DocumentStatus.APPROVED, DocumentStatus.REJECTED], status=ProcessStatus.REJECTED
    )

    machine.transition(process, "collectingDocs")

    assert process.status is ProcessStatus.COLLECTING_DOCS
    assert [document.status for document in process.documents] == [
        DocumentStatus.APPROVED,
        DocumentStatus.PENDING,
    ]


def test_unknown_state_is_a_validation_error(clock):
    machine = ProcessStateMachine(clock=clock)
    with pytest.raises(ValidationError):
        machine.transition(_process([]), "done")


def test_document_status_updates_progress_and_history(clock):
    machine = ProcessStateMachine(clock=clock)
    process = _process([DocumentStatus.PENDING, DocumentStatus.PENDING])

    loaded = machine.set_document_status(process, "doc-1", "loaded")
    assert loaded.uploaded_at == clock.now
    assert loaded.validated is False
    assert process.history[-1].kind == "documentAdded"
    assert process.progress == 0

    approved = machine.set_document_status(process, "doc-1", DocumentStatus.APPROVED)
    assert approved.validated is True
    assert process.progress == 50

    machine.set_document_status(process, "doc-1", DocumentStatus.PENDING)
    assert process.documents[0].uploaded_at is None
    assert process.progress == 0


def test_document_errors(clock):
    machine = ProcessStateMachine(clock=clock)
    process = _process([DocumentStatus.PENDING])

    with pytest.raises(NotFound):
        machine.set_document_status(process, "doc-9", "loaded")
    with pytest.raises(ValidationError):
        machine.set_document_status(process, "doc-1", "lost")

    process.status = ProcessStatus.ARCHIVED
    with pytest.raises(ValidationError):
        machine.set_document_status(process, "doc-1", "loaded")


def test_pending_cannot_jump_to_approved(clock):
    machine = ProcessStateMachine(clock=clock)
    process = _process([DocumentStatus.APPROVED])

    assert [status.value for status in machine.allowed_targets(process)] == ["collectingDocs"]
    with pytest.raises(InvalidTransition):
        machine.transition(process, "approved")
    assert process.status is ProcessStatus.PENDING
