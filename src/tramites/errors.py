"""Typed errors raised by the process engine."""

from __future__ import annotations

from collections.abc import Sequence


class TramitesError(Exception):
    """Base exception for recoverable engine failures."""


class NotFound(TramitesError):
    """Raised when an id does not resolve to a known entity."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} '{identifier}' not found.")
        self.kind = kind
        self.identifier = identifier


class ValidationError(TramitesError):
    """Raised when a request is incomplete or references unknown data."""

    def __init__(self, message: str, *, identifiers: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.identifiers = tuple(identifiers)


class InvalidTransition(TramitesError):
    """Raised when a state change is not an edge of the lifecycle or its guard fails."""

    def __init__(
        self,
        current: str,
        target: str,
        *,
        entity_id: str | None = None,
        reason: str | None = None,
    ) -> None:
        label = f" for '{entity_id}'" if entity_id else ""
        message = f"Cannot move from '{current}' to '{target}'{label}."
        if reason:
            message = f"{message} {reason}"
        super().__init__(message)
        self.current = current
        self.target = target
        self.entity_id = entity_id
        self.reason = reason
