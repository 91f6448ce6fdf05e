"""Workspace snapshots: the entity collections owned by the application."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .models import Budget, Notification, PriceEntry, Process
from .notifications import NOTIFICATION_ADAPTER


@dataclass
class WorkspaceState:
    """Plain collections of prices, budgets, processes and notifications.

    ``known_templates`` is the template baseline of the last reconciliation;
    ``None`` means no reconciliation has run yet.
    """

    prices: List[PriceEntry] = field(default_factory=list)
    budgets: List[Budget] = field(default_factory=list)
    processes: List[Process] = field(default_factory=list)
    notifications: List[Notification] = field(default_factory=list)
    known_templates: Optional[List[str]] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "prices": [entry.model_dump(mode="json") for entry in self.prices],
            "budgets": [budget.model_dump(mode="json") for budget in self.budgets],
            "processes": [process.model_dump(mode="json") for process in self.processes],
            "notifications": [
                notification.model_dump(mode="json") for notification in self.notifications
            ],
            "known_templates": self.known_templates,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> "WorkspaceState":
        prices_payload = payload.get("prices", []) or []
        budgets_payload = payload.get("budgets", []) or []
        processes_payload = payload.get("processes", []) or []
        notifications_payload = payload.get("notifications", []) or []
        known_payload = payload.get("known_templates")
        return cls(
            prices=[PriceEntry.model_validate(item) for item in prices_payload],
            budgets=[Budget.model_validate(item) for item in budgets_payload],
            processes=[Process.model_validate(item) for item in processes_payload],
            notifications=[
                NOTIFICATION_ADAPTER.validate_python(item) for item in notifications_payload
            ],
            known_templates=None if known_payload is None else [str(item) for item in known_payload],
        )


class WorkspaceStore:
    """Load/store workspace snapshots from JSON files."""

    def __init__(self, snapshot_path: Path) -> None:
        self._path = snapshot_path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> WorkspaceState | None:
        if not self._path.exists():
            return None
        with self._path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        return WorkspaceState.from_dict(payload)

    def save(self, state: WorkspaceState) -> None:
        """Write the snapshot to a sibling temp file, then swap it in."""

        self._path.parent.mkdir(parents=True, exist_ok=True)
        descriptor, temp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(descriptor, "w", encoding="utf-8") as handle:
                json.dump(state.to_dict(), handle, ensure_ascii=False, indent=2)
            os.replace(temp_name, self._path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise
