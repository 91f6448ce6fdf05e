"""Bootstrap helpers for the template catalog and workspace state."""

from __future__ import annotations

import logging
from pathlib import Path

from .config import Settings
from .registry import WorkspaceState, WorkspaceStore
from .service import TramitesService
from .templates import TemplateCatalog, load_templates

logger = logging.getLogger(__name__)

SNAPSHOT_NAME = "workspace.json"


def load_workspace_state(settings: Settings) -> tuple[WorkspaceState, WorkspaceStore]:
    """Load workspace state from disk or initialise a fresh one."""

    snapshot_path = Path(settings.data_dir) / SNAPSHOT_NAME
    store = WorkspaceStore(snapshot_path)
    state = store.load() or WorkspaceState()
    return state, store


def initialise_service(
    settings: Settings,
    state: WorkspaceState,
    templates: TemplateCatalog | None = None,
) -> TramitesService:
    """Build the service and run the start-up reconciliation."""

    catalog = templates if templates is not None else load_templates(settings.templates_path)
    service = TramitesService.from_state(catalog, state, settings=settings)
    emitted = service.reconcile()
    logger.info(
        "Workspace ready: %d template(s), %d price(s), %d process(es), %d new pricing notification(s)",
        len(catalog),
        len(service.pricing),
        len(service.list_processes()),
        len(emitted),
    )
    return service
