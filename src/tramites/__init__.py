"""Core package for the regulatory process engine."""

from .config import Settings, get_settings
from .errors import InvalidTransition, NotFound, TramitesError, ValidationError
from .pricing import PricingCatalog
from .registry import WorkspaceState, WorkspaceStore
from .service import TramitesService
from .templates import TemplateCatalog, load_templates

__all__ = [
    "InvalidTransition",
    "NotFound",
    "PricingCatalog",
    "Settings",
    "TemplateCatalog",
    "TramitesError",
    "TramitesService",
    "ValidationError",
    "WorkspaceState",
    "WorkspaceStore",
    "get_settings",
    "load_templates",
]
