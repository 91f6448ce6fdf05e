"""Application configuration utilities."""

from __future__ import annotations

import re
import unicodedata
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _default_data_dir() -> Path:
    module_root = Path(__file__).resolve().parents[2]
    if (module_root / "pyproject.toml").exists():
        return module_root / "data" / "workspace"
    return Path.home() / ".cache" / "gestor-tramites"


def slugify(value: str) -> str:
    """Return an ASCII, dash-separated identifier for ``value``."""

    normalised = unicodedata.normalize("NFKD", value)
    ascii_only = normalised.encode("ascii", "ignore").decode("ascii").lower()
    return re.sub(r"[^a-z0-9]+", "-", ascii_only).strip("-")


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    data_dir: Path = Field(
        default_factory=_default_data_dir,
        alias="TRAMITES_DATA_DIR",
        description="Directory holding the workspace snapshot.",
    )
    templates_path: Path | None = Field(
        default=None,
        alias="TRAMITES_TEMPLATES_PATH",
        description="Optional JSON file replacing the bundled procedure templates.",
    )
    fallback_price: Decimal = Field(
        default=Decimal("10000"),
        alias="TRAMITES_FALLBACK_PRICE",
        ge=0,
        description="Price used when a template has neither a catalog price nor a base cost.",
    )
    vat_rate: Decimal = Field(
        default=Decimal("0.21"),
        alias="TRAMITES_VAT_RATE",
        ge=0,
        description="Tax rate applied to budget subtotals.",
    )
    budget_validity_days: int = Field(
        default=30,
        alias="TRAMITES_BUDGET_VALIDITY_DAYS",
        ge=0,
        description="Number of days a budget stays valid after creation.",
    )
    price_stale_days: int = Field(
        default=180,
        alias="TRAMITES_PRICE_STALE_DAYS",
        ge=1,
        description="Age in days after which a template price is reported as stale.",
    )
    authority_ids: Annotated[dict[str, str], NoDecode] = Field(
        default_factory=dict,
        alias="TRAMITES_AUTHORITY_IDS",
        description="Comma-separated authority mapping (e.g. ANMAT:org-1,SENASA:org-2).",
    )
    validation_delay_seconds: float = Field(
        default=2.0,
        alias="TRAMITES_VALIDATION_DELAY",
        ge=0,
        description="Simulated processing time of a document validation.",
    )
    validation_confidence_threshold: float = Field(
        default=70.0,
        alias="TRAMITES_VALIDATION_THRESHOLD",
        ge=0,
        le=100,
        description="Minimum confidence for a simulated validation to pass.",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    @field_validator("authority_ids", mode="before")
    @classmethod
    def _parse_authority_ids(cls, value: dict[str, str] | str | None) -> dict[str, str]:
        if value is None or value == "":
            return {}
        if isinstance(value, dict):
            return value
        mapping: dict[str, str] = {}
        for item in value.split(","):
            item = item.strip()
            if not item or ":" not in item:
                continue
            authority, _, authority_id = item.partition(":")
            authority = authority.strip()
            authority_id = authority_id.strip()
            if not authority or not authority_id:
                continue
            mapping[authority] = authority_id
        return mapping

    def authority_id_for(self, authority: str) -> str:
        """Resolve the configured id for an authority name."""

        for name, authority_id in self.authority_ids.items():
            if name.casefold() == authority.casefold():
                return authority_id
        return slugify(authority)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached instance of application settings."""

    settings = Settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    return settings
