from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from tramites.config import Settings
from tramites.models import Template
from tramites.pricing import PricingCatalog
from tramites.service import TramitesService
from tramites.templates import TemplateCatalog

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def templates():
    return TemplateCatalog(
        [
            Template(
                id="rne",
                name="Registro Nacional de Establecimiento",
                authority="ANMAT",
                required_documents=(
                    "Formulario de solicitud",
                    "Plano del establecimiento",
                    "Certificado de habilitación municipal",
                    "Responsable técnico",
                ),
                estimated_days=30,
                base_cost=Decimal("15000"),
            ),
            Template(
                id="libre-venta",
                name="Certificado de Libre Venta",
                authority="ANMAT",
                required_documents=(
                    "Solicitud del certificado",
                    "RNPA vigente",
                    "Comprobante de pago",
                ),
                estimated_days=10,
            ),
            Template(
                id="afidi",
                name="Autorización Fitosanitaria de Importación",
                authority="SENASA",
                required_documents=("Solicitud AFIDI", "Factura proforma"),
                estimated_days=20,
                base_cost=Decimal("8500"),
            ),
        ]
    )


@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir=tmp_path / "workspace", validation_delay_seconds=0)


@pytest.fixture
def pricing(clock):
    return PricingCatalog(clock=clock)


@pytest.fixture
def service(templates, pricing, settings, clock):
    return TramitesService(templates, pricing, settings=settings, clock=clock)
