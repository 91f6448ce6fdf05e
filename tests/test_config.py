from decimal import Decimal

from tramites.config import Settings, slugify


def test_authority_ids_from_comma_separated_env(monkeypatch, tmp_path):
    monkeypatch.setenv("TRAMITES_AUTHORITY_IDS", "ANMAT:org-anmat,SENASA:org-senasa")

    settings = Settings(data_dir=tmp_path)

    assert settings.authority_ids == {"ANMAT": "org-anmat", "SENASA": "org-senasa"}
    assert settings.authority_id_for("anmat") == "org-anmat"
    assert settings.authority_id_for("Dirección de Aduanas") == "direccion-de-aduanas"


def test_authority_ids_skip_malformed_items(monkeypatch, tmp_path):
    monkeypatch.setenv("TRAMITES_AUTHORITY_IDS", " ANMAT : org-anmat ,, SENASA, :orphan")

    settings = Settings(data_dir=tmp_path)

    assert settings.authority_ids == {"ANMAT": "org-anmat"}


def test_numeric_settings_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("TRAMITES_VAT_RATE", "0.105")
    monkeypatch.setenv("TRAMITES_PRICE_STALE_DAYS", "90")

    settings = Settings(data_dir=tmp_path)

    assert settings.vat_rate == Decimal("0.105")
    assert settings.price_stale_days == 90
    assert settings.authority_ids == {}


def test_slugify_strips_accents():
    assert slugify("  Secretaría de Energía ") == "secretaria-de-energia"
