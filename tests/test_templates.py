import json

import pytest

from tramites.errors import NotFound
from tramites.models import Template
from tramites.templates import TemplateCatalog, load_templates


def test_bundled_catalog_loads():
    catalog = load_templates()

    assert len(catalog) == 15
    assert "anmat-rne" in catalog
    rne = catalog.find("anmat-rne")
    assert rne.authority == "ANMAT"
    assert len(rne.required_documents) == 4
    assert rne.estimated_days == 30
    assert {"ANMAT", "SENASA", "ENACOM"}.issubset(set(catalog.authorities()))


def test_find_unknown_template_raises(templates):
    with pytest.raises(NotFound):
        templates.find("missing")
    assert templates.get("missing") is None


def test_duplicate_template_ids_rejected():
    template = Template(id="dup", name="Uno", authority="ANMAT")
    with pytest.raises(ValueError):
        TemplateCatalog([template, template])


def test_by_authority_is_case_insensitive(templates):
    ids = [template.id for template in templates.by_authority("anmat")]
    assert ids == ["rne", "libre-venta"]
    assert templates.by_authority("unknown") == []


def test_search_ranks_token_matches_first():
    catalog = load_templates()

    results = catalog.search("libre venta", limit=3)

    assert results
    assert results[0][1].id == "anmat-libre-venta"


def test_search_ignores_accents():
    catalog = load_templates()

    results = catalog.search("homologacion")

    assert results[0][1].id == "enacom-homologacion"


def test_search_with_blank_query_returns_nothing(templates):
    assert templates.search("   ") == []


def test_load_templates_from_custom_path(tmp_path):
    path = tmp_path / "custom.json"
    path.write_text(
        json.dumps(
            {
                "templates": [
                    {
                        "id": "custom",
                        "name": "Trámite propio",
                        "authority": "Otros",
                        "required_documents": ["DNI"],
                        "estimated_days": 3,
                    }
                ]
            }
        ),
        encoding="utf-8",
    )

    catalog = load_templates(path)

    assert len(catalog) == 1
    assert catalog.find("custom").required_documents == ("DNI",)
    assert catalog.find("custom").base_cost is None
