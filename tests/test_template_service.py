import pytest

from pdfbook.core.errors import ConstraintError, NotFoundError, ValidationError
from pdfbook.storage.schema import BUILTIN_TEMPLATES


def _custom(templates, **overrides):
    payload = {
        "name": "Poem",
        "category": "text",
        "html_template": "<div class=\"poem\"></div>",
        "css_template": ".poem { font-style: italic; }",
    }
    payload.update(overrides)
    return templates.create(payload)


def test_builtin_templates_are_seeded(templates):
    builtin = templates.get_builtin()

    assert {t["name"] for t in builtin} == {t["name"] for t in BUILTIN_TEMPLATES}
    assert all(t["is_builtin"] is True for t in builtin)


def test_builtin_templates_are_read_only(templates):
    builtin = templates.get_builtin()[0]

    with pytest.raises(ConstraintError):
        templates.update(builtin["id"], {"name": "Hacked"})
    with pytest.raises(ConstraintError):
        templates.delete(builtin["id"])
    assert templates.get_by_id(builtin["id"])["name"] == builtin["name"]


def test_custom_template_lifecycle(templates):
    created = _custom(templates)
    assert created["is_builtin"] is False

    updated = templates.update(created["id"], {"description": "Verse layout"})
    assert updated["description"] == "Verse layout"

    templates.delete(created["id"])
    assert templates.get_by_id(created["id"]) is None
    with pytest.raises(NotFoundError):
        templates.delete(created["id"])


def test_get_by_category(templates):
    _custom(templates, name="Letter", category="correspondence")

    assert [t["name"] for t in templates.get_by_category("correspondence")] == ["Letter"]
    assert templates.count({"category": "correspondence"}) == 1
    with pytest.raises(ValidationError):
        templates.get_by_category("")


def test_template_validation(templates):
    with pytest.raises(ValidationError) as excinfo:
        templates.create({"name": "Empty", "html_template": "", "css_template": ""})

    assert set(excinfo.value.fields) == {"html_template", "css_template"}


def test_deleting_template_detaches_pages(templates, pages, project):
    template = _custom(templates)
    page = pages.create({"project_id": project["id"], "template_id": template["id"]})

    templates.delete(template["id"])

    assert pages.get_by_id(page["id"])["template_id"] is None
