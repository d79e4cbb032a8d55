import pytest

from pdfbook.core.errors import NotFoundError, ValidationError
from pdfbook.storage.schema import DEFAULT_SETTINGS


def test_defaults_are_present(settings):
    assert settings.get_all() == DEFAULT_SETTINGS
    assert settings.get("theme") == "light"
    assert settings.count() == len(DEFAULT_SETTINGS)


def test_set_inserts_then_overwrites(settings):
    created = settings.set("export_dpi", "300")
    updated = settings.set("export_dpi", "600")

    assert updated["id"] == created["id"]
    assert updated["created_at"] == created["created_at"]
    assert settings.get("export_dpi") == "600"


def test_get_missing_returns_default(settings):
    assert settings.get("missing") is None
    assert settings.get("missing", "fallback") == "fallback"
    assert settings.get_record("missing") is None


def test_delete(settings):
    settings.set("temporary", "1")
    settings.delete("temporary")

    assert settings.get("temporary") is None
    with pytest.raises(NotFoundError):
        settings.delete("temporary")


def test_validation(settings):
    with pytest.raises(ValidationError):
        settings.set("", "value")
    with pytest.raises(ValidationError):
        settings.set("big", "x" * 2001)
    with pytest.raises(ValidationError):
        settings.get(None)
