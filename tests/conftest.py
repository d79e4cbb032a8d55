from pathlib import Path

import pytest

from pdfbook.core.config import PoolConfig, StoreConfig
from pdfbook.core.paths import DirectoryManager
from pdfbook.services.asset_service import AssetService
from pdfbook.services.page_service import PageService
from pdfbook.services.palette_service import ColorPaletteService
from pdfbook.services.project_service import ProjectService
from pdfbook.services.settings_service import AppSettingsService
from pdfbook.services.template_service import TemplateService
from pdfbook.services.version_service import ProjectVersionService
from pdfbook.storage.database import DatabaseManager


def make_store(tmp_path: Path, **config) -> DatabaseManager:
    config.setdefault("path", tmp_path / "store.db")
    config.setdefault("pool", PoolConfig(max_connections=3, acquire_timeout=2.0))
    manager = DatabaseManager(StoreConfig(**config), DirectoryManager(base_dir=tmp_path / "home"))
    manager.initialize()
    return manager


@pytest.fixture
def db(tmp_path):
    manager = make_store(tmp_path)
    yield manager
    manager.close()


@pytest.fixture
def projects(db):
    return ProjectService(db.pool)


@pytest.fixture
def pages(db):
    return PageService(db.pool)


@pytest.fixture
def assets(db):
    return AssetService(db.pool)


@pytest.fixture
def templates(db):
    return TemplateService(db.pool)


@pytest.fixture
def palettes(db):
    return ColorPaletteService(db.pool)


@pytest.fixture
def versions(db):
    return ProjectVersionService(db.pool)


@pytest.fixture
def settings(db):
    return AppSettingsService(db.pool)


@pytest.fixture
def project(projects):
    return projects.create({"name": "Novel", "description": "A long story"})
