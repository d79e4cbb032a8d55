"""
DDL and seed rows of the initial (1.0.0) PDFBook schema.

Statements are kept as separate strings: ``executescript`` commits any open
transaction, and migrations must run inside one.
"""

from __future__ import annotations

import json
import sqlite3

__all__ = [
    "ENTITY_TABLES",
    "INITIAL_SCHEMA",
    "DEFAULT_SETTINGS",
    "DEFAULT_PALETTES",
    "BUILTIN_TEMPLATES",
    "create_initial_schema",
    "drop_initial_schema",
    "seed_defaults",
]

# Drop order: children before parents.
ENTITY_TABLES = (
    "project_versions",
    "assets",
    "pages",
    "projects",
    "templates",
    "color_palettes",
    "app_settings",
)

INITIAL_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS app_settings (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        key TEXT NOT NULL UNIQUE,
        value TEXT NOT NULL,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS color_palettes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        description TEXT,
        colors TEXT NOT NULL,
        theme_type TEXT NOT NULL DEFAULT 'custom',
        is_default INTEGER NOT NULL DEFAULT 0 CHECK (is_default IN (0, 1)),
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS templates (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        category TEXT NOT NULL DEFAULT 'general',
        html_template TEXT NOT NULL,
        css_template TEXT NOT NULL DEFAULT '',
        preview_image BLOB,
        is_builtin INTEGER NOT NULL DEFAULT 0 CHECK (is_builtin IN (0, 1)),
        description TEXT,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS projects (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        description TEXT,
        file_path TEXT,
        page_format TEXT NOT NULL DEFAULT 'A4'
            CHECK (page_format IN ('A4', 'A3', 'A5', 'Letter', 'Legal', 'Custom')),
        page_orientation TEXT NOT NULL DEFAULT 'portrait'
            CHECK (page_orientation IN ('portrait', 'landscape')),
        margins TEXT NOT NULL DEFAULT '{"top":20,"bottom":20,"left":20,"right":20}',
        color_palette_id INTEGER REFERENCES color_palettes(id) ON DELETE SET NULL,
        word_count INTEGER NOT NULL DEFAULT 0 CHECK (word_count >= 0),
        page_count INTEGER NOT NULL DEFAULT 0 CHECK (page_count >= 0),
        last_export_path TEXT,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        last_accessed TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        project_id INTEGER NOT NULL REFERENCES projects(id),
        page_number INTEGER NOT NULL CHECK (page_number >= 1),
        name TEXT NOT NULL DEFAULT 'Page',
        html_content TEXT NOT NULL DEFAULT '',
        css_styles TEXT NOT NULL DEFAULT '',
        template_id INTEGER REFERENCES templates(id) ON DELETE SET NULL,
        page_config TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS assets (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        project_id INTEGER NOT NULL REFERENCES projects(id),
        filename TEXT NOT NULL,
        original_name TEXT NOT NULL,
        mime_type TEXT NOT NULL,
        file_size INTEGER NOT NULL CHECK (file_size >= 0),
        file_data BLOB NOT NULL,
        width INTEGER,
        height INTEGER,
        thumbnail BLOB,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS project_versions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        project_id INTEGER NOT NULL REFERENCES projects(id),
        version_number INTEGER NOT NULL CHECK (version_number >= 1),
        description TEXT NOT NULL DEFAULT 'Auto-save',
        data_snapshot TEXT NOT NULL,
        file_size INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (project_id, version_number)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_projects_last_accessed ON projects(last_accessed DESC)",
    "CREATE INDEX IF NOT EXISTS idx_projects_name ON projects(name)",
    "CREATE INDEX IF NOT EXISTS idx_pages_project_number ON pages(project_id, page_number)",
    "CREATE INDEX IF NOT EXISTS idx_assets_project ON assets(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_templates_category ON templates(category)",
    "CREATE INDEX IF NOT EXISTS idx_versions_project "
    "ON project_versions(project_id, version_number)",
)

DEFAULT_SETTINGS = {
    "schema_version": "1.0.0",
    "theme": "light",
    "autosave_interval_seconds": "30",
    "default_page_format": "A4",
    "default_page_orientation": "portrait",
    "recent_projects_limit": "10",
}

DEFAULT_PALETTES = (
    {
        "name": "Classic",
        "description": "Neutral print-friendly tones",
        "colors": ["#000000", "#333333", "#666666", "#999999", "#FFFFFF"],
        "theme_type": "light",
        "is_default": 1,
    },
    {
        "name": "Ocean",
        "description": "Blues and teals",
        "colors": ["#03045E", "#0077B6", "#00B4D8", "#90E0EF", "#CAF0F8"],
        "theme_type": "light",
        "is_default": 0,
    },
    {
        "name": "Midnight",
        "description": "High contrast for dark layouts",
        "colors": ["#0B0C10", "#1F2833", "#C5C6C7", "#66FCF1", "#45A29E"],
        "theme_type": "dark",
        "is_default": 0,
    },
)

BUILTIN_TEMPLATES = (
    {
        "name": "Blank Page",
        "category": "general",
        "description": "An empty page",
        "html_template": "<div class=\"page\"></div>",
        "css_template": ".page { padding: 0; }",
    },
    {
        "name": "Title Page",
        "category": "cover",
        "description": "Centered title and subtitle",
        "html_template": (
            "<div class=\"page title-page\"><h1>Title</h1><h2>Subtitle</h2></div>"
        ),
        "css_template": ".title-page { display: flex; flex-direction: column; "
        "justify-content: center; align-items: center; }",
    },
    {
        "name": "Chapter",
        "category": "text",
        "description": "Chapter heading followed by body text",
        "html_template": "<div class=\"page\"><h1>Chapter</h1><p></p></div>",
        "css_template": "h1 { margin-bottom: 2em; }",
    },
    {
        "name": "Two Columns",
        "category": "layout",
        "description": "Text split into two columns",
        "html_template": "<div class=\"page two-columns\"><p></p></div>",
        "css_template": ".two-columns { column-count: 2; column-gap: 1.5em; }",
    },
)


def create_initial_schema(conn: sqlite3.Connection) -> None:
    for statement in INITIAL_SCHEMA:
        conn.execute(statement)


def drop_initial_schema(conn: sqlite3.Connection) -> None:
    for table in ENTITY_TABLES:
        conn.execute(f"DROP TABLE IF EXISTS {table}")


def seed_defaults(conn: sqlite3.Connection, *, now: str) -> None:
    """Insert default settings, palettes and builtin templates.

    Existing rows win, so re-running the seed is harmless.
    """

    conn.executemany(
        "INSERT OR IGNORE INTO app_settings (key, value, created_at, updated_at) "
        "VALUES (?, ?, ?, ?)",
        [(key, value, now, now) for key, value in DEFAULT_SETTINGS.items()],
    )
    conn.executemany(
        "INSERT OR IGNORE INTO color_palettes "
        "(name, description, colors, theme_type, is_default, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?)",
        [
            (
                p["name"],
                p["description"],
                json.dumps(p["colors"]),
                p["theme_type"],
                p["is_default"],
                now,
                now,
            )
            for p in DEFAULT_PALETTES
        ],
    )
    existing = {
        row[0] for row in conn.execute("SELECT name FROM templates WHERE is_builtin = 1")
    }
    conn.executemany(
        "INSERT INTO templates "
        "(name, category, html_template, css_template, is_builtin, description, "
        "created_at, updated_at) VALUES (?, ?, ?, ?, 1, ?, ?, ?)",
        [
            (
                t["name"],
                t["category"],
                t["html_template"],
                t["css_template"],
                t["description"],
                now,
                now,
            )
            for t in BUILTIN_TEMPLATES
            if t["name"] not in existing
        ],
    )
