import time

import pytest

from pdfbook.core.errors import ConstraintError, NotFoundError, StorageError, ValidationError
from pdfbook.services.project_service import count_words


def test_create_applies_defaults(projects):
    project = projects.create({"name": "Novel"})

    assert project["id"] > 0
    assert project["name"] == "Novel"
    assert project["page_format"] == "A4"
    assert project["page_orientation"] == "portrait"
    assert project["page_count"] == 0
    assert project["word_count"] == 0
    assert project["margins"] == {"top": 20, "bottom": 20, "left": 20, "right": 20}


def test_create_returns_validated_input(projects):
    payload = {
        "name": "Atlas",
        "description": "Maps",
        "page_format": "Letter",
        "page_orientation": "landscape",
        "margins": '{"top": 10, "bottom": 12.5, "left": 5, "right": 5}',
    }
    first = projects.create(payload)
    second = projects.create(payload)

    assert first["id"] != second["id"]
    assert first["description"] == "Maps"
    assert first["page_format"] == "Letter"
    assert first["page_orientation"] == "landscape"
    assert first["margins"] == {"top": 10, "bottom": 12.5, "left": 5, "right": 5}
    assert projects.get_by_id(first["id"]) == first


@pytest.mark.parametrize(
    "payload, field",
    [
        ({"name": ""}, "name"),
        ({"name": "x" * 256}, "name"),
        ({"name": "Book", "page_format": "B5"}, "page_format"),
        ({"name": "Book", "margins": {"top": -1}}, "margins.top"),
        ({"name": "Book", "margins": "not json"}, "margins"),
        ({"name": "Book", "color": "red"}, "color"),
    ],
)
def test_invalid_create_touches_nothing(projects, payload, field):
    with pytest.raises(ValidationError) as excinfo:
        projects.create(payload)

    assert field in excinfo.value.fields
    assert projects.count() == 0


def test_get_by_id_validates_and_misses(projects):
    assert projects.get_by_id(999) is None
    with pytest.raises(ValidationError):
        projects.get_by_id(0)
    with pytest.raises(ValidationError):
        projects.get_by_id("1")


def test_update_changes_only_given_fields(projects, project):
    updated = projects.update(project["id"], {"name": "Renamed", "margins": {"top": 5}})

    assert updated["name"] == "Renamed"
    assert updated["description"] == project["description"]
    assert updated["margins"]["top"] == 5
    assert updated["updated_at"] >= project["updated_at"]


def test_update_errors(projects, project):
    with pytest.raises(NotFoundError):
        projects.update(999, {"name": "Ghost"})
    with pytest.raises(ValidationError):
        projects.update(project["id"], {})
    with pytest.raises(ValidationError):
        projects.update(project["id"], {"page_orientation": "diagonal"})


def test_update_with_none_clears_nullable_columns(projects, palettes, project):
    palette = palettes.get_default()
    projects.update(project["id"], {"color_palette_id": palette["id"], "file_path": "/tmp/n.pdf"})

    cleared = projects.update(project["id"], {"description": None, "color_palette_id": None})

    assert cleared["description"] is None
    assert cleared["color_palette_id"] is None
    assert cleared["file_path"] == "/tmp/n.pdf"
    assert cleared["name"] == project["name"]
    with pytest.raises(ValidationError):
        projects.update(project["id"], {"name": None})


def test_delete_cascades_to_children(projects, pages, assets, versions, project):
    other = projects.create({"name": "Keep me"})
    for owner in (project, other):
        pages.create({"project_id": owner["id"], "html_content": "<p>one two</p>"})
        pages.create({"project_id": owner["id"]})
        assets.create(
            {
                "project_id": owner["id"],
                "filename": "notes.txt",
                "original_name": "notes.txt",
                "mime_type": "text/plain",
                "file_data": b"hello",
            }
        )
        versions.create({"project_id": owner["id"]})

    projects.delete(project["id"])

    assert projects.get_by_id(project["id"]) is None
    assert pages.count({"project_id": project["id"]}) == 0
    assert assets.count({"project_id": project["id"]}) == 0
    assert versions.count({"project_id": project["id"]}) == 0
    assert pages.count({"project_id": other["id"]}) == 2
    assert assets.count({"project_id": other["id"]}) == 1
    assert versions.count({"project_id": other["id"]}) == 1


def test_failed_cascade_leaves_children_in_place(db, projects, pages, assets, versions, project):
    pages.create({"project_id": project["id"], "html_content": "kept words"})
    assets.create(
        {
            "project_id": project["id"],
            "filename": "notes.txt",
            "original_name": "notes.txt",
            "mime_type": "text/plain",
            "file_data": b"hello",
        }
    )
    versions.create({"project_id": project["id"]})
    db.execute_statement(
        "CREATE TRIGGER refuse_project_delete BEFORE DELETE ON projects "
        "BEGIN SELECT RAISE(ABORT, 'project is locked'); END"
    )

    with pytest.raises((ConstraintError, StorageError)):
        projects.delete(project["id"])

    assert projects.get_by_id(project["id"]) is not None
    assert pages.count({"project_id": project["id"]}) == 1
    assert assets.count({"project_id": project["id"]}) == 1
    assert versions.count({"project_id": project["id"]}) == 1


def test_get_by_id_after_delete_is_none(projects):
    created = [projects.create({"name": f"P{i}"}) for i in range(4)]
    for project in created:
        projects.delete(project["id"])

    assert all(projects.get_by_id(p["id"]) is None for p in created)
    with pytest.raises(NotFoundError):
        projects.delete(created[0]["id"])


def test_recent_follows_last_accessed(projects):
    first = projects.create({"name": "First"})
    second = projects.create({"name": "Second"})
    third = projects.create({"name": "Third"})
    time.sleep(0.01)
    projects.update_last_accessed(first["id"])

    recent = projects.get_recent(2)
    assert [p["id"] for p in recent] == [first["id"], third["id"]]
    assert [p["id"] for p in projects.get_all()] == [first["id"], third["id"], second["id"]]

    with pytest.raises(NotFoundError):
        projects.update_last_accessed(999)
    with pytest.raises(ValidationError):
        projects.get_recent(0)


def test_get_all_filters(projects):
    projects.create({"name": "Alpha", "page_format": "A5"})
    projects.create({"name": "Beta", "page_format": "A5"})
    projects.create({"name": "Gamma"})

    assert {p["name"] for p in projects.get_all({"page_format": "A5"})} == {"Alpha", "Beta"}
    assert {p["name"] for p in projects.get_all({"name": ["Alpha", "Gamma"]})} == {
        "Alpha",
        "Gamma",
    }
    assert [p["name"] for p in projects.get_all({"name": "G%"})] == ["Gamma"]
    assert projects.get_all({"name": []}) == []
    assert projects.count({"page_format": "A5"}) == 2
    with pytest.raises(ValidationError):
        projects.get_all({"secret": 1})


def test_paginated_listing(projects):
    for i in range(25):
        projects.create({"name": f"Book {i:02d}"})

    result = projects.get_paginated({"page": 3, "limit": 10, "order_by": "name"})

    assert result.total == 25
    assert result.total_pages == 3
    assert result.page == 3
    assert [p["name"] for p in result.data] == [
        "Book 04",
        "Book 03",
        "Book 02",
        "Book 01",
        "Book 00",
    ]

    ascending = projects.get_paginated({"limit": 5, "order_by": "name", "direction": "asc"})
    assert [p["name"] for p in ascending.data][0] == "Book 00"

    with pytest.raises(ValidationError):
        projects.get_paginated({"order_by": "name; DROP TABLE projects"})
    with pytest.raises(ValidationError):
        projects.get_paginated({"limit": 500})


def test_search_ranks_name_matches_first(projects):
    by_description = projects.create({"name": "Cookbook", "description": "Garden recipes"})
    by_name = projects.create({"name": "Garden diary"})
    projects.create({"name": "Unrelated"})

    results = projects.search("garden")

    assert [p["id"] for p in results] == [by_name["id"], by_description["id"]]


def test_search_treats_wildcards_literally(projects):
    literal = projects.create({"name": "100% done"})
    projects.create({"name": "1000 done"})
    underscore = projects.create({"name": "draft_1"})
    projects.create({"name": "draftX1"})

    assert [p["id"] for p in projects.search("100%")] == [literal["id"]]
    assert [p["id"] for p in projects.search("t_1")] == [underscore["id"]]


def test_count_words():
    assert count_words("<p>Hello <b>world</b></p>") == 2
    assert count_words("<p>a</p><p>b</p>") == 2
    assert count_words("plain   text\nhere") == 3
    assert count_words("") == 0
    assert count_words(None) == 0


def test_stats_recompute_from_pages(db, projects, pages, project):
    pages.create(
        {"project_id": project["id"], "html_content": "<h1>Title</h1><p>three more words</p>"}
    )
    pages.create({"project_id": project["id"], "html_content": "one"})
    db.execute_statement(
        "UPDATE projects SET page_count = 99, word_count = 99 WHERE id = ?", [project["id"]]
    )

    assert projects.update_page_count(project["id"]) == 2
    assert projects.update_word_count(project["id"]) == 5
    db.execute_statement("UPDATE projects SET page_count = 0 WHERE id = ?", [project["id"]])
    refreshed = projects.refresh_stats(project["id"])
    assert (refreshed["page_count"], refreshed["word_count"]) == (2, 5)


def test_project_stats(projects, pages, assets, versions, project):
    pages.create({"project_id": project["id"], "html_content": "a b c"})
    assets.create(
        {
            "project_id": project["id"],
            "filename": "a.bin",
            "original_name": "a.bin",
            "mime_type": "application/octet-stream",
            "file_data": b"\x00\x01",
        }
    )
    versions.create({"project_id": project["id"]})
    versions.create({"project_id": project["id"]})

    stats = projects.get_project_stats(project["id"])

    assert stats["page_count"] == 1
    assert stats["word_count"] == 3
    assert stats["asset_count"] == 1
    assert stats["version_count"] == 2
    assert stats["last_modified"]
    with pytest.raises(NotFoundError):
        projects.get_project_stats(999)
