import random

import pytest

from pdfbook.core.errors import ConstraintError, NotFoundError, StorageError, ValidationError
from pdfbook.services.project_service import count_words


def _numbers(pages, project_id):
    return [page["page_number"] for page in pages.get_by_project(project_id)]


def _order(pages, project_id):
    return [page["id"] for page in pages.get_by_project(project_id)]


def _assert_consistent(projects, pages, project_id):
    live = pages.get_by_project(project_id)
    assert [page["page_number"] for page in live] == list(range(1, len(live) + 1))
    project = projects.get_by_id(project_id)
    assert project["page_count"] == len(live)
    assert project["word_count"] == sum(count_words(page["html_content"]) for page in live)


def test_append_then_delete_closes_gap(projects, pages, project):
    created = [
        pages.create({"project_id": project["id"], "html_content": f"<p>page {i}</p>"})
        for i in range(3)
    ]
    assert [page["page_number"] for page in created] == [1, 2, 3]

    pages.delete(created[1]["id"])

    assert _numbers(pages, project["id"]) == [1, 2]
    assert _order(pages, project["id"]) == [created[0]["id"], created[2]["id"]]
    assert projects.get_by_id(project["id"])["page_count"] == 2
    assert pages.get_by_id(created[1]["id"]) is None
    with pytest.raises(NotFoundError):
        pages.delete(created[1]["id"])


def test_create_defaults_and_stats(projects, pages, project):
    page = pages.create(
        {"project_id": project["id"], "html_content": "<p>Hello <i>there</i></p>"}
    )

    assert page["name"] == "Page"
    assert page["css_styles"] == ""
    assert page["template_id"] is None
    assert page["page_config"] == {}
    refreshed = projects.get_by_id(project["id"])
    assert (refreshed["page_count"], refreshed["word_count"]) == (1, 2)


def test_page_config_accepts_json_text(pages, project):
    page = pages.create(
        {"project_id": project["id"], "page_config": '{"background_color": "#FFFFFF", "bleed": 3}'}
    )

    assert page["page_config"] == {"background_color": "#FFFFFF", "bleed": 3}


def test_explicit_number_inserts_and_shifts(pages, project):
    first = pages.create({"project_id": project["id"], "name": "one"})
    second = pages.create({"project_id": project["id"], "name": "two"})

    inserted = pages.create({"project_id": project["id"], "name": "new", "page_number": 1})

    assert inserted["page_number"] == 1
    assert _order(pages, project["id"]) == [inserted["id"], first["id"], second["id"]]
    assert _numbers(pages, project["id"]) == [1, 2, 3]

    last = pages.create({"project_id": project["id"], "page_number": 4})
    assert _order(pages, project["id"])[-1] == last["id"]


def test_explicit_number_out_of_range(pages, project):
    pages.create({"project_id": project["id"]})

    with pytest.raises(ValidationError) as excinfo:
        pages.create({"project_id": project["id"], "page_number": 3})
    assert excinfo.value.fields == ["page_number"]
    assert _numbers(pages, project["id"]) == [1]


def test_create_for_missing_project(pages):
    with pytest.raises(NotFoundError):
        pages.create({"project_id": 404})


def test_failed_insert_rolls_back_the_shift(projects, pages, project):
    first = pages.create({"project_id": project["id"]})
    second = pages.create({"project_id": project["id"]})

    with pytest.raises(ConstraintError) as excinfo:
        pages.create({"project_id": project["id"], "page_number": 1, "template_id": 9999})

    assert excinfo.value.kind == "foreign_key"
    assert _order(pages, project["id"]) == [first["id"], second["id"]]
    _assert_consistent(projects, pages, project["id"])


def test_failed_move_rolls_back_the_shift(db, projects, pages, project):
    ids = [pages.create({"project_id": project["id"]})["id"] for _ in range(4)]
    db.execute_statement(
        "CREATE TRIGGER refuse_first_slot BEFORE UPDATE OF page_number ON pages "
        f"WHEN OLD.id = {ids[2]} AND NEW.page_number = 1 "
        "BEGIN SELECT RAISE(ABORT, 'slot is reserved'); END"
    )

    with pytest.raises((ConstraintError, StorageError)):
        pages.move_page(ids[2], 1)

    assert _order(pages, project["id"]) == ids
    _assert_consistent(projects, pages, project["id"])


def test_failed_duplicate_rolls_back_the_shift(db, projects, pages, project):
    ids = [pages.create({"project_id": project["id"]})["id"] for _ in range(3)]
    db.execute_statement(
        "CREATE TRIGGER refuse_new_pages BEFORE INSERT ON pages "
        "BEGIN SELECT RAISE(ABORT, 'pages are frozen'); END"
    )

    with pytest.raises((ConstraintError, StorageError)):
        pages.duplicate(ids[0])

    assert _order(pages, project["id"]) == ids
    _assert_consistent(projects, pages, project["id"])


def test_update_with_none_clears_template(pages, templates, project):
    template = templates.get_builtin()[0]
    page = pages.create({"project_id": project["id"], "template_id": template["id"]})

    cleared = pages.update(page["id"], {"template_id": None})

    assert cleared["template_id"] is None
    assert cleared["page_config"] == page["page_config"]


def test_update_refreshes_word_count(projects, pages, project):
    page = pages.create({"project_id": project["id"], "html_content": "one"})

    updated = pages.update(page["id"], {"html_content": "<p>one two three</p>", "name": "Intro"})

    assert updated["name"] == "Intro"
    assert projects.get_by_id(project["id"])["word_count"] == 3
    with pytest.raises(NotFoundError):
        pages.update(999, {"name": "x"})
    with pytest.raises(ValidationError):
        pages.update(page["id"], {"project_id": 2})


def test_move_page_to_front(pages, project):
    page1, page2, page3 = (pages.create({"project_id": project["id"]}) for _ in range(3))

    moved = pages.move_page(page3["id"], 1)

    assert moved["page_number"] == 1
    assert _order(pages, project["id"]) == [page3["id"], page1["id"], page2["id"]]
    assert _numbers(pages, project["id"]) == [1, 2, 3]


def test_move_page_backwards_and_noop(pages, project):
    page1, page2, page3 = (pages.create({"project_id": project["id"]}) for _ in range(3))

    pages.move_page(page1["id"], 3)
    assert _order(pages, project["id"]) == [page2["id"], page3["id"], page1["id"]]

    same = pages.move_page(page3["id"], 2)
    assert same["page_number"] == 2
    assert _order(pages, project["id"]) == [page2["id"], page3["id"], page1["id"]]


def test_move_page_out_of_range(pages, project):
    page = pages.create({"project_id": project["id"]})
    pages.create({"project_id": project["id"]})

    with pytest.raises(ValidationError):
        pages.move_page(page["id"], 3)
    with pytest.raises(ValidationError):
        pages.move_page(page["id"], 0)
    assert _numbers(pages, project["id"]) == [1, 2]


def test_reorder_pages(pages, project):
    page1, page2, page3 = (pages.create({"project_id": project["id"]}) for _ in range(3))

    ordered = pages.reorder_pages(project["id"], [page2["id"], page3["id"], page1["id"]])

    assert [page["id"] for page in ordered] == [page2["id"], page3["id"], page1["id"]]
    assert [page["page_number"] for page in ordered] == [1, 2, 3]


@pytest.mark.parametrize("mutate", ["partial", "duplicate", "foreign"])
def test_reorder_requires_exact_permutation(projects, pages, project, mutate):
    ids = [pages.create({"project_id": project["id"]})["id"] for _ in range(3)]
    foreign = pages.create({"project_id": projects.create({"name": "Other"})["id"]})["id"]
    bad = {
        "partial": ids[:2],
        "duplicate": [ids[0], ids[0], ids[1]],
        "foreign": [ids[0], ids[1], foreign],
    }[mutate]

    with pytest.raises(ValidationError):
        pages.reorder_pages(project["id"], bad)
    assert _order(pages, project["id"]) == ids


def test_duplicate_after_and_before(projects, pages, project):
    original = pages.create(
        {"project_id": project["id"], "name": "Cover", "html_content": "<h1>Big title</h1>"}
    )
    tail = pages.create({"project_id": project["id"]})

    after = pages.duplicate(original["id"])
    before = pages.duplicate(original["id"], insert_after=False)

    assert after["name"] == "Cover (Copy)"
    assert after["html_content"] == original["html_content"]
    assert _order(pages, project["id"]) == [before["id"], original["id"], after["id"], tail["id"]]
    _assert_consistent(projects, pages, project["id"])
    assert projects.get_by_id(project["id"])["word_count"] == 6


def test_page_content_and_next_number(pages, project):
    page = pages.create(
        {"project_id": project["id"], "html_content": "<p>x</p>", "css_styles": "p { margin: 0 }"}
    )

    assert pages.get_page_content(page["id"]) == {"html": "<p>x</p>", "css": "p { margin: 0 }"}
    assert pages.next_page_number(project["id"]) == 2
    with pytest.raises(NotFoundError):
        pages.get_page_content(999)


def test_pages_are_scoped_per_project(projects, pages, project):
    other = projects.create({"name": "Other"})
    pages.create({"project_id": project["id"]})
    pages.create({"project_id": other["id"]})
    pages.create({"project_id": other["id"]})

    assert _numbers(pages, project["id"]) == [1]
    assert _numbers(pages, other["id"]) == [1, 2]
    assert pages.count({"project_id": other["id"]}) == 2
    assert len(pages.get_all()) == 3


@pytest.mark.parametrize("seed", range(5))
def test_random_edits_keep_numbering_and_stats(projects, pages, project, seed):
    rng = random.Random(seed)
    words = ["alpha", "beta", "gamma", "delta"]

    for _ in range(40):
        live = pages.get_by_project(project["id"])
        op = rng.choice(["create", "insert", "delete", "move", "reorder", "duplicate", "update"])
        if op in ("delete", "move", "reorder", "duplicate", "update") and not live:
            op = "create"
        html = "<p>" + " ".join(rng.choices(words, k=rng.randint(0, 5))) + "</p>"
        if op == "create":
            pages.create({"project_id": project["id"], "html_content": html})
        elif op == "insert":
            position = rng.randint(1, len(live) + 1)
            pages.create({"project_id": project["id"], "page_number": position})
        elif op == "delete":
            pages.delete(rng.choice(live)["id"])
        elif op == "move":
            pages.move_page(rng.choice(live)["id"], rng.randint(1, len(live)))
        elif op == "reorder":
            ids = [page["id"] for page in live]
            rng.shuffle(ids)
            pages.reorder_pages(project["id"], ids)
        elif op == "duplicate":
            pages.duplicate(rng.choice(live)["id"], insert_after=rng.random() < 0.5)
        else:
            pages.update(rng.choice(live)["id"], {"html_content": html})

        _assert_consistent(projects, pages, project["id"])
