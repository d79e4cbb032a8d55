from io import BytesIO

import pytest
from PIL import Image

from pdfbook.core.errors import NotFoundError, ValidationError
from pdfbook.services.asset_service import THUMBNAIL_SIZE, probe_image


def _png(size=(400, 300), color=(200, 30, 30)):
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


SVG = b'<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10"></svg>'


def test_add_image_probes_and_thumbnails(assets, project):
    data = _png()

    asset = assets.add_image(project["id"], "cover.png", data, "image/png")

    assert (asset["width"], asset["height"]) == (400, 300)
    assert asset["file_size"] == len(data)
    assert asset["original_name"] == "cover.png"
    assert "file_data" not in asset
    with Image.open(BytesIO(asset["thumbnail"])) as thumb:
        assert thumb.format == "PNG"
        assert thumb.size == (200, 150)
    assert assets.get_data(asset["id"]) == data


def test_thumbnail_fits_a_square_box():
    _, _, thumbnail = probe_image(_png((300, 600)), "image/png")

    assert THUMBNAIL_SIZE == (200, 200)
    with Image.open(BytesIO(thumbnail)) as thumb:
        assert thumb.size == (100, 200)


def test_probe_image_keeps_small_images_within_bounds():
    width, height, thumbnail = probe_image(_png((50, 80)), "image/png")

    assert (width, height) == (50, 80)
    with Image.open(BytesIO(thumbnail)) as thumb:
        assert thumb.size[0] <= THUMBNAIL_SIZE[0]
        assert thumb.size[1] <= THUMBNAIL_SIZE[1]


def test_svg_is_stored_without_probe(assets, project):
    asset = assets.add_image(project["id"], "logo.svg", SVG, "image/svg+xml", original_name="Logo")

    assert asset["width"] is None
    assert asset["thumbnail"] is None
    assert asset["original_name"] == "Logo"


@pytest.mark.parametrize(
    "data, mime_type",
    [
        (_png(), "application/pdf"),
        (b"definitely not an image", "image/png"),
    ],
)
def test_add_image_rejects_bad_input(assets, project, data, mime_type):
    with pytest.raises(ValidationError):
        assets.add_image(project["id"], "bad.png", data, mime_type)
    assert assets.count() == 0


def test_asset_requires_existing_project(assets):
    with pytest.raises(NotFoundError):
        assets.add_image(404, "cover.png", _png(), "image/png")


def test_create_defaults_file_size(assets, project):
    asset = assets.create(
        {
            "project_id": project["id"],
            "filename": "data.bin",
            "original_name": "data.bin",
            "mime_type": "application/octet-stream",
            "file_data": b"12345",
        }
    )

    assert asset["file_size"] == 5


def test_update_delete_and_listing(projects, assets, project):
    other = projects.create({"name": "Other"})
    first = assets.add_image(project["id"], "a.png", _png(), "image/png")
    assets.add_image(project["id"], "b.svg", SVG, "image/svg+xml")
    assets.add_image(other["id"], "c.svg", SVG, "image/svg+xml")

    renamed = assets.update(first["id"], {"filename": "renamed.png"})
    assert renamed["filename"] == "renamed.png"
    assert renamed["original_name"] == "a.png"
    with pytest.raises(ValidationError):
        assets.update(first["id"], {"mime_type": "image/gif"})

    listed = assets.get_by_project(project["id"])
    assert [a["filename"] for a in listed] == ["renamed.png", "b.svg"]
    assert assets.count({"mime_type": "image/svg+xml"}) == 2

    assets.delete(first["id"])
    assert assets.get_by_id(first["id"]) is None
    with pytest.raises(NotFoundError):
        assets.get_data(first["id"])
    with pytest.raises(NotFoundError):
        assets.delete(first["id"])
