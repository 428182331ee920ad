import logging

import pytest

from fitprint.canvas.images import (
    ArtworkError,
    apply_bulk_changes,
    artwork_from_file,
    find_oversized,
    load_artwork_image,
    resize_artwork,
)
from fitprint.core import Artwork


def test_artwork_from_file_uses_aspect_ratio(make_png):
    path = make_png("wide.png", size=(200, 100))
    art = artwork_from_file(path)
    assert art.name == "wide.png"
    assert art.source_id == "wide.png"
    assert art.width == pytest.approx(50.0)
    assert art.height == pytest.approx(25.0)
    assert art.aspect_ratio == pytest.approx(2.0)
    assert art.copies == 1
    assert art.path == path


def test_artwork_from_file_custom_width(make_png):
    art = artwork_from_file(make_png(size=(100, 400)), default_width=20.0, source_id="tall", copies=3)
    assert (art.source_id, art.width, art.height, art.copies) == ("tall", 20.0, 80.0, 3)


def test_artwork_from_file_rejects_non_images(tmp_path):
    text = tmp_path / "notes.txt"
    text.write_text("not an image", encoding="utf-8")
    with pytest.raises(ArtworkError):
        artwork_from_file(str(text))
    with pytest.raises(ArtworkError):
        artwork_from_file(str(tmp_path / "missing.png"))


def test_resize_keeps_ratio():
    art = Artwork("a", "a.png", 50.0, 25.0)
    assert resize_artwork(art, width=80.0).height == pytest.approx(40.0)
    assert resize_artwork(art, height=10.0).width == pytest.approx(20.0)
    # original untouched
    assert (art.width, art.height) == (50.0, 25.0)


def test_resize_without_ratio_lock():
    art = Artwork("a", "a.png", 50.0, 25.0)
    out = resize_artwork(art, width=80.0, keep_ratio=False)
    assert (out.width, out.height) == (80.0, 25.0)
    assert out.aspect_ratio == pytest.approx(2.0)


def test_apply_bulk_changes_only_selected():
    arts = [Artwork("a", "a", 50.0, 25.0), Artwork("b", "b", 30.0, 30.0), Artwork("c", "c", 10.0, 40.0)]
    out = apply_bulk_changes(arts, ["a", "c"], width=20.0, copies=4)
    assert [(a.width, a.height, a.copies) for a in out] == [
        (20.0, pytest.approx(10.0), 4),
        (30.0, 30.0, 1),
        (20.0, pytest.approx(80.0), 4),
    ]


def test_apply_bulk_changes_rejects_bad_copies():
    from fitprint.core import InvalidGeometryError

    with pytest.raises(InvalidGeometryError):
        apply_bulk_changes([Artwork("a", "a", 5.0, 5.0)], ["a"], copies=0)


def test_find_oversized_respects_rotation():
    arts = [Artwork("ok", "ok", 50.0, 50.0), Artwork("turn", "turn", 150.0, 50.0), Artwork("huge", "huge", 250.0, 50.0)]
    assert [a.source_id for a in find_oversized(arts, 100.0, 200.0, allow_rotation=True)] == ["huge"]
    assert [a.source_id for a in find_oversized(arts, 100.0, 200.0, allow_rotation=False)] == ["turn", "huge"]


def test_load_artwork_image_flattens_and_rotates(make_png):
    path = make_png("half.png", size=(40, 20), color=(0, 0, 255, 0))
    im = load_artwork_image(path)
    assert im.mode == "RGB"
    assert im.size == (40, 20)
    assert im.getpixel((0, 0)) == (255, 255, 255)

    turned = load_artwork_image(path, rotated=True)
    assert turned.size == (20, 40)


def test_find_oversized_leaves_warnings_to_caller(caplog):
    arts = [Artwork("huge", "huge", 250.0, 50.0)]
    with caplog.at_level(logging.DEBUG, logger="fitprint.canvas.images"):
        assert find_oversized(arts, 100.0, 200.0) == arts
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]
