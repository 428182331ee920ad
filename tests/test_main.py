import os

import pikepdf

from main import run
from fitprint.core import Artwork
from fitprint.core.state import JobState, PaperSettings, save_job


def _write_job(tmp_path, make_png, **kwargs):
    job = JobState(
        paper=PaperSettings(width=110.0, height=110.0, outer_margin=5.0, inner_margin=0.0, allow_rotation=True),
        artworks=[Artwork("red", "red.png", 40.0, 40.0, copies=5, path=make_png("red.png", size=(50, 50)))],
        **kwargs,
    )
    path = tmp_path / "job.json"
    save_job(job, path)
    return str(path)


def test_run_writes_pdf(tmp_path, make_png):
    job = _write_job(tmp_path, make_png)
    out = tmp_path / "out" / "layout.pdf"
    assert run([job, "-o", str(out), "--dpi", "72"]) == 0
    with pikepdf.open(out) as pdf:
        assert len(pdf.pages) == 2


def test_run_fill_pages_from_command_line(tmp_path, make_png):
    job = _write_job(tmp_path, make_png)
    out = tmp_path / "filled.pdf"
    assert run([job, "-o", str(out), "--fill-pages", "3", "--dpi", "72"]) == 0
    with pikepdf.open(out) as pdf:
        assert len(pdf.pages) == 3


def test_run_writes_svg_previews(tmp_path, make_png):
    job = _write_job(tmp_path, make_png)
    svg_dir = tmp_path / "svg"
    assert run([job, "-o", str(tmp_path / "l.pdf"), "--svg-dir", str(svg_dir), "--dpi", "72"]) == 0
    assert sorted(os.listdir(svg_dir)) == ["page-001.svg", "page-002.svg"]


def test_run_rejects_bad_job(tmp_path):
    path = tmp_path / "job.json"
    path.write_text("{broken", encoding="utf-8")
    assert run([str(path)]) == 2


def test_run_rejects_margin_larger_than_paper(tmp_path):
    path = tmp_path / "job.json"
    path.write_text('{"paper": {"width": 20, "height": 20, "outer_margin": 10}}', encoding="utf-8")
    assert run([str(path)]) == 2


def test_run_with_nothing_placeable(tmp_path, make_png):
    path = tmp_path / "job.json"
    save_job(JobState(
        paper=PaperSettings(width=110.0, height=110.0, outer_margin=5.0, allow_rotation=False),
        artworks=[Artwork("big", "big.png", 400.0, 400.0, path=make_png("big.png"))],
    ), path)
    assert run([str(path), "-o", str(tmp_path / "none.pdf")]) == 1
    assert not (tmp_path / "none.pdf").exists()


def test_run_rejects_non_numeric_paper(tmp_path):
    path = tmp_path / "job.json"
    path.write_text('{"paper": {"width": "abc"}}', encoding="utf-8")
    assert run([str(path)]) == 2


def test_run_rejects_duplicate_artwork_ids(tmp_path, make_png):
    path = tmp_path / "job.json"
    path.write_text(
        '{"artworks": [{"source_id": "x", "path": "a.png", "width": 10, "height": 10},'
        ' {"source_id": "x", "path": "b.png", "width": 20, "height": 20}]}',
        encoding="utf-8",
    )
    make_png("a.png")
    make_png("b.png")
    assert run([str(path), "-o", str(tmp_path / "dup.pdf")]) == 2
    assert not (tmp_path / "dup.pdf").exists()


def test_run_reports_oversized_artwork_once_per_layer(tmp_path, make_png, caplog):
    path = tmp_path / "job.json"
    save_job(JobState(
        paper=PaperSettings(width=110.0, height=110.0, outer_margin=5.0, allow_rotation=False),
        artworks=[
            Artwork("big", "big.png", 400.0, 400.0, path=make_png("big.png")),
            Artwork("ok", "ok.png", 20.0, 20.0, path=make_png("ok.png")),
        ],
    ), path)
    assert run([str(path), "-o", str(tmp_path / "out.pdf"), "--dpi", "72"]) == 0
    warnings = [r.getMessage() for r in caplog.records if r.levelname == "WARNING" and "big" in r.getMessage()]
    # one summary from the runner, one skip notice from the packer
    assert len(warnings) == 2
