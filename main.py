import sys
import logging
import argparse
from pathlib import Path

from fitprint import APP_TITLE, InvalidGeometryError, generate_layout
from fitprint.canvas import LayoutExporter, find_oversized
from fitprint.core.state import DEFAULT_PDF_NAME, JobError, load_job, load_settings

logger = logging.getLogger("fitprint")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fitprint", description=f"{APP_TITLE}: pack artwork onto printable pages")
    parser.add_argument("job", help="job file (JSON) with paper settings and artworks")
    parser.add_argument("-o", "--output", help="PDF path (default: <output dir>/fitprint-layout.pdf)")
    parser.add_argument("--svg-dir", help="also write one SVG preview per page into this folder")
    parser.add_argument("--fill-pages", type=int, help="pad with duplicates up to this many pages")
    parser.add_argument("--dpi", type=int, help="raster resolution for embedded images")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def run(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(asctime)s %(name)s] [%(levelname)s] %(message)s",
    )
    logging.getLogger("PIL").setLevel(logging.WARNING)

    settings = load_settings()
    try:
        job = load_job(args.job)
        paper = job.paper
        paper.validate()
    except (JobError, InvalidGeometryError) as e:
        logger.error(str(e))
        return 2

    fill = args.fill_pages if args.fill_pages is not None else job.requested_fill
    oversized = find_oversized(job.artworks, paper.printable_width, paper.printable_height, paper.allow_rotation)
    if oversized:
        logger.warning(f"{len(oversized)} artwork(s) will be skipped: {', '.join(a.name for a in oversized)}")

    result = generate_layout(
        job.artworks,
        paper.printable_width,
        paper.printable_height,
        margin=paper.inner_margin,
        allow_rotation=paper.allow_rotation,
        fill_pages=fill,
        max_attempts=settings.fill_attempts,
    )
    stats = result.stats()
    logger.info(
        f"{stats.total_items} item(s) on {stats.pages} page(s), {stats.items_per_page} per page, "
        f"{stats.utilization:.0%} of printable area used"
    )
    if result.shortfall:
        logger.warning(f"Fill target missed by {result.shortfall} page(s)")
    if not result.pages:
        logger.error("Nothing could be placed")
        return 1

    exporter = LayoutExporter(paper, job.artworks, dpi=args.dpi or settings.dpi,
                              jpeg_quality=settings.jpeg_quality)
    if args.output:
        out_path = Path(args.output)
    else:
        out_path = Path(settings.output_dir) / DEFAULT_PDF_NAME
    out_path.parent.mkdir(parents=True, exist_ok=True)
    exporter.render_layout_to_pdf(out_path, result, title=Path(args.job).stem)
    logger.info(f"Saved {out_path}")

    if args.svg_dir:
        exporter.render_layout_to_svgs(args.svg_dir, result)
    return 0


if __name__ == "__main__":
    sys.exit(run())
