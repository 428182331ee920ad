"""
Layout export.

Turns a packed layout into a multi-page PDF (one PDF page per layout page,
at paper size) and into per-page SVG previews. Page-local placement
coordinates are shifted by the paper's outer margin on output.
"""

from __future__ import annotations

import io
import os
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence
from xml.sax.saxutils import escape

import cairo
import numpy as np
import pikepdf
from PIL import Image

from fitprint.core import APP_TITLE, MM_PER_INCH, MM_TO_PT, Artwork, Placement
from fitprint.core.state import PaperSettings
from fitprint.canvas.images import load_artwork_image
from fitprint.packing.allocator import LayoutResult
from fitprint.packing.skyline import Page

logger = logging.getLogger(__name__)


def _f(num: float) -> str:
    return f"{float(num):.3f}"


def _to_cairo_surface(im: Image.Image) -> tuple[cairo.ImageSurface, np.ndarray]:
    """Wrap an RGB image in a cairo surface. The array must outlive the surface."""
    arr = np.array(im.convert("RGB"))
    h, w = arr.shape[:2]
    stride = cairo.ImageSurface.format_stride_for_width(cairo.FORMAT_ARGB32, w)
    # Cairo expects BGRA rows padded to the stride
    arr_bgra = np.zeros((h, stride // 4, 4), dtype=np.uint8)
    arr_bgra[:, :w, 2] = arr[:, :, 0]
    arr_bgra[:, :w, 1] = arr[:, :, 1]
    arr_bgra[:, :w, 0] = arr[:, :, 2]
    arr_bgra[:, :w, 3] = 255
    surface = cairo.ImageSurface.create_for_data(arr_bgra, cairo.FORMAT_ARGB32, w, h, stride)
    return surface, arr_bgra


class LayoutExporter:
    """Render a LayoutResult to PDF or SVG."""

    def __init__(self, paper: PaperSettings, artworks: Sequence[Artwork] = (), dpi: int = 300,
                 jpeg_quality: int = 80) -> None:
        self.paper = paper
        self.artworks: Dict[str, Artwork] = {str(a.source_id): a for a in artworks}
        self.dpi = int(dpi)
        self.jpeg_quality = int(jpeg_quality)

    # ------------------------------------------------------------------
    # SVG preview
    # ------------------------------------------------------------------
    def page_to_svg(self, page: Page, index: int = 1) -> str:
        """SVG markup for one page: paper outline, printable area and labelled item boxes (mm units)."""
        pw = self.paper.width
        ph = self.paper.height
        om = self.paper.outer_margin

        lines: list[str] = []
        lines.append("<?xml version='1.0' encoding='UTF-8'?>")
        lines.append(
            "<svg xmlns='http://www.w3.org/2000/svg' "
            f"width='{_f(pw)}mm' height='{_f(ph)}mm' viewBox='0 0 {_f(pw)} {_f(ph)}'>"
        )
        lines.append(f"<title>Page {index}</title>")
        lines.append(
            f"<rect class='paper' x='0' y='0' width='{_f(pw)}' height='{_f(ph)}' "
            "fill='#ffffff' stroke='#000000' stroke-width='0.300'/>"
        )
        lines.append(
            f"<rect class='printable' x='{_f(om)}' y='{_f(om)}' width='{_f(self.paper.printable_width)}' "
            f"height='{_f(self.paper.printable_height)}' fill='none' stroke='#808080' "
            "stroke-width='0.200' stroke-dasharray='1,1'/>"
        )
        for p in page.placements:
            label = p.item.name or p.item.source_id
            if p.rotated:
                label += " (R)"
            x = om + p.x
            y = om + p.y
            fill = "#d8ecff" if p.item.required else "#eeeeee"
            lines.append(
                f"<rect class='placed-image' x='{_f(x)}' y='{_f(y)}' width='{_f(p.width)}' "
                f"height='{_f(p.height)}' fill='{fill}' stroke='#17a24b' stroke-width='0.300'/>"
            )
            font = max(1.0, min(p.width, p.height) / 8.0)
            lines.append(
                f"<text x='{_f(x + p.width / 2)}' y='{_f(y + p.height / 2)}' font-size='{_f(font)}' "
                f"text-anchor='middle' dominant-baseline='middle'>{escape(label)}</text>"
            )
        lines.append("</svg>")
        return "\n".join(lines)

    def render_page_to_svg(self, path: str | Path, page: Page, index: int = 1) -> None:
        with open(path, "w", encoding="utf-8") as fp:
            fp.write(self.page_to_svg(page, index))

    def render_layout_to_svgs(self, folder: str | Path, result: LayoutResult, stem: str = "page") -> List[str]:
        """Write one SVG preview per page; returns the written paths."""
        out_dir = Path(folder)
        out_dir.mkdir(parents=True, exist_ok=True)
        paths = []
        for n, page in enumerate(result.pages, start=1):
            path = out_dir / f"{stem}-{n:03d}.svg"
            self.render_page_to_svg(path, page, n)
            paths.append(str(path))
        logger.info(f"Wrote {len(paths)} SVG preview(s) to {out_dir}")
        return paths

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------
    def _prepare_image(self, placement: Placement, path: str) -> Image.Image:
        im = load_artwork_image(path, rotated=placement.rotated)
        # Never embed more pixels than the export DPI needs
        max_w = max(1, int(round(placement.width / MM_PER_INCH * self.dpi)))
        max_h = max(1, int(round(placement.height / MM_PER_INCH * self.dpi)))
        if im.width > max_w or im.height > max_h:
            im = im.resize((max_w, max_h), Image.LANCZOS)
        return im

    def _draw_placement(self, context: cairo.Context, placement: Placement, keep_alive: list) -> bool:
        om = self.paper.outer_margin
        x_pt = (om + placement.x) * MM_TO_PT
        y_pt = (om + placement.y) * MM_TO_PT
        w_pt = placement.width * MM_TO_PT
        h_pt = placement.height * MM_TO_PT

        art = self.artworks.get(placement.item.source_id)
        path = art.path if art is not None else None
        if not path or not os.path.exists(path):
            self._draw_box(context, placement, x_pt, y_pt, w_pt, h_pt)
            return False

        im = self._prepare_image(placement, path)
        img_surface, arr = _to_cairo_surface(im)
        with io.BytesIO() as buffer:
            im.save(buffer, format="JPEG", quality=self.jpeg_quality)
            jpeg = buffer.getvalue()
        img_surface.set_mime_data(cairo.MIME_TYPE_JPEG, jpeg)
        keep_alive.append((img_surface, arr, jpeg))

        context.save()
        try:
            context.translate(x_pt, y_pt)
            context.scale(w_pt / im.width, h_pt / im.height)
            context.set_source_surface(img_surface, 0, 0)
            context.get_source().set_filter(cairo.FILTER_BEST)
            context.paint()
        finally:
            context.restore()
        return True

    def _draw_box(self, context: cairo.Context, placement: Placement,
                  x_pt: float, y_pt: float, w_pt: float, h_pt: float) -> None:
        context.save()
        try:
            context.set_source_rgb(0.5, 0.5, 0.5)
            context.set_line_width(0.5)
            context.rectangle(x_pt, y_pt, w_pt, h_pt)
            context.stroke()
            label = placement.item.name or placement.item.source_id
            if label:
                context.set_font_size(max(4.0, min(w_pt, h_pt) / 8.0))
                context.move_to(x_pt + 2.0, y_pt + min(h_pt - 2.0, 12.0))
                context.show_text(label + (" (R)" if placement.rotated else ""))
        finally:
            context.restore()

    def render_layout_to_pdf(self, path: str | Path, result: LayoutResult, title: Optional[str] = None) -> str:
        """Write every layout page as one PDF page at paper size.

        Raises:
            ValueError: the layout has no pages.
        """
        if not result.pages:
            raise ValueError("Layout has no pages to export")
        path = str(path)
        width_pt = self.paper.width * MM_TO_PT
        height_pt = self.paper.height * MM_TO_PT
        logger.info(f"Creating PDF {path}: {len(result.pages)} page(s) of {width_pt:.2f}x{height_pt:.2f}pt")

        surface = cairo.PDFSurface(path, width_pt, height_pt)
        context = cairo.Context(surface)
        keep_alive: list = []
        drawn = 0
        total = 0
        for n, page in enumerate(result.pages, start=1):
            context.set_source_rgb(1, 1, 1)
            context.paint()
            for placement in page.placements:
                total += 1
                try:
                    if self._draw_placement(context, placement, keep_alive):
                        drawn += 1
                except Exception as e:
                    logger.exception(f"Failed to draw {placement.item.id} on page {n}: {e}")
            context.show_page()
        surface.finish()
        keep_alive.clear()
        logger.info(f"Drew {drawn}/{total} image(s)")

        self._stamp_pdf(path, title or APP_TITLE)
        return path

    def _stamp_pdf(self, path: str, title: str) -> None:
        """Set document info and an ArtBox around the printable area on every page."""
        om_pt = self.paper.outer_margin * MM_TO_PT
        w_pt = self.paper.width * MM_TO_PT
        h_pt = self.paper.height * MM_TO_PT
        with pikepdf.open(path, allow_overwriting_input=True) as pdf:
            pdf.docinfo["/Title"] = title
            pdf.docinfo["/Producer"] = APP_TITLE
            for page in pdf.pages:
                page.ArtBox = pikepdf.Array([om_pt, om_pt, w_pt - om_pt, h_pt - om_pt])
            pdf.save(path)
        logger.debug(f"Stamped metadata on {path}")
