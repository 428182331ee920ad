from __future__ import annotations

import os
import logging
from dataclasses import replace
from typing import Iterable, List, Optional, Sequence

from PIL import Image, UnidentifiedImageError

from fitprint.core.objects import Artwork

logger = logging.getLogger(__name__)

DEFAULT_WIDTH_MM = 50.0


class ArtworkError(Exception):
    """An artwork file could not be opened as an image."""


def _open_image(path: str) -> Image.Image:
    if not path or not os.path.exists(path):
        raise ArtworkError(f"Artwork file not found: {path}")
    try:
        im = Image.open(path)
        im.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ArtworkError(f"Not a readable image: {path}") from e
    return im


def artwork_from_file(path: str, default_width: float = DEFAULT_WIDTH_MM, source_id: Optional[str] = None,
                      copies: int = 1) -> Artwork:
    """Create an Artwork for an image file.

    The print width starts at ``default_width`` mm and the height follows the
    image's pixel aspect ratio.

    Raises:
        ArtworkError: the file is missing or is not an image.
    """
    with _open_image(path) as im:
        px_w, px_h = im.size
    if px_w <= 0 or px_h <= 0:
        raise ArtworkError(f"Image has no pixels: {path}")
    ratio = px_w / px_h
    name = os.path.basename(path)
    art = Artwork(
        source_id=source_id or name,
        name=name,
        width=float(default_width),
        height=float(default_width) / ratio,
        copies=copies,
        path=str(path),
        aspect_ratio=ratio,
    )
    logger.debug(f"Loaded artwork {name}: {px_w}x{px_h}px -> {art.width:.1f}x{art.height:.1f}mm")
    return art


def resize_artwork(artwork: Artwork, width: Optional[float] = None, height: Optional[float] = None,
                   keep_ratio: bool = True) -> Artwork:
    """Return a copy of ``artwork`` with a new print size.

    With ``keep_ratio`` the side that was not given is derived from the
    aspect ratio; when both are given, height wins (as in a bulk edit where
    the height field is applied last).
    """
    ratio = artwork.aspect_ratio or (artwork.width / artwork.height)
    new_w, new_h = artwork.width, artwork.height
    if width is not None:
        new_w = float(width)
        if keep_ratio:
            new_h = new_w / ratio
    if height is not None:
        new_h = float(height)
        if keep_ratio:
            new_w = new_h * ratio
    return replace(artwork, width=new_w, height=new_h, aspect_ratio=ratio)


def apply_bulk_changes(artworks: Sequence[Artwork], ids: Iterable[str], width: Optional[float] = None,
                       height: Optional[float] = None, copies: Optional[int] = None,
                       keep_ratio: bool = True) -> List[Artwork]:
    """Apply the same size and/or copies edit to every artwork whose id is in ``ids``."""
    selected = set(ids)
    out: List[Artwork] = []
    changed = 0
    for art in artworks:
        if art.source_id not in selected:
            out.append(art)
            continue
        new_art = resize_artwork(art, width=width, height=height, keep_ratio=keep_ratio)
        if copies is not None:
            new_art = replace(new_art, copies=int(copies))
        out.append(new_art)
        changed += 1
    logger.info(f"Applied bulk changes to {changed} artwork(s)")
    return out


def find_oversized(artworks: Sequence[Artwork], printable_width: float, printable_height: float,
                   allow_rotation: bool = True) -> List[Artwork]:
    """Artworks that fit the printable area in none of the allowed orientations."""
    oversized = [a for a in artworks if not a.fits(printable_width, printable_height, allow_rotation)]
    for art in oversized:
        logger.debug(
            f"{art.name}: {art.width:.1f}x{art.height:.1f}mm is too large, max "
            f"{max(printable_width, printable_height):.1f}x{min(printable_width, printable_height):.1f}mm"
        )
    return oversized


def load_artwork_image(path: str, rotated: bool = False) -> Image.Image:
    """Load an artwork as RGB flattened on white, turned 90 degrees clockwise when rotated."""
    with _open_image(path) as src:
        im = src.convert("RGBA")
    background = Image.new("RGB", im.size, (255, 255, 255))
    background.paste(im, mask=im.split()[3])
    if rotated:
        background = background.transpose(Image.Transpose.ROTATE_270)
    return background
