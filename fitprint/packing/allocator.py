"""
Multi-page allocation on top of the skyline packer.

The allocator expands artwork copies into items, packs them largest-first
onto as few pages as the heuristic finds, and optionally pads the layout to a
requested page count with optional duplicates. Required items always sort
ahead of optional ones, so the pages they occupy are identical to a
required-only run and truncating a padded layout can only cut duplicates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol, Sequence

from fitprint.core.objects import Item, Placement, validate_geometry
from fitprint.packing.skyline import Page

logger = logging.getLogger(__name__)

MAX_FILL_ATTEMPTS = 30


class ArtworkLike(Protocol):
    source_id: str
    name: str
    width: float
    height: float
    copies: int


@dataclass
class LayoutStats:
    """
    Summary numbers shown next to a layout.

    Attributes:
        total_items: Placed items, required and optional.
        required_items: Placed required items.
        optional_items: Placed fill duplicates.
        pages: Number of pages.
        items_per_page: Average items per page, rounded to one decimal.
        utilization: Placed item area over total printable area (0..1).
        skipped: Required items that could not be placed.
    """
    total_items: int
    required_items: int
    optional_items: int
    pages: int
    items_per_page: float
    utilization: float
    skipped: int


@dataclass
class LayoutResult:
    """
    Output of one generate_layout call.

    Attributes:
        pages: Packed pages in order.
        skipped: Required items too large for the page in every allowed orientation.
        minimum_pages: Page count of the required-only packing.
        target_pages: Requested fill target, or None when fill is off.
        shortfall: Pages still missing to reach the target after the retry budget.
        fill_copies: Number of optional duplicate sets used by the returned layout.
    """
    pages: List[Page] = field(default_factory=list)
    skipped: List[Item] = field(default_factory=list)
    minimum_pages: int = 0
    target_pages: Optional[int] = None
    shortfall: int = 0
    fill_copies: int = 0

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def target_reached(self) -> bool:
        return self.shortfall == 0

    def placements(self) -> List[List[Placement]]:
        return [list(page.placements) for page in self.pages]

    def as_dicts(self) -> List[List[dict]]:
        return [[p.as_dict() for p in page.placements] for page in self.pages]

    def stats(self) -> LayoutStats:
        required = sum(1 for page in self.pages for p in page.placements if p.item.required)
        total = sum(len(page) for page in self.pages)
        n_pages = len(self.pages)
        printable = sum(page.width * page.height for page in self.pages)
        used = sum(page.used_area for page in self.pages)
        return LayoutStats(
            total_items=total,
            required_items=required,
            optional_items=total - required,
            pages=n_pages,
            items_per_page=round(total / n_pages, 1) if n_pages else 0.0,
            utilization=(used / printable) if printable > 0 else 0.0,
            skipped=len(self.skipped),
        )


def sort_key(item: Item) -> tuple:
    return (not item.required, -item.area, -item.long_side, item.name, item.id)


def sort_items(items: Iterable[Item]) -> List[Item]:
    """Required first, then larger area, then longer side, then name and id."""
    return sorted(items, key=sort_key)


def expand_items(artworks: Sequence[ArtworkLike], required: bool = True, set_index: int = 0) -> List[Item]:
    """Turn each artwork into one Item per copy.

    Optional sets get ids tagged with ``set_index`` so every item in a run
    has a unique id.

    Raises:
        ValueError: two artworks share a source_id.
    """
    seen = set()
    for art in artworks:
        if str(art.source_id) in seen:
            raise ValueError(f"Duplicate artwork id {art.source_id!r}")
        seen.add(str(art.source_id))

    items: List[Item] = []
    for art in artworks:
        copies = int(art.copies)
        if copies < 1:
            continue
        for n in range(copies):
            if required:
                item_id = f"{art.source_id}#{n + 1}"
            else:
                item_id = f"{art.source_id}~{set_index}#{n + 1}"
            items.append(Item(
                id=item_id,
                width=art.width,
                height=art.height,
                required=required,
                source_id=str(art.source_id),
                name=str(art.name),
            ))
    return items


def _place_on_existing(pages: List[Page], item: Item, rotated_only: bool) -> Optional[Placement]:
    for page in pages:
        placement = page.place(item, rotated_only=rotated_only)
        if placement is not None:
            return placement
    return None


def pack_images(
    items: Iterable[Item],
    page_width: float,
    page_height: float,
    margin: float = 0.0,
    allow_rotation: bool = False,
) -> tuple[List[Page], List[Item]]:
    """Pack ``items`` onto pages of one size.

    Each item, in sort order, is tried unrotated on the existing pages, then
    rotated on the existing pages, then unrotated on a fresh page, then rotated
    on a fresh page.

    Returns:
        (pages, skipped) where skipped holds items that fit in no allowed
        orientation even on an empty page.
    """
    page_width, page_height, margin = validate_geometry(page_width, page_height, margin)
    pages: List[Page] = []
    skipped: List[Item] = []

    for item in sort_items(items):
        if _place_on_existing(pages, item, rotated_only=False) is not None:
            continue
        if allow_rotation and _place_on_existing(pages, item, rotated_only=True) is not None:
            continue

        page = Page(page_width, page_height, margin)
        placed = page.place(item)
        if placed is None and allow_rotation:
            placed = page.place(item, rotated_only=True)
        if placed is None:
            skipped.append(item)
            level = logging.WARNING if item.required else logging.DEBUG
            logger.log(level, f"Item {item.id} ({item.width}x{item.height}mm) does not fit on a "
                              f"{page_width}x{page_height}mm page, skipping")
            continue
        pages.append(page)

    logger.debug(f"Packed into {len(pages)} page(s), {len(skipped)} skipped")
    return pages, skipped


def minimum_pages(
    artworks: Sequence[ArtworkLike],
    page_width: float,
    page_height: float,
    margin: float = 0.0,
    allow_rotation: bool = False,
) -> int:
    """Page count of packing only the required copies. Not cached."""
    pages, _ = pack_images(expand_items(artworks), page_width, page_height, margin, allow_rotation)
    return len(pages)


def fill_to_pages(
    artworks: Sequence[ArtworkLike],
    requested_pages: int,
    page_width: float,
    page_height: float,
    margin: float = 0.0,
    allow_rotation: bool = False,
    max_attempts: int = MAX_FILL_ATTEMPTS,
) -> LayoutResult:
    """Pad the layout with optional duplicates until it spans the target page count.

    The target is ``max(minimum_pages, requested_pages)``. Duplicate sets are
    added one at a time; the first packing that reaches the target is cut to
    exactly the target. When the retry budget runs out the closest packing is
    returned with ``shortfall`` set.
    """
    required = expand_items(artworks)
    base_pages, skipped = pack_images(required, page_width, page_height, margin, allow_rotation)
    minimum = len(base_pages)
    target = max(minimum, int(requested_pages))

    result = LayoutResult(
        pages=base_pages,
        skipped=skipped,
        minimum_pages=minimum,
        target_pages=target,
        shortfall=target - minimum,
    )
    if not required or len(skipped) == len(required):
        logger.warning("Nothing to duplicate, fill target cannot be reached")
        return result

    for k in range(1, max(1, int(max_attempts)) + 1):
        items = list(required)
        for set_index in range(1, k + 1):
            items.extend(expand_items(artworks, required=False, set_index=set_index))
        pages, _ = pack_images(items, page_width, page_height, margin, allow_rotation)

        if len(pages) >= target:
            logger.info(f"Fill reached {target} page(s) with {k} duplicate set(s), "
                        f"dropping {len(pages) - target} extra page(s)")
            result.pages = pages[:target]
            result.shortfall = 0
            result.fill_copies = k
            return result

        # Closest so far: most pages, fewest duplicates on ties
        if len(pages) > result.page_count or result.fill_copies == 0:
            result.pages = pages
            result.fill_copies = k
            result.shortfall = target - len(pages)

    logger.warning(f"Fill target of {target} page(s) not reached after {max_attempts} attempt(s), "
                   f"best layout has {result.page_count}")
    return result


def generate_layout(
    artworks: Sequence[ArtworkLike],
    page_width: float,
    page_height: float,
    margin: float = 0.0,
    allow_rotation: bool = False,
    fill_pages: Optional[int] = None,
    max_attempts: int = MAX_FILL_ATTEMPTS,
) -> LayoutResult:
    """Build a fresh layout for ``artworks``.

    Args:
        artworks: Sources with width, height and copies.
        page_width: Printable width.
        page_height: Printable height.
        margin: Spacing between items.
        allow_rotation: Permit 90 degree turns.
        fill_pages: When set, pad with optional duplicates up to this many pages.
        max_attempts: Retry budget for the fill search.

    Raises:
        InvalidGeometryError: page or margin sizes are invalid.
        ValueError: two artworks share a source_id.
    """
    validate_geometry(page_width, page_height, margin)
    if fill_pages is not None:
        result = fill_to_pages(
            artworks, fill_pages, page_width, page_height, margin, allow_rotation, max_attempts=max_attempts
        )
    else:
        pages, skipped = pack_images(expand_items(artworks), page_width, page_height, margin, allow_rotation)
        result = LayoutResult(pages=pages, skipped=skipped, minimum_pages=len(pages))

    for n, page in enumerate(result.pages, start=1):
        logger.info(f"Page {n}: {len(page)} item(s)")
    return result
