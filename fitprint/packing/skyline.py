"""
Skyline bottom-left packer for a single page.

The free space of a page is kept as a list of segments ordered by x. Each
segment records the lowest y that is still free over its x-range, so a
rectangle fits at segment ``i`` at the highest ``top_y`` of all segments its
width spans. Every placement reserves a trailing margin belt on its right and
bottom edges; the belt is clipped where it would leave the page.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from fitprint.core.objects import EPSILON, Item, Placement, Position, Segment, validate_geometry

logger = logging.getLogger(__name__)


def new_skyline(page_width: float) -> List[Segment]:
    return [Segment(0.0, 0.0, float(page_width))]


def _orientations(width: float, height: float, allow_rotation: bool, rotated_only: bool) -> list[tuple[float, float, bool]]:
    if rotated_only:
        return [(height, width, True)]
    out = [(width, height, False)]
    if allow_rotation:
        out.append((height, width, True))
    return out


def _is_better(a: Position, b: Position, eps: float) -> bool:
    """Bottom-left ordering: y, then x, then unrotated first, then reserved bottom."""
    if abs(a.y - b.y) > eps:
        return a.y < b.y
    if abs(a.x - b.x) > eps:
        return a.x < b.x
    if a.rotated != b.rotated:
        return not a.rotated
    if abs(a.bottom - b.bottom) > eps:
        return a.bottom < b.bottom
    return False


def _fit_at(
    skyline: Sequence[Segment],
    index: int,
    w: float,
    h: float,
    rotated: bool,
    page_width: float,
    page_height: float,
    margin: float,
    eps: float,
) -> Optional[Position]:
    x0 = skyline[index].x
    if x0 + w > page_width + eps:
        return None
    # Trailing belt is clipped at the right edge so an edge-column item is never
    # rejected because of the margin alone.
    reserve_w = w + margin
    if x0 + reserve_w > page_width + eps:
        reserve_w = page_width - x0

    y_pos = 0.0
    width_left = reserve_w
    j = index
    while width_left > eps:
        if j >= len(skyline):
            return None
        y_pos = max(y_pos, skyline[j].top_y)
        width_left -= skyline[j].width
        j += 1

    if y_pos + h > page_height + eps:
        return None
    reserve_h = h + margin
    if y_pos + reserve_h > page_height + eps:
        reserve_h = page_height - y_pos

    return Position(
        x=x0,
        y=y_pos,
        width=w,
        height=h,
        rotated=rotated,
        reserved_width=reserve_w,
        reserved_height=reserve_h,
    )


def find_best_position(
    skyline: Sequence[Segment],
    width: float,
    height: float,
    page_width: float,
    page_height: float,
    margin: float = 0.0,
    allow_rotation: bool = False,
    rotated_only: bool = False,
    eps: float = EPSILON,
) -> Optional[Position]:
    """Find the bottom-left position for a ``width`` x ``height`` rectangle.

    Args:
        skyline: Current segments of the page, ordered by x.
        width: Unrotated width of the item.
        height: Unrotated height of the item.
        page_width: Printable page width.
        page_height: Printable page height.
        margin: Spacing reserved on the right and bottom of every item.
        allow_rotation: Also try the item turned by 90 degrees.
        rotated_only: Try only the turned orientation.
        eps: Absolute tolerance for coordinate comparisons.

    Returns:
        The best Position, or None when the item does not fit on this page.
    """
    best: Optional[Position] = None
    for w, h, rotated in _orientations(width, height, allow_rotation, rotated_only):
        for i in range(len(skyline)):
            pos = _fit_at(skyline, i, w, h, rotated, page_width, page_height, margin, eps)
            if pos is None:
                continue
            if best is None or _is_better(pos, best, eps):
                best = pos
    return best


def _merge_skyline(skyline: List[Segment], eps: float) -> None:
    # Join neighbours that share the same height
    k = 0
    while k < len(skyline) - 1:
        left, right = skyline[k], skyline[k + 1]
        if abs(left.top_y - right.top_y) <= eps:
            skyline[k] = Segment(left.x, max(left.top_y, right.top_y), left.width + right.width)
            skyline.pop(k + 1)
        else:
            k += 1


def add_level(skyline: List[Segment], x: float, y: float, width: float, height: float, eps: float = EPSILON) -> None:
    """Raise the skyline over [x, x + width) to ``y + height``.

    The list is modified in place and stays a gapless, non-overlapping,
    x-ordered partition of the page width.
    """
    top = y + height
    x1 = x + width

    idx = 0
    while idx < len(skyline) and skyline[idx].right <= x + eps:
        idx += 1

    # Split a segment that starts left of x
    if idx < len(skyline) and skyline[idx].x < x - eps:
        seg = skyline[idx]
        skyline[idx] = Segment(seg.x, seg.top_y, x - seg.x)
        skyline.insert(idx + 1, Segment(x, seg.top_y, seg.right - x))
        idx += 1

    skyline.insert(idx, Segment(x, top, width))

    # Trim or drop segments covered by [x, x1)
    k = idx + 1
    while k < len(skyline):
        seg = skyline[k]
        if seg.x >= x1 - eps:
            break
        if seg.right <= x1 + eps:
            skyline.pop(k)
            continue
        skyline[k] = Segment(x1, seg.top_y, seg.right - x1)
        break

    # Close rounding gaps so the widths keep summing to the page width
    if k < len(skyline):
        nxt = skyline[k]
        if abs(nxt.x - x1) <= eps and nxt.x != x1:
            skyline[k] = Segment(x1, nxt.top_y, nxt.right - x1)

    _merge_skyline(skyline, eps)


class Page:
    """One output page: placements in the order they were packed plus the skyline."""

    def __init__(self, width: float, height: float, margin: float = 0.0, eps: float = EPSILON) -> None:
        self.width, self.height, self.margin = validate_geometry(width, height, margin)
        self.eps = eps
        self.placements: List[Placement] = []
        self._skyline: List[Segment] = new_skyline(self.width)

    def __len__(self) -> int:
        return len(self.placements)

    def __iter__(self):
        return iter(self.placements)

    def __repr__(self) -> str:
        return f"Page({self.width}x{self.height}, {len(self.placements)} placements)"

    @property
    def skyline(self) -> tuple[Segment, ...]:
        return tuple(self._skyline)

    @property
    def is_empty(self) -> bool:
        return not self.placements

    @property
    def used_area(self) -> float:
        return sum(p.width * p.height for p in self.placements)

    def find_position(self, item: Item, allow_rotation: bool = False, rotated_only: bool = False) -> Optional[Position]:
        return find_best_position(
            self._skyline,
            item.width,
            item.height,
            self.width,
            self.height,
            margin=self.margin,
            allow_rotation=allow_rotation,
            rotated_only=rotated_only,
            eps=self.eps,
        )

    def place(self, item: Item, allow_rotation: bool = False, rotated_only: bool = False) -> Optional[Placement]:
        """Place ``item`` at its best position and update the skyline.

        Returns:
            The new Placement, or None (page left untouched) when it does not fit.
        """
        pos = self.find_position(item, allow_rotation=allow_rotation, rotated_only=rotated_only)
        if pos is None:
            return None
        placement = Placement.at(item, pos)
        add_level(self._skyline, pos.x, pos.y, pos.reserved_width, pos.reserved_height, self.eps)
        self.placements.append(placement)
        logger.debug(
            f"Placed {item.id} at ({pos.x:.3f}, {pos.y:.3f}) {pos.width:.3f}x{pos.height:.3f}"
            f"{' rotated' if pos.rotated else ''}"
        )
        return placement

    def signature(self) -> tuple:
        """Hashable snapshot of the placements, used to compare layouts."""
        return tuple(
            (p.item.id, round(p.x, 9), round(p.y, 9), round(p.width, 9), round(p.height, 9), p.rotated)
            for p in self.placements
        )
