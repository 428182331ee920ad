from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional


EPSILON = 1e-6


class InvalidGeometryError(ValueError):
    """Raised when a page, margin or item size cannot be packed at all."""


def _require_size(name: str, value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidGeometryError(f"{name} must be a number, got {value!r}") from e
    if not math.isfinite(value) or value <= 0.0:
        raise InvalidGeometryError(f"{name} must be finite and positive, got {value!r}")
    return value


def _require_offset(name: str, value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidGeometryError(f"{name} must be a number, got {value!r}") from e
    if not math.isfinite(value) or value < 0.0:
        raise InvalidGeometryError(f"{name} must be finite and non-negative, got {value!r}")
    return value


def validate_geometry(page_width: float, page_height: float, margin: float) -> tuple[float, float, float]:
    """Check the page geometry handed to the packer.

    Returns:
        The (page_width, page_height, margin) triple as floats.

    Raises:
        InvalidGeometryError: a size is non-finite or non-positive, or the
            margin is negative.
    """
    return (
        _require_size("page_width", page_width),
        _require_size("page_height", page_height),
        _require_offset("margin", margin),
    )


@dataclass
class Artwork:
    """
    A user image and how it should be printed.

    Attributes:
        source_id: Stable identifier of the artwork.
        name: Display name, usually the file name.
        width: Print width in mm.
        height: Print height in mm.
        copies: Number of required copies.
        path: Image file on disk, if any.
        aspect_ratio: Pixel width over pixel height of the source image.
    """
    source_id: str
    name: str
    width: float
    height: float
    copies: int = 1
    path: Optional[str] = None
    aspect_ratio: Optional[float] = None

    def __post_init__(self) -> None:
        self.width = _require_size("width", self.width)
        self.height = _require_size("height", self.height)
        try:
            self.copies = int(self.copies)
        except (TypeError, ValueError) as e:
            raise InvalidGeometryError(f"copies must be an integer, got {self.copies!r}") from e
        if self.copies < 1:
            raise InvalidGeometryError(f"copies must be at least 1, got {self.copies}")
        if self.aspect_ratio is None:
            self.aspect_ratio = self.width / self.height

    def fits(self, printable_width: float, printable_height: float, allow_rotation: bool = True) -> bool:
        if self.width <= printable_width + EPSILON and self.height <= printable_height + EPSILON:
            return True
        if allow_rotation:
            return self.height <= printable_width + EPSILON and self.width <= printable_height + EPSILON
        return False


@dataclass(frozen=True)
class Item:
    """
    A single packing request produced when an artwork's copies are expanded.

    Attributes:
        id: Unique identifier within one packing run.
        width: Nominal width in mm.
        height: Nominal height in mm.
        required: False for optional fill duplicates.
        source_id: Identifier of the artwork this copy came from.
        name: Display name, used as a sort tiebreak and in previews.
    """
    id: str
    width: float
    height: float
    required: bool = True
    source_id: str = ""
    name: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "width", _require_size("width", self.width))
        object.__setattr__(self, "height", _require_size("height", self.height))

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def long_side(self) -> float:
        return max(self.width, self.height)


@dataclass(frozen=True)
class Position:
    """A candidate spot returned by the skyline search, before it is committed to a page."""
    x: float
    y: float
    width: float
    height: float
    rotated: bool
    reserved_width: float
    reserved_height: float

    @property
    def bottom(self) -> float:
        return self.y + self.reserved_height


@dataclass(frozen=True)
class Placement:
    """
    An item resolved to a position on one page.

    Attributes:
        item: The packed item.
        x: Left edge, page-local mm.
        y: Top edge, page-local mm.
        width: Footprint width after orientation (swapped when rotated).
        height: Footprint height after orientation.
        rotated: True when the item was turned by 90 degrees.
        reserved_width: Width including the trailing margin belt, clipped at the page edge.
        reserved_height: Height including the trailing margin belt, clipped at the page edge.
    """
    item: Item
    x: float
    y: float
    width: float
    height: float
    rotated: bool = False
    reserved_width: Optional[float] = None
    reserved_height: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "x", _require_offset("x", self.x))
        object.__setattr__(self, "y", _require_offset("y", self.y))
        object.__setattr__(self, "width", _require_size("width", self.width))
        object.__setattr__(self, "height", _require_size("height", self.height))
        if self.reserved_width is None:
            object.__setattr__(self, "reserved_width", self.width)
        if self.reserved_height is None:
            object.__setattr__(self, "reserved_height", self.height)

    @classmethod
    def at(cls, item: Item, position: Position) -> "Placement":
        return cls(
            item=item,
            x=position.x,
            y=position.y,
            width=position.width,
            height=position.height,
            rotated=position.rotated,
            reserved_width=position.reserved_width,
            reserved_height=position.reserved_height,
        )

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def as_dict(self) -> dict:
        """Plain view handed to renderers: x, y, width, height, rotated plus item identity."""
        return {
            "id": self.item.id,
            "source_id": self.item.source_id,
            "name": self.item.name,
            "required": self.item.required,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "rotated": self.rotated,
        }


@dataclass(frozen=True)
class Segment:
    """One run of the skyline: the lowest usable y over [x, x + width)."""
    x: float
    top_y: float
    width: float

    @property
    def right(self) -> float:
        return self.x + self.width
