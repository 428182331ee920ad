from .objects import (
    EPSILON,
    Artwork,
    InvalidGeometryError,
    Item,
    Placement,
    Position,
    Segment,
    validate_geometry,
)

MM_TO_PT = 72.0 / 25.4  # 1 inch = 72 points = 25.4 mm
MM_PER_INCH = 25.4
APP_TITLE = "FitPrint 1.0"
