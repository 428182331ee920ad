from .images import (
    ArtworkError,
    artwork_from_file,
    resize_artwork,
    apply_bulk_changes,
    find_oversized,
    load_artwork_image,
)
from .export import LayoutExporter
