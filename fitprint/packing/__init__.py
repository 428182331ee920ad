from .skyline import Page, add_level, find_best_position, new_skyline
from .allocator import (
    MAX_FILL_ATTEMPTS,
    LayoutResult,
    LayoutStats,
    expand_items,
    fill_to_pages,
    generate_layout,
    minimum_pages,
    pack_images,
    sort_items,
)
