from fitprint.core import APP_TITLE, Artwork, InvalidGeometryError, Item, Placement
from fitprint.core.state import JobState, PaperSettings, paper_from_preset
from fitprint.packing import LayoutResult, generate_layout
