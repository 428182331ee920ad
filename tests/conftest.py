import sys
from pathlib import Path

import pytest
from PIL import Image

sys.path.insert(0, str(Path(__file__).parent.parent))

from fitprint.core import Artwork
from fitprint.core.state import PaperSettings


@pytest.fixture
def paper():
    return PaperSettings(width=210.0, height=297.0, outer_margin=5.0, inner_margin=2.0, allow_rotation=True)


@pytest.fixture
def small_paper():
    # 100x100 printable area
    return PaperSettings(width=110.0, height=110.0, outer_margin=5.0, inner_margin=0.0, allow_rotation=False)


@pytest.fixture
def make_png(tmp_path):
    def _make(name="art.png", size=(200, 100), color=(200, 30, 30, 255)):
        path = tmp_path / name
        Image.new("RGBA", size, color).save(path)
        return str(path)
    return _make


@pytest.fixture
def five_squares():
    return [Artwork(source_id="sq", name="square.png", width=40.0, height=40.0, copies=5)]


def reserved_rects_overlap(a, b, eps=1e-6):
    ax0, ay0 = a.x, a.y
    ax1, ay1 = a.x + a.reserved_width, a.y + a.reserved_height
    bx0, by0 = b.x, b.y
    bx1, by1 = b.x + b.reserved_width, b.y + b.reserved_height
    return not (ax1 <= bx0 + eps or bx1 <= ax0 + eps or ay1 <= by0 + eps or by1 <= ay0 + eps)
