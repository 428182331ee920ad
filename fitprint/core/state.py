import os
import json
import math
import logging
from pathlib import Path
from typing import List, Optional
from dataclasses import dataclass, field, asdict

from dotenv import load_dotenv

from fitprint.core.objects import Artwork, InvalidGeometryError, validate_geometry

logger = logging.getLogger(__name__)

ENV_PATH = Path.cwd() / ".env"
OUTPUT_PATH = Path.cwd() / "outputs"
DEFAULT_PDF_NAME = "fitprint-layout.pdf"

# Paper presets in mm (width, height), portrait
PAPER_SIZES = {
    "a4": (210.0, 297.0),
    "a3": (297.0, 420.0),
    "a5": (148.0, 210.0),
    "letter": (216.0, 279.0),
    "legal": (216.0, 356.0),
    "tabloid": (279.0, 432.0),
    "photo4x6": (102.0, 152.0),
    "photo5x7": (127.0, 178.0),
    "photo8x10": (203.0, 254.0),
}
PRESET_TOLERANCE_MM = 0.1


class JobError(Exception):
    """A job file is missing, unreadable or malformed."""


@dataclass
class PaperSettings:
    """
    Sheet geometry for one run.

    Attributes:
        width: Paper width in mm.
        height: Paper height in mm.
        outer_margin: Unprintable border on every side, in mm.
        inner_margin: Spacing between neighbouring items, in mm.
        allow_rotation: Allow items to be turned by 90 degrees.
    """
    width: float = 210.0
    height: float = 297.0
    outer_margin: float = 5.0
    inner_margin: float = 2.0
    allow_rotation: bool = True

    def __post_init__(self) -> None:
        for name in ("width", "height", "outer_margin", "inner_margin"):
            value = getattr(self, name)
            try:
                setattr(self, name, float(value))
            except (TypeError, ValueError) as e:
                raise InvalidGeometryError(f"{name} must be a number, got {value!r}") from e
        self.allow_rotation = bool(self.allow_rotation)

    @property
    def printable_width(self) -> float:
        return self.width - 2.0 * self.outer_margin

    @property
    def printable_height(self) -> float:
        return self.height - 2.0 * self.outer_margin

    @property
    def preset(self) -> str:
        return match_preset(self.width, self.height)

    def validate(self) -> None:
        """Raise InvalidGeometryError unless the printable area is positive."""
        validate_geometry(self.width, self.height, self.inner_margin)
        if not math.isfinite(self.outer_margin) or self.outer_margin < 0:
            raise InvalidGeometryError(f"outer_margin must be non-negative, got {self.outer_margin}")
        if self.printable_width <= 0.0 or self.printable_height <= 0.0:
            raise InvalidGeometryError(
                f"Outer margin {self.outer_margin}mm leaves no printable area on "
                f"{self.width}x{self.height}mm paper"
            )


def paper_from_preset(name: str, outer_margin: float = 5.0, inner_margin: float = 2.0,
                      allow_rotation: bool = True, landscape: bool = False) -> PaperSettings:
    try:
        w, h = PAPER_SIZES[name.lower()]
    except KeyError as exc:
        raise ValueError(f"Unknown paper size '{name}'. Known: {list(PAPER_SIZES)}") from exc
    if landscape:
        w, h = h, w
    return PaperSettings(w, h, outer_margin, inner_margin, allow_rotation)


def match_preset(width: float, height: float) -> str:
    """Return the preset name matching (width, height) within 0.1mm, else "custom"."""
    for name, (pw, ph) in PAPER_SIZES.items():
        if abs(pw - width) < PRESET_TOLERANCE_MM and abs(ph - height) < PRESET_TOLERANCE_MM:
            return name
    return "custom"


@dataclass
class AppSettings:
    dpi: int = 300
    output_dir: str = str(OUTPUT_PATH)
    jpeg_quality: int = 80
    fill_attempts: int = 30


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not an integer, using {default}")
        return default
    if value < minimum:
        logger.warning(f"Ignoring {name}={value}: below {minimum}, using {default}")
        return default
    return value


def load_settings(env_path: Optional[Path] = None) -> AppSettings:
    """Read FITPRINT_* settings from the environment, after loading a .env file if present."""
    path = Path(env_path) if env_path is not None else ENV_PATH
    if path.exists():
        load_dotenv(path)
    return AppSettings(
        dpi=_env_int("FITPRINT_DPI", 300),
        output_dir=os.environ.get("FITPRINT_OUTPUT_DIR") or str(OUTPUT_PATH),
        jpeg_quality=min(95, _env_int("FITPRINT_JPEG_QUALITY", 80)),
        fill_attempts=_env_int("FITPRINT_FILL_ATTEMPTS", 30),
    )


@dataclass
class JobState:
    paper: PaperSettings = field(default_factory=PaperSettings)
    artworks: List[Artwork] = field(default_factory=list)
    fill_enabled: bool = False
    fill_pages: int = 1

    @property
    def requested_fill(self) -> Optional[int]:
        return self.fill_pages if self.fill_enabled else None


def save_job(job: JobState, path: str | Path) -> None:
    p = Path(path)
    with p.open("w", encoding="utf-8") as f:
        json.dump(asdict(job), f, ensure_ascii=False, indent=2)


def load_job(path: str | Path) -> JobState:
    """Load a job file written by save_job (or by hand).

    Relative artwork paths are resolved against the job file's folder.

    Raises:
        JobError: the file cannot be read or does not describe a job.
    """
    p = Path(path)
    try:
        with p.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise JobError(f"Cannot read job file {p}: {e}") from e
    if not isinstance(data, dict):
        raise JobError(f"Job file {p} must contain a JSON object")

    try:
        paper = PaperSettings(**(data.get("paper") or {}))
        artworks = []
        seen = set()
        for n, raw in enumerate(data.get("artworks") or [], start=1):
            raw = dict(raw)
            raw.setdefault("source_id", str(n))
            raw["source_id"] = str(raw["source_id"])
            if raw["source_id"] in seen:
                raise JobError(f"Invalid job file {p}: duplicate artwork id {raw['source_id']!r}")
            seen.add(raw["source_id"])
            raw.setdefault("name", Path(raw.get("path") or f"artwork-{n}").name)
            if raw.get("path") and not Path(raw["path"]).is_absolute():
                raw["path"] = str(p.parent / raw["path"])
            artworks.append(Artwork(**raw))
        job = JobState(
            paper=paper,
            artworks=artworks,
            fill_enabled=bool(data.get("fill_enabled", False)),
            fill_pages=int(data.get("fill_pages", 1)),
        )
    except (TypeError, ValueError) as e:
        raise JobError(f"Invalid job file {p}: {e}") from e
    logger.debug(f"Loaded job {p}: {len(job.artworks)} artwork(s), paper {paper.width}x{paper.height}mm")
    return job
