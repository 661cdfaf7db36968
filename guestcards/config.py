from __future__ import annotations

from pathlib import Path
from typing import Dict, Tuple, Union
import os


BASE_DIR = Path(__file__).resolve().parents[1]
OUT_DIR = BASE_DIR / "out"
DB_PATH = OUT_DIR / "guestcards.db"
FONT_DIR = BASE_DIR / "assets" / "fonts"

# family shown in the editor -> reportlab base-14 font name, or TTF files tried in
# order: FONT_DIR first, then the system font folders reportlab searches
FONT_FAMILIES: Dict[str, Union[str, Tuple[str, ...]]] = {
    "Noto Sans Gujarati": (
        "NotoSansGujarati-Regular.ttf",
        "NotoSansGujarati.ttf",
        "Shruti.ttf",
        "DejaVuSans.ttf",
    ),
    "Arial": "Helvetica",
    "Times New Roman": "Times-Roman",
    "Georgia": "Times-Roman",
    "Verdana": "Helvetica",
}

ALIGNMENTS = ("left", "center", "right")

POSITION_RANGE: Tuple[float, float] = (0.0, 100.0)
FONT_SIZE_RANGE: Tuple[float, float] = (12.0, 72.0)
LINE_SPACING_RANGE: Tuple[float, float] = (0.8, 2.0)

DEFAULT_LAYOUT = {
    "position": (50.0, 50.0),
    "fontSize": 24.0,
    "fontFamily": "Noto Sans Gujarati",
    "fontColor": "#000000",
    "alignment": "center",
    "lineSpacing": 1.2,
    "locked": False,
    "enabled": True,
}

DEFAULT_MAX_WORKERS = min(8, max(4, os.cpu_count() or 1))

# retried once with this family on unsupported glyphs; None disables the retry
FALLBACK_FONT_FAMILY: str | None = None

BUNDLE_README_TEXT = "Each PDF in this bundle is personalized for one guest."


def set_out_dir(path: Path) -> None:
    global OUT_DIR, DB_PATH
    OUT_DIR = path
    DB_PATH = OUT_DIR / "guestcards.db"


def set_font_dir(path: Path) -> None:
    global FONT_DIR
    FONT_DIR = path
