from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Tuple

from .. import config
from ..errors import LayoutError


COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")

FIELD_NAMES = (
    "pageNumber",
    "position",
    "fontSize",
    "fontFamily",
    "fontColor",
    "alignment",
    "lineSpacing",
    "locked",
    "enabled",
)


@dataclass(frozen=True)
class PageLayout:
    page_number: int
    position: Tuple[float, float]        # (x%, y%) of the text block centre
    font_size: float
    font_family: str
    font_color: str                      # "#rrggbb"
    alignment: str
    line_spacing: float
    locked: bool = False
    enabled: bool = True

    @property
    def rgb(self) -> Tuple[float, float, float]:
        value = self.font_color.lstrip("#")
        return tuple(int(value[i:i + 2], 16) / 255.0 for i in (0, 2, 4))  # type: ignore[return-value]

    def with_changes(self, **changes: Any) -> "PageLayout":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "pageNumber": self.page_number,
            "position": [self.position[0], self.position[1]],
            "fontSize": self.font_size,
            "fontFamily": self.font_family,
            "fontColor": self.font_color,
            "alignment": self.alignment,
            "lineSpacing": self.line_spacing,
            "locked": self.locked,
            "enabled": self.enabled,
        }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _in_range(value: Any, bounds: Tuple[float, float]) -> bool:
    return _is_number(value) and bounds[0] <= float(value) <= bounds[1]


def _as_record(raw: Mapping[str, Any] | PageLayout) -> dict:
    if isinstance(raw, PageLayout):
        return raw.to_dict()
    if not isinstance(raw, Mapping):
        raise LayoutError([f"Layout must be a mapping, got {type(raw).__name__}"])
    record = {**config.DEFAULT_LAYOUT, **raw}
    unknown = sorted(set(record) - set(FIELD_NAMES))
    if unknown:
        raise LayoutError([f"Unknown layout fields: {', '.join(unknown)}"])
    return record


def layout_errors(raw: Mapping[str, Any] | PageLayout) -> List[str]:
    """Collect every problem with one layout record instead of stopping at the first."""
    try:
        record = _as_record(raw)
    except LayoutError as exc:
        return exc.errors

    errors: List[str] = []
    page = record.get("pageNumber")
    label = f"page {page}" if page is not None else "layout"

    if not isinstance(page, int) or isinstance(page, bool) or page < 1:
        errors.append(f"{label}: pageNumber must be a positive integer")

    position = record.get("position")
    if (
        not isinstance(position, (list, tuple))
        or len(position) != 2
        or not all(_in_range(v, config.POSITION_RANGE) for v in position)
    ):
        errors.append(f"{label}: position must be two numbers within [0, 100]")

    if not _in_range(record.get("fontSize"), config.FONT_SIZE_RANGE):
        lo, hi = config.FONT_SIZE_RANGE
        errors.append(f"{label}: fontSize must be within [{lo:g}, {hi:g}]")

    if record.get("fontFamily") not in config.FONT_FAMILIES:
        errors.append(f"{label}: unsupported fontFamily {record.get('fontFamily')!r}")

    color = record.get("fontColor")
    if not isinstance(color, str) or not COLOR_RE.match(color):
        errors.append(f"{label}: fontColor must look like #RRGGBB")

    if record.get("alignment") not in config.ALIGNMENTS:
        errors.append(f"{label}: alignment must be one of {', '.join(config.ALIGNMENTS)}")

    if not _in_range(record.get("lineSpacing"), config.LINE_SPACING_RANGE):
        lo, hi = config.LINE_SPACING_RANGE
        errors.append(f"{label}: lineSpacing must be within [{lo:g}, {hi:g}]")

    for flag in ("locked", "enabled"):
        if not isinstance(record.get(flag), bool):
            errors.append(f"{label}: {flag} must be true or false")

    return errors


def validate_layout(raw: Mapping[str, Any] | PageLayout) -> PageLayout:
    errors = layout_errors(raw)
    if errors:
        raise LayoutError(errors)
    record = _as_record(raw)
    x, y = record["position"]
    return PageLayout(
        page_number=int(record["pageNumber"]),
        position=(float(x), float(y)),
        font_size=float(record["fontSize"]),
        font_family=str(record["fontFamily"]),
        font_color=str(record["fontColor"]).lower(),
        alignment=str(record["alignment"]),
        line_spacing=float(record["lineSpacing"]),
        locked=bool(record["locked"]),
        enabled=bool(record["enabled"]),
    )


def validate_layouts(
    raws: Iterable[Mapping[str, Any] | PageLayout],
    page_count: int | None = None,
) -> List[PageLayout]:
    """Validate a full layout set; page numbers must be exactly 1..N."""
    errors: List[str] = []
    layouts: List[PageLayout] = []
    for raw in raws:
        found = layout_errors(raw)
        if found:
            errors.extend(found)
        else:
            layouts.append(validate_layout(raw))
    if errors:
        raise LayoutError(errors)

    layouts.sort(key=lambda item: item.page_number)
    numbers = [item.page_number for item in layouts]
    duplicates = sorted({n for n in numbers if numbers.count(n) > 1})
    if duplicates:
        errors.append(f"Duplicate pageNumber values: {', '.join(map(str, duplicates))}")
    elif numbers != list(range(1, len(numbers) + 1)):
        errors.append(f"pageNumber values must be 1..{len(numbers)} without gaps")
    if page_count is not None and len(layouts) != page_count:
        errors.append(f"Template has {page_count} pages but {len(layouts)} layouts were given")
    if errors:
        raise LayoutError(errors)
    return layouts


def normalize_position(
    x_px: float,
    y_px: float,
    container_width: float,
    container_height: float,
) -> Tuple[float, float]:
    """Pointer position relative to the preview container -> stored percentages."""
    if container_width <= 0 or container_height <= 0:
        raise ValueError("Container size must be positive")
    x = x_px / container_width * 100.0
    y = y_px / container_height * 100.0
    lo, hi = config.POSITION_RANGE
    return max(lo, min(hi, x)), max(lo, min(hi, y))


def default_layouts(page_count: int) -> List[PageLayout]:
    if page_count < 1:
        raise LayoutError(["Template must have at least one page"])
    return [validate_layout({"pageNumber": number}) for number in range(1, page_count + 1)]


def layouts_to_json(layouts: Iterable[PageLayout]) -> str:
    return json.dumps([layout.to_dict() for layout in layouts], indent=2, ensure_ascii=False)


def layouts_from_json(text: str, page_count: int | None = None) -> List[PageLayout]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise LayoutError([f"Layouts are not valid JSON: {exc}"]) from exc
    if not isinstance(data, list):
        raise LayoutError(["Layouts must be a JSON array"])
    return validate_layouts(data, page_count=page_count)


def load_layouts(path: Path, page_count: int | None = None) -> List[PageLayout]:
    if not path.exists():
        raise FileNotFoundError(f"Layouts not found: {path}")
    return layouts_from_json(path.read_text(encoding="utf-8"), page_count=page_count)


def write_layouts(layouts: Iterable[PageLayout], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(layouts_to_json(layouts), encoding="utf-8")
    return path
