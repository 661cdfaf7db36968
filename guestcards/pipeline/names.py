from __future__ import annotations

import csv
import hashlib
import re
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Tuple

from slugify import slugify

from ..errors import NameListError, NoRecipientsError


LINE_SEPARATOR_RE = re.compile(r"\s*(?:\r?\n|\|)\s*")
CSV_NAME_COLUMN = "name"
CSV_SECONDARY_COLUMN = "secondary"


@dataclass(frozen=True)
class NameEntry:
    raw_name: str
    output_id: str
    lines: Tuple[str, ...]  # display lines, top to bottom


def split_lines(raw_name: str) -> Tuple[str, ...]:
    return tuple(part for part in LINE_SEPARATOR_RE.split(raw_name.strip()) if part)


def slug_from_name(name: str) -> str:
    slug = slugify(name)
    slug = re.sub(r"[^a-z0-9-]+", "-", slug.lower()).strip("-")
    if not slug:
        slug = hashlib.md5(name.encode("utf-8")).hexdigest()[:12]
    return slug


def _assign_output_ids(slugs: List[str]) -> List[str]:
    counts = Counter(slugs)
    seen: Counter = Counter()
    taken = {slug for slug in slugs if counts[slug] == 1}
    ids: List[str] = []
    for slug in slugs:
        if counts[slug] == 1:
            ids.append(slug)
            continue
        seen[slug] += 1
        candidate = f"{slug}-{seen[slug]}"
        # "Asha 1" next to two "Asha"s would otherwise collide on asha-1
        while candidate in taken:
            seen[slug] += 1
            candidate = f"{slug}-{seen[slug]}"
        taken.add(candidate)
        ids.append(candidate)
    return ids


def parse_names(source: Iterable[str]) -> List[NameEntry]:
    """
    Turn raw recipient strings into ordered entries with unique output ids.

    A raw name may carry several display lines (e.g. a transliteration and the
    native-script spelling) separated by newlines or "|".
    """
    raws: List[str] = []
    lines: List[Tuple[str, ...]] = []
    for index, raw in enumerate(source, start=1):
        if not isinstance(raw, str):
            raise NameListError(f"Name #{index} must be text, got {type(raw).__name__}")
        display = split_lines(raw)
        if not display:
            raise NameListError(f"Name #{index} is blank")
        raws.append(raw.strip())
        lines.append(display)
    if not raws:
        raise NoRecipientsError("Name list is empty")

    output_ids = _assign_output_ids([slug_from_name(" ".join(display)) for display in lines])
    return [
        NameEntry(raw_name=raw, output_id=output_id, lines=display)
        for raw, output_id, display in zip(raws, output_ids, lines)
    ]


def _load_csv_rows(csv_path: Path) -> List[str]:
    with csv_path.open("r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.DictReader(handle)
        if reader.fieldnames is None:
            raise NameListError("CSV has no header")
        if CSV_NAME_COLUMN not in reader.fieldnames:
            raise NameListError(f"CSV missing column: {CSV_NAME_COLUMN}")
        names: List[str] = []
        for row in reader:
            parts = [
                (row.get(CSV_NAME_COLUMN) or "").strip(),
                (row.get(CSV_SECONDARY_COLUMN) or "").strip(),
            ]
            parts = [part for part in parts if part]
            if parts:
                names.append("\n".join(parts))
    return names


def load_names(path: Path) -> List[NameEntry]:
    """Read a .csv (name[, secondary]) or a text file with one recipient per line."""
    if not path.exists():
        raise FileNotFoundError(f"Name list not found: {path}")
    if path.suffix.lower() == ".csv":
        raws = _load_csv_rows(path)
    else:
        text = path.read_text(encoding="utf-8-sig")
        raws = [line for line in text.splitlines() if line.strip()]
    return parse_names(raws)
