from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

import fitz  # PyMuPDF
import pytest

from guestcards import config
from guestcards.models import reset_engine
from guestcards.pipeline.layout import PageLayout, validate_layout


A6 = (298.0, 420.0)


def build_template(sizes: Sequence[Tuple[float, float]]) -> bytes:
    with fitz.open() as doc:
        for index, (width, height) in enumerate(sizes, start=1):
            page = doc.new_page(width=width, height=height)
            page.insert_text((24, 36), f"Template page {index}", fontsize=12)
        return doc.tobytes()


def make_layouts(enabled: Iterable[bool], **overrides) -> List[PageLayout]:
    record = {"fontFamily": "Arial", **overrides}
    return [
        validate_layout({**record, "pageNumber": number, "enabled": flag})
        for number, flag in enumerate(enabled, start=1)
    ]


@pytest.fixture
def template_3() -> bytes:
    return build_template([A6, A6, (420.0, 298.0)])


@pytest.fixture
def out_dir(tmp_path: Path):
    previous = config.OUT_DIR
    config.set_out_dir(tmp_path / "out")
    reset_engine()
    yield config.OUT_DIR
    config.set_out_dir(previous)
    reset_engine()
