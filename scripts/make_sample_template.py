from __future__ import annotations

import argparse
from pathlib import Path
from typing import List

from reportlab.lib import colors
from reportlab.lib.pagesizes import A5
from reportlab.pdfgen import canvas


PAGE_TITLES: List[str] = [
    "You are invited",
    "Ceremony",
    "Reception",
    "With love",
]


def _frame(canv: canvas.Canvas, pw: float, ph: float, margin: float) -> None:
    canv.setStrokeColor(colors.HexColor("#B08D57"))
    canv.setLineWidth(2)
    canv.roundRect(margin, margin, pw - 2 * margin, ph - 2 * margin, radius=14, stroke=1, fill=0)
    canv.setLineWidth(0.6)
    canv.roundRect(margin + 6, margin + 6, pw - 2 * margin - 12, ph - 2 * margin - 12, radius=10, stroke=1, fill=0)


def _page(canv: canvas.Canvas, title: str, pw: float, ph: float) -> None:
    margin = 24.0
    _frame(canv, pw, ph, margin)
    canv.setFillColor(colors.HexColor("#7C4A2D"))
    canv.setFont("Times-Roman", 22)
    canv.drawCentredString(pw / 2, ph - margin - 60, title)

    # dotted guide where the guest name usually goes
    canv.setStrokeColor(colors.HexColor("#D9D3CC"))
    canv.setDash(2, 3)
    canv.line(pw * 0.2, ph / 2 - 30, pw * 0.8, ph / 2 - 30)
    canv.setDash()


def build_template(out_path: Path, pages: int) -> Path:
    pw, ph = A5
    out_path.parent.mkdir(parents=True, exist_ok=True)
    canv = canvas.Canvas(str(out_path), pagesize=A5, invariant=1)
    for index in range(pages):
        _page(canv, PAGE_TITLES[index % len(PAGE_TITLES)], pw, ph)
        canv.showPage()
    canv.save()
    return out_path


def main() -> None:
    parser = argparse.ArgumentParser(description="Write a sample multi-page card template")
    parser.add_argument("--out", dest="out_pdf", type=str, default="out/sample_template.pdf", help="Output PDF")
    parser.add_argument("--pages", type=int, default=3, help="Number of pages")
    args = parser.parse_args()

    if args.pages < 1:
        raise SystemExit("--pages must be at least 1")

    path = build_template(Path(args.out_pdf), args.pages)
    print(f"OK: wrote {args.pages} pages -> {path}")


if __name__ == "__main__":
    main()
