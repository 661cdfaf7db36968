from __future__ import annotations

from pathlib import Path
from typing import List, Optional
import zipfile

from ..config import BUNDLE_README_TEXT
from ..storage import artifact_path, document_path
from .orchestrator import BatchResult


BUNDLE_TIMESTAMP = (1980, 1, 1, 0, 0, 0)


def create_readme(batch_id: int, result: BatchResult, base_dir: Path | None = None) -> Path:
    path = artifact_path(batch_id, "readme", base_dir=base_dir)
    lines = [
        BUNDLE_README_TEXT,
        f"Documents: {len(result.documents)}",
        f"Pages rendered: {result.succeeded} of {result.total_jobs}",
    ]
    if result.incomplete:
        lines.append(f"Guests without a document: {len(result.incomplete)} (see FAILED.txt)")
    if result.cancelled:
        lines.append("The batch was cancelled before every page was rendered.")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def write_failure_report(batch_id: int, result: BatchResult, base_dir: Path | None = None) -> Optional[Path]:
    """List every guest left out of the bundle and why; None when nobody was."""
    if not result.incomplete:
        return None
    path = artifact_path(batch_id, "failures", base_dir=base_dir)
    lines: List[str] = []
    for name in result.incomplete:
        reasons = [
            f"page {failure.page_number}: {failure.reason}" + (f" ({failure.detail})" if failure.detail else "")
            for failure in result.failures
            if failure.output_id == name.output_id
        ]
        if not reasons:
            reasons = ["not rendered (batch cancelled)"]
        lines.append(f"{name.output_id}\t{' / '.join(name.lines)}")
        lines.extend(f"    {reason}" for reason in reasons)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def write_documents(batch_id: int, result: BatchResult, base_dir: Path | None = None) -> List[Path]:
    paths: List[Path] = []
    for document in result.documents:
        path = document_path(batch_id, document.output_id, base_dir=base_dir)
        path.write_bytes(document.to_pdf())
        paths.append(path)
    return paths


def create_bundle(
    batch_id: int,
    document_paths: List[Path],
    readme_path: Path,
    failures_path: Optional[Path] = None,
    base_dir: Path | None = None,
) -> Path:
    """
    Zip the personalized PDFs for one batch.

    Members keep the guest order of the name list, followed by README.txt and,
    when some guests failed, FAILED.txt.
    """
    bundle_path = artifact_path(batch_id, "bundle", base_dir=base_dir)

    files = list(document_paths) + [readme_path]
    if failures_path is not None:
        files.append(failures_path)

    missing = [p for p in files if not p.exists()]
    if missing:
        missing_list = ", ".join(str(p) for p in missing)
        raise FileNotFoundError(f"[batch {batch_id}] bundle inputs missing: {missing_list}")

    with zipfile.ZipFile(bundle_path, "w", compression=zipfile.ZIP_DEFLATED) as bundle:
        for p in files:
            # fixed timestamp and mode so the same batch zips to the same bytes
            info = zipfile.ZipInfo(p.name, date_time=BUNDLE_TIMESTAMP)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = 0o644 << 16
            bundle.writestr(info, p.read_bytes())

    return bundle_path
