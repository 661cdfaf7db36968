from __future__ import annotations

from pathlib import Path
from typing import Iterable

from . import config
from .models import Artifact, Batch, get_session


ARTIFACT_NAMES = {
    "template": "template.pdf",
    "layouts": "layouts.json",
    "names": "names.json",
    "bundle": "bundle.zip",
    "failures": "FAILED.txt",
    "readme": "README.txt",
}

DOCUMENTS_DIR = "documents"


def batch_dir(batch_id: int, base_dir: Path | None = None) -> Path:
    root = base_dir or config.OUT_DIR
    path = root / f"batch-{batch_id}"
    path.mkdir(parents=True, exist_ok=True)
    return path


def artifact_path(batch_id: int, artifact_type: str, base_dir: Path | None = None) -> Path:
    filename = ARTIFACT_NAMES[artifact_type]
    return batch_dir(batch_id, base_dir=base_dir) / filename


def document_path(batch_id: int, output_id: str, base_dir: Path | None = None) -> Path:
    if not output_id or ".." in output_id or "/" in output_id or "\\" in output_id:
        raise ValueError(f"Invalid output id: {output_id!r}")
    path = batch_dir(batch_id, base_dir=base_dir) / DOCUMENTS_DIR
    path.mkdir(parents=True, exist_ok=True)
    return path / f"{output_id}.pdf"


def record_artifacts(batch: Batch, artifacts: Iterable[tuple[str, Path]]) -> None:
    with get_session() as session:
        for artifact_type, path in artifacts:
            session.add(
                Artifact(
                    batch_id=batch.id,
                    type=artifact_type,
                    path=str(path.relative_to(config.OUT_DIR)),
                )
            )
        session.commit()
