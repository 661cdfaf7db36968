from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from sqlmodel import select

from ..errors import GuestCardsError, NameListError
from ..models import Batch, BatchStatus, JobRecord, get_session, init_db
from ..storage import artifact_path, record_artifacts
from .layout import PageLayout, default_layouts, load_layouts, write_layouts
from .names import NameEntry, load_names
from .orchestrator import BatchResult, run_batch
from .package import create_bundle, create_readme, write_documents, write_failure_report
from .render_page import split_template
from .status import JobStatus, JobStatusReporter


logger = logging.getLogger(__name__)


@dataclass
class PipelineOutcome:
    batch: Batch
    result: BatchResult
    bundle_path: Path


def _batch_status(result: BatchResult) -> BatchStatus:
    if result.cancelled:
        return BatchStatus.CANCELLED
    if not result.incomplete:
        return BatchStatus.COMPLETE
    if not result.documents:
        return BatchStatus.FAILED
    return BatchStatus.PARTIAL


def _write_names(batch_id: int, names: Sequence[NameEntry]) -> Path:
    path = artifact_path(batch_id, "names")
    records = [
        {"rawName": name.raw_name, "outputId": name.output_id, "lines": list(name.lines)}
        for name in names
    ]
    path.write_text(json.dumps(records, indent=2, ensure_ascii=False), encoding="utf-8")
    return path


def read_names(path: Path) -> List[NameEntry]:
    """Load entries saved with a batch, keeping the output ids they were given."""
    try:
        records = json.loads(path.read_text(encoding="utf-8"))
        return [
            NameEntry(raw_name=r["rawName"], output_id=r["outputId"], lines=tuple(r["lines"]))
            for r in records
        ]
    except (json.JSONDecodeError, KeyError, TypeError) as exc:
        raise NameListError(f"Stored name list is unreadable: {path}") from exc


def _record_jobs(batch: Batch, result: BatchResult) -> None:
    with get_session() as session:
        for job in result.jobs:
            session.add(
                JobRecord(
                    batch_id=batch.id,
                    job_id=job.job_id,
                    output_id=job.name.output_id,
                    raw_name=job.name.raw_name,
                    page_number=job.layout.page_number,
                    status=job.status.value,
                    error_reason=job.error.reason.value if job.error else None,
                    error_detail=job.error.detail if job.error else None,
                )
            )
        session.commit()


def _save_batch(batch: Batch) -> Batch:
    with get_session() as session:
        session.add(batch)
        session.commit()
        session.refresh(batch)
    return batch


def _fail_batch(batch: Batch, inputs: List[Tuple[str, Path]], detail: str) -> None:
    batch.status = BatchStatus.FAILED
    batch.fail_detail = detail
    _save_batch(batch)
    record_artifacts(batch, inputs)


def run_entries(
    template_bytes: bytes,
    template_name: str,
    layouts: Sequence[PageLayout],
    names: Sequence[NameEntry],
    reporter: JobStatusReporter | None = None,
    max_workers: int | None = None,
    fallback_font_family: str | None = None,
    cancel_event: threading.Event | None = None,
    parent_batch_id: int | None = None,
) -> PipelineOutcome:
    init_db()
    batch = _save_batch(
        Batch(template_name=template_name, names_count=len(names), parent_batch_id=parent_batch_id)
    )

    template_path = artifact_path(batch.id, "template")
    template_path.write_bytes(template_bytes)
    inputs = [
        ("template", template_path),
        ("layouts", write_layouts(layouts, artifact_path(batch.id, "layouts"))),
        ("names", _write_names(batch.id, names)),
    ]

    try:
        result = run_batch(
            template_bytes,
            layouts,
            names,
            reporter=reporter,
            max_workers=max_workers,
            cancel_event=cancel_event,
            fallback_font_family=fallback_font_family,
        )
        documents = write_documents(batch.id, result)
        readme_path = create_readme(batch.id, result)
        failures_path = write_failure_report(batch.id, result)
        bundle_path = create_bundle(batch.id, documents, readme_path, failures_path)
    except GuestCardsError as exc:
        logger.error("Batch %s rejected: %s", batch.id, exc)
        _fail_batch(batch, inputs, str(exc))
        raise
    except Exception as exc:
        logger.exception("Batch %s failed", batch.id)
        _fail_batch(batch, inputs, f"{type(exc).__name__}: {exc}")
        raise

    batch.status = _batch_status(result)
    batch.total_jobs = result.total_jobs
    batch.succeeded = result.succeeded
    batch.failed = result.failed
    if result.incomplete:
        batch.fail_detail = f"{len(result.incomplete)} of {len(names)} guests incomplete"
    _save_batch(batch)
    _record_jobs(batch, result)

    artifacts = inputs + [("document", path) for path in documents]
    artifacts.append(("readme", readme_path))
    if failures_path is not None:
        artifacts.append(("failures", failures_path))
    artifacts.append(("bundle", bundle_path))
    record_artifacts(batch, artifacts)

    logger.info("Batch %s %s: %s documents", batch.id, batch.status.value, len(result.documents))
    return PipelineOutcome(batch=batch, result=result, bundle_path=bundle_path)


def run_pipeline(
    template_path: Path,
    names_path: Path,
    layouts_path: Path | None = None,
    **options,
) -> PipelineOutcome:
    if not template_path.exists():
        raise FileNotFoundError(f"Template not found: {template_path}")
    template_bytes = template_path.read_bytes()
    names = load_names(names_path)
    if layouts_path is None:
        layouts = default_layouts(len(split_template(template_bytes)))
    else:
        layouts = load_layouts(layouts_path)
    return run_entries(template_bytes, template_path.name, layouts, names, **options)


def get_batch(batch_id: int) -> Optional[Batch]:
    init_db()
    with get_session() as session:
        return session.get(Batch, batch_id)


def list_batches(limit: int = 20) -> List[Batch]:
    init_db()
    with get_session() as session:
        statement = select(Batch).order_by(Batch.id.desc()).limit(limit)
        return list(session.exec(statement))


def incomplete_output_ids(batch_id: int) -> List[str]:
    with get_session() as session:
        statement = select(JobRecord.output_id).where(
            JobRecord.batch_id == batch_id,
            JobRecord.status != JobStatus.SUCCEEDED.value,
        )
        return sorted(set(session.exec(statement).all()))


def retry_batch(batch_id: int, **options) -> Optional[PipelineOutcome]:
    """Re-run only the guests that did not get a document in an earlier batch."""
    batch = get_batch(batch_id)
    if batch is None:
        raise ValueError(f"Batch {batch_id} not found")
    names = read_names(artifact_path(batch_id, "names"))
    # a rejected batch has no job rows; every guest is retried
    if batch.total_jobs:
        wanted = set(incomplete_output_ids(batch_id))
        names = [name for name in names if name.output_id in wanted]
    if not names:
        return None
    layouts = load_layouts(artifact_path(batch_id, "layouts"))
    template_bytes = artifact_path(batch_id, "template").read_bytes()
    return run_entries(
        template_bytes,
        batch.template_name,
        layouts,
        names,
        parent_batch_id=batch_id,
        **options,
    )
