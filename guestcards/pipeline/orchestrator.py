from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .. import config
from ..errors import (
    LayoutError,
    NoEnabledPagesError,
    NoRecipientsError,
    RenderError,
    RenderFailure,
)
from .layout import PageLayout, validate_layouts
from .names import NameEntry
from .render_page import font_available, merge_pages, render, split_template
from .status import JobStatus, JobStatusReporter


logger = logging.getLogger(__name__)

Renderer = Callable[[bytes, PageLayout, NameEntry], bytes]


@dataclass
class RenderJob:
    job_id: str
    name: NameEntry
    layout: PageLayout
    page_index: int
    status: JobStatus = JobStatus.PENDING
    error: Optional[RenderError] = None
    output: Optional[bytes] = field(default=None, repr=False)


@dataclass(frozen=True)
class JobFailure:
    job_id: str
    output_id: str
    raw_name: str
    page_number: int
    reason: str
    detail: str


@dataclass(frozen=True)
class PersonalizedDocument:
    name: NameEntry
    pages: Tuple[bytes, ...] = field(repr=False)

    @property
    def output_id(self) -> str:
        return self.name.output_id

    def to_pdf(self) -> bytes:
        return merge_pages(self.pages)


@dataclass
class BatchResult:
    total_jobs: int
    succeeded: int
    failed: int
    failures: List[JobFailure]
    documents: List[PersonalizedDocument]
    incomplete: List[NameEntry]
    cancelled: bool = False
    jobs: List[RenderJob] = field(default_factory=list, repr=False)

    def bundle_entries(self) -> List[Tuple[str, Tuple[bytes, ...]]]:
        return [(doc.output_id, doc.pages) for doc in self.documents]


def job_id_for(name: NameEntry, layout: PageLayout) -> str:
    return f"{name.output_id}/p{layout.page_number}"


def build_jobs(layouts: Sequence[PageLayout], names: Sequence[NameEntry]) -> List[RenderJob]:
    """Every name crossed with every page, enabled or not, in page order."""
    ordered = sorted(layouts, key=lambda item: item.page_number)
    return [
        RenderJob(job_id=job_id_for(name, layout), name=name, layout=layout, page_index=index)
        for name in names
        for index, layout in enumerate(ordered)
    ]


def _render_job(
    job: RenderJob,
    page_bytes: bytes,
    renderer: Renderer,
    fallback_font_family: Optional[str],
) -> bytes:
    try:
        return renderer(page_bytes, job.layout, job.name)
    except RenderError as exc:
        if (
            exc.reason != RenderFailure.UNSUPPORTED_GLYPH
            or not fallback_font_family
            or fallback_font_family == job.layout.font_family
        ):
            raise
        logger.info("Retrying %s with %s: %s", job.job_id, fallback_font_family, exc)
        return renderer(page_bytes, job.layout.with_changes(font_family=fallback_font_family), job.name)


def _execute(
    job: RenderJob,
    page_bytes: bytes,
    renderer: Renderer,
    reporter: JobStatusReporter,
    fallback_font_family: Optional[str],
) -> None:
    job.status = JobStatus.RUNNING
    reporter.job(job.job_id, job.status)
    try:
        job.output = _render_job(job, page_bytes, renderer, fallback_font_family)
    except RenderError as exc:
        job.error = exc
    except Exception as exc:
        logger.exception("Unexpected error rendering %s", job.job_id)
        job.error = RenderError(RenderFailure.INTERNAL, str(exc))

    if job.error is None:
        job.status = JobStatus.SUCCEEDED
        reporter.job(job.job_id, job.status)
    else:
        job.status = JobStatus.FAILED
        reporter.job(job.job_id, job.status, error=str(job.error))


def _assemble(jobs: List[RenderJob], names: Sequence[NameEntry]) -> Tuple[List[PersonalizedDocument], List[NameEntry]]:
    by_name: Dict[str, List[RenderJob]] = {}
    for job in jobs:
        by_name.setdefault(job.name.output_id, []).append(job)

    documents: List[PersonalizedDocument] = []
    incomplete: List[NameEntry] = []
    for name in names:
        name_jobs = by_name.get(name.output_id, [])
        if name_jobs and all(job.status == JobStatus.SUCCEEDED for job in name_jobs):
            pages = tuple(job.output for job in sorted(name_jobs, key=lambda j: j.page_index))
            documents.append(PersonalizedDocument(name=name, pages=pages))  # type: ignore[arg-type]
        else:
            incomplete.append(name)
    return documents, incomplete


def run_batch(
    template_bytes: bytes,
    layouts: Iterable[PageLayout],
    names: Iterable[NameEntry],
    reporter: JobStatusReporter | None = None,
    max_workers: int | None = None,
    cancel_event: threading.Event | None = None,
    fallback_font_family: str | None = None,
    renderer: Renderer = render,
) -> BatchResult:
    """
    Personalize the template once per name.

    Jobs run on a thread pool with at most max_workers in flight. A failed job
    only costs its own name: that name is reported as incomplete and left out
    of the documents, every other name carries on. Setting cancel_event stops
    further dispatch; jobs already running finish, jobs never dispatched stay
    pending, and the documents that did complete are still returned.
    """
    names = list(names)
    layouts = list(layouts)
    if not names:
        raise NoRecipientsError("Name list is empty")
    if not any(layout.enabled for layout in layouts):
        raise NoEnabledPagesError("No page has name placement enabled")

    fallback = fallback_font_family if fallback_font_family is not None else config.FALLBACK_FONT_FAMILY
    if fallback is not None and fallback not in config.FONT_FAMILIES:
        raise LayoutError([f"unsupported fallback fontFamily {fallback!r}"])

    pages = split_template(template_bytes)
    layouts = validate_layouts(layouts, page_count=len(pages))

    families = {layout.font_family for layout in layouts if layout.enabled}
    if fallback is not None:
        families.add(fallback)
    missing = sorted(family for family in families if not font_available(family))
    if missing:
        raise LayoutError(
            [f"fontFamily {family!r} is not installed; put its font file in {config.FONT_DIR}" for family in missing]
        )

    workers = max_workers or config.DEFAULT_MAX_WORKERS
    if workers < 1:
        raise ValueError("max_workers must be at least 1")

    reporter = reporter or JobStatusReporter()
    jobs = build_jobs(layouts, names)
    for job in jobs:
        reporter.job(job.job_id, job.status)
    logger.info(
        "Starting batch: %s names x %s pages = %s jobs (workers=%s)",
        len(names),
        len(pages),
        len(jobs),
        workers,
    )

    cancelled = False
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="render") as executor:
        in_flight: Set[Future] = set()
        for job in jobs:
            while len(in_flight) >= workers:
                _, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                logger.info("Batch cancelled before dispatching %s", job.job_id)
                break
            in_flight.add(
                executor.submit(_execute, job, pages[job.page_index], renderer, reporter, fallback)
            )
        wait(in_flight)

    documents, incomplete = _assemble(jobs, names)
    failures = [
        JobFailure(
            job_id=job.job_id,
            output_id=job.name.output_id,
            raw_name=job.name.raw_name,
            page_number=job.layout.page_number,
            reason=job.error.reason.value,
            detail=job.error.detail,
        )
        for job in jobs
        if job.status == JobStatus.FAILED and job.error is not None
    ]
    result = BatchResult(
        total_jobs=len(jobs),
        succeeded=sum(1 for job in jobs if job.status == JobStatus.SUCCEEDED),
        failed=len(failures),
        failures=failures,
        documents=documents,
        incomplete=incomplete,
        cancelled=cancelled,
        jobs=jobs,
    )
    reporter.complete(result)
    return result
