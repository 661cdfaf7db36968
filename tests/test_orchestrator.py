from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest

from conftest import A6, build_template, make_layouts
from guestcards import config
from guestcards.errors import (
    EmptyBatchError,
    LayoutError,
    NoEnabledPagesError,
    NoRecipientsError,
    RenderError,
    RenderFailure,
)
from guestcards.pipeline.names import parse_names
from guestcards.pipeline.orchestrator import build_jobs, run_batch
from guestcards.pipeline.render_page import render, split_template
from guestcards.pipeline.status import BatchComplete, EventRecorder, JobStatus, JobStatusReporter


def test_three_page_scenario(template_3: bytes) -> None:
    layouts = make_layouts([True, True, False])
    result = run_batch(template_3, layouts, parse_names(["Asha", "Asha"]))

    template_pages = split_template(template_3)
    assert result.total_jobs == 6
    assert result.succeeded == 6
    assert result.failed == 0
    assert [doc.output_id for doc in result.documents] == ["asha-1", "asha-2"]
    for doc in result.documents:
        assert len(doc.pages) == 3
        assert doc.pages[2] == template_pages[2]
        assert doc.pages[0] != template_pages[0]
        assert doc.pages[1] != template_pages[1]
    assert result.bundle_entries()[0][0] == "asha-1"


def test_job_count_is_names_times_pages(template_3: bytes) -> None:
    names = parse_names(["Asha", "Ravi", "Meera", "Dev"])
    jobs = build_jobs(make_layouts([True, False, False]), names)
    assert len(jobs) == 12
    assert [job.layout.page_number for job in jobs[:3]] == [1, 2, 3]
    assert all(job.status == JobStatus.PENDING for job in jobs)
    assert len({job.job_id for job in jobs}) == 12


def test_empty_name_list_creates_no_jobs(template_3: bytes) -> None:
    calls = []
    recorder = EventRecorder()
    reporter = JobStatusReporter()
    reporter.subscribe(recorder)
    with pytest.raises(NoRecipientsError):
        run_batch(template_3, make_layouts([True, True, True]), [], reporter=reporter,
                  renderer=lambda *args: calls.append(args))
    assert calls == []
    assert recorder.events == []


def test_no_enabled_pages(template_3: bytes) -> None:
    with pytest.raises(NoEnabledPagesError):
        run_batch(template_3, make_layouts([False, False, False]), parse_names(["Asha"]))
    with pytest.raises(EmptyBatchError):
        run_batch(template_3, [], parse_names(["Asha"]))


def test_layouts_must_cover_every_page(template_3: bytes) -> None:
    with pytest.raises(LayoutError):
        run_batch(template_3, make_layouts([True, True]), parse_names(["Asha"]))


def test_unsupported_glyph_excludes_only_that_name() -> None:
    template = build_template([A6] * 6)
    layouts = make_layouts([True, False, False, False, False, False])
    names = parse_names(["Meera", "આશા", "Ravi"])

    result = run_batch(template, layouts, names)

    assert result.total_jobs == 18
    assert result.failed == 1
    assert result.succeeded == 17
    (failure,) = result.failures
    assert failure.reason == RenderFailure.UNSUPPORTED_GLYPH.value
    assert failure.page_number == 1
    assert failure.output_id == names[1].output_id
    assert [doc.output_id for doc in result.documents] == ["meera", "ravi"]
    assert result.incomplete == [names[1]]


def test_unexpected_error_is_isolated(template_3: bytes) -> None:
    def flaky(page: bytes, layout, name) -> bytes:
        if name.output_id == "ravi" and layout.page_number == 2:
            raise ValueError("boom")
        return render(page, layout, name)

    result = run_batch(template_3, make_layouts([True, True, True]), parse_names(["Asha", "Ravi"]), renderer=flaky)
    assert result.failed == 1
    assert result.failures[0].reason == RenderFailure.INTERNAL.value
    assert [doc.output_id for doc in result.documents] == ["asha"]


def test_fallback_font_retry(template_3: bytes) -> None:
    families = []

    def picky(page: bytes, layout, name) -> bytes:
        families.append(layout.font_family)
        if layout.enabled and layout.font_family == "Arial":
            raise RenderError(RenderFailure.UNSUPPORTED_GLYPH, "no glyph")
        return page

    names = parse_names(["Asha"])
    layouts = make_layouts([True, False, False])
    failed = run_batch(template_3, layouts, names, renderer=picky)
    assert failed.failed == 1

    families.clear()
    result = run_batch(template_3, layouts, names, renderer=picky, fallback_font_family="Times New Roman")
    assert result.failed == 0
    assert families.count("Times New Roman") == 1


def test_unknown_fallback_family_rejected(template_3: bytes) -> None:
    with pytest.raises(LayoutError):
        run_batch(template_3, make_layouts([True, True, True]), parse_names(["Asha"]),
                  fallback_font_family="Wingdings")


def test_concurrency_is_bounded() -> None:
    template = build_template([A6] * 4)
    lock = threading.Lock()
    active = [0]
    peak = [0]

    def slow(page: bytes, layout, name) -> bytes:
        with lock:
            active[0] += 1
            peak[0] = max(peak[0], active[0])
        time.sleep(0.01)
        with lock:
            active[0] -= 1
        return page

    names = parse_names([f"Guest {i}" for i in range(5)])
    result = run_batch(template, make_layouts([True] * 4), names, max_workers=2, renderer=slow)
    assert result.succeeded == 20
    assert peak[0] <= 2


def test_cancel_keeps_finished_documents() -> None:
    template = build_template([A6])
    cancel = threading.Event()

    def cancel_after_first(page: bytes, layout, name) -> bytes:
        cancel.set()
        return page

    names = parse_names(["Asha", "Ravi", "Meera"])
    result = run_batch(template, make_layouts([True]), names, max_workers=1,
                       cancel_event=cancel, renderer=cancel_after_first)

    assert result.cancelled is True
    assert [doc.output_id for doc in result.documents] == ["asha"]
    assert [name.output_id for name in result.incomplete] == ["ravi", "meera"]
    assert [job.status for job in result.jobs] == [JobStatus.SUCCEEDED, JobStatus.PENDING, JobStatus.PENDING]
    assert result.failed == 0


def test_same_name_renders_identically_across_batches(template_3: bytes) -> None:
    layouts = make_layouts([True, True, False])
    first = run_batch(template_3, layouts, parse_names(["Asha", "Ravi"]))
    second = run_batch(template_3, layouts, parse_names(["Meera", "Asha", "Dev"]))
    assert first.documents[0].pages == second.documents[1].pages


def test_status_events_follow_each_job(template_3: bytes) -> None:
    recorder = EventRecorder()
    reporter = JobStatusReporter()
    reporter.subscribe(recorder)
    names = parse_names(["Asha", "આશા"])

    result = run_batch(template_3, make_layouts([True, False, False]), names, reporter=reporter)

    assert isinstance(recorder.events[-1], BatchComplete)
    assert recorder.events[-1].result is result
    for job in result.jobs:
        statuses = [event.status for event in recorder.job_events(job.job_id)]
        assert statuses == [JobStatus.PENDING, JobStatus.RUNNING, job.status]
    failed = [e for e in recorder.job_events() if e.status == JobStatus.FAILED]
    assert len(failed) == 1
    assert "unsupported_glyph" in failed[0].error


def test_uninstalled_font_rejected_before_any_job(template_3: bytes, tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(config, "FONT_DIR", tmp_path)
    monkeypatch.setitem(config.FONT_FAMILIES, "Noto Sans Gujarati", ("NotInstalled-Regular.ttf",))
    calls = []
    recorder = EventRecorder()
    reporter = JobStatusReporter()
    reporter.subscribe(recorder)
    layouts = make_layouts([True, False, False], fontFamily="Noto Sans Gujarati")

    with pytest.raises(LayoutError) as excinfo:
        run_batch(template_3, layouts, parse_names(["Asha"]), reporter=reporter,
                  renderer=lambda *args: calls.append(args))

    assert "Noto Sans Gujarati" in str(excinfo.value)
    assert calls == []
    assert recorder.events == []

    # a disabled page never draws, so its family does not need to be installed
    disabled = make_layouts([False, False, False], fontFamily="Noto Sans Gujarati")
    disabled[0] = make_layouts([True])[0]
    result = run_batch(template_3, disabled, parse_names(["Asha"]))
    assert result.failed == 0

    with pytest.raises(LayoutError):
        run_batch(template_3, make_layouts([True, True, True]), parse_names(["Asha"]),
                  fallback_font_family="Noto Sans Gujarati")
