from __future__ import annotations

from dataclasses import replace

import pytest

from shortlint.errors import (
    ConcurrentUpdate,
    InvalidInput,
    InvalidSignals,
    JobNotFound,
    ParseFailure,
    RetryNotAllowed,
)
from shortlint.jobs.orchestrator import JobOrchestrator
from shortlint.jobs.store import InMemoryJobStore
from shortlint.models import Analysis, Classification, JobStatus, Narrative
from shortlint.results.aggregator import derive_projection
from shortlint.scoring.signals import signals_from_payload

VIDEO_URL = "https://www.youtube.com/shorts/abc123"


def _orchestrator(extractor, clock, **kwargs) -> JobOrchestrator:
    return JobOrchestrator(InMemoryJobStore(), extractor, clock=clock, **kwargs)


def test_create_job_returns_pending_summary(fake_extractor, clock) -> None:
    orchestrator = _orchestrator(fake_extractor, clock)

    created = orchestrator.create_job(video_url=VIDEO_URL)

    assert created["status"] == "pending"
    assert created["current_step"] == 0
    assert created["total_steps"] == 3
    assert orchestrator.store.get(created["job_id"]).video_url == VIDEO_URL


@pytest.mark.parametrize(
    "kwargs",
    [
        {},
        {"video_url": VIDEO_URL, "file_reference": "uploads/clip.mp4"},
        {"video_url": "ftp://youtube.com/clip"},
        {"video_url": "https://vimeo.com/123"},
        {"video_url": "   "},
    ],
)
def test_create_job_rejects_invalid_sources(fake_extractor, clock, kwargs: dict) -> None:
    orchestrator = _orchestrator(fake_extractor, clock)

    with pytest.raises(InvalidInput):
        orchestrator.create_job(**kwargs)


def test_create_job_accepts_file_reference(fake_extractor, clock) -> None:
    orchestrator = _orchestrator(fake_extractor, clock)

    created = orchestrator.create_job(file_reference="uploads/clip.mp4", niche="tutorial")
    job = orchestrator.store.get(created["job_id"])

    assert job.file_reference == "uploads/clip.mp4"
    assert job.niche == "tutorial"


def test_happy_path_runs_three_steps(fake_extractor, clock) -> None:
    orchestrator = _orchestrator(fake_extractor, clock)
    job_id = orchestrator.create_job(video_url=VIDEO_URL)["job_id"]

    first = orchestrator.advance(job_id)
    assert first["classification"]["format"] == "talking_head"
    assert first["current_step"] == 1
    assert first["status"] == "pending"
    assert first["progress_percent"] == pytest.approx(33.33)
    assert first["lintSummary"] is None

    second = orchestrator.advance(job_id)
    assert second["lintSummary"]["errors"] == 1
    assert second["lintSummary"]["warnings"] == 2
    assert second["lintSummary"]["score"] == 82
    assert second["current_step"] == 2
    assert second["status"] == "pending"

    clock.advance(60)
    third = orchestrator.advance(job_id)
    assert third["storyboard"]["overallScore"] == 76
    assert third["status"] == "completed"
    assert third["current_step"] == 3
    assert third["progress_percent"] == 100.0
    assert third["completed_at"] == clock.now.isoformat()
    assert "error_message" not in third

    assert [call[0] for call in fake_extractor.calls] == ["classify", "signals", "storyboard"]


def test_completed_job_is_absorbing(fake_extractor, clock) -> None:
    orchestrator = _orchestrator(fake_extractor, clock)
    job_id = orchestrator.create_job(video_url=VIDEO_URL)["job_id"]
    for _ in range(3):
        completed = orchestrator.advance(job_id)
    calls_before = fake_extractor.call_count

    clock.advance(3600)
    fourth = orchestrator.advance(job_id)

    assert fourth == completed
    assert fake_extractor.call_count == calls_before


def test_current_step_never_decreases(fake_extractor, clock) -> None:
    orchestrator = _orchestrator(fake_extractor, clock)
    job_id = orchestrator.create_job(video_url=VIDEO_URL)["job_id"]

    steps = [orchestrator.advance(job_id)["current_step"] for _ in range(6)]

    assert steps == sorted(steps)
    assert steps[-1] == 3


def test_classification_failure_marks_job_failed_without_leaking(failing_classifier, clock) -> None:
    orchestrator = _orchestrator(failing_classifier, clock)
    job_id = orchestrator.create_job(video_url=VIDEO_URL)["job_id"]

    snapshot = orchestrator.advance(job_id)

    assert snapshot["status"] == "failed"
    assert snapshot["current_step"] == 0
    assert snapshot["error_message"]
    assert snapshot["error_message"].startswith("Classification failed")
    assert "sk-123" not in snapshot["error_message"]
    assert "500" not in snapshot["error_message"]

    again = orchestrator.advance(job_id)
    assert again == snapshot
    assert failing_classifier.call_count == 1


def test_classification_fallback_stores_other_format(failing_classifier, clock) -> None:
    orchestrator = _orchestrator(failing_classifier, clock, classification_fallback=True)
    job_id = orchestrator.create_job(video_url=VIDEO_URL)["job_id"]

    snapshot = orchestrator.advance(job_id)

    assert snapshot["status"] == "pending"
    assert snapshot["current_step"] == 1
    assert snapshot["classification"] == {"format": "other", "confidence": 0.0, "evidence": [], "fallback": True}


def test_storyboard_parse_failure_keeps_earlier_results(fake_extractor, clock) -> None:
    fake_extractor.analyses["storyboard"] = ParseFailure("narrative was a list")
    orchestrator = _orchestrator(fake_extractor, clock)
    job_id = orchestrator.create_job(video_url=VIDEO_URL)["job_id"]

    orchestrator.advance(job_id)
    orchestrator.advance(job_id)
    snapshot = orchestrator.advance(job_id)

    assert snapshot["status"] == "failed"
    assert snapshot["current_step"] == 2
    assert snapshot["error_message"] == "Storyboard failed: the signal extractor returned data in an unexpected format"
    assert snapshot["lintSummary"]["score"] == 82
    assert snapshot["storyboard"] is None
    assert snapshot["completed_at"] is None


def test_unexpected_extractor_errors_mark_job_failed(fake_extractor, clock) -> None:
    fake_extractor.classification = RuntimeError("vision backend crashed: token sk-123")
    orchestrator = _orchestrator(fake_extractor, clock)
    job_id = orchestrator.create_job(video_url=VIDEO_URL)["job_id"]

    snapshot = orchestrator.advance(job_id)

    assert snapshot["status"] == "failed"
    assert snapshot["current_step"] == 0
    assert snapshot["error_message"] == "Classification failed: the signal extractor returned no usable result"
    assert orchestrator.advance(job_id) == snapshot
    assert fake_extractor.call_count == 1


def test_extractor_contract_errors_during_linting_mark_job_failed(fake_extractor, clock) -> None:
    fake_extractor.analyses["signals"] = InvalidSignals("Missing required signal 'hook.time_to_claim'.")
    orchestrator = _orchestrator(fake_extractor, clock)
    job_id = orchestrator.create_job(video_url=VIDEO_URL)["job_id"]
    orchestrator.advance(job_id)

    snapshot = orchestrator.advance(job_id)

    assert snapshot["status"] == "failed"
    assert snapshot["current_step"] == 1
    assert snapshot["error_message"].startswith("Linting failed")
    assert "hook.time_to_claim" not in snapshot["error_message"]


def test_linter_contract_errors_release_the_claim_and_propagate(fake_extractor, clock) -> None:
    analysis = fake_extractor.analyses["signals"]
    broken = replace(analysis.signals, hook=replace(analysis.signals.hook, time_to_claim=None))
    fake_extractor.analyses["signals"] = Analysis(narrative=analysis.narrative, signals=broken)
    orchestrator = _orchestrator(fake_extractor, clock)
    job_id = orchestrator.create_job(video_url=VIDEO_URL)["job_id"]
    orchestrator.advance(job_id)

    with pytest.raises(InvalidSignals):
        orchestrator.advance(job_id)

    snapshot = orchestrator.snapshot(job_id)
    assert snapshot["status"] == "pending"
    assert snapshot["current_step"] == 1
    assert snapshot["lintSummary"] is None


def test_retry_resets_failed_job_and_reattempts_same_step(failing_classifier, clock) -> None:
    orchestrator = _orchestrator(failing_classifier, clock)
    job_id = orchestrator.create_job(video_url=VIDEO_URL)["job_id"]
    orchestrator.advance(job_id)

    reset = orchestrator.retry(job_id)
    assert reset["status"] == "pending"
    assert reset["current_step"] == 0
    assert "error_message" not in reset
    assert orchestrator.store.get(job_id).error_message is None

    failing_classifier.classification = Classification(format="talking_head", confidence=0.8)
    snapshot = orchestrator.advance(job_id)
    assert snapshot["current_step"] == 1
    assert snapshot["classification"]["format"] == "talking_head"


def test_retry_rejects_jobs_that_have_not_failed(fake_extractor, clock) -> None:
    orchestrator = _orchestrator(fake_extractor, clock)
    job_id = orchestrator.create_job(video_url=VIDEO_URL)["job_id"]

    with pytest.raises(RetryNotAllowed):
        orchestrator.retry(job_id)


def test_unknown_job_raises_not_found(fake_extractor, clock) -> None:
    orchestrator = _orchestrator(fake_extractor, clock)

    with pytest.raises(JobNotFound):
        orchestrator.advance("missing")
    with pytest.raises(JobNotFound):
        orchestrator.snapshot("missing")
    with pytest.raises(JobNotFound):
        orchestrator.retry("missing")


def test_second_caller_skips_a_fresh_claim(fake_extractor, clock) -> None:
    orchestrator = _orchestrator(fake_extractor, clock)
    job_id = orchestrator.create_job(video_url=VIDEO_URL)["job_id"]
    job = orchestrator.store.get(job_id)
    job.status = JobStatus.CLASSIFYING
    job.updated_at = clock()
    orchestrator.store.save(job, expected_version=job.version)

    clock.advance(30)
    snapshot = orchestrator.advance(job_id)

    assert snapshot["status"] == "classifying"
    assert snapshot["current_step"] == 0
    assert fake_extractor.call_count == 0


def test_stale_claim_is_taken_over(fake_extractor, clock) -> None:
    orchestrator = _orchestrator(fake_extractor, clock, stale_claim_seconds=300)
    job_id = orchestrator.create_job(video_url=VIDEO_URL)["job_id"]
    job = orchestrator.store.get(job_id)
    job.status = JobStatus.CLASSIFYING
    job.updated_at = clock()
    orchestrator.store.save(job, expected_version=job.version)

    clock.advance(301)
    snapshot = orchestrator.advance(job_id)

    assert snapshot["status"] == "pending"
    assert snapshot["current_step"] == 1
    assert fake_extractor.call_count == 1


class _ConflictOnceStore(InMemoryJobStore):
    def __init__(self) -> None:
        super().__init__()
        self.conflicts = 1

    def save(self, job, *, expected_version):
        if self.conflicts:
            self.conflicts -= 1
            raise ConcurrentUpdate("another caller won")
        return super().save(job, expected_version=expected_version)


def test_lost_claim_is_a_no_op(fake_extractor, clock) -> None:
    orchestrator = JobOrchestrator(_ConflictOnceStore(), fake_extractor, clock=clock)
    job_id = orchestrator.create_job(video_url=VIDEO_URL)["job_id"]

    snapshot = orchestrator.advance(job_id)

    assert snapshot["status"] == "pending"
    assert snapshot["current_step"] == 0
    assert fake_extractor.call_count == 0


def test_scoring_reuses_signals_from_lint_step(fake_extractor, clock, clean_payload) -> None:
    fake_extractor.analyses["storyboard"] = Analysis(
        narrative=Narrative(transcript="different run"),
        signals=signals_from_payload(clean_payload),
    )
    orchestrator = _orchestrator(fake_extractor, clock)
    job_id = orchestrator.create_job(video_url=VIDEO_URL)["job_id"]

    for _ in range(3):
        snapshot = orchestrator.advance(job_id)

    assert snapshot["storyboard"]["overallScore"] == 76


def test_scoring_falls_back_to_storyboard_signals(fake_extractor, clock, happy_payload) -> None:
    fake_extractor.analyses["storyboard"] = Analysis(narrative=Narrative(), signals=signals_from_payload(happy_payload))
    orchestrator = _orchestrator(fake_extractor, clock)
    job_id = orchestrator.create_job(video_url=VIDEO_URL)["job_id"]
    orchestrator.advance(job_id)
    orchestrator.advance(job_id)
    job = orchestrator.store.get(job_id)
    job.signals = None
    orchestrator.store.save(job, expected_version=job.version)

    snapshot = orchestrator.advance(job_id)

    assert snapshot["status"] == "completed"
    assert snapshot["storyboard"]["overallScore"] == 76


def test_job_niche_selects_weight_table(fake_extractor, clock) -> None:
    orchestrator = _orchestrator(fake_extractor, clock)
    job_id = orchestrator.create_job(video_url=VIDEO_URL, niche="entertainment")["job_id"]

    for _ in range(3):
        snapshot = orchestrator.advance(job_id)

    assert snapshot["storyboard"]["overallScore"] == 75
    assert snapshot["storyboard"]["scoreBreakdown"]["niche"] == "entertainment"


def test_stored_projection_matches_document(fake_extractor, clock) -> None:
    orchestrator = _orchestrator(fake_extractor, clock)
    job_id = orchestrator.create_job(video_url=VIDEO_URL)["job_id"]
    for _ in range(3):
        orchestrator.advance(job_id)

    job = orchestrator.store.get(job_id)

    assert job.projection == derive_projection(job.storyboard_result)
    assert job.projection["deterministic_score"] == 76
    assert job.projection["hook_category"] == "Contradiction / Myth-busting"
