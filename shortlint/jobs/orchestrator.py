"""Resumable three-step analysis workflow.

Each `advance` call performs at most one step:

    pending(0) --classify--> pending(1) --lint--> pending(2) --storyboard+score--> completed

A step first claims the job by writing its transient status under an optimistic
version check; a caller that loses the claim performs no work. Step results are
written in a single save after the step fully succeeds, so a failing step never
leaves partial results behind.

Every error raised by the extractor fails the job. Errors from the local
calculator or linter release the claim and propagate.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, TypeVar
from urllib.parse import urlparse

from shortlint.config import Settings
from shortlint.errors import (
    ConcurrentUpdate,
    ExtractionFailure,
    InvalidInput,
    JobNotFound,
    ParseFailure,
    RetryNotAllowed,
    StepFailure,
)
from shortlint.extract.ollama import OllamaSignalExtractor, SignalExtractor
from shortlint.jobs.store import JobStore, JsonFileJobStore
from shortlint.lint.engine import DEFAULT_LINT_SCORING, LintScoring, lint
from shortlint.models import (
    TERMINAL_STATUSES,
    TOTAL_STEPS,
    TRANSIENT_STATUSES,
    AnalysisJob,
    Classification,
    JobStatus,
    LintResult,
)
from shortlint.results.aggregator import aggregate
from shortlint.scoring.calculator import score
from shortlint.scoring.signals import signals_from_payload

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_URL_HOSTS = ("youtube.com", "www.youtube.com", "m.youtube.com", "youtu.be")
DEFAULT_STALE_CLAIM_SECONDS = 300

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Step:
    index: int
    label: str
    status: JobStatus


STEPS: tuple[Step, ...] = (
    Step(0, "Classification", JobStatus.CLASSIFYING),
    Step(1, "Linting", JobStatus.LINTING),
    Step(2, "Storyboard", JobStatus.STORYBOARDING),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobOrchestrator:
    def __init__(
        self,
        store: JobStore,
        extractor: SignalExtractor,
        *,
        lint_scoring: LintScoring = DEFAULT_LINT_SCORING,
        niche_weights: Mapping[str, Mapping[str, float]] | None = None,
        classification_fallback: bool = False,
        stale_claim_seconds: int = DEFAULT_STALE_CLAIM_SECONDS,
        allowed_url_hosts: tuple[str, ...] | list[str] = DEFAULT_ALLOWED_URL_HOSTS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.extractor = extractor
        self.lint_scoring = lint_scoring
        self.niche_weights = dict(niche_weights or {})
        self.classification_fallback = classification_fallback
        self.stale_claim_after = timedelta(seconds=stale_claim_seconds)
        self.allowed_url_hosts = {host.lower() for host in allowed_url_hosts}
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, *, extractor: SignalExtractor | None = None) -> JobOrchestrator:
        if extractor is None:
            extractor = OllamaSignalExtractor(
                endpoint=settings.extractor.endpoint,
                model=settings.extractor.model,
                timeout_seconds=settings.extractor.timeout_seconds,
                max_retries=settings.extractor.max_retries,
                prompt_dir=settings.extractor.prompt_dir,
            )
        return cls(
            JsonFileJobStore(settings.jobs.store_dir),
            extractor,
            lint_scoring=LintScoring(**settings.lint.model_dump()),
            niche_weights=settings.scoring.niche_weights,
            classification_fallback=settings.extractor.classification_fallback,
            stale_claim_seconds=settings.jobs.stale_claim_seconds,
            allowed_url_hosts=settings.jobs.allowed_url_hosts,
        )

    def create_job(
        self,
        *,
        video_url: str | None = None,
        file_reference: str | None = None,
        niche: str | None = None,
    ) -> dict[str, Any]:
        video_url = (video_url or "").strip() or None
        file_reference = (file_reference or "").strip() or None
        if (video_url is None) == (file_reference is None):
            raise InvalidInput("Provide exactly one of a video URL or a file reference.")
        if video_url is not None:
            self._validate_url(video_url)

        now = self.clock()
        job = AnalysisJob(
            id=uuid.uuid4().hex,
            video_url=video_url,
            file_reference=file_reference,
            created_at=now,
            updated_at=now,
            niche=(niche or "").strip() or None,
        )
        self.store.create(job)
        logger.info("Created job %s for %s", job.id, job.video_ref)
        return {
            "job_id": job.id,
            "status": job.status.value,
            "current_step": job.current_step,
            "total_steps": job.total_steps,
        }

    def snapshot(self, job_id: str) -> dict[str, Any]:
        return build_snapshot(self._load(job_id))

    def advance(self, job_id: str) -> dict[str, Any]:
        """Run the next pending step of `job_id`, if any, and return the job snapshot."""

        job = self._load(job_id)
        if job.status in TERMINAL_STATUSES:
            return build_snapshot(job)
        if job.status in TRANSIENT_STATUSES and not self._claim_is_stale(job):
            logger.info("Job %s is already %s; skipping.", job.id, job.status.value)
            return build_snapshot(job)
        if job.current_step >= len(STEPS):
            raise RuntimeError(f"Job {job.id} is {job.status.value} but has no step left to run.")

        step = STEPS[job.current_step]
        if job.status in TRANSIENT_STATUSES:
            logger.warning("Taking over stale %s claim on job %s", job.status.value, job.id)

        job.status = step.status
        job.updated_at = self.clock()
        try:
            self.store.save(job, expected_version=job.version)
        except ConcurrentUpdate:
            logger.info("Job %s was claimed by another caller; skipping.", job_id)
            return self.snapshot(job_id)
        claimed_version = job.version

        logger.info("Job %s: %s started", job.id, step.label)
        try:
            updates = self._run_step(step, job)
        except StepFailure as exc:
            logger.warning("Job %s: %s failed: %s", job.id, step.label, exc)
            return self._finish(
                job,
                claimed_version,
                {"status": JobStatus.FAILED, "error_message": f"{step.label} failed: {exc.public_reason}"},
            )
        except Exception:
            logger.exception("Job %s: %s raised; releasing claim", job.id, step.label)
            self._release(job, claimed_version)
            raise

        logger.info("Job %s: %s done", job.id, step.label)
        return self._finish(job, claimed_version, updates)

    def retry(self, job_id: str) -> dict[str, Any]:
        """Reset a failed job to pending so its failed step runs again on the next advance."""

        job = self._load(job_id)
        if job.status is not JobStatus.FAILED:
            raise RetryNotAllowed(f"Only failed jobs can be retried; job {job_id} is {job.status.value}.")

        job.status = JobStatus.PENDING
        job.error_message = None
        job.updated_at = self.clock()
        self.store.save(job, expected_version=job.version)
        logger.info("Job %s reset to pending at step %d", job.id, job.current_step)
        return build_snapshot(job)

    def _run_step(self, step: Step, job: AnalysisJob) -> dict[str, Any]:
        if step.index == 0:
            return self._classify(job)
        if step.index == 1:
            return self._lint(job)
        return self._storyboard(job)

    def _extract(self, job: AnalysisJob, call: Callable[[], T]) -> T:
        """Run one extractor call; anything it raises fails the step instead of releasing the claim."""

        try:
            return call()
        except StepFailure:
            raise
        except Exception as exc:
            logger.exception("Job %s: extractor raised %s", job.id, type(exc).__name__)
            raise ExtractionFailure(f"extractor raised {type(exc).__name__}: {exc}") from exc

    def _classify(self, job: AnalysisJob) -> dict[str, Any]:
        try:
            classification = self._extract(job, lambda: self.extractor.classify(job.video_ref))
        except StepFailure as exc:
            if not self.classification_fallback:
                raise
            logger.warning("Job %s: classification failed (%s); falling back to 'other'", job.id, exc)
            classification = Classification(format="other", confidence=0.0, fallback=True)

        return {
            "status": JobStatus.PENDING,
            "classification_result": classification.to_dict(),
            "current_step": 1,
        }

    def _lint(self, job: AnalysisJob) -> dict[str, Any]:
        classification = Classification.from_dict(job.classification_result or {})
        analysis = self._extract(job, lambda: self.extractor.analyze(job.video_ref, "signals"))
        if analysis.signals is None:
            raise ParseFailure("Signal analysis returned no signals.")

        lint_result = lint(analysis.signals, analysis.narrative, classification.format, scoring=self.lint_scoring)
        return {
            "status": JobStatus.PENDING,
            "signals": analysis.signals.to_dict(),
            "lint_result": lint_result.to_dict(),
            "current_step": 2,
        }

    def _storyboard(self, job: AnalysisJob) -> dict[str, Any]:
        classification = Classification.from_dict(job.classification_result or {})
        lint_result = LintResult.from_dict(job.lint_result or {})
        analysis = self._extract(job, lambda: self.extractor.analyze(job.video_ref, "storyboard"))

        signals = signals_from_payload(job.signals) if job.signals is not None else analysis.signals
        if signals is None:
            raise ParseFailure("Storyboard analysis returned no signals to score.")

        breakdown = score(
            signals,
            job.niche or classification.format,
            video_format=classification.format,
            niche_weights=self.niche_weights,
        )
        result = aggregate(
            classification,
            lint_result,
            analysis.narrative,
            breakdown,
            signals=signals,
            video_ref=job.video_ref,
            is_uploaded_file=job.file_reference is not None,
        )
        return {
            "status": JobStatus.COMPLETED,
            "storyboard_result": result.document,
            "projection": result.projection,
            "current_step": TOTAL_STEPS,
            "completed_at": self.clock(),
        }

    def _finish(self, job: AnalysisJob, claimed_version: int, updates: dict[str, Any]) -> dict[str, Any]:
        for name, value in updates.items():
            setattr(job, name, value)
        job.updated_at = self.clock()
        try:
            self.store.save(job, expected_version=claimed_version)
        except ConcurrentUpdate:
            logger.warning("Job %s changed while its step ran; discarding this result.", job.id)
            return self.snapshot(job.id)
        return build_snapshot(job)

    def _release(self, job: AnalysisJob, claimed_version: int) -> None:
        current = self.store.get(job.id)
        if current is None or current.version != claimed_version:
            return
        current.status = JobStatus.PENDING
        current.updated_at = self.clock()
        try:
            self.store.save(current, expected_version=claimed_version)
        except ConcurrentUpdate:
            logger.warning("Job %s changed before its claim could be released.", job.id)

    def _claim_is_stale(self, job: AnalysisJob) -> bool:
        return self.clock() - job.updated_at >= self.stale_claim_after

    def _load(self, job_id: str) -> AnalysisJob:
        job = self.store.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def _validate_url(self, video_url: str) -> None:
        parsed = urlparse(video_url)
        if parsed.scheme not in {"http", "https"} or not parsed.hostname:
            raise InvalidInput(f"Unsupported video URL: {video_url}")
        if self.allowed_url_hosts and parsed.hostname.lower() not in self.allowed_url_hosts:
            raise InvalidInput(f"Unsupported video host: {parsed.hostname}")


def build_snapshot(job: AnalysisJob) -> dict[str, Any]:
    """Caller-facing view of a job; completed jobs read their results from the stored document."""

    document = job.storyboard_result or {}
    snapshot: dict[str, Any] = {
        "job_id": job.id,
        "status": job.status.value,
        "current_step": job.current_step,
        "total_steps": job.total_steps,
        "progress_percent": round(job.current_step / job.total_steps * 100, 2),
        "classification": document.get("classification", job.classification_result),
        "lintSummary": document.get("lintSummary", job.lint_result),
        "storyboard": document.get("storyboard"),
        "niche": job.niche,
        "video_url": job.video_url,
        "file_reference": job.file_reference,
        "created_at": _isoformat(job.created_at),
        "updated_at": _isoformat(job.updated_at),
        "completed_at": _isoformat(job.completed_at),
    }
    if job.status is JobStatus.FAILED:
        snapshot["error_message"] = job.error_message
    return snapshot


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
