from __future__ import annotations


class ShortlintError(Exception):
    """Base class for errors surfaced to shortlint callers."""


class InvalidInput(ShortlintError, ValueError):
    """Job creation request is malformed (both/neither source, unsupported source)."""


class JobNotFound(ShortlintError, LookupError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class ConcurrentUpdate(ShortlintError, RuntimeError):
    """A job row changed between read and write."""


class RetryNotAllowed(ShortlintError, ValueError):
    pass


class InvalidSignals(ShortlintError, ValueError):
    """Signals are missing required fields or carry values of the wrong type."""


class StepFailure(ShortlintError, RuntimeError):
    """A pipeline step could not produce its result.

    `public_reason` is safe to store on the job and show to callers; the
    exception message itself may carry provider details and is only logged.
    """

    public_reason = "the video could not be analyzed"

    def __init__(self, message: str, *, public_reason: str | None = None) -> None:
        super().__init__(message)
        if public_reason is not None:
            self.public_reason = public_reason


class ExtractionFailure(StepFailure):
    public_reason = "the signal extractor returned no usable result"


class ParseFailure(StepFailure):
    public_reason = "the signal extractor returned data in an unexpected format"
