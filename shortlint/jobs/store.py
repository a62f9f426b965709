from __future__ import annotations

import copy
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from threading import Lock
from typing import Protocol

from shortlint.errors import ConcurrentUpdate, InvalidInput
from shortlint.models import AnalysisJob

logger = logging.getLogger(__name__)

JOB_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class JobStore(Protocol):
    def get(self, job_id: str) -> AnalysisJob | None: ...

    def create(self, job: AnalysisJob) -> AnalysisJob: ...

    def save(self, job: AnalysisJob, *, expected_version: int) -> AnalysisJob: ...


class InMemoryJobStore:
    """Process-local job store; callers only ever see copies of stored rows."""

    def __init__(self) -> None:
        self._jobs: dict[str, dict] = {}
        self._lock = Lock()

    def get(self, job_id: str) -> AnalysisJob | None:
        with self._lock:
            payload = self._jobs.get(job_id)
        return AnalysisJob.from_dict(copy.deepcopy(payload)) if payload is not None else None

    def create(self, job: AnalysisJob) -> AnalysisJob:
        with self._lock:
            if job.id in self._jobs:
                raise ConcurrentUpdate(f"Job already exists: {job.id}")
            job.version = 1
            self._jobs[job.id] = _snapshot(job)
        return job

    def save(self, job: AnalysisJob, *, expected_version: int) -> AnalysisJob:
        with self._lock:
            current = self._jobs.get(job.id)
            if current is None or current["version"] != expected_version:
                raise ConcurrentUpdate(f"Job {job.id} changed since version {expected_version}.")
            job.version = expected_version + 1
            self._jobs[job.id] = _snapshot(job)
        return job


class JsonFileJobStore:
    """One JSON document per job under `root`.

    Writes go through a temp file and `os.replace`, so a reader never sees a
    half-written job. The version check is guarded by a process-local lock and
    does not coordinate across processes.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()

    def get(self, job_id: str) -> AnalysisJob | None:
        path = self._path(job_id)
        if not path.exists():
            return None
        payload = json.loads(path.read_text(encoding="utf-8"))
        return AnalysisJob.from_dict(payload)

    def create(self, job: AnalysisJob) -> AnalysisJob:
        with self._lock:
            if self._path(job.id).exists():
                raise ConcurrentUpdate(f"Job already exists: {job.id}")
            job.version = 1
            self._write(job)
        return job

    def save(self, job: AnalysisJob, *, expected_version: int) -> AnalysisJob:
        with self._lock:
            current = self.get(job.id)
            if current is None or current.version != expected_version:
                raise ConcurrentUpdate(f"Job {job.id} changed since version {expected_version}.")
            job.version = expected_version + 1
            self._write(job)
        return job

    def _path(self, job_id: str) -> Path:
        if not JOB_ID_PATTERN.match(job_id):
            raise InvalidInput(f"Invalid job id: {job_id}")
        return self.root / f"{job_id}.json"

    def _write(self, job: AnalysisJob) -> None:
        path = self._path(job.id)
        fd, temp_name = tempfile.mkstemp(dir=self.root, prefix=f".{job.id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(job.to_dict(), handle, indent=2, sort_keys=True)
            os.replace(temp_name, path)
        except OSError:
            Path(temp_name).unlink(missing_ok=True)
            raise
        logger.debug("Wrote job %s (version %d) to %s", job.id, job.version, path)


def _snapshot(job: AnalysisJob) -> dict:
    return copy.deepcopy(job.to_dict())
