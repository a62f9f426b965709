from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from shortlint.errors import ConcurrentUpdate, InvalidInput
from shortlint.jobs.store import InMemoryJobStore, JsonFileJobStore
from shortlint.models import AnalysisJob, JobStatus

CREATED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _job(job_id: str = "job123") -> AnalysisJob:
    return AnalysisJob(
        id=job_id,
        video_url="https://youtu.be/abc",
        file_reference=None,
        created_at=CREATED_AT,
        updated_at=CREATED_AT,
        classification_result={"format": "demo", "confidence": 0.5, "evidence": [], "fallback": False},
    )


@pytest.fixture(params=["memory", "json"])
def store(request: pytest.FixtureRequest, tmp_path: Path):
    if request.param == "memory":
        return InMemoryJobStore()
    return JsonFileJobStore(tmp_path / "jobs")


def test_create_and_get_round_trip(store) -> None:
    store.create(_job())

    loaded = store.get("job123")

    assert loaded.version == 1
    assert loaded.status is JobStatus.PENDING
    assert loaded.created_at == CREATED_AT
    assert loaded.classification_result["format"] == "demo"
    assert store.get("other") is None


def test_create_rejects_duplicate_ids(store) -> None:
    store.create(_job())

    with pytest.raises(ConcurrentUpdate):
        store.create(_job())


def test_save_increments_version_and_checks_expected_version(store) -> None:
    store.create(_job())
    first = store.get("job123")
    second = store.get("job123")

    first.status = JobStatus.CLASSIFYING
    store.save(first, expected_version=1)

    second.status = JobStatus.CLASSIFYING
    with pytest.raises(ConcurrentUpdate):
        store.save(second, expected_version=1)

    assert store.get("job123").version == 2


def test_returned_jobs_do_not_share_state_with_store(store) -> None:
    store.create(_job())

    loaded = store.get("job123")
    loaded.classification_result["format"] = "gameplay"

    assert store.get("job123").classification_result["format"] == "demo"


def test_json_store_writes_one_file_per_job(tmp_path: Path) -> None:
    store = JsonFileJobStore(tmp_path)
    store.create(_job("abc"))
    job = store.get("abc")
    store.save(job, expected_version=job.version)

    assert sorted(path.name for path in tmp_path.iterdir()) == ["abc.json"]


def test_json_store_rejects_path_like_ids(tmp_path: Path) -> None:
    store = JsonFileJobStore(tmp_path)

    with pytest.raises(InvalidInput):
        store.get("../etc/passwd")
