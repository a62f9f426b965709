from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from shortlint.errors import ExtractionFailure
from shortlint.models import Analysis, Beat, Classification, Narrative
from shortlint.scoring.signals import signals_from_payload

# Talking-head video that scores 76 overall and lints to 82 (1 error, 2 warnings).
HAPPY_SIGNALS: dict[str, dict[str, Any]] = {
    "hook": {"time_to_claim": 1.0, "pattern_break": 2, "specificity": 3, "question_or_contradiction": 1},
    "structure": {"beat_count": 4, "progress_marker_count": 2, "payoff_present": False, "loop_cue_present": False},
    "clarity": {"word_count": 75, "spoken_duration": 30.0, "sentence_complexity": 1, "topic_jump_count": 1, "redundancy": 1},
    "delivery": {
        "loudness_stability": 4,
        "audio_quality": 4,
        "pause_count": 3,
        "filler_word_count": 4,
        "energy_curve_present": True,
    },
}

# Triggers no lint rule for any format and earns every bonus.
CLEAN_SIGNALS: dict[str, dict[str, Any]] = {
    "hook": {"time_to_claim": 0.5, "pattern_break": 5, "specificity": 3, "question_or_contradiction": 1},
    "structure": {"beat_count": 4, "progress_marker_count": 3, "payoff_present": True, "loop_cue_present": True},
    "clarity": {"word_count": 105, "spoken_duration": 30.0, "sentence_complexity": 1, "topic_jump_count": 0, "redundancy": 1},
    "delivery": {
        "loudness_stability": 5,
        "audio_quality": 5,
        "pause_count": 2,
        "filler_word_count": 0,
        "energy_curve_present": True,
    },
}

BEATS = [
    Beat(beat_number=1, start_time=0.0, end_time=2.5, type="hook"),
    Beat(beat_number=2, start_time=2.5, end_time=20.0, type="build"),
    Beat(beat_number=3, start_time=20.0, end_time=30.0, type="payoff"),
]


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeExtractor:
    """Extractor double that records every call; a stored exception is raised instead of returned."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.classification: Classification | Exception = Classification(
            format="talking_head",
            confidence=0.93,
            evidence=["single speaker facing camera"],
        )
        self.analyses: dict[str, Analysis | Exception] = {
            "signals": Analysis(
                narrative=Narrative(transcript="Most people stretch wrong. Here is the fix.", beats=list(BEATS)),
                signals=signals_from_payload(HAPPY_SIGNALS),
            ),
            "storyboard": Analysis(
                narrative=Narrative(
                    transcript="Most people stretch wrong. Here is the fix.",
                    beats=list(BEATS),
                    details={
                        "overview": {
                            "hookCategory": "myth busting",
                            "hookPattern": "Most people do X wrong",
                            "nicheCategory": "fitness",
                            "contentType": "tutorial",
                            "targetAudience": "desk workers",
                        },
                        "performance": {"strengths": ["fast hook"], "weaknesses": ["no payoff"]},
                    },
                ),
            ),
        }

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def classify(self, video_ref: str) -> Classification:
        self.calls.append(("classify", video_ref))
        if isinstance(self.classification, Exception):
            raise self.classification
        return self.classification

    def analyze(self, video_ref: str, instructions: str) -> Analysis:
        self.calls.append((instructions, video_ref))
        result = self.analyses[instructions]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def happy_payload() -> dict[str, dict[str, Any]]:
    return copy.deepcopy(HAPPY_SIGNALS)


@pytest.fixture
def clean_payload() -> dict[str, dict[str, Any]]:
    return copy.deepcopy(CLEAN_SIGNALS)


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def failing_classifier(fake_extractor: FakeExtractor) -> FakeExtractor:
    fake_extractor.classification = ExtractionFailure("provider returned HTTP 500: quota exceeded for key sk-123")
    return fake_extractor
