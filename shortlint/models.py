from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal

VideoFormat = Literal["talking_head", "gameplay", "demo", "other"]
VIDEO_FORMATS: tuple[str, ...] = ("talking_head", "gameplay", "demo", "other")

Severity = Literal["error", "warning", "info"]


@dataclass(frozen=True, slots=True)
class HookSignals:
    time_to_claim: float
    pattern_break: float
    specificity: int
    question_or_contradiction: int


@dataclass(frozen=True, slots=True)
class StructureSignals:
    beat_count: int
    progress_marker_count: int
    payoff_present: bool
    loop_cue_present: bool


@dataclass(frozen=True, slots=True)
class ClaritySignals:
    word_count: int
    spoken_duration: float
    sentence_complexity: float
    topic_jump_count: int
    redundancy: float


@dataclass(frozen=True, slots=True)
class DeliverySignals:
    loudness_stability: float
    audio_quality: float
    pause_count: int
    filler_word_count: int
    energy_curve_present: bool


@dataclass(frozen=True, slots=True)
class VideoSignals:
    """Raw measurements returned by the signal extractor, grouped by category."""

    hook: HookSignals
    structure: StructureSignals
    clarity: ClaritySignals
    delivery: DeliverySignals

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return asdict(self)


@dataclass(slots=True)
class Classification:
    format: VideoFormat
    confidence: float
    evidence: list[str] = field(default_factory=list)
    fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Classification:
        return cls(
            format=payload["format"],
            confidence=float(payload.get("confidence", 0.0)),
            evidence=list(payload.get("evidence", [])),
            fallback=bool(payload.get("fallback", False)),
        )


@dataclass(frozen=True, slots=True)
class Beat:
    beat_number: int
    start_time: float
    end_time: float
    type: str


@dataclass(slots=True)
class Narrative:
    """Free-text content returned alongside signals (transcript, beats, storyboard sections)."""

    transcript: str = ""
    beats: list[Beat] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Analysis:
    narrative: Narrative
    signals: VideoSignals | None = None


@dataclass(slots=True)
class CategoryScore:
    score: int
    sub_scores: dict[str, int]


@dataclass(slots=True)
class ScoreBreakdown:
    """Deterministic scoring output; every number is an integer in [0, 100]."""

    hook: CategoryScore
    structure: CategoryScore
    clarity: CategoryScore
    delivery: CategoryScore
    overall: int
    niche: str

    def categories(self) -> dict[str, CategoryScore]:
        return {
            "hook": self.hook,
            "structure": self.structure,
            "clarity": self.clarity,
            "delivery": self.delivery,
        }

    def to_dict(self) -> dict[str, Any]:
        categories = self.categories()
        return {
            "overall": self.overall,
            "niche": self.niche,
            "categories": {name: category.score for name, category in categories.items()},
            "subScores": {name: dict(category.sub_scores) for name, category in categories.items()},
        }


@dataclass(slots=True)
class LintViolation:
    rule_id: str
    rule_name: str
    severity: Severity
    category: str
    message: str
    suggestion: str
    timestamp: str | None = None
    beat_number: int | None = None


@dataclass(slots=True)
class LintResult:
    format: VideoFormat
    violations: list[LintViolation]
    total_rules: int
    passed: int
    warnings: int
    errors: int
    infos: int
    base_score: int
    bonus_points: int
    bonus_details: list[str]
    score: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": self.format,
            "totalRules": self.total_rules,
            "passed": self.passed,
            "errors": self.errors,
            "warnings": self.warnings,
            "infos": self.infos,
            "baseScore": self.base_score,
            "bonusPoints": self.bonus_points,
            "bonusDetails": list(self.bonus_details),
            "score": self.score,
            "violations": [
                {
                    "ruleId": violation.rule_id,
                    "ruleName": violation.rule_name,
                    "severity": violation.severity,
                    "category": violation.category,
                    "message": violation.message,
                    "suggestion": violation.suggestion,
                    "timestamp": violation.timestamp,
                    "beatNumber": violation.beat_number,
                }
                for violation in self.violations
            ],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> LintResult:
        return cls(
            format=payload["format"],
            violations=[
                LintViolation(
                    rule_id=item["ruleId"],
                    rule_name=item["ruleName"],
                    severity=item["severity"],
                    category=item["category"],
                    message=item["message"],
                    suggestion=item["suggestion"],
                    timestamp=item.get("timestamp"),
                    beat_number=item.get("beatNumber"),
                )
                for item in payload.get("violations", [])
            ],
            total_rules=payload["totalRules"],
            passed=payload["passed"],
            warnings=payload["warnings"],
            errors=payload["errors"],
            infos=payload.get("infos", 0),
            base_score=payload["baseScore"],
            bonus_points=payload["bonusPoints"],
            bonus_details=list(payload.get("bonusDetails", [])),
            score=payload["score"],
        )


class JobStatus(str, Enum):
    PENDING = "pending"
    CLASSIFYING = "classifying"
    LINTING = "linting"
    STORYBOARDING = "storyboarding"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})
TRANSIENT_STATUSES = frozenset({JobStatus.CLASSIFYING, JobStatus.LINTING, JobStatus.STORYBOARDING})
TOTAL_STEPS = 3


@dataclass(slots=True)
class AnalysisJob:
    """Persisted unit of work; mutated only by the job orchestrator."""

    id: str
    video_url: str | None
    file_reference: str | None
    created_at: datetime
    updated_at: datetime
    status: JobStatus = JobStatus.PENDING
    current_step: int = 0
    total_steps: int = TOTAL_STEPS
    niche: str | None = None
    classification_result: dict[str, Any] | None = None
    signals: dict[str, Any] | None = None
    lint_result: dict[str, Any] | None = None
    storyboard_result: dict[str, Any] | None = None
    projection: dict[str, Any] | None = None
    error_message: str | None = None
    completed_at: datetime | None = None
    version: int = 0

    @property
    def video_ref(self) -> str:
        return self.video_url or self.file_reference or ""

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["status"] = self.status.value
        for key in ("created_at", "updated_at", "completed_at"):
            value = payload[key]
            payload[key] = value.isoformat() if value is not None else None
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> AnalysisJob:
        data = dict(payload)
        data["status"] = JobStatus(data["status"])
        for key in ("created_at", "updated_at", "completed_at"):
            value = data.get(key)
            data[key] = datetime.fromisoformat(value) if value else None
        return cls(**data)
