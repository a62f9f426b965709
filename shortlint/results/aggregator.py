"""Merge step outputs into the persisted result document and flatten it.

The document is the single source of truth. The projection is a flat map of
scalar columns for filtering and sorting, and `derive_projection` rebuilds it
from the document alone so it can always be recomputed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from shortlint.models import Classification, LintResult, Narrative, ScoreBreakdown, VideoSignals
from shortlint.scoring.thresholds import CATEGORIES

HOOK_CATEGORIES: tuple[str, ...] = (
    "Outcome-first",
    "Relatable pain",
    "Contradiction / Myth-busting",
    "Shock / Bold claim",
    "Curiosity gap",
    "Authority / Credibility",
    "Specific number / specificity",
    "Direct call-out",
    "Pattern interrupt (verbal)",
    "Before / After contrast",
    "Time-bound promise",
    "Negative framing",
    "Question hook",
    "Other",
)
FALLBACK_HOOK_CATEGORY = "Other"

# Column name per category score.
CATEGORY_COLUMNS = {
    "hook": "hook_strength",
    "structure": "structure_pacing",
    "clarity": "value_clarity",
    "delivery": "delivery_performance",
}

# Column name -> storyboard metadata key.
METADATA_COLUMNS = {
    "hook_category": "hookCategory",
    "hook_pattern": "hookPattern",
    "niche_category": "nicheCategory",
    "content_type": "contentType",
    "target_audience": "targetAudience",
}


@dataclass(slots=True)
class AggregatedResult:
    document: dict[str, Any]
    projection: dict[str, Any]


def aggregate(
    classification: Classification,
    lint_result: LintResult,
    narrative: Narrative,
    breakdown: ScoreBreakdown,
    *,
    signals: VideoSignals | None = None,
    video_ref: str = "",
    is_uploaded_file: bool = False,
) -> AggregatedResult:
    storyboard: dict[str, Any] = dict(narrative.details)
    storyboard["transcript"] = narrative.transcript
    storyboard["beats"] = [
        {
            "beatNumber": beat.beat_number,
            "startTime": beat.start_time,
            "endTime": beat.end_time,
            "type": beat.type,
        }
        for beat in narrative.beats
    ]
    storyboard["overview"] = _normalized_overview(narrative.details)
    storyboard["overallScore"] = breakdown.overall
    storyboard["scoreBreakdown"] = breakdown.to_dict()
    storyboard["lintSummary"] = lint_result.to_dict()

    document: dict[str, Any] = {
        "source": {"videoRef": video_ref, "isUploadedFile": is_uploaded_file},
        "classification": classification.to_dict(),
        "lintSummary": lint_result.to_dict(),
        "signals": signals.to_dict() if signals is not None else None,
        "storyboard": storyboard,
    }
    return AggregatedResult(document=document, projection=derive_projection(document))


def derive_projection(document: dict[str, Any]) -> dict[str, Any]:
    """Flatten a result document into scalar columns; reads nothing but `document`."""

    classification = document.get("classification") or {}
    lint_summary = document.get("lintSummary") or {}
    storyboard = document.get("storyboard") or {}
    breakdown = storyboard.get("scoreBreakdown") or {}
    overview = storyboard.get("overview") or {}

    projection: dict[str, Any] = {
        "deterministic_score": breakdown.get("overall"),
        "lint_score": lint_summary.get("score"),
        "lint_base_score": lint_summary.get("baseScore"),
        "lint_bonus_points": lint_summary.get("bonusPoints"),
        "lint_error_count": lint_summary.get("errors"),
        "lint_warning_count": lint_summary.get("warnings"),
        "video_format": classification.get("format"),
        "format_confidence": classification.get("confidence"),
        "score_niche": breakdown.get("niche"),
    }

    category_scores = breakdown.get("categories") or {}
    for category in CATEGORIES:
        projection[CATEGORY_COLUMNS[category]] = category_scores.get(category)

    for column, key in METADATA_COLUMNS.items():
        projection[column] = overview.get(key)

    for category, sub_scores in (breakdown.get("subScores") or {}).items():
        for name, value in sub_scores.items():
            projection[f"{category}_{name}_score"] = value

    for category, fields in (document.get("signals") or {}).items():
        for name, value in fields.items():
            projection[f"signal_{category}_{name}"] = value

    return projection


def normalize_hook_category(raw: Any) -> str:
    """Map free-text hook labels onto the known hook types; anything else is `Other`."""

    if not isinstance(raw, str) or not raw.strip():
        return FALLBACK_HOOK_CATEGORY

    needle = _fold(raw)
    for category in HOOK_CATEGORIES:
        if needle == _fold(category):
            return category
    for category in HOOK_CATEGORIES:
        aliases = [_fold(part) for part in category.replace("(", "/").replace(")", "").split("/")]
        if needle in aliases:
            return category
    return FALLBACK_HOOK_CATEGORY


def _normalized_overview(details: dict[str, Any]) -> dict[str, Any]:
    raw_overview = details.get("overview")
    overview = dict(raw_overview) if isinstance(raw_overview, dict) else {}
    for key in METADATA_COLUMNS.values():
        if key not in overview and key in details:
            overview[key] = details[key]
    overview["hookCategory"] = normalize_hook_category(overview.get("hookCategory"))
    return overview


def _fold(text: str) -> str:
    return " ".join(text.lower().replace("-", " ").split())

