"""Deterministic score calculator.

Pure functions from extracted signals to a 0-100 score breakdown. The same
signals and niche always produce the same integers.
"""

from __future__ import annotations

import math
from typing import Mapping

from shortlint.models import (
    CategoryScore,
    ClaritySignals,
    DeliverySignals,
    HookSignals,
    ScoreBreakdown,
    StructureSignals,
    VideoSignals,
)
from shortlint.scoring import thresholds as t
from shortlint.scoring.signals import validate_signals


def score(
    signals: VideoSignals,
    niche: str | None = None,
    *,
    video_format: str | None = None,
    niche_weights: Mapping[str, Mapping[str, float]] | None = None,
) -> ScoreBreakdown:
    """Score signals and combine categories with the niche's weight table.

    `video_format` switches pause/filler scoring to neutral values for formats
    without meaningful speech. `niche_weights` adds or replaces niche tables on
    top of the built-in ones; unknown niches resolve to the default table.
    """

    signals = validate_signals(signals)
    hook = score_hook(signals.hook)
    structure = score_structure(signals.structure)
    clarity = score_clarity(signals.clarity)
    delivery = score_delivery(signals.delivery, video_format=video_format)

    resolved_niche, weights = resolve_niche_weights(niche, niche_weights)
    overall = _to_score(
        hook.score * weights["hook"]
        + structure.score * weights["structure"]
        + clarity.score * weights["clarity"]
        + delivery.score * weights["delivery"]
    )

    return ScoreBreakdown(
        hook=hook,
        structure=structure,
        clarity=clarity,
        delivery=delivery,
        overall=overall,
        niche=resolved_niche,
    )


def resolve_niche_weights(
    niche: str | None,
    extra_tables: Mapping[str, Mapping[str, float]] | None = None,
) -> tuple[str, dict[str, float]]:
    tables: dict[str, Mapping[str, float]] = dict(t.NICHE_WEIGHTS)
    for name, table in (extra_tables or {}).items():
        t.validate_weight_table(f"niche:{name}", table, t.CATEGORIES)
        tables[_normalize_niche(name)] = table

    key = _normalize_niche(niche) if niche else t.DEFAULT_NICHE
    if key not in tables:
        key = t.DEFAULT_NICHE
    return key, {category: float(tables[key][category]) for category in t.CATEGORIES}


def score_hook(signals: HookSignals) -> CategoryScore:
    sub_scores = {
        "time_to_claim": score_time_to_claim(signals.time_to_claim),
        "pattern_break": score_rating(signals.pattern_break),
        "specificity": _lookup_count(t.SPECIFICITY_SCORES, signals.specificity),
        "question_or_contradiction": _lookup_count(t.QUESTION_SCORES, signals.question_or_contradiction),
    }
    return _combine(sub_scores, t.HOOK_WEIGHTS)


def score_structure(signals: StructureSignals) -> CategoryScore:
    sub_scores = {
        "beat_count": score_beat_count(signals.beat_count),
        "progress_markers": _lookup_count(t.PROGRESS_MARKER_SCORES, signals.progress_marker_count),
        "payoff": _flag(signals.payoff_present, t.PAYOFF_SCORES),
        "loop_cue": _flag(signals.loop_cue_present, t.LOOP_CUE_SCORES),
    }
    return _combine(sub_scores, t.STRUCTURE_WEIGHTS)


def score_clarity(signals: ClaritySignals) -> CategoryScore:
    sub_scores = {
        "words_per_second": score_words_per_second(signals.word_count, signals.spoken_duration),
        "sentence_complexity": score_rating(signals.sentence_complexity, inverted=True),
        "topic_jumps": _lookup_count(t.TOPIC_JUMP_SCORES, signals.topic_jump_count),
        "redundancy": score_rating(signals.redundancy, inverted=True),
    }
    return _combine(sub_scores, t.CLARITY_WEIGHTS)


def score_delivery(signals: DeliverySignals, *, video_format: str | None = None) -> CategoryScore:
    pause_count = signals.pause_count
    filler_count = signals.filler_word_count
    if video_format in t.NON_VOICE_FORMATS:
        pause_count = t.NEUTRAL_PAUSE_COUNT
        filler_count = t.NEUTRAL_FILLER_COUNT

    sub_scores = {
        "loudness_stability": score_rating(signals.loudness_stability),
        "audio_quality": score_rating(signals.audio_quality),
        "pauses": score_pauses(pause_count),
        "filler_words": score_filler_words(filler_count),
        "energy_curve": _flag(signals.energy_curve_present, t.ENERGY_CURVE_SCORES),
    }
    return _combine(sub_scores, t.DELIVERY_WEIGHTS)


def score_time_to_claim(seconds: float) -> int:
    for upper_bound, bucket_score in t.TIME_TO_CLAIM_BUCKETS:
        if seconds <= upper_bound:
            return bucket_score
    return t.TIME_TO_CLAIM_FLOOR


def score_beat_count(beat_count: int) -> int:
    if beat_count < t.BEAT_COUNT_IDEAL_MIN:
        penalty = (t.BEAT_COUNT_IDEAL_MIN - beat_count) * t.BEAT_COUNT_PENALTY_BELOW
    elif beat_count > t.BEAT_COUNT_IDEAL_MAX:
        penalty = (beat_count - t.BEAT_COUNT_IDEAL_MAX) * t.BEAT_COUNT_PENALTY_ABOVE
    else:
        penalty = 0
    return max(t.BEAT_COUNT_FLOOR, 100 - penalty)


def words_per_second(word_count: int, duration_seconds: float) -> float:
    return round(word_count / duration_seconds, t.WPS_PRECISION)


def score_words_per_second(word_count: int, duration_seconds: float) -> int:
    """Band lookup; ideal band edges are inclusive (3.0 and 4.0 both score 100)."""

    wps = words_per_second(word_count, duration_seconds)
    ideal_low, ideal_high = t.WPS_IDEAL_BAND
    acceptable_low, acceptable_high = t.WPS_ACCEPTABLE_BAND
    tolerable_low, tolerable_high = t.WPS_TOLERABLE_BAND

    if ideal_low <= wps <= ideal_high:
        return t.WPS_IDEAL_SCORE
    if acceptable_low <= wps <= acceptable_high:
        return t.WPS_ACCEPTABLE_SCORE
    if tolerable_low <= wps <= tolerable_high:
        return t.WPS_TOLERABLE_SCORE
    if wps < tolerable_low:
        return t.WPS_TOO_SLOW_SCORE
    return t.WPS_TOO_FAST_SCORE


def score_filler_words(filler_count: int) -> int:
    excess = max(0, filler_count - t.FILLER_FREE_ALLOWANCE)
    return max(0, 100 - excess * t.FILLER_PENALTY)


def score_pauses(pause_count: int) -> int:
    if pause_count == 0:
        return t.NO_PAUSE_SCORE
    if pause_count <= t.MAX_GOOD_PAUSES:
        return 100
    return max(t.PAUSE_FLOOR, 100 - (pause_count - t.MAX_GOOD_PAUSES) * t.PAUSE_PENALTY)


def score_rating(rating: float, *, inverted: bool = False) -> int:
    table = t.INVERTED_RATING_SCORES if inverted else t.RATING_SCORES
    bucket = min(max(round_half_up(rating), min(table)), max(table))
    return table[bucket]


def round_half_up(value: float) -> int:
    # Trim float noise first so e.g. 75.99999999999 and 76.0 land on the same integer.
    return math.floor(round(value, 9) + 0.5)


def _lookup_count(table: tuple[tuple[int, int], ...], count: int) -> int:
    result = table[0][1]
    for minimum, bucket_score in table:
        if count >= minimum:
            result = bucket_score
    return result


def _flag(value: bool, scores: tuple[int, int]) -> int:
    return scores[0] if value else scores[1]


def _combine(sub_scores: dict[str, int], weights: Mapping[str, float]) -> CategoryScore:
    clamped = {name: _clamp(value) for name, value in sub_scores.items()}
    weighted = math.fsum(clamped[name] * weight for name, weight in weights.items())
    return CategoryScore(score=_to_score(weighted), sub_scores=clamped)


def _to_score(value: float) -> int:
    return _clamp(round_half_up(value))


def _normalize_niche(niche: str) -> str:
    return niche.strip().lower().replace("-", "_").replace(" ", "_")


def _clamp(value: int, minimum: int = 0, maximum: int = 100) -> int:
    return max(minimum, min(maximum, value))
