"""Threshold and weight tables for deterministic scoring.

Every transformation is a lookup over discrete buckets so that each sub-score
can be enumerated at its boundaries. Weights within a table must sum to 1.0;
`validate_weight_table` is applied to every table below at import time.
"""

from __future__ import annotations

import math
from typing import Mapping

WEIGHT_TOLERANCE = 1e-9

# (upper bound in seconds, inclusive) -> score; anything slower scores TIME_TO_CLAIM_FLOOR.
TIME_TO_CLAIM_BUCKETS: tuple[tuple[float, int], ...] = (
    (1.0, 100),
    (2.0, 85),
    (3.0, 70),
    (4.0, 55),
    (5.0, 40),
    (7.0, 20),
)
TIME_TO_CLAIM_FLOOR = 10

# 1-5 ratings, indexed by the rating rounded half-up.
RATING_SCORES: dict[int, int] = {1: 0, 2: 25, 3: 50, 4: 75, 5: 100}
INVERTED_RATING_SCORES: dict[int, int] = {1: 100, 2: 75, 3: 50, 4: 25, 5: 0}

# Count tables: the last entry applies to every count at or above its key.
SPECIFICITY_SCORES: tuple[tuple[int, int], ...] = ((0, 0), (1, 50), (2, 75), (3, 100))
QUESTION_SCORES: tuple[tuple[int, int], ...] = ((0, 0), (1, 100))
PROGRESS_MARKER_SCORES: tuple[tuple[int, int], ...] = ((0, 0), (1, 60), (2, 80), (3, 100))
TOPIC_JUMP_SCORES: tuple[tuple[int, int], ...] = ((0, 100), (1, 75), (2, 50), (3, 25))

BEAT_COUNT_IDEAL_MIN = 3
BEAT_COUNT_IDEAL_MAX = 6
BEAT_COUNT_PENALTY_BELOW = 30
BEAT_COUNT_PENALTY_ABOVE = 15
BEAT_COUNT_FLOOR = 10

# Ideal band edges are inclusive; each outer band excludes the edge it shares
# with the band inside it. WPS is rounded to WPS_PRECISION decimals before lookup.
WPS_PRECISION = 3
WPS_IDEAL_BAND = (3.0, 4.0)
WPS_ACCEPTABLE_BAND = (2.5, 4.5)
WPS_TOLERABLE_BAND = (2.0, 5.0)
WPS_IDEAL_SCORE = 100
WPS_ACCEPTABLE_SCORE = 85
WPS_TOLERABLE_SCORE = 65
WPS_TOO_SLOW_SCORE = 40
WPS_TOO_FAST_SCORE = 50

FILLER_FREE_ALLOWANCE = 2
FILLER_PENALTY = 15

NO_PAUSE_SCORE = 70
MAX_GOOD_PAUSES = 5
PAUSE_PENALTY = 10
PAUSE_FLOOR = 30

# Formats without meaningful speech score pauses/fillers with these neutral counts.
NON_VOICE_FORMATS = frozenset({"gameplay", "other"})
NEUTRAL_PAUSE_COUNT = 2
NEUTRAL_FILLER_COUNT = 0

PAYOFF_SCORES = (100, 0)
LOOP_CUE_SCORES = (100, 20)
ENERGY_CURVE_SCORES = (100, 40)

HOOK_WEIGHTS: dict[str, float] = {
    "time_to_claim": 0.35,
    "pattern_break": 0.25,
    "specificity": 0.25,
    "question_or_contradiction": 0.15,
}

STRUCTURE_WEIGHTS: dict[str, float] = {
    "beat_count": 0.30,
    "progress_markers": 0.25,
    "payoff": 0.30,
    "loop_cue": 0.15,
}

CLARITY_WEIGHTS: dict[str, float] = {
    "words_per_second": 0.30,
    "sentence_complexity": 0.25,
    "topic_jumps": 0.25,
    "redundancy": 0.20,
}

DELIVERY_WEIGHTS: dict[str, float] = {
    "loudness_stability": 0.35,
    "audio_quality": 0.30,
    "pauses": 0.10,
    "filler_words": 0.10,
    "energy_curve": 0.15,
}

SUB_SCORE_WEIGHTS: dict[str, dict[str, float]] = {
    "hook": HOOK_WEIGHTS,
    "structure": STRUCTURE_WEIGHTS,
    "clarity": CLARITY_WEIGHTS,
    "delivery": DELIVERY_WEIGHTS,
}

CATEGORIES: tuple[str, ...] = ("hook", "structure", "clarity", "delivery")

DEFAULT_NICHE = "default"

NICHE_WEIGHTS: dict[str, dict[str, float]] = {
    DEFAULT_NICHE: {"hook": 0.35, "structure": 0.25, "clarity": 0.25, "delivery": 0.15},
    "talking_head": {"hook": 0.35, "structure": 0.25, "clarity": 0.25, "delivery": 0.15},
    "gameplay": {"hook": 0.40, "structure": 0.30, "clarity": 0.15, "delivery": 0.15},
    "demo": {"hook": 0.35, "structure": 0.25, "clarity": 0.30, "delivery": 0.10},
    "other": {"hook": 0.40, "structure": 0.35, "clarity": 0.15, "delivery": 0.10},
    "tutorial": {"hook": 0.25, "structure": 0.25, "clarity": 0.35, "delivery": 0.15},
    "education": {"hook": 0.25, "structure": 0.25, "clarity": 0.35, "delivery": 0.15},
    "entertainment": {"hook": 0.45, "structure": 0.25, "clarity": 0.10, "delivery": 0.20},
}


def validate_weight_table(name: str, weights: Mapping[str, float], expected_keys: tuple[str, ...] | None = None) -> None:
    """Raise ValueError unless weights are non-negative, complete, and sum to 1.0."""

    if expected_keys is not None and set(weights) != set(expected_keys):
        raise ValueError(f"Weight table '{name}' must define exactly {sorted(expected_keys)}.")
    if any(weight < 0 for weight in weights.values()):
        raise ValueError(f"Weight table '{name}' contains negative weights.")
    total = math.fsum(weights.values())
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise ValueError(f"Weight table '{name}' sums to {total}, expected 1.0.")


for _category, _weights in SUB_SCORE_WEIGHTS.items():
    validate_weight_table(_category, _weights)
for _niche, _weights in NICHE_WEIGHTS.items():
    validate_weight_table(f"niche:{_niche}", _weights, CATEGORIES)
