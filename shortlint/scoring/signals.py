from __future__ import annotations

import math
from typing import Any, Mapping

from shortlint.errors import InvalidSignals
from shortlint.models import ClaritySignals, DeliverySignals, HookSignals, StructureSignals, VideoSignals

RATING_MIN = 1.0
RATING_MAX = 5.0

# field name -> kind; kinds: "count", "seconds", "positive_seconds", "rating", "flag"
SIGNAL_SCHEMA: dict[str, dict[str, str]] = {
    "hook": {
        "time_to_claim": "seconds",
        "pattern_break": "rating",
        "specificity": "count",
        "question_or_contradiction": "count",
    },
    "structure": {
        "beat_count": "count",
        "progress_marker_count": "count",
        "payoff_present": "flag",
        "loop_cue_present": "flag",
    },
    "clarity": {
        "word_count": "count",
        "spoken_duration": "positive_seconds",
        "sentence_complexity": "rating",
        "topic_jump_count": "count",
        "redundancy": "rating",
    },
    "delivery": {
        "loudness_stability": "rating",
        "audio_quality": "rating",
        "pause_count": "count",
        "filler_word_count": "count",
        "energy_curve_present": "flag",
    },
}

_GROUP_TYPES = {
    "hook": HookSignals,
    "structure": StructureSignals,
    "clarity": ClaritySignals,
    "delivery": DeliverySignals,
}


def signals_from_payload(payload: Any) -> VideoSignals:
    """Validate a nested signal mapping and build immutable VideoSignals.

    Every field is required; missing fields raise instead of being defaulted.
    """

    if not isinstance(payload, Mapping):
        raise InvalidSignals("Signals must be an object with hook/structure/clarity/delivery groups.")

    groups: dict[str, Any] = {}
    for group_name, fields in SIGNAL_SCHEMA.items():
        raw_group = payload.get(group_name)
        if not isinstance(raw_group, Mapping):
            raise InvalidSignals(f"Missing signal group '{group_name}'.")

        values = {
            field_name: _coerce_field(f"{group_name}.{field_name}", raw_group.get(field_name), kind)
            for field_name, kind in fields.items()
        }
        groups[group_name] = _GROUP_TYPES[group_name](**values)

    return VideoSignals(**groups)


def validate_signals(signals: Any) -> VideoSignals:
    """Re-check VideoSignals built outside `signals_from_payload` and return a normalized copy."""

    if not isinstance(signals, VideoSignals):
        raise InvalidSignals(f"Expected VideoSignals, got {type(signals).__name__}.")
    return signals_from_payload(signals.to_dict())


def _coerce_field(path: str, value: Any, kind: str) -> Any:
    if value is None:
        raise InvalidSignals(f"Missing required signal '{path}'.")

    if kind == "flag":
        if not isinstance(value, bool):
            raise InvalidSignals(f"Signal '{path}' must be a boolean.")
        return value

    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidSignals(f"Signal '{path}' must be a finite number.")

    if kind == "count":
        if value < 0 or float(value) != int(value):
            raise InvalidSignals(f"Signal '{path}' must be a non-negative integer.")
        return int(value)

    if kind == "seconds":
        if value < 0:
            raise InvalidSignals(f"Signal '{path}' must be non-negative.")
        return float(value)

    if kind == "positive_seconds":
        if value <= 0:
            raise InvalidSignals(f"Signal '{path}' must be greater than zero.")
        return float(value)

    # Ratings drift slightly outside the 1-5 scale in extractor output; clamp them.
    return max(RATING_MIN, min(RATING_MAX, float(value)))
