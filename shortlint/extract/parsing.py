from __future__ import annotations

import json
import logging
import math
from typing import Any

from shortlint.errors import InvalidSignals, ParseFailure
from shortlint.models import VIDEO_FORMATS, Analysis, Beat, Classification, Narrative
from shortlint.scoring.signals import signals_from_payload

logger = logging.getLogger(__name__)

CODE_FENCE = "```"


def decode_json_object(text: str) -> dict[str, Any]:
    """Decode model output into a JSON object, tolerating a wrapping code fence."""

    cleaned = _strip_code_fence(text)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ParseFailure(f"Extractor output is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ParseFailure("Extractor output must be a JSON object.")
    return payload


def parse_classification(payload: dict[str, Any]) -> Classification:
    raw_format = payload.get("format")
    if not isinstance(raw_format, str) or not raw_format.strip():
        raise ParseFailure("Classification is missing 'format'.")

    video_format = raw_format.strip().lower().replace("-", "_").replace(" ", "_")
    if video_format not in VIDEO_FORMATS:
        logger.warning("Unknown video format '%s' from extractor; treating as 'other'.", raw_format)
        video_format = "other"

    confidence_raw = payload.get("confidence", 0.0)
    if isinstance(confidence_raw, bool) or not isinstance(confidence_raw, (int, float)):
        raise ParseFailure("Classification 'confidence' must be a number.")
    confidence = float(confidence_raw)
    if not math.isfinite(confidence):
        raise ParseFailure("Classification 'confidence' must be finite.")

    evidence_raw = payload.get("evidence", [])
    if isinstance(evidence_raw, str):
        evidence_raw = [evidence_raw]
    if not isinstance(evidence_raw, list):
        raise ParseFailure("Classification 'evidence' must be a list of strings.")

    return Classification(
        format=video_format,
        confidence=max(0.0, min(1.0, confidence)),
        evidence=[str(item).strip() for item in evidence_raw if str(item).strip()],
    )


def parse_analysis(payload: dict[str, Any], *, require_signals: bool) -> Analysis:
    narrative_raw = payload.get("narrative")
    if not isinstance(narrative_raw, dict):
        raise ParseFailure("Analysis is missing the 'narrative' object.")

    signals_raw = payload.get("signals")
    signals = None
    if signals_raw is not None:
        try:
            signals = signals_from_payload(signals_raw)
        except InvalidSignals as exc:
            raise ParseFailure(f"Extractor returned malformed signals: {exc}") from exc
    elif require_signals:
        raise ParseFailure("Analysis is missing the 'signals' object.")

    return Analysis(narrative=parse_narrative(narrative_raw), signals=signals)


def parse_narrative(payload: dict[str, Any]) -> Narrative:
    transcript = payload.get("transcript", "")
    if not isinstance(transcript, str):
        raise ParseFailure("Narrative 'transcript' must be a string.")

    beats_raw = payload.get("beats", [])
    if not isinstance(beats_raw, list):
        raise ParseFailure("Narrative 'beats' must be a list.")

    beats = [_parse_beat(index, item) for index, item in enumerate(beats_raw, start=1)]
    details = {key: value for key, value in payload.items() if key not in {"transcript", "beats"}}
    return Narrative(transcript=transcript, beats=beats, details=details)


def _parse_beat(index: int, payload: Any) -> Beat:
    if not isinstance(payload, dict):
        raise ParseFailure(f"Beat {index} must be an object.")
    try:
        start = float(payload.get("start_time", payload.get("startTime")))
        end = float(payload.get("end_time", payload.get("endTime")))
        number = int(payload.get("beat_number", payload.get("beatNumber", index)))
    except (TypeError, ValueError) as exc:
        raise ParseFailure(f"Beat {index} has invalid timing: {exc}") from exc
    if end < start:
        raise ParseFailure(f"Beat {index} ends before it starts.")
    return Beat(beat_number=number, start_time=start, end_time=end, type=str(payload.get("type", "")).strip())


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if not stripped.startswith(CODE_FENCE):
        return stripped
    lines = stripped.splitlines()[1:]
    if lines and lines[-1].strip() == CODE_FENCE:
        lines = lines[:-1]
    return "\n".join(lines).strip()
