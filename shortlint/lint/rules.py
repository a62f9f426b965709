"""Format-scoped lint rule catalog.

Each rule inspects extracted signals (and, for wording rules, the transcript)
and, when it fires, renders a message and an imperative suggestion. Rules that
concern a specific part of the video point at a beat so the UI can highlight it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Literal

from shortlint.models import VIDEO_FORMATS, Beat, Narrative, Severity, VideoSignals
from shortlint.scoring.calculator import words_per_second
from shortlint.scoring.thresholds import FILLER_FREE_ALLOWANCE, MAX_GOOD_PAUSES, WPS_ACCEPTABLE_BAND

BeatAnchor = Literal["hook", "payoff", "none"]
Predicate = Callable[[VideoSignals, Narrative, str], bool]
Template = Callable[[VideoSignals, str], str]

ALL_FORMATS: frozenset[str] = frozenset(VIDEO_FORMATS)
VOICE_FORMATS: frozenset[str] = frozenset({"talking_head", "demo"})

HOOK_DEADLINE_SECONDS = {"talking_head": 3.0, "gameplay": 2.0, "demo": 3.0, "other": 3.0}
DURATION_RANGES_SECONDS = {
    "talking_head": (15.0, 90.0),
    "gameplay": (10.0, 30.0),
    "demo": (15.0, 60.0),
    "other": (15.0, 60.0),
}
GENERIC_OPENERS = (
    "today i want to talk about",
    "in this video",
    "hey guys",
    "hi guys",
    "what's up guys",
    "welcome back",
    "so today",
)
HOOK_BEAT_TYPES = {"hook"}
PAYOFF_BEAT_TYPES = {"payoff", "cta"}


@dataclass(frozen=True, slots=True)
class LintRule:
    id: str
    name: str
    category: str
    severity: Severity
    formats: frozenset[str]
    detect: Predicate
    message: Template
    suggestion: Template
    anchor: BeatAnchor = "none"

    def applies_to(self, video_format: str) -> bool:
        return video_format in self.formats


@dataclass(frozen=True, slots=True)
class BonusRule:
    id: str
    label: str
    points: int
    detect: Callable[[VideoSignals], bool]


def _hook_deadline(video_format: str) -> float:
    return HOOK_DEADLINE_SECONDS.get(video_format, 3.0)


def _duration_range(video_format: str) -> tuple[float, float]:
    return DURATION_RANGES_SECONDS.get(video_format, DURATION_RANGES_SECONDS["other"])


def _opens_generically(narrative: Narrative) -> bool:
    opening = narrative.transcript.strip().lower()
    return any(opening.startswith(phrase) for phrase in GENERIC_OPENERS)


def _wps(signals: VideoSignals) -> float:
    return words_per_second(signals.clarity.word_count, signals.clarity.spoken_duration)


def _pace_out_of_band(signals: VideoSignals) -> bool:
    if signals.clarity.word_count == 0:
        return False
    low, high = WPS_ACCEPTABLE_BAND
    return not low <= _wps(signals) <= high


def _duration_out_of_range(signals: VideoSignals, video_format: str) -> bool:
    low, high = _duration_range(video_format)
    return not low <= signals.clarity.spoken_duration <= high


RULES: tuple[LintRule, ...] = (
    LintRule(
        id="hook_late_claim",
        name="Hook Within 3 Seconds",
        category="hook",
        severity="error",
        formats=ALL_FORMATS,
        detect=lambda s, n, f: s.hook.time_to_claim > _hook_deadline(f),
        message=lambda s, f: (
            f"First claim lands at {s.hook.time_to_claim:.1f}s; viewers decide within "
            f"{_hook_deadline(f):.0f}s."
        ),
        suggestion=lambda s, f: f"Cut everything before {s.hook.time_to_claim:.1f}s and open on the claim.",
        anchor="hook",
    ),
    LintRule(
        id="generic_opener",
        name="Generic Opener",
        category="hook",
        severity="warning",
        formats=VOICE_FORMATS,
        detect=lambda s, n, f: _opens_generically(n),
        message=lambda s, f: "Opening line is a generic filler phrase instead of the value.",
        suggestion=lambda s, f: "Replace the intro phrase with the main point: \"Most people do X wrong.\"",
        anchor="hook",
    ),
    LintRule(
        id="no_clear_promise",
        name="No Clear Promise Early",
        category="hook",
        severity="warning",
        formats=VOICE_FORMATS,
        detect=lambda s, n, f: s.hook.specificity == 0 and s.hook.question_or_contradiction == 0,
        message=lambda s, f: "Hook has no concrete detail, question, or contradiction to promise value.",
        suggestion=lambda s, f: "Add a one-line promise with a number: \"Here's how to X in 7 days.\"",
        anchor="hook",
    ),
    LintRule(
        id="flat_opening",
        name="High Energy Opening",
        category="hook",
        severity="warning",
        formats=frozenset({"talking_head", "gameplay"}),
        detect=lambda s, n, f: s.hook.pattern_break <= 2,
        message=lambda s, f: f"Opening pattern break is weak ({s.hook.pattern_break:g}/5).",
        suggestion=lambda s, f: "Start on a punch-in zoom, sound hit, or mid-action frame.",
        anchor="hook",
    ),
    LintRule(
        id="poor_audio",
        name="Clear Audio",
        category="audio",
        severity="error",
        formats=ALL_FORMATS,
        detect=lambda s, n, f: s.delivery.audio_quality <= 2,
        message=lambda s, f: f"Audio quality is poor ({s.delivery.audio_quality:g}/5): noise or distortion.",
        suggestion=lambda s, f: "Re-record with a close mic or run noise reduction before export.",
    ),
    LintRule(
        id="unstable_loudness",
        name="Balanced Audio Levels",
        category="audio",
        severity="warning",
        formats=frozenset({"talking_head", "gameplay", "demo"}),
        detect=lambda s, n, f: s.delivery.loudness_stability <= 2,
        message=lambda s, f: f"Loudness jumps around ({s.delivery.loudness_stability:g}/5).",
        suggestion=lambda s, f: "Normalize voice to a steady level and duck music under speech.",
    ),
    LintRule(
        id="speaking_pace",
        name="Optimal Speaking Pace",
        category="pacing",
        severity="warning",
        formats=VOICE_FORMATS,
        detect=lambda s, n, f: _pace_out_of_band(s),
        message=lambda s, f: (
            f"Speaking pace is {_wps(s):.2f} words/s, outside "
            f"{WPS_ACCEPTABLE_BAND[0]:g}-{WPS_ACCEPTABLE_BAND[1]:g} words/s."
        ),
        suggestion=lambda s, f: (
            "Cut dead air and tighten sentences." if _wps(s) < WPS_ACCEPTABLE_BAND[0] else "Slow down and drop one idea."
        ),
    ),
    LintRule(
        id="filler_words",
        name="Filler Words",
        category="audio",
        severity="warning",
        formats=VOICE_FORMATS,
        detect=lambda s, n, f: s.delivery.filler_word_count > FILLER_FREE_ALLOWANCE,
        message=lambda s, f: f"{s.delivery.filler_word_count} filler words (um, uh, like) detected.",
        suggestion=lambda s, f: "Cut every \"um\" and \"uh\" with jump cuts.",
    ),
    LintRule(
        id="hesitant_pauses",
        name="Hesitant Delivery",
        category="pacing",
        severity="info",
        formats=frozenset({"talking_head"}),
        detect=lambda s, n, f: s.delivery.pause_count > MAX_GOOD_PAUSES,
        message=lambda s, f: f"{s.delivery.pause_count} pauses read as hesitation.",
        suggestion=lambda s, f: f"Keep at most {MAX_GOOD_PAUSES} deliberate pauses; cut the rest.",
    ),
    LintRule(
        id="duration",
        name="Optimal Duration",
        category="structure",
        severity="info",
        formats=ALL_FORMATS,
        detect=lambda s, n, f: _duration_out_of_range(s, f),
        message=lambda s, f: (
            f"Video runs {s.clarity.spoken_duration:.0f}s; {f.replace('_', ' ')} shorts retain best at "
            f"{_duration_range(f)[0]:.0f}-{_duration_range(f)[1]:.0f}s."
        ),
        suggestion=lambda s, f: f"Trim or extend to {_duration_range(f)[0]:.0f}-{_duration_range(f)[1]:.0f}s.",
    ),
    LintRule(
        id="no_payoff",
        name="No Payoff / No Answer",
        category="structure",
        severity="error",
        formats=ALL_FORMATS,
        detect=lambda s, n, f: not s.structure.payoff_present,
        message=lambda s, f: "Video ends without delivering the promised answer or result.",
        suggestion=lambda s, f: "Add a clear final takeaway: a concrete step, list, or explicit conclusion.",
        anchor="payoff",
    ),
    LintRule(
        id="scattered_message",
        name="Single Core Message",
        category="structure",
        severity="warning",
        formats=frozenset({"talking_head", "demo", "other"}),
        detect=lambda s, n, f: s.clarity.topic_jump_count >= 3,
        message=lambda s, f: f"{s.clarity.topic_jump_count} topic jumps split the video across several ideas.",
        suggestion=lambda s, f: "Keep one idea; move the others to separate shorts.",
    ),
    LintRule(
        id="beat_pacing",
        name="Beat Pacing",
        category="pacing",
        severity="warning",
        formats=ALL_FORMATS,
        detect=lambda s, n, f: s.structure.beat_count < 2 or s.structure.beat_count > 8,
        message=lambda s, f: f"{s.structure.beat_count} beats; shorts hold attention best with 3-6.",
        suggestion=lambda s, f: (
            "Split the video into hook, build-up, and payoff beats."
            if s.structure.beat_count < 2
            else "Merge neighbouring beats until 3-6 remain."
        ),
    ),
    LintRule(
        id="repetitive",
        name="Repetitive Content",
        category="retention",
        severity="warning",
        formats=ALL_FORMATS,
        detect=lambda s, n, f: s.clarity.redundancy >= 4,
        message=lambda s, f: f"Content repeats itself (redundancy {s.clarity.redundancy:g}/5).",
        suggestion=lambda s, f: "Cut repeated points; say each thing once.",
    ),
    LintRule(
        id="complex_sentences",
        name="Complex Sentences",
        category="retention",
        severity="info",
        formats=VOICE_FORMATS,
        detect=lambda s, n, f: s.clarity.sentence_complexity >= 4,
        message=lambda s, f: f"Sentences are hard to follow (complexity {s.clarity.sentence_complexity:g}/5).",
        suggestion=lambda s, f: "Break long sentences into short spoken lines.",
    ),
    LintRule(
        id="monotone",
        name="Energy Variation",
        category="retention",
        severity="info",
        formats=ALL_FORMATS,
        detect=lambda s, n, f: not s.delivery.energy_curve_present,
        message=lambda s, f: "Energy stays flat from start to finish.",
        suggestion=lambda s, f: "Add one energy shift: a music drop, zoom, or louder line before the payoff.",
    ),
    LintRule(
        id="no_progress_markers",
        name="Signposted Steps",
        category="structure",
        severity="info",
        formats=frozenset({"demo"}),
        detect=lambda s, n, f: s.structure.progress_marker_count == 0,
        message=lambda s, f: "Steps are not signposted, so viewers lose track of progress.",
        suggestion=lambda s, f: "Label steps on screen: \"Step 1\", \"Next\", \"Finally\".",
    ),
)

BONUS_RULES: tuple[BonusRule, ...] = (
    BonusRule(id="instant_hook", label="Instant hook", points=2, detect=lambda s: s.hook.time_to_claim <= 1.0),
    BonusRule(id="clear_payoff", label="Clear payoff", points=3, detect=lambda s: s.structure.payoff_present),
    BonusRule(id="loop_cue", label="Loop cue", points=3, detect=lambda s: s.structure.loop_cue_present),
    BonusRule(
        id="signposted",
        label="Signposted structure",
        points=2,
        detect=lambda s: s.structure.progress_marker_count >= 3,
    ),
)


def rules_for_format(video_format: str) -> list[LintRule]:
    return [rule for rule in RULES if rule.applies_to(video_format)]


def get_rule(rule_id: str) -> LintRule | None:
    return next((rule for rule in RULES if rule.id == rule_id), None)


def locate_beat(anchor: BeatAnchor, narrative: Narrative, signals: VideoSignals) -> tuple[str | None, int | None]:
    """Map a violation to (timestamp, beat number) for highlighting."""

    if anchor == "none":
        return None, None

    beats = sorted(narrative.beats, key=lambda beat: (beat.start_time, beat.beat_number))
    if anchor == "hook":
        beat = _first_of_type(beats, HOOK_BEAT_TYPES) or (beats[0] if beats else None)
        if beat is None:
            return _format_range(0.0, max(signals.hook.time_to_claim, 3.0)), None
        return _format_range(beat.start_time, beat.end_time), beat.beat_number

    beat = _first_of_type(list(reversed(beats)), PAYOFF_BEAT_TYPES) or (beats[-1] if beats else None)
    if beat is None:
        return None, None
    return _format_range(beat.start_time, beat.end_time), beat.beat_number


def _first_of_type(beats: list[Beat], types: set[str]) -> Beat | None:
    return next((beat for beat in beats if beat.type.lower() in types), None)


def _format_range(start: float, end: float) -> str:
    return f"{_format_clock(start)}-{_format_clock(end)}"


def _format_clock(seconds: float) -> str:
    whole = max(0, int(seconds))
    return f"{whole // 60}:{whole % 60:02d}"
