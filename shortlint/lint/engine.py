from __future__ import annotations

from dataclasses import dataclass

from shortlint.lint.rules import BONUS_RULES, locate_beat, rules_for_format
from shortlint.models import VIDEO_FORMATS, LintResult, LintViolation, Narrative, VideoSignals
from shortlint.scoring.signals import validate_signals


@dataclass(frozen=True, slots=True)
class LintScoring:
    """Score model: base minus severity penalties, plus capped bonus points."""

    base_score: int = 100
    error_penalty: int = 10
    warning_penalty: int = 5
    info_penalty: int = 2
    bonus_ceiling: int = 10

    def penalty_for(self, severity: str) -> int:
        if severity == "error":
            return self.error_penalty
        if severity == "warning":
            return self.warning_penalty
        return self.info_penalty


DEFAULT_LINT_SCORING = LintScoring()


def lint(
    signals: VideoSignals,
    narrative: Narrative | None,
    video_format: str,
    *,
    scoring: LintScoring = DEFAULT_LINT_SCORING,
) -> LintResult:
    """Evaluate the rules applicable to `video_format` and score the result.

    Unknown formats fall back to the generic `other` rule set.
    """

    signals = validate_signals(signals)
    resolved_format = video_format if video_format in VIDEO_FORMATS else "other"
    narrative = narrative or Narrative()
    rules = rules_for_format(resolved_format)

    violations: list[LintViolation] = []
    for rule in rules:
        if not rule.detect(signals, narrative, resolved_format):
            continue
        timestamp, beat_number = locate_beat(rule.anchor, narrative, signals)
        violations.append(
            LintViolation(
                rule_id=rule.id,
                rule_name=rule.name,
                severity=rule.severity,
                category=rule.category,
                message=rule.message(signals, resolved_format),
                suggestion=rule.suggestion(signals, resolved_format),
                timestamp=timestamp,
                beat_number=beat_number,
            )
        )

    penalty = sum(scoring.penalty_for(violation.severity) for violation in violations)

    bonus_details: list[str] = []
    earned_bonus = 0
    for bonus in BONUS_RULES:
        if bonus.detect(signals):
            earned_bonus += bonus.points
            bonus_details.append(f"{bonus.label}: +{bonus.points}")

    # Bonus can only win back lost points, never lift the score past the base.
    bonus_points = min(earned_bonus, max(0, scoring.bonus_ceiling), penalty)
    score = max(0, min(100, scoring.base_score - penalty + bonus_points))

    errors = sum(1 for violation in violations if violation.severity == "error")
    warnings = sum(1 for violation in violations if violation.severity == "warning")
    infos = len(violations) - errors - warnings

    return LintResult(
        format=resolved_format,
        violations=violations,
        total_rules=len(rules),
        passed=len(rules) - len(violations),
        warnings=warnings,
        errors=errors,
        infos=infos,
        base_score=scoring.base_score,
        bonus_points=bonus_points,
        bonus_details=bonus_details,
        score=score,
    )
