from __future__ import annotations

import json
import logging
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, Optional, TypeVar

import typer

from shortlint.config import Settings, load_settings
from shortlint.errors import ShortlintError
from shortlint.extract.parsing import parse_narrative
from shortlint.jobs.orchestrator import STEPS, JobOrchestrator
from shortlint.lint.engine import LintScoring, lint
from shortlint.logging_config import configure_logging
from shortlint.models import TERMINAL_STATUSES, TRANSIENT_STATUSES, VIDEO_FORMATS, JobStatus, Narrative
from shortlint.scoring.calculator import score
from shortlint.scoring.signals import signals_from_payload

app = typer.Typer(help="Short-form video linting and deterministic scoring.")
config_app = typer.Typer(help="Configuration commands.")
jobs_app = typer.Typer(help="Analysis job commands.")

app.add_typer(config_app, name="config")
app.add_typer(jobs_app, name="jobs")

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONFIG_OPTION = typer.Option(
    Path("configs/default.yaml"),
    "--config",
    "-c",
    envvar="SHORTLINT_CONFIG",
    help="Path to YAML configuration file.",
)


def _run_with_progress(step_index: int, total_steps: int, label: str, work: Callable[[], T]) -> T:
    typer.echo(f"[{step_index}/{total_steps}] {label}...", err=True)
    started_at = perf_counter()
    try:
        result = work()
    except Exception:
        elapsed = perf_counter() - started_at
        typer.echo(f"[{step_index}/{total_steps}] {label} failed after {elapsed:.1f}s", err=True)
        raise
    elapsed = perf_counter() - started_at
    typer.echo(f"[{step_index}/{total_steps}] {label} done in {elapsed:.1f}s", err=True)
    return result


def _bootstrap(config_path: Path) -> Settings:
    settings = load_settings(config_path)
    configure_logging(settings.logging)
    logger.debug("Loaded runtime settings from %s", config_path)
    return settings


def _build_orchestrator(settings: Settings) -> JobOrchestrator:
    return JobOrchestrator.from_settings(settings)


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _fail(exc: Exception) -> None:
    logger.error("Command failed: %s", exc)
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1) from exc


def _read_json(path: Path) -> dict[str, Any]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Expected a JSON object in {path}")
    return payload


@config_app.command("show")
def show_config(config_path: Path = CONFIG_OPTION) -> None:
    """Print resolved runtime configuration."""

    settings = _bootstrap(config_path)
    _echo_json(settings.model_dump(mode="json"))


@jobs_app.command("create")
def create_job(
    url: Optional[str] = typer.Option(None, "--url", help="Public video URL."),
    file_reference: Optional[str] = typer.Option(None, "--file", help="Reference to an uploaded file."),
    niche: Optional[str] = typer.Option(None, "--niche", help="Niche used to pick category weights."),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Create a pending analysis job and print its id."""

    settings = _bootstrap(config_path)
    try:
        created = _build_orchestrator(settings).create_job(video_url=url, file_reference=file_reference, niche=niche)
    except (ShortlintError, ValueError, OSError) as exc:
        _fail(exc)
    _echo_json(created)


@jobs_app.command("advance")
def advance_job(job_id: str, config_path: Path = CONFIG_OPTION) -> None:
    """Run at most one pending step of a job and print its snapshot."""

    settings = _bootstrap(config_path)
    try:
        snapshot = _build_orchestrator(settings).advance(job_id)
    except (ShortlintError, ValueError, OSError) as exc:
        _fail(exc)
    _echo_json(snapshot)


@jobs_app.command("run")
def run_job(job_id: str, config_path: Path = CONFIG_OPTION) -> None:
    """Advance a job step by step until it completes or fails."""

    settings = _bootstrap(config_path)
    try:
        orchestrator = _build_orchestrator(settings)
        snapshot = orchestrator.snapshot(job_id)
        if snapshot["status"] == JobStatus.FAILED.value:
            raise RuntimeError(f"Job {job_id} has failed: {snapshot['error_message']}")

        while JobStatus(snapshot["status"]) not in TERMINAL_STATUSES:
            if JobStatus(snapshot["status"]) in TRANSIENT_STATUSES:
                logger.info("Job %s is being processed by another caller; stopping.", job_id)
                break
            step = STEPS[snapshot["current_step"]]

            def _advance() -> dict[str, Any]:
                result = orchestrator.advance(job_id)
                if result["status"] == JobStatus.FAILED.value:
                    raise RuntimeError(result["error_message"])
                return result

            snapshot = _run_with_progress(step.index + 1, len(STEPS), step.label, _advance)
    except (ShortlintError, RuntimeError, ValueError, OSError) as exc:
        _fail(exc)
    _echo_json(snapshot)


@jobs_app.command("show")
def show_job(job_id: str, config_path: Path = CONFIG_OPTION) -> None:
    """Print a job snapshot without advancing it."""

    settings = _bootstrap(config_path)
    try:
        snapshot = _build_orchestrator(settings).snapshot(job_id)
    except (ShortlintError, ValueError, OSError) as exc:
        _fail(exc)
    _echo_json(snapshot)


@jobs_app.command("retry")
def retry_job(job_id: str, config_path: Path = CONFIG_OPTION) -> None:
    """Reset a failed job so its failed step is attempted again."""

    settings = _bootstrap(config_path)
    try:
        snapshot = _build_orchestrator(settings).retry(job_id)
    except (ShortlintError, ValueError, OSError) as exc:
        _fail(exc)
    _echo_json(snapshot)


@app.command("score")
def score_signals(
    signals_path: Path,
    niche: Optional[str] = typer.Option(None, "--niche", help="Niche weight table to apply."),
    video_format: Optional[str] = typer.Option(None, "--format", help="Detected video format."),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Score a signals JSON file (either the signals object or {"signals": ...})."""

    settings = _bootstrap(config_path)
    try:
        payload = _read_json(signals_path)
        signals = signals_from_payload(payload.get("signals", payload))
        breakdown = score(
            signals,
            niche,
            video_format=video_format,
            niche_weights=settings.scoring.niche_weights,
        )
    except (ShortlintError, ValueError, OSError) as exc:
        _fail(exc)
    _echo_json(breakdown.to_dict())


@app.command("lint")
def lint_signals(
    signals_path: Path,
    video_format: str = typer.Option("talking_head", "--format", help=f"One of {', '.join(VIDEO_FORMATS)}."),
    config_path: Path = CONFIG_OPTION,
) -> None:
    """Lint a JSON file holding {"signals": ..., "narrative": ...}."""

    settings = _bootstrap(config_path)
    try:
        payload = _read_json(signals_path)
        signals = signals_from_payload(payload.get("signals"))
        narrative_raw = payload.get("narrative")
        narrative = parse_narrative(narrative_raw) if isinstance(narrative_raw, dict) else Narrative()
        result = lint(signals, narrative, video_format, scoring=LintScoring(**settings.lint.model_dump()))
    except (ShortlintError, ValueError, OSError) as exc:
        _fail(exc)
    _echo_json(result.to_dict())


if __name__ == "__main__":
    app()
