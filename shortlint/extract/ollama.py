from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Protocol, TypeVar
from urllib import request
from urllib.error import HTTPError, URLError

from shortlint.errors import ExtractionFailure, ParseFailure, StepFailure
from shortlint.extract.parsing import decode_json_object, parse_analysis, parse_classification
from shortlint.models import Analysis, Classification

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "qwen2.5vl:7b"
DEFAULT_ENDPOINT = "http://localhost:11434"
DEFAULT_TIMEOUT_SECONDS = 90
DEFAULT_MAX_RETRIES = 0
DEFAULT_PROMPT_DIR = Path("prompts")

PROMPT_FILES = {
    "classify": "classify_prompt.txt",
    "signals": "signals_prompt.txt",
    "storyboard": "storyboard_prompt.txt",
}

TRANSPORT_ERRORS = (HTTPError, URLError, TimeoutError, OSError)

T = TypeVar("T")


class SignalExtractor(Protocol):
    def classify(self, video_ref: str) -> Classification: ...

    def analyze(self, video_ref: str, instructions: str) -> Analysis: ...


class OllamaSignalExtractor:
    """Signal extractor backed by an Ollama-compatible `/api/generate` endpoint in JSON mode."""

    def __init__(
        self,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        model: str = DEFAULT_MODEL,
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        prompt_dir: Path = DEFAULT_PROMPT_DIR,
    ) -> None:
        self.endpoint = endpoint
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.prompt_dir = Path(prompt_dir)

    def classify(self, video_ref: str) -> Classification:
        return self._generate("classify", video_ref, parse_classification)

    def analyze(self, video_ref: str, instructions: str) -> Analysis:
        if instructions not in {"signals", "storyboard"}:
            raise ValueError(f"Unsupported analysis instructions: {instructions}")
        require_signals = instructions == "signals"
        return self._generate(
            instructions,
            video_ref,
            lambda payload: parse_analysis(payload, require_signals=require_signals),
        )

    def _generate(self, purpose: str, video_ref: str, parse: Callable[[dict[str, Any]], T]) -> T:
        prompt = self._format_prompt(purpose, video_ref)
        attempts = max(0, self.max_retries) + 1
        error: StepFailure = ExtractionFailure(f"{purpose} request was not attempted")

        for attempt in range(1, attempts + 1):
            try:
                response_text = _request_ollama(
                    endpoint=self.endpoint,
                    model=self.model,
                    prompt=prompt,
                    timeout_seconds=self.timeout_seconds,
                )
                return parse(decode_json_object(response_text))
            except ParseFailure as exc:
                error = exc
            except (ValueError, *TRANSPORT_ERRORS) as exc:
                error = ExtractionFailure(f"{purpose} request failed: {exc}")
            logger.warning("Extractor %s attempt %d/%d failed: %s", purpose, attempt, attempts, error)

        raise error

    def _format_prompt(self, purpose: str, video_ref: str) -> str:
        template_path = self.prompt_dir / PROMPT_FILES[purpose]
        template = template_path.read_text(encoding="utf-8").strip()
        return f"{template}\n\nVideo reference: {video_ref}\n"


def _request_ollama(*, endpoint: str, model: str, prompt: str, timeout_seconds: int) -> str:
    body = json.dumps(
        {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {"temperature": 0},
        }
    ).encode("utf-8")

    req = request.Request(
        f"{endpoint.rstrip('/')}/api/generate",
        data=body,
        method="POST",
        headers={"Content-Type": "application/json"},
    )

    with request.urlopen(req, timeout=timeout_seconds) as response:
        payload = json.loads(response.read().decode("utf-8"))

    if not isinstance(payload, dict):
        raise ValueError(f"Extractor endpoint returned {type(payload).__name__} instead of a JSON object.")
    if payload.get("error"):
        raise ValueError(f"Extractor endpoint reported an error: {payload['error']}")

    content = payload.get("response")
    if not isinstance(content, str) or not content.strip():
        raise ValueError("Extractor endpoint returned no analysis text in the 'response' field.")
    return content
