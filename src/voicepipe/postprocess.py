# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Language-model post-processing for voicepipe.

Sends the dictionary-substituted transcript to a local LLM service with a
preset or custom prompt. Any failure returns the original text with the
error attached; post-processing never blocks delivery.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import requests

from .backends import PostProcessBackend, create_backend
from .backends.presets import resolve_prompt
from .config import PostProcessConfig
from .errors import PostProcessingError
from .history import History
from .utils import log, truncate

# Consecutive failures before requests are paused
BACKOFF_FAILURES = 3
BACKOFF_SECONDS = 60


@dataclass(frozen=True)
class PostProcessingJob:
    input_text: str
    config: PostProcessConfig
    language: Optional[str] = None
    dictionary_hint: str = ""

    @property
    def endpoint(self) -> str:
        return self.config.base_url

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def mode(self) -> str:
        return self.config.mode

    @property
    def timeout(self) -> int:
        return self.config.timeout


@dataclass(frozen=True)
class PostProcessingResult:
    text: str
    error: Optional[str] = None
    truncated_input: bool = False
    latency_ms: int = 0
    refined: bool = False


def prepare_transcript(text: str, max_chars: int) -> Tuple[str, bool]:
    """Trim text and cut it to max_chars characters (0 = no limit)."""
    trimmed = text.strip()
    if max_chars <= 0 or len(trimmed) <= max_chars:
        return trimmed, False
    return trimmed[:max_chars], True


class PostProcessor:
    """Runs post-processing jobs against the configured backend."""

    def __init__(
        self,
        history: Optional[History] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._history = history
        self._session = session
        self._clock = clock
        self._backends: Dict[str, PostProcessBackend] = {}
        self._lock = threading.Lock()
        self._failures = 0
        self._paused_until: Optional[float] = None

    def process(self, job: PostProcessingJob) -> PostProcessingResult:
        """Refine job.input_text, falling back to it on any failure."""
        text = job.input_text
        config = job.config

        if not config.enabled or not text.strip():
            return PostProcessingResult(text)

        wait = self._check_backoff()
        if wait is not None:
            message = f"Paused after repeated failures, retry in {wait}s"
            log(f"Post-processing skipped: {message}", "WARN")
            return PostProcessingResult(text, error=message)

        prepared, truncated = prepare_transcript(text, config.max_input_chars)
        if truncated:
            log(f"Post-processing input truncated to {config.max_input_chars} chars", "WARN")

        prompt = resolve_prompt(config, prepared, job.dictionary_hint, job.language)
        backend = self._backend(config.backend)

        log(f"Refining with {config.model} ({config.mode}, {len(prepared)} chars)", "AI")
        t0 = self._clock()
        try:
            output = self._complete(backend, prompt, config)
        except PostProcessingError as e:
            latency_ms = int((self._clock() - t0) * 1000)
            self._register_failure()
            log(f"Post-processing failed, keeping transcript: {e}", "WARN")
            return PostProcessingResult(text, error=str(e), truncated_input=truncated, latency_ms=latency_ms)
        latency_ms = int((self._clock() - t0) * 1000)

        self._note_success()
        log(f"Refined in {latency_ms} ms: {truncate(output)}", "OK")
        self._record(prepared, output, config, latency_ms, truncated)
        return PostProcessingResult(
            output,
            truncated_input=truncated,
            latency_ms=latency_ms,
            refined=True,
        )

    def close(self):
        with self._lock:
            backends = list(self._backends.values())
            self._backends.clear()
        for backend in backends:
            backend.close()

    # ─────────────────────────────────────────────────────────────────
    # Private methods
    # ─────────────────────────────────────────────────────────────────

    def _backend(self, backend_id: str) -> PostProcessBackend:
        with self._lock:
            backend = self._backends.get(backend_id)
            if backend is None:
                backend = create_backend(backend_id, self._session)
                self._backends[backend_id] = backend
            return backend

    def _complete(self, backend: PostProcessBackend, prompt, config: PostProcessConfig) -> str:
        try:
            output, error = backend.complete(prompt, config)
        except Exception as e:
            log(f"Unexpected {backend.name} error: {type(e).__name__}: {e}", "ERR")
            raise PostProcessingError(str(e)[:80]) from e
        if error or not output:
            raise PostProcessingError(error or "Empty response")
        return output

    def _record(self, input_text: str, output: str, config: PostProcessConfig, latency_ms: int, truncated: bool):
        if self._history is None:
            return
        self._history.limit = config.history_limit
        try:
            self._history.record(
                input_text,
                output,
                endpoint=config.base_url,
                preset=config.mode,
                model=config.model,
                latency_ms=latency_ms,
                truncated_input=truncated,
            )
        except OSError as e:
            log(f"History write failed: {e}", "WARN")

    def _check_backoff(self) -> Optional[int]:
        with self._lock:
            if self._paused_until is None:
                return None
            remaining = self._paused_until - self._clock()
            if remaining > 0:
                return max(1, int(remaining))
            self._paused_until = None
            return None

    def _register_failure(self):
        with self._lock:
            self._failures += 1
            if self._failures >= BACKOFF_FAILURES:
                self._failures = 0
                self._paused_until = self._clock() + BACKOFF_SECONDS
                log(f"Post-processing paused for {BACKOFF_SECONDS}s", "WARN")

    def _note_success(self):
        with self._lock:
            self._failures = 0
            self._paused_until = None
