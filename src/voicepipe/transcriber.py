# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Transcription invoker for voicepipe.

Wraps the engine call so the pipeline always gets a TranscriptionResult back,
never an exception: model readiness and empty audio are checked up front, the
engine runs on a daemon thread, and shutdown can abandon a call in flight.
Calls are serialized; a call still running after a timeout or cancel
holds the engine until it returns, and the timeout of the next request
only starts counting once that request reaches the engine.
"""

import threading
import time
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

import numpy as np

from .engines import TranscriptionEngine
from .errors import (
    BackendError,
    EmptyAudioError,
    ModelNotReadyError,
    TranscriptionCancelledError,
    VoicepipeError,
)
from .models import ModelManager, ModelState
from .utils import log, run_in_thread

# How often a waiting caller checks for cancellation
CANCEL_POLL_INTERVAL = 0.1


class FailureKind(Enum):
    MODEL_NOT_READY = "model_not_ready"
    EMPTY_AUDIO = "empty_audio"
    BACKEND_ERROR = "backend_error"
    CANCELLED = "cancelled"


_ERRORS = {
    FailureKind.MODEL_NOT_READY: ModelNotReadyError,
    FailureKind.EMPTY_AUDIO: EmptyAudioError,
    FailureKind.BACKEND_ERROR: BackendError,
    FailureKind.CANCELLED: TranscriptionCancelledError,
}


@dataclass(frozen=True)
class TranscriptionRequest:
    samples: np.ndarray
    model_id: str
    language: str = "auto"
    sample_rate: int = 16000
    model_path: Optional[Path] = None


@dataclass(frozen=True)
class TranscriptionResult:
    text: str = ""
    duration: float = 0.0
    failure: Optional[FailureKind] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None

    def error(self) -> Optional[VoicepipeError]:
        """The exception matching this failure, or None on success."""
        if self.failure is None:
            return None
        return _ERRORS[self.failure](self.detail or self.failure.value)

    @classmethod
    def failed(cls, kind: FailureKind, detail: str = "") -> "TranscriptionResult":
        return cls(failure=kind, detail=detail)


class TranscriptionInvoker:
    """Runs transcription requests against the configured engine."""

    def __init__(self, engine: TranscriptionEngine, models: ModelManager, timeout: float = 0):
        self._engine = engine
        self._models = models
        self._timeout = timeout
        self._engine_lock = threading.Lock()

    @property
    def engine(self) -> TranscriptionEngine:
        return self._engine

    def invoke(
        self,
        request: TranscriptionRequest,
        cancel: Optional[threading.Event] = None,
    ) -> TranscriptionResult:
        """
        Transcribe a request.

        Args:
            request: Samples, model and language to use.
            cancel: Set during shutdown to stop waiting for the engine.

        Returns:
            TranscriptionResult; check .ok or .failure.
        """
        desc = self._models.descriptor(request.model_id)
        if desc.state is not ModelState.READY:
            detail = f"Model '{request.model_id}' is {desc.state.value.replace('_', ' ')}"
            if desc.state is ModelState.DOWNLOADING:
                detail = f"{detail} ({desc.progress:.0%})"
            elif desc.error:
                detail = f"{detail}: {desc.error}"
            log(detail, "ERR")
            return TranscriptionResult.failed(FailureKind.MODEL_NOT_READY, detail)

        if request.samples is None or len(request.samples) == 0:
            log("No audio captured", "WARN")
            return TranscriptionResult.failed(FailureKind.EMPTY_AUDIO, "No audio captured")

        model_path = request.model_path or desc.local_path
        language = None if request.language in ("", "auto") else request.language
        duration = len(request.samples) / request.sample_rate if request.sample_rate else 0.0

        abandoned = threading.Event()
        started = {}

        def call():
            with self._engine_lock:
                if abandoned.is_set():
                    return None, "Abandoned"
                started["at"] = time.time()
                return self._engine.transcribe(request.samples, model_path, language)

        future = run_in_thread(call, name="transcribe")

        while True:
            if cancel is not None and cancel.is_set():
                abandoned.set()
                log("Transcription cancelled", "WARN")
                return TranscriptionResult.failed(FailureKind.CANCELLED, "Cancelled")
            t0 = started.get("at")
            if self._timeout > 0 and t0 is not None and time.time() - t0 > self._timeout:
                abandoned.set()
                log(f"Transcription timed out after {self._timeout}s", "ERR")
                return TranscriptionResult.failed(
                    FailureKind.BACKEND_ERROR, f"Timed out after {self._timeout}s"
                )
            try:
                text, error = future.result(timeout=CANCEL_POLL_INTERVAL)
                break
            except FutureTimeout:
                continue
            except Exception as e:
                log(f"{self._engine.name} failed: {e}", "ERR")
                return TranscriptionResult.failed(FailureKind.BACKEND_ERROR, str(e))

        if error:
            return TranscriptionResult.failed(FailureKind.BACKEND_ERROR, error)
        text = (text or "").strip()
        if not text:
            return TranscriptionResult.failed(FailureKind.BACKEND_ERROR, "Empty transcription")

        elapsed = time.time() - started["at"]
        log(f"Transcribed {duration:.1f}s of audio in {elapsed:.1f}s", "OK")
        return TranscriptionResult(text=text, duration=duration)

    def close(self):
        self._engine.close()
