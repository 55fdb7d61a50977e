# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
whisper.cpp transcription engine via pywhispercpp.

Loaded models are cached per model file, so switching models in the config
loads the new one on the next recording and keeps the old one around.
"""

import threading
from pathlib import Path
from typing import Dict, Optional, Tuple

import numpy as np
from pywhispercpp.model import Model

from ..utils import log
from .base import TranscriptionEngine


class WhisperCppEngine(TranscriptionEngine):
    """Runs ggml Whisper models in-process."""

    def __init__(self, threads: int = 0):
        self._threads = threads
        self._models: Dict[Path, Model] = {}
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "whisper.cpp"

    def _model(self, model_path: Path) -> Model:
        with self._lock:
            model = self._models.get(model_path)
            if model is None:
                log(f"Loading {model_path.name}...", "INFO")
                kwargs = {"print_realtime": False, "print_progress": False}
                if self._threads > 0:
                    kwargs["n_threads"] = self._threads
                model = Model(str(model_path), **kwargs)
                self._models[model_path] = model
                log(f"{model_path.name} loaded", "OK")
            return model

    def transcribe(
        self,
        samples: np.ndarray,
        model_path: Path,
        language: Optional[str] = None,
    ) -> Tuple[Optional[str], Optional[str]]:
        try:
            model = self._model(Path(model_path))
            params = {}
            if language and language != "auto":
                params["language"] = language
            segments = model.transcribe(samples.astype(np.float32, copy=False), **params)
        except Exception as e:
            log(f"whisper.cpp error: {e}", "ERR")
            return None, str(e)

        text = " ".join(seg.text.strip() for seg in segments).strip()
        if not text:
            return None, "No speech recognized"
        return text, None

    def close(self) -> None:
        with self._lock:
            self._models.clear()
