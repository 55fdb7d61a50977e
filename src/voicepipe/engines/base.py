# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Base transcription engine interface for voicepipe.

All transcription engines must inherit from TranscriptionEngine
and implement the required methods.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Tuple

import numpy as np


class TranscriptionEngine(ABC):
    """
    Abstract base class for transcription engines.

    An engine is a black box: samples, a model file and a language hint go
    in, text (or an error) comes out.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name of the engine."""
        pass

    @abstractmethod
    def transcribe(
        self,
        samples: np.ndarray,
        model_path: Path,
        language: Optional[str] = None,
    ) -> Tuple[Optional[str], Optional[str]]:
        """
        Transcribe 16 kHz mono float32 samples.

        Args:
            samples: Audio samples.
            model_path: Model file to run.
            language: Language code, or None for auto-detection.

        Returns:
            Tuple of (text, error_message).
            On success, error_message is None.
            On error, text is None and error_message describes the failure.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release all resources."""
        pass
