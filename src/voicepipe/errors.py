# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Error taxonomy for voicepipe.

Errors raised while recording or transcribing abort the cycle; errors raised
while post-processing or delivering are absorbed with a fallback.
"""


class VoicepipeError(Exception):
    """Base class for all voicepipe errors."""


class CaptureError(VoicepipeError):
    """Input device unavailable or disconnected."""


class EmptyAudioError(VoicepipeError):
    """Recording contained no samples."""


class BackendError(VoicepipeError):
    """Inference backend failed."""


class ModelNotReadyError(VoicepipeError):
    """Selected model is not downloaded and verified."""


class TranscriptionCancelledError(VoicepipeError):
    """Transcription abandoned during shutdown."""


class DictionaryLoadError(VoicepipeError):
    """Dictionary file is malformed."""


class PostProcessingError(VoicepipeError):
    """Language-model refinement failed (network, timeout, parse)."""


class OutputDispatchError(VoicepipeError):
    """Clipboard write or paste failed."""


class DownloadError(VoicepipeError):
    """Model download failed (network or checksum)."""
