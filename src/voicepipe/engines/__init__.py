# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Transcription engines for voicepipe.

To add a new engine:
1. Create a new module under engines/ implementing TranscriptionEngine
2. Add an entry to ENGINE_REGISTRY below

Usage:
    from voicepipe.engines import create_engine, ENGINE_REGISTRY

    engine = create_engine("whisper_cpp", threads=4)
    text, error = engine.transcribe(samples, model_path, "en")
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .base import TranscriptionEngine


@dataclass
class EngineInfo:
    """Metadata for a transcription engine."""
    id: str                              # Config identifier (e.g., "whisper_cpp")
    name: str                            # Display name (e.g., "whisper.cpp")
    description: str                     # Short description for logs
    factory: Callable[..., TranscriptionEngine]  # Function to create instance


def _create_whisper_cpp(threads: int = 0) -> TranscriptionEngine:
    from .whisper_cpp import WhisperCppEngine
    return WhisperCppEngine(threads=threads)


# ============================================================================
# ENGINE REGISTRY - Add new engines here
# ============================================================================
ENGINE_REGISTRY: Dict[str, EngineInfo] = {
    "whisper_cpp": EngineInfo(
        id="whisper_cpp",
        name="whisper.cpp",
        description="In-process ggml Whisper models",
        factory=_create_whisper_cpp,
    ),
}


def create_engine(engine_id: str, threads: int = 0) -> TranscriptionEngine:
    """
    Factory function to create a transcription engine instance.

    Args:
        engine_id: Engine ID from ENGINE_REGISTRY
        threads: CPU threads for inference (0 = engine default)

    Returns:
        An instance of the requested engine.

    Raises:
        ValueError: If engine_id is not recognized.
    """
    if engine_id not in ENGINE_REGISTRY:
        available = ", ".join(ENGINE_REGISTRY.keys())
        raise ValueError(f"Unknown engine: {engine_id}. Available: {available}")

    return ENGINE_REGISTRY[engine_id].factory(threads=threads)


def get_engine_info(engine_id: str) -> Optional[EngineInfo]:
    """Get metadata for an engine type."""
    return ENGINE_REGISTRY.get(engine_id)


__all__ = [
    "TranscriptionEngine",
    "EngineInfo",
    "ENGINE_REGISTRY",
    "create_engine",
    "get_engine_info",
]
