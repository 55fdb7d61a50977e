"""
Post-processing backends for voicepipe.

To add a new backend:
1. Create a new folder under backends/ with __init__.py and backend.py
2. Add an entry to BACKEND_REGISTRY below

Usage:
    from voicepipe.backends import create_backend, BACKEND_REGISTRY

    backend = create_backend("openai")
    text, error = backend.complete(Prompt(user="..."), config.postprocess)
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional

import requests

from .base import PostProcessBackend, Prompt


@dataclass
class BackendInfo:
    """Metadata for a post-processing backend."""
    id: str                    # Config identifier (e.g., "ollama")
    name: str                  # Display name (e.g., "Ollama")
    description: str           # Short description for logs
    factory: Callable[..., PostProcessBackend]  # Function to create instance


def _create_openai(session: Optional[requests.Session] = None) -> PostProcessBackend:
    from .openai import OpenAIBackend
    return OpenAIBackend(session)


def _create_ollama(session: Optional[requests.Session] = None) -> PostProcessBackend:
    from .ollama import OllamaBackend
    return OllamaBackend(session)


# ============================================================================
# BACKEND REGISTRY - Add new backends here
# ============================================================================
BACKEND_REGISTRY: Dict[str, BackendInfo] = {
    "openai": BackendInfo(
        id="openai",
        name="OpenAI-compatible",
        description="POST {base_url}/chat/completions (Ollama /v1, LM Studio, llama.cpp)",
        factory=_create_openai,
    ),
    "ollama": BackendInfo(
        id="ollama",
        name="Ollama",
        description="POST {base_url}/api/generate",
        factory=_create_ollama,
    ),
}


def create_backend(backend_type: str, session: Optional[requests.Session] = None) -> PostProcessBackend:
    """
    Factory function to create a post-processing backend instance.

    Args:
        backend_type: Backend ID from BACKEND_REGISTRY
        session: Optional requests session to reuse

    Returns:
        An instance of the requested backend.

    Raises:
        ValueError: If backend_type is not recognized.
    """
    if backend_type not in BACKEND_REGISTRY:
        available = ", ".join(BACKEND_REGISTRY.keys())
        raise ValueError(f"Unknown backend: {backend_type}. Available: {available}")

    return BACKEND_REGISTRY[backend_type].factory(session)


def get_backend_info(backend_type: str) -> Optional[BackendInfo]:
    """Get metadata for a backend type."""
    return BACKEND_REGISTRY.get(backend_type)


__all__ = ["PostProcessBackend", "Prompt", "BackendInfo", "BACKEND_REGISTRY", "create_backend", "get_backend_info"]
