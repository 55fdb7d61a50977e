"""
Ollama backend for post-processing.

Uses a local Ollama server with configurable LLM models.
"""

from .backend import OllamaBackend

__all__ = ["OllamaBackend"]
