# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""OpenAI-compatible backend for post-processing."""

from .backend import OpenAIBackend

__all__ = ["OpenAIBackend"]
