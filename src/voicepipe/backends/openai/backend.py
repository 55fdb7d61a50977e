# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
OpenAI-compatible backend implementation for post-processing.

Talks to any server exposing /chat/completions: Ollama's /v1 endpoint,
LM Studio, llama.cpp server, vLLM.
"""

from typing import Optional, Tuple

from ...config import PostProcessConfig
from ...utils import log
from ..base import MAX_TOKENS, TEMPERATURE, PostProcessBackend, Prompt, extract_content


class OpenAIBackend(PostProcessBackend):
    """Post-processing backend using the OpenAI chat completions API."""

    @property
    def name(self) -> str:
        return "OpenAI-compatible server"

    def _url(self, config: PostProcessConfig) -> str:
        base = config.base_url.rstrip("/")
        if base.endswith("/chat/completions"):
            return base
        return f"{base}/chat/completions"

    def _messages(self, prompt: Prompt) -> list:
        messages = []
        if prompt.system:
            messages.append({"role": "system", "content": prompt.system})
        messages.append({"role": "user", "content": prompt.user})
        return messages

    def complete(self, prompt: Prompt, config: PostProcessConfig) -> Tuple[Optional[str], Optional[str]]:
        payload = {
            "model": config.model,
            "messages": self._messages(prompt),
            "temperature": TEMPERATURE,
            "max_tokens": MAX_TOKENS,
            "stream": False,
        }

        data, error = self._post(self._url(config), payload, config)
        if error:
            log(f"{self.name}: {error}", "ERR")
            return None, error

        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            log(f"{self.name} returned empty choices array", "WARN")
            return None, "Empty response"

        choice = choices[0]
        message = choice.get("message")
        content = extract_content(message) if message is not None else extract_content(choice.get("text"))
        result = self._clean_result(content or "")
        if not result:
            log(f"{self.name} returned empty content", "WARN")
            return None, "Empty response"

        return result, None
