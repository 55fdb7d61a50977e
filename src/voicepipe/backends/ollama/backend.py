"""
Ollama backend implementation for post-processing.

Uses Ollama's native /api/generate endpoint.
"""

from typing import Optional, Tuple

from ...config import PostProcessConfig
from ...utils import log
from ..base import MAX_TOKENS, TEMPERATURE, PostProcessBackend, Prompt, extract_content


class OllamaBackend(PostProcessBackend):
    """Post-processing backend using a local Ollama server."""

    @property
    def name(self) -> str:
        return "Ollama"

    def _url(self, config: PostProcessConfig) -> str:
        base = config.base_url.rstrip("/")
        # Accept the OpenAI-style base URL too
        if base.endswith("/v1"):
            base = base[:-3]
        return f"{base}/api/generate"

    def complete(self, prompt: Prompt, config: PostProcessConfig) -> Tuple[Optional[str], Optional[str]]:
        payload = {
            "model": config.model,
            "prompt": prompt.user,
            "stream": False,
            "options": {
                "temperature": TEMPERATURE,
                "num_predict": MAX_TOKENS,
            },
        }
        if prompt.system:
            payload["system"] = prompt.system

        data, error = self._post(self._url(config), payload, config)
        if error:
            log(f"Ollama: {error}", "ERR")
            return None, error

        result = self._clean_result(extract_content(data.get("response")) or "")
        if not result:
            log("Ollama returned empty response", "WARN")
            return None, "Empty response"

        return result, None
