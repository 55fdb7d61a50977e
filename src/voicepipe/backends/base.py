"""
Base post-processing backend interface for voicepipe.

All post-processing backends must inherit from PostProcessBackend
and implement the required methods.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

import requests

from ..config import PostProcessConfig

# Shared constants
ERROR_TRUNCATE_LENGTH = 80  # Consistent error message truncation
DEFAULT_CONNECT_TIMEOUT = 10  # Default connection timeout in seconds
TEMPERATURE = 0.2
MAX_TOKENS = 1024


@dataclass(frozen=True)
class Prompt:
    """A resolved prompt: optional system message plus the user message."""
    user: str
    system: Optional[str] = None


class PostProcessBackend(ABC):
    """
    Abstract base class for post-processing backends.

    Provides common response handling and defines the interface that all
    backends must implement.
    """

    def __init__(self, session: Optional[requests.Session] = None):
        self._session = session or requests.Session()

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name of the backend."""
        pass

    @abstractmethod
    def complete(self, prompt: Prompt, config: PostProcessConfig) -> Tuple[Optional[str], Optional[str]]:
        """
        Send a prompt to the language model.

        Args:
            prompt: Resolved system and user messages.
            config: Endpoint, model and timeout settings.

        Returns:
            Tuple of (text, error_message).
            On success, error_message is None.
            On error, text is None and error_message describes the failure.
        """
        pass

    def close(self) -> None:
        """Clean up resources when shutting down."""
        try:
            self._session.close()
        except Exception:
            pass

    # ─────────────────────────────────────────────────────────────────
    # Shared utilities
    # ─────────────────────────────────────────────────────────────────

    def _get_timeout(self, timeout_config: int) -> Union[int, Tuple[int, None]]:
        """
        Get timeout value for requests.

        Args:
            timeout_config: Timeout from config (0 = unlimited read)

        Returns:
            Timeout value: int if configured, or (connect_timeout, None) for unlimited read
        """
        if timeout_config > 0:
            return timeout_config
        return (DEFAULT_CONNECT_TIMEOUT, None)  # (connect, read=unlimited)

    def _truncate_error(self, error: Any) -> str:
        """Truncate error message to consistent length."""
        return str(error)[:ERROR_TRUNCATE_LENGTH]

    def _post(self, url: str, payload: dict, config: PostProcessConfig) -> Tuple[Optional[dict], Optional[str]]:
        """POST JSON and decode the response, mapping transport failures to errors."""
        try:
            r = self._session.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self._get_timeout(config.timeout),
            )
            r.raise_for_status()
        except requests.exceptions.Timeout:
            return None, "Timeout"
        except requests.exceptions.ConnectionError:
            return None, f"{self.name} not responding"
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "unknown"
            return None, f"HTTP error {status}"
        except requests.RequestException as e:
            return None, self._truncate_error(e)

        try:
            data = r.json()
        except ValueError:
            return None, "Invalid response"
        if not isinstance(data, dict):
            return None, "Invalid response format"
        return data, None

    def _clean_result(self, result: str) -> str:
        """
        Clean common artifacts from model output.

        Removes label prefixes, conversational openers, trailing
        meta-commentary and a wrapping code block.
        """
        result = result.strip()

        label_patterns = [
            r'^(?:formatted|corrected|cleaned|fixed)(?:\s+text)?:\s*',
            r'^(?:output|result|summary):\s*',
            r'^here(?:\s+is|\s+are|\'s)\s+(?:the\s+)?(?:formatted|corrected|cleaned|summarized)?\s*(?:text|transcript|summary)?:\s*',
        ]
        for pattern in label_patterns:
            result = re.sub(pattern, '', result, flags=re.IGNORECASE)

        conversational_openers = [
            r'^sure[,!]\s*$',
            r'^sure[,!.]\s+(?:here\'s|here is)[^:\n]*:\s*',
            r'^(?:of course|certainly|absolutely)[,!.]?\s*',
        ]
        for pattern in conversational_openers:
            result = re.sub(pattern, '', result, flags=re.IGNORECASE)

        trailing_patterns = [
            r'\s*let me know if[^.!?\n]*[.!?]?\s*$',
            r'\s*i hope this helps[.!?]?\s*$',
            r'\s*feel free to[^.!?\n]*[.!?]?\s*$',
        ]
        for pattern in trailing_patterns:
            result = re.sub(pattern, '', result, flags=re.IGNORECASE)

        code_block_match = re.match(
            r'^```(?:text|plain|markdown)?\s*\n?(.*?)\n?```\s*$',
            result,
            re.DOTALL | re.IGNORECASE
        )
        if code_block_match:
            result = code_block_match.group(1)

        return result.strip()


def extract_content(value: Any) -> Optional[str]:
    """
    Pull text out of a chat message's content.

    Servers return a plain string, a list of content parts, or an object
    with a text/content/response field.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        parts = [extract_content(part) for part in value]
        joined = "".join(p for p in parts if p)
        return joined or None
    if isinstance(value, dict):
        for key in ("text", "content", "response"):
            if key in value:
                return extract_content(value[key])
    return None
