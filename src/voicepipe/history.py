# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Post-processing history for voicepipe.

Keeps the most recent refinements in ~/.voicepipe/llm_history.json,
oldest first, capped at postprocess.history_limit entries.
"""

import json
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import List

from .utils import atomic_write_text, log

HISTORY_FILENAME = "llm_history.json"
DEFAULT_LIMIT = 20


@dataclass
class HistoryEntry:
    timestamp: str
    input: str
    output: str
    endpoint: str
    preset: str
    model: str
    latency_ms: int
    truncated_input: bool


class History:
    """Bounded, atomically rewritten list of HistoryEntry records."""

    def __init__(self, path: Path, limit: int = DEFAULT_LIMIT):
        self.path = Path(path)
        self.limit = max(1, limit)
        self._lock = threading.Lock()

    def entries(self) -> List[HistoryEntry]:
        with self._lock:
            return self._read()

    def record(
        self,
        input_text: str,
        output_text: str,
        endpoint: str,
        preset: str,
        model: str,
        latency_ms: int,
        truncated_input: bool = False,
    ) -> int:
        """Append an entry; returns the number of entries kept."""
        entry = HistoryEntry(
            timestamp=datetime.now().astimezone().isoformat(timespec="seconds"),
            input=input_text,
            output=output_text,
            endpoint=endpoint,
            preset=preset,
            model=model,
            latency_ms=int(latency_ms),
            truncated_input=truncated_input,
        )
        with self._lock:
            entries = self._read()
            entries.append(entry)
            if len(entries) > self.limit:
                entries = entries[-self.limit:]
            payload = {"entries": [asdict(e) for e in entries]}
            atomic_write_text(self.path, json.dumps(payload, ensure_ascii=False, indent=2) + "\n")
            return len(entries)

    def _read(self) -> List[HistoryEntry]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log(f"History file unreadable, starting fresh: {e}", "WARN")
            return []

        entries = []
        fields = HistoryEntry.__dataclass_fields__
        for raw in data.get("entries", []) if isinstance(data, dict) else []:
            if isinstance(raw, dict) and all(k in raw for k in fields):
                entries.append(HistoryEntry(**{k: raw[k] for k in fields}))
        return entries
