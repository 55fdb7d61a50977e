# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Status document for bar widgets.

Writes {text, tooltip, class, alt, color} JSON on every pipeline transition,
in the format waybar/polybar custom modules read.
"""

import json
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from .state import PipelineState
from .utils import atomic_write_text, log


@dataclass(frozen=True)
class StatusSnapshot:
    text: str
    tooltip: str
    css_class: str
    alt: str
    color: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["class"] = data.pop("css_class")
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


# state -> (text, class, alt, color, label)
_STYLES = {
    PipelineState.IDLE: ("○", "idle", "idle", "#22aa22", "Idle"),
    PipelineState.RECORDING: ("●", "recording", "rec", "#dd3333", "Recording"),
    PipelineState.PROCESSING: ("●", "processing", "proc", "#d0c000", "Transcribing"),
    PipelineState.POST_PROCESSING: ("●", "processing", "proc", "#d0c000", "Refining"),
    PipelineState.DELIVERING: ("●", "processing", "proc", "#d0c000", "Delivering"),
    PipelineState.FAILED: ("✗", "error", "error", "#aa2222", "Failed"),
}


def snapshot_for(state: PipelineState, detail: Optional[str] = None) -> StatusSnapshot:
    text, css_class, alt, color, label = _STYLES[state]
    tooltip = f"voicepipe: {label}"
    if detail:
        tooltip = f"{tooltip} ({detail})"
    return StatusSnapshot(text, tooltip, css_class, alt, color)


class StatusPublisher:
    """Writes the status document atomically."""

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()
        self.last: Optional[StatusSnapshot] = None

    def publish(self, state: PipelineState, detail: Optional[str] = None) -> StatusSnapshot:
        snapshot = snapshot_for(state, detail)
        with self._lock:
            try:
                atomic_write_text(self.path, snapshot.to_json() + "\n")
            except OSError as e:
                log(f"Status write failed: {e}", "WARN")
            self.last = snapshot
        return snapshot
