# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Trigger sources for voicepipe: global hotkeys and POSIX signals.

Both only post events; the orchestrator decides what they mean.

    kill -USR1 $(pgrep -f voicepipe)   # toggle recording
    kill -USR2 $(pgrep -f voicepipe)   # open settings
"""

import signal
import threading
from typing import Callable, Dict, Optional

from .utils import log

# Config spellings that differ from pynput key names
KEY_ALIASES = {
    "control": "ctrl",
    "option": "alt",
    "command": "cmd",
    "super": "cmd",
    "win": "cmd",
    "return": "enter",
    "escape": "esc",
}


def to_pynput_hotkey(keys: str) -> str:
    """
    Convert a config hotkey ("f9", "ctrl+alt+d", "alt_r") to pynput syntax.

    Raises:
        ValueError: If keys is empty or has an empty part.
    """
    parts = [p.strip().lower() for p in keys.split("+")]
    if not keys.strip() or any(not p for p in parts):
        raise ValueError(f"Invalid hotkey: {keys!r}")

    converted = []
    for part in parts:
        part = KEY_ALIASES.get(part, part)
        if len(part) == 1:
            converted.append(part)
        elif part.startswith("<") and part.endswith(">"):
            converted.append(part)
        else:
            converted.append(f"<{part}>")
    return "+".join(converted)


class HotkeyListener:
    """Global hotkeys via pynput's GlobalHotKeys listener thread."""

    def __init__(self):
        self._bindings: Dict[str, Callable[[], None]] = {}
        self._listener = None
        self._lock = threading.Lock()

    def bind(self, keys: str, callback: Callable[[], None]) -> bool:
        """Register a hotkey; empty keys are skipped. Returns False if invalid."""
        if not keys:
            return False
        try:
            combo = to_pynput_hotkey(keys)
        except ValueError as e:
            log(str(e), "ERR")
            return False
        with self._lock:
            self._bindings[combo] = callback
        return True

    def start(self) -> bool:
        with self._lock:
            if self._listener is not None or not self._bindings:
                return self._listener is not None
            try:
                from pynput import keyboard
                self._listener = keyboard.GlobalHotKeys(dict(self._bindings))
                self._listener.daemon = True
                self._listener.start()
            except Exception as e:
                self._listener = None
                log(f"Hotkeys unavailable ({e}); use SIGUSR1/SIGUSR2 instead", "WARN")
                return False
        log(f"Hotkeys: {', '.join(self._bindings)}", "OK")
        return True

    def stop(self):
        with self._lock:
            listener, self._listener = self._listener, None
        if listener is not None:
            listener.stop()


def install_signal_handlers(
    on_toggle: Callable[[], None],
    on_settings: Callable[[], None],
    on_shutdown: Optional[Callable[[], None]] = None,
):
    """Route SIGUSR1/SIGUSR2 (and SIGINT/SIGTERM) to callbacks. Main thread only."""

    def handle_toggle(*_):
        on_toggle()

    def handle_settings(*_):
        on_settings()

    signal.signal(signal.SIGUSR1, handle_toggle)
    signal.signal(signal.SIGUSR2, handle_settings)

    if on_shutdown is not None:
        def handle_shutdown(*_):
            on_shutdown()

        signal.signal(signal.SIGINT, handle_shutdown)
        signal.signal(signal.SIGTERM, handle_shutdown)
