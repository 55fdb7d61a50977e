# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Output dispatch for voicepipe.

Copies the final text to the clipboard and optionally pastes it into the
focused application. A paste failure leaves the text on the clipboard; a
clipboard failure is reported but never aborts the cycle.
"""

import os
import shutil
import subprocess
import sys
import time
from dataclasses import dataclass
from typing import List, Optional

from .config import OutputConfig
from .errors import OutputDispatchError
from .utils import CLIPBOARD_TIMEOUT, log

# Give the clipboard owner a moment before the paste keystroke
PASTE_DELAY = 0.15


@dataclass(frozen=True)
class DeliveryReport:
    copied: bool = False
    pasted: bool = False
    error: Optional[str] = None

    @property
    def summary(self) -> str:
        if self.pasted:
            return "Pasted"
        if self.copied:
            return "Copied"
        return "Not delivered"


def clipboard_command() -> List[str]:
    """Pick the clipboard writer for this platform."""
    if sys.platform == "darwin":
        return ["pbcopy"]
    if os.environ.get("WAYLAND_DISPLAY") and shutil.which("wl-copy"):
        return ["wl-copy"]
    if shutil.which("xclip"):
        return ["xclip", "-selection", "clipboard"]
    if shutil.which("xsel"):
        return ["xsel", "--clipboard", "--input"]
    if shutil.which("wl-copy"):
        return ["wl-copy"]
    raise OutputDispatchError("No clipboard tool found (install wl-clipboard or xclip)")


class OutputDispatcher:
    """Delivers text to the clipboard and the focused application."""

    def __init__(self, keyboard=None, command: Optional[List[str]] = None):
        self._keyboard = keyboard
        self._command = command

    def copy(self, text: str):
        """Write text to the clipboard; raises OutputDispatchError."""
        command = self._command or clipboard_command()
        try:
            subprocess.run(
                command,
                input=text.encode("utf-8"),
                check=True,
                timeout=CLIPBOARD_TIMEOUT,
            )
        except subprocess.TimeoutExpired as e:
            raise OutputDispatchError(f"{command[0]} timed out") from e
        except subprocess.CalledProcessError as e:
            raise OutputDispatchError(f"{command[0]} failed with code {e.returncode}") from e
        except OSError as e:
            raise OutputDispatchError(f"{command[0]} unavailable: {e}") from e

    def paste(self):
        """Send the platform paste shortcut; raises OutputDispatchError."""
        try:
            kb, key = self._controller()
            modifier = key.cmd if sys.platform == "darwin" else key.ctrl
            time.sleep(PASTE_DELAY)
            with kb.pressed(modifier):
                kb.press("v")
                kb.release("v")
        except Exception as e:
            raise OutputDispatchError(f"Paste failed: {e}") from e

    def type_text(self, text: str):
        """Type text directly (used when the clipboard is disabled)."""
        try:
            kb, _ = self._controller()
            kb.type(text)
        except Exception as e:
            raise OutputDispatchError(f"Typing failed: {e}") from e

    def deliver(self, text: str, config: OutputConfig) -> DeliveryReport:
        """Deliver text according to the output settings."""
        if not text:
            return DeliveryReport(error="Nothing to deliver")

        copied = pasted = False
        errors = []

        if config.use_clipboard:
            try:
                self.copy(text)
                copied = True
            except OutputDispatchError as e:
                log(f"Copy failed: {e}", "ERR")
                errors.append(str(e))

        if config.auto_paste:
            try:
                if copied:
                    self.paste()
                    pasted = True
                elif not config.use_clipboard:
                    self.type_text(text)
                    pasted = True
            except OutputDispatchError as e:
                log(f"{e}; text left on clipboard" if copied else str(e), "WARN")
                errors.append(str(e))

        report = DeliveryReport(copied, pasted, "; ".join(errors) or None)
        if copied or pasted:
            log(report.summary, "OK")
        return report

    def _controller(self):
        from pynput.keyboard import Controller, Key
        if self._keyboard is None:
            self._keyboard = Controller()
        return self._keyboard, Key
