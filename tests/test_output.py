# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Unit tests for output.py.

The clipboard tool is a patched subprocess.run and the keyboard is a fake;
pynput itself is stubbed so no display server is needed.
"""

import subprocess
from contextlib import contextmanager
from unittest.mock import MagicMock, patch

import pytest

from voicepipe import output
from voicepipe.config import OutputConfig
from voicepipe.errors import OutputDispatchError


class FakeKeyboard:
    def __init__(self, fail=False):
        self.fail = fail
        self.events = []

    @contextmanager
    def pressed(self, key):
        if self.fail:
            raise RuntimeError("no accessibility permission")
        self.events.append(("down", key))
        yield
        self.events.append(("up", key))

    def press(self, key):
        self.events.append(("press", key))

    def release(self, key):
        self.events.append(("release", key))

    def type(self, text):
        self.events.append(("type", text))


@pytest.fixture
def pynput_stub():
    stub = MagicMock()
    with patch.dict("sys.modules", {"pynput": stub, "pynput.keyboard": stub.keyboard}), \
         patch.object(output, "PASTE_DELAY", 0):
        yield stub


@pytest.fixture
def run():
    with patch.object(output.subprocess, "run") as mock_run:
        yield mock_run


class TestClipboardCommand:
    def test_macos(self):
        with patch.object(output.sys, "platform", "darwin"):
            assert output.clipboard_command() == ["pbcopy"]

    def test_wayland_preferred(self):
        with patch.object(output.sys, "platform", "linux"), \
             patch.dict(output.os.environ, {"WAYLAND_DISPLAY": "wayland-0"}), \
             patch.object(output.shutil, "which", side_effect=lambda name: f"/usr/bin/{name}"):
            assert output.clipboard_command() == ["wl-copy"]

    def test_x11_fallback(self):
        with patch.object(output.sys, "platform", "linux"), \
             patch.dict(output.os.environ, {"WAYLAND_DISPLAY": ""}), \
             patch.object(output.shutil, "which", side_effect=lambda name: "/usr/bin/xclip" if name == "xclip" else None):
            assert output.clipboard_command() == ["xclip", "-selection", "clipboard"]

    def test_no_tool(self):
        with patch.object(output.sys, "platform", "linux"), \
             patch.object(output.shutil, "which", return_value=None):
            with pytest.raises(OutputDispatchError):
                output.clipboard_command()


class TestCopy:
    def test_copy_pipes_utf8(self, run):
        output.OutputDispatcher(command=["clip"]).copy("héllo")
        args, kwargs = run.call_args
        assert args[0] == ["clip"]
        assert kwargs["input"] == "héllo".encode("utf-8")
        assert kwargs["check"] is True

    def test_copy_failure_raises(self, run):
        run.side_effect = subprocess.CalledProcessError(1, ["clip"])
        with pytest.raises(OutputDispatchError, match="code 1"):
            output.OutputDispatcher(command=["clip"]).copy("x")

    def test_missing_tool_raises(self, run):
        run.side_effect = FileNotFoundError("clip")
        with pytest.raises(OutputDispatchError, match="unavailable"):
            output.OutputDispatcher(command=["clip"]).copy("x")


class TestDeliver:
    def test_copy_and_paste(self, run, pynput_stub):
        kb = FakeKeyboard()
        report = output.OutputDispatcher(keyboard=kb, command=["clip"]).deliver("hello", OutputConfig())
        assert report.copied and report.pasted
        assert report.error is None
        assert report.summary == "Pasted"
        assert ("press", "v") in kb.events

    def test_paste_failure_leaves_clipboard(self, run, pynput_stub):
        kb = FakeKeyboard(fail=True)
        report = output.OutputDispatcher(keyboard=kb, command=["clip"]).deliver("hello", OutputConfig())
        assert report.copied
        assert not report.pasted
        assert "Paste failed" in report.error
        assert report.summary == "Copied"

    def test_copy_failure_skips_paste(self, run, pynput_stub):
        run.side_effect = subprocess.CalledProcessError(1, ["clip"])
        kb = FakeKeyboard()
        report = output.OutputDispatcher(keyboard=kb, command=["clip"]).deliver("hello", OutputConfig())
        assert not report.copied and not report.pasted
        assert kb.events == []
        assert report.summary == "Not delivered"

    def test_clipboard_only(self, run, pynput_stub):
        kb = FakeKeyboard()
        report = output.OutputDispatcher(keyboard=kb, command=["clip"]).deliver(
            "hello", OutputConfig(use_clipboard=True, auto_paste=False)
        )
        assert report.copied and not report.pasted
        assert kb.events == []

    def test_types_when_clipboard_disabled(self, run, pynput_stub):
        kb = FakeKeyboard()
        report = output.OutputDispatcher(keyboard=kb, command=["clip"]).deliver(
            "hello", OutputConfig(use_clipboard=False, auto_paste=True)
        )
        run.assert_not_called()
        assert report.pasted
        assert kb.events == [("type", "hello")]

    def test_empty_text(self, run):
        report = output.OutputDispatcher(command=["clip"]).deliver("", OutputConfig())
        assert not report.copied
        assert report.error == "Nothing to deliver"
        run.assert_not_called()
