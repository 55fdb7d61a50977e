# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Tests for orchestrator.py.

Runs real recording cycles through the event loop with fake capture,
engine, clipboard and cue player. The transcription invoker, post-processor,
dictionary and status publisher are the real ones.
"""

import threading
import time
from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest
import requests

from voicepipe.config import Config
from voicepipe.dictionary import DictionaryRule
from voicepipe.engines import TranscriptionEngine
from voicepipe.errors import CaptureError
from voicepipe.models import ModelDescriptor, ModelState
from voicepipe.orchestrator import Orchestrator
from voicepipe.output import DeliveryReport
from voicepipe.postprocess import PostProcessor
from voicepipe.state import VALID_EDGES, Event, EventKind, PipelineState
from voicepipe.status import StatusPublisher
from voicepipe.transcriber import TranscriptionInvoker

SPEECH = np.full(1600, 0.2, dtype=np.float32)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeCapture:
    def __init__(self, fail=False):
        self.fail = fail
        self.on_chunk = None
        self.on_error = None
        self.starts = 0
        self.stops = 0

    def start(self, on_chunk, on_error=None):
        self.starts += 1
        if self.fail:
            raise CaptureError("Microphone unavailable: no device")
        self.on_chunk = on_chunk
        self.on_error = on_error

    def stop(self):
        self.stops += 1


class FakeEngine(TranscriptionEngine):
    def __init__(self, text="i saw teh cat", gate=None):
        self.text = text
        self.gate = gate

    @property
    def name(self):
        return "fake"

    def transcribe(self, samples, model_path, language=None):
        if self.gate is not None:
            self.gate.wait(5)
        return self.text, None

    def close(self):
        pass


class FakeModels:
    def descriptor(self, model_id):
        return ModelDescriptor(id=model_id, local_path=Path("/models/ggml.bin"), state=ModelState.READY)


class FakeDispatcher:
    def __init__(self):
        self.delivered = []
        self.daemon_threads = []

    def deliver(self, text, config):
        self.daemon_threads.append(threading.current_thread().daemon)
        self.delivered.append(text)
        return DeliveryReport(copied=True)


class FakeCues:
    def __init__(self):
        self.played = []

    def play(self, name):
        self.played.append(name)


class RecordingPublisher(StatusPublisher):
    def __init__(self, path):
        super().__init__(path)
        self.states = []

    def publish(self, state, detail=None):
        self.states.append(state)
        return super().publish(state, detail)


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def rig(tmp_path):
    """Build an orchestrator wired to fakes; shuts everything down afterwards."""
    built = []

    class Rig:
        pass

    def factory(engine=None, capture=None, config=None, session=None, settings=None):
        r = Rig()
        r.config = config or Config()
        r.config.status.failure_hold = 60
        r.config.audio.auto_stop_silence = 0
        r.capture = capture or FakeCapture()
        r.invoker = TranscriptionInvoker(engine or FakeEngine(), FakeModels())
        r.postprocessor = PostProcessor(session=session)
        r.dispatcher = FakeDispatcher()
        r.cues = FakeCues()
        r.publisher = RecordingPublisher(tmp_path / "status.json")
        r.backup = tmp_path / "last_transcription.txt"
        r.orchestrator = Orchestrator(
            capture=r.capture,
            invoker=r.invoker,
            postprocessor=r.postprocessor,
            dispatcher=r.dispatcher,
            publisher=r.publisher,
            cues=r.cues,
            config_provider=lambda: r.config,
            dictionary_loader=lambda path: ([DictionaryRule("teh", "the")], None),
            on_settings=settings,
            backup_path=r.backup,
            tick_interval=0.01,
        )
        r.orchestrator.start()
        built.append(r)
        return r

    yield factory
    for r in built:
        r.orchestrator.shutdown(timeout=2)
        r.invoker.close()


def _record(r, chunks=1):
    r.orchestrator.toggle()
    assert _wait_for(lambda: r.orchestrator.state is PipelineState.RECORDING)
    assert _wait_for(lambda: r.capture.on_chunk is not None)
    for _ in range(chunks):
        r.capture.on_chunk(SPEECH)
    r.orchestrator.toggle()


# ---------------------------------------------------------------------------
# Full cycles
# ---------------------------------------------------------------------------

class TestCycle:
    def test_happy_path(self, rig):
        r = rig()
        _record(r)
        assert _wait_for(lambda: "complete" in r.cues.played)

        assert r.dispatcher.delivered == ["i saw the cat"]
        assert r.cues.played == ["start", "processing", "complete"]
        assert r.publisher.states == [
            PipelineState.IDLE,
            PipelineState.RECORDING,
            PipelineState.PROCESSING,
            PipelineState.POST_PROCESSING,
            PipelineState.DELIVERING,
            PipelineState.IDLE,
        ]
        for edge in zip(r.publisher.states[1:], r.publisher.states[2:]):
            assert edge in VALID_EDGES
        assert r.orchestrator.last_text == "i saw the cat"
        assert r.backup.read_text(encoding="utf-8") == "i saw the cat"
        assert r.dispatcher.daemon_threads == [True]
        assert r.capture.stops == 1

    def test_recording_publishes_recording_class(self, rig):
        r = rig()
        r.orchestrator.toggle()
        assert _wait_for(lambda: r.publisher.last.css_class == "recording")

    def test_consecutive_cycles(self, rig):
        r = rig()
        for _ in range(2):
            _record(r)
            assert _wait_for(lambda: r.cues.played.count("complete") == len(r.dispatcher.delivered) >= 1
                             and r.orchestrator.state is PipelineState.IDLE)
            r.capture.on_chunk = None
        assert len(r.dispatcher.delivered) == 2

    def test_post_processing_timeout_delivers_transcript(self, rig):
        session = MagicMock()
        session.post.side_effect = requests.exceptions.Timeout()
        config = Config()
        config.postprocess.enabled = True
        r = rig(config=config, session=session)

        _record(r)
        assert _wait_for(lambda: "complete" in r.cues.played)
        assert r.dispatcher.delivered == ["i saw the cat"]
        assert session.post.called
        assert "post-processing skipped" in r.publisher.last.tooltip

    def test_silence_auto_stops(self, rig):
        config = Config()
        r = rig(config=config)
        config.audio.auto_stop_silence = 0.5
        config.audio.min_duration = 0

        r.orchestrator.toggle()
        assert _wait_for(lambda: r.capture.on_chunk is not None)
        r.capture.on_chunk(np.zeros(1600, dtype=np.float32))
        assert _wait_for(lambda: "complete" in r.cues.played)
        assert r.dispatcher.delivered == ["i saw the cat"]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestFailures:
    def test_empty_audio_fails_once(self, rig):
        r = rig()
        r.orchestrator.toggle()
        assert _wait_for(lambda: r.orchestrator.state is PipelineState.RECORDING)
        r.orchestrator.toggle()

        assert _wait_for(lambda: r.orchestrator.state is PipelineState.FAILED)
        assert _wait_for(lambda: "fail" in r.cues.played)
        assert r.cues.played.count("fail") == 1
        assert r.publisher.last.css_class == "error"
        assert "EmptyAudioError" in r.publisher.last.tooltip
        assert r.dispatcher.delivered == []

    def test_silence_without_chunks_fails_empty(self, rig):
        config = Config()
        r = rig(config=config)
        config.audio.auto_stop_silence = 0.3
        config.audio.min_duration = 0

        r.orchestrator.toggle()
        assert _wait_for(lambda: r.orchestrator.state is PipelineState.FAILED)
        assert _wait_for(lambda: "fail" in r.cues.played)
        time.sleep(0.1)

        assert r.cues.played.count("fail") == 1
        assert r.publisher.last.css_class == "error"
        assert "EmptyAudioError" in r.publisher.last.tooltip
        assert r.dispatcher.delivered == []

    def test_capture_failure(self, rig):
        r = rig(capture=FakeCapture(fail=True))
        r.orchestrator.toggle()

        assert _wait_for(lambda: r.orchestrator.state is PipelineState.FAILED)
        assert _wait_for(lambda: "fail" in r.cues.played)
        assert r.cues.played == ["start", "fail"]
        assert "CaptureError" in r.publisher.last.tooltip

    def test_device_lost_mid_recording(self, rig):
        r = rig()
        r.orchestrator.toggle()
        assert _wait_for(lambda: r.capture.on_error is not None)
        r.capture.on_error(CaptureError("Input device disconnected"))

        assert _wait_for(lambda: r.orchestrator.state is PipelineState.FAILED)
        assert _wait_for(lambda: r.capture.stops == 1)

    def test_failure_returns_to_idle_after_hold(self, rig):
        config = Config()
        r = rig(config=config)
        config.status.failure_hold = 0.05

        r.orchestrator.toggle()
        assert _wait_for(lambda: r.orchestrator.state is PipelineState.RECORDING)
        r.orchestrator.toggle()

        assert _wait_for(lambda: r.publisher.states[-1] is PipelineState.IDLE and len(r.publisher.states) > 2)
        assert PipelineState.FAILED in r.publisher.states


# ---------------------------------------------------------------------------
# Triggers while busy
# ---------------------------------------------------------------------------

class TestTriggers:
    def test_toggle_ignored_while_processing(self, rig):
        gate = threading.Event()
        r = rig(engine=FakeEngine(gate=gate))
        try:
            _record(r)
            assert _wait_for(lambda: r.orchestrator.state is PipelineState.PROCESSING)
            r.orchestrator.toggle()
            r.orchestrator.toggle()
            time.sleep(0.1)
            assert r.orchestrator.state is PipelineState.PROCESSING
        finally:
            gate.set()

        assert _wait_for(lambda: "complete" in r.cues.played)
        time.sleep(0.1)
        assert r.orchestrator.state is PipelineState.IDLE
        assert r.cues.played.count("start") == 1
        assert r.capture.starts == 1

    def test_stale_events_ignored(self, rig):
        opened = threading.Event()
        r = rig(settings=opened.set)
        _record(r)
        assert _wait_for(lambda: "complete" in r.cues.played)
        published = list(r.publisher.states)

        r.orchestrator.post(Event(EventKind.TRANSCRIBED, cycle=1, payload="late"))
        r.orchestrator.post(Event(EventKind.DELIVERED, cycle=99))
        r.orchestrator.open_settings()

        assert opened.wait(2)
        assert r.orchestrator.state is PipelineState.IDLE
        assert r.publisher.states == published
        assert r.dispatcher.delivered == ["i saw the cat"]

    def test_open_settings_does_not_interrupt_recording(self, rig):
        opened = threading.Event()
        r = rig(settings=opened.set)
        r.orchestrator.toggle()
        assert _wait_for(lambda: r.orchestrator.state is PipelineState.RECORDING)
        r.orchestrator.open_settings()
        assert opened.wait(2)
        assert r.orchestrator.state is PipelineState.RECORDING


# ---------------------------------------------------------------------------
# Shutdown
# ---------------------------------------------------------------------------

class TestShutdown:
    def test_shutdown_while_recording(self, rig):
        r = rig()
        r.orchestrator.toggle()
        assert _wait_for(lambda: r.orchestrator.state is PipelineState.RECORDING)

        r.orchestrator.shutdown(timeout=2)
        assert not r.orchestrator.running
        assert r.orchestrator.state is PipelineState.IDLE
        assert r.capture.stops == 1

    def test_shutdown_cancels_transcription(self, rig):
        gate = threading.Event()
        r = rig(engine=FakeEngine(gate=gate))
        try:
            _record(r)
            assert _wait_for(lambda: r.orchestrator.state is PipelineState.PROCESSING)
            r.orchestrator.shutdown(timeout=2)
            assert not r.orchestrator.running
            assert r.dispatcher.delivered == []
            assert _wait_for(lambda: r.publisher.states[-1] is PipelineState.IDLE)
        finally:
            gate.set()

    def test_events_after_shutdown_ignored(self, rig):
        r = rig()
        r.orchestrator.shutdown(timeout=2)
        r.orchestrator.toggle()
        time.sleep(0.05)
        assert r.capture.starts == 0
