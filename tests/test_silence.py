# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Unit tests for silence.py and session.py.

A fake clock drives the monitor, so no test sleeps.
"""

import numpy as np
import pytest

from voicepipe.config import AudioConfig
from voicepipe.session import RecordingSession
from voicepipe.silence import REASON_MAX_DURATION, REASON_SILENCE, SilenceMonitor, rms

LOUD = np.full(160, 0.5, dtype=np.float32)
QUIET = np.full(160, 0.001, dtype=np.float32)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _monitor(clock, **overrides):
    values = dict(min_duration=1.0, max_duration=0, auto_stop_silence=2.0, silence_threshold=0.01)
    values.update(overrides)
    return SilenceMonitor(AudioConfig(**values), clock=clock)


# ---------------------------------------------------------------------------
# rms
# ---------------------------------------------------------------------------

class TestRms:
    def test_empty_chunk_is_silent(self):
        assert rms(np.zeros(0, dtype=np.float32)) == 0.0

    def test_constant_signal(self):
        assert rms(np.full(8, -0.5, dtype=np.float32)) == pytest.approx(0.5)

    def test_two_dimensional_chunk(self):
        assert rms(np.full((4, 1), 0.25, dtype=np.float32)) == pytest.approx(0.25)


# ---------------------------------------------------------------------------
# SilenceMonitor
# ---------------------------------------------------------------------------

class TestSilenceMonitor:
    def test_silence_after_speech_stops(self):
        clock = FakeClock()
        monitor = _monitor(clock)
        assert monitor.feed(LOUD) is None
        clock.now = 0.5
        assert monitor.feed(QUIET) is None
        clock.now = 2.4
        assert monitor.poll() is None
        clock.now = 2.6
        assert monitor.poll() == REASON_SILENCE

    def test_reason_reported_once(self):
        clock = FakeClock()
        monitor = _monitor(clock)
        clock.now = 3.0
        assert monitor.poll() == REASON_SILENCE
        assert monitor.fired
        clock.now = 10.0
        assert monitor.poll() is None
        assert monitor.feed(QUIET) is None

    def test_session_starts_silent(self):
        clock = FakeClock()
        monitor = _monitor(clock)
        clock.now = 2.0
        assert monitor.poll() == REASON_SILENCE

    def test_min_duration_delays_silence_stop(self):
        clock = FakeClock()
        monitor = _monitor(clock, min_duration=5.0, auto_stop_silence=1.0)
        clock.now = 3.0
        assert monitor.poll() is None
        clock.now = 5.0
        assert monitor.poll() == REASON_SILENCE

    def test_speech_resets_silence_timer(self):
        clock = FakeClock()
        monitor = _monitor(clock)
        clock.now = 1.5
        monitor.feed(LOUD)
        clock.now = 1.6
        monitor.feed(QUIET)
        clock.now = 3.5
        assert monitor.poll() is None
        clock.now = 3.7
        assert monitor.poll() == REASON_SILENCE

    def test_max_duration_stops_even_while_speaking(self):
        clock = FakeClock()
        monitor = _monitor(clock, max_duration=3, auto_stop_silence=0)
        monitor.feed(LOUD)
        clock.now = 2.9
        assert monitor.feed(LOUD) is None
        clock.now = 3.0
        assert monitor.feed(LOUD) == REASON_MAX_DURATION

    def test_zero_limits_disable_auto_stop(self):
        clock = FakeClock()
        monitor = _monitor(clock, max_duration=0, auto_stop_silence=0)
        clock.now = 1000.0
        assert monitor.poll() is None
        assert not monitor.fired

    def test_peak_and_elapsed(self):
        clock = FakeClock()
        monitor = _monitor(clock)
        monitor.feed(QUIET)
        monitor.feed(LOUD)
        clock.now = 1.25
        assert monitor.peak == pytest.approx(0.5)
        assert monitor.elapsed() == pytest.approx(1.25)


# ---------------------------------------------------------------------------
# RecordingSession
# ---------------------------------------------------------------------------

class TestRecordingSession:
    def test_seal_concatenates_chunks(self):
        session = RecordingSession(1, 16000)
        session.append(np.ones(100, dtype=np.float32))
        session.append(np.zeros(60, dtype=np.float32))
        samples = session.seal()
        assert samples.dtype == np.float32
        assert len(samples) == 160
        assert session.sample_count == 160
        assert session.duration() == pytest.approx(0.01)

    def test_empty_session_seals_to_empty_array(self):
        samples = RecordingSession(1, 16000).seal()
        assert len(samples) == 0
        assert samples.dtype == np.float32

    def test_chunks_after_seal_are_dropped(self):
        session = RecordingSession(1, 16000)
        session.append(np.ones(10, dtype=np.float32))
        session.seal()
        assert session.sealed
        assert session.append(np.ones(10, dtype=np.float32)) is False
        assert session.sample_count == 10

    def test_buffer_bounded_by_max_duration(self):
        session = RecordingSession(1, sample_rate=100, max_duration=1)
        assert session.append(np.ones(80, dtype=np.float32))
        assert session.append(np.ones(80, dtype=np.float32))
        assert session.append(np.ones(10, dtype=np.float32)) is False
        assert len(session.seal()) == 100

    def test_appended_chunk_is_copied(self):
        session = RecordingSession(1, 16000)
        chunk = np.ones(4, dtype=np.float32)
        session.append(chunk)
        chunk[:] = 0
        assert session.seal().sum() == 4
