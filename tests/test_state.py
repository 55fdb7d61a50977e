# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Unit tests for the pipeline transition table in state.py.

transition() is pure, so these run without threads or hardware.
"""

from voicepipe.state import (
    CUE_COMPLETE,
    CUE_FAIL,
    CUE_PROCESSING,
    CUE_START,
    VALID_EDGES,
    Action,
    ActionKind,
    Event,
    EventKind,
    PipelineState,
    transition,
)


def _kinds(result):
    return [a.kind for a in result.actions]


def _cues(result):
    return [a.arg for a in result.actions if a.kind is ActionKind.PLAY_CUE]


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

class TestHappyPath:
    def test_toggle_from_idle_starts_recording(self):
        result = transition(PipelineState.IDLE, Event(EventKind.TOGGLE))
        assert result.accepted
        assert result.state is PipelineState.RECORDING
        assert _kinds(result) == [ActionKind.START_CAPTURE, ActionKind.PLAY_CUE]
        assert _cues(result) == [CUE_START]

    def test_toggle_while_recording_stops_and_transcribes(self):
        result = transition(PipelineState.RECORDING, Event(EventKind.TOGGLE, 1))
        assert result.state is PipelineState.PROCESSING
        assert _kinds(result) == [ActionKind.STOP_CAPTURE, ActionKind.PLAY_CUE, ActionKind.TRANSCRIBE]
        assert _cues(result) == [CUE_PROCESSING]

    def test_auto_stop_behaves_like_toggle(self):
        toggled = transition(PipelineState.RECORDING, Event(EventKind.TOGGLE, 1))
        stopped = transition(PipelineState.RECORDING, Event(EventKind.AUTO_STOP, 1, payload="silence"))
        assert stopped.state is toggled.state
        assert _kinds(stopped) == _kinds(toggled)

    def test_transcribed_ok_moves_to_post_processing(self):
        result = transition(PipelineState.PROCESSING, Event(EventKind.TRANSCRIBED, 1, payload="text"))
        assert result.state is PipelineState.POST_PROCESSING
        assert result.actions == (Action(ActionKind.POST_PROCESS, "text"),)

    def test_refined_moves_to_delivering(self):
        result = transition(PipelineState.POST_PROCESSING, Event(EventKind.REFINED, 1, payload="Text."))
        assert result.state is PipelineState.DELIVERING
        assert result.actions == (Action(ActionKind.DELIVER, "Text."),)

    def test_delivered_returns_to_idle_with_complete_cue(self):
        result = transition(PipelineState.DELIVERING, Event(EventKind.DELIVERED, 1))
        assert result.state is PipelineState.IDLE
        assert _cues(result) == [CUE_COMPLETE]

    def test_full_cycle_is_a_valid_path(self):
        events = [
            Event(EventKind.TOGGLE),
            Event(EventKind.TOGGLE, 1),
            Event(EventKind.TRANSCRIBED, 1, payload="x"),
            Event(EventKind.REFINED, 1, payload="x"),
            Event(EventKind.DELIVERED, 1),
        ]
        state = PipelineState.IDLE
        path = [state]
        for event in events:
            state = transition(state, event).state
            path.append(state)
        assert path[-1] is PipelineState.IDLE
        for edge in zip(path, path[1:]):
            assert edge in VALID_EDGES


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestFailures:
    def test_capture_failure_stops_and_fails(self):
        error = RuntimeError("unplugged")
        result = transition(PipelineState.RECORDING, Event(EventKind.CAPTURE_FAILED, 1, ok=False, payload=error))
        assert result.state is PipelineState.FAILED
        assert _kinds(result) == [
            ActionKind.STOP_CAPTURE,
            ActionKind.PLAY_CUE,
            ActionKind.LOG_FAILURE,
            ActionKind.SCHEDULE_RESET,
        ]
        assert _cues(result) == [CUE_FAIL]

    def test_transcription_failure_plays_fail_once(self):
        result = transition(PipelineState.PROCESSING, Event(EventKind.TRANSCRIBED, 1, ok=False, payload="empty"))
        assert result.state is PipelineState.FAILED
        assert _cues(result) == [CUE_FAIL]
        assert Action(ActionKind.LOG_FAILURE, "empty") in result.actions

    def test_reset_returns_to_idle(self):
        result = transition(PipelineState.FAILED, Event(EventKind.RESET, 1))
        assert result.state is PipelineState.IDLE
        assert result.actions == ()


# ---------------------------------------------------------------------------
# Rejected events
# ---------------------------------------------------------------------------

BUSY_STATES = (
    PipelineState.PROCESSING,
    PipelineState.POST_PROCESSING,
    PipelineState.DELIVERING,
    PipelineState.FAILED,
)


class TestRejection:
    def test_toggle_is_noop_while_busy(self):
        for state in BUSY_STATES:
            result = transition(state, Event(EventKind.TOGGLE))
            assert not result.accepted, state
            assert result.state is state
            assert result.actions == ()

    def test_worker_events_rejected_in_idle(self):
        for kind in (EventKind.TRANSCRIBED, EventKind.REFINED, EventKind.DELIVERED, EventKind.AUTO_STOP):
            result = transition(PipelineState.IDLE, Event(kind, 1))
            assert not result.accepted, kind
            assert result.state is PipelineState.IDLE

    def test_every_accepted_move_is_a_valid_edge(self):
        for state in PipelineState:
            for kind in EventKind:
                if kind is EventKind.SHUTDOWN:
                    continue
                for ok in (True, False):
                    result = transition(state, Event(kind, 1, ok=ok))
                    if result.state is not state:
                        assert result.accepted
                        assert (state, result.state) in VALID_EDGES, (state, kind)


# ---------------------------------------------------------------------------
# Settings and shutdown
# ---------------------------------------------------------------------------

class TestSettingsAndShutdown:
    def test_open_settings_accepted_in_every_state(self):
        for state in PipelineState:
            result = transition(state, Event(EventKind.OPEN_SETTINGS))
            assert result.accepted
            assert result.state is state
            assert _kinds(result) == [ActionKind.OPEN_SETTINGS]

    def test_shutdown_while_recording_stops_capture(self):
        result = transition(PipelineState.RECORDING, Event(EventKind.SHUTDOWN))
        assert result.state is PipelineState.IDLE
        assert _kinds(result) == [ActionKind.CANCEL, ActionKind.STOP_CAPTURE, ActionKind.STOP_LOOP]

    def test_shutdown_while_processing_cancels(self):
        result = transition(PipelineState.PROCESSING, Event(EventKind.SHUTDOWN))
        assert _kinds(result) == [ActionKind.CANCEL, ActionKind.STOP_LOOP]
