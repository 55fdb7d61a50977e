# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Pipeline state machine for voicepipe.

The whole transition table lives in transition(), a pure function from
(state, event) to (next state, actions). The orchestrator executes the
actions; nothing else decides where the pipeline goes next.

    IDLE --toggle--> RECORDING --toggle/auto-stop--> PROCESSING
    PROCESSING --ok--> POST_PROCESSING --> DELIVERING --> IDLE
    RECORDING/PROCESSING --error--> FAILED --reset--> IDLE
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple


class PipelineState(Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"
    POST_PROCESSING = "post_processing"
    DELIVERING = "delivering"
    FAILED = "failed"


class EventKind(Enum):
    TOGGLE = "toggle"                # hotkey or SIGUSR1
    OPEN_SETTINGS = "open_settings"  # hotkey or SIGUSR2
    AUTO_STOP = "auto_stop"          # silence monitor
    CAPTURE_FAILED = "capture_failed"
    TRANSCRIBED = "transcribed"
    REFINED = "refined"
    DELIVERED = "delivered"
    RESET = "reset"
    SHUTDOWN = "shutdown"


# Events produced by pipeline workers; only valid for the cycle that spawned them.
CYCLE_EVENTS = frozenset({
    EventKind.AUTO_STOP,
    EventKind.CAPTURE_FAILED,
    EventKind.TRANSCRIBED,
    EventKind.REFINED,
    EventKind.DELIVERED,
    EventKind.RESET,
})


@dataclass(frozen=True)
class Event:
    kind: EventKind
    cycle: Optional[int] = None
    ok: bool = True
    payload: Any = None


class ActionKind(Enum):
    START_CAPTURE = "start_capture"
    STOP_CAPTURE = "stop_capture"
    TRANSCRIBE = "transcribe"
    POST_PROCESS = "post_process"
    DELIVER = "deliver"
    PLAY_CUE = "play_cue"
    LOG_FAILURE = "log_failure"
    SCHEDULE_RESET = "schedule_reset"
    OPEN_SETTINGS = "open_settings"
    CANCEL = "cancel"
    STOP_LOOP = "stop_loop"


@dataclass(frozen=True)
class Action:
    kind: ActionKind
    arg: Any = None


@dataclass(frozen=True)
class Transition:
    state: PipelineState
    actions: Tuple[Action, ...] = field(default_factory=tuple)
    accepted: bool = True


# Cue played on entry to each state (DELIVERING → IDLE plays "complete").
CUE_START = "start"
CUE_PROCESSING = "processing"
CUE_COMPLETE = "complete"
CUE_FAIL = "fail"
CUES = (CUE_START, CUE_PROCESSING, CUE_COMPLETE, CUE_FAIL)

# Every edge the pipeline may take; used by tests and by the orchestrator's sanity check.
VALID_EDGES = frozenset({
    (PipelineState.IDLE, PipelineState.RECORDING),
    (PipelineState.RECORDING, PipelineState.PROCESSING),
    (PipelineState.RECORDING, PipelineState.FAILED),
    (PipelineState.PROCESSING, PipelineState.POST_PROCESSING),
    (PipelineState.PROCESSING, PipelineState.FAILED),
    (PipelineState.POST_PROCESSING, PipelineState.DELIVERING),
    (PipelineState.DELIVERING, PipelineState.IDLE),
    (PipelineState.FAILED, PipelineState.IDLE),
})


def _failed(event: Event, *pre: Action) -> Transition:
    return Transition(PipelineState.FAILED, pre + (
        Action(ActionKind.PLAY_CUE, CUE_FAIL),
        Action(ActionKind.LOG_FAILURE, event.payload),
        Action(ActionKind.SCHEDULE_RESET),
    ))


def _reject(state: PipelineState) -> Transition:
    return Transition(state, (), accepted=False)


def transition(state: PipelineState, event: Event) -> Transition:
    """Compute the next state and the actions to run for an event."""
    kind = event.kind

    # Accepted everywhere, never moves the pipeline
    if kind is EventKind.OPEN_SETTINGS:
        return Transition(state, (Action(ActionKind.OPEN_SETTINGS),))

    if kind is EventKind.SHUTDOWN:
        actions: List[Action] = [Action(ActionKind.CANCEL)]
        if state is PipelineState.RECORDING:
            actions.append(Action(ActionKind.STOP_CAPTURE))
        actions.append(Action(ActionKind.STOP_LOOP))
        return Transition(PipelineState.IDLE, tuple(actions))

    if state is PipelineState.IDLE:
        if kind is EventKind.TOGGLE:
            return Transition(PipelineState.RECORDING, (
                Action(ActionKind.START_CAPTURE),
                Action(ActionKind.PLAY_CUE, CUE_START),
            ))
        return _reject(state)

    if state is PipelineState.RECORDING:
        if kind in (EventKind.TOGGLE, EventKind.AUTO_STOP):
            return Transition(PipelineState.PROCESSING, (
                Action(ActionKind.STOP_CAPTURE),
                Action(ActionKind.PLAY_CUE, CUE_PROCESSING),
                Action(ActionKind.TRANSCRIBE),
            ))
        if kind is EventKind.CAPTURE_FAILED:
            return _failed(event, Action(ActionKind.STOP_CAPTURE))
        return _reject(state)

    if state is PipelineState.PROCESSING:
        if kind is EventKind.TRANSCRIBED:
            if event.ok:
                return Transition(PipelineState.POST_PROCESSING, (
                    Action(ActionKind.POST_PROCESS, event.payload),
                ))
            return _failed(event)
        return _reject(state)

    if state is PipelineState.POST_PROCESSING:
        if kind is EventKind.REFINED:
            return Transition(PipelineState.DELIVERING, (
                Action(ActionKind.DELIVER, event.payload),
            ))
        return _reject(state)

    if state is PipelineState.DELIVERING:
        if kind is EventKind.DELIVERED:
            return Transition(PipelineState.IDLE, (
                Action(ActionKind.PLAY_CUE, CUE_COMPLETE),
            ))
        return _reject(state)

    if state is PipelineState.FAILED:
        if kind is EventKind.RESET:
            return Transition(PipelineState.IDLE)
        return _reject(state)

    return _reject(state)
