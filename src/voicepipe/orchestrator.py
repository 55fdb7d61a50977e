# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Recording orchestrator for voicepipe.

One event-loop thread owns the pipeline state. Triggers, the capture
thread, the silence ticker and pipeline workers only ever post events;
the loop runs transition() and executes the resulting actions. Work that
takes time (transcription, refinement, delivery) runs on a worker and
reports back with an event tagged by cycle id, so the loop stays free to
reject or accept triggers while it waits.
"""

import copy
import itertools
import queue
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import numpy as np

from .config import AudioConfig, Config
from .dictionary import DictionaryRule, apply_rules, dictionary_hint, load_dictionary
from .errors import VoicepipeError
from .postprocess import PostProcessingJob
from .session import RecordingSession
from .silence import SilenceMonitor
from .state import (
    CYCLE_EVENTS,
    VALID_EDGES,
    Action,
    ActionKind,
    Event,
    EventKind,
    PipelineState,
    transition,
)
from .transcriber import FailureKind, TranscriptionRequest, TranscriptionResult
from .utils import atomic_write_text, log, run_in_thread, truncate

# Silence ticker period (seconds)
TICK_INTERVAL = 0.1


@dataclass
class Cycle:
    """Everything one dictation cycle works with, fixed at its start."""
    id: int
    config: Config
    rules: List[DictionaryRule] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    session: Optional[RecordingSession] = None
    monitor: Optional[SilenceMonitor] = None
    samples: Optional[np.ndarray] = None
    ticker_stop: threading.Event = field(default_factory=threading.Event)
    reset_timer: Optional[threading.Timer] = None

    @property
    def language(self) -> Optional[str]:
        language = self.config.transcription.language
        return None if language in ("", "auto") else language


def describe_failure(payload) -> str:
    """Human-readable cause for the status tooltip and the log."""
    if isinstance(payload, TranscriptionResult):
        error = payload.error()
        return f"{type(error).__name__}: {payload.detail}" if error else "Unknown failure"
    if isinstance(payload, VoicepipeError):
        return f"{type(payload).__name__}: {payload}"
    if isinstance(payload, Exception):
        return f"{type(payload).__name__}: {payload}"
    return str(payload) if payload else "Unknown failure"


class Orchestrator:
    """Drives recording cycles from trigger to delivery."""

    def __init__(
        self,
        capture,
        invoker,
        postprocessor,
        dispatcher,
        publisher,
        cues,
        config_provider: Callable[[], Config],
        dictionary_loader: Callable[[Path], Tuple[List[DictionaryRule], Optional[str]]] = load_dictionary,
        monitor_factory: Callable[[AudioConfig], SilenceMonitor] = SilenceMonitor,
        on_settings: Optional[Callable[[], None]] = None,
        backup_path: Optional[Path] = None,
        tick_interval: float = TICK_INTERVAL,
    ):
        self._capture = capture
        self._invoker = invoker
        self._postprocessor = postprocessor
        self._dispatcher = dispatcher
        self._publisher = publisher
        self._cues = cues
        self._config_provider = config_provider
        self._dictionary_loader = dictionary_loader
        self._monitor_factory = monitor_factory
        self._on_settings = on_settings
        self._backup_path = backup_path
        self._tick_interval = tick_interval

        self._queue: "queue.Queue[Event]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._stopped = threading.Event()
        self._cancel = threading.Event()
        self._cycle_ids = itertools.count(1)

        # Owned by the loop thread
        self._state = PipelineState.IDLE
        self._cycle: Optional[Cycle] = None

        self.last_text: Optional[str] = None

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ─────────────────────────────────────────────────────────────────
    # Public API (any thread)
    # ─────────────────────────────────────────────────────────────────

    def start(self):
        if self.running:
            return
        self._publisher.publish(self._state)
        self._thread = threading.Thread(target=self._run, name="orchestrator", daemon=True)
        self._thread.start()

    def post(self, event: Event):
        """Queue an event for the loop; ignored after shutdown."""
        if self._stopped.is_set():
            return
        self._queue.put(event)

    def toggle(self):
        self.post(Event(EventKind.TOGGLE))

    def open_settings(self):
        self.post(Event(EventKind.OPEN_SETTINGS))

    def shutdown(self, timeout: float = 5.0):
        """Stop capture, cancel transcription and end the loop."""
        if self._stopped.is_set():
            return
        self._queue.put(Event(EventKind.SHUTDOWN))
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._stopped.set()

    # ─────────────────────────────────────────────────────────────────
    # Event loop
    # ─────────────────────────────────────────────────────────────────

    def _run(self):
        while True:
            event = self._queue.get()
            try:
                keep_going = self._handle(event)
            except Exception as e:
                log(f"Orchestrator error on {event.kind.value}: {type(e).__name__}: {e}", "ERR")
                keep_going = True
            if not keep_going:
                break

    def _handle(self, event: Event) -> bool:
        cycle = self._cycle
        if event.kind in CYCLE_EVENTS and (cycle is None or event.cycle != cycle.id):
            log(f"Ignoring stale {event.kind.value} (cycle {event.cycle})", "INFO")
            return True

        prev = self._state
        result = transition(prev, event)
        if not result.accepted:
            if event.kind is EventKind.TOGGLE:
                log(f"Busy ({prev.value.replace('_', ' ')}), toggle ignored", "WARN")
            return True

        if (
            result.state is not prev
            and event.kind is not EventKind.SHUTDOWN
            and (prev, result.state) not in VALID_EDGES
        ):
            log(f"Invalid transition {prev.value} -> {result.state.value}", "ERR")
            return True

        if prev is PipelineState.IDLE and result.state is PipelineState.RECORDING:
            cycle = self._begin_cycle()

        self._state = result.state
        if result.state is not prev:
            self._publisher.publish(result.state, self._detail(result.state, event))
            if result.state is PipelineState.RECORDING:
                log("Recording...", "REC")

        for action in result.actions:
            self._execute(action, cycle)

        if result.state is PipelineState.IDLE and prev is not PipelineState.IDLE:
            self._end_cycle()

        return not any(a.kind is ActionKind.STOP_LOOP for a in result.actions)

    def _detail(self, state: PipelineState, event: Event) -> Optional[str]:
        if state is PipelineState.FAILED:
            return describe_failure(event.payload)
        cycle = self._cycle
        warnings = cycle.warnings if cycle else []
        if state is PipelineState.IDLE and event.kind is EventKind.SHUTDOWN:
            return None
        return "; ".join(warnings) or None

    # ─────────────────────────────────────────────────────────────────
    # Cycle lifecycle
    # ─────────────────────────────────────────────────────────────────

    def _begin_cycle(self) -> Cycle:
        config = copy.deepcopy(self._config_provider())
        rules, warning = self._dictionary_loader(config.dictionary.file)
        cycle = Cycle(id=next(self._cycle_ids), config=config, rules=list(rules))
        if warning:
            cycle.warnings.append(warning)
        self._cycle = cycle
        return cycle

    def _end_cycle(self):
        cycle = self._cycle
        if cycle is not None:
            cycle.ticker_stop.set()
            if cycle.reset_timer is not None:
                cycle.reset_timer.cancel()
        self._cycle = None

    # ─────────────────────────────────────────────────────────────────
    # Actions
    # ─────────────────────────────────────────────────────────────────

    def _execute(self, action: Action, cycle: Optional[Cycle]):
        kind = action.kind

        if kind is ActionKind.PLAY_CUE:
            try:
                self._cues.play(action.arg)
            except Exception as e:
                log(f"Cue '{action.arg}' failed: {e}", "WARN")
        elif kind is ActionKind.OPEN_SETTINGS:
            self._open_settings()
        elif kind is ActionKind.CANCEL:
            self._cancel.set()
            if cycle is not None and cycle.reset_timer is not None:
                cycle.reset_timer.cancel()
        elif kind is ActionKind.STOP_LOOP:
            self._stopped.set()
        elif cycle is None:
            log(f"No active cycle for {kind.value}", "ERR")
        elif kind is ActionKind.START_CAPTURE:
            self._start_capture(cycle)
        elif kind is ActionKind.STOP_CAPTURE:
            self._stop_capture(cycle)
        elif kind is ActionKind.TRANSCRIBE:
            self._submit(self._transcribe, cycle)
        elif kind is ActionKind.POST_PROCESS:
            self._submit(self._refine, cycle, action.arg)
        elif kind is ActionKind.DELIVER:
            self._submit(self._deliver, cycle, action.arg)
        elif kind is ActionKind.LOG_FAILURE:
            log(f"Failed: {describe_failure(action.arg)}", "ERR")
        elif kind is ActionKind.SCHEDULE_RESET:
            self._schedule_reset(cycle)

    def _open_settings(self):
        if self._on_settings is None:
            return
        try:
            self._on_settings()
        except Exception as e:
            log(f"Could not open settings: {e}", "ERR")

    def _start_capture(self, cycle: Cycle):
        audio = cycle.config.audio
        cycle.session = RecordingSession(cycle.id, audio.sample_rate, audio.max_duration)
        cycle.monitor = self._monitor_factory(audio)

        def on_chunk(chunk: np.ndarray):
            if not cycle.session.append(chunk):
                return
            reason = cycle.monitor.feed(chunk)
            if reason:
                self._auto_stop(cycle, reason)

        def on_error(error: Exception):
            self.post(Event(EventKind.CAPTURE_FAILED, cycle.id, ok=False, payload=error))

        if hasattr(self._capture, "configure"):
            self._capture.configure(audio.sample_rate, audio.device)
        try:
            self._capture.start(on_chunk, on_error)
        except VoicepipeError as e:
            on_error(e)
            return

        threading.Thread(
            target=self._tick, args=(cycle,), name=f"silence-{cycle.id}", daemon=True
        ).start()

    def _tick(self, cycle: Cycle):
        while not cycle.ticker_stop.wait(self._tick_interval):
            reason = cycle.monitor.poll()
            if reason:
                self._auto_stop(cycle, reason)
                return

    def _auto_stop(self, cycle: Cycle, reason: str):
        log(f"Auto-stop ({reason.replace('_', ' ')})", "INFO")
        self.post(Event(EventKind.AUTO_STOP, cycle.id, payload=reason))

    def _stop_capture(self, cycle: Cycle):
        cycle.ticker_stop.set()
        try:
            self._capture.stop()
        except Exception as e:
            log(f"Capture stop failed: {e}", "WARN")
        if cycle.session is not None:
            cycle.samples = cycle.session.seal()
            log(f"Captured {cycle.session.duration():.1f}s of audio", "INFO")

    def _submit(self, fn, *args):
        # One step at a time: the next one is only submitted on its completion event
        if self._stopped.is_set():
            log(f"Shutting down, skipping {fn.__name__.lstrip('_')}", "WARN")
            return
        run_in_thread(fn, *args, name="pipeline")

    def _transcribe(self, cycle: Cycle):
        config = cycle.config
        samples = cycle.samples if cycle.samples is not None else np.zeros(0, dtype=np.float32)
        request = TranscriptionRequest(
            samples=samples,
            model_id=config.models.selected,
            language=config.transcription.language,
            sample_rate=config.audio.sample_rate,
        )
        try:
            result = self._invoker.invoke(request, self._cancel)
        except Exception as e:
            log(f"Transcription crashed: {type(e).__name__}: {e}", "ERR")
            result = TranscriptionResult.failed(FailureKind.BACKEND_ERROR, str(e))
        if result.ok:
            log(f"Transcript: {truncate(result.text)}", "OK")
        self.post(Event(EventKind.TRANSCRIBED, cycle.id, ok=result.ok, payload=result))

    def _refine(self, cycle: Cycle, result: TranscriptionResult):
        text = result.text
        try:
            text = apply_rules(text, cycle.rules)
            postprocess = cycle.config.postprocess
            if postprocess.enabled:
                job = PostProcessingJob(
                    input_text=text,
                    config=postprocess,
                    language=cycle.language,
                    dictionary_hint=dictionary_hint(cycle.rules),
                )
                outcome = self._postprocessor.process(job)
                if outcome.error:
                    cycle.warnings.append(f"post-processing skipped: {outcome.error}")
                text = outcome.text
        except Exception as e:
            log(f"Refinement failed, keeping transcript: {type(e).__name__}: {e}", "ERR")
            cycle.warnings.append(f"post-processing skipped: {e}")
        self.post(Event(EventKind.REFINED, cycle.id, payload=text))

    def _deliver(self, cycle: Cycle, text: str):
        report = None
        try:
            report = self._dispatcher.deliver(text, cycle.config.output)
            if report.error:
                cycle.warnings.append(report.error)
        except Exception as e:
            log(f"Delivery failed: {type(e).__name__}: {e}", "ERR")
            cycle.warnings.append(f"delivery failed: {e}")
        self._save_last(text)
        self.post(Event(EventKind.DELIVERED, cycle.id, payload=report))

    def _save_last(self, text: str):
        self.last_text = text
        if self._backup_path is None:
            return
        try:
            atomic_write_text(self._backup_path, text)
        except OSError as e:
            log(f"Could not save last transcription: {e}", "WARN")

    def _schedule_reset(self, cycle: Cycle):
        reset = Event(EventKind.RESET, cycle.id)
        hold = cycle.config.status.failure_hold
        if hold <= 0:
            self.post(reset)
            return
        timer = threading.Timer(hold, self.post, args=(reset,))
        timer.daemon = True
        cycle.reset_timer = timer
        timer.start()
