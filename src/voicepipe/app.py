# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
voicepipe service: wires triggers, capture, transcription, refinement,
delivery, status and cues around the orchestrator.
"""

import atexit
import fcntl
import os
import sys
import threading

from .audio import AudioCapture
from .backends import get_backend_info
from .config import CONFIG_DIR, CONFIG_FILE, get_config, reload_config
from .engines import create_engine, get_engine_info
from .history import HISTORY_FILENAME, History
from .models import ModelManager
from .orchestrator import Orchestrator
from .output import OutputDispatcher
from .postprocess import PostProcessor
from .sounds import CuePlayer
from .status import StatusPublisher
from .transcriber import TranscriptionInvoker
from .triggers import HotkeyListener, install_signal_handlers
from .utils import C_BOLD, C_CYAN, C_DIM, C_GREEN, C_RESET, C_YELLOW, log, open_path


class App:
    """Long-running dictation service."""

    def __init__(self):
        self.config = get_config()
        config = self.config

        self._stop_event = threading.Event()
        self.models = ModelManager(config.models.path, config.models.max_concurrent_downloads)
        self.engine = create_engine(config.transcription.engine, threads=config.transcription.threads)
        self.invoker = TranscriptionInvoker(self.engine, self.models, timeout=config.transcription.timeout)
        self.postprocessor = PostProcessor(
            History(config.data_dir / HISTORY_FILENAME, config.postprocess.history_limit)
        )
        self.cues = CuePlayer(config.sounds)
        self.publisher = StatusPublisher(config.status.file)
        self.capture = AudioCapture(config.audio.sample_rate, config.audio.device)
        self.hotkeys = HotkeyListener()

        self.orchestrator = Orchestrator(
            capture=self.capture,
            invoker=self.invoker,
            postprocessor=self.postprocessor,
            dispatcher=OutputDispatcher(),
            publisher=self.publisher,
            cues=self.cues,
            config_provider=self._fresh_config,
            on_settings=self._open_settings,
            backup_path=config.data_dir / "last_transcription.txt",
        )

    def _fresh_config(self):
        """Re-read settings at the start of every cycle."""
        self.config = reload_config()
        self.cues.configure(self.config.sounds)
        # A newly selected model starts downloading now
        self._ensure_model()
        return self.config

    def _ensure_model(self):
        model_id = self.config.models.selected
        try:
            future = self.models.ensure(model_id)
        except ValueError as e:
            log(str(e), "ERR")
            return
        if future is not None:
            log(f"Model '{model_id}' not ready, downloading in the background", "WARN")

    def _open_settings(self):
        log(f"Opening {CONFIG_FILE}", "APP")
        open_path(CONFIG_FILE)

    def stop(self):
        self._stop_event.set()

    def run(self):
        self._ensure_model()
        self.orchestrator.start()
        self.hotkeys.bind(self.config.hotkey.toggle, self.orchestrator.toggle)
        self.hotkeys.bind(self.config.hotkey.settings, self.orchestrator.open_settings)
        self.hotkeys.start()
        log("Ready", "OK")
        while not self._stop_event.wait(0.5):
            pass

    def _cleanup(self):
        log("Shutting down...", "APP")
        self.hotkeys.stop()
        self.orchestrator.shutdown()
        self.cues.close()
        self.invoker.close()
        self.postprocessor.close()
        self.models.close()


# ---------------------------------------------------------------------------
# Service logging
# ---------------------------------------------------------------------------

LOG_FILE = CONFIG_DIR / "service.log"
LOG_MAX_SIZE = 1_000_000  # ~1MB


def _setup_service_logging():
    """Redirect stdout/stderr to service log when not attached to a terminal."""
    if sys.stdout.isatty():
        return
    LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    if LOG_FILE.exists() and LOG_FILE.stat().st_size > LOG_MAX_SIZE:
        LOG_FILE.write_text("")
    log_fd = open(LOG_FILE, "a", buffering=1, encoding="utf-8")
    sys.stdout = log_fd
    sys.stderr = log_fd


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def service_main():
    """Entry point for the service (systemd user unit, autostart, or a terminal)."""
    _setup_service_logging()

    # Single-instance lock
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    lock_path = str(CONFIG_DIR / "service.lock")
    lock_fd = os.open(lock_path, os.O_CREAT | os.O_WRONLY, 0o600)
    lock_file = os.fdopen(lock_fd, "w")
    try:
        fcntl.flock(lock_file, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        print("voicepipe is already running.", file=sys.stderr)
        sys.exit(0)
    atexit.register(lambda: (fcntl.flock(lock_file, fcntl.LOCK_UN), lock_file.close()))

    config = get_config()
    key_name = config.hotkey.toggle.upper().replace("_", " ") or "SIGUSR1"

    if config.postprocess.enabled:
        backend_info = get_backend_info(config.postprocess.backend)
        refine_info = f"{backend_info.name if backend_info else config.postprocess.backend} · {config.postprocess.model}"
    else:
        refine_info = "Disabled"
    engine_info = get_engine_info(config.transcription.engine)

    print()
    print(f"  {C_BOLD}╭────────────────────────────────────────╮{C_RESET}")
    print(f"  {C_BOLD}│{C_RESET}  {C_CYAN}voicepipe{C_RESET} · Voice -> Text -> Clipboard  {C_BOLD}│{C_RESET}")
    print(f"  {C_BOLD}│{C_RESET}  {C_GREEN}100% Local{C_RESET} · No Cloud · Private      {C_BOLD}│{C_RESET}")
    print(f"  {C_BOLD}╰────────────────────────────────────────╯{C_RESET}")
    print()
    print(f"  {C_DIM}Toggle:{C_RESET}  {C_YELLOW}{key_name}{C_RESET} or kill -USR1 {os.getpid()}")
    print(f"  {C_DIM}Engine:{C_RESET}  {engine_info.name if engine_info else config.transcription.engine} ({config.models.selected})")
    print(f"  {C_DIM}Refine:{C_RESET}  {refine_info}")
    print(f"  {C_DIM}Config:{C_RESET}  {CONFIG_FILE}")
    print(f"  {C_DIM}Status:{C_RESET}  {config.status.file}")
    print()

    app = App()

    install_signal_handlers(
        on_toggle=app.orchestrator.toggle,
        on_settings=app.orchestrator.open_settings,
        on_shutdown=app.stop,
    )

    try:
        app.run()
    finally:
        app._cleanup()


if __name__ == "__main__":
    service_main()
