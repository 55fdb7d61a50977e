# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Configuration management for voicepipe.

Loads settings from ~/.voicepipe/config.toml with sensible defaults.
"""

import sys
import threading
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

CONFIG_DIR = Path.home() / ".voicepipe"
CONFIG_FILE = CONFIG_DIR / "config.toml"

# Available post-processing backends
POSTPROCESS_BACKENDS = ("openai", "ollama")

# Available transcription engines
TRANSCRIPTION_ENGINES = ("whisper_cpp",)

# Default configuration
DEFAULT_CONFIG = """# voicepipe configuration
# Edit this file to customize behavior. Changes apply from the next recording.

[hotkey]
# Key that starts/stops a recording (pynput key name: f9, alt_r, ctrl_r, ...)
toggle = "f9"

# Key that opens this settings file ("" disables)
settings = ""

[audio]
# Sample rate in Hz (whisper.cpp expects 16000)
sample_rate = 16000

# Input device name or index ("" = system default)
device = ""

# Minimum recording duration in seconds before silence may stop it
min_duration = 1.0

# Maximum recording duration in seconds (0 = unlimited)
max_duration = 600

# Stop recording automatically after this many seconds of silence (0 = never)
auto_stop_silence = 10.0

# RMS level below which audio counts as silence (0.0-1.0)
silence_threshold = 0.005

[transcription]
# Transcription engine
engine = "whisper_cpp"

# Language code (en, ja, de, ...) or "auto" for detection
language = "auto"

# Transcription timeout in seconds (0 = no limit)
timeout = 0

# Number of CPU threads for inference (0 = engine default)
threads = 0

[models]
# Model to use (tiny, base, small, medium, large-v3, or an .en variant)
selected = "small"

# Directory holding downloaded model files
directory = "~/.voicepipe/models"

# Maximum number of simultaneous model downloads
max_concurrent_downloads = 2

[postprocess]
# Refine transcripts with a local language model
enabled = false

# Backend: "openai" (OpenAI-compatible /chat/completions) or "ollama" (/api/generate)
backend = "openai"

# Base URL of the local service
base_url = "http://localhost:11434/v1"

# Model name on that service
model = "llama3.1:8b"

# Mode: "format", "summary", or "custom"
mode = "format"

# Force prompt language ("" = follow transcription language)
language_override = ""

# Custom prompt (used when mode = "custom").
# {{transcript}} is replaced by the text, {{dictionary}} by your dictionary rules.
custom_system_prompt = ""
custom_prompt = "{{transcript}}"

# Maximum input characters sent to the model (0 = no limit)
max_input_chars = 4000

# Request timeout in seconds
timeout = 30

# Number of refinements kept in the history file
history_limit = 20

[output]
# Copy the result to the clipboard
use_clipboard = true

# Paste into the focused application after copying
auto_paste = true

[sounds]
# Play cues on start / processing / complete / fail
enabled = true

# Cue volume (0.0-1.0)
volume = 0.6

# Optional sound files overriding the built-in tones
start = ""
processing = ""
complete = ""
fail = ""

[status]
# Status document for bar widgets (waybar, polybar, ...)
path = "~/.voicepipe/status.json"

# Seconds the failure state stays visible before returning to idle
failure_hold = 2.0

[dictionary]
# Word/phrase substitution rules
path = "~/.voicepipe/dictionary.toml"
"""


@dataclass
class HotkeyConfig:
    toggle: str = "f9"
    settings: str = ""


@dataclass
class AudioConfig:
    sample_rate: int = 16000
    device: str = ""
    min_duration: float = 1.0
    max_duration: float = 600
    auto_stop_silence: float = 10.0
    silence_threshold: float = 0.005


@dataclass
class TranscriptionConfig:
    engine: str = "whisper_cpp"
    language: str = "auto"
    timeout: int = 0
    threads: int = 0


@dataclass
class ModelsConfig:
    selected: str = "small"
    directory: str = "~/.voicepipe/models"
    max_concurrent_downloads: int = 2

    @property
    def path(self) -> Path:
        return Path(self.directory).expanduser()


@dataclass
class PostProcessConfig:
    """Language-model refinement settings."""
    enabled: bool = False
    backend: str = "openai"
    base_url: str = "http://localhost:11434/v1"
    model: str = "llama3.1:8b"
    mode: str = "format"
    language_override: str = ""
    custom_system_prompt: str = ""
    custom_prompt: str = "{{transcript}}"
    max_input_chars: int = 4000
    timeout: int = 30
    history_limit: int = 20


@dataclass
class OutputConfig:
    use_clipboard: bool = True
    auto_paste: bool = True


@dataclass
class SoundsConfig:
    enabled: bool = True
    volume: float = 0.6
    start: str = ""
    processing: str = ""
    complete: str = ""
    fail: str = ""


@dataclass
class StatusConfig:
    path: str = "~/.voicepipe/status.json"
    failure_hold: float = 2.0

    @property
    def file(self) -> Path:
        return Path(self.path).expanduser()


@dataclass
class DictionaryConfig:
    path: str = "~/.voicepipe/dictionary.toml"

    @property
    def file(self) -> Path:
        return Path(self.path).expanduser()


@dataclass
class Config:
    hotkey: HotkeyConfig = field(default_factory=HotkeyConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    models: ModelsConfig = field(default_factory=ModelsConfig)
    postprocess: PostProcessConfig = field(default_factory=PostProcessConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    sounds: SoundsConfig = field(default_factory=SoundsConfig)
    status: StatusConfig = field(default_factory=StatusConfig)
    dictionary: DictionaryConfig = field(default_factory=DictionaryConfig)

    @property
    def data_dir(self) -> Path:
        return CONFIG_DIR


def _section(data: dict, name: str, current):
    """Build a section dataclass from parsed TOML, keeping defaults for missing keys."""
    values = data.get(name)
    if not isinstance(values, dict):
        return current
    kwargs = {}
    for key in current.__dataclass_fields__:
        kwargs[key] = values.get(key, getattr(current, key))
    return type(current)(**kwargs)


def load_config() -> Config:
    """Load configuration from file, creating default if missing."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    try:
        CONFIG_DIR.chmod(0o700)
    except OSError:
        pass

    # Create default config if it doesn't exist
    if not CONFIG_FILE.exists():
        CONFIG_FILE.write_text(DEFAULT_CONFIG, encoding='utf-8')

    # Load and parse config
    data = {}
    try:
        with open(CONFIG_FILE, 'rb') as f:
            data = tomllib.load(f)
    except Exception as e:
        print(f"Config parse error: {e}", file=sys.stderr)

    config = Config()
    config.hotkey = _section(data, 'hotkey', config.hotkey)
    config.audio = _section(data, 'audio', config.audio)
    config.transcription = _section(data, 'transcription', config.transcription)
    config.models = _section(data, 'models', config.models)
    config.postprocess = _section(data, 'postprocess', config.postprocess)
    config.output = _section(data, 'output', config.output)
    config.sounds = _section(data, 'sounds', config.sounds)
    config.status = _section(data, 'status', config.status)
    config.dictionary = _section(data, 'dictionary', config.dictionary)

    # Validate and sanitize config values
    _validate_config(config)

    return config


def _is_valid_url(url: str) -> bool:
    """Check if a string is a valid HTTP/HTTPS URL."""
    try:
        result = urlparse(url)
        return result.scheme in ("http", "https") and bool(result.netloc)
    except (ValueError, AttributeError):
        return False


def _coerce_types(config: Config):
    """Convert mistyped values (e.g. numbers written as strings) or reset them to defaults."""
    for section_field in fields(config):
        section = getattr(config, section_field.name)
        defaults = type(section)()
        for f in fields(section):
            value = getattr(section, f.name)
            default = getattr(defaults, f.name)
            where = f"{section_field.name}.{f.name}"
            if isinstance(default, bool):
                if not isinstance(value, bool):
                    print(f"Config warning: {where} must be true or false, using {str(default).lower()}", file=sys.stderr)
                    setattr(section, f.name, default)
            elif isinstance(default, (int, float)):
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    continue
                try:
                    if isinstance(value, bool):
                        raise ValueError(value)
                    target = f.type if f.type in (int, float) else type(default)
                    setattr(section, f.name, target(value))
                except (TypeError, ValueError):
                    print(f"Config warning: {where} must be a number, using {default}", file=sys.stderr)
                    setattr(section, f.name, default)
            elif isinstance(default, str) and not isinstance(value, str):
                if where == "audio.device" and isinstance(value, int) and not isinstance(value, bool):
                    continue
                print(f"Config warning: {where} must be a string, using '{default}'", file=sys.stderr)
                setattr(section, f.name, default)


def _validate_config(config: Config):
    """Validate and sanitize configuration values."""
    _coerce_types(config)

    # Audio validation
    if not isinstance(config.audio.sample_rate, int) or config.audio.sample_rate <= 0:
        print("Config warning: sample_rate must be a positive integer, using 16000", file=sys.stderr)
        config.audio.sample_rate = 16000

    if config.audio.sample_rate != 16000:
        print(f"Config warning: sample_rate {config.audio.sample_rate} may not be compatible with whisper.cpp (16000 recommended)", file=sys.stderr)

    if config.audio.min_duration < 0:
        config.audio.min_duration = 0.0

    if config.audio.max_duration < 0:
        print("Config warning: max_duration cannot be negative, using 0 (unlimited)", file=sys.stderr)
        config.audio.max_duration = 0

    if config.audio.auto_stop_silence < 0:
        config.audio.auto_stop_silence = 0.0

    if not 0.0 <= config.audio.silence_threshold <= 1.0:
        print("Config warning: silence_threshold must be between 0.0 and 1.0, using 0.005", file=sys.stderr)
        config.audio.silence_threshold = 0.005

    if not isinstance(config.audio.device, (str, int)):
        config.audio.device = ""

    # Transcription validation
    if config.transcription.engine not in TRANSCRIPTION_ENGINES:
        print(f"Config warning: Invalid transcription engine '{config.transcription.engine}', using 'whisper_cpp'", file=sys.stderr)
        config.transcription.engine = "whisper_cpp"

    if not config.transcription.language:
        config.transcription.language = "auto"

    if config.transcription.timeout < 0:
        config.transcription.timeout = 0

    if config.transcription.threads < 0:
        config.transcription.threads = 0

    # Models validation
    if not isinstance(config.models.max_concurrent_downloads, int) or config.models.max_concurrent_downloads < 1:
        print("Config warning: max_concurrent_downloads must be a positive integer, using 2", file=sys.stderr)
        config.models.max_concurrent_downloads = 2

    # Post-processing validation
    if config.postprocess.backend not in POSTPROCESS_BACKENDS:
        print(f"Config warning: Invalid postprocess backend '{config.postprocess.backend}', using 'openai'", file=sys.stderr)
        config.postprocess.backend = "openai"

    if not _is_valid_url(config.postprocess.base_url):
        print(f"Config warning: Invalid postprocess base_url '{config.postprocess.base_url}', using default", file=sys.stderr)
        config.postprocess.base_url = "http://localhost:11434/v1"

    if config.postprocess.mode not in ("format", "summary", "custom"):
        print(f"Config warning: invalid postprocess mode '{config.postprocess.mode}', using 'format'", file=sys.stderr)
        config.postprocess.mode = "format"

    if config.postprocess.max_input_chars < 0:
        config.postprocess.max_input_chars = 0

    if config.postprocess.timeout <= 0:
        print("Config warning: postprocess timeout must be positive, using 30", file=sys.stderr)
        config.postprocess.timeout = 30

    if not isinstance(config.postprocess.history_limit, int) or config.postprocess.history_limit < 1:
        print("Config warning: history_limit must be a positive integer, using 20", file=sys.stderr)
        config.postprocess.history_limit = 20
    elif config.postprocess.history_limit > 1000:
        print("Config warning: history_limit clamped to 1000", file=sys.stderr)
        config.postprocess.history_limit = 1000

    # Sounds validation
    if not 0.0 <= config.sounds.volume <= 1.0:
        print("Config warning: sounds volume must be between 0.0 and 1.0, clamping", file=sys.stderr)
        config.sounds.volume = min(1.0, max(0.0, config.sounds.volume))

    # Status validation
    if config.status.failure_hold < 0:
        config.status.failure_hold = 0.0


# Global config instance with thread-safe initialization
_config: Optional[Config] = None
_config_lock = threading.Lock()


def get_config() -> Config:
    """Get the global configuration instance (thread-safe)."""
    global _config
    if _config is None:
        with _config_lock:
            # Double-check locking pattern for thread safety
            if _config is None:
                _config = load_config()
    return _config


def reload_config() -> Config:
    """Re-read the config file and replace the global instance."""
    global _config
    fresh = load_config()
    with _config_lock:
        _config = fresh
    return fresh
