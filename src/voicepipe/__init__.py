"""
voicepipe - Local dictation for Linux and macOS

Press a hotkey (or send SIGUSR1) -> speak -> stop or go silent -> text lands
on the clipboard and in the focused window. Transcription runs locally with
whisper.cpp; optional refinement uses a local LLM server.
"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("voicepipe")
except PackageNotFoundError:
    __version__ = "0.0.0"  # Not installed

__all__ = ["__version__"]
