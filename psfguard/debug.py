"""Process-wide debug switch and prefixed diagnostic printing."""

from __future__ import annotations

import sys
import threading

_debug_enabled = threading.Event()


def init_debug(verbose: bool) -> None:
    """Turn debug output on or off."""
    if verbose:
        _debug_enabled.set()
    else:
        _debug_enabled.clear()


def is_debug_enabled() -> bool:
    """Return whether debug output is on."""
    return _debug_enabled.is_set()


def _emit(prefix: str, message: str) -> None:
    if _debug_enabled.is_set():
        print(f"{prefix}: {message}", file=sys.stderr)


def debug_print(message: str) -> None:
    """Print a general debug message to stderr when debugging is on."""
    _emit("DEBUG", message)


def debug_mtf(message: str) -> None:
    """Print a stretching debug message to stderr when debugging is on."""
    _emit("MTF", message)


def debug_detection(message: str) -> None:
    """Print a star-detection debug message to stderr when debugging is on."""
    _emit("DETECT", message)


def debug_blob(message: str) -> None:
    """Print a blob-analysis debug message to stderr when debugging is on."""
    _emit("BLOB", message)


def info_print(message: str) -> None:
    """Print a message to stdout regardless of the debug switch."""
    print(message)