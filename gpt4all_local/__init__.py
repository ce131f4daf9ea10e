"""
Local GPT4All runner

Downloads the GPT4All chat executable and model weights, runs the
executable as a subprocess and talks to it over stdin/stdout:
- Prompt/response API for Python code
- Interactive CLI chat
"""

from .exceptions import (
    DownloadFailedError,
    GPT4AllError,
    ProcessExitedError,
    ReadinessTimeoutError,
    SessionNotOpenError,
    StreamError,
    UnsupportedModelError,
    UnsupportedPlatformError,
)
from .gpt4all import AVAILABLE_MODELS, GPT4All
from .session import Session, SessionState

__version__ = "0.1.0"

__all__ = [
    "AVAILABLE_MODELS",
    "DownloadFailedError",
    "GPT4All",
    "GPT4AllError",
    "ProcessExitedError",
    "ReadinessTimeoutError",
    "Session",
    "SessionNotOpenError",
    "SessionState",
    "StreamError",
    "UnsupportedModelError",
    "UnsupportedPlatformError",
]
