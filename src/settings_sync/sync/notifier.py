"""User-visible notifications."""

from __future__ import annotations

import logging
import sys
from typing import Protocol, TextIO

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def success(self, message: str) -> None: ...


class ConsoleNotifier:
    """Print notifications to a stream (stderr by default) and log them.

    stdout is never used, so the notifier is safe under the MCP stdio
    transport.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream

    def success(self, message: str) -> None:
        logger.info(message)
        print(message, file=self._stream or sys.stderr, flush=True)
