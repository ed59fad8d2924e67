"""A log sink that prefixes each write with a UTC timestamp."""

from __future__ import annotations

import sys
import time
from typing import Optional, TextIO, Union


def _timestamp(ns: int) -> str:
    seconds, fraction = divmod(ns, 1_000_000_000)
    return time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(seconds)) + f".{fraction:09d}Z"


class LogWriter:
    """Writes each message to a stream (standard error by default) with a
    nanosecond-precision UTC timestamp in front."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream

    def write(self, data: Union[bytes, str]) -> int:
        """Write ``data`` with a timestamp prefix; return the characters written."""
        if isinstance(data, (bytes, bytearray)):
            text = bytes(data).decode("utf-8", errors="replace")
        else:
            text = data
        line = f"{_timestamp(time.time_ns())} {text}"
        stream = self._stream if self._stream is not None else sys.stderr
        written = stream.write(line)
        return len(line) if written is None else written