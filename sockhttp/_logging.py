from __future__ import annotations

import enum
import logging
import typing as tp

__all__ = ("Severity", "LogSink", "LoggerSink", "NullSink")


class Severity(enum.IntEnum):
    INFO = 1
    WARN = 2
    ERROR = 3
    FATAL = 4


_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARN: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.FATAL: logging.CRITICAL,
}


class LogSink(tp.Protocol):
    def log(self, message: str, severity: Severity, trace: tp.Any = None) -> None: ...


class LoggerSink:
    """
    Forwards notable client events to a standard library logger.

    An exception passed as ``trace`` is attached as ``exc_info``; any other
    trace value is appended to the message.
    """

    def __init__(self, logger: tp.Optional[logging.Logger] = None) -> None:
        self.logger = logger if logger is not None else logging.getLogger("sockhttp")

    def log(self, message: str, severity: Severity, trace: tp.Any = None) -> None:
        level = _LEVELS[Severity(severity)]
        if isinstance(trace, BaseException):
            self.logger.log(level, message, exc_info=trace)
        elif trace is not None:
            self.logger.log(level, f"{message} ({trace!r})")
        else:
            self.logger.log(level, message)


class NullSink:
    def log(self, message: str, severity: Severity, trace: tp.Any = None) -> None:
        return None
