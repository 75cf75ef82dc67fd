"""
Logging for the chat context engine.

All components of the package log through the `LoggerBase` interface
rather than through a module-level `logging.Logger`. This allows the
caller to decide where the diagnostics of a conversation go: to the
console (`ConsoleLogger`, the default), or to an in-memory list that
can be inspected after a call (`LoglistLogger`). The latter is the
channel for advisory warnings, i.e. structural anomalies in the
history that are reported but never enforced.

Usage:
    ```python
    from chatctx.utils.logging import get_logger, LoglistLogger
    from chatctx.conversation import ConversationState

    # console logging, the package default
    logger = get_logger(__name__)

    # collect the diagnostics of a conversation
    diagnostics = LoglistLogger()
    state = ConversationState(logger=diagnostics)
    ...
    for line in diagnostics.get_logs(level=1):
        print(line)
    ```
"""

import logging
import sys
from abc import ABC, abstractmethod


class LoggerBase(ABC):
    """
    Abstract interface for logging functionality.
    """

    @abstractmethod
    def set_level(self, level: int) -> None:
        """Set the logging level for the logger."""
        pass

    @abstractmethod
    def get_level(self) -> int:
        """Get the current logging level"""
        pass

    @abstractmethod
    def debug(self, msg: str) -> None:
        """Log a trace message."""
        pass

    @abstractmethod
    def info(self, msg: str) -> None:
        """Log an informational message."""
        pass

    @abstractmethod
    def warning(self, msg: str) -> None:
        """Log a warning message."""
        pass

    @abstractmethod
    def error(self, msg: str) -> None:
        """Log an error message."""
        pass


class ConsoleLogger(LoggerBase):
    """
    A console logger implementation that uses logging.Logger as a
    delegate. Messages are written to stdout.
    """

    def __init__(self, name: str | None = None) -> None:
        """
        Initialize the ConsoleLogger with a specific logger name,
        typically __name__ to use the module name
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Ensure we have a console handler if none exists
        if not self.logger.hasHandlers():
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            self.logger.addHandler(handler)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)

    def get_level(self) -> int:
        return self.logger.level

    def debug(self, msg: str) -> None:
        self.logger.debug(msg)

    def info(self, msg: str) -> None:
        self.logger.info(msg)

    def warning(self, msg: str) -> None:
        self.logger.warning(msg)

    def error(self, msg: str) -> None:
        self.logger.error(msg)


class LoglistLogger(LoggerBase):
    """
    Maintains a list of logged messages that can be inspected by the
    object creator. Debug messages are recorded only if the level is
    set to logging.DEBUG.
    """

    def __init__(self) -> None:
        self.logs: list[tuple[int, str]] = []
        self.level: int = logging.INFO

    def set_level(self, level: int) -> None:
        self.level = level

    def get_level(self) -> int:
        return self.level

    def _record(self, level: int, msg: str) -> None:
        if level >= self.level:
            self.logs.append((level, msg))

    def debug(self, msg: str) -> None:
        self._record(logging.DEBUG, msg)

    def info(self, msg: str) -> None:
        self._record(logging.INFO, msg)

    def warning(self, msg: str) -> None:
        self._record(logging.WARNING, msg)

    def error(self, msg: str) -> None:
        self._record(logging.ERROR, msg)

    def get_logs(self, level: int = 0) -> list[str]:
        """
        Returns a list of strings with the log messages.

        Args:
           level: a filter on the logs. Possible values:
                0 or less: returns all messages
                1: omit debug and info
                2 or more: only errors
        """
        threshold = {0: logging.NOTSET, 1: logging.WARNING}.get(
            max(level, 0), logging.ERROR
        )
        return [
            f"{logging.getLevelName(lev)} - {msg}"
            for lev, msg in self.logs
            if lev >= threshold
        ]

    def count_logs(self, level: int = 0) -> int:
        """The number of recorded logs. Zero means there
        were no recorded logs."""
        return len(self.get_logs(level))

    def clear_logs(self) -> None:
        """Clear the logs from the cache"""
        self.logs.clear()


LOG_FORMAT = '%(levelname)s - %(message)s'


def get_logger(name: str) -> LoggerBase:
    """
    Get a logger with the specified name.

    Args:
        name: The name of the logger, typically __name__ to use the
            module name

    Returns:
        A configured logger instance
    """
    return ConsoleLogger(name)
