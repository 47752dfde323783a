from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from types import TracebackType
from typing import Any, TypeAlias

from diagwire._internal.options import LogLevel, OptionsMonitor

ExcInfo: TypeAlias = (
    bool | BaseException | tuple[type[BaseException], BaseException, TracebackType | None] | None
)


class CategoryLogger(ABC):
    """A provider's logger for one category."""

    @abstractmethod
    def log(self, level: LogLevel, message: str, *, exc_info: ExcInfo = None) -> None: ...


class LoggerProvider(ABC):
    """Create category loggers for one output.

    ``name`` is the alias filter rules refer to. Two providers with
    different names are filtered independently even when they share a type.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def create_logger(self, category: str) -> CategoryLogger: ...

    def close(self) -> None:  # noqa: B027
        """Release provider resources. The default provider holds none."""


class Logger:
    """Dispatch records to every provider whose filter admits them.

    Filter levels are looked up from the options monitor on every call, so a
    configuration reload applies to loggers that already exist.
    """

    def __init__(
        self,
        category: str,
        loggers: list[tuple[LoggerProvider, CategoryLogger]],
        monitor: OptionsMonitor,
    ) -> None:
        self.category = category
        self._loggers = loggers
        self._monitor = monitor

    def is_enabled(self, level: LogLevel) -> bool:
        return any(self._admits(provider, level) for provider, _ in self._loggers)

    def log(self, level: LogLevel, message: str, *args: Any, exc_info: ExcInfo = None) -> None:
        if level is LogLevel.NONE:
            return
        rendered: str | None = None
        for provider, category_logger in self._loggers:
            if not self._admits(provider, level):
                continue
            if rendered is None:
                rendered = message % args if args else message
            category_logger.log(level, rendered, exc_info=exc_info)

    def trace(self, message: str, *args: Any) -> None:
        self.log(LogLevel.TRACE, message, *args)

    def debug(self, message: str, *args: Any) -> None:
        self.log(LogLevel.DEBUG, message, *args)

    def info(self, message: str, *args: Any) -> None:
        self.log(LogLevel.INFORMATION, message, *args)

    def warning(self, message: str, *args: Any) -> None:
        self.log(LogLevel.WARNING, message, *args)

    def error(self, message: str, *args: Any, exc_info: ExcInfo = None) -> None:
        self.log(LogLevel.ERROR, message, *args, exc_info=exc_info)

    def critical(self, message: str, *args: Any, exc_info: ExcInfo = None) -> None:
        self.log(LogLevel.CRITICAL, message, *args, exc_info=exc_info)

    def _admits(self, provider: LoggerProvider, level: LogLevel) -> bool:
        minimum = self._monitor.current_value.effective_level(provider.name, self.category)
        return minimum is not LogLevel.NONE and level >= minimum


class LoggerFactory:
    """Create composite loggers over every registered provider."""

    def __init__(self, providers: Iterable[LoggerProvider], monitor: OptionsMonitor) -> None:
        self.providers = tuple(providers)
        self._monitor = monitor
        self._loggers: dict[str, Logger] = {}
        self._lock = threading.Lock()

    def create_logger(self, category: str) -> Logger:
        """Return the logger for ``category``, creating it on first use."""
        with self._lock:
            logger = self._loggers.get(category)
            if logger is None:
                logger = Logger(
                    category,
                    [(provider, provider.create_logger(category)) for provider in self.providers],
                    self._monitor,
                )
                self._loggers[category] = logger
            return logger

    def close(self) -> None:
        """Close every provider and unsubscribe the options monitor from reloads.

        Required before dropping a factory built over a long-lived
        ``Configuration``; otherwise the monitor keeps following its reloads.
        """
        for provider in self.providers:
            provider.close()
        self._monitor.close()
