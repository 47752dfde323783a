from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import IntEnum

from diagwire._internal.configuration import (
    ChangeToken,
    Configuration,
    ConfigurationSection,
    on_change,
)
from diagwire.exceptions import DiagWireConfigurationError

logger = logging.getLogger(__name__)


class LogLevel(IntEnum):
    """Severity levels, ordered so that larger means more severe.

    Values line up with the standard library ``logging`` levels where one
    exists. ``NONE`` disables output entirely.
    """

    TRACE = 5
    DEBUG = logging.DEBUG
    INFORMATION = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL
    NONE = 100

    @classmethod
    def parse(cls, text: str) -> LogLevel:
        """Parse a level name case-insensitively.

        Accepts the member names plus ``Info``, ``Warn`` and the App Service
        trace-level name ``Verbose`` (mapped to ``TRACE``).

        Raises:
            DiagWireConfigurationError: If ``text`` names no known level.

        """
        normalized = text.strip().upper()
        alias = _LEVEL_ALIASES.get(normalized)
        if alias is not None:
            return alias
        try:
            return cls[normalized]
        except KeyError:
            msg = f"Unknown log level {text!r}."
            raise DiagWireConfigurationError(msg) from None


_LEVEL_ALIASES = {
    "VERBOSE": LogLevel.TRACE,
    "INFO": LogLevel.INFORMATION,
    "WARN": LogLevel.WARNING,
}


@dataclass(frozen=True, slots=True)
class LoggerFilterRule:
    """A single filtering rule.

    ``None`` for ``provider_name`` or ``category_name`` matches any provider
    or category. ``log_level`` of ``None`` defers to ``min_level``.
    """

    provider_name: str | None
    category_name: str | None
    log_level: LogLevel | None


@dataclass(kw_only=True)
class LoggerFilterOptions:
    """Materialized filter settings shared by every logger provider."""

    min_level: LogLevel = LogLevel.TRACE
    rules: list[LoggerFilterRule] = field(default_factory=list)

    def select_rule(self, provider_name: str, category: str) -> LoggerFilterRule | None:
        """Pick the rule that applies to ``category`` on ``provider_name``.

        Provider-specific rules beat provider-agnostic ones, then the longest
        matching category prefix wins, and among equals the rule registered
        last wins.
        """
        best: LoggerFilterRule | None = None
        best_rank: tuple[bool, int] | None = None
        for rule in self.rules:
            if rule.provider_name is not None and rule.provider_name != provider_name:
                continue
            if rule.category_name is not None and not _category_matches(
                rule.category_name,
                category,
            ):
                continue
            rank = (rule.provider_name is not None, len(rule.category_name or ""))
            if best_rank is None or rank >= best_rank:
                best, best_rank = rule, rank
        return best

    def effective_level(self, provider_name: str, category: str) -> LogLevel:
        rule = self.select_rule(provider_name, category)
        if rule is None or rule.log_level is None:
            return self.min_level
        return rule.log_level


def _category_matches(prefix: str, category: str) -> bool:
    prefix = prefix.lower()
    category = category.lower()
    if not category.startswith(prefix):
        return False
    # "app.db" matches "app.db" and "app.db.pool", not "app.dbx".
    return len(category) == len(prefix) or category[len(prefix)] == "."


class ConfigureOptions(ABC):
    """Deferred logic applied, in registration order, when options materialize."""

    @abstractmethod
    def configure(self, options: LoggerFilterOptions) -> None: ...


class ConfigureFilterOptions(ConfigureOptions):
    """Wrap a plain callable as a configurator."""

    def __init__(self, action: Callable[[LoggerFilterOptions], None]) -> None:
        self._action = action

    def configure(self, options: LoggerFilterOptions) -> None:
        self._action(options)


class DefaultLevelConfigureOptions(ConfigureOptions):
    """Set the global minimum level."""

    def __init__(self, level: LogLevel) -> None:
        self.level = level

    def configure(self, options: LoggerFilterOptions) -> None:
        options.min_level = self.level


class LoggerFilterConfigureOptions(ConfigureOptions):
    """Load filter rules from a ``Logging``-style configuration.

    ``LogLevel:<category>`` entries become provider-agnostic rules and
    ``<provider>:LogLevel:<category>`` entries become provider-specific rules.
    ``Default`` stands for every category.
    """

    def __init__(self, configuration: Configuration | ConfigurationSection) -> None:
        self._configuration = configuration

    def configure(self, options: LoggerFilterOptions) -> None:
        for section in self._configuration.children():
            if section.key.casefold() == "loglevel":
                options.rules.extend(load_level_rules(section, provider_name=None))
                continue
            options.rules.extend(
                load_level_rules(section.get_section("LogLevel"), provider_name=section.key),
            )


def load_level_rules(
    section: ConfigurationSection,
    *,
    provider_name: str | None,
) -> list[LoggerFilterRule]:
    """Turn ``<category>: <level>`` entries of ``section`` into rules."""
    rules = []
    for entry in section.children():
        if entry.value is None:
            continue
        category = None if entry.key.casefold() == "default" else entry.key
        rules.append(LoggerFilterRule(provider_name, category, LogLevel.parse(entry.value)))
    return rules


class OptionsChangeTokenSource(ABC):
    """Produce change tokens that invalidate materialized filter options."""

    @abstractmethod
    def get_change_token(self) -> ChangeToken: ...


class ConfigurationChangeTokenSource(OptionsChangeTokenSource):
    """Bind option invalidation to a configuration (sub)tree."""

    def __init__(self, configuration: Configuration | ConfigurationSection) -> None:
        self.configuration = configuration

    def get_change_token(self) -> ChangeToken:
        return self.configuration.get_reload_token()


class OptionsMonitor:
    """Materialize ``LoggerFilterOptions`` and keep them current.

    Options are built lazily by applying every configurator in order to a
    fresh ``LoggerFilterOptions``. The cached value is dropped whenever any
    change-token source fires, and ``on_change`` listeners receive the newly
    materialized value.

    Each monitor stays subscribed to its sources until ``close`` is called.
    A monitor resolved through ``LoggerFactory`` is closed by
    ``LoggerFactory.close``; call it when discarding a provider whose
    configuration outlives it.
    """

    def __init__(
        self,
        configurators: Iterable[ConfigureOptions],
        sources: Iterable[OptionsChangeTokenSource] = (),
    ) -> None:
        self._configurators = tuple(configurators)
        self._listeners: list[Callable[[LoggerFilterOptions], None]] = []
        self._current: LoggerFilterOptions | None = None
        self._lock = threading.Lock()
        self._subscriptions = [
            on_change(source.get_change_token, self._invalidate) for source in sources
        ]

    @property
    def current_value(self) -> LoggerFilterOptions:
        with self._lock:
            if self._current is None:
                self._current = self._materialize()
            return self._current

    def on_change(self, listener: Callable[[LoggerFilterOptions], None]) -> Callable[[], None]:
        """Subscribe ``listener`` to option changes.

        Returns:
            A callable that removes the listener.

        """
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def close(self) -> None:
        """Stop following change-token sources."""
        for dispose in self._subscriptions:
            dispose()
        self._subscriptions.clear()

    def _materialize(self) -> LoggerFilterOptions:
        options = LoggerFilterOptions()
        for configurator in self._configurators:
            configurator.configure(options)
        return options

    def _invalidate(self) -> None:
        with self._lock:
            self._current = None
        logger.debug("Logger filter options invalidated")
        if not self._listeners:
            return
        options = self.current_value
        for listener in list(self._listeners):
            listener(options)
