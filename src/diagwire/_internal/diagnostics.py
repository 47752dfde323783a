from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from functools import partial
from pathlib import Path
from typing import TypeAlias

from diagwire._internal.configuration import (
    SECTION_SEPARATOR,
    Configuration,
    ConfigurationSection,
    join_path,
    load_json_configuration,
)
from diagwire._internal.host import (
    HostContext,
    application_log_directory,
    diagnostics_settings_path,
)
from diagwire._internal.ledger import RegistrationLedger, RegistrationToken
from diagwire._internal.loggers import CategoryLogger, ExcInfo, LoggerProvider
from diagwire._internal.options import (
    ConfigurationChangeTokenSource,
    ConfigureOptions,
    LoggerFilterOptions,
    LoggerFilterRule,
    LogLevel,
    OptionsChangeTokenSource,
    load_level_rules,
)
from diagwire._internal.registry import ServiceRegistry
from diagwire._internal.service_provider import ServiceProvider
from diagwire.exceptions import DiagWireConfigurationError, DiagWireInvalidRegistrationError

logger = logging.getLogger(__name__)

RegisterFunction: TypeAlias = Callable[[ServiceRegistry, str | None], None]

DIAGNOSTICS_SECTION = "AppServicesDiagnostics"
DEFAULT_TRACE_LEVEL = LogLevel.ERROR
_ENABLED_KEY = "Enabled"
_TRACE_LEVEL_KEY = "TraceLevel"
_LOG_LEVEL_KEY = "LogLevel"


class DiagnosticsSink(ABC):
    """Write diagnostics records to their final destination.

    File rotation and blob upload live behind this interface. Register an
    implementation under ``DiagnosticsSink`` to replace the default, which
    forwards to the standard library ``logging`` tree.
    """

    @abstractmethod
    def write(
        self,
        provider_name: str,
        category: str,
        level: LogLevel,
        message: str,
        *,
        exc_info: ExcInfo = None,
    ) -> None: ...


class LoggingDiagnosticsSink(DiagnosticsSink):
    """Forward records to the stdlib logger ``diagwire.diagnostics.<provider>``."""

    def write(
        self,
        provider_name: str,
        category: str,
        level: LogLevel,
        message: str,
        *,
        exc_info: ExcInfo = None,
    ) -> None:
        logging.getLogger(f"diagwire.diagnostics.{provider_name}").log(
            int(level),
            "%s: %s",
            category,
            message,
            exc_info=exc_info,
        )


class _DiagnosticsCategoryLogger(CategoryLogger):
    def __init__(self, provider: DiagnosticsLoggerProvider, category: str) -> None:
        self._provider = provider
        self._category = category

    def log(self, level: LogLevel, message: str, *, exc_info: ExcInfo = None) -> None:
        self._provider.sink.write(
            self._provider.name,
            self._category,
            level,
            message,
            exc_info=exc_info,
        )


class DiagnosticsLoggerProvider(LoggerProvider):
    """The App Service diagnostics capability provider.

    One instance exists per registration key. Its ``name`` is the provider
    alias that the key's filter rules target.
    """

    def __init__(self, name: str, log_directory: Path, sink: DiagnosticsSink) -> None:
        self._name = name
        self.log_directory = log_directory
        self.sink = sink

    @property
    def name(self) -> str:
        return self._name

    def create_logger(self, category: str) -> CategoryLogger:
        return _DiagnosticsCategoryLogger(self, category)

    def __repr__(self) -> str:
        return (
            f"DiagnosticsLoggerProvider(name={self._name!r}, "
            f"log_directory={self.log_directory!r})"
        )


# The capability kind recorded in the ledger for this feature.
DIAGNOSTICS_KIND = DiagnosticsLoggerProvider


def provider_alias(key: str | None) -> str:
    """Return the configuration section path and provider alias for ``key``."""
    if key is None:
        return DIAGNOSTICS_SECTION
    return join_path(key, DIAGNOSTICS_SECTION)


def validate_key(key: str | None) -> None:
    """Reject keys that cannot name a configuration section.

    Raises:
        DiagWireInvalidRegistrationError: If ``key`` is empty or contains ``:``.

    """
    if key is None:
        return
    if not key:
        msg = "Registration key must be None or a non-empty string."
        raise DiagWireInvalidRegistrationError(msg)
    if SECTION_SEPARATOR in key:
        msg = f"Registration key {key!r} must not contain {SECTION_SEPARATOR!r}."
        raise DiagWireInvalidRegistrationError(msg)


def is_eligible(host_context: HostContext) -> bool:
    """Return whether the diagnostics feature applies to this host."""
    return bool(host_context.is_running_in_target_environment)


def register_once(
    registry: ServiceRegistry,
    token: RegistrationToken,
    host_context: HostContext,
    register: RegisterFunction,
    *,
    ledger: RegistrationLedger | None = None,
) -> bool:
    """Run ``register`` for ``token`` at most once per ledger.

    The call is a no-op when the host is not eligible or when the ledger
    already holds ``token``. Otherwise ``register`` runs inside a registry
    mutation block together with marking the ledger. If ``register`` raises,
    or an enclosing mutation block is rolled back later, the registry entries
    and the ledger token are both undone, so a later call can retry.

    Args:
        registry: Registry receiving the entries.
        token: Capability kind and key identifying the logical registration.
        host_context: Host facts consulted by the eligibility gate.
        register: Builds the entries; called with ``(registry, token.key)``.
        ledger: Ledger to consult and update. Defaults to ``registry.ledger``.

    Returns:
        ``True`` when ``register`` ran and completed.

    """
    if not is_eligible(host_context):
        logger.debug("Skipping %s registration: host is not eligible", token.kind.__name__)
        return False

    ledger = registry.ledger if ledger is None else ledger
    if token in ledger:
        logger.debug(
            "Skipping %s registration: key %r already registered",
            token.kind.__name__,
            token.key,
        )
        return False

    with registry.registration_mutation():
        register(registry, token.key)
        ledger.mark(token)
        if ledger is not registry.ledger:
            registry.on_rollback(partial(ledger.discard, token))
    logger.info("Registered %s for key %r", token.kind.__name__, token.key)
    return True


class DiagnosticsDefaultsConfigureOptions(ConfigureOptions):
    """Apply the key's baseline rule from ``Enabled`` and ``TraceLevel``.

    A disabled (or unconfigured) instance gets a ``NONE`` rule so it stays
    silent regardless of global levels.
    """

    def __init__(self, provider_name: str, section: ConfigurationSection) -> None:
        self.provider_name = provider_name
        self.section = section

    def configure(self, options: LoggerFilterOptions) -> None:
        level = LogLevel.NONE
        enabled = _parse_bool(
            self.section.get(_ENABLED_KEY),
            key=join_path(self.section.path, _ENABLED_KEY),
        )
        if enabled:
            trace_level = self.section.get(_TRACE_LEVEL_KEY)
            level = DEFAULT_TRACE_LEVEL if trace_level is None else LogLevel.parse(trace_level)
        options.rules.append(LoggerFilterRule(self.provider_name, None, level))


class DiagnosticsOverridesConfigureOptions(ConfigureOptions):
    """Apply the key's per-category ``LogLevel`` overrides."""

    def __init__(self, provider_name: str, section: ConfigurationSection) -> None:
        self.provider_name = provider_name
        self.section = section

    def configure(self, options: LoggerFilterOptions) -> None:
        options.rules.extend(
            load_level_rules(
                self.section.get_section(_LOG_LEVEL_KEY),
                provider_name=self.provider_name,
            ),
        )


def _parse_bool(value: str | None, *, key: str) -> bool:
    if value is None:
        return False
    normalized = value.strip().casefold()
    if normalized in {"true", "1"}:
        return True
    if normalized in {"false", "0"}:
        return False
    msg = f"Configuration value {key!r}={value!r} is not a boolean."
    raise DiagWireConfigurationError(msg)


def wire_options(
    registry: ServiceRegistry,
    key: str | None,
    configuration: Configuration,
) -> None:
    """Append the change-token source and the two configurators for ``key``.

    Nothing is read from ``configuration`` here; values are read when filter
    options materialize.
    """
    alias = provider_alias(key)
    section = configuration.get_section(alias)
    registry.add_instance(OptionsChangeTokenSource, ConfigurationChangeTokenSource(section))
    registry.add_instance(ConfigureOptions, DiagnosticsDefaultsConfigureOptions(alias, section))
    registry.add_instance(ConfigureOptions, DiagnosticsOverridesConfigureOptions(alias, section))


def register_diagnostics(
    registry: ServiceRegistry,
    key: str | None,
    host_context: HostContext,
    configuration: Configuration | None = None,
) -> None:
    """Append the provider entry and the options fan-out for ``key``."""
    validate_key(key)
    if configuration is None:
        configuration = load_json_configuration(diagnostics_settings_path(host_context))

    alias = provider_alias(key)
    log_directory = application_log_directory(host_context)

    def _build_provider(provider: ServiceProvider) -> DiagnosticsLoggerProvider:
        sink = provider.find(DiagnosticsSink) or LoggingDiagnosticsSink()
        return DiagnosticsLoggerProvider(alias, log_directory, sink)

    registry.add_factory(
        LoggerProvider,
        _build_provider,
        implementation_type=DiagnosticsLoggerProvider,
    )
    wire_options(registry, key, configuration)


def attach(
    registry: ServiceRegistry,
    key: str | None,
    host_context: HostContext,
    configuration: Configuration | None = None,
    *,
    ledger: RegistrationLedger | None = None,
) -> None:
    """Attach the App Service diagnostics provider under ``key``, idempotently.

    Adds, exactly once per key: one ``LoggerProvider`` entry, one
    ``OptionsChangeTokenSource`` and two ``ConfigureOptions``. Repeated calls
    with an equal key change nothing; different keys are independent.
    Outside App Service the call does nothing.

    Args:
        registry: Registry receiving the entries.
        key: ``None`` for the default instance or a naming prefix.
        host_context: Host facts; see ``WebAppContext``.
        configuration: Diagnostics settings. When omitted, the settings
            document under the host's home directory is loaded.
        ledger: Ledger override. Defaults to ``registry.ledger``.

    Raises:
        DiagWireInvalidRegistrationError: If ``key`` is empty or contains ``:``.

    Examples:
        .. code-block:: python

            registry = ServiceRegistry()
            attach(registry, None, WebAppContext())
            attach(registry, "customPrefix", WebAppContext())

    """
    register_once(
        registry,
        RegistrationToken(DIAGNOSTICS_KIND, key),
        host_context,
        lambda target, target_key: register_diagnostics(
            target,
            target_key,
            host_context,
            configuration,
        ),
        ledger=ledger,
    )


__all__ = [
    "DIAGNOSTICS_KIND",
    "DiagnosticsDefaultsConfigureOptions",
    "DiagnosticsLoggerProvider",
    "DiagnosticsOverridesConfigureOptions",
    "DiagnosticsSink",
    "LoggingDiagnosticsSink",
    "attach",
    "is_eligible",
    "provider_alias",
    "register_diagnostics",
    "register_once",
    "validate_key",
    "wire_options",
]
