from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from diagwire._internal.configuration import Configuration, ConfigurationSection
from diagwire._internal.diagnostics import attach
from diagwire._internal.host import HostContext
from diagwire._internal.loggers import LoggerFactory, LoggerProvider
from diagwire._internal.options import (
    ConfigurationChangeTokenSource,
    ConfigureFilterOptions,
    ConfigureOptions,
    DefaultLevelConfigureOptions,
    LoggerFilterConfigureOptions,
    LoggerFilterOptions,
    LoggerFilterRule,
    LogLevel,
    OptionsChangeTokenSource,
    OptionsMonitor,
)
from diagwire._internal.registry import ServiceDescriptor, ServiceRegistry
from diagwire._internal.service_provider import ServiceProvider

if TYPE_CHECKING:
    from typing_extensions import Self

DEFAULT_MIN_LEVEL = LogLevel.INFORMATION


class LoggingBuilder:
    """Fluent helper for logging registrations on one registry.

    Every method returns the builder so calls can be chained inside the
    ``configure`` callback passed to ``add_logging``.
    """

    def __init__(self, registry: ServiceRegistry) -> None:
        self.registry = registry

    def add_configuration(self, configuration: Configuration | ConfigurationSection) -> Self:
        """Load filter rules from a ``Logging`` configuration and follow its reloads.

        Adds one configurator and one change-token source.
        """
        self.registry.add_instance(ConfigureOptions, LoggerFilterConfigureOptions(configuration))
        self.registry.add_instance(
            OptionsChangeTokenSource,
            ConfigurationChangeTokenSource(configuration),
        )
        return self

    def add_provider(self, provider: LoggerProvider) -> Self:
        self.registry.add_instance(LoggerProvider, provider)
        return self

    def set_minimum_level(self, level: LogLevel) -> Self:
        self.registry.add_instance(ConfigureOptions, DefaultLevelConfigureOptions(level))
        return self

    def add_filter(
        self,
        level: LogLevel,
        *,
        provider_name: str | None = None,
        category: str | None = None,
    ) -> Self:
        rule = LoggerFilterRule(provider_name, category, level)

        def _add_rule(options: LoggerFilterOptions) -> None:
            options.rules.append(rule)

        self.registry.add_instance(ConfigureOptions, ConfigureFilterOptions(_add_rule))
        return self

    def add_app_services_diagnostics(
        self,
        host_context: HostContext,
        key: str | None = None,
        configuration: Configuration | None = None,
    ) -> Self:
        """Attach the App Service diagnostics provider; see ``attach``."""
        attach(self.registry, key, host_context, configuration)
        return self


def _build_options_monitor(provider: ServiceProvider) -> OptionsMonitor:
    return OptionsMonitor(
        provider.resolve_all(ConfigureOptions),
        provider.resolve_all(OptionsChangeTokenSource),
    )


def _build_logger_factory(provider: ServiceProvider) -> LoggerFactory:
    return LoggerFactory(
        provider.resolve_all(LoggerProvider),
        provider.resolve(OptionsMonitor),
    )


def add_logging(
    registry: ServiceRegistry,
    configure: Callable[[LoggingBuilder], object] | None = None,
) -> ServiceRegistry:
    """Register the logging core once, then run ``configure``.

    The core consists of the ``OptionsMonitor``, the ``LoggerFactory`` and
    the default minimum-level configurator. Calling ``add_logging`` again on
    the same registry adds nothing new apart from what ``configure`` adds.

    Examples:
        .. code-block:: python

            registry = ServiceRegistry()
            add_logging(
                registry,
                lambda builder: builder.add_app_services_diagnostics(WebAppContext()),
            )
            factory = registry.build_provider().resolve(LoggerFactory)

    """
    registry.try_add(
        ServiceDescriptor.from_factory(
            OptionsMonitor,
            _build_options_monitor,
            implementation_type=OptionsMonitor,
        ),
    )
    registry.try_add(
        ServiceDescriptor.from_factory(
            LoggerFactory,
            _build_logger_factory,
            implementation_type=LoggerFactory,
        ),
    )
    registry.try_add_enumerable(
        ServiceDescriptor.from_instance(
            ConfigureOptions,
            DefaultLevelConfigureOptions(DEFAULT_MIN_LEVEL),
        ),
    )

    if configure is not None:
        configure(LoggingBuilder(registry))
    return registry
