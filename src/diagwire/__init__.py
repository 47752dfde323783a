from diagwire._internal.configuration import (
    ChangeToken,
    Configuration,
    ConfigurationSection,
    load_json_configuration,
)
from diagwire._internal.diagnostics import (
    DIAGNOSTICS_KIND,
    DiagnosticsLoggerProvider,
    DiagnosticsSink,
    LoggingDiagnosticsSink,
    attach,
    is_eligible,
    register_once,
    wire_options,
)
from diagwire._internal.host import HostContext, StaticHostContext, WebAppContext
from diagwire._internal.ledger import RegistrationLedger, RegistrationToken
from diagwire._internal.loggers import CategoryLogger, Logger, LoggerFactory, LoggerProvider
from diagwire._internal.logging_builder import LoggingBuilder, add_logging
from diagwire._internal.options import (
    ConfigurationChangeTokenSource,
    ConfigureOptions,
    LoggerFilterOptions,
    LoggerFilterRule,
    LogLevel,
    OptionsChangeTokenSource,
    OptionsMonitor,
)
from diagwire._internal.registry import Lifetime, ServiceDescriptor, ServiceRegistry
from diagwire._internal.service_provider import ServiceProvider
from diagwire.exceptions import (
    DiagWireConfigurationError,
    DiagWireError,
    DiagWireInvalidRegistrationError,
    DiagWireServiceNotRegisteredError,
)

__all__ = [
    "DIAGNOSTICS_KIND",
    "CategoryLogger",
    "ChangeToken",
    "Configuration",
    "ConfigurationChangeTokenSource",
    "ConfigurationSection",
    "ConfigureOptions",
    "DiagWireConfigurationError",
    "DiagWireError",
    "DiagWireInvalidRegistrationError",
    "DiagWireServiceNotRegisteredError",
    "DiagnosticsLoggerProvider",
    "DiagnosticsSink",
    "HostContext",
    "Lifetime",
    "LogLevel",
    "Logger",
    "LoggerFactory",
    "LoggerFilterOptions",
    "LoggerFilterRule",
    "LoggerProvider",
    "LoggingBuilder",
    "LoggingDiagnosticsSink",
    "OptionsChangeTokenSource",
    "OptionsMonitor",
    "RegistrationLedger",
    "RegistrationToken",
    "ServiceDescriptor",
    "ServiceProvider",
    "ServiceRegistry",
    "StaticHostContext",
    "WebAppContext",
    "add_logging",
    "attach",
    "is_eligible",
    "load_json_configuration",
    "register_once",
    "wire_options",
]
