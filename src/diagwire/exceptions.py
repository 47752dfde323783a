class DiagWireError(Exception):
    """Root of the errors raised while composing or using diagnostics logging.

    Registration, resolution and configuration failures all derive from it,
    so a composition root can wrap its whole ``add_logging`` call in a single
    ``except DiagWireError`` clause.
    """


class DiagWireInvalidRegistrationError(DiagWireError):
    """Signal an invalid registration request.

    Raised by ``attach`` (and ``LoggingBuilder.add_app_services_diagnostics``)
    when the registration key is malformed, for example an empty string or a
    key containing the ``:`` section separator. The registry is rolled back
    and the key is left unregistered, so a corrected call can retry.

    Typical fix is passing ``None`` for the default instance or a plain,
    non-empty prefix such as ``"customPrefix"``.
    """


class DiagWireServiceNotRegisteredError(DiagWireError):
    """Signal that a service kind has no descriptor.

    Raised by ``ServiceProvider.resolve`` when the sealed registry holds no
    descriptor for the requested kind.

    Typical fixes include calling ``add_logging`` before building the
    provider, or using ``ServiceProvider.find`` when absence is expected.
    """


class DiagWireConfigurationError(DiagWireError):
    """Signal an unreadable configuration value.

    Configuration is read lazily, so this error surfaces when filter options
    materialize (for example on the first ``LoggerFactory.create_logger``
    call) rather than at registration time. Common triggers are unknown log
    level names and non-boolean ``Enabled`` values.
    """
