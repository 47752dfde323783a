"""Shared pytest fixtures for diagwire tests."""

from pathlib import Path

import pytest

from diagwire import Configuration, ServiceRegistry, StaticHostContext, add_logging


@pytest.fixture()
def registry() -> ServiceRegistry:
    """Fresh registry with its own ledger."""
    return ServiceRegistry()


@pytest.fixture()
def host_context(tmp_path: Path) -> StaticHostContext:
    """Host context that runs inside App Service."""
    return StaticHostContext(is_running_in_target_environment=True, home_directory=str(tmp_path))


@pytest.fixture()
def ineligible_host_context(tmp_path: Path) -> StaticHostContext:
    """Host context outside App Service."""
    return StaticHostContext(is_running_in_target_environment=False, home_directory=str(tmp_path))


@pytest.fixture()
def baseline_registry(registry: ServiceRegistry) -> ServiceRegistry:
    """Registry with the logging core and an empty ``Logging`` configuration.

    Holds 1 change-token source and 2 configurators before any attach.
    """
    add_logging(registry, lambda builder: builder.add_configuration(Configuration()))
    return registry
