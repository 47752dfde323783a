from __future__ import annotations

from pathlib import Path

import pytest

from diagwire._internal.host import StaticHostContext
from diagwire._internal.registry import ServiceRegistry


@pytest.fixture()
def diagwire_registry() -> ServiceRegistry:
    """Create a per-test registry with its own ledger.

    The fixture is function-scoped, so keyed registrations never leak between
    tests unless users override fixture scope explicitly.

    Returns:
        A new, empty ``ServiceRegistry``.

    """
    return ServiceRegistry()


@pytest.fixture()
def diagwire_host_context(tmp_path: Path) -> StaticHostContext:
    """Create a host context that passes the App Service eligibility gate.

    The home directory is a per-test temporary directory with no diagnostics
    settings file, so attaching without explicit configuration loads an empty
    configuration.

    Returns:
        An eligible ``StaticHostContext``.

    """
    return StaticHostContext(is_running_in_target_environment=True, home_directory=str(tmp_path))


@pytest.fixture()
def diagwire_ineligible_host_context(tmp_path: Path) -> StaticHostContext:
    """Create a host context that fails the App Service eligibility gate."""
    return StaticHostContext(is_running_in_target_environment=False, home_directory=str(tmp_path))
