from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


@runtime_checkable
class HostContext(Protocol):
    """Describe the hosting environment the process runs in."""

    @property
    def is_running_in_target_environment(self) -> bool:
        """Whether the process runs inside the managed App Service host."""

    @property
    def home_directory(self) -> str:
        """The host's home directory; logs and diagnostics settings live below it."""


@dataclass(frozen=True)
class StaticHostContext:
    """A host context with fixed answers, for explicit composition and tests."""

    is_running_in_target_environment: bool
    home_directory: str = ""


class WebAppContext(BaseSettings):
    """Detect App Service hosting from the process environment.

    App Service sets ``WEBSITE_SITE_NAME`` for every site and points ``HOME``
    at the persistent site storage. Values are read once, when the settings
    object is created.

    Examples:
        .. code-block:: python

            context = WebAppContext()
            if context.is_running_in_target_environment:
                print(context.home_directory)

    """

    model_config = SettingsConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    site_name: str | None = Field(default=None, validation_alias="WEBSITE_SITE_NAME")
    home: str = Field(default="", validation_alias="HOME")

    @property
    def is_running_in_target_environment(self) -> bool:
        return bool(self.site_name)

    @property
    def home_directory(self) -> str:
        return self.home


def diagnostics_settings_path(host_context: HostContext) -> Path:
    """Return where App Service keeps the diagnostics settings document."""
    return Path(host_context.home_directory, "site", "diagnostics", "settings.json")


def application_log_directory(host_context: HostContext) -> Path:
    """Return the App Service application log directory."""
    return Path(host_context.home_directory, "LogFiles", "Application")
