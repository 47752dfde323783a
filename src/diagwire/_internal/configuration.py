from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from diagwire.exceptions import DiagWireConfigurationError

logger = logging.getLogger(__name__)

SECTION_SEPARATOR = ":"


class ChangeToken:
    """Propagate a one-shot "configuration changed" notification.

    A token fires at most once. Consumers that need to follow every change
    re-register on the fresh token returned by their producer, which is what
    ``on_change`` does.
    """

    def __init__(self) -> None:
        self._callbacks: list[Callable[[], None]] = []
        self._has_changed = False
        self._lock = threading.Lock()

    @property
    def has_changed(self) -> bool:
        return self._has_changed

    def register_change_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` when the token fires.

        If the token has already fired the callback runs immediately.

        Returns:
            A callable that unregisters the callback.

        """
        with self._lock:
            if not self._has_changed:
                self._callbacks.append(callback)
                return lambda: self._unregister(callback)
        callback()
        return lambda: None

    def fire(self) -> None:
        with self._lock:
            if self._has_changed:
                return
            self._has_changed = True
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def _unregister(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)


def on_change(
    token_producer: Callable[[], ChangeToken],
    consumer: Callable[[], None],
) -> Callable[[], None]:
    """Invoke ``consumer`` on every change, re-subscribing to each new token.

    Returns:
        A callable that stops the subscription.

    """
    state: dict[str, Any] = {"disposed": False, "unregister": lambda: None}

    def _subscribe() -> None:
        if state["disposed"]:
            return
        state["unregister"] = token_producer().register_change_callback(_on_fire)

    def _on_fire() -> None:
        if state["disposed"]:
            return
        consumer()
        _subscribe()

    def _dispose() -> None:
        state["disposed"] = True
        state["unregister"]()

    _subscribe()
    return _dispose


def join_path(*segments: str) -> str:
    return SECTION_SEPARATOR.join(segment for segment in segments if segment)


class _ConfigurationView:
    _root: Configuration
    _path: str

    def get(self, key: str) -> str | None:
        """Return the value stored at ``key`` relative to this view, if any."""
        return self._root._lookup(join_path(self._path, key))

    def get_section(self, key: str) -> ConfigurationSection:
        return ConfigurationSection(self._root, join_path(self._path, key))

    def children(self) -> list[ConfigurationSection]:
        """Return the immediate child sections in document order."""
        return [
            ConfigurationSection(self._root, join_path(self._path, name))
            for name in self._root._child_names(self._path)
        ]

    def get_reload_token(self) -> ChangeToken:
        return self._root._reload_token


class ConfigurationSection(_ConfigurationView):
    """A live view of one subtree of a ``Configuration``.

    Sections never copy values; reading through a section after
    ``Configuration.reload`` observes the new data.
    """

    def __init__(self, root: Configuration, path: str) -> None:
        self._root = root
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    @property
    def key(self) -> str:
        return self._path.rsplit(SECTION_SEPARATOR, 1)[-1]

    @property
    def value(self) -> str | None:
        return self._root._lookup(self._path)

    def exists(self) -> bool:
        return self.value is not None or bool(self._root._child_names(self._path))

    def __repr__(self) -> str:
        return f"ConfigurationSection({self._path!r})"


class Configuration(_ConfigurationView):
    """Hierarchical key/value configuration tree.

    Nested mappings are flattened into ``:``-separated paths. Lookups are
    case-insensitive, sequence items are addressed by index, and leaf values
    are kept as strings (booleans as ``"true"``/``"false"``).
    """

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._root = self
        self._path = ""
        self._values: dict[str, tuple[tuple[str, ...], str | None]] = {}
        self._reload_token = ChangeToken()
        self._load(data or {})

    def reload(self, data: Mapping[str, Any]) -> None:
        """Replace the whole tree and fire the current reload token."""
        self._load(data)
        previous_token, self._reload_token = self._reload_token, ChangeToken()
        logger.debug("Configuration reloaded with %d values", len(self._values))
        previous_token.fire()

    def _load(self, data: Mapping[str, Any]) -> None:
        values: dict[str, tuple[tuple[str, ...], str | None]] = {}
        _flatten(data, "", values)
        self._values = values

    def _lookup(self, path: str) -> str | None:
        entry = self._values.get(_fold(path))
        return None if entry is None else entry[1]

    def _child_names(self, path: str) -> list[str]:
        prefix = _fold(path).split(SECTION_SEPARATOR) if path else []
        depth = len(prefix)
        names: dict[str, str] = {}
        for folded, (segments, _value) in self._values.items():
            if len(segments) <= depth or folded.split(SECTION_SEPARATOR)[:depth] != prefix:
                continue
            name = segments[depth]
            names.setdefault(_fold(name), name)
        return list(names.values())


def _fold(path: str) -> str:
    # Must not merge distinct keys such as "Straße" and "Strasse".
    return path.lower()


def _flatten(
    node: Any,
    path: str,
    values: dict[str, tuple[tuple[str, ...], str | None]],
) -> None:
    if isinstance(node, Mapping):
        for key, child in node.items():
            _flatten(child, join_path(path, str(key)), values)
    elif isinstance(node, list | tuple):
        for index, child in enumerate(node):
            _flatten(child, join_path(path, str(index)), values)
    elif path:
        values[_fold(path)] = (tuple(path.split(SECTION_SEPARATOR)), _stringify(node))


def _stringify(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def load_json_configuration(path: str | Path) -> Configuration:
    """Load a JSON settings document into a ``Configuration``.

    A missing file yields an empty configuration.

    Raises:
        DiagWireConfigurationError: If the file is not a JSON object.

    """
    settings_path = Path(path)
    if not settings_path.is_file():
        logger.debug("Settings file %s not found; using empty configuration", settings_path)
        return Configuration()

    try:
        document = json.loads(settings_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as error:
        msg = f"Settings file {settings_path} is not valid JSON: {error}"
        raise DiagWireConfigurationError(msg) from error
    if not isinstance(document, dict):
        msg = f"Settings file {settings_path} must contain a JSON object."
        raise DiagWireConfigurationError(msg)
    return Configuration(document)
