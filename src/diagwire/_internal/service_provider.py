from __future__ import annotations

import threading
from typing import Any, TypeVar, overload

from diagwire._internal.registry import Lifetime, ServiceDescriptor, ServiceKind
from diagwire.exceptions import DiagWireServiceNotRegisteredError

T = TypeVar("T")

_MISSING = object()


class ServiceProvider:
    """Resolve services from a sealed set of descriptors.

    The descriptor tuple never changes after construction, so concurrent
    resolution is safe. Singleton construction is guarded by a lock and
    cached per provider instance.
    """

    def __init__(self, descriptors: tuple[ServiceDescriptor, ...]) -> None:
        self._descriptors = descriptors
        self._singletons: dict[int, Any] = {}
        self._lock = threading.RLock()

    @overload
    def resolve(self, kind: type[T]) -> T: ...

    @overload
    def resolve(self, kind: ServiceKind) -> Any: ...

    def resolve(self, kind: ServiceKind) -> Any:
        """Resolve the last descriptor registered under ``kind``.

        Raises:
            DiagWireServiceNotRegisteredError: If nothing is registered under ``kind``.

        """
        value = self.find(kind, default=_MISSING)
        if value is _MISSING:
            msg = f"No service registered for {kind!r}."
            raise DiagWireServiceNotRegisteredError(msg)
        return value

    def find(self, kind: ServiceKind, default: Any = None) -> Any:
        """Resolve ``kind`` like ``resolve`` but return ``default`` when missing."""
        for index in range(len(self._descriptors) - 1, -1, -1):
            if self._descriptors[index].kind == kind:
                return self._build(index)
        return default

    @overload
    def resolve_all(self, kind: type[T]) -> list[T]: ...

    @overload
    def resolve_all(self, kind: ServiceKind) -> list[Any]: ...

    def resolve_all(self, kind: ServiceKind) -> list[Any]:
        """Resolve every descriptor registered under ``kind`` in registration order."""
        return [
            self._build(index)
            for index, descriptor in enumerate(self._descriptors)
            if descriptor.kind == kind
        ]

    def _build(self, index: int) -> Any:
        descriptor = self._descriptors[index]
        if descriptor.factory is None:
            return descriptor.instance
        if descriptor.lifetime is Lifetime.TRANSIENT:
            return descriptor.factory(self)

        cached = self._singletons.get(index, _MISSING)
        if cached is not _MISSING:
            return cached
        # Reentrant: singleton factories resolve their own dependencies.
        with self._lock:
            cached = self._singletons.get(index, _MISSING)
            if cached is _MISSING:
                cached = descriptor.factory(self)
                self._singletons[index] = cached
            return cached
