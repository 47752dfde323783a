from __future__ import annotations

from collections.abc import Callable, Generator, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, TypeAlias

from diagwire._internal.ledger import RegistrationLedger, RegistrationToken

if TYPE_CHECKING:
    from diagwire._internal.service_provider import ServiceProvider

ServiceKind: TypeAlias = Any
"""The identifier a descriptor is registered under, usually an abstract class."""

ServiceFactory: TypeAlias = Callable[["ServiceProvider"], Any]
"""A callable that builds a service from the sealed provider."""


class Lifetime(Enum):
    """Define cache behavior for resolved services."""

    TRANSIENT = auto()
    """Build a new value for every resolution call."""

    SINGLETON = auto()
    """Build once per sealed provider and reuse the value afterwards."""


@dataclass(frozen=True, kw_only=True)
class ServiceDescriptor:
    """Describe how a single registry entry is produced.

    Exactly one of ``instance`` or ``factory`` is expected. Instance
    descriptors are always singletons.
    """

    kind: ServiceKind
    """The service kind this entry is counted and resolved under."""
    instance: Any | None = None
    """A pre-built value, if applicable."""
    factory: ServiceFactory | None = None
    """A factory called with the sealed provider, if applicable."""
    implementation_type: type[Any] | None = None
    """The concrete type produced; used by ``try_add_enumerable`` deduplication."""
    lifetime: Lifetime = Lifetime.SINGLETON
    """Cache behavior of the resolved value."""

    @classmethod
    def from_instance(cls, kind: ServiceKind, instance: Any) -> ServiceDescriptor:
        return cls(kind=kind, instance=instance, implementation_type=type(instance))

    @classmethod
    def from_factory(
        cls,
        kind: ServiceKind,
        factory: ServiceFactory,
        *,
        implementation_type: type[Any] | None = None,
        lifetime: Lifetime = Lifetime.SINGLETON,
    ) -> ServiceDescriptor:
        return cls(
            kind=kind,
            factory=factory,
            implementation_type=implementation_type,
            lifetime=lifetime,
        )


class ServiceRegistry:
    """Accumulate service descriptors during composition.

    The registry is an ordered, append-only multi-map keyed by service kind.
    Several descriptors may share a kind; resolution order follows insertion
    order. The registry also owns the ``RegistrationLedger`` used by keyed
    feature registrations, so the ledger lives exactly as long as the registry
    being built.

    The registry is not thread-safe. Composition is expected to happen
    sequentially at startup; callers composing from several threads must
    serialize their calls.
    """

    def __init__(self, *, ledger: RegistrationLedger | None = None) -> None:
        self._descriptors: list[ServiceDescriptor] = []
        self.ledger = ledger if ledger is not None else RegistrationLedger()
        self._mutation_depth = 0
        self._rollback_callbacks: list[Callable[[], None]] = []

    @dataclass(frozen=True, slots=True)
    class Snapshot:
        """Capture registry state for transactional rollback."""

        descriptors: tuple[ServiceDescriptor, ...]
        ledger_tokens: frozenset[RegistrationToken]

    def snapshot(self) -> Snapshot:
        """Capture current descriptors and ledger tokens for rollback."""
        return self.Snapshot(
            descriptors=tuple(self._descriptors),
            ledger_tokens=self.ledger.snapshot(),
        )

    def restore(self, snapshot: Snapshot) -> None:
        """Restore descriptors and ledger tokens from a previous snapshot.

        Args:
            snapshot: Previously captured snapshot state to restore into the registry.

        """
        self._descriptors = list(snapshot.descriptors)
        self.ledger.restore(snapshot.ledger_tokens)

    @contextmanager
    def registration_mutation(self) -> Generator[None, None, None]:
        """Group appends so that a failure leaves no partial state behind.

        Nested blocks join the outermost one. If any exception escapes the
        outermost block the registry and its ledger are restored to the state
        they had on entry, callbacks added with ``on_rollback`` run in reverse
        order, and the exception propagates unchanged.
        """
        if self._mutation_depth > 0:
            self._mutation_depth += 1
            try:
                yield
            finally:
                self._mutation_depth -= 1
            return

        snapshot = self.snapshot()
        self._mutation_depth = 1
        try:
            yield
        except BaseException:
            self.restore(snapshot)
            for callback in reversed(self._rollback_callbacks):
                callback()
            raise
        finally:
            self._mutation_depth = 0
            self._rollback_callbacks.clear()

    def on_rollback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` if the enclosing mutation block is rolled back.

        Use this to undo changes to state the registry does not own, such as a
        ledger shared between registries.

        Raises:
            RuntimeError: If called outside ``registration_mutation()``.

        """
        if self._mutation_depth == 0:
            msg = "on_rollback() must be called inside registration_mutation()."
            raise RuntimeError(msg)
        self._rollback_callbacks.append(callback)

    def add(self, descriptor: ServiceDescriptor) -> None:
        """Append a descriptor unconditionally."""
        self._descriptors.append(descriptor)

    def add_instance(self, kind: ServiceKind, instance: Any) -> None:
        """Append a pre-built instance under ``kind``."""
        self.add(ServiceDescriptor.from_instance(kind, instance))

    def add_factory(
        self,
        kind: ServiceKind,
        factory: ServiceFactory,
        *,
        implementation_type: type[Any] | None = None,
        lifetime: Lifetime = Lifetime.SINGLETON,
    ) -> None:
        """Append a factory-built service under ``kind``."""
        self.add(
            ServiceDescriptor.from_factory(
                kind,
                factory,
                implementation_type=implementation_type,
                lifetime=lifetime,
            ),
        )

    def try_add(self, descriptor: ServiceDescriptor) -> bool:
        """Append ``descriptor`` only when its kind has no descriptor yet.

        Returns:
            ``True`` when the descriptor was appended.

        """
        if self.contains(descriptor.kind):
            return False
        self.add(descriptor)
        return True

    def try_add_enumerable(self, descriptor: ServiceDescriptor) -> bool:
        """Append ``descriptor`` unless its kind already has the same implementation type.

        Use this for multi-registration kinds where each implementation should
        appear once, such as option configurators.

        Returns:
            ``True`` when the descriptor was appended.

        Raises:
            ValueError: If the descriptor does not declare an implementation type.

        """
        implementation_type = descriptor.implementation_type
        if implementation_type is None:
            msg = "try_add_enumerable() requires a descriptor with an implementation type."
            raise ValueError(msg)
        if any(
            existing.implementation_type is implementation_type
            for existing in self.descriptors(descriptor.kind)
        ):
            return False
        self.add(descriptor)
        return True

    def contains(self, kind: ServiceKind) -> bool:
        return any(descriptor.kind == kind for descriptor in self._descriptors)

    def descriptors(self, kind: ServiceKind) -> list[ServiceDescriptor]:
        """Get all descriptors registered under ``kind`` in insertion order."""
        return [descriptor for descriptor in self._descriptors if descriptor.kind == kind]

    def count(self, kind: ServiceKind) -> int:
        """Count descriptors registered under ``kind``."""
        return len(self.descriptors(kind))

    def build_provider(self) -> ServiceProvider:
        """Seal the current descriptors into a read-only ``ServiceProvider``.

        Later registry mutations do not affect providers that were already built.
        """
        from diagwire._internal.service_provider import ServiceProvider  # noqa: PLC0415

        return ServiceProvider(tuple(self._descriptors))

    def __iter__(self) -> Iterator[ServiceDescriptor]:
        return iter(tuple(self._descriptors))

    def __len__(self) -> int:
        return len(self._descriptors)
