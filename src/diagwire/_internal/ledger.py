from __future__ import annotations

from collections.abc import Iterator
from typing import Any, NamedTuple


class RegistrationToken(NamedTuple):
    """Identify one logical keyed registration.

    Tokens compare by value, so two call sites passing the same key produce
    the same token. ``None`` and ``""`` are different keys.
    """

    kind: Any
    key: str | None


class RegistrationLedger:
    """Record which ``(kind, key)`` pairs have completed registration.

    A ledger belongs to the composition root that owns the registry. It is
    mutated only by the keyed registration guard, inside the registry mutation
    block that wires the key. Rolling that block back removes the token again,
    so a token is never present for a partially wired key.
    """

    def __init__(self) -> None:
        self._tokens: set[RegistrationToken] = set()

    def mark(self, token: RegistrationToken) -> None:
        self._tokens.add(token)

    def discard(self, token: RegistrationToken) -> None:
        self._tokens.discard(token)

    def snapshot(self) -> frozenset[RegistrationToken]:
        """Capture the recorded tokens for rollback."""
        return frozenset(self._tokens)

    def restore(self, tokens: frozenset[RegistrationToken]) -> None:
        self._tokens = set(tokens)

    def __contains__(self, token: object) -> bool:
        return token in self._tokens

    def __iter__(self) -> Iterator[RegistrationToken]:
        return iter(tuple(self._tokens))

    def __len__(self) -> int:
        return len(self._tokens)
