"""Invocation ledger — chronological record of every intercepted call.

The ledger is append-only between resets. Each entry gets the next
sequence number, and its arguments are snapshotted at call time so a
stub that later writes to a by-reference slot cannot rewrite history.

Usage::

    ledger = InvocationLedger()
    inv = ledger.record(signature, instance=None, args=[1, "a"])
    assert ledger.all() == (inv,)
    ledger.reset()
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any

from mockwire.signature import MethodSignature, deref

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Invocation:
    """A single recorded call.

    Attributes:
        signature: The operation that was called.
        instance: Receiver for instance members, None for static calls.
        arguments: Argument values at call time (Ref cells are dereferenced).
        sequence: Ledger-assigned, strictly increasing number starting at 1.
    """

    signature: MethodSignature
    instance: Any
    arguments: tuple[Any, ...]
    sequence: int

    def dump(self) -> str:
        return self.signature.dump(self.arguments)

    def __str__(self) -> str:
        return self.dump()


class InvocationLedger:
    """Append-only, in-memory record of intercepted calls."""

    def __init__(self) -> None:
        self._entries: list[Invocation] = []
        self._counter = itertools.count(1)

    def record(
        self,
        signature: MethodSignature,
        instance: Any,
        args: Sequence[object],
    ) -> Invocation:
        """Append a call and return its entry.

        Raises:
            ValueError: If the argument count differs from the signature's arity.
        """
        if len(args) != signature.arity:
            raise ValueError(
                f"{signature.render()} takes {signature.arity} arguments, got {len(args)}"
            )
        invocation = Invocation(
            signature=signature,
            instance=instance,
            arguments=tuple(deref(a) for a in args),
            sequence=next(self._counter),
        )
        self._entries.append(invocation)
        logger.debug("Recorded #%d %s", invocation.sequence, invocation)
        return invocation

    def all(self) -> tuple[Invocation, ...]:
        """Every entry, oldest first."""
        return tuple(self._entries)

    def count(self, signature: MethodSignature | None = None) -> int:
        if signature is None:
            return len(self._entries)
        return sum(1 for inv in self._entries if inv.signature == signature)

    def reset(self) -> None:
        """Drop every entry and restart numbering at 1."""
        self._entries.clear()
        self._counter = itertools.count(1)

    def dump(self) -> str:
        return "\n".join(inv.dump() for inv in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Invocation]:
        return iter(self.all())
