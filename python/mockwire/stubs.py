"""Stub registry. Programmed responses and which one applies to a call.

Rules are kept in registration order and tried newest first, so a later
``when(...)`` overrides an earlier rule that still matches the same call:

    registry.register(StubRule(sig, (Arg.any(int),), Response.fixed(5)))
    registry.register(StubRule(sig, (Exact(1),), Response.fixed(10)))
    # method(1) -> 10, method(2) -> 5
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from mockwire.ledger import Invocation
from mockwire.matchers import ArgumentMatcher
from mockwire.signature import MethodSignature, zero_value

logger = logging.getLogger(__name__)


class ResponseKind(str, Enum):
    """What a winning stub rule does with the call."""

    FIXED = "fixed"  # return a constant
    COMPUTED = "computed"  # return fn(args)
    CALL_ORIGINAL = "call_original"  # let the real implementation run
    DEFAULT = "default"  # return the return type's zero value


@dataclass(frozen=True)
class Response:
    """A programmed response. Build one with the classmethod constructors."""

    kind: ResponseKind
    value: Any = None
    fn: Callable[[list[Any]], Any] | None = None

    def __post_init__(self) -> None:
        if self.kind is ResponseKind.COMPUTED and self.fn is None:
            raise ValueError("A computed response needs a function")

    @classmethod
    def fixed(cls, value: object) -> Response:
        return cls(ResponseKind.FIXED, value=value)

    @classmethod
    def computed(cls, fn: Callable[[list[Any]], Any]) -> Response:
        return cls(ResponseKind.COMPUTED, fn=fn)

    @classmethod
    def call_original(cls) -> Response:
        return cls(ResponseKind.CALL_ORIGINAL)

    @classmethod
    def default(cls) -> Response:
        return cls(ResponseKind.DEFAULT)

    @property
    def skips_original(self) -> bool:
        return self.kind is not ResponseKind.CALL_ORIGINAL

    def produce(self, signature: MethodSignature, args: list[Any]) -> Any:
        """Compute the result for a call. CALL_ORIGINAL yields None."""
        if self.kind is ResponseKind.FIXED:
            return self.value
        if self.kind is ResponseKind.COMPUTED:
            return self.fn(args)  # type: ignore[misc]
        if self.kind is ResponseKind.DEFAULT:
            return zero_value(signature.return_type)
        return None


@dataclass(frozen=True, eq=False)
class StubRule:
    """A (pattern -> response) mapping.

    Attributes:
        signature: Operation the rule applies to.
        matchers: One matcher per declared parameter.
        response: What to do when the rule wins.
    """

    signature: MethodSignature
    matchers: tuple[ArgumentMatcher, ...]
    response: Response

    def __post_init__(self) -> None:
        if len(self.matchers) != self.signature.arity:
            raise ValueError(
                f"{self.signature.render()} takes {self.signature.arity} arguments, "
                f"got {len(self.matchers)} matchers"
            )

    def matches(self, invocation: Invocation) -> bool:
        return invocation.signature == self.signature and all(
            m.matches(arg) for m, arg in zip(self.matchers, invocation.arguments, strict=True)
        )

    def adjust_references(self, args: list[Any]) -> None:
        """Splice by-reference replacement values into ``args``."""
        for index, matcher in enumerate(self.matchers):
            matcher.adjust_reference(args, index)


class StubRegistry:
    """Ordered collection of stub rules; the newest matching rule wins."""

    def __init__(self) -> None:
        self._rules: list[StubRule] = []

    def register(self, rule: StubRule) -> StubRule:
        self._rules.append(rule)
        logger.debug(
            f"Registered {rule.response.kind.value} stub for {rule.signature.render()} "
            f"({len(self._rules)} rules)"
        )
        return rule

    def dispatch(self, invocation: Invocation) -> StubRule | None:
        """Return the most recently registered rule matching the call, if any."""
        for rule in reversed(self._rules):
            if rule.matches(invocation):
                logger.debug("Call #%d handled by %s stub", invocation.sequence, rule.response.kind.value)
                return rule
        logger.debug("Call #%d not handled", invocation.sequence)
        return None

    def rules_for(self, signature: MethodSignature) -> list[StubRule]:
        """Rules registered for a signature, oldest first."""
        return [r for r in self._rules if r.signature == signature]

    def signatures(self) -> set[MethodSignature]:
        return {r.signature for r in self._rules}

    def reset(self) -> None:
        self._rules.clear()

    @property
    def rules(self) -> Sequence[StubRule]:
        return tuple(self._rules)

    def __len__(self) -> int:
        return len(self._rules)
