"""Error types raised by the stubbing and verification engine.

Resolution errors are raised while a call pattern is being built and are
ordinary ``ValueError`` subclasses. Verification failures are assertion
failures so test runners report them as failed expectations, not crashes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mockwire.signature import MethodSignature


class MockwireError(Exception):
    """Base class for every error raised by mockwire."""


class ResolutionError(MockwireError, ValueError):
    """Raised when a member name cannot be resolved to exactly one signature."""


class NoMatchingMethod(ResolutionError):
    """No declared member matched the name, context, arity and argument types."""

    def __init__(self, owner_name: str, name: str) -> None:
        self.owner_name = owner_name
        self.name = name
        super().__init__(f"No matching method found for {owner_name}::{name}")


class AmbiguousMethod(ResolutionError):
    """More than one declared member matched.

    Attributes:
        candidates: The remaining signatures, in declaration order.
    """

    def __init__(self, candidates: list[MethodSignature]) -> None:
        self.candidates = list(candidates)
        lines = ["Ambiguous method between the following:"]
        lines.extend(f"    {candidate.render()}" for candidate in self.candidates)
        super().__init__("\n".join(lines))


class UnsatisfiedCallVerification(MockwireError, AssertionError):
    """Raised by verification when at least one expectation group fails.

    Attributes:
        report: The full two-part diagnostic text.
    """

    def __init__(self, report: str) -> None:
        self.report = report
        super().__init__(report)
