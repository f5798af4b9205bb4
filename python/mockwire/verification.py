"""Verification engine — check recorded calls against count expectations.

A request is an ordered list of expectation groups. Each group applies one
count constraint to the summed hits of its call patterns. Evaluation is a
pure function of the ledger contents and the request:

  1. Every pattern collects its matching invocations in ledger order and
     numbers them ``hit(1)``, ``hit(2)``, ...
  2. Every group sums its patterns' hits and checks its constraint.
  3. If all groups hold, verification succeeds.
  4. Otherwise a two-part report is built: one ``Expected ...`` line per
     failing group, then every ledger entry, with matched entries prefixed
     by their hit labels and the ``=>`` delimiters aligned.

Example report::

    Unsatisfied invocation:
        Expected to call 0 times, but actually call 1 times from test_target.py:12
    All invocations:
        hit(1) from test_target.py:12 => Target::method(str<a>)
                                         Target::method(str<b>)
"""

from __future__ import annotations

import inspect
import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from mockwire.errors import UnsatisfiedCallVerification
from mockwire.ledger import Invocation
from mockwire.matchers import ArgumentMatcher
from mockwire.signature import MethodSignature

logger = logging.getLogger(__name__)

DEFAULT_INDENT = 4


# ---------------------------------------------------------------------------
# Count constraints
# ---------------------------------------------------------------------------


class CountKind(str, Enum):
    EXACTLY = "exactly"
    AT_LEAST = "at_least"
    AT_MOST = "at_most"


@dataclass(frozen=True)
class CountConstraint:
    """How many matching calls a group expects."""

    kind: CountKind
    n: int

    def __post_init__(self) -> None:
        if self.n < 0:
            raise ValueError(f"Call count must be non-negative, got {self.n}")

    @classmethod
    def exactly(cls, n: int) -> CountConstraint:
        return cls(CountKind.EXACTLY, n)

    @classmethod
    def at_least(cls, n: int) -> CountConstraint:
        return cls(CountKind.AT_LEAST, n)

    @classmethod
    def at_most(cls, n: int) -> CountConstraint:
        return cls(CountKind.AT_MOST, n)

    @classmethod
    def once(cls) -> CountConstraint:
        return cls.exactly(1)

    @classmethod
    def never(cls) -> CountConstraint:
        return cls.exactly(0)

    def satisfied_by(self, actual: int) -> bool:
        if self.kind is CountKind.EXACTLY:
            return actual == self.n
        if self.kind is CountKind.AT_LEAST:
            return actual >= self.n
        return actual <= self.n

    @property
    def phrase(self) -> str:
        if self.kind is CountKind.AT_LEAST:
            return f"to call at least {self.n} times"
        if self.kind is CountKind.AT_MOST:
            return f"to call at most {self.n} times"
        return f"to call {self.n} times"


DEFAULT_CONSTRAINT = CountConstraint.at_least(1)


# ---------------------------------------------------------------------------
# Request model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CallSite:
    """A source position in test code, rendered ``filename:lineno``."""

    filename: str
    lineno: int

    @classmethod
    def unknown(cls) -> CallSite:
        return cls("<unknown>", 0)

    @classmethod
    def caller(cls, depth: int = 1) -> CallSite:
        """Position of the frame ``depth`` levels above the caller of this method."""
        frame = inspect.currentframe()
        try:
            target = frame.f_back if frame is not None else None
            for _ in range(depth):
                if target is None:
                    break
                target = target.f_back
            if target is None:
                return cls.unknown()
            return cls(os.path.basename(target.f_code.co_filename), target.f_lineno)
        finally:
            del frame

    def shifted(self, offset: int) -> CallSite:
        return CallSite(self.filename, self.lineno + offset)

    def __str__(self) -> str:
        return f"{self.filename}:{self.lineno}"


@dataclass(frozen=True, eq=False)
class CallPattern:
    """A signature plus one matcher per parameter.

    Attributes:
        signature: Operation to look for.
        matchers: Per-parameter matchers.
        site: Where the pattern was written. When None, the request's call
            site shifted by the pattern's registration ordinal is used.
    """

    signature: MethodSignature
    matchers: tuple[ArgumentMatcher, ...]
    site: CallSite | None = None

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


@dataclass(frozen=True)
class Expectation:
    """One count constraint over one or more call patterns."""

    patterns: tuple[CallPattern, ...]
    constraint: CountConstraint = DEFAULT_CONSTRAINT

    def __post_init__(self) -> None:
        if not self.patterns:
            raise ValueError("An expectation needs at least one call pattern")


@dataclass(frozen=True)
class VerificationRequest:
    """Ordered expectation groups plus the position they were written at."""

    groups: tuple[Expectation, ...]
    call_site: CallSite = field(default_factory=CallSite.unknown)


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------


@dataclass
class PatternHits:
    """Invocations matched by one pattern, in ledger order."""

    pattern: CallPattern
    site: CallSite
    invocations: list[Invocation] = field(default_factory=list)

    def label(self, invocation: Invocation) -> str:
        return f"hit({self.invocations.index(invocation) + 1}) from {self.site}"


@dataclass
class GroupOutcome:
    """Evaluation of one expectation group."""

    expectation: Expectation
    hits: list[PatternHits]
    actual: int
    satisfied: bool

    @property
    def site(self) -> CallSite:
        return self.hits[0].site

    def expected_line(self) -> str:
        return (
            f"Expected {self.expectation.constraint.phrase}, "
            f"but actually call {self.actual} times from {self.site}"
        )


@dataclass
class VerificationReport:
    """Result of evaluating a request. ``text`` is empty when satisfied."""

    satisfied: bool
    groups: list[GroupOutcome] = field(default_factory=list)
    text: str = ""

    @property
    def failed_groups(self) -> list[GroupOutcome]:
        return [g for g in self.groups if not g.satisfied]


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _collect_hits(
    invocations: Sequence[Invocation], request: VerificationRequest
) -> list[GroupOutcome]:
    outcomes: list[GroupOutcome] = []
    ordinal = 0
    for expectation in request.groups:
        group_hits: list[PatternHits] = []
        for pattern in expectation.patterns:
            ordinal += 1
            site = pattern.site if pattern.site is not None else request.call_site.shifted(ordinal)
            matched = [inv for inv in invocations if pattern.matches(inv)]
            group_hits.append(PatternHits(pattern=pattern, site=site, invocations=matched))
        actual = sum(len(h.invocations) for h in group_hits)
        outcomes.append(
            GroupOutcome(
                expectation=expectation,
                hits=group_hits,
                actual=actual,
                satisfied=expectation.constraint.satisfied_by(actual),
            )
        )
    return outcomes


def render_report(
    invocations: Sequence[Invocation],
    outcomes: Sequence[GroupOutcome],
    indent: int = DEFAULT_INDENT,
) -> str:
    """Build the two-part diagnostic for failing groups.

    Hit labels of every pattern in every group annotate the ledger section,
    not only those of the failing groups.
    """
    pad = " " * indent
    lines = ["Unsatisfied invocation:"]
    lines.extend(pad + g.expected_line() for g in outcomes if not g.satisfied)

    labels: dict[int, list[str]] = {}
    for outcome in outcomes:
        for hits in outcome.hits:
            for inv in hits.invocations:
                labels.setdefault(inv.sequence, []).append(hits.label(inv))
    prefixes = {seq: ", ".join(found) + " => " for seq, found in labels.items()}
    width = max((len(p) for p in prefixes.values()), default=0)

    lines.append("All invocations:")
    for inv in invocations:
        prefix = prefixes.get(inv.sequence)
        head = prefix.rjust(width) if prefix is not None else " " * width
        lines.append(pad + head + inv.dump())
    return "\n".join(lines)


def evaluate(
    invocations: Sequence[Invocation],
    request: VerificationRequest,
    indent: int = DEFAULT_INDENT,
) -> VerificationReport:
    """Evaluate a request without raising.

    Args:
        invocations: Ledger entries, oldest first.
        request: Expectation groups to check.
        indent: Indentation of report body lines.

    Returns:
        A report whose ``text`` holds the diagnostic when unsatisfied.
    """
    outcomes = _collect_hits(invocations, request)
    if all(g.satisfied for g in outcomes):
        return VerificationReport(satisfied=True, groups=outcomes)
    text = render_report(invocations, outcomes, indent)
    return VerificationReport(satisfied=False, groups=outcomes, text=text)


def verify(
    invocations: Sequence[Invocation],
    request: VerificationRequest,
    indent: int = DEFAULT_INDENT,
) -> VerificationReport:
    """Evaluate a request and raise when any group is unsatisfied.

    Raises:
        UnsatisfiedCallVerification: Carrying the full report text.
    """
    report = evaluate(invocations, request, indent)
    if not report.satisfied:
        logger.info(
            f"Verification failed: {len(report.failed_groups)} of "
            f"{len(report.groups)} groups unsatisfied"
        )
        raise UnsatisfiedCallVerification(report.text)
    return report
