"""Engine state and the test-author surface.

``EngineState`` owns everything that lives between resets: the invocation
ledger, the stub registry, the set of intercepted signatures and the event
hooks. ``Interceptor`` is the entry point an interception layer calls on
every redirected call. ``Mocker`` is what tests use directly.

Usage::

    mocker = Mocker()
    mocker.when(Target, "method", Arg.any(int)).then_return(5)

    # inside the interception layer for Target.method
    result = mocker.interceptor.call(signature, real_method, 3)

    mocker.verifier().times(1).called(Target, "method", 3).verify()
    mocker.reset()
"""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from mockwire.config import EngineConfig, UnhandledPolicy
from mockwire.ledger import Invocation, InvocationLedger
from mockwire.matchers import ArgumentMatcher, as_matcher
from mockwire.resolution import InspectResolver, MethodResolver
from mockwire.signature import MethodSignature, zero_value
from mockwire.stubs import Response, StubRegistry, StubRule
from mockwire.verification import (
    DEFAULT_CONSTRAINT,
    CallPattern,
    CallSite,
    CountConstraint,
    Expectation,
    VerificationReport,
    VerificationRequest,
    evaluate,
    verify,
)

logger = logging.getLogger(__name__)


class EngineState:
    """Process-scoped engine state with an explicit lifecycle.

    Args:
        config: Engine settings. Defaults to ``EngineConfig()``.
        resolver: Member resolver. Defaults to ``InspectResolver()``.
    """

    _VALID_EVENTS = frozenset({"record", "stub", "reset"})

    def __init__(
        self,
        config: EngineConfig | None = None,
        resolver: MethodResolver | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.resolver: MethodResolver = resolver or InspectResolver()
        self.ledger = InvocationLedger()
        self.registry = StubRegistry()
        self.intercepted: set[MethodSignature] = set()
        self._hooks: dict[str, list[Callable[..., Any]]] = {e: [] for e in self._VALID_EVENTS}
        self._lock: contextlib.AbstractContextManager[Any] = (
            threading.RLock() if self.config.thread_safe else contextlib.nullcontext()
        )

    @property
    def lock(self) -> contextlib.AbstractContextManager[Any]:
        return self._lock

    def add_hook(self, event: str, callback: Callable[..., Any]) -> None:
        """Register a callback for an event.

        Events:
            "record" — callback(invocation: Invocation)
            "stub"   — callback(rule: StubRule), after registration
            "reset"  — callback(), after state has been cleared

        Raises:
            ValueError: If event name is not recognized.
        """
        if event not in self._VALID_EVENTS:
            raise ValueError(f"Unknown event '{event}'. Valid events: {sorted(self._VALID_EVENTS)}")
        self._hooks[event].append(callback)

    def remove_hook(self, event: str, callback: Callable[..., Any]) -> None:
        """Remove a previously registered callback.

        Raises:
            ValueError: If event name is not recognized.
        """
        if event not in self._VALID_EVENTS:
            raise ValueError(f"Unknown event '{event}'. Valid events: {sorted(self._VALID_EVENTS)}")
        self._hooks[event] = [cb for cb in self._hooks[event] if cb != callback]

    def fire_hooks(self, event: str, *args: Any) -> None:
        """Fire all callbacks for an event. Exceptions are logged and swallowed."""
        for callback in self._hooks[event]:
            try:
                callback(*args)
            except Exception:
                logger.exception("Hook %r raised an exception", event)

    def register(self, rule: StubRule) -> StubRule:
        with self._lock:
            self.registry.register(rule)
            self.intercepted.add(rule.signature)
        self.fire_hooks("stub", rule)
        return rule

    def reset(self) -> None:
        """Clear ledger, stub rules and intercepted signatures together."""
        with self._lock:
            cleared = (len(self.ledger), len(self.registry))
            self.ledger.reset()
            self.registry.reset()
            self.intercepted.clear()
        logger.info(f"Engine reset ({cleared[0]} invocations, {cleared[1]} stub rules cleared)")
        self.fire_hooks("reset")


@dataclass
class HookResult:
    """Outcome of one intercepted call.

    Attributes:
        handled: True when the real implementation must be skipped.
        result: Value to return instead when handled.
        args: Argument list after by-reference replacements.
    """

    handled: bool
    result: Any = None
    args: list[Any] = field(default_factory=list)


class Interceptor:
    """Hook point called by an interception layer for every redirected call."""

    def __init__(self, state: EngineState) -> None:
        self.state = state

    def hook(self, signature: MethodSignature, instance: Any, args: Sequence[Any]) -> HookResult:
        """Record the call, then apply the newest matching stub rule.

        Args:
            signature: The operation being called.
            instance: Receiver for instance members, None otherwise.
            args: Positional arguments; ``Ref`` cells stand for by-reference slots.
        """
        mutable = list(args)
        with self.state.lock:
            invocation = self.state.ledger.record(signature, instance, mutable)
            rule = self.state.registry.dispatch(invocation)
            if rule is None:
                outcome = self._unhandled(signature, mutable)
            else:
                rule.adjust_references(mutable)
                outcome = HookResult(
                    handled=rule.response.skips_original,
                    result=rule.response.produce(signature, mutable),
                    args=mutable,
                )
        self.state.fire_hooks("record", invocation)
        return outcome

    def call(
        self,
        signature: MethodSignature,
        original: Callable[..., Any],
        *args: Any,
        instance: Any = None,
    ) -> Any:
        """Run the hook and fall through to ``original`` when not handled.

        ``original`` receives the adjusted arguments, preceded by
        ``instance`` for instance members.
        """
        outcome = self.hook(signature, instance, args)
        if outcome.handled:
            return outcome.result
        if signature.is_static or instance is None:
            return original(*outcome.args)
        return original(instance, *outcome.args)

    def _unhandled(self, signature: MethodSignature, args: list[Any]) -> HookResult:
        if self.state.config.unhandled_policy is UnhandledPolicy.RETURN_DEFAULT:
            return HookResult(handled=True, result=zero_value(signature.return_type), args=args)
        return HookResult(handled=False, args=args)


class StubBuilder:
    """Second half of ``when(...)``: choose the response."""

    def __init__(
        self,
        state: EngineState,
        signature: MethodSignature,
        matchers: tuple[ArgumentMatcher, ...],
    ) -> None:
        self._state = state
        self.signature = signature
        self.matchers = matchers

    def then_return(self, value: object) -> StubRule:
        return self._register(Response.fixed(value))

    def then(self, fn: Callable[[list[Any]], Any]) -> StubRule:
        """Compute the result from the (mutable) argument list."""
        return self._register(Response.computed(fn))

    def then_call_actual(self) -> StubRule:
        return self._register(Response.call_original())

    def then_default(self) -> StubRule:
        return self._register(Response.default())

    def _register(self, response: Response) -> StubRule:
        return self._state.register(StubRule(self.signature, self.matchers, response))


class Verifier:
    """Fluent builder for a verification request.

    ``times``/``once``/``never``/``at_least``/``at_most`` open a group that
    collects every following pattern. Patterns added before any of them
    each form their own ``at_least(1)`` group.

    Example::

        mocker.verifier() \\
            .times(0).called(Target, "method", "a").called(Target, "method", "b") \\
            .at_least(2).called(Target, "other") \\
            .verify()
    """

    def __init__(self, mocker: Mocker, call_site: CallSite | None = None) -> None:
        self._mocker = mocker
        self._call_site = call_site or CallSite.caller()
        self._groups: list[tuple[CountConstraint, list[CallPattern], bool]] = []

    # -- constraints ----------------------------------------------------

    def times(self, n: int) -> Verifier:
        return self._open(CountConstraint.exactly(n))

    def once(self) -> Verifier:
        return self._open(CountConstraint.once())

    def never(self) -> Verifier:
        return self._open(CountConstraint.never())

    def at_least(self, n: int) -> Verifier:
        return self._open(CountConstraint.at_least(n))

    def at_most(self, n: int) -> Verifier:
        return self._open(CountConstraint.at_most(n))

    # -- patterns -------------------------------------------------------

    def called(self, owner: Any, name: str, *args: object, is_static: bool | None = None) -> Verifier:
        signature = self._mocker.state.resolver.resolve(owner, name, is_static, args)
        return self._add(signature, args, CallSite.caller())

    def called_callable(self, func: Callable[..., Any], *args: object) -> Verifier:
        signature = self._mocker.state.resolver.from_callable(func)
        return self._add(signature, args, CallSite.caller())

    def called_signature(self, signature: MethodSignature, *args: object) -> Verifier:
        return self._add(signature, args, CallSite.caller())

    def get(self, owner: Any, prop: str) -> Verifier:
        signature = self._mocker.state.resolver.resolve(owner, f"get_{prop}", False, ())
        return self._add(signature, (), CallSite.caller())

    def set(self, owner: Any, prop: str, value: object) -> Verifier:
        signature = self._mocker.state.resolver.resolve(owner, f"set_{prop}", False, (value,))
        return self._add(signature, (value,), CallSite.caller())

    # -- execution ------------------------------------------------------

    def build(self) -> VerificationRequest:
        """Freeze the builder into a request.

        Raises:
            ValueError: If a constraint was opened without any pattern.
        """
        groups = tuple(
            Expectation(patterns=tuple(patterns), constraint=constraint)
            for constraint, patterns, _ in self._groups
        )
        return VerificationRequest(groups=groups, call_site=self._call_site)

    def evaluate(self) -> VerificationReport:
        return self._mocker.evaluate(self.build())

    def verify(self) -> VerificationReport:
        return self._mocker.verify(self.build())

    def _open(self, constraint: CountConstraint) -> Verifier:
        self._groups.append((constraint, [], False))
        return self

    def _add(self, signature: MethodSignature, args: Sequence[object], site: CallSite) -> Verifier:
        pattern = CallPattern(signature, tuple(as_matcher(a) for a in args), site)
        if not self._groups or self._groups[-1][2]:
            self._groups.append((DEFAULT_CONSTRAINT, [pattern], True))
        else:
            self._groups[-1][1].append(pattern)
        return self


class Mocker:
    """Public surface for test authors.

    Args:
        state: Shared engine state. A fresh one is created when omitted.
        config: Settings for a freshly created state.
    """

    def __init__(self, state: EngineState | None = None, config: EngineConfig | None = None) -> None:
        if state is not None and config is not None:
            raise ValueError("Pass either an existing state or a config, not both")
        self.state = state or EngineState(config)
        self.interceptor = Interceptor(self.state)

    @property
    def ledger(self) -> InvocationLedger:
        return self.state.ledger

    @property
    def registry(self) -> StubRegistry:
        return self.state.registry

    # -- stubbing -------------------------------------------------------

    def when(self, owner: Any, name: str, *args: object, is_static: bool | None = None) -> StubBuilder:
        """Start a stub for ``owner.name`` resolved against the literal arguments."""
        signature = self.state.resolver.resolve(owner, name, is_static, args)
        return self.when_signature(signature, *args)

    def when_called(self, func: Callable[..., Any], *args: object) -> StubBuilder:
        """Start a stub for a concrete callable."""
        return self.when_signature(self.state.resolver.from_callable(func), *args)

    def when_signature(self, signature: MethodSignature, *args: object) -> StubBuilder:
        matchers = tuple(as_matcher(a) for a in args)
        if len(matchers) != signature.arity:
            raise ValueError(
                f"{signature.render()} takes {signature.arity} arguments, got {len(matchers)}"
            )
        return StubBuilder(self.state, signature, matchers)

    def mock(self, owner: Any, name: str, *args: object, is_static: bool | None = None) -> StubRule:
        """Intercept and record calls while still running the real implementation."""
        return self.when(owner, name, *args, is_static=is_static).then_call_actual()

    def mock_called(self, func: Callable[..., Any], *args: object) -> StubRule:
        return self.when_called(func, *args).then_call_actual()

    def register(
        self,
        signature: MethodSignature,
        matchers: Sequence[ArgumentMatcher],
        response: Response,
    ) -> StubRule:
        return self.state.register(StubRule(signature, tuple(matchers), response))

    def is_intercepted(self, signature: MethodSignature) -> bool:
        return signature in self.state.intercepted

    # -- verification ---------------------------------------------------

    def verifier(self) -> Verifier:
        return Verifier(self, CallSite.caller())

    def evaluate(self, request: VerificationRequest) -> VerificationReport:
        with self.state.lock:
            return evaluate(self.state.ledger.all(), request, self.state.config.report_indent)

    def verify(self, request: VerificationRequest) -> VerificationReport:
        """Check a request against the ledger.

        Raises:
            UnsatisfiedCallVerification: If any group is unsatisfied.
        """
        with self.state.lock:
            return verify(self.state.ledger.all(), request, self.state.config.report_indent)

    def invocations(self) -> tuple[Invocation, ...]:
        return self.state.ledger.all()

    # -- lifecycle ------------------------------------------------------

    def reset(self) -> None:
        self.state.reset()

    def add_hook(self, event: str, callback: Callable[..., Any]) -> None:
        self.state.add_hook(event, callback)

    def remove_hook(self, event: str, callback: Callable[..., Any]) -> None:
        self.state.remove_hook(event, callback)
