"""Tests for the engine state, the interceptor hook and the Mocker surface."""

from __future__ import annotations

import inspect
import logging
from concurrent.futures import ThreadPoolExecutor

import pytest
from mockwire.config import EngineConfig, UnhandledPolicy
from mockwire.engine import EngineState, Mocker
from mockwire.errors import NoMatchingMethod, UnsatisfiedCallVerification
from mockwire.matchers import Arg
from mockwire.signature import MethodSignature, Ref
from mockwire.stubs import Response, ResponseKind, StubRule


class Target:
    @staticmethod
    def method(msg: str) -> int:
        return 100

    @staticmethod
    def compute(i: int) -> int:
        return i

    @staticmethod
    def by_ref(i: Ref[int], label: str) -> int:
        return -1

    def member(self, s: str) -> str:
        return "real:" + s

    @property
    def value(self) -> int:
        return 7

    @value.setter
    def value(self, v: int) -> None:
        pass


def _method_sig(engine: Mocker) -> MethodSignature:
    return engine.state.resolver.resolve(Target, "method", True, ("a",))


def _call_method(engine: Mocker, msg: str) -> int:
    return engine.interceptor.call(_method_sig(engine), Target.method, msg)


# ---------------------------------------------------------------------------
# Stubbing
# ---------------------------------------------------------------------------


class TestStubbing:
    def test_unstubbed_call_runs_original(self, engine: Mocker) -> None:
        assert _call_method(engine, "a") == 100
        assert len(engine.ledger) == 1

    def test_then_return(self, engine: Mocker) -> None:
        engine.when(Target, "method", Arg.any(str)).then_return(5)
        assert _call_method(engine, "a") == 5

    def test_literal_argument_restricts_stub(self, engine: Mocker) -> None:
        engine.when(Target, "method", "a").then_return(5)
        assert _call_method(engine, "a") == 5
        assert _call_method(engine, "b") == 100

    def test_last_registered_wins(self, engine: Mocker) -> None:
        engine.when(Target, "compute", Arg.any(int)).then_return(5)
        engine.when(Target, "compute", 1).then_return(10)
        sig = engine.state.resolver.from_callable(Target.compute)
        assert engine.interceptor.call(sig, Target.compute, 1) == 10
        assert engine.interceptor.call(sig, Target.compute, 2) == 5

    def test_then_computes_from_arguments(self, engine: Mocker) -> None:
        engine.when_called(Target.compute, Arg.that(lambda i: i > 5, int)).then(lambda args: args[0] * 2)
        sig = engine.state.resolver.from_callable(Target.compute)
        assert engine.interceptor.call(sig, Target.compute, 21) == 42
        assert engine.interceptor.call(sig, Target.compute, 3) == 3

    def test_then_call_actual_records_and_runs_original(self, engine: Mocker) -> None:
        rule = engine.mock_called(Target.compute, Arg.any(int))
        assert rule.response.kind is ResponseKind.CALL_ORIGINAL
        assert engine.interceptor.call(rule.signature, Target.compute, 7) == 7
        assert engine.invocations()[0].arguments == (7,)

    def test_call_actual_overrides_earlier_stub(self, engine: Mocker) -> None:
        engine.when(Target, "method", Arg.any(str)).then_return(5)
        engine.mock(Target, "method", Arg.any(str))
        assert _call_method(engine, "a") == 100

    def test_then_default_returns_zero_value(self, engine: Mocker) -> None:
        engine.when(Target, "method", Arg.any(str)).then_default()
        assert _call_method(engine, "a") == 0

    def test_register_explicit_rule(self, engine: Mocker) -> None:
        sig = _method_sig(engine)
        engine.register(sig, [Arg.any(str)], Response.fixed(3))
        assert _call_method(engine, "x") == 3

    def test_instance_member(self, engine: Mocker) -> None:
        sig = engine.state.resolver.from_callable(Target.member)
        target = Target()
        assert engine.interceptor.call(sig, Target.member, "x", instance=target) == "real:x"
        engine.when_called(Target.member, Arg.any(str)).then_return("stub")
        assert engine.interceptor.call(sig, Target.member, "x", instance=target) == "stub"
        assert [inv.instance for inv in engine.invocations()] == [target, target]

    def test_unknown_member_fails_at_construction(self, engine: Mocker) -> None:
        with pytest.raises(NoMatchingMethod):
            engine.when(Target, "missing")

    def test_when_signature_arity(self, engine: Mocker) -> None:
        with pytest.raises(ValueError, match="takes 1 arguments, got 0"):
            engine.when_signature(_method_sig(engine))

    def test_is_intercepted(self, engine: Mocker) -> None:
        sig = _method_sig(engine)
        assert not engine.is_intercepted(sig)
        engine.when(Target, "method", Arg.any(str)).then_return(1)
        assert engine.is_intercepted(sig)


class TestByReference:
    def test_ref_cell_receives_value(self, engine: Mocker) -> None:
        engine.when(Target, "by_ref", Arg.ref(10, 1000), Arg.any(str)).then_return(1)
        sig = engine.state.resolver.from_callable(Target.by_ref)
        cell = Ref(10)
        assert engine.interceptor.call(sig, Target.by_ref, cell, "x") == 1
        assert cell.value == 1000
        assert engine.invocations()[0].arguments == (10, "x")

    def test_plain_slot_replaced_in_outcome(self, engine: Mocker) -> None:
        engine.when(Target, "by_ref", Arg.out(int, 5), "x").then_call_actual()
        sig = engine.state.resolver.from_callable(Target.by_ref)
        outcome = engine.interceptor.hook(sig, None, [0, "x"])
        assert not outcome.handled
        assert outcome.args == [5, "x"]

    def test_computed_response_sees_adjusted_arguments(self, engine: Mocker) -> None:
        engine.when(Target, "by_ref", Arg.out(int, 5), Arg.any(str)).then(lambda args: args[0])
        sig = engine.state.resolver.from_callable(Target.by_ref)
        assert engine.interceptor.call(sig, Target.by_ref, 0, "x") == 5

    def test_non_matching_ref_untouched(self, engine: Mocker) -> None:
        engine.when(Target, "by_ref", Arg.ref(10, 1000), Arg.any(str)).then_return(1)
        sig = engine.state.resolver.from_callable(Target.by_ref)
        cell = Ref(11)
        assert engine.interceptor.call(sig, Target.by_ref, cell, "x") == -1
        assert cell.value == 11


class TestUnhandledPolicy:
    def test_return_default(self) -> None:
        engine = Mocker(config=EngineConfig(unhandled_policy=UnhandledPolicy.RETURN_DEFAULT))
        assert _call_method(engine, "a") == 0
        sig = engine.state.resolver.from_callable(Target.member)
        assert engine.interceptor.call(sig, Target.member, "x", instance=Target()) is None

    def test_state_and_config_are_exclusive(self) -> None:
        with pytest.raises(ValueError, match="either"):
            Mocker(state=EngineState(), config=EngineConfig())

    def test_shared_state(self) -> None:
        state = EngineState()
        first, second = Mocker(state=state), Mocker(state=state)
        _call_method(first, "a")
        assert len(second.invocations()) == 1


# ---------------------------------------------------------------------------
# Verification through the Mocker
# ---------------------------------------------------------------------------


class TestVerifier:
    def test_exact_count(self, engine: Mocker) -> None:
        _call_method(engine, "a")
        engine.verifier().once().called(Target, "method", "a").verify()

    def test_failure_report(self, engine: Mocker) -> None:
        _call_method(engine, "a")
        _call_method(engine, "b")
        with pytest.raises(UnsatisfiedCallVerification) as exc_info:
            engine.verifier().never().called(Target, "method", "a").verify()
        report = exc_info.value.report
        assert report.startswith("Unsatisfied invocation:\n")
        assert "Expected to call 0 times, but actually call 1 times from test_engine.py:" in report
        assert "hit(1) from test_engine.py:" in report
        assert report.endswith("static Target::method(str<b>)")

    def test_pattern_site_is_the_calling_line(self, engine: Mocker) -> None:
        verifier = engine.verifier()
        verifier.called(Target, "method", "z"); lineno = inspect.currentframe().f_lineno  # noqa: E702
        report = verifier.evaluate()
        assert report.groups[0].site.lineno == lineno

    def test_implicit_groups_default_to_at_least_once(self, engine: Mocker) -> None:
        _call_method(engine, "a")
        report = engine.verifier().called(Target, "method", "a").called(Target, "method", "c").evaluate()
        assert len(report.groups) == 2
        assert [g.satisfied for g in report.groups] == [True, False]
        assert "Expected to call at least 1 times, but actually call 0 times" in report.text

    def test_group_sums_patterns(self, engine: Mocker) -> None:
        for msg in ("a", "b", "a"):
            _call_method(engine, msg)
        report = (
            engine.verifier()
            .times(3)
            .called(Target, "method", "a")
            .called(Target, "method", "b")
            .evaluate()
        )
        assert report.satisfied
        assert len(report.groups) == 1

    def test_at_least_and_at_most(self, engine: Mocker) -> None:
        _call_method(engine, "a")
        _call_method(engine, "a")
        engine.verifier().at_least(2).called(Target, "method", "a").verify()
        engine.verifier().at_most(2).called(Target, "method", Arg.any(str)).verify()
        with pytest.raises(UnsatisfiedCallVerification, match="to call at most 1 times"):
            engine.verifier().at_most(1).called(Target, "method", "a").verify()

    def test_called_callable_and_signature(self, engine: Mocker) -> None:
        sig = engine.state.resolver.from_callable(Target.compute)
        engine.interceptor.call(sig, Target.compute, 6)
        engine.verifier().once().called_callable(Target.compute, Arg.that(lambda i: i > 5, int)).verify()
        engine.verifier().never().called_signature(sig, 7).verify()

    def test_property_accessors(self, engine: Mocker) -> None:
        target = Target()
        getter = engine.state.resolver.resolve(Target, "get_value", False, ())
        setter = engine.state.resolver.resolve(Target, "set_value", False, (1,))
        engine.when(Target, "get_value").then_return(42)
        assert engine.interceptor.call(getter, Target.value.fget, instance=target) == 42
        engine.interceptor.call(setter, Target.value.fset, 5, instance=target)
        engine.verifier().once().get(Target, "value").once().set(Target, "value", 5).verify()
        engine.verifier().never().set(Target, "value", 6).verify()

    def test_constraint_without_pattern(self, engine: Mocker) -> None:
        with pytest.raises(ValueError, match="at least one call pattern"):
            engine.verifier().once().build()

    def test_report_indent_from_config(self) -> None:
        engine = Mocker(config=EngineConfig(report_indent=2))
        _call_method(engine, "a")
        report = engine.verifier().never().called(Target, "method", "a").evaluate()
        assert report.text.splitlines()[1].startswith("  Expected")


# ---------------------------------------------------------------------------
# Lifecycle and hooks
# ---------------------------------------------------------------------------


class TestReset:
    def test_reset_clears_everything(self, engine: Mocker) -> None:
        engine.when(Target, "method", Arg.any(str)).then_return(5)
        _call_method(engine, "a")
        engine.reset()
        assert engine.invocations() == ()
        assert len(engine.registry) == 0
        assert not engine.is_intercepted(_method_sig(engine))
        assert _call_method(engine, "a") == 100
        assert engine.invocations()[0].sequence == 1

    def test_verification_after_reset_sees_no_calls(self, engine: Mocker) -> None:
        _call_method(engine, "a")
        engine.reset()
        report = engine.verifier().called(Target, "method", "a").evaluate()
        assert report.groups[0].actual == 0

    def test_reset_logs(self, engine: Mocker, caplog: pytest.LogCaptureFixture) -> None:
        _call_method(engine, "a")
        with caplog.at_level(logging.INFO, logger="mockwire.engine"):
            engine.reset()
        assert "Engine reset (1 invocations, 0 stub rules cleared)" in caplog.text


class TestHooks:
    def test_record_hook(self, engine: Mocker) -> None:
        seen = []
        engine.add_hook("record", seen.append)
        _call_method(engine, "a")
        assert [inv.sequence for inv in seen] == [1]

    def test_stub_and_reset_hooks(self, engine: Mocker) -> None:
        rules = []
        resets = []
        engine.add_hook("stub", rules.append)
        engine.add_hook("reset", lambda: resets.append(True))
        rule = engine.when(Target, "method", Arg.any(str)).then_return(1)
        engine.reset()
        assert rules == [rule]
        assert resets == [True]

    def test_remove_hook(self, engine: Mocker) -> None:
        seen = []
        engine.add_hook("record", seen.append)
        engine.remove_hook("record", seen.append)
        _call_method(engine, "a")
        assert seen == []

    def test_unknown_event(self, engine: Mocker) -> None:
        with pytest.raises(ValueError, match="Unknown event"):
            engine.add_hook("nope", print)
        with pytest.raises(ValueError, match="Unknown event"):
            engine.remove_hook("nope", print)

    def test_failing_hook_is_logged(self, engine: Mocker, caplog: pytest.LogCaptureFixture) -> None:
        def boom(_: object) -> None:
            raise RuntimeError("boom")

        engine.add_hook("record", boom)
        with caplog.at_level(logging.ERROR, logger="mockwire.engine"):
            assert _call_method(engine, "a") == 100
        assert "Hook 'record' raised an exception" in caplog.text


class TestConcurrency:
    def test_parallel_calls_get_unique_sequence_numbers(self, engine: Mocker) -> None:
        sig = engine.state.resolver.from_callable(Target.compute)

        def worker(i: int) -> None:
            for _ in range(50):
                engine.interceptor.call(sig, Target.compute, i)

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(worker, range(8)))

        assert sorted(inv.sequence for inv in engine.invocations()) == list(range(1, 401))

    def test_lock_can_be_disabled(self) -> None:
        engine = Mocker(config=EngineConfig(thread_safe=False))
        engine.when(Target, "method", Arg.any(str)).then_return(2)
        assert _call_method(engine, "a") == 2
        engine.verifier().once().called(Target, "method", "a").verify()
