"""Argument matchers: predicates over a single argument value.

The matcher set is closed: ``AnyArg``, ``Exact``, ``Predicate`` and
``ByRef``. Every variant answers three questions:

  - ``matches(value)``: does a recorded argument satisfy the matcher?
  - ``type_matches(param)``: could the matcher stand for a parameter of
    this declared type? Used only while resolving a member by name.
  - ``adjust_reference(args, index)``: splice a replacement value into a
    by-reference slot before a stub response runs. A no-op for everything
    but a ``ByRef`` carrying a value. Verification never calls it.

Usage::

    from mockwire.matchers import Arg

    Arg.any(int)                  # any int argument
    Arg.is_("a")                  # equal to "a"
    Arg.that(lambda i: i > 5, int)
    Arg.ref(Arg.is_(1), 999)      # by-reference, writes 999 back
    Arg.out(int, 1000)            # output parameter
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Union

from mockwire.signature import ParamSpec, Ref


class _Unset:
    def __repr__(self) -> str:
        return "<unset>"


# Marks a ByRef matcher that carries no replacement value
_UNSET: Any = _Unset()


def _declared_type_matches(expected: type | None, param: ParamSpec) -> bool:
    if param.by_ref:
        return False
    return expected is None or param.annotation == expected


@dataclass(frozen=True)
class AnyArg:
    """Matches every value. ``type_`` of ``None`` accepts any declared type."""

    type_: type | None = None

    def matches(self, value: object) -> bool:
        return True

    def type_matches(self, param: ParamSpec) -> bool:
        return _declared_type_matches(self.type_, param)

    def adjust_reference(self, args: list[object], index: int) -> None:
        return None

    def __repr__(self) -> str:
        name = self.type_.__name__ if self.type_ is not None else "object"
        return f"Arg.any({name})"


@dataclass(frozen=True)
class Exact:
    """Matches values of the same runtime type that compare equal to ``value``.

    ``Exact(1)`` does not match ``True`` or ``1.0``. ``Exact(None)`` only type-matches nullable parameters, which lets a bare
    ``None`` literal pick ``f(x: Optional[int])`` over ``f(x: int)``.
    """

    value: Any

    def matches(self, value: object) -> bool:
        if self.value is None:
            return value is None
        return type(value) is type(self.value) and bool(self.value == value)

    def type_matches(self, param: ParamSpec) -> bool:
        if param.by_ref:
            return False
        if self.value is None:
            return param.nullable
        return param.annotation is type(self.value)

    def adjust_reference(self, args: list[object], index: int) -> None:
        return None

    def __repr__(self) -> str:
        return f"Arg.is_({self.value!r})"


@dataclass(frozen=True)
class Predicate:
    """Matches values for which ``fn`` returns true."""

    fn: Callable[[Any], bool]
    type_: type | None = None

    def matches(self, value: object) -> bool:
        return bool(self.fn(value))

    def type_matches(self, param: ParamSpec) -> bool:
        return _declared_type_matches(self.type_, param)

    def adjust_reference(self, args: list[object], index: int) -> None:
        return None


@dataclass(frozen=True)
class ByRef:
    """Wraps another matcher for a by-reference parameter.

    When ``value`` is set, ``adjust_reference`` overwrites the argument slot
    (or the ``Ref`` cell held in it) unconditionally.
    """

    inner: AnyArg | Exact | Predicate
    value: Any = _UNSET

    @property
    def has_value(self) -> bool:
        return self.value is not _UNSET

    def matches(self, value: object) -> bool:
        return self.inner.matches(value)

    def type_matches(self, param: ParamSpec) -> bool:
        return param.by_ref and self.inner.type_matches(param.element())

    def adjust_reference(self, args: list[object], index: int) -> None:
        if not self.has_value:
            return
        slot = args[index]
        if isinstance(slot, Ref):
            slot.value = self.value
        else:
            args[index] = self.value


ArgumentMatcher = Union[AnyArg, Exact, Predicate, ByRef]

_MATCHER_TYPES = (AnyArg, Exact, Predicate, ByRef)


def is_matcher(obj: object) -> bool:
    return isinstance(obj, _MATCHER_TYPES)


def as_matcher(obj: object) -> ArgumentMatcher:
    """Wrap a literal argument in ``Exact``; matchers pass through."""
    if isinstance(obj, _MATCHER_TYPES):
        return obj
    return Exact(obj)


class Arg:
    """Factory facade for argument matchers."""

    @staticmethod
    def any(type_: type | None = None) -> AnyArg:
        return AnyArg(type_)

    @staticmethod
    def is_(value: object) -> Exact:
        return Exact(value)

    @staticmethod
    def that(fn: Callable[[Any], bool], type_: type | None = None) -> Predicate:
        return Predicate(fn, type_)

    @staticmethod
    def ref(matcher: object, value: object = _UNSET) -> ByRef:
        """Mark ``matcher`` (or a literal) as by-reference, optionally writing ``value``."""
        inner = as_matcher(matcher)
        if isinstance(inner, ByRef):
            raise ValueError("A by-reference matcher cannot wrap another one")
        return ByRef(inner, value)

    @staticmethod
    def out(type_: type | None = None, value: object = _UNSET) -> ByRef:
        """An output parameter: matches anything, optionally writes ``value``."""
        return ByRef(AnyArg(type_), value)
