"""Member resolution — turn a name (or a callable) into a MethodSignature.

When a pattern is written as ``(Target, "method", *args)`` the engine has
to pick exactly one declared member. The algorithm filters the owner's
declared members by name and static/instance context, then by arity, then
by each argument matcher's ``type_matches`` against the declared parameter
types. One survivor is a success; none raises ``NoMatchingMethod``; more
than one raises ``AmbiguousMethod`` listing the survivors in declaration
order.

``InspectResolver`` backs the ``MethodResolver`` protocol with ``inspect``
and ``typing``:

  - only members declared directly on the owner are considered
    (``vars(owner)``, which preserves definition order);
  - ``@typing.overload`` declarations become one candidate each;
  - static methods, class methods and module-level functions are static;
    plain functions declared on a class are instance members, and the
    bound ``self``/``cls`` parameter is dropped;
  - a property ``x`` is exposed as ``get_x()`` and ``set_x(value)``.
"""

from __future__ import annotations

import inspect
import logging
import sys
import types
import typing
from collections.abc import Callable, Sequence
from typing import Any, Protocol

from mockwire.errors import AmbiguousMethod, NoMatchingMethod
from mockwire.matchers import ArgumentMatcher, as_matcher
from mockwire.signature import MethodSignature, ParamSpec

logger = logging.getLogger(__name__)

_GETTER_PREFIX = "get_"
_SETTER_PREFIX = "set_"


class MethodResolver(Protocol):
    """Capability that maps names and callables to concrete signatures."""

    def resolve(
        self,
        owner: Any,
        name: str,
        is_static: bool | None,
        args: Sequence[object],
    ) -> MethodSignature: ...

    def from_callable(self, func: Callable[..., Any]) -> MethodSignature: ...


def select_signature(
    candidates: Sequence[MethodSignature],
    matchers: Sequence[ArgumentMatcher],
    owner_name: str,
    name: str,
) -> MethodSignature:
    """Narrow candidates by arity and argument types.

    Args:
        candidates: Signatures already filtered by name and context, in
            declaration order.
        matchers: One matcher per literal argument.
        owner_name: Rendered owner, for the error message.
        name: Member name, for the error message.

    Returns:
        The single remaining signature.

    Raises:
        NoMatchingMethod: If nothing survives.
        AmbiguousMethod: If more than one signature survives.
    """
    remaining = [
        sig
        for sig in candidates
        if sig.arity == len(matchers)
        and all(m.type_matches(p) for m, p in zip(matchers, sig.params, strict=True))
    ]
    if not remaining:
        raise NoMatchingMethod(owner_name, name)
    if len(remaining) > 1:
        raise AmbiguousMethod(remaining)
    return remaining[0]


def _owner_name(owner: Any) -> str:
    return getattr(owner, "__name__", repr(owner))


class InspectResolver:
    """MethodResolver backed by runtime introspection."""

    def resolve(
        self,
        owner: Any,
        name: str,
        is_static: bool | None,
        args: Sequence[object],
    ) -> MethodSignature:
        """Resolve ``owner.name`` for the given literal arguments.

        Args:
            owner: Declaring class or module.
            name: Member name; ``get_x``/``set_x`` address property ``x``.
            is_static: Required context, or None to consider both.
            args: Literal values or matchers, one per parameter.
        """
        matchers = [as_matcher(a) for a in args]
        candidates = [
            sig
            for sig in self.declared(owner, name)
            if is_static is None or sig.is_static == is_static
        ]
        signature = select_signature(candidates, matchers, _owner_name(owner), name)
        logger.debug("Resolved %s::%s to %s", _owner_name(owner), name, signature.render())
        return signature

    def from_callable(self, func: Callable[..., Any]) -> MethodSignature:
        """Signature of a concrete callable (function, bound or static method).

        Raises:
            NoMatchingMethod: If the callable is not declared on a resolvable owner.
            AmbiguousMethod: If the callable is overloaded.
        """
        owner, name = self._locate(func)
        candidates = self.declared(owner, name)
        if isinstance(func, types.MethodType) and not isinstance(func.__self__, type):
            candidates = [sig for sig in candidates if not sig.is_static]
        if not candidates:
            raise NoMatchingMethod(_owner_name(owner), name)
        if len(candidates) > 1:
            raise AmbiguousMethod(candidates)
        return candidates[0]

    def declared(self, owner: Any, name: str | None = None) -> list[MethodSignature]:
        """Interceptable signatures declared directly on ``owner``.

        Args:
            owner: Declaring class or module.
            name: Only build signatures for this member name. Members with
                other names are never introspected.
        """
        signatures: list[MethodSignature] = []
        owner_is_class = isinstance(owner, type)
        for attr_name, member in vars(owner).items():
            if isinstance(member, property):
                signatures.extend(self._accessors(owner, attr_name, member, name))
                continue
            if name is not None and attr_name != name:
                continue
            if isinstance(member, (staticmethod, classmethod)):
                is_static = True
                drop_first = isinstance(member, classmethod)
            elif inspect.isfunction(member):
                if not owner_is_class and member.__module__ != getattr(owner, "__name__", None):
                    # Imported into a module namespace, declared elsewhere
                    continue
                is_static = not owner_is_class
                drop_first = owner_is_class
            else:
                continue
            for func in self._overloads(member):
                signatures.append(
                    self._build(owner, attr_name, func, is_static=is_static, drop_first=drop_first)
                )
        return signatures

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _overloads(self, member: Any) -> list[Callable[..., Any]]:
        declared = typing.get_overloads(member)
        funcs = declared if declared else [member]
        return [getattr(f, "__func__", f) for f in funcs]

    def _accessors(
        self, owner: Any, attr_name: str, prop: property, name: str | None
    ) -> list[MethodSignature]:
        accessors: list[MethodSignature] = []
        for prefix, func in ((_GETTER_PREFIX, prop.fget), (_SETTER_PREFIX, prop.fset)):
            accessor = prefix + attr_name
            if func is None or (name is not None and accessor != name):
                continue
            accessors.append(self._build(owner, accessor, func, is_static=False, drop_first=True))
        return accessors

    def _build(
        self,
        owner: Any,
        name: str,
        func: Callable[..., Any],
        *,
        is_static: bool,
        drop_first: bool,
    ) -> MethodSignature:
        try:
            sig = inspect.signature(func, eval_str=True)
        except NameError as e:
            # Names imported only under TYPE_CHECKING stay as strings
            logger.debug("Keeping string annotations for %s::%s: %s", _owner_name(owner), name, e)
            sig = inspect.signature(func)
        parameters = list(sig.parameters.values())
        if drop_first and parameters:
            parameters = parameters[1:]
        params = tuple(
            ParamSpec.from_annotation(
                object if p.annotation is inspect.Parameter.empty else p.annotation,
                name=p.name,
            )
            for p in parameters
            if p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
        )
        return_type = None if sig.return_annotation is inspect.Signature.empty else sig.return_annotation
        return MethodSignature(
            owner=owner,
            name=name,
            is_static=is_static,
            params=params,
            return_type=return_type,
        )

    def _locate(self, func: Callable[..., Any]) -> tuple[Any, str]:
        if isinstance(func, types.MethodType):
            bound = func.__self__
            owner = bound if isinstance(bound, type) else type(bound)
            return self._declaring_class(owner, func.__name__), func.__name__

        name = getattr(func, "__name__", None)
        module = sys.modules.get(getattr(func, "__module__", "") or "")
        qualname = getattr(func, "__qualname__", "")
        if name is None or module is None:
            raise NoMatchingMethod(repr(func), str(name))

        owner: Any = module
        for part in qualname.split(".")[:-1]:
            if part == "<locals>":
                raise NoMatchingMethod(qualname, name)
            owner = getattr(owner, part)
        return owner, name

    def _declaring_class(self, cls: type, name: str) -> type:
        for klass in cls.__mro__:
            if name in vars(klass):
                return klass
        raise NoMatchingMethod(cls.__name__, name)
