"""Method signatures — the identity of an interceptable operation.

A MethodSignature is the join key between stub rules, verification
patterns and recorded invocations. Two signatures are equal when the owner,
member name, static flag, parameter types (including by-reference flags)
and return annotation are all equal. Parameter names are informational.

Declared types are plain Python annotations. ``int``, ``float``, ``bool``
and ``complex`` are treated as non-nullable value types; everything else,
including ``Optional[X]``, ``object`` and ``typing.Any``, is nullable.
"""

from __future__ import annotations

import types
import typing
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")

# Non-nullable value types and their zero values
VALUE_TYPES: dict[type, object] = {
    int: 0,
    float: 0.0,
    bool: False,
    complex: 0j,
}


class Ref(Generic[T]):
    """By-reference parameter marker and mutable cell.

    Annotate a parameter as ``Ref[int]`` to declare it by-reference. An
    interception layer may pass a ``Ref`` instance in the argument list;
    the ledger records its current ``value`` and by-reference matchers
    write replacement values back into it.
    """

    def __init__(self, value: T | None = None) -> None:
        self.value = value

    def __repr__(self) -> str:
        return f"Ref({self.value!r})"


def deref(arg: object) -> object:
    """Return the current value of a Ref cell, or the argument itself."""
    return arg.value if isinstance(arg, Ref) else arg


def _union_args(annotation: object) -> tuple[object, ...]:
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        return typing.get_args(annotation)
    return ()


def is_nullable(annotation: object) -> bool:
    """Whether ``None`` is an acceptable value for the declared type."""
    if annotation is None or annotation is type(None):
        return True
    members = _union_args(annotation)
    if members:
        return any(is_nullable(m) for m in members)
    return annotation not in VALUE_TYPES


def type_name(annotation: object) -> str:
    """Render a declared type for diagnostics."""
    if annotation is None or annotation is type(None):
        return "None"
    if isinstance(annotation, str):
        return annotation
    if isinstance(annotation, type) and not typing.get_args(annotation):
        return annotation.__name__
    return repr(annotation).replace("typing.", "")


def zero_value(annotation: object) -> object:
    """The zero value returned by a DEFAULT response for a return type."""
    if isinstance(annotation, type) and annotation in VALUE_TYPES:
        return VALUE_TYPES[annotation]
    return None


@dataclass(frozen=True)
class ParamSpec:
    """A declared parameter.

    Attributes:
        annotation: Declared type (the element type for by-reference params).
        by_ref: Whether the parameter is declared ``Ref[...]``.
        name: Parameter name. Not part of equality.
    """

    annotation: Any
    by_ref: bool = False
    name: str = field(default="", compare=False)

    @classmethod
    def from_annotation(cls, annotation: Any, name: str = "") -> ParamSpec:
        """Build a ParamSpec, unwrapping a ``Ref[T]`` annotation."""
        if typing.get_origin(annotation) is Ref:
            (inner,) = typing.get_args(annotation)
            return cls(annotation=inner, by_ref=True, name=name)
        if annotation is Ref:
            return cls(annotation=object, by_ref=True, name=name)
        return cls(annotation=annotation, by_ref=False, name=name)

    @property
    def nullable(self) -> bool:
        return is_nullable(self.annotation)

    def element(self) -> ParamSpec:
        """The same parameter without the by-reference flag."""
        return ParamSpec(annotation=self.annotation, by_ref=False, name=self.name)

    def render(self) -> str:
        base = type_name(self.annotation)
        return f"Ref[{base}]" if self.by_ref else base


@dataclass(frozen=True)
class MethodSignature:
    """Immutable identity of an interceptable operation.

    Attributes:
        owner: The declaring class or module object.
        name: Member name (``get_x``/``set_x`` for property accessors).
        is_static: True for static methods, class methods and module functions.
        params: Declared parameters, excluding a bound ``self``/``cls``.
        return_type: Declared return annotation, used for default responses.
    """

    owner: Any
    name: str
    is_static: bool = True
    params: tuple[ParamSpec, ...] = ()
    return_type: Any = None

    @property
    def arity(self) -> int:
        return len(self.params)

    @property
    def owner_name(self) -> str:
        return getattr(self.owner, "__name__", repr(self.owner))

    def render(self) -> str:
        """Render as ``Owner::name(T, ...)``."""
        types_ = ", ".join(p.render() for p in self.params)
        return f"{self.owner_name}::{self.name}({types_})"

    def dump(self, args: tuple[object, ...] | list[object]) -> str:
        """Render a call as ``[static ]Owner::name(T<value>, ...)``."""
        rendered = ", ".join(
            f"{p.render()}<{arg}>" for p, arg in zip(self.params, args, strict=True)
        )
        prefix = "static " if self.is_static else ""
        return f"{prefix}{self.owner_name}::{self.name}({rendered})"

    def __str__(self) -> str:
        return self.render()
