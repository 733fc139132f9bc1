"""Pipeline execution context.

A stack of variable scopes shared by every step of a run. Loops and
sub-pipelines push a child scope for their body and pop it on the way out,
so bindings made inside never leak back into the parent. Lookups search
innermost to outermost, so a child shadows but does not cut off its
ancestors.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from ability_pipelines.errors import VariableReferenceError

REFERENCE_SIGIL = "$"

# $name followed by any number of .key or [index] accessors
_REFERENCE_RE = re.compile(r"\$[A-Za-z_][\w-]*(?:\.[\w-]+|\[[^\]]*\])*")

_MISSING = object()


def is_reference(value: Any) -> bool:
    """True for strings that are entirely a variable reference.

    Strings that merely start with ``$`` (JSONata such as ``$sum(x)`` or a
    price like ``$5.00``) are literals.
    """
    return isinstance(value, str) and _REFERENCE_RE.fullmatch(value) is not None


def parse_reference(reference: str) -> list[str]:
    """Split a ``$var.path[0]['key']`` reference into its segments.

    ``"$post.meta[0].value"`` -> ``["post", "meta", "0", "value"]``
    """
    body = reference[len(REFERENCE_SIGIL):] if reference.startswith(REFERENCE_SIGIL) else reference
    parts: list[str] = []
    current = ""
    i = 0

    while i < len(body):
        char = body[i]
        if char == ".":
            if current:
                parts.append(current)
                current = ""
        elif char == "[":
            if current:
                parts.append(current)
                current = ""
            close = body.find("]", i)
            if close == -1:
                raise VariableReferenceError(f"Unclosed bracket in reference: {reference}")
            parts.append(body[i + 1 : close].strip("'\""))
            i = close
        else:
            current += char
        i += 1

    if current:
        parts.append(current)

    if not parts:
        raise VariableReferenceError(f"Empty variable reference: {reference!r}")
    return parts


def _resolve_segment(value: Any, key: str, reference: str) -> Any:
    if isinstance(value, Mapping):
        if key not in value:
            raise VariableReferenceError(f"Undefined key '{key}' in {reference}")
        return value[key]

    if isinstance(value, (list, tuple)):
        try:
            return value[int(key)]
        except ValueError:
            raise VariableReferenceError(
                f"List index must be an integer, got '{key}' in {reference}"
            ) from None
        except IndexError:
            raise VariableReferenceError(
                f"Index {key} out of range in {reference}"
            ) from None

    if value is None or isinstance(value, (str, int, float, bool)):
        raise VariableReferenceError(
            f"Cannot access '{key}' on {type(value).__name__} value in {reference}"
        )

    try:
        return getattr(value, key)
    except AttributeError:
        raise VariableReferenceError(
            f"Undefined attribute '{key}' in {reference}"
        ) from None


class PipelineContext:
    """Stack of scopes holding pipeline variables.

    The root scope holds the run's initial variables and can't be popped.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._scopes: list[dict[str, Any]] = [dict(initial or {})]

    @property
    def depth(self) -> int:
        """Number of scopes above the root (0 when only the root exists)."""
        return len(self._scopes) - 1

    def set(self, name: str, value: Any) -> None:
        """Bind *name* in the innermost scope. A leading ``$`` is ignored."""
        self._scopes[-1][name.lstrip(REFERENCE_SIGIL)] = value

    def get(self, name: str, default: Any = None) -> Any:
        name = name.lstrip(REFERENCE_SIGIL)
        for scope in reversed(self._scopes):
            if name in scope:
                return scope[name]
        return default

    def has(self, name: str) -> bool:
        return self.get(name, _MISSING) is not _MISSING

    def resolve(self, reference: Any) -> Any:
        """Resolve a ``$var.path`` reference; anything else is a literal.

        Raises:
            VariableReferenceError: If the root variable is unbound in every
                scope, or any later segment is missing or not indexable.
        """
        if not is_reference(reference):
            return reference

        root, *rest = parse_reference(reference)
        value = self.get(root, _MISSING)
        if value is _MISSING:
            raise VariableReferenceError(f"Undefined variable: ${root}")

        for key in rest:
            value = _resolve_segment(value, key, reference)
        return value

    def resolve_value(self, value: Any) -> Any:
        """Resolve references anywhere inside a config value."""
        if isinstance(value, str):
            return self.resolve(value)
        if isinstance(value, (list, tuple)):
            return [self.resolve_value(v) for v in value]
        if isinstance(value, Mapping):
            return {k: self.resolve_value(v) for k, v in value.items()}
        return value

    def push_scope(self, variables: Mapping[str, Any] | None = None) -> None:
        self._scopes.append(dict(variables or {}))

    def pop_scope(self) -> None:
        if len(self._scopes) == 1:
            raise RuntimeError("Cannot pop root scope")
        self._scopes.pop()

    @contextmanager
    def scope(self, variables: Mapping[str, Any] | None = None) -> Iterator[PipelineContext]:
        """Push a child scope for the duration of a ``with`` block."""
        self.push_scope(variables)
        try:
            yield self
        finally:
            self.pop_scope()

    def get_all(self, include_parent: bool = True) -> dict[str, Any]:
        """Flatten visible variables, inner scopes winning over outer ones."""
        if not include_parent:
            return dict(self._scopes[-1])
        merged: dict[str, Any] = {}
        for scope in self._scopes:
            merged.update(scope)
        return merged
