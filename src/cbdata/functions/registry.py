"""Registry of named transformation functions.

Transformations are registered with the :func:`register_transform`
decorator into a module-level list of built-ins.  An evaluator never reads
that list directly: it receives an immutable :class:`TransformRegistry`
(usually from :func:`default_registry`) at construction.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping

_BUILTINS: list[TransformSpec] = []


def normalize_name(name: str) -> str:
    """Lookup key for a function name: ``%`` -> ``pct``, case-folded."""
    return name.strip().replace("%", "pct").lower()


def literal_name(name: str) -> str:
    """Lookup key for the name exactly as written, case-folded."""
    return name.strip().lower()


@dataclass(frozen=True)
class TransformSpec:
    """A registered transformation and its accepted argument counts.

    ``max_args`` is ``None`` for variadic functions.
    """

    name: str
    func: Callable[..., Any]
    min_args: int
    max_args: int | None
    description: str = ""

    def accepts(self, n_args: int) -> bool:
        if n_args < self.min_args:
            return False
        return self.max_args is None or n_args <= self.max_args

    def arity_text(self) -> str:
        if self.max_args is None:
            return f"at least {self.min_args}"
        if self.max_args == self.min_args:
            return str(self.min_args)
        return f"{self.min_args}-{self.max_args}"


def make_spec(name: str, func: Callable[..., Any]) -> TransformSpec:
    """Validate *func* and derive its arity from the signature.

    Raises:
        TypeError: If *func* is not callable or takes keyword-only
            parameters without defaults.
        ValueError: If *name* is empty.
    """
    if not callable(func):
        raise TypeError(f"Transformation {name!r} is not callable")
    if not name or not name.strip():
        raise ValueError("Transformation name must be non-empty")

    min_args = 0
    max_args: int | None = 0
    for param in inspect.signature(func).parameters.values():
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            max_args = None if max_args is None else max_args + 1
            if param.default is param.empty:
                min_args += 1
        elif param.kind == param.VAR_POSITIONAL:
            max_args = None
        elif param.kind == param.KEYWORD_ONLY and param.default is param.empty:
            raise TypeError(
                f"Transformation {name!r} has required keyword-only parameter {param.name!r}"
            )
    doc = inspect.getdoc(func) or ""
    return TransformSpec(
        name=name,
        func=func,
        min_args=min_args,
        max_args=max_args,
        description=doc.splitlines()[0] if doc else "",
    )


def register_transform(name: str) -> Callable:
    """Decorator that registers a built-in transformation by name.

    Args:
        name: The lookup name for this function (case-insensitive).

    Returns:
        The original function, unmodified.
    """

    def decorator(fn: Callable) -> Callable:
        _BUILTINS.append(make_spec(name, fn))
        return fn

    return decorator


class TransformRegistry:
    """Immutable mapping from function name to :class:`TransformSpec`."""

    def __init__(self, specs: Iterable[TransformSpec] = ()) -> None:
        table: dict[str, TransformSpec] = {}
        for spec in specs:
            key = literal_name(spec.name)
            if key in table:
                raise ValueError(f"Duplicate transformation name: {spec.name!r}")
            table[key] = spec
        self._specs: Mapping[str, TransformSpec] = MappingProxyType(table)

    @classmethod
    def from_functions(cls, functions: Mapping[str, Callable[..., Any]]) -> TransformRegistry:
        """Build a registry from a ``{name: callable}`` mapping."""
        return cls(make_spec(name, fn) for name, fn in functions.items())

    def extended(self, functions: Mapping[str, Callable[..., Any]]) -> TransformRegistry:
        """A new registry with *functions* added to this one's."""
        extra = [make_spec(name, fn) for name, fn in functions.items()]
        return TransformRegistry([*self._specs.values(), *extra])

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.resolve(name) is not None

    def __len__(self) -> int:
        return len(self._specs)

    def names(self) -> list[str]:
        return sorted(spec.name for spec in self._specs.values())

    def specs(self) -> list[TransformSpec]:
        return [self._specs[k] for k in sorted(self._specs)]

    def resolve(self, name: str) -> TransformSpec | None:
        """Look up *name* after ``%`` normalization, or None."""
        return self._specs.get(normalize_name(name))

    def candidates(self, name: str) -> list[TransformSpec]:
        """Specs to try for *name*, in order.

        The normalized name comes first; the literal name follows when it is
        registered separately (legacy aliases such as ``difa%``).
        """
        found: list[TransformSpec] = []
        for key in (normalize_name(name), literal_name(name)):
            spec = self._specs.get(key)
            if spec is not None and spec not in found:
                found.append(spec)
        return found


def default_registry() -> TransformRegistry:
    """Registry holding every built-in transformation."""
    import cbdata.functions.transforms  # noqa: F401  (registers built-ins)

    return TransformRegistry(_BUILTINS)
