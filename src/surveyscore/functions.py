"""
Function registry for formula calls.

A function is a registry entry: name, arity and a pure rule over floats.
Neither the parser nor the evaluator branches on a specific function
name, so adding a function never touches either of them.

Default functions:
    floor(x)  greatest integer <= x
    ceil(x)   least integer >= x
    round(x)  nearest integer, ties away from zero (round(-0.5) == -1)
    sin(x)    sine of x in radians
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Mapping


@dataclass(frozen=True)
class FunctionSpec:
    """
    One callable function.

    Properties:
        name: Identifier used in formulas (case-sensitive)
        arity: Exact number of arguments
        rule: Pure function of ``arity`` floats returning a float
    """

    name: str
    arity: int
    rule: Callable[..., float]


def round_half_away_from_zero(x: float) -> float:
    magnitude = math.floor(abs(x))
    # abs(x) - floor(abs(x)) is exact for doubles
    if abs(x) - magnitude >= 0.5:
        magnitude += 1
    if magnitude == 0:
        return 0.0
    return math.copysign(float(magnitude), x)


class FunctionRegistry(Mapping[str, FunctionSpec]):
    """
    Immutable mapping from function name to FunctionSpec.

    Usage::

        registry = DEFAULT_REGISTRY.extend(
            FunctionSpec("max", 2, lambda a, b: max(a, b)),
        )
        expr = parse_formula("max(x, 0)", registry=registry)

    ``extend`` returns a new registry; existing registries are never
    mutated, so one may be shared across threads.
    """

    def __init__(self, specs: Iterable[FunctionSpec] = ()):
        entries = {}
        for spec in specs:
            if spec.arity < 0:
                raise ValueError(f"Function {spec.name!r} has negative arity")
            entries[spec.name] = spec
        self._entries = entries

    def __getitem__(self, name: str) -> FunctionSpec:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"FunctionRegistry({sorted(self._entries)})"

    def extend(self, *specs: FunctionSpec) -> FunctionRegistry:
        """Return a new registry with ``specs`` added (or replacing same-named entries)."""
        return FunctionRegistry([*self._entries.values(), *specs])


DEFAULT_REGISTRY = FunctionRegistry([
    FunctionSpec("floor", 1, lambda x: float(math.floor(x))),
    FunctionSpec("ceil", 1, lambda x: float(math.ceil(x))),
    FunctionSpec("round", 1, round_half_away_from_zero),
    FunctionSpec("sin", 1, math.sin),
])


def resolve_registry(functions: Mapping[str, FunctionSpec] | None) -> Mapping[str, FunctionSpec]:
    return DEFAULT_REGISTRY if functions is None else functions


__all__ = [
    "DEFAULT_REGISTRY",
    "FunctionRegistry",
    "FunctionSpec",
    "round_half_away_from_zero",
]
