"""
Variables and finite domains.

Variables are identified by name. Enumerable variables own a `Domain`, an ordered,
duplicate-free sequence of symbols with constant-time value-to-index lookup.
Continuous variables carry identity only; their values are described by densities
attached to factor cells.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Sequence, Tuple


class Domain:
    """
    Ordered, duplicate-free sequence of symbols.

    Attributes:
        values: The symbols in index order.
    """

    def __init__(self, values: Sequence[Any]) -> None:
        values = tuple(values)
        if not values:
            raise ValueError("Domain must have at least one value")
        index: Dict[Any, int] = {}
        for i, v in enumerate(values):
            if v in index:
                raise ValueError(f"Domain has duplicate value {v!r}")
            index[v] = i
        self.values: Tuple[Any, ...] = values
        self._index = index

    def size(self) -> int:
        return len(self.values)

    def get(self, index: int) -> Any:
        index = int(index)
        if index < 0 or index >= len(self.values):
            raise ValueError(f"Domain index {index} out of range [0, {len(self.values)})")
        return self.values[index]

    def index_of(self, value: Any) -> int:
        try:
            return self._index[value]
        except KeyError:
            raise ValueError(f"Value {value!r} is not in domain {self.values!r}") from None

    def __contains__(self, value: object) -> bool:
        try:
            return value in self._index
        except TypeError:
            return False

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Domain):
            return NotImplemented
        return self.values == other.values

    def __hash__(self) -> int:
        return hash(self.values)

    def __repr__(self) -> str:
        return f"Domain({list(self.values)!r})"


def boolean_domain() -> Domain:
    return Domain((True, False))


def nucleic_domain() -> Domain:
    return Domain(("A", "C", "G", "T"))


def amino_acid_domain() -> Domain:
    return Domain(tuple("ACDEFGHIKLMNPQRSTVWY"))


@dataclass(frozen=True)
class Variable:
    """
    Named random variable. Equality and hashing use the concrete kind and the name.
    """

    name: str

    def is_enumerable(self) -> bool:
        return False

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class EnumVariable(Variable):
    """
    Variable with a finite domain.

    The domain may be given as a `Domain` or as any sequence of symbols.
    """

    domain: Domain = field(default_factory=boolean_domain, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.domain, Domain):
            object.__setattr__(self, "domain", Domain(self.domain))

    def is_enumerable(self) -> bool:
        return True

    def size(self) -> int:
        return self.domain.size()


@dataclass(frozen=True)
class ContinuousVariable(Variable):
    """
    Real-valued variable; only its identity is tracked by factors.
    """


@dataclass(frozen=True)
class Assignment:
    variable: Variable
    value: Any

    def __str__(self) -> str:
        return f"{self.variable.name}={self.value!r}"

