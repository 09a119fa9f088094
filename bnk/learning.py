"""
Sufficient statistics for conditional probability tables.

A `CountTable` accumulates (possibly fractional) counts over a node's family: its
parents followed by the node itself. `expected_counts` fills one from partially
observed rows, spreading each row's weight over the posterior of the unobserved
family members, and `CPT.maximize` turns the counts into new conditionals.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence, Union

import numpy as np

from bnk.alg.inference import Inference
from bnk.network import CPT, SubstNode
from bnk.variable import EnumVariable, Variable


class CountTable:
    """
    Dense table of counts over enumerable variables.

    Attributes:
        variables: Table axes, in order.
    """

    def __init__(self, variables: Sequence[EnumVariable]) -> None:
        variables = tuple(variables)
        if not variables:
            raise ValueError("CountTable needs at least one variable")
        for v in variables:
            if not isinstance(v, EnumVariable):
                raise ValueError(f"Variable {v!s} is not enumerable")
        if len(set(variables)) != len(variables):
            raise ValueError("CountTable variables must be unique")
        self.variables = variables
        self._counts = np.zeros(tuple(v.size() for v in variables), dtype=float)

    def count(self, key: Sequence[Any], weight: float = 1.0) -> None:
        key = tuple(key)
        if len(key) != len(self.variables):
            raise ValueError(f"Key has {len(key)} values, table has {len(self.variables)} variables")
        weight = float(weight)
        if weight < 0.0:
            raise ValueError(f"weight must be non-negative (got {weight!r})")
        idx = tuple(v.domain.index_of(k) for v, k in zip(self.variables, key))
        self._counts[idx] += weight

    def get(self, key: Sequence[Any]) -> float:
        idx = tuple(v.domain.index_of(k) for v, k in zip(self.variables, tuple(key)))
        return float(self._counts[idx])

    def get_counts(self) -> np.ndarray:
        return self._counts.copy()

    def get_total(self) -> float:
        return float(np.sum(self._counts))

    def clear(self) -> None:
        self._counts[...] = 0.0


def expected_counts(
    engine: Inference,
    node: Union[CPT, SubstNode],
    rows: Sequence[Mapping[Variable, Any]],
) -> CountTable:
    """
    Expected family counts of a node over a set of observations.

    Fully observed families add one count. Otherwise the engine is queried for the
    joint posterior of the unobserved family members given the row, and the row's
    unit weight is spread over the matching cells.

    Args:
        engine: An instantiated inference engine over the node's network.
        node: The node whose family is counted.
        rows: Observations; a missing key or a `None` value means unobserved.
    """
    family = tuple(node.parents) + (node.variable,)
    table = CountTable(family)
    for row in rows:
        evidence = {v: val for v, val in row.items() if val is not None}
        missing = [v for v in family if v not in evidence]
        if not missing:
            table.count(tuple(evidence[v] for v in family))
            continue
        result = engine.infer(engine.make_query(*missing, evidence=evidence))
        ft = result.get_factor()
        total = ft.get_sum()
        if total <= 0.0:
            continue
        for index in ft:
            w = ft.get_value(index)
            if w <= 0.0:
                continue
            assigned = dict(zip(ft.evars, ft.get_key(index)))
            table.count(tuple(evidence[v] if v in evidence else assigned[v] for v in family), w / total)
    return table
