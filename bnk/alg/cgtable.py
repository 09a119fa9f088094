"""
Result table returned by the inference engines.

A `CGTable` wraps the (unnormalised) answer factor over the requested variables.
Distributions of single variables are obtained by projecting the factor and
normalising; continuous variables are answered with a mixture of the cell
distributions, weighted by the cell values. After an MPE query the table also
holds the backpointers needed to reconstruct the assignment of every maxed-out
variable.
"""

from __future__ import annotations

import warnings
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from bnk.distrib import EnumDistrib, MixtureDistrib
from bnk.errors import ConfigurationError, NumericInstabilityWarning
from bnk.factor import Factor, MaxTrace
from bnk.variable import Assignment, EnumVariable, Variable


class CGTable:
    """
    Query result over the requested variables.

    Attributes:
        factor: The answer factor (not normalised).
        traces: (variable, backpointers) pairs in elimination order; empty unless
            the table answers an MPE query.
        evidence: Assignments of the relevant evidence variables.
        eps: Total mass at or below which a projection is treated as empty.
    """

    def __init__(
        self,
        factor: Factor,
        traces: Sequence[Tuple[EnumVariable, MaxTrace]] = (),
        evidence: Sequence[Assignment] = (),
        eps: float = 1e-300,
    ) -> None:
        self.factor = factor
        self.traces: Tuple[Tuple[EnumVariable, MaxTrace], ...] = tuple(traces)
        self.evidence: Tuple[Assignment, ...] = tuple(evidence)
        self.eps = float(eps)

    def get_factor(self) -> Factor:
        return self.factor

    def get_variables(self) -> Tuple[Variable, ...]:
        return self.factor.evars + self.factor.nvars

    def get_sum(self) -> float:
        return self.factor.get_sum()

    def _resolve(self, var: Union[Variable, str]) -> Variable:
        name = var if isinstance(var, str) else var.name
        for v in self.get_variables():
            if v.name == name:
                return v
        raise ConfigurationError(f"Variable {var!s} is not in the result table")

    def _cells(self, given: Optional[Mapping[Any, Any]], exclude: Variable) -> np.ndarray:
        """
        Indices of the cells consistent with `given`.
        """
        key: List[Any] = [None] * len(self.factor.evars)
        for k, value in (given or {}).items():
            var = self._resolve(k)
            if var == exclude:
                raise ValueError(f"Variable {var!s} cannot be both queried and given")
            if not var.is_enumerable():
                raise ValueError(f"Only enumerable variables can be given (got {var!s})")
            key[self.factor.evars.index(var)] = value
        return self.factor.get_indices(key)

    def query(self, var: Union[Variable, str], given: Optional[Mapping[Any, Any]] = None) -> Any:
        """
        Distribution of one result variable, optionally restricted by assignments
        of other result variables.

        Returns:
            An `EnumDistrib` for an enumerable variable, a `MixtureDistrib` for a
            continuous one. If the selected cells carry no mass, a uniform
            distribution is returned and a `NumericInstabilityWarning` is emitted.

        Raises:
            ConfigurationError: If the variable is not in the table.
            ValueError: If `given` names the queried variable or an unknown value.
        """
        target = self._resolve(var)
        cells = self._cells(given, target)
        values = self.factor.get_values()[cells]
        total = float(np.sum(values))
        unstable = not np.isfinite(total) or total <= self.eps

        if isinstance(target, EnumVariable):
            pos = self.factor.evars.index(target)
            probs = np.zeros(target.size(), dtype=float)
            if not unstable:
                for cell, w in zip(cells, values):
                    probs[self.factor.get_key_indices(int(cell))[pos]] += float(w)
            if unstable:
                warnings.warn(
                    f"Result for {target!s} has total mass {total!r}; returning a uniform distribution",
                    NumericInstabilityWarning,
                    stacklevel=2,
                )
                probs = np.ones(target.size(), dtype=float)
            return EnumDistrib(target.domain, probs)

        components: List[Tuple[Any, float]] = []
        for cell, w in zip(cells, values):
            d = self.factor.get_distrib(target, int(cell) if self.factor.has_enum_vars() else None)
            if d is not None:
                components.append((d, 0.0 if unstable else float(w)))
        if not components:
            raise ValueError(f"Result table holds no distribution for {target!s}")
        if unstable:
            warnings.warn(
                f"Result for {target!s} has total mass {total!r}; mixing components uniformly",
                NumericInstabilityWarning,
                stacklevel=2,
            )
        return MixtureDistrib(tuple(components))

    def get_mpe(self) -> Tuple[Assignment, ...]:
        """
        Most probable joint assignment.

        The best cell of the answer (lowest index on ties) fixes the requested
        variables; the backpointers are then followed from the last eliminated
        variable to the first. Relevant evidence is appended.
        """
        values = self.factor.get_values()
        if not np.isfinite(self.get_sum()) or self.get_sum() <= self.eps:
            warnings.warn(
                "Result table has no mass; the most probable explanation is arbitrary",
                NumericInstabilityWarning,
                stacklevel=2,
            )
        best = int(np.argmax(values))
        state: Dict[Variable, Any] = dict(zip(self.factor.evars, self.factor.get_key(best)))
        eliminated: List[Variable] = []
        for var, trace in reversed(self.traces):
            for a in trace.assignments_for(state):
                state[a.variable] = a.value
            eliminated.append(var)
        out = [Assignment(v, state[v]) for v in self.factor.evars]
        out.extend(Assignment(v, state[v]) for v in reversed(eliminated))
        out.extend(self.evidence)
        return tuple(out)

    def display(self) -> str:
        return self.factor.display()

    def __str__(self) -> str:
        return "CGTable(" + ", ".join(str(v) for v in self.get_variables()) + ")"
