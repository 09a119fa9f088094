"""
Dense factor tables over enumerable variables.

A `Factor` maps every joint assignment of its enumerable variables ("evars") to a
non-negative weight. Cells are addressed by a mixed-radix index whose radices are
the domain sizes of the evars; the last listed evar is the least significant
digit (row-major, as `numpy.ravel_multi_index`). The same convention is used by
every operation in `bnk.factorize`.

A factor that also lists non-enumerable variables is a joint discrete-continuous
factor (JDF factor): each cell may carry a `JDF` with one distribution per
non-enumerable variable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from bnk.distrib import JDF
from bnk.variable import Assignment, EnumVariable, Variable


@dataclass(frozen=True)
class MaxTrace:
    """
    Backpointers recorded when variables are maxed out of a factor.

    For every cell of the resulting factor (indexed over `kept`), `argmax` holds
    the index, within the joint space of `removed`, of the combination that
    attained the maximum.
    """

    kept: Tuple[EnumVariable, ...]
    removed: Tuple[EnumVariable, ...]
    argmax: np.ndarray  # shape (prod(|kept|),), int

    def assignments_for(self, values: Mapping[Variable, Any]) -> Tuple[Assignment, ...]:
        """
        Return the maximising assignment of the removed variables, given values for
        every kept variable.
        """
        if self.kept:
            pos = [v.domain.index_of(values[v]) for v in self.kept]
            out_index = int(np.ravel_multi_index(tuple(pos), tuple(v.size() for v in self.kept)))
        else:
            out_index = 0
        combo = int(self.argmax[out_index])
        if not self.removed:
            return tuple()
        idx = np.unravel_index(combo, tuple(v.size() for v in self.removed))
        return tuple(
            Assignment(var, var.domain.get(int(i))) for var, i in zip(self.removed, idx)
        )


class Factor:
    """
    Tabular function over an ordered list of enumerable variables.

    Attributes:
        evars: Enumerable variables, in index order.
        nvars: Non-enumerable variables whose distributions live in the cells.
        shape: Domain sizes of the evars.
        size: Number of cells (1 when there are no evars).
        trace: Backpointers set by max-marginalisation, otherwise None.
    """

    def __init__(
        self,
        evars: Sequence[EnumVariable] = (),
        nvars: Sequence[Variable] = (),
        values: Optional[Any] = None,
    ) -> None:
        evars = tuple(evars)
        nvars = tuple(nvars)
        for v in evars:
            if not isinstance(v, EnumVariable):
                raise ValueError(f"Variable {v!s} is not enumerable")
        for v in nvars:
            if v.is_enumerable():
                raise ValueError(f"Variable {v!s} is enumerable and cannot be a continuous component")
        if len(set(evars)) != len(evars) or len(set(nvars)) != len(nvars):
            raise ValueError("Factor variables must be unique")

        self.evars: Tuple[EnumVariable, ...] = evars
        self.nvars: Tuple[Variable, ...] = nvars
        self.shape: Tuple[int, ...] = tuple(v.size() for v in evars)
        self.size: int = int(np.prod(self.shape, dtype=np.int64)) if evars else 1
        if values is None:
            self._values = np.zeros(self.size, dtype=float)
        else:
            arr = np.array(values, dtype=float).reshape(-1)
            if int(arr.shape[0]) != self.size:
                raise ValueError(f"values has wrong size (got {int(arr.shape[0])}, expected {self.size})")
            if np.any(arr < 0.0) or np.any(np.isnan(arr)):
                raise ValueError("Factor values must be non-negative")
            self._values = arr
        self._jdf: Optional[List[Optional[JDF]]] = [None] * self.size if nvars else None
        self.trace: Optional[MaxTrace] = None

    # Index arithmetic

    def _check_index(self, index: int) -> int:
        index = int(index)
        if index < 0 or index >= self.size:
            raise ValueError(f"Index {index} out of range [0, {self.size})")
        return index

    def get_key_indices(self, index: int) -> Tuple[int, ...]:
        index = self._check_index(index)
        if not self.evars:
            return tuple()
        return tuple(int(i) for i in np.unravel_index(index, self.shape))

    def get_key(self, index: int) -> Tuple[Any, ...]:
        """
        Decode a cell index into the values of the evars, in evar order.
        """
        return tuple(v.domain.get(i) for v, i in zip(self.evars, self.get_key_indices(index)))

    def get_index(self, key: Sequence[Any]) -> int:
        """
        Encode a full assignment of the evars (values, in evar order) into a cell index.
        """
        key = tuple(key)
        if len(key) != len(self.evars):
            raise ValueError(f"Key has {len(key)} values, factor has {len(self.evars)} variables")
        if not self.evars:
            return 0
        pos = tuple(v.domain.index_of(k) for v, k in zip(self.evars, key))
        return int(np.ravel_multi_index(pos, self.shape))

    def get_indices(self, key: Sequence[Any]) -> np.ndarray:
        """
        Return all cell indices consistent with a partial key (`None` matches any value).
        """
        key = tuple(key)
        if len(key) != len(self.evars):
            raise ValueError(f"Key has {len(key)} values, factor has {len(self.evars)} variables")
        if not self.evars:
            return np.zeros(1, dtype=int)
        grid = np.arange(self.size).reshape(self.shape)
        slicer = tuple(
            slice(None) if k is None else v.domain.index_of(k) for v, k in zip(self.evars, key)
        )
        return np.asarray(grid[slicer], dtype=int).reshape(-1)

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.size))

    # Values

    def get_value(self, index: Optional[int] = None) -> float:
        if index is None:
            if self.evars:
                raise ValueError("A cell index is required for a factor with enumerable variables")
            return float(self._values[0])
        return float(self._values[self._check_index(index)])

    def set_value(self, value: float, index: Optional[int] = None) -> None:
        value = float(value)
        if value < 0.0 or np.isnan(value):
            raise ValueError(f"Factor values must be non-negative (got {value!r})")
        if index is None:
            if self.evars:
                raise ValueError("A cell index is required for a factor with enumerable variables")
            self._values[0] = value
        else:
            self._values[self._check_index(index)] = value

    def get_values(self) -> np.ndarray:
        """
        Flat array of cell values (a view; index order as described in the module).
        """
        return self._values

    def as_array(self) -> np.ndarray:
        """
        Values reshaped with one axis per evar (a view).
        """
        return self._values.reshape(self.shape)

    def get_sum(self) -> float:
        return float(np.sum(self._values))

    def get_density(self) -> float:
        """
        Fraction of cells with a non-zero value.
        """
        return float(np.count_nonzero(self._values)) / float(self.size)

    # Variables

    def has_enum_vars(self) -> bool:
        return bool(self.evars)

    def has_variable(self, var: Variable) -> bool:
        return var in self.evars or var in self.nvars

    def get_enum_vars(self) -> Tuple[EnumVariable, ...]:
        return self.evars

    def get_non_enum_vars(self) -> Tuple[Variable, ...]:
        return self.nvars

    def is_jdf(self) -> bool:
        return self._jdf is not None

    # Continuous components

    def get_jdf(self, index: Optional[int] = None) -> Optional[JDF]:
        if self._jdf is None:
            return None
        if index is None:
            if self.evars:
                raise ValueError("A cell index is required for a factor with enumerable variables")
            return self._jdf[0]
        return self._jdf[self._check_index(index)]

    def set_jdf(self, jdf: Optional[JDF], index: Optional[int] = None) -> None:
        if self._jdf is None:
            raise ValueError("Factor has no non-enumerable variables")
        if jdf is not None:
            stray = [v.name for v in jdf.get_variables() if v not in self.nvars]
            if stray:
                raise ValueError(f"JDF has variables not in factor: {stray!r}")
        if index is None:
            if self.evars:
                raise ValueError("A cell index is required for a factor with enumerable variables")
            self._jdf[0] = jdf
        else:
            self._jdf[self._check_index(index)] = jdf

    def get_distrib(self, var: Variable, index: Optional[int] = None) -> Optional[Any]:
        jdf = self.get_jdf(index)
        if jdf is None:
            return None
        return jdf.get_distrib(var)

    def set_distrib(self, distrib: Any, var: Variable, index: Optional[int] = None) -> None:
        if var not in self.nvars:
            raise ValueError(f"Variable {var!s} is not a continuous component of this factor")
        jdf = self.get_jdf(index) or JDF()
        self.set_jdf(jdf.with_distrib(var, distrib), index)

    # Misc

    def copy(self) -> "Factor":
        f = Factor(self.evars, self.nvars, self._values.copy())
        if self._jdf is not None:
            f._jdf = list(self._jdf)
        f.trace = self.trace
        return f

    def to_dict(self) -> Dict[Tuple[Any, ...], float]:
        return {self.get_key(i): float(self._values[i]) for i in range(self.size)}

    def __str__(self) -> str:
        names = [v.name for v in self.evars] + [f"~{v.name}" for v in self.nvars]
        return "F(" + ", ".join(names) + ")"

    def __repr__(self) -> str:
        return f"Factor(evars={[v.name for v in self.evars]!r}, nvars={[v.name for v in self.nvars]!r})"

    def display(self) -> str:
        """
        Return a multi-line table of the factor (one row per cell).
        """
        header = [v.name for v in self.evars] + ["F"] + [v.name for v in self.nvars]
        lines = ["\t".join(header)]
        for i in range(self.size):
            row = [str(k) for k in self.get_key(i)]
            row.append(f"{self._values[i]:.6g}")
            if self._jdf is not None:
                jdf = self._jdf[i]
                for v in self.nvars:
                    d = None if jdf is None else jdf.get_distrib(v)
                    row.append("-" if d is None else str(d))
            lines.append("\t".join(row))
        return "\n".join(lines)
