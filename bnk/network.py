"""
Minimal in-memory Bayesian network.

Nodes implement the `FactorProducer` protocol: given an explicit evidence map they
produce a fresh `Factor` over their variable and parents. Evidence is never stored
on the nodes, so one network can serve several queries at the same time.

Implemented nodes:

- `CPT`: enumerable child with enumerable parents, one categorical row per parent
  configuration.
- `GDT`: continuous child with enumerable parents, one Gaussian per parent
  configuration.
- `SubstNode`: enumerable child whose conditional table over a parent of the same
  domain is supplied by an oracle `oracle(time) -> matrix`; a root `SubstNode` uses
  a prior instead.
"""

from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Collection,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Set,
    Tuple,
    Union,
)

import numpy as np
from scipy.stats import norm

from bnk import factorize
from bnk.distrib import EnumDistrib, GaussianDistrib, JDF
from bnk.errors import ConfigurationError
from bnk.factor import Factor
from bnk.graph import ancestors, children_of, dconnected, descendants, markov_blanket, topological_order
from bnk.variable import ContinuousVariable, EnumVariable, Variable

if TYPE_CHECKING:
    from bnk.learning import CountTable


Evidence = Mapping[Variable, Any]


class FactorProducer(Protocol):
    variable: Variable
    parents: Tuple[EnumVariable, ...]

    def produce_factor(
        self, evidence: Evidence, relevant: Optional[Collection[Variable]] = None
    ) -> Factor:
        ...


def _slice_table(
    table: np.ndarray,
    variables: Sequence[EnumVariable],
    evidence: Evidence,
    skip: Collection[Variable] = (),
) -> Tuple[Tuple[EnumVariable, ...], np.ndarray]:
    """
    Fix the axes of a table whose variable carries evidence.

    Variables in `skip` are never sliced (their evidence is ignored). Returns the
    remaining free variables, in table order, and the sliced table.
    """
    index: List[Any] = []
    free: List[EnumVariable] = []
    for v in variables:
        if v in evidence and v not in skip:
            index.append(v.domain.index_of(evidence[v]))
        else:
            index.append(slice(None))
            free.append(v)
    return tuple(free), np.asarray(table[tuple(index)])


def _irrelevant(parents: Sequence[EnumVariable], relevant: Optional[Collection[Variable]]) -> Tuple[EnumVariable, ...]:
    if relevant is None:
        return tuple()
    return tuple(p for p in parents if p not in relevant)


def _check_parents(variable: Variable, parents: Sequence[Variable]) -> Tuple[EnumVariable, ...]:
    parents = tuple(parents)
    for p in parents:
        if not isinstance(p, EnumVariable):
            raise ValueError(f"Parent {p!s} of {variable!s} must be enumerable")
    if len(set(parents)) != len(parents):
        raise ValueError(f"Node {variable!s} has duplicate parents")
    if variable in parents:
        raise ValueError(f"Node {variable!s} cannot be its own parent")
    return parents


class CPT:
    """
    Conditional probability table P(variable | parents).

    The table is a numpy array with one axis per parent, in parent order, and a
    last axis over the child's domain. Each row along the last axis sums to one.
    """

    def __init__(
        self,
        variable: EnumVariable,
        parents: Sequence[EnumVariable] = (),
        table: Optional[Any] = None,
    ) -> None:
        if not isinstance(variable, EnumVariable):
            raise ValueError(f"CPT variable {variable!s} must be enumerable")
        self.variable: EnumVariable = variable
        self.parents: Tuple[EnumVariable, ...] = _check_parents(variable, parents)
        shape = tuple(p.size() for p in self.parents) + (variable.size(),)
        if table is None:
            arr = np.ones(shape, dtype=float) / float(variable.size())
        else:
            arr = np.array(table, dtype=float).reshape(shape)
            if np.any(arr < 0.0):
                raise ValueError(f"CPT for {variable!s} has negative entries")
            totals = np.sum(arr, axis=-1, keepdims=True)
            if np.any(totals <= 0.0):
                raise ValueError(f"CPT for {variable!s} has a row without mass")
            arr = arr / totals
        self.table: np.ndarray = arr

    def _row_index(self, key: Sequence[Any]) -> Tuple[int, ...]:
        key = tuple(key)
        if len(key) != len(self.parents):
            raise ValueError(f"Key has {len(key)} values, {self.variable!s} has {len(self.parents)} parents")
        return tuple(p.domain.index_of(k) for p, k in zip(self.parents, key))

    def get_distrib(self, key: Sequence[Any] = ()) -> EnumDistrib:
        return EnumDistrib(self.variable.domain, self.table[self._row_index(key)])

    def put(self, key: Sequence[Any], probs: Any) -> None:
        """
        Replace the distribution for one parent configuration.
        """
        self.table[self._row_index(key)] = EnumDistrib(self.variable.domain, np.asarray(probs, dtype=float)).probs

    def get(self, value: Any, key: Sequence[Any] = ()) -> float:
        return float(self.table[self._row_index(key) + (self.variable.domain.index_of(value),)])

    def produce_factor(
        self, evidence: Evidence, relevant: Optional[Collection[Variable]] = None
    ) -> Factor:
        """
        Factor over the unobserved parents and the child (if unobserved).

        Parents outside `relevant` are summed out of the result and their evidence,
        if any, is ignored.
        """
        irrelevant = _irrelevant(self.parents, relevant)
        evars, arr = _slice_table(self.table, self.parents + (self.variable,), evidence, irrelevant)
        ft = Factor(evars, (), arr.reshape(-1))
        if irrelevant:
            ft = factorize.get_margin(ft, irrelevant)
        return ft

    def maximize(self, counts: "CountTable", pseudo_count: float = 0.0) -> None:
        """
        Set every row to the normalised counts of its parent configuration.

        Rows whose counts (plus pseudo counts) have no mass are left unchanged.
        """
        pseudo_count = float(pseudo_count)
        if pseudo_count < 0.0:
            raise ValueError("pseudo_count must be non-negative")
        if tuple(counts.variables) != self.parents + (self.variable,):
            raise ValueError(f"Count table does not match the family of {self.variable!s}")
        c = counts.get_counts() + pseudo_count
        totals = np.sum(c, axis=-1, keepdims=True)
        ok = np.broadcast_to(totals > 0.0, c.shape)
        self.table = np.where(ok, c / np.where(totals > 0.0, totals, 1.0), self.table)

    def __str__(self) -> str:
        if not self.parents:
            return f"P({self.variable!s})"
        return f"P({self.variable!s}|{', '.join(str(p) for p in self.parents)})"


class GDT:
    """
    Gaussian density table: one Gaussian over a continuous variable per
    configuration of its enumerable parents.
    """

    def __init__(
        self,
        variable: ContinuousVariable,
        parents: Sequence[EnumVariable] = (),
        means: Optional[Any] = None,
        variances: Optional[Any] = None,
    ) -> None:
        if variable.is_enumerable():
            raise ValueError(f"GDT variable {variable!s} must be continuous")
        self.variable: ContinuousVariable = variable
        self.parents: Tuple[EnumVariable, ...] = _check_parents(variable, parents)
        shape = tuple(p.size() for p in self.parents)
        self.means: np.ndarray = (
            np.zeros(shape, dtype=float) if means is None else np.array(means, dtype=float).reshape(shape)
        )
        self.variances: np.ndarray = (
            np.ones(shape, dtype=float) if variances is None else np.array(variances, dtype=float).reshape(shape)
        )
        if np.any(self.variances <= 0.0):
            raise ValueError(f"GDT for {variable!s} has non-positive variances")

    def get_distrib(self, key: Sequence[Any] = ()) -> GaussianDistrib:
        key = tuple(key)
        if len(key) != len(self.parents):
            raise ValueError(f"Key has {len(key)} values, {self.variable!s} has {len(self.parents)} parents")
        idx = tuple(p.domain.index_of(k) for p, k in zip(self.parents, key))
        return GaussianDistrib(float(self.means[idx]), float(self.variances[idx]))

    def put(self, key: Sequence[Any], mean: float, variance: float) -> None:
        key = tuple(key)
        idx = tuple(p.domain.index_of(k) for p, k in zip(self.parents, key))
        if not float(variance) > 0.0:
            raise ValueError(f"variance must be positive (got {variance!r})")
        self.means[idx] = float(mean)
        self.variances[idx] = float(variance)

    def produce_factor(
        self, evidence: Evidence, relevant: Optional[Collection[Variable]] = None
    ) -> Factor:
        """
        Factor over the unobserved parents.

        With the variable observed, cells hold the density of the observation;
        otherwise cells have weight one and carry the Gaussian as a continuous
        component.
        """
        irrelevant = _irrelevant(self.parents, relevant)
        evars, means = _slice_table(self.means, self.parents, evidence, irrelevant)
        _, variances = _slice_table(self.variances, self.parents, evidence, irrelevant)
        means = means.reshape(-1)
        variances = variances.reshape(-1)
        if self.variable in evidence:
            x = float(evidence[self.variable])
            ft = Factor(evars, (), norm.pdf(x, loc=means, scale=np.sqrt(variances)))
        else:
            ft = Factor(evars, (self.variable,), np.ones(means.shape[0], dtype=float))
            for i in range(ft.size):
                ft.set_jdf(
                    JDF({self.variable: GaussianDistrib(float(means[i]), float(variances[i]))}),
                    i if ft.has_enum_vars() else None,
                )
        if irrelevant:
            ft = factorize.get_margin(ft, irrelevant)
        return ft

    def __str__(self) -> str:
        if not self.parents:
            return f"N({self.variable!s})"
        return f"N({self.variable!s}|{', '.join(str(p) for p in self.parents)})"


class SubstNode:
    """
    Substitution node: P(variable | parent, time) read from an oracle matrix whose
    rows are indexed by the parent's state and columns by the child's state.

    A node without a parent uses `prior` as its distribution.
    """

    def __init__(
        self,
        variable: EnumVariable,
        parent: Optional[EnumVariable] = None,
        time: float = 0.0,
        oracle: Optional[Callable[[float], Any]] = None,
        prior: Optional[Any] = None,
    ) -> None:
        if not isinstance(variable, EnumVariable):
            raise ValueError(f"SubstNode variable {variable!s} must be enumerable")
        self.variable: EnumVariable = variable
        self.parents: Tuple[EnumVariable, ...] = _check_parents(variable, () if parent is None else (parent,))
        if parent is not None:
            if parent.domain != variable.domain:
                raise ValueError(f"Parent {parent!s} must share the domain of {variable!s}")
            if oracle is None:
                raise ValueError("oracle is required for a SubstNode with a parent")
        elif prior is None:
            raise ValueError("prior is required for a SubstNode without a parent")
        if float(time) < 0.0:
            raise ValueError(f"time must be non-negative (got {time!r})")
        self.time = float(time)
        self.oracle = oracle
        self.prior: Optional[EnumDistrib] = (
            None if prior is None else EnumDistrib(variable.domain, np.asarray(prior, dtype=float))
        )

    def get_table(self) -> np.ndarray:
        """
        Conditional table with the parent axis first (or the prior for a root node).
        """
        n = self.variable.size()
        if not self.parents:
            assert self.prior is not None
            return self.prior.probs
        assert self.oracle is not None
        m = np.asarray(self.oracle(self.time), dtype=float)
        if m.shape != (n, n):
            raise ValueError(f"oracle returned a matrix of shape {m.shape!r}, expected {(n, n)!r}")
        if np.any(m < 0.0):
            raise ValueError("oracle returned negative probabilities")
        return m

    def produce_factor(
        self, evidence: Evidence, relevant: Optional[Collection[Variable]] = None
    ) -> Factor:
        irrelevant = _irrelevant(self.parents, relevant)
        evars, arr = _slice_table(self.get_table(), self.parents + (self.variable,), evidence, irrelevant)
        ft = Factor(evars, (), arr.reshape(-1))
        if irrelevant:
            ft = factorize.get_margin(ft, irrelevant)
        return ft

    def __str__(self) -> str:
        if not self.parents:
            return f"S({self.variable!s})"
        return f"S({self.variable!s}|{self.parents[0]!s}, t={self.time:g})"


class BNet:
    """
    A set of nodes keyed by variable, with graph queries over their parent links.

    Nodes may be added in any order; consistency (every parent present, no cycle)
    is checked by `validate`.
    """

    def __init__(self, nodes: Sequence[FactorProducer] = ()) -> None:
        self._nodes: Dict[Variable, FactorProducer] = {}
        self._by_name: Dict[str, Variable] = {}
        for n in nodes:
            self.add(n)

    def add(self, node: FactorProducer) -> None:
        var = node.variable
        if var.name in self._by_name:
            raise ConfigurationError(f"Network already has a node named {var.name!r}")
        self._nodes[var] = node
        self._by_name[var.name] = var

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, str):
            return item in self._by_name
        return item in self._nodes

    def get_variables(self) -> Tuple[Variable, ...]:
        return tuple(self._nodes.keys())

    def get_nodes(self) -> Tuple[FactorProducer, ...]:
        return tuple(self._nodes.values())

    def resolve(self, var: Union[Variable, str]) -> Variable:
        """
        Return the network's variable for a variable or a variable name.

        Raises:
            ConfigurationError: If the network has no such variable.
        """
        if isinstance(var, str):
            found = self._by_name.get(var)
        else:
            found = self._by_name.get(var.name)
            if found is not None and found != var:
                found = None
        if found is None:
            raise ConfigurationError(f"Variable {var!s} is not in the network")
        return found

    def get_node(self, var: Union[Variable, str]) -> FactorProducer:
        return self._nodes[self.resolve(var)]

    def _parent_map(self) -> Dict[Variable, Set[Variable]]:
        return {v: set(n.parents) for v, n in self._nodes.items()}

    def _children_map(self) -> Dict[Variable, List[Variable]]:
        return children_of(list(self._nodes.keys()), self._parent_map())

    def get_parents(self, var: Union[Variable, str]) -> Tuple[EnumVariable, ...]:
        return tuple(self.get_node(var).parents)

    def get_children(self, var: Union[Variable, str]) -> Tuple[Variable, ...]:
        return tuple(self._children_map()[self.resolve(var)])

    def get_ordered(self) -> List[Variable]:
        """
        Variables in topological order (parents first).

        Raises:
            ConfigurationError: If the parent links form a cycle.
        """
        try:
            return topological_order(list(self._nodes.keys()), self._parent_map())
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

    def get_ancestors(self, var: Union[Variable, str]) -> Set[Variable]:
        return ancestors([self.resolve(var)], self._parent_map())

    def get_descendants(self, var: Union[Variable, str]) -> Set[Variable]:
        return descendants([self.resolve(var)], self._children_map())

    def get_mb(self, var: Union[Variable, str]) -> Set[Variable]:
        """
        Markov blanket: parents, children and co-parents of the children.
        """
        return markov_blanket(self.resolve(var), self._parent_map(), self._children_map())

    def get_dconnected(self, query: Sequence[Variable], evidence: Collection[Variable] = ()) -> List[Variable]:
        """
        Variables d-connected to the query given the evidence, in topological order.
        """
        qs = [self.resolve(q) for q in query]
        es = [self.resolve(e) for e in evidence]
        reached = dconnected(qs, es, self._parent_map(), self._children_map())
        return [v for v in self.get_ordered() if v in reached]

    def validate(self) -> None:
        """
        Check that the network can be used for inference.

        Raises:
            ConfigurationError: If a parent is missing, the graph has a cycle, a
                node cannot produce factors, or a continuous variable has children.
        """
        for var, node in self._nodes.items():
            if not callable(getattr(node, "produce_factor", None)):
                raise ConfigurationError(f"Node {var!s} does not produce factors")
            for p in node.parents:
                if p not in self._nodes:
                    raise ConfigurationError(f"Parent {p!s} of {var!s} is not in the network")
        self.get_ordered()
        for var, kids in self._children_map().items():
            if kids and not var.is_enumerable():
                raise ConfigurationError(f"Continuous variable {var!s} cannot have children")
