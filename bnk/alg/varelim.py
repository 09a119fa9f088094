"""
Exact inference by variable elimination.

Every relevant node produces its factor under the query's evidence. Latent
enumerable variables are then eliminated one at a time: the factors mentioning the
variable are multiplied through a product tree and the variable is summed out
(belief queries) or maxed out with backpointers (MPE queries). The remaining
factors are multiplied into the answer over the requested variables.

The elimination order is planned symbolically, from the variable sets of the
factors only, before any table is multiplied.
"""

from __future__ import annotations

import logging
from typing import Any, FrozenSet, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from bnk import factorize
from bnk.alg.cgtable import CGTable
from bnk.alg.config import VarElimConfig
from bnk.alg.inference import Query, make_query, resolve_evidence
from bnk.errors import ConfigurationError
from bnk.factor import Factor, MaxTrace
from bnk.network import BNet
from bnk.variable import EnumVariable, Variable

logger = logging.getLogger(__name__)


def _size(variables: FrozenSet[EnumVariable]) -> int:
    size = 1
    for v in variables:
        size *= v.size()
    return size


def plan_elimination(
    scopes: Sequence[FrozenSet[EnumVariable]],
    candidates: Sequence[EnumVariable],
    ordering: str = "fewest_factors",
) -> Tuple[List[EnumVariable], int]:
    """
    Choose an elimination order from factor scopes alone.

    Args:
        scopes: Enumerable variables of each factor.
        candidates: Variables to eliminate, in topological order (used to break ties).
        ordering: "fewest_factors", "min_size" or "given".

    Returns:
        (order, cost) where cost is the summed size of the products formed.
    """
    pool = [frozenset(s) for s in scopes]
    remaining = [v for v in candidates if any(v in s for s in pool)]
    rank = {v: i for i, v in enumerate(candidates)}
    order: List[EnumVariable] = []
    cost = 0
    while remaining:
        if ordering == "given":
            var = remaining[0]
        else:
            def score(v: EnumVariable) -> Tuple[int, int]:
                touching = [s for s in pool if v in s]
                if ordering == "min_size":
                    return (_size(frozenset().union(*touching)), rank[v])
                return (len(touching), rank[v])

            var = min(remaining, key=score)
        touching = [s for s in pool if var in s]
        joined: FrozenSet[EnumVariable] = frozenset().union(*touching)
        cost += _size(joined)
        pool = [s for s in pool if var not in s]
        pool.append(joined - {var})
        order.append(var)
        remaining.remove(var)
    return order, cost


class VarElim:
    """
    Variable elimination engine.

    Usage follows `instantiate`, then `make_query` (or `make_mpe`), then `infer`.
    The engine keeps no evidence between calls; each query carries its own.
    """

    def __init__(self, config: Optional[VarElimConfig] = None) -> None:
        self.config = config or VarElimConfig()
        self.config.validate()
        self._network: Optional[BNet] = None

    def instantiate(self, network: BNet) -> None:
        """
        Attach a network.

        Raises:
            ConfigurationError: If the network is malformed.
        """
        network.validate()
        self._network = network

    def _require_network(self) -> BNet:
        if self._network is None:
            raise ConfigurationError("Engine has not been instantiated with a network")
        return self._network

    def make_query(self, *qvars: Union[Variable, str], evidence: Optional[Mapping[Any, Any]] = None) -> Query:
        return make_query(self._require_network(), qvars, evidence=evidence, mpe=False)

    def make_mpe(self, *qvars: Union[Variable, str], evidence: Optional[Mapping[Any, Any]] = None) -> Query:
        return make_query(self._require_network(), qvars, evidence=evidence, mpe=True)

    def _produce(self, query: Query) -> List[Factor]:
        network = self._require_network()
        relevant = set(query.relevant)
        requested = set(query.X)
        # Evidence on requested variables is applied by clamping, not slicing.
        sliced = {v: val for v, val in query.evidence.items() if v not in requested}
        factors = [network.get_node(v).produce_factor(sliced, relevant) for v in query.relevant]
        for var in query.X:
            if var in query.evidence:
                assert isinstance(var, EnumVariable)
                clamp = Factor((var,))
                clamp.set_value(1.0, clamp.get_index((query.evidence[var],)))
                factors.append(clamp)
        return factors

    def _eliminate(
        self, factors: List[Factor], candidates: Sequence[EnumVariable], mpe: bool
    ) -> Tuple[List[Factor], List[Tuple[EnumVariable, MaxTrace]]]:
        order, cost = plan_elimination([frozenset(f.evars) for f in factors], candidates, self.config.ordering)
        logger.debug("elimination order %s (cost %d)", [str(v) for v in order], cost)
        budget = self.config.complexity_budget
        if budget is not None and cost > int(budget):
            raise ConfigurationError(
                f"Elimination cost {cost} exceeds the complexity budget {int(budget)}"
            )
        traces: List[Tuple[EnumVariable, MaxTrace]] = []
        for var in order:
            touching = [f for f in factors if var in f.evars]
            factors = [f for f in factors if var not in f.evars]
            product = factorize.get_product_of(touching, prune=self.config.prune, n_jobs=self.config.n_jobs)
            if mpe:
                reduced = factorize.get_max_margin(product, [var])
                assert reduced.trace is not None
                traces.append((var, reduced.trace))
            else:
                reduced = factorize.get_margin(product, [var])
            factors.append(reduced)
        return factors, traces

    def infer(self, query: Query) -> CGTable:
        """
        Answer a query built by `make_query` or `make_mpe`.

        Raises:
            ConfigurationError: If the engine has no network or the planned
                elimination exceeds the complexity budget.
        """
        factors = self._produce(query)
        latent = [v for v in query.Z if isinstance(v, EnumVariable)]
        factors, traces = self._eliminate(factors, latent, query.mpe)

        answer = factorize.get_product_of(factors, prune=self.config.prune, n_jobs=self.config.n_jobs)
        continuous = [v for v in query.Z if not v.is_enumerable()]
        if continuous:
            answer = factorize.get_margin(answer, continuous)
        requested = [v for v in query.X if isinstance(v, EnumVariable)]
        answer = factorize.get_permuted(answer, requested)
        return CGTable(answer, traces=traces, evidence=query.E, eps=self.config.eps)

    def likelihood(self, evidence: Optional[Mapping[Any, Any]] = None) -> float:
        """
        Probability (or density, for observed continuous variables) of the evidence,
        every other variable of the network summed out.
        """
        network = self._require_network()
        ev = resolve_evidence(network, evidence)
        ordered = network.get_ordered()
        factors = [network.get_node(v).produce_factor(ev) for v in ordered]
        latent = [v for v in ordered if isinstance(v, EnumVariable) and v not in ev]
        factors, _ = self._eliminate(factors, latent, mpe=False)
        result = factorize.get_product_of(factors, prune=self.config.prune, n_jobs=self.config.n_jobs)
        return result.get_sum()

    def log_likelihood(self, evidence: Optional[Mapping[Any, Any]] = None) -> float:
        p = self.likelihood(evidence)
        if p <= 0.0:
            return float("-inf")
        return float(np.log(p))
