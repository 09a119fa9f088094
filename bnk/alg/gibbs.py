"""
Approximate inference by Gibbs sampling.

The chain runs over the relevant, unobserved variables of a query. Each sweep
visits them in topological order and resamples each one from its Markov-blanket
conditional: the product of the variable's own factor and the factors of its
relevant children, all produced under the current state. After the burn-in
sweeps, the joint state of the requested variables is tallied once per sweep.

There is no convergence diagnostic; the configured number of sweeps is the
stopping rule.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Set, Union

import numpy as np

from bnk.alg.cgtable import CGTable
from bnk.alg.config import GibbsConfig
from bnk.alg.inference import Query, make_query
from bnk.errors import ConfigurationError
from bnk.factor import Factor
from bnk.network import BNet
from bnk.variable import EnumVariable, Variable

logger = logging.getLogger(__name__)


def _normalise(weights: np.ndarray, eps: float) -> np.ndarray:
    s = float(np.sum(weights))
    if s <= eps or not np.isfinite(s):
        return np.ones_like(weights) / float(weights.size)
    return weights / s


class ApproxInference:
    """
    Gibbs sampling engine with the same contract as `VarElim`.

    Requested variables must be enumerable.
    """

    def __init__(self, config: Optional[GibbsConfig] = None) -> None:
        self.config = config or GibbsConfig()
        self.config.validate()
        self._network: Optional[BNet] = None

    def instantiate(self, network: BNet) -> None:
        network.validate()
        self._network = network

    def _require_network(self) -> BNet:
        if self._network is None:
            raise ConfigurationError("Engine has not been instantiated with a network")
        return self._network

    def make_query(self, *qvars: Union[Variable, str], evidence: Optional[Mapping[Any, Any]] = None) -> Query:
        query = make_query(self._require_network(), qvars, evidence=evidence, mpe=False)
        self._check_enumerable(query)
        return query

    @staticmethod
    def _check_enumerable(query: Query) -> None:
        for var in query.X:
            if not isinstance(var, EnumVariable):
                raise ConfigurationError(f"Sampled query variable {var!s} must be enumerable")

    def _conditional(
        self,
        var: EnumVariable,
        state: Dict[Variable, Any],
        children: List[Variable],
        relevant: Set[Variable],
    ) -> np.ndarray:
        network = self._require_network()
        others = {v: val for v, val in state.items() if v != var}
        weights = np.ones(var.size(), dtype=float)
        for v in [var] + children:
            ft: Factor = network.get_node(v).produce_factor(others, relevant)
            if ft.evars != (var,):
                raise RuntimeError(f"Factor of {v!s} is not over {var!s} alone")
            weights = weights * ft.get_values()
        return _normalise(weights, float(self.config.eps))

    def infer(self, query: Query) -> CGTable:
        """
        Estimate the joint distribution of the requested variables.

        Raises:
            ConfigurationError: If the engine has no network or a requested
                variable is not enumerable.
        """
        network = self._require_network()
        self._check_enumerable(query)
        rng = np.random.Generator(np.random.PCG64(int(self.config.seed)))
        relevant = set(query.relevant)

        state: Dict[Variable, Any] = {v: val for v, val in query.evidence.items() if v in relevant}
        free = [v for v in query.relevant if v not in state]
        for v in free:
            if isinstance(v, EnumVariable):
                state[v] = v.domain.get(int(rng.integers(v.size())))
            else:
                state[v] = 0.0
        children = {v: [c for c in network.get_children(v) if c in relevant] for v in free}

        counts = Factor(tuple(v for v in query.X if isinstance(v, EnumVariable)))
        iterations = int(self.config.iterations)
        burn_in = int(self.config.burn_in)
        for sweep in range(iterations):
            for v in free:
                if isinstance(v, EnumVariable):
                    probs = self._conditional(v, state, children[v], relevant)
                    state[v] = v.domain.get(int(rng.choice(v.size(), p=probs)))
                else:
                    others = {u: val for u, val in state.items() if u != v}
                    ft = network.get_node(v).produce_factor(others, relevant)
                    distrib = ft.get_distrib(v)
                    if distrib is None:
                        raise RuntimeError(f"Node {v!s} produced no distribution")
                    state[v] = distrib.sample(rng)
            if sweep >= burn_in:
                index = counts.get_index(tuple(state[v] for v in counts.evars))
                counts.get_values()[index] += 1.0
        logger.debug("gibbs sweeps=%d burn_in=%d samples=%d", iterations, burn_in, iterations - burn_in)
        return CGTable(counts, evidence=query.E, eps=float(self.config.eps))
