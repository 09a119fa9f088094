"""
Query construction shared by the inference engines.

A query partitions the variables relevant to a request into three disjoint groups:

- X: the requested variables, in the order they were requested;
- E: relevant variables instantiated by the evidence (not requested);
- Z: the remaining relevant variables, to be summed (or maxed) out.

Relevance is d-connection: a variable is relevant if it lies on an active trail
from a requested variable given the evidence. For most-probable-explanation
queries every variable of the network is relevant, so the explanation assigns
all latent variables.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Protocol, Sequence, Tuple, Union

from bnk.errors import ConfigurationError
from bnk.variable import Assignment, Variable

if TYPE_CHECKING:
    from bnk.alg.cgtable import CGTable
    from bnk.network import BNet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Query:
    """
    Result of query construction; consumed by an engine's `infer`.

    Attributes:
        X: Requested variables.
        E: Evidence on relevant, non-requested variables.
        Z: Relevant variables that are neither requested nor instantiated.
        relevant: All relevant variables in topological order.
        evidence: Full evidence map (including evidence on requested variables).
        mpe: Whether latent variables are maxed out instead of summed out.
    """

    X: Tuple[Variable, ...]
    E: Tuple[Assignment, ...]
    Z: Tuple[Variable, ...]
    relevant: Tuple[Variable, ...]
    evidence: Mapping[Variable, Any] = field(default_factory=dict)
    mpe: bool = False

    def __post_init__(self) -> None:
        xs = set(self.X)
        es = {a.variable for a in self.E}
        zs = set(self.Z)
        if xs & es or xs & zs or es & zs:
            raise ValueError("Query variable groups must be disjoint")
        if xs | es | zs != set(self.relevant):
            raise ValueError("Query variable groups must cover the relevant variables")


class Inference(Protocol):
    def instantiate(self, network: "BNet") -> None:
        ...

    def make_query(self, *qvars: Union[Variable, str], evidence: Optional[Mapping[Any, Any]] = None) -> Query:
        ...

    def infer(self, query: Query) -> "CGTable":
        ...


def resolve_evidence(network: "BNet", evidence: Optional[Mapping[Any, Any]]) -> Dict[Variable, Any]:
    """
    Key an evidence map by the network's variables and check enumerable values.

    Raises:
        ConfigurationError: If an evidence variable is not in the network.
        ValueError: If a value is outside its variable's domain.
    """
    out: Dict[Variable, Any] = {}
    for k, value in (evidence or {}).items():
        var = network.resolve(k)
        if value is None:
            continue
        if var.is_enumerable():
            var.domain.index_of(value)  # type: ignore[attr-defined]
        else:
            value = float(value)
        out[var] = value
    return out


def make_query(
    network: "BNet",
    qvars: Sequence[Union[Variable, str]],
    evidence: Optional[Mapping[Any, Any]] = None,
    mpe: bool = False,
) -> Query:
    """
    Partition the relevant variables of a network for a request.

    Args:
        network: The network to query.
        qvars: Requested variables (or their names).
        evidence: Observed values keyed by variable or name.
        mpe: Build a most-probable-explanation query.

    Raises:
        ConfigurationError: If no variable is requested or a variable is unknown.
    """
    if not qvars:
        raise ConfigurationError("At least one query variable is required")
    requested = []
    for q in qvars:
        var = network.resolve(q)
        if var not in requested:
            requested.append(var)
    ev = resolve_evidence(network, evidence)
    for var in requested:
        if var in ev and not var.is_enumerable():
            raise ConfigurationError(f"Observed continuous variable {var!s} cannot be requested")

    if mpe:
        # The explanation assigns every latent variable of the network.
        relevant = network.get_ordered()
    else:
        relevant = network.get_dconnected(requested, list(ev.keys()))

    xs = set(requested)
    E = tuple(Assignment(v, ev[v]) for v in relevant if v in ev and v not in xs)
    Z = tuple(v for v in relevant if v not in ev and v not in xs)
    query = Query(
        X=tuple(requested),
        E=E,
        Z=Z,
        relevant=tuple(relevant),
        evidence=dict(ev),
        mpe=bool(mpe),
    )
    logger.debug(
        "query X=%s E=%s Z=%s mpe=%s",
        [str(v) for v in query.X],
        [str(a) for a in query.E],
        [str(v) for v in query.Z],
        query.mpe,
    )
    return query
