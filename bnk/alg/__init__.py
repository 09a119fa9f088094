"""
Inference engines over `bnk.network.BNet`.

`VarElim` answers belief and most-probable-explanation queries exactly;
`ApproxInference` estimates beliefs by Gibbs sampling behind the same interface.
Both return a `CGTable`.
"""

from bnk.alg.config import GibbsConfig, VarElimConfig
from bnk.alg.inference import Inference, Query, make_query
from bnk.alg.cgtable import CGTable
from bnk.alg.varelim import VarElim, plan_elimination
from bnk.alg.gibbs import ApproxInference

__all__ = [
    "GibbsConfig",
    "VarElimConfig",
    "Inference",
    "Query",
    "make_query",
    "CGTable",
    "VarElim",
    "plan_elimination",
    "ApproxInference",
]
