"""
Configuration objects for the inference engines.

Configuration dataclasses are provided as a stable, typed surface for the
user-selectable modes of `VarElim` and `ApproxInference`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional


Ordering = Literal["fewest_factors", "min_size", "given"]


@dataclass(frozen=True)
class VarElimConfig:
    """
    Configuration for exact variable elimination.

    `ordering` selects the elimination heuristic: "fewest_factors" eliminates the
    variable mentioned by the fewest factors first, "min_size" the variable whose
    intermediate product is smallest, "given" follows topological order.
    """

    ordering: Ordering = "fewest_factors"
    prune: bool = False
    complexity_budget: Optional[int] = None
    n_jobs: int = 1
    eps: float = 1e-300

    def validate(self) -> None:
        """
        Configuration validation is performed.
        """
        if str(self.ordering) not in {"fewest_factors", "min_size", "given"}:
            raise ValueError("ordering is not recognised")
        if self.complexity_budget is not None and int(self.complexity_budget) <= 0:
            raise ValueError("complexity_budget must be positive when provided")
        if int(self.n_jobs) <= 0:
            raise ValueError("n_jobs must be positive")
        if float(self.eps) < 0.0:
            raise ValueError("eps must be non-negative")


@dataclass(frozen=True)
class GibbsConfig:
    """
    Configuration for Gibbs sampling.

    `iterations` counts all sweeps, including the first `burn_in` sweeps whose
    states are discarded.
    """

    iterations: int = 500
    burn_in: int = 100
    seed: int = 123
    bitgen: Literal["PCG64"] = "PCG64"
    eps: float = 1e-300

    def validate(self) -> None:
        if int(self.iterations) <= 0:
            raise ValueError("iterations must be positive")
        if int(self.burn_in) < 0:
            raise ValueError("burn_in must be non-negative")
        if int(self.burn_in) >= int(self.iterations):
            raise ValueError("burn_in must be smaller than iterations")
        if str(self.bitgen) != "PCG64":
            raise ValueError("bitgen is not recognised")
        if float(self.eps) < 0.0:
            raise ValueError("eps must be non-negative")
