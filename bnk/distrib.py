"""
Probability distributions attached to query results and factor cells.

`EnumDistrib` is the normalised distribution of an enumerable variable.
`GaussianDistrib` and `MixtureDistrib` describe continuous variables; a `JDF`
(joint density function) maps each non-enumerable variable of a factor cell to
its distribution, assuming independence between those variables given the cell.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from scipy.stats import norm

from bnk.errors import DimensionError
from bnk.variable import Domain, Variable


@dataclass(frozen=True, eq=False)
class EnumDistrib:
    """
    Distribution over a finite domain; probabilities are normalised on construction.
    """

    domain: Domain
    probs: np.ndarray  # shape (domain.size(),)

    def __post_init__(self) -> None:
        p = np.asarray(self.probs, dtype=float)
        if p.ndim != 1:
            raise ValueError("probs must be 1D")
        if int(p.shape[0]) != self.domain.size():
            raise ValueError(
                f"probs has wrong length (got {int(p.shape[0])}, domain has {self.domain.size()})"
            )
        if np.any(p < 0.0):
            raise ValueError("probs must be non-negative")
        s = float(np.sum(p))
        if not np.isfinite(s) or s <= 0.0:
            raise ValueError("probs must have positive finite mass")
        object.__setattr__(self, "probs", p / s)

    def get(self, value: Any) -> float:
        return float(self.probs[self.domain.index_of(value)])

    def __getitem__(self, value: Any) -> float:
        return self.get(value)

    def get_max(self) -> Any:
        """
        Most probable value; the lowest domain index wins ties.
        """
        return self.domain.get(int(np.argmax(self.probs)))

    def sample(self, rng: np.random.Generator) -> Any:
        return self.domain.get(int(rng.choice(self.domain.size(), p=self.probs)))

    def to_dict(self) -> Dict[Any, float]:
        return {v: float(p) for v, p in zip(self.domain.values, self.probs)}

    def __str__(self) -> str:
        return "<" + ", ".join(f"{v}={p:.4g}" for v, p in zip(self.domain.values, self.probs)) + ">"


@dataclass(frozen=True)
class GaussianDistrib:
    mean: float
    variance: float

    def __post_init__(self) -> None:
        if not float(self.variance) > 0.0:
            raise ValueError(f"variance must be positive (got {self.variance!r})")
        object.__setattr__(self, "mean", float(self.mean))
        object.__setattr__(self, "variance", float(self.variance))

    def get(self, value: Any) -> float:
        return float(norm.pdf(float(value), loc=self.mean, scale=np.sqrt(self.variance)))

    def log_density(self, value: Any) -> float:
        return float(norm.logpdf(float(value), loc=self.mean, scale=np.sqrt(self.variance)))

    def get_mean(self) -> float:
        return self.mean

    def get_variance(self) -> float:
        return self.variance

    def sample(self, rng: np.random.Generator) -> float:
        return float(rng.normal(self.mean, np.sqrt(self.variance)))

    def __str__(self) -> str:
        return f"N({self.mean:.4g}, {self.variance:.4g})"


@dataclass(frozen=True)
class MixtureDistrib:
    """
    Weighted mixture of distributions. Weights need not sum to one; they are
    normalised whenever a density, a moment or a sample is requested.
    """

    components: Tuple[Tuple[Any, float], ...]

    def __post_init__(self) -> None:
        flat: List[Tuple[Any, float]] = []
        for d, w in self.components:
            w = float(w)
            if w < 0.0:
                raise ValueError("mixture weights must be non-negative")
            if isinstance(d, MixtureDistrib):
                # Nested mixtures are flattened so that weights compose.
                for dd, ww in d.get_normalized().components:
                    flat.append((dd, w * ww))
            else:
                flat.append((d, w))
        if not flat:
            raise ValueError("mixture must have at least one component")
        object.__setattr__(self, "components", tuple(flat))

    def _weights(self) -> np.ndarray:
        w = np.array([w for _d, w in self.components], dtype=float)
        s = float(np.sum(w))
        if s <= 0.0:
            return np.ones_like(w) / float(w.size)
        return w / s

    def get_normalized(self) -> "MixtureDistrib":
        w = self._weights()
        return MixtureDistrib(tuple((d, float(wi)) for (d, _), wi in zip(self.components, w)))

    def get(self, value: Any) -> float:
        w = self._weights()
        return float(sum(wi * d.get(value) for (d, _), wi in zip(self.components, w)))

    def get_mean(self) -> float:
        w = self._weights()
        return float(sum(wi * d.get_mean() for (d, _), wi in zip(self.components, w)))

    def get_variance(self) -> float:
        # Law of total variance over the components.
        w = self._weights()
        mu = self.get_mean()
        return float(
            sum(
                wi * (d.get_variance() + (d.get_mean() - mu) ** 2)
                for (d, _), wi in zip(self.components, w)
            )
        )

    def sample(self, rng: np.random.Generator) -> Any:
        w = self._weights()
        k = int(rng.choice(len(self.components), p=w))
        return self.components[k][0].sample(rng)

    def __len__(self) -> int:
        return len(self.components)

    def __str__(self) -> str:
        w = self._weights()
        return "{" + ", ".join(f"{d}*{wi:.3g}" for (d, _), wi in zip(self.components, w)) + "}"


class JDF:
    """
    Joint density over the non-enumerable variables of a factor cell.

    Instances are immutable; `with_distrib`, `combine`, `mix` and `drop` return
    new objects.
    """

    def __init__(self, distribs: Optional[Mapping[Variable, Any]] = None) -> None:
        self._distribs: Dict[Variable, Any] = dict(distribs or {})

    def get_variables(self) -> Tuple[Variable, ...]:
        return tuple(self._distribs.keys())

    def get_distrib(self, var: Variable) -> Optional[Any]:
        return self._distribs.get(var)

    def with_distrib(self, var: Variable, distrib: Any) -> "JDF":
        d = dict(self._distribs)
        d[var] = distrib
        return JDF(d)

    def drop(self, variables: Iterable[Variable]) -> "JDF":
        gone = set(variables)
        return JDF({v: d for v, d in self._distribs.items() if v not in gone})

    def __len__(self) -> int:
        return len(self._distribs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, JDF):
            return NotImplemented
        return self._distribs == other._distribs

    def __repr__(self) -> str:
        return "JDF(" + ", ".join(f"{v.name}: {d}" for v, d in self._distribs.items()) + ")"

    @staticmethod
    def combine(a: Optional["JDF"], b: Optional["JDF"]) -> Optional["JDF"]:
        """
        Concatenate two JDFs over disjoint variables.

        Raises:
            DimensionError: If both carry a distribution for the same variable.
        """
        if a is None:
            return b
        if b is None:
            return a
        shared = [v.name for v in a._distribs if v in b._distribs]
        if shared:
            raise DimensionError(
                f"Cannot combine continuous components over the same variable(s): {shared!r}"
            )
        d = dict(a._distribs)
        d.update(b._distribs)
        return JDF(d)

    @staticmethod
    def mix(a: "JDF", weight_a: float, b: "JDF", weight_b: float) -> "JDF":
        return JDF.mix_all([(a, weight_a), (b, weight_b)])

    @staticmethod
    def mix_all(weighted: Sequence[Tuple[Optional["JDF"], float]]) -> Optional["JDF"]:
        """
        Mix weighted JDFs variable by variable into mixture distributions.

        Entries that are `None` or carry zero weight are skipped. A single surviving
        entry is returned unchanged.
        """
        items = [(j, float(w)) for j, w in weighted if j is not None and float(w) > 0.0]
        if not items:
            return None
        if len(items) == 1:
            return items[0][0]
        order: List[Variable] = []
        parts: Dict[Variable, List[Tuple[Any, float]]] = {}
        for j, w in items:
            for var, d in j._distribs.items():
                if var not in parts:
                    order.append(var)
                    parts[var] = []
                parts[var].append((d, w))
        return JDF({var: MixtureDistrib(tuple(parts[var])) for var in order})
