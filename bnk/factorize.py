"""
Stateless operations on factors.

All operations follow the index convention of `bnk.factor`: row-major mixed radix,
the last listed enumerable variable being least significant. Inputs are never
modified; every operation returns a new `Factor`.

The product of many factors is organised as a binary `FactorProductTree` built
greedily by pairing the two operands with the cheapest product first.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from bnk.distrib import JDF
from bnk.errors import DimensionError
from bnk.factor import Factor, MaxTrace
from bnk.variable import EnumVariable, Variable

logger = logging.getLogger(__name__)


def get_nonredundant(variables: Iterable[Variable]) -> Tuple[Variable, ...]:
    """
    Remove duplicates from a sequence of variables; the first occurrence wins.
    """
    seen = set()
    out: List[Variable] = []
    for v in variables:
        if v not in seen:
            seen.add(v)
            out.append(v)
    return tuple(out)


def get_crossref(
    xvars: Sequence[Variable], yvars: Sequence[Variable]
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Map positions of one variable list onto another.

    Returns:
        (xcross, ycross) where xcross[i] is the position of xvars[i] in yvars and
        ycross[j] the position of yvars[j] in xvars; -1 marks variables absent from
        the other list.

    Raises:
        DimensionError: If either list contains the same variable twice.
    """
    xvars = tuple(xvars)
    yvars = tuple(yvars)
    if len(set(xvars)) != len(xvars) or len(set(yvars)) != len(yvars):
        raise DimensionError("Variable lists must not contain duplicates")
    xpos = {v: i for i, v in enumerate(xvars)}
    ypos = {v: j for j, v in enumerate(yvars)}
    xcross = np.array([ypos.get(v, -1) for v in xvars], dtype=int)
    ycross = np.array([xpos.get(v, -1) for v in yvars], dtype=int)
    return xcross, ycross


def _union_evars(X: Factor, Y: Factor) -> Tuple[EnumVariable, ...]:
    xset = set(X.evars)
    return X.evars + tuple(v for v in Y.evars if v not in xset)


def _aligned(arr: np.ndarray, evars: Sequence[EnumVariable], union: Sequence[EnumVariable]) -> np.ndarray:
    """
    Permute and reshape an array over `evars` so that it broadcasts over `union`.
    """
    if not evars:
        return np.asarray(arr).reshape((1,) * len(union))
    pos = [union.index(v) for v in evars]
    order = np.argsort(pos)
    out = np.transpose(arr, axes=tuple(int(i) for i in order))
    shape = [1] * len(union)
    for i in order:
        shape[pos[int(i)]] = evars[int(i)].size()
    return out.reshape(tuple(shape))


def get_product(X: Factor, Y: Factor) -> Factor:
    """
    Pointwise product of two factors.

    The result is over X's evars followed by the evars of Y that X lacks. A factor
    without evars multiplies every cell by its scalar. Continuous components of the
    operands are concatenated per cell.

    Raises:
        DimensionError: If both operands carry the same non-enumerable variable.
    """
    shared_n = [v.name for v in X.nvars if v in Y.nvars]
    if shared_n:
        raise DimensionError(
            f"Cannot multiply factors sharing non-enumerable variable(s): {shared_n!r}"
        )
    union = _union_evars(X, Y)
    shape = tuple(v.size() for v in union)
    xa = _aligned(X.get_values().reshape(X.shape), X.evars, union)
    ya = _aligned(Y.get_values().reshape(Y.shape), Y.evars, union)
    values = np.broadcast_to(xa * ya, shape).reshape(-1)

    nvars = X.nvars + Y.nvars
    out = Factor(union, nvars, values)
    if nvars:
        xi = np.broadcast_to(
            _aligned(np.arange(X.size).reshape(X.shape), X.evars, union), shape
        ).reshape(-1)
        yi = np.broadcast_to(
            _aligned(np.arange(Y.size).reshape(Y.shape), Y.evars, union), shape
        ).reshape(-1)
        for i in range(out.size):
            xj = X.get_jdf(int(xi[i])) if X.is_jdf() and X.has_enum_vars() else X.get_jdf()
            yj = Y.get_jdf(int(yi[i])) if Y.is_jdf() and Y.has_enum_vars() else Y.get_jdf()
            jdf = JDF.combine(xj, yj)
            if jdf is not None:
                out.set_jdf(jdf, i if out.has_enum_vars() else None)
    return out


def get_overlap(X: Factor, Y: Factor) -> int:
    """
    Number of enumerable variables shared by two factors.
    """
    return len(set(X.evars) & set(Y.evars))


def _complexity(
    xvars: Sequence[EnumVariable],
    yvars: Sequence[EnumVariable],
    xdensity: float = 1.0,
    ydensity: float = 1.0,
    prune: bool = False,
) -> int:
    union = get_nonredundant(tuple(xvars) + tuple(yvars))
    size = 1
    for v in union:
        size *= v.size()
    if prune:
        return max(1, int(np.ceil(size * xdensity * ydensity)))
    return int(size)


def get_complexity(X: Factor, Y: Factor, prune: bool = False) -> int:
    """
    Number of cells in the product of two factors.

    With `prune`, the count is scaled by the fraction of non-zero cells in each
    operand (but is never below 1). Only meaningful for ranking candidate products.
    """
    return _complexity(X.evars, Y.evars, X.get_density(), Y.get_density(), prune)


def _split(F: Factor, variables: Iterable[Variable]) -> Tuple[
    Tuple[EnumVariable, ...], Tuple[EnumVariable, ...], Tuple[Variable, ...]
]:
    drop = set(variables)
    kept = tuple(v for v in F.evars if v not in drop)
    removed = tuple(v for v in F.evars if v in drop)
    dropped_n = tuple(v for v in F.nvars if v in drop)
    return kept, removed, dropped_n


def _strip(jdf: Optional[JDF], dropped: Sequence[Variable]) -> Optional[JDF]:
    if jdf is None or not dropped:
        return jdf
    out = jdf.drop(dropped)
    return out if len(out) else None


def _kept_index(F: Factor, kept: Sequence[EnumVariable]) -> np.ndarray:
    """
    For every cell of F, the index of the cell over `kept` it projects onto.
    """
    if not kept:
        return np.zeros(F.size, dtype=int)
    keys = np.unravel_index(np.arange(F.size), F.shape)
    pos = [F.evars.index(v) for v in kept]
    return np.ravel_multi_index(tuple(keys[p] for p in pos), tuple(v.size() for v in kept))


def get_margin(F: Factor, variables: Iterable[Variable]) -> Factor:
    """
    Sum the given variables out of a factor.

    Variables not in the factor are ignored. Non-enumerable variables are
    integrated out by dropping them from the cell distributions. Continuous
    components of cells that are summed together become mixtures weighted by the
    cell values.
    """
    kept, removed, dropped_n = _split(F, variables)
    nvars = tuple(v for v in F.nvars if v not in dropped_n)

    if not removed:
        out = Factor(kept, nvars, F.get_values().copy())
        if nvars:
            for i in range(F.size):
                jdf = _strip(F.get_jdf(i if F.has_enum_vars() else None), dropped_n)
                if jdf is not None:
                    out.set_jdf(jdf, i if out.has_enum_vars() else None)
        return out

    axes = tuple(F.evars.index(v) for v in removed)
    summed = np.sum(F.get_values().reshape(F.shape), axis=axes)
    out = Factor(kept, nvars, np.asarray(summed).reshape(-1))
    if nvars:
        target = _kept_index(F, kept)
        values = F.get_values()
        groups: List[List[Tuple[Optional[JDF], float]]] = [[] for _ in range(out.size)]
        for i in range(F.size):
            groups[int(target[i])].append((_strip(F.get_jdf(i), dropped_n), float(values[i])))
        for j, weighted in enumerate(groups):
            jdf = JDF.mix_all(weighted)
            if jdf is not None:
                out.set_jdf(jdf, j if out.has_enum_vars() else None)
    return out


def get_max_margin(F: Factor, variables: Iterable[Variable]) -> Factor:
    """
    Max the given variables out of a factor, recording backpointers.

    The result's `trace` holds, for every output cell, the index of the best
    combination of the removed variables (the lowest index wins ties). Continuous
    components are taken from the winning cell.
    """
    kept, removed, dropped_n = _split(F, variables)
    nvars = tuple(v for v in F.nvars if v not in dropped_n)
    kept_shape = tuple(v.size() for v in kept)
    removed_shape = tuple(v.size() for v in removed)
    kept_size = int(np.prod(kept_shape, dtype=np.int64)) if kept else 1
    removed_size = int(np.prod(removed_shape, dtype=np.int64)) if removed else 1

    perm = tuple(F.evars.index(v) for v in kept + removed)
    table = np.transpose(F.get_values().reshape(F.shape), axes=perm).reshape(kept_size, removed_size)
    argmax = np.argmax(table, axis=1).astype(int)
    best = table[np.arange(kept_size), argmax]

    out = Factor(kept, nvars, best)
    out.trace = MaxTrace(kept=kept, removed=removed, argmax=argmax)
    if nvars:
        cells = np.transpose(np.arange(F.size).reshape(F.shape), axes=perm).reshape(
            kept_size, removed_size
        )
        winners = cells[np.arange(kept_size), argmax]
        for j in range(kept_size):
            src = int(winners[j])
            jdf = _strip(F.get_jdf(src if F.has_enum_vars() else None), dropped_n)
            if jdf is not None:
                out.set_jdf(jdf, j if out.has_enum_vars() else None)
    return out


def get_normal(F: Factor) -> Factor:
    """
    Return a copy of the factor scaled so that its cells sum to one.

    Raises:
        ValueError: If the factor has no mass.
    """
    total = F.get_sum()
    if not np.isfinite(total) or total <= 0.0:
        raise ValueError(f"Cannot normalise a factor with total mass {total!r}")
    out = F.copy()
    out.get_values()[:] = out.get_values() / total
    return out


def get_permuted(F: Factor, evars: Sequence[EnumVariable]) -> Factor:
    """
    Return a copy of the factor with its enumerable variables in the given order.

    Raises:
        ValueError: If `evars` is not a permutation of the factor's evars.
    """
    evars = tuple(evars)
    if len(evars) != len(F.evars) or set(evars) != set(F.evars):
        raise ValueError(f"{[str(v) for v in evars]!r} is not a permutation of the factor's variables")
    perm = tuple(F.evars.index(v) for v in evars)
    out = Factor(evars, F.nvars, np.transpose(F.get_values().reshape(F.shape), axes=perm).reshape(-1))
    if F.is_jdf():
        if F.has_enum_vars():
            source = np.transpose(np.arange(F.size).reshape(F.shape), axes=perm).reshape(-1)
            for i in range(out.size):
                out.set_jdf(F.get_jdf(int(source[i])), i)
        else:
            out.set_jdf(F.get_jdf())
    out.trace = F.trace
    return out


@dataclass
class _Node:
    evars: Tuple[EnumVariable, ...]
    density: float
    factor: Optional[Factor] = None
    left: int = -1
    right: int = -1

    def is_leaf(self) -> bool:
        return self.left < 0


class FactorProductTree:
    """
    Binary evaluation plan for the product of several factors.

    Nodes live in an arena and refer to their children by index; leaves wrap an
    input factor. Each internal node's product is computed at most once.

    Attributes:
        root: Index of the root node.
    """

    def __init__(self) -> None:
        self._nodes: List[_Node] = []
        self._lock = threading.Lock()
        self.root: int = -1

    def add_leaf(self, factor: Factor) -> int:
        self._nodes.append(_Node(evars=factor.evars, density=factor.get_density(), factor=factor))
        return len(self._nodes) - 1

    def add_node(self, left: int, right: int) -> int:
        a = self._nodes[left]
        b = self._nodes[right]
        node = _Node(
            evars=get_nonredundant(a.evars + b.evars),  # type: ignore[arg-type]
            density=min(1.0, a.density * b.density),
            left=int(left),
            right=int(right),
        )
        self._nodes.append(node)
        return len(self._nodes) - 1

    def __len__(self) -> int:
        return len(self._nodes)

    def get_children(self, index: int) -> Tuple[int, int]:
        n = self._nodes[index]
        return n.left, n.right

    def get_evars(self, index: int) -> Tuple[EnumVariable, ...]:
        return self._nodes[index].evars

    def is_leaf(self, index: int) -> bool:
        return self._nodes[index].is_leaf()

    def is_computed(self, index: int) -> bool:
        return self._nodes[index].factor is not None

    def _compute(self, index: int) -> Factor:
        node = self._nodes[index]
        if node.factor is not None:
            return node.factor
        left = self._nodes[node.left].factor
        right = self._nodes[node.right].factor
        if left is None or right is None:
            raise RuntimeError(f"Children of node {index} are not evaluated")
        product = get_product(left, right)
        with self._lock:
            if node.factor is None:
                node.factor = product
            return node.factor

    def _post_order(self) -> List[int]:
        order: List[int] = []
        stack: List[Tuple[int, bool]] = [(self.root, False)]
        while stack:
            index, expanded = stack.pop()
            node = self._nodes[index]
            if node.is_leaf() or expanded:
                order.append(index)
                continue
            stack.append((index, True))
            stack.append((node.right, False))
            stack.append((node.left, False))
        return order

    def evaluate(self, n_jobs: int = 1) -> Factor:
        """
        Compute the product at the root.

        With `n_jobs > 1`, internal nodes whose children are both available are
        evaluated concurrently in a thread pool. A second call returns the
        memoised root.
        """
        if self.root < 0:
            raise ValueError("Product tree is empty")
        n_jobs = int(n_jobs)
        if n_jobs <= 0:
            raise ValueError("n_jobs must be positive")
        if self.is_computed(self.root):
            return self._nodes[self.root].factor  # type: ignore[return-value]

        order = [i for i in self._post_order() if not self.is_leaf(i)]
        if n_jobs == 1:
            for index in order:
                self._compute(index)
            return self._nodes[self.root].factor  # type: ignore[return-value]

        pending = set(order)
        with ThreadPoolExecutor(max_workers=n_jobs) as pool:
            while pending:
                ready = [
                    i
                    for i in order
                    if i in pending
                    and self.is_computed(self._nodes[i].left)
                    and self.is_computed(self._nodes[i].right)
                ]
                for _ in pool.map(self._compute, ready):
                    pass
                pending.difference_update(ready)
        return self._nodes[self.root].factor  # type: ignore[return-value]


def get_product_tree(factors: Sequence[Factor], prune: bool = False) -> FactorProductTree:
    """
    Build a product tree by repeatedly joining the cheapest pair.

    Candidate pairs are ranked by complexity, then by the number of shared
    variables (fewer first), then by their position in the pool. The joined node
    is appended to the end of the pool.

    Raises:
        ValueError: If no factors are given.
    """
    factors = list(factors)
    if not factors:
        raise ValueError("At least one factor is required")
    tree = FactorProductTree()
    pool = [tree.add_leaf(f) for f in factors]
    while len(pool) > 1:
        best: Optional[Tuple[int, int, int, int]] = None
        for a in range(len(pool)):
            na = tree._nodes[pool[a]]
            for b in range(a + 1, len(pool)):
                nb = tree._nodes[pool[b]]
                cost = _complexity(na.evars, nb.evars, na.density, nb.density, prune)
                overlap = len(set(na.evars) & set(nb.evars))
                if best is None or (cost, overlap) < (best[0], best[1]):
                    best = (cost, overlap, a, b)
        assert best is not None
        _cost, _overlap, a, b = best
        joined = tree.add_node(pool[a], pool[b])
        pool = [p for k, p in enumerate(pool) if k != a and k != b]
        pool.append(joined)
    tree.root = pool[0]
    logger.debug("product tree: %d factors, %d nodes, root over %d evars", len(factors), len(tree), len(tree.get_evars(tree.root)))
    return tree


def get_product_of(factors: Sequence[Factor], prune: bool = False, n_jobs: int = 1) -> Factor:
    """
    Multiply a sequence of factors through a greedily built product tree.
    """
    return get_product_tree(factors, prune=prune).evaluate(n_jobs=n_jobs)
