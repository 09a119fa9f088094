"""Most-probable-explanation queries checked against brute-force enumeration."""

from __future__ import annotations

import itertools

import numpy as np
import pytest

from bnk.alg import VarElim, VarElimConfig
from bnk.network import BNet, CPT
from bnk.variable import EnumVariable

A = EnumVariable("A")
B = EnumVariable("B")
C = EnumVariable("C", ("lo", "mid", "hi"))
D = EnumVariable("D")

P_A = np.array([0.6, 0.4])
P_B = np.array([[0.3, 0.7], [0.8, 0.2]])
P_C = np.array([[0.85, 0.05, 0.1], [0.2, 0.15, 0.65]])
P_D = np.array([0.35, 0.65])


def _chain() -> BNet:
    # A -> B -> C
    return BNet([CPT(A, table=P_A), CPT(B, (A,), P_B), CPT(C, (B,), P_C)])


def _chain_and_root() -> BNet:
    # A -> B -> C, and D on its own
    return BNet([CPT(A, table=P_A), CPT(B, (A,), P_B), CPT(C, (B,), P_C), CPT(D, table=P_D)])


def _brute_force(evidence, with_root=False):
    best, best_p = None, -1.0
    for a, b, c, d in itertools.product(range(2), range(2), range(3), range(2 if with_root else 1)):
        state = {A: A.domain.get(a), B: B.domain.get(b), C: C.domain.get(c)}
        p = P_A[a] * P_B[a, b] * P_C[b, c]
        if with_root:
            state[D] = D.domain.get(d)
            p *= P_D[d]
        if any(state[v] != val for v, val in evidence.items()):
            continue
        if p > best_p:
            best, best_p = state, p
    return best


@pytest.mark.parametrize("ordering", ["fewest_factors", "min_size", "given"])
@pytest.mark.parametrize(
    "query, evidence",
    [
        ((C,), {}),
        ((A,), {C: "lo"}),
        ((A,), {C: "hi"}),
        ((B,), {A: False}),
        ((A, C), {}),
    ],
)
def test_mpe_matches_enumeration(ordering, query, evidence) -> None:
    ve = VarElim(VarElimConfig(ordering=ordering))
    ve.instantiate(_chain())
    table = ve.infer(ve.make_mpe(*query, evidence=evidence))
    got = {a.variable: a.value for a in table.get_mpe()}
    assert got == _brute_force(evidence)


def test_mpe_without_evidence_covers_all_nodes() -> None:
    ve = VarElim()
    ve.instantiate(_chain())
    table = ve.infer(ve.make_mpe(C))
    got = table.get_mpe()
    assert [a.variable for a in got][0] == C
    assert {a.variable: a.value for a in got} == _brute_force({})


@pytest.mark.parametrize("ordering", ["fewest_factors", "min_size", "given"])
def test_mpe_assigns_blocked_and_disconnected_variables(ordering) -> None:
    ve = VarElim(VarElimConfig(ordering=ordering))
    ve.instantiate(_chain_and_root())
    got = {a.variable: a.value for a in ve.infer(ve.make_mpe(A, evidence={B: True})).get_mpe()}
    assert set(got) == {A, B, C, D}
    assert got == _brute_force({B: True}, with_root=True)
    assert got[D] is False


def test_mpe_lists_evidence_last() -> None:
    ve = VarElim()
    ve.instantiate(_chain())
    got = ve.infer(ve.make_mpe(A, evidence={C: "hi"})).get_mpe()
    assert got[-1].variable == C
    assert got[-1].value == "hi"
