"""Unit tests for query construction."""

from __future__ import annotations

import pytest

from bnk.alg.inference import make_query
from bnk.errors import ConfigurationError
from bnk.network import BNet, CPT, GDT
from bnk.variable import ContinuousVariable, EnumVariable

A = EnumVariable("A")
B = EnumVariable("B")
C = EnumVariable("C")
D = EnumVariable("D")
X = ContinuousVariable("X")


@pytest.fixture()
def network() -> BNet:
    # A -> C <- B, C -> D, C -> X
    return BNet(
        [
            CPT(D, (C,), [[0.7, 0.3], [0.1, 0.9]]),
            CPT(C, (A, B), [[[0.9, 0.1], [0.5, 0.5]], [[0.4, 0.6], [0.2, 0.8]]]),
            CPT(A, table=[0.6, 0.4]),
            CPT(B, table=[0.3, 0.7]),
            GDT(X, (C,), means=[0.0, 1.0]),
        ]
    )


def _assert_partition(q) -> None:
    xs = set(q.X)
    es = {a.variable for a in q.E}
    zs = set(q.Z)
    assert not (xs & es or xs & zs or es & zs)
    assert xs | es | zs == set(q.relevant)


def test_unobserved_collider_blocks_other_parent(network: BNet) -> None:
    q = make_query(network, [A])
    _assert_partition(q)
    assert q.X == (A,)
    assert q.E == ()
    assert q.relevant == (A, C, D, X)
    assert q.Z == (C, D, X)


def test_observed_collider_opens_trail(network: BNet) -> None:
    q = make_query(network, [A], evidence={C: True})
    _assert_partition(q)
    assert set(q.relevant) == {A, B, C}
    assert [str(a) for a in q.E] == ["C=True"]
    assert q.Z == (B,)


def test_evidence_on_descendant_opens_collider(network: BNet) -> None:
    q = make_query(network, ["A"], evidence={"D": False})
    _assert_partition(q)
    assert q.relevant == (A, B, C, D, X)
    assert q.Z == (B, C, X)


def test_requested_variable_with_evidence_stays_requested(network: BNet) -> None:
    q = make_query(network, [A, B], evidence={A: True})
    _assert_partition(q)
    assert q.X == (A, B)
    assert q.E == ()
    assert q.evidence[A] is True


def test_mpe_covers_every_variable(network: BNet) -> None:
    q = make_query(network, [D], mpe=True)
    assert q.mpe
    assert q.relevant == (A, B, C, D, X)
    # Evidence on C blocks every trail from A to D.
    q = make_query(network, [A], evidence={C: True}, mpe=True)
    _assert_partition(q)
    assert q.relevant == (A, B, C, D, X)
    assert q.Z == (B, D, X)


def test_unknown_variables(network: BNet) -> None:
    with pytest.raises(ConfigurationError):
        make_query(network, ["Z"])
    with pytest.raises(ConfigurationError):
        make_query(network, [A], evidence={"Z": True})
    with pytest.raises(ConfigurationError):
        make_query(network, [])
    with pytest.raises(ValueError):
        make_query(network, [A], evidence={B: "maybe"})
    with pytest.raises(ConfigurationError):
        make_query(network, [X], evidence={X: 0.5})
