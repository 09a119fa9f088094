"""Unit tests for count tables and CPT re-estimation."""

from __future__ import annotations

import numpy as np
import pytest

from bnk.alg import VarElim
from bnk.learning import CountTable, expected_counts
from bnk.network import BNet, CPT
from bnk.variable import ContinuousVariable, EnumVariable

SUNRISE = EnumVariable("Sunrise")
RAIN = EnumVariable("Rain")


def _rain() -> BNet:
    return BNet(
        [
            CPT(SUNRISE, table=[0.7, 0.3]),
            CPT(RAIN, (SUNRISE,), [[0.1, 0.9], [0.6, 0.4]]),
        ]
    )


class TestCountTable:
    def test_count_and_get(self) -> None:
        table = CountTable((SUNRISE, RAIN))
        table.count((True, False))
        table.count((True, False), 0.5)
        table.count((False, True))
        assert table.get((True, False)) == 1.5
        assert table.get((False, True)) == 1.0
        assert table.get((True, True)) == 0.0
        assert table.get_total() == 2.5

    def test_counts_are_copied(self) -> None:
        table = CountTable((SUNRISE,))
        table.count((True,))
        counts = table.get_counts()
        counts[0] = 10.0
        assert table.get((True,)) == 1.0
        table.clear()
        assert table.get_total() == 0.0

    def test_rejects_bad_input(self) -> None:
        with pytest.raises(ValueError):
            CountTable(())
        with pytest.raises(ValueError):
            CountTable((SUNRISE, SUNRISE))
        with pytest.raises(ValueError):
            CountTable((ContinuousVariable("X"),))
        table = CountTable((SUNRISE,))
        with pytest.raises(ValueError):
            table.count((True, False))
        with pytest.raises(ValueError):
            table.count((True,), -1.0)
        with pytest.raises(ValueError):
            table.count(("maybe",))


class TestMaximize:
    def test_rows_follow_counts(self) -> None:
        cpt = CPT(RAIN, (SUNRISE,))
        counts = CountTable((SUNRISE, RAIN))
        counts.count((True, True), 1.0)
        counts.count((True, False), 3.0)
        cpt.maximize(counts)
        assert cpt.get(True, (True,)) == pytest.approx(0.25)
        # No counts for Sunrise=False: the row is kept.
        np.testing.assert_allclose(cpt.get_distrib((False,)).probs, [0.5, 0.5])

    def test_pseudo_counts(self) -> None:
        cpt = CPT(SUNRISE)
        counts = CountTable((SUNRISE,))
        counts.count((True,), 2.0)
        cpt.maximize(counts, pseudo_count=1.0)
        np.testing.assert_allclose(cpt.table, [0.75, 0.25])
        with pytest.raises(ValueError):
            cpt.maximize(counts, pseudo_count=-1.0)

    def test_family_must_match(self) -> None:
        cpt = CPT(RAIN, (SUNRISE,))
        with pytest.raises(ValueError):
            cpt.maximize(CountTable((RAIN, SUNRISE)))


def test_expected_counts_spread_posterior_weight() -> None:
    net = _rain()
    ve = VarElim()
    ve.instantiate(net)
    rows = [{SUNRISE: True, RAIN: True}, {RAIN: True}, {SUNRISE: None, RAIN: True}]
    counts = expected_counts(ve, net.get_node(RAIN), rows[:2])
    assert counts.get((True, True)) == pytest.approx(1.28)
    assert counts.get((False, True)) == pytest.approx(0.72)
    assert counts.get_total() == pytest.approx(2.0)

    counts = expected_counts(ve, net.get_node(RAIN), rows)
    assert counts.get((True, True)) == pytest.approx(1.56)


def test_em_step_moves_towards_data() -> None:
    net = _rain()
    ve = VarElim()
    ve.instantiate(net)
    node = net.get_node(SUNRISE)
    rows = [{SUNRISE: False}] * 3 + [{RAIN: False}]
    node.maximize(expected_counts(ve, node, rows))
    # P(Sunrise | Rain=False) = 0.63 / 0.75
    assert node.get(True) == pytest.approx((0.63 / 0.75) / 4.0)
