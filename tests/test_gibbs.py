"""Tests for the Gibbs sampling engine."""

from __future__ import annotations

import numpy as np
import pytest

from bnk.alg import ApproxInference, GibbsConfig, VarElim
from bnk.errors import ConfigurationError
from bnk.network import BNet, CPT, GDT
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


def _sampler(network: BNet, **kwargs) -> ApproxInference:
    engine = ApproxInference(GibbsConfig(**kwargs))
    engine.instantiate(network)
    return engine


def test_posterior_is_close_to_exact() -> None:
    engine = _sampler(_rain(), iterations=4000, burn_in=100, seed=7)
    d = engine.infer(engine.make_query(SUNRISE, evidence={RAIN: True})).query(SUNRISE)
    assert abs(d.get(True) - 0.28) < 0.05


def test_default_budget_is_close_to_exact_across_seeds() -> None:
    hits = 0
    for seed in range(100):
        engine = _sampler(_rain(), seed=seed)
        d = engine.infer(engine.make_query(SUNRISE, evidence={RAIN: True})).query(SUNRISE)
        if abs(d.get(True) - 0.28) < 0.05:
            hits += 1
    assert hits >= 95


def test_default_budget_tallies_post_burn_in_sweeps() -> None:
    engine = _sampler(_rain())
    table = engine.infer(engine.make_query(SUNRISE, RAIN))
    assert table.get_sum() == 400.0
    assert table.get_factor().evars == (SUNRISE, RAIN)


def test_seeded_runs_repeat() -> None:
    runs = []
    for _ in range(2):
        engine = _sampler(_rain(), seed=11)
        runs.append(engine.infer(engine.make_query(SUNRISE)).get_factor().get_values())
    np.testing.assert_array_equal(runs[0], runs[1])


def test_agrees_with_exact_on_a_chain() -> None:
    a = EnumVariable("A")
    b = EnumVariable("B")
    c = EnumVariable("C")
    net = BNet(
        [
            CPT(a, table=[0.5, 0.5]),
            CPT(b, (a,), [[0.8, 0.2], [0.3, 0.7]]),
            CPT(c, (b,), [[0.9, 0.1], [0.25, 0.75]]),
        ]
    )
    exact = VarElim()
    exact.instantiate(net)
    p = exact.infer(exact.make_query(a, evidence={c: False})).query(a).get(True)

    engine = _sampler(net, iterations=6000, burn_in=500, seed=3)
    q = engine.infer(engine.make_query(a, evidence={c: False})).query(a).get(True)
    assert abs(p - q) < 0.05


def test_clamped_query_variable() -> None:
    engine = _sampler(_rain(), iterations=50, burn_in=10)
    d = engine.infer(engine.make_query(SUNRISE, evidence={SUNRISE: False})).query(SUNRISE)
    assert d.get(False) == pytest.approx(1.0)


def test_continuous_nodes_are_sampled_but_not_queried() -> None:
    x = ContinuousVariable("X")
    net = BNet([CPT(SUNRISE, table=[0.7, 0.3]), GDT(x, (SUNRISE,), means=[0.0, 3.0])])
    engine = _sampler(net, iterations=200, burn_in=20)
    table = engine.infer(engine.make_query(SUNRISE))
    assert table.get_sum() == 180.0
    with pytest.raises(ConfigurationError):
        engine.make_query(x)


def test_observed_continuous_child_informs_parent() -> None:
    x = ContinuousVariable("X")
    net = BNet([CPT(SUNRISE, table=[0.5, 0.5]), GDT(x, (SUNRISE,), means=[0.0, 3.0])])
    engine = _sampler(net, iterations=1000, burn_in=50)
    d = engine.infer(engine.make_query(SUNRISE, evidence={x: 3.0})).query(SUNRISE)
    # Exact posterior of True is about 0.011.
    assert d.get(False) > 0.9


def test_requires_instantiation() -> None:
    with pytest.raises(ConfigurationError):
        ApproxInference().make_query(SUNRISE)
