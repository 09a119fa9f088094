from __future__ import annotations

import pytest

from bnk.alg import ApproxInference, GibbsConfig, VarElim, VarElimConfig


def test_defaults() -> None:
    c = VarElimConfig()
    assert c.ordering == "fewest_factors"
    assert c.prune is False
    assert c.complexity_budget is None
    assert c.n_jobs == 1
    g = GibbsConfig()
    assert (g.iterations, g.burn_in, g.seed, g.bitgen) == (500, 100, 123, "PCG64")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"ordering": "random"},
        {"complexity_budget": 0},
        {"n_jobs": 0},
        {"eps": -1.0},
    ],
)
def test_varelim_config_rejects(kwargs) -> None:
    with pytest.raises(ValueError):
        VarElimConfig(**kwargs).validate()
    with pytest.raises(ValueError):
        VarElim(VarElimConfig(**kwargs))


@pytest.mark.parametrize(
    "kwargs",
    [
        {"iterations": 0},
        {"burn_in": -1},
        {"iterations": 10, "burn_in": 10},
        {"bitgen": "MT19937"},
    ],
)
def test_gibbs_config_rejects(kwargs) -> None:
    with pytest.raises(ValueError):
        ApproxInference(GibbsConfig(**kwargs))


def test_configs_are_frozen() -> None:
    with pytest.raises(AttributeError):
        VarElimConfig().n_jobs = 2  # type: ignore[misc]
