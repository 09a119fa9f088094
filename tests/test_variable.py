"""Unit tests for variables, domains and distributions."""

from __future__ import annotations

import numpy as np
import pytest

from bnk.distrib import EnumDistrib, GaussianDistrib, JDF, MixtureDistrib
from bnk.errors import DimensionError
from bnk.variable import (
    ContinuousVariable,
    Domain,
    EnumVariable,
    Variable,
    amino_acid_domain,
    boolean_domain,
    nucleic_domain,
)


class TestDomain:
    def test_index_round_trip(self) -> None:
        d = Domain(("x", "y", "z"))
        assert d.size() == 3
        for i, v in enumerate(d):
            assert d.index_of(v) == i
            assert d.get(i) == v

    def test_rejects_duplicates_and_empty(self) -> None:
        with pytest.raises(ValueError):
            Domain(("a", "a"))
        with pytest.raises(ValueError):
            Domain(())

    def test_unknown_value_and_index(self) -> None:
        d = boolean_domain()
        with pytest.raises(ValueError):
            d.index_of("maybe")
        with pytest.raises(ValueError):
            d.get(2)
        assert "maybe" not in d
        assert True in d

    def test_predefined(self) -> None:
        assert tuple(boolean_domain()) == (True, False)
        assert tuple(nucleic_domain()) == ("A", "C", "G", "T")
        assert amino_acid_domain().size() == 20


def test_variables_compare_by_kind_and_name() -> None:
    a1 = EnumVariable("A", ("x", "y"))
    a2 = EnumVariable("A", ("x", "y"))
    assert a1 == a2
    assert hash(a1) == hash(a2)
    assert a1 != ContinuousVariable("A")
    assert a1.is_enumerable()
    assert not ContinuousVariable("X").is_enumerable()
    assert isinstance(a1.domain, Domain)
    assert str(a1) == "A"
    assert EnumVariable("B").domain == boolean_domain()
    assert isinstance(ContinuousVariable("X"), Variable)


def test_enum_distrib_normalises_and_breaks_ties_low() -> None:
    d = EnumDistrib(Domain(("a", "b", "c")), np.array([2.0, 2.0, 1.0]))
    assert np.isclose(d.get("a"), 0.4)
    assert np.isclose(sum(d.to_dict().values()), 1.0)
    assert d.get_max() == "a"
    with pytest.raises(ValueError):
        EnumDistrib(Domain(("a", "b")), np.array([0.0, 0.0]))
    with pytest.raises(ValueError):
        EnumDistrib(Domain(("a", "b")), np.array([1.0]))


def test_mixture_moments() -> None:
    m = MixtureDistrib(((GaussianDistrib(0.0, 1.0), 1.0), (GaussianDistrib(10.0, 1.0), 3.0)))
    assert np.isclose(m.get_mean(), 7.5)
    # Law of total variance: 1 + 0.25 * 56.25 + 0.75 * 6.25
    assert np.isclose(m.get_variance(), 1.0 + 0.25 * 7.5**2 + 0.75 * 2.5**2)
    nested = MixtureDistrib(((m, 1.0), (GaussianDistrib(0.0, 1.0), 1.0)))
    assert len(nested) == 3
    assert np.isclose(nested.get_mean(), 0.5 * 7.5)


def test_jdf_combine_and_mix() -> None:
    x = ContinuousVariable("X")
    y = ContinuousVariable("Y")
    jx = JDF({x: GaussianDistrib(0.0, 1.0)})
    jy = JDF({y: GaussianDistrib(1.0, 2.0)})
    both = JDF.combine(jx, jy)
    assert both is not None
    assert set(both.get_variables()) == {x, y}
    assert JDF.combine(None, jx) is jx
    with pytest.raises(DimensionError):
        JDF.combine(jx, JDF({x: GaussianDistrib(2.0, 1.0)}))

    mixed = JDF.mix(jx, 1.0, JDF({x: GaussianDistrib(4.0, 1.0)}), 1.0)
    assert np.isclose(mixed.get_distrib(x).get_mean(), 2.0)
    assert JDF.mix_all([(jx, 0.0), (None, 1.0)]) is None
    assert JDF.mix_all([(jx, 2.0), (None, 1.0)]) is jx


def test_gaussian_rejects_bad_variance() -> None:
    with pytest.raises(ValueError):
        GaussianDistrib(0.0, 0.0)
    g = GaussianDistrib(1.0, 4.0)
    assert np.isclose(g.get(1.0), 1.0 / np.sqrt(2.0 * np.pi * 4.0))
