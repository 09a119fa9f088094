"""
Factor algebra and inference for Bayesian networks.

This package provides dense factor tables over enumerable variables (with
optional Gaussian components for continuous variables), the stateless factor
operations used by variable elimination, a small in-memory network of
conditional tables, and the exact and sampling-based engines in `bnk.alg`.
"""

from bnk.errors import ConfigurationError, DimensionError, NumericInstabilityWarning
from bnk.variable import (
    Assignment,
    ContinuousVariable,
    Domain,
    EnumVariable,
    Variable,
    amino_acid_domain,
    boolean_domain,
    nucleic_domain,
)
from bnk.distrib import EnumDistrib, GaussianDistrib, JDF, MixtureDistrib
from bnk.factor import Factor, MaxTrace
from bnk.factorize import FactorProductTree
from bnk.network import BNet, CPT, GDT, FactorProducer, SubstNode
from bnk.learning import CountTable, expected_counts
from bnk.alg import ApproxInference, CGTable, GibbsConfig, Query, VarElim, VarElimConfig

__all__ = [
    "ConfigurationError",
    "DimensionError",
    "NumericInstabilityWarning",
    "Assignment",
    "ContinuousVariable",
    "Domain",
    "EnumVariable",
    "Variable",
    "amino_acid_domain",
    "boolean_domain",
    "nucleic_domain",
    "EnumDistrib",
    "GaussianDistrib",
    "JDF",
    "MixtureDistrib",
    "Factor",
    "MaxTrace",
    "FactorProductTree",
    "BNet",
    "CPT",
    "GDT",
    "FactorProducer",
    "SubstNode",
    "CountTable",
    "expected_counts",
    "ApproxInference",
    "CGTable",
    "GibbsConfig",
    "Query",
    "VarElim",
    "VarElimConfig",
]
