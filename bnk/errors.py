"""
Exception and warning types raised by the factor algebra and inference engines.
"""

from __future__ import annotations


class ConfigurationError(ValueError):
    """
    Raised when an engine, query or network is not in a usable state.

    Examples are querying an engine before `instantiate`, naming a variable that
    is absent from the network, or a network with a cycle or a dangling parent.
    """


class DimensionError(ValueError):
    """
    Raised when two factors cannot be combined along their variables.

    Continuous components over the same non-enumerable variable cannot be
    multiplied, and variable lists with repeated entries cannot be cross-referenced.
    """


class NumericInstabilityWarning(RuntimeWarning):
    """
    Emitted when a normalisation meets (near) zero total mass and a uniform
    distribution is returned instead.
    """
