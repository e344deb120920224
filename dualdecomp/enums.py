# ____________________________________________________________________________________
#
# Pyomo: Python Optimization Modeling Objects
# Copyright (c) 2008-2026 National Technology and Engineering Solutions of Sandia, LLC
# Under the terms of Contract DE-NA0003525 with National Technology and Engineering
# Solutions of Sandia, LLC, the U.S. Government retains certain rights in this
# software.  This software is distributed under the 3-clause BSD License.
# ____________________________________________________________________________________

"""Lightweight enums used by the dual decomposition solver.

The module depends only on the standard library.
"""

import enum


class UpdateMethod(str, enum.Enum):
    """Multiplier update strategies."""

    SUBGRADIENT = "subgradient"
    OPTIMAL_STEP = "optimalstep"
    ADMM = "ADMM"
    CUTTING_PLANES = "cuttingplanes"
    BUNDLE = "bundle"

    def __str__(self):
        return self.value


class Variant(str, enum.Enum):
    """Form of the node objective built for one subproblem solve.

    ``DEFAULT`` is the plain dualization (original objective plus the
    multiplier terms). ``ADMM`` adds the quadratic consensus penalty.
    """

    DEFAULT = "default"
    ADMM = "ADMM"

    def __str__(self):
        return self.value


class InitialMultipliers(str, enum.Enum):
    """Multiplier initialization strategies."""

    ZERO = "zero"
    RELAXATION = "relaxation"

    def __str__(self):
        return self.value


class TerminationStatus(str, enum.Enum):
    """Terminal states of the iteration loop.

    Values are the strings stored on the returned solution.
    """

    OPTIMAL = "Optimal"
    MAX_ITERATIONS = "Max Iterations"
    TIME_LIMIT = "Time Limit"

    def __str__(self):
        return self.value


class Category(str, enum.Enum):
    """Variable categories fixed by the Lagrangian heuristics."""

    BINARY = "Bin"
    INTEGER = "Int"

    def __str__(self):
        return self.value
