# ____________________________________________________________________________________
#
# Pyomo: Python Optimization Modeling Objects
# Copyright (c) 2008-2026 National Technology and Engineering Solutions of Sandia, LLC
# Under the terms of Contract DE-NA0003525 with National Technology and Engineering
# Solutions of Sandia, LLC, the U.S. Government retains certain rights in this
# software.  This software is distributed under the 3-clause BSD License.
# ____________________________________________________________________________________

"""Iteration trace and termination record of a dual decomposition solve."""

from collections import namedtuple
import math

from pyomo.opt import TerminationCondition as tc

from dualdecomp.enums import TerminationStatus

IterationRecord = namedtuple(
    'IterationRecord',
    [
        'iteration',  # iteration number, starting at 1
        'time',  # elapsed wall time since the start of the solve
        'normalization',  # normalization scalar of the graph
        'bound',  # bound returned by the previous multiplier update
        'dual_bound',  # aggregate Lagrangian bound Zk
        'iteration_time',  # wall time spent solving the nodes
    ],
)

_TERMINATION_CONDITIONS = {
    TerminationStatus.OPTIMAL: tc.optimal,
    TerminationStatus.MAX_ITERATIONS: tc.maxIterations,
    TerminationStatus.TIME_LIMIT: tc.maxTimeLimit,
}


class LagrangeSolution:
    """Result of a dual decomposition solve.

    Attributes
    ----------
    method : str
        Always ``"dual_decomposition"``.
    iterations : list[IterationRecord]
        One record per iteration, in order.
    termination : TerminationStatus or None
        Terminal state; ``None`` while the solve is running.
    multipliers : numpy.ndarray or None
        Multipliers at termination.
    residual_norm : float or None
        Residual norm of the last iteration.
    solve_time : float or None
        Total wall time.
    """

    def __init__(self, method='dual_decomposition', sense=1):
        self.method = method
        self.sense = sense
        self.iterations = []
        self.termination = None
        self.multipliers = None
        self.residual_norm = None
        self.solve_time = None
        self.best_dual_bound = None
        self.best_primal_bound = None

    def save_iteration(
        self, iteration, time, bound, dual_bound, iteration_time, normalization
    ):
        """Append an iteration record and update the best dual bound."""
        record = IterationRecord(
            iteration=iteration,
            time=time,
            normalization=normalization,
            bound=bound,
            dual_bound=dual_bound,
            iteration_time=iteration_time,
        )
        self.iterations.append(record)
        self.update_bounds(dual=dual_bound)
        return record

    def update_bounds(self, primal=None, dual=None):
        """Keep the tightest bounds seen so far.

        For minimization (``sense == 1``) the dual bound is a lower bound
        and the primal bound an upper bound; the roles swap for
        maximization.
        """
        if dual is not None and math.isfinite(dual):
            if self.best_dual_bound is None:
                self.best_dual_bound = dual
            elif self.sense == 1:
                self.best_dual_bound = max(self.best_dual_bound, dual)
            else:
                self.best_dual_bound = min(self.best_dual_bound, dual)
        if primal is not None and math.isfinite(primal):
            if self.best_primal_bound is None:
                self.best_primal_bound = primal
            elif self.sense == 1:
                self.best_primal_bound = min(self.best_primal_bound, primal)
            else:
                self.best_primal_bound = max(self.best_primal_bound, primal)

    @property
    def dual_bound(self):
        """Aggregate bound of the last iteration."""
        if not self.iterations:
            return None
        return self.iterations[-1].dual_bound

    @property
    def bound(self):
        """Bound returned by the last multiplier update."""
        if not self.iterations:
            return None
        return self.iterations[-1].bound

    def relative_gap(self):
        """Relative gap between the best primal and dual bounds.

        Returns ``None`` until both bounds are known.
        """
        if self.best_primal_bound is None or self.best_dual_bound is None:
            return None
        gap = abs(self.best_primal_bound - self.best_dual_bound)
        denominator = max(abs(self.best_primal_bound), 1e-10)
        return gap / denominator

    @property
    def termination_condition(self):
        """Pyomo ``TerminationCondition`` matching ``termination``."""
        if self.termination is None:
            return tc.unknown
        return _TERMINATION_CONDITIONS[self.termination]

    def __str__(self):
        return (
            "LagrangeSolution(termination=%s, iterations=%s, dual_bound=%s, "
            "best_primal_bound=%s)"
            % (
                self.termination,
                len(self.iterations),
                self.dual_bound,
                self.best_primal_bound,
            )
        )
