# ____________________________________________________________________________________
#
# Pyomo: Python Optimization Modeling Objects
# Copyright (c) 2008-2026 National Technology and Engineering Solutions of Sandia, LLC
# Under the terms of Contract DE-NA0003525 with National Technology and Engineering
# Solutions of Sandia, LLC, the U.S. Government retains certain rights in this
# software.  This software is distributed under the 3-clause BSD License.
# ____________________________________________________________________________________

"""Utility functions and classes for the dual decomposition solver."""

from pyomo.opt import TerminationCondition as tc

from dualdecomp.enums import UpdateMethod

# Termination conditions under which a subproblem, master or flattened model
# is considered solved to optimality.
OPTIMAL_CONDITIONS = frozenset(
    {tc.optimal, tc.globallyOptimal, tc.locallyOptimal}
)


class SolverFailure(RuntimeError):
    """Raised when a node, master or flattened-model solve does not reach
    optimality.

    Failures are never retried.

    Attributes
    ----------
    termination_condition : TerminationCondition or None
        Termination condition reported by the solver.
    """

    def __init__(self, msg, termination_condition=None):
        super().__init__(msg)
        self.termination_condition = termination_condition


def check_solved(results, what):
    """Raise ``SolverFailure`` unless ``results`` reports an optimal solve.

    Parameters
    ----------
    results : SolverResults
        Results returned by ``SolverFactory(...).solve``.
    what : str
        Description of the solved model used in the error message.

    Returns
    -------
    TerminationCondition
        The (optimal) termination condition.
    """
    term_cond = results.solver.termination_condition
    if term_cond not in OPTIMAL_CONDITIONS:
        raise SolverFailure(
            "%s was not solved to optimality (termination condition: %s)"
            % (what, term_cond),
            termination_condition=term_cond,
        )
    return term_cond


# Solver interfaces that reject the quadratic consensus penalty of ADMM
LINEAR_ONLY_SOLVERS = frozenset({'appsi_highs', 'highs', 'glpk', 'cbc'})


def check_update_solver(update_method, solver):
    """Raise ``ValueError`` if ``solver`` cannot solve the ADMM node models."""
    if update_method == UpdateMethod.ADMM and solver in LINEAR_ONLY_SOLVERS:
        raise ValueError(
            "update_method='ADMM' adds a quadratic penalty to the node "
            "objectives, which solver '%s' does not accept. Choose a solver "
            "for quadratic objectives (e.g. 'ipopt' or 'gurobi')." % (solver,)
        )
