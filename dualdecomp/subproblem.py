# ____________________________________________________________________________________
#
# Pyomo: Python Optimization Modeling Objects
# Copyright (c) 2008-2026 National Technology and Engineering Solutions of Sandia, LLC
# Under the terms of Contract DE-NA0003525 with National Technology and Engineering
# Solutions of Sandia, LLC, the U.S. Government retains certain rights in this
# software.  This software is distributed under the 3-clause BSD License.
# ____________________________________________________________________________________

"""Solution of the dualized node subproblems."""

from collections import namedtuple

from pyomo.common.collections import Bunch
from pyomo.contrib.gdpopt.util import time_code
from pyomo.core import Objective, minimize, value
from pyomo.opt import SolverFactory

from dualdecomp.enums import Variant
from dualdecomp.session import LAGRANGIAN_OBJECTIVE
from dualdecomp.util import SolverFailure, check_solved

NodeSolution = namedtuple(
    'NodeSolution',
    [
        'node',  # node name
        'values',  # dict mapping (multiplier index, slot) to the variable value
        'objective',  # value of the Lagrangian (unpenalized) expression
        'solve_time',  # wall time of the solver call
    ],
)


def build_node_objective(session, name, multipliers, values, variant=Variant.DEFAULT):
    """Build the dualized objective of one node.

    Both expressions are built fresh from the pristine objective, which is
    never modified.

    Parameters
    ----------
    session : DecompositionSession
        Prepared decomposition session.
    name : str
        Node name.
    multipliers : numpy.ndarray
        Multiplier vector.
    values : numpy.ndarray
        Linking-variable values; only read by the ``ADMM`` variant.
    variant : Variant
        ``DEFAULT`` for the plain dualization, ``ADMM`` to add the quadratic
        consensus penalty.

    Returns
    -------
    (lagrangian_expr, objective_expr)
        The Lagrangian expression whose value is the node's contribution to
        the dual bound, and the expression that is minimized.
    """
    lagrangian_expr = session.pristine_objectives[name]
    objective_expr = lagrangian_expr
    for term in session.node_terms[name]:
        dualized = float(multipliers[term.index]) * term.coef * term.var
        lagrangian_expr = lagrangian_expr + dualized
        objective_expr = objective_expr + dualized
        if variant == Variant.ADMM:
            other = float(values[term.index, 1 - term.slot])
            objective_expr = objective_expr + 0.5 * (
                term.coef * term.var - term.coef * other
            ) ** 2
    return lagrangian_expr, objective_expr


def solve_node(session, name, multipliers, values, variant, config):
    """Solve one node with the current multipliers.

    The node's user objective is deactivated and replaced by a freshly built
    dualized objective. Variable values are read back without modifying
    ``values``.

    Returns
    -------
    NodeSolution

    Raises
    ------
    SolverFailure
        If the node is not solved to optimality.
    """
    node = session.graph.nodes[name]
    lagrangian_expr, objective_expr = build_node_objective(
        session, name, multipliers, values, variant
    )
    for obj in node.component_data_objects(Objective, active=True):
        obj.deactivate()
    if node.component(LAGRANGIAN_OBJECTIVE) is not None:
        node.del_component(LAGRANGIAN_OBJECTIVE)
    node.add_component(
        LAGRANGIAN_OBJECTIVE, Objective(expr=objective_expr, sense=minimize)
    )

    timing = Bunch()
    with time_code(timing, 'solve'):
        results = SolverFactory(config.solver).solve(
            node, tee=config.tee, **dict(config.solver_args)
        )
    check_solved(results, "Node %s" % (name,))

    node_values = {}
    for term in session.node_terms[name]:
        # Variables left out of the solved model (e.g. zero multiplier and no
        # other occurrence) keep their previous value.
        val = term.var.value
        if val is None:
            val = values[term.index, term.slot]
        node_values[term.index, term.slot] = float(val)
    objective = value(lagrangian_expr, exception=False)
    if objective is None:
        raise SolverFailure(
            "Node %s was solved but its Lagrangian value could not be "
            "evaluated." % (name,)
        )
    config.logger.debug(
        "Node %s solved in %.3fs, Lagrangian value %s", name, timing.solve, objective
    )
    return NodeSolution(
        node=name, values=node_values, objective=objective, solve_time=timing.solve
    )


def solve_nodes(session, multipliers, values, variant, config):
    """Solve every node and aggregate the results.

    Node solves are independent: each returns its own ``NodeSolution`` and
    the records are merged into a copy of ``values`` by node identity once
    all of them are available.

    Returns
    -------
    (numpy.ndarray, float, dict[str, NodeSolution])
        The merged linking-variable values, the aggregate bound
        ``normalization * sum(node objectives)`` and the per-node records.
    """
    solutions = {
        name: solve_node(session, name, multipliers, values, variant, config)
        for name in session.graph.nodes
    }
    merged = values.copy()
    for solution in solutions.values():
        for (index, slot), val in solution.values.items():
            merged[index, slot] = val
    bound = session.normalization * sum(s.objective for s in solutions.values())
    return merged, bound, solutions
