# ____________________________________________________________________________________
#
# Pyomo: Python Optimization Modeling Objects
# Copyright (c) 2008-2026 National Technology and Engineering Solutions of Sandia, LLC
# Under the terms of Contract DE-NA0003525 with National Technology and Engineering
# Solutions of Sandia, LLC, the U.S. Government retains certain rights in this
# software.  This software is distributed under the 3-clause BSD License.
# ____________________________________________________________________________________

"""Lagrangian heuristics.

A heuristic turns the current (possibly infeasible) node solutions into a
primal feasible objective value. Any callable with the signature
``heuristic(session, config) -> float`` can be passed as the
``lagrange_heuristic`` option.
"""

from pyomo.core import Var, value
from pyomo.core.base import ComponentUID
from pyomo.opt import SolverFactory

from dualdecomp.enums import Category
from dualdecomp.graph import FLAT_OBJECTIVE, create_flat_graph_model
from dualdecomp.util import check_solved


def _in_categories(var, categories):
    if Category.BINARY in categories and var.is_binary():
        return True
    if Category.INTEGER in categories and var.is_integer() and not var.is_binary():
        return True
    return False


def copy_node_values_to_flat(session):
    """Copy the current node variable values onto the flattened model."""
    flat = session.flat_model
    for name, node in session.graph.nodes.items():
        flat_node = flat.component(name)
        for var in node.component_data_objects(Var, descend_into=True):
            flat_var = ComponentUID(var, context=node).find_component_on(flat_node)
            if flat_var is not None and not flat_var.fixed:
                flat_var.set_value(var.value, skip_validation=True)


def fix_binaries(session, config, categories=(Category.BINARY,)):
    """Fix discrete variables at their node values and solve the flat model.

    Parameters
    ----------
    session : DecompositionSession
        Prepared decomposition session; the flattened model is built if the
        session does not have one yet.
    config : ConfigBlock
        Solver configuration. Uses ``solver``, ``solver_args``, ``tee`` and
        ``logger``.
    categories : tuple[Category, ...]
        Variable categories to fix.

    Returns
    -------
    float
        ``normalization`` times the optimal objective of the restricted flat
        model, i.e. a primal bound in the sense of the original graph.

    Raises
    ------
    SolverFailure
        If the restricted model is infeasible or unbounded: the fixed
        discrete solution cannot be completed into a feasible one.
    """
    if session.flat_model is None:
        session.flat_model = create_flat_graph_model(
            session.graph, session.normalization
        )
    flat = session.flat_model
    copy_node_values_to_flat(session)

    fixed = []
    for var in flat.component_data_objects(Var, descend_into=True):
        if var.fixed or var.value is None or not _in_categories(var, categories):
            continue
        var.fix(round(var.value))
        fixed.append(var)
    config.logger.debug(
        "Lagrangian heuristic fixed %s variables of categories %s",
        len(fixed),
        ", ".join(str(c) for c in categories),
    )

    try:
        results = SolverFactory(config.solver).solve(
            flat, tee=config.tee, **dict(config.solver_args)
        )
        check_solved(results, "Heuristic model")
        objective = value(flat.component(FLAT_OBJECTIVE))
    finally:
        for var in fixed:
            var.unfix()
    return session.normalization * objective


def fix_integers(session, config):
    """Fix binary and general integer variables and solve the flat model."""
    return fix_binaries(session, config, (Category.BINARY, Category.INTEGER))
