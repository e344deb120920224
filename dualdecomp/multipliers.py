# ____________________________________________________________________________________
#
# Pyomo: Python Optimization Modeling Objects
# Copyright (c) 2008-2026 National Technology and Engineering Solutions of Sandia, LLC
# Under the terms of Contract DE-NA0003525 with National Technology and Engineering
# Solutions of Sandia, LLC, the U.S. Government retains certain rights in this
# software.  This software is distributed under the 3-clause BSD License.
# ____________________________________________________________________________________

"""Multiplier initialization and update strategies.

Every update strategy has the signature::

    update(session, multipliers, residuals, heuristic, config) -> (multipliers, bound)

where ``bound`` is the heuristic primal bound (or, for the cutting-plane
strategies, the optimal value of the master problem).
"""

import numpy as np

from pyomo.common.collections import ComponentMap
from pyomo.core import Suffix, TransformationFactory, Var, value
from pyomo.opt import SolverFactory

from dualdecomp.enums import UpdateMethod, Variant
from dualdecomp.graph import (
    FLAT_OBJECTIVE,
    create_flat_graph_model,
    flat_link_constraint,
)
from dualdecomp.subproblem import solve_nodes
from dualdecomp.util import SolverFailure, check_solved

# Offset used to probe the slope of the dual function in ``optimal_step``
_PROBE_DELTA = 0.01


def step_size(alpha, dual_bound, bound, residuals):
    """Polyak-type step ``alpha * |dual_bound - bound| / ||residuals||**2``.

    A zero residual means the links are already satisfied; the step is then
    ``0.0`` instead of a division by zero.
    """
    norm_sq = float(np.dot(residuals, residuals))
    if norm_sq == 0:
        return 0.0
    return alpha * abs(dual_bound - bound) / norm_sq


def _heuristic_bound(session, heuristic, config):
    bound = heuristic(session, config)
    session.primal_bound = bound
    return bound


def subgradient(session, multipliers, residuals, heuristic, config):
    """Move the multipliers along the residual by the Polyak step."""
    bound = _heuristic_bound(session, heuristic, config)
    step = step_size(session.alpha, session.dual_bound, bound, residuals)
    config.logger.debug("Subgradient step = %s", step)
    return session.project(multipliers + step * residuals), bound


def _probe_bound(session, multipliers, residuals, step, trial, config):
    """Aggregate bound at ``multipliers + trial * step * residuals``.

    Every node is re-solved with the plain dualization on a copy of the
    linking-variable values, so the session state is left untouched.
    """
    _, bound, _ = solve_nodes(
        session,
        multipliers + trial * step * residuals,
        session.values.copy(),
        Variant.DEFAULT,
        config,
    )
    return bound


def _node_var_values(session):
    saved = ComponentMap()
    for node in session.graph.nodes.values():
        for var in node.component_data_objects(Var, descend_into=True):
            saved[var] = var.value
    return saved


def optimal_step(session, multipliers, residuals, heuristic, config):
    """Pick the step by intersecting two secant lines of the dual function.

    The first secant goes through the trial step multipliers ``0`` and
    ``0.01``, the second through ``alpha`` and ``alpha - 0.01``. When both
    slopes are negative the probe ``alpha`` is doubled and the second secant
    re-evaluated, at most ``config.max_step_doublings`` times. If that budget
    runs out, or the secants are parallel, the update falls back to the
    subgradient step.

    The trial solves overwrite the node variables; their values from the
    last iteration are restored before returning.
    """
    bound = _heuristic_bound(session, heuristic, config)
    saved = _node_var_values(session)
    try:
        new_multipliers = _search_step(session, multipliers, residuals, bound, config)
    finally:
        for var, val in saved.items():
            var.set_value(val, skip_validation=True)
    return new_multipliers, bound


def _search_step(session, multipliers, residuals, bound, config):
    dual_bound = session.dual_bound
    step = step_size(1.0, dual_bound, bound, residuals)
    logger = config.logger

    # First curve
    alpha_a0 = 0.0
    z_a0 = dual_bound
    alpha_a1 = _PROBE_DELTA
    z_a1 = _probe_bound(session, multipliers, residuals, step, alpha_a1, config)
    slope_a = (z_a1 - z_a0) / (alpha_a1 - alpha_a0)

    alpha = session.alpha
    for _ in range(config.max_step_doublings + 1):
        # Second curve
        alpha_b0 = alpha
        z_b0 = _probe_bound(session, multipliers, residuals, step, alpha_b0, config)
        alpha_b1 = alpha_b0 - _PROBE_DELTA
        z_b1 = _probe_bound(session, multipliers, residuals, step, alpha_b1, config)
        slope_b = (z_b1 - z_b0) / (alpha_b1 - alpha_b0)
        logger.debug("Optimal step slopes: ma = %s, mb = %s", slope_a, slope_b)

        if slope_a < 0 and slope_b < 0:
            alpha *= 2
            continue
        if slope_b == slope_a:
            logger.debug("Optimal step secants are parallel.")
            break
        alpha_inter = (
            z_a0 - z_b0 + alpha_b0 * slope_b - alpha_a0 * slope_a
        ) / (slope_b - slope_a)
        logger.debug("Optimal step multiplier = %s", alpha_inter)
        return session.project(multipliers + alpha_inter * step * residuals)
    else:
        logger.warning(
            "Optimal step search did not bracket a step after %s doublings; "
            "falling back to the subgradient step.",
            config.max_step_doublings,
        )

    return session.project(multipliers + session.alpha * step * residuals)


def admm(session, multipliers, residuals, heuristic, config):
    """Unit step along the residual direction.

    Convergence relies on the quadratic consensus penalty added to the node
    objectives, not on the size of this step.
    """
    bound = _heuristic_bound(session, heuristic, config)
    norm = float(np.linalg.norm(residuals))
    if norm == 0:
        return session.project(multipliers), bound
    return session.project(multipliers + residuals / norm), bound


def cutting_planes(session, multipliers, residuals, heuristic, config):
    """Add a cut to the master problem and take its optimal multipliers.

    The cut ``eta <= Zk + sum_j lambda_j * res_j`` is expressed in the
    normalized (minimization) form of the graph. Cuts are never removed.

    Returns
    -------
    (numpy.ndarray, float)
        The master multipliers and ``normalization * eta``.

    Raises
    ------
    RuntimeError
        If the master has not been built.
    SolverFailure
        If the master is not solved to optimality.
    """
    master = session.master
    if master is None:
        raise RuntimeError("Master model has not been built.")

    normalized_bound = session.normalization * session.dual_bound
    cut = master.cuts.add(
        master.eta
        <= normalized_bound
        + sum(
            master.multipliers[j] * float(residuals[j])
            for j in range(session.numlinks)
        )
    )
    session.cuts.append(cut)
    config.logger.debug("Added cut %s: %s", len(session.cuts), cut.expr)

    solver = config.master_solver if config.master_solver else config.solver
    results = SolverFactory(solver).solve(
        master, tee=config.tee, **dict(config.master_solver_args)
    )
    check_solved(results, "Master problem")

    new_multipliers = np.array(multipliers, dtype=float)
    for j in range(session.numlinks):
        val = master.multipliers[j].value
        # Multipliers absent from every cut are left where they were.
        if val is not None:
            new_multipliers[j] = val
    return new_multipliers, session.normalization * value(master.eta)


def bundle(session, multipliers, residuals, heuristic, config):
    """Cutting planes restricted to a box around the current multipliers.

    The half-width of the box is ``step * |res_j|`` with the subgradient
    step. Sign restrictions of inequality links are kept.
    """
    master = session.master
    if master is None:
        raise RuntimeError("Master model has not been built.")
    bound = _heuristic_bound(session, heuristic, config)
    step = step_size(session.alpha, session.dual_bound, bound, residuals)
    for link in session.links:
        j = link.index
        width = step * abs(float(residuals[j]))
        lb = float(multipliers[j]) - width
        ub = float(multipliers[j]) + width
        sign_lb, sign_ub = session.multiplier_bounds(link)
        if sign_lb is not None:
            lb = max(lb, sign_lb)
        if sign_ub is not None:
            ub = min(ub, sign_ub)
        master.multipliers[j].setlb(lb)
        master.multipliers[j].setub(ub)
    config.logger.debug("Bundle step = %s", step)
    return cutting_planes(session, multipliers, residuals, heuristic, config)


UPDATE_METHODS = {
    UpdateMethod.SUBGRADIENT: subgradient,
    UpdateMethod.OPTIMAL_STEP: optimal_step,
    UpdateMethod.ADMM: admm,
    UpdateMethod.CUTTING_PLANES: cutting_planes,
    UpdateMethod.BUNDLE: bundle,
}


def update_multipliers(session, multipliers, residuals, method, heuristic, config):
    """Dispatch to the update strategy registered for ``method``.

    Raises
    ------
    ValueError
        If ``method`` is not an ``UpdateMethod``.
    """
    try:
        handler = UPDATE_METHODS[UpdateMethod(method)]
    except ValueError:
        raise ValueError(
            "Unrecognized update_method=%r (expected one of %s)"
            % (method, ", ".join(str(m) for m in UpdateMethod))
        ) from None
    return handler(session, multipliers, residuals, heuristic, config)


def initial_relaxation(session, config):
    """Initialize the multipliers from the LP relaxation of the flat model.

    The multiplier of the dualized term ``lambda * body`` is the negated
    dual value of the corresponding linking constraint in the (normalized,
    minimization) relaxation.

    Returns
    -------
    float
        ``normalization`` times the objective of the relaxation.

    Raises
    ------
    SolverFailure
        If the relaxation is not solved to optimality or no dual value is
        reported for a linking constraint.
    """
    if session.flat_model is None:
        session.flat_model = create_flat_graph_model(
            session.graph, session.normalization
        )
    relaxed = session.flat_model.clone()
    TransformationFactory('core.relax_integer_vars').apply_to(relaxed)
    relaxed.dual = Suffix(direction=Suffix.IMPORT)

    results = SolverFactory(config.solver).solve(
        relaxed, tee=config.tee, **dict(config.solver_args)
    )
    check_solved(results, "LP relaxation")

    duals = []
    for k in range(session.numlinks):
        dual = relaxed.dual.get(flat_link_constraint(relaxed, k))
        if dual is None:
            raise SolverFailure(
                "No dual value reported for linking constraint %s." % (k,)
            )
        duals.append(-float(dual))
    session.multipliers = session.project(np.array(duals, dtype=float))
    objective = session.normalization * value(relaxed.component(FLAT_OBJECTIVE))
    config.logger.info("Solved LP relaxation with value %s", objective)
    return objective
