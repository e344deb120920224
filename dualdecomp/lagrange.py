# ____________________________________________________________________________________
#
# Pyomo: Python Optimization Modeling Objects
# Copyright (c) 2008-2026 National Technology and Engineering Solutions of Sandia, LLC
# Under the terms of Contract DE-NA0003525 with National Technology and Engineering
# Solutions of Sandia, LLC, the U.S. Government retains certain rights in this
# software.  This software is distributed under the 3-clause BSD License.
# ____________________________________________________________________________________

"""Dual (Lagrangian) decomposition of block-structured models.

The linking constraints of a ``ModelGraph`` are relaxed into the node
objectives with one multiplier per link. Every iteration solves the nodes
independently, aggregates their Lagrangian values into a dual bound, and
updates the multipliers until the linked variables agree or the iteration
budget is exhausted.
"""

from pyomo.common.collections import Bunch
from pyomo.common.config import document_kwargs_from_configdict
from pyomo.contrib.gdpopt.util import get_main_elapsed_time, time_code
from pyomo.opt import SolverFactory

from dualdecomp.config_options import _get_lagrange_config
from dualdecomp.enums import (
    InitialMultipliers,
    TerminationStatus,
    UpdateMethod,
    Variant,
)
from dualdecomp.multipliers import initial_relaxation, update_multipliers
from dualdecomp.results import LagrangeSolution
from dualdecomp.session import DecompositionSession
from dualdecomp.subproblem import solve_nodes
from dualdecomp.util import check_update_solver

__version__ = (0, 1, 0)


@SolverFactory.register(
    "dualdecomp.lagrange",
    doc="Dual (Lagrangian) decomposition solver for block-structured "
    "model graphs",
)
class LagrangeDecompositionSolver:
    """Dual decomposition solver for ``ModelGraph`` instances.

    The solver relaxes every linking constraint into the node objectives,
    solves the nodes independently and updates the multipliers with one of
    the ``UpdateMethod`` strategies.
    """

    CONFIG = _get_lagrange_config()

    def __init__(self, **kwds):
        self.config = self.CONFIG(kwds.pop('options', {}), preserve_implicit=True)
        self.config.set_value(kwds)
        self.timing = Bunch()
        self.iteration = 0
        self.log_formatter = (
            "{:>9}   {:>13}   {:>14.6g}   {:>14}   {:>12.4g}   {:>8}   {:>7.2f}"
        )

    def available(self, exception_flag=True):
        return True

    def license_is_valid(self):
        return True

    def version(self):
        return __version__

    def __enter__(self):
        return self

    def __exit__(self, t, v, traceback):
        pass

    @document_kwargs_from_configdict(CONFIG)
    def solve(self, graph, **kwds):
        """Solve a model graph by dual decomposition.

        Parameters
        ----------
        graph : ModelGraph
            Graph of node models coupled by linking constraints.
        **kwds
            Keyword arguments used to override entries in the solver
            configuration block.

        Returns
        -------
        LagrangeSolution
            Iteration trace and termination status.
        """
        config = self.config(kwds.pop('options', {}), preserve_implicit=True)
        config.set_value(kwds)
        check_update_solver(config.update_method, config.solver)
        logger = config.logger

        self.timing = Bunch()
        self.iteration = 0
        session = DecompositionSession(
            graph, alpha=config.alpha, master_eta_bound=config.master_eta_bound
        )
        try:
            with time_code(self.timing, 'total', is_main_timer=True):
                session.prepare()
                solution = LagrangeSolution(sense=session.normalization)
                logger.info(
                    "Starting dual decomposition of %s: %s nodes, %s linking "
                    "constraints, update method '%s'.",
                    graph.name,
                    len(graph.nodes),
                    session.numlinks,
                    config.update_method,
                )
                if config.initial_multipliers == InitialMultipliers.RELAXATION:
                    relaxation_bound = initial_relaxation(session, config)
                    solution.update_bounds(dual=relaxation_bound)
                self._log_header(logger)
                self._iterate(session, solution, config)
        finally:
            session.restore()

        solution.solve_time = self.timing.total
        solution.multipliers = session.multipliers.copy()
        solution.residual_norm = session.residual_norm()
        logger.info(
            "Dual decomposition terminated with status '%s' after %s "
            "iterations (%.2fs).",
            solution.termination,
            len(solution.iterations),
            solution.solve_time,
        )
        return solution

    def _iterate(self, session, solution, config):
        """Run the main loop until convergence or a limit is reached."""
        logger = config.logger
        bound = None
        for iteration in range(1, config.max_iterations + 1):
            if get_main_elapsed_time(self.timing) >= config.time_limit:
                logger.info(
                    "Time limit of %s seconds exceeded before iteration %s.",
                    config.time_limit,
                    iteration,
                )
                solution.termination = TerminationStatus.TIME_LIMIT
                return
            self.iteration = iteration

            # No bound exists before the first pass: always dualize plainly.
            if iteration == 1:
                variant = Variant.DEFAULT
            elif config.update_method == UpdateMethod.ADMM:
                variant = Variant.ADMM
            else:
                variant = Variant.DEFAULT

            iteration_timing = Bunch()
            with time_code(iteration_timing, 'nodes'):
                values, dual_bound, _ = solve_nodes(
                    session, session.multipliers, session.values, variant, config
                )
            session.values = values
            session.dual_bound = dual_bound

            residuals = session.compute_residuals()
            residual_norm = session.residual_norm()

            solution.save_iteration(
                iteration,
                get_main_elapsed_time(self.timing),
                bound,
                dual_bound,
                iteration_timing.nodes,
                session.normalization,
            )
            self._log_iteration(logger, solution, config, residual_norm)

            if residual_norm < config.epsilon or residual_norm == 0:
                solution.termination = TerminationStatus.OPTIMAL
                return

            multipliers, bound = update_multipliers(
                session,
                session.multipliers,
                residuals,
                config.update_method,
                config.lagrange_heuristic,
                config,
            )
            session.multipliers = multipliers
            solution.update_bounds(primal=session.primal_bound)
        solution.termination = TerminationStatus.MAX_ITERATIONS

    def _log_header(self, logger):
        logger.info(
            '================================================================='
            '======================='
        )
        logger.info(
            '{:^9} | {:^13} | {:^14} | {:^14} | {:^12} | {:^8} | {:^7}'.format(
                'Iteration',
                'Method',
                'Dual Bound',
                'Primal Bound',
                'Residual',
                'Gap',
                'Time(s)',
            )
        )

    def _log_iteration(self, logger, solution, config, residual_norm):
        gap = solution.relative_gap()
        primal = solution.best_primal_bound
        logger.info(
            self.log_formatter.format(
                self.iteration,
                str(config.update_method),
                solution.dual_bound,
                '-' if primal is None else '%.6g' % primal,
                residual_norm,
                '-' if gap is None else '{:.2%}'.format(gap),
                get_main_elapsed_time(self.timing),
            )
        )


def lagrange_solve(graph, **kwds):
    """Solve ``graph`` by dual decomposition.

    Shorthand for ``SolverFactory("dualdecomp.lagrange").solve(graph, **kwds)``.
    """
    return LagrangeDecompositionSolver().solve(graph, **kwds)
