# ____________________________________________________________________________________
#
# Pyomo: Python Optimization Modeling Objects
# Copyright (c) 2008-2026 National Technology and Engineering Solutions of Sandia, LLC
# Under the terms of Contract DE-NA0003525 with National Technology and Engineering
# Solutions of Sandia, LLC, the U.S. Government retains certain rights in this
# software.  This software is distributed under the 3-clause BSD License.
# ____________________________________________________________________________________

"""Unit tests for the multiplier update strategies.

Node and master solves are mocked; the dual function probes of the optimal
step are replaced by closed-form curves.
"""

import numpy as np
import pytest
import pyomo.common.unittest as unittest
from unittest import mock

from pyomo.environ import maximize, value
from pyomo.opt import TerminationCondition

from dualdecomp.config_options import _get_lagrange_config
from dualdecomp.enums import UpdateMethod
from dualdecomp.multipliers import (
    UPDATE_METHODS,
    _probe_bound,
    admm,
    bundle,
    cutting_planes,
    initial_relaxation,
    optimal_step,
    step_size,
    subgradient,
    update_multipliers,
)
from dualdecomp.session import DecompositionSession
from dualdecomp.tests.models import (
    BoxLPSolver,
    constant_heuristic,
    optimal_results,
    two_block_graph,
)
from dualdecomp.util import SolverFailure


def _session(dual_bound=None, **kwds):
    session = DecompositionSession(two_block_graph(**kwds))
    session.prepare()
    session.dual_bound = dual_bound
    return session


def _master_solver(eta, multipliers, seen=None):
    """Mock master solver that loads fixed values into the master."""

    def solve(model, **kwds):
        if seen is not None:
            seen.append(
                {j: (model.multipliers[j].lb, model.multipliers[j].ub)
                 for j in model.multipliers}
            )
        model.eta.set_value(eta)
        for j, val in enumerate(multipliers):
            model.multipliers[j].set_value(val)
        return optimal_results()

    solver = mock.MagicMock()
    solver.solve.side_effect = solve
    return solver


class TestStepSize(unittest.TestCase):
    def test_polyak_step(self):
        self.assertAlmostEqual(step_size(2.0, -1.0, 0.0, np.array([-1.0])), 2.0)
        self.assertAlmostEqual(
            step_size(1.0, 10.0, 4.0, np.array([1.0, 2.0])), 6.0 / 5.0
        )

    def test_zero_residual(self):
        self.assertEqual(step_size(2.0, -1.0, 0.0, np.array([0.0, 0.0])), 0.0)


class TestSubgradient(unittest.TestCase):
    def setUp(self):
        self.config = _get_lagrange_config()

    def test_hand_computed_step(self):
        session = _session(dual_bound=-1.0, c2=-1.0)
        new, bound = subgradient(
            session, np.array([0.0]), np.array([-1.0]), constant_heuristic(0.0),
            self.config,
        )
        np.testing.assert_array_almost_equal(new, [-2.0])
        self.assertEqual(bound, 0.0)
        self.assertEqual(session.primal_bound, 0.0)

    def test_inequality_multiplier_is_projected(self):
        session = _session(dual_bound=-1.0, c2=-1.0, link='<=')
        new, _ = subgradient(
            session, np.array([0.0]), np.array([-1.0]), constant_heuristic(0.0),
            self.config,
        )
        np.testing.assert_array_equal(new, [0.0])

    def test_converged_residual_keeps_multipliers(self):
        session = _session(dual_bound=3.0)
        new, _ = subgradient(
            session, np.array([1.5]), np.array([0.0]), constant_heuristic(5.0),
            self.config,
        )
        np.testing.assert_array_equal(new, [1.5])


class TestOptimalStep(unittest.TestCase):
    def setUp(self):
        self.config = _get_lagrange_config()

    def _run(self, curve, session):
        probe = mock.MagicMock(
            side_effect=lambda s, lam, res, step, trial, config: curve(trial)
        )
        with mock.patch("dualdecomp.multipliers._probe_bound", probe):
            new, bound = optimal_step(
                session, np.array([0.0]), np.array([1.0]), constant_heuristic(1.0),
                self.config,
            )
        return new, bound, probe

    def test_secant_intersection(self):
        session = _session(dual_bound=0.0)
        new, bound, probe = self._run(lambda t: t * (2.0 - t), session)
        # secants through (0, 0.01) and (2, 1.99) of t*(2-t) meet at t = 1
        np.testing.assert_array_almost_equal(new, [1.0])
        self.assertEqual(bound, 1.0)
        self.assertEqual(probe.call_count, 3)

    def test_doubling_cap_falls_back_to_subgradient(self):
        self.config.max_step_doublings = 3
        session = _session(dual_bound=0.0)
        new, _, probe = self._run(lambda t: -t, session)
        self.assertEqual(probe.call_count, 1 + 2 * 4)
        trials = [c.args[4] for c in probe.call_args_list]
        self.assertEqual(trials[1::2], [2.0, 4.0, 8.0, 16.0])
        # alpha * step * res with step = |0 - 1| / 1
        np.testing.assert_array_almost_equal(new, [2.0])

    def test_parallel_secants_fall_back_to_subgradient(self):
        session = _session(dual_bound=0.0)
        new, _, probe = self._run(lambda t: t, session)
        self.assertEqual(probe.call_count, 3)
        np.testing.assert_array_almost_equal(new, [2.0])

    def test_probe_bound_leaves_state_untouched(self):
        session = _session(dual_bound=-1.0, c2=-1.0)
        values = session.values.copy()
        with mock.patch(
            "dualdecomp.subproblem.SolverFactory", return_value=BoxLPSolver()
        ):
            bound = _probe_bound(
                session, np.array([0.0]), np.array([-1.0]), 2.0, 1.0,
                self.config,
            )
        # nodes solved at lambda = -2
        self.assertAlmostEqual(bound, -1.0)
        np.testing.assert_array_equal(session.values, values)

    def test_node_values_restored_after_trial_solves(self):
        session = _session(dual_bound=-1.0, c2=-1.0)
        m1 = session.graph.nodes['b1']
        m2 = session.graph.nodes['b2']
        m1.x.set_value(0.25)
        m2.x.set_value(0.75)
        solver = BoxLPSolver()
        with mock.patch("dualdecomp.subproblem.SolverFactory", return_value=solver):
            new, bound = optimal_step(
                session, np.array([0.0]), np.array([-1.0]), constant_heuristic(0.0),
                self.config,
            )
        self.assertGreater(len(solver.models), 0)
        self.assertEqual(bound, 0.0)
        self.assertTrue(np.all(np.isfinite(new)))
        self.assertEqual(m1.x.value, 0.25)
        self.assertEqual(m2.x.value, 0.75)


class TestADMM(unittest.TestCase):
    def test_unit_step(self):
        session = _session(dual_bound=0.0)
        new, bound = admm(
            session, np.array([0.0]), np.array([-0.5]), constant_heuristic(2.0),
            _get_lagrange_config(),
        )
        np.testing.assert_array_almost_equal(new, [-1.0])
        self.assertEqual(bound, 2.0)

    def test_zero_residual(self):
        session = _session(dual_bound=0.0)
        new, _ = admm(
            session, np.array([0.7]), np.array([0.0]), constant_heuristic(2.0),
            _get_lagrange_config(),
        )
        np.testing.assert_array_equal(new, [0.7])


class TestCuttingPlanes(unittest.TestCase):
    def setUp(self):
        self.config = _get_lagrange_config()

    def test_cut_and_master_solution(self):
        session = _session(dual_bound=-1.0, c2=-1.0)
        heuristic = mock.MagicMock()
        solver = _master_solver(eta=-0.5, multipliers=[-1.5])
        with mock.patch(
            "dualdecomp.multipliers.SolverFactory", return_value=solver
        ) as factory:
            new, bound = cutting_planes(
                session, np.array([0.0]), np.array([-1.0]), heuristic, self.config
            )
        heuristic.assert_not_called()
        factory.assert_called_once_with(self.config.solver)
        np.testing.assert_array_equal(new, [-1.5])
        self.assertAlmostEqual(bound, -0.5)

        (cut,) = session.cuts
        master = session.master
        # eta <= -1 - lambda
        master.eta.set_value(-2.0)
        master.multipliers[0].set_value(1.0)
        self.assertTrue(value(cut.expr))
        master.eta.set_value(-1.5)
        self.assertFalse(value(cut.expr))

    def test_cut_count_is_monotonic(self):
        session = _session(dual_bound=-1.0, c2=-1.0)
        solver = _master_solver(eta=0.0, multipliers=[0.0])
        counts = []
        with mock.patch("dualdecomp.multipliers.SolverFactory", return_value=solver):
            for k in range(3):
                session.dual_bound = -1.0 - k
                cutting_planes(
                    session, np.array([0.0]), np.array([-1.0]), None, self.config
                )
                counts.append(len(session.master.cuts))
        self.assertEqual(counts, [1, 2, 3])
        self.assertEqual(len(session.cuts), 3)

    def test_maximize_bound_is_denormalized(self):
        session = _session(dual_bound=2.0, sense=maximize)
        solver = _master_solver(eta=-2.0, multipliers=[0.25])
        with mock.patch("dualdecomp.multipliers.SolverFactory", return_value=solver):
            new, bound = cutting_planes(
                session, np.array([0.0]), np.array([0.5]), None, self.config
            )
        np.testing.assert_array_equal(new, [0.25])
        self.assertAlmostEqual(bound, 2.0)

    def test_master_solver_and_args(self):
        self.config.master_solver = 'glpk'
        self.config.master_solver_args = {'timelimit': 10}
        session = _session(dual_bound=0.0)
        solver = _master_solver(eta=0.0, multipliers=[0.0])
        with mock.patch(
            "dualdecomp.multipliers.SolverFactory", return_value=solver
        ) as factory:
            cutting_planes(session, np.array([0.0]), np.array([1.0]), None, self.config)
        factory.assert_called_once_with('glpk')
        _, kwargs = solver.solve.call_args
        self.assertEqual(kwargs.get('timelimit'), 10)

    def test_unset_multiplier_keeps_previous_value(self):
        session = _session(dual_bound=0.0)
        solver = _master_solver(eta=0.0, multipliers=[])
        with mock.patch("dualdecomp.multipliers.SolverFactory", return_value=solver):
            new, _ = cutting_planes(
                session, np.array([0.3]), np.array([1.0]), None, self.config
            )
        np.testing.assert_array_equal(new, [0.3])

    def test_master_not_built(self):
        session = _session(dual_bound=0.0)
        session.master = None
        with pytest.raises(RuntimeError, match="Master model has not been built."):
            cutting_planes(session, np.array([0.0]), np.array([1.0]), None, self.config)
        with pytest.raises(RuntimeError, match="Master model has not been built."):
            bundle(
                session, np.array([0.0]), np.array([1.0]), constant_heuristic(),
                self.config,
            )

    def test_master_failure(self):
        session = _session(dual_bound=0.0)
        solver = mock.MagicMock()
        solver.solve.return_value = optimal_results(TerminationCondition.unbounded)
        with mock.patch("dualdecomp.multipliers.SolverFactory", return_value=solver):
            with pytest.raises(SolverFailure, match="Master problem") as excinfo:
                cutting_planes(
                    session, np.array([0.0]), np.array([1.0]), None, self.config
                )
        self.assertEqual(
            excinfo.value.termination_condition, TerminationCondition.unbounded
        )


class TestBundle(unittest.TestCase):
    def setUp(self):
        self.config = _get_lagrange_config()

    def test_box_around_current_multipliers(self):
        session = _session(dual_bound=-1.0, c2=-1.0)
        seen = []
        solver = _master_solver(eta=-1.0, multipliers=[-1.5], seen=seen)
        with mock.patch("dualdecomp.multipliers.SolverFactory", return_value=solver):
            new, bound = bundle(
                session, np.array([0.5]), np.array([-1.0]), constant_heuristic(0.0),
                self.config,
            )
        # step = 2 * |-1 - 0| / 1
        self.assertEqual(seen, [{0: (-1.5, 2.5)}])
        np.testing.assert_array_equal(new, [-1.5])
        self.assertAlmostEqual(bound, -1.0)
        self.assertEqual(session.primal_bound, 0.0)
        self.assertEqual(len(session.cuts), 1)

    def test_box_keeps_sign_restriction(self):
        session = _session(dual_bound=-1.0, c2=-1.0, link='<=')
        seen = []
        solver = _master_solver(eta=-1.0, multipliers=[0.0], seen=seen)
        with mock.patch("dualdecomp.multipliers.SolverFactory", return_value=solver):
            bundle(
                session, np.array([0.5]), np.array([-1.0]), constant_heuristic(0.0),
                self.config,
            )
        self.assertEqual(seen, [{0: (0, 2.5)}])


class TestDispatch(unittest.TestCase):
    def test_every_method_has_a_handler(self):
        self.assertEqual(set(UPDATE_METHODS), set(UpdateMethod))

    def test_dispatch_by_name(self):
        session = _session(dual_bound=-1.0, c2=-1.0)
        new, _ = update_multipliers(
            session, np.array([0.0]), np.array([-1.0]), 'subgradient',
            constant_heuristic(0.0), _get_lagrange_config(),
        )
        np.testing.assert_array_almost_equal(new, [-2.0])

    def test_unknown_method(self):
        session = _session(dual_bound=0.0)
        with pytest.raises(ValueError, match="Unrecognized update_method"):
            update_multipliers(
                session, np.array([0.0]), np.array([1.0]), 'newton',
                constant_heuristic(0.0), _get_lagrange_config(),
            )


class TestInitialRelaxation(unittest.TestCase):
    def setUp(self):
        self.config = _get_lagrange_config()

    def test_negated_duals(self):
        session = _session()
        with mock.patch(
            "dualdecomp.multipliers.SolverFactory",
            return_value=BoxLPSolver(duals={0: 3.0}),
        ):
            objective = initial_relaxation(session, self.config)
        np.testing.assert_array_equal(session.multipliers, [-3.0])
        self.assertAlmostEqual(objective, 0.0)
        # the relaxation is solved on a clone
        self.assertIsNone(session.flat_model.component('dual'))

    def test_inequality_duals_are_projected(self):
        session = _session(link='<=')
        with mock.patch(
            "dualdecomp.multipliers.SolverFactory",
            return_value=BoxLPSolver(duals={0: 3.0}),
        ):
            initial_relaxation(session, self.config)
        np.testing.assert_array_equal(session.multipliers, [0.0])

    def test_maximize_objective(self):
        session = _session(sense=maximize)
        with mock.patch(
            "dualdecomp.multipliers.SolverFactory",
            return_value=BoxLPSolver(duals={0: 0.0}),
        ):
            objective = initial_relaxation(session, self.config)
        self.assertAlmostEqual(objective, 2.0)

    def test_missing_dual(self):
        session = _session()
        with mock.patch(
            "dualdecomp.multipliers.SolverFactory", return_value=BoxLPSolver()
        ):
            with pytest.raises(SolverFailure, match="No dual value"):
                initial_relaxation(session, self.config)

    def test_relaxation_failure(self):
        session = _session()
        solver = BoxLPSolver(term_cond=TerminationCondition.infeasible)
        with mock.patch("dualdecomp.multipliers.SolverFactory", return_value=solver):
            with pytest.raises(SolverFailure, match="LP relaxation"):
                initial_relaxation(session, self.config)


if __name__ == '__main__':
    unittest.main()
