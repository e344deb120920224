# ____________________________________________________________________________________
#
# Pyomo: Python Optimization Modeling Objects
# Copyright (c) 2008-2026 National Technology and Engineering Solutions of Sandia, LLC
# Under the terms of Contract DE-NA0003525 with National Technology and Engineering
# Solutions of Sandia, LLC, the U.S. Government retains certain rights in this
# software.  This software is distributed under the 3-clause BSD License.
# ____________________________________________________________________________________

"""State owned by one dual decomposition solve."""

from collections import namedtuple

import numpy as np

from pyomo.core import (
    ConcreteModel,
    ConstraintList,
    Objective,
    Reals,
    Var,
    maximize,
)

from dualdecomp.graph import (
    active_objective,
    create_flat_graph_model,
    normalize_graph,
)

NodeTerm = namedtuple(
    'NodeTerm',
    [
        'index',  # multiplier index of the link
        'coef',  # coefficient of the variable in the link
        'var',  # node variable
        'slot',  # occurrence slot (0 or 1) of the variable in the link
    ],
)

# Name of the per-iteration objective added to every node
LAGRANGIAN_OBJECTIVE = '_dualdecomp_objective'


class DecompositionSession:
    """Mutable state of a dual decomposition solve on one ``ModelGraph``.

    The session owns the multiplier vector, the linking-variable value
    matrix, the residuals, the step scale, the cutting-plane master and the
    flattened model. It is created per solve and discarded when the solve
    returns.

    Attributes
    ----------
    graph : ModelGraph
        The graph being solved.
    links : list[LinkConstraint]
        Linking constraints; ``links[k]`` is dualized by ``multipliers[k]``.
    numlinks : int
        Number of multipliers.
    multipliers : numpy.ndarray
        Multiplier vector, shape ``(numlinks,)``.
    values : numpy.ndarray
        Linking-variable values, shape ``(numlinks, 2)``; column ``s`` holds
        the value of the variable in occurrence slot ``s``.
    residuals : numpy.ndarray
        ``values[:, 0] - values[:, 1]``.
    normalization : int
        ``1`` for minimization graphs, ``-1`` for maximization graphs.
    alpha : float
        Step scale.
    dual_bound : float or None
        Aggregate Lagrangian bound of the last iteration (``Zk``).
    primal_bound : float or None
        Last value returned by the Lagrangian heuristic.
    master : ConcreteModel or None
        Cutting-plane master problem.
    cuts : list
        Cuts added to the master, in the order they were generated.
    flat_model : ConcreteModel or None
        Single-model view of the graph used by the heuristics and the
        relaxation-based initialization.
    node_terms : dict[str, list[NodeTerm]]
        Linking terms of each node.
    pristine_objectives : dict[str, Expression]
        Normalized objective expression of each node, saved before any
        dualization.
    """

    def __init__(self, graph, alpha=2.0, master_eta_bound=1e-6):
        self.graph = graph
        self.alpha = alpha
        self.master_eta_bound = master_eta_bound
        self.preprocessed = False
        self.links = []
        self.numlinks = 0
        self.multipliers = np.zeros(0)
        self.values = np.zeros((0, 2))
        self.residuals = np.zeros(0)
        self.normalization = 1
        self.dual_bound = None
        self.primal_bound = None
        self.master = None
        self.cuts = []
        self.flat_model = None
        self.node_terms = {}
        self.pristine_objectives = {}
        self._user_objectives = {}

    def prepare(self):
        """Prepare the graph for dual decomposition.

        Extracts the links, fixes the multiplier-index assignment,
        initializes the multipliers, values and residuals to zero, builds the
        flattened model and the master shell, and records the pristine
        objective and linking terms of every node. Calling it again is a
        no-op.

        Returns
        -------
        bool
            ``True`` if the session was already prepared.
        """
        if self.preprocessed:
            return True

        graph = self.graph
        self.normalization = normalize_graph(graph)
        self.links = graph.link_constraints()
        self.numlinks = len(self.links)
        self.multipliers = np.zeros(self.numlinks)
        self.values = np.zeros((self.numlinks, 2))
        self.residuals = np.zeros(self.numlinks)
        self.flat_model = create_flat_graph_model(graph, self.normalization)
        self.master = self._build_master()
        self.cuts = []

        self.node_terms = {name: [] for name in graph.nodes}
        for name, node in graph.nodes.items():
            obj = active_objective(node)
            self._user_objectives[name] = obj
            self.pristine_objectives[name] = (
                -obj.expr if obj.sense == maximize else obj.expr
            )

        for link in self.links:
            terms = self._ordered_terms(link)
            for slot, (coef, var) in enumerate(terms):
                self.node_terms[graph.node_of(var)].append(
                    NodeTerm(index=link.index, coef=coef, var=var, slot=slot)
                )

        self.preprocessed = True
        return False

    def _ordered_terms(self, link):
        """Validate a link and order its terms by occurrence slot.

        When the two coefficients have opposite signs the positive term takes
        slot 0, so that the residual follows the sign of the link body.
        """
        if len(link.terms) != 2:
            raise ValueError(
                "Linking constraint %s must have exactly two terms (found %s)."
                % (link.index, len(link.terms))
            )
        (coef_a, var_a), (coef_b, var_b) = link.terms
        if self.graph.node_of(var_a) == self.graph.node_of(var_b):
            raise ValueError(
                "Linking constraint %s must span two different nodes." % (link.index,)
            )
        if coef_a < 0 < coef_b:
            return link.terms[::-1]
        return link.terms

    def _build_master(self):
        """Construct the cutting-plane master shell.

        The master maximizes ``eta`` over one variable per multiplier, sign
        restricted like the multipliers themselves. ``eta`` is bounded above
        by ``master_eta_bound`` so the master stays bounded while it holds
        few cuts.
        """
        master = ConcreteModel(name='dualdecomp_master')
        master.eta = Var(domain=Reals, bounds=(None, self.master_eta_bound))
        master.multipliers = Var(range(self.numlinks), domain=Reals)
        for link in self.links:
            lb, ub = self.multiplier_bounds(link)
            master.multipliers[link.index].setlb(lb)
            master.multipliers[link.index].setub(ub)
        master.obj = Objective(expr=master.eta, sense=maximize)
        master.cuts = ConstraintList()
        return master

    def multiplier_bounds(self, link):
        """Sign restriction of the multiplier of ``link``.

        The dualized term ``lambda * body`` enters the normalized
        minimization, so the multiplier of a ``<=`` link is nonnegative and
        that of a ``>=`` link is nonpositive.
        """
        if link.sense == '==':
            return None, None
        if link.sense == '<=':
            return 0, None
        return None, 0

    def project(self, multipliers):
        """Return ``multipliers`` clipped to the sign restrictions of the links."""
        projected = np.array(multipliers, dtype=float)
        for link in self.links:
            lb, ub = self.multiplier_bounds(link)
            if lb is not None:
                projected[link.index] = max(projected[link.index], lb)
            if ub is not None:
                projected[link.index] = min(projected[link.index], ub)
        return projected

    def compute_residuals(self):
        """Recompute ``residuals`` from ``values`` and return them."""
        self.residuals = self.values[:, 0] - self.values[:, 1]
        return self.residuals

    def residual_norm(self):
        return float(np.linalg.norm(self.residuals))

    def restore(self):
        """Remove the per-iteration objectives and reactivate the user's."""
        for name, node in self.graph.nodes.items():
            if node.component(LAGRANGIAN_OBJECTIVE) is not None:
                node.del_component(LAGRANGIAN_OBJECTIVE)
            obj = self._user_objectives.get(name)
            if obj is not None:
                obj.activate()
