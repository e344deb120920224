# ____________________________________________________________________________________
#
# Pyomo: Python Optimization Modeling Objects
# Copyright (c) 2008-2026 National Technology and Engineering Solutions of Sandia, LLC
# Under the terms of Contract DE-NA0003525 with National Technology and Engineering
# Solutions of Sandia, LLC, the U.S. Government retains certain rights in this
# software.  This software is distributed under the 3-clause BSD License.
# ____________________________________________________________________________________

"""Block-structured model graphs.

A ``ModelGraph`` is a collection of independent Pyomo models (the nodes)
coupled by linear linking constraints whose terms live in different nodes.
"""

from collections import namedtuple

from pyomo.core import (
    ConcreteModel,
    ConstraintList,
    Objective,
    minimize,
    maximize,
    value,
)
from pyomo.core.base import ComponentUID
from pyomo.repn import generate_standard_repn

LinkConstraint = namedtuple(
    'LinkConstraint',
    [
        'index',  # multiplier index assigned to this link
        'terms',  # tuple of (coefficient, variable) pairs
        'sense',  # '==', '<=' or '>='
        'rhs',  # right-hand side after moving the body constant over
    ],
)

# Component names used on the flattened model
FLAT_OBJECTIVE = 'flat_objective'
FLAT_LINKS = 'linking_constraints'
_RESERVED_NAMES = frozenset({FLAT_OBJECTIVE, FLAT_LINKS})


def active_objective(model):
    """Return the single active objective of ``model``.

    Raises
    ------
    ValueError
        If the model does not have exactly one active objective.
    """
    objectives = list(model.component_data_objects(Objective, active=True))
    if len(objectives) != 1:
        raise ValueError(
            "Model %s must have exactly one active objective (found %s)."
            % (model.name, len(objectives))
        )
    return objectives[0]


class ModelGraph:
    """Graph of optimization subproblems coupled by linking constraints.

    Attributes
    ----------
    nodes : dict[str, ConcreteModel]
        Node models in insertion order.
    link_model : ConcreteModel
        Container for the linking constraints. It is never solved: its
        constraints reference variables owned by the node models.
    """

    def __init__(self, name='ModelGraph'):
        self.name = name
        self.nodes = {}
        self.link_model = ConcreteModel(name=name + '_links')
        self.link_model.links = ConstraintList()
        self._owner = {}

    def add_node(self, model=None, name=None):
        """Add a node to the graph and return its model.

        Parameters
        ----------
        model : ConcreteModel, optional
            Model to register. A new empty ``ConcreteModel`` is created when
            omitted.
        name : str, optional
            Node name. Defaults to ``"node<k>"``.
        """
        if name is None:
            name = 'node%s' % (len(self.nodes) + 1)
        if name in self.nodes:
            raise ValueError("Duplicate node name %r." % (name,))
        if name in _RESERVED_NAMES:
            raise ValueError("Node name %r is reserved." % (name,))
        if model is None:
            model = ConcreteModel(name=name)
        self.nodes[name] = model
        self._owner[id(model)] = name
        return model

    def add_link(self, expr):
        """Add a linking constraint over variables of different nodes."""
        return self.link_model.links.add(expr)

    def node_of(self, var):
        """Return the name of the node owning ``var``."""
        name = self._owner.get(id(var.model()))
        if name is None:
            raise ValueError(
                "Variable %s does not belong to any node of graph %s."
                % (var.name, self.name)
            )
        return name

    def link_constraints(self):
        """Extract the linking constraints.

        Returns
        -------
        list[LinkConstraint]
            One record per active linking constraint, indexed in the order
            the links were added.

        Raises
        ------
        ValueError
            If a linking constraint is not linear.
        """
        links = []
        for con in self.link_model.links.values():
            if not con.active:
                continue
            repn = generate_standard_repn(con.body, compute_values=True)
            if not repn.is_linear():
                raise ValueError(
                    "Linking constraint %s must be linear." % (con.name,)
                )
            if con.equality:
                sense, rhs = "==", value(con.upper)
            elif con.has_ub() and not con.has_lb():
                sense, rhs = "<=", value(con.upper)
            elif con.has_lb() and not con.has_ub():
                sense, rhs = ">=", value(con.lower)
            else:
                raise ValueError(
                    "Ranged linking constraint %s is not supported." % (con.name,)
                )
            terms = tuple(
                (float(coef), var)
                for coef, var in zip(repn.linear_coefs, repn.linear_vars)
            )
            links.append(
                LinkConstraint(
                    index=len(links),
                    terms=terms,
                    sense=sense,
                    rhs=float(rhs) - float(repn.constant),
                )
            )
        return links


def normalize_graph(graph):
    """Return the normalization scalar of the graph.

    ``1`` when every node minimizes and ``-1`` when every node maximizes.
    Objectives are later negated by this factor so every node is solved as a
    minimization.
    """
    senses = {active_objective(node).sense for node in graph.nodes.values()}
    if senses == {minimize}:
        return 1
    if senses == {maximize}:
        return -1
    if not senses:
        raise ValueError("Graph %s has no nodes." % (graph.name,))
    raise ValueError(
        "All node objectives of graph %s must share the same sense." % (graph.name,)
    )


def find_flat_var(flat_model, graph, var):
    """Return the copy of node variable ``var`` on the flattened model."""
    name = graph.node_of(var)
    cuid = ComponentUID(var, context=graph.nodes[name])
    return cuid.find_component_on(flat_model.component(name))


def create_flat_graph_model(graph, normalization=None):
    """Build a single Pyomo model from all the nodes of ``graph``.

    Every node is cloned onto the flat model under its node name, node
    objectives are deactivated and replaced by one minimization objective
    (the sum of the normalized node objectives), and the linking constraints
    are re-created over the cloned variables.

    Parameters
    ----------
    graph : ModelGraph
        Graph to flatten.
    normalization : int, optional
        Normalization scalar; computed with ``normalize_graph`` when omitted.

    Returns
    -------
    ConcreteModel
        The flattened model. ``flat.linking_constraints[k + 1]`` is the copy
        of the link with multiplier index ``k``.
    """
    if normalization is None:
        normalization = normalize_graph(graph)

    flat = ConcreteModel(name=graph.name + '_flat')
    node_objectives = []
    for name, node in graph.nodes.items():
        flat.add_component(name, node.clone())
        obj = active_objective(flat.component(name))
        node_objectives.append(normalization * obj.expr)
        obj.deactivate()

    flat.add_component(
        FLAT_OBJECTIVE, Objective(expr=sum(node_objectives), sense=minimize)
    )

    linking = ConstraintList()
    flat.add_component(FLAT_LINKS, linking)
    for link in graph.link_constraints():
        body = sum(
            coef * find_flat_var(flat, graph, var) for coef, var in link.terms
        )
        if link.sense == '==':
            linking.add(body == link.rhs)
        elif link.sense == '<=':
            linking.add(body <= link.rhs)
        else:
            linking.add(body >= link.rhs)
    return flat


def flat_link_constraint(flat_model, index):
    """Return the flat copy of the link with multiplier index ``index``."""
    return flat_model.component(FLAT_LINKS)[index + 1]
