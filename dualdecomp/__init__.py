# ____________________________________________________________________________________
#
# Pyomo: Python Optimization Modeling Objects
# Copyright (c) 2008-2026 National Technology and Engineering Solutions of Sandia, LLC
# Under the terms of Contract DE-NA0003525 with National Technology and Engineering
# Solutions of Sandia, LLC, the U.S. Government retains certain rights in this
# software.  This software is distributed under the 3-clause BSD License.
# ____________________________________________________________________________________

# Loads the Pyomo solver and transformation plugins
import pyomo.environ  # noqa: F401

# Importing the solver module registers 'dualdecomp.lagrange' with SolverFactory
from dualdecomp.enums import (
    Category,
    InitialMultipliers,
    TerminationStatus,
    UpdateMethod,
    Variant,
)
from dualdecomp.graph import ModelGraph, create_flat_graph_model, normalize_graph
from dualdecomp.heuristics import fix_binaries, fix_integers
from dualdecomp.lagrange import LagrangeDecompositionSolver, lagrange_solve
from dualdecomp.results import IterationRecord, LagrangeSolution
from dualdecomp.session import DecompositionSession
from dualdecomp.util import SolverFailure

__version__ = '0.1.0'
