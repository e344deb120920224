# ____________________________________________________________________________________
#
# Pyomo: Python Optimization Modeling Objects
# Copyright (c) 2008-2026 National Technology and Engineering Solutions of Sandia, LLC
# Under the terms of Contract DE-NA0003525 with National Technology and Engineering
# Solutions of Sandia, LLC, the U.S. Government retains certain rights in this
# software.  This software is distributed under the 3-clause BSD License.
# ____________________________________________________________________________________

"""Configuration options of the dual decomposition solver."""

from pyomo.common.config import (
    ConfigBlock,
    ConfigValue,
    In,
    NonNegativeFloat,
    NonNegativeInt,
    PositiveFloat,
    PositiveInt,
)
from pyomo.contrib.gdpopt.util import a_logger

from dualdecomp.enums import InitialMultipliers, UpdateMethod
from dualdecomp.heuristics import fix_binaries

_DEFAULT_SOLVER = 'appsi_highs'


def _a_callable(val):
    if not callable(val):
        raise ValueError("Expected a callable, got %r" % (val,))
    return val


def _add_iteration_configs(CONFIG):
    CONFIG.declare(
        "max_iterations",
        ConfigValue(
            default=10,
            domain=PositiveInt,
            description="Iteration limit",
            doc="Number of iterations after which the solver terminates with "
            "status 'Max Iterations'.",
        ),
    )
    CONFIG.declare(
        "time_limit",
        ConfigValue(
            default=3600,
            domain=PositiveFloat,
            description="Time limit (seconds, default=3600)",
            doc="Seconds allowed until terminated. The limit is checked at the "
            "start of every iteration; a running iteration is never "
            "interrupted.",
        ),
    )
    CONFIG.declare(
        "epsilon",
        ConfigValue(
            default=1e-3,
            domain=NonNegativeFloat,
            description="Residual tolerance",
            doc="The solver terminates with status 'Optimal' once the norm of "
            "the residual vector is below this value.",
        ),
    )


def _add_multiplier_configs(CONFIG):
    CONFIG.declare(
        "update_method",
        ConfigValue(
            default=UpdateMethod.SUBGRADIENT,
            domain=In(UpdateMethod),
            description="Multiplier update method",
            doc="One of 'subgradient', 'optimalstep', 'ADMM', 'cuttingplanes' "
            "or 'bundle'.",
        ),
    )
    CONFIG.declare(
        "alpha",
        ConfigValue(
            default=2.0,
            domain=PositiveFloat,
            description="Initial step scale",
        ),
    )
    CONFIG.declare(
        "initial_multipliers",
        ConfigValue(
            default=InitialMultipliers.ZERO,
            domain=In(InitialMultipliers),
            description="Multiplier initialization",
            doc="'zero' starts from zero multipliers, 'relaxation' from the "
            "duals of the LP relaxation of the flattened model.",
        ),
    )
    CONFIG.declare(
        "lagrange_heuristic",
        ConfigValue(
            default=fix_binaries,
            domain=_a_callable,
            description="Lagrangian heuristic",
            doc="Callable heuristic(session, config) returning a primal "
            "bound in the sense of the original graph.",
        ),
    )
    CONFIG.declare(
        "max_step_doublings",
        ConfigValue(
            default=10,
            domain=NonNegativeInt,
            description="Optimal step doubling limit",
            doc="Number of times the optimal step search may double its probe "
            "before falling back to the subgradient step.",
        ),
    )
    CONFIG.declare(
        "master_eta_bound",
        ConfigValue(
            default=1e-6,
            domain=float,
            description="Upper bound of the master epigraph variable",
        ),
    )


def _add_solver_configs(CONFIG):
    CONFIG.declare(
        "solver",
        ConfigValue(
            default=_DEFAULT_SOLVER,
            domain=str,
            description="Solver for the nodes and the flattened model",
            doc="Name of the Pyomo solver used for the node subproblems, the "
            "Lagrangian heuristic and the LP relaxation. The ADMM update "
            "requires a solver that accepts quadratic objectives and is rejected "
            "with the linear-only 'appsi_highs', 'highs', 'glpk' and 'cbc'.",
        ),
    )
    CONFIG.declare(
        "solver_args",
        ConfigBlock(
            implicit=True,
            description="Solver options",
            doc="Keyword arguments to send to the solver.",
        ),
    )
    CONFIG.declare(
        "master_solver",
        ConfigValue(
            default=None,
            domain=str,
            description="Solver for the cutting-plane master problem",
            doc="Defaults to the value of 'solver'.",
        ),
    )
    CONFIG.declare(
        "master_solver_args",
        ConfigBlock(
            implicit=True,
            description="Master solver options",
            doc="Keyword arguments to send to the master solver.",
        ),
    )
    CONFIG.declare(
        "tee",
        ConfigValue(
            default=False,
            domain=bool,
            description="Stream solver output to the terminal",
        ),
    )
    CONFIG.declare(
        "logger",
        ConfigValue(
            default='dualdecomp',
            domain=a_logger,
            description="The logger object or name to use for reporting.",
        ),
    )


def _get_lagrange_config():
    CONFIG = ConfigBlock("dualdecomp.lagrange")
    _add_iteration_configs(CONFIG)
    _add_multiplier_configs(CONFIG)
    _add_solver_configs(CONFIG)
    return CONFIG
