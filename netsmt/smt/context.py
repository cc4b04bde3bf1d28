#!/usr/bin/env python

"""
Helper class to keep track of SMT vars and constraints
"""

import itertools
import logging
from timeit import default_timer as timer

import z3


# z3 id of the objective all the soft constraints belong to
SOFT_OBJECTIVE = 'repair'


class SolverContext(object):
    """
    Keep track of all variables and constraints to make sure they're unique,
    and hand them to the Z3 solver.
    """

    def __init__(self, z3_ctx=None, optimize=False):
        """
        :param z3_ctx: z3.Context, default to the main z3 context
        :param optimize: use z3.Optimize to support soft constraints
        """
        self.log = logging.getLogger('%s.%s' % (
            self.__module__, self.__class__.__name__))
        self.z3_ctx = z3_ctx or z3.main_ctx()
        self._vars = {}  # Map a name to a var
        self._tracked = {}  # Map a name to constraints
        self._soft = []  # (constraint, weight, category)
        self._next_constnum = itertools.count(0)
        self._optimize = optimize
        if optimize:
            self.solver = z3.Optimize(ctx=self.z3_ctx)
        else:
            self.solver = z3.Solver(ctx=self.z3_ctx)
        self.model = None

    @property
    def is_optimize(self):
        return self._optimize

    def true(self):
        return z3.BoolVal(True, ctx=self.z3_ctx)

    def false(self):
        return z3.BoolVal(False, ctx=self.z3_ctx)

    def int_val(self, value):
        return z3.IntVal(value, ctx=self.z3_ctx)

    def _register_var(self, name, var):
        """
        Register a new SMT variable with a given name.
        Raises ValueError is the variable is duplicated
        """
        if name in self._vars:
            err = "Variable with name %s is already registered" % name
            raise ValueError(err)
        self._vars[name] = var
        return var

    def create_bool(self, name):
        return self._register_var(name, z3.Bool(name, ctx=self.z3_ctx))

    def create_int(self, name):
        return self._register_var(name, z3.Int(name, ctx=self.z3_ctx))

    def create_bitvec(self, name, bits):
        assert bits > 0
        return self._register_var(name, z3.BitVec(name, bits, ctx=self.z3_ctx))

    def has_var(self, name):
        return name in self._vars

    def get_var(self, name):
        """Get the z3 var registered with the given name"""
        if name not in self._vars:
            raise ValueError("Variable: %s was not registered before" % name)
        return self._vars[name]

    def variables_itr(self):
        """Iterate over the registered variables, yields name, var"""
        for name, var in self._vars.items():
            yield name, var

    def fresh_constraint_name(self, prefix=None):
        """Creates a fresh name for tracking the next constraint"""
        if not prefix:
            prefix = 'Constrain_'
        name = "%s%d" % (prefix, next(self._next_constnum))
        while name in self._tracked:
            name = "%s%d" % (prefix, next(self._next_constnum))
        return name

    def add(self, constraint, name=None):
        """
        Add a hard constraint to the solver
        :return: the name the constraint is tracked with
        """
        if name is None:
            name = self.fresh_constraint_name()
        if name in self._tracked:
            raise ValueError("Constraint %s is already registered" % name)
        self._tracked[name] = constraint
        self.solver.add(constraint)
        return name

    def add_soft(self, constraint, weight, category):
        """
        Add a weighted soft constraint, only when solving with z3.Optimize
        :param category: human readable tag, e.g., "StaticAdd"
        """
        if not self._optimize:
            raise ValueError("Soft constraints require an optimizing solver")
        self._soft.append((constraint, weight, category))
        # One objective, the weights of all categories are summed
        self.solver.add_soft(constraint, weight, SOFT_OBJECTIVE)

    def get_constraint(self, name):
        """Get the constraints tracked by the given name"""
        if name not in self._tracked:
            raise ValueError("Constraint: %s was not registered before" % name)
        return self._tracked[name]

    def constraints_itr(self):
        """
        Iterate over all the registered constraints
        yields name, constraint
        """
        for name, value in self._tracked.items():
            yield name, value

    def soft_constraints_itr(self):
        for soft in self._soft:
            yield soft

    def check(self):
        """Run the solver, the model is kept if the result is SAT"""
        self.log.info("Total Number of variables: %d", len(self._vars))
        self.log.info("Total Number of Constraints: %d", len(self._tracked))
        self.log.info("Total Number of soft Constraints: %d", len(self._soft))
        t1 = timer()
        ret = self.solver.check()
        t2 = timer()
        self.log.info("Z3 check time: %f", t2 - t1)
        self.model = self.solver.model() if ret == z3.sat else None
        return ret

    def eval(self, term, model=None):
        """Value of the term in the (given or last) model"""
        if model is None:
            model = self.model
        assert model is not None, "No model is available"
        return model.eval(term, model_completion=True)
