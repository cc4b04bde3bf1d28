"""
Edit variables used to synthesize configuration repairs.
Every edit variable is True when the edit is applied, the solver is
asked (softly) to apply as few edits as possible.
"""

from collections import OrderedDict
from collections import namedtuple
import enum
import logging

import z3


class Category(enum.Enum):
    """Kind of configuration element touched by an edit"""
    ACL = 'ACL'
    STATIC_ROUTE = 'StaticRoute'
    OSPF_EXPORT = 'OspfExport'
    BGP_FILTER = 'BgpFilter'
    REDISTRIBUTION = 'Redistribution'
    ADJACENCY_ENABLE = 'AdjacencyEnable'
    LOCAL_PREF = 'LocalPref'


class EditKind(enum.Enum):
    ADD = 'add'
    REMOVE = 'remove'
    MODIFY = 'modify'


class RepairObjective(enum.Enum):
    """Minimize the number of edits or the number of changed routers"""
    EDITS = 'edits'
    ROUTERS = 'routers'


WEIGHT_KEYS = ['acl', 'bgp', 'ospf', 'enable', 'static', 'filter',
               'redis', 'localpref']
DEFAULT_WEIGHT = 1
ROUTER_UNCHANGED = 'RouterUnchanged'


class RepairWeights(object):
    """Weight of the soft constraint of each kind of edit"""
    def __init__(self, weights=None):
        weights = weights or {}
        for key in weights:
            if key not in WEIGHT_KEYS:
                raise ValueError("Unknown repair weight '%s', expected one of %s"
                                 % (key, WEIGHT_KEYS))
        self._weights = dict((key, weights.get(key, DEFAULT_WEIGHT))
                             for key in WEIGHT_KEYS)

    def get(self, key):
        return self._weights[key]

    def __repr__(self):
        return "RepairWeights(%s)" % self._weights


# A registered variable, `configured` is only set for MODIFY edits
EditVar = namedtuple('EditVar', ['var', 'soft_name', 'configured'])

# An edit found in a model
Edit = namedtuple('Edit', ['router', 'category', 'rule_id', 'kind',
                           'soft_name', 'value'])


class RepairRegistry(object):
    """
    router -> category -> rule id -> {EditKind: EditVar}
    Shared by all the slices of an encoder, an edit registered twice
    under the same rule id is the same variable.
    """

    def __init__(self, ctx, weights=None, objective=RepairObjective.EDITS,
                 frozen_routers=None, encoder_id=0):
        self.log = logging.getLogger('%s.%s' % (
            self.__module__, self.__class__.__name__))
        assert isinstance(objective, RepairObjective)
        self.ctx = ctx
        self.weights = weights if isinstance(weights, RepairWeights) \
            else RepairWeights(weights)
        self.objective = objective
        self.frozen_routers = set(frozen_routers or [])
        self.encoder_id = encoder_id
        self._edits = OrderedDict()
        self._router_unchanged = OrderedDict()

    def is_frozen(self, router):
        """Frozen routers are never edited"""
        return router in self.frozen_routers

    def lookup(self, router, category, rule_id, kind):
        return self._edits.get(router, {}).get(category, {}).get(
            rule_id, {}).get(kind)

    def _register(self, router, category, rule_id, kind, edit_var):
        rules = self._edits.setdefault(router, OrderedDict()).setdefault(
            category, OrderedDict())
        rules.setdefault(rule_id, OrderedDict())[kind] = edit_var

    def _unchanged(self, router, expr, weight_key, soft_name):
        if self.objective == RepairObjective.EDITS:
            self.ctx.add_soft(expr, self.weights.get(weight_key), soft_name)
        else:
            self._router_unchanged.setdefault(router, []).append(expr)

    def edit_var(self, router, category, rule_id, kind, weight_key, soft_name):
        """
        The boolean edit variable for the rule, created on first use
        :return: z3 Bool, True when the edit is applied
        """
        assert not self.is_frozen(router), "Router %s is frozen" % router
        existing = self.lookup(router, category, rule_id, kind)
        if existing is not None:
            return existing.var
        name = "%d_%s_%s_%s" % (self.encoder_id, soft_name, router, rule_id)
        var = self.ctx.create_bool(name)
        self._register(router, category, rule_id, kind,
                       EditVar(var, soft_name, None))
        self._unchanged(router, z3.Not(var), weight_key, soft_name)
        self.log.debug("New edit variable %s", name)
        return var

    def modify_var(self, router, category, rule_id, configured, domain,
                   weight_key, soft_name):
        """
        An integer replacing a configured constant, restricted to `domain`
        :return: z3 Int
        """
        assert not self.is_frozen(router), "Router %s is frozen" % router
        existing = self.lookup(router, category, rule_id, EditKind.MODIFY)
        if existing is not None:
            return existing.var
        name = "%d_%s_%s_%s" % (self.encoder_id, soft_name, router, rule_id)
        var = self.ctx.create_int(name)
        values = sorted(set(domain) | set([configured]))
        self.ctx.add(z3.Or([var == value for value in values]))
        self._register(router, category, rule_id, EditKind.MODIFY,
                       EditVar(var, soft_name, configured))
        self._unchanged(router, var == configured, weight_key, soft_name)
        return var

    def finalize(self):
        """Add the per router soft constraints when minimizing routers"""
        if self.objective != RepairObjective.ROUTERS:
            return
        for router, exprs in self._router_unchanged.items():
            self.ctx.add_soft(z3.And(exprs), DEFAULT_WEIGHT, ROUTER_UNCHANGED)

    def entries_iter(self):
        """yields router, category, rule_id, kind, EditVar"""
        for router, categories in self._edits.items():
            for category, rules in categories.items():
                for rule_id, kinds in rules.items():
                    for kind, edit_var in kinds.items():
                        yield router, category, rule_id, kind, edit_var

    def applied_edits(self, model):
        """The edits applied in the given model"""
        edits = []
        for router, category, rule_id, kind, edit_var in self.entries_iter():
            value = model.eval(edit_var.var, model_completion=True)
            if kind == EditKind.MODIFY:
                value = value.as_long()
                if value == edit_var.configured:
                    continue
            elif not z3.is_true(value):
                continue
            else:
                value = True
            edits.append(Edit(router, category, rule_id, kind,
                              edit_var.soft_name, value))
        return edits

    def __len__(self):
        return len(list(self.entries_iter()))
