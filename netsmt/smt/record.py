"""
Symbolic route records, one per protocol and logical edge
"""

from collections import namedtuple

import z3

from netsmt.common import MAX_ADMIN_DISTANCE
from netsmt.common import MAX_ENV_METRIC
from netsmt.common import MAX_LOCAL_PREF
from netsmt.common import MAX_MED
from netsmt.common import MAX_METRIC
from netsmt.common import MAX_PREFIX_LENGTH
from netsmt.common import Protocol


# Names of the optional attributes of a record
PREFIX_LENGTH = 'prefix_length'
ADMIN_DIST = 'admin_dist'
LOCAL_PREF = 'local_pref'
METRIC = 'metric'
MED = 'med'
IGP_METRIC = 'igp_metric'
ROUTER_ID = 'router_id'
CLIENT_ID = 'client_id'
OSPF_AREA = 'ospf_area'
OSPF_TYPE = 'ospf_type'
BGP_INTERNAL = 'bgp_internal'
HISTORY = 'history'
COMMUNITIES = 'communities'

INT_ATTRIBUTES = [PREFIX_LENGTH, ADMIN_DIST, LOCAL_PREF, METRIC, MED,
                  IGP_METRIC, ROUTER_ID, CLIENT_ID]
ALL_ATTRIBUTES = INT_ATTRIBUTES + [OSPF_AREA, OSPF_TYPE, BGP_INTERNAL,
                                   HISTORY, COMMUNITIES]

OSPF_TYPE_BITS = 2


class Omitted(object):
    """Marks an attribute that was removed from a record"""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Omitted, cls).__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return 'OMITTED'


OMITTED = Omitted()


def is_omitted(value):
    """Return true if the attribute is not part of the record"""
    return value is OMITTED


class RecordRole(object):
    IMPORT = 'IMPORT'
    EXPORT = 'EXPORT'
    SINGLE_EXPORT = 'SINGLE-EXPORT'
    BEST = 'BEST'
    REDISTRIBUTED = 'Redistributed'


class RecordKey(namedtuple('RecordKey', ['encoder_id', 'slice_name', 'router',
                                         'protocol', 'role', 'iface'])):
    """Structured identity of a record, rendered as the solver name"""
    __slots__ = ()

    @property
    def name(self):
        if self.role == RecordRole.REDISTRIBUTED:
            return "%d_%s%s_%s_%s" % (self.encoder_id, self.slice_name,
                                      self.router, self.protocol.value,
                                      self.role)
        return "%d_%s%s_%s_%s_%s" % (self.encoder_id, self.slice_name,
                                     self.router, self.protocol.value,
                                     self.role, self.iface)

    def __str__(self):
        return self.name


def num_bits(size):
    """Bits needed to encode `size` distinct values"""
    return max(1, (size - 1).bit_length())


class SymbolicEnum(object):
    """
    A finite set of values encoded as a small bitvector.
    An enum over a single value needs no variable at all.
    """
    def __init__(self, ctx, name, values):
        assert values, "Enum %s has no values" % name
        self.ctx = ctx
        self.name = name
        self.values = list(values)
        if len(self.values) > 1:
            self.bits = num_bits(len(self.values))
            self.bitvec = ctx.create_bitvec(name, self.bits)
        else:
            self.bits = 0
            self.bitvec = None

    def check_if_value(self, value):
        """True if the enum takes the given value"""
        if value not in self.values:
            return self.ctx.false()
        if self.bitvec is None:
            return self.ctx.true()
        index = self.values.index(value)
        return self.bitvec == z3.BitVecVal(index, self.bits, ctx=self.ctx.z3_ctx)

    def is_default_value(self):
        return self.check_if_value(self.values[0])

    def domain(self):
        """Restrict the bitvector to the encoded values"""
        if self.bitvec is None or len(self.values) == 2 ** self.bits:
            return self.ctx.true()
        return z3.ULT(self.bitvec, z3.BitVecVal(len(self.values), self.bits,
                                                ctx=self.ctx.z3_ctx))

    def mk_eq(self, other):
        if self.bitvec is not None and other.bitvec is not None \
                and self.values == other.values:
            return self.bitvec == other.bitvec
        same = [z3.And(self.check_if_value(v), other.check_if_value(v))
                for v in self.values if v in other.values]
        if not same:
            return self.ctx.false()
        return z3.Or(same)

    def get_value(self, model):
        if self.bitvec is None:
            return self.values[0]
        index = model.eval(self.bitvec, model_completion=True).as_long()
        if index >= len(self.values):
            return None
        return self.values[index]

    def __repr__(self):
        return "SymbolicEnum(%s, %s)" % (self.name, self.values)


class RouteRecord(object):
    """
    Symbolic route advertisement. Every optional attribute
    either holds a z3 term or OMITTED.
    """
    def __init__(self, ctx, key, attributes, history_values=None,
                 areas=None, communities=None, is_used=True, is_env=False):
        """
        :param ctx: SolverContext
        :param key: RecordKey
        :param attributes: set of the attribute names to allocate
        :param history_values: list of Protocols for the history enum
        :param areas: list of the OSPF areas in the network
        :param communities: list of Community and CommunityRegex
        :param is_used: False for records only kept as placeholders
        :param is_env: True for announcements of external peers
        """
        self.ctx = ctx
        self.key = key
        self.name = key.name
        self.proto = key.protocol
        self.router = key.router
        self.is_used = is_used
        self.is_env = is_env
        self.is_best = key.role == RecordRole.BEST
        self.is_export = key.role in [RecordRole.EXPORT,
                                      RecordRole.SINGLE_EXPORT]
        self.permitted = ctx.create_bool("%s_permitted" % self.name)

        def int_attr(attr, suffix):
            if attr in attributes:
                return ctx.create_int("%s_%s" % (self.name, suffix))
            return OMITTED

        self.prefix_length = int_attr(PREFIX_LENGTH, 'prefixLength')
        self.admin_dist = int_attr(ADMIN_DIST, 'adminDist')
        self.local_pref = int_attr(LOCAL_PREF, 'localPref')
        self.metric = int_attr(METRIC, 'metric')
        self.med = int_attr(MED, 'med')
        self.igp_metric = int_attr(IGP_METRIC, 'igpMetric')
        self.router_id = int_attr(ROUTER_ID, 'routerID')
        self.client_id = int_attr(CLIENT_ID, 'clientId')

        if BGP_INTERNAL in attributes:
            self.bgp_internal = ctx.create_bool("%s_bgpInternal" % self.name)
        else:
            self.bgp_internal = OMITTED

        if OSPF_TYPE in attributes:
            self.ospf_type = ctx.create_bitvec("%s_ospfType" % self.name,
                                               OSPF_TYPE_BITS)
        else:
            self.ospf_type = OMITTED

        if OSPF_AREA in attributes and areas:
            self.ospf_area = SymbolicEnum(ctx, "%s_ospfArea" % self.name, areas)
        else:
            self.ospf_area = OMITTED

        if HISTORY in attributes and history_values:
            self.history = SymbolicEnum(ctx, "%s_history" % self.name,
                                        history_values)
        else:
            self.history = OMITTED

        self.communities = {}
        if COMMUNITIES in attributes:
            for community in communities or []:
                var_name = "%s_community_%s" % (self.name, community.name)
                self.communities[community] = ctx.create_bool(var_name)

    @classmethod
    def placeholder(cls, ctx, key):
        """A record that only carries the permitted flag"""
        return cls(ctx, key, attributes=set(), is_used=False)

    def get(self, attr):
        return getattr(self, attr)

    def has(self, attr):
        if attr == COMMUNITIES:
            return len(self.communities) > 0
        return not is_omitted(getattr(self, attr))

    def protocol_is(self, proto):
        """
        True if the route was learned by the given protocol,
        uses the history for overall best records.
        """
        if not is_omitted(self.history):
            return self.history.check_if_value(proto)
        return z3.BoolVal(self.proto == proto, ctx=self.ctx.z3_ctx)

    def unused_defaults(self):
        """A record that is not permitted has all its attributes zeroed"""
        ctx = self.ctx
        values = []
        for attr in INT_ATTRIBUTES:
            var = getattr(self, attr)
            if not is_omitted(var):
                values.append(var == 0)
        if not is_omitted(self.ospf_type):
            values.append(self.ospf_type == z3.BitVecVal(0, OSPF_TYPE_BITS,
                                                         ctx=ctx.z3_ctx))
        if not is_omitted(self.ospf_area):
            values.append(self.ospf_area.is_default_value())
        if not is_omitted(self.history):
            values.append(self.history.is_default_value())
        if not is_omitted(self.bgp_internal):
            values.append(z3.Not(self.bgp_internal))
        for var in self.communities.values():
            values.append(z3.Not(var))
        if not values:
            return ctx.true()
        return z3.Implies(z3.Not(self.permitted), z3.And(values))

    def bounds(self):
        """Range constraints of the integer attributes"""
        constraints = []

        def lower_upper(var, upper):
            if is_omitted(var):
                return
            constraints.append(var >= 0)
            if upper is not None:
                constraints.append(var < upper)

        lower_upper(self.router_id, None)
        lower_upper(self.client_id, None)
        lower_upper(self.admin_dist, MAX_ADMIN_DISTANCE)
        lower_upper(self.med, MAX_MED)
        lower_upper(self.local_pref, MAX_LOCAL_PREF)
        lower_upper(self.metric, MAX_ENV_METRIC if self.is_env else MAX_METRIC)
        lower_upper(self.igp_metric, None)
        if not is_omitted(self.prefix_length):
            constraints.append(self.prefix_length >= 0)
            constraints.append(self.prefix_length <= MAX_PREFIX_LENGTH)
        for enum_var in [self.ospf_area, self.history]:
            if not is_omitted(enum_var):
                constraints.append(enum_var.domain())
        return constraints

    def to_dict(self, model):
        """Concrete values of the record in the given model"""
        ret = {'permitted': z3.is_true(model.eval(self.permitted,
                                                  model_completion=True))}
        for attr in INT_ATTRIBUTES:
            var = getattr(self, attr)
            if not is_omitted(var):
                ret[attr] = model.eval(var, model_completion=True).as_long()
        if not is_omitted(self.ospf_type):
            ret[OSPF_TYPE] = model.eval(self.ospf_type,
                                        model_completion=True).as_long()
        if not is_omitted(self.bgp_internal):
            ret[BGP_INTERNAL] = z3.is_true(model.eval(self.bgp_internal,
                                                      model_completion=True))
        if not is_omitted(self.ospf_area):
            ret[OSPF_AREA] = self.ospf_area.get_value(model)
        if not is_omitted(self.history):
            ret[HISTORY] = self.history.get_value(model)
        if self.communities:
            ret[COMMUNITIES] = dict(
                (comm, z3.is_true(model.eval(var, model_completion=True)))
                for comm, var in self.communities.items())
        return ret

    def __str__(self):
        return "RouteRecord(%s)" % self.name

    def __repr__(self):
        return self.__str__()
