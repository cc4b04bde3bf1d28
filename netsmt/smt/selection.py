"""
Equality and preference between route records,
omitted attributes are replaced by the protocol defaults.
"""

import z3

from netsmt.common import DEFAULT_IGP_METRIC
from netsmt.common import DEFAULT_LOCAL_PREF
from netsmt.common import DEFAULT_METRIC
from netsmt.common import DEFAULT_PREFIX_LENGTH
from netsmt.common import IBGP_ADMIN_DISTANCE
from netsmt.common import Protocol
from netsmt.common import default_admin_distance
from netsmt.common import default_med
from netsmt.smt.record import OSPF_TYPE_BITS
from netsmt.smt.record import is_omitted


class RouteComparator(object):
    """
    Encodes the BGP-like decision process:
    prefix length, admin distance, local pref, metric, MED,
    OSPF type, eBGP over iBGP, IGP metric and finally router id.
    """

    def __init__(self, ctx, network_graph, originator_ids=None):
        self.ctx = ctx
        self.network_graph = network_graph
        self.originator_ids = originator_ids or {}

    def default_admin_dist(self, proto, record):
        default = default_admin_distance(proto)
        if proto == Protocol.BGP and record is not None \
                and not is_omitted(record.bgp_internal):
            return z3.If(record.bgp_internal,
                         self.ctx.int_val(IBGP_ADMIN_DISTANCE),
                         self.ctx.int_val(default))
        return self.ctx.int_val(default)

    def _defaults(self, proto, record):
        """(attribute, default, smaller is better) for the ordered fields"""
        ctx = self.ctx
        return [
            ('prefix_length', ctx.int_val(DEFAULT_PREFIX_LENGTH), False),
            ('admin_dist', self.default_admin_dist(proto, record), True),
            ('local_pref', ctx.int_val(DEFAULT_LOCAL_PREF), False),
            ('metric', ctx.int_val(DEFAULT_METRIC), True),
            ('med', ctx.int_val(default_med(proto)), True),
        ]

    def _type_default(self):
        return z3.BitVecVal(0, OSPF_TYPE_BITS, ctx=self.ctx.z3_ctx)

    def _equal_helper(self, best, other, default):
        if is_omitted(best) and is_omitted(other):
            return self.ctx.true()
        if is_omitted(other):
            return best == default
        if is_omitted(best):
            return other == default
        return best == other

    def _resolve(self, best, other, default):
        return (default if is_omitted(best) else best,
                default if is_omitted(other) else other)

    def _better_helper(self, best, other, default, less):
        if is_omitted(best) and is_omitted(other):
            return self.ctx.false()
        best, other = self._resolve(best, other, default)
        if less:
            return best < other
        return best > other

    def _equal_areas(self, router, best, other, edge):
        if edge is None or is_omitted(best.ospf_area):
            return self.ctx.true()
        if not is_omitted(other.ospf_area):
            return best.ospf_area.mk_eq(other.ospf_area)
        area = None
        if not edge.is_abstract:
            area = self.network_graph.get_iface_ospf_area(router, edge.iface)
        if area is not None:
            return best.ospf_area.check_if_value(area)
        return best.ospf_area.is_default_value()

    def _peer_router_id(self, edge):
        if edge is None:
            return self.ctx.int_val(0)
        return self.ctx.int_val(self.network_graph.find_router_id(edge))

    def _equal_ids(self, best, other, edge):
        if is_omitted(other.router_id):
            if is_omitted(best.router_id) or edge is None:
                return self.ctx.true()
            return best.router_id == self._peer_router_id(edge)
        if is_omitted(best.router_id):
            return self.ctx.true()
        return best.router_id == other.router_id

    def _equal_histories(self, best, other):
        if is_omitted(best.history):
            return self.ctx.true()
        if not is_omitted(other.history):
            return best.history.mk_eq(other.history)
        return best.history.check_if_value(other.proto)

    def _bgp_internal(self, record):
        """A record without the flag was never learned over iBGP"""
        if is_omitted(record.bgp_internal):
            return self.ctx.false()
        return record.bgp_internal

    def _equal_bgp_internal(self, best, other):
        if is_omitted(best.bgp_internal) and is_omitted(other.bgp_internal):
            return self.ctx.true()
        return self._bgp_internal(best) == self._bgp_internal(other)

    def _equal_client_ids(self, router, best, other):
        if is_omitted(best.client_id):
            return self.ctx.true()
        if is_omitted(other.client_id):
            return best.client_id == self.originator_ids.get(router, 0)
        return best.client_id == other.client_id

    def _equal_communities(self, best, other):
        eqs = []
        for community, var in best.communities.items():
            if community in other.communities:
                eqs.append(var == other.communities[community])
            else:
                eqs.append(z3.Not(var))
        return eqs

    def equal(self, router, proto, best, other, edge, compare_communities):
        """
        True if `best` and `other` carry the same route
        :param edge: GraphEdge the other record was learned over, or None
        """
        eqs = []
        for attr, default, _ in self._defaults(proto, other):
            eqs.append(self._equal_helper(best.get(attr), other.get(attr), default))
        eqs.append(self._equal_helper(best.igp_metric, other.igp_metric,
                                      self.ctx.int_val(DEFAULT_IGP_METRIC)))
        eqs.append(self._equal_helper(best.ospf_type, other.ospf_type,
                                      self._type_default()))
        eqs.append(self._equal_areas(router, best, other, edge))
        eqs.append(self._equal_ids(best, other, edge))
        eqs.append(self._equal_histories(best, other))
        eqs.append(self._equal_bgp_internal(best, other))
        eqs.append(self._equal_client_ids(router, best, other))
        if compare_communities:
            eqs.extend(self._equal_communities(best, other))
        return z3.And(eqs)

    def _tie_break(self, best, other, edge):
        if not is_omitted(other.router_id):
            if is_omitted(best.router_id):
                return self.ctx.true()
            return best.router_id <= other.router_id
        if not is_omitted(best.router_id):
            return best.router_id <= self._peer_router_id(edge)
        return self.ctx.true()

    def _internal_better(self, best, other):
        if is_omitted(best.bgp_internal) and is_omitted(other.bgp_internal):
            return self.ctx.false()
        return z3.And(z3.Not(self._bgp_internal(best)), self._bgp_internal(other))

    def greater_or_equal(self, router, proto, best, other, edge):
        """
        True if `best` is preferred or tied with `other`. Built from the
        least significant field up: better OR (equal AND rest).
        """
        stages = []
        for attr, default, less in self._defaults(proto, other):
            b, o = best.get(attr), other.get(attr)
            stages.append((self._better_helper(b, o, default, less),
                           self._equal_helper(b, o, default)))
        type_default = self._type_default()
        if is_omitted(best.ospf_type) and is_omitted(other.ospf_type):
            stages.append((self.ctx.false(), self.ctx.true()))
        else:
            b, o = self._resolve(best.ospf_type, other.ospf_type, type_default)
            stages.append((z3.ULT(b, o), b == o))
        stages.append((self._internal_better(best, other),
                       self._equal_bgp_internal(best, other)))
        igp_default = self.ctx.int_val(DEFAULT_IGP_METRIC)
        stages.append((self._better_helper(best.igp_metric, other.igp_metric,
                                           igp_default, True),
                       self._equal_helper(best.igp_metric, other.igp_metric,
                                          igp_default)))
        acc = self._tie_break(best, other, edge)
        for better, equal in reversed(stages):
            acc = z3.Or(better, z3.And(equal, acc))
        return acc
