"""
Compile routing policies into a relation between the record a route
is read from and the record it is written to.
"""

import logging

import z3

from netsmt.common import BgpSendType
from netsmt.common import DEFAULT_ADMIN_DISTANCE
from netsmt.common import DEFAULT_LOCAL_PREF
from netsmt.common import DEFAULT_METRIC
from netsmt.common import DEFAULT_PREFIX_LENGTH
from netsmt.common import IBGP_ADMIN_DISTANCE
from netsmt.common import OSPF_REDISTRIBUTED_METRIC
from netsmt.common import OspfType
from netsmt.common import Protocol
from netsmt.common import default_med
from netsmt.smt.record import OSPF_TYPE_BITS
from netsmt.smt.record import is_omitted
from netsmt.smt.repair import Category
from netsmt.smt.repair import EditKind
from netsmt.topo.policy import AcceptAll
from netsmt.topo.policy import Access
from netsmt.topo.policy import ActionSetCommunity
from netsmt.topo.policy import ActionSetLocalPref
from netsmt.topo.policy import ActionSetMED
from netsmt.topo.policy import ActionSetMetric
from netsmt.topo.policy import CommunityRegex
from netsmt.topo.policy import ConditionalPolicy
from netsmt.topo.policy import MatchCommunitiesList
from netsmt.topo.policy import MatchIpPrefixListList
from netsmt.topo.policy import MatchLocalPref
from netsmt.topo.policy import MatchMED
from netsmt.topo.policy import MatchMetric
from netsmt.topo.policy import MatchProtocol
from netsmt.topo.policy import RejectAll
from netsmt.topo.policy import RouteMap


class TransferFunction(object):
    """
    Relates `other` (the route before the policy) with `current`
    (the route after the policy). A route that is rejected leaves
    `current` not permitted.
    """

    def __init__(self, enc_slice, router, proto, other, current, policy,
                 cost, edge, is_export, redistribute=False):
        """
        :param enc_slice: the EncoderSlice the constraint belongs to
        :param router: the router applying the policy
        :param proto: the protocol of `current`
        :param other: RouteRecord read from
        :param current: RouteRecord written to
        :param policy: RouteMap, ConditionalPolicy, ACCEPT_ALL, REJECT_ALL or None
        :param cost: added to the metric
        :param edge: GraphEdge the route is sent or received over
        :param is_export: True on the export side
        :param redistribute: the route is redistributed into OSPF
        """
        self.log = logging.getLogger('%s.%s' % (
            self.__module__, self.__class__.__name__))
        self.enc_slice = enc_slice
        self.ctx = enc_slice.ctx
        self.network_graph = enc_slice.network_graph
        self.router = router
        self.proto = proto
        self.other = other
        self.current = current
        self.policy = policy
        self.cost = cost
        self.edge = edge
        self.is_export = is_export
        self.redistribute = redistribute
        self.peer_type = None
        if proto == Protocol.BGP and edge is not None:
            self.peer_type = self.network_graph.peer_type(edge)
        self.is_ibgp = self.peer_type not in [None, BgpSendType.TO_EBGP]

    def _get(self, value, default):
        if is_omitted(value):
            return self.ctx.int_val(default)
        return value

    def _originator_id(self, router):
        return self.enc_slice.originator_ids.get(router, 0)

    def _initial_values(self):
        """Attributes of the route before any policy action"""
        ctx = self.ctx
        other = self.other
        values = {}
        values['prefix_length'] = self._get(other.prefix_length, DEFAULT_PREFIX_LENGTH)

        if self.redistribute or self.proto == Protocol.OSPF:
            admin_dist = DEFAULT_ADMIN_DISTANCE[Protocol.OSPF]
        elif self.is_ibgp:
            admin_dist = IBGP_ADMIN_DISTANCE
        else:
            admin_dist = DEFAULT_ADMIN_DISTANCE[self.proto]
        values['admin_dist'] = ctx.int_val(admin_dist)

        if self.proto == Protocol.BGP and not self.is_ibgp:
            values['local_pref'] = ctx.int_val(DEFAULT_LOCAL_PREF)
        else:
            values['local_pref'] = self._get(other.local_pref, DEFAULT_LOCAL_PREF)

        if self.redistribute:
            values['metric'] = ctx.int_val(OSPF_REDISTRIBUTED_METRIC + self.cost)
        else:
            values['metric'] = self._get(other.metric, DEFAULT_METRIC) + self.cost

        values['med'] = self._get(other.med, default_med(other.proto))

        igp = None
        if not self.is_export and self.is_ibgp:
            igp = self.enc_slice.igp_cost(self.router, self.edge.peer)
        values['igp_metric'] = igp if igp is not None else ctx.int_val(0)

        if self.is_export or self.edge is None:
            router_id = self.network_graph.get_router_id(self.router)
        else:
            router_id = self.network_graph.find_router_id(self.edge)
        values['router_id'] = ctx.int_val(router_id)

        if self.peer_type in [None, BgpSendType.TO_EBGP]:
            client_id = ctx.int_val(0)
        elif not self.is_export and self.peer_type == BgpSendType.TO_CLIENT:
            client_id = ctx.int_val(self._originator_id(self.edge.peer))
        elif self.is_export and self.peer_type == BgpSendType.TO_RR:
            client_id = ctx.int_val(self._originator_id(self.router))
        else:
            client_id = self._get(other.client_id, self._originator_id(other.router))
        values['client_id'] = client_id

        if self.redistribute:
            ospf_type = OspfType.E2.value
            values['ospf_type'] = z3.BitVecVal(ospf_type, OSPF_TYPE_BITS, ctx=ctx.z3_ctx)
        elif is_omitted(other.ospf_type):
            values['ospf_type'] = z3.BitVecVal(OspfType.O.value, OSPF_TYPE_BITS,
                                               ctx=ctx.z3_ctx)
        else:
            values['ospf_type'] = other.ospf_type

        values['bgp_internal'] = z3.BoolVal(self.is_ibgp, ctx=ctx.z3_ctx)

        area = None
        if self.proto == Protocol.OSPF and self.edge is not None \
                and not self.edge.is_abstract:
            area = self.network_graph.get_iface_ospf_area(self.router, self.edge.iface)
        values['ospf_area'] = area

        communities = {}
        for community in self.current.communities:
            if isinstance(community, CommunityRegex):
                continue
            var = other.communities.get(community)
            communities[community] = var if var is not None else ctx.false()
        values['communities'] = communities
        return values

    def _assign(self, values):
        """The current record is permitted and holds `values`"""
        current = self.current
        eqs = [current.permitted]
        for attr in ['prefix_length', 'admin_dist', 'local_pref', 'metric',
                     'med', 'igp_metric', 'router_id', 'client_id',
                     'ospf_type', 'bgp_internal']:
            var = current.get(attr)
            if not is_omitted(var):
                eqs.append(var == values[attr])
        if not is_omitted(current.ospf_area):
            if values['ospf_area'] is not None:
                eqs.append(current.ospf_area.check_if_value(values['ospf_area']))
            elif not is_omitted(self.other.ospf_area):
                eqs.append(current.ospf_area.mk_eq(self.other.ospf_area))
            else:
                eqs.append(current.ospf_area.is_default_value())
        for community, value in values['communities'].items():
            eqs.append(current.communities[community] == value)
        return z3.And(eqs)

    def _reject(self):
        return z3.Not(self.current.permitted)

    def _prefix_range_match(self, route_map, prefix_list, prefix_range):
        packet = self.enc_slice.packet
        length = self._get(self.other.prefix_length, DEFAULT_PREFIX_LENGTH)
        conds = [length >= prefix_range.lower, length <= prefix_range.upper,
                 packet.in_prefix(prefix_range.network)]
        if self.enc_slice.can_repair(self.router) and \
                prefix_range.lower < prefix_range.upper:
            map_name = route_map.name if route_map is not None else self.proto.value
            rule_id = "%s_%s_%s" % (map_name, prefix_list.name, prefix_range.network)
            remove = self.enc_slice.registry.edit_var(
                self.router, Category.BGP_FILTER, rule_id, EditKind.REMOVE,
                'bgp', 'BGPRemoveFilter')
            conds.append(z3.Not(remove))
        return z3.And(conds)

    def _match(self, route_map, match):
        other = self.other
        if isinstance(match, MatchIpPrefixListList):
            prefix_list = match.match
            ranges = [self._prefix_range_match(route_map, prefix_list, prefix_range)
                      for prefix_range in prefix_list.networks]
            matched = z3.Or(ranges) if ranges else self.ctx.false()
            if prefix_list.access == Access.deny:
                return z3.Not(matched)
            return matched
        if isinstance(match, MatchCommunitiesList):
            comm_list = match.match
            flags = []
            for community in comm_list.communities:
                var = other.communities.get(community)
                flags.append(var if var is not None else self.ctx.false())
            matched = z3.And(flags) if flags else self.ctx.true()
            if comm_list.access == Access.deny:
                return z3.Not(matched)
            return matched
        if isinstance(match, MatchProtocol):
            return other.protocol_is(match.match)
        if isinstance(match, MatchLocalPref):
            return self._get(other.local_pref, DEFAULT_LOCAL_PREF) == match.match
        if isinstance(match, MatchMED):
            return self._get(other.med, default_med(other.proto)) == match.match
        if isinstance(match, MatchMetric):
            return self._get(other.metric, DEFAULT_METRIC) == match.match
        raise ValueError("Unsupported match %s" % match)

    def _match_all(self, route_map, matches):
        if not matches:
            return self.ctx.true()
        return z3.And([self._match(route_map, match) for match in matches])

    def _local_pref_value(self, route_map, line, value):
        if not self.enc_slice.can_repair(self.router):
            return self.ctx.int_val(value)
        rule_id = "%s_%s" % (route_map.name, line.lineno)
        return self.enc_slice.registry.modify_var(
            self.router, Category.LOCAL_PREF, rule_id, value,
            self.enc_slice.shared.local_prefs, 'localpref', 'LocalPrefChange')

    def _apply_actions(self, route_map, line, values):
        values = dict(values)
        values['communities'] = dict(values['communities'])
        for action in line.actions:
            if isinstance(action, ActionSetLocalPref):
                values['local_pref'] = self._local_pref_value(
                    route_map, line, action.value)
            elif isinstance(action, ActionSetMED):
                values['med'] = self.ctx.int_val(action.value)
            elif isinstance(action, ActionSetMetric):
                values['metric'] = self.ctx.int_val(action.value + self.cost)
            elif isinstance(action, ActionSetCommunity):
                if not action.additive:
                    for community in values['communities']:
                        values['communities'][community] = self.ctx.false()
                for community in action.communities:
                    if community in values['communities']:
                        values['communities'][community] = self.ctx.true()
            else:
                raise ValueError("Unsupported action %s" % action)
        return values

    def _compute_route_map(self, route_map, values):
        acc = self._reject()
        for line in reversed(route_map.lines):
            if line.access == Access.permit:
                result = self._assign(self._apply_actions(route_map, line, values))
            else:
                result = self._reject()
            acc = z3.If(self._match_all(route_map, line.matches), result, acc)
        return acc

    def _compute(self, policy, values):
        if policy is None or isinstance(policy, AcceptAll):
            return self._assign(values)
        if isinstance(policy, RejectAll):
            return self._reject()
        if isinstance(policy, RouteMap):
            return self._compute_route_map(policy, values)
        if isinstance(policy, ConditionalPolicy):
            acc = self._compute(policy.default, values)
            for case in reversed(policy.cases):
                acc = z3.If(self._match_all(None, case.matches),
                            self._compute(case.policy, values), acc)
            return acc
        raise ValueError("Unsupported policy %s" % policy)

    def compute(self):
        """The boolean relation between the two records"""
        return self._compute(self.policy, self._initial_values())
