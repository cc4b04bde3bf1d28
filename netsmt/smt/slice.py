#!/usr/bin/env python
"""
Encodes the routing and forwarding behavior of the network for one
header space.
"""

from collections import OrderedDict
import logging

import z3

from netsmt.common import BGP_EXPORT_COST
from netsmt.common import BgpSendType
from netsmt.common import CONNECTED_IMPORT_ADMIN_DISTANCE
from netsmt.common import DEFAULT_ADMIN_DISTANCE
from netsmt.common import DEFAULT_OSPF_COST
from netsmt.common import EdgeType
from netsmt.common import OspfType
from netsmt.common import Protocol
from netsmt.common import ProtocolNotConfiguredError
from netsmt.smt.acl import AclFunction
from netsmt.smt.decisions import DecisionState
from netsmt.smt.logical_graph import LogicalEdge
from netsmt.smt.logical_graph import LogicalTopology
from netsmt.smt.optimizer import Optimizer
from netsmt.smt.packet import SymbolicPacket
from netsmt.smt.record import OSPF_TYPE_BITS
from netsmt.smt.record import RecordKey
from netsmt.smt.record import RecordRole
from netsmt.smt.record import RouteRecord
from netsmt.smt.record import is_omitted
from netsmt.smt.repair import Category
from netsmt.smt.repair import EditKind
from netsmt.smt.selection import RouteComparator
from netsmt.smt.transfer import TransferFunction
from netsmt.topo.policy import ACCEPT_ALL
from netsmt.topo.policy import Access
from netsmt.topo.policy import ConditionalPolicy
from netsmt.topo.policy import IpPrefixList
from netsmt.topo.policy import MatchIpPrefixListList
from netsmt.topo.policy import MatchProtocol
from netsmt.topo.policy import PolicyCase
from netsmt.topo.policy import REJECT_ALL


MAIN_SLICE_NAME = 'SLICE-MAIN_'


class EncoderSlice(object):
    """
    Owns the records, the logical topology and the decision variables
    of one header space, and emits all their constraints.
    """

    def __init__(self, shared, header_space, slice_name, igp_only=False, base=None):
        """
        :param shared: SharedContext of the encoder
        :param header_space: HeaderSpace of the packets
        :param slice_name: e.g., 'SLICE-MAIN_'
        :param igp_only: don't encode BGP
        :param base: EncoderSlice whose control plane is reused, only
                     data forwarding is encoded for the new packet
        """
        self.log = logging.getLogger('%s.%s' % (
            self.__module__, self.__class__.__name__))
        self.shared = shared
        self.ctx = shared.ctx
        self.network_graph = shared.network_graph
        self.registry = shared.registry
        self.failures = shared.failure_model
        self.header_space = header_space
        self.slice_name = slice_name
        self.encoder_id = shared.encoder_id
        self.prefix = "%d_%s" % (self.encoder_id, slice_name)
        self.igp_only = igp_only
        self.base = base
        self.is_main = slice_name == MAIN_SLICE_NAME
        self.packet = SymbolicPacket(self.ctx, self.prefix)
        self.records = []
        self.inbound_acl = OrderedDict()
        self.outbound_acl = OrderedDict()
        self.forwards_across = OrderedDict()
        self.originator_ids = self.network_graph.get_originator_ids()

        if base is not None:
            self.log.info("Creating traffic class slice %s on top of %s",
                          slice_name, base.slice_name)
            self.optimizer = base.optimizer
            self.comparator = base.comparator
            self.logical_graph = base.logical_graph
            self.edge_map = base.edge_map
            self.decisions = DecisionState()
            self.decisions.best_overall = base.decisions.best_overall
            self.decisions.best_per_protocol = base.decisions.best_per_protocol
            self.decisions.choice = base.decisions.choice
            self.decisions.control_forwarding = base.decisions.control_forwarding
            self._add_data_forwarding_variables()
            self._init_acl_functions()
            self._init_forwarding_across()
            return

        self.log.info("Creating slice %s for %s", slice_name, header_space)
        self.optimizer = Optimizer(self.network_graph, header_space,
                                   failures=self.failures.max_failures,
                                   repair=shared.repair, igp_only=igp_only,
                                   model_igp=shared.model_igp)
        self.optimizer.compute()
        self.comparator = RouteComparator(self.ctx, self.network_graph,
                                          self.originator_ids)
        self.logical_graph = LogicalTopology(self.network_graph)
        self.decisions = DecisionState()
        self.edge_map = self.optimizer.edge_map
        # (proto, GraphEdge) pairs encoded only to allow enabling an adjacency
        self.allow_edges = set()
        self.ospf_redistributed = OrderedDict()
        self.originated = OrderedDict()
        self.all_originated = OrderedDict()
        self.shared.local_prefs.update(self.network_graph.get_local_prefs())
        self._check_processes()
        self._init_originated_prefixes()
        self._init_redistribution_protocols()
        self._init_variables()
        self._init_acl_functions()
        self._init_forwarding_across()

    def can_repair(self, router):
        """True if edit variables can be created for the router"""
        return self.shared.repair and not self.registry.is_frozen(router)

    def add(self, constraint):
        self.ctx.add(constraint)

    def _check_processes(self):
        """Redistribution needs a process of the target protocol"""
        g = self.network_graph
        for router in self.optimizer.protocols:
            if g.get_redistributions(router, Protocol.OSPF) \
                    and not g.is_ospf_enabled(router):
                raise ProtocolNotConfiguredError(router, Protocol.OSPF)
            if g.get_redistributions(router, Protocol.BGP) \
                    and not g.is_bgp_enabled(router):
                raise ProtocolNotConfiguredError(router, Protocol.BGP)

    def _init_originated_prefixes(self):
        g = self.network_graph
        for router, protos in self.optimizer.protocols.items():
            self.originated[router] = OrderedDict()
            for proto in protos:
                self.originated[router][proto] = g.originated_networks(router, proto)
            if Protocol.OSPF in protos:
                connected = g.originated_networks(router, Protocol.CONNECTED)
                self.all_originated[router] = \
                    connected - self.originated[router][Protocol.OSPF]

    def _init_redistribution_protocols(self):
        g = self.network_graph
        for router, protos in self.optimizer.protocols.items():
            for proto in protos:
                redis = set([proto])
                if proto in [Protocol.OSPF, Protocol.BGP]:
                    for other in g.get_redistributions(router, proto):
                        if other in protos:
                            redis.add(other)
                self.logical_graph.set_redistributed(router, proto, redis)

    def _new_record(self, router, proto, role, iface, attr_proto=None, **kwargs):
        key = RecordKey(self.encoder_id, self.slice_name, router, proto, role, iface)
        attrs = self.optimizer.record_attributes(router, attr_proto or proto)
        record = RouteRecord(self.ctx, key, attrs,
                             history_values=self.optimizer.protocols[router],
                             areas=self.optimizer.areas,
                             communities=self.optimizer.communities, **kwargs)
        self.records.append(record)
        return record

    def _init_variables(self):
        self._add_forwarding_variables()
        self._add_best_variables()
        self._add_symbolic_records()
        self._add_choice_variables()
        self._add_environment_variables()

    def _add_forwarding_variables(self):
        for router, edges in self.edge_map.items():
            control = self.decisions.control_forwarding.setdefault(router, OrderedDict())
            for edge in edges:
                name = "%sCONTROL-FORWARDING_%s_%s" % (self.prefix, router, edge.iface)
                control[edge] = self.ctx.create_bool(name)
        self._add_data_forwarding_variables()

    def _add_data_forwarding_variables(self):
        for router, edges in self.edge_map.items():
            data = self.decisions.data_forwarding.setdefault(router, OrderedDict())
            for edge in edges:
                if edge.is_abstract:
                    continue
                name = "%sDATA-FORWARDING_%s_%s" % (self.prefix, router, edge.iface)
                data[edge] = self.ctx.create_bool(name)

    def _add_best_variables(self):
        for router, protos in self.optimizer.protocols.items():
            self.decisions.best_overall[router] = self._new_record(
                router, Protocol.BEST, RecordRole.BEST, None)
            if router in self.optimizer.single_protocol:
                continue
            per_proto = self.decisions.best_per_protocol.setdefault(router, OrderedDict())
            for proto in protos:
                per_proto[proto] = self._new_record(router, proto, RecordRole.BEST, None)

    def _is_allow_edge(self, router, proto, edge):
        """
        A link between two routers where `proto` could be enabled by a repair
        """
        g = self.network_graph
        if not self.can_repair(router) or edge.is_abstract:
            return False
        if proto not in [Protocol.OSPF, Protocol.BGP]:
            return False
        if edge.peer_iface is None or not self.optimizer.runs(edge.peer, proto):
            return False
        for used_proto in [Protocol.OSPF, Protocol.BGP]:
            if g.is_edge_used(router, used_proto, edge):
                return False
        return True

    def _add_symbolic_records(self):
        g = self.network_graph
        opt = self.optimizer
        for router, protos in opt.protocols.items():
            for proto in protos:
                single_export = None
                for edge in self.edge_map[router]:
                    used = g.is_edge_used(router, proto, edge)
                    allow = not used and self._is_allow_edge(router, proto, edge)
                    if not used and not allow:
                        continue
                    if allow:
                        self.allow_edges.add((proto, edge))
                    group = []
                    if proto in [Protocol.OSPF, Protocol.BGP]:
                        if opt.single_export[router][proto]:
                            if single_export is None:
                                single_export = self._new_record(
                                    router, proto, RecordRole.SINGLE_EXPORT, '')
                            export = single_export
                        else:
                            export = self._new_record(router, proto,
                                                      RecordRole.EXPORT, edge.iface)
                        group.append(LogicalEdge(edge, EdgeType.EXPORT, export))

                    if proto == Protocol.CONNECTED:
                        addr = g.get_iface_addr(router, edge.iface)
                        if addr is None or not opt.relevant_prefix(addr.network):
                            self.log.debug("Skip connected import %s", edge)
                            continue
                    if opt.merge_import[router][proto].get(edge, False):
                        key = RecordKey(self.encoder_id, self.slice_name, router,
                                        proto, RecordRole.IMPORT, edge.iface)
                        record = RouteRecord.placeholder(self.ctx, key)
                    else:
                        record = self._new_record(router, proto, RecordRole.IMPORT,
                                                  edge.iface)
                    group.append(LogicalEdge(edge, EdgeType.IMPORT, record))
                    for logical_edge in group:
                        self.logical_graph.add_logical_edge(router, proto, logical_edge)

                redis = self.logical_graph.get_redistributed(router, proto)
                if proto == Protocol.OSPF and len(redis) > 1:
                    self.ospf_redistributed[router] = self._new_record(
                        router, proto, RecordRole.REDISTRIBUTED, None)
        self.logical_graph.link_ends()

    def _add_choice_variables(self):
        for router, protos in self.optimizer.protocols.items():
            for proto in protos:
                for logical_edge in self.logical_graph.logical_edges_iter(
                        router, proto, EdgeType.IMPORT):
                    name = "%s_choice" % logical_edge.record.name
                    var = self.ctx.create_bool(name)
                    self.decisions.set_choice(router, proto, logical_edge, var)

    def _add_environment_variables(self):
        g = self.network_graph
        for router, protos in self.optimizer.protocols.items():
            if Protocol.BGP not in protos:
                continue
            for logical_edge in self.logical_graph.logical_edges_iter(
                    router, Protocol.BGP, EdgeType.IMPORT):
                edge = logical_edge.graph_edge
                if edge.peer is None or not g.is_peer(edge.peer):
                    continue
                iface = "ENV-%s" % g.get_env_address(edge)
                record = self._new_record(router, Protocol.BGP, RecordRole.EXPORT,
                                          iface, is_env=True)
                self.logical_graph.environment_records[logical_edge] = record

    def _acl_expr(self, router, edge, acl, inbound):
        direction = 'INBOUND' if inbound else 'OUTBOUND'
        soft = 'SoftInAcl' if inbound else 'SoftOutAcl'
        if acl is not None:
            expr = AclFunction(self.packet, acl).compute()
            name = "%d_%s_%s_%s_%s_%s" % (self.encoder_id, self.slice_name, router,
                                          edge.iface, direction, acl.name)
        else:
            expr = self.ctx.true()
            name = "%d_%s_%s_%s_%s_%s" % (self.encoder_id, self.slice_name, router,
                                          edge.iface, direction, 'SOFT')
        if self.can_repair(router):
            rule_id = "%s%s_%s" % (self.slice_name, edge.iface, direction)
            if acl is not None:
                remove = self.registry.edit_var(router, Category.ACL, rule_id,
                                                EditKind.REMOVE, 'acl', soft + 'Remove')
                expr = z3.Or(expr, remove)
            else:
                added = self.registry.edit_var(router, Category.ACL, rule_id,
                                               EditKind.ADD, 'acl', soft + 'Add')
                expr = z3.Not(added)
        var = self.ctx.create_bool(name)
        self.add(var == expr)
        return var

    def _init_acl_functions(self):
        g = self.network_graph
        for router, edges in self.edge_map.items():
            outbound = self.outbound_acl.setdefault(router, OrderedDict())
            inbound = self.inbound_acl.setdefault(router, OrderedDict())
            for edge in edges:
                if edge.is_abstract:
                    continue
                out_acl = g.get_iface_acl(router, edge.iface, inbound=False)
                in_acl = g.get_iface_acl(router, edge.iface, inbound=True)
                outbound[edge] = self._acl_expr(router, edge, out_acl, False)
                inbound[edge] = self._acl_expr(router, edge, in_acl, True)

    def _init_forwarding_across(self):
        g = self.network_graph
        for router, edges in self.edge_map.items():
            across = self.forwards_across.setdefault(router, OrderedDict())
            for edge in edges:
                if edge.is_abstract:
                    continue
                data_fwd = self.decisions.data_forwarding[router][edge]
                other = g.other_end(edge)
                if other is not None and other in self.inbound_acl.get(other.router, {}):
                    across[edge] = z3.And(data_fwd, self.inbound_acl[other.router][other])
                else:
                    across[edge] = data_fwd

    def correct_vars(self, logical_edge):
        """The record that holds the route imported over the logical edge"""
        record = logical_edge.record
        if not record.is_used:
            other = self.logical_graph.find_other_vars(logical_edge)
            assert other is not None, "Merged import without an export %s" % logical_edge
            return other
        return record

    def igp_cost(self, router, peer):
        """IGP metric from router to the peering address of peer"""
        if not self.optimizer.keep_igp_metric:
            return None
        igp_slice = self.shared.igp_slices.get(peer)
        if igp_slice is None:
            return None
        best = igp_slice.decisions.best_overall.get(router)
        if best is None:
            return None
        if is_omitted(best.metric):
            return self.ctx.int_val(0)
        return best.metric

    def _safe_eq(self, var, value):
        if is_omitted(var):
            return self.ctx.true()
        return var == value

    def _iface_active(self, router, edge):
        if edge.is_abstract:
            return self.ctx.true()
        is_up = not self.network_graph.is_iface_shutdown(router, edge.iface)
        return z3.BoolVal(is_up, ctx=self.ctx.z3_ctx)

    def _add_bound_constraints(self):
        for record in self.records:
            for constraint in record.bounds():
                self.add(constraint)
        for constraint in self.packet.bounds():
            self.add(constraint)

    def _add_community_constraints(self):
        deps = self.optimizer.community_deps
        for record in self.records:
            for regex, exact in deps.items():
                if regex not in record.communities:
                    continue
                flags = [record.communities[comm] for comm in exact
                         if comm in record.communities]
                rhs = z3.Or(flags) if flags else self.ctx.false()
                self.add(record.communities[regex] == rhs)

    def _adjacency_var(self, router, proto, edge, soft_name):
        rule_id = "%s_%s" % (proto.value, edge.iface)
        return self.registry.edit_var(router, Category.ADJACENCY_ENABLE, rule_id,
                                      EditKind.ADD, 'enable', soft_name)

    def _receive_condition(self, router, edge, other, not_failed):
        """Can a BGP route sent over the edge reach the router"""
        if not self.shared.model_igp:
            return not_failed
        peer_type = self.network_graph.peer_type(edge)
        if peer_type in [BgpSendType.TO_EBGP, BgpSendType.TO_CLIENT]:
            return not_failed
        if peer_type == BgpSendType.TO_NONCLIENT:
            reach = self.shared.reachable(router, edge.peer)
            return not_failed if reach is None else reach
        if is_omitted(other.client_id):
            return not_failed
        conds = []
        for originator, num in self.originator_ids.items():
            if originator == router:
                continue
            reach = self.shared.reachable(router, originator)
            if reach is None:
                continue
            conds.append(z3.Implies(other.client_id == num, reach))
        if not conds:
            return not_failed
        return z3.And(conds)

    def _add_import_constraint(self, router, proto, logical_edge):
        g = self.network_graph
        record = logical_edge.record
        edge = logical_edge.graph_edge
        if not record.is_used:
            other = self.logical_graph.find_other_vars(logical_edge)
            self.add(record.permitted == other.permitted)
            return
        iface_up = self._iface_active(router, edge)
        not_failed = self.failures.not_failed(edge)
        not_permitted = z3.Not(record.permitted)

        if proto == Protocol.CONNECTED:
            prefix = g.get_iface_addr(router, edge.iface).network
            relevant = z3.And(iface_up, self.packet.in_prefix(prefix), not_failed)
            values = z3.And(record.permitted,
                            self._safe_eq(record.prefix_length, prefix.prefixlen),
                            self._safe_eq(record.admin_dist, CONNECTED_IMPORT_ADMIN_DISTANCE),
                            self._safe_eq(record.local_pref, 0),
                            self._safe_eq(record.metric, 0))
            self.add(z3.If(relevant, values, not_permitted))
            return

        if proto == Protocol.STATIC:
            acc = not_permitted
            routes = g.get_static_routes_iface(router, edge.iface)
            for route in sorted(routes, key=lambda r: r.admin_cost, reverse=True):
                if not self.optimizer.relevant_prefix(route.prefix):
                    continue
                conds = [iface_up, self.packet.in_prefix(route.prefix), not_failed]
                if self.can_repair(router):
                    rule_id = "%s_%s" % (route.prefix, edge.iface)
                    remove = self.registry.edit_var(router, Category.STATIC_ROUTE, rule_id,
                                                    EditKind.REMOVE, 'static', 'StaticRemove')
                    conds.append(z3.Not(remove))
                values = z3.And(record.permitted,
                                self._safe_eq(record.prefix_length, route.prefix.prefixlen),
                                self._safe_eq(record.admin_dist, route.admin_cost),
                                self._safe_eq(record.local_pref, 0),
                                self._safe_eq(record.metric, 0))
                acc = z3.If(z3.And(conds), values, acc)
            self.add(acc)
            return

        other = self.logical_graph.find_other_vars(logical_edge)
        if other is None:
            self.add(not_permitted)
            return
        if proto == Protocol.BGP:
            receive = self._receive_condition(router, edge, other, not_failed)
        else:
            receive = not_failed
        loop = self.ctx.false()
        other_edge = g.other_end(edge)
        if proto == Protocol.BGP and other_edge is not None \
                and other_edge.router in self.decisions.control_forwarding:
            loop = self.decisions.control_forwarding[other_edge.router][other_edge]
        usable = [z3.Not(loop), iface_up, other.permitted, receive]
        if (proto, edge) in self.allow_edges:
            usable.append(self._adjacency_var(router, proto, edge, 'AllowRouteSoft'))

        policy = ACCEPT_ALL
        cost = 0
        if proto == Protocol.BGP:
            if edge.peer in g.get_bgp_neighbors(router):
                policy = g.get_bgp_import_route_map(router, edge.peer) or ACCEPT_ALL
        elif edge.peer is not None and g.has_edge(router, edge.peer):
            cost = g.get_edge_ospf_cost(router, edge.peer)
        else:
            cost = DEFAULT_OSPF_COST
        transfer = TransferFunction(self, router, proto, other, record, policy,
                                    cost, edge, is_export=False).compute()
        if proto == Protocol.BGP and self.can_repair(router):
            rule_id = "%s_IMPORT_%s" % (proto.value, edge.iface)
            filter_add = self.registry.edit_var(router, Category.BGP_FILTER, rule_id,
                                                EditKind.ADD, 'filter', 'ImportFilterAdd')
            usable.append(z3.Not(filter_add))
        self.add(z3.If(z3.And(usable), transfer, not_permitted))

    def _redistribution_policy(self, router, proto):
        """Accepts the routes of the protocols redistributed into `proto`"""
        g = self.network_graph
        cases = []
        redis = g.get_redistributions(router, proto)
        for other in sorted(redis, key=lambda p: p.value):
            if not self.optimizer.runs(router, other):
                continue
            route_map_name = redis[other]
            policy = g.get_route_map(router, route_map_name) if route_map_name else ACCEPT_ALL
            cases.append(PolicyCase([MatchProtocol(other)], policy))
        return ConditionalPolicy(cases, REJECT_ALL)

    def _ospf_export_policy(self, router):
        case = PolicyCase([MatchProtocol(Protocol.OSPF)], ACCEPT_ALL)
        return ConditionalPolicy([case], self._redistribution_policy(router, Protocol.OSPF))

    def _bgp_export_policy(self, router, edge):
        """
        BGP routes and routes redistributed or announced into BGP,
        filtered by the export route map of the neighbor.
        """
        g = self.network_graph
        export_map = None
        if edge.peer in g.get_bgp_neighbors(router):
            export_map = g.get_bgp_export_route_map(router, edge.peer)
        export_map = export_map or ACCEPT_ALL
        cases = [PolicyCase([MatchProtocol(Protocol.BGP)], export_map)]
        redis = g.get_redistributions(router, Protocol.BGP)
        for other in sorted(redis, key=lambda p: p.value):
            if self.optimizer.runs(router, other):
                route_map_name = redis[other]
                policy = g.get_route_map(router, route_map_name) if route_map_name \
                    else export_map
                cases.append(PolicyCase([MatchProtocol(other)], policy))
        announces = sorted(g.get_bgp_announces(router))
        if announces:
            announced = MatchIpPrefixListList(
                IpPrefixList('announces', Access.permit, announces))
            for other in self.optimizer.protocols[router]:
                if other != Protocol.BGP:
                    cases.append(PolicyCase([MatchProtocol(other), announced], export_map))
        return ConditionalPolicy(cases, REJECT_ALL)

    def _origination_values(self, router, record, prefix, edge, cost):
        """Attributes of a prefix originated by OSPF"""
        ctx = self.ctx
        area = self.network_graph.get_iface_ospf_area(router, edge.iface)
        values = [record.permitted,
                  self._safe_eq(record.local_pref, 0),
                  self._safe_eq(record.admin_dist, DEFAULT_ADMIN_DISTANCE[Protocol.OSPF]),
                  self._safe_eq(record.metric, cost),
                  self._safe_eq(record.med, 100),
                  self._safe_eq(record.prefix_length, prefix.prefixlen),
                  self._safe_eq(record.igp_metric, 0),
                  self._safe_eq(record.client_id, 0)]
        if not is_omitted(record.ospf_type):
            values.append(record.ospf_type == z3.BitVecVal(
                OspfType.O.value, OSPF_TYPE_BITS, ctx=ctx.z3_ctx))
        if not is_omitted(record.ospf_area):
            if area is not None:
                values.append(record.ospf_area.check_if_value(area))
            else:
                values.append(record.ospf_area.is_default_value())
        if not is_omitted(record.bgp_internal):
            values.append(z3.Not(record.bgp_internal))
        for var in record.communities.values():
            values.append(z3.Not(var))
        return z3.And(values)

    def _redistributed_wins(self, redist, prefix):
        """The redistributed route is preferred over originating prefix"""
        length = redist.prefix_length
        admin_dist = redist.admin_dist
        if is_omitted(admin_dist):
            admin_dist = self.ctx.int_val(DEFAULT_ADMIN_DISTANCE[Protocol.OSPF])
        ospf_ad = DEFAULT_ADMIN_DISTANCE[Protocol.OSPF]
        return z3.And(redist.permitted,
                      z3.Or(length > prefix.prefixlen,
                            z3.And(length == prefix.prefixlen, admin_dist < ospf_ad)))

    def _add_redistribution_constraints(self):
        """The redistributed record holds the overall best, if redistributable"""
        for router, redist in self.ospf_redistributed.items():
            best = self.decisions.best_overall[router]
            policy = self._redistribution_policy(router, Protocol.OSPF)
            transfer = TransferFunction(self, router, Protocol.OSPF, best, redist,
                                        policy, 0, None, is_export=True,
                                        redistribute=True)
            self.add(transfer.compute())

    def _add_export_constraint(self, router, proto, logical_edge):
        g = self.network_graph
        record = logical_edge.record
        edge = logical_edge.graph_edge
        not_permitted = z3.Not(record.permitted)
        if proto in [Protocol.CONNECTED, Protocol.STATIC]:
            self.add(not_permitted)
            return
        iface_up = self._iface_active(router, edge)
        not_failed = self.failures.not_failed(edge)
        proto_best = self.decisions.best_vars(self.optimizer, router, proto)
        if proto == Protocol.OSPF:
            other = proto_best
            cost = 0
            policy = self._ospf_export_policy(router)
        else:
            other = self.decisions.best_overall[router]
            cost = BGP_EXPORT_COST
            policy = self._bgp_export_policy(router, edge)
        do_export = self.ctx.true()
        if proto == Protocol.BGP:
            peer_type = g.peer_type(edge)
            if peer_type == BgpSendType.TO_CLIENT:
                cost = 0
            elif peer_type in [BgpSendType.TO_NONCLIENT, BgpSendType.TO_RR]:
                cost = 0
                if router in self.optimizer.need_bgp_internal \
                        and not is_omitted(other.bgp_internal):
                    do_export = z3.Not(other.bgp_internal)

        transfer = TransferFunction(self, router, proto, other, record, policy,
                                    cost, edge, is_export=True).compute()
        usable = z3.And(iface_up, do_export, other.permitted, not_failed)
        acc = z3.If(usable, transfer, not_permitted)

        if proto == Protocol.OSPF:
            redist = self.ospf_redistributed.get(router)
            if redist is not None:
                redis_conds = [iface_up, do_export, redist.permitted, not_failed]
                if self.can_repair(router):
                    remove = self.registry.edit_var(router, Category.REDISTRIBUTION,
                                                    proto.value, EditKind.REMOVE,
                                                    'redis', 'RedisRemove')
                    redis_conds.append(z3.Not(remove))
                prefers = self.comparator.greater_or_equal(router, proto, redist,
                                                           other, edge)
                uses_ospf = z3.And(other.permitted,
                                   z3.Not(z3.And(redist.permitted, prefers)))
                copy_redist = z3.And(
                    self.comparator.equal(router, proto, redist, record, edge, False),
                    redist.permitted == record.permitted)
                acc = z3.If(uses_ospf, acc,
                            z3.If(z3.And(redis_conds), copy_redist, not_permitted))
            acc = self._add_ospf_originations(router, record, edge, iface_up,
                                              cost, redist, acc)
        self.add(acc)

    def _add_ospf_originations(self, router, record, edge, iface_up, cost, redist, acc):
        candidates = []
        for prefix in sorted(self.originated[router][Protocol.OSPF]):
            candidates.append((prefix, EditKind.REMOVE))
        if self.can_repair(router):
            for prefix in sorted(self.all_originated.get(router, [])):
                candidates.append((prefix, EditKind.ADD))
        for prefix, kind in candidates:
            if not self.optimizer.relevant_prefix(prefix):
                continue
            conds = [iface_up, self.packet.in_prefix(prefix)]
            if kind == EditKind.ADD:
                conds.append(self.registry.edit_var(
                    router, Category.OSPF_EXPORT, str(prefix), kind,
                    'ospf', 'OSPFExportAdd'))
            elif self.can_repair(router):
                conds.append(z3.Not(self.registry.edit_var(
                    router, Category.OSPF_EXPORT, str(prefix), kind,
                    'ospf', 'OSPFExportRemove')))
            if redist is not None:
                conds.append(z3.Not(self._redistributed_wins(redist, prefix)))
            values = self._origination_values(router, record, prefix, edge, cost)
            acc = z3.If(z3.And(conds), values, acc)
        return acc

    def _add_transfer_functions(self):
        done = set()
        for router, protos in self.optimizer.protocols.items():
            for proto in protos:
                has_edges = False
                for logical_edge in self.logical_graph.logical_edges_iter(router, proto):
                    has_edges = True
                    if logical_edge.is_import:
                        self._add_import_constraint(router, proto, logical_edge)
                    elif id(logical_edge.record) not in done:
                        done.add(id(logical_edge.record))
                        self._add_export_constraint(router, proto, logical_edge)
                if not has_edges:
                    best = self.decisions.best_vars(self.optimizer, router, proto)
                    self.add(z3.Not(best.permitted))
        self._add_redistribution_constraints()

    def _add_history_constraints(self):
        for router in self.optimizer.single_protocol:
            best = self.decisions.best_overall[router]
            if is_omitted(best.history):
                continue
            proto = self.optimizer.protocols[router][0]
            self.add(z3.Implies(best.permitted, best.history.check_if_value(proto)))

    def _add_best_constraints(self, router, best, candidates):
        """
        best is permitted iff some candidate is, it is preferred over all
        permitted candidates and equal to one of them.
        :param candidates: list of (proto, record, GraphEdge or None)
        """
        some_permitted = []
        equal_one = []
        for proto, record, edge in candidates:
            self.add(z3.Implies(record.permitted,
                                self.comparator.greater_or_equal(router, proto, best,
                                                                 record, edge)))
            some_permitted.append(record.permitted)
            equal_one.append(z3.And(record.permitted,
                                    self.comparator.equal(router, proto, best,
                                                          record, edge, True)))
        if not some_permitted:
            self.add(z3.Not(best.permitted))
            return
        self.add(best.permitted == z3.Or(some_permitted))
        self.add(z3.Implies(z3.Or(some_permitted), z3.Or(equal_one)))

    def _add_best_per_protocol_constraints(self):
        for router, protos in self.optimizer.protocols.items():
            for proto in protos:
                best = self.decisions.best_vars(self.optimizer, router, proto)
                candidates = []
                for logical_edge in self.logical_graph.logical_edges_iter(
                        router, proto, EdgeType.IMPORT):
                    candidates.append((proto, self.correct_vars(logical_edge),
                                       logical_edge.graph_edge))
                self._add_best_constraints(router, best, candidates)

    def _add_best_overall_constraints(self):
        for router, protos in self.optimizer.protocols.items():
            if router in self.optimizer.single_protocol:
                continue
            best = self.decisions.best_overall[router]
            candidates = []
            for proto in protos:
                candidates.append((proto, self.decisions.best_per_protocol[router][proto], None))
            self._add_best_constraints(router, best, candidates)

    def _add_choice_per_protocol_constraints(self):
        for router, protos in self.optimizer.protocols.items():
            for proto in protos:
                best = self.decisions.best_vars(self.optimizer, router, proto)
                for logical_edge in self.logical_graph.logical_edges_iter(
                        router, proto, EdgeType.IMPORT):
                    record = self.correct_vars(logical_edge)
                    edge = logical_edge.graph_edge
                    is_best = z3.And(record.permitted,
                                     self.comparator.equal(router, proto, best, record,
                                                           edge, False))
                    if (proto, edge) in self.allow_edges:
                        is_best = z3.And(is_best, self._adjacency_var(
                            router, proto, edge, 'AllowRoute'))
                    choice = self.decisions.get_choice(router, proto, logical_edge)
                    self.add(choice == is_best)

    def _add_control_forwarding_constraints(self):
        g = self.network_graph
        for router, edges in self.edge_map.items():
            sends = OrderedDict((edge, []) for edge in edges)
            best = self.decisions.best_overall.get(router)
            for proto in self.optimizer.protocols.get(router, []):
                for logical_edge in self.logical_graph.logical_edges_iter(
                        router, proto, EdgeType.IMPORT):
                    edge = logical_edge.graph_edge
                    record = self.correct_vars(logical_edge)
                    choice = self.decisions.get_choice(router, proto, logical_edge)
                    is_best = z3.And(choice, self.comparator.equal(
                        router, proto, best, record, edge, False))
                    if proto == Protocol.CONNECTED:
                        if edge.peer_iface is None or g.is_host(edge.peer):
                            own = g.get_iface_addr(router, edge.iface).ip
                            can_send = z3.Not(self.packet.dst_is(own))
                        else:
                            peer_addr = g.get_iface_addr(edge.peer, edge.peer_iface)
                            if peer_addr is None:
                                can_send = self.ctx.false()
                            else:
                                can_send = self.packet.dst_is(peer_addr.ip)
                        is_best = z3.And(can_send, is_best)
                    sends[edge].append(is_best)
            for edge in edges:
                control = self.decisions.control_forwarding[router][edge]
                if sends[edge]:
                    self.add(control == z3.Or(sends[edge]))
                else:
                    self.add(z3.Not(control))

    def _abstract_forwarding(self, router, edge, abstract_edge):
        """Traffic sent to an iBGP next hop that leaves over `edge`"""
        peer_type = self.network_graph.peer_type(abstract_edge)
        if peer_type == BgpSendType.TO_RR:
            best = self.decisions.best_overall[router]
            if is_omitted(best.client_id):
                return self.ctx.false()
            alts = []
            for originator, num in self.originator_ids.items():
                igp_slice = self.shared.igp_slices.get(originator)
                if originator == router or igp_slice is None:
                    continue
                alts.append(z3.And(best.client_id == num,
                                   igp_slice.decisions.data_forwarding[router][edge]))
            return z3.Or(alts) if alts else self.ctx.false()
        igp_slice = self.shared.igp_slices.get(abstract_edge.peer)
        if igp_slice is None:
            return self.ctx.false()
        return igp_slice.decisions.data_forwarding[router][edge]

    def _add_data_forwarding_constraints(self):
        static_slice = self.base.slice_name if self.base is not None else self.slice_name
        for router, edges in self.edge_map.items():
            for edge in edges:
                if edge.is_abstract:
                    continue
                fwd = [self.decisions.control_forwarding[router][edge]]
                if not self.igp_only:
                    for abstract_edge in edges:
                        if not abstract_edge.is_abstract:
                            continue
                        control = self.decisions.control_forwarding[router][abstract_edge]
                        fwd.append(z3.And(control, self._abstract_forwarding(
                            router, edge, abstract_edge)))
                not_blocked = z3.And(z3.Or(fwd), self.outbound_acl[router][edge])
                if self.can_repair(router) and edge.peer_iface is not None:
                    static_add = self.registry.edit_var(
                        router, Category.STATIC_ROUTE, "%s%s" % (static_slice, edge.iface),
                        EditKind.ADD, 'static', 'StaticAdd')
                    not_blocked = z3.Or(not_blocked, static_add)
                data = self.decisions.data_forwarding[router][edge]
                self.add(data == z3.And(not_blocked, self.failures.not_failed(edge)))

    def _add_unused_default_value_constraints(self):
        for record in self.records:
            if record.is_used:
                self.add(record.unused_defaults())

    def _add_header_space_constraint(self):
        self.add(self.packet.matches(self.header_space))

    def _add_environment_constraints(self):
        for record in self.logical_graph.environment_records.values():
            if not is_omitted(record.bgp_internal):
                self.add(z3.Not(record.bgp_internal))
            if not is_omitted(record.client_id):
                self.add(record.client_id == 0)

    def compute_encoding(self):
        """Emit all the constraints of the slice"""
        if self.base is not None:
            for constraint in self.packet.bounds():
                self.add(constraint)
            self._add_data_forwarding_constraints()
            self._add_header_space_constraint()
            return
        self._add_bound_constraints()
        self._add_community_constraints()
        self._add_transfer_functions()
        self._add_history_constraints()
        self._add_best_per_protocol_constraints()
        self._add_choice_per_protocol_constraints()
        self._add_best_overall_constraints()
        self._add_control_forwarding_constraints()
        self._add_data_forwarding_constraints()
        self._add_unused_default_value_constraints()
        self._add_header_space_constraint()
        if self.is_main:
            self._add_environment_constraints()
        self.log.info("Slice %s: %d records", self.slice_name, len(self.records))
