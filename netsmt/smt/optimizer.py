"""
Static analysis of the network that decides which symbolic state
is needed to encode a slice.
"""

from collections import OrderedDict
import logging

from netsmt.common import BgpSendType
from netsmt.common import PROTOCOL_ORDER
from netsmt.common import Protocol
from netsmt.smt import record as rec
from netsmt.topo.policy import ActionSetLocalPref
from netsmt.topo.policy import ActionSetMED
from netsmt.topo.policy import MatchLocalPref
from netsmt.topo.policy import MatchMED


class Optimizer(object):
    """
    Computes per router the protocols to encode and which records can be
    shared, merged or stripped of attributes. Must stay conservative:
    state is only dropped when it can never change a comparison.
    """

    def __init__(self, network_graph, header_space, failures=0,
                 repair=False, igp_only=False, model_igp=True):
        """
        :param network_graph: NetworkGraph
        :param header_space: HeaderSpace of the slice
        :param failures: max number of link failures
        :param repair: True if edit variables are encoded
        :param igp_only: don't encode BGP (used for next hop reachability)
        :param model_igp: encode the IGP reachability of iBGP next hops
        """
        self.log = logging.getLogger('%s.%s' % (
            self.__module__, self.__class__.__name__))
        self.network_graph = network_graph
        self.header_space = header_space
        self.failures = failures
        self.repair = repair
        self.igp_only = igp_only
        self.model_igp = model_igp
        self.protocols = OrderedDict()
        self.single_protocol = set()
        self.single_export = {}
        self.merge_import = {}
        self.keep_local_pref = False
        self.keep_admin_dist = False
        self.keep_med = False
        self.keep_router_id = False
        self.keep_ospf_type = False
        self.keep_ospf_area = False
        self.keep_client_id = False
        self.keep_igp_metric = False
        self.need_bgp_internal = set()
        self.communities = []
        self.community_deps = OrderedDict()
        self.areas = []
        self.edge_map = None
        self._computed = False

    def compute(self):
        """Runs the analysis, must be called before any record is created"""
        self.edge_map = self.network_graph.get_edge_map()
        self._compute_router_protocols()
        self._compute_attribute_flags()
        self._compute_single_export()
        self._compute_merge_import()
        self._computed = True
        self.log.debug("Protocols: %s", dict(self.protocols))
        self.log.debug("Keep local pref=%s, admin dist=%s, med=%s, router id=%s,"
                       " ospf type=%s, ospf area=%s, client id=%s, igp=%s",
                       self.keep_local_pref, self.keep_admin_dist,
                       self.keep_med, self.keep_router_id,
                       self.keep_ospf_type, self.keep_ospf_area,
                       self.keep_client_id, self.keep_igp_metric)

    def runs(self, router, proto):
        return proto in self.protocols.get(router, [])

    def _compute_router_protocols(self):
        g = self.network_graph
        for router in g.local_routers_iter():
            protos = []
            for proto in PROTOCOL_ORDER:
                if proto == Protocol.CONNECTED:
                    enabled = len(g.get_ifaces(router)) > 0
                elif proto == Protocol.STATIC:
                    enabled = len(g.get_static_routes(router)) > 0
                elif proto == Protocol.OSPF:
                    enabled = g.is_ospf_enabled(router)
                else:
                    enabled = g.is_bgp_enabled(router) and not self.igp_only
                if enabled:
                    protos.append(proto)
            self.protocols[router] = protos
            if len(protos) == 1:
                self.single_protocol.add(router)

    def _route_map_lines(self):
        g = self.network_graph
        for router in g.routers_iter():
            for route_map in g.get_route_maps(router).values():
                for line in route_map.lines:
                    yield line

    def _compute_attribute_flags(self):
        g = self.network_graph
        for line in self._route_map_lines():
            for match in line.matches:
                if isinstance(match, MatchLocalPref):
                    self.keep_local_pref = True
                if isinstance(match, MatchMED):
                    self.keep_med = True
            for action in line.actions:
                if isinstance(action, ActionSetLocalPref):
                    self.keep_local_pref = True
                if isinstance(action, ActionSetMED):
                    self.keep_med = True
        if self.repair:
            self.keep_local_pref = True

        has_bgp = False
        has_redis_ospf = False
        for router, protos in self.protocols.items():
            if len(protos) > 1:
                self.keep_admin_dist = True
            if Protocol.BGP in protos:
                has_bgp = True
                if g.get_ibgp_neighbors(router):
                    self.need_bgp_internal.add(router)
            if Protocol.OSPF in protos and g.get_redistributions(router, Protocol.OSPF):
                has_redis_ospf = True
        if self.need_bgp_internal:
            self.keep_admin_dist = True
        self.keep_router_id = has_bgp
        self.areas = g.get_ospf_areas()
        self.keep_ospf_area = len(self.areas) > 1
        self.keep_ospf_type = self.keep_ospf_area or has_redis_ospf
        self.keep_client_id = has_bgp and len(g.get_originator_ids()) > 0
        self.keep_igp_metric = self.model_igp and len(self.need_bgp_internal) > 0
        if has_bgp:
            exact, regexes = g.get_communities()
            self.communities = exact + regexes
            self.community_deps = g.get_community_dependencies()

    def _edges_used(self, router, proto):
        g = self.network_graph
        for edge in self.edge_map[router]:
            if g.is_edge_used(router, proto, edge):
                yield edge

    def _compute_single_export(self):
        g = self.network_graph
        for router, protos in self.protocols.items():
            self.single_export[router] = {}
            for proto in protos:
                self.single_export[router][proto] = \
                    self._can_keep_single_export(g, router, proto)

    def _can_keep_single_export(self, g, router, proto):
        if proto not in [Protocol.OSPF, Protocol.BGP]:
            return False
        if self.repair or self.failures > 0:
            return False
        edges = list(self._edges_used(router, proto))
        if not edges:
            return False
        areas = set()
        for edge in edges:
            if edge.is_abstract:
                return False
            if g.is_iface_shutdown(router, edge.iface):
                return False
            if proto == Protocol.OSPF:
                areas.add(g.get_iface_ospf_area(router, edge.iface))
            else:
                if g.peer_type(edge) != BgpSendType.TO_EBGP:
                    return False
                if g.get_bgp_export_route_map(router, edge.peer) is not None:
                    return False
        return len(areas) <= 1

    def _compute_merge_import(self):
        g = self.network_graph
        for router, protos in self.protocols.items():
            self.merge_import[router] = {}
            for proto in protos:
                merge = {}
                for edge in self._edges_used(router, proto):
                    merge[edge] = self._can_merge_import(g, router, proto, edge)
                self.merge_import[router][proto] = merge

    def _can_merge_import(self, g, router, proto, edge):
        """
        The import record of an eBGP session between two modeled routers
        equals the export record of the peer when no policy touches it.
        """
        if proto != Protocol.BGP:
            return False
        if self.repair or self.failures > 0 or self.keep_local_pref:
            return False
        if not g.is_ebgp_edge(edge):
            return False
        other = g.other_end(edge)
        if other is None or not self.runs(other.router, Protocol.BGP):
            return False
        if g.is_iface_shutdown(router, edge.iface) or \
                g.is_iface_shutdown(other.router, other.iface):
            return False
        if g.get_route_maps(router) or g.get_route_maps(other.router):
            return False
        return True

    def relevant_prefix(self, prefix):
        """True if packets of the slice can be routed by the prefix"""
        return self.header_space.may_overlap(prefix)

    def record_attributes(self, router, proto):
        """
        The attributes allocated for records of `proto` at `router`
        :param proto: Protocol.BEST for the overall best record
        """
        assert self._computed, "Optimizer.compute() was not called"
        protos = self.protocols.get(router, [])
        runs_bgp = Protocol.BGP in protos
        runs_ospf = Protocol.OSPF in protos
        is_bgp = proto in [Protocol.BGP, Protocol.BEST] and runs_bgp
        is_ospf = proto in [Protocol.OSPF, Protocol.BEST] and runs_ospf
        attrs = set([rec.PREFIX_LENGTH])
        if proto in [Protocol.OSPF, Protocol.BGP, Protocol.BEST]:
            attrs.add(rec.METRIC)
        if self.keep_admin_dist:
            attrs.add(rec.ADMIN_DIST)
        if is_bgp:
            if self.keep_local_pref:
                attrs.add(rec.LOCAL_PREF)
            if self.keep_med:
                attrs.add(rec.MED)
            if self.keep_router_id:
                attrs.add(rec.ROUTER_ID)
            if self.keep_client_id:
                attrs.add(rec.CLIENT_ID)
            if self.keep_igp_metric:
                attrs.add(rec.IGP_METRIC)
            if router in self.need_bgp_internal:
                attrs.add(rec.BGP_INTERNAL)
            if self.communities:
                attrs.add(rec.COMMUNITIES)
        if is_ospf:
            if self.keep_ospf_area:
                attrs.add(rec.OSPF_AREA)
            if self.keep_ospf_type:
                attrs.add(rec.OSPF_TYPE)
        if proto == Protocol.BEST:
            attrs.add(rec.HISTORY)
        return attrs
