#!/usr/bin/env python
"""
Extension of the networkx.DiGraph that holds the router configurations
consumed by the encoder.
"""

from collections import OrderedDict
from collections import namedtuple
import ipaddress
import enum
import networkx as nx

from netsmt.common import BgpSendType
from netsmt.common import DEFAULT_OSPF_COST
from netsmt.common import Protocol
from netsmt.common import UnknownPolicyError
from netsmt.topo.policy import AccessList
from netsmt.topo.policy import ActionSetCommunity
from netsmt.topo.policy import ActionSetLocalPref
from netsmt.topo.policy import CommunityList
from netsmt.topo.policy import CommunityRegex
from netsmt.topo.policy import MatchCommunitiesList
from netsmt.topo.policy import RouteMap


VERTEX_TYPE = 'VERTEX_TYPE'
EDGE_TYPE = 'EDGE_TYPE'
ABSTRACT_IFACE_PREFIX = 'iBGP-'


def is_valid_add(addr):
    """Return True if the address is valid"""
    return isinstance(addr, ipaddress.IPv4Interface)


class VERTEXTYPE(enum.Enum):
    """Enum for VERTEX types in the network graph"""
    ROUTER = 'ROUTER'
    HOST = 'HOST'
    PEER = 'PEER'


class EDGETYPE(enum.Enum):
    """Enum for Edge types in the network graph"""
    ROUTER = 'ROUTER_EDGE'
    HOST = 'HOST_EDGE'
    PEER = 'PEER_EDGE'


class GraphEdge(namedtuple('GraphEdge', ['router', 'iface', 'peer',
                                         'peer_iface', 'is_abstract'])):
    """
    One end of a link as seen from `router`.
    peer is None for stub interfaces, peer_iface is None when the
    peer is not a configured router.
    """
    __slots__ = ()

    def __str__(self):
        return "%s,%s --> %s,%s" % (self.router, self.iface,
                                    self.peer, self.peer_iface)


StaticRoute = namedtuple('StaticRoute', ['prefix', 'next_hop', 'admin_cost'])


class NetworkGraph(nx.DiGraph):
    """
    An extended version of networkx.DiGraph
    """
    def add_node(self, n, **attr):
        """
        Add a single node n and update node attributes.
        Inherits networkx.DiGraph.add_node
        Just check that VERTEX_TYPE is defined.
        :param n: node name (str)
        :param attr: dict of attributes
        :return: None
        """
        if VERTEX_TYPE not in attr:
            raise ValueError('Cannot add directly nodes, must use add_router, add_peer etc..')
        super(NetworkGraph, self).add_node(n, **attr)

    def add_router(self, router):
        """
        Add a new router to the graph
        the node in the graph will be annotated with VERTEX_TYPE=ROUTER
        :param router: the name of the router
        :return: None
        """
        self.add_node(router, **{VERTEX_TYPE: VERTEXTYPE.ROUTER})

    def add_peer(self, router):
        """
        Add an external BGP speaker, its configuration is unknown
        and its announcements are left symbolic.
        :param router: the name of the router
        :return: None
        """
        self.add_node(router, **{VERTEX_TYPE: VERTEXTYPE.PEER})

    def add_host(self, host):
        """Add an end host"""
        self.add_node(host, **{VERTEX_TYPE: VERTEXTYPE.HOST})

    def _is_type(self, node, vtype):
        if not self.has_node(node):
            return False
        return self.nodes[node][VERTEX_TYPE] == vtype

    def is_peer(self, node):
        """True if a node is an external peer"""
        return self._is_type(node, VERTEXTYPE.PEER)

    def is_local_router(self, node):
        """
        Checks if a given node is local router under the administrative domain
        (i.e., not a peer or a host)
        """
        return self._is_type(node, VERTEXTYPE.ROUTER)

    def is_host(self, node):
        """Node is an end host (not a router)"""
        return self._is_type(node, VERTEXTYPE.HOST)

    def is_router(self, node):
        """True for Nodes and Peers"""
        return self.is_peer(node) or self.is_local_router(node)

    def local_routers_iter(self):
        """Iterates over local routers in sorted order"""
        for node in sorted(self.nodes()):
            if self.is_local_router(node):
                yield node

    def peers_iter(self):
        """Iterates over peers"""
        for node in sorted(self.nodes()):
            if self.is_peer(node):
                yield node

    def routers_iter(self):
        """Iterates over routers (local or peers)"""
        for node in sorted(self.nodes()):
            if self.is_router(node):
                yield node

    def hosts_iter(self):
        for node in sorted(self.nodes()):
            if self.is_host(node):
                yield node

    def add_edge(self, u, v, **attr):
        """
        Add an edge u,v to G.
        Inherits networkx.DiGraph.add_Edge
        Just check that EDGE_TYPE is defined.
        """
        if EDGE_TYPE not in attr:
            msg = 'Cannot add directly edges, must use ' \
                  'add_router_edge, add_peer_edge etc..'
            raise ValueError(msg)
        super(NetworkGraph, self).add_edge(u, v, **attr)

    def add_router_edge(self, u, v, **attr):
        """Add an edge between two local routers"""
        assert self.is_local_router(u), "Source '%s' is not a router" % u
        assert self.is_local_router(v), "Destination '%s' is not a router" % v
        attr[EDGE_TYPE] = EDGETYPE.ROUTER
        self.add_edge(u, v, **attr)

    def add_peer_edge(self, u, v, **attr):
        """Add an edge between a local router and an external peer"""
        err1 = "One side is not a peer router (%s, %s)" % (u, v)
        assert self.is_peer(u) or self.is_peer(v), err1
        err2 = "One side is not a local router (%s, %s)" % (u, v)
        assert self.is_local_router(u) or self.is_local_router(v), err2
        attr[EDGE_TYPE] = EDGETYPE.PEER
        self.add_edge(u, v, **attr)

    def add_host_edge(self, u, v, **attr):
        """Add an edge between a router and a host"""
        err1 = "One side is not a local router (%s, %s)" % (u, v)
        assert self.is_local_router(u) or self.is_local_router(v), err1
        err2 = "One side is not a host (%s, %s)" % (u, v)
        assert self.is_host(u) or self.is_host(v), err2
        attr[EDGE_TYPE] = EDGETYPE.HOST
        self.add_edge(u, v, **attr)

    def is_local_router_edge(self, src, dst):
        """Return True if the two local routers are connected"""
        if not self.has_edge(src, dst):
            return False
        return self[src][dst][EDGE_TYPE] == EDGETYPE.ROUTER

    def get_loopback_interfaces(self, node):
        """
        Returns the dict of the loopback interfaces
        will set empty dict if it doesn't exists
        """
        if 'loopbacks' not in self.nodes[node]:
            self.nodes[node]['loopbacks'] = {}
        return self.nodes[node]['loopbacks']

    def set_loopback_addr(self, node, loopback, addr):
        """
        Assigns an IP address to a loopback interface
        :param node: name of the router
        :param loopback: name of loopback interface. e.g., lo0, lo1, etc..
        :param addr: an instance of ipaddress.IPv4Interface
        :return: None
        """
        assert is_valid_add(addr)
        loopbacks = self.get_loopback_interfaces(node)
        if loopback not in loopbacks:
            loopbacks[loopback] = {}
        loopbacks[loopback]['addr'] = addr

    def get_loopback_addr(self, node, loopback):
        """Gets the IP address of a loopback interface"""
        addr = self.nodes[node].get('loopbacks', {}).get(loopback, {}).get('addr', None)
        err = "IP Address is not assigned for loopback'%s'-'%s'" % (node, loopback)
        assert addr, err
        return addr

    def get_peering_address(self, node):
        """
        The address other iBGP speakers use to reach `node`:
        the first loopback or otherwise the first interface address.
        """
        loopbacks = self.get_loopback_interfaces(node)
        for name in sorted(loopbacks):
            if loopbacks[name].get('addr'):
                return loopbacks[name]['addr']
        ifaces = self.get_ifaces(node)
        for name in sorted(ifaces):
            if ifaces[name]['addr']:
                return ifaces[name]['addr']
        return None

    def get_ifaces(self, node):
        if 'ifaces' not in self.nodes[node]:
            self.nodes[node]['ifaces'] = {}
        return self.nodes[node]['ifaces']

    def add_iface(self, node, iface_name, is_shutdown=False):
        """
        Add an interface to a router
        :param node: name of the router
        :param iface_name: e.g., Fa0/0
        :param is_shutdown: True if the interface is administratively down
        """
        assert self.is_router(node)
        assert is_shutdown in [True, False]
        ifaces = self.get_ifaces(node)
        assert iface_name not in ifaces, "%s in %s" % (iface_name, ifaces.keys())
        ifaces[iface_name] = {'shutdown': is_shutdown,
                              'addr': None,
                              'acl_in': None,
                              'acl_out': None}

    def _get_iface(self, node, iface_name):
        assert self.is_router(node)
        ifaces = self.get_ifaces(node)
        err = "Undefined iface '%s' in %s" % (iface_name, list(ifaces.keys()))
        assert iface_name in ifaces, err
        return ifaces[iface_name]

    def set_iface_addr(self, node, iface_name, addr):
        """Set the address of an interface"""
        assert is_valid_add(addr)
        self._get_iface(node, iface_name)['addr'] = addr

    def get_iface_addr(self, node, iface_name):
        """Return the address of an interface or None"""
        return self._get_iface(node, iface_name)['addr']

    def is_iface_shutdown(self, node, iface_name):
        """Return True if the interface is set to be shutdown"""
        return self._get_iface(node, iface_name)['shutdown']

    def set_iface_shutdown(self, node, iface_name, is_shutdown):
        """Set True if the interface is set to be shutdown"""
        assert is_shutdown in [True, False]
        self._get_iface(node, iface_name)['shutdown'] = is_shutdown

    def set_iface_acl(self, node, iface_name, acl_name, inbound=False):
        """Attach an access list to the interface"""
        assert acl_name in self.get_access_lists(node), \
            "Access list is not defined %s" % acl_name
        key = 'acl_in' if inbound else 'acl_out'
        self._get_iface(node, iface_name)[key] = acl_name

    def get_iface_acl(self, node, iface_name, inbound=False):
        """Return the AccessList attached to an interface or None"""
        key = 'acl_in' if inbound else 'acl_out'
        name = self._get_iface(node, iface_name)[key]
        if name is None:
            return None
        acls = self.get_access_lists(node)
        if name not in acls:
            raise UnknownPolicyError(node, name)
        return acls[name]

    def set_edge_iface(self, src, dst, iface):
        """
        Assigns an interface name to the outgoing edge, e.g., f0/0, f1/0, etc..
        :param src: name of the source router (the one that will change)
        :param dst: name of the destination router
        :param iface: the name of the the interface
        :return: None
        """
        assert iface in self.get_ifaces(src), \
            "Undefined iface '%s' at '%s'" % (iface, src)
        self[src][dst]['iface'] = iface

    def get_edge_iface(self, src, dst):
        """Gets the interface name to the outgoing edge, e.g., f0/0"""
        return self[src][dst].get('iface', None)

    def get_iface_neighbor(self, node, iface_name):
        """The node on the other side of the interface or None"""
        for neighbor in sorted(self.neighbors(node)):
            if self.get_edge_iface(node, neighbor) == iface_name:
                return neighbor
        return None

    def get_static_routes(self, node):
        """Return the list of configured static routes"""
        assert self.is_router(node)
        if 'static' not in self.nodes[node]:
            self.nodes[node]['static'] = []
        return self.nodes[node]['static']

    def add_static_route(self, node, prefix, next_hop, admin_cost=1):
        """
        Set a static route
        :param node: Router
        :param prefix: Prefixed to be routed
        :param next_hop: Neighbor the traffic is sent to
        :param admin_cost: administrative distance of the route
        :return: None
        """
        if isinstance(prefix, str):
            prefix = ipaddress.ip_network(prefix)
        assert self.has_edge(node, next_hop), \
            "Next hop %s is not a neighbor of %s" % (next_hop, node)
        route = StaticRoute(prefix, next_hop, admin_cost)
        self.get_static_routes(node).append(route)
        return route

    def get_static_routes_iface(self, node, iface_name):
        """Static routes that leave the router via the given interface"""
        routes = []
        for route in self.get_static_routes(node):
            if self.get_edge_iface(node, route.next_hop) == iface_name:
                routes.append(route)
        return routes

    def enable_ospf(self, node, process_id=100):
        """
        Enable OSPF at a given router
        :param node: local router
        :param process_id: integer
        :return: None
        """
        assert self.is_local_router(node)
        self.nodes[node]['ospf'] = dict(process_id=process_id, networks={})

    def is_ospf_enabled(self, node):
        """Return True if the node has OSPF process"""
        if not self.is_local_router(node):
            return False
        return 'ospf' in self.nodes[node]

    def get_ospf_networks(self, node):
        """
        Return a dict of Announced networks in OSPF at the router
        :param node: local router
        :return: dict Network->Area
        """
        assert self.is_ospf_enabled(node)
        return self.nodes[node]['ospf']['networks']

    def add_ospf_network(self, node, network, area):
        """Announce a network in the given OSPF area"""
        if isinstance(network, str):
            network = ipaddress.ip_network(network)
        networks = self.get_ospf_networks(node)
        networks[network] = area

    def get_iface_ospf_area(self, node, iface_name):
        """The OSPF area of an interface or None if OSPF does not run on it"""
        if not self.is_ospf_enabled(node):
            return None
        addr = self.get_iface_addr(node, iface_name)
        if addr is None:
            return None
        for network, area in self.get_ospf_networks(node).items():
            if addr.ip in network:
                return area
        return None

    def is_iface_ospf_enabled(self, node, iface_name):
        return self.get_iface_ospf_area(node, iface_name) is not None

    def get_ospf_areas(self):
        """Sorted list of all the OSPF areas in the network"""
        areas = set()
        for node in self.local_routers_iter():
            if self.is_ospf_enabled(node):
                areas.update(self.get_ospf_networks(node).values())
        return sorted(areas)

    def set_edge_ospf_cost(self, src, dst, cost):
        """
        Set the OSPF cost of an edge
        :param src: OSPF enabled local router
        :param dst: OSPF enabled local router
        :param cost: int
        :return: None
        """
        assert self.is_ospf_enabled(src)
        assert isinstance(cost, int) and cost >= 0
        self[src][dst]['ospf_cost'] = cost

    def get_edge_ospf_cost(self, src, dst):
        """Get the OSPF cost of an edge, default cost if it's not set"""
        return self[src][dst].get('ospf_cost', DEFAULT_OSPF_COST)

    def get_redistributions(self, node, into_proto):
        """Dict of protocol -> route map name redistributed into `into_proto`"""
        redis = self.nodes[node].setdefault('redistribute', {})
        return redis.setdefault(into_proto, {})

    def add_redistribution(self, node, into_proto, from_proto, route_map_name=None):
        """
        Redistribute the routes of `from_proto` into `into_proto`
        :param route_map_name: optional route map to filter the routes
        """
        assert into_proto in [Protocol.OSPF, Protocol.BGP]
        assert from_proto not in [into_proto, Protocol.BEST]
        if route_map_name:
            assert route_map_name in self.get_route_maps(node), \
                "Route map is not defiend %s" % route_map_name
        self.get_redistributions(node, into_proto)[from_proto] = route_map_name

    def get_bgp_attrs(self, node):
        """Return a dict of all BGP related attrs given to a node"""
        assert self.is_router(node), "Node is not a router {}".format(node)
        if 'bgp' not in self.nodes[node]:
            self.nodes[node]['bgp'] = {'asnum': None,
                                       'neighbors': {},
                                       'announces': {}}
        return self.nodes[node]['bgp']

    def set_bgp_asnum(self, node, asnum):
        """Sets the AS number of a given router"""
        assert isinstance(asnum, int)
        self.get_bgp_attrs(node)['asnum'] = asnum

    def is_bgp_enabled(self, node):
        """Return True if the router has BGP configurations"""
        return self.get_bgp_asnum(node) is not None

    def get_bgp_asnum(self, node):
        """Get the AS number of a given router"""
        return self.get_bgp_attrs(node).get('asnum', None)

    def get_bgp_neighbors(self, node):
        """Get a dictionary of BGP peers"""
        return self.get_bgp_attrs(node).get('neighbors', None)

    def add_bgp_neighbor(self, router_a, router_b, description=None):
        """
        Add BGP peer
        Peers are added by their name in the graph
        :param router_a: Router name
        :param router_b: Router name
        :param description:
        :return: None
        """
        neighbors_a = self.get_bgp_neighbors(router_a)
        neighbors_b = self.get_bgp_neighbors(router_b)
        err1 = "Router %s already has BGP neighbor %s configured" % (router_a, router_b)
        assert router_b not in neighbors_a, err1
        err2 = "Router %s already has BGP neighbor %s configured" % (router_b, router_a)
        assert router_a not in neighbors_b, err2
        neighbors_a[router_b] = {'description': description or 'To %s' % router_b,
                                 'rr_client': False}
        neighbors_b[router_a] = {'description': description or 'To %s' % router_a,
                                 'rr_client': False}

    def assert_valid_neighbor(self, node, neighbor):
        neighbors = self.get_bgp_neighbors(node)
        err = "BGP Neighbor '%s' is not defined at router '%s'" % (neighbor, node)
        assert neighbor in neighbors, err

    def set_bgp_rr_client(self, node, neighbor):
        """`neighbor` becomes a route reflector client of `node`"""
        self.assert_valid_neighbor(node, neighbor)
        assert not self.is_ebgp_neighbor(node, neighbor), \
            "Route reflector clients must be iBGP neighbors"
        self.get_bgp_neighbors(node)[neighbor]['rr_client'] = True

    def is_bgp_rr_client(self, node, neighbor):
        """True if neighbor is a route reflector client of node"""
        neighbors = self.get_bgp_neighbors(node)
        return neighbor in neighbors and neighbors[neighbor]['rr_client']

    def is_ebgp_neighbor(self, node, neighbor):
        self.assert_valid_neighbor(node, neighbor)
        return self.get_bgp_asnum(node) != self.get_bgp_asnum(neighbor)

    def get_ibgp_neighbors(self, node):
        """Sorted list of local routers that are iBGP neighbors of node"""
        if not self.is_bgp_enabled(node):
            return []
        return sorted(n for n in self.get_bgp_neighbors(node)
                      if self.is_local_router(n) and
                      not self.is_ebgp_neighbor(node, n))

    def has_ibgp(self):
        """True if any iBGP session is configured"""
        for node in self.local_routers_iter():
            if self.get_ibgp_neighbors(node):
                return True
        return False

    def get_bgp_announces(self, node):
        """Returns a dict of networks announced by the node"""
        return self.get_bgp_attrs(node)['announces']

    def add_bgp_announces(self, node, network):
        """
        Router to announce a given network over BGP,
        the network must be in the routing table to be announced.
        :param node:  router
        :param network: ipaddress.ip_network
        :return: None
        """
        if isinstance(network, str):
            network = ipaddress.ip_network(network)
        assert isinstance(network, ipaddress.IPv4Network)
        self.get_bgp_announces(node)[network] = {}

    def get_bgp_communities_list(self, node):
        """Return communities list registered on the router"""
        return self.get_bgp_attrs(node).setdefault('communities-list', {})

    def add_bgp_community_list(self, node, community_list):
        """
        Add a community list
        :param node: the router on which the list resides
        :param community_list: instance of CommunityList
        :return: CommunityList
        """
        assert isinstance(community_list, CommunityList)
        lists = self.get_bgp_communities_list(node)
        assert community_list.list_id not in lists
        lists[community_list.list_id] = community_list
        return community_list

    def _set_bgp_route_map(self, node, neighbor, route_map_name, key):
        assert route_map_name in self.get_route_maps(node), \
            "Route map is not defiend %s" % route_map_name
        self.assert_valid_neighbor(node, neighbor)
        self.get_bgp_neighbors(node)[neighbor][key] = route_map_name

    def _get_bgp_route_map(self, node, neighbor, key):
        self.assert_valid_neighbor(node, neighbor)
        route_map_name = self.get_bgp_neighbors(node)[neighbor].get(key, None)
        if not route_map_name:
            return None
        return self.get_route_map(node, route_map_name)

    def add_bgp_import_route_map(self, node, neighbor, route_map_name):
        """Specifies the import route map from the given neighbor"""
        self._set_bgp_route_map(node, neighbor, route_map_name, 'import_map')

    def get_bgp_import_route_map(self, node, neighbor):
        """Get the import RouteMap from the given neighbor or None"""
        return self._get_bgp_route_map(node, neighbor, 'import_map')

    def add_bgp_export_route_map(self, node, neighbor, route_map_name):
        """Specifies the export route map to the given neighbor"""
        self._set_bgp_route_map(node, neighbor, route_map_name, 'export_map')

    def get_bgp_export_route_map(self, node, neighbor):
        """Get the export RouteMap to the given neighbor or None"""
        return self._get_bgp_route_map(node, neighbor, 'export_map')

    def get_route_maps(self, node):
        """Return dict of the configured route maps for a given router"""
        assert self.is_router(node)
        return self.nodes[node].setdefault('routemaps', {})

    def add_route_map(self, node, routemap):
        assert isinstance(routemap, RouteMap)
        routemaps = self.get_route_maps(node)
        routemaps[routemap.name] = routemap
        return routemap

    def get_route_map(self, node, name):
        """Lookup a route map by name"""
        routemaps = self.get_route_maps(node)
        if name not in routemaps:
            raise UnknownPolicyError(node, name)
        return routemaps[name]

    def get_access_lists(self, node):
        return self.nodes[node].setdefault('access_lists', {})

    def add_access_list(self, node, acl):
        """Add new access list (overrides existing one with the same name"""
        assert isinstance(acl, AccessList)
        self.get_access_lists(node)[acl.name] = acl
        return acl

    def set_router_id(self, node, router_id):
        assert isinstance(router_id, int) and router_id >= 0
        self.nodes[node]['router_id'] = router_id

    def get_router_id(self, node):
        """Configured router id, or the position of the node in sorted order"""
        if 'router_id' in self.nodes[node]:
            return self.nodes[node]['router_id']
        return list(self.routers_iter()).index(node) + 1

    def get_originator_ids(self):
        """Ids of the route reflector clients, numbered from 1"""
        clients = set()
        for node in self.local_routers_iter():
            if not self.is_bgp_enabled(node):
                continue
            for neighbor in self.get_bgp_neighbors(node):
                if self.is_bgp_rr_client(node, neighbor):
                    clients.add(neighbor)
        return OrderedDict((client, num + 1)
                           for num, client in enumerate(sorted(clients)))

    def get_edge_map(self):
        """
        Map each local router to the list of its GraphEdges.
        One edge per physical interface (sorted by name) followed by
        one abstract edge per iBGP session.
        """
        edge_map = OrderedDict()
        for router in self.local_routers_iter():
            edges = []
            for iface in sorted(self.get_ifaces(router)):
                peer = self.get_iface_neighbor(router, iface)
                peer_iface = None
                if peer is not None and self.is_local_router(peer) \
                        and self.has_edge(peer, router):
                    peer_iface = self.get_edge_iface(peer, router)
                edges.append(GraphEdge(router, iface, peer, peer_iface, False))
            for neighbor in self.get_ibgp_neighbors(router):
                edges.append(GraphEdge(router, ABSTRACT_IFACE_PREFIX + neighbor,
                                       neighbor, ABSTRACT_IFACE_PREFIX + router,
                                       True))
            edge_map[router] = edges
        return edge_map

    def other_end(self, edge):
        """The same link seen from the peer or None"""
        if edge.peer is None or edge.peer_iface is None:
            return None
        return GraphEdge(edge.peer, edge.peer_iface, edge.router,
                         edge.iface, edge.is_abstract)

    def is_ebgp_edge(self, edge):
        """An edge that carries an eBGP session"""
        if edge.is_abstract or edge.peer is None:
            return False
        if not self.is_bgp_enabled(edge.router):
            return False
        if edge.peer not in self.get_bgp_neighbors(edge.router):
            return False
        return self.is_ebgp_neighbor(edge.router, edge.peer)

    def peer_type(self, edge):
        """BgpSendType of the session carried by the edge"""
        if not edge.is_abstract:
            return BgpSendType.TO_EBGP
        if self.is_bgp_rr_client(edge.router, edge.peer):
            return BgpSendType.TO_CLIENT
        if self.is_bgp_rr_client(edge.peer, edge.router):
            return BgpSendType.TO_RR
        return BgpSendType.TO_NONCLIENT

    def is_edge_used(self, router, proto, edge):
        """True if `proto` exchanges routes over the edge"""
        if proto == Protocol.CONNECTED:
            return not edge.is_abstract
        if proto == Protocol.STATIC:
            if edge.is_abstract:
                return False
            return len(self.get_static_routes_iface(router, edge.iface)) > 0
        if proto == Protocol.OSPF:
            if edge.is_abstract:
                return False
            return self.is_iface_ospf_enabled(router, edge.iface)
        if proto == Protocol.BGP:
            if edge.is_abstract:
                return self.is_bgp_enabled(router)
            return self.is_ebgp_edge(edge)
        return False

    def find_router_id(self, edge):
        """Router id of the neighbor on the edge, 0 if there is none"""
        if edge.peer is None or not self.is_router(edge.peer):
            return 0
        return self.get_router_id(edge.peer)

    def get_env_address(self, edge):
        """Name used for the environment announcement of an eBGP peer"""
        iface = self.get_edge_iface(edge.peer, edge.router) \
            if self.has_edge(edge.peer, edge.router) else None
        if iface and self.get_iface_addr(edge.peer, iface):
            return str(self.get_iface_addr(edge.peer, iface).ip)
        return edge.peer

    def originated_networks(self, node, proto):
        """Set of networks originated by `proto` at `node`"""
        networks = set()
        if proto == Protocol.CONNECTED:
            for iface in self.get_ifaces(node).values():
                if iface['addr'] is not None:
                    networks.add(iface['addr'].network)
            for loopback in self.get_loopback_interfaces(node).values():
                if loopback.get('addr') is not None:
                    networks.add(loopback['addr'].network)
        elif proto == Protocol.STATIC:
            networks.update(route.prefix for route in self.get_static_routes(node))
        elif proto == Protocol.OSPF:
            if self.is_ospf_enabled(node):
                networks.update(self.get_ospf_networks(node))
        elif proto == Protocol.BGP:
            if self.is_bgp_enabled(node):
                networks.update(self.get_bgp_announces(node))
        return networks

    def _route_maps_iter(self):
        for node in self.routers_iter():
            for name in sorted(self.get_route_maps(node)):
                yield node, self.get_route_maps(node)[name]

    def get_communities(self):
        """
        All exact communities and community regexes referenced
        by the configuration, each sorted by name
        """
        exact = set()
        regexes = set()

        def add(community):
            if isinstance(community, CommunityRegex):
                regexes.add(community)
            else:
                exact.add(community)

        for node in self.routers_iter():
            if 'bgp' not in self.nodes[node]:
                continue
            for comm_list in self.get_bgp_communities_list(node).values():
                for community in comm_list.communities:
                    add(community)
        for _, route_map in self._route_maps_iter():
            for line in route_map.lines:
                for match in line.matches:
                    if isinstance(match, MatchCommunitiesList):
                        for community in match.match.communities:
                            add(community)
                for action in line.actions:
                    if isinstance(action, ActionSetCommunity):
                        for community in action.communities:
                            add(community)
        key = lambda c: c.name
        return sorted(exact, key=key), sorted(regexes, key=key)

    def get_community_dependencies(self):
        """Map each community regex to the exact communities it matches"""
        exact, regexes = self.get_communities()
        deps = OrderedDict()
        for regex in regexes:
            deps[regex] = [comm for comm in exact if regex.matches(comm)]
        return deps

    def get_local_prefs(self):
        """All the local preference values set by route maps"""
        values = set()
        for _, route_map in self._route_maps_iter():
            for line in route_map.lines:
                for action in line.actions:
                    if isinstance(action, ActionSetLocalPref):
                        values.add(action.value)
        return values
