#!/usr/bin/env python

import ipaddress
import unittest

from nose.plugins.attrib import attr

from netsmt.common import BgpSendType
from netsmt.common import Protocol
from netsmt.common import UnknownPolicyError
from netsmt.topo.graph import ABSTRACT_IFACE_PREFIX
from netsmt.topo.graph import EDGETYPE
from netsmt.topo.graph import EDGE_TYPE
from netsmt.topo.graph import VERTEX_TYPE
from netsmt.topo.graph import VERTEXTYPE
from netsmt.topo.graph import NetworkGraph
from netsmt.topo.policy import Access
from netsmt.topo.policy import ActionSetCommunity
from netsmt.topo.policy import ActionSetLocalPref
from netsmt.topo.policy import Community
from netsmt.topo.policy import CommunityList
from netsmt.topo.policy import CommunityRegex
from netsmt.topo.policy import MatchCommunitiesList
from netsmt.topo.policy import RouteMap
from netsmt.topo.policy import RouteMapLine


def add_link(g, src, src_iface, src_addr, dst, dst_iface, dst_addr):
    g.add_router_edge(src, dst)
    g.add_router_edge(dst, src)
    g.add_iface(src, src_iface)
    g.add_iface(dst, dst_iface)
    g.set_iface_addr(src, src_iface, ipaddress.ip_interface(src_addr))
    g.set_iface_addr(dst, dst_iface, ipaddress.ip_interface(dst_addr))
    g.set_edge_iface(src, dst, src_iface)
    g.set_edge_iface(dst, src, dst_iface)


@attr(speed='fast')
class TestNetworkGraph(unittest.TestCase):

    def get_two_routers(self):
        g = NetworkGraph()
        g.add_router('R1')
        g.add_router('R2')
        add_link(g, 'R1', 'eth0', '10.0.0.1/24', 'R2', 'eth0', '10.0.0.2/24')
        return g

    def get_ibgp(self):
        g = self.get_two_routers()
        g.add_router('R3')
        add_link(g, 'R2', 'eth1', '10.0.1.1/24', 'R3', 'eth0', '10.0.1.2/24')
        for router in ['R1', 'R2', 'R3']:
            g.set_bgp_asnum(router, 100)
        g.add_bgp_neighbor('R1', 'R2')
        g.add_bgp_neighbor('R2', 'R3')
        g.set_bgp_rr_client('R2', 'R3')
        return g

    def test_add_node(self):
        g = NetworkGraph()
        with self.assertRaises(ValueError):
            g.add_node('R1')

    def test_add_edge(self):
        g = NetworkGraph()
        g.add_router('R1')
        g.add_router('R2')
        with self.assertRaises(ValueError):
            g.add_edge('R1', 'R2')

    def test_add_router(self):
        # Arrange
        g = NetworkGraph()
        router = 'R1'
        # Act
        g.add_router(router)
        # Assert
        self.assertTrue(g.has_node(router))
        self.assertTrue(g.is_router(router))
        self.assertTrue(g.is_local_router(router))
        self.assertEqual(g.nodes[router][VERTEX_TYPE], VERTEXTYPE.ROUTER)
        self.assertEqual(list(g.routers_iter()), [router])
        self.assertEqual(list(g.local_routers_iter()), [router])
        self.assertFalse(g.is_peer(router))
        self.assertFalse(g.is_host(router))

    def test_add_peer(self):
        # Arrange
        g = NetworkGraph()
        # Act
        g.add_peer('ATT')
        # Assert
        self.assertTrue(g.is_peer('ATT'))
        self.assertTrue(g.is_router('ATT'))
        self.assertFalse(g.is_local_router('ATT'))
        self.assertEqual(list(g.peers_iter()), ['ATT'])

    def test_add_router_edge(self):
        g = self.get_two_routers()
        self.assertTrue(g.has_edge('R1', 'R2'))
        self.assertEqual(g['R1']['R2'][EDGE_TYPE], EDGETYPE.ROUTER)
        self.assertTrue(g.is_local_router_edge('R1', 'R2'))
        self.assertEqual(g.get_edge_iface('R1', 'R2'), 'eth0')
        self.assertEqual(g.get_iface_neighbor('R1', 'eth0'), 'R2')

    def test_iface(self):
        g = self.get_two_routers()
        addr = g.get_iface_addr('R1', 'eth0')
        self.assertEqual(addr, ipaddress.ip_interface(u'10.0.0.1/24'))
        self.assertFalse(g.is_iface_shutdown('R1', 'eth0'))
        g.set_iface_shutdown('R1', 'eth0', True)
        self.assertTrue(g.is_iface_shutdown('R1', 'eth0'))

    def test_peering_address(self):
        g = self.get_two_routers()
        self.assertEqual(g.get_peering_address('R1'),
                         ipaddress.ip_interface(u'10.0.0.1/24'))
        g.set_loopback_addr('R1', 'lo0', ipaddress.ip_interface(u'1.1.1.1/32'))
        self.assertEqual(g.get_peering_address('R1'),
                         ipaddress.ip_interface(u'1.1.1.1/32'))

    def test_static_routes(self):
        g = self.get_two_routers()
        route = g.add_static_route('R1', '192.168.0.0/24', 'R2', admin_cost=5)
        self.assertEqual(g.get_static_routes('R1'), [route])
        self.assertEqual(g.get_static_routes_iface('R1', 'eth0'), [route])
        self.assertEqual(route.admin_cost, 5)

    def test_ospf_area(self):
        g = self.get_two_routers()
        g.enable_ospf('R1')
        g.add_ospf_network('R1', '10.0.0.0/24', '0.0.0.1')
        self.assertEqual(g.get_iface_ospf_area('R1', 'eth0'), '0.0.0.1')
        self.assertTrue(g.is_iface_ospf_enabled('R1', 'eth0'))
        self.assertFalse(g.is_iface_ospf_enabled('R2', 'eth0'))
        self.assertEqual(g.get_ospf_areas(), ['0.0.0.1'])
        self.assertEqual(g.get_edge_ospf_cost('R1', 'R2'), 1)
        g.set_edge_ospf_cost('R1', 'R2', 10)
        self.assertEqual(g.get_edge_ospf_cost('R1', 'R2'), 10)

    def test_edge_map(self):
        # Arrange
        g = self.get_ibgp()
        # Act
        edge_map = g.get_edge_map()
        # Assert
        self.assertEqual(list(edge_map.keys()), ['R1', 'R2', 'R3'])
        r2_edges = edge_map['R2']
        self.assertEqual([edge.iface for edge in r2_edges],
                         ['eth0', 'eth1', ABSTRACT_IFACE_PREFIX + 'R1',
                          ABSTRACT_IFACE_PREFIX + 'R3'])
        physical = r2_edges[0]
        self.assertFalse(physical.is_abstract)
        self.assertEqual(physical.peer, 'R1')
        self.assertEqual(physical.peer_iface, 'eth0')
        other = g.other_end(physical)
        self.assertEqual(other.router, 'R1')
        self.assertEqual(other.peer, 'R2')
        self.assertTrue(r2_edges[2].is_abstract)

    def test_peer_type(self):
        g = self.get_ibgp()
        edge_map = g.get_edge_map()
        by_iface = dict((edge.iface, edge) for edge in edge_map['R2'])
        self.assertEqual(g.peer_type(by_iface['eth0']), BgpSendType.TO_EBGP)
        self.assertEqual(g.peer_type(by_iface['iBGP-R1']), BgpSendType.TO_NONCLIENT)
        self.assertEqual(g.peer_type(by_iface['iBGP-R3']), BgpSendType.TO_CLIENT)
        r3_abstract = [edge for edge in edge_map['R3'] if edge.is_abstract][0]
        self.assertEqual(g.peer_type(r3_abstract), BgpSendType.TO_RR)

    def test_originator_ids(self):
        g = self.get_ibgp()
        self.assertEqual(dict(g.get_originator_ids()), {'R3': 1})

    def test_is_edge_used(self):
        g = self.get_ibgp()
        edge = g.get_edge_map()['R1'][0]
        self.assertTrue(g.is_edge_used('R1', Protocol.CONNECTED, edge))
        self.assertFalse(g.is_edge_used('R1', Protocol.STATIC, edge))
        self.assertFalse(g.is_edge_used('R1', Protocol.OSPF, edge))
        # iBGP is carried by the abstract edge
        self.assertFalse(g.is_edge_used('R1', Protocol.BGP, edge))

    def test_router_ids(self):
        g = self.get_two_routers()
        self.assertEqual(g.get_router_id('R1'), 1)
        self.assertEqual(g.get_router_id('R2'), 2)
        g.set_router_id('R1', 10)
        self.assertEqual(g.get_router_id('R1'), 10)

    def test_unknown_acl(self):
        g = self.get_two_routers()
        g.get_ifaces('R1')['eth0']['acl_out'] = 'MISSING'
        with self.assertRaises(UnknownPolicyError):
            g.get_iface_acl('R1', 'eth0')

    def test_unknown_route_map(self):
        g = self.get_two_routers()
        with self.assertRaises(UnknownPolicyError):
            g.get_route_map('R1', 'MISSING')

    def test_communities(self):
        # Arrange
        g = self.get_ibgp()
        c1 = Community('100:1')
        c2 = Community('100:2')
        regex = CommunityRegex('100:.*')
        clist = CommunityList(1, Access.permit, [regex])
        line1 = RouteMapLine(matches=[MatchCommunitiesList(clist)],
                             actions=[ActionSetLocalPref(200)],
                             access=Access.permit, lineno=10)
        line2 = RouteMapLine(matches=None,
                             actions=[ActionSetCommunity([c1, c2])],
                             access=Access.permit, lineno=20)
        g.add_route_map('R1', RouteMap('RM1', [line1, line2]))
        # Act
        exact, regexes = g.get_communities()
        deps = g.get_community_dependencies()
        # Assert
        self.assertEqual(exact, [c1, c2])
        self.assertEqual(regexes, [regex])
        self.assertEqual(deps[regex], [c1, c2])
        self.assertEqual(g.get_local_prefs(), set([200]))

    def test_redistribution(self):
        g = self.get_two_routers()
        g.enable_ospf('R1')
        g.add_redistribution('R1', Protocol.OSPF, Protocol.STATIC)
        self.assertEqual(g.get_redistributions('R1', Protocol.OSPF),
                         {Protocol.STATIC: None})
        self.assertEqual(g.get_redistributions('R1', Protocol.BGP), {})

    def test_originated_networks(self):
        g = self.get_two_routers()
        g.set_bgp_asnum('R1', 100)
        g.add_bgp_announces('R1', '8.8.8.0/24')
        connected = g.originated_networks('R1', Protocol.CONNECTED)
        self.assertEqual(connected, set([ipaddress.ip_network(u'10.0.0.0/24')]))
        self.assertEqual(g.originated_networks('R1', Protocol.BGP),
                         set([ipaddress.ip_network(u'8.8.8.0/24')]))

    def test_add_host(self):
        # Arrange
        g = NetworkGraph()
        g.add_router('R1')
        g.add_host('H1')
        # Act
        g.add_host_edge('R1', 'H1')
        g.add_host_edge('H1', 'R1')
        g.add_iface('R1', 'eth0')
        g.set_edge_iface('R1', 'H1', 'eth0')
        # Assert
        self.assertTrue(g.is_host('H1'))
        self.assertFalse(g.is_router('H1'))
        self.assertEqual(list(g.hosts_iter()), ['H1'])
        self.assertEqual(g['R1']['H1'][EDGE_TYPE], EDGETYPE.HOST)
        edge = g.get_edge_map()['R1'][0]
        self.assertEqual(edge.peer, 'H1')
        self.assertIsNone(edge.peer_iface)

    def test_loopback(self):
        g = self.get_two_routers()
        addr = ipaddress.ip_interface(u'1.1.1.1/32')
        g.set_loopback_addr('R1', 'lo0', addr)
        self.assertEqual(g.get_loopback_addr('R1', 'lo0'), addr)
        with self.assertRaises(AssertionError):
            g.get_loopback_addr('R1', 'lo1')

    def test_community_list(self):
        # Arrange
        g = self.get_ibgp()
        c1 = Community('100:1')
        clist = CommunityList(1, Access.permit, [c1])
        # Act
        g.add_bgp_community_list('R1', clist)
        # Assert
        self.assertEqual(g.get_communities(), ([c1], []))
        with self.assertRaises(AssertionError):
            g.add_bgp_community_list('R1', clist)

    def test_bgp_route_maps(self):
        # Arrange
        g = self.get_ibgp()
        route_map = RouteMap('EXPORT', [RouteMapLine(None, None, Access.deny, 10)])
        g.add_route_map('R1', route_map)
        # Act
        g.add_bgp_export_route_map('R1', 'R2', 'EXPORT')
        # Assert
        self.assertEqual(g.get_bgp_export_route_map('R1', 'R2'), route_map)
        self.assertIsNone(g.get_bgp_import_route_map('R1', 'R2'))
