#!/usr/bin/env python

import ipaddress
import unittest

import z3
from nose.plugins.attrib import attr

from netsmt.smt.encoder import Encoder
from netsmt.smt.packet import HeaderSpace
from netsmt.topo.graph import NetworkGraph
from netsmt.topo.policy import Access
from netsmt.topo.policy import AccessList
from netsmt.topo.policy import AccessListLine


def add_link(g, src, src_iface, src_addr, dst, dst_iface, dst_addr):
    g.add_router_edge(src, dst)
    g.add_router_edge(dst, src)
    g.add_iface(src, src_iface)
    g.add_iface(dst, dst_iface)
    g.set_iface_addr(src, src_iface, ipaddress.ip_interface(src_addr))
    g.set_iface_addr(dst, dst_iface, ipaddress.ip_interface(dst_addr))
    g.set_edge_iface(src, dst, src_iface)
    g.set_edge_iface(dst, src, dst_iface)


def get_edge(enc_slice, router, iface):
    for edge in enc_slice.edge_map[router]:
        if edge.iface == iface:
            return edge
    raise ValueError("No edge %s at %s" % (iface, router))


@attr(speed='fast')
class TestConnected(unittest.TestCase):
    def get_two_routers(self):
        g = NetworkGraph()
        g.add_router('R1')
        g.add_router('R2')
        add_link(g, 'R1', 'eth0', '10.0.0.1/24', 'R2', 'eth0', '10.0.0.2/24')
        return g

    def get_encoder(self, g, **kwargs):
        return Encoder(g, HeaderSpace(dst_ips=['10.0.0.0/24']), **kwargs)

    def test_forward_to_neighbor(self):
        # Arrange
        enc = self.get_encoder(self.get_two_routers())
        enc.compute_encoding()
        main = enc.main_slice
        # Act
        enc.add(main.packet.dst_is(ipaddress.ip_address(u'10.0.0.2')))
        # Assert
        self.assertEqual(enc.check(), z3.sat)
        forwarding = enc.get_forwarding()
        self.assertEqual(forwarding['R1'], ['eth0'])
        self.assertEqual(forwarding['R2'], [])
        self.assertTrue(enc.get_best_route('R1')['permitted'])
        self.assertEqual(enc.get_best_route('R1')['prefix_length'], 24)

    def test_must_forward(self):
        # Arrange
        enc = self.get_encoder(self.get_two_routers())
        enc.compute_encoding()
        main = enc.main_slice
        data_fwd = main.decisions.data_forwarding['R1'][get_edge(main, 'R1', 'eth0')]
        # Act
        enc.add(main.packet.dst_is(ipaddress.ip_address(u'10.0.0.2')))
        enc.add(z3.Not(data_fwd))
        # Assert
        self.assertEqual(enc.check(), z3.unsat)

    def test_shutdown_iface(self):
        # Arrange
        g = self.get_two_routers()
        g.set_iface_shutdown('R1', 'eth0', True)
        enc = self.get_encoder(g)
        enc.compute_encoding()
        main = enc.main_slice
        data_fwd = main.decisions.data_forwarding['R1'][get_edge(main, 'R1', 'eth0')]
        # Act
        enc.add(data_fwd)
        # Assert
        self.assertEqual(enc.check(), z3.unsat)

    def test_failed_link(self):
        # Arrange
        enc = self.get_encoder(self.get_two_routers(), failures=1)
        enc.compute_encoding()
        main = enc.main_slice
        data_fwd = main.decisions.data_forwarding['R1'][get_edge(main, 'R1', 'eth0')]
        # Act
        enc.add(main.packet.dst_is(ipaddress.ip_address(u'10.0.0.2')))
        enc.add(z3.Not(data_fwd))
        # Assert
        self.assertEqual(enc.check(), z3.sat)
        self.assertEqual(enc.get_failed_links(), [('R1', 'R2')])
        dst, _ = enc.get_packet()
        self.assertEqual(dst, ipaddress.IPv4Address(u'10.0.0.2'))

    def test_outbound_acl(self):
        # Arrange
        g = self.get_two_routers()
        acl = AccessList('BLOCK', [AccessListLine(Access.deny, dst='10.0.0.2/32'),
                                   AccessListLine(Access.permit)])
        g.add_access_list('R1', acl)
        g.set_iface_acl('R1', 'eth0', 'BLOCK')
        enc = self.get_encoder(g)
        enc.compute_encoding()
        main = enc.main_slice
        data_fwd = main.decisions.data_forwarding['R1'][get_edge(main, 'R1', 'eth0')]
        # Act
        enc.add(main.packet.dst_is(ipaddress.ip_address(u'10.0.0.2')))
        enc.add(data_fwd)
        # Assert
        self.assertEqual(enc.check(), z3.unsat)

    def test_inbound_acl_blocks_forwards_across(self):
        # Arrange
        g = self.get_two_routers()
        g.add_access_list('R2', AccessList('DENY', [AccessListLine(Access.deny)]))
        g.set_iface_acl('R2', 'eth0', 'DENY', inbound=True)
        enc = self.get_encoder(g)
        enc.compute_encoding()
        main = enc.main_slice
        edge = get_edge(main, 'R1', 'eth0')
        # Act
        enc.add(main.forwards_across['R1'][edge])
        # Assert
        self.assertEqual(enc.check(), z3.unsat)

    def test_variable_names(self):
        enc = self.get_encoder(self.get_two_routers())
        enc.compute_encoding()
        self.assertTrue(enc.ctx.has_var('0_SLICE-MAIN_R1_CONNECTED_IMPORT_eth0_permitted'))
        self.assertTrue(enc.ctx.has_var('0_SLICE-MAIN_R1_OVERALL_BEST_None_permitted'))
        self.assertTrue(enc.ctx.has_var('0_SLICE-MAIN_CONTROL-FORWARDING_R1_eth0'))
        self.assertTrue(enc.ctx.has_var('0_SLICE-MAIN_DATA-FORWARDING_R1_eth0'))
        self.assertTrue(enc.ctx.has_var('0_failed-internal_R1_R2'))

    def test_encoder_id(self):
        enc = Encoder(self.get_two_routers(), encoder_id=3)
        self.assertTrue(enc.ctx.has_var('3_SLICE-MAIN_R1_CONNECTED_IMPORT_eth0_permitted'))

    def test_traffic_class(self):
        # Arrange
        g = self.get_two_routers()
        enc = self.get_encoder(g)
        tc_slice = enc.add_traffic_class(HeaderSpace(dst_ips=['10.0.0.0/24'],
                                                     dst_ports=[(22, 22)]))
        enc.compute_encoding()
        # Act
        enc.add(enc.main_slice.packet.dst_is(ipaddress.ip_address(u'10.0.0.2')))
        # Assert
        self.assertEqual(enc.check(), z3.sat)
        self.assertEqual(enc.get_forwarding(enc_slice=tc_slice)['R1'], ['eth0'])
        self.assertEqual(enc.ctx.eval(tc_slice.packet.dst_port).as_long(), 22)
        with self.assertRaises(AssertionError):
            enc.add_traffic_class(HeaderSpace())


@attr(speed='fast')
class TestStatic(unittest.TestCase):
    def get_network(self):
        g = NetworkGraph()
        g.add_router('R1')
        g.add_router('R2')
        add_link(g, 'R1', 'eth0', '10.0.0.1/24', 'R2', 'eth0', '10.0.0.2/24')
        g.add_iface('R2', 'eth1')
        g.set_iface_addr('R2', 'eth1', ipaddress.ip_interface(u'192.168.1.1/24'))
        g.add_static_route('R1', '192.168.1.0/24', 'R2')
        return g

    def test_static_route(self):
        # Arrange
        enc = Encoder(self.get_network(), HeaderSpace(dst_ips=['192.168.1.0/24']))
        enc.compute_encoding()
        # Act
        enc.add(enc.main_slice.packet.dst_is(ipaddress.ip_address(u'192.168.1.5')))
        # Assert
        self.assertEqual(enc.check(), z3.sat)
        forwarding = enc.get_forwarding()
        self.assertEqual(forwarding['R1'], ['eth0'])
        self.assertEqual(forwarding['R2'], ['eth1'])
        best = enc.get_best_route('R1')
        self.assertEqual(best['admin_dist'], 1)
        self.assertEqual(best['history'].value, 'STATIC')

    def test_static_route_other_prefix(self):
        # Arrange
        enc = Encoder(self.get_network(), HeaderSpace(dst_ips=['172.16.0.0/16']))
        enc.compute_encoding()
        main = enc.main_slice
        data_fwd = main.decisions.data_forwarding['R1'][get_edge(main, 'R1', 'eth0')]
        # Act
        enc.add(data_fwd)
        # Assert
        self.assertEqual(enc.check(), z3.unsat)
