#!/usr/bin/env python

import ipaddress
import unittest

import z3
from nose.plugins.attrib import attr

from netsmt.smt.acl import AclFunction
from netsmt.smt.context import SolverContext
from netsmt.smt.packet import HeaderSpace
from netsmt.smt.packet import SymbolicPacket
from netsmt.topo.policy import Access
from netsmt.topo.policy import AccessList
from netsmt.topo.policy import AccessListLine


@attr(speed='fast')
class TestAclFunction(unittest.TestCase):
    def get_acl(self):
        deny_web = AccessListLine(Access.deny, dst='10.0.0.0/24', dst_ports=[(80, 80)])
        allow_all = AccessListLine(Access.permit)
        return AccessList('NO-WEB', [deny_web, allow_all])

    def test_first_line_wins(self):
        # Arrange
        ctx = SolverContext(z3.Context())
        packet = SymbolicPacket(ctx, '0_TEST_')
        acl = AclFunction(packet, self.get_acl()).compute()
        # Act
        ctx.add(acl)
        ctx.add(packet.in_prefix(ipaddress.ip_network(u'10.0.0.0/24')))
        ctx.add(packet.dst_port == 80)
        # Assert
        self.assertEqual(ctx.check(), z3.unsat)

    def test_fall_through(self):
        ctx = SolverContext(z3.Context())
        packet = SymbolicPacket(ctx, '0_TEST_')
        acl = AclFunction(packet, self.get_acl()).compute()
        ctx.add(z3.Not(acl))
        ctx.add(packet.dst_port == 443)
        self.assertEqual(ctx.check(), z3.unsat)

    def test_default_deny(self):
        ctx = SolverContext(z3.Context())
        packet = SymbolicPacket(ctx, '0_TEST_')
        only_web = AccessList('WEB', [AccessListLine(Access.permit, dst_ports=[(80, 80)])])
        acl = AclFunction(packet, only_web).compute()
        ctx.add(acl)
        ctx.add(packet.dst_port == 22)
        self.assertEqual(ctx.check(), z3.unsat)


@attr(speed='fast')
class TestSymbolicPacket(unittest.TestCase):
    def test_header_space(self):
        # Arrange
        ctx = SolverContext(z3.Context())
        packet = SymbolicPacket(ctx, '0_TEST_')
        hs = HeaderSpace(dst_ips=['10.0.0.0/8'], dst_ports=[(80, 90)])
        # Act
        ctx.add(packet.matches(hs))
        for constraint in packet.bounds():
            ctx.add(constraint)
        # Assert
        self.assertEqual(ctx.check(), z3.sat)
        dst = ctx.eval(packet.dst_ip).as_long()
        self.assertIn(ipaddress.ip_address(dst), ipaddress.ip_network(u'10.0.0.0/8'))
        self.assertTrue(80 <= ctx.eval(packet.dst_port).as_long() <= 90)

    def test_may_overlap(self):
        hs = HeaderSpace(dst_ips=['10.0.0.0/24'])
        self.assertTrue(hs.may_overlap(ipaddress.ip_network(u'10.0.0.0/8')))
        self.assertFalse(hs.may_overlap(ipaddress.ip_network(u'192.168.0.0/16')))
        self.assertTrue(HeaderSpace().may_overlap(ipaddress.ip_network(u'1.0.0.0/8')))

    def test_dst_is(self):
        ctx = SolverContext(z3.Context())
        packet = SymbolicPacket(ctx, '0_TEST_')
        ctx.add(packet.dst_is(ipaddress.ip_address(u'10.0.0.1')))
        ctx.add(z3.Not(packet.in_prefix(ipaddress.ip_network(u'10.0.0.0/24'))))
        self.assertEqual(ctx.check(), z3.unsat)
