#!/usr/bin/env python

import unittest

import z3
from nose.plugins.attrib import attr

from netsmt.common import Protocol
from netsmt.smt import record as rec
from netsmt.smt.context import SolverContext
from netsmt.smt.record import OMITTED
from netsmt.smt.record import RecordKey
from netsmt.smt.record import RecordRole
from netsmt.smt.record import RouteRecord
from netsmt.smt.record import SymbolicEnum
from netsmt.smt.record import is_omitted
from netsmt.topo.policy import Community


@attr(speed='fast')
class TestRouteRecord(unittest.TestCase):
    def get_key(self, role=RecordRole.IMPORT, iface='eth0', proto=Protocol.BGP):
        return RecordKey(0, 'SLICE-MAIN_', 'R1', proto, role, iface)

    def test_name(self):
        self.assertEqual(self.get_key().name, '0_SLICE-MAIN_R1_BGP_IMPORT_eth0')
        best = self.get_key(RecordRole.BEST, None, Protocol.BEST)
        self.assertEqual(best.name, '0_SLICE-MAIN_R1_OVERALL_BEST_None')
        redis = self.get_key(RecordRole.REDISTRIBUTED, None, Protocol.OSPF)
        self.assertEqual(redis.name, '0_SLICE-MAIN_R1_OSPF_Redistributed')

    def test_omitted_attributes(self):
        # Arrange
        ctx = SolverContext(z3.Context())
        attrs = set([rec.PREFIX_LENGTH, rec.METRIC])
        # Act
        record = RouteRecord(ctx, self.get_key(), attrs)
        # Assert
        self.assertFalse(is_omitted(record.prefix_length))
        self.assertFalse(is_omitted(record.metric))
        self.assertIs(record.local_pref, OMITTED)
        self.assertIs(record.ospf_area, OMITTED)
        self.assertIs(record.history, OMITTED)
        self.assertTrue(record.has(rec.METRIC))
        self.assertFalse(record.has(rec.MED))
        self.assertTrue(ctx.has_var('0_SLICE-MAIN_R1_BGP_IMPORT_eth0_permitted'))
        self.assertTrue(ctx.has_var('0_SLICE-MAIN_R1_BGP_IMPORT_eth0_prefixLength'))
        self.assertTrue(ctx.has_var('0_SLICE-MAIN_R1_BGP_IMPORT_eth0_metric'))
        self.assertFalse(OMITTED)

    def test_placeholder(self):
        ctx = SolverContext(z3.Context())
        record = RouteRecord.placeholder(ctx, self.get_key())
        self.assertFalse(record.is_used)
        self.assertIs(record.prefix_length, OMITTED)
        self.assertTrue(z3.is_true(record.unused_defaults()))

    def test_unused_defaults(self):
        # Arrange
        ctx = SolverContext(z3.Context())
        attrs = set([rec.PREFIX_LENGTH, rec.METRIC, rec.BGP_INTERNAL])
        record = RouteRecord(ctx, self.get_key(), attrs)
        # Act
        ctx.add(record.unused_defaults())
        ctx.add(z3.Not(record.permitted))
        ctx.add(z3.Or(record.metric != 0, record.prefix_length != 0,
                      record.bgp_internal))
        # Assert
        self.assertEqual(ctx.check(), z3.unsat)

    def test_bounds(self):
        ctx = SolverContext(z3.Context())
        attrs = set([rec.PREFIX_LENGTH, rec.METRIC])
        record = RouteRecord(ctx, self.get_key(), attrs)
        for constraint in record.bounds():
            ctx.add(constraint)
        ctx.add(record.prefix_length > 32)
        self.assertEqual(ctx.check(), z3.unsat)

    def test_env_metric_bound(self):
        ctx = SolverContext(z3.Context())
        attrs = set([rec.PREFIX_LENGTH, rec.METRIC])
        record = RouteRecord(ctx, self.get_key(RecordRole.EXPORT, 'ENV-P1'),
                             attrs, is_env=True)
        for constraint in record.bounds():
            ctx.add(constraint)
        ctx.add(record.metric == 2 ** 8)
        self.assertEqual(ctx.check(), z3.unsat)

    def test_history(self):
        # Arrange
        ctx = SolverContext(z3.Context())
        attrs = set([rec.PREFIX_LENGTH, rec.HISTORY])
        protos = [Protocol.CONNECTED, Protocol.OSPF, Protocol.BGP]
        record = RouteRecord(ctx, self.get_key(RecordRole.BEST, None, Protocol.BEST),
                             attrs, history_values=protos)
        # Act
        for constraint in record.bounds():
            ctx.add(constraint)
        ctx.add(record.protocol_is(Protocol.OSPF))
        # Assert
        self.assertEqual(ctx.check(), z3.sat)
        self.assertEqual(record.to_dict(ctx.model)[rec.HISTORY], Protocol.OSPF)
        self.assertTrue(z3.is_false(z3.simplify(record.protocol_is(Protocol.STATIC))))

    def test_protocol_without_history(self):
        ctx = SolverContext(z3.Context())
        record = RouteRecord(ctx, self.get_key(), set([rec.PREFIX_LENGTH]))
        self.assertTrue(z3.is_true(record.protocol_is(Protocol.BGP)))
        self.assertTrue(z3.is_false(record.protocol_is(Protocol.OSPF)))

    def test_communities(self):
        ctx = SolverContext(z3.Context())
        comm = Community('100:1')
        record = RouteRecord(ctx, self.get_key(),
                             set([rec.PREFIX_LENGTH, rec.COMMUNITIES]),
                             communities=[comm])
        self.assertIn(comm, record.communities)
        self.assertTrue(ctx.has_var('0_SLICE-MAIN_R1_BGP_IMPORT_eth0_community_Comm_100_1'))


@attr(speed='fast')
class TestSymbolicEnum(unittest.TestCase):
    def test_single_value(self):
        ctx = SolverContext(z3.Context())
        enum_var = SymbolicEnum(ctx, 'area', ['0'])
        self.assertIsNone(enum_var.bitvec)
        self.assertTrue(z3.is_true(enum_var.check_if_value('0')))
        self.assertTrue(z3.is_false(enum_var.check_if_value('1')))

    def test_domain(self):
        # Arrange
        ctx = SolverContext(z3.Context())
        enum_var = SymbolicEnum(ctx, 'area', ['0', '1', '2'])
        # Act
        ctx.add(enum_var.domain())
        ctx.add(z3.Not(enum_var.check_if_value('0')))
        ctx.add(z3.Not(enum_var.check_if_value('1')))
        # Assert
        self.assertEqual(enum_var.bits, 2)
        self.assertEqual(ctx.check(), z3.sat)
        self.assertEqual(enum_var.get_value(ctx.model), '2')

    def test_mk_eq(self):
        ctx = SolverContext(z3.Context())
        enum1 = SymbolicEnum(ctx, 'area1', ['0', '1'])
        enum2 = SymbolicEnum(ctx, 'area2', ['0', '1'])
        ctx.add(enum1.mk_eq(enum2))
        ctx.add(enum1.check_if_value('1'))
        self.assertEqual(ctx.check(), z3.sat)
        self.assertEqual(enum2.get_value(ctx.model), '1')
