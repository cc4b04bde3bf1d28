#!/usr/bin/env python

import unittest

import z3
from nose.plugins.attrib import attr

from netsmt.common import Protocol
from netsmt.smt import record as rec
from netsmt.smt.context import SolverContext
from netsmt.smt.record import RecordKey
from netsmt.smt.record import RecordRole
from netsmt.smt.record import RouteRecord
from netsmt.smt.selection import RouteComparator
from netsmt.topo.graph import NetworkGraph


@attr(speed='fast')
class TestRouteComparator(unittest.TestCase):
    def get_records(self, attrs, proto=Protocol.BGP):
        ctx = SolverContext(z3.Context())
        g = NetworkGraph()
        g.add_router('R1')
        best = RouteRecord(ctx, RecordKey(0, 'S_', 'R1', proto, RecordRole.BEST, None),
                           attrs)
        other = RouteRecord(ctx, RecordKey(0, 'S_', 'R1', proto, RecordRole.IMPORT,
                                           'eth0'), attrs)
        comparator = RouteComparator(ctx, g)
        return ctx, comparator, best, other

    def test_longer_prefix_wins(self):
        # Arrange
        attrs = set([rec.PREFIX_LENGTH, rec.ADMIN_DIST])
        ctx, comparator, best, other = self.get_records(attrs)
        ctx.add(other.prefix_length == 10)
        ctx.add(other.admin_dist == 200)
        ctx.add(best.prefix_length == 5)
        ctx.add(best.admin_dist == 1)
        # Act
        ctx.add(comparator.greater_or_equal('R1', Protocol.BGP, best, other, None))
        # Assert
        self.assertEqual(ctx.check(), z3.unsat)

    def test_admin_distance(self):
        # Arrange
        attrs = set([rec.PREFIX_LENGTH, rec.ADMIN_DIST])
        ctx, comparator, best, other = self.get_records(attrs)
        ctx.add(other.prefix_length == 24)
        ctx.add(best.prefix_length == 24)
        ctx.add(best.admin_dist == 1)
        ctx.add(other.admin_dist == 110)
        # Act
        ctx.add(z3.Not(comparator.greater_or_equal('R1', Protocol.BGP, best,
                                                   other, None)))
        # Assert
        self.assertEqual(ctx.check(), z3.unsat)

    def test_local_pref_before_metric(self):
        attrs = set([rec.PREFIX_LENGTH, rec.LOCAL_PREF, rec.METRIC])
        ctx, comparator, best, other = self.get_records(attrs)
        ctx.add(best.prefix_length == other.prefix_length)
        ctx.add(best.local_pref == 200)
        ctx.add(other.local_pref == 100)
        ctx.add(best.metric == 10)
        ctx.add(other.metric == 1)
        ctx.add(z3.Not(comparator.greater_or_equal('R1', Protocol.BGP, best,
                                                   other, None)))
        self.assertEqual(ctx.check(), z3.unsat)

    def test_lower_metric_wins(self):
        attrs = set([rec.PREFIX_LENGTH, rec.METRIC])
        ctx, comparator, best, other = self.get_records(attrs, Protocol.OSPF)
        ctx.add(best.prefix_length == other.prefix_length)
        ctx.add(best.metric == 3)
        ctx.add(other.metric == 2)
        ctx.add(comparator.greater_or_equal('R1', Protocol.OSPF, best, other, None))
        self.assertEqual(ctx.check(), z3.unsat)

    def test_ebgp_over_ibgp(self):
        attrs = set([rec.PREFIX_LENGTH, rec.BGP_INTERNAL])
        ctx, comparator, best, other = self.get_records(attrs)
        ctx.add(best.prefix_length == other.prefix_length)
        ctx.add(best.bgp_internal)
        ctx.add(z3.Not(other.bgp_internal))
        ctx.add(comparator.greater_or_equal('R1', Protocol.BGP, best, other, None))
        self.assertEqual(ctx.check(), z3.unsat)

    def test_router_id_tie_break(self):
        attrs = set([rec.PREFIX_LENGTH, rec.ROUTER_ID])
        ctx, comparator, best, other = self.get_records(attrs)
        ctx.add(best.prefix_length == other.prefix_length)
        ctx.add(best.router_id == 5)
        ctx.add(other.router_id == 3)
        ctx.add(comparator.greater_or_equal('R1', Protocol.BGP, best, other, None))
        self.assertEqual(ctx.check(), z3.unsat)

    def test_mutual_preference_is_equality(self):
        # Arrange
        attrs = set([rec.PREFIX_LENGTH, rec.ADMIN_DIST, rec.METRIC])
        ctx, comparator, best, other = self.get_records(attrs)
        # Act
        ctx.add(comparator.greater_or_equal('R1', Protocol.BGP, best, other, None))
        ctx.add(comparator.greater_or_equal('R1', Protocol.BGP, other, best, None))
        ctx.add(z3.Not(comparator.equal('R1', Protocol.BGP, best, other, None, True)))
        # Assert
        self.assertEqual(ctx.check(), z3.unsat)

    def test_omitted_uses_default(self):
        # Arrange
        ctx = SolverContext(z3.Context())
        g = NetworkGraph()
        g.add_router('R1')
        best = RouteRecord(ctx, RecordKey(0, 'S_', 'R1', Protocol.BGP, RecordRole.BEST,
                                          None), set([rec.PREFIX_LENGTH, rec.ADMIN_DIST]))
        other = RouteRecord(ctx, RecordKey(0, 'S_', 'R1', Protocol.BGP,
                                           RecordRole.IMPORT, 'eth0'),
                            set([rec.PREFIX_LENGTH]))
        comparator = RouteComparator(ctx, g)
        # Act
        ctx.add(comparator.equal('R1', Protocol.BGP, best, other, None, False))
        ctx.add(best.admin_dist != 20)
        # Assert
        self.assertEqual(ctx.check(), z3.unsat)
