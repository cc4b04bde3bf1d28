"""
Symbolic link failures
"""

from collections import OrderedDict
import logging

import z3


class FailureModel(object):
    """
    One integer in [0, 1] per link, at most `max_failures` of them are 1.
    Links between two local routers share one variable for both directions.
    """

    def __init__(self, ctx, network_graph, max_failures=0, encoder_id=0):
        self.log = logging.getLogger('%s.%s' % (
            self.__module__, self.__class__.__name__))
        self.ctx = ctx
        self.network_graph = network_graph
        self.max_failures = max_failures
        self.failed_internal = OrderedDict()  # (router, router) -> Int
        self.failed_edge = OrderedDict()  # (router, iface) -> Int
        for router, edges in network_graph.get_edge_map().items():
            for edge in edges:
                if edge.is_abstract:
                    continue
                if edge.peer_iface is not None:
                    key = tuple(sorted([edge.router, edge.peer]))
                    if key not in self.failed_internal:
                        name = "%d_failed-internal_%s_%s" % ((encoder_id,) + key)
                        self.failed_internal[key] = ctx.create_int(name)
                else:
                    key = (edge.router, edge.iface)
                    name = "%d_failed-edge_%s_%s" % (encoder_id, router, edge.iface)
                    self.failed_edge[key] = ctx.create_int(name)
        self.log.debug("Created %d failure variables",
                       len(self.failed_internal) + len(self.failed_edge))

    def all_variables(self):
        return list(self.failed_internal.values()) + list(self.failed_edge.values())

    def get_failed_variable(self, edge):
        """The failure integer of the link, 0 for abstract edges"""
        if edge.is_abstract:
            return self.ctx.int_val(0)
        if edge.peer_iface is not None:
            return self.failed_internal[tuple(sorted([edge.router, edge.peer]))]
        return self.failed_edge[(edge.router, edge.iface)]

    def not_failed(self, edge):
        return self.get_failed_variable(edge) == 0

    def constraints(self):
        """Bounds of every variable and the total number of failures"""
        variables = self.all_variables()
        constraints = []
        for var in variables:
            constraints.append(var >= 0)
            constraints.append(var <= 1)
        if variables:
            constraints.append(z3.Sum(variables) <= self.max_failures)
        return constraints
