"""
Logical import/export edges laid over the physical topology
"""

from collections import OrderedDict

from netsmt.common import EdgeType


class LogicalEdge(object):
    """A GraphEdge, a direction and the record carried over it"""
    def __init__(self, graph_edge, edge_type, record):
        assert isinstance(edge_type, EdgeType)
        self.graph_edge = graph_edge
        self.edge_type = edge_type
        self.record = record

    @property
    def is_import(self):
        return self.edge_type == EdgeType.IMPORT

    @property
    def is_export(self):
        return self.edge_type == EdgeType.EXPORT

    def __repr__(self):
        return "LogicalEdge(%s, %s, %s)" % (self.graph_edge,
                                            self.edge_type.value,
                                            self.record.name)


class LogicalTopology(object):
    """
    Tracks for every router and protocol the logical edges per physical
    edge, and which logical edges face each other across a link.
    """

    def __init__(self, network_graph):
        self.network_graph = network_graph
        # router -> proto -> GraphEdge -> [LogicalEdge]
        self.logical_edges = OrderedDict()
        # LogicalEdge -> LogicalEdge at the other end of the link
        self.other_end = {}
        # router -> proto -> set of protocols redistributed into proto
        self.redistributed_protocols = OrderedDict()
        # LogicalEdge -> RouteRecord announced by an external peer
        self.environment_records = OrderedDict()

    def add_logical_edge(self, router, proto, logical_edge):
        edges = self.logical_edges.setdefault(router, OrderedDict())
        edges = edges.setdefault(proto, OrderedDict())
        edges.setdefault(logical_edge.graph_edge, []).append(logical_edge)

    def edges_of(self, router, proto):
        """OrderedDict of GraphEdge -> [LogicalEdge]"""
        return self.logical_edges.get(router, {}).get(proto, OrderedDict())

    def logical_edges_iter(self, router, proto, edge_type=None):
        for group in self.edges_of(router, proto).values():
            for logical_edge in group:
                if edge_type is None or logical_edge.edge_type == edge_type:
                    yield logical_edge

    def all_logical_edges_iter(self):
        """yields router, proto, LogicalEdge"""
        for router, protos in self.logical_edges.items():
            for proto in protos:
                for logical_edge in self.logical_edges_iter(router, proto):
                    yield router, proto, logical_edge

    def link_ends(self):
        """Pair the import edge on one end with the export edge on the other"""
        for router, proto, logical_edge in self.all_logical_edges_iter():
            other_graph_edge = self.network_graph.other_end(logical_edge.graph_edge)
            if other_graph_edge is None:
                continue
            group = self.edges_of(other_graph_edge.router, proto).get(other_graph_edge, [])
            for candidate in group:
                if candidate.edge_type != logical_edge.edge_type:
                    self.other_end[logical_edge] = candidate

    def find_other_vars(self, logical_edge):
        """Record on the other side of the link, the environment, or None"""
        other = self.other_end.get(logical_edge)
        if other is not None:
            return other.record
        return self.environment_records.get(logical_edge)

    def set_redistributed(self, router, proto, protos):
        self.redistributed_protocols.setdefault(router, OrderedDict())[proto] = protos

    def get_redistributed(self, router, proto):
        return self.redistributed_protocols.get(router, {}).get(proto, set([proto]))
