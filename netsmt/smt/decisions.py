"""
Per router decision variables of a slice
"""

from collections import OrderedDict

from netsmt.common import MissingBestRecordError


class DecisionState(object):
    """
    best_overall: router -> RouteRecord
    best_per_protocol: router -> proto -> RouteRecord, only for routers
        running more than one protocol
    choice: router -> proto -> LogicalEdge -> Bool
    control_forwarding: router -> GraphEdge -> Bool
    data_forwarding: router -> GraphEdge -> Bool
    """

    def __init__(self):
        self.best_overall = OrderedDict()
        self.best_per_protocol = OrderedDict()
        self.choice = OrderedDict()
        self.control_forwarding = OrderedDict()
        self.data_forwarding = OrderedDict()

    def best_vars(self, optimizer, router, proto):
        """The record holding the best route of `proto` at `router`"""
        if router in optimizer.single_protocol:
            best = self.best_overall.get(router)
        else:
            best = self.best_per_protocol.get(router, {}).get(proto)
        if best is None:
            raise MissingBestRecordError(router, proto)
        return best

    def get_choice(self, router, proto, logical_edge):
        return self.choice[router][proto][logical_edge]

    def set_choice(self, router, proto, logical_edge, var):
        self.choice.setdefault(router, OrderedDict()).setdefault(
            proto, OrderedDict())[logical_edge] = var
