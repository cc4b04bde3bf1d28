"""
Protocol names, defaults and errors shared by the encoder
"""

import enum


class Protocol(enum.Enum):
    """Routing protocols modeled by the encoder"""
    CONNECTED = 'CONNECTED'
    STATIC = 'STATIC'
    OSPF = 'OSPF'
    BGP = 'BGP'
    # Pseudo protocol for the overall best route at a router
    BEST = 'OVERALL'

    def __str__(self):
        return self.value


class EdgeType(enum.Enum):
    """Direction of a logical edge"""
    IMPORT = 'IMPORT'
    EXPORT = 'EXPORT'


class BgpSendType(enum.Enum):
    """How a BGP router relates to the neighbor on an edge"""
    TO_EBGP = 'TO_EBGP'
    TO_NONCLIENT = 'TO_NONCLIENT'
    TO_CLIENT = 'TO_CLIENT'
    TO_RR = 'TO_RR'


class OspfType(enum.Enum):
    """OSPF route types, ordered by preference"""
    O = 0
    OIA = 1
    E1 = 2
    E2 = 3


# The order used when building protocol lists for a router
PROTOCOL_ORDER = [Protocol.CONNECTED, Protocol.STATIC,
                  Protocol.OSPF, Protocol.BGP]

DEFAULT_ADMIN_DISTANCE = {
    Protocol.CONNECTED: 0,
    Protocol.STATIC: 1,
    Protocol.OSPF: 110,
    Protocol.BGP: 20,
    Protocol.BEST: 0,
}
IBGP_ADMIN_DISTANCE = 200
CONNECTED_IMPORT_ADMIN_DISTANCE = 1

DEFAULT_LOCAL_PREF = 100
DEFAULT_METRIC = 0
DEFAULT_PREFIX_LENGTH = 0
DEFAULT_IGP_METRIC = 0
DEFAULT_ROUTER_ID = 0
DEFAULT_CLIENT_ID = 0
DEFAULT_OSPF_COST = 1
# Metric given to routes redistributed into OSPF
OSPF_REDISTRIBUTED_METRIC = 20
BGP_EXPORT_COST = 1

MAX_ADMIN_DISTANCE = 2 ** 8
MAX_MED = 2 ** 32
MAX_LOCAL_PREF = 2 ** 32
MAX_METRIC = 2 ** 16
MAX_ENV_METRIC = 2 ** 8
MAX_PREFIX_LENGTH = 32


def default_med(proto):
    """MED assumed when a record does not carry one"""
    if proto == Protocol.BGP:
        return 100
    return 0


def default_admin_distance(proto):
    return DEFAULT_ADMIN_DISTANCE[proto]


class EncodingError(Exception):
    """Base class for errors raised while building the encoding"""
    pass


class MissingBestRecordError(EncodingError):
    """A logical edge expects a best record that was never allocated"""
    def __init__(self, router, protocol):
        super(MissingBestRecordError, self).__init__(
            "No best record for router '%s' and protocol %s" % (router, protocol))
        self.router = router
        self.protocol = protocol


class ProtocolNotConfiguredError(EncodingError):
    """A protocol is used at a router that has no process for it"""
    def __init__(self, router, protocol):
        super(ProtocolNotConfiguredError, self).__init__(
            "Router '%s' has no %s process configured" % (router, protocol))
        self.router = router
        self.protocol = protocol


class UnknownPolicyError(EncodingError):
    """A route map or access list is referenced but not defined"""
    def __init__(self, router, name):
        super(UnknownPolicyError, self).__init__(
            "Router '%s' references undefined policy '%s'" % (router, name))
        self.router = router
        self.name = name
