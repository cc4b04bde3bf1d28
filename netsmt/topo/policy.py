"""
Routing policies and packet filters as configured on the routers
"""

from collections.abc import Iterable
from enum import Enum
from ipaddress import IPv4Network
from ipaddress import ip_network
import re

from netsmt.common import Protocol


class Access(Enum):
    """Used to in various matches, route maps and access lists"""
    permit = 'permit'
    deny = 'deny'


class Community(object):
    """Represent a community value"""
    def __init__(self, value):
        """
        Creates a new community value, e.g. 40:30
        :param value: the community value, e.g. "10:20" or its 32bit integer
        """
        if isinstance(value, str):
            value = Community.string_to_int(value)
        assert isinstance(value, int)
        self._value = value

    @property
    def value(self):
        """Community value string, ex. "10:30" """
        return self.get_new_format()

    def get_value(self):
        """Get the actual integer value"""
        return self._value

    @staticmethod
    def string_to_int(value):
        assert ":" in value
        high, low = value.split(":")
        bin_high = '{0:016b}'.format(int(high))
        bin_low = '{0:016b}'.format(int(low))
        return int(bin_high + bin_low, 2)

    def get_new_format(self):
        bits = '{0:032b}'.format(self._value)
        high = int(bits[:16], 2)
        low = int(bits[16:], 2)
        return "%d:%d" % (high, low)

    @property
    def name(self):
        return "Comm_%s" % self.get_new_format().replace(':', '_')

    def __hash__(self):
        return hash(self.value)

    def __eq__(self, other):
        return self.value == getattr(other, 'value', other)

    def __ne__(self, other):
        return not self.__eq__(other)

    def __str__(self):
        return "Community(%s)" % self.get_new_format()

    def __repr__(self):
        return self.__str__()


class CommunityRegex(object):
    """A community matched by a regular expression, e.g. '100:.*'"""
    def __init__(self, pattern):
        assert isinstance(pattern, str)
        self._pattern = pattern
        self._regex = re.compile(pattern)

    @property
    def pattern(self):
        return self._pattern

    @property
    def name(self):
        return "Regex_%s" % self._pattern

    def matches(self, community):
        """True if the exact community is matched by this regex"""
        return self._regex.search(community.value) is not None

    def __hash__(self):
        return hash(self.name)

    def __eq__(self, other):
        return self.name == getattr(other, 'name', None)

    def __ne__(self, other):
        return not self.__eq__(other)

    def __str__(self):
        return "CommunityRegex(%s)" % self._pattern

    def __repr__(self):
        return self.__str__()


class CommunityList(object):
    """Represents a list of communities in a match"""
    def __init__(self, list_id, access, communities):
        assert isinstance(communities, Iterable)
        assert isinstance(access, Access)
        for community in communities:
            assert isinstance(community, (Community, CommunityRegex))
        self._list_id = list_id
        self._access = access
        self._communities = list(communities)

    @property
    def list_id(self):
        return self._list_id

    @property
    def access(self):
        return self._access

    @property
    def communities(self):
        return self._communities

    def __eq__(self, other):
        if not isinstance(other, CommunityList):
            return False
        comm_eq = set(self.communities) == set(other.communities)
        access_eq = self.access == other.access
        id_eq = self.list_id == other.list_id
        return id_eq and access_eq and comm_eq

    def __str__(self):
        return "CommunityList(id=%s, access=%s, communities=%s)" % \
               (self.list_id, self.access, self.communities)

    def __repr__(self):
        return self.__str__()


class PrefixRange(object):
    """
    A prefix with a range of accepted prefix lengths,
    i.e., `ip prefix-list x permit 10.0.0.0/8 ge 16 le 24`
    """
    def __init__(self, network, ge=None, le=None):
        if isinstance(network, str):
            network = ip_network(network)
        assert isinstance(network, IPv4Network)
        self._network = network
        self._lower = network.prefixlen if ge is None else ge
        self._upper = network.prefixlen if le is None else le
        assert network.prefixlen <= self._lower <= self._upper <= 32, \
            "Invalid prefix range %s ge %s le %s" % (network, ge, le)

    @property
    def network(self):
        return self._network

    @property
    def lower(self):
        return self._lower

    @property
    def upper(self):
        return self._upper

    def __hash__(self):
        return hash((self.network, self.lower, self.upper))

    def __eq__(self, other):
        return isinstance(other, PrefixRange) and \
               (self.network, self.lower, self.upper) == \
               (other.network, other.lower, other.upper)

    def __str__(self):
        return "PrefixRange(%s, %d-%d)" % (self.network, self.lower, self.upper)

    def __repr__(self):
        return self.__str__()


class IpPrefixList(object):
    def __init__(self, name, access, networks):
        assert isinstance(access, Access)
        assert isinstance(networks, Iterable)
        assert not isinstance(networks, (IPv4Network, str))
        ranges = []
        for net in networks:
            if isinstance(net, PrefixRange):
                ranges.append(net)
            else:
                assert isinstance(net, (IPv4Network, str)), net
                ranges.append(PrefixRange(net))
        self._networks = ranges
        self._name = name
        self._access = access

    @property
    def name(self):
        return self._name

    @property
    def networks(self):
        """List of PrefixRange"""
        return self._networks

    @property
    def access(self):
        return self._access

    def __eq__(self, other):
        if not isinstance(other, IpPrefixList):
            return False
        net_eq = set(self.networks) == set(other.networks)
        access_eq = self.access == other.access
        id_eq = self.name == other.name
        return id_eq and access_eq and net_eq

    def __str__(self):
        return "IpPrefixList(id=%s, access=%s, networks=%s)" % \
               (self.name, self.access, self.networks)

    def __repr__(self):
        return self.__str__()


class Match(object):
    """Represent match action in a route map"""

    @property
    def match(self):
        raise NotImplementedError()

    def __eq__(self, other):
        return type(self) == type(other) and \
               self.match == getattr(other, 'match', None)

    def __hash__(self):
        return hash((self.__class__.__name__, str(self.match)))

    def __str__(self):
        return "%s(%s)" % (self.__class__.__name__, self.match)

    def __repr__(self):
        return self.__str__()


class Action(object):
    """Modifies an attribute of the route"""

    @property
    def value(self):
        return self._value

    def __eq__(self, other):
        return type(self) == type(other) and \
               self.value == getattr(other, 'value', None)

    def __str__(self):
        return "%s(%s)" % (self.__class__.__name__, self.value)

    def __repr__(self):
        return self.__str__()


class MatchCommunitiesList(Match):
    """Matches if the route carries all the communities of the list"""
    def __init__(self, communities_list):
        assert isinstance(communities_list, CommunityList)
        self._match = communities_list

    @property
    def match(self):
        return self._match


class MatchIpPrefixListList(Match):
    def __init__(self, prefix_list):
        assert isinstance(prefix_list, IpPrefixList)
        self._match = prefix_list

    @property
    def match(self):
        return self._match


class MatchLocalPref(Match):
    def __init__(self, localpref):
        assert isinstance(localpref, int)
        self._match = localpref

    @property
    def match(self):
        return self._match


class MatchMED(Match):
    def __init__(self, med):
        assert isinstance(med, int)
        self._match = med

    @property
    def match(self):
        return self._match


class MatchMetric(Match):
    """Matches the protocol metric (AS path length for BGP)"""
    def __init__(self, metric):
        assert isinstance(metric, int)
        self._match = metric

    @property
    def match(self):
        return self._match


class MatchProtocol(Match):
    """Matches the protocol the route was learned from"""
    def __init__(self, protocol):
        assert isinstance(protocol, Protocol)
        assert protocol != Protocol.BEST
        self._match = protocol

    @property
    def match(self):
        return self._match


class ActionSetLocalPref(Action):
    def __init__(self, localpref):
        assert isinstance(localpref, int)
        self._value = localpref


class ActionSetMED(Action):
    def __init__(self, med):
        assert isinstance(med, int)
        self._value = med


class ActionSetMetric(Action):
    def __init__(self, metric):
        assert isinstance(metric, int)
        self._value = metric


class ActionSetCommunity(Action):
    def __init__(self, communities, additive=True):
        """
        Set a list of communities to a route
        :param communities: list of Community
        :param additive: if False, all other communities are removed
        """
        assert isinstance(communities, Iterable)
        for community in communities:
            assert isinstance(community, Community)
        self._value = list(communities)
        self._additive = additive

    @property
    def communities(self):
        return self._value

    @property
    def additive(self):
        return self._additive

    def __eq__(self, other):
        return set(self._value) == set(getattr(other, 'communities', [])) \
               and self.additive == getattr(other, 'additive', None)

    def __str__(self):
        return "SetCommunity(%s, additive=%s)" % (self._value, self._additive)


class Policy(object):
    """Any statement block that can be evaluated by a transfer function"""
    pass


class AcceptAll(Policy):
    """Accept every route without modification"""
    def __str__(self):
        return "ACCEPT_ALL"

    def __repr__(self):
        return self.__str__()


class RejectAll(Policy):
    """Drop every route"""
    def __str__(self):
        return "REJECT_ALL"

    def __repr__(self):
        return self.__str__()


ACCEPT_ALL = AcceptAll()
REJECT_ALL = RejectAll()


class PolicyCase(object):
    """Apply `policy` when all matches hold"""
    def __init__(self, matches, policy):
        assert isinstance(matches, Iterable)
        for match in matches:
            assert isinstance(match, Match), "Expected a match but found %s" % match
        assert isinstance(policy, Policy)
        self.matches = list(matches)
        self.policy = policy

    def __repr__(self):
        return "PolicyCase(%s -> %s)" % (self.matches, self.policy)


class ConditionalPolicy(Policy):
    """
    The first case whose matches hold decides the outcome,
    otherwise the default policy is used.
    """
    def __init__(self, cases, default=REJECT_ALL):
        for case in cases:
            assert isinstance(case, PolicyCase)
        assert isinstance(default, Policy)
        self.cases = list(cases)
        self.default = default

    def __str__(self):
        return "ConditionalPolicy(%s, default=%s)" % (self.cases, self.default)

    def __repr__(self):
        return self.__str__()


class RouteMapLine(object):
    def __init__(self, matches, actions, access, lineno=None):
        if matches is None:
            matches = []
        if actions is None:
            actions = []
        assert isinstance(matches, Iterable)
        assert isinstance(actions, Iterable)
        for match in matches:
            assert isinstance(match, Match), "Expected a match but found %s" % match
        for action in actions:
            assert isinstance(action, Action)
        assert isinstance(access, Access)

        self._matches = list(matches)
        self._actions = list(actions)
        self._access = access
        self._lineno = lineno

    @property
    def matches(self):
        return self._matches

    @property
    def actions(self):
        return self._actions

    @property
    def access(self):
        return self._access

    @property
    def lineno(self):
        return self._lineno

    def __eq__(self, other):
        matches = getattr(other, 'matches', None)
        actions = getattr(other, 'actions', None)
        access = getattr(other, 'access', None)
        lineno = getattr(other, 'lineno', None)
        return self.matches == matches and \
                self.actions == actions and \
                self.access == access and \
                self.lineno == lineno

    def __repr__(self):
        return "<lineno: %s, access: %s, Matches: %s, Actions: %s>" \
               % (self.lineno, self.access, self.matches, self.actions)


class RouteMap(Policy):
    def __init__(self, name, lines):
        assert isinstance(name, str)
        assert isinstance(lines, Iterable)
        for line in lines:
            assert isinstance(line, RouteMapLine)
        self._name = name
        self._lines = list(lines)

    @property
    def name(self):
        return self._name

    @property
    def lines(self):
        return self._lines

    def __eq__(self, other):
        return self.name == getattr(other, 'name', None) and \
               self.lines == getattr(other, 'lines', None)

    def __hash__(self):
        return hash(self.name)

    def __str__(self):
        ret = "RouteMap %s\n" % self.name
        for line in self.lines:
            ret += "\t%r\n" % line
        return ret

    def __repr__(self):
        return self.__str__()


class AccessListLine(object):
    """
    One entry of an extended access list.
    Unset fields (None) match any packet.
    """
    def __init__(self, access, src=None, dst=None, protocols=None,
                 src_ports=None, dst_ports=None, icmp_type=None, icmp_code=None):
        assert isinstance(access, Access)
        if isinstance(src, str):
            src = ip_network(src)
        if isinstance(dst, str):
            dst = ip_network(dst)
        assert src is None or isinstance(src, IPv4Network)
        assert dst is None or isinstance(dst, IPv4Network)
        for ports in [src_ports, dst_ports]:
            if ports is None:
                continue
            for low, high in ports:
                assert 0 <= low <= high < 2 ** 16, "Invalid port range %s" % ports
        self.access = access
        self.src = src
        self.dst = dst
        self.protocols = list(protocols) if protocols else None
        self.src_ports = list(src_ports) if src_ports else None
        self.dst_ports = list(dst_ports) if dst_ports else None
        self.icmp_type = icmp_type
        self.icmp_code = icmp_code

    def __repr__(self):
        return "<%s src=%s dst=%s proto=%s sports=%s dports=%s>" % (
            self.access.value, self.src, self.dst, self.protocols,
            self.src_ports, self.dst_ports)


class AccessList(object):
    """Ordered packet filter, packets not matched by any line are denied"""
    def __init__(self, name, lines):
        assert isinstance(name, str)
        for line in lines:
            assert isinstance(line, AccessListLine)
        self._name = name
        self._lines = list(lines)

    @property
    def name(self):
        return self._name

    @property
    def lines(self):
        return self._lines

    def __str__(self):
        return "AccessList(%s, %s)" % (self.name, self.lines)

    def __repr__(self):
        return self.__str__()
