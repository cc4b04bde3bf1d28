"""
Symbolic packet and the header space a slice reasons about
"""

import ipaddress

import z3


TCP_FLAGS = ['ack', 'cwr', 'ece', 'fin', 'psh', 'rst', 'syn', 'urg']


def to_network(net):
    if isinstance(net, str):
        net = ipaddress.ip_network(net)
    assert isinstance(net, ipaddress.IPv4Network), net
    return net


def first_bits_equal(bv, ip, length, ctx):
    """True if the first `length` bits of the bitvector equal those of ip"""
    if length == 0:
        return z3.BoolVal(True, ctx=ctx)
    mask = ((1 << 32) - 1) ^ ((1 << (32 - length)) - 1)
    mask_val = z3.BitVecVal(mask, 32, ctx=ctx)
    value = z3.BitVecVal(int(ip) & mask, 32, ctx=ctx)
    return (bv & mask_val) == value


class HeaderSpace(object):
    """
    Equivalence class of packets, unset fields match any packet.
    """
    def __init__(self, dst_ips=None, src_ips=None, ip_protocols=None,
                 dst_ports=None, src_ports=None):
        self.dst_ips = [to_network(net) for net in (dst_ips or [])]
        self.src_ips = [to_network(net) for net in (src_ips or [])]
        self.ip_protocols = list(ip_protocols or [])
        self.dst_ports = list(dst_ports or [])
        self.src_ports = list(src_ports or [])

    def may_overlap(self, prefix):
        """True if some destination of this header space falls in prefix"""
        if not self.dst_ips:
            return True
        for net in self.dst_ips:
            if net.overlaps(prefix):
                return True
        return False

    def __repr__(self):
        return "HeaderSpace(dst=%s, src=%s, proto=%s, dports=%s, sports=%s)" % (
            self.dst_ips, self.src_ips, self.ip_protocols,
            self.dst_ports, self.src_ports)


class SymbolicPacket(object):
    """Symbolic fields of the packet forwarded in a slice"""
    def __init__(self, ctx, prefix):
        """
        :param ctx: SolverContext
        :param prefix: name prefix, e.g. "0_SLICE-MAIN_"
        """
        self.ctx = ctx
        self.dst_ip = ctx.create_bitvec('%sdst-ip' % prefix, 32)
        self.src_ip = ctx.create_bitvec('%ssrc-ip' % prefix, 32)
        self.dst_port = ctx.create_int('%sdst-port' % prefix)
        self.src_port = ctx.create_int('%ssrc-port' % prefix)
        self.icmp_type = ctx.create_int('%sicmp-type' % prefix)
        self.icmp_code = ctx.create_int('%sicmp-code' % prefix)
        self.ip_protocol = ctx.create_int('%sip-protocol' % prefix)
        self.tcp_flags = {}
        for flag in TCP_FLAGS:
            self.tcp_flags[flag] = ctx.create_bool('%stcp-%s' % (prefix, flag))

    def in_prefix(self, prefix, length=None):
        """True if the destination matches the first bits of the prefix"""
        if length is None:
            length = prefix.prefixlen
        return first_bits_equal(self.dst_ip, prefix.network_address,
                                length, self.ctx.z3_ctx)

    def src_in_prefix(self, prefix):
        return first_bits_equal(self.src_ip, prefix.network_address,
                                prefix.prefixlen, self.ctx.z3_ctx)

    def dst_is(self, addr):
        """Destination equals exactly the given address"""
        return self.dst_ip == z3.BitVecVal(int(addr), 32, ctx=self.ctx.z3_ctx)

    def bounds(self):
        """Constraints on the range of every packet field"""
        constraints = []
        for var, upper in [(self.dst_port, 2 ** 16), (self.src_port, 2 ** 16),
                           (self.icmp_type, 2 ** 8), (self.ip_protocol, 2 ** 8),
                           (self.icmp_code, 2 ** 4)]:
            constraints.append(var >= 0)
            constraints.append(var < upper)
        return constraints

    def matches(self, header_space):
        """Constraint restricting the packet to the header space"""
        ctx = self.ctx
        parts = []
        if header_space.dst_ips:
            parts.append(z3.Or([self.in_prefix(net) for net in header_space.dst_ips]))
        if header_space.src_ips:
            parts.append(z3.Or([self.src_in_prefix(net) for net in header_space.src_ips]))
        if header_space.ip_protocols:
            parts.append(z3.Or([self.ip_protocol == proto
                                for proto in header_space.ip_protocols]))
        for var, ranges in [(self.dst_port, header_space.dst_ports),
                            (self.src_port, header_space.src_ports)]:
            if ranges:
                parts.append(z3.Or([z3.And(var >= low, var <= high)
                                    for low, high in ranges]))
        if not parts:
            return ctx.true()
        return z3.And(parts)
