"""
Translate access lists into boolean expressions over the symbolic packet
"""

import z3

from netsmt.topo.policy import Access


class AclFunction(object):
    """
    Evaluates the lines of an access list in order,
    packets not matched by any line are denied.
    """

    def __init__(self, packet, acl):
        self.packet = packet
        self.acl = acl

    def _ports(self, var, ranges):
        return z3.Or([z3.And(var >= low, var <= high) for low, high in ranges])

    def line_match(self, line):
        packet = self.packet
        conds = []
        if line.src is not None:
            conds.append(packet.src_in_prefix(line.src))
        if line.dst is not None:
            conds.append(packet.in_prefix(line.dst))
        if line.protocols:
            conds.append(z3.Or([packet.ip_protocol == proto
                                for proto in line.protocols]))
        if line.src_ports:
            conds.append(self._ports(packet.src_port, line.src_ports))
        if line.dst_ports:
            conds.append(self._ports(packet.dst_port, line.dst_ports))
        if line.icmp_type is not None:
            conds.append(packet.icmp_type == line.icmp_type)
        if line.icmp_code is not None:
            conds.append(packet.icmp_code == line.icmp_code)
        if not conds:
            return packet.ctx.true()
        return z3.And(conds)

    def compute(self):
        acc = self.packet.ctx.false()
        for line in reversed(self.acl.lines):
            permitted = self.packet.ctx.true() if line.access == Access.permit \
                else self.packet.ctx.false()
            acc = z3.If(self.line_match(line), permitted, acc)
        return acc
