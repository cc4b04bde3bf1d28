#!/usr/bin/env python
"""
Entry point of the encoding: builds the slices of a network and
checks the resulting constraints with z3.
"""

from collections import OrderedDict
import ipaddress
import logging

import z3

from netsmt.smt.context import SolverContext
from netsmt.smt.failures import FailureModel
from netsmt.smt.packet import HeaderSpace
from netsmt.smt.repair import RepairObjective
from netsmt.smt.repair import RepairRegistry
from netsmt.smt.repair import RepairWeights
from netsmt.smt.slice import EncoderSlice
from netsmt.smt.slice import MAIN_SLICE_NAME


class SharedContext(object):
    """State shared by all the slices of one encoder"""

    def __init__(self, ctx, network_graph, failure_model, registry,
                 repair=False, model_igp=True, encoder_id=0):
        self.ctx = ctx
        self.network_graph = network_graph
        self.failure_model = failure_model
        self.registry = registry
        self.repair = repair
        self.model_igp = model_igp
        self.encoder_id = encoder_id
        # Local preference values configured anywhere in the network
        self.local_prefs = set()
        # router -> EncoderSlice routing towards its peering address
        self.igp_slices = OrderedDict()
        # (src, dst) -> Bool, src reaches the peering address of dst
        self.reachability = OrderedDict()

    def reachable(self, src, dst):
        return self.reachability.get((src, dst))


class Encoder(object):
    """
    Encodes the control plane and the data plane of a network.

    Usage:
        encoder = Encoder(network_graph, HeaderSpace(dst_ips=['10.0.0.0/24']))
        encoder.compute_encoding()
        encoder.add(some_property)
        if encoder.check() == z3.sat:
            print(encoder.get_forwarding())
    """

    def __init__(self, network_graph, header_space=None, failures=0,
                 repair=False, repair_objective=RepairObjective.EDITS,
                 weights=None, model_igp=True, frozen_routers=None,
                 encoder_id=0, z3_ctx=None):
        """
        :param network_graph: NetworkGraph
        :param header_space: HeaderSpace of the main slice, all packets by default
        :param failures: max number of links that can fail
        :param repair: encode edit variables and minimize the applied edits
        :param repair_objective: RepairObjective
        :param weights: dict of weight key -> int, or RepairWeights
        :param model_igp: encode the reachability of iBGP next hops
        :param frozen_routers: routers that can't be edited
        :param encoder_id: prefix of all variables, to combine encoders
        :param z3_ctx: z3.Context
        """
        self.log = logging.getLogger('%s.%s' % (
            self.__module__, self.__class__.__name__))
        assert isinstance(failures, int) and failures >= 0, failures
        if not isinstance(weights, RepairWeights):
            weights = RepairWeights(weights)
        self.network_graph = network_graph
        self.header_space = header_space or HeaderSpace()
        self.failures = failures
        self.repair = repair
        self.model_igp = model_igp
        self.encoder_id = encoder_id
        self.ctx = SolverContext(z3_ctx, optimize=repair)
        self.failure_model = FailureModel(self.ctx, network_graph,
                                          failures, encoder_id)
        self.registry = RepairRegistry(self.ctx, weights, repair_objective,
                                       frozen_routers, encoder_id)
        self.shared = SharedContext(self.ctx, network_graph, self.failure_model,
                                    self.registry, repair=repair,
                                    model_igp=model_igp, encoder_id=encoder_id)
        self.slices = OrderedDict()
        self.traffic_classes = []
        self.main_slice = EncoderSlice(self.shared, self.header_space,
                                       MAIN_SLICE_NAME)
        self.slices[MAIN_SLICE_NAME] = self.main_slice
        if model_igp and network_graph.has_ibgp():
            self._init_igp_slices()
            self._init_reachability()
        self._encoded = False

    def _init_igp_slices(self):
        """One IGP only slice per iBGP speaker, routing to its peering address"""
        g = self.network_graph
        for router in g.local_routers_iter():
            if not g.get_ibgp_neighbors(router):
                continue
            addr = g.get_peering_address(router)
            if addr is None:
                self.log.warning("No peering address for iBGP speaker %s", router)
                continue
            host = ipaddress.ip_network("%s/32" % addr.ip)
            name = "SLICE-%s_" % router
            igp_slice = EncoderSlice(self.shared, HeaderSpace(dst_ips=[host]),
                                     name, igp_only=True)
            self.shared.igp_slices[router] = igp_slice
            self.slices[name] = igp_slice

    def _init_reachability(self):
        for dst, igp_slice in self.shared.igp_slices.items():
            for router in self.network_graph.local_routers_iter():
                name = "%d_%sREACHABLE_%s" % (self.encoder_id, igp_slice.slice_name, router)
                self.shared.reachability[(router, dst)] = self.ctx.create_bool(name)

    def _add_reachability_constraints(self):
        """
        A router reaches the destination iff it forwards to a neighbor that
        reaches it. Forwarding to a reaching neighbor forces reachability,
        while claiming it needs a neighbor with a strictly smaller id so
        forwarding loops can't justify themselves.
        """
        ctx = self.ctx
        g = self.network_graph
        for dst, igp_slice in self.shared.igp_slices.items():
            ids = OrderedDict()
            for router in g.local_routers_iter():
                name = "%d_%sID_%s" % (self.encoder_id, igp_slice.slice_name, router)
                ids[router] = ctx.create_int(name)
                ctx.add(ids[router] >= 0)
            for router in g.local_routers_iter():
                reach = self.shared.reachability[(router, dst)]
                if router == dst:
                    ctx.add(reach)
                    continue
                hops = []
                ordered_hops = []
                for edge, across in igp_slice.forwards_across[router].items():
                    if edge.peer is None or not g.is_local_router(edge.peer):
                        continue
                    peer_reach = self.shared.reachability[(edge.peer, dst)]
                    hops.append(z3.And(across, peer_reach))
                    ordered_hops.append(z3.And(across, peer_reach,
                                               ids[router] > ids[edge.peer]))
                if not hops:
                    ctx.add(z3.Not(reach))
                    continue
                ctx.add(z3.Implies(z3.Or(hops), reach))
                ctx.add(z3.Implies(reach, z3.Or(ordered_hops)))

    def add_traffic_class(self, header_space):
        """
        Encode the forwarding of another header space on top of the
        control plane of the main slice
        :return: the new EncoderSlice
        """
        assert not self._encoded, "Traffic classes must be added before encoding"
        name = "SLICE-TC%d_" % len(self.traffic_classes)
        tc_slice = EncoderSlice(self.shared, header_space, name,
                                base=self.main_slice)
        self.traffic_classes.append(tc_slice)
        self.slices[name] = tc_slice
        return tc_slice

    def compute_encoding(self):
        """Add all the constraints of the network to the solver"""
        if self._encoded:
            return
        for constraint in self.failure_model.constraints():
            self.ctx.add(constraint)
        for enc_slice in self.slices.values():
            enc_slice.compute_encoding()
        self._add_reachability_constraints()
        if self.repair:
            self.registry.finalize()
        self._encoded = True
        self.log.info("Encoded %d slices, %d edit variables",
                      len(self.slices), len(self.registry))

    def add(self, constraint, name=None):
        """Add a property to check against the network"""
        self.ctx.add(constraint, name)

    def check(self):
        """Check the encoding, returns z3.sat, z3.unsat or z3.unknown"""
        self.compute_encoding()
        return self.ctx.check()

    @property
    def model(self):
        return self.ctx.model

    def _get_model(self, model):
        if model is None:
            model = self.ctx.model
        assert model is not None, "No model, check() was not satisfiable"
        return model

    def get_forwarding(self, model=None, enc_slice=None):
        """
        Interfaces used to forward the packet of the slice
        :return: OrderedDict router -> list of ifaces
        """
        model = self._get_model(model)
        enc_slice = enc_slice or self.main_slice
        ret = OrderedDict()
        for router, edges in enc_slice.decisions.data_forwarding.items():
            ret[router] = [edge.iface for edge, var in edges.items()
                           if z3.is_true(model.eval(var, model_completion=True))]
        return ret

    def get_packet(self, model=None, enc_slice=None):
        """The concrete destination and source addresses of the packet"""
        model = self._get_model(model)
        packet = (enc_slice or self.main_slice).packet
        dst = model.eval(packet.dst_ip, model_completion=True).as_long()
        src = model.eval(packet.src_ip, model_completion=True).as_long()
        return ipaddress.IPv4Address(dst), ipaddress.IPv4Address(src)

    def get_best_route(self, router, model=None):
        """Attributes of the overall best route of the router"""
        model = self._get_model(model)
        best = self.main_slice.decisions.best_overall[router]
        return best.to_dict(model)

    def get_failed_links(self, model=None):
        model = self._get_model(model)
        failed = []
        for key, var in list(self.failure_model.failed_internal.items()) + \
                list(self.failure_model.failed_edge.items()):
            if model.eval(var, model_completion=True).as_long() == 1:
                failed.append(key)
        return failed

    def get_edits(self, model=None):
        """The configuration edits applied by the model, as a list of Edit"""
        if not self.repair:
            return []
        return self.registry.applied_edits(self._get_model(model))
