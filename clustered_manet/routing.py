"""Proactive link-state routing in the style of OLSR (RFC 3626).

Every node periodically broadcasts a HELLO listing the neighbours it hears,
which neighbours it considers symmetric and which of them it picked as
multipoint relays (MPRs). Topology control (TC) messages carry each node's
symmetric neighbour set across the whole network; only MPRs re-forward them.
Routes are shortest paths (hop count) over the resulting graph.

Node ids stand in for OLSR main addresses. A destination is reachable through
any of its interface addresses, which covers what MID messages do in the RFC.
"""
import logging

import networkx as nx

from clustered_manet.topology import Packet

logger = logging.getLogger(__name__)

HELLO_HEADER = 16                # bytes, packet + message header
TC_HEADER = 20
ADDRESS_SIZE = 4
BROADCAST = "255.255.255.255"
TC_TTL = 255
FORWARD_JITTER = 0.005           # max delay before re-forwarding a TC [s]


class LinkTuple:
    def __init__(self):
        self.heard_until = 0.0
        self.sym_until = 0.0


class TopologyTuple:
    def __init__(self, ansn, advertised, expires):
        self.ansn = ansn
        self.advertised = advertised
        self.expires = expires


# ====================================
# Per-node agent
# ====================================
class OlsrAgent:
    def __init__(self, engine, node, config):
        self.engine = engine
        self.node = node
        self.config = config

        self.links = {}           # neighbour id -> LinkTuple
        self.two_hop = {}         # (neighbour id, two-hop id) -> expiry
        self.mpr_set = set()
        self.mpr_selectors = {}   # neighbour id -> expiry
        self.topology = {}        # originator id -> TopologyTuple
        self.duplicates = {}      # (originator id, seq) -> expiry

        self.ansn = 0
        self.message_seq = 0
        self._last_advertised = None

        self._table = None
        self._table_expires = 0.0

        # Stats
        self.hellos_sent = 0
        self.tcs_sent = 0
        self.tcs_forwarded = 0
        self.route_computations = 0

    def start(self):
        self.engine.process(self._hello_loop())
        self.engine.process(self._tc_loop())

    # ------------------------------------
    # Neighbour state
    # ------------------------------------
    def symmetric_neighbors(self):
        now = self.engine.now
        return {n for n, link in self.links.items() if link.sym_until > now}

    def heard_neighbors(self):
        now = self.engine.now
        return {n for n, link in self.links.items() if link.heard_until > now}

    def active_mpr_selectors(self):
        now = self.engine.now
        return {n for n, expires in self.mpr_selectors.items() if expires > now}

    def select_mprs(self):
        """Greedy MPR selection covering every strict two-hop neighbour."""
        now = self.engine.now
        neighbors = self.symmetric_neighbors()
        coverage = {n: set() for n in neighbors}
        for (via, target), expires in self.two_hop.items():
            if expires <= now or via not in neighbors:
                continue
            if target == self.node.id or target in neighbors:
                continue
            coverage[via].add(target)

        uncovered = set().union(*coverage.values()) if coverage else set()
        mprs = set()

        # neighbours that are the only way to reach some two-hop node
        for target in list(uncovered):
            vias = [n for n, covered in coverage.items() if target in covered]
            if len(vias) == 1:
                mprs.add(vias[0])
        for n in mprs:
            uncovered -= coverage[n]

        while uncovered:
            best = max(sorted(coverage), key=lambda n: len(coverage[n] & uncovered))
            mprs.add(best)
            uncovered -= coverage[best]

        self.mpr_set = mprs
        return mprs

    # ------------------------------------
    # HELLO
    # ------------------------------------
    def _jitter(self):
        return self.engine.rng.uniform(0.0, self.config.max_jitter)

    def _hello_loop(self):
        yield self.engine.timeout(self._jitter())
        while True:
            self.send_hello()
            yield self.engine.timeout(self.config.hello_interval - self._jitter())

    def send_hello(self):
        self.select_mprs()
        heard = self.heard_neighbors()
        sym = self.symmetric_neighbors()
        message = {
            "heard": heard,
            "sym": sym,
            "mpr": set(self.mpr_set),
            "willingness": self.config.willingness,
        }
        size = HELLO_HEADER + ADDRESS_SIZE * (len(heard) + len(sym))
        packet = Packet("hello", self.node.id, BROADCAST, size, self.engine.now, payload=message, ttl=1,
                        uid=self.engine.next_packet_id())
        self.node.broadcast(packet)
        self.hellos_sent += 1

    def _neighborhood(self):
        now = self.engine.now
        two_hop = {k for k, expires in self.two_hop.items() if expires > now}
        return self.symmetric_neighbors(), two_hop

    def _process_hello(self, sender, message):
        now = self.engine.now
        hold = self.config.neighbor_hold_time
        before = self._neighborhood()
        link = self.links.setdefault(sender.id, LinkTuple())
        link.heard_until = now + hold
        if self.node.id in message["heard"] or self.node.id in message["sym"]:
            link.sym_until = now + hold

        if link.sym_until > now and message["willingness"] > 0:
            for key in [k for k in self.two_hop if k[0] == sender.id]:
                if key[1] not in message["sym"]:
                    del self.two_hop[key]
            for target in message["sym"]:
                if target != self.node.id:
                    self.two_hop[(sender.id, target)] = now + hold

        if self.node.id in message["mpr"] and link.sym_until > now:
            self.mpr_selectors[sender.id] = now + hold

        if self._neighborhood() != before:
            self.select_mprs()
            self._invalidate()

    # ------------------------------------
    # TC
    # ------------------------------------
    def _tc_loop(self):
        yield self.engine.timeout(self._jitter())
        while True:
            self.send_tc()
            yield self.engine.timeout(self.config.tc_interval - self._jitter())

    def advertised_set(self):
        return self.symmetric_neighbors() | self.active_mpr_selectors()

    def send_tc(self):
        advertised = self.advertised_set()
        if not advertised:
            return
        if advertised != self._last_advertised:
            self.ansn += 1
            self._last_advertised = advertised
        self.message_seq += 1
        message = {
            "originator": self.node.id,
            "seq": self.message_seq,
            "ansn": self.ansn,
            "advertised": advertised,
        }
        size = TC_HEADER + ADDRESS_SIZE * len(advertised)
        packet = Packet("tc", self.node.id, BROADCAST, size, self.engine.now, payload=message, ttl=TC_TTL,
                        uid=self.engine.next_packet_id())
        self.duplicates[(self.node.id, self.message_seq)] = self.engine.now + self.config.topology_hold_time
        self.node.broadcast(packet)
        self.tcs_sent += 1

    def _process_tc(self, packet, sender):
        now = self.engine.now
        message = packet.payload
        originator = message["originator"]
        # only accept TCs relayed by a symmetric neighbour
        if sender.id not in self.symmetric_neighbors() or originator == self.node.id:
            return
        key = (originator, message["seq"])
        if self.duplicates.get(key, 0.0) > now:
            return
        self.duplicates[key] = now + self.config.topology_hold_time

        current = self.topology.get(originator)
        if current is None or current.expires <= now or message["ansn"] >= current.ansn:
            self.topology[originator] = TopologyTuple(
                message["ansn"], frozenset(message["advertised"]), now + self.config.topology_hold_time)
            self._invalidate()

        if sender.id in self.active_mpr_selectors() and packet.ttl > 1:
            relay = Packet("tc", packet.source, BROADCAST, packet.size, packet.created_time,
                           payload=message, ttl=packet.ttl - 1, uid=self.engine.next_packet_id())
            relay.hops = packet.hops + 1
            self.engine.schedule(self.engine.rng.uniform(0.0, FORWARD_JITTER), self.node.broadcast, relay)
            self.tcs_forwarded += 1

    def receive_control(self, packet, sender):
        if packet.kind == "hello":
            self._process_hello(sender, packet.payload)
        elif packet.kind == "tc":
            self._process_tc(packet, sender)

    # ------------------------------------
    # Route computation
    # ------------------------------------
    def _invalidate(self):
        self._table = None

    def _live_expiries(self, now):
        expiries = [link.sym_until for link in self.links.values() if link.sym_until > now]
        expiries += [e for e in self.two_hop.values() if e > now]
        expiries += [t.expires for t in self.topology.values() if t.expires > now]
        return expiries

    def topology_graph(self):
        now = self.engine.now
        graph = nx.Graph()
        graph.add_node(self.node.id)
        neighbors = self.symmetric_neighbors()
        for n in neighbors:
            graph.add_edge(self.node.id, n)
        for (via, target), expires in self.two_hop.items():
            if expires > now and via in neighbors:
                graph.add_edge(via, target)
        for originator, entry in self.topology.items():
            if entry.expires <= now:
                continue
            for dest in entry.advertised:
                graph.add_edge(originator, dest)
        return graph

    def routing_table(self):
        """Map destination node id -> (next hop id, hop count)."""
        now = self.engine.now
        if self._table is not None and now < self._table_expires:
            return self._table

        paths = nx.single_source_shortest_path(self.topology_graph(), self.node.id)
        table = {}
        for dest, path in paths.items():
            if dest == self.node.id:
                continue
            table[dest] = (path[1], len(path) - 1)

        expiries = self._live_expiries(now)
        self._table = table
        self._table_expires = min(expiries) if expiries else float("inf")
        self.route_computations += 1
        logger.debug("t=%.4f node %d recomputed %d routes", now, self.node.id, len(table))
        return table

    def next_hop(self, address):
        dest = self.node.network.node_by_address.get(address)
        if dest is None:
            return None
        entry = self.routing_table().get(dest.id)
        if entry is None:
            return None
        return self.node.network.node(entry[0])


# ====================================
# Stack-wide installation
# ====================================
class RoutingFabric:
    """Installs one agent per node; agents start advertising at install time."""

    def __init__(self, engine, config):
        self.engine = engine
        self.config = config
        self.agents = {}

    def install(self, node):
        if node.id in self.agents:
            return self.agents[node.id]
        agent = OlsrAgent(self.engine, node, self.config)
        node.routing = agent
        self.agents[node.id] = agent
        agent.start()
        return agent

    def reachable(self, source, destination):
        """True if ``source`` currently holds a route to ``destination``."""
        if source is destination:
            return True
        return destination.id in source.routing.routing_table()
