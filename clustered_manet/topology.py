import ipaddress
import logging

import numpy as np

from clustered_manet.errors import AddressExhaustionError, ConfigurationError

logger = logging.getLogger(__name__)

# ====================================
# Model parameters
# ====================================
DEFAULT_BASE_NETWORK = "10.0.0.0"
DEFAULT_NETMASK = "255.255.255.0"
DEFAULT_TTL = 64
IP_UDP_HEADER = 28               # bytes added to every data payload on air


# ====================================
# Packets
# ====================================
class Packet:
    def __init__(self, kind, source, destination, size, created_time, port=None, payload=None,
                 ttl=DEFAULT_TTL, uid=None):
        self.uid = uid
        self.kind = kind
        self.source = source
        self.destination = destination
        self.size = size
        self.created_time = created_time
        self.port = port
        self.payload = payload
        self.ttl = ttl
        self.hops = 0

    def __repr__(self):
        return f"Packet({self.kind} #{self.uid} {self.source}->{self.destination} {self.size}B)"


# ====================================
# Devices and nodes
# ====================================
class Device:
    """One wireless interface: attaches a node to the shared phy."""

    def __init__(self, node, phy, index):
        self.node = node
        self.phy = phy
        self.index = index
        self.address = None
        self.network = None

    def __repr__(self):
        return f"Device(node={self.node.id}, if={self.index}, addr={self.address})"


class Node:
    """A drone: fixed position, one or more devices, a routing stack, bound apps."""

    def __init__(self, engine, node_id, position, network):
        self.engine = engine
        self.id = node_id
        self.position = np.asarray(position, dtype=float)
        self.network = network
        self.devices = []
        self.routing = None
        self.cluster_index = None
        self.is_bridge = False
        self.applications = {}

        # Stats
        self.packets_forwarded = 0
        self.packets_dropped = 0

    def __repr__(self):
        return f"Node({self.id})"

    @property
    def addresses(self):
        return [d.address for d in self.devices if d.address is not None]

    @property
    def phy(self):
        return self.devices[0].phy if self.devices else None

    def distance_to(self, other):
        return float(np.linalg.norm(self.position - other.position))

    def bind(self, port, application):
        self.applications[port] = application

    # ------------------------------------
    # Data plane
    # ------------------------------------
    def send(self, packet):
        """Originate a packet from a local application."""
        self.engine.trace("+", self, packet)
        self._route(packet)

    def _route(self, packet):
        if packet.destination in self.addresses:
            self._deliver_local(packet)
            return
        if self.routing is None:
            self._drop(packet, "no routing stack")
            return
        next_hop = self.routing.next_hop(packet.destination)
        if next_hop is None:
            self._drop(packet, "no route")
            return
        self.transmit(packet, next_hop)

    def receive(self, packet, sender):
        """Frame decoded from ``sender``."""
        self.engine.trace("r", self, packet)
        if packet.kind != "data":
            if self.routing is not None:
                self.routing.receive_control(packet, sender)
            return
        if packet.destination in self.addresses:
            self._deliver_local(packet)
            return
        packet.ttl -= 1
        if packet.ttl <= 0:
            self._drop(packet, "ttl expired")
            return
        self.packets_forwarded += 1
        self._route(packet)

    def _deliver_local(self, packet):
        app = self.applications.get(packet.port)
        if app is None:
            self._drop(packet, f"no application on port {packet.port}")
            return
        app.receive(packet)

    def _drop(self, packet, reason):
        self.packets_dropped += 1
        self.engine.trace("d", self, packet)
        logger.debug("t=%.4f node %d dropped %r: %s", self.engine.now, self.id, packet, reason)

    # ------------------------------------
    # Link layer
    # ------------------------------------
    def transmit(self, packet, next_hop):
        """Unicast one frame to a neighbour, retrying up to the phy's retry limit."""
        phy = self.phy
        distance = self.distance_to(next_hop)
        mode = phy.select_mode(distance)
        p_success = phy.success_probability(distance, mode)
        frame_time = phy.tx_time(packet.size, mode)

        attempts = 0
        success = False
        while attempts <= phy.max_retries and not success:
            attempts += 1
            success = self.engine.rng.random() < p_success
        if not success:
            self._drop(packet, f"link to node {next_hop.id} failed after {attempts} attempts")
            return

        packet.hops += 1
        delay = attempts * frame_time + phy.channel.delay(distance)
        self.engine.schedule(delay, next_hop.receive, packet, self)

    def broadcast(self, packet):
        """Send one frame to every node that decodes it; no retries."""
        phy = self.phy
        mode = phy.select_mode(0.0, broadcast=True)
        frame_time = phy.tx_time(packet.size, mode)
        self.engine.trace("+", self, packet)
        for other in self.network.nodes:
            if other is self or other.routing is None:
                continue
            distance = self.distance_to(other)
            if self.engine.rng.random() < phy.success_probability(distance, mode):
                self.engine.schedule(frame_time + phy.channel.delay(distance), other.receive, packet, self)


# ====================================
# Address allocation
# ====================================
class AddressAllocator:
    """Hands out host addresses from consecutive, never reused subnets."""

    def __init__(self, base=DEFAULT_BASE_NETWORK, mask=DEFAULT_NETMASK):
        self.network = ipaddress.IPv4Network(f"{base}/{mask}")
        self._next_host = 1

    @property
    def capacity(self):
        return max(self.network.num_addresses - 2, 1)

    @property
    def remaining(self):
        return self.capacity - (self._next_host - 1)

    def check_capacity(self, count):
        if count > self.remaining:
            raise AddressExhaustionError(count, self.capacity, self.network)

    def assign(self, devices):
        self.check_capacity(len(devices))
        for device in devices:
            device.address = self.network.network_address + self._next_host
            device.network = self.network
            self._next_host += 1
        return [d.address for d in devices]

    def new_network(self):
        """Move to the next subnet of the same size."""
        next_base = int(self.network.network_address) + self.network.num_addresses
        if next_base > int(ipaddress.IPv4Address("255.255.255.255")):
            raise AddressExhaustionError(1, 0)
        self.network = ipaddress.IPv4Network((next_base, self.network.prefixlen))
        self._next_host = 1
        return self.network


# ====================================
# Clusters
# ====================================
class ClusterHandle:
    def __init__(self, index, nodes, devices, network, is_bridge=False):
        self.index = index
        self.nodes = nodes
        self.devices = devices
        self.network = network
        self.is_bridge = is_bridge

    def __len__(self):
        return len(self.nodes)

    def __repr__(self):
        kind = "bridge" if self.is_bridge else "cluster"
        return f"ClusterHandle({kind} {self.index}, {len(self.nodes)} nodes, {self.network})"

    def get_address(self, i):
        return self.devices[i].address

    @property
    def bridge_node(self):
        """Designated representative of a first-tier cluster."""
        return self.nodes[0]


class Topology:
    def __init__(self):
        self.nodes = []
        self.clusters = []
        self.bridge_cluster = None
        self.node_by_address = {}

    def node(self, node_id):
        return self.nodes[node_id]

    def register(self, device):
        self.node_by_address[device.address] = device.node


class TopologyBuilder:
    """Builds first-tier clusters and the bridge cluster on one shared channel.

    Positions come from the configured allocator, every device references the
    same phy, and each cluster takes the next subnet from ``allocator``.
    """

    def __init__(self, engine, phy, position_allocator, routing, allocator=None):
        self.engine = engine
        self.phy = phy
        self.positions = position_allocator
        self.routing = routing
        self.allocator = allocator or AddressAllocator()
        self.topology = Topology()

    # ------------------------------------
    def _create_node(self):
        node = Node(self.engine, len(self.topology.nodes), self.positions.next_position(), self.topology)
        self.topology.nodes.append(node)
        return node

    def _install(self, nodes):
        # devices -> routing stack -> addresses
        devices = []
        for node in nodes:
            device = Device(node, self.phy, len(node.devices))
            node.devices.append(device)
            devices.append(device)
        for node in nodes:
            if node.routing is None:
                self.routing.install(node)
        self.allocator.assign(devices)
        network = self.allocator.network
        for device in devices:
            self.topology.register(device)
        self.allocator.new_network()
        return devices, network

    # ------------------------------------
    def build_cluster(self, node_count, cluster_index):
        if node_count < 1:
            raise ConfigurationError(f"cluster {cluster_index} needs at least one node")
        self.allocator.check_capacity(node_count)

        nodes = [self._create_node() for _ in range(node_count)]
        for node in nodes:
            node.cluster_index = cluster_index
        devices, network = self._install(nodes)

        cluster = ClusterHandle(cluster_index, nodes, devices, network)
        self.topology.clusters.append(cluster)
        logger.info("Created cluster %d with %d nodes on %s", cluster_index, node_count, network)
        return cluster

    def build_bridge_cluster(self, selected_nodes):
        """Join existing nodes (one per first-tier cluster) in a new cluster."""
        selected_nodes = list(selected_nodes)
        if not selected_nodes:
            raise ConfigurationError("bridge cluster needs at least one node")
        self.allocator.check_capacity(len(selected_nodes))

        for node in selected_nodes:
            node.is_bridge = True
        devices, network = self._install(selected_nodes)

        cluster = ClusterHandle(len(self.topology.clusters), selected_nodes, devices, network, is_bridge=True)
        self.topology.bridge_cluster = cluster
        logger.info("Created bridge cluster with nodes %s on %s", [n.id for n in selected_nodes], network)
        return cluster
