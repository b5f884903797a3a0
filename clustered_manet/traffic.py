import logging

from clustered_manet.errors import ConfigurationError
from clustered_manet.topology import IP_UDP_HEADER, Packet

logger = logging.getLogger(__name__)


# ====================================
# Applications
# ====================================
class OnOffApplication:
    """Constant-size, constant-rate UDP generator with an optional duty cycle."""

    def __init__(self, engine, node, remote_address, port, packet_size, data_rate_bps,
                 on_time=None, off_time=0.0):
        self.engine = engine
        self.node = node
        self.remote_address = remote_address
        self.port = port
        self.packet_size = packet_size
        self.data_rate_bps = data_rate_bps
        self.on_time = on_time
        self.off_time = off_time
        self.start_time = None
        self.stop_time = None

        # Stats
        self.tx_packets = 0
        self.tx_bytes = 0

    @property
    def interval(self):
        return self.packet_size * 8.0 / self.data_rate_bps

    def schedule(self, start_time, stop_time):
        self.start_time = start_time
        self.stop_time = stop_time
        self.engine.process(self._run())

    def _run(self):
        if self.start_time > self.engine.now:
            yield self.engine.timeout(self.start_time - self.engine.now)
        while self.engine.now < self.stop_time:
            if self.on_time is None:
                burst_end = self.stop_time
            else:
                burst_end = min(self.stop_time, self.engine.now + self.on_time)
            while self.engine.now < burst_end:
                self._send()
                yield self.engine.timeout(self.interval)
            if self.off_time > 0 and self.engine.now < self.stop_time:
                yield self.engine.timeout(self.off_time)

    def _send(self):
        packet = Packet("data", self.node.addresses[0], self.remote_address,
                        self.packet_size + IP_UDP_HEADER, self.engine.now, port=self.port,
                        uid=self.engine.next_packet_id())
        self.tx_packets += 1
        self.tx_bytes += self.packet_size
        self.node.send(packet)


class PacketSink:
    """Accepts everything that arrives on its port while running."""

    def __init__(self, engine, node, port):
        self.engine = engine
        self.node = node
        self.port = port
        self.start_time = None
        self.stop_time = None

        # Stats
        self.rx_packets = 0
        self.total_rx = 0
        self.delay_sum = 0.0
        self.hops_sum = 0

        node.bind(port, self)

    def schedule(self, start_time, stop_time):
        self.start_time = start_time
        self.stop_time = stop_time

    def receive(self, packet):
        now = self.engine.now
        if self.start_time is None or not (self.start_time <= now < self.stop_time):
            return
        self.rx_packets += 1
        self.total_rx += packet.size - IP_UDP_HEADER
        self.delay_sum += now - packet.created_time
        self.hops_sum += packet.hops


class Flow:
    def __init__(self, flow_id, generator, sink):
        self.flow_id = flow_id
        self.generator = generator
        self.sink = sink

    def __repr__(self):
        return (f"Flow({self.flow_id}: node {self.generator.node.id} -> "
                f"{self.generator.remote_address}:{self.generator.port})")


# ====================================
# Flow attachment
# ====================================
def attach_flow(engine, source, sink_device, port, packet_size, data_rate_bps, start_time, stop_time,
                sink_start_time=None, on_time=None, off_time=0.0):
    """Install a sink on ``sink_device`` and a generator on ``source`` aimed at it.

    The sink starts at ``sink_start_time`` (default: one second before the
    generator, never before zero) and both stop at ``stop_time``.
    """
    if sink_device.node is source:
        raise ConfigurationError(f"flow from node {source.id} to itself")
    if sink_device.address is None:
        raise ConfigurationError(f"sink device {sink_device!r} has no address")
    if sink_start_time is None:
        sink_start_time = max(0.0, start_time - 1.0)
    if sink_start_time > start_time:
        raise ConfigurationError(f"sink starts at {sink_start_time}s, after its generator at {start_time}s")
    if stop_time < start_time:
        raise ConfigurationError(f"flow stops at {stop_time}s before it starts at {start_time}s")
    if port in sink_device.node.applications:
        raise ConfigurationError(f"port {port} already bound on node {sink_device.node.id}")

    sink = PacketSink(engine, sink_device.node, port)
    sink.schedule(sink_start_time, stop_time)

    generator = OnOffApplication(engine, source, sink_device.address, port, packet_size, data_rate_bps,
                                 on_time=on_time, off_time=off_time)
    generator.schedule(start_time, stop_time)

    logger.info("Attached flow node %d -> %s:%d (%d B @ %.0f bit/s, %.1fs-%.1fs)",
                source.id, sink_device.address, port, packet_size, data_rate_bps, start_time, stop_time)
    return generator, sink
