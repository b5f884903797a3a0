import csv
import json
import logging
from dataclasses import asdict, dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class SentPolicy(Enum):
    COUNTER = "counter"      # sum of generator tx counters
    ESTIMATE = "estimate"    # flows x nodes per sender x duration x rate
    FIXED = "fixed"          # configured expected total


class ThroughputUnit(Enum):
    PACKETS_PER_SECOND = "pkt/s"
    MEGABITS_PER_SECOND = "Mbit/s"


# ====================================
# Metric formulas
# ====================================
def loss_rate(sent, received):
    """Fraction of sent packets never received; 0.0 when nothing was sent."""
    if sent <= 0:
        return 0.0
    return (sent - received) / float(sent)


def throughput(rx_packets, rx_bytes, duration, unit):
    if unit is ThroughputUnit.MEGABITS_PER_SECOND:
        return rx_bytes * 8.0 / duration / 1e6
    return rx_packets / float(duration)


def estimate_sent(flow_count, nodes_per_flow_sender, duration, expected_rate_per_second):
    return int(flow_count * nodes_per_flow_sender * duration * expected_rate_per_second)


# ====================================
# Results
# ====================================
@dataclass
class FlowStats:
    flow_id: int
    source: str
    destination: str
    port: int
    tx_packets: int
    tx_bytes: int
    rx_packets: int
    rx_bytes: int
    mean_delay: float
    mean_hops: float
    loss_rate: float
    throughput_bps: float


@dataclass
class SimulationResult:
    throughput: float
    loss_rate: float

    def to_record(self):
        return f"{self.throughput!r},{self.loss_rate!r}"

    @classmethod
    def from_record(cls, line):
        fields = next(csv.reader([line.strip()]))
        if len(fields) != 2:
            raise ValueError(f"expected 2 fields, got {len(fields)}: {line!r}")
        return cls(float(fields[0]), float(fields[1]))


def append_result(result, path):
    """Append one ``throughput,loss_rate`` row."""
    with open(path, "a", newline="") as f:
        csv.writer(f).writerow([repr(result.throughput), repr(result.loss_rate)])
    logger.info("Appended result to %s", path)


def read_results(path):
    with open(path, newline="") as f:
        return [SimulationResult(float(row[0]), float(row[1])) for row in csv.reader(f) if row]


def dump_flow_stats(stats, path, result=None):
    document = {"flows": [asdict(s) for s in stats]}
    if result is not None:
        document["result"] = asdict(result)
    with open(path, "w") as f:
        json.dump(document, f, indent=2)
    logger.info("Wrote statistics for %d flows to %s", len(stats), path)


# ====================================
# Collector
# ====================================
class FlowStatisticsCollector:
    """Reads the application counters once the engine has halted.

    Throughput is reported in ``unit``; loss rate is always computed on
    packets, so ``sent`` (counted, estimated or fixed) and ``received`` share
    a unit whatever the throughput unit is.
    """

    def __init__(self, engine, flows, duration, sent_policy=SentPolicy.COUNTER,
                 unit=ThroughputUnit.PACKETS_PER_SECOND, nodes_per_flow_sender=1,
                 expected_rate_per_second=1.0, expected_sent=None):
        self.engine = engine
        self.flows = list(flows)
        self.duration = duration
        self.sent_policy = sent_policy
        self.unit = unit
        self.nodes_per_flow_sender = nodes_per_flow_sender
        self.expected_rate_per_second = expected_rate_per_second
        self.expected_sent = expected_sent
        self._collected = False

    def per_flow(self):
        stats = []
        for flow in self.flows:
            gen, sink = flow.generator, flow.sink
            rx = sink.rx_packets
            stats.append(FlowStats(
                flow_id=flow.flow_id,
                source=str(gen.node.addresses[0]),
                destination=str(gen.remote_address),
                port=gen.port,
                tx_packets=gen.tx_packets,
                tx_bytes=gen.tx_bytes,
                rx_packets=rx,
                rx_bytes=sink.total_rx,
                mean_delay=sink.delay_sum / rx if rx else 0.0,
                mean_hops=sink.hops_sum / rx if rx else 0.0,
                loss_rate=loss_rate(gen.tx_packets, rx),
                throughput_bps=sink.total_rx * 8.0 / self.duration,
            ))
        return stats

    def sent(self):
        if self.sent_policy is SentPolicy.ESTIMATE:
            return estimate_sent(len(self.flows), self.nodes_per_flow_sender, self.duration,
                                 self.expected_rate_per_second)
        if self.sent_policy is SentPolicy.FIXED:
            return self.expected_sent
        return sum(f.generator.tx_packets for f in self.flows)

    def collect(self):
        """Return ``(SimulationResult, [FlowStats])``; counters are read only once."""
        if not self.engine.halted:
            raise RuntimeError("flow counters can only be read after the engine halted")
        if self._collected:
            raise RuntimeError("flow counters were already collected for this run")
        self._collected = True

        stats = self.per_flow()
        rx_packets = sum(s.rx_packets for s in stats)
        rx_bytes = sum(s.rx_bytes for s in stats)
        sent = self.sent()
        received = rx_packets
        if received > sent:
            logger.warning("Received %d packets but only %d were expected (%s policy); clamping",
                           received, sent, self.sent_policy.value)
            received = sent

        result = SimulationResult(
            throughput=throughput(rx_packets, rx_bytes, self.duration, self.unit),
            loss_rate=loss_rate(sent, received),
        )
        logger.info("Sent %d, received %d packets over %d flows", sent, rx_packets, len(stats))
        logger.info("Throughput: %.4f %s", result.throughput, self.unit.value)
        logger.info("Loss Rate: %.4f", result.loss_rate)
        return result, stats
