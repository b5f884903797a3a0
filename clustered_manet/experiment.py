import argparse
import logging
import sys

from clustered_manet.channel import Phy, configure_channel
from clustered_manet.config import DEFAULT_PROFILE, get_profile
from clustered_manet.engine import Engine
from clustered_manet.flowstats import FlowStatisticsCollector, append_result, dump_flow_stats
from clustered_manet.mobility import configure_mobility
from clustered_manet.routing import RoutingFabric
from clustered_manet.topology import TopologyBuilder
from clustered_manet.trace import AsciiTrace
from clustered_manet.traffic import Flow, attach_flow

logger = logging.getLogger(__name__)


# ====================================
# Experiment
# ====================================
class Experiment:
    """One parameterized run of the two-tier clustered swarm.

    Sequence: channel/mobility -> clusters + bridge cluster (routing installed
    with the stack) -> flows -> engine run -> counters -> result.
    """

    def __init__(self, config, engine=None):
        self.config = config
        self.engine = engine
        self.phy = None
        self.routing = None
        self.topology = None
        self.clusters = []
        self.bridge = None
        self.flows = []
        self.stats = []
        self.result = None

    # ------------------------------------
    def setup(self):
        cfg = self.config
        if self.engine is None:
            self.engine = Engine(cfg.seed)
        elif self.engine.halted:
            self.engine.reset(cfg.seed)
        engine = self.engine
        logger.info("Starting experiment: %d clusters x %d nodes, %.1fs, seed %d",
                    cfg.cluster_count, cfg.nodes_per_cluster, cfg.simulation_duration, engine.seed)

        channel = configure_channel(cfg.channel)
        self.phy = Phy.from_config(cfg.channel, channel)
        positions = configure_mobility(cfg.mobility, cfg.area_width, cfg.area_height, engine.np_rng)
        self.routing = RoutingFabric(engine, cfg.routing)
        logger.info("Proactive link-state routing configured (hello %.1fs, tc %.1fs)",
                    cfg.routing.hello_interval, cfg.routing.tc_interval)

        builder = TopologyBuilder(engine, self.phy, positions, self.routing)
        self.clusters = [builder.build_cluster(cfg.nodes_per_cluster, i) for i in range(cfg.cluster_count)]
        if len(self.clusters) > 1:
            self.bridge = builder.build_bridge_cluster([c.bridge_node for c in self.clusters])
        self.topology = builder.topology

        self.flows = self.attach_flows()
        return self

    def attach_flows(self):
        cfg = self.config
        flow_cfg = cfg.flow
        stop_time = cfg.simulation_duration
        flows = []

        def connect(source, sink_device, port):
            gen, sink = attach_flow(
                self.engine, source, sink_device, port,
                flow_cfg.packet_size, flow_cfg.data_rate_bps,
                flow_cfg.start_time, stop_time,
                sink_start_time=flow_cfg.sink_start_time,
                on_time=flow_cfg.on_time, off_time=flow_cfg.off_time,
            )
            flows.append(Flow(len(flows), gen, sink))

        for cluster in self.clusters:
            if len(cluster) < 2:
                logger.warning("Cluster %d has a single node; no intra-cluster flow", cluster.index)
                continue
            connect(cluster.nodes[0], cluster.devices[1], cfg.port)

        if cfg.inter_cluster_flows and len(self.clusters) > 1:
            for i, cluster in enumerate(self.clusters):
                target = self.clusters[(i + 1) % len(self.clusters)]
                source = cluster.nodes[-1]
                if source is target.nodes[-1]:
                    continue
                connect(source, target.devices[-1], cfg.port + 1)
        return flows

    # ------------------------------------
    def run(self):
        cfg = self.config
        if self.topology is None:
            self.setup()

        tracer = AsciiTrace(cfg.trace_path) if cfg.trace_path else None
        self.engine.tracer = tracer
        try:
            self.engine.run(cfg.simulation_duration)
        finally:
            if tracer is not None:
                tracer.close()
                self.engine.tracer = None

        agents = self.routing.agents.values()
        logger.info("Routing overhead: %d HELLO, %d TC originated, %d TC forwarded",
                    sum(a.hellos_sent for a in agents), sum(a.tcs_sent for a in agents),
                    sum(a.tcs_forwarded for a in agents))
        logger.info("Simulation finished. Processing results...")
        collector = FlowStatisticsCollector(
            self.engine, self.flows, cfg.simulation_duration,
            sent_policy=cfg.sent_policy,
            unit=cfg.throughput_unit,
            nodes_per_flow_sender=cfg.nodes_per_cluster,
            expected_rate_per_second=cfg.expected_rate_per_second,
            expected_sent=cfg.expected_sent,
        )
        self.result, self.stats = collector.collect()

        if cfg.results_path:
            append_result(self.result, cfg.results_path)
        if cfg.flow_stats_path:
            dump_flow_stats(self.stats, cfg.flow_stats_path, self.result)
        if cfg.plot_path:
            from clustered_manet.plotting import save_summary_figure
            save_summary_figure(self.topology, self.stats, cfg.plot_path)
            logger.info("Saved figure to %s", cfg.plot_path)
        return self.result


def run_experiment(config, engine=None):
    return Experiment(config, engine).run()


# ====================================
# MAIN
# ====================================
def positive_float(value):
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not a number") from None
    if seconds <= 0:
        raise argparse.ArgumentTypeError(f"simulation time must be positive, got {value}")
    return seconds


def build_parser(default_duration):
    parser = argparse.ArgumentParser(description="Two-tier clustered drone swarm MANET experiment")
    parser.add_argument("--simulationTime", type=positive_float, default=default_duration,
                        help=f"Simulation duration in seconds (default: {default_duration:g})")
    return parser


def main(argv=None):
    config = get_profile(DEFAULT_PROFILE)
    args = build_parser(config.simulation_duration).parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    result = run_experiment(config.with_duration(args.simulationTime))

    print(f"Throughput: {result.throughput} {config.throughput_unit.value}")
    print(f"Loss Rate: {result.loss_rate}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
