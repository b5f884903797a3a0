from dataclasses import dataclass, field, replace
from typing import Optional

from clustered_manet.channel import (
    HT_MODES,
    TX_POWER_HIGH_DBM,
    TX_POWER_MODERATE_DBM,
    PropagationDelayModel,
    PropagationLossModel,
    RateControl,
)
from clustered_manet.errors import ConfigurationError
from clustered_manet.flowstats import SentPolicy, ThroughputUnit
from clustered_manet.mobility import PlacementPolicy


def _require(condition, message):
    if not condition:
        raise ConfigurationError(message)


# ====================================
# Component configs
# ====================================
@dataclass(frozen=True)
class ChannelConfig:
    loss_model: PropagationLossModel = PropagationLossModel.FRIIS
    delay_model: PropagationDelayModel = PropagationDelayModel.CONSTANT_SPEED
    frequency_hz: float = 5.15e9
    path_loss_exponent: float = 3.0
    reference_distance: float = 1.0
    reference_loss_db: float = 46.6777
    tx_power_dbm: float = TX_POWER_MODERATE_DBM
    rate_control: RateControl = RateControl.CONSTANT
    data_mode: str = "HtMcs7"
    control_mode: str = "HtMcs0"
    rx_sensitivity_dbm: float = -101.0
    noise_figure_db: float = 7.0
    max_retries: int = 7

    def __post_init__(self):
        _require(isinstance(self.loss_model, PropagationLossModel), f"unknown loss model {self.loss_model!r}")
        _require(isinstance(self.delay_model, PropagationDelayModel), f"unknown delay model {self.delay_model!r}")
        _require(isinstance(self.rate_control, RateControl), f"unknown rate control {self.rate_control!r}")
        _require(self.frequency_hz > 0, "frequency must be positive")
        _require(self.path_loss_exponent > 0, "path loss exponent must be positive")
        _require(self.reference_distance > 0, "reference distance must be positive")
        _require(-50.0 <= self.tx_power_dbm <= 100.0, f"tx power {self.tx_power_dbm} dBm out of range [-50, 100]")
        _require(self.data_mode in HT_MODES, f"unknown data mode {self.data_mode!r}")
        _require(self.control_mode in HT_MODES, f"unknown control mode {self.control_mode!r}")
        _require(self.noise_figure_db >= 0, "noise figure must be non-negative")
        _require(self.max_retries >= 0, "max retries must be non-negative")


@dataclass(frozen=True)
class MobilityConfig:
    placement: PlacementPolicy = PlacementPolicy.RANDOM_RECTANGLE
    grid_min_x: float = 0.0
    grid_min_y: float = 0.0
    grid_delta_x: float = 50.0
    grid_delta_y: float = 50.0
    grid_width: int = 10

    def __post_init__(self):
        _require(isinstance(self.placement, PlacementPolicy), f"unknown placement {self.placement!r}")
        _require(self.grid_delta_x > 0 and self.grid_delta_y > 0, "grid spacing must be positive")
        _require(self.grid_width >= 1, "grid width must be at least one column")


@dataclass(frozen=True)
class RoutingConfig:
    hello_interval: float = 2.0
    tc_interval: float = 5.0
    neighbor_hold_time: Optional[float] = None
    topology_hold_time: Optional[float] = None
    max_jitter: Optional[float] = None
    willingness: int = 3

    def __post_init__(self):
        _require(self.hello_interval > 0, "hello interval must be positive")
        _require(self.tc_interval > 0, "tc interval must be positive")
        _require(0 <= self.willingness <= 7, "willingness must be in [0, 7]")
        # derived defaults, RFC 3626 section 18
        if self.neighbor_hold_time is None:
            object.__setattr__(self, "neighbor_hold_time", 3.0 * self.hello_interval)
        if self.topology_hold_time is None:
            object.__setattr__(self, "topology_hold_time", 3.0 * self.tc_interval)
        if self.max_jitter is None:
            object.__setattr__(self, "max_jitter", self.hello_interval / 4.0)
        _require(self.neighbor_hold_time > self.hello_interval, "neighbor hold time must exceed the hello interval")
        _require(self.topology_hold_time > self.tc_interval, "topology hold time must exceed the tc interval")
        _require(0 <= self.max_jitter < self.hello_interval, "jitter must be shorter than the hello interval")


@dataclass(frozen=True)
class FlowConfig:
    packet_size: int = 1024
    data_rate_bps: float = 1e6
    start_time: float = 1.0
    sink_lead: float = 1.0
    on_time: Optional[float] = None
    off_time: float = 0.0

    def __post_init__(self):
        _require(self.packet_size > 0, "packet size must be positive")
        _require(self.data_rate_bps > 0, "data rate must be positive")
        _require(self.start_time >= 0, "start time must be non-negative")
        _require(self.sink_lead >= 0, "sink lead must be non-negative")
        _require(self.off_time >= 0, "off time must be non-negative")
        _require(self.on_time is None or self.on_time > 0, "on time must be positive")

    @property
    def sink_start_time(self):
        return max(0.0, self.start_time - self.sink_lead)

    @property
    def packet_rate(self):
        """Packets per second while the generator is on."""
        return self.data_rate_bps / (8.0 * self.packet_size)


# ====================================
# Experiment config
# ====================================
@dataclass(frozen=True)
class ExperimentConfig:
    cluster_count: int = 2
    nodes_per_cluster: int = 3
    area_width: float = 500.0
    area_height: float = 500.0
    simulation_duration: float = 30.0
    port: int = 9
    seed: Optional[int] = None
    channel: ChannelConfig = field(default_factory=ChannelConfig)
    mobility: MobilityConfig = field(default_factory=MobilityConfig)
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    flow: FlowConfig = field(default_factory=FlowConfig)
    sent_policy: SentPolicy = SentPolicy.COUNTER
    throughput_unit: ThroughputUnit = ThroughputUnit.PACKETS_PER_SECOND
    expected_rate_per_second: float = 1.0
    expected_sent: Optional[int] = None
    inter_cluster_flows: bool = False
    results_path: Optional[str] = None
    flow_stats_path: Optional[str] = None
    trace_path: Optional[str] = None
    plot_path: Optional[str] = None

    def __post_init__(self):
        _require(self.cluster_count >= 1, f"cluster count must be at least 1, got {self.cluster_count}")
        _require(self.nodes_per_cluster >= 1, f"nodes per cluster must be at least 1, got {self.nodes_per_cluster}")
        _require(self.area_width > 0 and self.area_height > 0, "area dimensions must be positive")
        _require(self.simulation_duration > 0, f"simulation duration must be positive, got {self.simulation_duration}")
        _require(0 < self.port < 65536, f"port {self.port} out of range")
        _require(isinstance(self.sent_policy, SentPolicy), f"unknown sent policy {self.sent_policy!r}")
        _require(isinstance(self.throughput_unit, ThroughputUnit), f"unknown throughput unit {self.throughput_unit!r}")
        _require(self.expected_rate_per_second >= 0, "expected rate must be non-negative")
        if self.sent_policy is SentPolicy.FIXED:
            _require(self.expected_sent is not None and self.expected_sent >= 0,
                     "fixed sent policy needs a non-negative expected_sent")

    def with_duration(self, seconds):
        return replace(self, simulation_duration=seconds)


# ====================================
# Reference profiles
# ====================================
# Estimated and fixed "sent" totals count packets; flow rates keep the offered
# load within them (drone-swarm: 3 pkt/s per flow, 174 of 180 over 30 s;
# drone-swarm-grid: 5 pkt/s per flow, 885 of 900 over 60 s).
PROFILES = {
    "drone-swarm": ExperimentConfig(
        cluster_count=2,
        nodes_per_cluster=3,
        simulation_duration=30.0,
        channel=ChannelConfig(
            loss_model=PropagationLossModel.FRIIS,
            tx_power_dbm=TX_POWER_HIGH_DBM,
            rate_control=RateControl.CONSTANT,
        ),
        flow=FlowConfig(data_rate_bps=3 * 8 * 1024),
        sent_policy=SentPolicy.ESTIMATE,
        throughput_unit=ThroughputUnit.PACKETS_PER_SECOND,
    ),
    "drone-swarm-grid": ExperimentConfig(
        cluster_count=3,
        nodes_per_cluster=10,
        simulation_duration=60.0,
        channel=ChannelConfig(
            loss_model=PropagationLossModel.LOG_DISTANCE,
            tx_power_dbm=TX_POWER_MODERATE_DBM,
            rate_control=RateControl.ADAPTIVE,
        ),
        mobility=MobilityConfig(placement=PlacementPolicy.GRID),
        flow=FlowConfig(data_rate_bps=5 * 8 * 1024),
        sent_policy=SentPolicy.FIXED,
        expected_sent=900,
        throughput_unit=ThroughputUnit.MEGABITS_PER_SECOND,
    ),
    "drone-swarm-counted": ExperimentConfig(
        cluster_count=3,
        nodes_per_cluster=10,
        simulation_duration=60.0,
        channel=ChannelConfig(
            loss_model=PropagationLossModel.FRIIS,
            tx_power_dbm=TX_POWER_MODERATE_DBM,
            rate_control=RateControl.ADAPTIVE,
        ),
        sent_policy=SentPolicy.COUNTER,
        throughput_unit=ThroughputUnit.MEGABITS_PER_SECOND,
    ),
    "drone-swarm-sparse": ExperimentConfig(
        cluster_count=2,
        nodes_per_cluster=3,
        area_width=2000.0,
        area_height=2000.0,
        simulation_duration=30.0,
        channel=ChannelConfig(
            loss_model=PropagationLossModel.LOG_DISTANCE,
            tx_power_dbm=TX_POWER_MODERATE_DBM,
            rate_control=RateControl.CONSTANT,
        ),
        sent_policy=SentPolicy.COUNTER,
        throughput_unit=ThroughputUnit.PACKETS_PER_SECOND,
    ),
}

DEFAULT_PROFILE = "drone-swarm"


def get_profile(name):
    try:
        return PROFILES[name]
    except KeyError:
        raise ConfigurationError(f"unknown profile {name!r}; choose from {sorted(PROFILES)}") from None
