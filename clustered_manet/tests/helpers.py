
from clustered_manet.channel import Phy, PropagationLossModel, RateControl
from clustered_manet.config import ChannelConfig, MobilityConfig, RoutingConfig
from clustered_manet.engine import Engine
from clustered_manet.mobility import GridPositionAllocator, configure_mobility
from clustered_manet.routing import RoutingFabric
from clustered_manet.topology import TopologyBuilder


def make_builder(seed=1, channel=None, positions=None, width=500.0, height=500.0):
    engine = Engine(seed)
    phy = Phy.from_config(channel or ChannelConfig())
    if positions is None:
        positions = configure_mobility(MobilityConfig(), width, height, engine.np_rng)
    routing = RoutingFabric(engine, RoutingConfig())
    return TopologyBuilder(engine, phy, positions, routing)


def line_builder(spacing=125.0, seed=3):
    """Nodes on a line: neighbours hear each other, nodes two apart do not."""
    channel = ChannelConfig(tx_power_dbm=20.0, rx_sensitivity_dbm=-95.0,
                            loss_model=PropagationLossModel.LOG_DISTANCE,
                            rate_control=RateControl.ADAPTIVE)
    positions = GridPositionAllocator(0.0, 0.0, spacing, spacing, grid_width=10)
    return make_builder(seed, channel=channel, positions=positions)


