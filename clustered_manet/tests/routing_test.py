from clustered_manet.channel import PropagationLossModel
from clustered_manet.config import ChannelConfig, FlowConfig
from clustered_manet.tests.helpers import line_builder, make_builder
from clustered_manet.traffic import attach_flow


def test_multi_hop_route_converges():
    builder = line_builder()
    cluster = builder.build_cluster(3, 0)
    a, b, c = cluster.nodes
    builder.engine.run(15.0)

    assert a.routing.symmetric_neighbors() == {b.id}, "End nodes should not hear each other"
    table = a.routing.routing_table()
    assert table[c.id] == (b.id, 2), "Route to far end should go through the middle node"
    assert builder.routing.reachable(a, c)
    assert builder.routing.reachable(c, a)
    assert a.routing.next_hop(c.addresses[0]) is b


def test_middle_node_is_the_mpr():
    builder = line_builder()
    a, b, c = builder.build_cluster(3, 0).nodes
    builder.engine.run(15.0)
    assert a.routing.mpr_set == {b.id}
    assert b.routing.mpr_set == set()
    assert a.id in b.routing.active_mpr_selectors()


def test_tc_flooding_reaches_every_node():
    builder = line_builder()
    nodes = builder.build_cluster(5, 0).nodes
    builder.engine.run(30.0)
    first, last = nodes[0], nodes[-1]
    assert builder.routing.reachable(first, last)
    assert first.routing.routing_table()[last.id][1] == 4
    assert last.id in first.routing.topology, "TC from the far end should have been flooded back"


def test_data_is_forwarded_over_two_hops():
    builder = line_builder()
    cluster = builder.build_cluster(3, 0)
    a, _, c = cluster.nodes
    flow = FlowConfig()
    gen, sink = attach_flow(builder.engine, a, cluster.devices[2], 9, flow.packet_size, 1e5, 8.0, 12.0,
                            sink_start_time=7.0)
    builder.engine.run(12.0)
    assert gen.tx_packets > 0
    assert sink.rx_packets > 0.9 * gen.tx_packets
    assert sink.hops_sum == 2 * sink.rx_packets


def test_unreachable_sink_is_not_an_error():
    channel = ChannelConfig(loss_model=PropagationLossModel.LOG_DISTANCE, tx_power_dbm=-50.0)
    builder = make_builder(seed=11, channel=channel, width=2000.0, height=2000.0)
    cluster = builder.build_cluster(2, 0)
    source, target = cluster.nodes
    gen, sink = attach_flow(builder.engine, source, cluster.devices[1], 9, 1024, 1e6, 1.0, 5.0)
    builder.engine.run(5.0)

    assert not builder.routing.reachable(source, target)
    assert gen.tx_packets > 0
    assert sink.rx_packets == 0
    assert source.packets_dropped == gen.tx_packets, "Every packet should be dropped for lack of a route"
