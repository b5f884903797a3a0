import ipaddress

import pytest

from clustered_manet.engine import Engine
from clustered_manet.flowstats import (
    FlowStatisticsCollector,
    SentPolicy,
    SimulationResult,
    ThroughputUnit,
    append_result,
    dump_flow_stats,
    estimate_sent,
    loss_rate,
    read_results,
)
from clustered_manet.traffic import Flow


class FakeNode:
    def __init__(self, address):
        self.addresses = [ipaddress.IPv4Address(address)]


class FakeGenerator:
    def __init__(self, tx_packets, packet_size=1024):
        self.node = FakeNode("10.0.0.1")
        self.remote_address = ipaddress.IPv4Address("10.0.0.2")
        self.port = 9
        self.tx_packets = tx_packets
        self.tx_bytes = tx_packets * packet_size


class FakeSink:
    def __init__(self, rx_packets, packet_size=1024):
        self.rx_packets = rx_packets
        self.total_rx = rx_packets * packet_size
        self.delay_sum = 0.002 * rx_packets
        self.hops_sum = rx_packets


def halted_engine(duration):
    engine = Engine(seed=1)
    engine.run(duration)
    return engine


def make_flows(pairs):
    return [Flow(i, FakeGenerator(tx), FakeSink(rx)) for i, (tx, rx) in enumerate(pairs)]


@pytest.mark.parametrize("sent,received", [(1, 0), (1, 1), (10, 3), (180, 0), (900, 900), (1000, 999)])
def test_loss_rate_in_unit_interval(sent, received):
    rate = loss_rate(sent, received)
    assert 0.0 <= rate <= 1.0
    assert rate == pytest.approx((sent - received) / sent)


def test_loss_rate_zero_guard():
    assert loss_rate(0, 0) == 0.0


def test_total_loss_when_nothing_arrives():
    assert loss_rate(500, 0) == 1.0


def test_estimated_sent_two_clusters_of_three():
    assert estimate_sent(2, 3, 30, 1.0) == 180


def test_scenario_estimated_sent():
    engine = halted_engine(30.0)
    flows = make_flows([(3000, 40), (3000, 50)])
    collector = FlowStatisticsCollector(engine, flows, 30.0, sent_policy=SentPolicy.ESTIMATE,
                                        unit=ThroughputUnit.PACKETS_PER_SECOND, nodes_per_flow_sender=3)
    result, stats = collector.collect()
    assert collector.sent() == 180
    assert result.throughput == pytest.approx(90 / 30.0)
    assert result.loss_rate == pytest.approx((180 - 90) / 180)
    assert len(stats) == 2


def test_scenario_fixed_sent_in_megabits():
    engine = halted_engine(60.0)
    flows = make_flows([(400, 150), (400, 150), (400, 150)])
    collector = FlowStatisticsCollector(engine, flows, 60.0, sent_policy=SentPolicy.FIXED,
                                        unit=ThroughputUnit.MEGABITS_PER_SECOND, expected_sent=900)
    result, _ = collector.collect()
    received_bytes = 450 * 1024
    assert result.throughput == pytest.approx(received_bytes * 8 / 60 / 1e6)
    assert result.loss_rate == pytest.approx((900 - 450) / 900)


def test_counter_derived_sent():
    engine = halted_engine(10.0)
    flows = make_flows([(100, 100), (100, 0)])
    collector = FlowStatisticsCollector(engine, flows, 10.0)
    result, stats = collector.collect()
    assert collector.sent() == 200
    assert result.loss_rate == pytest.approx(0.5)
    assert [s.loss_rate for s in stats] == [0.0, 1.0], "Unreachable flow should show total loss"


def test_received_above_estimate_is_clamped():
    engine = halted_engine(30.0)
    flows = make_flows([(3000, 2900)])
    collector = FlowStatisticsCollector(engine, flows, 30.0, sent_policy=SentPolicy.ESTIMATE,
                                        nodes_per_flow_sender=3)
    result, _ = collector.collect()
    assert result.loss_rate == 0.0


def test_no_flows_means_no_loss():
    engine = halted_engine(5.0)
    result, stats = FlowStatisticsCollector(engine, [], 5.0).collect()
    assert result == SimulationResult(0.0, 0.0)
    assert stats == []


def test_counters_read_only_after_halt_and_once():
    engine = Engine(seed=1)
    collector = FlowStatisticsCollector(engine, make_flows([(1, 1)]), 1.0)
    with pytest.raises(RuntimeError):
        collector.collect()
    engine.run(1.0)
    collector.collect()
    with pytest.raises(RuntimeError):
        collector.collect()


def test_result_record_round_trip():
    result = SimulationResult(throughput=236.53333333333333, loss_rate=0.0123456789)
    parsed = SimulationResult.from_record(result.to_record())
    assert parsed.throughput == pytest.approx(result.throughput)
    assert parsed.loss_rate == pytest.approx(result.loss_rate)


def test_malformed_record_rejected():
    with pytest.raises(ValueError):
        SimulationResult.from_record("1.0,2.0,3.0")


def test_append_result_is_append_only(tmp_path):
    path = tmp_path / "results.csv"
    append_result(SimulationResult(1.5, 0.25), path)
    append_result(SimulationResult(2.5, 0.0), path)
    assert read_results(path) == [SimulationResult(1.5, 0.25), SimulationResult(2.5, 0.0)]
    assert path.read_text().splitlines()[0] == "1.5,0.25"


def test_dump_flow_stats(tmp_path):
    import json

    engine = halted_engine(10.0)
    result, stats = FlowStatisticsCollector(engine, make_flows([(10, 8)]), 10.0).collect()
    path = tmp_path / "flows.json"
    dump_flow_stats(stats, path, result)
    document = json.loads(path.read_text())
    assert document["flows"][0]["rx_packets"] == 8
    assert document["flows"][0]["source"] == "10.0.0.1"
    assert document["result"]["loss_rate"] == pytest.approx(0.2)
