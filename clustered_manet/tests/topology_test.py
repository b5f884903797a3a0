import ipaddress

import pytest

from clustered_manet.errors import AddressExhaustionError, ConfigurationError
from clustered_manet.tests.helpers import make_builder
from clustered_manet.topology import AddressAllocator


def test_sequential_clusters_get_disjoint_subnets(builder):
    clusters = [builder.build_cluster(10, i) for i in range(3)]
    networks = [str(c.network) for c in clusters]
    assert networks == ["10.0.0.0/24", "10.0.1.0/24", "10.0.2.0/24"], "Subnets not derived from one incrementing base"

    addresses = [a for c in clusters for a in (d.address for d in c.devices)]
    assert len(addresses) == len(set(addresses)) == 30
    for cluster in clusters:
        for device in cluster.devices:
            assert device.address in cluster.network


def test_first_host_address_in_each_block(builder):
    cluster = builder.build_cluster(3, 0)
    assert [str(cluster.get_address(i)) for i in range(3)] == ["10.0.0.1", "10.0.0.2", "10.0.0.3"]


def test_bridge_cluster_takes_one_node_per_cluster(builder):
    clusters = [builder.build_cluster(3, i) for i in range(2)]
    bridge = builder.build_bridge_cluster([c.bridge_node for c in clusters])

    assert bridge.is_bridge
    assert str(bridge.network) == "10.0.2.0/24"
    assert bridge.nodes == [clusters[0].nodes[0], clusters[1].nodes[0]]
    for node in bridge.nodes:
        assert node.is_bridge
        assert len(node.addresses) == 2, "Bridge node should have one address per cluster it belongs to"
    non_bridge = [n for c in clusters for n in c.nodes if not n.is_bridge]
    assert all(len(n.addresses) == 1 for n in non_bridge)
    assert len(builder.topology.nodes) == 6, "Bridge cluster must not create new nodes"


def test_every_node_in_exactly_one_first_tier_cluster(builder):
    clusters = [builder.build_cluster(4, i) for i in range(3)]
    builder.build_bridge_cluster([c.bridge_node for c in clusters])
    seen = [n.id for c in clusters for n in c.nodes]
    assert sorted(seen) == list(range(12))
    assert all(n.cluster_index == c.index for c in clusters for n in c.nodes)


def test_stack_installed_before_addresses(builder):
    cluster = builder.build_cluster(3, 0)
    for node in cluster.nodes:
        assert node.routing is not None
        assert builder.topology.node_by_address[node.addresses[0]] is node


def test_all_devices_share_one_phy_and_channel(builder):
    clusters = [builder.build_cluster(3, i) for i in range(2)]
    bridge = builder.build_bridge_cluster([c.bridge_node for c in clusters])
    devices = [d for c in clusters + [bridge] for d in c.devices]
    assert all(d.phy is builder.phy for d in devices)
    assert len({id(d.phy.channel) for d in devices}) == 1


def test_address_exhaustion_detected_before_install(builder):
    with pytest.raises(AddressExhaustionError) as excinfo:
        builder.build_cluster(255, 0)
    assert excinfo.value.capacity == 254
    assert builder.topology.nodes == [], "No node should be created when the block is too small"


def test_full_subnet_is_allowed():
    allocator = AddressAllocator()
    assert allocator.capacity == 254
    allocator.check_capacity(254)
    with pytest.raises(AddressExhaustionError):
        allocator.check_capacity(255)


def test_new_network_never_repeats():
    allocator = AddressAllocator()
    seen = {allocator.network}
    for _ in range(300):
        seen.add(allocator.new_network())
    assert len(seen) == 301
    assert allocator.network == ipaddress.IPv4Network("10.1.44.0/24")


def test_fixed_seed_builds_identical_topologies():
    def build():
        builder = make_builder(seed=99)
        clusters = [builder.build_cluster(5, i) for i in range(3)]
        builder.build_bridge_cluster([c.bridge_node for c in clusters])
        return [(n.id, tuple(n.position), tuple(n.addresses)) for n in builder.topology.nodes]

    first, second = build(), build()
    assert first == second
    assert len(first) == 15


def test_empty_clusters_rejected(builder):
    with pytest.raises(ConfigurationError):
        builder.build_cluster(0, 0)
    with pytest.raises(ConfigurationError):
        builder.build_bridge_cluster([])
    assert builder.topology.nodes == []
