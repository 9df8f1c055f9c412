import asyncio

import pytest

from device_identity import DeviceIdentityResolver, fallback_identity
from topology import TopologyBuilder, active_source_ips, describe_device
from utils import LAYER_ISP, LAYER_LOAD_BALANCER, LAYER_GATEWAY, LAYER_CLIENT


def build(config, stats, width=1200, height=700):
    builder = TopologyBuilder(DeviceIdentityResolver(client=None))
    return asyncio.run(builder.build(config, stats, width, height))


def make_payload(n_lbs, n_clients):
    config = {"load_balancers": [
        {"id": i + 1, "address": f"10.0.0.{i + 1}", "enabled": i % 2 == 0}
        for i in range(n_lbs)
    ]}
    stats = {"active_sources": [
        {"source_ip": f"192.168.1.{i + 10}", "bytes_in_per_second": 1000 * (i + 1)}
        for i in range(n_clients)
    ]}
    return config, stats


@pytest.mark.parametrize("n_lbs, n_clients", [(0, 0), (1, 0), (0, 3), (3, 5), (6, 20)])
def test_device_and_connection_counts(n_lbs, n_clients):
    topo = build(*make_payload(n_lbs, n_clients))
    assert len(topo.devices) == 1 + n_lbs + 1 + n_clients
    assert len(topo.connections) == n_lbs + n_lbs + n_clients


def test_two_lbs_one_client(sample_config, sample_stats):
    topo = build(sample_config, sample_stats)

    assert [d.id for d in topo.devices] == [
        "isp", "lb_10.0.0.1", "lb_10.0.0.2", "gateway", "client_192.168.1.45",
    ]
    assert [c.key for c in topo.connections] == [
        "isp->lb_10.0.0.1", "lb_10.0.0.1->gateway",
        "isp->lb_10.0.0.2", "lb_10.0.0.2->gateway",
        "gateway->client_192.168.1.45",
    ]
    disabled = [c.key for c in topo.connections if not c.enabled]
    assert disabled == ["isp->lb_10.0.0.2", "lb_10.0.0.2->gateway"]

    client = topo.device("client_192.168.1.45")
    assert client.name == "ThinkPad-012d"
    assert client.type == "laptop"
    assert client.download_label == "4.00 Mbps"
    assert client.upload_label == "800.0 Kbps"
    assert client.layer == LAYER_CLIENT

    lb2 = topo.device("lb_10.0.0.2")
    assert lb2.enabled is False
    assert lb2.download_label == "0 bps"

    assert topo.summary.total_throughput == "4.80 Mbps"
    assert topo.summary.load_balancers == 2
    assert topo.summary.unique_clients == 1
    assert topo.device("gateway").subtitle == "0.0.0.0:8080"


def test_connection_endpoints_are_the_built_devices(sample_config, sample_stats):
    topo = build(sample_config, sample_stats)
    ids = {id(d) for d in topo.devices}
    for conn in topo.connections:
        assert id(conn.source) in ids
        assert id(conn.target) in ids


def test_layers_and_pinned_positions(sample_config, sample_stats):
    topo = build(sample_config, sample_stats, 1000, 600)
    isp, gateway = topo.device("isp"), topo.device("gateway")
    assert (isp.layer, gateway.layer) == (LAYER_ISP, LAYER_GATEWAY)
    assert isp.y == gateway.y == 300
    lbs = [d for d in topo.devices if d.layer == LAYER_LOAD_BALANCER]
    assert [d.y for d in lbs] == [250, 350]


def test_empty_payload_still_has_isp_and_gateway():
    topo = build({}, {})
    assert [d.id for d in topo.devices] == ["isp", "gateway"]
    assert topo.connections == []
    assert topo.device("gateway").subtitle == "127.0.0.1:8080"
    assert topo.summary.total_throughput == "0 bps"


@pytest.mark.parametrize("config, stats", [
    (None, None),
    ([], "nope"),
    ({"load_balancers": "x", "settings": []}, {"traffic_stats": 5, "active_sources": {}}),
    ({"load_balancers": [None, 3, {"address": None}]},
     {"active_sources": [{"source_ip": 12}, {}, {"source_ip": "10.1.1.1",
                                                 "bytes_in_per_second": "fast"}]}),
    ({}, {"traffic_stats": {"active_connections": "NaN",
                            "bytes_in_per_second": "inf"}}),
    ({"load_balancers": [{"address": "10.0.0.1", "contention_ratio": float("inf")}]},
     {"load_balancers": [{"address": ["10.0.0.1"]}, {"address": {"a": 1}},
                         {"address": "10.0.0.1", "total_connections": "-inf",
                          "success_rate": "nan"}]}),
    ({}, {"active_sources": [{"source_ip": "10.1.1.2", "active_connections": 10 ** 400,
                              "total_connections": "NaN"}]}),
])
def test_malformed_payloads_do_not_raise(config, stats):
    topo = build(config, stats)
    assert topo.device("isp") is not None
    assert topo.device("gateway") is not None
    for dev in topo.devices:
        assert isinstance(dev.download_label, str)


def test_non_finite_numbers_read_as_zero():
    config = {"load_balancers": [{"address": "10.0.0.1", "enabled": True}]}
    stats = {
        "traffic_stats": {"active_connections": "NaN", "bytes_in_per_second": "inf"},
        "load_balancers": [{"address": ["10.0.0.1"], "total_connections": 99},
                           {"address": "10.0.0.1", "total_connections": "inf",
                            "success_rate": "nan"}],
    }
    topo = build(config, stats)
    assert topo.summary.active_connections == 0
    assert topo.summary.total_throughput == "0 bps"
    lb = topo.device("lb_10.0.0.1")
    assert lb.metadata["connections"] == 0
    assert lb.metadata["success_rate"] == 0.0


def test_duplicate_sources_are_merged():
    stats = {"active_sources": [
        {"source_ip": "192.168.1.5", "bytes_in_per_second": 10},
        {"source_ip": "192.168.1.5", "bytes_in_per_second": 20},
    ]}
    topo = build({}, stats)
    assert [d.id for d in topo.devices if d.is_client] == ["client_192.168.1.5"]
    assert active_source_ips(stats) == ["192.168.1.5"]


def test_every_build_returns_fresh_objects(sample_config, sample_stats):
    builder = TopologyBuilder(DeviceIdentityResolver(client=None))
    first = builder.assemble(sample_config, sample_stats, 1200, 700)
    second = builder.assemble(sample_config, sample_stats, 1200, 700)
    assert first.devices is not second.devices
    assert not any(a is b for a, b in zip(first.devices, second.devices))


def test_clients_use_fallback_identity_without_resolution(sample_config, sample_stats):
    builder = TopologyBuilder(DeviceIdentityResolver(client=None))
    topo = builder.assemble(sample_config, sample_stats, 1200, 700)
    client = topo.device("client_192.168.1.45")
    assert client.name == fallback_identity("192.168.1.45").name


def test_describe_device(sample_config, sample_stats):
    topo = build(sample_config, sample_stats)
    lines = describe_device(topo.device("lb_10.0.0.1"))
    assert "Type: load balancer" in lines
    assert "Status: active" in lines
    assert "Interface: eth0" in lines
    assert "Success rate: 99.5%" in lines

    client_lines = describe_device(topo.device("client_192.168.1.45"))
    assert "Assigned LB: 10.0.0.1" in client_lines
    assert "Connections: 4" in client_lines
