#!/usr/bin/env python3
"""
topology.py — Builds the device graph from appliance config + stats snapshots.

Topology (one refresh):

                    ┌── LB1 ──┐            ┌── client
    Internet/ISP ───┼── LB2 ──┼── Gateway ─┼── client
                    └── LBn ──┘            └── client

    layer 0         layer 1    layer 2      layer 3

Connections: ISP→LB and LB→gateway per load balancer (enabled mirrors the
LB), gateway→client per active source (always enabled). Every call returns
brand-new Device/Connection lists; nothing is patched in place.

Missing or malformed fields fall back to zero/empty; the builder does not
raise on incomplete payloads.
"""

import math
from dataclasses import dataclass, field

from device_identity import CLIENT_TYPES
from layout import LayoutEngine
from utils import (
    DEVICE_SIZES, LAYER_ISP, LAYER_LOAD_BALANCER, LAYER_GATEWAY, LAYER_CLIENT,
    format_speed, as_number,
)

DEVICE_TYPES = ("isp", "load-balancer", "gateway") + CLIENT_TYPES


@dataclass(eq=False)
class Device:
    id: str
    type: str
    name: str
    subtitle: str
    download_label: str
    upload_label: str
    x: float
    y: float
    layer: int
    size: float
    enabled: bool = True
    metadata: dict = field(default_factory=dict)

    @property
    def is_client(self):
        return self.type in CLIENT_TYPES

    def contains(self, x, y):
        half = self.size / 2
        return abs(x - self.x) <= half and abs(y - self.y) <= half


@dataclass(eq=False)
class Connection:
    source: Device
    target: Device
    enabled: bool = True

    @property
    def key(self):
        return f"{self.source.id}->{self.target.id}"


@dataclass(frozen=True)
class TopologySummary:
    total_throughput: str = "0 bps"
    active_connections: int = 0
    load_balancers: int = 0
    unique_clients: int = 0


@dataclass(eq=False)
class Topology:
    devices: list
    connections: list
    summary: TopologySummary

    def device(self, device_id):
        for dev in self.devices:
            if dev.id == device_id:
                return dev
        return None


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------
def _section(payload, key):
    value = payload.get(key) if isinstance(payload, dict) else None
    return value if isinstance(value, dict) else {}


def _records(payload, key):
    value = payload.get(key) if isinstance(payload, dict) else None
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _number(record, key):
    """Finite float from a JSON field; NaN, inf and junk read as 0."""
    try:
        value = float(as_number(record.get(key), 0))
    except OverflowError:
        return 0.0
    return value if math.isfinite(value) else 0.0


def _rate(record, key):
    return max(0.0, _number(record, key))


def _count(record, key):
    return max(0, int(_number(record, key)))


def active_source_ips(stats):
    """Unique source IPs from stats.active_sources, in payload order."""
    ips = []
    for src in _records(stats, "active_sources"):
        ip = src.get("source_ip")
        if isinstance(ip, str) and ip and ip not in ips:
            ips.append(ip)
    return ips


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------
class TopologyBuilder:
    """Turns (config, stats) into a laid-out Topology."""

    def __init__(self, resolver):
        self.resolver = resolver

    async def build(self, config, stats, width, height):
        """Resolve client identities (join-all), then assemble."""
        await self.resolver.resolve_many(active_source_ips(stats))
        return self.assemble(config, stats, width, height)

    def assemble(self, config, stats, width, height):
        """Synchronous build from the resolver cache (used for resize)."""
        layout = LayoutEngine(width, height)
        traffic = _section(stats, "traffic_stats")
        settings = _section(config, "settings")
        total_in = _rate(traffic, "bytes_in_per_second")
        total_out = _rate(traffic, "bytes_out_per_second")
        active = _count(traffic, "active_connections")

        devices = []
        connections = []

        x, y = layout.position(LAYER_ISP)
        isp = Device(
            id="isp", type="isp", name="Internet", subtitle="ISP Uplink",
            download_label=format_speed(total_in),
            upload_label=format_speed(total_out),
            x=x, y=y, layer=LAYER_ISP, size=DEVICE_SIZES["isp"],
        )
        x, y = layout.position(LAYER_GATEWAY)
        host = settings.get("listen_host") or "127.0.0.1"
        port = settings.get("listen_port") or 8080
        gateway = Device(
            id="gateway", type="gateway", name="Dispatch Proxy",
            subtitle=f"{host}:{port}",
            download_label=format_speed(total_in),
            upload_label=format_speed(total_out),
            x=x, y=y, layer=LAYER_GATEWAY, size=DEVICE_SIZES["gateway"],
            metadata={"connections": active},
        )
        devices.append(isp)

        # ── Load balancers ──
        lb_stats = {}
        for rec in _records(stats, "load_balancers"):
            address = rec.get("address")
            if isinstance(address, str):
                lb_stats.setdefault(address, rec)

        lbs = _records(config, "load_balancers")
        for i, lb in enumerate(lbs):
            address = str(lb.get("address") or "")
            rec = lb_stats.get(address, {})
            enabled = bool(lb.get("enabled", False))
            x, y = layout.position(LAYER_LOAD_BALANCER, i, len(lbs))
            device = Device(
                id=f"lb_{address or i + 1}",
                type="load-balancer",
                name=f"LB{lb.get('id') or i + 1}",
                subtitle=address,
                download_label=format_speed(_rate(rec, "bytes_in_per_second")),
                upload_label=format_speed(_rate(rec, "bytes_out_per_second")),
                x=x, y=y, layer=LAYER_LOAD_BALANCER,
                size=DEVICE_SIZES["load-balancer"],
                enabled=enabled,
                metadata={
                    "interface": lb.get("interface") or "",
                    "contention_ratio": _count(lb, "contention_ratio"),
                    "connections": _count(rec, "total_connections"),
                    "success_rate": _number(rec, "success_rate"),
                },
            )
            devices.append(device)
            connections.append(Connection(isp, device, enabled))
            connections.append(Connection(device, gateway, enabled))

        devices.append(gateway)

        # ── Clients ──
        sources = {}
        for src in _records(stats, "active_sources"):
            ip = src.get("source_ip")
            if isinstance(ip, str) and ip:
                sources.setdefault(ip, src)

        for i, (ip, src) in enumerate(sources.items()):
            identity = self.resolver.cached(ip)
            x, y = layout.position(LAYER_CLIENT, i, len(sources))
            device = Device(
                id=f"client_{ip}",
                type=identity.type,
                name=identity.name,
                subtitle=ip,
                download_label=format_speed(_rate(src, "bytes_in_per_second")),
                upload_label=format_speed(_rate(src, "bytes_out_per_second")),
                x=x, y=y, layer=LAYER_CLIENT, size=DEVICE_SIZES["client"],
                metadata={
                    "connections": _count(src, "active_connections"),
                    "total_connections": _count(src, "total_connections"),
                    "assigned_lb": src.get("assigned_lb") or "",
                    "identity_source": identity.source,
                },
            )
            devices.append(device)
            connections.append(Connection(gateway, device, True))

        summary = TopologySummary(
            total_throughput=format_speed(total_in + total_out),
            active_connections=active,
            load_balancers=len(lbs),
            unique_clients=len(sources),
        )
        return Topology(devices=devices, connections=connections, summary=summary)


def describe_device(device):
    """Detail lines for the selected-device panel."""
    meta = device.metadata
    lines = [
        f"Type: {device.type.replace('-', ' ')}",
        f"Address: {device.subtitle}",
        f"Status: {'active' if device.enabled else 'inactive'}",
        f"Connections: {meta.get('connections', 0)}",
        f"Download: {device.download_label}",
        f"Upload: {device.upload_label}",
    ]
    if meta.get("contention_ratio"):
        lines.append(f"Load ratio: {meta['contention_ratio']}")
    if meta.get("interface"):
        lines.append(f"Interface: {meta['interface']}")
    if "success_rate" in meta:
        lines.append(f"Success rate: {meta['success_rate']:.1f}%")
    if meta.get("assigned_lb"):
        lines.append(f"Assigned LB: {meta['assigned_lb']}")
    return lines
