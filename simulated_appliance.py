#!/usr/bin/env python3
"""
simulated_appliance.py — In-process stand-in for the dispatch proxy's web API.

Serves /api/config, /api/stats, /api/resolve-hostname, /api/device-info and
/login through httpx.MockTransport, so --mode simulate exercises exactly the
same client code as a real appliance.

Traffic follows scripted phases on the busiest client (quiet → ramp →
saturated → recovery → bursty) while the others wander around a low
baseline.
"""

import random
import time
from urllib.parse import parse_qs

import httpx

DEFAULT_LOAD_BALANCERS = [
    {"address": "10.0.0.1", "interface": "eth0", "contention_ratio": 3, "enabled": True},
    {"address": "10.0.0.2", "interface": "eth1", "contention_ratio": 2, "enabled": True},
    {"address": "10.0.0.3", "interface": "wlan0", "contention_ratio": 1, "enabled": False},
]

DEFAULT_CLIENTS = [
    "192.168.1.12", "192.168.1.45", "192.168.1.67",
    "192.168.1.101", "192.168.1.160", "192.168.1.212",
]

HOSTNAMES = {
    "192.168.1.12": "office-desktop.lan",
    "192.168.1.45": "johns-macbook-pro.local",
}

DEVICE_INFO = {
    "192.168.1.101": {
        "vendor": "Apple",
        "user_agent": "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X)",
        "os": "iPadOS",
    },
    "192.168.1.160": {"name": "Living Room TV", "type": "tv"},
}

PEAK_CLIENT_RATE = 1_250_000   # bytes/s (10 Mbps) at saturation
BASE_CLIENT_RATE = 60_000      # bytes/s baseline


def busy_client_level(elapsed, rng=random):
    """Utilization 0-1 of the busiest client for a point in the script."""
    if elapsed < 30:
        return rng.uniform(0.10, 0.25)
    elif elapsed < 60:
        progress = (elapsed - 30) / 30.0
        return min(1.0, 0.25 + 0.70 * progress + rng.gauss(0, 0.03))
    elif elapsed < 90:
        return rng.uniform(0.85, 0.98)
    elif elapsed < 120:
        progress = (elapsed - 90) / 30.0
        return max(0.05, 0.90 - 0.75 * progress + rng.gauss(0, 0.03))
    else:
        if rng.random() < 0.15:
            return rng.uniform(0.70, 0.95)
        return rng.uniform(0.10, 0.30)


class SimulatedAppliance:
    """Fake appliance API; use .transport() with ApplianceClient."""

    def __init__(self, load_balancers=None, clients=None, username=None,
                 password=None, stats_failure_rate=0.0, clock=time.monotonic,
                 seed=None):
        self.load_balancers = [dict(lb, id=i + 1) for i, lb in
                               enumerate(load_balancers or DEFAULT_LOAD_BALANCERS)]
        self.clients = list(clients if clients is not None else DEFAULT_CLIENTS)
        self.username = username
        self.password = password
        self.stats_failure_rate = stats_failure_rate
        self._clock = clock
        self._start = clock()
        self._sessions = set()
        self.requests = []
        self.rng = random.Random(seed)

    def transport(self):
        return httpx.MockTransport(self.handle)

    # ------------------------------------------------------------------
    def handle(self, request):
        path = request.url.path
        self.requests.append(path)

        if path == "/login" and request.method == "POST":
            return self._login(request)
        if self.username and not self._has_session(request):
            if path == "/api/stats":
                return httpx.Response(401, text="Unauthorized")
            return httpx.Response(302, headers={"Location": "/login"})

        if path == "/api/config":
            return httpx.Response(200, json=self.config())
        if path == "/api/stats":
            if self.stats_failure_rate and self.rng.random() < self.stats_failure_rate:
                return httpx.Response(503, text="busy")
            return httpx.Response(200, json=self.stats())
        if path == "/api/resolve-hostname":
            ip = request.url.params.get("ip", "")
            return httpx.Response(200, json={"hostname": HOSTNAMES.get(ip, ip)})
        if path == "/api/device-info":
            ip = request.url.params.get("ip", "")
            if ip not in DEVICE_INFO:
                return httpx.Response(404, json={"error": "unknown device"})
            return httpx.Response(200, json=DEVICE_INFO[ip])
        return httpx.Response(404, text="not found")

    def _login(self, request):
        form = parse_qs(request.content.decode("utf-8"))
        user = form.get("username", [""])[0]
        password = form.get("password", [""])[0]
        if user != self.username or password != self.password:
            return httpx.Response(401, text="Invalid credentials")
        session_id = f"session_{len(self._sessions) + 1}"
        self._sessions.add(session_id)
        return httpx.Response(302, headers={
            "Location": "/",
            "Set-Cookie": f"session={session_id}; Path=/",
        })

    def _has_session(self, request):
        for part in request.headers.get("cookie", "").split(";"):
            name, _, value = part.strip().partition("=")
            if name == "session" and value in self._sessions:
                return True
        return False

    # ------------------------------------------------------------------
    def config(self):
        return {
            "load_balancers": [dict(lb) for lb in self.load_balancers],
            "settings": {"listen_host": "0.0.0.0", "listen_port": 8080},
        }

    def stats(self):
        elapsed = self._clock() - self._start
        enabled = [lb for lb in self.load_balancers if lb["enabled"]]
        per_lb = {lb["address"]: {"in": 0.0, "out": 0.0, "conns": 0} for lb in self.load_balancers}

        sources = []
        for i, ip in enumerate(self.clients):
            if i == 0:
                level = busy_client_level(elapsed, self.rng)
                rate_in = PEAK_CLIENT_RATE * level
            else:
                rate_in = BASE_CLIENT_RATE * self.rng.uniform(0.2, 2.5)
            rate_out = rate_in * self.rng.uniform(0.1, 0.4)
            active = self.rng.randint(1, 12)
            lb = enabled[i % len(enabled)]["address"] if enabled else ""
            if lb:
                per_lb[lb]["in"] += rate_in
                per_lb[lb]["out"] += rate_out
                per_lb[lb]["conns"] += active
            sources.append({
                "source_ip": ip,
                "bytes_in_per_second": int(rate_in),
                "bytes_out_per_second": int(rate_out),
                "total_connections": active * 7,
                "active_connections": active,
                "assigned_lb": lb,
            })

        lbs = []
        for lb in self.load_balancers:
            agg = per_lb[lb["address"]]
            lbs.append({
                "address": lb["address"],
                "bytes_in_per_second": int(agg["in"]),
                "bytes_out_per_second": int(agg["out"]),
                "total_connections": agg["conns"] * 7,
                "success_rate": round(self.rng.uniform(94.0, 100.0), 1) if lb["enabled"] else 0.0,
            })

        return {
            "traffic_stats": {
                "bytes_in_per_second": int(sum(s["bytes_in_per_second"] for s in sources)),
                "bytes_out_per_second": int(sum(s["bytes_out_per_second"] for s in sources)),
                "active_connections": sum(s["active_connections"] for s in sources),
            },
            "load_balancers": lbs,
            "active_sources": sources,
        }
