#!/usr/bin/env python3
"""
flow_simulator.py — Traffic particles flowing along topology connections.

Each enabled connection gets a fixed pool of particles sized by its usage
ratio:

    usage  = download + upload of the connection's target device (Kbps,
             parsed back from the formatted speed labels)
    ratio  = min(1, usage / max(max_bandwidth, 1))
    count  = max(1, round(2 + 4 * ratio))          → 2..6 particles

Particles only move forward: progress grows by speed × multiplier each
frame and wraps to 0 (with a fresh speed) when it reaches 1. Pools are
rebuilt from scratch whenever the topology is rebuilt, since particles
refer to connections by index.
"""

from dataclasses import dataclass

import numpy as np

from utils import (
    FRAME_TIME, PARTICLE_MIN_COUNT, PARTICLE_EXTRA_COUNT,
    PARTICLE_BASE_SPEED, PARTICLE_USAGE_SPEED, PARTICLE_SPEED_JITTER,
    PARTICLE_LATERAL_JITTER, PARTICLE_MIN_SIZE, PARTICLE_MAX_SIZE,
    parse_speed_kbps, round_half_up,
)


@dataclass
class Particle:
    connection_index: int
    progress: float          # position along the path, [0, 1)
    lateral_offset: float    # px, perpendicular to the path
    speed: float             # progress per frame at 1x
    size: float
    opacity: float


@dataclass(frozen=True)
class ConnectionUsage:
    usage_kbps: float
    ratio: float


def connection_usage_kbps(connection):
    target = connection.target
    return parse_speed_kbps(target.download_label) + parse_speed_kbps(target.upload_label)


def measure_usage(connections):
    """
    Usage per connection plus the snapshot's max bandwidth (Kbps).

    The maximum is taken over all connections in the snapshot, so the
    busiest link always has ratio 1.
    """
    usages = [connection_usage_kbps(c) for c in connections]
    max_bandwidth = max(usages, default=0.0)
    denom = max(max_bandwidth, 1.0)
    return [ConnectionUsage(u, min(1.0, u / denom)) for u in usages], max_bandwidth


def particle_count(ratio):
    ratio = min(max(float(ratio), 0.0), 1.0)
    return max(1, round_half_up(PARTICLE_MIN_COUNT + ratio * PARTICLE_EXTRA_COUNT))


def base_speed(ratio):
    return PARTICLE_BASE_SPEED + PARTICLE_USAGE_SPEED * min(max(ratio, 0.0), 1.0)


class FlowParticleSimulator:
    """Owns the particle pools; the renderer only reads them."""

    def __init__(self, rng=None):
        self.rng = rng if rng is not None else np.random.default_rng()
        self.particles = []
        self.usage = []
        self.max_bandwidth = 0.0
        self._enabled = []
        self._base_speeds = []

    # ------------------------------------------------------------------
    def initialize(self, connections, devices):
        """Rebuild every pool for a new connection list."""
        known = {id(d) for d in devices}
        usage, max_bandwidth = measure_usage(connections)

        particles = []
        enabled = []
        base_speeds = []
        for index, (conn, use) in enumerate(zip(connections, usage)):
            live = (conn.enabled
                    and id(conn.source) in known and id(conn.target) in known)
            enabled.append(live)
            base_speeds.append(base_speed(use.ratio))
            if not live:
                continue
            for _ in range(particle_count(use.ratio)):
                particles.append(Particle(
                    connection_index=index,
                    progress=float(self.rng.random()),
                    lateral_offset=float(self.rng.uniform(-PARTICLE_LATERAL_JITTER,
                                                          PARTICLE_LATERAL_JITTER)),
                    speed=self._roll_speed(base_speeds[index]),
                    size=float(self.rng.uniform(PARTICLE_MIN_SIZE, PARTICLE_MAX_SIZE)),
                    opacity=0.5 + 0.5 * use.ratio,
                ))

        # Swap whole lists; never mutate the previous generation's pools.
        self.usage = usage
        self.max_bandwidth = max_bandwidth
        self._enabled = enabled
        self._base_speeds = base_speeds
        self.particles = particles

    def advance(self, dt=FRAME_TIME, speed_multiplier=1.0):
        """Move every particle forward by dt seconds of animation."""
        frames = max(float(dt), 0.0) / FRAME_TIME
        step = max(float(speed_multiplier), 0.0) * frames
        for p in self.particles:
            if not self._enabled[p.connection_index]:
                continue
            p.progress += p.speed * step
            if p.progress >= 1.0:
                p.progress = 0.0
                p.speed = self._roll_speed(self._base_speeds[p.connection_index])

    def counts(self):
        """{connection_index: particle count}"""
        result = {}
        for p in self.particles:
            result[p.connection_index] = result.get(p.connection_index, 0) + 1
        return result

    def _roll_speed(self, base):
        return float(self.rng.uniform(base, base + PARTICLE_SPEED_JITTER))
