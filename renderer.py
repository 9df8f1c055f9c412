#!/usr/bin/env python3
"""
renderer.py — Draws the topology, one full frame per call.

Draw order:
  1. connections  (width/opacity from usage; disabled links dashed & dim)
  2. particles    (soft glow + core, on the same routed path as the link)
  3. devices      (icon image, or a rounded rect colored by type; labels)
  4. overlays     (summary header, selected-device card)

Everything goes through a DrawingSurface, so the renderer never touches a
GUI toolkit directly. dashboard.py provides the matplotlib surface; tests
use a recording surface.
"""

import abc
import asyncio
import math
import os

import matplotlib.image as mpimg

from flow_simulator import measure_usage
from path_geometry import route_connection
from topology import DEVICE_TYPES, describe_device
from utils import (
    COLORS, DEVICE_COLORS, LINK_MIN_WIDTH, LINK_MAX_WIDTH, LINK_LOG_SCALE,
)


class DrawingSurface(abc.ABC):
    """Minimal 2D drawing context (canvas-style, y grows downward)."""

    @property
    @abc.abstractmethod
    def size(self):
        """(width, height) in pixels."""

    @abc.abstractmethod
    def clear(self, color): ...

    @abc.abstractmethod
    def begin_path(self): ...

    @abc.abstractmethod
    def move_to(self, x, y): ...

    @abc.abstractmethod
    def line_to(self, x, y): ...

    @abc.abstractmethod
    def stroke(self, color, width=1.0, alpha=1.0, dashed=False): ...

    @abc.abstractmethod
    def fill_rect(self, x, y, w, h, color, alpha=1.0): ...

    @abc.abstractmethod
    def fill_rounded_rect(self, x, y, w, h, radius, color, alpha=1.0): ...

    @abc.abstractmethod
    def fill_circle(self, x, y, r, color, alpha=1.0): ...

    @abc.abstractmethod
    def draw_image(self, image, x, y, w, h, alpha=1.0): ...

    @abc.abstractmethod
    def fill_text(self, text, x, y, color, size=9, align="center", bold=False): ...

    def present(self):
        """Flush the frame to the screen (no-op for offscreen surfaces)."""


# ---------------------------------------------------------------------------
# Icons
# ---------------------------------------------------------------------------
class DeviceImageCache:
    """
    Per-type device icons loaded once at startup from <icon_dir>/<type>.png.

    A type whose image fails to load is remembered and drawn with the
    fallback shape for the rest of the session (no retry).
    """

    def __init__(self, icon_dir=None, loader=None):
        self.icon_dir = icon_dir
        self._loader = loader or mpimg.imread
        self._images = {}
        self._failed = set()

    async def load_all(self, types=DEVICE_TYPES):
        await asyncio.gather(*(self._load(t) for t in types))
        if self._images:
            print(f"[Icons] Loaded {len(self._images)} icon(s) from {self.icon_dir}")

    async def _load(self, device_type):
        if device_type in self._images or device_type in self._failed:
            return
        if not self.icon_dir:
            self._failed.add(device_type)
            return
        path = os.path.join(self.icon_dir, f"{device_type}.png")
        try:
            self._images[device_type] = await asyncio.to_thread(self._loader, path)
        except (OSError, ValueError) as e:
            self._failed.add(device_type)
            print(f"[Icons] {device_type}: {e}; drawing shape instead")

    def get(self, device_type):
        return self._images.get(device_type)

    def has_failed(self, device_type):
        return device_type in self._failed


# ---------------------------------------------------------------------------
# Visual encoding
# ---------------------------------------------------------------------------
def max_link_width(max_bandwidth):
    """Upper end of the stroke band, from log10 of the busiest link (Kbps)."""
    scale = min(1.0, math.log10(max(max_bandwidth, 0.0) + 1) / LINK_LOG_SCALE)
    return LINK_MIN_WIDTH + (LINK_MAX_WIDTH - LINK_MIN_WIDTH) * scale


def link_width(ratio, max_bandwidth):
    return LINK_MIN_WIDTH + (max_link_width(max_bandwidth) - LINK_MIN_WIDTH) * ratio


def link_opacity(ratio):
    return 0.6 + 0.4 * ratio


def usage_color(ratio):
    if ratio >= 0.8:
        return COLORS["red"]
    if ratio >= 0.5:
        return COLORS["yellow"]
    return COLORS["green"]


class TopologyRenderer:
    """Stateless frame painter over a DrawingSurface."""

    def __init__(self, surface, images=None):
        self.surface = surface
        self.images = images

    def render(self, devices, connections, particles, selected_id=None, summary=None):
        s = self.surface
        s.clear(COLORS["bg"])

        usage, max_bandwidth = measure_usage(connections)
        paths = [route_connection(c) for c in connections]

        # ── Connections ──
        for conn, use, path in zip(connections, usage, paths):
            s.begin_path()
            x, y = path.points[0]
            s.move_to(float(x), float(y))
            for x, y in path.points[1:]:
                s.line_to(float(x), float(y))
            if conn.enabled:
                s.stroke(usage_color(use.ratio),
                         width=link_width(use.ratio, max_bandwidth),
                         alpha=link_opacity(use.ratio))
            else:
                s.stroke(COLORS["disabled"], width=LINK_MIN_WIDTH,
                         alpha=0.3, dashed=True)

        # ── Particles ──
        for p in particles:
            if p.connection_index >= len(connections):
                continue
            if not connections[p.connection_index].enabled:
                continue
            x, y = paths[p.connection_index].offset_point_at(p.progress, p.lateral_offset)
            color = usage_color(usage[p.connection_index].ratio)
            s.fill_circle(x, y, p.size * 2.5, color, alpha=p.opacity * 0.25)
            s.fill_circle(x, y, p.size, "#ffffff", alpha=p.opacity)

        # ── Devices ──
        for dev in devices:
            self._draw_device(dev)

        if summary is not None:
            s.fill_rect(0, 0, s.size[0], 36, COLORS["panel"], alpha=0.85)
            s.fill_text(
                f"Throughput {summary.total_throughput}   ·   "
                f"Connections {summary.active_connections}   ·   "
                f"Load balancers {summary.load_balancers}   ·   "
                f"Clients {summary.unique_clients}",
                12, 18, COLORS["text_dim"], size=9, align="left",
            )

        if selected_id is not None:
            for dev in devices:
                if dev.id == selected_id:
                    self._draw_details(dev)
                    break

        s.present()

    def render_message(self, title, message, color=None):
        """Full-surface notice (loading / error view)."""
        s = self.surface
        width, height = s.size
        s.clear(COLORS["bg"])
        s.fill_text(title, width / 2, height / 2 - 12, color or COLORS["text"],
                    size=14, bold=True)
        s.fill_text(message, width / 2, height / 2 + 12, COLORS["text_dim"], size=10)
        s.present()

    def render_error(self, message):
        self.render_message("Error Loading Topology", message, COLORS["red"])

    # ------------------------------------------------------------------
    def _draw_device(self, dev):
        s = self.surface
        half = dev.size / 2
        alpha = 1.0 if dev.enabled else 0.4
        image = self.images.get(dev.type) if self.images else None
        if image is not None:
            s.draw_image(image, dev.x - half, dev.y - half, dev.size, dev.size, alpha=alpha)
        else:
            s.fill_rounded_rect(dev.x - half, dev.y - half, dev.size, dev.size,
                                dev.size * 0.2,
                                DEVICE_COLORS.get(dev.type, COLORS["text_dim"]),
                                alpha=alpha)

        if not dev.is_client:
            s.fill_text(dev.subtitle, dev.x, dev.y - half - 8, COLORS["text_dim"], size=7)
        s.fill_text(dev.name, dev.x, dev.y + half + 12, COLORS["text"], size=8, bold=True)
        s.fill_text(f"↓ {dev.download_label}", dev.x - 3, dev.y + half + 24,
                    COLORS["download"], size=7, align="right")
        s.fill_text(f"↑ {dev.upload_label}", dev.x + 3, dev.y + half + 24,
                    COLORS["upload"], size=7, align="left")

    def _draw_details(self, dev):
        s = self.surface
        width, _ = s.size
        lines = describe_device(dev)
        panel_w, line_h = 220, 15
        panel_h = 34 + line_h * len(lines)
        x0, y0 = width - panel_w - 12, 32
        s.fill_rounded_rect(x0, y0, panel_w, panel_h, 6, COLORS["panel"], alpha=0.95)
        s.fill_text(dev.name, x0 + 12, y0 + 18, COLORS["cyan"], size=10,
                    align="left", bold=True)
        for i, line in enumerate(lines):
            s.fill_text(line, x0 + 12, y0 + 38 + i * line_h, COLORS["text"],
                        size=8, align="left")
