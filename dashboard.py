#!/usr/bin/env python3
"""
dashboard.py — matplotlib window hosting the live topology view.

MatplotlibSurface implements the renderer's DrawingSurface on a single
full-window axes with screen-style coordinates (origin top-left, y down).
Every frame is drawn from scratch: clear() removes the previous frame's
artists, and draw order becomes z-order like on a canvas.

DashboardWindow wires the figure's events to the engine:
  resize      → engine.resize(width, height)
  click       → select device / clear selection
  close       → engine.stop()
  keys        r = refresh now, space = pause/resume auto-refresh,
              +/- = animation speed

Called from run_dashboard.py; do NOT run standalone.

Dependencies:
    pip install matplotlib numpy
"""

import matplotlib.pyplot as plt
import matplotlib.patches as mpatches

from renderer import DrawingSurface
from utils import COLORS, CANVAS_WIDTH, CANVAS_HEIGHT


class MatplotlibSurface(DrawingSurface):
    """DrawingSurface backed by a matplotlib figure."""

    def __init__(self, width=CANVAS_WIDTH, height=CANVAS_HEIGHT,
                 title="Dispatch Proxy — Network Topology", dpi=100):
        plt.rcParams.update({
            "figure.facecolor": COLORS["bg"],
            "axes.facecolor": COLORS["bg"],
            "text.color": COLORS["text"],
            "font.size": 9,
            "toolbar": "None",
        })
        self.fig = plt.figure(figsize=(width / dpi, height / dpi), dpi=dpi, num=title)
        self.ax = self.fig.add_axes((0, 0, 1, 1))
        self._width = width
        self._height = height
        self._artists = []
        self._subpaths = []
        self._z = 0.0
        self._configure_axes()

    @property
    def size(self):
        return self._width, self._height

    @property
    def _pt_per_px(self):
        return 72.0 / self.fig.dpi

    def _configure_axes(self):
        ax = self.ax
        ax.set_autoscale_on(False)
        ax.set_xlim(0, self._width)
        ax.set_ylim(self._height, 0)
        ax.axis("off")

    def pixel_size(self):
        w, h = self.fig.get_size_inches() * self.fig.dpi
        return int(w), int(h)

    def set_size(self, width, height):
        self._width, self._height = width, height
        self._configure_axes()

    def _next_z(self):
        self._z += 0.01
        return self._z

    def _keep(self, artist):
        self._artists.append(artist)
        return artist

    # ------------------------------------------------------------------
    def clear(self, color):
        for artist in self._artists:
            artist.remove()
        self._artists = []
        self._z = 0.0
        self.fig.set_facecolor(color)
        self.ax.set_facecolor(color)

    def begin_path(self):
        self._subpaths = []

    def move_to(self, x, y):
        self._subpaths.append([(x, y)])

    def line_to(self, x, y):
        if not self._subpaths:
            self._subpaths.append([(x, y)])
        else:
            self._subpaths[-1].append((x, y))

    def stroke(self, color, width=1.0, alpha=1.0, dashed=False):
        z = self._next_z()
        for sub in self._subpaths:
            if len(sub) < 2:
                continue
            xs, ys = zip(*sub)
            line, = self.ax.plot(
                xs, ys, color=color, alpha=alpha,
                linewidth=width * self._pt_per_px,
                linestyle="--" if dashed else "-",
                solid_capstyle="round", solid_joinstyle="round",
                zorder=z,
            )
            self._keep(line)

    def fill_rect(self, x, y, w, h, color, alpha=1.0):
        self._keep(self.ax.add_patch(mpatches.Rectangle(
            (x, y), w, h, facecolor=color, edgecolor="none",
            alpha=alpha, zorder=self._next_z(),
        )))

    def fill_rounded_rect(self, x, y, w, h, radius, color, alpha=1.0):
        self._keep(self.ax.add_patch(mpatches.FancyBboxPatch(
            (x, y), w, h,
            boxstyle=f"round,pad=0,rounding_size={radius}",
            facecolor=color, edgecolor=COLORS["border"], linewidth=0.5,
            alpha=alpha, zorder=self._next_z(),
        )))

    def fill_circle(self, x, y, r, color, alpha=1.0):
        self._keep(self.ax.add_patch(mpatches.Circle(
            (x, y), r, facecolor=color, edgecolor="none",
            alpha=alpha, zorder=self._next_z(),
        )))

    def draw_image(self, image, x, y, w, h, alpha=1.0):
        self._keep(self.ax.imshow(
            image, extent=(x, x + w, y + h, y), aspect="auto",
            alpha=alpha, zorder=self._next_z(),
        ))

    def fill_text(self, text, x, y, color, size=9, align="center", bold=False):
        self._keep(self.ax.text(
            x, y, text, color=color, fontsize=size,
            ha=align, va="center",
            fontweight="bold" if bold else "normal",
            zorder=self._next_z(),
        ))

    def present(self):
        self.fig.canvas.draw_idle()
        self.fig.canvas.flush_events()


class DashboardWindow:
    """Connects figure events to a TopologyEngine."""

    def __init__(self, engine, surface):
        self.engine = engine
        self.surface = surface
        self._cids = []

    def show(self):
        canvas = self.surface.fig.canvas
        self._cids = [
            canvas.mpl_connect("resize_event", self._on_resize),
            canvas.mpl_connect("button_press_event", self._on_click),
            canvas.mpl_connect("key_press_event", self._on_key),
            canvas.mpl_connect("close_event", self._on_close),
        ]
        plt.ion()
        plt.show(block=False)

    def close(self):
        canvas = self.surface.fig.canvas
        for cid in self._cids:
            canvas.mpl_disconnect(cid)
        self._cids = []
        plt.close(self.surface.fig)

    # ------------------------------------------------------------------
    def _on_resize(self, event):
        width, height = self.surface.pixel_size()
        self.surface.set_size(width, height)
        self.engine.resize(width, height)

    def _on_click(self, event):
        device = self.engine.select_device_at(event.xdata, event.ydata)
        if device is not None:
            print(f"[Dashboard] Selected {device.name} ({device.subtitle})")

    def _on_key(self, event):
        if event.key == "r":
            self.engine.refresh_now()
        elif event.key == " ":
            running = self.engine.toggle_refresh()
            print(f"[Dashboard] Auto-refresh {'resumed' if running else 'paused'}")
        elif event.key in ("+", "="):
            speed = self.engine.set_animation_speed(self.engine.animation_speed + 0.25)
            print(f"[Dashboard] Animation speed {speed:.2f}x")
        elif event.key in ("-", "_"):
            speed = self.engine.set_animation_speed(self.engine.animation_speed - 0.25)
            print(f"[Dashboard] Animation speed {speed:.2f}x")

    def _on_close(self, event):
        self.engine.stop()
