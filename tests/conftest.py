import pytest

from renderer import DrawingSurface


class RecordingSurface(DrawingSurface):
    """Offscreen DrawingSurface that records every call as (name, args)."""

    def __init__(self, width=1200, height=700):
        self.width = width
        self.height = height
        self.calls = []
        self.frames = 0

    @property
    def size(self):
        return self.width, self.height

    def _record(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))

    def clear(self, color):
        self.calls = []
        self._record("clear", color)

    def begin_path(self):
        self._record("begin_path")

    def move_to(self, x, y):
        self._record("move_to", x, y)

    def line_to(self, x, y):
        self._record("line_to", x, y)

    def stroke(self, color, width=1.0, alpha=1.0, dashed=False):
        self._record("stroke", color, width=width, alpha=alpha, dashed=dashed)

    def fill_rect(self, x, y, w, h, color, alpha=1.0):
        self._record("fill_rect", x, y, w, h, color, alpha=alpha)

    def fill_rounded_rect(self, x, y, w, h, radius, color, alpha=1.0):
        self._record("fill_rounded_rect", x, y, w, h, radius, color, alpha=alpha)

    def fill_circle(self, x, y, r, color, alpha=1.0):
        self._record("fill_circle", x, y, r, color, alpha=alpha)

    def draw_image(self, image, x, y, w, h, alpha=1.0):
        self._record("draw_image", image, x, y, w, h, alpha=alpha)

    def fill_text(self, text, x, y, color, size=9, align="center", bold=False):
        self._record("fill_text", text, x, y, color, size=size, align=align, bold=bold)

    def present(self):
        self.frames += 1

    # helpers for assertions
    def named(self, name):
        return [c for c in self.calls if c[0] == name]

    def texts(self):
        return [c[1][0] for c in self.named("fill_text")]


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def sample_config():
    return {
        "load_balancers": [
            {"id": 1, "address": "10.0.0.1", "interface": "eth0",
             "contention_ratio": 3, "enabled": True},
            {"id": 2, "address": "10.0.0.2", "interface": "eth1",
             "contention_ratio": 1, "enabled": False},
        ],
        "settings": {"listen_host": "0.0.0.0", "listen_port": 8080},
    }


@pytest.fixture
def sample_stats():
    return {
        "traffic_stats": {
            "bytes_in_per_second": 500000,
            "bytes_out_per_second": 100000,
            "active_connections": 4,
        },
        "load_balancers": [
            {"address": "10.0.0.1", "bytes_in_per_second": 500000,
             "bytes_out_per_second": 100000, "total_connections": 28,
             "success_rate": 99.5},
        ],
        "active_sources": [
            {"source_ip": "192.168.1.45", "bytes_in_per_second": 500000,
             "bytes_out_per_second": 100000, "total_connections": 28,
             "active_connections": 4, "assigned_lb": "10.0.0.1"},
        ],
    }
