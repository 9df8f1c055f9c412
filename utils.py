#!/usr/bin/env python3
"""
utils.py — Shared constants and speed/unit formatters for the topology dashboard.
"""

import math
import re

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
APPLIANCE_URL = "http://127.0.0.1:8081"   # default dispatch-proxy web API
REFRESH_INTERVAL = 5.0       # seconds between topology refreshes
FRAME_RATE = 60              # render loop target (frames per second)
FRAME_TIME = 1.0 / FRAME_RATE
HTTP_TIMEOUT = 4.0           # seconds per API request

CANVAS_WIDTH = 1200          # initial surface size (pixels)
CANVAS_HEIGHT = 700

# Layout — horizontal position of each layer as a fraction of the width
LAYER_ISP = 0
LAYER_LOAD_BALANCER = 1
LAYER_GATEWAY = 2
LAYER_CLIENT = 3
LAYER_X_FRACTIONS = (0.10, 0.37, 0.62, 0.88)

LB_MAX_SPACING = 100         # px between load balancers
CLIENT_MAX_SPACING = 80      # px between clients
LAYOUT_MARGIN = 200          # vertical space kept free (top + bottom)

DEVICE_SIZES = {
    "isp": 64,
    "load-balancer": 52,
    "gateway": 64,
    "client": 40,
}

# Connection routing
STRAIGHT_THRESHOLD = 20      # px — below this |dy| a link is one segment
ELBOW_FRACTION = 0.6         # where the vertical leg sits between endpoints

# Particles
PARTICLE_MIN_COUNT = 2
PARTICLE_EXTRA_COUNT = 4
PARTICLE_BASE_SPEED = 0.004  # progress per frame at zero usage
PARTICLE_USAGE_SPEED = 0.008 # added at full usage
PARTICLE_SPEED_JITTER = 0.003
PARTICLE_LATERAL_JITTER = 3.0
PARTICLE_MIN_SIZE = 2.0
PARTICLE_MAX_SIZE = 3.5

# Connection stroke band
LINK_MIN_WIDTH = 2.0
LINK_MAX_WIDTH = 8.0
LINK_LOG_SCALE = 6.0         # log10(Kbps) that saturates the band (1 Gbps)

# ── Color palette (dark theme) ─────────────────────────────────────
COLORS = {
    "bg":           "#0d1117",
    "panel":        "#161b22",
    "border":       "#30363d",
    "text":         "#e6edf3",
    "text_dim":     "#8b949e",
    "green":        "#3fb950",
    "yellow":       "#d29922",
    "red":          "#f85149",
    "blue":         "#58a6ff",
    "cyan":         "#39d2c0",
    "purple":       "#bc8cff",
    "orange":       "#f0883e",
    "disabled":     "#444c56",
    "download":     "#39d2c0",
    "upload":       "#f0883e",
}

# Fallback shape color per device type
DEVICE_COLORS = {
    "isp":           COLORS["blue"],
    "load-balancer": COLORS["purple"],
    "gateway":       COLORS["cyan"],
    "desktop":       COLORS["green"],
    "laptop":        COLORS["green"],
    "phone":         COLORS["orange"],
    "tablet":        COLORS["orange"],
    "tv":            COLORS["yellow"],
    "console":       COLORS["red"],
    "iot":           COLORS["text_dim"],
}


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------
_SPEED_UNITS = ("bps", "Kbps", "Mbps", "Gbps")
_KBPS_FACTOR = {"bps": 0.001, "kbps": 1.0, "mbps": 1000.0, "gbps": 1000000.0}
_SPEED_RE = re.compile(r"^\s*([-+]?\d+(?:\.\d+)?)\s*([KMG]?bps)\s*$", re.IGNORECASE)


def format_speed(bytes_per_second):
    """
    Format a byte rate as a bit rate string, e.g. 500000 → "4.00 Mbps".

    Negative or non-numeric input is treated as zero.
    """
    try:
        bits = float(bytes_per_second) * 8
    except (TypeError, ValueError):
        bits = 0.0
    if not bits > 0:
        return "0 bps"
    if bits < 1000:
        return f"{bits:.0f} bps"
    if bits < 1e6:
        return f"{bits / 1e3:.1f} Kbps"
    if bits < 1e9:
        return f"{bits / 1e6:.2f} Mbps"
    return f"{bits / 1e9:.2f} Gbps"


def parse_speed_kbps(label):
    """Parse a format_speed() string back into Kbps; unparseable → 0.0."""
    if not label:
        return 0.0
    match = _SPEED_RE.match(str(label))
    if not match:
        return 0.0
    value = float(match.group(1))
    return max(0.0, value * _KBPS_FACTOR[match.group(2).lower()])


def format_bytes(num_bytes):
    """Format a byte count with 1024-based units, e.g. 1536 → "1.5 KB"."""
    try:
        num_bytes = float(num_bytes)
    except (TypeError, ValueError):
        return "0 B"
    if num_bytes <= 0:
        return "0 B"
    sizes = ["B", "KB", "MB", "GB"]
    i = min(int(math.floor(math.log(num_bytes, 1024))), len(sizes) - 1)
    value = round(num_bytes / (1024 ** i), 2)
    return f"{value:g} {sizes[i]}"


def format_duration(seconds):
    """Compact duration: 42s, 3m 5s, 2h 14m."""
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m"


def round_half_up(value):
    """Round .5 away from zero for positive values (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def as_number(value, default=0):
    """Coerce a JSON field to a number, falling back to *default*."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
