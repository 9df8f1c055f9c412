#!/usr/bin/env python3
"""
path_geometry.py — Orthogonal connection routing and arc-length parameterization.

A connection from (x0, y0) to (x1, y1) is drawn as:

    |dy| <  STRAIGHT_THRESHOLD   one segment, source → target

    otherwise                    three segments (Manhattan elbow)
                                    (x0, y0) → (mid_x, y0)
                                    (mid_x, y0) → (mid_x, y1)
                                    (mid_x, y1) → (x1, y1)
                                 with mid_x = x0 + ELBOW_FRACTION * (x1 - x0)

point_at(t) walks the polyline by arc length, so t is spread over the
segments in proportion to their lengths and particles move at a uniform
visual speed. The renderer strokes the same points, so particles stay on
the drawn line.
"""

from dataclasses import dataclass

import numpy as np

from utils import STRAIGHT_THRESHOLD, ELBOW_FRACTION


@dataclass(frozen=True, eq=False)
class RoutedPath:
    points: np.ndarray        # (k, 2) polyline vertices, k >= 1
    cumulative: np.ndarray    # (k,) arc length at each vertex, starts at 0

    @property
    def length(self):
        return float(self.cumulative[-1])

    @property
    def segment_count(self):
        return len(self.points) - 1

    def point_at(self, t):
        """(x, y) at parameter t ∈ [0, 1]; t is clamped."""
        if self.length <= 0:
            return float(self.points[0, 0]), float(self.points[0, 1])
        d = min(max(float(t), 0.0), 1.0) * self.length
        x = np.interp(d, self.cumulative, self.points[:, 0])
        y = np.interp(d, self.cumulative, self.points[:, 1])
        return float(x), float(y)

    def normal_at(self, t):
        """Unit vector perpendicular to the segment under t."""
        if self.segment_count < 1:
            return 0.0, 1.0
        d = min(max(float(t), 0.0), 1.0) * self.length
        i = int(np.searchsorted(self.cumulative, d, side="right")) - 1
        i = min(max(i, 0), self.segment_count - 1)
        dx, dy = self.points[i + 1] - self.points[i]
        norm = float(np.hypot(dx, dy))
        if norm == 0:
            return 0.0, 1.0
        return float(-dy / norm), float(dx / norm)

    def offset_point_at(self, t, offset):
        """point_at(t) pushed sideways by *offset* pixels."""
        x, y = self.point_at(t)
        nx, ny = self.normal_at(t)
        return x + nx * offset, y + ny * offset


def route_points(x0, y0, x1, y1):
    """Polyline vertices for a connection between two device centers."""
    if abs(y1 - y0) < STRAIGHT_THRESHOLD:
        return [(x0, y0), (x1, y1)]
    mid_x = x0 + ELBOW_FRACTION * (x1 - x0)
    return [(x0, y0), (mid_x, y0), (mid_x, y1), (x1, y1)]


def route(x0, y0, x1, y1):
    """Build a RoutedPath; zero-length legs are dropped."""
    raw = route_points(x0, y0, x1, y1)
    pts = [raw[0]]
    for p in raw[1:]:
        if p != pts[-1]:
            pts.append(p)
    points = np.asarray(pts, dtype=float)
    seg = np.hypot(*np.diff(points, axis=0).T)
    cumulative = np.concatenate(([0.0], np.cumsum(seg)))
    return RoutedPath(points=points, cumulative=cumulative)


def route_connection(connection):
    return route(connection.source.x, connection.source.y,
                 connection.target.x, connection.target.y)
