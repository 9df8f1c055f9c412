#!/usr/bin/env python3
"""
layout.py — Layered placement for the topology view.

Four fixed columns, left to right:

    ISP (0)  →  load balancers (1)  →  gateway (2)  →  clients (3)

Within a column, n devices are stacked symmetrically around the vertical
center with spacing  min(cap, (height - margin) / max(n - 1, 1)).
Coordinates are recomputed from scratch for every refresh and resize.
"""

from utils import (
    LAYER_X_FRACTIONS, LAYOUT_MARGIN, LB_MAX_SPACING, CLIENT_MAX_SPACING,
    LAYER_LOAD_BALANCER, LAYER_CLIENT,
)

# Spacing cap per layer; single-device layers are always centered.
LAYER_SPACING_CAP = {
    LAYER_LOAD_BALANCER: LB_MAX_SPACING,
    LAYER_CLIENT: CLIENT_MAX_SPACING,
}


class LayoutEngine:
    """Deterministic column/slot placement for a width × height surface."""

    def __init__(self, width, height):
        self.width = float(width)
        self.height = float(height)

    def column_x(self, layer):
        return self.width * LAYER_X_FRACTIONS[layer]

    def center_y(self):
        return self.height / 2

    def spacing(self, count, cap):
        """Vertical gap between neighbours; never negative on tiny surfaces."""
        spacing = (self.height - LAYOUT_MARGIN) / max(count - 1, 1)
        return max(0.0, min(float(cap), spacing))

    def slot_y(self, index, count, cap):
        if count <= 1:
            return self.center_y()
        offset = index - (count - 1) / 2
        return self.center_y() + offset * self.spacing(count, cap)

    def position(self, layer, index=0, count=1):
        """(x, y) for the index-th of count devices in layer."""
        cap = LAYER_SPACING_CAP.get(layer, LB_MAX_SPACING)
        return self.column_x(layer), self.slot_y(index, count, cap)
