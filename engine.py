#!/usr/bin/env python3
"""
engine.py — Owns the live topology and its two clocks.

    render loop   every frame (~60 Hz):  advance particles → render
    refresh loop  every REFRESH_INTERVAL: fetch config+stats → resolve
                                          identities → build → install

Both loops are asyncio tasks on one event loop, so the render loop only
ever sees a complete topology: _install() swaps whole lists without an
await in between.

Refreshes are numbered. A refresh that finishes after a newer one has
already been installed is discarded, so slow responses never roll the
view back. A failed refresh leaves the previous lists untouched; the
error view is shown only while nothing has loaded yet.

Usage:
    engine = TopologyEngine(client, surface=surface)
    await engine.run()        # until engine.stop()
"""

import asyncio

from api_client import FetchFailure
from device_identity import DeviceIdentityResolver
from flow_simulator import FlowParticleSimulator
from renderer import TopologyRenderer
from topology import TopologyBuilder, TopologySummary
from utils import REFRESH_INTERVAL, FRAME_RATE, CANVAS_WIDTH, CANVAS_HEIGHT

MAX_ANIMATION_SPEED = 5.0


class TopologyEngine:
    """Refresh/lifecycle controller for the topology view."""

    def __init__(self, client, surface=None, resolver=None, images=None,
                 refresh_interval=REFRESH_INTERVAL, frame_rate=FRAME_RATE,
                 animation_speed=1.0, width=None, height=None, rng=None,
                 on_refresh=None):
        """
        Args:
            client: ApplianceClient (anything with fetch_snapshot/aclose)
            surface: DrawingSurface, or None for a headless engine
            images: DeviceImageCache loaded during initialize()
            on_refresh: callback(engine) after each installed refresh
        """
        self.client = client
        self.resolver = resolver or DeviceIdentityResolver(client)
        self.builder = TopologyBuilder(self.resolver)
        self.simulator = FlowParticleSimulator(rng)
        self.surface = surface
        self.images = images
        self.renderer = TopologyRenderer(surface, images) if surface is not None else None
        self.refresh_interval = refresh_interval
        if frame_rate <= 0:
            raise ValueError(f"frame_rate must be positive, got {frame_rate}")
        self.frame_interval = 1.0 / frame_rate
        self.animation_speed = animation_speed
        self.on_refresh = on_refresh

        if width is None or height is None:
            width, height = surface.size if surface is not None else (CANVAS_WIDTH, CANVAS_HEIGHT)
        self.width = width
        self.height = height

        # Current topology (replaced wholesale)
        self.devices = []
        self.connections = []
        self.summary = TopologySummary()
        self.selected_id = None

        self.loaded = False
        self.last_error = None
        self.refresh_count = 0
        self.failure_count = 0
        self._snapshot = None            # last good (config, stats)
        self._generation = 0
        self._applied_generation = 0

        self._running = False
        self._closed = False
        self._refresh_paused = False
        self._stop_event = None
        self._render_task = None
        self._refresh_task = None
        self._inflight = set()

    @property
    def particles(self):
        return self.simulator.particles

    # ==================================================================
    #  Data refresh
    # ==================================================================
    async def initialize(self):
        """Load icons (best effort) and run the first refresh."""
        if self.images is not None:
            await self.images.load_all()
        return await self.refresh()

    async def refresh(self):
        """
        One full refresh cycle. Returns True if the result was installed.
        Never raises for fetch failures.
        """
        self._generation += 1
        generation = self._generation
        try:
            config, stats = await self.client.fetch_snapshot()
            size = (self.width, self.height)
            topology = await self.builder.build(config, stats, *size)
        except FetchFailure as e:
            self._record_failure(f"Refresh #{generation}", e)
            return False

        if generation <= self._applied_generation:
            print(f"[Engine] Refresh #{generation} superseded by "
                  f"#{self._applied_generation}; discarded")
            return False

        # resized while identities were resolving: lay out for the new size
        if size != (self.width, self.height):
            topology = self.builder.assemble(config, stats, self.width, self.height)

        self._applied_generation = generation
        self._snapshot = (config, stats)
        self._install(topology)
        self.loaded = True
        self.last_error = None
        self.refresh_count += 1
        if self.on_refresh is not None:
            self.on_refresh(self)
        return True

    def refresh_now(self):
        """Schedule an out-of-band refresh; returns the task."""
        task = asyncio.ensure_future(self.refresh())
        self._inflight.add(task)
        task.add_done_callback(self._collect)
        return task

    def _collect(self, task):
        self._inflight.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._record_failure("Background refresh", error)

    def _record_failure(self, label, error):
        self.last_error = str(error) or type(error).__name__
        self.failure_count += 1
        kept = "keeping last topology" if self.loaded else "nothing loaded yet"
        print(f"[Engine] {label} failed ({kept}): {self.last_error}")

    def _install(self, topology):
        self.simulator.initialize(topology.connections, topology.devices)
        self.devices = topology.devices
        self.connections = topology.connections
        self.summary = topology.summary

    def resize(self, width, height):
        """Synchronous re-layout from the last good snapshot."""
        if width <= 0 or height <= 0:
            return
        if (width, height) == (self.width, self.height):
            return
        self.width, self.height = width, height
        if self._snapshot is not None:
            config, stats = self._snapshot
            self._install(self.builder.assemble(config, stats, width, height))

    # ==================================================================
    #  Rendering
    # ==================================================================
    def render_frame(self, dt):
        self.simulator.advance(dt, self.animation_speed)
        if self.renderer is None:
            return
        if self.loaded:
            self.renderer.render(self.devices, self.connections, self.particles,
                                 selected_id=self.selected_id, summary=self.summary)
        elif self.last_error:
            self.renderer.render_error(self.last_error)
        else:
            self.renderer.render_message("Loading topology…", self.client_label())

    def client_label(self):
        return getattr(self.client, "base_url", "")

    # ==================================================================
    #  Operator controls
    # ==================================================================
    def set_animation_speed(self, speed):
        self.animation_speed = min(max(float(speed), 0.0), MAX_ANIMATION_SPEED)
        return self.animation_speed

    def pause_refresh(self):
        self._refresh_paused = True

    def resume_refresh(self):
        self._refresh_paused = False

    def toggle_refresh(self):
        self._refresh_paused = not self._refresh_paused
        return not self._refresh_paused

    @property
    def refresh_paused(self):
        return self._refresh_paused

    def select_device_at(self, x, y):
        """Select the top-most device under (x, y); clears on a miss."""
        if x is None or y is None:
            self.selected_id = None
            return None
        for dev in reversed(self.devices):
            if dev.contains(x, y):
                self.selected_id = dev.id
                return dev
        self.selected_id = None
        return None

    # ==================================================================
    #  Lifecycle
    # ==================================================================
    async def _refresh_loop(self):
        while self._running:
            await asyncio.sleep(self.refresh_interval)
            if not self._refresh_paused:
                self.refresh_now()

    async def _render_loop(self):
        loop = asyncio.get_running_loop()
        last = loop.time()
        while self._running:
            now = loop.time()
            self.render_frame(now - last)
            last = now
            await asyncio.sleep(self.frame_interval)

    async def run(self):
        """Initialize, then run both loops until stop() (or a render error)."""
        self._running = True
        self._stop_event = asyncio.Event()
        try:
            await self.initialize()
            self._refresh_task = asyncio.ensure_future(self._refresh_loop())
            waiters = {asyncio.ensure_future(self._stop_event.wait())}
            if self.renderer is not None:
                self._render_task = asyncio.ensure_future(self._render_loop())
                waiters.add(self._render_task)
            done, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                if task is not self._render_task:
                    task.cancel()
            if self._render_task in done:
                self._render_task.result()
        finally:
            await self.teardown()

    def stop(self):
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()

    async def teardown(self):
        """Cancel loops and in-flight refreshes, close the HTTP client."""
        if self._closed:
            return
        self._closed = True
        self._running = False
        tasks = [t for t in (self._render_task, self._refresh_task) if t is not None]
        tasks.extend(self._inflight)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()
        await self.client.aclose()
        print(f"[Engine] Stopped after {self.refresh_count} refresh(es), "
              f"{self.failure_count} failure(s)")
