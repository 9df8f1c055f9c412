#!/usr/bin/env python3
"""
run_dashboard.py — Live topology dashboard for a dispatch proxy appliance.

Two modes:
  --mode live       (default) Poll a real appliance at --url
  --mode simulate   Built-in simulated appliance (scripted traffic phases)

Features:
  - Layered topology: ISP → load balancers → gateway → clients
  - Particles flowing along orthogonal links, sized/sped by usage
  - Client names via the appliance's hostname / device-info helpers,
    with a deterministic fallback
  - Terminal-only mode with per-link usage bars (--no-gui)

Usage:
    python run_dashboard.py                              # live, 127.0.0.1:8081
    python run_dashboard.py --url http://10.0.0.254:8081 --username admin --password secret
    python run_dashboard.py --mode simulate              # no appliance needed
    python run_dashboard.py --mode simulate --no-gui     # terminal only

Keys (GUI): r = refresh now, space = pause/resume refresh, +/- = speed.
Press Ctrl+C to stop at any time.
"""

import argparse
import asyncio
import time

from api_client import ApplianceClient
from engine import TopologyEngine
from flow_simulator import measure_usage
from renderer import DeviceImageCache
from utils import (
    APPLIANCE_URL, REFRESH_INTERVAL, FRAME_RATE, HTTP_TIMEOUT, CANVAS_WIDTH, CANVAS_HEIGHT,
    format_duration,
)


# ── ANSI colors ──────────────────────────────────────────────────
RED = "\033[91m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
CYAN = "\033[96m"
BOLD = "\033[1m"
DIM = "\033[2m"
RESET = "\033[0m"


def banner(mode_label, url, interval):
    print(f"""
{CYAN}{BOLD}╔══════════════════════════════════════════════════════════════╗
║  Dispatch Proxy — Live Network Topology                      ║
║  ISP → load balancers → gateway → clients                    ║
╚══════════════════════════════════════════════════════════════╝{RESET}
  {CYAN}Mode: {BOLD}{mode_label}{RESET}
  {CYAN}Appliance: {url}  |  Refresh every {interval:g}s{RESET}
""")


# ==================================================================
#  TERMINAL OUTPUT (--no-gui)
# ==================================================================
def make_bar(value, width=25):
    value = min(max(value, 0.0), 1.0)
    filled = int(value * width)
    empty = width - filled
    if value >= 0.8:
        color = RED
    elif value >= 0.5:
        color = YELLOW
    else:
        color = GREEN
    return f"{color}{'█' * filled}{'░' * empty}{RESET}"


def print_status(engine, started):
    summary = engine.summary
    elapsed = time.time() - started
    print(f"\n{DIM}{'─' * 65}{RESET}")
    print(f"  {BOLD}Refresh {engine.refresh_count}{RESET}  │  "
          f"Up: {format_duration(elapsed)}  │  "
          f"Throughput: {summary.total_throughput}  │  "
          f"Conns: {summary.active_connections}  │  "
          f"LBs: {summary.load_balancers}  │  "
          f"Clients: {summary.unique_clients}")
    print(f"{DIM}{'─' * 65}{RESET}")

    usage, _ = measure_usage(engine.connections)
    counts = engine.simulator.counts()
    for index, (conn, use) in enumerate(zip(engine.connections, usage)):
        label = f"{conn.source.name} → {conn.target.name}"
        if not conn.enabled:
            print(f"  {DIM}{label:<32} disabled{RESET}")
            continue
        print(f"  {label:<32} {make_bar(use.ratio)} {use.ratio:>6.1%}  "
              f"{DIM}{counts.get(index, 0)} particles{RESET}")


# ==================================================================
#  MAIN
# ==================================================================
def positive_number(kind):
    """argparse type: int/float that must be > 0."""
    def parse(text):
        try:
            value = kind(text)
        except ValueError:
            raise argparse.ArgumentTypeError(f"invalid {kind.__name__} value: {text!r}")
        if value <= 0:
            raise argparse.ArgumentTypeError(f"must be > 0, got {text}")
        return value
    return parse


def build_client(args):
    if args.mode == "simulate":
        from simulated_appliance import SimulatedAppliance
        appliance = SimulatedAppliance(
            username=args.username, password=args.password,
            stats_failure_rate=args.fail_rate,
        )
        return ApplianceClient("http://appliance.sim", username=args.username,
                               password=args.password, transport=appliance.transport())
    return ApplianceClient(args.url, username=args.username, password=args.password,
                           timeout=args.timeout)


async def run(args):
    client = build_client(args)
    started = time.time()
    on_refresh = (lambda eng: print_status(eng, started)) if args.no_gui else None

    surface = window = None
    if not args.no_gui:
        from dashboard import MatplotlibSurface, DashboardWindow
        surface = MatplotlibSurface(args.width, args.height)

    engine = TopologyEngine(
        client,
        surface=surface,
        images=DeviceImageCache(args.icons) if surface is not None else None,
        refresh_interval=args.interval,
        frame_rate=args.fps,
        animation_speed=args.speed,
        on_refresh=on_refresh,
    )
    if surface is not None:
        window = DashboardWindow(engine, surface)
        window.show()
    try:
        await engine.run()
    finally:
        if window is not None:
            window.close()


def build_parser():
    parser = argparse.ArgumentParser(
        description="Dispatch Proxy — Live Network Topology Dashboard"
    )
    parser.add_argument(
        "--mode", choices=["live", "simulate"], default="live",
        help="Data source: 'live' (real appliance) or 'simulate' (built-in fake)"
    )
    parser.add_argument("--url", default=APPLIANCE_URL,
                        help=f"Appliance web API base URL (default: {APPLIANCE_URL})")
    parser.add_argument("--username", help="Dashboard login (if the appliance requires it)")
    parser.add_argument("--password", help="Dashboard password")
    parser.add_argument("--interval", type=positive_number(float), default=REFRESH_INTERVAL,
                        help=f"Seconds between topology refreshes (default: {REFRESH_INTERVAL:g})")
    parser.add_argument("--fps", type=positive_number(int), default=FRAME_RATE,
                        help=f"Render loop frame rate (default: {FRAME_RATE})")
    parser.add_argument("--speed", type=float, default=1.0,
                        help="Particle animation speed multiplier (default: 1.0)")
    parser.add_argument("--timeout", type=positive_number(float), default=HTTP_TIMEOUT,
                        help=f"HTTP timeout per request in seconds (default: {HTTP_TIMEOUT:g})")
    parser.add_argument("--icons", default=None,
                        help="Directory with <device-type>.png icons (optional)")
    parser.add_argument("--width", type=positive_number(int), default=CANVAS_WIDTH)
    parser.add_argument("--height", type=positive_number(int), default=CANVAS_HEIGHT)
    parser.add_argument("--fail-rate", type=float, default=0.0,
                        help="Simulate mode: probability that /api/stats fails")
    parser.add_argument("--no-gui", action="store_true",
                        help="Disable the topology window, use terminal output only")
    return parser


def main():
    args = build_parser().parse_args()

    mode_label = "SIMULATED APPLIANCE" if args.mode == "simulate" else "LIVE APPLIANCE"
    url = "in-process" if args.mode == "simulate" else args.url
    banner(mode_label, url, args.interval)
    if args.no_gui:
        print(f"  {DIM}GUI disabled — terminal output only{RESET}")
    print("  Press Ctrl+C to stop\n")

    start_time = time.time()
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        elapsed = time.time() - start_time
        print(f"\n\n{CYAN}{BOLD}{'═' * 55}{RESET}")
        print(f"  {BOLD}Stopped after {format_duration(elapsed)}{RESET}")
        print(f"{CYAN}{BOLD}{'═' * 55}{RESET}\n")


if __name__ == "__main__":
    main()
