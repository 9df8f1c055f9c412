#!/usr/bin/env python3
"""
device_identity.py — Best-effort display name / type for client IPs.

Resolution order (first success wins):
  1. Reverse lookup through the appliance (/api/resolve-hostname)
  2. Fingerprint lookup through the appliance (/api/device-info)
  3. Deterministic IP-seeded fallback (fallback_identity)

This is NOT device discovery. Steps 1-2 are single attempts whose errors are
swallowed; step 3 is a pure function of the IP so that the same client
always gets the same name and icon.

Results are cached per IP for the life of the process and never evicted.
"""

import asyncio
import ipaddress
import re
import zlib
from dataclasses import dataclass

import httpx

from api_client import ApplianceError

# Client device subtypes, in the order the fallback buckets use them.
CLIENT_TYPES = ("desktop", "laptop", "phone", "tablet", "tv", "console", "iot")

# Fallback buckets on the last octet: (exclusive upper bound, type)
OCTET_THRESHOLDS = (
    (20, "desktop"),
    (50, "laptop"),
    (100, "phone"),
    (150, "tablet"),
    (200, "tv"),
    (230, "console"),
    (256, "iot"),
)

FALLBACK_NAMES = {
    "desktop": ("Desktop PC", "Workstation", "iMac"),
    "laptop":  ("MacBook Pro", "ThinkPad", "Dell XPS"),
    "phone":   ("iPhone", "Android Phone", "Pixel"),
    "tablet":  ("iPad Air", "Galaxy Tab", "Surface"),
    "tv":      ("Smart TV", "Apple TV", "Chromecast"),
    "console": ("PlayStation", "Xbox", "Nintendo Switch"),
    "iot":     ("Smart Speaker", "IP Camera", "Thermostat"),
}

# Keyword → type, checked in order (more specific first)
TYPE_KEYWORDS = (
    ("tablet",  ("ipad", "tablet", "galaxy tab", "kindle")),
    ("phone",   ("iphone", "android", "pixel", "mobile", "phone")),
    ("console", ("playstation", "xbox", "nintendo", "ps4", "ps5")),
    ("tv",      ("smart tv", "smarttv", "roku", "chromecast", "apple tv",
                 "appletv", "bravia", "webos", "tizen")),
    ("laptop",  ("macbook", "laptop", "thinkpad", "notebook", "xps")),
    ("iot",     ("camera", "speaker", "echo", "nest", "thermostat", "esp32",
                 "esp8266", "iot", "sonos")),
    ("desktop", ("desktop", "imac", "workstation", "windows", "linux", "pc")),
)


# Fields of /api/device-info that count as a usable answer
INFO_FIELDS = ("name", "type", "user_agent", "vendor", "os")


@dataclass(frozen=True)
class DeviceIdentity:
    name: str
    type: str
    source: str = "fallback"     # "hostname" | "device-info" | "fallback"


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------
def ip_seed(ip):
    """
    Seed from the last two octets (third*256 + fourth) for IPv4.
    Anything else is hashed with crc32 into the same 16-bit range.
    """
    try:
        addr = ipaddress.ip_address(str(ip).strip())
    except ValueError:
        addr = None
    if addr is not None and addr.version == 4:
        packed = addr.packed
        return packed[2] * 256 + packed[3]
    return zlib.crc32(str(ip).encode("utf-8")) & 0xFFFF


def fallback_type(ip):
    """Device type bucket from the last octet (seed & 0xFF)."""
    last_octet = ip_seed(ip) & 0xFF
    for bound, device_type in OCTET_THRESHOLDS:
        if last_octet < bound:
            return device_type
    return "iot"


def fallback_identity(ip):
    """
    Deterministic placeholder identity for *ip*.

    >>> fallback_identity("192.168.1.45")
    DeviceIdentity(name='ThinkPad-012d', type='laptop', source='fallback')
    """
    seed = ip_seed(ip)
    device_type = fallback_type(ip)
    names = FALLBACK_NAMES[device_type]
    return DeviceIdentity(
        name=f"{names[seed % len(names)]}-{seed:04x}",
        type=device_type,
    )


def normalize_hostname(hostname):
    """'johns-macbook_pro.lan' → 'Johns Macbook Pro'."""
    label = hostname.strip().rstrip(".").split(".")[0]
    words = [w for w in re.split(r"[-_\s]+", label) if w]
    return " ".join(w.capitalize() for w in words)


def infer_type(*texts):
    """Keyword match over free-form strings (user agent, vendor, OS, names)."""
    haystack = " ".join(t for t in texts if isinstance(t, str)).lower()
    if not haystack.strip():
        return None
    for device_type, keywords in TYPE_KEYWORDS:
        if any(kw in haystack for kw in keywords):
            return device_type
    return None


def normalize_type(value):
    """Map an explicit type from /api/device-info onto a known client type."""
    if not isinstance(value, str):
        return None
    value = value.strip().lower()
    if value in CLIENT_TYPES:
        return value
    aliases = {"mobile": "phone", "smartphone": "phone", "computer": "desktop",
               "pc": "desktop", "notebook": "laptop", "television": "tv",
               "gaming": "console", "game console": "console", "camera": "iot"}
    return aliases.get(value) or infer_type(value)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------
class DeviceIdentityResolver:
    """Caching name/type resolver backed by the appliance helper endpoints."""

    def __init__(self, client=None):
        """
        Args:
            client: ApplianceClient, or None to use the fallback only
        """
        self.client = client
        self._cache = {}      # ip → DeviceIdentity
        self._pending = {}    # ip → Task (lookup in flight)

    def cached(self, ip):
        """Identity from the cache, or the fallback without caching it."""
        return self._cache.get(ip) or fallback_identity(ip)

    def is_cached(self, ip):
        return ip in self._cache

    async def resolve(self, ip):
        if ip in self._cache:
            return self._cache[ip]
        task = self._pending.get(ip)
        if task is None:
            task = asyncio.ensure_future(self._lookup(ip))
            self._pending[ip] = task
        try:
            identity = await asyncio.shield(task)
        finally:
            if task.done():
                self._pending.pop(ip, None)
        self._cache[ip] = identity
        return identity

    async def resolve_name(self, ip):
        return (await self.resolve(ip)).name

    async def resolve_type(self, ip):
        return (await self.resolve(ip)).type

    async def resolve_many(self, ips):
        """Resolve every uncached IP concurrently; returns {ip: identity}."""
        unique = list(dict.fromkeys(ip for ip in ips if ip))
        identities = await asyncio.gather(*(self.resolve(ip) for ip in unique))
        return dict(zip(unique, identities))

    # ------------------------------------------------------------------
    async def _lookup(self, ip):
        fallback = fallback_identity(ip)
        if self.client is None:
            return fallback

        hostname = await self._try(self.client.resolve_hostname(ip))
        if hostname and hostname.strip() != ip:
            name = normalize_hostname(hostname)
            if name:
                return DeviceIdentity(
                    name=name,
                    type=infer_type(hostname) or fallback.type,
                    source="hostname",
                )

        info = await self._try(self.client.device_info(ip))
        if isinstance(info, dict) and any(info.get(k) for k in INFO_FIELDS):
            device_type = (
                normalize_type(info.get("type"))
                or infer_type(info.get("user_agent"), info.get("vendor"),
                              info.get("os"), info.get("name"))
                or fallback.type
            )
            name = info.get("name")
            return DeviceIdentity(
                name=name if isinstance(name, str) and name.strip() else fallback.name,
                type=device_type,
                source="device-info",
            )

        return fallback

    @staticmethod
    async def _try(coro):
        try:
            return await coro
        except (ApplianceError, httpx.HTTPError, ValueError) as e:
            print(f"[Resolver] lookup failed, using fallback: {e}")
            return None
