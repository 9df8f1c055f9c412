import asyncio

import httpx
import pytest

from api_client import ApplianceClient
from device_identity import (
    CLIENT_TYPES, DeviceIdentity, DeviceIdentityResolver,
    fallback_identity, fallback_type, infer_type, ip_seed,
    normalize_hostname, normalize_type,
)
from simulated_appliance import SimulatedAppliance


def sim_client(appliance):
    return ApplianceClient("http://appliance.test", transport=appliance.transport())


# ---------------------------------------------------------------------------
# Fallback
# ---------------------------------------------------------------------------
def test_ip_seed_uses_last_two_octets():
    assert ip_seed("192.168.1.5") == 261
    assert ip_seed("10.0.2.1") == 513


def test_ip_seed_non_ipv4_is_stable_16_bit():
    for value in ("fe80::1", "not-an-ip", ""):
        seed = ip_seed(value)
        assert 0 <= seed <= 0xFFFF
        assert seed == ip_seed(value)


@pytest.mark.parametrize("last_octet, expected", [
    (0, "desktop"), (19, "desktop"),
    (20, "laptop"), (49, "laptop"),
    (50, "phone"), (99, "phone"),
    (100, "tablet"), (149, "tablet"),
    (150, "tv"), (199, "tv"),
    (200, "console"), (229, "console"),
    (230, "iot"), (255, "iot"),
])
def test_fallback_type_thresholds(last_octet, expected):
    assert fallback_type(f"192.168.1.{last_octet}") == expected


def test_fallback_identity_pinned_examples():
    assert fallback_identity("192.168.1.5") == DeviceIdentity("Desktop PC-0105", "desktop")
    assert fallback_identity("192.168.1.45") == DeviceIdentity("ThinkPad-012d", "laptop")


def test_fallback_without_client_is_deterministic():
    resolver = DeviceIdentityResolver(client=None)

    async def resolve_twice():
        first = (await resolver.resolve_type("192.168.1.5"),
                 await resolver.resolve_name("192.168.1.5"))
        fresh = DeviceIdentityResolver(client=None)
        second = (await fresh.resolve_type("192.168.1.5"),
                  await fresh.resolve_name("192.168.1.5"))
        return first, second

    first, second = asyncio.run(resolve_twice())
    assert first == second == ("desktop", "Desktop PC-0105")


def test_cached_returns_fallback_for_unknown_ip_without_caching():
    resolver = DeviceIdentityResolver()
    assert resolver.cached("192.168.1.45").name == "ThinkPad-012d"
    assert not resolver.is_cached("192.168.1.45")


# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------
def test_normalize_hostname():
    assert normalize_hostname("johns-macbook_pro.lan") == "Johns Macbook Pro"
    assert normalize_hostname("office-desktop.lan.") == "Office Desktop"


def test_infer_type_keywords():
    assert infer_type("Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X)") == "tablet"
    assert infer_type("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0)") == "phone"
    assert infer_type("Sony", "PlayStation 5") == "console"
    assert infer_type("johns-macbook-pro") == "laptop"
    assert infer_type("", None) is None
    assert infer_type("zzz") is None


def test_normalize_type():
    assert normalize_type("TV") == "tv"
    assert normalize_type("smartphone") == "phone"
    assert normalize_type(None) is None
    assert normalize_type("spaceship") is None


# ---------------------------------------------------------------------------
# Resolution through the appliance helpers
# ---------------------------------------------------------------------------
def test_resolution_order_against_simulated_appliance():
    appliance = SimulatedAppliance()
    client = sim_client(appliance)
    resolver = DeviceIdentityResolver(client)

    async def go():
        try:
            return await resolver.resolve_many([
                "192.168.1.12", "192.168.1.45", "192.168.1.101",
                "192.168.1.160", "192.168.1.67",
            ])
        finally:
            await client.aclose()

    ids = asyncio.run(go())

    assert ids["192.168.1.12"] == DeviceIdentity("Office Desktop", "desktop", "hostname")
    assert ids["192.168.1.45"] == DeviceIdentity("Johns Macbook Pro", "laptop", "hostname")
    # no hostname, fingerprint without a name: type inferred from user agent
    assert ids["192.168.1.101"] == DeviceIdentity("iPad Air-0165", "tablet", "device-info")
    assert ids["192.168.1.160"] == DeviceIdentity("Living Room TV", "tv", "device-info")
    # hostname echoes the IP and device-info 404s: fallback
    assert ids["192.168.1.67"] == fallback_identity("192.168.1.67")


def test_one_lookup_per_ip():
    appliance = SimulatedAppliance()
    client = sim_client(appliance)
    resolver = DeviceIdentityResolver(client)

    async def go():
        try:
            await asyncio.gather(resolver.resolve("192.168.1.67"),
                                 resolver.resolve("192.168.1.67"))
            after_first = len(appliance.requests)
            await resolver.resolve_many(["192.168.1.67", "192.168.1.67"])
            await resolver.resolve("192.168.1.67")
            return after_first, len(appliance.requests)
        finally:
            await client.aclose()

    after_first, total = asyncio.run(go())
    assert after_first == 2          # resolve-hostname + device-info
    assert total == after_first
    assert resolver.is_cached("192.168.1.67")


def test_network_errors_fall_back_silently():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    client = ApplianceClient("http://appliance.test", transport=httpx.MockTransport(handler))
    resolver = DeviceIdentityResolver(client)

    async def go():
        try:
            return await resolver.resolve("192.168.1.5")
        finally:
            await client.aclose()

    identity = asyncio.run(go())
    assert identity == fallback_identity("192.168.1.5")
    assert identity.type in CLIENT_TYPES
