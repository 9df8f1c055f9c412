#!/usr/bin/env python3
"""
api_client.py — Async HTTP client for the dispatch proxy's status API.

Endpoints used:
    GET  /api/config
    GET  /api/stats
    GET  /api/resolve-hostname?ip=<ip>
    GET  /api/device-info?ip=<ip>
    POST /login            (only when credentials are configured)

Config and stats are fetched together; if either request fails the whole
snapshot fails with FetchFailure and the caller keeps its previous data.
"""

import asyncio

import httpx

from utils import APPLIANCE_URL, HTTP_TIMEOUT


class ApplianceError(Exception):
    """Base class for errors talking to the appliance."""


class FetchFailure(ApplianceError):
    """Config or stats could not be fetched (transport, HTTP status, bad JSON)."""


class AuthenticationFailure(FetchFailure):
    """The appliance rejected the session or the login credentials."""


class ApplianceClient:
    """Thin wrapper around httpx.AsyncClient for the appliance's JSON API."""

    def __init__(self, base_url=APPLIANCE_URL, username=None, password=None,
                 timeout=HTTP_TIMEOUT, transport=None):
        """
        Args:
            base_url: root URL of the appliance web server
            username/password: optional dashboard credentials; when given the
                client logs in before the first fetch and after any 401
            transport: optional httpx transport (MockTransport for the
                simulated appliance and tests)
        """
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            follow_redirects=False,
        )
        self._authenticated = False

    @property
    def needs_login(self):
        return bool(self.username) and not self._authenticated

    # ------------------------------------------------------------------
    async def login(self):
        """POST the credentials; the appliance answers 302 + session cookie."""
        try:
            resp = await self._client.post(
                "/login",
                data={"username": self.username or "", "password": self.password or ""},
            )
        except httpx.HTTPError as e:
            raise FetchFailure(f"login request failed: {e}") from e
        if resp.status_code == 401 or "session" not in self._client.cookies:
            self._authenticated = False
            raise AuthenticationFailure(f"login rejected (HTTP {resp.status_code})")
        self._authenticated = True
        print(f"[ApplianceClient] Logged in to {self.base_url} as {self.username}")

    async def _get_json(self, path, params=None):
        try:
            resp = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise FetchFailure(f"GET {path} failed: {e}") from e

        if resp.status_code == 401 or (
            resp.is_redirect and "/login" in resp.headers.get("location", "")
        ):
            self._authenticated = False
            raise AuthenticationFailure(f"GET {path}: not authenticated")
        if not resp.is_success:
            raise FetchFailure(f"GET {path}: HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise FetchFailure(f"GET {path}: invalid JSON") from e
        if not isinstance(data, dict):
            raise FetchFailure(f"GET {path}: expected a JSON object")
        return data

    # ------------------------------------------------------------------
    async def fetch_config(self):
        return await self._get_json("/api/config")

    async def fetch_stats(self):
        return await self._get_json("/api/stats")

    async def fetch_snapshot(self):
        """
        Fetch config and stats concurrently.

        Returns (config, stats). Raises FetchFailure if either request fails;
        the sibling request is cancelled.
        """
        if self.needs_login:
            await self.login()
        config_task = asyncio.ensure_future(self.fetch_config())
        stats_task = asyncio.ensure_future(self.fetch_stats())
        try:
            config, stats = await asyncio.gather(config_task, stats_task)
        except BaseException:
            for task in (config_task, stats_task):
                task.cancel()
            await asyncio.gather(config_task, stats_task, return_exceptions=True)
            raise
        return config, stats

    # ------------------------------------------------------------------
    async def resolve_hostname(self, ip):
        """Reverse lookup helper. Returns the hostname string or None."""
        data = await self._get_json("/api/resolve-hostname", params={"ip": ip})
        hostname = data.get("hostname")
        return hostname if isinstance(hostname, str) and hostname else None

    async def device_info(self, ip):
        """Fingerprint helper. Returns the raw dict (may be empty)."""
        return await self._get_json("/api/device-info", params={"ip": ip})

    async def aclose(self):
        await self._client.aclose()
