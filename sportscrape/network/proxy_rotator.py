#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Proxy Rotator - weighted, subnet-diverse egress selection

Rotates through the configured rotating-proxy providers (or explicitly
added proxies).

Features:
- Weighted selection by success rate (untested proxies weigh 1)
- Subnet diversity (avoid the same /24 or gateway host twice in a row)
- Recency penalty (avoid reusing a proxy within 30s)
- Cooldown after repeated failures, with forced reuse when all are cooling

Usage:
    rotator = ProxyRotator.from_settings(settings)
    profile = rotator.select_proxy()
    if profile:
        context = await browser.new_context(proxy=profile.playwright_proxy)
    ...
    rotator.record_success(profile.url)
"""

import logging
import random
import re
import string
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote, urlparse

import httpx

from ..config.timeouts import TimeoutConfig
from ..utils.logger import redact_proxy_url

logger = logging.getLogger(__name__)

COOLDOWN_SECONDS = 5 * 60
MAX_CONSECUTIVE_FAILURES = 3
MIN_REUSE_INTERVAL_SECONDS = 30
FAILURE_RATE_THRESHOLD = 0.5
HEALTH_CHECK_URL = "http://httpbin.org/ip"

_IP_PREFIX = re.compile(r"^(\d+\.\d+\.\d+)")


def extract_subnet(url: str) -> str:
    """First three octets for IP hosts, the hostname otherwise."""
    try:
        host = urlparse(url).hostname
    except (ValueError, TypeError):
        return "unknown"
    if not host:
        return "unknown"
    match = _IP_PREFIX.match(host)
    if match:
        return match.group(1)
    return host


@dataclass
class ProxyProfile:
    """One egress endpoint and its outcome counters."""
    url: str
    username: Optional[str] = None
    password: Optional[str] = None
    name: str = "custom"
    subnet: str = ""
    success_count: int = 0
    fail_count: int = 0
    last_used: float = 0.0
    last_failed: Optional[float] = None
    cooldown_until: Optional[float] = None

    def __post_init__(self):
        if not self.subnet:
            self.subnet = extract_subnet(self.url)

    @property
    def proxy_url(self) -> str:
        """URL with credentials embedded, for HTTP clients."""
        if not self.username:
            return self.url
        parsed = urlparse(self.url)
        auth = quote(self.username, safe="")
        if self.password:
            auth = f"{auth}:{quote(self.password, safe='')}"
        return f"{parsed.scheme}://{auth}@{parsed.netloc}"

    @property
    def playwright_proxy(self) -> Dict[str, str]:
        """Proxy settings in the shape Browser.new_context(proxy=...) expects."""
        proxy = {"server": self.url}
        if self.username:
            proxy["username"] = self.username
        if self.password:
            proxy["password"] = self.password
        return proxy

    @property
    def weight(self) -> float:
        total = self.success_count + self.fail_count
        if total == 0:
            return 1.0
        return self.success_count / total + 0.1

    @property
    def success_rate(self) -> str:
        total = self.success_count + self.fail_count
        if total == 0:
            return "N/A"
        return f"{self.success_count / total * 100:.0f}%"

    def in_cooldown(self, now: float) -> bool:
        return self.cooldown_until is not None and now < self.cooldown_until


def _session_id(rng: random.Random, length: int) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(rng.choice(alphabet) for _ in range(length))


def build_provider_profiles(
    credentials: Dict[str, str],
    country: str = "gb",
    rng: Optional[random.Random] = None,
) -> List[ProxyProfile]:
    """
    Build one rotating profile per configured provider.

    Args:
        credentials: Provider variables (DATAIMPULSE_USERNAME, ...)
        country: Two-letter egress country
        rng: Random source for sticky-session ids
    """
    rng = rng or random.Random()
    country = (country or "gb").lower()
    profiles = []

    if credentials.get("DATAIMPULSE_USERNAME") and credentials.get("DATAIMPULSE_PASSWORD"):
        profiles.append(ProxyProfile(
            url="http://gw.dataimpulse.com:823",
            username=credentials["DATAIMPULSE_USERNAME"],
            password=credentials["DATAIMPULSE_PASSWORD"],
            name="dataimpulse",
        ))

    if credentials.get("PACKETSTREAM_API_KEY"):
        profiles.append(ProxyProfile(
            url="http://proxy.packetstream.io:31112",
            username=credentials["PACKETSTREAM_API_KEY"],
            password=country.upper(),
            name="packetstream",
        ))

    if credentials.get("IPROYAL_USERNAME") and credentials.get("IPROYAL_PASSWORD"):
        session_id = _session_id(rng, 8)
        profiles.append(ProxyProfile(
            url="http://geo.iproyal.com:12321",
            username=credentials["IPROYAL_USERNAME"],
            password=f"{credentials['IPROYAL_PASSWORD']}_country-{country}_session-{session_id}_lifetime-5m",
            name="iproyal",
        ))

    if credentials.get("SMARTPROXY_USERNAME") and credentials.get("SMARTPROXY_PASSWORD"):
        session_id = _session_id(rng, 13)
        profiles.append(ProxyProfile(
            url="http://gate.smartproxy.com:7000",
            username=f"user-{credentials['SMARTPROXY_USERNAME']}-country-{country}-session-{session_id}",
            password=credentials["SMARTPROXY_PASSWORD"],
            name="smartproxy",
        ))

    if credentials.get("BRIGHTDATA_USERNAME") and credentials.get("BRIGHTDATA_PASSWORD"):
        zone = credentials.get("BRIGHTDATA_ZONE") or "residential"
        session_id = _session_id(rng, 13)
        profiles.append(ProxyProfile(
            url="http://brd.superproxy.io:22225",
            username=f"{credentials['BRIGHTDATA_USERNAME']}-zone-{zone}-country-{country}-session-{session_id}",
            password=credentials["BRIGHTDATA_PASSWORD"],
            name="brightdata",
        ))

    return profiles


class ProxyRotator:
    """
    Diversity-aware proxy selection.

    All state sits behind one re-entrant lock; selection and outcome
    recording are short in-memory operations.
    """

    def __init__(
        self,
        profiles: Optional[List[ProxyProfile]] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
        http_client_factory: Optional[Callable[[ProxyProfile], httpx.AsyncClient]] = None,
    ):
        self._clock = clock
        self._rng = rng or random.Random()
        self._http_client_factory = http_client_factory or self._default_http_client
        self._lock = threading.RLock()
        self._proxies: List[ProxyProfile] = []
        self._last_subnet: Optional[str] = None
        for profile in profiles or []:
            self._register(profile)
        if self._proxies:
            logger.info(f"Proxy rotator: {len(self._proxies)} proxy profile(s) configured")

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "ProxyRotator":
        rng = kwargs.pop("rng", None) or random.Random()
        profiles = build_provider_profiles(settings.proxy_credentials, settings.proxy_country, rng)
        for profile in profiles:
            logger.info(f"Proxy: {profile.name} enabled")
        return cls(profiles, rng=rng, **kwargs)

    def _register(self, profile: ProxyProfile):
        with self._lock:
            self._proxies.append(profile)

    def add_proxy(self, url: str, username: Optional[str] = None,
                  password: Optional[str] = None, name: str = "custom") -> ProxyProfile:
        """Add an explicitly configured proxy."""
        profile = ProxyProfile(url=url, username=username, password=password, name=name)
        self._register(profile)
        logger.info(f"Added proxy: {redact_proxy_url(url)} (subnet {profile.subnet})")
        return profile

    def is_enabled(self) -> bool:
        with self._lock:
            return len(self._proxies) > 0

    def _find(self, proxy_url: str) -> Optional[ProxyProfile]:
        for proxy in self._proxies:
            if proxy.url == proxy_url or proxy.proxy_url == proxy_url:
                return proxy
        return None

    def select_proxy(self) -> Optional[ProxyProfile]:
        """
        Pick the next egress proxy.

        Returns:
            ProxyProfile, or None when no proxies are configured
        """
        with self._lock:
            if not self._proxies:
                return None

            now = self._clock()
            for proxy in self._proxies:
                if proxy.cooldown_until is not None and not proxy.in_cooldown(now):
                    proxy.cooldown_until = None
            available = [p for p in self._proxies if not p.in_cooldown(now)]

            if not available:
                earliest = min(self._proxies, key=lambda p: p.cooldown_until or 0)
                earliest.cooldown_until = None
                logger.warning(
                    f"All proxies in cooldown, force-reusing {redact_proxy_url(earliest.url)}"
                )
                return earliest

            rested = [p for p in available if now - p.last_used > MIN_REUSE_INTERVAL_SECONDS]
            if rested:
                available = rested

            other_subnet = [p for p in available if p.subnet != self._last_subnet]
            if other_subnet:
                available = other_subnet

            selected = self._weighted_choice(available)
            selected.last_used = now
            self._last_subnet = selected.subnet
            return selected

    def _weighted_choice(self, candidates: List[ProxyProfile]) -> ProxyProfile:
        weights = [p.weight for p in candidates]
        point = self._rng.random() * sum(weights)
        for proxy, weight in zip(candidates, weights):
            point -= weight
            if point <= 0:
                return proxy
        return candidates[-1]

    def record_success(self, proxy_url: str):
        """Count a success and clear any cooldown."""
        with self._lock:
            proxy = self._find(proxy_url)
            if proxy is None:
                return
            proxy.success_count += 1
            proxy.cooldown_until = None
            logger.debug(f"Proxy success: {redact_proxy_url(proxy.url)} ({proxy.success_rate})")

    def record_failure(self, proxy_url: str):
        """Count a failure; cool the proxy down once it fails more than it works."""
        with self._lock:
            proxy = self._find(proxy_url)
            if proxy is None:
                return
            now = self._clock()
            proxy.fail_count += 1
            proxy.last_failed = now

            total = proxy.success_count + proxy.fail_count
            fail_rate = proxy.fail_count / total if total else 0.0
            if fail_rate > FAILURE_RATE_THRESHOLD and proxy.fail_count >= MAX_CONSECUTIVE_FAILURES:
                proxy.cooldown_until = now + COOLDOWN_SECONDS
                logger.warning(
                    f"Proxy in cooldown for {COOLDOWN_SECONDS}s: {redact_proxy_url(proxy.url)} "
                    f"(failures={proxy.fail_count})"
                )

    def _default_http_client(self, profile: ProxyProfile) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            proxy=profile.proxy_url,
            timeout=TimeoutConfig.HEALTH_CHECK_TIMEOUT,
            headers={"User-Agent": "Mozilla/5.0"},
        )

    async def health_check(self, profile: ProxyProfile) -> Dict[str, Any]:
        """
        Fetch an IP echo endpoint through the proxy and record the outcome.

        Returns:
            Dict with url (redacted), healthy flag and either response_time_ms or error
        """
        start = time.monotonic()
        try:
            async with self._http_client_factory(profile) as client:
                response = await client.get(HEALTH_CHECK_URL)
        except httpx.HTTPError as e:
            self.record_failure(profile.url)
            logger.warning(f"Proxy health check failed: {redact_proxy_url(profile.url)}: {type(e).__name__}")
            return {"url": redact_proxy_url(profile.url), "healthy": False, "error": type(e).__name__}

        response_time_ms = (time.monotonic() - start) * 1000
        if response.status_code == 200:
            self.record_success(profile.url)
            return {"url": redact_proxy_url(profile.url), "healthy": True, "response_time_ms": response_time_ms}

        self.record_failure(profile.url)
        return {"url": redact_proxy_url(profile.url), "healthy": False, "error": f"HTTP {response.status_code}"}

    def reset(self):
        """Clear all counters, cooldowns and the subnet memory."""
        with self._lock:
            for proxy in self._proxies:
                proxy.success_count = 0
                proxy.fail_count = 0
                proxy.last_used = 0.0
                proxy.last_failed = None
                proxy.cooldown_until = None
            self._last_subnet = None
        logger.info("Proxy rotator reset")

    def get_stats(self) -> List[Dict[str, Any]]:
        """Per-proxy counters with credentials removed."""
        with self._lock:
            now = self._clock()
            return [
                {
                    "name": p.name,
                    "url": redact_proxy_url(p.url),
                    "subnet": p.subnet,
                    "success_count": p.success_count,
                    "fail_count": p.fail_count,
                    "success_rate": p.success_rate,
                    "in_cooldown": p.in_cooldown(now),
                    "last_used": datetime.fromtimestamp(p.last_used).isoformat() if p.last_used > 0 else None,
                }
                for p in self._proxies
            ]
