"""
Location service: resolves a client IP to coarse location data.

Uses MaxMind's GeoIP2 web service (``geoip2`` async client).  Results
are memoised per IP for the process lifetime.  Private, loopback and
unknown addresses, and an unconfigured account, all resolve to None;
callers treat None as "no enrichment".
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from typing import Dict, Optional

import aiohttp
from fastapi import Request
from geoip2.errors import GeoIP2Error
from geoip2.webservice import AsyncClient

from config.settings import Settings
from utils.schemas import LocationData

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """First ``X-Forwarded-For`` hop, else the socket peer, else ``"unknown"``."""
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _is_public(ip_address: str) -> bool:
    try:
        addr = ipaddress.ip_address(ip_address)
    except ValueError:
        return False
    return not (addr.is_private or addr.is_loopback or addr.is_link_local or addr.is_unspecified)


class LocationService:
    def __init__(self, account_id: str = "", license_key: str = ""):
        self._account_id = account_id
        self._license_key = license_key
        self._cache: Dict[str, LocationData] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocationService":
        return cls(settings.maxmind_account_id, settings.maxmind_license_key)

    @property
    def is_configured(self) -> bool:
        return bool(self._account_id and self._license_key)

    async def resolve(self, ip_address: str) -> Optional[LocationData]:
        if not _is_public(ip_address):
            logger.debug("No geolocation for non-public address %s", ip_address)
            return None

        cached = self._cache.get(ip_address)
        if cached is not None:
            logger.debug("Geolocation cache hit for %s", ip_address)
            return cached

        if not self.is_configured:
            logger.warning("MaxMind account ID or license key not configured")
            return None

        try:
            location = await self._lookup(ip_address)
        except (GeoIP2Error, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.error("Geolocation lookup failed for %s: %s", ip_address, exc)
            return None

        self._cache[ip_address] = location
        logger.info(
            "Client location for %s: city=%s state=%s country=%s postal_code=%s",
            ip_address,
            location.city,
            location.state,
            location.country,
            location.postal_code,
        )
        return location

    async def _lookup(self, ip_address: str) -> LocationData:
        async with AsyncClient(int(self._account_id), self._license_key) as client:
            response = await client.city(ip_address)

        subdivision = response.subdivisions[-1] if response.subdivisions else None
        return LocationData(
            ip=ip_address,
            city=response.city.names.get("en"),
            state=subdivision.names.get("en") if subdivision else None,
            country=response.country.iso_code,
            postal_code=response.postal.code,
        )

    def clear_cache(self) -> None:
        self._cache.clear()
