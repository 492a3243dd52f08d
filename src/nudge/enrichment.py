"""Device, locale and position context attached to outgoing chat requests."""

from __future__ import annotations

import asyncio
import functools
import inspect
import os
import re
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from loguru import logger

from nudge.config import Settings

DEFAULT_GEOLOCATION_TIMEOUT_SECONDS = 5.0
DEFAULT_GEOLOCATION_MAX_AGE_SECONDS = 600.0
UNKNOWN = "unknown"

MOBILE_PATTERN = re.compile(r"Mobile|iP(hone|od|ad)|Android|BlackBerry|IEMobile")
# Checked in order, first match wins.
OS_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"Windows"), "Windows"),
    (re.compile(r"Mac OS X"), "macOS"),
    (re.compile(r"Linux"), "Linux"),
    (re.compile(r"Android"), "Android"),
    (re.compile(r"iOS|iPhone|iPad|iPod"), "iOS"),
)


class GeolocationUnavailable(Exception):
    """Raised by a geolocation provider that cannot produce a position."""


class DeviceProbe(Protocol):
    def user_agent(self) -> str | None: ...


class GeolocationProvider(Protocol):
    def current_position(
        self, *, timeout: float, maximum_age: float
    ) -> Mapping[str, Any] | Awaitable[Mapping[str, Any]]: ...


class TimezoneProvider(Protocol):
    def timezone(self) -> str: ...


@dataclass(frozen=True)
class DeviceInfo:
    device_class: str = UNKNOWN
    os: str = UNKNOWN
    agent: str = UNKNOWN

    def as_context(self) -> dict[str, str]:
        return {"type": self.device_class, "os": self.os, "browser": self.agent}


@dataclass(frozen=True)
class LocaleInfo:
    timezone: str | None = None


@dataclass(frozen=True)
class GeoPosition:
    lat: float
    lon: float
    accuracy: float


@dataclass(frozen=True)
class EnrichmentSnapshot:
    """Context resolved once per process."""

    device: DeviceInfo
    locale: LocaleInfo
    geo: GeoPosition | None = None

    def location_context(self) -> dict[str, Any]:
        if self.geo is not None:
            return {"latitude": self.geo.lat, "longitude": self.geo.lon, "accuracy": self.geo.accuracy}
        if self.locale.timezone:
            return {"timezone": self.locale.timezone}
        return {}

    def as_context(self) -> dict[str, Any]:
        return {"deviceInfo": self.device.as_context(), "location": self.location_context()}


def classify_device(user_agent: str | None) -> DeviceInfo:
    """Classify a user agent string without any network access."""
    if not user_agent:
        return DeviceInfo()
    device_class = "mobile" if MOBILE_PATTERN.search(user_agent) else "desktop"
    return DeviceInfo(device_class=device_class, os=_detect_os(user_agent), agent=_detect_agent(user_agent))


def _detect_os(user_agent: str) -> str:
    for pattern, name in OS_PATTERNS:
        if pattern.search(user_agent):
            return name
    return UNKNOWN


def _detect_agent(user_agent: str) -> str:
    if "Firefox" in user_agent:
        return "Firefox"
    if "Safari" in user_agent and "Chrome" not in user_agent:
        return "Safari"
    if "Chrome" in user_agent:
        return "Chrome"
    if "Edge" in user_agent:
        return "Edge"
    if "MSIE" in user_agent or "Trident/" in user_agent:
        return "Internet Explorer"
    return UNKNOWN


def _parse_position(position: Mapping[str, Any]) -> GeoPosition:
    coords = position["coords"]
    return GeoPosition(
        lat=float(coords["latitude"]),
        lon=float(coords["longitude"]),
        accuracy=float(coords["accuracy"]),
    )


class EnrichmentCache:
    """Resolve enrichment context at most once, coalescing concurrent callers.

    The device is classified synchronously from the probe. Position comes from
    the geolocation provider within ``timeout``; on any failure only the local
    timezone is kept. Whatever is resolved first is memoized for the rest of
    the session, so the user is never asked twice.
    """

    def __init__(
        self,
        *,
        device: DeviceProbe | None = None,
        geolocation: GeolocationProvider | None = None,
        timezone: TimezoneProvider | None = None,
        timeout: float = DEFAULT_GEOLOCATION_TIMEOUT_SECONDS,
        maximum_age: float = DEFAULT_GEOLOCATION_MAX_AGE_SECONDS,
    ) -> None:
        self._device = device
        self._geolocation = geolocation
        self._timezone = timezone or LocalTimezoneProvider()
        self._timeout = timeout
        self._maximum_age = maximum_age
        self._snapshot: EnrichmentSnapshot | None = None
        self._pending: asyncio.Task[EnrichmentSnapshot] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> EnrichmentCache:
        geolocation: GeolocationProvider = NoGeolocation()
        if settings.has_static_position:
            geolocation = StaticGeolocationProvider(
                settings.latitude or 0.0, settings.longitude or 0.0, settings.accuracy
            )
        return cls(
            device=StaticDeviceProbe(settings.user_agent),
            geolocation=geolocation,
            timeout=settings.geolocation_timeout_seconds,
            maximum_age=settings.geolocation_max_age_seconds,
        )

    @property
    def snapshot(self) -> EnrichmentSnapshot | None:
        return self._snapshot

    def clear(self) -> None:
        self._snapshot = None
        self._pending = None

    async def resolve(self) -> EnrichmentSnapshot:
        if self._snapshot is not None:
            return self._snapshot
        if self._pending is None:
            self._pending = asyncio.get_running_loop().create_task(self._resolve_once())
        pending = self._pending
        try:
            # Shielded so one cancelled caller does not abort resolution for the others.
            return await asyncio.shield(pending)
        except Exception:
            if self._pending is pending:
                self._pending = None
            raise

    async def _resolve_once(self) -> EnrichmentSnapshot:
        device = self._classify_device()
        geo = await self._read_position()
        locale = LocaleInfo(timezone=None if geo is not None else self._read_timezone())
        snapshot = EnrichmentSnapshot(device=device, locale=locale, geo=geo)
        self._snapshot = snapshot
        self._pending = None
        logger.info(
            "enrichment.resolved device={} os={} source={}",
            device.device_class,
            device.os,
            "geolocation" if geo is not None else "timezone",
        )
        return snapshot

    def _classify_device(self) -> DeviceInfo:
        if self._device is None:
            return DeviceInfo()
        return classify_device(self._device.user_agent())

    async def _read_position(self) -> GeoPosition | None:
        if self._geolocation is None:
            return None
        try:
            result = await asyncio.wait_for(self._request_position(self._geolocation), timeout=self._timeout)
            return _parse_position(result)
        except Exception as exc:
            logger.warning("enrichment.geolocation.unavailable error={!r}", exc)
            return None

    async def _request_position(self, provider: GeolocationProvider) -> Mapping[str, Any]:
        # Blocking providers run in a worker thread so the timeout still applies.
        read = functools.partial(provider.current_position, timeout=self._timeout, maximum_age=self._maximum_age)
        if inspect.iscoroutinefunction(provider.current_position):
            return await read()
        result = await asyncio.to_thread(read)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _read_timezone(self) -> str | None:
        try:
            return self._timezone.timezone() or None
        except Exception as exc:
            logger.warning("enrichment.timezone.unavailable error={!r}", exc)
            return None


class StaticDeviceProbe:
    def __init__(self, user_agent: str | None) -> None:
        self._user_agent = user_agent

    def user_agent(self) -> str | None:
        return self._user_agent


class StaticGeolocationProvider:
    """Reports a fixed position, e.g. one configured through settings."""

    def __init__(self, latitude: float, longitude: float, accuracy: float) -> None:
        self._position = {"coords": {"latitude": latitude, "longitude": longitude, "accuracy": accuracy}}

    async def current_position(self, *, timeout: float, maximum_age: float) -> Mapping[str, Any]:
        return self._position


class NoGeolocation:
    async def current_position(self, *, timeout: float, maximum_age: float) -> Mapping[str, Any]:
        raise GeolocationUnavailable("geolocation is not available")


class LocalTimezoneProvider:
    """IANA name of the local timezone, or the offset name when none is known."""

    def timezone(self) -> str:
        configured = os.environ.get("TZ", "").lstrip(":")
        if configured:
            return configured
        tzinfo = datetime.now().astimezone().tzinfo
        key = getattr(tzinfo, "key", None)
        if key:
            return str(key)
        return str(tzinfo)


_default_cache: EnrichmentCache | None = None


def default_cache() -> EnrichmentCache:
    """Get the process-wide enrichment cache."""
    global _default_cache
    if _default_cache is None:
        _default_cache = EnrichmentCache()
    return _default_cache
