from __future__ import annotations

import pytest
from fakes import WINDOWS_CHROME, FakeTransport, FixedTimezone

from nudge.enrichment import EnrichmentCache, NoGeolocation, StaticDeviceProbe


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def cache() -> EnrichmentCache:
    return EnrichmentCache(
        device=StaticDeviceProbe(WINDOWS_CHROME),
        geolocation=NoGeolocation(),
        timezone=FixedTimezone(),
    )
