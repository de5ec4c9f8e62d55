"""
Shared test fixtures.

The Google Maps endpoints are served by ``httpx.MockTransport`` so tests run
without network access or an API key.  SQL storage uses a throw-away SQLite
file via aiosqlite.
"""

from __future__ import annotations

from typing import Any, AsyncGenerator

import httpx
import pytest
import pytest_asyncio

from routeme.app import NavigationShell, create_shell
from routeme.config import Settings
from routeme.domain.enums import StorageBackend
from routeme.infrastructure.maps_client import GoogleMapsClient
from routeme.infrastructure.repositories import SearchHistoryRepository
from routeme.infrastructure.storage import InMemoryStorage, SqlStorage

# Google's reference example: (38.5, -120.2), (40.7, -120.95), (43.252, -126.453)
REFERENCE_POLYLINE = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"


def directions_payload(
    distance_m: float = 400,
    duration_s: float = 4500,
    polyline: str = REFERENCE_POLYLINE,
    status: str = "OK",
) -> dict[str, Any]:
    return {
        "status": status,
        "routes": [
            {
                "legs": [
                    {
                        "distance": {"text": "0.4 km", "value": distance_m},
                        "duration": {"text": "1 hour 15 mins", "value": duration_s},
                        "steps": [
                            {
                                "html_instructions": "Head <b>north</b> on <div>Main St</div>",
                                "distance": {"text": "0.2 km", "value": 200},
                                "duration": {"text": "1 min", "value": 60},
                            },
                            {
                                "html_instructions": "Turn <b>left</b>",
                                "distance": {"text": "0.2 km", "value": 200},
                                "duration": {"text": "1 min", "value": 60},
                            },
                        ],
                    }
                ],
                "overview_polyline": {"points": polyline},
            }
        ],
    }


class FakeMapsService:
    """Routes requests by endpoint suffix to canned (status_code, json) replies."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.replies: dict[str, tuple[int, dict]] = {
            "/directions/json": (200, directions_payload()),
            "/place/autocomplete/json": (
                200,
                {
                    "status": "OK",
                    "predictions": [
                        {
                            "place_id": "place-1",
                            "description": "Maerua Mall, Windhoek",
                            "structured_formatting": {
                                "main_text": "Maerua Mall",
                                "secondary_text": "Windhoek",
                            },
                        }
                    ],
                },
            ),
            "/place/details/json": (
                200,
                {
                    "status": "OK",
                    "result": {
                        "name": "Maerua Mall",
                        "formatted_address": "Jan Jonker Rd, Windhoek",
                        "geometry": {"location": {"lat": -22.5836, "lng": 17.0918}},
                    },
                },
            ),
            "/geocode/json": (
                200,
                {
                    "status": "OK",
                    "results": [{"formatted_address": "Independence Ave, Windhoek"}],
                },
            ),
        }

    def requests_to(self, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for suffix, (status_code, body) in self.replies.items():
            if request.url.path.endswith(suffix):
                return httpx.Response(status_code, json=body)
        return httpx.Response(404, json={"status": "NOT_FOUND"})


def make_maps_client(service: FakeMapsService) -> GoogleMapsClient:
    http = httpx.AsyncClient(
        base_url="https://maps.test/maps/api",
        transport=httpx.MockTransport(service.handler),
    )
    return GoogleMapsClient("test-key", http_client=http)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        google_maps_api_key="test-key",
        storage_backend=StorageBackend.MEMORY,
        history_cap=50,
    )


@pytest.fixture
def maps_service() -> FakeMapsService:
    return FakeMapsService()


@pytest_asyncio.fixture
async def maps_client(maps_service) -> AsyncGenerator[GoogleMapsClient, None]:
    client = make_maps_client(maps_service)
    yield client
    await client.aclose()


@pytest.fixture
def history() -> SearchHistoryRepository:
    return SearchHistoryRepository(InMemoryStorage(), cap=50)


@pytest_asyncio.fixture
async def sql_storage(tmp_path) -> AsyncGenerator[SqlStorage, None]:
    storage = SqlStorage(f"sqlite+aiosqlite:///{tmp_path / 'routeme.db'}")
    yield storage
    await storage.close()


@pytest_asyncio.fixture
async def shell(test_settings, maps_service) -> AsyncGenerator[NavigationShell, None]:
    nav = create_shell(
        test_settings,
        storage=InMemoryStorage(),
        maps=make_maps_client(maps_service),
    )
    yield nav
    nav.stop_tracking()
    await nav.monitor.stop()
    await nav.maps.aclose()
