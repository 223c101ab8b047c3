"""Central Pytest Fixtures for tripweave.

Fixtures included:
- Core data: sample_photos, sample_trip, located_photos, photo_factory
- Clock: fixed_clock (deterministic ids and timestamps)
- AI mocks: make_client (factory), unavailable_client, failing_client
- Images: image_loader (always returns a JPEG part)
- Files: photos_file (JSON export for CLI tests)

No fixture performs a network call.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from tripweave.ai.client import AIClient, AIResponse, AIServerError, StructuredAIResponse
from tripweave.ai.images import ImageLoader
from tripweave.config import AIMode, AppConfig, reset_config
from tripweave.core.models import Photo, Trip

FIXED_NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Helper Functions
# =============================================================================


def make_photo(photo_id: int, **fields: Any) -> Photo:
    """Build a photo with sensible defaults for any field not given."""
    defaults: dict[str, Any] = {
        "url": f"/uploads/IMG_{photo_id:04d}.jpg",
        "filename": f"IMG_{photo_id:04d}.jpg",
        "original_name": f"IMG_{photo_id:04d}.jpg",
    }
    defaults.update(fields)
    return Photo(id=photo_id, **defaults)


def make_photos(count: int) -> list[Photo]:
    return [make_photo(i + 1, caption=f"Moment {i + 1}") for i in range(count)]


# =============================================================================
# Core Data
# =============================================================================


@pytest.fixture
def sample_trip() -> Trip:
    return Trip(
        id=7,
        title="Lisbon in spring",
        description="A week of trams, tiles and custard tarts.",
        location="Lisbon, Portugal",
        start_date=datetime(2024, 4, 2, tzinfo=timezone.utc),
        end_date=datetime(2024, 4, 8, tzinfo=timezone.utc),
    )


@pytest.fixture
def sample_photos() -> list[Photo]:
    """Four photos with a mix of captions, places and metadata."""
    return [
        make_photo(
            1,
            caption="Sunset over the Tagus",
            location="Lisbon, Portugal",
            latitude="38.7077",
            longitude="-9.1365",
            metadata=json.dumps({"width": 4000, "height": 3000, "DateTimeOriginal": "2024:04:02 19:45:00"}),
            trip_id=7,
        ),
        make_photo(
            2,
            caption="Tram 28",
            location="Alfama",
            metadata="not json",
            trip_id=7,
        ),
        make_photo(3, original_name="landscape_sintra.jpg", location="Sintra", trip_id=7),
        make_photo(4, caption="Pastel de nata", trip_id=7),
    ]


@pytest.fixture
def photo_factory():
    """``photo_factory(n)`` builds n captioned photos with ids 1..n."""
    return make_photos


@pytest.fixture
def located_photos(sample_photos) -> list[Photo]:
    return [p for p in sample_photos if p.has_coordinates()]


# =============================================================================
# Clock
# =============================================================================


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


# =============================================================================
# AI Mocks
# =============================================================================


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep real credentials and cached config out of every test."""
    for name in ("GEMINI_API_KEY", "GOOGLE_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("keyring.get_password", lambda service, username: None)
    reset_config()
    yield
    reset_config()
    # CLI tests install handlers on the package logger; undo that for caplog
    package_logger = logging.getLogger("tripweave")
    package_logger.handlers = []
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    config = AppConfig()
    config.paths.uploads_dir = tmp_path
    return config


@pytest.fixture
def make_client(app_config):
    """Factory for an available AIClient mock with canned responses.

    Args:
        json_data: Payload returned by ``generate_json``.
        text: Text returned by ``generate``.
        parse_success: Whether the JSON payload counts as parsed.
    """

    def _make(
        json_data: dict[str, Any] | list[Any] | None = None,
        text: str = "",
        parse_success: bool = True,
    ) -> MagicMock:
        client = MagicMock(spec=AIClient)
        client.is_available.return_value = True
        client.config = app_config
        client.generate_json.return_value = StructuredAIResponse(
            data=json_data if json_data is not None else {},
            raw_text=json.dumps(json_data) if json_data is not None else "",
            model="gemini-1.5-flash",
            parse_success=parse_success,
        )
        client.generate.return_value = AIResponse(text=text, model="gemini-1.5-flash")
        return client

    return _make


@pytest.fixture
def unavailable_client(app_config) -> MagicMock:
    client = MagicMock(spec=AIClient)
    client.is_available.return_value = False
    client.config = app_config
    return client


@pytest.fixture
def failing_client(make_client) -> MagicMock:
    """Available client whose every call fails with a server error."""
    client = make_client()
    client.generate_json.side_effect = AIServerError(status_code=503)
    client.generate.side_effect = AIServerError(status_code=503)
    return client


@pytest.fixture
def disabled_config() -> AppConfig:
    config = AppConfig()
    config.ai.mode = AIMode.DISABLED
    return config


# =============================================================================
# Images
# =============================================================================


@pytest.fixture
def image_loader() -> MagicMock:
    loader = MagicMock(spec=ImageLoader)
    loader.load.return_value = {"mime_type": "image/jpeg", "data": b"\xff\xd8\xff"}
    return loader


@pytest.fixture
def missing_image_loader() -> MagicMock:
    loader = MagicMock(spec=ImageLoader)
    loader.load.return_value = None
    return loader


# =============================================================================
# Files
# =============================================================================


@pytest.fixture
def photos_file(tmp_path: Path, sample_photos, sample_trip) -> Path:
    path = tmp_path / "trip.json"
    path.write_text(
        json.dumps(
            {
                "photos": [p.to_dict() for p in sample_photos],
                "trip": sample_trip.to_dict(),
            }
        ),
        encoding="utf-8",
    )
    return path
