"""Input entities consumed by the generation pipelines.

Photos, trips and albums are owned by the caller's data store; tripweave only
reads them. The models accept the camelCase field names used by the web
client (``originalName``, ``tripId``) as well as snake_case.

All pipeline result objects derive from :class:`WireModel` so they serialise
to the same camelCase shape.
"""

from __future__ import annotations

import json
import math
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from tripweave.core.normalize import as_float, parse_optional_json


class WireModel(BaseModel):
    """Base for everything that crosses the API boundary.

    ``to_dict()`` output can be fed back to ``model_validate`` and compares
    equal to the original object.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe camelCase dictionary."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self, indent: int | None = None) -> str:
        return self.model_dump_json(by_alias=True, indent=indent)


def _coerce_coordinate(v: Any) -> float | None:
    # The store keeps coordinates as decimal strings
    if v is None or v == "":
        return None
    result = as_float(v, float("nan"))
    return None if math.isnan(result) else result


# =============================================================================
# Entities
# =============================================================================


class Photo(WireModel):
    """A photo uploaded to a trip or album.

    Attributes:
        id: Store identity.
        url: Public URL, usually ``/uploads/<filename>``.
        filename: Stored file name.
        original_name: Name of the file as uploaded.
        caption: Free-text caption.
        location: Human-readable place name.
        latitude: GPS latitude, if known.
        longitude: GPS longitude, if known.
        metadata: JSON-encoded EXIF/extra metadata. Invalid JSON is treated
            as absent (see :meth:`metadata_dict`).
        uploaded_at: Upload timestamp.
        contributor_name: Display name of the uploader for shared albums.
        trip_id: Owning trip, if any.
        album_id: Owning album, if any.
    """

    id: int
    url: str = ""
    filename: str = ""
    original_name: str = ""
    caption: str | None = None
    location: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    metadata: str | None = None
    uploaded_at: datetime | None = None
    contributor_name: str | None = None
    trip_id: int | None = None
    album_id: int | None = None

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def coerce_coordinate(cls, v: Any) -> float | None:
        return _coerce_coordinate(v)

    @field_validator("metadata", mode="before")
    @classmethod
    def encode_metadata(cls, v: Any) -> Any:
        """Accept an already-decoded mapping and store it encoded."""
        if isinstance(v, (dict, list)):
            return json.dumps(v)
        return v

    def metadata_dict(self) -> dict[str, Any]:
        """Decoded metadata, or an empty dict when absent or invalid."""
        data = parse_optional_json(self.metadata)
        return data if isinstance(data, dict) else {}

    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def display_name(self) -> str:
        return self.original_name or self.filename or f"photo {self.id}"

    def dimensions(self) -> tuple[int, int] | None:
        """Pixel size from metadata (``width``/``height`` or EXIF names)."""
        meta = self.metadata_dict()
        width = meta.get("width", meta.get("ImageWidth"))
        height = meta.get("height", meta.get("ImageHeight"))
        w = int(as_float(width, 0.0))
        h = int(as_float(height, 0.0))
        if w <= 0 or h <= 0:
            return None
        return w, h

    def taken_at(self) -> str | None:
        """Capture date from EXIF metadata, if recorded."""
        meta = self.metadata_dict()
        for key in ("DateTimeOriginal", "dateTaken", "date_taken", "CreateDate"):
            value = meta.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None


class Trip(WireModel):
    """A trip grouping photos and albums."""

    id: int | None = None
    title: str = ""
    description: str | None = None
    location: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    latitude: float | None = Field(default=None, alias="lat")
    longitude: float | None = Field(default=None, alias="lng")

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def coerce_coordinate(cls, v: Any) -> float | None:
        return _coerce_coordinate(v)

    def date_range(self) -> str:
        """``YYYY-MM-DD to YYYY-MM-DD`` or whichever end is known."""
        start = self.start_date.date().isoformat() if self.start_date else None
        end = self.end_date.date().isoformat() if self.end_date else None
        if start and end:
            return f"{start} to {end}"
        return start or end or ""

    def duration_days(self) -> int | None:
        if self.start_date and self.end_date:
            return max(1, (self.end_date.date() - self.start_date.date()).days + 1)
        return None


class Album(WireModel):
    """A shareable album, optionally attached to a trip."""

    id: int | None = None
    title: str = ""
    description: str | None = None
    trip_id: int | None = None
    is_shared: bool = False
    share_code: str | None = None
    allow_uploads: bool = True
