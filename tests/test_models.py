"""Unit tests for the input entities in tripweave.core.models."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from tripweave.core.models import Album, Photo, Trip


class TestPhoto:
    """Photo parsing and derived values."""

    def test_accepts_camel_case(self) -> None:
        """Field names from the web client are accepted."""
        photo = Photo.model_validate(
            {"id": 3, "originalName": "beach.jpg", "tripId": 9, "contributorName": "Sam"}
        )
        assert photo.original_name == "beach.jpg"
        assert photo.trip_id == 9
        assert photo.contributor_name == "Sam"

    def test_requires_id(self) -> None:
        with pytest.raises(ValidationError):
            Photo.model_validate({"url": "/uploads/a.jpg"})

    @pytest.mark.parametrize(
        "raw, expected",
        [("38.7077", 38.7077), (12, 12.0), ("", None), (None, None), ("north", None)],
    )
    def test_coordinates_coerced(self, raw, expected) -> None:
        assert Photo(id=1, latitude=raw).latitude == expected

    def test_has_coordinates(self) -> None:
        assert Photo(id=1, latitude=1, longitude=2).has_coordinates() is True
        assert Photo(id=1, latitude=1).has_coordinates() is False

    def test_invalid_metadata_is_absent(self) -> None:
        """Unparseable metadata reads as empty, never raises."""
        photo = Photo(id=1, metadata="{not json")
        assert photo.metadata_dict() == {}
        assert photo.dimensions() is None
        assert photo.taken_at() is None

    def test_metadata_mapping_is_encoded(self) -> None:
        photo = Photo(id=1, metadata={"ImageWidth": 6000, "ImageHeight": 4000})
        assert json.loads(photo.metadata) == {"ImageWidth": 6000, "ImageHeight": 4000}
        assert photo.dimensions() == (6000, 4000)

    @pytest.mark.parametrize(
        "meta",
        [{"width": 3000, "height": 0.5}, {"width": 0.9, "height": 2000}, {"width": -1, "height": 10}],
    )
    def test_sub_pixel_dimensions_are_absent(self, meta) -> None:
        assert Photo(id=1, metadata=meta).dimensions() is None

    def test_taken_at(self) -> None:
        photo = Photo(id=1, metadata=json.dumps({"DateTimeOriginal": "2023:08:14 10:02:11"}))
        assert photo.taken_at() == "2023:08:14 10:02:11"

    def test_display_name_fallbacks(self) -> None:
        assert Photo(id=1, original_name="a.jpg", filename="b.jpg").display_name() == "a.jpg"
        assert Photo(id=1, filename="b.jpg").display_name() == "b.jpg"
        assert Photo(id=5).display_name() == "photo 5"

    def test_round_trip(self, sample_photos) -> None:
        for photo in sample_photos:
            assert Photo.model_validate(photo.to_dict()) == photo

    def test_to_dict_is_camel_case(self, sample_photos) -> None:
        data = sample_photos[0].to_dict()
        assert "originalName" in data
        assert "original_name" not in data


class TestTrip:
    def test_date_range(self, sample_trip) -> None:
        assert sample_trip.date_range() == "2024-04-02 to 2024-04-08"
        assert sample_trip.duration_days() == 7

    def test_partial_dates(self) -> None:
        trip = Trip(title="Weekend", start_date=datetime(2024, 1, 6, tzinfo=timezone.utc))
        assert trip.date_range() == "2024-01-06"
        assert trip.duration_days() is None

    def test_lat_lng_aliases(self) -> None:
        trip = Trip.model_validate({"title": "Porto", "lat": "41.15", "lng": "-8.61"})
        assert trip.latitude == 41.15
        assert trip.longitude == -8.61
        assert trip.to_dict()["lat"] == 41.15

    def test_round_trip(self, sample_trip) -> None:
        assert Trip.model_validate(json.loads(sample_trip.to_json())) == sample_trip


class TestAlbum:
    def test_defaults(self) -> None:
        album = Album.model_validate({"title": "Friends", "tripId": 2, "isShared": True})
        assert album.trip_id == 2
        assert album.is_shared is True
        assert album.allow_uploads is True
