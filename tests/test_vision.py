"""Tests for tripweave.ai.vision."""

from __future__ import annotations

from tripweave.ai.vision import (
    MAX_TAGS,
    NO_DESCRIPTION,
    VisionPipeline,
    local_description,
    local_tags,
    parse_landmark,
)
from tripweave.core.models import Photo


class TestLocalDerivation:
    def test_description(self, sample_photos) -> None:
        assert local_description(sample_photos[0]) == "Sunset over the Tagus (Lisbon, Portugal)."
        assert local_description(sample_photos[2]) == "Photo taken in Sintra."
        assert local_description(sample_photos[3]) == "Pastel de nata."
        assert local_description(Photo(id=9)) == NO_DESCRIPTION

    def test_tags_from_metadata(self, sample_photos) -> None:
        assert local_tags(sample_photos[0]) == ["travel", "lisbon", "portugal", "2024", "landscape"]

    def test_tags_ignore_invalid_metadata(self, sample_photos) -> None:
        assert local_tags(sample_photos[1]) == ["travel", "alfama"]

    def test_tags_with_context(self, sample_photos) -> None:
        tags = local_tags(sample_photos[1], "Food, Travel, night")
        assert tags == ["travel", "alfama", "food", "night"]

    def test_tags_capped(self) -> None:
        photo = Photo(id=1, location=", ".join(f"place {i}" for i in range(30)))
        assert len(local_tags(photo)) == MAX_TAGS


class TestParsing:
    def test_not_a_landmark(self) -> None:
        assert parse_landmark({"isLandmark": False, "name": "Belém Tower"}) is None
        assert parse_landmark({"isLandmark": "false", "name": "Belém Tower"}) is None

    def test_landmark_needs_a_name(self) -> None:
        assert parse_landmark({"isLandmark": True}) is None

    def test_landmark(self) -> None:
        landmark = parse_landmark(
            {"isLandmark": True, "name": "Belém Tower", "confidence": "0.9", "location": "Lisbon"}
        )
        assert landmark.name == "Belém Tower"
        assert landmark.confidence == 0.9
        assert landmark.type == "landmark"
        assert landmark.historical_info is None


class TestVisionPipeline:
    def test_no_image_falls_back(self, make_client, missing_image_loader, sample_photos, fixed_clock) -> None:
        client = make_client({"description": "unused"})
        pipeline = VisionPipeline(client, image_loader=missing_image_loader, clock=fixed_clock)
        analysis = pipeline.analyze(sample_photos[0])
        assert analysis.description == "Sunset over the Tagus (Lisbon, Portugal)."
        assert analysis.suggested_tags[0] == "travel"
        assert analysis.confidence == 0.5
        assert analysis.analyzed_at == fixed_clock()
        client.generate_json.assert_not_called()

    def test_sub_pixel_metadata_falls_back(self) -> None:
        photo = Photo(id=1, location="Porto", metadata={"width": 3000, "height": 0.5})
        analysis = VisionPipeline(None).analyze(photo)
        assert analysis.suggested_tags == ["travel", "porto"]

    def test_no_loader_falls_back(self, make_client, sample_photos) -> None:
        client = make_client({"description": "unused"})
        assert VisionPipeline(client).describe(sample_photos[2]) == "Photo taken in Sintra."
        client.generate.assert_not_called()

    def test_analyze(self, make_client, image_loader, sample_photos) -> None:
        client = make_client(
            {
                "objects": [{"name": "tram", "confidence": 0.95}, {"name": ""}],
                "landmarks": [{"isLandmark": False, "name": "x"}, {"name": "Alfama"}],
                "food": [{"name": "pastel de nata", "cuisine": "Portuguese"}],
                "people": {"count": "3", "emotions": ["joy"]},
                "mood": "lively",
                "description": " A yellow tram climbs the hill. ",
                "suggestedTags": ["Tram", "tram", "Lisbon"],
            }
        )
        analysis = VisionPipeline(client, image_loader=image_loader).analyze(sample_photos[1])
        assert [o.name for o in analysis.objects] == ["tram"]
        assert [lm.name for lm in analysis.landmarks] == ["Alfama"]
        assert analysis.food[0].cuisine == "Portuguese"
        assert analysis.people.count == 3
        assert analysis.mood == "lively"
        assert analysis.description == "A yellow tram climbs the hill."
        assert analysis.suggested_tags == ["tram", "lisbon"]
        assert client.generate_json.call_args.kwargs["model"] == client.config.ai.vision_model

    def test_landmark_not_identified(self, make_client, image_loader, sample_photos) -> None:
        client = make_client({"isLandmark": False})
        assert VisionPipeline(client, image_loader=image_loader).identify_landmark(sample_photos[0]) is None

    def test_food(self, make_client, image_loader, sample_photos) -> None:
        client = make_client({"foods": [{"name": "Pastel de nata"}, {"cuisine": "none"}, "x"]})
        foods = VisionPipeline(client, image_loader=image_loader).identify_food(sample_photos[3])
        assert [f.name for f in foods] == ["Pastel de nata"]

    def test_food_fallback(self, sample_photos) -> None:
        assert VisionPipeline(None).identify_food(sample_photos[3]) == []

    def test_tags_deduplicated_and_capped(self, make_client, image_loader, sample_photos) -> None:
        tags = ["Beach", "beach"] + [f"tag{i}" for i in range(20)]
        client = make_client({"tags": tags})
        result = VisionPipeline(client, image_loader=image_loader).generate_tags(sample_photos[0], "summer")
        assert result[0] == "beach"
        assert len(result) == MAX_TAGS
        assert "Context: summer" in client.generate_json.call_args.args[0][0]

    def test_empty_tags_fall_back(self, make_client, image_loader, sample_photos) -> None:
        client = make_client({"tags": []})
        result = VisionPipeline(client, image_loader=image_loader).generate_tags(sample_photos[1])
        assert result == ["travel", "alfama"]

    def test_remote_failure(self, failing_client, image_loader, sample_photos) -> None:
        pipeline = VisionPipeline(failing_client, image_loader=image_loader)
        assert pipeline.describe(sample_photos[3]) == "Pastel de nata."
        assert failing_client.generate.call_count == 1
