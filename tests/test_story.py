"""Tests for tripweave.ai.story."""

from __future__ import annotations

import pytest

from tripweave.ai.story import (
    StoryLanguage,
    StoryLength,
    StoryPipeline,
    StoryRequest,
    StorySettings,
    count_words,
    default_title,
    extract_highlights,
    local_story,
    max_tokens_for_length,
    parse_generated_story,
    reading_time_minutes,
    story_photos,
)
from tripweave.core.models import Trip

MODEL_STORY = (
    "Lisbon Light\n"
    "We arrived as the trams rattled up the hill. "
    "The sunset over the Tagus was absolutely breathtaking! "
    "Then we ate."
)


class TestHelpers:
    @pytest.mark.parametrize(
        "length, tokens",
        [("short", 400), (StoryLength.MEDIUM, 800), ("long", 1500), ("epic", 800)],
    )
    def test_max_tokens(self, length, tokens) -> None:
        assert max_tokens_for_length(length) == tokens

    def test_parse_title_line(self) -> None:
        assert parse_generated_story("Title: Lisbon Light\nWe arrived at dawn.", "Trip") == (
            "Lisbon Light",
            "We arrived at dawn.",
        )

    def test_parse_markdown_title(self) -> None:
        title, content = parse_generated_story('## "Seven Days"\n\nBody text.', "Trip")
        assert title == "Seven Days"
        assert content == "Body text."

    def test_parse_sentence_first_line_keeps_fallback(self) -> None:
        text = "We arrived at dawn. It rained."
        assert parse_generated_story(text, "Trip") == ("Trip", text)

    def test_highlights(self) -> None:
        content = (
            "It was an amazing evening by the river. Ok. "
            "The tiles were spectacular. We walked home."
        )
        assert extract_highlights(content) == [
            "It was an amazing evening by the river",
            "The tiles were spectacular",
        ]

    def test_highlights_capped(self) -> None:
        content = " ".join(f"Day {i} was wonderful." for i in range(10))
        assert len(extract_highlights(content)) == 5

    def test_french_highlights(self) -> None:
        assert extract_highlights("Le coucher de soleil était magnifique.") == [
            "Le coucher de soleil était magnifique"
        ]

    @pytest.mark.parametrize("words, minutes", [(0, 0), (1, 1), (200, 1), (201, 2)])
    def test_reading_time(self, words, minutes) -> None:
        assert reading_time_minutes(words) == minutes

    def test_default_title(self, sample_trip) -> None:
        assert default_title(sample_trip) == "Lisbon in spring"
        assert default_title(None, StoryLanguage.FRENCH) == "Mon voyage"
        assert default_title(Trip(title="  ")) == "My trip"

    def test_story_photos(self, photo_factory, sample_photos) -> None:
        assert len(story_photos(photo_factory(10))) == 6
        assert story_photos(sample_photos)[2].caption == "landscape_sintra.jpg"


class TestLocalStory:
    def test_english(self, sample_trip, sample_photos) -> None:
        text = local_story(sample_trip, sample_photos, StorySettings())
        assert text.startswith(
            "This is the story of Lisbon in spring in Lisbon, Portugal, from 2024-04-02 to 2024-04-08."
        )
        assert "It is told through 4 photos." in text
        assert "Sunset over the Tagus - Lisbon, Portugal." in text
        assert text.endswith("Memories worth keeping.")

    def test_french(self, sample_trip, sample_photos) -> None:
        text = local_story(sample_trip, sample_photos, StorySettings(language="french"))
        assert text.startswith("Voici l'histoire de Lisbon in spring à Lisbon, Portugal")
        assert "4 photos" in text

    def test_focus_points(self, sample_trip) -> None:
        settings = StorySettings(focus_points=["food", "trams"])
        assert "Highlights of the trip: food, trams." in local_story(sample_trip, [], settings)


class TestStoryPipeline:
    def test_offline_story(self, sample_trip, sample_photos, fixed_clock) -> None:
        request = StoryRequest(trip=sample_trip, photos=sample_photos)
        story = StoryPipeline(None, clock=fixed_clock).generate(request)
        assert story.id == f"story-{int(fixed_clock().timestamp() * 1000)}"
        assert story.title == "Lisbon in spring"
        assert story.word_count == count_words(story.content)
        assert story.reading_time == 1
        assert story.generated_at == fixed_clock()
        assert [p.id for p in story.photos] == [1, 2, 3, 4]

    def test_zero_photos(self) -> None:
        story = StoryPipeline(None).generate(StoryRequest())
        assert "0 photos" in story.content
        assert story.title == "My trip"
        assert story.photos == []

    def test_photos_excluded(self, sample_photos) -> None:
        request = StoryRequest(photos=sample_photos, settings=StorySettings(include_photos=False))
        assert StoryPipeline(None).generate(request).photos == []

    def test_model_story(self, make_client, sample_trip, sample_photos) -> None:
        client = make_client(text=MODEL_STORY)
        request = StoryRequest(
            trip=sample_trip,
            photos=sample_photos,
            settings=StorySettings(length="short", focus_points=["sunsets"]),
            custom_prompt="Mention the tiles",
        )
        story = StoryPipeline(client).generate(request)
        assert story.title == "Lisbon Light"
        assert story.content.startswith("We arrived")
        assert story.highlights == ["The sunset over the Tagus was absolutely breathtaking"]

        args, kwargs = client.generate.call_args
        assert kwargs["max_output_tokens"] == 400
        assert "Points to highlight: sunsets" in args[0]
        assert "Additional instructions: Mention the tiles" in args[0]
        client.generate_json.assert_not_called()

    def test_title_only_response_uses_local_story(self, make_client, sample_trip) -> None:
        story = StoryPipeline(make_client(text="Just a title")).generate(StoryRequest(trip=sample_trip))
        assert story.title == "Lisbon in spring"
        assert story.content.startswith("This is the story of")

    def test_remote_failure(self, failing_client, sample_trip) -> None:
        story = StoryPipeline(failing_client).generate(StoryRequest(trip=sample_trip))
        assert story.content.startswith("This is the story of Lisbon in spring")

    def test_round_trip(self, sample_trip, sample_photos) -> None:
        story = StoryPipeline(None).generate(StoryRequest(trip=sample_trip, photos=sample_photos))
        assert type(story).model_validate(story.to_dict()) == story


class TestEnhanceAndTitle:
    def test_enhance_without_model(self, sample_photos) -> None:
        assert StoryPipeline(None).enhance("Original.", sample_photos) == "Original."

    def test_enhance_without_photos(self, make_client) -> None:
        client = make_client(text="Changed.")
        assert StoryPipeline(client).enhance("Original.", []) == "Original."
        client.generate.assert_not_called()

    def test_enhance_with_model(self, make_client, sample_photos) -> None:
        client = make_client(text=" Richer story. ")
        assert StoryPipeline(client).enhance("Original.", sample_photos) == "Richer story."

    def test_title_fallback(self, sample_trip) -> None:
        assert StoryPipeline(None).generate_title("Some text", sample_trip) == "Lisbon in spring"
        assert StoryPipeline(None).generate_title("Du texte", language=StoryLanguage.FRENCH) == (
            "Mon voyage"
        )

    def test_title_from_model(self, make_client) -> None:
        client = make_client(text='Title: "Tagus Nights"\nextra line')
        assert StoryPipeline(client).generate_title("We walked by the river.") == "Tagus Nights"

    def test_title_empty_content(self, make_client) -> None:
        client = make_client(text="Ignored")
        assert StoryPipeline(client).generate_title("   ") == "My trip"
        client.generate.assert_not_called()
