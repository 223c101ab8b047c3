"""Travel story generation.

Writes a titled narrative from a trip and its photos in one of five styles
and five moods, at three lengths, in English or French. The result carries
word count, reading time (200 words per minute) and up to five highlight
sentences picked from the text.

Without a model the story is assembled from the trip details and photo
captions, so the result always has the same fields.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Sequence

from pydantic import Field

from tripweave.ai.pipeline import GenerationPipeline, Invocation, PromptRequest
from tripweave.ai.prompts import (
    MAX_DETAIL_PHOTOS,
    STORY_ENHANCEMENT_PROMPT,
    STORY_GENERATION_PROMPT,
    STORY_TITLE_PROMPT,
    describe_photos,
    describe_trip,
)
from tripweave.core.models import Photo, Trip, WireModel

logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================


class StoryStyle(str, Enum):
    NARRATIVE = "narrative"
    DIARY = "diary"
    BLOG = "blog"
    SOCIAL = "social"
    FORMAL = "formal"


class StoryMood(str, Enum):
    ADVENTUROUS = "adventurous"
    ROMANTIC = "romantic"
    PEACEFUL = "peaceful"
    EXCITING = "exciting"
    NOSTALGIC = "nostalgic"


class StoryLength(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


class StoryLanguage(str, Enum):
    ENGLISH = "english"
    FRENCH = "french"


# =============================================================================
# Constants
# =============================================================================


STYLE_DESCRIPTIONS: dict[StoryStyle, str] = {
    StoryStyle.NARRATIVE: "a flowing, engaging narrative that reads like a story",
    StoryStyle.DIARY: "a personal and authentic diary entry",
    StoryStyle.BLOG: "an informative, well-structured blog article",
    StoryStyle.SOCIAL: "a short, catchy social media post",
    StoryStyle.FORMAL: "a professional and detailed travel report",
}

MOOD_DESCRIPTIONS: dict[StoryMood, str] = {
    StoryMood.ADVENTUROUS: "adventurous and dynamic",
    StoryMood.ROMANTIC: "romantic and warm",
    StoryMood.PEACEFUL: "peaceful and contemplative",
    StoryMood.EXCITING: "exciting and energetic",
    StoryMood.NOSTALGIC: "nostalgic and emotional",
}

WORD_RANGES: dict[StoryLength, str] = {
    StoryLength.SHORT: "200-300",
    StoryLength.MEDIUM: "400-600",
    StoryLength.LONG: "800-1200",
}

MAX_TOKENS: dict[StoryLength, int] = {
    StoryLength.SHORT: 400,
    StoryLength.MEDIUM: 800,
    StoryLength.LONG: 1500,
}

WORDS_PER_MINUTE = 200
MAX_HIGHLIGHTS = 5
MAX_STORY_PHOTOS = 6
TITLE_EXCERPT_CHARS = 500

EMOTIONAL_WORDS = re.compile(
    r"\b(magnifique|incroyable|extraordinaire|merveilleux|inoubliable|fascinant"
    r"|impressionnant|spectaculaire|magnificent|incredible|extraordinary|wonderful"
    r"|unforgettable|fascinating|impressive|spectacular|breathtaking|amazing)\b",
    re.IGNORECASE,
)
_SENTENCE_END = re.compile(r"[.!?]+")
_TITLE_PREFIX = re.compile(r"^(Titre:\s*|Title:\s*)", re.IGNORECASE)

# Text used when the story is assembled locally
LOCAL_TEXT: dict[StoryLanguage, dict[str, str]] = {
    StoryLanguage.ENGLISH: {
        "default_title": "My trip",
        "opening": "This is the story of {title}",
        "destination": " in {location}",
        "dates": ", from {dates}",
        "photos": "It is told through {count} photos.",
        "focus": "Highlights of the trip: {points}.",
        "closing": "Memories worth keeping.",
    },
    StoryLanguage.FRENCH: {
        "default_title": "Mon voyage",
        "opening": "Voici l'histoire de {title}",
        "destination": " à {location}",
        "dates": ", du {dates}",
        "photos": "Elle est racontée à travers {count} photos.",
        "focus": "Les temps forts du voyage : {points}.",
        "closing": "Des souvenirs à garder précieusement.",
    },
}


# =============================================================================
# Models
# =============================================================================


class StorySettings(WireModel):
    style: StoryStyle = StoryStyle.NARRATIVE
    mood: StoryMood = StoryMood.ADVENTUROUS
    length: StoryLength = StoryLength.MEDIUM
    include_photos: bool = True
    include_map: bool = False
    include_stats: bool = False
    focus_points: list[str] = Field(default_factory=list)
    personal_touch: bool = True
    language: StoryLanguage = StoryLanguage.ENGLISH


class StoryRequest(WireModel):
    trip: Trip | None = None
    photos: list[Photo] = Field(default_factory=list)
    settings: StorySettings = Field(default_factory=StorySettings)
    custom_prompt: str | None = None


class StoryPhoto(WireModel):
    id: int
    url: str
    caption: str
    location: str | None = None


class TravelStory(WireModel):
    id: str
    title: str
    content: str
    style: StoryStyle
    mood: StoryMood
    length: StoryLength
    language: StoryLanguage = StoryLanguage.ENGLISH
    include_photos: bool
    include_map: bool
    include_stats: bool
    generated_at: datetime
    word_count: int
    reading_time: int
    highlights: list[str] = Field(default_factory=list)
    photos: list[StoryPhoto] = Field(default_factory=list)


# =============================================================================
# Pure Helpers
# =============================================================================


def max_tokens_for_length(length: StoryLength | str) -> int:
    try:
        return MAX_TOKENS[StoryLength(getattr(length, "value", length))]
    except ValueError:
        return 800


def default_title(trip: Trip | None, language: StoryLanguage = StoryLanguage.ENGLISH) -> str:
    if trip is not None and trip.title.strip():
        return trip.title.strip()
    return LOCAL_TEXT[language]["default_title"]


def parse_generated_story(text: str, fallback_title: str) -> tuple[str, str]:
    """Split model output into ``(title, content)``.

    The first line is taken as the title when it is short (under 100
    characters) and contains no full stop.

    Example:
        >>> parse_generated_story("Title: Lisbon Light\\nWe arrived at dawn.", "Trip")
        ('Lisbon Light', 'We arrived at dawn.')
    """
    text = text.strip()
    lines = text.split("\n")
    title = fallback_title
    content = text

    first = lines[0].strip().strip("#*").strip() if lines else ""
    if first and len(first) < 100 and "." not in first:
        title = first
        content = "\n".join(lines[1:]).strip()

    title = _TITLE_PREFIX.sub("", title).strip().strip('"').strip() or fallback_title
    return title, content


def extract_highlights(content: str) -> list[str]:
    """Up to five short sentences containing an emotional word."""
    highlights = []
    for sentence in _SENTENCE_END.split(content):
        sentence = sentence.strip()
        if len(sentence) <= 10 or len(sentence) >= 150:
            continue
        if EMOTIONAL_WORDS.search(sentence):
            highlights.append(sentence)
    return highlights[:MAX_HIGHLIGHTS]


def count_words(content: str) -> int:
    return len(content.split())


def reading_time_minutes(word_count: int) -> int:
    return math.ceil(word_count / WORDS_PER_MINUTE)


def story_photos(photos: Sequence[Photo]) -> list[StoryPhoto]:
    return [
        StoryPhoto(
            id=p.id,
            url=p.url,
            caption=p.caption or p.original_name or "",
            location=p.location,
        )
        for p in photos[:MAX_STORY_PHOTOS]
    ]


def local_story(
    trip: Trip | None,
    photos: Sequence[Photo],
    settings: StorySettings,
) -> str:
    """Plain story assembled from trip details and photo captions."""
    text = LOCAL_TEXT[settings.language]
    title = default_title(trip, settings.language)

    opening = text["opening"].format(title=title)
    if trip is not None and trip.location:
        opening += text["destination"].format(location=trip.location)
    if trip is not None and trip.date_range():
        opening += text["dates"].format(dates=trip.date_range())
    paragraphs = [f"{opening}."]
    if trip is not None and trip.description:
        paragraphs[0] += f" {trip.description.strip()}"

    moments = [text["photos"].format(count=len(photos))]
    for photo in photos[:MAX_DETAIL_PHOTOS]:
        pieces = [s.strip() for s in (photo.caption, photo.location) if s and s.strip()]
        if pieces:
            moments.append(" - ".join(pieces).rstrip(".") + ".")
    paragraphs.append(" ".join(moments))

    if settings.focus_points:
        paragraphs.append(text["focus"].format(points=", ".join(settings.focus_points)))
    paragraphs.append(text["closing"])
    return "\n\n".join(paragraphs)


# =============================================================================
# Pipeline
# =============================================================================


class StoryPipeline(GenerationPipeline):
    """Write travel stories."""

    name = "story"

    def generate(self, request: StoryRequest) -> TravelStory:
        settings = request.settings
        fallback_title = default_title(request.trip, settings.language)

        def assemble() -> PromptRequest:
            prompt = self.build_request(
                STORY_GENERATION_PROMPT,
                language=settings.language.value.capitalize(),
                style_description=STYLE_DESCRIPTIONS[settings.style],
                mood_description=MOOD_DESCRIPTIONS[settings.mood],
                word_range=WORD_RANGES[settings.length],
                voice="personal and authentic" if settings.personal_touch else "objective and informative",
                trip_context=describe_trip(request.trip),
                photo_count=len(request.photos),
                photo_list=describe_photos(request.photos, limit=MAX_DETAIL_PHOTOS),
                focus_points=(
                    f"\nPoints to highlight: {', '.join(settings.focus_points)}"
                    if settings.focus_points
                    else ""
                ),
                custom_request=(
                    f"\nAdditional instructions: {request.custom_prompt}" if request.custom_prompt else ""
                ),
            )
            return replace(prompt, max_output_tokens=max_tokens_for_length(settings.length))

        def parse(invocation: Invocation) -> tuple[str, str]:
            title, content = parse_generated_story(invocation.text, fallback_title)
            if not content:
                return fallback_title, local_story(request.trip, request.photos, settings)
            return title, content

        def fallback() -> tuple[str, str]:
            return fallback_title, local_story(request.trip, request.photos, settings)

        title, content = self.run_step("generate", assemble, parse, fallback)
        words = count_words(content)
        return TravelStory(
            id=f"story-{self.timestamp_ms()}",
            title=title,
            content=content,
            style=settings.style,
            mood=settings.mood,
            length=settings.length,
            language=settings.language,
            include_photos=settings.include_photos,
            include_map=settings.include_map,
            include_stats=settings.include_stats,
            generated_at=self.now(),
            word_count=words,
            reading_time=reading_time_minutes(words),
            highlights=extract_highlights(content),
            photos=story_photos(request.photos) if settings.include_photos else [],
        )

    def enhance(self, story_text: str, photos: Sequence[Photo]) -> str:
        """Weave photo details into an existing story.

        Returns the story unchanged when there are no photos or no model.
        """
        if not photos:
            return story_text

        def assemble() -> PromptRequest:
            return self.build_request(
                STORY_ENHANCEMENT_PROMPT,
                story=story_text,
                photo_list=describe_photos(photos, limit=5, numbered=False),
            )

        def parse(invocation: Invocation) -> str:
            return invocation.text.strip() or story_text

        return self.run_step("enhance", assemble, parse, lambda: story_text)

    def generate_title(
        self,
        content: str,
        trip: Trip | None = None,
        language: StoryLanguage = StoryLanguage.ENGLISH,
    ) -> str:
        fallback_title = default_title(trip, language)

        def assemble() -> PromptRequest | None:
            if not content.strip():
                return None
            return self.build_request(
                STORY_TITLE_PROMPT,
                language=language.value.capitalize(),
                excerpt=content[:TITLE_EXCERPT_CHARS],
            )

        def parse(invocation: Invocation) -> str:
            lines = invocation.text.strip().splitlines()
            title = _TITLE_PREFIX.sub("", lines[0].strip()) if lines else ""
            return title.strip().strip('"').strip() or fallback_title

        return self.run_step("title", assemble, parse, lambda: fallback_title)
