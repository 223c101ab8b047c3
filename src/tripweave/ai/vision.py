"""Photo content analysis.

Objects, landmarks, food, people, mood, a one-line description and search
tags for a single photo. Every step needs the image itself; when the image
or the model is unavailable, the description and tags are derived from the
photo's caption, location and EXIF metadata instead.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Callable

from pydantic import Field

from tripweave.ai.pipeline import GenerationPipeline, Invocation, PromptRequest
from tripweave.ai.prompts import (
    FOOD_PROMPT,
    IMAGE_DESCRIPTION_PROMPT,
    LANDMARK_PROMPT,
    TRAVEL_TAGS_PROMPT,
    VISION_ANALYSIS_PROMPT,
    PromptTemplate,
    describe_photo_context,
)
from tripweave.core.models import Photo, WireModel
from tripweave.core.normalize import (
    as_bool,
    as_dict,
    as_dict_list,
    as_float,
    as_int,
    as_str,
    as_str_list,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.5
NO_DESCRIPTION = "No description available"
MAX_TAGS = 15

_YEAR = re.compile(r"^(\d{4})")


# =============================================================================
# Models
# =============================================================================


class ObjectDetection(WireModel):
    name: str
    category: str = "object"
    confidence: float = DEFAULT_CONFIDENCE
    description: str | None = None


class LandmarkInfo(WireModel):
    name: str
    type: str = "landmark"
    location: str | None = None
    historical_info: str | None = None
    confidence: float = DEFAULT_CONFIDENCE


class FoodInfo(WireModel):
    name: str
    cuisine: str = ""
    description: str | None = None
    confidence: float = DEFAULT_CONFIDENCE


class PeopleInfo(WireModel):
    count: int = 0
    activities: list[str] = Field(default_factory=list)
    emotions: list[str] = Field(default_factory=list)


class VisionAnalysis(WireModel):
    photo_id: int
    objects: list[ObjectDetection] = Field(default_factory=list)
    landmarks: list[LandmarkInfo] = Field(default_factory=list)
    food: list[FoodInfo] = Field(default_factory=list)
    people: PeopleInfo = Field(default_factory=PeopleInfo)
    activities: list[str] = Field(default_factory=list)
    mood: str = "neutral"
    description: str = NO_DESCRIPTION
    suggested_tags: list[str] = Field(default_factory=list)
    confidence: float = DEFAULT_CONFIDENCE
    analyzed_at: datetime


# =============================================================================
# Local Derivation
# =============================================================================


def local_description(photo: Photo) -> str:
    """Caption and place of a photo as one sentence."""
    caption = (photo.caption or "").strip().rstrip(".")
    location = (photo.location or "").strip()
    if caption and location:
        return f"{caption} ({location})."
    if caption:
        return f"{caption}."
    if location:
        return f"Photo taken in {location}."
    return NO_DESCRIPTION


def local_tags(photo: Photo, context: str | None = None) -> list[str]:
    """Tags from location parts, capture year, orientation and context."""
    tags = ["travel"]
    if photo.location:
        tags.extend(part.strip().lower() for part in photo.location.split(","))

    taken = photo.taken_at()
    year = _YEAR.match(taken) if taken else None
    if year:
        tags.append(year.group(1))

    dims = photo.dimensions()
    if dims:
        ratio = dims[0] / dims[1]
        tags.append("panorama" if ratio > 2 else "landscape" if ratio >= 1 else "portrait")

    if context:
        tags.extend(part.strip().lower() for part in context.split(","))

    return _dedupe(tags)


def _dedupe(tags: list[str]) -> list[str]:
    seen: list[str] = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen[:MAX_TAGS]


# =============================================================================
# Response Parsing
# =============================================================================


def parse_landmark(data: dict[str, Any]) -> LandmarkInfo | None:
    """None when the model says there is no recognisable landmark."""
    if not as_bool(data.get("isLandmark", data.get("identified")), True):
        return None
    name = as_str(data.get("name")).strip()
    if not name:
        return None
    return LandmarkInfo(
        name=name,
        type=as_str(data.get("type")) or "landmark",
        location=as_str(data.get("location")) or None,
        historical_info=as_str(data.get("historicalInfo")) or None,
        confidence=as_float(data.get("confidence"), DEFAULT_CONFIDENCE, 0.0, 1.0),
    )


def parse_food(raw: dict[str, Any]) -> FoodInfo | None:
    name = as_str(raw.get("name")).strip()
    if not name:
        return None
    return FoodInfo(
        name=name,
        cuisine=as_str(raw.get("cuisine")),
        description=as_str(raw.get("description")) or None,
        confidence=as_float(raw.get("confidence"), DEFAULT_CONFIDENCE, 0.0, 1.0),
    )


def parse_vision(data: dict[str, Any], photo: Photo, analyzed_at: datetime) -> VisionAnalysis:
    objects = [
        ObjectDetection(
            name=as_str(o.get("name")).strip(),
            category=as_str(o.get("category")) or "object",
            confidence=as_float(o.get("confidence"), DEFAULT_CONFIDENCE, 0.0, 1.0),
            description=as_str(o.get("description")) or None,
        )
        for o in as_dict_list(data.get("objects"))
        if as_str(o.get("name")).strip()
    ]
    landmarks = [lm for lm in map(parse_landmark, as_dict_list(data.get("landmarks"))) if lm]
    food = [f for f in map(parse_food, as_dict_list(data.get("food"))) if f]
    people = as_dict(data.get("people"))

    return VisionAnalysis(
        photo_id=photo.id,
        objects=objects,
        landmarks=landmarks,
        food=food,
        people=PeopleInfo(
            count=as_int(people.get("count"), 0, 0),
            activities=as_str_list(people.get("activities")),
            emotions=as_str_list(people.get("emotions")),
        ),
        activities=as_str_list(data.get("activities")),
        mood=as_str(data.get("mood")) or "neutral",
        description=as_str(data.get("description")).strip() or NO_DESCRIPTION,
        suggested_tags=_dedupe([t.lower() for t in as_str_list(data.get("suggestedTags"))]),
        confidence=as_float(data.get("confidence"), DEFAULT_CONFIDENCE, 0.0, 1.0),
        analyzed_at=analyzed_at,
    )


# =============================================================================
# Pipeline
# =============================================================================


class VisionPipeline(GenerationPipeline):
    """Analyse what a photo shows."""

    name = "vision"

    def analyze(self, photo: Photo) -> VisionAnalysis:
        def fallback() -> VisionAnalysis:
            return VisionAnalysis(
                photo_id=photo.id,
                description=local_description(photo),
                suggested_tags=local_tags(photo),
                analyzed_at=self.now(),
            )

        return self.run_step(
            "analyze",
            self._assembler(VISION_ANALYSIS_PROMPT, photo),
            lambda inv: parse_vision(inv.payload(), photo, self.now()),
            fallback,
        )

    def identify_landmark(self, photo: Photo) -> LandmarkInfo | None:
        return self.run_step(
            "landmark",
            self._assembler(LANDMARK_PROMPT, photo),
            lambda inv: parse_landmark(inv.payload()),
            lambda: None,
        )

    def identify_food(self, photo: Photo) -> list[FoodInfo]:
        def parse(invocation: Invocation) -> list[FoodInfo]:
            foods = as_dict_list(invocation.payload().get("foods"))
            return [f for f in map(parse_food, foods) if f]

        return self.run_step("food", self._assembler(FOOD_PROMPT, photo), parse, list)

    def generate_tags(self, photo: Photo, context: str | None = None) -> list[str]:
        """Search tags, optionally steered by free-text context."""

        def parse(invocation: Invocation) -> list[str]:
            tags = [t.lower() for t in as_str_list(invocation.payload().get("tags"))]
            return _dedupe(tags) or local_tags(photo, context)

        return self.run_step(
            "tags",
            self._assembler(
                TRAVEL_TAGS_PROMPT,
                photo,
                extra_context=f"Context: {context}" if context else "",
            ),
            parse,
            lambda: local_tags(photo, context),
        )

    def describe(self, photo: Photo) -> str:
        def parse(invocation: Invocation) -> str:
            return invocation.text.strip() or local_description(photo)

        return self.run_step(
            "describe",
            self._assembler(IMAGE_DESCRIPTION_PROMPT, photo),
            parse,
            lambda: local_description(photo),
        )

    def _assembler(
        self,
        template: PromptTemplate,
        photo: Photo,
        **extra: Any,
    ) -> Callable[[], PromptRequest | None]:
        """Assemble step that attaches the image, or skips the call without one."""

        def assemble() -> PromptRequest | None:
            image = self.load_image(photo)
            if image is None:
                logger.debug(f"{self.name}: no image for photo {photo.id}")
                return None
            return self.build_request(
                template,
                images=[image],
                photo_context=describe_photo_context(photo),
                **extra,
            )

        return assemble
