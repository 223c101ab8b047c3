"""Face analysis for shared albums.

:class:`FacePipeline` finds faces, reads facial landmarks, compares two faces
and writes a short description of one face. Every step needs the image
itself. Without it (or without a model) detection reports no faces, and a
comparison falls back to the landmark distance of the two faces the caller
already has.

The group helpers (:func:`calculate_face_similarity`,
:func:`determine_group_dynamics`) are pure and work on any detected faces.
No step infers gender, ethnicity or identity.

Example:
    >>> dynamics = determine_group_dynamics(analysis.faces)
    >>> dynamics.group_size
    <GroupSize.COUPLE: 'couple'>
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from enum import Enum
from typing import Any, Sequence

from pydantic import Field

from tripweave.ai.pipeline import GenerationPipeline, Invocation, PromptRequest
from tripweave.ai.prompts import (
    FACE_COMPARISON_PROMPT,
    FACE_DESCRIPTION_PROMPT,
    FACE_DETECTION_PROMPT,
    FACE_LANDMARKS_PROMPT,
    describe_photo_context,
)
from tripweave.core.models import Photo, WireModel
from tripweave.core.normalize import as_bool, as_dict_list, as_enum, as_float, as_int, as_str

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.8
SAME_PERSON_THRESHOLD = 0.75
NO_FACE_DESCRIPTION = "Description not available"

# Landmarks compared by calculate_face_similarity
COMPARED_LANDMARKS = ("left_eye", "right_eye", "nose", "mouth")

_HAPPY = {"happy", "joyful"}
_SAD = {"sad"}
_NEUTRAL = {"neutral"}


# =============================================================================
# Enums and Models
# =============================================================================


class LandmarkType(str, Enum):
    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    NOSE = "nose"
    MOUTH = "mouth"
    LEFT_EYEBROW = "left_eyebrow"
    RIGHT_EYEBROW = "right_eyebrow"


class GroupSize(str, Enum):
    SOLO = "solo"
    COUPLE = "couple"
    SMALL_GROUP = "small_group"
    LARGE_GROUP = "large_group"


class GroupMood(str, Enum):
    HAPPY = "happy"
    SERIOUS = "serious"
    NEUTRAL = "neutral"
    MIXED = "mixed"


class Setting(str, Enum):
    INDOOR = "indoor"
    OUTDOOR = "outdoor"
    UNKNOWN = "unknown"


class FaceLandmark(WireModel):
    """A facial point in fractions (0-1) of the image size."""

    type: LandmarkType
    x: float
    y: float


class DetectedFace(WireModel):
    """One face. The box is in fractions (0-1) of the image size."""

    id: str
    x: float = 0.0
    y: float = 0.0
    width: float = 1.0
    height: float = 1.0
    confidence: float = DEFAULT_CONFIDENCE
    age: int | None = None
    emotion: str | None = None
    landmarks: list[FaceLandmark] = Field(default_factory=list)

    def box_text(self) -> str:
        return f"x={self.x:.2f}, y={self.y:.2f}, width={self.width:.2f}, height={self.height:.2f}"


class FaceAnalysis(WireModel):
    photo_id: int
    faces: list[DetectedFace] = Field(default_factory=list)
    total_faces: int = 0
    unique_people: int = 0
    group_size: GroupSize = GroupSize.SOLO
    mood: GroupMood = GroupMood.NEUTRAL
    setting: Setting = Setting.UNKNOWN
    confidence: float = DEFAULT_CONFIDENCE
    analyzed_at: datetime


class FaceComparison(WireModel):
    similarity: float = 0.0
    is_same_person: bool = False
    confidence: float = 0.0


class GroupDynamics(WireModel):
    group_size: GroupSize
    mood: GroupMood
    age_groups: list[str] = Field(default_factory=list)


# =============================================================================
# Local Helpers
# =============================================================================


def group_size_for(count: int) -> GroupSize:
    if count <= 1:
        return GroupSize.SOLO
    if count == 2:
        return GroupSize.COUPLE
    if count <= 6:
        return GroupSize.SMALL_GROUP
    return GroupSize.LARGE_GROUP


def calculate_face_similarity(
    first: Sequence[FaceLandmark],
    second: Sequence[FaceLandmark],
) -> float:
    """Similarity in [0, 1] from the mean distance of matching landmarks.

    Only eyes, nose and mouth are compared. A mean distance of 0.1 (a tenth
    of the image) or more counts as no similarity at all.
    """
    total = 0.0
    compared = 0
    for kind in COMPARED_LANDMARKS:
        a = next((p for p in first if p.type == kind), None)
        b = next((p for p in second if p.type == kind), None)
        if a is None or b is None:
            continue
        total += math.hypot(a.x - b.x, a.y - b.y)
        compared += 1

    if compared == 0:
        return 0.0
    return max(0.0, 1.0 - (total / compared) * 10)


def group_mood(faces: Sequence[DetectedFace]) -> GroupMood:
    emotions = [f.emotion.lower() for f in faces if f.emotion]
    if not emotions:
        return GroupMood.NEUTRAL

    n = len(emotions)
    if sum(e in _HAPPY for e in emotions) > n * 0.6:
        return GroupMood.HAPPY
    if sum(e in _SAD for e in emotions) > n * 0.4:
        return GroupMood.SERIOUS
    if sum(e in _NEUTRAL for e in emotions) > n * 0.6:
        return GroupMood.NEUTRAL
    return GroupMood.MIXED


def age_groups(faces: Sequence[DetectedFace]) -> list[str]:
    ages = [f.age for f in faces if f.age is not None]
    groups = []
    if any(age < 18 for age in ages):
        groups.append("children")
    if any(18 <= age < 35 for age in ages):
        groups.append("young_adults")
    if any(35 <= age < 60 for age in ages):
        groups.append("adults")
    if any(age >= 60 for age in ages):
        groups.append("seniors")
    return groups


def determine_group_dynamics(faces: Sequence[DetectedFace]) -> GroupDynamics:
    """Group size, overall mood and age brackets of the people in a photo."""
    return GroupDynamics(
        group_size=group_size_for(len(faces)),
        mood=group_mood(faces),
        age_groups=age_groups(faces),
    )


# =============================================================================
# Response Parsing
# =============================================================================


def parse_landmarks(value: Any) -> list[FaceLandmark]:
    """Known landmark types only; coordinates are clamped into [0, 1]."""
    known = {t.value for t in LandmarkType}
    landmarks = []
    for raw in as_dict_list(value):
        kind = as_str(raw.get("type")).strip().lower()
        if kind not in known:
            continue
        landmarks.append(
            FaceLandmark(
                type=kind,
                x=as_float(raw.get("x"), 0.0, 0.0, 1.0),
                y=as_float(raw.get("y"), 0.0, 0.0, 1.0),
            )
        )
    return landmarks


def parse_face(raw: dict[str, Any], index: int, stamp: int) -> DetectedFace:
    age = as_int(raw.get("age"), -1, maximum=120)
    return DetectedFace(
        id=as_str(raw.get("id")).strip() or f"face_{stamp}_{index}",
        x=as_float(raw.get("x"), 0.0, 0.0, 1.0),
        y=as_float(raw.get("y"), 0.0, 0.0, 1.0),
        width=as_float(raw.get("width"), 1.0, 0.0, 1.0),
        height=as_float(raw.get("height"), 1.0, 0.0, 1.0),
        confidence=as_float(raw.get("confidence"), DEFAULT_CONFIDENCE, 0.0, 1.0),
        age=age if age >= 0 else None,
        emotion=as_str(raw.get("emotion")).strip().lower() or None,
        landmarks=parse_landmarks(raw.get("landmarks")),
    )


def parse_face_analysis(
    data: dict[str, Any],
    photo: Photo,
    analyzed_at: datetime,
    stamp: int,
) -> FaceAnalysis:
    faces = [parse_face(raw, i, stamp) for i, raw in enumerate(as_dict_list(data.get("faces")))]
    total = as_int(data.get("totalFaces"), len(faces), 0)
    return FaceAnalysis(
        photo_id=photo.id,
        faces=faces,
        total_faces=total,
        unique_people=total,
        group_size=as_enum(data.get("groupSize"), GroupSize, group_size_for(total)),
        mood=as_enum(data.get("mood"), GroupMood, GroupMood.NEUTRAL),
        setting=as_enum(data.get("setting"), Setting, Setting.UNKNOWN),
        confidence=as_float(data.get("confidence"), DEFAULT_CONFIDENCE, 0.0, 1.0),
        analyzed_at=analyzed_at,
    )


def parse_comparison(data: dict[str, Any]) -> FaceComparison:
    similarity = as_float(data.get("similarity"), 0.0, 0.0, 1.0)
    return FaceComparison(
        similarity=similarity,
        is_same_person=as_bool(data.get("isSamePerson"), similarity > SAME_PERSON_THRESHOLD),
        confidence=as_float(data.get("confidence"), 0.5, 0.0, 1.0),
    )


# =============================================================================
# Pipeline
# =============================================================================


class FacePipeline(GenerationPipeline):
    """Detect, compare and describe faces in photos."""

    name = "faces"

    def detect(self, photo: Photo) -> FaceAnalysis:
        """Faces in ``photo``; no faces and zero confidence without a model."""

        def assemble() -> PromptRequest | None:
            image = self.load_image(photo)
            if image is None:
                logger.debug(f"{self.name}: no image for photo {photo.id}")
                return None
            return self.build_request(
                FACE_DETECTION_PROMPT,
                images=[image],
                photo_context=describe_photo_context(photo),
            )

        def parse(invocation: Invocation) -> FaceAnalysis:
            return parse_face_analysis(invocation.payload(), photo, self.now(), self.timestamp_ms())

        def fallback() -> FaceAnalysis:
            return FaceAnalysis(photo_id=photo.id, confidence=0.0, analyzed_at=self.now())

        return self.run_step("detect", assemble, parse, fallback)

    def extract_landmarks(self, photo: Photo) -> list[FaceLandmark]:
        def assemble() -> PromptRequest | None:
            image = self.load_image(photo)
            if image is None:
                return None
            return self.build_request(
                FACE_LANDMARKS_PROMPT,
                images=[image],
                photo_context=describe_photo_context(photo),
            )

        return self.run_step(
            "landmarks",
            assemble,
            lambda inv: parse_landmarks(inv.payload().get("landmarks")),
            list,
        )

    def compare(
        self,
        first_photo: Photo,
        first_face: DetectedFace,
        second_photo: Photo,
        second_face: DetectedFace,
    ) -> FaceComparison:
        """Whether two faces, each in its own photo, are the same person.

        Both images are sent in one call. The fallback scores the faces'
        landmarks with :func:`calculate_face_similarity` and reports zero
        confidence.
        """

        def assemble() -> PromptRequest | None:
            first = self.load_image(first_photo)
            second = self.load_image(second_photo)
            if first is None or second is None:
                return None
            return self.build_request(
                FACE_COMPARISON_PROMPT,
                images=[first, second],
                first_face=first_face.box_text(),
                second_face=second_face.box_text(),
            )

        def fallback() -> FaceComparison:
            similarity = calculate_face_similarity(first_face.landmarks, second_face.landmarks)
            return FaceComparison(
                similarity=similarity,
                is_same_person=similarity > SAME_PERSON_THRESHOLD,
                confidence=0.0,
            )

        return self.run_step(
            "compare", assemble, lambda inv: parse_comparison(inv.payload()), fallback
        )

    def describe_face(self, photo: Photo, face: DetectedFace) -> str:
        def assemble() -> PromptRequest | None:
            image = self.load_image(photo)
            if image is None:
                return None
            return self.build_request(FACE_DESCRIPTION_PROMPT, images=[image], face_box=face.box_text())

        return self.run_step(
            "describe",
            assemble,
            lambda inv: inv.text.strip() or NO_FACE_DESCRIPTION,
            lambda: NO_FACE_DESCRIPTION,
        )
