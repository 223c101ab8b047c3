"""Prompt templates for every tripweave generation step.

All text sent to Gemini is defined here. Each template pairs a system
instruction with a ``string.Template`` user prompt (``$variable``
placeholders) and, for JSON steps, an output schema that is rendered into
the prompt.

Example:
    >>> from tripweave.ai.prompts import get_prompt
    >>> template = get_prompt("anonymization_settings_v1")
    >>> system, user = template.render(
    ...     sharing_context="public",
    ...     persons_summary="2 persons, 1 child",
    ... )
"""

from __future__ import annotations

import json
import re
import textwrap
from dataclasses import dataclass, field
from enum import Enum
from string import Template
from typing import TYPE_CHECKING, Any, Iterable

if TYPE_CHECKING:
    from tripweave.core.models import Photo, Trip

# Photo lists are sampled to bound prompt size
MAX_PROMPT_PHOTOS = 20
MAX_DETAIL_PHOTOS = 10

_PLACEHOLDER = re.compile(r"\$([a-z_][a-z0-9_]*)")


# =============================================================================
# Enums
# =============================================================================


class PromptCategory(str, Enum):
    """Which pipeline a template belongs to."""

    PRIVACY = "privacy"
    PHOTO_BOOK = "photo_book"
    VIDEO = "video"
    STORY = "story"
    VISION = "vision"
    FACES = "faces"


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class PromptTemplate:
    """A system instruction, a user prompt template and its output schema.

    Attributes:
        id: Unique identifier (e.g. ``"story_generation_v1"``).
        category: Owning pipeline.
        version: Template version.
        system_instruction: Role and behaviour instructions.
        user_prompt_template: User prompt with ``$placeholder`` variables.
        output_schema: Expected JSON shape, or None for free-text steps.
        required_variables: Variables that must be supplied to ``render``.
        max_output_tokens: Response budget for this step.
        temperature: Sampling temperature for this step.
        description: What the template is for.
    """

    id: str
    category: PromptCategory
    version: str
    system_instruction: str
    user_prompt_template: str
    output_schema: dict[str, Any] | None = None
    required_variables: set[str] = field(default_factory=set)
    max_output_tokens: int = 1000
    temperature: float = 0.7
    description: str = ""

    @property
    def json_output(self) -> bool:
        return self.output_schema is not None

    def render(self, **variables: Any) -> tuple[str, str]:
        """Substitute variables into the user prompt.

        Returns:
            ``(system_instruction, user_prompt)``.

        Raises:
            ValueError: If a required variable is missing.
        """
        missing = self.validate_variables(variables)
        if missing:
            raise ValueError(f"Missing required variables for prompt '{self.id}': {missing}")

        if self.output_schema and "output_schema" not in variables:
            variables["output_schema"] = render_output_schema(self.output_schema)

        template = Template(self.user_prompt_template)
        # Optional placeholders that were not supplied render as empty
        values = {name: "" for name in _PLACEHOLDER.findall(self.user_prompt_template)}
        values.update({k: "" if v is None else v for k, v in variables.items()})
        rendered = template.safe_substitute(values)
        return self.system_instruction, rendered

    def validate_variables(self, variables: dict[str, Any]) -> list[str]:
        """Names of required variables not present in ``variables``."""
        return sorted(self.required_variables - set(variables.keys()))


# =============================================================================
# System Instructions
# =============================================================================


TRAVEL_WRITER_SYSTEM: str = textwrap.dedent(
    """
    You are a travel writer who turns trip photos into vivid, honest stories.

    Guidelines:
    - Use only the places, captions and dates you are given; do not invent
      events, names or people
    - Prefer concrete sensory detail over generic superlatives
    - Keep the requested length, tone and language
"""
).strip()


PHOTO_EDITOR_SYSTEM: str = textwrap.dedent(
    """
    You are a photo book and video editor for travel albums.

    You decide how a set of photos should be grouped, ordered and paced so
    that the result tells the story of the trip. Photos are referenced by
    their zero-based index in the list you are given.
"""
).strip()


PRIVACY_EXPERT_SYSTEM: str = textwrap.dedent(
    """
    You are a privacy protection specialist reviewing travel photos before
    they are shared.

    Guidelines:
    - Treat children and clearly identifiable faces as high sensitivity
    - Coordinates are percentages (0-100) of the image width/height
    - Never try to identify who a person is
"""
).strip()


VISION_ANALYST_SYSTEM: str = textwrap.dedent(
    """
    You are a computer vision assistant for a travel photo app. Describe
    what is visible, identify landmarks and dishes when you are confident,
    and suggest short search tags. Confidence values are between 0 and 1.
"""
).strip()


FACE_ANALYST_SYSTEM: str = textwrap.dedent(
    """
    You are a face analysis assistant for a private travel photo album.

    Guidelines:
    - Coordinates are fractions (0-1) of the image width/height
    - Report expressions, approximate age and visible features only
    - Never guess a name, gender, ethnicity or any other sensitive trait
    - Confidence values are between 0 and 1
"""
).strip()


# =============================================================================
# Output Schemas
# =============================================================================

_BOX = {"x": "number 0-100", "y": "number 0-100", "width": "number 0-100", "height": "number 0-100"}

PERSON_DETECTION_SCHEMA: dict[str, Any] = {
    "persons": [
        {
            "boundingBox": _BOX,
            "confidence": "0.0-1.0",
            "isChild": "boolean - appears to be under 18",
            "estimatedAge": "integer or null",
            "faceVisible": "boolean",
            "bodyParts": {"face": _BOX, "torso": _BOX, "hands": [_BOX]},
            "identificationRisk": "low | medium | high",
            "suggestedAnonymization": ["face_blur | full_blur | pixelate | emoji"],
        }
    ]
}

PRIVACY_RISK_SCHEMA: dict[str, Any] = {
    "overallRisk": "low | medium | high",
    "risks": ["string - concrete privacy risk visible in the photo"],
    "recommendations": ["string"],
    "complianceIssues": ["string - GDPR/CCPA/COPPA concerns"],
}

ANONYMIZATION_SETTINGS_SCHEMA: dict[str, Any] = {
    "mode": "face_only | partial | full | smart",
    "blurIntensity": "integer 1-10",
    "pixelationLevel": "integer 1-20 or null",
    "useEmojiOverlay": "boolean",
    "preserveArtistic": "boolean",
    "childProtection": "boolean",
    "whitelistedFaces": ["person id"],
    "customMasks": {"type": "blur | pixelate | emoji | solid | artistic", "color": "#rrggbb"},
}

ANONYMIZATION_QUALITY_SCHEMA: dict[str, Any] = {
    "qualityScore": "0.0-1.0 - how well image quality is preserved",
    "privacyScore": "0.0-1.0 - how well identities are protected",
    "notes": ["string"],
}

PRIVACY_REPORT_SCHEMA: dict[str, Any] = {
    "report": "string - 1-2 paragraph compliance summary",
    "compliance": {"gdpr": "boolean", "ccpa": "boolean", "coppa": "boolean"},
    "recommendations": ["string"],
    "riskMitigation": ["string - what the anonymization achieved"],
}

PHOTO_BOOK_ANALYSIS_SCHEMA: dict[str, Any] = {
    "categories": [{"name": "string", "count": "integer", "priority": "high | medium | low"}],
    "highlights": [
        {
            "photoIndex": "integer",
            "reason": "string",
            "suggestedLayout": "single | double | grid | collage",
            "priority": "high | medium | low",
        }
    ],
    "storytelling": {
        "chronology": "linear | thematic | by_location",
        "mood": "string",
        "keyMoments": ["string"],
        "suggestedFlow": ["string"],
    },
}

VIDEO_ANALYSIS_SCHEMA: dict[str, Any] = {
    "sequence": [{"photoIndex": "integer", "timing": "opening | middle | climax | closing", "reason": "string"}],
    "highlights": [{"photoIndex": "integer", "type": "string", "impact": "high | medium | low"}],
    "mood": "string",
    "pacing": "slow | moderate | dynamic",
    "storyline": {
        "introduction": ["integer"],
        "development": ["integer"],
        "climax": ["integer"],
        "conclusion": ["integer"],
    },
}

VIDEO_SELECTION_SCHEMA: dict[str, Any] = {"selectedIndices": ["integer"]}

VISION_ANALYSIS_SCHEMA: dict[str, Any] = {
    "objects": [{"name": "string", "category": "string", "confidence": "0.0-1.0", "description": "string"}],
    "landmarks": [
        {"name": "string", "type": "string", "location": "string", "historicalInfo": "string", "confidence": "0.0-1.0"}
    ],
    "food": [{"name": "string", "cuisine": "string", "description": "string", "confidence": "0.0-1.0"}],
    "people": {"count": "integer", "activities": ["string"], "emotions": ["string"]},
    "activities": ["string"],
    "mood": "string",
    "description": "string - 1-2 sentences",
    "suggestedTags": ["string"],
    "confidence": "0.0-1.0",
}

LANDMARK_SCHEMA: dict[str, Any] = {
    "isLandmark": "boolean",
    "name": "exact landmark name",
    "type": "monument | church | museum | bridge | tower | castle | palace | statue | other",
    "location": "city, country",
    "historicalInfo": "string - 1-2 sentences",
    "confidence": "0.0-1.0",
}

FOOD_SCHEMA: dict[str, Any] = {
    "foods": [{"name": "string", "cuisine": "string", "description": "string", "confidence": "0.0-1.0"}]
}

TAGS_SCHEMA: dict[str, Any] = {"tags": ["string - lowercase, 1-3 words"]}

_FACE_POINT = {"type": "left_eye | right_eye | nose | mouth | left_eyebrow | right_eyebrow", "x": "0-1", "y": "0-1"}

FACE_DETECTION_SCHEMA: dict[str, Any] = {
    "faces": [
        {
            "id": "string",
            "x": "0-1",
            "y": "0-1",
            "width": "0-1",
            "height": "0-1",
            "confidence": "0.0-1.0",
            "age": "integer or null - approximate, +/-5 years",
            "emotion": "happy | sad | neutral | surprised | angry",
            "landmarks": [_FACE_POINT],
        }
    ],
    "totalFaces": "integer",
    "groupSize": "solo | couple | small_group | large_group",
    "mood": "happy | serious | neutral | mixed",
    "setting": "indoor | outdoor | unknown",
    "confidence": "0.0-1.0",
}

FACE_LANDMARKS_SCHEMA: dict[str, Any] = {"landmarks": [_FACE_POINT]}

FACE_COMPARISON_SCHEMA: dict[str, Any] = {
    "similarity": "0.0-1.0",
    "isSamePerson": "boolean - true when similarity > 0.75",
    "confidence": "0.0-1.0",
    "reasoning": "string",
}


# =============================================================================
# Prompt Templates: privacy
# =============================================================================


PERSON_DETECTION_PROMPT = PromptTemplate(
    id="person_detection_v1",
    category=PromptCategory.PRIVACY,
    version="1.0.0",
    description="Locate people in a photo and rate how identifiable they are.",
    system_instruction=PRIVACY_EXPERT_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Detect every person visible in the attached photo.

        ## Photo
        $photo_context

        For each person give the bounding box, a confidence, whether they
        appear to be a child, whether their face is clearly visible, the
        visible body parts, an identification risk tier and suggested
        anonymization methods.

        ## Output Schema
        $output_schema
    """
    ).strip(),
    output_schema=PERSON_DETECTION_SCHEMA,
    required_variables={"photo_context"},
    max_output_tokens=1500,
    temperature=0.2,
)

PRIVACY_RISK_PROMPT = PromptTemplate(
    id="privacy_risk_v1",
    category=PromptCategory.PRIVACY,
    version="1.0.0",
    description="Assess the overall privacy risk of sharing a photo.",
    system_instruction=PRIVACY_EXPERT_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Assess the privacy risks of sharing the attached photo.

        ## Photo
        $photo_context

        ## Detected persons
        $persons_summary

        Consider faces, children, license plates, house numbers, documents
        and precise locations.

        ## Output Schema
        $output_schema
    """
    ).strip(),
    output_schema=PRIVACY_RISK_SCHEMA,
    required_variables={"photo_context", "persons_summary"},
    max_output_tokens=800,
    temperature=0.2,
)

ANONYMIZATION_SETTINGS_PROMPT = PromptTemplate(
    id="anonymization_settings_v1",
    category=PromptCategory.PRIVACY,
    version="1.0.0",
    description="Recommend anonymization settings for a sharing context.",
    system_instruction=PRIVACY_EXPERT_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Suggest anonymization settings for a photo that will be shared with
        the audience "$sharing_context".

        ## Photo
        $photo_context

        ## Detected persons
        $persons_summary

        Balance privacy risk, legal compliance and how the photo looks.

        ## Output Schema
        $output_schema
    """
    ).strip(),
    output_schema=ANONYMIZATION_SETTINGS_SCHEMA,
    required_variables={"sharing_context", "persons_summary"},
    max_output_tokens=800,
    temperature=0.3,
)

ANONYMIZATION_QUALITY_PROMPT = PromptTemplate(
    id="anonymization_quality_v1",
    category=PromptCategory.PRIVACY,
    version="1.0.0",
    description="Score a planned anonymization for quality and privacy.",
    system_instruction=(
        "You are an image processing expert specializing in privacy protection "
        "and anonymization techniques."
    ),
    user_prompt_template=textwrap.dedent(
        """
        Score this anonymization plan.

        ## Settings
        $settings

        ## Persons
        $persons_summary

        ## Masked areas
        $areas

        ## Output Schema
        $output_schema
    """
    ).strip(),
    output_schema=ANONYMIZATION_QUALITY_SCHEMA,
    required_variables={"settings", "persons_summary", "areas"},
    max_output_tokens=600,
    temperature=0.2,
)

PRIVACY_REPORT_PROMPT = PromptTemplate(
    id="privacy_report_v1",
    category=PromptCategory.PRIVACY,
    version="1.0.0",
    description="GDPR/CCPA/COPPA compliance report for an anonymized photo.",
    system_instruction="You are a privacy law expert generating compliance reports for image anonymization.",
    user_prompt_template=textwrap.dedent(
        """
        Write a privacy compliance report for this anonymized photo.

        ## Anonymization result
        $result_summary

        ## Privacy policy
        $policy_summary

        Cover GDPR, CCPA and COPPA, the risk mitigation achieved and any
        further recommendations.

        ## Output Schema
        $output_schema
    """
    ).strip(),
    output_schema=PRIVACY_REPORT_SCHEMA,
    required_variables={"result_summary", "policy_summary"},
    max_output_tokens=1500,
    temperature=0.3,
)


# =============================================================================
# Prompt Templates: photo book
# =============================================================================


PHOTO_BOOK_ANALYSIS_PROMPT = PromptTemplate(
    id="photo_book_analysis_v1",
    category=PromptCategory.PHOTO_BOOK,
    version="1.0.0",
    description="Group and rank photos before pagination.",
    system_instruction=PHOTO_EDITOR_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Recommend how to organise these $photo_count travel photos in a
        "$theme" themed photo book.

        ## Photos (sample)
        $photo_list

        Mark the strongest images as highlights; a "high" priority highlight
        is a candidate for the cover.

        ## Output Schema
        $output_schema
    """
    ).strip(),
    output_schema=PHOTO_BOOK_ANALYSIS_SCHEMA,
    required_variables={"photo_count", "theme", "photo_list"},
    max_output_tokens=1500,
    temperature=0.4,
)

PHOTO_BOOK_PAGE_STORY_PROMPT = PromptTemplate(
    id="photo_book_page_story_v1",
    category=PromptCategory.PHOTO_BOOK,
    version="1.0.0",
    description="Two or three evocative sentences for one photo book page.",
    system_instruction=(
        f"{TRAVEL_WRITER_SYSTEM}\n\nWrite 2-3 short, evocative sentences for a photo book "
        "page. Plain text only, no title."
    ),
    user_prompt_template=textwrap.dedent(
        """
        Write the text for page $page_number of the photo book, based on:

        $photo_list
    """
    ).strip(),
    required_variables={"page_number", "photo_list"},
    max_output_tokens=150,
    temperature=0.7,
)

PHOTO_BOOK_NARRATIVE_PROMPT = PromptTemplate(
    id="photo_book_narrative_v1",
    category=PromptCategory.PHOTO_BOOK,
    version="1.0.0",
    description="Introductory narrative printed at the front of a photo book.",
    system_instruction=TRAVEL_WRITER_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Write an engaging introduction for a travel photo book.

        ## Trip
        $trip_context

        ## Photos
        $photo_list
    """
    ).strip(),
    required_variables={"trip_context", "photo_list"},
    max_output_tokens=1000,
    temperature=0.7,
)


# =============================================================================
# Prompt Templates: video
# =============================================================================


VIDEO_ANALYSIS_PROMPT = PromptTemplate(
    id="video_analysis_v1",
    category=PromptCategory.VIDEO,
    version="1.0.0",
    description="Sequence and highlight photos for a slideshow video.",
    system_instruction=PHOTO_EDITOR_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Analyse these $photo_count photos for a $style video of $duration seconds.

        ## Photos
        $photo_list

        Music genre: $music_genre

        ## Output Schema
        $output_schema
    """
    ).strip(),
    output_schema=VIDEO_ANALYSIS_SCHEMA,
    required_variables={"photo_count", "style", "duration", "photo_list", "music_genre"},
    max_output_tokens=2000,
    temperature=0.4,
)

VIDEO_SELECTION_PROMPT = PromptTemplate(
    id="video_photo_selection_v1",
    category=PromptCategory.VIDEO,
    version="1.0.0",
    description="Pick the best subset of photos for a video of fixed length.",
    system_instruction=PHOTO_EDITOR_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Select the $max_photos best photos out of $photo_count for a $style
        $category video lasting $duration seconds.

        Criteria: visual variety (no near-duplicates), photographic quality,
        narrative relevance, chronological spread, emotional impact.

        ## Photos
        $photo_list

        ## Output Schema
        $output_schema
    """
    ).strip(),
    output_schema=VIDEO_SELECTION_SCHEMA,
    required_variables={"max_photos", "photo_count", "style", "category", "duration", "photo_list"},
    max_output_tokens=1000,
    temperature=0.3,
)

VIDEO_DESCRIPTION_PROMPT = PromptTemplate(
    id="video_description_v1",
    category=PromptCategory.VIDEO,
    version="1.0.0",
    description="Short description shown under a generated video.",
    system_instruction=(
        "You write short, engaging descriptions (at most 100 words) for travel videos. "
        "Plain text only."
    ),
    user_prompt_template="Describe a $style travel video made from these photos:\n\n$photo_list",
    required_variables={"style", "photo_list"},
    max_output_tokens=150,
    temperature=0.7,
)

VIDEO_SCRIPT_PROMPT = PromptTemplate(
    id="video_script_v1",
    category=PromptCategory.VIDEO,
    version="1.0.0",
    description="Timecoded voice-over script for a travel video.",
    system_instruction=textwrap.dedent(
        """
        You are a scriptwriter for travel videos. Write a timecoded script in
        this format, scaled to the requested duration:

        [00:00-00:05] INTRO: opening line
        [00:05-00:15] DEVELOPMENT: the key moments
        [00:15-00:25] CLIMAX: the high point of the trip
        [00:25-00:30] CONCLUSION: closing message
    """
    ).strip(),
    user_prompt_template=textwrap.dedent(
        """
        Write a script for a $style $category video of $duration seconds
        based on these photos:

        $photo_list
    """
    ).strip(),
    required_variables={"style", "category", "duration", "photo_list"},
    max_output_tokens=800,
    temperature=0.6,
)


# =============================================================================
# Prompt Templates: story
# =============================================================================


STORY_GENERATION_PROMPT = PromptTemplate(
    id="story_generation_v1",
    category=PromptCategory.STORY,
    version="1.0.0",
    description="Full travel story from trip details and photos.",
    system_instruction=TRAVEL_WRITER_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Write a travel story in $language.

        Style: $style_description
        Tone: $mood_description
        Length: $word_range words
        Voice: $voice

        Start with a catchy title on its own line, then the story.

        ## Trip
        $trip_context

        ## Photos ($photo_count in total)
        $photo_list
        $focus_points
        $custom_request
    """
    ).strip(),
    required_variables={
        "language",
        "style_description",
        "mood_description",
        "word_range",
        "voice",
        "trip_context",
        "photo_count",
        "photo_list",
    },
    max_output_tokens=800,
    temperature=0.7,
)

STORY_ENHANCEMENT_PROMPT = PromptTemplate(
    id="story_enhancement_v1",
    category=PromptCategory.STORY,
    version="1.0.0",
    description="Weave photo details into an existing story.",
    system_instruction=(
        f"{TRAVEL_WRITER_SYSTEM}\n\nEnrich the existing story by weaving in the details "
        "of the listed photos naturally. Return the full improved story only."
    ),
    user_prompt_template=textwrap.dedent(
        """
        ## Existing story
        $story

        ## Photos
        $photo_list
    """
    ).strip(),
    required_variables={"story", "photo_list"},
    max_output_tokens=1000,
    temperature=0.6,
)

STORY_TITLE_PROMPT = PromptTemplate(
    id="story_title_v1",
    category=PromptCategory.STORY,
    version="1.0.0",
    description="Catchy title for a travel story.",
    system_instruction=(
        "You write catchy titles for travel stories. Reply with the title only, without quotes."
    ),
    user_prompt_template="Write a title in $language for this travel story:\n\n$excerpt",
    required_variables={"language", "excerpt"},
    max_output_tokens=50,
    temperature=0.8,
)


# =============================================================================
# Prompt Templates: vision
# =============================================================================


VISION_ANALYSIS_PROMPT = PromptTemplate(
    id="vision_analysis_v1",
    category=PromptCategory.VISION,
    version="1.0.0",
    description="Objects, landmarks, food, people and tags in one photo.",
    system_instruction=VISION_ANALYST_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Analyse the attached travel photo.

        ## Known details
        $photo_context

        ## Output Schema
        $output_schema
    """
    ).strip(),
    output_schema=VISION_ANALYSIS_SCHEMA,
    required_variables={"photo_context"},
    max_output_tokens=2000,
    temperature=0.3,
)

LANDMARK_PROMPT = PromptTemplate(
    id="landmark_identification_v1",
    category=PromptCategory.VISION,
    version="1.0.0",
    description="Identify a famous landmark in a photo, if any.",
    system_instruction=VISION_ANALYST_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Does the attached photo show a famous landmark, monument or
        recognisable place? Set isLandmark to false if you are not sure.

        ## Known details
        $photo_context

        ## Output Schema
        $output_schema
    """
    ).strip(),
    output_schema=LANDMARK_SCHEMA,
    required_variables={"photo_context"},
    max_output_tokens=600,
    temperature=0.2,
)

FOOD_PROMPT = PromptTemplate(
    id="food_identification_v1",
    category=PromptCategory.VISION,
    version="1.0.0",
    description="Identify dishes and cuisines in a photo.",
    system_instruction=VISION_ANALYST_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Identify any food, dishes or drinks in the attached photo. Return an
        empty list if there are none.

        ## Known details
        $photo_context

        ## Output Schema
        $output_schema
    """
    ).strip(),
    output_schema=FOOD_SCHEMA,
    required_variables={"photo_context"},
    max_output_tokens=800,
    temperature=0.2,
)

TRAVEL_TAGS_PROMPT = PromptTemplate(
    id="travel_tags_v1",
    category=PromptCategory.VISION,
    version="1.0.0",
    description="Search tags for a travel photo.",
    system_instruction=VISION_ANALYST_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Generate 8-15 specific search tags for the attached travel photo:
        places, landmarks, activities, scenery, food, season and mood.

        ## Known details
        $photo_context
        $extra_context

        ## Output Schema
        $output_schema
    """
    ).strip(),
    output_schema=TAGS_SCHEMA,
    required_variables={"photo_context"},
    max_output_tokens=400,
    temperature=0.4,
)

IMAGE_DESCRIPTION_PROMPT = PromptTemplate(
    id="image_description_v1",
    category=PromptCategory.VISION,
    version="1.0.0",
    description="One or two sentence caption for a photo.",
    system_instruction=VISION_ANALYST_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Write a one or two sentence caption for the attached travel photo.
        Plain text only.

        ## Known details
        $photo_context
    """
    ).strip(),
    max_output_tokens=200,
    temperature=0.5,
    required_variables={"photo_context"},
)


# =============================================================================
# Prompt Templates: faces
# =============================================================================


FACE_DETECTION_PROMPT = PromptTemplate(
    id="face_detection_v1",
    category=PromptCategory.FACES,
    version="1.0.0",
    description="Locate faces and read the group, mood and setting of a photo.",
    system_instruction=FACE_ANALYST_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Detect every human face in the attached photo.

        ## Known details
        $photo_context

        groupSize is solo (1 face), couple (2), small_group (3-6) or
        large_group (7 or more).

        ## Output Schema
        $output_schema
    """
    ).strip(),
    output_schema=FACE_DETECTION_SCHEMA,
    required_variables={"photo_context"},
    max_output_tokens=2000,
    temperature=0.3,
)

FACE_LANDMARKS_PROMPT = PromptTemplate(
    id="face_landmarks_v1",
    category=PromptCategory.FACES,
    version="1.0.0",
    description="Eye, eyebrow, nose and mouth positions in a photo.",
    system_instruction=FACE_ANALYST_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Locate the main facial landmarks in the attached photo.

        ## Known details
        $photo_context

        ## Output Schema
        $output_schema
    """
    ).strip(),
    output_schema=FACE_LANDMARKS_SCHEMA,
    required_variables={"photo_context"},
    max_output_tokens=500,
    temperature=0.1,
)

FACE_COMPARISON_PROMPT = PromptTemplate(
    id="face_comparison_v1",
    category=PromptCategory.FACES,
    version="1.0.0",
    description="Decide whether two faces belong to the same person.",
    system_instruction=FACE_ANALYST_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Two photos are attached. Compare the face in the first photo at
        $first_face with the face in the second photo at $second_face.

        Judge face shape, eyes, nose, mouth, ears when visible and
        distinctive marks.

        ## Output Schema
        $output_schema
    """
    ).strip(),
    output_schema=FACE_COMPARISON_SCHEMA,
    required_variables={"first_face", "second_face"},
    max_output_tokens=500,
    temperature=0.1,
)

FACE_DESCRIPTION_PROMPT = PromptTemplate(
    id="face_description_v1",
    category=PromptCategory.FACES,
    version="1.0.0",
    description="Short neutral description of one face to help find it again.",
    system_instruction=FACE_ANALYST_SYSTEM,
    user_prompt_template=textwrap.dedent(
        """
        Describe the face at $face_box in the attached photo in two or three
        sentences. Focus on lasting, distinctive features. Plain text only.
    """
    ).strip(),
    required_variables={"face_box"},
    max_output_tokens=200,
    temperature=0.3,
)


# =============================================================================
# Prompt Registry
# =============================================================================


PROMPT_REGISTRY: dict[str, PromptTemplate] = {}


def register_prompt(template: PromptTemplate) -> None:
    """Add a template to the registry.

    Raises:
        ValueError: If the id is already registered.
    """
    if template.id in PROMPT_REGISTRY:
        raise ValueError(f"Prompt '{template.id}' is already registered")
    PROMPT_REGISTRY[template.id] = template


def get_prompt(prompt_id: str) -> PromptTemplate:
    """Look up a template by id.

    Raises:
        KeyError: If no such template exists.
    """
    if prompt_id not in PROMPT_REGISTRY:
        available = ", ".join(sorted(PROMPT_REGISTRY.keys()))
        raise KeyError(f"Prompt '{prompt_id}' not found. Available prompts: {available}")
    return PROMPT_REGISTRY[prompt_id]


def list_prompts(category: PromptCategory | None = None) -> list[PromptTemplate]:
    templates = list(PROMPT_REGISTRY.values())
    if category is not None:
        templates = [t for t in templates if t.category == category]
    return sorted(templates, key=lambda t: t.id)


def _register_builtin_prompts() -> None:
    for template in [
        PERSON_DETECTION_PROMPT,
        PRIVACY_RISK_PROMPT,
        ANONYMIZATION_SETTINGS_PROMPT,
        ANONYMIZATION_QUALITY_PROMPT,
        PRIVACY_REPORT_PROMPT,
        PHOTO_BOOK_ANALYSIS_PROMPT,
        PHOTO_BOOK_PAGE_STORY_PROMPT,
        PHOTO_BOOK_NARRATIVE_PROMPT,
        VIDEO_ANALYSIS_PROMPT,
        VIDEO_SELECTION_PROMPT,
        VIDEO_DESCRIPTION_PROMPT,
        VIDEO_SCRIPT_PROMPT,
        STORY_GENERATION_PROMPT,
        STORY_ENHANCEMENT_PROMPT,
        STORY_TITLE_PROMPT,
        VISION_ANALYSIS_PROMPT,
        LANDMARK_PROMPT,
        FOOD_PROMPT,
        TRAVEL_TAGS_PROMPT,
        IMAGE_DESCRIPTION_PROMPT,
        FACE_DETECTION_PROMPT,
        FACE_LANDMARKS_PROMPT,
        FACE_COMPARISON_PROMPT,
        FACE_DESCRIPTION_PROMPT,
    ]:
        register_prompt(template)


_register_builtin_prompts()


# =============================================================================
# Helper Functions
# =============================================================================


def render_output_schema(schema: dict[str, Any]) -> str:
    """Pretty JSON for insertion into a prompt."""
    return json.dumps(schema, indent=2)


def describe_photo(photo: "Photo", index: int | None = None, include_date: bool = False) -> str:
    """One prompt line for a photo. Absent fields are simply left out.

    Example:
        >>> describe_photo(photo, 0)
        '0. IMG_0042.jpg - Sunset over the Tagus (Lisbon)'
    """
    parts = [photo.display_name()]
    if photo.caption:
        parts.append(f"- {photo.caption.strip()}")
    if photo.location:
        parts.append(f"({photo.location.strip()})")
    if include_date:
        taken = photo.taken_at() or (photo.uploaded_at.date().isoformat() if photo.uploaded_at else None)
        if taken:
            parts.append(f"[{taken}]")
    line = " ".join(parts)
    return f"{index}. {line}" if index is not None else line


def describe_photos(
    photos: Iterable["Photo"],
    limit: int = MAX_PROMPT_PHOTOS,
    numbered: bool = True,
    include_date: bool = False,
) -> str:
    """Numbered (zero-based) photo list, capped at ``limit`` entries."""
    lines = []
    for i, photo in enumerate(photos):
        if i >= limit:
            break
        lines.append(describe_photo(photo, i if numbered else None, include_date))
    return "\n".join(lines) if lines else "(no photos)"


def describe_trip(trip: "Trip | None") -> str:
    """Trip lines for story and book prompts."""
    if trip is None:
        return "(no trip details)"
    lines = [f"Title: {trip.title}" if trip.title else "Title: (untitled trip)"]
    if trip.description:
        lines.append(f"Description: {trip.description}")
    if trip.location:
        lines.append(f"Destination: {trip.location}")
    dates = trip.date_range()
    if dates:
        lines.append(f"Dates: {dates}")
    return "\n".join(lines)


def describe_photo_context(photo: "Photo") -> str:
    """Caption/location/GPS/camera lines for vision and privacy prompts."""
    lines = [f"File: {photo.display_name()}"]
    if photo.caption:
        lines.append(f"Caption: {photo.caption}")
    if photo.location:
        lines.append(f"Location: {photo.location}")
    if photo.has_coordinates():
        lines.append(f"GPS: {photo.latitude:.4f}, {photo.longitude:.4f}")
    meta = photo.metadata_dict()
    camera = " ".join(str(meta[k]) for k in ("Make", "Model") if meta.get(k))
    if camera:
        lines.append(f"Camera: {camera}")
    taken = photo.taken_at()
    if taken:
        lines.append(f"Taken: {taken}")
    return "\n".join(lines)
