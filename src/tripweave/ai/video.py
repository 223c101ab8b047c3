"""Slideshow video generation.

Turns a photo list and a template into a render plan: a per-photo timeline
(start/end time, transition, effects, optional text overlay), the transition
list between photos, a music track picked from a fixed genre x style library,
and an estimated file size. Rendering itself is out of scope; the returned
:class:`GeneratedVideo` is what a renderer consumes.

Only two steps talk to the model: photo analysis (which photos deserve more
screen time) and the description. Everything else is a pure function of the
request, so a video generated without AI has the same shape and timing rules.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Sequence

from pydantic import Field

from tripweave.ai.pipeline import GenerationPipeline, Invocation, PromptRequest
from tripweave.ai.prompts import (
    MAX_DETAIL_PHOTOS,
    MAX_PROMPT_PHOTOS,
    VIDEO_ANALYSIS_PROMPT,
    VIDEO_DESCRIPTION_PROMPT,
    VIDEO_SCRIPT_PROMPT,
    VIDEO_SELECTION_PROMPT,
    describe_photos,
)
from tripweave.core.models import Photo, WireModel
from tripweave.core.normalize import as_dict, as_dict_list, as_int, as_list, as_str
from tripweave.utils.logging import LogContext

logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================


class VideoQuality(str, Enum):
    HD = "720p"
    FULL_HD = "1080p"
    UHD = "4K"


class AspectRatio(str, Enum):
    WIDE = "16:9"
    VERTICAL = "9:16"
    SQUARE = "1:1"
    CLASSIC = "4:3"


class MusicGenre(str, Enum):
    CINEMATIC = "cinematic"
    UPBEAT = "upbeat"
    AMBIENT = "ambient"
    ACOUSTIC = "acoustic"
    ELECTRONIC = "electronic"


class TemplateCategory(str, Enum):
    TRAVEL = "travel"
    MEMORIES = "memories"
    ADVENTURE = "adventure"
    ROMANTIC = "romantic"
    FAMILY = "family"


class VideoStyle(str, Enum):
    CINEMATIC = "cinematic"
    DYNAMIC = "dynamic"
    PEACEFUL = "peaceful"
    ENERGETIC = "energetic"
    NOSTALGIC = "nostalgic"


class TransitionType(str, Enum):
    FADE = "fade"
    SLIDE = "slide"
    ZOOM = "zoom"
    ROTATE = "rotate"
    DISSOLVE = "dissolve"
    WIPE = "wipe"


class Direction(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    UP = "up"
    DOWN = "down"


class VideoStatus(str, Enum):
    GENERATING = "generating"
    READY = "ready"
    ERROR = "error"


class Platform(str, Enum):
    YOUTUBE = "youtube"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"
    FACEBOOK = "facebook"


# =============================================================================
# Lookup Tables
# =============================================================================


MUSIC_LIBRARY: dict[MusicGenre, dict[str, str]] = {
    MusicGenre.CINEMATIC: {
        "cinematic": "orchestral_epic_01",
        "peaceful": "ambient_peaceful_01",
        "nostalgic": "piano_nostalgic_01",
    },
    MusicGenre.UPBEAT: {
        "energetic": "electronic_upbeat_01",
        "dynamic": "rock_energetic_01",
    },
    MusicGenre.AMBIENT: {
        "peaceful": "nature_ambient_01",
        "nostalgic": "strings_ambient_01",
    },
    MusicGenre.ACOUSTIC: {
        "romantic": "guitar_romantic_01",
        "peaceful": "acoustic_calm_01",
    },
    MusicGenre.ELECTRONIC: {
        "energetic": "synth_modern_01",
        "dynamic": "edm_travel_01",
    },
}
DEFAULT_TRACK = "default_track_01"

STYLE_TRANSITIONS: dict[VideoStyle, list[TransitionType]] = {
    VideoStyle.CINEMATIC: [TransitionType.FADE, TransitionType.DISSOLVE],
    VideoStyle.ENERGETIC: [TransitionType.SLIDE, TransitionType.ZOOM],
    VideoStyle.PEACEFUL: [TransitionType.FADE, TransitionType.DISSOLVE],
    VideoStyle.DYNAMIC: [TransitionType.SLIDE, TransitionType.WIPE, TransitionType.ZOOM],
    VideoStyle.NOSTALGIC: [TransitionType.FADE, TransitionType.DISSOLVE],
}

# Transitions used inside the timeline, cycled by photo index
TIMELINE_TRANSITIONS = [
    TransitionType.FADE,
    TransitionType.SLIDE,
    TransitionType.ZOOM,
    TransitionType.DISSOLVE,
]
SLIDE_DIRECTIONS = [Direction.LEFT, Direction.RIGHT, Direction.UP, Direction.DOWN]

# MB per minute of video
SIZE_PER_MINUTE: dict[VideoQuality, float] = {
    VideoQuality.HD: 2,
    VideoQuality.FULL_HD: 5,
    VideoQuality.UHD: 15,
}

BITRATES: dict[VideoQuality, str] = {
    VideoQuality.HD: "8 Mbps",
    VideoQuality.FULL_HD: "15 Mbps",
    VideoQuality.UHD: "50 Mbps",
}

PLATFORM_SPECS: dict[Platform, dict[str, Any]] = {
    Platform.YOUTUBE: {"aspect_ratio": AspectRatio.WIDE, "max_duration": 900, "quality": VideoQuality.FULL_HD},
    Platform.INSTAGRAM: {"aspect_ratio": AspectRatio.SQUARE, "max_duration": 60, "quality": VideoQuality.FULL_HD},
    Platform.TIKTOK: {"aspect_ratio": AspectRatio.VERTICAL, "max_duration": 180, "quality": VideoQuality.FULL_HD},
    Platform.FACEBOOK: {"aspect_ratio": AspectRatio.WIDE, "max_duration": 240, "quality": VideoQuality.HD},
}

HIGHLIGHT_STRETCH = 1.5
PHOTOS_PER_SECOND_CAP = 0.5

DESCRIPTION_FALLBACK = "A beautiful travel video capturing our best moments."
OPENING_TEXT = "Our journey begins..."
CLOSING_TEXT = "Unforgettable memories"


# =============================================================================
# Models
# =============================================================================


class VideoTransition(WireModel):
    type: TransitionType
    duration: float
    direction: Direction | None = None


class VideoSettings(WireModel):
    """Render settings chosen by the user."""

    template: str = ""
    duration: float = Field(default=30.0, gt=0)
    quality: VideoQuality = VideoQuality.FULL_HD
    framerate: Literal[24, 30, 60] = 30
    aspect_ratio: AspectRatio = AspectRatio.WIDE
    include_music: bool = True
    music_genre: MusicGenre = MusicGenre.CINEMATIC
    include_text: bool = True
    include_map: bool = False
    include_stats: bool = False
    auto_sync: bool = True
    photos_per_second: float = 0.5
    transitions: list[VideoTransition] = Field(default_factory=list)


class VideoTemplate(WireModel):
    id: str = "classic"
    name: str = "Classic"
    category: TemplateCategory = TemplateCategory.TRAVEL
    duration: float = 30.0
    style: VideoStyle = VideoStyle.CINEMATIC


class VideoRequest(WireModel):
    title: str
    trip_id: int | None = None
    album_id: int | None = None
    photos: list[Photo] = Field(default_factory=list)
    settings: VideoSettings = Field(default_factory=VideoSettings)
    template: VideoTemplate = Field(default_factory=VideoTemplate)


class TextOverlay(WireModel):
    text: str
    position: str
    duration: float
    style: str


class PhotoEffects(WireModel):
    zoom: bool = False
    pan: bool = False
    color_grading: str = "auto"
    stabilization: bool = True


class TimelineEntry(WireModel):
    photo_id: int
    start_time: float
    end_time: float
    duration: float
    transition: VideoTransition
    effects: PhotoEffects = Field(default_factory=PhotoEffects)
    text_overlay: TextOverlay | None = None


class SequenceEntry(WireModel):
    photo_index: int
    timing: str = "middle"
    reason: str = ""


class VideoHighlight(WireModel):
    photo_index: int
    type: str = ""
    impact: str = "medium"


class Storyline(WireModel):
    introduction: list[int] = Field(default_factory=list)
    development: list[int] = Field(default_factory=list)
    climax: list[int] = Field(default_factory=list)
    conclusion: list[int] = Field(default_factory=list)


class VideoAnalysis(WireModel):
    sequence: list[SequenceEntry] = Field(default_factory=list)
    highlights: list[VideoHighlight] = Field(default_factory=list)
    mood: str = "neutral"
    pacing: str = "moderate"
    storyline: Storyline = Field(default_factory=Storyline)

    def highlight_indices(self) -> set[int]:
        return {h.photo_index for h in self.highlights}


class VideoEncoding(WireModel):
    codec: str = "H.264"
    bitrate: str
    framerate: int


class VideoMetadata(WireModel):
    photo_count: int
    transition_count: int
    music_track: str | None = None
    file_size: str
    encoding: VideoEncoding


class GeneratedVideo(WireModel):
    id: str
    title: str
    description: str
    trip_id: int | None = None
    album_id: int | None = None
    duration: float
    quality: VideoQuality
    aspect_ratio: AspectRatio
    template: str
    status: VideoStatus = VideoStatus.READY
    progress: int = 100
    url: str
    thumbnail_url: str
    created_at: datetime
    updated_at: datetime
    timeline: list[TimelineEntry] = Field(default_factory=list)
    transitions: list[VideoTransition] = Field(default_factory=list)
    metadata: VideoMetadata


class OptimizedSettings(WireModel):
    aspect_ratio: AspectRatio
    duration: float
    quality: VideoQuality
    compression_level: str
    audio_leveling: bool = True
    captions: bool = False


class PlatformOptimization(WireModel):
    original_video: GeneratedVideo
    optimized_settings: OptimizedSettings
    estimated_file_size: str


# =============================================================================
# Pure Helpers
# =============================================================================


def calculate_file_size(duration: float, quality: VideoQuality | str) -> str:
    """Estimated size as ``"<MB> MB"`` with one decimal.

    Example:
        >>> calculate_file_size(60, "4K")
        '15.0 MB'
    """
    key = _quality(quality)
    per_minute = SIZE_PER_MINUTE.get(key, 5) if key else 5
    return f"{(duration / 60) * per_minute:.1f} MB"


def select_music_track(genre: MusicGenre | str, style: VideoStyle | str) -> str:
    """Track id from the genre x style library, ``default_track_01`` otherwise."""
    genre_value = getattr(genre, "value", genre)
    style_value = getattr(style, "value", style)
    for key, tracks in MUSIC_LIBRARY.items():
        if key.value == genre_value:
            return tracks.get(style_value, DEFAULT_TRACK)
    return DEFAULT_TRACK


def generate_transitions(photo_count: int, style: VideoStyle | str) -> list[VideoTransition]:
    """Transitions between consecutive photos (``photo_count - 1`` of them)."""
    style_value = getattr(style, "value", style)
    available = next(
        (types for key, types in STYLE_TRANSITIONS.items() if key.value == style_value),
        [TransitionType.FADE],
    )
    if style_value == VideoStyle.ENERGETIC.value:
        duration = 0.3
    elif style_value == VideoStyle.PEACEFUL.value:
        duration = 1.0
    else:
        duration = 0.5

    transitions = []
    for i in range(max(0, photo_count - 1)):
        kind = available[i % len(available)]
        transitions.append(
            VideoTransition(
                type=kind,
                duration=duration,
                direction=SLIDE_DIRECTIONS[i % 4] if kind is TransitionType.SLIDE else None,
            )
        )
    return transitions


def timeline_transition(index: int, total: int) -> VideoTransition:
    if index == 0:
        return VideoTransition(type=TransitionType.FADE, duration=1.0)
    if index == total - 1:
        return VideoTransition(type=TransitionType.FADE, duration=1.5)
    return VideoTransition(type=TIMELINE_TRANSITIONS[index % 4], duration=0.5)


def photo_effects(photo: Photo) -> PhotoEffects:
    """Zoom on landscapes, pan across panoramas."""
    name = (photo.original_name or "").lower()
    dims = photo.dimensions()
    return PhotoEffects(
        zoom="landscape" in name or "paysage" in name,
        pan=dims is not None and dims[0] / dims[1] > 2,
    )


def text_overlay(photo: Photo, index: int, total: int) -> TextOverlay | None:
    if index == 0:
        return TextOverlay(text=OPENING_TEXT, position="bottom-center", duration=2.0, style="elegant")
    if index == total - 1:
        return TextOverlay(text=CLOSING_TEXT, position="center", duration=3.0, style="elegant")
    if photo.location:
        return TextOverlay(text=photo.location, position="bottom-left", duration=1.5, style="minimal")
    return None


def build_timeline(
    photos: Sequence[Photo],
    analysis: VideoAnalysis,
    settings: VideoSettings,
) -> list[TimelineEntry]:
    """Per-photo timing.

    Every photo gets an equal slot of ``duration / n`` seconds starting at
    ``index * slot``. Highlighted photos stay on screen 1.5x longer and
    overlap the start of the next slot.
    """
    if not photos:
        return []

    slot = settings.duration / len(photos)
    highlights = analysis.highlight_indices()
    timeline = []
    for index, photo in enumerate(photos):
        start = index * slot
        length = slot * HIGHLIGHT_STRETCH if index in highlights else slot
        timeline.append(
            TimelineEntry(
                photo_id=photo.id,
                start_time=round(start, 3),
                end_time=round(start + length, 3),
                duration=round(length, 3),
                transition=timeline_transition(index, len(photos)),
                effects=photo_effects(photo),
                text_overlay=text_overlay(photo, index, len(photos)) if settings.include_text else None,
            )
        )
    return timeline


def fallback_selection(photos: Sequence[Photo], max_photos: int) -> list[int]:
    """Evenly spaced photos: every ``ceil(n / max)``-th one."""
    if max_photos <= 0 or not photos:
        return []
    step = math.ceil(len(photos) / max_photos)
    return [p.id for i, p in enumerate(photos) if i % step == 0][:max_photos]


def fallback_script(photos: Sequence[Photo], template: VideoTemplate, duration: float) -> str:
    """Four-part timecoded script built from captions and places."""
    total = max(1, int(round(duration)))
    marks = [0, round(total / 6), round(total / 2), round(total * 5 / 6), total]
    places = []
    for photo in photos:
        if photo.location and photo.location not in places:
            places.append(photo.location)
    captions = [p.caption.strip() for p in photos if p.caption and p.caption.strip()]

    intro = f"A {_value(template.style)} {_value(template.category)} story begins"
    intro += f" in {places[0]}." if places else "."
    development = (
        f"From {', '.join(places[:4])}, the journey unfolds." if places else "The journey unfolds, photo by photo."
    )
    climax = captions[len(captions) // 2] if captions else "The moment everything came together."
    conclusion = f"{CLOSING_TEXT}."

    sections = [
        ("INTRO", intro),
        ("DEVELOPMENT", development),
        ("CLIMAX", climax),
        ("CONCLUSION", conclusion),
    ]
    return "\n".join(
        f"[{_timecode(marks[i])}-{_timecode(marks[i + 1])}] {label}: {text}"
        for i, (label, text) in enumerate(sections)
    )


def parse_video_analysis(data: dict[str, Any], photo_count: int) -> VideoAnalysis:
    def valid(index: int) -> bool:
        return 0 <= index < photo_count

    sequence = [
        SequenceEntry(
            photo_index=as_int(s.get("photoIndex"), -1),
            timing=as_str(s.get("timing")) or "middle",
            reason=as_str(s.get("reason")),
        )
        for s in as_dict_list(data.get("sequence"))
    ]
    highlights = [
        VideoHighlight(
            photo_index=as_int(h.get("photoIndex"), -1),
            type=as_str(h.get("type")),
            impact=as_str(h.get("impact")) or "medium",
        )
        for h in as_dict_list(data.get("highlights"))
    ]
    story = as_dict(data.get("storyline"))

    def indices(key: str) -> list[int]:
        values = [as_int(v, -1) for v in as_list(story.get(key))]
        return [v for v in values if valid(v)]

    return VideoAnalysis(
        sequence=[s for s in sequence if valid(s.photo_index)],
        highlights=[h for h in highlights if valid(h.photo_index)],
        mood=as_str(data.get("mood")) or "neutral",
        pacing=as_str(data.get("pacing")) or "moderate",
        storyline=Storyline(
            introduction=indices("introduction"),
            development=indices("development"),
            climax=indices("climax"),
            conclusion=indices("conclusion"),
        ),
    )


def _quality(value: VideoQuality | str) -> VideoQuality | None:
    try:
        return VideoQuality(getattr(value, "value", value))
    except ValueError:
        return None


def _value(member: Any) -> str:
    return str(getattr(member, "value", member))


def _timecode(seconds: int) -> str:
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


# =============================================================================
# Pipeline
# =============================================================================


class VideoPipeline(GenerationPipeline):
    """Plan slideshow videos from trip photos."""

    name = "video"

    def generate(self, request: VideoRequest) -> GeneratedVideo:
        """Build the complete render plan. Zero photos yield an empty timeline."""
        photos = request.photos
        settings = request.settings
        template = request.template

        with LogContext(
            f"Planning video '{request.title}' ({len(photos)} photos)",
            level=logging.DEBUG,
            logger=logger,
        ):
            analysis = self.analyze(photos, template, settings)
            timeline = build_timeline(photos, analysis, settings)
            transitions = generate_transitions(len(photos), template.style)
            music = select_music_track(settings.music_genre, template.style) if settings.include_music else None
            description = self._describe(photos, template)

        stamp = self.timestamp_ms()
        created = self.now()
        return GeneratedVideo(
            id=f"video_{stamp}",
            title=request.title,
            description=description,
            trip_id=request.trip_id,
            album_id=request.album_id,
            duration=settings.duration,
            quality=settings.quality,
            aspect_ratio=settings.aspect_ratio,
            template=template.id,
            url=f"/api/videos/generated_{stamp}.mp4",
            thumbnail_url=f"/api/videos/thumb_{stamp}.jpg",
            created_at=created,
            updated_at=created,
            timeline=timeline,
            transitions=transitions,
            metadata=VideoMetadata(
                photo_count=len(photos),
                transition_count=len(transitions),
                music_track=music,
                file_size=calculate_file_size(settings.duration, settings.quality),
                encoding=VideoEncoding(
                    bitrate=BITRATES[settings.quality],
                    framerate=settings.framerate,
                ),
            ),
        )

    def analyze(
        self,
        photos: Sequence[Photo],
        template: VideoTemplate,
        settings: VideoSettings,
    ) -> VideoAnalysis:
        def assemble() -> PromptRequest | None:
            if not photos:
                return None
            return self.build_request(
                VIDEO_ANALYSIS_PROMPT,
                photo_count=len(photos),
                style=template.style.value,
                duration=settings.duration,
                photo_list=describe_photos(photos, limit=MAX_PROMPT_PHOTOS),
                music_genre=settings.music_genre.value,
            )

        def parse(invocation: Invocation) -> VideoAnalysis:
            return parse_video_analysis(invocation.payload(), len(photos))

        return self.run_step("analyze", assemble, parse, VideoAnalysis)

    def select_best_photos(
        self,
        photos: Sequence[Photo],
        template: VideoTemplate,
        duration: float,
    ) -> list[int]:
        """Ids of the photos to keep, at most ``floor(duration * 0.5)``."""
        max_photos = math.floor(duration * PHOTOS_PER_SECOND_CAP)
        if max_photos <= 0:
            return []
        if len(photos) <= max_photos:
            return [p.id for p in photos]

        def assemble() -> PromptRequest:
            return self.build_request(
                VIDEO_SELECTION_PROMPT,
                max_photos=max_photos,
                photo_count=len(photos),
                style=template.style.value,
                category=template.category.value,
                duration=duration,
                photo_list=describe_photos(photos, limit=len(photos), include_date=True),
            )

        def parse(invocation: Invocation) -> list[int]:
            selected: list[int] = []
            for raw in as_list(invocation.payload().get("selectedIndices")):
                index = as_int(raw, -1)
                if 0 <= index < len(photos) and photos[index].id not in selected:
                    selected.append(photos[index].id)
            return selected[:max_photos] or fallback_selection(photos, max_photos)

        return self.run_step(
            "select_photos", assemble, parse, lambda: fallback_selection(photos, max_photos)
        )

    def optimize_for_platform(
        self,
        video: GeneratedVideo,
        platform: Platform | str,
    ) -> PlatformOptimization:
        """Export settings for a social platform. Pure lookup, no model call."""
        key = Platform(getattr(platform, "value", platform))
        spec = PLATFORM_SPECS[key]
        duration = min(video.duration, spec["max_duration"])
        return PlatformOptimization(
            original_video=video,
            optimized_settings=OptimizedSettings(
                aspect_ratio=spec["aspect_ratio"],
                duration=duration,
                quality=spec["quality"],
                compression_level="high" if key is Platform.TIKTOK else "medium",
                captions=key in (Platform.TIKTOK, Platform.INSTAGRAM),
            ),
            estimated_file_size=calculate_file_size(duration, spec["quality"]),
        )

    def generate_script(
        self,
        photos: Sequence[Photo],
        template: VideoTemplate,
        duration: float,
    ) -> str:
        """Timecoded voice-over script."""

        def assemble() -> PromptRequest | None:
            if not photos:
                return None
            return self.build_request(
                VIDEO_SCRIPT_PROMPT,
                style=template.style.value,
                category=template.category.value,
                duration=duration,
                photo_list=describe_photos(photos, limit=MAX_DETAIL_PHOTOS, numbered=False),
            )

        def parse(invocation: Invocation) -> str:
            return invocation.text.strip() or fallback_script(photos, template, duration)

        return self.run_step(
            "script", assemble, parse, lambda: fallback_script(photos, template, duration)
        )

    def _describe(self, photos: Sequence[Photo], template: VideoTemplate) -> str:
        def assemble() -> PromptRequest | None:
            if not photos:
                return None
            return self.build_request(
                VIDEO_DESCRIPTION_PROMPT,
                style=template.style.value,
                photo_list=describe_photos(photos, limit=5, numbered=False),
            )

        def parse(invocation: Invocation) -> str:
            return invocation.text.strip() or DESCRIPTION_FALLBACK

        return self.run_step("description", assemble, parse, lambda: DESCRIPTION_FALLBACK)
