"""Photo book layout generation.

A book is built in four steps:

1. **Analyse** the photos (model call, or a neutral local analysis).
2. **Paginate**: the target page count follows from the requested size and
   the photo count (:func:`calculate_page_count`); photos are spread evenly
   over the pages, two pages being reserved for the cover and closing.
3. **Lay out** each page as a tree of positioned elements. Coordinates are
   fractions (0-1) of the page.
4. Optionally add a page story under the photos and a closing map page.

Example:
    >>> pipeline = PhotoBookPipeline(client=None)
    >>> book = pipeline.generate(PhotoBookRequest(title="Lisbon", photos=photos))
    >>> book.pages[0].id
    'page_cover'
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
    MAX_DETAIL_PHOTOS,
    PHOTO_BOOK_ANALYSIS_PROMPT,
    PHOTO_BOOK_NARRATIVE_PROMPT,
    PHOTO_BOOK_PAGE_STORY_PROMPT,
    describe_photos,
    describe_trip,
)
from tripweave.core.models import Photo, Trip, WireModel
from tripweave.core.normalize import (
    as_dict,
    as_dict_list,
    as_enum,
    as_int,
    as_str,
    as_str_list,
)
from tripweave.utils.logging import LogContext

logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================


class BookFormat(str, Enum):
    SQUARE = "square"
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"


class BookSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class PageLayout(str, Enum):
    SINGLE = "single"
    DOUBLE = "double"
    GRID = "grid"
    COLLAGE = "collage"
    STORY = "story"


class ElementType(str, Enum):
    PHOTO = "photo"
    TEXT = "text"
    SHAPE = "shape"
    MAP = "map"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# =============================================================================
# Constants
# =============================================================================


BASE_PAGES: dict[BookSize, int] = {
    BookSize.SMALL: 20,
    BookSize.MEDIUM: 40,
    BookSize.LARGE: 80,
}

THEME_BACKGROUNDS: dict[str, str] = {
    "adventure": "#f8fafc",
    "romantic": "#fdf2f8",
    "minimal": "#ffffff",
    "vintage": "#fef3c7",
}

THEME_COLORS: dict[str, dict[str, str]] = {
    "adventure": {"primary": "#16a34a", "secondary": "#0284c7", "accent": "#f59e0b"},
    "romantic": {"primary": "#ec4899", "secondary": "#a855f7", "accent": "#f97316"},
    "minimal": {"primary": "#374151", "secondary": "#6b7280", "accent": "#059669"},
    "vintage": {"primary": "#d97706", "secondary": "#92400e", "accent": "#dc2626"},
}

LAYOUT_NAMES = [
    "Classic layout",
    "Modern grid",
    "Artistic collage",
    "Portrait focus",
    "Landscape panorama",
]
MAX_SMART_LAYOUTS = 5

# Collage tiles are tilted in this repeating pattern (degrees)
COLLAGE_ROTATIONS = [-4.0, 3.0, -2.0, 5.0]

NARRATIVE_FALLBACK = (
    "Discover your trip through {count} exceptional photos that tell your unique story."
)
NARRATIVE_EMPTY = "This trip will stay engraved in our memories..."


# =============================================================================
# Models
# =============================================================================


class PhotoBookSettings(WireModel):
    auto_layout: bool = True
    include_map: bool = False
    include_story: bool = False


class PhotoBookRequest(WireModel):
    """What the caller wants printed."""

    title: str
    subtitle: str | None = None
    trip_id: int | None = None
    album_id: int | None = None
    format: BookFormat = BookFormat.LANDSCAPE
    size: BookSize = BookSize.MEDIUM
    theme: str = "minimal"
    photos: list[Photo] = Field(default_factory=list)
    settings: PhotoBookSettings = Field(default_factory=PhotoBookSettings)


class ElementStyle(WireModel):
    border_radius: float = 0
    border_width: float = 0
    border_color: str = "#000000"
    shadow: bool = False
    opacity: float = 1.0
    filter: str | None = None


class PageElement(WireModel):
    id: str
    type: ElementType
    x: float
    y: float
    width: float
    height: float
    rotation: float = 0.0
    data: dict[str, Any] = Field(default_factory=dict)
    style: ElementStyle = Field(default_factory=ElementStyle)


class PhotoBookPage(WireModel):
    id: str
    page_number: int
    layout: PageLayout
    background: str
    elements: list[PageElement] = Field(default_factory=list)


class PhotoBook(WireModel):
    id: str
    title: str
    subtitle: str | None = None
    trip_id: int | None = None
    album_id: int | None = None
    cover_image: str | None = None
    format: BookFormat
    size: BookSize
    theme: str
    pages: list[PhotoBookPage] = Field(default_factory=list)
    total_pages: int = 0
    created_at: datetime
    updated_at: datetime
    is_published: bool = False
    print_ready: bool = True


class PhotoCategory(WireModel):
    name: str
    count: int = 0
    priority: Priority = Priority.MEDIUM


class LayoutHighlight(WireModel):
    photo_index: int
    reason: str = ""
    suggested_layout: PageLayout = PageLayout.SINGLE
    priority: Priority = Priority.MEDIUM


class Storytelling(WireModel):
    chronology: str = "linear"
    mood: str = "neutral"
    key_moments: list[str] = Field(default_factory=list)
    suggested_flow: list[str] = Field(default_factory=list)


class LayoutAnalysis(WireModel):
    categories: list[PhotoCategory] = Field(default_factory=list)
    highlights: list[LayoutHighlight] = Field(default_factory=list)
    storytelling: Storytelling = Field(default_factory=Storytelling)


class LayoutSuggestion(WireModel):
    id: str
    name: str
    photos: list[Photo] = Field(default_factory=list)
    structure: PageLayout
    preview: str


# =============================================================================
# Pure Helpers
# =============================================================================


def calculate_page_count(size: BookSize | str, photo_count: int) -> int:
    """Target page count for a book.

    ``small`` is 20 pages, ``medium`` 40 and ``large`` 80. Fewer than 10
    photos caps the book at 20 pages; more than 100 photos raises it to at
    least 60.
    """
    target = BASE_PAGES.get(as_enum(size, BookSize, BookSize.MEDIUM), 40)
    if photo_count < 10:
        return min(target, 20)
    if photo_count > 100:
        return max(target, 60)
    return target


def determine_optimal_layout(photos: Sequence[Photo]) -> PageLayout:
    count = len(photos)
    if count <= 1:
        return PageLayout.SINGLE
    if count == 2:
        return PageLayout.DOUBLE
    if count <= 6:
        return PageLayout.GRID
    return PageLayout.COLLAGE


def theme_background(theme: str) -> str:
    return THEME_BACKGROUNDS.get(theme, "#ffffff")


def theme_color(theme: str, kind: str = "primary") -> str:
    return THEME_COLORS.get(theme, {}).get(kind, "#374151")


def select_cover_photo(photos: Sequence[Photo], analysis: LayoutAnalysis) -> Photo | None:
    """First ``high`` priority highlight, else the first photo."""
    for highlight in analysis.highlights:
        if highlight.priority is Priority.HIGH and 0 <= highlight.photo_index < len(photos):
            return photos[highlight.photo_index]
    return photos[0] if photos else None


def layout_preview(photos: Sequence[Photo]) -> str:
    """Short description of what a layout suggestion looks like."""
    names = [(p.original_name or "").lower() for p in photos]
    has_portraits = any("portrait" in n for n in names)
    has_landscapes = any("landscape" in n or "paysage" in n for n in names)

    if len(photos) == 1:
        return "Single full-page photo"
    if len(photos) == 2:
        return "Two photos side by side"
    if has_portraits and has_landscapes:
        return "Mix of portraits and landscapes"
    if has_portraits:
        return "Portrait gallery"
    if has_landscapes:
        return "Landscape collection"
    return f"Grid of {len(photos)} photos"


def fallback_analysis(photos: Sequence[Photo]) -> LayoutAnalysis:
    """Neutral analysis: one category, the first three photos as highlights."""
    if not photos:
        return LayoutAnalysis()
    return LayoutAnalysis(
        categories=[PhotoCategory(name="Photos", count=len(photos))],
        highlights=[
            LayoutHighlight(photo_index=i, reason="Selected image")
            for i in range(min(3, len(photos)))
        ],
        storytelling=Storytelling(
            key_moments=["Beginning", "Exploration", "End"],
            suggested_flow=["intro", "gallery", "conclusion"],
        ),
    )


def parse_analysis(data: dict[str, Any], photo_count: int) -> LayoutAnalysis:
    """Normalise a model analysis. Highlights pointing outside the list are dropped."""
    categories = [
        PhotoCategory(
            name=as_str(c.get("name")) or "Photos",
            count=as_int(c.get("count"), 0, 0),
            priority=as_enum(c.get("priority"), Priority, Priority.MEDIUM),
        )
        for c in as_dict_list(data.get("categories"))
    ]

    highlights = []
    for h in as_dict_list(data.get("highlights")):
        index = as_int(h.get("photoIndex"), -1)
        if not 0 <= index < photo_count:
            continue
        highlights.append(
            LayoutHighlight(
                photo_index=index,
                reason=as_str(h.get("reason")),
                suggested_layout=as_enum(h.get("suggestedLayout"), PageLayout, PageLayout.SINGLE),
                priority=as_enum(h.get("priority"), Priority, Priority.MEDIUM),
            )
        )

    story = as_dict(data.get("storytelling"))
    return LayoutAnalysis(
        categories=categories,
        highlights=highlights,
        storytelling=Storytelling(
            chronology=as_str(story.get("chronology")) or "linear",
            mood=as_str(story.get("mood")) or "neutral",
            key_moments=as_str_list(story.get("keyMoments")),
            suggested_flow=as_str_list(story.get("suggestedFlow")),
        ),
    )


def _photo_data(photo: Photo) -> dict[str, Any]:
    return {"url": photo.url, "caption": photo.caption}


def _cell_elements(
    photos: Sequence[Photo],
    page_number: int,
    rotations: Sequence[float] | None = None,
) -> list[PageElement]:
    # Near-square grid inside a 10% margin; each cell is shrunk to leave a gutter
    cols = math.ceil(math.sqrt(len(photos)))
    rows = math.ceil(len(photos) / cols)
    cell_w = 0.8 / cols
    cell_h = 0.8 / rows

    elements = []
    for index, photo in enumerate(photos):
        col = index % cols
        row = index // cols
        elements.append(
            PageElement(
                id=f"photo_{page_number}_{index + 1}",
                type=ElementType.PHOTO,
                x=round(0.1 + col * cell_w, 4),
                y=round(0.1 + row * cell_h, 4),
                width=round(cell_w * 0.95, 4),
                height=round(cell_h * 0.95, 4),
                rotation=rotations[index % len(rotations)] if rotations else 0.0,
                data=_photo_data(photo),
                style=ElementStyle(border_radius=4, border_color="#ffffff", shadow=True),
            )
        )
    return elements


def layout_elements(
    photos: Sequence[Photo],
    layout: PageLayout,
    page_number: int,
) -> list[PageElement]:
    """Position the photos of one page."""
    if not photos:
        return []

    if layout is PageLayout.SINGLE:
        return [
            PageElement(
                id=f"photo_{page_number}_1",
                type=ElementType.PHOTO,
                x=0.1,
                y=0.1,
                width=0.8,
                height=0.8,
                data=_photo_data(photos[0]),
                style=ElementStyle(border_radius=8, border_color="#ffffff", shadow=True),
            )
        ]

    if layout is PageLayout.DOUBLE:
        return [
            PageElement(
                id=f"photo_{page_number}_{index + 1}",
                type=ElementType.PHOTO,
                x=round(0.05 + index * 0.475, 4),
                y=0.15,
                width=0.425,
                height=0.65,
                data=_photo_data(photo),
                style=ElementStyle(border_radius=8, border_color="#ffffff", shadow=True),
            )
            for index, photo in enumerate(photos[:2])
        ]

    if layout is PageLayout.COLLAGE:
        return _cell_elements(photos, page_number, COLLAGE_ROTATIONS)

    return _cell_elements(photos, page_number)


def local_page_story(photos: Sequence[Photo]) -> str | None:
    """Captions and places of a page, joined into one line."""
    parts = []
    for photo in photos:
        pieces = [s.strip() for s in (photo.caption, photo.location) if s and s.strip()]
        if pieces:
            parts.append(", ".join(pieces))
    return ". ".join(parts) + "." if parts else None


# =============================================================================
# Pipeline
# =============================================================================


class PhotoBookPipeline(GenerationPipeline):
    """Build printable photo book layouts."""

    name = "photo_book"

    def generate(self, request: PhotoBookRequest) -> PhotoBook:
        """Generate the complete page tree for a book.

        With no photos the book has a cover page only.
        """
        photos = request.photos
        with LogContext(
            f"Building photo book '{request.title}' ({len(photos)} photos)",
            level=logging.DEBUG,
            logger=logger,
        ):
            analysis = self.analyze(photos, request.theme)
            target_pages = calculate_page_count(request.size, len(photos))
            cover = select_cover_photo(photos, analysis)
            pages = self._build_pages(request, cover, target_pages)

        created = self.now()
        return PhotoBook(
            id=f"book_{self.timestamp_ms()}",
            title=request.title,
            subtitle=request.subtitle,
            trip_id=request.trip_id,
            album_id=request.album_id,
            cover_image=cover.url if cover else None,
            format=request.format,
            size=request.size,
            theme=request.theme,
            pages=pages,
            total_pages=len(pages),
            created_at=created,
            updated_at=created,
        )

    def analyze(self, photos: Sequence[Photo], theme: str = "minimal") -> LayoutAnalysis:
        """Categories, highlights and storytelling hints for a set of photos."""

        def assemble() -> PromptRequest | None:
            if not photos:
                return None
            return self.build_request(
                PHOTO_BOOK_ANALYSIS_PROMPT,
                photo_count=len(photos),
                theme=theme,
                photo_list=describe_photos(photos, limit=MAX_DETAIL_PHOTOS),
            )

        def parse(invocation: Invocation) -> LayoutAnalysis:
            return parse_analysis(invocation.payload(), len(photos))

        return self.run_step("analyze", assemble, parse, lambda: fallback_analysis(photos))

    def generate_smart_layouts(
        self,
        photos: Sequence[Photo],
        theme: str = "minimal",
    ) -> list[LayoutSuggestion]:
        """Up to five alternative layouts, each over an equal slice of the photos."""
        if not photos:
            return []

        per_layout = math.ceil(len(photos) / MAX_SMART_LAYOUTS)
        suggestions = []
        for i in range(MAX_SMART_LAYOUTS):
            chunk = list(photos[i * per_layout : (i + 1) * per_layout])
            if not chunk:
                break
            suggestions.append(
                LayoutSuggestion(
                    id=f"layout_{i + 1}",
                    name=LAYOUT_NAMES[i],
                    photos=chunk,
                    structure=determine_optimal_layout(chunk),
                    preview=layout_preview(chunk),
                )
            )
        logger.debug(f"{len(suggestions)} layout suggestions for theme '{theme}'")
        return suggestions

    def generate_narrative(self, photos: Sequence[Photo], trip: Trip | None = None) -> str:
        """Introductory text printed at the front of the book."""

        def assemble() -> PromptRequest | None:
            if not photos:
                return None
            return self.build_request(
                PHOTO_BOOK_NARRATIVE_PROMPT,
                trip_context=describe_trip(trip),
                photo_list=describe_photos(photos, limit=MAX_DETAIL_PHOTOS, numbered=False),
            )

        def parse(invocation: Invocation) -> str:
            return invocation.text.strip() or NARRATIVE_EMPTY

        return self.run_step(
            "narrative",
            assemble,
            parse,
            lambda: NARRATIVE_FALLBACK.format(count=len(photos)),
        )

    # -------------------------------------------------------------------------
    # Pages
    # -------------------------------------------------------------------------

    def _build_pages(
        self,
        request: PhotoBookRequest,
        cover: Photo | None,
        target_pages: int,
    ) -> list[PhotoBookPage]:
        photos = request.photos
        background = theme_background(request.theme)
        pages = [self._cover_page(cover, background)]
        if not photos:
            return pages

        per_page = math.ceil(len(photos) / max(1, target_pages - 2))
        for start in range(0, len(photos), per_page):
            chunk = photos[start : start + per_page]
            page_number = len(pages) + 1
            layout = determine_optimal_layout(chunk)
            elements = layout_elements(chunk, layout, page_number)

            if request.settings.include_story:
                story = self._page_story(chunk, page_number)
                if story:
                    elements.append(
                        PageElement(
                            id=f"story_{page_number}",
                            type=ElementType.TEXT,
                            x=0.1,
                            y=0.85,
                            width=0.8,
                            height=0.1,
                            data={"text": story},
                        )
                    )

            pages.append(
                PhotoBookPage(
                    id=f"page_{page_number}",
                    page_number=page_number,
                    layout=layout,
                    background=background,
                    elements=elements,
                )
            )

        located = [p for p in photos if p.has_coordinates()]
        if request.settings.include_map and located:
            pages.append(self._map_page(located, len(pages) + 1, request.theme))
        return pages

    def _cover_page(self, cover: Photo | None, background: str) -> PhotoBookPage:
        return PhotoBookPage(
            id="page_cover",
            page_number=1,
            layout=PageLayout.SINGLE,
            background=background,
            elements=[
                PageElement(
                    id="cover_photo",
                    type=ElementType.PHOTO,
                    x=0,
                    y=0,
                    width=1,
                    height=1,
                    data={"url": cover.url if cover else None, "alt": "Cover photo"},
                )
            ],
        )

    def _map_page(self, located: list[Photo], page_number: int, theme: str) -> PhotoBookPage:
        locations = [
            {
                "photoId": p.id,
                "url": p.url,
                "latitude": p.latitude,
                "longitude": p.longitude,
                "location": p.location,
            }
            for p in located
        ]
        return PhotoBookPage(
            id=f"page_map_{page_number}",
            page_number=page_number,
            layout=PageLayout.SINGLE,
            background=theme_background(theme),
            elements=[
                PageElement(
                    id="travel_map",
                    type=ElementType.MAP,
                    x=0.1,
                    y=0.1,
                    width=0.8,
                    height=0.8,
                    data={"locations": locations, "style": "travel", "showRoute": True},
                    style=ElementStyle(
                        border_radius=8,
                        border_width=2,
                        border_color=theme_color(theme, "primary"),
                        shadow=True,
                    ),
                )
            ],
        )

    def _page_story(self, photos: Sequence[Photo], page_number: int) -> str | None:
        def assemble() -> PromptRequest:
            return self.build_request(
                PHOTO_BOOK_PAGE_STORY_PROMPT,
                page_number=page_number,
                photo_list=describe_photos(photos, numbered=False),
            )

        def parse(invocation: Invocation) -> str | None:
            return invocation.text.strip() or local_page_story(photos)

        return self.run_step("page_story", assemble, parse, lambda: local_page_story(photos))
