"""Tests for tripweave.ai.photo_book."""

from __future__ import annotations

import pytest

from tripweave.ai.photo_book import (
    COLLAGE_ROTATIONS,
    NARRATIVE_EMPTY,
    BookSize,
    ElementType,
    LayoutAnalysis,
    LayoutHighlight,
    PageLayout,
    PhotoBookPipeline,
    PhotoBookRequest,
    PhotoBookSettings,
    Priority,
    calculate_page_count,
    determine_optimal_layout,
    fallback_analysis,
    layout_elements,
    layout_preview,
    local_page_story,
    parse_analysis,
    select_cover_photo,
    theme_background,
    theme_color,
)
from tripweave.core.models import Photo


class TestPageCount:
    """Deterministic page count from size and photo count."""

    @pytest.mark.parametrize("size, base", [("small", 20), ("medium", 40), ("large", 80)])
    def test_base_values(self, size, base) -> None:
        assert calculate_page_count(size, 50) == base

    @pytest.mark.parametrize("count", range(0, 10))
    @pytest.mark.parametrize("size", list(BookSize))
    def test_few_photos_cap_at_twenty(self, size, count) -> None:
        assert calculate_page_count(size, count) <= 20

    @pytest.mark.parametrize("size", list(BookSize))
    def test_many_photos_at_least_sixty(self, size) -> None:
        assert calculate_page_count(size, 101) >= 60

    def test_large_book_with_many_photos(self) -> None:
        assert calculate_page_count(BookSize.LARGE, 150) >= 60
        assert calculate_page_count("medium", 150) == 60

    def test_unknown_size_is_medium(self) -> None:
        assert calculate_page_count("huge", 50) == 40


class TestLayoutHelpers:
    @pytest.mark.parametrize(
        "count, layout",
        [
            (0, PageLayout.SINGLE),
            (1, PageLayout.SINGLE),
            (2, PageLayout.DOUBLE),
            (3, PageLayout.GRID),
            (6, PageLayout.GRID),
            (7, PageLayout.COLLAGE),
        ],
    )
    def test_optimal_layout(self, photo_factory, count, layout) -> None:
        assert determine_optimal_layout(photo_factory(count)) is layout

    def test_theme_lookup(self) -> None:
        assert theme_background("vintage") == "#fef3c7"
        assert theme_background("neon") == "#ffffff"
        assert theme_color("romantic", "accent") == "#f97316"
        assert theme_color("neon") == "#374151"

    def test_single_element(self, photo_factory) -> None:
        (element,) = layout_elements(photo_factory(1), PageLayout.SINGLE, 2)
        assert element.id == "photo_2_1"
        assert (element.x, element.y, element.width, element.height) == (0.1, 0.1, 0.8, 0.8)
        assert element.data == {"url": "/uploads/IMG_0001.jpg", "caption": "Moment 1"}

    def test_double_elements(self, photo_factory) -> None:
        elements = layout_elements(photo_factory(2), PageLayout.DOUBLE, 3)
        assert [e.x for e in elements] == [0.05, 0.525]

    def test_grid_stays_on_page(self, photo_factory) -> None:
        elements = layout_elements(photo_factory(5), PageLayout.GRID, 4)
        assert len(elements) == 5
        for element in elements:
            assert 0 <= element.x and element.x + element.width <= 1
            assert 0 <= element.y and element.y + element.height <= 1
            assert element.rotation == 0.0

    def test_collage_rotates(self, photo_factory) -> None:
        elements = layout_elements(photo_factory(8), PageLayout.COLLAGE, 5)
        assert [e.rotation for e in elements[:4]] == COLLAGE_ROTATIONS

    def test_no_photos_no_elements(self) -> None:
        assert layout_elements([], PageLayout.GRID, 2) == []

    def test_preview(self, photo_factory, sample_photos) -> None:
        assert layout_preview(photo_factory(1)) == "Single full-page photo"
        assert layout_preview(photo_factory(2)) == "Two photos side by side"
        assert layout_preview(sample_photos) == "Landscape collection"
        assert layout_preview(photo_factory(4)) == "Grid of 4 photos"

    def test_local_page_story(self, sample_photos) -> None:
        text = local_page_story(sample_photos[:2])
        assert text == "Sunset over the Tagus, Lisbon, Portugal. Tram 28, Alfama."
        assert local_page_story([Photo(id=9)]) is None


class TestAnalysis:
    def test_fallback(self, photo_factory) -> None:
        analysis = fallback_analysis(photo_factory(5))
        assert analysis.categories[0].count == 5
        assert [h.photo_index for h in analysis.highlights] == [0, 1, 2]
        assert fallback_analysis([]) == LayoutAnalysis()

    def test_parse_drops_out_of_range_highlights(self) -> None:
        analysis = parse_analysis(
            {
                "categories": [{"name": "Food", "count": "3", "priority": "HIGH"}, "x"],
                "highlights": [
                    {"photoIndex": 1, "priority": "high", "suggestedLayout": "double"},
                    {"photoIndex": 12},
                    {"photoIndex": "first"},
                ],
                "storytelling": {"mood": "joyful", "keyMoments": ["Arrival"]},
            },
            photo_count=4,
        )
        assert analysis.categories[0].priority is Priority.HIGH
        assert analysis.categories[0].count == 3
        assert [h.photo_index for h in analysis.highlights] == [1]
        assert analysis.highlights[0].suggested_layout is PageLayout.DOUBLE
        assert analysis.storytelling.mood == "joyful"
        assert analysis.storytelling.chronology == "linear"

    def test_cover_prefers_high_priority(self, sample_photos) -> None:
        analysis = LayoutAnalysis(
            highlights=[
                LayoutHighlight(photo_index=1, priority=Priority.MEDIUM),
                LayoutHighlight(photo_index=2, priority=Priority.HIGH),
            ]
        )
        assert select_cover_photo(sample_photos, analysis).id == 3
        assert select_cover_photo(sample_photos, LayoutAnalysis()).id == 1
        assert select_cover_photo([], LayoutAnalysis()) is None


class TestPhotoBookPipeline:
    def test_no_photos_cover_only(self, fixed_clock) -> None:
        book = PhotoBookPipeline(None, clock=fixed_clock).generate(PhotoBookRequest(title="Empty"))
        assert [p.id for p in book.pages] == ["page_cover"]
        assert book.total_pages == 1
        assert book.cover_image is None
        assert book.created_at == fixed_clock()

    def test_large_book(self, photo_factory) -> None:
        request = PhotoBookRequest(title="Big", size="large", photos=photo_factory(150))
        book = PhotoBookPipeline(None).generate(request)
        assert book.total_pages == len(book.pages)
        assert book.total_pages >= 60
        placed = [e for page in book.pages[1:] for e in page.elements if e.type is ElementType.PHOTO]
        assert len(placed) == 150

    def test_pages_are_numbered(self, sample_photos, fixed_clock) -> None:
        request = PhotoBookRequest(title="Lisbon", theme="vintage", photos=sample_photos)
        book = PhotoBookPipeline(None, clock=fixed_clock).generate(request)
        assert [p.page_number for p in book.pages] == list(range(1, len(book.pages) + 1))
        assert {p.background for p in book.pages} == {"#fef3c7"}
        assert book.cover_image == sample_photos[0].url
        assert book.id == f"book_{int(fixed_clock().timestamp() * 1000)}"

    def test_map_page(self, sample_photos) -> None:
        request = PhotoBookRequest(
            title="Lisbon",
            photos=sample_photos,
            settings=PhotoBookSettings(include_map=True),
        )
        last = PhotoBookPipeline(None).generate(request).pages[-1]
        assert last.id.startswith("page_map_")
        (element,) = last.elements
        assert element.type is ElementType.MAP
        assert [loc["photoId"] for loc in element.data["locations"]] == [1]

    def test_no_map_without_coordinates(self, photo_factory) -> None:
        request = PhotoBookRequest(
            title="x", photos=photo_factory(3), settings=PhotoBookSettings(include_map=True)
        )
        pages = PhotoBookPipeline(None).generate(request).pages
        assert not any(p.id.startswith("page_map_") for p in pages)

    def test_include_story_uses_captions(self, sample_photos) -> None:
        request = PhotoBookRequest(
            title="Lisbon", photos=sample_photos, settings=PhotoBookSettings(include_story=True)
        )
        pages = PhotoBookPipeline(None).generate(request).pages
        stories = [e for p in pages for e in p.elements if e.type is ElementType.TEXT]
        assert stories
        assert stories[0].data["text"].startswith("Sunset over the Tagus")

    def test_model_analysis_picks_cover(self, make_client, sample_photos) -> None:
        client = make_client({"highlights": [{"photoIndex": 3, "priority": "high"}]})
        book = PhotoBookPipeline(client).generate(PhotoBookRequest(title="x", photos=sample_photos))
        assert book.cover_image == sample_photos[3].url
        assert book.pages[0].elements[0].data["url"] == sample_photos[3].url

    def test_round_trip(self, sample_photos) -> None:
        book = PhotoBookPipeline(None).generate(PhotoBookRequest(title="x", photos=sample_photos))
        assert type(book).model_validate(book.to_dict()) == book


class TestSmartLayouts:
    def test_at_most_five(self, photo_factory) -> None:
        layouts = PhotoBookPipeline(None).generate_smart_layouts(photo_factory(23))
        assert len(layouts) == 5
        assert [s.id for s in layouts] == [f"layout_{i}" for i in range(1, 6)]
        assert sum(len(s.photos) for s in layouts) == 23

    def test_few_photos(self, photo_factory) -> None:
        layouts = PhotoBookPipeline(None).generate_smart_layouts(photo_factory(2))
        assert len(layouts) == 2
        assert layouts[0].structure is PageLayout.SINGLE

    def test_empty(self) -> None:
        assert PhotoBookPipeline(None).generate_smart_layouts([]) == []


class TestNarrative:
    def test_fallback_counts_photos(self, photo_factory) -> None:
        text = PhotoBookPipeline(None).generate_narrative(photo_factory(12))
        assert "12 exceptional photos" in text

    def test_zero_photos(self, make_client) -> None:
        client = make_client(text="ignored")
        text = PhotoBookPipeline(client).generate_narrative([])
        assert "0 exceptional photos" in text
        client.generate.assert_not_called()

    def test_model_text(self, make_client, sample_photos, sample_trip) -> None:
        client = make_client(text="  A week of light.  ")
        assert PhotoBookPipeline(client).generate_narrative(sample_photos, sample_trip) == (
            "A week of light."
        )
        assert "Lisbon in spring" in client.generate.call_args.args[0]

    def test_empty_model_text(self, make_client, sample_photos) -> None:
        assert PhotoBookPipeline(make_client(text=" ")).generate_narrative(sample_photos) == (
            NARRATIVE_EMPTY
        )
