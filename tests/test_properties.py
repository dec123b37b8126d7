"""
Property-based tests for invariants that must hold for any input.
"""

import re

from hypothesis import given, settings, strategies as st

from formgrid.core.clustering import cluster_coordinates
from formgrid.core.field_normalizer import normalize_field_name
from formgrid.core.models import (
    FieldType,
    FillRect,
    LearningRecord,
    LineOrientation,
    LineSegment,
    OCRWord,
    PageData,
    TextRun,
)
from formgrid.core.ocr_layout import clean_text, merge_nearby_text_regions
from formgrid.core.suggestions import LearningStore, SuggestionEngine
from formgrid.core.table_reconstruction import STRATEGY_TEXT, TableReconstructor, reconstruct_fields

NAME_RE = re.compile(r"^[a-z0-9_]+$")

coordinates = st.floats(min_value=-1e6, max_value=1e6, allow_nan=False, allow_infinity=False)
ocr_words = st.builds(
    OCRWord,
    text=st.text(min_size=1, max_size=10),
    confidence=st.floats(min_value=0, max_value=100),
    bbox=st.tuples(
        st.floats(min_value=0, max_value=1000),
        st.floats(min_value=0, max_value=1000),
        st.floats(min_value=0, max_value=200),
        st.floats(min_value=0, max_value=50),
    ),
)

page_coords = st.floats(min_value=0, max_value=600, allow_nan=False, allow_infinity=False)
labels = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789 :", min_size=1, max_size=12)
text_runs = st.builds(
    TextRun,
    x=page_coords,
    y=page_coords,
    text=labels.filter(lambda s: s.strip()),
    width=st.one_of(st.none(), st.floats(min_value=0, max_value=200)),
    height=st.one_of(st.none(), st.floats(min_value=0, max_value=30)),
)
fill_rects = st.builds(
    FillRect,
    x=page_coords,
    y=page_coords,
    width=st.floats(min_value=0, max_value=400),
    height=st.floats(min_value=0, max_value=400),
)
line_segments = st.builds(
    LineSegment,
    x=page_coords,
    y=page_coords,
    length=st.floats(min_value=0, max_value=600),
    orientation=st.sampled_from(list(LineOrientation)),
)

# Built once; engine construction loads keyword tables and seeds the store
ENGINE = SuggestionEngine()


class TestProperties:

    @given(values=st.lists(coordinates, max_size=50),
           threshold=st.floats(min_value=0, max_value=1000, allow_nan=False))
    def test_cluster_output_is_spread_and_bounded(self, values, threshold):
        result = cluster_coordinates(values, threshold)

        assert len(result) <= len(values)
        assert result == sorted(result)
        for a, b in zip(result, result[1:]):
            assert b - a > threshold

    @given(text=st.text())
    def test_clean_text_is_idempotent(self, text):
        once = clean_text(text)

        assert clean_text(once) == once

    @given(raw=st.one_of(st.none(), st.text()), fallback=st.text())
    def test_normalized_names_are_identifiers(self, raw, fallback):
        assert NAME_RE.match(normalize_field_name(raw, fallback))

    @given(words=st.lists(ocr_words, max_size=20), threshold=st.floats(min_value=0, max_value=100))
    def test_merge_never_grows(self, words, threshold):
        assert len(merge_nearby_text_regions(words, threshold)) <= len(words)

    @settings(max_examples=50, deadline=None)
    @given(text=st.text(max_size=30), context=st.lists(st.text(max_size=10), max_size=3))
    def test_suggestion_confidences_are_bounded(self, text, context):
        result = ENGINE.generate_suggestion(text, context)

        assert 0.0 <= result.confidence <= 1.0
        assert len(result.alternatives) <= 2
        assert all(0.0 <= conf <= 1.0 for _, conf in result.alternatives)

    @settings(deadline=None)
    @given(choices=st.lists(
        st.tuples(st.sampled_from(["a", "b", "c", "d", "e", "f"]), st.sampled_from(list(FieldType)),
                  st.floats(min_value=0, max_value=1)),
        max_size=60,
    ))
    def test_store_is_bounded_and_unique(self, choices):
        store = LearningStore(max_records=8, keep_recent=4, keep_confident=4)
        for text, field_type, confidence in choices:
            store.add(LearningRecord(text=text, context=[], chosen_type=field_type, confidence=confidence))

        keys = [(r.text, r.chosen_type) for r in store.records]
        assert len(store) <= 8
        assert len(keys) == len(set(keys))

    @given(first=ocr_words, second=ocr_words, threshold=st.floats(min_value=0, max_value=100))
    def test_two_words_merge_only_within_threshold(self, first, second, threshold):
        close = (
            abs(second.box.center_y - first.box.center_y) <= threshold
            and abs(second.box.x - first.box.right) <= threshold
        )

        result = merge_nearby_text_regions([first, second], threshold)

        assert len(result) == (1 if close else 2)

    @given(
        placements=st.lists(
            st.tuples(st.booleans(), st.floats(min_value=0, max_value=500), st.floats(min_value=0, max_value=5)),
            min_size=1, max_size=20,
        ),
        threshold=st.floats(min_value=0, max_value=50),
    )
    def test_merged_regions_never_join_distant_lines(self, placements, threshold):
        # Equal heights keep a region's center between its words' centers, so two
        # bands whose centers are more than threshold apart can never meet
        lower_offset = 5 + threshold + 1
        words = [
            OCRWord(text="lower" if lower else "upper", confidence=90,
                    bbox=(x, offset + (lower_offset if lower else 0), 30, 10))
            for lower, x, offset in placements
        ]

        for region in merge_nearby_text_regions(words, threshold):
            assert len(set(region.text.split())) == 1

    @settings(max_examples=50, deadline=None)
    @given(
        runs=st.lists(text_runs, max_size=8),
        fills=st.lists(fill_rects, max_size=6),
        lines=st.lists(line_segments, max_size=6),
    )
    def test_reconstructed_cells_are_valid(self, runs, fills, lines):
        page = PageData(text_runs=runs, fills=fills, lines=lines)

        fields = reconstruct_fields(page, page_width=612, page_height=792)

        for f in fields:
            assert f.bbox.width > 0 and f.bbox.height > 0
            assert f.bbox.right <= 612 and f.bbox.bottom <= 792
            assert NAME_RE.match(f.canonical_name)
        assert len({f.id for f in fields}) == len(fields)

    @settings(max_examples=50, deadline=None)
    @given(
        runs=st.lists(st.builds(TextRun, x=page_coords, y=page_coords, text=labels.filter(lambda s: s.strip())),
                      min_size=1, max_size=8),
        top=page_coords,
        gap=st.one_of(st.none(), st.floats(min_value=15, max_value=150)),
    )
    def test_degenerate_grid_falls_back_to_text_positions(self, runs, top, gap):
        # One rule gives no cells; two rules give a single cell
        fills = [FillRect(x=0, y=top, width=300, height=1)]
        if gap is not None:
            fills.append(FillRect(x=0, y=top + gap, width=300, height=1))

        fields = TableReconstructor().reconstruct(PageData(text_runs=runs, fills=fills))
        text_only = TableReconstructor().reconstruct(PageData(text_runs=runs))

        assert text_only
        assert all(f.strategy == STRATEGY_TEXT for f in fields)
        assert [f.to_dict() for f in fields] == [f.to_dict() for f in text_only]
