"""
Unit tests for OCR word filtering, merging and text cleaning.
"""

import pytest

from formgrid.core.models import OCRWord
from formgrid.core.ocr_layout import (
    MergeConfig,
    OCRLayoutMerger,
    clean_text,
    filter_by_confidence,
    merge_nearby_text_regions,
    merge_ocr_words,
)
from formgrid.utils.exceptions import ConfigurationError


def word(text, x, y, w=40.0, h=12.0, confidence=90.0):
    return OCRWord(text=text, confidence=confidence, bbox=(x, y, w, h))


class TestFilterByConfidence:

    def test_keeps_words_at_or_above_threshold(self):
        words = [word("low", 0, 0, confidence=59.9), word("edge", 0, 0, confidence=60.0),
                 word("high", 0, 0, confidence=95.0)]

        kept = filter_by_confidence(words)

        assert [w.text for w in kept] == ["edge", "high"]
        assert len(words) == 3

    def test_custom_threshold(self):
        words = [word("a", 0, 0, confidence=70.0), word("b", 0, 0, confidence=80.0)]

        assert [w.text for w in filter_by_confidence(words, 75.0)] == ["b"]


class TestMergeNearbyTextRegions:

    def test_hello_world_merges(self):
        words = [word("Hello", 0, 0), word("World", 45, 0)]

        merged = merge_nearby_text_regions(words, 10)

        assert len(merged) == 1
        assert merged[0].text == "Hello World"
        assert merged[0].bbox == (0.0, 0.0, 85.0, 12.0)
        assert merged[0].confidence == pytest.approx(90.0)

    def test_confidence_is_averaged(self):
        words = [word("Hello", 0, 0, confidence=80.0), word("World", 45, 0, confidence=100.0)]

        merged = merge_ocr_words(words, 10)

        assert merged[0].confidence == pytest.approx(90.0)

    def test_different_lines_stay_separate(self):
        words = [word("Hello", 0, 0), word("World", 45, 50)]

        assert len(merge_nearby_text_regions(words, 10)) == 2

    def test_large_gap_stays_separate(self):
        words = [word("Hello", 0, 0), word("World", 100, 0)]

        assert [w.text for w in merge_nearby_text_regions(words, 10)] == ["Hello", "World"]

    def test_output_follows_input_order(self):
        words = [word("Bottom", 0, 300), word("Top", 0, 0)]

        assert [w.text for w in merge_nearby_text_regions(words, 10)] == ["Bottom", "Top"]

    def test_inputs_are_not_modified(self):
        hello, world = word("Hello", 0, 0), word("World", 45, 0)

        merge_nearby_text_regions([hello, world], 10)

        assert hello.text == "Hello"
        assert hello.bbox == (0.0, 0.0, 40.0, 12.0)

    def test_negative_threshold_raises(self):
        with pytest.raises(ConfigurationError):
            merge_nearby_text_regions([word("a", 0, 0)], -1)


class TestCleanText:

    def test_removes_symbols_and_collapses_whitespace(self):
        assert clean_text("  Name:  (姓名) ") == "Name 姓名"

    def test_removing_symbols_does_not_leave_double_spaces(self):
        assert clean_text("a - b") == "a b"

    def test_is_idempotent(self):
        once = clean_text("Total   Amount ($) / 金額：")
        assert clean_text(once) == once

    def test_empty_string(self):
        assert clean_text("") == ""


class TestOCRLayoutMerger:

    def test_prepare_filters_merges_and_sorts(self):
        words = [
            word("Second", 0, 100),
            word("noise", 300, 0, confidence=20.0),
            word("First", 0, 0),
            word("line", 45, 0),
        ]

        regions = OCRLayoutMerger().prepare(words)

        assert [r.text for r in regions] == ["First line", "Second"]

    def test_invalid_config_raises(self):
        with pytest.raises(ConfigurationError):
            OCRLayoutMerger(MergeConfig(min_confidence=150.0))
