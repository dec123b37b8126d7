"""
Unit tests for directional label resolution.
"""

import pytest

from formgrid.core.label_resolver import (
    LabelConfig,
    LabelResolver,
    resolve_label,
    resolve_label_with_tier,
)
from formgrid.core.models import BoundingBox, TextRegion
from formgrid.utils.exceptions import ConfigurationError, ValidationError


def region(text, x, y, w, h=12.0):
    return TextRegion(text=text, bbox=BoundingBox(x, y, w, h))


class TestLabelResolver:
    """Field box is (100, 100) 100x20 in every test unless stated otherwise."""

    @pytest.fixture
    def field_box(self):
        return BoundingBox(100.0, 100.0, 100.0, 20.0)

    def test_closest_left_label_wins(self, field_box):
        candidates = [region("Far", 0, 104, 30), region("Name", 40, 104, 50)]

        assert resolve_label_with_tier(field_box, candidates) == ("Name", "left")

    def test_left_tier_beats_closer_above_label(self, field_box):
        candidates = [region("Above", 110, 80, 60), region("Left", 40, 104, 50)]

        assert resolve_label(field_box, candidates) == "Left"

    def test_left_label_beyond_max_distance_is_ignored(self, field_box):
        candidates = [region("Far", 0, 104, 10)]

        assert resolve_label(field_box, candidates) is None

    def test_above_label_with_overlap(self, field_box):
        candidates = [region("Title", 110, 80, 60)]

        assert resolve_label_with_tier(field_box, candidates) == ("Title", "above")

    def test_above_label_centered_without_overlap(self):
        narrow = BoundingBox(100.0, 100.0, 20.0, 20.0)
        candidates = [region("Qty", 125, 70, 10)]

        assert resolve_label_with_tier(narrow, candidates) == ("Qty", "above")

    def test_inside_label(self, field_box):
        candidates = [region("Printed", 105, 103, 30)]

        assert resolve_label_with_tier(field_box, candidates) == ("Printed", "inside")

    def test_right_label(self, field_box):
        candidates = [region("kg", 210, 104, 40)]

        assert resolve_label_with_tier(field_box, candidates) == ("kg", "right")

    def test_nothing_qualifies(self, field_box):
        assert resolve_label_with_tier(field_box, [region("Elsewhere", 500, 500, 40)]) == (None, None)

    def test_blank_candidates_are_ignored(self, field_box):
        candidates = [region("   ", 40, 104, 50), region("kg", 210, 104, 40)]

        assert resolve_label(field_box, candidates) == "kg"

    def test_label_text_is_stripped(self, field_box):
        assert resolve_label(field_box, [region("  Name  ", 40, 104, 50)]) == "Name"

    def test_equal_distance_keeps_first_candidate(self, field_box):
        candidates = [region("First", 40, 104, 50), region("Second", 40, 106, 50)]

        assert resolve_label(field_box, candidates) == "First"

    def test_custom_config_extends_left_search(self, field_box):
        resolver = LabelResolver(LabelConfig(left_max_distance=120.0))

        assert resolver.resolve(field_box, [region("Far", 0, 104, 10)]) == "Far"

    def test_empty_candidates(self, field_box):
        assert resolve_label(field_box, []) is None

    def test_none_arguments_raise(self, field_box):
        with pytest.raises(ValidationError):
            resolve_label(None, [])
        with pytest.raises(ValidationError):
            resolve_label(field_box, None)

    def test_negative_tolerance_raises(self):
        with pytest.raises(ConfigurationError):
            LabelResolver(LabelConfig(row_tolerance=-1.0))
