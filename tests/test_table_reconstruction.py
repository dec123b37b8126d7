"""
Unit tests for table reconstruction strategies.

The test page is a two-column form drawn at x = 50 / 150 / 350 and
y = 100 / 140 / 180:

    +--------+------------------+
    | Name   | John             |
    +--------+------------------+
    | Amount | 100              |
    +--------+------------------+
"""

import pytest

from formgrid.core.models import FieldType, FillRect, LineOrientation, LineSegment, OCRWord, PageData, TextRun
from formgrid.core.table_reconstruction import (
    ReconstructionConfig,
    TableReconstructor,
    reconstruct_fields,
)
from formgrid.utils.exceptions import ConfigurationError, CoordinateError, ValidationError


class TestTableReconstructor:
    """Test suite for the reconstruction strategy chain."""

    def create_form_runs(self):
        return [
            TextRun(x=60, y=110, text="Name"),
            TextRun(x=160, y=110, text="John"),
            TextRun(x=60, y=150, text="Amount"),
            TextRun(x=160, y=150, text="100"),
        ]

    def create_rule_fills(self, ys=(100.0, 140.0, 180.0)):
        """Each horizontal rule is drawn as two thin fills split at x=150."""
        fills = []
        for y in ys:
            fills.append(FillRect(x=50, y=y, width=100, height=1))
            fills.append(FillRect(x=150, y=y, width=200, height=1))
        # A large background fill is not a rule
        fills.append(FillRect(x=0, y=0, width=400, height=300))
        return fills

    def create_lines(self, xs=(50.0, 150.0, 350.0), ys=(100.0, 140.0, 180.0)):
        lines = [LineSegment(x=50, y=y, length=300, orientation=LineOrientation.HORIZONTAL) for y in ys]
        lines.extend(LineSegment(x=x, y=100, length=80, orientation=LineOrientation.VERTICAL) for x in xs)
        return lines

    def fields_by_id(self, fields):
        return {f.id: f for f in fields}

    def test_fill_strategy_builds_grid(self):
        page = PageData(text_runs=self.create_form_runs(), fills=self.create_rule_fills())

        fields = TableReconstructor().reconstruct(page)

        assert len(fields) == 4
        assert {f.strategy for f in fields} == {"fills"}
        by_id = self.fields_by_id(fields)
        assert set(by_id) == {
            "field-p0-r0-c0", "field-p0-r0-c1", "field-p0-r1-c0", "field-p0-r1-c1",
        }
        assert by_id["field-p0-r0-c1"].bbox.to_list() == [150.0, 100.0, 200.0, 40.0]

    def test_fill_strategy_assigns_text_and_labels(self):
        page = PageData(text_runs=self.create_form_runs(), fills=self.create_rule_fills())

        by_id = self.fields_by_id(TableReconstructor().reconstruct(page))

        name_value = by_id["field-p0-r0-c1"]
        assert name_value.text == "John"
        assert name_value.default_value == "John"
        assert name_value.label == "Name"
        assert name_value.canonical_name == "name"
        assert name_value.field_type is FieldType.TEXT

        amount_value = by_id["field-p0-r1-c1"]
        assert amount_value.text == "100"
        assert amount_value.label == "Amount"
        assert amount_value.canonical_name == "amount"
        assert amount_value.field_type is FieldType.NUMBER

        assert by_id["field-p0-r0-c0"].label == "Name"

    def test_fill_strategy_uses_vertical_rules_when_no_horizontal_rules(self):
        fills = [FillRect(x=x, y=100, width=1, height=80) for x in (50, 150, 350)]
        page = PageData(text_runs=self.create_form_runs(), fills=fills)

        fields = TableReconstructor().reconstruct(page)

        # Rows come from the rule extents, so one row of two cells
        assert [f.id for f in fields] == ["field-p0-r0-c0", "field-p0-r0-c1"]
        assert fields[0].strategy == "fills"

    def test_line_strategy_builds_grid(self):
        page = PageData(text_runs=self.create_form_runs(), lines=self.create_lines())

        fields = TableReconstructor().reconstruct(page)

        assert len(fields) == 4
        assert {f.strategy for f in fields} == {"lines"}
        assert self.fields_by_id(fields)["field-p0-r1-c1"].text == "100"

    def test_fills_take_precedence_over_lines(self):
        page = PageData(
            text_runs=self.create_form_runs(),
            fills=self.create_rule_fills(),
            lines=self.create_lines(),
        )

        fields = TableReconstructor().reconstruct(page)

        assert {f.strategy for f in fields} == {"fills"}

    def test_single_cell_grid_falls_back_to_text_positions(self):
        runs = [TextRun(x=60, y=110, text="Name"), TextRun(x=210, y=110, text="John")]
        fills = [FillRect(x=50, y=y, width=300, height=1) for y in (100, 140)]
        page = PageData(text_runs=runs, fills=fills)

        fields = TableReconstructor().reconstruct(page)

        assert [f.text for f in fields] == ["Name", "John"]
        assert {f.strategy for f in fields} == {"text_positions"}

    def test_single_cell_grid_is_kept_without_text(self):
        fills = [FillRect(x=50, y=y, width=300, height=1) for y in (100, 140)]

        fields = TableReconstructor().reconstruct(PageData(fills=fills))

        assert len(fields) == 1
        assert fields[0].strategy == "fills"
        assert fields[0].label is None
        assert fields[0].canonical_name == "field_p0_r0_c0"

    def test_text_position_fallback_merges_adjacent_runs(self):
        runs = [TextRun(x=10, y=10, text="First", width=30), TextRun(x=45, y=11, text="Name")]

        fields = TableReconstructor().reconstruct(PageData(text_runs=runs))

        assert len(fields) == 1
        assert fields[0].text == "First Name"
        assert fields[0].strategy == "text_positions"
        assert fields[0].bbox.to_list() == [10.0, 10.0, 59.0, 13.0]

    def test_fallback_tolerances_are_configurable(self):
        runs = [TextRun(x=10, y=10, text="First", width=30), TextRun(x=45, y=11, text="Name")]
        config = ReconstructionConfig(merge_gap=2.0)

        fields = TableReconstructor(config).reconstruct(PageData(text_runs=runs))

        assert [f.text for f in fields] == ["First", "Name"]

    def test_slivers_are_discarded(self):
        lines = self.create_lines(xs=(50.0, 55.0, 150.0))
        page = PageData(text_runs=self.create_form_runs(), lines=lines)

        fields = TableReconstructor().reconstruct(page)

        assert len(fields) == 2
        assert all(f.bbox.width > 10 and f.bbox.height > 10 for f in fields)

    def test_small_text_is_kept_by_text_positions(self):
        runs = [
            TextRun(x=50, y=100, text="Name", width=24, height=9),
            TextRun(x=50, y=130, text="Date", width=24, height=9),
            TextRun(x=50, y=160, text="Address", width=40, height=9),
        ]

        fields = reconstruct_fields(PageData(text_runs=runs), page_width=612, page_height=792)

        assert [f.text for f in fields] == ["Name", "Date", "Address"]
        assert all(f.bbox.height == 9 for f in fields)

    def test_single_character_run_is_kept(self):
        fields = TableReconstructor().reconstruct(PageData(text_runs=[TextRun(x=10, y=10, text="X")]))

        assert [f.text for f in fields] == ["X"]
        assert fields[0].bbox.width == 6

    def test_text_minimums_are_configurable(self):
        runs = [TextRun(x=50, y=100, text="Name", width=24, height=9)]
        config = ReconstructionConfig(min_text_height=10.0)

        assert TableReconstructor(config).reconstruct(PageData(text_runs=runs)) == []

    def test_cells_are_clipped_to_page(self):
        page = PageData(text_runs=self.create_form_runs(), lines=self.create_lines())

        fields = TableReconstructor().reconstruct(page, page_width=120, page_height=792)

        assert len(fields) == 2
        assert all(f.bbox.right <= 120 for f in fields)

    def test_page_bounds_can_be_added_as_grid_lines(self):
        lines = [LineSegment(x=0, y=y, length=300, orientation=LineOrientation.HORIZONTAL)
                 for y in (100.0, 140.0)]
        config = ReconstructionConfig(include_page_bounds=True)

        fields = TableReconstructor(config).reconstruct(PageData(lines=lines), 300, 200)

        # Columns span the page; rows are split at 100 and 140
        assert [f.bbox.to_list() for f in fields] == [
            [0.0, 0.0, 300.0, 100.0],
            [0.0, 100.0, 300.0, 40.0],
            [0.0, 140.0, 300.0, 60.0],
        ]

    def test_ocr_words_are_used_without_text_runs(self):
        words = [
            OCRWord(text="Hello", confidence=90, bbox=(0, 0, 40, 12)),
            OCRWord(text="World", confidence=90, bbox=(45, 0, 40, 12)),
            OCRWord(text="noise", confidence=30, bbox=(300, 300, 40, 12)),
        ]

        fields = TableReconstructor().reconstruct(PageData(ocr_words=words))

        assert [f.text for f in fields] == ["Hello World"]

    def test_page_index_is_used_in_ids(self):
        page = PageData(text_runs=[TextRun(x=10, y=10, text="Remarks")], page_index=3)

        fields = TableReconstructor().reconstruct(page)

        assert fields[0].id == "field-p3-r0-c0"

    def test_empty_page_gives_no_fields(self):
        assert TableReconstructor().reconstruct(PageData()) == []

    def test_fresh_list_per_call(self):
        page = PageData(text_runs=self.create_form_runs(), fills=self.create_rule_fills())
        reconstructor = TableReconstructor()

        first = reconstructor.reconstruct(page)
        second = reconstructor.reconstruct(page)

        assert first is not second
        assert [f.to_dict() for f in first] == [f.to_dict() for f in second]

    def test_invalid_page_dimensions_raise(self):
        with pytest.raises(CoordinateError):
            TableReconstructor().reconstruct(PageData(), page_width=-1)

    def test_none_page_raises(self):
        with pytest.raises(ValidationError):
            TableReconstructor().reconstruct(None)

    def test_negative_config_raises(self):
        with pytest.raises(ConfigurationError):
            TableReconstructor(ReconstructionConfig(row_tolerance=-1.0))


class TestReconstructFields:

    def test_functional_entry_point(self):
        runs = [TextRun(x=10, y=10, text="Remarks")]

        fields = reconstruct_fields(PageData(text_runs=runs), 612, 792)

        assert len(fields) == 1
        assert fields[0].canonical_name == "remarks"
