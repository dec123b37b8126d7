"""
Text-position layout helpers.

Row grouping and horizontal merging of text runs are shared by the grid
strategies (to assign whole phrases to cells) and by the text-position
fallback. The module also hosts two lighter heuristics that work on text
alone: column/row analysis of tabular text and colon-terminated label
detection.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from formgrid.core.clustering import cluster_coordinates
from formgrid.core.field_normalizer import (
    normalize_field_name,
    infer_field_type,
    default_value_for,
)
from formgrid.core.keywords import KeywordTables
from formgrid.core.models import BoundingBox, Field, OCRWord, TextRun
from formgrid.utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

LABEL_TERMINATORS = (":", "：")


@dataclass
class TextLayoutConfig:
    """Tunable constants for text-only layout analysis."""

    char_width_estimate: float = 6.0  # Used when a run carries no width
    default_text_height: float = 12.0  # Used when a run carries no height
    run_separator: str = " "

    # Table structure analysis
    table_row_tolerance: float = 20.0
    column_tolerance: float = 50.0
    suggested_field_width: float = 120.0
    suggested_field_height: float = 25.0

    # Colon-terminated label detection
    label_row_tolerance: float = 15.0
    max_value_gap: float = 50.0
    value_offset: float = 10.0
    max_value_width: float = 200.0
    value_height_ratio: float = 1.2

    def validate(self) -> None:
        for name, value in self.__dict__.items():
            if isinstance(value, float) and value < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {value}")


@dataclass
class MergedRun:
    """Horizontally adjacent runs joined into one phrase."""

    text: str
    bbox: BoundingBox
    runs: List[TextRun] = field(default_factory=list)

    @property
    def x(self) -> float:
        return self.bbox.x

    @property
    def y(self) -> float:
        return self.bbox.y


@dataclass
class TableStructure:
    columns: int
    rows: int
    suggested_fields: List[Field] = field(default_factory=list)


def run_width(run: TextRun, config: TextLayoutConfig) -> float:
    if run.width is not None:
        return run.width
    return len(run.text) * config.char_width_estimate


def run_height(run: TextRun, config: TextLayoutConfig) -> float:
    if run.height is not None:
        return run.height
    return config.default_text_height


def run_box(run: TextRun, config: TextLayoutConfig) -> BoundingBox:
    return BoundingBox(run.x, run.y, run_width(run, config), run_height(run, config))


def runs_from_ocr_words(words: Sequence[OCRWord]) -> List[TextRun]:
    """Convert OCR words (or merged regions) into text runs."""
    return [
        TextRun(x=w.bbox[0], y=w.bbox[1], width=w.bbox[2], height=w.bbox[3], text=w.text)
        for w in words
    ]


def group_by_rows(runs: Sequence[TextRun], tolerance: float) -> List[List[TextRun]]:
    """Group runs whose y is within ``tolerance`` of a row's first run.

    Blank runs are skipped. Rows come back top to bottom, each sorted left to
    right.
    """
    if tolerance < 0:
        raise ConfigurationError(f"Row tolerance must be non-negative, got {tolerance}")

    rows: List[List[TextRun]] = []
    for run in sorted(runs, key=lambda r: (r.y, r.x)):
        if not run.text.strip():
            continue
        for row in rows:
            if abs(run.y - row[0].y) < tolerance:
                row.append(run)
                break
        else:
            rows.append([run])

    for row in rows:
        row.sort(key=lambda r: r.x)
    rows.sort(key=lambda row: row[0].y)
    return rows


def merge_adjacent_runs(row: Sequence[TextRun], max_gap: float,
                        config: Optional[TextLayoutConfig] = None) -> List[MergedRun]:
    """Merge runs of one row whose horizontal gap is below ``max_gap``."""
    config = config or TextLayoutConfig()
    ordered = sorted(row, key=lambda r: r.x)
    if not ordered:
        return []

    groups: List[List[TextRun]] = [[ordered[0]]]
    for run in ordered[1:]:
        previous = groups[-1][-1]
        if run.x - (previous.x + run_width(previous, config)) < max_gap:
            groups[-1].append(run)
        else:
            groups.append([run])

    merged = []
    for group in groups:
        box = run_box(group[0], config)
        for run in group[1:]:
            box = box.union(run_box(run, config))
        text = config.run_separator.join(r.text.strip() for r in group if r.text.strip())
        merged.append(MergedRun(text=text, bbox=box, runs=list(group)))
    return merged


def analyze_table_structure(runs: Sequence[TextRun], page_index: int = 0,
                            config: Optional[TextLayoutConfig] = None,
                            tables: Optional[KeywordTables] = None) -> TableStructure:
    """Estimate column/row counts of tabular text and suggest entry fields.

    Each text found at a column position is treated as a header; a field of
    fixed size is suggested just below it.
    """
    config = config or TextLayoutConfig()
    if not runs:
        return TableStructure(columns=0, rows=0)

    rows = group_by_rows(runs, config.table_row_tolerance)
    columns = cluster_coordinates([r.x for r in runs], config.column_tolerance)

    suggested: List[Field] = []
    for row_idx, row in enumerate(rows):
        row_y = row[0].y
        for col_idx, col_x in enumerate(columns):
            header = next(
                (r for r in row
                 if abs(r.x - col_x) < config.column_tolerance and abs(r.y - row_y) <= 10.0),
                None,
            )
            if header is None:
                continue
            text = header.text.strip()
            field_type = infer_field_type(text, tables)
            suggested.append(Field(
                id=f"field-p{page_index}-r{row_idx}-c{col_idx}",
                bbox=BoundingBox(
                    max(col_x - 5.0, 0.0),
                    header.y + run_height(header, config) + 10.0,
                    config.suggested_field_width,
                    config.suggested_field_height,
                ),
                canonical_name=normalize_field_name(
                    text, f"field_p{page_index}_r{row_idx}_c{col_idx}", tables
                ),
                field_type=field_type,
                label=text or None,
                default_value=default_value_for(field_type),
                page_index=page_index,
                row=row_idx,
                col=col_idx,
                strategy="table_analysis",
            ))

    logger.debug(f"Table analysis: {len(columns)} columns, {len(rows)} rows, {len(suggested)} fields")
    return TableStructure(columns=len(columns), rows=len(rows), suggested_fields=suggested)


def find_label_value_pairs(runs: Sequence[TextRun], page_width: float, page_index: int = 0,
                           config: Optional[TextLayoutConfig] = None,
                           tables: Optional[KeywordTables] = None) -> List[Field]:
    """Create a field for every colon-terminated label.

    The value area is the next run on the row when it starts within
    ``max_value_gap`` of the label, otherwise a blank area to the label's
    right clipped to the page width.
    """
    config = config or TextLayoutConfig()
    fields: List[Field] = []

    for row_idx, row in enumerate(group_by_rows(runs, config.label_row_tolerance)):
        for i, run in enumerate(row):
            text = run.text.strip()
            if not text.endswith(LABEL_TERMINATORS):
                continue

            label_box = run_box(run, config)
            value_box = None
            if i + 1 < len(row):
                next_run = row[i + 1]
                if next_run.x - label_box.right < config.max_value_gap:
                    value_box = run_box(next_run, config)

            if value_box is None:
                x = label_box.right + config.value_offset
                width = min(config.max_value_width, page_width - x)
                if width <= 0:
                    logger.debug(f"No room for a value right of label '{text}'")
                    continue
                value_box = BoundingBox(x, label_box.y, width, label_box.height * config.value_height_ratio)

            if value_box.width <= 0 or value_box.height <= 0:
                continue

            label = text.rstrip("".join(LABEL_TERMINATORS)).strip()
            fields.append(Field(
                id=f"field-p{page_index}-r{row_idx}-c{i}",
                bbox=value_box,
                canonical_name=normalize_field_name(label, f"field_p{page_index}_r{row_idx}_c{i}", tables),
                field_type=infer_field_type(label, tables),
                label=label or None,
                page_index=page_index,
                row=row_idx,
                col=i,
                strategy="label_value",
            ))

    return fields
