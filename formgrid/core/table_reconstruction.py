"""
Table reconstruction for form pages.

This module rebuilds the cell grid of a form page from its primitives. The
detection follows a strategy chain evaluated per page; the first applicable
strategy is used and results are never blended:

1. Fill-based: thin filled rectangles are the ruling lines of most generated
   forms. Horizontal rules give both the row boundaries (their y) and the
   column boundaries (their x extents).
2. Line-based: explicit horizontal/vertical line segments are clustered into
   grid lines directly.
3. Text-position fallback: text runs are grouped into rows and merged into
   phrases; each phrase becomes a field. No rectangular grid is assumed.

A grid strategy that produces at most one field is treated as a failed
detection and the text-position fallback is used instead. Every strategy
drops cells smaller than the configured minimum size.

Every emitted field is labelled with LabelResolver, named with
normalize_field_name and typed with infer_field_type.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from formgrid.core.clustering import cluster_coordinates, grid_pairs
from formgrid.core.field_normalizer import normalize_field_name, infer_field_type
from formgrid.core.keywords import KeywordTables, load_keyword_tables
from formgrid.core.label_resolver import LabelConfig, LabelResolver
from formgrid.core.models import (
    BoundingBox,
    Field,
    FillKind,
    FillRect,
    LineSegment,
    PageData,
    TextRegion,
    TextRun,
)
from formgrid.core.ocr_layout import MergeConfig, OCRLayoutMerger
from formgrid.core.text_layout import (
    MergedRun,
    TextLayoutConfig,
    group_by_rows,
    merge_adjacent_runs,
    run_box,
    runs_from_ocr_words,
)
from formgrid.utils.exceptions import ConfigurationError, CoordinateError, ValidationError
from formgrid.utils.logging_config import time_it

logger = logging.getLogger(__name__)

STRATEGY_FILLS = "fills"
STRATEGY_LINES = "lines"
STRATEGY_TEXT = "text_positions"


@dataclass
class ReconstructionConfig:
    """Configuration parameters for table reconstruction.

    All distances are in page units.
    """

    # Fill classification
    fill_max_thickness: float = 2.0  # Thinner than this counts as a rule
    fill_min_length: float = 10.0  # Rules must be longer than this

    # Grid line clustering
    fill_cluster_threshold: float = 3.0
    line_cluster_threshold: float = 3.0
    include_page_bounds: bool = False  # Add page edges as grid lines in line mode

    # Cell filtering; grid cells at or below these sizes are slivers
    min_cell_width: float = 10.0
    min_cell_height: float = 10.0
    # Minimums for text-position groups
    min_text_width: float = 2.0
    min_text_height: float = 2.0

    # Text-position fallback and text grouping inside grids
    row_tolerance: float = 5.0
    merge_gap: float = 8.0
    char_width_estimate: float = 6.0
    default_text_height: float = 12.0

    # A grid result with this many fields or fewer counts as a failed detection
    min_grid_fields: int = 1

    def validate(self) -> None:
        for name, value in self.__dict__.items():
            if isinstance(value, bool):
                continue
            if value < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {value}")

    def text_layout(self) -> TextLayoutConfig:
        return TextLayoutConfig(
            char_width_estimate=self.char_width_estimate,
            default_text_height=self.default_text_height,
        )


@dataclass
class _Cell:
    row: int
    col: int
    bbox: BoundingBox


class TableReconstructor:
    """
    Reconstruct form fields from the primitives of a page.

    Example usage:
        reconstructor = TableReconstructor(ReconstructionConfig(row_tolerance=8.0))
        fields = reconstructor.reconstruct(page, page_width=612, page_height=792)
    """

    def __init__(
        self,
        config: Optional[ReconstructionConfig] = None,
        label_config: Optional[LabelConfig] = None,
        merge_config: Optional[MergeConfig] = None,
        tables: Optional[KeywordTables] = None,
    ):
        self.cfg = config if config is not None else ReconstructionConfig()
        self.cfg.validate()
        self.layout_cfg = self.cfg.text_layout()
        self.label_resolver = LabelResolver(label_config)
        self.ocr_merger = OCRLayoutMerger(merge_config)
        self.tables = tables or load_keyword_tables()

    def reconstruct(self, page: PageData, page_width: Optional[float] = None,
                    page_height: Optional[float] = None) -> List[Field]:
        """Reconstruct the fields of one page.

        Args:
            page: Page primitives
            page_width: Page width; defaults to ``page.width``
            page_height: Page height; defaults to ``page.height``

        Returns:
            Fields in row-major order; empty when the page has no usable content
        """
        if page is None:
            raise ValidationError("page must not be None")

        page_width = page_width if page_width is not None else page.width
        page_height = page_height if page_height is not None else page.height
        for name, value in (("page_width", page_width), ("page_height", page_height)):
            if value is not None and value <= 0:
                raise CoordinateError(f"{name} must be positive, got {value}")

        runs = self._page_text_runs(page)
        regions = [TextRegion(text=r.text, bbox=run_box(r, self.layout_cfg)) for r in runs]
        page_index = page.page_index

        logger.debug(
            f"Page {page_index}: {len(runs)} text runs, {len(page.lines)} lines, {len(page.fills)} fills"
        )

        grid_fields: List[Field] = []
        strategy = None

        # Strategy 1: ruling drawn as thin fills
        horizontal, vertical = self._classify_fills(page.fills)
        if horizontal or vertical:
            strategy = STRATEGY_FILLS
            columns, rows = self._fill_boundaries(horizontal, vertical)
            grid_fields = self._build_grid(columns, rows, runs, regions, page_index,
                                           page_width, page_height, strategy, merge_runs=True)

        # Strategy 2: explicit line segments
        elif page.lines:
            strategy = STRATEGY_LINES
            columns, rows = self._line_boundaries(page.lines, page_width, page_height)
            grid_fields = self._build_grid(columns, rows, runs, regions, page_index,
                                           page_width, page_height, strategy, merge_runs=False)

        if strategy is not None:
            logger.debug(f"Page {page_index}: '{strategy}' strategy produced {len(grid_fields)} fields")
            if len(grid_fields) > self.cfg.min_grid_fields:
                return grid_fields
            logger.debug(f"Page {page_index}: insufficient grid yield, using text positions")

        # Strategy 3: text positions
        text_fields = self._fields_from_text_positions(runs, regions, page_index, page_width, page_height)
        logger.debug(f"Page {page_index}: '{STRATEGY_TEXT}' strategy produced {len(text_fields)} fields")
        return text_fields if text_fields else grid_fields

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def _page_text_runs(self, page: PageData) -> List[TextRun]:
        if page.text_runs:
            return [r for r in page.text_runs if r.text and r.text.strip()]
        if page.ocr_words:
            return runs_from_ocr_words(self.ocr_merger.prepare(page.ocr_words))
        return []

    def _classify_fills(self, fills: Sequence[FillRect]) -> Tuple[List[FillRect], List[FillRect]]:
        horizontal, vertical = [], []
        for fill in fills:
            kind = fill.classify(self.cfg.fill_max_thickness, self.cfg.fill_min_length)
            if kind is FillKind.HORIZONTAL_LINE:
                horizontal.append(fill)
            elif kind is FillKind.VERTICAL_LINE:
                vertical.append(fill)
        return horizontal, vertical

    # ------------------------------------------------------------------
    # Grid boundaries
    # ------------------------------------------------------------------

    def _fill_boundaries(self, horizontal: List[FillRect],
                         vertical: List[FillRect]) -> Tuple[List[float], List[float]]:
        threshold = self.cfg.fill_cluster_threshold
        if horizontal:
            xs = [x for f in horizontal for x in (f.x, f.x + f.width)]
            ys = [f.y for f in horizontal]
        else:
            # Only vertical rules: columns from their x, rows from their extents
            xs = [f.x for f in vertical]
            ys = [y for f in vertical for y in (f.y, f.y + f.height)]
        return cluster_coordinates(xs, threshold), cluster_coordinates(ys, threshold)

    def _line_boundaries(self, lines: Sequence[LineSegment], page_width: Optional[float],
                         page_height: Optional[float]) -> Tuple[List[float], List[float]]:
        ys = [line.y for line in lines if line.is_horizontal]
        xs = [line.x for line in lines if not line.is_horizontal]
        if self.cfg.include_page_bounds:
            if page_width is not None:
                xs.extend([0.0, page_width])
            if page_height is not None:
                ys.extend([0.0, page_height])
        threshold = self.cfg.line_cluster_threshold
        return cluster_coordinates(xs, threshold), cluster_coordinates(ys, threshold)

    def _grid_cells(self, columns: List[float], rows: List[float], page_width: Optional[float],
                    page_height: Optional[float]) -> List[_Cell]:
        cells = []
        for row_idx, (top, bottom) in enumerate(grid_pairs(rows)):
            for col_idx, (left, right) in enumerate(grid_pairs(columns)):
                box = self._clip(left, top, right, bottom, page_width, page_height,
                                 self.cfg.min_cell_width, self.cfg.min_cell_height)
                if box is None:
                    continue
                cells.append(_Cell(row=row_idx, col=col_idx, bbox=box))
        return cells

    def _clip(self, left: float, top: float, right: float, bottom: float,
              page_width: Optional[float], page_height: Optional[float],
              min_width: float, min_height: float) -> Optional[BoundingBox]:
        left, top = max(left, 0.0), max(top, 0.0)
        if page_width is not None:
            right = min(right, page_width)
        if page_height is not None:
            bottom = min(bottom, page_height)
        width, height = right - left, bottom - top
        if width <= min_width or height <= min_height:
            return None
        return BoundingBox(left, top, width, height)

    # ------------------------------------------------------------------
    # Field construction
    # ------------------------------------------------------------------

    def _build_grid(self, columns: List[float], rows: List[float], runs: List[TextRun],
                    regions: List[TextRegion], page_index: int, page_width: Optional[float],
                    page_height: Optional[float], strategy: str, merge_runs: bool) -> List[Field]:
        cells = self._grid_cells(columns, rows, page_width, page_height)
        if not cells:
            return []

        if merge_runs:
            pieces = [
                (m.x, m.y, m.text)
                for row in group_by_rows(runs, self.cfg.row_tolerance)
                for m in merge_adjacent_runs(row, self.cfg.merge_gap, self.layout_cfg)
            ]
        else:
            pieces = [(r.x, r.y, r.text.strip()) for r in runs]

        # Cells are disjoint apart from shared edges; the first match takes the text
        cell_texts: List[List[str]] = [[] for _ in cells]
        for px, py, text in pieces:
            for i, cell in enumerate(cells):
                if cell.bbox.contains_point(px, py):
                    cell_texts[i].append(text)
                    break

        return [
            self._make_field(cell.bbox, " ".join(texts).strip(), regions, page_index,
                             cell.row, cell.col, strategy)
            for cell, texts in zip(cells, cell_texts)
        ]

    def _fields_from_text_positions(self, runs: List[TextRun], regions: List[TextRegion],
                                    page_index: int, page_width: Optional[float],
                                    page_height: Optional[float]) -> List[Field]:
        fields = []
        for row_idx, row in enumerate(group_by_rows(runs, self.cfg.row_tolerance)):
            merged: List[MergedRun] = merge_adjacent_runs(row, self.cfg.merge_gap, self.layout_cfg)
            for col_idx, group in enumerate(merged):
                box = self._clip(group.bbox.x, group.bbox.y, group.bbox.right, group.bbox.bottom,
                                 page_width, page_height,
                                 self.cfg.min_text_width, self.cfg.min_text_height)
                if box is None:
                    logger.debug(f"Dropping undersized text group '{group.text[:20]}'")
                    continue
                fields.append(self._make_field(box, group.text, regions, page_index,
                                               row_idx, col_idx, STRATEGY_TEXT))
        return fields

    def _make_field(self, box: BoundingBox, cell_text: str, regions: List[TextRegion],
                    page_index: int, row: int, col: int, strategy: str) -> Field:
        label = self.label_resolver.resolve(box, regions)
        label_text = label or cell_text
        return Field(
            id=f"field-p{page_index}-r{row}-c{col}",
            bbox=box,
            canonical_name=normalize_field_name(
                label_text, f"field_p{page_index}_r{row}_c{col}", self.tables
            ),
            field_type=infer_field_type(label_text, self.tables),
            text=cell_text,
            label=label_text or None,
            default_value=cell_text,
            page_index=page_index,
            row=row,
            col=col,
            strategy=strategy,
        )


@time_it(logger=logger)
def reconstruct_fields(page: PageData, page_width: Optional[float] = None,
                       page_height: Optional[float] = None,
                       config: Optional[ReconstructionConfig] = None) -> List[Field]:
    """Reconstruct the fields of one page with default label and merge settings."""
    return TableReconstructor(config).reconstruct(page, page_width, page_height)
