"""
Page and document orchestration.

FieldDetectionPipeline wires the reconstruction, labelling and suggestion
components together with one PipelineConfig, processes documents page by
page and optionally refines field types with the SuggestionEngine.
"""

import json
import logging
from dataclasses import dataclass, field, fields as dataclass_fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from formgrid.core.keywords import KeywordTables, load_keyword_tables
from formgrid.core.label_resolver import LabelConfig
from formgrid.core.models import Field, FieldType, PageData
from formgrid.core.ocr_layout import MergeConfig, OCRLayoutMerger
from formgrid.core.suggestions import SuggestionConfig, SuggestionEngine
from formgrid.core.table_reconstruction import ReconstructionConfig, TableReconstructor
from formgrid.core.text_layout import (
    TableStructure,
    TextLayoutConfig,
    analyze_table_structure,
    find_label_value_pairs,
    runs_from_ocr_words,
)
from formgrid.utils.exceptions import ConfigurationError, PageProcessingError, ValidationError
from formgrid.utils.logging_config import ProgressTracker, time_it, log_memory_usage

logger = logging.getLogger(__name__)


def _section(cls, data: Optional[Dict[str, Any]], name: str):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config section '{name}' must be a mapping")
    known = {f.name for f in dataclass_fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(f"Unknown keys in config section '{name}': {', '.join(sorted(unknown))}")
    return cls(**data)


@dataclass
class PipelineConfig:
    """Configuration for the whole detection pipeline."""

    reconstruction: ReconstructionConfig = field(default_factory=ReconstructionConfig)
    labels: LabelConfig = field(default_factory=LabelConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)
    text_layout: TextLayoutConfig = field(default_factory=TextLayoutConfig)
    suggestions: SuggestionConfig = field(default_factory=SuggestionConfig)

    refine_types: bool = True  # Ask the SuggestionEngine about each labelled field
    refine_min_confidence: float = 0.9  # Replace a TEXT type only above this confidence
    max_pages: Optional[int] = None

    def validate(self) -> None:
        self.reconstruction.validate()
        self.labels.validate()
        self.merge.validate()
        self.text_layout.validate()
        self.suggestions.validate()
        if not 0.0 <= self.refine_min_confidence <= 1.0:
            raise ConfigurationError(
                f"refine_min_confidence must be in [0, 1], got {self.refine_min_confidence}"
            )
        if self.max_pages is not None and self.max_pages < 1:
            raise ConfigurationError(f"max_pages must be at least 1, got {self.max_pages}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineConfig":
        """Build and validate a config from a JSON-style mapping.

        Sections (``reconstruction``, ``labels``, ``merge``, ``text_layout``,
        ``suggestions``) are optional; unknown keys raise ConfigurationError.
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Pipeline config must be a mapping")
        data = dict(data)
        try:
            config = cls(
                reconstruction=_section(ReconstructionConfig, data.pop("reconstruction", None), "reconstruction"),
                labels=_section(LabelConfig, data.pop("labels", None), "labels"),
                merge=_section(MergeConfig, data.pop("merge", None), "merge"),
                text_layout=_section(TextLayoutConfig, data.pop("text_layout", None), "text_layout"),
                suggestions=_section(SuggestionConfig, data.pop("suggestions", None), "suggestions"),
                **data,
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid pipeline config: {e}")
        config.validate()
        return config

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "PipelineConfig":
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read pipeline config {path}: {e}")
        return cls.from_dict(data)


def load_page(data: Dict[str, Any], page_index: int = 0) -> PageData:
    """Parse one page of the primitive JSON contract."""
    return PageData.from_dict(data, page_index=page_index)


def load_pages(source: Union[str, Path, Dict[str, Any], List[Any]]) -> List[PageData]:
    """Load pages from a JSON file path or already-decoded JSON.

    Accepts a single page object, a list of page objects, or
    ``{"pages": [...]}``.
    """
    if isinstance(source, (str, Path)):
        try:
            with open(source, "r", encoding="utf-8") as fh:
                source = json.load(fh)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid page JSON: {e}")

    if isinstance(source, dict) and "pages" in source:
        source = source["pages"]
    if isinstance(source, dict):
        return [load_page(source, 0)]
    if not isinstance(source, list):
        raise ValidationError(f"Expected page object or list of pages, got {type(source).__name__}")
    return [load_page(page, i) for i, page in enumerate(source)]


class FieldDetectionPipeline:
    """
    Detect fields across the pages of a document.

    Example usage:
        pipeline = FieldDetectionPipeline(PipelineConfig(max_pages=3))
        fields = pipeline.process_document(load_pages("form.json"), context=["invoice"])
    """

    def __init__(self, config: Optional[PipelineConfig] = None,
                 engine: Optional[SuggestionEngine] = None,
                 tables: Optional[KeywordTables] = None):
        self.cfg = config if config is not None else PipelineConfig()
        self.cfg.validate()
        self.tables = tables or load_keyword_tables()
        self.reconstructor = TableReconstructor(
            self.cfg.reconstruction, self.cfg.labels, self.cfg.merge, self.tables
        )
        self.ocr_merger = OCRLayoutMerger(self.cfg.merge)
        self.engine = engine
        if self.engine is None and self.cfg.refine_types:
            self.engine = SuggestionEngine(tables=self.tables, config=self.cfg.suggestions)

    def process_page(self, page: PageData, context: Optional[Sequence[str]] = None) -> List[Field]:
        """Reconstruct and type the fields of a single page."""
        fields = self.reconstructor.reconstruct(page)
        if self.cfg.refine_types and self.engine is not None:
            self._refine(fields, list(context or []))
        return fields

    @time_it(logger=logger)
    def process_document(self, pages: Sequence[PageData],
                         context: Optional[Sequence[str]] = None,
                         strict: bool = False) -> List[Field]:
        """Process pages in order; a failing page is logged and skipped.

        Args:
            pages: Pages of one document
            context: Document-level context terms passed to suggestions
            strict: Raise if any page fails instead of only when all do

        Returns:
            Fields of all pages, page by page

        Raises:
            PageProcessingError: When every page failed, or any page with ``strict``.
                The error carries the per-page messages and the fields that were found.
        """
        if pages is None:
            raise ValidationError("pages must not be None")
        if not pages:
            logger.info("No pages provided for field detection")
            return []

        selected = list(pages)
        if self.cfg.max_pages is not None and len(selected) > self.cfg.max_pages:
            logger.info(f"Limiting detection to the first {self.cfg.max_pages} of {len(selected)} pages")
            selected = selected[: self.cfg.max_pages]

        progress = ProgressTracker("Field detection", len(selected), logger)
        all_fields: List[Field] = []
        page_errors: Dict[int, str] = {}

        for page in selected:
            progress.start_step(f"Processing page {page.page_index}")
            try:
                page_fields = self.process_page(page, context)
                all_fields.extend(page_fields)
                progress.complete_step(
                    len(page_fields),
                    f"Found {len(page_fields)} fields on page {page.page_index}"
                )
            except Exception as e:
                logger.warning(f"Failed to detect fields on page {page.page_index}: {e}")
                page_errors[page.page_index] = str(e) or type(e).__name__
                progress.complete_step(0, f"Failed: {e}")
                continue

        progress.finish(success=not page_errors)
        log_memory_usage(logger, "field detection")

        if page_errors and (strict or len(page_errors) == len(selected)):
            details = "; ".join(f"page {index}: {message}" for index, message in page_errors.items())
            raise PageProcessingError(
                f"Field detection failed on {len(page_errors)} of {len(selected)} pages ({details})",
                page_errors=page_errors,
                fields=all_fields,
            )

        logger.info(f"Field detection completed: {len(all_fields)} fields across {len(selected)} pages")
        return all_fields

    def label_value_fields(self, page: PageData) -> List[Field]:
        """Fields next to colon-terminated labels, using text alone."""
        width = page.width if page.width is not None else float("inf")
        return find_label_value_pairs(
            self._text_runs(page), width, page.page_index, self.cfg.text_layout, self.tables
        )

    def table_structure(self, page: PageData) -> TableStructure:
        """Column/row estimate and suggested entry fields for tabular text."""
        return analyze_table_structure(
            self._text_runs(page), page.page_index, self.cfg.text_layout, self.tables
        )

    def _text_runs(self, page: PageData):
        if page.text_runs:
            return page.text_runs
        return runs_from_ocr_words(self.ocr_merger.prepare(page.ocr_words))

    def _refine(self, fields: List[Field], context: List[str]) -> None:
        for f in fields:
            if not f.label:
                continue
            suggestion = self.engine.generate_suggestion(f.label, context)
            f.suggestion = suggestion
            if (
                f.field_type is FieldType.TEXT
                and suggestion.field_type is not FieldType.TEXT
                and suggestion.confidence >= self.cfg.refine_min_confidence
            ):
                logger.debug(f"Field {f.id}: type refined to '{suggestion.field_type.value}'")
                f.field_type = suggestion.field_type
