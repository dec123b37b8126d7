"""
Core field reconstruction components.
"""

from .models import (
    BoundingBox,
    TextRun,
    LineSegment,
    LineOrientation,
    FillRect,
    FillKind,
    OCRWord,
    TextRegion,
    Field,
    FieldType,
    LearningRecord,
    SuggestionResult,
    PageData,
    BatchItem,
)
from .clustering import cluster_coordinates
from .ocr_layout import (
    MergeConfig,
    OCRLayoutMerger,
    filter_by_confidence,
    merge_nearby_text_regions,
    merge_ocr_words,
    clean_text,
)
from .table_reconstruction import ReconstructionConfig, TableReconstructor, reconstruct_fields
from .label_resolver import LabelConfig, LabelResolver, resolve_label, resolve_label_with_tier
from .field_normalizer import normalize_field_name, infer_field_type, default_value_for
from .keywords import KeywordTables, load_keyword_tables
from .suggestions import LearningStore, SuggestionConfig, SuggestionEngine
from .pipeline import FieldDetectionPipeline, PipelineConfig, load_page, load_pages
from .batch import BatchProcessor

__all__ = [
    "BoundingBox",
    "TextRun",
    "LineSegment",
    "LineOrientation",
    "FillRect",
    "FillKind",
    "OCRWord",
    "TextRegion",
    "Field",
    "FieldType",
    "LearningRecord",
    "SuggestionResult",
    "PageData",
    "BatchItem",
    "cluster_coordinates",
    "MergeConfig",
    "OCRLayoutMerger",
    "filter_by_confidence",
    "merge_nearby_text_regions",
    "merge_ocr_words",
    "clean_text",
    "ReconstructionConfig",
    "TableReconstructor",
    "reconstruct_fields",
    "LabelConfig",
    "LabelResolver",
    "resolve_label",
    "resolve_label_with_tier",
    "normalize_field_name",
    "infer_field_type",
    "default_value_for",
    "KeywordTables",
    "load_keyword_tables",
    "LearningStore",
    "SuggestionConfig",
    "SuggestionEngine",
    "FieldDetectionPipeline",
    "PipelineConfig",
    "load_page",
    "load_pages",
    "BatchProcessor",
]
