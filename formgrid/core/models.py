"""
Data models for formgrid.

Coordinates are in one consistent unit per page with the origin at the top-left
corner and y growing downward, as produced by OCR engines and PDF text
extractors.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional, List, Tuple
import math

from formgrid.utils.exceptions import ValidationError, CoordinateError


class FieldType(Enum):
    """Closed set of field data types.

    Declaration order doubles as the tie-break order when two types score
    equally in suggestions.
    """

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    SELECT = "select"
    CHECKBOX = "checkbox"

    @classmethod
    def parse(cls, value: Any) -> "FieldType":
        """Accept a FieldType or its string value (case-insensitive)."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        valid = ", ".join(t.value for t in cls)
        raise ValidationError(f"Unknown field type {value!r}; expected one of: {valid}")


class LineOrientation(Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


class FillKind(Enum):
    HORIZONTAL_LINE = "horizontal_line"
    VERTICAL_LINE = "vertical_line"
    BACKGROUND = "background"


def _require_number(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number, got {type(value).__name__}")
    if math.isnan(value) or math.isinf(value):
        raise ValidationError(f"{name} must be finite, got {value}")
    return float(value)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, including the ``Z`` suffix JavaScript writes."""
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(value))


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned rectangle stored as origin plus size."""

    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        for name in ("x", "y", "width", "height"):
            _require_number(getattr(self, name), name)
        if self.width < 0 or self.height < 0:
            raise CoordinateError(
                f"Bounding box size must be non-negative, got {self.width}x{self.height}"
            )

    @classmethod
    def from_edges(cls, x0: float, y0: float, x1: float, y1: float) -> "BoundingBox":
        return cls(min(x0, x1), min(y0, y1), abs(x1 - x0), abs(y1 - y0))

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2.0

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2.0

    def contains_point(self, px: float, py: float) -> bool:
        """Inclusive containment test on all four edges."""
        return self.x <= px <= self.right and self.y <= py <= self.bottom

    def union(self, other: "BoundingBox") -> "BoundingBox":
        return BoundingBox.from_edges(
            min(self.x, other.x),
            min(self.y, other.y),
            max(self.right, other.right),
            max(self.bottom, other.bottom),
        )

    def horizontal_overlap(self, other: "BoundingBox") -> float:
        return min(self.right, other.right) - max(self.x, other.x)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    def to_list(self) -> List[float]:
        return [self.x, self.y, self.width, self.height]


@dataclass(frozen=True)
class TextRun:
    """A positioned run of decoded text from a document or OCR parser."""

    x: float
    y: float
    text: str
    width: Optional[float] = None
    height: Optional[float] = None

    def __post_init__(self):
        _require_number(self.x, "x")
        _require_number(self.y, "y")
        if not isinstance(self.text, str):
            raise ValidationError(f"text must be a string, got {type(self.text).__name__}")
        for name in ("width", "height"):
            value = getattr(self, name)
            if value is not None and _require_number(value, name) < 0:
                raise CoordinateError(f"{name} must be non-negative, got {value}")


@dataclass(frozen=True)
class LineSegment:
    """A ruled line primitive.

    ``x``/``y`` is the start point; ``length`` runs along the orientation and
    ``thickness`` across it.
    """

    x: float
    y: float
    length: float
    orientation: LineOrientation
    thickness: float = 0.0

    def __post_init__(self):
        _require_number(self.x, "x")
        _require_number(self.y, "y")
        if _require_number(self.length, "length") < 0:
            raise CoordinateError(f"length must be non-negative, got {self.length}")
        if _require_number(self.thickness, "thickness") < 0:
            raise CoordinateError(f"thickness must be non-negative, got {self.thickness}")
        if not isinstance(self.orientation, LineOrientation):
            object.__setattr__(self, "orientation", LineOrientation(self.orientation))

    @property
    def is_horizontal(self) -> bool:
        return self.orientation is LineOrientation.HORIZONTAL

    @classmethod
    def from_bbox(cls, x: float, y: float, width: float, height: float) -> Optional["LineSegment"]:
        """Classify a box as a line by aspect ratio.

        Returns None when neither side is more than twice the other.
        """
        if width > height * 2:
            return cls(x=x, y=y, length=width, thickness=height,
                       orientation=LineOrientation.HORIZONTAL)
        if height > width * 2:
            return cls(x=x, y=y, length=height, thickness=width,
                       orientation=LineOrientation.VERTICAL)
        return None


@dataclass(frozen=True)
class FillRect:
    """A filled rectangle; thin fills are how most forms draw their rules."""

    x: float
    y: float
    width: float
    height: float

    def __post_init__(self):
        for name in ("x", "y", "width", "height"):
            _require_number(getattr(self, name), name)
        if self.width < 0 or self.height < 0:
            raise CoordinateError(f"Fill size must be non-negative, got {self.width}x{self.height}")

    def classify(self, max_thickness: float, min_length: float) -> FillKind:
        if self.height < max_thickness and self.width > min_length:
            return FillKind.HORIZONTAL_LINE
        if self.width < max_thickness and self.height > min_length:
            return FillKind.VERTICAL_LINE
        return FillKind.BACKGROUND


@dataclass(frozen=True)
class OCRWord:
    """A recognized word with its confidence in [0, 100] and box (x, y, w, h)."""

    text: str
    confidence: float
    bbox: Tuple[float, float, float, float]

    def __post_init__(self):
        if not isinstance(self.text, str):
            raise ValidationError(f"text must be a string, got {type(self.text).__name__}")
        confidence = _require_number(self.confidence, "confidence")
        if not 0.0 <= confidence <= 100.0:
            raise ValidationError(f"Confidence must be between 0 and 100, got {confidence}")
        if len(self.bbox) != 4:
            raise ValidationError(f"bbox must have 4 values (x, y, w, h), got {len(self.bbox)}")
        values = tuple(_require_number(v, "bbox") for v in self.bbox)
        if values[2] < 0 or values[3] < 0:
            raise CoordinateError(f"bbox size must be non-negative, got {values[2]}x{values[3]}")
        object.__setattr__(self, "bbox", values)

    @property
    def box(self) -> BoundingBox:
        return BoundingBox(*self.bbox)


@dataclass(frozen=True)
class TextRegion:
    """Any positioned text that may serve as a label candidate."""

    text: str
    bbox: BoundingBox


@dataclass
class SuggestionResult:
    """A ranked field type suggestion."""

    field_type: FieldType
    confidence: float
    reasoning: str
    alternatives: List[Tuple[FieldType, float]] = field(default_factory=list)

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValidationError(f"Confidence must be between 0 and 1, got {self.confidence}")
        if len(self.alternatives) > 2:
            raise ValidationError(f"At most 2 alternatives allowed, got {len(self.alternatives)}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field_type": self.field_type.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "alternatives": [
                {"field_type": ft.value, "confidence": conf} for ft, conf in self.alternatives
            ],
        }


@dataclass
class Field:
    """A reconstructed data-entry area.

    ``id`` is derived from page, row and column indices so it is stable across
    runs on the same input.
    """

    id: str
    bbox: BoundingBox
    canonical_name: str
    field_type: FieldType = FieldType.TEXT
    text: str = ""
    label: Optional[str] = None
    default_value: str = ""
    page_index: int = 0
    row: int = 0
    col: int = 0
    strategy: str = ""
    suggestion: Optional[SuggestionResult] = None

    def __post_init__(self):
        if self.bbox.width <= 0 or self.bbox.height <= 0:
            raise CoordinateError(
                f"Field {self.id} must have positive size, got {self.bbox.width}x{self.bbox.height}"
            )
        if not self.canonical_name:
            raise ValidationError(f"Field {self.id} must have a canonical name")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.canonical_name,
            "label": self.label,
            "text": self.text,
            "field_type": self.field_type.value,
            "default_value": self.default_value,
            "bbox": self.bbox.to_dict(),
            "page_index": self.page_index,
            "row": self.row,
            "col": self.col,
            "strategy": self.strategy,
            "suggestion": self.suggestion.to_dict() if self.suggestion else None,
        }


@dataclass
class LearningRecord:
    """One observed user choice of a field type."""

    text: str
    context: List[str]
    chosen_type: FieldType
    confidence: float
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValidationError(f"Confidence must be between 0 and 1, got {self.confidence}")
        self.chosen_type = FieldType.parse(self.chosen_type)
        self.context = list(self.context or [])
        if not isinstance(self.timestamp, datetime):
            raise ValidationError(f"timestamp must be a datetime, got {type(self.timestamp).__name__}")
        self.timestamp = as_utc(self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "context": list(self.context),
            "chosen_type": self.chosen_type.value,
            "confidence": self.confidence,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearningRecord":
        try:
            timestamp = data.get("timestamp")
            return cls(
                text=str(data["text"]),
                context=[str(c) for c in data.get("context") or []],
                chosen_type=FieldType.parse(data.get("chosen_type", data.get("userChoice"))),
                confidence=float(data["confidence"]),
                timestamp=parse_timestamp(str(timestamp)) if timestamp else utc_now(),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid learning record {data!r}: {e}")


@dataclass
class PageData:
    """All primitives available for one page."""

    text_runs: List[TextRun] = field(default_factory=list)
    lines: List[LineSegment] = field(default_factory=list)
    fills: List[FillRect] = field(default_factory=list)
    ocr_words: List[OCRWord] = field(default_factory=list)
    width: Optional[float] = None
    height: Optional[float] = None
    page_index: int = 0

    def __post_init__(self):
        if self.page_index < 0:
            raise ValidationError(f"Page index must be >= 0, got {self.page_index}")
        for name in ("width", "height"):
            value = getattr(self, name)
            if value is not None and _require_number(value, name) <= 0:
                raise CoordinateError(f"Page {name} must be positive, got {value}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any], page_index: int = 0) -> "PageData":
        """Build a page from the JSON contract used by ingestion collaborators.

        Expected keys (all optional): ``text_runs`` [{x, y, text, width?, height?}],
        ``lines`` [{x, y, length, orientation, thickness?}] or boxes
        [{x, y, width, height}], ``fills`` [{x, y, width, height}],
        ``ocr_words`` [{text, confidence, bbox: [x, y, w, h]}], ``width``, ``height``.
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Page data must be a mapping, got {type(data).__name__}")

        try:
            text_runs = [
                TextRun(
                    x=t["x"], y=t["y"], text=t["text"],
                    width=t.get("width", t.get("w")), height=t.get("height", t.get("h")),
                )
                for t in data.get("text_runs") or []
            ]
            lines = []
            for line in data.get("lines") or []:
                if "orientation" in line:
                    lines.append(LineSegment(
                        x=line["x"], y=line["y"], length=line["length"],
                        orientation=LineOrientation(line["orientation"]),
                        thickness=line.get("thickness", 0.0),
                    ))
                else:
                    segment = LineSegment.from_bbox(line["x"], line["y"], line["width"], line["height"])
                    if segment is not None:
                        lines.append(segment)
            fills = [
                FillRect(x=f["x"], y=f["y"], width=f.get("width", f.get("w")), height=f.get("height", f.get("h")))
                for f in data.get("fills") or []
            ]
            ocr_words = [
                OCRWord(text=w["text"], confidence=w["confidence"], bbox=tuple(w["bbox"]))
                for w in data.get("ocr_words") or []
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed page {page_index}: {e}")

        return cls(
            text_runs=text_runs,
            lines=lines,
            fills=fills,
            ocr_words=ocr_words,
            width=data.get("width"),
            height=data.get("height"),
            page_index=data.get("page_index", page_index),
        )


@dataclass
class BatchItem:
    """Status record for one document in a batch run."""

    id: str
    name: str
    status: str = "pending"  # 'pending', 'processing', 'completed', 'error', 'cancelled'
    fields: List[Field] = field(default_factory=list)
    error: Optional[str] = None

    VALID_STATUSES = ("pending", "processing", "completed", "error", "cancelled")

    def __post_init__(self):
        if self.status not in self.VALID_STATUSES:
            raise ValidationError(f"Invalid status: {self.status}. Must be one of {self.VALID_STATUSES}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "error": self.error,
            "fields": [f.to_dict() for f in self.fields],
        }
