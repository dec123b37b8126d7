"""
Keyword and canonical-name tables.

The tables ship as ``data/keywords.json`` and can be replaced or extended with
another JSON file of the same shape, either by passing a path or by setting
FORMGRID_KEYWORDS_PATH. Only the data is external: the order in which field
type keywords are checked is fixed by TYPE_PRIORITY.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Any, Pattern, Tuple, Union

from formgrid.core.models import FieldType, LearningRecord
from formgrid.utils.exceptions import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

KEYWORDS_PATH_ENV = "FORMGRID_KEYWORDS_PATH"
DEFAULT_KEYWORDS_PATH = Path(__file__).parent / "data" / "keywords.json"

# Checked in this order; the first category with a hit wins
TYPE_PRIORITY: Tuple[FieldType, ...] = (
    FieldType.DATE,
    FieldType.NUMBER,
    FieldType.SELECT,
    FieldType.CHECKBOX,
)


@dataclass(frozen=True)
class SuggestionRule:
    """A keyword regex that lifts a field type to at least ``floor``."""

    field_type: FieldType
    pattern: Pattern
    floor: float


@dataclass
class KeywordTables:
    canonical_names: Dict[str, str] = field(default_factory=dict)
    field_type_keywords: Dict[FieldType, List[str]] = field(default_factory=dict)
    suggestion_rules: List[SuggestionRule] = field(default_factory=list)
    default_knowledge: List[Dict[str, Any]] = field(default_factory=list)

    def keywords_for(self, field_type: FieldType) -> List[str]:
        return self.field_type_keywords.get(field_type, [])

    def default_records(self) -> List[LearningRecord]:
        """Fresh LearningRecord objects for seeding an empty store."""
        return [LearningRecord.from_dict(r) for r in self.default_knowledge]

    def merged_with(self, other: "KeywordTables") -> "KeywordTables":
        """Return tables where ``other`` extends (and overrides) this one."""
        keywords = {ft: list(words) for ft, words in self.field_type_keywords.items()}
        for ft, words in other.field_type_keywords.items():
            existing = keywords.setdefault(ft, [])
            existing.extend(w for w in words if w not in existing)

        override_types = {r.field_type for r in other.suggestion_rules}
        rules = [r for r in self.suggestion_rules if r.field_type not in override_types]
        rules.extend(other.suggestion_rules)

        return KeywordTables(
            canonical_names={**self.canonical_names, **other.canonical_names},
            field_type_keywords=keywords,
            suggestion_rules=rules,
            default_knowledge=other.default_knowledge or self.default_knowledge,
        )


def _parse_tables(data: Dict[str, Any], source: str) -> KeywordTables:
    if not isinstance(data, dict):
        raise ConfigurationError(f"Keyword tables in {source} must be a JSON object")

    try:
        canonical = {str(k): str(v) for k, v in (data.get("canonical_names") or {}).items()}
        keywords = {
            FieldType.parse(ft): [str(w) for w in words]
            for ft, words in (data.get("field_type_keywords") or {}).items()
        }
        rules = [
            SuggestionRule(
                field_type=FieldType.parse(rule["field_type"]),
                pattern=re.compile(rule["pattern"]),
                floor=float(rule["floor"]),
            )
            for rule in data.get("suggestion_rules") or []
        ]
    except (KeyError, TypeError, ValueError, ValidationError, re.error) as e:
        raise ConfigurationError(f"Invalid keyword tables in {source}: {e}")

    for rule in rules:
        if not 0.0 <= rule.floor <= 1.0:
            raise ConfigurationError(f"Suggestion floor must be in [0, 1], got {rule.floor} in {source}")

    return KeywordTables(
        canonical_names=canonical,
        field_type_keywords=keywords,
        suggestion_rules=rules,
        default_knowledge=list(data.get("default_knowledge") or []),
    )


def _read_tables(path: Path) -> KeywordTables:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read keyword tables from {path}: {e}")
    return _parse_tables(data, str(path))


@lru_cache(maxsize=1)
def _default_tables() -> KeywordTables:
    return _read_tables(DEFAULT_KEYWORDS_PATH)


def load_keyword_tables(path: Optional[Union[str, Path]] = None, extend_defaults: bool = True) -> KeywordTables:
    """Load keyword tables.

    Args:
        path: JSON file to load; falls back to FORMGRID_KEYWORDS_PATH, then the
            bundled tables
        extend_defaults: Merge the file on top of the bundled tables instead
            of replacing them

    Returns:
        KeywordTables instance
    """
    path = path or os.getenv(KEYWORDS_PATH_ENV)
    if not path:
        return _default_tables()

    custom = _read_tables(Path(path))
    logger.info(f"Loaded keyword tables from {path}")
    if extend_defaults:
        return _default_tables().merged_with(custom)
    return custom
