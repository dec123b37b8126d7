"""
Field name canonicalization and baseline type inference.
"""

import re
import unicodedata
from datetime import date
from typing import Optional

from formgrid.core.keywords import KeywordTables, TYPE_PRIORITY, load_keyword_tables
from formgrid.core.models import FieldType
from formgrid.core.ocr_layout import clean_text
from formgrid.utils.exceptions import ValidationError

_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]+")
_REPEATED_UNDERSCORE_RE = re.compile(r"_{2,}")
_LABEL_SUFFIX_CHARS = " \t:："

DEFAULT_FALLBACK_NAME = "field"


def _snake(text: str) -> str:
    ascii_text = unicodedata.normalize("NFKC", text)
    ascii_text = _NON_ALNUM_RE.sub("_", ascii_text)
    ascii_text = _REPEATED_UNDERSCORE_RE.sub("_", ascii_text)
    return ascii_text.strip("_").lower()


def _lookup(raw: str, tables: KeywordTables) -> Optional[str]:
    direct = tables.canonical_names.get(raw)
    if direct:
        return direct
    # Labels often carry a trailing colon or odd casing ("Name:", "EMAIL")
    key = raw.strip().rstrip(_LABEL_SUFFIX_CHARS).strip()
    return tables.canonical_names.get(key) or tables.canonical_names.get(key.casefold())


def normalize_field_name(raw: Optional[str], fallback: str, tables: Optional[KeywordTables] = None) -> str:
    """Turn a raw label into a canonical ``[a-z0-9_]`` identifier.

    Known labels map through the bilingual lookup table. Anything else is
    NFKC-normalized and snake-cased; labels with no ASCII letters or digits
    (most CJK text outside the table) produce the positional fallback.

    Args:
        raw: Label text, may be None or empty
        fallback: Placeholder such as ``field_p0_r1_c2``
        tables: Keyword tables, bundled ones by default

    Returns:
        Non-empty identifier containing only lowercase letters, digits and underscores
    """
    if fallback is None:
        raise ValidationError("fallback must not be None")
    tables = tables or load_keyword_tables()

    if raw:
        mapped = _lookup(raw, tables)
        if mapped:
            # Table entries are trusted data but still go through the same filter
            return _snake(mapped) or _snake(fallback) or DEFAULT_FALLBACK_NAME
        name = _snake(raw)
        if name:
            return name

    return _snake(fallback) or DEFAULT_FALLBACK_NAME


def infer_field_type(text: Optional[str], tables: Optional[KeywordTables] = None) -> FieldType:
    """Infer a baseline field type from keywords in ``text``.

    Categories are checked in TYPE_PRIORITY order (date, number, select,
    checkbox); text with no keyword hit is TEXT.
    """
    if not text:
        return FieldType.TEXT
    tables = tables or load_keyword_tables()
    normalized = clean_text(text).lower()
    if not normalized:
        return FieldType.TEXT

    for field_type in TYPE_PRIORITY:
        for keyword in tables.keywords_for(field_type):
            # Keywords are cleaned too, so "yes/no" matches the cleaned "yesno"
            needle = clean_text(keyword).lower()
            if needle and needle in normalized:
                return field_type
    return FieldType.TEXT


def default_value_for(field_type: FieldType, today: Optional[date] = None) -> str:
    """Placeholder value for a freshly created field of ``field_type``."""
    if field_type is FieldType.DATE:
        return (today or date.today()).isoformat()
    if field_type is FieldType.NUMBER:
        return "0"
    if field_type is FieldType.CHECKBOX:
        return "false"
    return ""
