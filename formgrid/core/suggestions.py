"""
Field type suggestions with online learning.

The engine combines two signals per field type:

- Keyword rules: a regex hit lifts a type to a fixed floor score.
- Learning records: every stored user choice votes for its type, weighted by
  how well its text and context match the query and by its own confidence.

Scores are normalized by the maximum so the primary suggestion reports 1.0
whenever some type beats the plain-text baseline. Inputs that match nothing
get a low-confidence text default instead.
"""

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from fuzzywuzzy import fuzz

from formgrid.core.keywords import KeywordTables, load_keyword_tables
from formgrid.core.models import FieldType, LearningRecord, SuggestionResult, as_utc, utc_now
from formgrid.utils.exceptions import ConfigurationError, LearningStoreError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_REASONING = "No strong signal; defaulting to free text"


@dataclass
class SuggestionConfig:
    """Scoring weights and learning store limits."""

    # Scoring
    text_baseline: float = 0.2  # Score TEXT starts with
    substring_match: float = 0.7  # Text match when one text contains the other
    similarity_weight: float = 0.5  # Applied to fuzzy similarity otherwise
    text_weight: float = 0.6
    context_weight: float = 0.3
    history_weight: float = 0.1
    max_alternatives: int = 2

    # Learning
    accepted_confidence: float = 1.0
    rejected_confidence: float = 0.3
    max_records: int = 1000
    keep_recent: int = 500
    keep_confident: int = 500
    recent_days: int = 30

    def validate(self) -> None:
        for name, value in self.__dict__.items():
            if value < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {value}")
        for name in ("text_baseline", "accepted_confidence", "rejected_confidence"):
            if getattr(self, name) > 1.0:
                raise ConfigurationError(f"{name} must be at most 1.0, got {getattr(self, name)}")
        if self.max_alternatives > 2:
            raise ConfigurationError(f"max_alternatives must be at most 2, got {self.max_alternatives}")
        if self.keep_recent + self.keep_confident > self.max_records:
            raise ConfigurationError(
                f"keep_recent + keep_confident ({self.keep_recent + self.keep_confident}) "
                f"exceeds max_records ({self.max_records})"
            )


class LearningStore:
    """
    Bounded, deduplicated collection of learning records.

    At most one record is kept per ``(text, chosen_type)``; recording a pair
    again replaces the older record. When the store grows beyond
    ``max_records`` it keeps the ``keep_recent`` newest records plus the
    ``keep_confident`` most confident ones.

    All mutations hold an internal lock so a single store can be shared by
    threads.
    """

    def __init__(self, records: Optional[Sequence[LearningRecord]] = None,
                 max_records: int = 1000, keep_recent: int = 500, keep_confident: int = 500):
        if keep_recent + keep_confident > max_records:
            raise ConfigurationError(
                f"keep_recent + keep_confident must not exceed max_records ({max_records})"
            )
        self.max_records = max_records
        self.keep_recent = keep_recent
        self.keep_confident = keep_confident
        self._lock = threading.Lock()
        self._records: List[LearningRecord] = []
        for record in records or []:
            self.add(record)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @property
    def records(self) -> List[LearningRecord]:
        """Snapshot of the stored records, oldest insertion first."""
        with self._lock:
            return list(self._records)

    def add(self, record: LearningRecord) -> None:
        self._check(record)
        with self._lock:
            self._insert(record)

    @staticmethod
    def _check(record: Any) -> None:
        if not isinstance(record, LearningRecord):
            raise ValidationError(f"Expected LearningRecord, got {type(record).__name__}")

    def _insert(self, record: LearningRecord) -> None:
        # Caller holds the lock
        key = (record.text, record.chosen_type)
        self._records = [r for r in self._records if (r.text, r.chosen_type) != key]
        self._records.append(record)
        if len(self._records) > self.max_records:
            self._prune()

    def _prune(self) -> None:
        before = len(self._records)
        indexed = list(enumerate(self._records))
        # Insertion index breaks timestamp ties so later records count as newer
        recent = sorted(indexed, key=lambda p: (p[1].timestamp, p[0]), reverse=True)[:self.keep_recent]
        confident = sorted(indexed, key=lambda p: p[1].confidence, reverse=True)[:self.keep_confident]
        keep = {i for i, _ in recent} | {i for i, _ in confident}
        self._records = [r for i, r in indexed if i in keep]
        logger.debug(f"Pruned learning store from {before} to {len(self._records)} records")

    def replace(self, records: Sequence[LearningRecord]) -> None:
        """Drop everything and load ``records`` in one locked step."""
        records = list(records)
        for record in records:
            self._check(record)
        with self._lock:
            self._records = []
            for record in records:
                self._insert(record)

    def clear(self) -> None:
        with self._lock:
            self._records = []

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dicts(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self.records]

    def to_json(self) -> str:
        return json.dumps(self.to_dicts(), ensure_ascii=False, indent=2)

    @classmethod
    def from_dicts(cls, data: Any, source: Optional[str] = None, **kwargs) -> "LearningStore":
        if not isinstance(data, list):
            raise LearningStoreError("Learning data must be a JSON list of records", source=source)
        try:
            records = [LearningRecord.from_dict(item) for item in data]
        except (ValidationError, AttributeError) as e:
            raise LearningStoreError(f"Corrupt learning record: {e}", source=source)
        return cls(records, **kwargs)

    @classmethod
    def from_json(cls, text: str, **kwargs) -> "LearningStore":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise LearningStoreError(f"Learning data is not valid JSON: {e}")
        return cls.from_dicts(data, **kwargs)

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self.to_json(), encoding="utf-8")
        except OSError as e:
            raise LearningStoreError(f"Cannot save learning data: {e}", source=str(path))
        logger.debug(f"Saved {len(self)} learning records to {path}")

    @classmethod
    def load(cls, path: Union[str, Path], **kwargs) -> "LearningStore":
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
            data = json.loads(text)
        except (OSError, json.JSONDecodeError) as e:
            raise LearningStoreError(f"Cannot load learning data: {e}", source=str(path))
        store = cls.from_dicts(data, source=str(path), **kwargs)
        logger.info(f"Loaded {len(store)} learning records from {path}")
        return store


class SuggestionEngine:
    """
    Suggest field types from label text and document context.

    Example usage:
        engine = SuggestionEngine()
        result = engine.generate_suggestion("Invoice Date", ["invoice"])
        engine.record_user_choice("Invoice Date", ["invoice"], FieldType.DATE, accepted=True)
    """

    def __init__(self, store: Optional[LearningStore] = None, tables: Optional[KeywordTables] = None,
                 config: Optional[SuggestionConfig] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 seed_defaults: bool = True):
        """
        Args:
            store: Learning store to read and update; a new one is created if omitted
            tables: Keyword tables; the bundled ones by default
            config: Scoring and store limits
            clock: Returns the current time for new records and stats
            seed_defaults: Load the default knowledge into an empty store
        """
        self.cfg = config if config is not None else SuggestionConfig()
        self.cfg.validate()
        self.tables = tables or load_keyword_tables()
        self.clock = clock or utc_now
        self.seed_defaults = seed_defaults
        self.store = store if store is not None else LearningStore(
            max_records=self.cfg.max_records,
            keep_recent=self.cfg.keep_recent,
            keep_confident=self.cfg.keep_confident,
        )
        if len(self.store) == 0:
            self._seed()

    def _seed(self) -> None:
        if not self.seed_defaults:
            return
        records = self.tables.default_records()
        self.store.replace(records)
        logger.debug(f"Seeded learning store with {len(records)} default records")

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    def generate_suggestion(self, text: str, context: Optional[Sequence[str]] = None) -> SuggestionResult:
        """Rank field types for ``text``.

        Args:
            text: Label or cell text
            context: Surrounding document terms (title, section names, ...)

        Returns:
            SuggestionResult with the primary type and up to two alternatives
        """
        if text is None:
            raise ValidationError("text must not be None")
        query = text.strip().lower()
        terms = [c.strip().lower() for c in context or [] if c and c.strip()]

        if not query:
            return SuggestionResult(FieldType.TEXT, self.cfg.text_baseline, DEFAULT_REASONING)

        records = self.store.records
        scores = self._score_types(query, terms, records)
        best_raw = max(scores.values())

        if best_raw <= self.cfg.text_baseline:
            logger.debug(f"No type beats the baseline for '{query[:30]}'")
            return SuggestionResult(FieldType.TEXT, self.cfg.text_baseline, DEFAULT_REASONING)

        normalized = {ft: score / best_raw for ft, score in scores.items()}
        # sorted() is stable, so equal scores keep enum declaration order
        ranked = sorted(normalized.items(), key=lambda item: item[1], reverse=True)
        top = ranked[: 1 + self.cfg.max_alternatives]
        primary_type, primary_conf = top[0]

        return SuggestionResult(
            field_type=primary_type,
            confidence=min(primary_conf, 1.0),
            reasoning=self._reasoning(query, terms, primary_type, records),
            alternatives=[(ft, min(conf, 1.0)) for ft, conf in top[1:]],
        )

    suggest = generate_suggestion

    def generate_bulk_suggestions(self, fields: Sequence[Dict[str, Any]]) -> List[SuggestionResult]:
        """Suggest types for many ``{"text": ..., "context": [...]}`` mappings."""
        return [self.generate_suggestion(f.get("text", ""), f.get("context") or []) for f in fields]

    def _score_types(self, query: str, terms: List[str],
                     records: Sequence[LearningRecord]) -> Dict[FieldType, float]:
        scores = {ft: 0.0 for ft in FieldType}
        scores[FieldType.TEXT] = self.cfg.text_baseline

        for rule in self.tables.suggestion_rules:
            if rule.pattern.search(query):
                scores[rule.field_type] = max(scores[rule.field_type], rule.floor)

        for record in records:
            score = self._record_score(query, terms, record)
            if score > scores[record.chosen_type]:
                scores[record.chosen_type] = score

        return scores

    def _record_score(self, query: str, terms: List[str], record: LearningRecord) -> float:
        record_text = record.text.strip().lower()
        if record_text and (query in record_text or record_text in query):
            text_match = self.cfg.substring_match
        else:
            text_match = self.cfg.similarity_weight * (fuzz.ratio(query, record_text) / 100.0)

        context_match = 0.0
        record_terms = [c.lower() for c in record.context if c]
        if terms and record_terms:
            overlap = sum(
                1 for term in terms
                if any(term in rc or rc in term for rc in record_terms)
            )
            context_match = overlap / max(len(terms), len(record_terms))

        total = (
            self.cfg.text_weight * text_match
            + self.cfg.context_weight * context_match
            + self.cfg.history_weight * record.confidence
        )
        return total * record.confidence

    def _reasoning(self, query: str, terms: List[str], field_type: FieldType,
                   records: Sequence[LearningRecord]) -> str:
        reasons = []

        matched = [
            rule.pattern.search(query).group(0)
            for rule in self.tables.suggestion_rules
            if rule.field_type is field_type and rule.pattern.search(query)
        ]
        if matched:
            reasons.append(f"text contains {field_type.value} keyword '{matched[0]}'")
        elif field_type is FieldType.NUMBER and any(ch.isdigit() for ch in query):
            reasons.append("text contains digits")

        if terms:
            reasons.append(f"document context ({', '.join(terms[:2])})")

        prefix = query[:3]
        similar = sum(
            1 for r in records
            if r.chosen_type is field_type and prefix in r.text.lower()
        )
        if similar:
            reasons.append(f"learned from {similar} similar case{'s' if similar != 1 else ''}")

        return "; ".join(reasons) if reasons else "best match from learned patterns"

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def record_user_choice(self, text: str, context: Optional[Sequence[str]], chosen_type: Any,
                           accepted: bool) -> LearningRecord:
        """Store the type a user picked (or rejected) for ``text``.

        Args:
            text: Label text the suggestion was made for
            context: Context terms at the time of the choice
            chosen_type: FieldType or its string value
            accepted: Whether the user accepted the choice

        Returns:
            The stored LearningRecord
        """
        if text is None:
            raise ValidationError("text must not be None")
        record = LearningRecord(
            text=text,
            context=[c for c in context or [] if c],
            chosen_type=FieldType.parse(chosen_type),
            confidence=self.cfg.accepted_confidence if accepted else self.cfg.rejected_confidence,
            timestamp=self.clock(),
        )
        self.store.add(record)
        logger.debug(
            f"Recorded {'accepted' if accepted else 'rejected'} choice "
            f"'{record.chosen_type.value}' for '{text[:30]}'"
        )
        return record

    record_choice = record_user_choice

    def get_learning_stats(self) -> Dict[str, Any]:
        """Summary of the learning store.

        ``recent_accuracy`` is the mean confidence of records from the last
        ``recent_days`` days; with accepted choices at 1.0 and rejected ones
        at 0.3 it tracks how often suggestions were accepted.
        """
        records = self.store.records
        distribution = {ft.value: 0 for ft in FieldType}
        for record in records:
            distribution[record.chosen_type.value] += 1

        average = sum(r.confidence for r in records) / len(records) if records else 0.0

        cutoff = as_utc(self.clock()) - timedelta(days=self.cfg.recent_days)
        recent = [r for r in records if r.timestamp > cutoff]
        recent_accuracy = sum(r.confidence for r in recent) / len(recent) if recent else 0.0

        return {
            "total_records": len(records),
            "field_type_distribution": distribution,
            "average_confidence": average,
            "recent_accuracy": recent_accuracy,
        }

    def clear_learning_data(self) -> None:
        """Forget all user choices and restore the default knowledge."""
        self.store.clear()
        self._seed()
        logger.info("Learning data cleared")
