"""
OCR layout merging.

Raw OCR output is one box per word. Form labels and values usually span
several words, so words on the same line separated by a small gap are merged
into regions before grid reconstruction and label matching.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Sequence

from formgrid.core.models import OCRWord
from formgrid.utils.exceptions import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
# Word characters, whitespace and CJK unified ideographs survive cleaning
_DISALLOWED_RE = re.compile(r"[^\w\s\u4e00-\u9fff]")


@dataclass
class MergeConfig:
    """Configuration for OCR word filtering and merging."""

    min_confidence: float = 60.0  # OCR confidence is on a 0-100 scale
    merge_threshold: float = 20.0  # Same-line and horizontal gap tolerance

    def validate(self) -> None:
        if not 0.0 <= self.min_confidence <= 100.0:
            raise ConfigurationError(f"min_confidence must be in [0, 100], got {self.min_confidence}")
        if self.merge_threshold < 0:
            raise ConfigurationError(f"merge_threshold must be non-negative, got {self.merge_threshold}")


def filter_by_confidence(words: Sequence[OCRWord], min_confidence: float = 60.0) -> List[OCRWord]:
    """Keep words whose confidence is at least ``min_confidence``."""
    if words is None:
        raise ValidationError("words must not be None")
    return [w for w in words if w.confidence >= min_confidence]


def merge_nearby_text_regions(words: Sequence[OCRWord], threshold: float = 20.0) -> List[OCRWord]:
    """Greedily merge words that sit on the same line close to each other.

    Words are visited in input order. Each word joins the first existing
    region whose vertical center is within ``threshold`` of its own and whose
    right edge is within ``threshold`` of the word's left edge. Output follows
    region creation order, not position; sort afterwards if order matters.

    Args:
        words: OCR words in any order
        threshold: Same-line tolerance and maximum horizontal gap

    Returns:
        New OCRWord regions; the inputs are not modified
    """
    if words is None:
        raise ValidationError("words must not be None")
    if threshold < 0:
        raise ConfigurationError(f"Merge threshold must be non-negative, got {threshold}")

    merged: List[OCRWord] = []
    for word in words:
        box = word.box
        for i, region in enumerate(merged):
            region_box = region.box
            if abs(box.center_y - region_box.center_y) > threshold:
                continue
            if abs(box.x - region_box.right) > threshold:
                continue
            union = region_box.union(box)
            merged[i] = OCRWord(
                text=f"{region.text} {word.text}",
                confidence=(region.confidence + word.confidence) / 2.0,
                bbox=(union.x, union.y, union.width, union.height),
            )
            break
        else:
            merged.append(word)

    logger.debug(f"Merged {len(words)} OCR words into {len(merged)} regions")
    return merged


# Public alias matching the reconstruction API naming
merge_ocr_words = merge_nearby_text_regions


def clean_text(text: str) -> str:
    """Normalize OCR text for naming and keyword matching.

    Collapses whitespace, drops punctuation and symbols (keeping word
    characters and CJK ideographs) and trims. Applying it twice gives the
    same result as applying it once.
    """
    if text is None:
        raise ValidationError("text must not be None")
    text = _WHITESPACE_RE.sub(" ", text).strip()
    text = _DISALLOWED_RE.sub("", text)
    # Removing symbols can leave doubled or edge spaces behind
    return _WHITESPACE_RE.sub(" ", text).strip()


class OCRLayoutMerger:
    """Filter then merge OCR words with a shared configuration.

    Example usage:
        merger = OCRLayoutMerger(MergeConfig(min_confidence=70))
        regions = merger.prepare(words)
    """

    def __init__(self, config: MergeConfig = None):
        self.cfg = config if config is not None else MergeConfig()
        self.cfg.validate()

    def filter_by_confidence(self, words: Sequence[OCRWord]) -> List[OCRWord]:
        return filter_by_confidence(words, self.cfg.min_confidence)

    def merge_nearby_text_regions(self, words: Sequence[OCRWord]) -> List[OCRWord]:
        return merge_nearby_text_regions(words, self.cfg.merge_threshold)

    def prepare(self, words: Sequence[OCRWord]) -> List[OCRWord]:
        """Drop low-confidence words and merge the rest, sorted top-to-bottom, left-to-right."""
        kept = self.filter_by_confidence(words)
        if len(kept) < len(words):
            logger.debug(f"Dropped {len(words) - len(kept)} OCR words below confidence {self.cfg.min_confidence}")
        regions = self.merge_nearby_text_regions(kept)
        return sorted(regions, key=lambda w: (w.bbox[1], w.bbox[0]))
