"""
Label resolution for reconstructed fields.

Labels are searched in a fixed directional order rather than by plain
Euclidean nearness, because forms are authored label-then-value:

1. Left, same row
2. Above
3. Inside the field rectangle
4. Right, same row

Within a tier the closest candidate wins; the first tier with any candidate
ends the search.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from formgrid.core.models import BoundingBox, TextRegion
from formgrid.utils.exceptions import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

TIER_LEFT = "left"
TIER_ABOVE = "above"
TIER_INSIDE = "inside"
TIER_RIGHT = "right"

# Inside candidates share one nominal distance, so the first one found wins
_INSIDE_DISTANCE = 0.1


@dataclass
class LabelConfig:
    """Distance thresholds for directional label search."""

    row_tolerance: float = 8.0  # Max vertical center offset for same-row tiers
    left_max_distance: float = 80.0  # Max gap for a label left of the field
    above_max_gap: float = 100.0  # Max gap for a label above the field
    center_tolerance: float = 40.0  # Max horizontal center offset for above labels
    right_max_distance: float = 40.0  # Max gap for a label right of the field

    def validate(self) -> None:
        for name, value in self.__dict__.items():
            if value < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {value}")


class LabelResolver:
    """
    Find the text that names a field.

    Example usage:
        resolver = LabelResolver(LabelConfig(left_max_distance=120.0))
        label = resolver.resolve(field_bbox, regions)
    """

    def __init__(self, config: Optional[LabelConfig] = None):
        self.cfg = config if config is not None else LabelConfig()
        self.cfg.validate()

    def resolve(self, field_box: BoundingBox, candidates: Sequence[TextRegion]) -> Optional[str]:
        """Return the best label for ``field_box`` or None."""
        label, _ = self.resolve_with_tier(field_box, candidates)
        return label

    def resolve_with_tier(
        self, field_box: BoundingBox, candidates: Sequence[TextRegion]
    ) -> Tuple[Optional[str], Optional[str]]:
        """Return ``(label, tier)``; both None when nothing qualifies."""
        if field_box is None:
            raise ValidationError("field box must not be None")
        if candidates is None:
            raise ValidationError("candidates must not be None")

        usable = [(c.text.strip(), c.bbox) for c in candidates if c.text and c.text.strip()]
        if not usable:
            return None, None

        for tier, finder in (
            (TIER_LEFT, self._left_candidates),
            (TIER_ABOVE, self._above_candidates),
            (TIER_INSIDE, self._inside_candidates),
            (TIER_RIGHT, self._right_candidates),
        ):
            best = self._closest(finder(field_box, usable))
            if best is not None:
                logger.debug(f"Label '{best[:30]}' found {tier} of field at ({field_box.x:.1f}, {field_box.y:.1f})")
                return best, tier

        return None, None

    @staticmethod
    def _closest(scored: List[Tuple[str, float]]) -> Optional[str]:
        best_text, best_dist = None, None
        for text, dist in scored:
            # Strict comparison keeps the earliest candidate on ties
            if best_dist is None or dist < best_dist:
                best_text, best_dist = text, dist
        return best_text

    def _left_candidates(self, field_box: BoundingBox, usable) -> List[Tuple[str, float]]:
        found = []
        for text, box in usable:
            if box.right > field_box.x:
                continue
            if abs(box.center_y - field_box.center_y) > self.cfg.row_tolerance:
                continue
            gap = field_box.x - box.right
            if gap <= self.cfg.left_max_distance:
                found.append((text, gap))
        return found

    def _above_candidates(self, field_box: BoundingBox, usable) -> List[Tuple[str, float]]:
        found = []
        for text, box in usable:
            gap = field_box.y - box.bottom
            if gap < 0 or gap > self.cfg.above_max_gap:
                continue
            overlaps = box.horizontal_overlap(field_box) > 0
            centered = abs(box.center_x - field_box.center_x) <= self.cfg.center_tolerance
            if overlaps or centered:
                found.append((text, gap))
        return found

    def _inside_candidates(self, field_box: BoundingBox, usable) -> List[Tuple[str, float]]:
        return [
            (text, _INSIDE_DISTANCE)
            for text, box in usable
            if field_box.contains_point(box.x, box.y)
        ]

    def _right_candidates(self, field_box: BoundingBox, usable) -> List[Tuple[str, float]]:
        found = []
        for text, box in usable:
            if box.x < field_box.right:
                continue
            if abs(box.center_y - field_box.center_y) > self.cfg.row_tolerance:
                continue
            gap = box.x - field_box.right
            if gap <= self.cfg.right_max_distance:
                found.append((text, gap))
        return found


def resolve_label(field_box: BoundingBox, candidates: Sequence[TextRegion],
                  config: Optional[LabelConfig] = None) -> Optional[str]:
    """Functional entry point for :class:`LabelResolver`."""
    return LabelResolver(config).resolve(field_box, candidates)


def resolve_label_with_tier(field_box: BoundingBox, candidates: Sequence[TextRegion],
                            config: Optional[LabelConfig] = None) -> Tuple[Optional[str], Optional[str]]:
    return LabelResolver(config).resolve_with_tier(field_box, candidates)
