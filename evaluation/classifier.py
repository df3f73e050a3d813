"""
Split / merge / false positive / false negative classification of a
tolerant overlap graph.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from config import TED_MIN_OVERLAP_FRACTION
from evaluation.overlap import OverlapGraph

logger = logging.getLogger(__name__)


@dataclass
class TolerantEditDistanceErrors:
    """
    Classification of every ground truth and reconstruction label.

    Attributes
    ----------
    splits : dict
        GT label -> sorted reconstruction labels it was split into (>= 2).
    merges : dict
        Reconstruction label -> sorted GT labels merged into it (>= 2).
    false_positives / false_negatives : set
        Only populated when ``has_background`` is True.
    matched_gt / matched_rec : dict
        Label -> its single partner on the other side.
    excluded_gt / excluded_rec : set
        Labels that take part in no category (only-background partners with
        background handling disabled, or no overlap left beyond tolerance).
    """

    splits: Dict[int, List[int]] = field(default_factory=dict)
    merges: Dict[int, List[int]] = field(default_factory=dict)
    false_positives: Set[int] = field(default_factory=set)
    false_negatives: Set[int] = field(default_factory=set)
    matched_gt: Dict[int, int] = field(default_factory=dict)
    matched_rec: Dict[int, int] = field(default_factory=dict)
    excluded_gt: Set[int] = field(default_factory=set)
    excluded_rec: Set[int] = field(default_factory=set)
    has_background: bool = False
    gt_background_label: Optional[int] = None
    rec_background_label: Optional[int] = None

    # ------------------------------------------------------------------
    def get_split_labels(self) -> List[int]:
        return sorted(self.splits)

    def get_splits(self, gt_label: int) -> List[int]:
        return list(self.splits.get(gt_label, []))

    def get_merge_labels(self) -> List[int]:
        return sorted(self.merges)

    def get_merges(self, rec_label: int) -> List[int]:
        return list(self.merges.get(rec_label, []))

    def get_false_positives(self) -> List[int]:
        return sorted(self.false_positives)

    def get_false_negatives(self) -> List[int]:
        return sorted(self.false_negatives)

    # ------------------------------------------------------------------
    @property
    def num_splits(self) -> int:
        """Edit count: every extra reconstruction partner is one split."""
        return int(sum(len(v) - 1 for v in self.splits.values()))

    @property
    def num_merges(self) -> int:
        return int(sum(len(v) - 1 for v in self.merges.values()))

    @property
    def num_false_positives(self) -> int:
        return len(self.false_positives)

    @property
    def num_false_negatives(self) -> int:
        return len(self.false_negatives)

    @property
    def total(self) -> int:
        return self.num_splits + self.num_merges + self.num_false_positives + self.num_false_negatives

    def gt_category(self, gt_label: int) -> Optional[str]:
        if gt_label in self.matched_gt:
            return "matched"
        if gt_label in self.splits:
            return "split"
        if gt_label in self.false_negatives:
            return "false_negative"
        if gt_label in self.excluded_gt:
            return "excluded"
        return None

    def rec_category(self, rec_label: int) -> Optional[str]:
        if rec_label in self.matched_rec:
            return "matched"
        if rec_label in self.merges:
            return "merge"
        if rec_label in self.false_positives:
            return "false_positive"
        if rec_label in self.excluded_rec:
            return "excluded"
        return None


class ErrorClassifier:
    """
    Assign each label of an overlap graph to exactly one category.

    A partner counts when its overlap beyond tolerance reaches
    ``max(1, min_overlap_fraction * region size)``; the dominant partner of a
    region always counts.  With ``has_background`` the background partners are
    set aside and turn into false negatives / positives when nothing else is
    left; without it they count like any other partner.
    """

    def __init__(
        self,
        has_background: bool = False,
        gt_background_label: Optional[int] = None,
        rec_background_label: Optional[int] = None,
        min_overlap_fraction: float = TED_MIN_OVERLAP_FRACTION,
    ) -> None:
        self.has_background = bool(has_background)
        self.gt_background_label = gt_background_label
        self.rec_background_label = rec_background_label
        self.min_overlap_fraction = float(min_overlap_fraction)

    def classify(self, graph: OverlapGraph) -> TolerantEditDistanceErrors:
        c = graph.contingency
        tolerant = graph.tolerant_counts
        gt_sizes = graph.gt_sizes
        rec_sizes = graph.rec_sizes
        frac = self.min_overlap_fraction

        gt_partners: Dict[int, Set[int]] = {}
        rec_partners: Dict[int, Set[int]] = {}
        rec_best: Dict[int, tuple] = {}

        for i in range(c.num_pairs):
            t = int(tolerant[i])
            if t < 1:
                continue
            gi = int(c.pair_gt[i])
            ri = int(c.pair_rec[i])

            if ri == graph.dominant_rec[gi] or t >= max(1.0, frac * gt_sizes[gi]):
                gt_partners.setdefault(gi, set()).add(ri)
            if t >= max(1.0, frac * rec_sizes[ri]):
                rec_partners.setdefault(ri, set()).add(gi)

            # Largest overlap beyond tolerance; ties go to the smaller label.
            best = rec_best.get(ri)
            if best is None or t > best[0] or (t == best[0] and gi < best[1]):
                rec_best[ri] = (t, gi)

        for ri, (_t, gi) in rec_best.items():
            rec_partners.setdefault(ri, set()).add(gi)

        errors = TolerantEditDistanceErrors(
            has_background=self.has_background,
            gt_background_label=self.gt_background_label,
            rec_background_label=self.rec_background_label,
        )

        gt_labels = [int(v) for v in c.gt_labels]
        rec_labels = [int(v) for v in c.rec_labels]

        for gi, gt_label in enumerate(gt_labels):
            if gt_label == self.gt_background_label:
                continue
            partners = {rec_labels[ri] for ri in gt_partners.get(gi, set())}
            self._assign(
                label=gt_label,
                partners=partners,
                background=self.rec_background_label,
                matched=errors.matched_gt,
                multi=errors.splits,
                lonely=errors.false_negatives,
                excluded=errors.excluded_gt,
            )

        for ri, rec_label in enumerate(rec_labels):
            if rec_label == self.rec_background_label:
                continue
            if rec_sizes[ri] > 0 and ri not in rec_partners:
                logger.debug("Reconstruction label %s has no overlap beyond tolerance; excluded", rec_label)
            partners = {gt_labels[gi] for gi in rec_partners.get(ri, set())}
            self._assign(
                label=rec_label,
                partners=partners,
                background=self.gt_background_label,
                matched=errors.matched_rec,
                multi=errors.merges,
                lonely=errors.false_positives,
                excluded=errors.excluded_rec,
            )

        logger.info(
            "TED: %d splits, %d merges, %d false positives, %d false negatives",
            errors.num_splits,
            errors.num_merges,
            errors.num_false_positives,
            errors.num_false_negatives,
        )
        return errors

    def _assign(
        self,
        label: int,
        partners: Set[int],
        background: Optional[int],
        matched: Dict[int, int],
        multi: Dict[int, List[int]],
        lonely: Set[int],
        excluded: Set[int],
    ) -> None:
        has_bg_partner = background is not None and background in partners
        foreground = partners - {background} if background is not None else set(partners)

        if not partners:
            excluded.add(label)
            return

        if self.has_background:
            if len(foreground) >= 2:
                multi[label] = sorted(foreground)
            elif len(foreground) == 1:
                matched[label] = next(iter(foreground))
            else:
                lonely.add(label)
            return

        if len(partners) >= 2:
            multi[label] = sorted(partners)
        elif has_bg_partner:
            excluded.add(label)
        else:
            matched[label] = next(iter(partners))


__all__ = ["TolerantEditDistanceErrors", "ErrorClassifier"]
