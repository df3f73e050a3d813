"""
Auxiliary segmentation metrics computed from exact label co-occurrence.

- Variation of information (split / merge parts, in bits)
- Rand index over voxel pairs
- Detection overlap (best-match overlap fraction per region)
- Slice growing of reconstruction regions into background
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import scipy.ndimage as ndimage

from evaluation.overlap import ContingencyTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoiResult:
    split: Optional[float]    # H(rec | gt)
    merge: Optional[float]    # H(gt | rec)

    @property
    def total(self) -> Optional[float]:
        if self.split is None or self.merge is None:
            return None
        return self.split + self.merge

    @property
    def available(self) -> bool:
        return self.split is not None


@dataclass(frozen=True)
class DetectionOverlapResult:
    gt: Optional[float]       # mean best-match fraction over ground truth regions
    rec: Optional[float]      # mean best-match fraction over reconstruction regions


def _entropy(counts: np.ndarray, total: float) -> float:
    p = counts[counts > 0].astype(np.float64) / total
    return float(-np.sum(p * np.log2(p)))


def variation_of_information(table: ContingencyTable) -> VoiResult:
    """
    VOI = H(rec | gt) + H(gt | rec), from the joint label distribution.

    Returns an unavailable result when the table counts no voxels.
    """
    n = float(table.total)
    if n <= 0:
        logger.warning("Variation of information: no voxels to compare")
        return VoiResult(split=None, merge=None)

    h_joint = _entropy(table.counts, n)
    h_gt = _entropy(table.gt_sizes, n)
    h_rec = _entropy(table.rec_sizes, n)
    split = max(0.0, h_joint - h_gt)
    merge = max(0.0, h_joint - h_rec)
    return VoiResult(split=split, merge=merge)


def _pairs(counts: np.ndarray) -> float:
    c = counts.astype(np.float64)
    return float(np.sum(c * (c - 1.0) / 2.0))


def rand_index(table: ContingencyTable) -> Optional[float]:
    """
    Fraction of voxel pairs on whose same/different-region status both
    labelings agree.  ``None`` when fewer than two voxels are compared.
    """
    n = float(table.total)
    if n < 2:
        logger.warning("Rand index: fewer than two voxels to compare")
        return None

    all_pairs = n * (n - 1.0) / 2.0
    joint = _pairs(table.counts)
    same_gt = _pairs(table.gt_sizes)
    same_rec = _pairs(table.rec_sizes)
    agreements = all_pairs + 2.0 * joint - same_gt - same_rec
    return float(agreements / all_pairs)


def detection_overlap(
    table: ContingencyTable,
    gt_background_label: Optional[int] = None,
    rec_background_label: Optional[int] = None,
) -> DetectionOverlapResult:
    """
    Mean best-match overlap fraction, from either side.

    For every foreground region, the largest exact overlap with a foreground
    region of the other labeling is divided by the region's size.  A side
    without foreground regions yields ``None``.
    """
    gt_sizes = table.gt_sizes
    rec_sizes = table.rec_sizes

    fg_pair = np.ones(table.num_pairs, dtype=bool)
    if gt_background_label is not None:
        fg_pair &= table.gt_labels[table.pair_gt] != gt_background_label
    if rec_background_label is not None:
        fg_pair &= table.rec_labels[table.pair_rec] != rec_background_label

    best_gt = np.zeros(len(table.gt_labels), dtype=np.int64)
    best_rec = np.zeros(len(table.rec_labels), dtype=np.int64)
    np.maximum.at(best_gt, table.pair_gt[fg_pair], table.counts[fg_pair])
    np.maximum.at(best_rec, table.pair_rec[fg_pair], table.counts[fg_pair])

    def _mean_fraction(labels: np.ndarray, best: np.ndarray, sizes: np.ndarray, background) -> Optional[float]:
        keep = sizes > 0
        if background is not None:
            keep &= labels != background
        if not keep.any():
            return None
        return float(np.mean(best[keep] / sizes[keep]))

    return DetectionOverlapResult(
        gt=_mean_fraction(table.gt_labels, best_gt, gt_sizes, gt_background_label),
        rec=_mean_fraction(table.rec_labels, best_rec, rec_sizes, rec_background_label),
    )


def grow_slices(labels: np.ndarray, background_label: int) -> np.ndarray:
    """
    Grow reconstruction regions into background, one section at a time.

    Each background voxel takes the label of its nearest non-background voxel
    in the same section.  Sections without any foreground are left as is.
    """
    arr = np.asarray(labels)
    grown = np.array(arr, copy=True)
    for z in range(grown.shape[0]):
        section = grown[z]
        bg = section == background_label
        if not bg.any() or bg.all():
            continue
        _dist, (iy, ix) = ndimage.distance_transform_edt(bg, return_indices=True)
        grown[z] = section[iy, ix]
    return grown


__all__ = [
    "VoiResult",
    "DetectionOverlapResult",
    "variation_of_information",
    "rand_index",
    "detection_overlap",
    "grow_slices",
]
