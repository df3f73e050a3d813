"""
Tolerance correction of a reconstruction.

A (gt, rec) pair is absorbed when every one of its voxels lies within the
tolerance of the same reconstruction label on the other side of the ground
truth boundary, i.e. the pair is nothing but a displaced boundary.  Those
voxels are relabeled to the dominant reconstruction partner of their ground
truth label.  Pairs that keep any overlap beyond the tolerance (genuine
splits and merges, including split pieces lying wholly inside one ground
truth region) are left untouched.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

import numpy as np

from core.base import LabelVolume
from core.progress import noop_progress
from evaluation.exceptions import ShapeMismatchError
from evaluation.overlap import OverlapGraph

logger = logging.getLogger(__name__)


class Corrector:
    """Produce a corrected copy of the reconstruction an overlap graph was built from."""

    def correct(
        self,
        reconstruction: LabelVolume,
        graph: OverlapGraph,
        progress: Optional[Callable[[int, str], None]] = None,
    ) -> LabelVolume:
        progress = progress or noop_progress
        if reconstruction.dimensions != tuple(graph.shape):
            raise ShapeMismatchError(graph.shape, reconstruction.dimensions)

        corrected = np.array(reconstruction.labels, copy=True)
        absorbed = graph.absorbed_pair_mask

        if graph.band_flat_indices.size == 0 or not absorbed.any():
            progress(100, "No correctable voxels.")
            return reconstruction.with_labels(corrected, corrected_voxels=0)

        progress(0, "Relabeling tolerance band...")
        c = graph.contingency
        band = graph.band_flat_indices
        band_gt = graph.band_gt_indices

        band_rec = corrected.reshape(-1)[band]
        rec_pos = np.searchsorted(c.rec_labels, band_rec)
        known = rec_pos < len(c.rec_labels)
        known[known] = c.rec_labels[rec_pos[known]] == band_rec[known]
        if not known.all():
            raise ValueError("Reconstruction labels do not match the overlap graph.")

        keys = band_gt * np.int64(len(c.rec_labels)) + rec_pos
        hit = absorbed[np.searchsorted(c.pair_keys, keys)]

        flat = corrected.reshape(-1)
        flat[band[hit]] = c.rec_labels[graph.dominant_rec[band_gt[hit]]]
        num_changed = int(np.count_nonzero(hit))

        logger.info("Tolerance correction relabeled %d voxels", num_changed)
        progress(100, f"Relabeled {num_changed} voxels.")
        return reconstruction.with_labels(corrected, corrected_voxels=num_changed)


__all__ = ["Corrector"]
