"""
Spatially tolerant correspondence between ground truth and reconstruction.

Two passes build the bipartite overlap graph:

1. A slab-wise co-occurrence pass counts the exact voxel overlap of every
   (gt, rec) label pair (the contingency table).
2. For every ground truth label ``g`` and every non-dominant reconstruction
   partner ``r`` that also occurs outside ``g``, a distance transform over
   the pair's padded bounding box finds the voxels of ``(g, r)`` within
   ``tolerance`` of a voxel of ``r`` outside ``g``.  Those voxels are a
   reconstruction boundary displaced across the ground truth boundary; they
   form the *tolerance band* and do not count towards the pair's overlap.

A reconstruction region lying wholly inside ``g`` has no voxel outside it,
so a split piece is never absorbed, however thin ``g`` is.

The per-label band computations are independent and run in a thread pool;
each task returns a shard that the calling thread merges at the end.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import scipy.ndimage as ndimage

from config import CONTINGENCY_SLAB_DEPTH, TED_MAX_WORKERS
from core.base import LabelVolume
from core.chunker import SlabChunker
from core.coordinates import box_offset_zyx, pad_slices_zyx, tolerance_to_voxel_radius_zyx
from core.progress import noop_progress, scaled_progress
from evaluation.exceptions import ShapeMismatchError

logger = logging.getLogger(__name__)

_DISTANCE_EPS = 1e-9


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OverlapEntry:
    """Overlap of one ground truth region with one reconstruction region."""

    gt_label: int
    rec_label: int
    overlap: int        # beyond tolerance
    raw_overlap: int    # exact


@dataclass
class ContingencyTable:
    """
    Sparse voxel co-occurrence counts.

    ``pair_gt`` / ``pair_rec`` index into ``gt_labels`` / ``rec_labels``;
    pairs are sorted by ``pair_gt * len(rec_labels) + pair_rec``.
    """

    gt_labels: np.ndarray
    rec_labels: np.ndarray
    pair_gt: np.ndarray
    pair_rec: np.ndarray
    counts: np.ndarray

    @property
    def total(self) -> int:
        return int(self.counts.sum())

    @property
    def num_pairs(self) -> int:
        return int(self.counts.size)

    @property
    def pair_keys(self) -> np.ndarray:
        return self.pair_gt * np.int64(len(self.rec_labels)) + self.pair_rec

    @property
    def gt_sizes(self) -> np.ndarray:
        return np.bincount(self.pair_gt, weights=self.counts, minlength=len(self.gt_labels)).astype(np.int64)

    @property
    def rec_sizes(self) -> np.ndarray:
        return np.bincount(self.pair_rec, weights=self.counts, minlength=len(self.rec_labels)).astype(np.int64)


def build_contingency(
    gt_labels: np.ndarray,
    rec_labels: np.ndarray,
    *,
    ignore_gt_label: Optional[int] = None,
    slab_depth: int = CONTINGENCY_SLAB_DEPTH,
    progress: Optional[Callable[[int, str], None]] = None,
) -> ContingencyTable:
    """
    Count exact (gt, rec) co-occurrences one depth slab at a time.

    Voxels whose ground truth label equals ``ignore_gt_label`` are skipped.
    """
    gt = np.asarray(gt_labels)
    rec = np.asarray(rec_labels)
    if gt.shape != rec.shape:
        raise ShapeMismatchError(gt.shape, rec.shape)

    gt_ids = np.unique(gt)
    rec_ids = np.unique(rec)
    if ignore_gt_label is not None:
        gt_ids = gt_ids[gt_ids != ignore_gt_label]
    n_rec = np.int64(max(len(rec_ids), 1))

    def _map(gt_slab: np.ndarray, rec_slab: np.ndarray, _desc) -> Tuple[np.ndarray, np.ndarray]:
        g = gt_slab.ravel()
        r = rec_slab.ravel()
        if ignore_gt_label is not None:
            keep = g != ignore_gt_label
            g = g[keep]
            r = r[keep]
        if g.size == 0:
            return np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.int64)
        keys = np.searchsorted(gt_ids, g).astype(np.int64) * n_rec + np.searchsorted(rec_ids, r)
        return np.unique(keys, return_counts=True)

    def _reduce(partials) -> Tuple[np.ndarray, np.ndarray]:
        partials = list(partials)
        if not partials:
            return np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.int64)
        keys = np.concatenate([p[0] for p in partials])
        counts = np.concatenate([p[1] for p in partials]).astype(np.int64)
        uniq, inverse = np.unique(keys, return_inverse=True)
        return uniq, np.bincount(inverse, weights=counts, minlength=len(uniq)).astype(np.int64)

    if gt.ndim == 3:
        chunker = SlabChunker(gt.shape, slab_depth=slab_depth)
        keys, counts = chunker.map_reduce([gt, rec], _map, _reduce, progress=progress)
    else:
        keys, counts = _reduce([_map(gt, rec, None)])

    return ContingencyTable(
        gt_labels=gt_ids.astype(np.int64),
        rec_labels=rec_ids.astype(np.int64),
        pair_gt=(keys // n_rec).astype(np.int64),
        pair_rec=(keys % n_rec).astype(np.int64),
        counts=counts,
    )


@dataclass
class _BandShard:
    """Tolerance band of one ground truth label (one worker's result)."""

    gt_index: int
    flat_indices: np.ndarray
    rec_indices: np.ndarray
    rec_counts: np.ndarray


@dataclass
class OverlapGraph:
    """
    Bipartite overlap graph between ground truth and reconstruction labels.

    Holds, per label pair, the exact overlap and the overlap beyond the
    tolerance band, plus the band itself so that a corrector can act on it.
    """

    contingency: ContingencyTable
    band_counts: np.ndarray           # per pair, voxels of the pair in the band
    dominant_rec: np.ndarray          # per gt index, rec index of largest exact overlap
    band_flat_indices: np.ndarray     # sorted flat indices of all band voxels
    band_gt_indices: np.ndarray       # gt index of each band voxel
    shape: Tuple[int, int, int]
    tolerance: float

    # ------------------------------------------------------------------
    @property
    def gt_labels(self) -> np.ndarray:
        return self.contingency.gt_labels

    @property
    def rec_labels(self) -> np.ndarray:
        return self.contingency.rec_labels

    @property
    def raw_counts(self) -> np.ndarray:
        return self.contingency.counts

    @property
    def dominant_pair_mask(self) -> np.ndarray:
        c = self.contingency
        return self.dominant_rec[c.pair_gt] == c.pair_rec

    @property
    def tolerant_counts(self) -> np.ndarray:
        """Overlap beyond tolerance; dominant pairs keep their exact count."""
        tolerant = self.contingency.counts - self.band_counts
        return np.where(self.dominant_pair_mask, self.contingency.counts, tolerant)

    @property
    def absorbed_pair_mask(self) -> np.ndarray:
        """Non-dominant pairs whose every voxel is a displaced boundary."""
        return (~self.dominant_pair_mask) & (self.tolerant_counts == 0)

    @property
    def gt_sizes(self) -> np.ndarray:
        return self.contingency.gt_sizes

    @property
    def rec_sizes(self) -> np.ndarray:
        return self.contingency.rec_sizes

    # ------------------------------------------------------------------
    def entries(self, include_absorbed: bool = False) -> List[OverlapEntry]:
        """Edges of the graph: pairs with at least one voxel beyond tolerance."""
        c = self.contingency
        tolerant = self.tolerant_counts
        out: List[OverlapEntry] = []
        for i in range(c.num_pairs):
            if tolerant[i] < 1 and not include_absorbed:
                continue
            out.append(
                OverlapEntry(
                    gt_label=int(c.gt_labels[c.pair_gt[i]]),
                    rec_label=int(c.rec_labels[c.pair_rec[i]]),
                    overlap=int(tolerant[i]),
                    raw_overlap=int(c.counts[i]),
                )
            )
        return out

    def gt_partners(self, gt_label: int) -> Dict[int, Tuple[int, int]]:
        """Map rec label -> (tolerant, exact) overlap for one ground truth label."""
        c = self.contingency
        idx = int(np.searchsorted(c.gt_labels, gt_label))
        if idx >= len(c.gt_labels) or c.gt_labels[idx] != gt_label:
            return {}
        tolerant = self.tolerant_counts
        sel = np.nonzero(c.pair_gt == idx)[0]
        return {int(c.rec_labels[c.pair_rec[i]]): (int(tolerant[i]), int(c.counts[i])) for i in sel}

    def rec_partners(self, rec_label: int) -> Dict[int, Tuple[int, int]]:
        """Map gt label -> (tolerant, exact) overlap for one reconstruction label."""
        c = self.contingency
        idx = int(np.searchsorted(c.rec_labels, rec_label))
        if idx >= len(c.rec_labels) or c.rec_labels[idx] != rec_label:
            return {}
        tolerant = self.tolerant_counts
        sel = np.nonzero(c.pair_rec == idx)[0]
        return {int(c.gt_labels[c.pair_gt[i]]): (int(tolerant[i]), int(c.counts[i])) for i in sel}

    def dominant_partner(self, gt_label: int) -> Optional[int]:
        c = self.contingency
        idx = int(np.searchsorted(c.gt_labels, gt_label))
        if idx >= len(c.gt_labels) or c.gt_labels[idx] != gt_label:
            return None
        return int(c.rec_labels[self.dominant_rec[idx]])


# ---------------------------------------------------------------------------
# CorrespondenceBuilder
# ---------------------------------------------------------------------------

def _dominant_partners(table: ContingencyTable) -> np.ndarray:
    """
    Rec index of the largest exact overlap for every gt index.

    Ties go to the smaller reconstruction label.
    """
    dominant = np.zeros(len(table.gt_labels), dtype=np.int64)
    if table.num_pairs == 0:
        return dominant
    # Primary key gt ascending, then count descending, then rec ascending.
    order = np.lexsort((table.pair_rec, -table.counts, table.pair_gt))
    sorted_gt = table.pair_gt[order]
    first = np.ones(len(order), dtype=bool)
    first[1:] = sorted_gt[1:] != sorted_gt[:-1]
    dominant[sorted_gt[first]] = table.pair_rec[order][first]
    return dominant


class CorrespondenceBuilder:
    """
    Build the tolerant overlap graph for a pair of label volumes.

    Parameters
    ----------
    tolerance : float
        Boundary tolerance in physical units of the ground truth resolution.
    max_workers : int
        Thread pool size for per-label tolerance band computation.
    slab_depth : int
        Sections per slab for the co-occurrence pass.
    """

    def __init__(
        self,
        tolerance: float,
        max_workers: int = TED_MAX_WORKERS,
        slab_depth: int = CONTINGENCY_SLAB_DEPTH,
    ) -> None:
        if tolerance < 0:
            raise ValueError(f"tolerance must be non-negative, got {tolerance}")
        self.tolerance = float(tolerance)
        self.max_workers = max(1, int(max_workers))
        self.slab_depth = int(slab_depth)

    def build(
        self,
        ground_truth: LabelVolume,
        reconstruction: LabelVolume,
        progress: Optional[Callable[[int, str], None]] = None,
    ) -> OverlapGraph:
        progress = progress or noop_progress
        if ground_truth.dimensions != reconstruction.dimensions:
            raise ShapeMismatchError(ground_truth.dimensions, reconstruction.dimensions)
        if ground_truth.resolution != reconstruction.resolution:
            logger.warning(
                "Resolution mismatch (gt=%s, rec=%s); using ground truth resolution for tolerance",
                ground_truth.resolution,
                reconstruction.resolution,
            )

        progress(0, "Counting label co-occurrences...")
        table = build_contingency(
            ground_truth.labels,
            reconstruction.labels,
            slab_depth=self.slab_depth,
            progress=scaled_progress(progress, 0, 40),
        )
        dominant = _dominant_partners(table)

        band_counts = np.zeros(table.num_pairs, dtype=np.int64)
        band_flat = np.zeros(0, dtype=np.int64)
        band_gt = np.zeros(0, dtype=np.int64)

        if self._tolerance_reaches_neighbours(ground_truth):
            shards = self._compute_bands(
                ground_truth, reconstruction, table, dominant, scaled_progress(progress, 40, 95)
            )
            band_counts, band_flat, band_gt = self._merge_shards(shards, table)
        else:
            logger.debug("Tolerance %.3f is below one voxel step; skipping band computation", self.tolerance)

        progress(100, f"Overlap graph: {table.num_pairs} pairs, {band_flat.size} band voxels")
        return OverlapGraph(
            contingency=table,
            band_counts=band_counts,
            dominant_rec=dominant,
            band_flat_indices=band_flat,
            band_gt_indices=band_gt,
            shape=ground_truth.dimensions,
            tolerance=self.tolerance,
        )

    # ------------------------------------------------------------------
    def _tolerance_reaches_neighbours(self, volume: LabelVolume) -> bool:
        return self.tolerance + _DISTANCE_EPS >= min(volume.sampling_zyx)

    def _compute_bands(
        self,
        ground_truth: LabelVolume,
        reconstruction: LabelVolume,
        table: ContingencyTable,
        dominant: np.ndarray,
        progress: Callable[[int, str], None],
    ) -> List[_BandShard]:
        shape = ground_truth.dimensions
        sampling = ground_truth.sampling_zyx
        radius = tolerance_to_voxel_radius_zyx(self.tolerance, ground_truth.resolution)
        tolerance = self.tolerance
        num_rec = len(table.rec_labels)

        # Only a non-dominant partner with voxels outside g can be a displaced boundary.
        spills = table.counts < table.rec_sizes[table.pair_rec]
        movable = spills & (dominant[table.pair_gt] != table.pair_rec)
        candidates: Dict[int, List[int]] = {}
        for i in np.nonzero(movable)[0]:
            candidates.setdefault(int(table.pair_gt[i]), []).append(int(table.pair_rec[i]))

        if not candidates:
            return []

        # 1-based compact label indices, as required by find_objects
        gt_idx = (np.searchsorted(table.gt_labels, ground_truth.labels) + 1).astype(np.int32)
        rec_idx = np.searchsorted(table.rec_labels, reconstruction.labels).astype(np.int32)
        boxes = ndimage.find_objects(gt_idx)

        def band_of_label(k: int, box, partners: List[int]) -> Optional[_BandShard]:
            padded = pad_slices_zyx(box, radius, shape)
            inside = gt_idx[padded] == (k + 1)
            rec_box = rec_idx[padded]
            pair_ids = np.where(inside, rec_box + 1, 0).astype(np.int32)
            pair_boxes = ndimage.find_objects(pair_ids, max_label=num_rec)
            offset = box_offset_zyx(padded)

            flats: List[np.ndarray] = []
            kept: List[int] = []
            counts: List[int] = []
            for r in partners:
                sub = pad_slices_zyx(pair_boxes[r], radius, inside.shape)
                source = (rec_box[sub] == r) & ~inside[sub]
                if not source.any():
                    continue
                dist = ndimage.distance_transform_edt(~source, sampling=sampling)
                near = (pair_ids[sub] == r + 1) & (dist <= tolerance + _DISTANCE_EPS)
                if not near.any():
                    continue
                coords = np.nonzero(near)
                origin = offset + box_offset_zyx(sub)
                flats.append(np.ravel_multi_index(tuple(c + o for c, o in zip(coords, origin)), shape))
                kept.append(r)
                counts.append(coords[0].size)

            if not flats:
                return None
            return _BandShard(
                gt_index=k,
                flat_indices=np.concatenate(flats).astype(np.int64),
                rec_indices=np.asarray(kept, dtype=np.int64),
                rec_counts=np.asarray(counts, dtype=np.int64),
            )

        tasks = [(k, boxes[k], partners) for k, partners in sorted(candidates.items()) if boxes[k] is not None]
        total = max(len(tasks), 1)
        shards: List[_BandShard] = []
        with ThreadPoolExecutor(max_workers=min(self.max_workers, total)) as executor:
            futures = {executor.submit(band_of_label, k, box, partners): k for k, box, partners in tasks}
            for done, future in enumerate(as_completed(futures), start=1):
                shard = future.result()
                if shard is not None:
                    shards.append(shard)
                progress(int(100 * done / total), f"Tolerance band {done}/{total}")

        shards.sort(key=lambda s: s.gt_index)
        return shards

    @staticmethod
    def _merge_shards(
        shards: List[_BandShard],
        table: ContingencyTable,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        band_counts = np.zeros(table.num_pairs, dtype=np.int64)
        if not shards:
            empty = np.zeros(0, dtype=np.int64)
            return band_counts, empty, empty

        n_rec = np.int64(len(table.rec_labels))
        pair_keys = table.pair_keys
        for shard in shards:
            keys = np.int64(shard.gt_index) * n_rec + shard.rec_indices
            pos = np.searchsorted(pair_keys, keys)
            band_counts[pos] += shard.rec_counts

        flat = np.concatenate([s.flat_indices for s in shards])
        gt = np.concatenate([np.full(s.flat_indices.size, s.gt_index, dtype=np.int64) for s in shards])
        order = np.argsort(flat, kind="stable")
        return band_counts, flat[order], gt[order]
