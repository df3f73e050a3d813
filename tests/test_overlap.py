import numpy as np
import pytest

from core import LabelVolume
from evaluation import (
    CorrespondenceBuilder,
    ShapeMismatchError,
    build_contingency,
)


def _shifted_lines():
    """Ten-voxel GT line and the same line shifted by one voxel along x."""
    gt = np.zeros((1, 5, 14), dtype=np.int64)
    rec = np.zeros_like(gt)
    gt[0, 2, 2:12] = 1
    rec[0, 2, 3:13] = 2
    return LabelVolume(gt), LabelVolume(rec)


def test_contingency_counts_pairs_across_slabs():
    gt = np.zeros((5, 2, 2), dtype=np.int64)
    rec = np.zeros_like(gt)
    gt[:, 0, :] = 3
    rec[:, :, 0] = 7

    table = build_contingency(gt, rec, slab_depth=2)

    assert list(table.gt_labels) == [0, 3]
    assert list(table.rec_labels) == [0, 7]
    counts = {
        (int(table.gt_labels[g]), int(table.rec_labels[r])): int(c)
        for g, r, c in zip(table.pair_gt, table.pair_rec, table.counts)
    }
    assert counts == {(0, 0): 5, (0, 7): 5, (3, 0): 5, (3, 7): 5}
    assert table.total == 20
    assert list(table.gt_sizes) == [10, 10]
    assert list(table.pair_keys) == sorted(table.pair_keys)


def test_contingency_ignores_gt_label():
    gt = np.array([[[0, 0, 1, 1]]])
    rec = np.array([[[4, 5, 5, 5]]])

    table = build_contingency(gt, rec, ignore_gt_label=0)

    assert list(table.gt_labels) == [1]
    assert table.total == 2
    assert list(table.rec_sizes) == [0, 2]


def test_contingency_shape_mismatch():
    with pytest.raises(ShapeMismatchError) as err:
        build_contingency(np.zeros((1, 2, 2)), np.zeros((1, 2, 3)))
    assert isinstance(err.value, ValueError)


def test_graph_without_tolerance_keeps_exact_overlap():
    gt, rec = _shifted_lines()
    graph = CorrespondenceBuilder(tolerance=0.0).build(gt, rec)

    assert graph.band_flat_indices.size == 0
    assert graph.gt_partners(1) == {0: (1, 1), 2: (9, 9)}
    assert graph.rec_partners(2) == {0: (1, 1), 1: (9, 9)}
    assert graph.dominant_partner(1) == 2
    assert not graph.absorbed_pair_mask.any()


def test_graph_tolerance_absorbs_shifted_boundary():
    gt, rec = _shifted_lines()
    graph = CorrespondenceBuilder(tolerance=1.0, max_workers=2).build(gt, rec)

    # Dominant pair keeps its exact count, the one-voxel fringes are absorbed.
    assert graph.gt_partners(1) == {0: (0, 1), 2: (9, 9)}
    assert graph.rec_partners(2)[0] == (0, 1)
    assert int(graph.absorbed_pair_mask.sum()) == 2

    edges = {(e.gt_label, e.rec_label) for e in graph.entries()}
    assert (1, 2) in edges
    assert (1, 0) not in edges
    all_edges = {(e.gt_label, e.rec_label) for e in graph.entries(include_absorbed=True)}
    assert (1, 0) in all_edges


def test_overlap_never_exceeds_region_sizes():
    rng = np.random.default_rng(3)
    gt = LabelVolume(rng.integers(0, 4, size=(3, 8, 8)))
    rec = LabelVolume(rng.integers(0, 5, size=(3, 8, 8)))
    graph = CorrespondenceBuilder(tolerance=1.5).build(gt, rec)

    gt_size = dict(zip(graph.gt_labels.tolist(), graph.gt_sizes.tolist()))
    rec_size = dict(zip(graph.rec_labels.tolist(), graph.rec_sizes.tolist()))
    for entry in graph.entries(include_absorbed=True):
        assert 0 <= entry.overlap <= entry.raw_overlap
        assert entry.raw_overlap <= min(gt_size[entry.gt_label], rec_size[entry.rec_label])


def test_tolerance_uses_physical_resolution():
    gt = np.zeros((1, 5, 14), dtype=np.int64)
    rec = np.zeros_like(gt)
    gt[0, 2, 2:12] = 1
    rec[0, 2, 3:13] = 2
    # Voxels are 2 units wide along x and y, so a tolerance of 1 reaches nothing.
    coarse = CorrespondenceBuilder(tolerance=1.0).build(
        LabelVolume(gt, resolution=(2.0, 2.0, 2.0)), LabelVolume(rec, resolution=(2.0, 2.0, 2.0))
    )
    fine = CorrespondenceBuilder(tolerance=2.0).build(
        LabelVolume(gt, resolution=(2.0, 2.0, 2.0)), LabelVolume(rec, resolution=(2.0, 2.0, 2.0))
    )

    assert coarse.gt_partners(1)[0] == (1, 1)
    assert fine.gt_partners(1)[0] == (0, 1)


def test_builder_rejects_mismatched_volumes_and_negative_tolerance():
    with pytest.raises(ShapeMismatchError):
        CorrespondenceBuilder(tolerance=1.0).build(
            LabelVolume(np.zeros((1, 3, 3))), LabelVolume(np.zeros((2, 3, 3)))
        )
    with pytest.raises(ValueError):
        CorrespondenceBuilder(tolerance=-0.5)


def test_unknown_labels_have_no_partners():
    gt, rec = _shifted_lines()
    graph = CorrespondenceBuilder(tolerance=0.0).build(gt, rec)
    assert graph.gt_partners(42) == {}
    assert graph.rec_partners(42) == {}
    assert graph.dominant_partner(42) is None


def test_split_piece_inside_thin_region_keeps_its_overlap():
    gt = np.zeros((1, 5, 44), dtype=np.int64)
    gt[0, 2, 2:42] = 1
    rec = np.zeros_like(gt)
    rec[0, 2, 2:22] = 1
    rec[0, 2, 22:42] = 2

    graph = CorrespondenceBuilder(tolerance=3.0).build(LabelVolume(gt), LabelVolume(rec))

    assert graph.gt_partners(1) == {1: (20, 20), 2: (20, 20)}
    assert graph.band_flat_indices.size == 0
    assert not graph.absorbed_pair_mask.any()


def test_band_holds_only_voxels_near_the_same_label_across_the_boundary():
    gt = np.zeros((1, 5, 44), dtype=np.int64)
    gt[0, 2, 2:42] = 1
    rec = np.zeros_like(gt)
    rec[0, 2, 2:22] = 1
    rec[0, 2, 22:42] = 2
    rec[0, 1, 30] = 2

    graph = CorrespondenceBuilder(tolerance=1.0).build(LabelVolume(gt), LabelVolume(rec))

    assert graph.gt_partners(1)[2] == (19, 20)
    assert graph.rec_partners(2)[0] == (0, 1)
    shape = gt.shape
    assert sorted(graph.band_flat_indices.tolist()) == sorted([
        int(np.ravel_multi_index((0, 1, 30), shape)),
        int(np.ravel_multi_index((0, 2, 30), shape)),
    ])
    # Dominant pairs, background included, never enter the band.
    assert graph.band_counts[graph.dominant_pair_mask].sum() == 0
