import numpy as np
import pytest

from core import LabelVolume
from evaluation import CorrespondenceBuilder, Corrector, ShapeMismatchError


def _correct(gt, rec, tolerance):
    builder = CorrespondenceBuilder(tolerance=tolerance)
    graph = builder.build(gt, rec)
    return Corrector().correct(rec, graph)


def test_shifted_boundary_is_relabeled():
    gt = np.zeros((1, 5, 14), dtype=np.int64)
    rec = np.zeros_like(gt)
    gt[0, 2, 2:12] = 1
    rec[0, 2, 3:13] = 2

    corrected = _correct(LabelVolume(gt), LabelVolume(rec), tolerance=1.0)

    np.testing.assert_array_equal(corrected.labels, np.where(gt == 1, 2, 0))
    assert corrected.metadata["corrected_voxels"] == 2
    # The input volume is never modified.
    assert rec[0, 2, 2] == 0


def test_correction_is_idempotent():
    gt = np.zeros((2, 12, 12), dtype=np.int64)
    gt[:, :, :6] = 1
    gt[:, :, 6:] = 2
    gt[:, :2, :] = 0
    rec = gt.copy() + 10
    rec[gt == 0] = 0
    rec[:, 2:12, 5] = 12          # boundary between 1 and 2 moved by one voxel
    rec[:, 1, 0:5] = 11           # region 1 spills one row into background
    rec[:, 6:9, 1:3] = 30         # genuine split piece

    expected = np.where(gt == 1, 11, np.where(gt == 2, 12, 0))
    expected[:, 6:9, 1:3] = 30

    gt_vol = LabelVolume(gt)
    once = _correct(gt_vol, LabelVolume(rec), tolerance=1.0)
    twice = _correct(gt_vol, once, tolerance=1.0)

    assert once.metadata["corrected_voxels"] == 30
    np.testing.assert_array_equal(once.labels, expected)
    assert twice.metadata["corrected_voxels"] == 0
    np.testing.assert_array_equal(once.labels, twice.labels)


def test_genuine_split_is_left_untouched():
    gt = np.zeros((1, 8, 20), dtype=np.int64)
    gt[0, 1:7, 1:19] = 1
    rec = gt.copy()
    rec[0, 1:7, 10:19] = 2

    corrected = _correct(LabelVolume(gt), LabelVolume(rec), tolerance=1.0)

    np.testing.assert_array_equal(corrected.labels, rec)
    assert corrected.metadata["corrected_voxels"] == 0


def _thin_process_split():
    """One voxel thick ground truth process, cut lengthwise into two pieces."""
    gt = np.zeros((1, 5, 44), dtype=np.int64)
    gt[0, 2, 2:42] = 1
    rec = np.zeros_like(gt)
    rec[0, 2, 2:22] = 1
    rec[0, 2, 22:42] = 2
    return gt, rec


@pytest.mark.parametrize("tolerance", [1.0, 3.0, 10.0])
def test_split_of_thin_region_is_left_untouched(tolerance):
    gt, rec = _thin_process_split()

    corrected = _correct(LabelVolume(gt), LabelVolume(rec), tolerance=tolerance)

    np.testing.assert_array_equal(corrected.labels, rec)
    assert corrected.metadata["corrected_voxels"] == 0


@pytest.mark.parametrize("tolerance", [1.0, 3.0])
def test_only_the_displaced_boundary_of_a_split_piece_is_corrected(tolerance):
    gt, rec = _thin_process_split()
    rec[0, 1, 30] = 2             # piece 2 pokes one voxel into background

    corrected = _correct(LabelVolume(gt), LabelVolume(rec), tolerance=tolerance)

    expected = rec.copy()
    expected[0, 1, 30] = 0
    np.testing.assert_array_equal(corrected.labels, expected)
    assert corrected.metadata["corrected_voxels"] == 1


def test_no_op_without_tolerance():
    gt = np.zeros((1, 4, 4), dtype=np.int64)
    gt[0, 1:3, 1:3] = 1
    rec = gt.copy()
    rec[0, 1, 1] = 2

    corrected = _correct(LabelVolume(gt), LabelVolume(rec, resolution=(1.0, 1.0, 2.0)), tolerance=0.0)

    np.testing.assert_array_equal(corrected.labels, rec)
    assert corrected.resolution == (1.0, 1.0, 2.0)


def test_rejects_volume_of_other_shape():
    gt = LabelVolume(np.zeros((1, 4, 4)))
    graph = CorrespondenceBuilder(tolerance=1.0).build(gt, gt)
    with pytest.raises(ShapeMismatchError):
        Corrector().correct(LabelVolume(np.zeros((1, 4, 5))), graph)


def test_rejects_labels_unknown_to_graph():
    gt = np.zeros((1, 6, 6), dtype=np.int64)
    gt[0, 1:5, 1:5] = 1
    rec = gt.copy()
    rec[0, 1, 1] = 9
    rec[0, 0, 1] = 9              # straddles the ground truth boundary
    graph = CorrespondenceBuilder(tolerance=1.0).build(LabelVolume(gt), LabelVolume(rec))

    other = rec.copy()
    other[0, 1, 1] = 77
    with pytest.raises(ValueError):
        Corrector().correct(LabelVolume(other), graph)
