import unittest
import numpy as np

from core import LabelVolume


class TestLabelVolume(unittest.TestCase):
    def test_initialization(self):
        vol = LabelVolume(labels=np.zeros((3, 4, 5), dtype=np.uint16), resolution=(1.0, 2.0, 3.0))
        self.assertEqual(vol.dimensions, (3, 4, 5))
        self.assertEqual((vol.depth, vol.height, vol.width), (3, 4, 5))
        self.assertEqual(vol.labels.dtype, np.int64)
        self.assertEqual(vol.sampling_zyx, (3.0, 2.0, 1.0))

    def test_2d_labels_become_single_section(self):
        vol = LabelVolume(labels=np.ones((4, 4)))
        self.assertEqual(vol.dimensions, (1, 4, 4))
        np.testing.assert_array_equal(vol.slice(0), np.ones((4, 4)))

    def test_float_labels_are_rounded(self):
        vol = LabelVolume(labels=np.array([[[0.0, 1.0000001, 2.9999]]]))
        np.testing.assert_array_equal(vol.labels, [[[0, 1, 3]]])

    def test_labels_are_read_only_copy(self):
        src = np.zeros((1, 2, 2), dtype=np.int64)
        vol = LabelVolume(labels=src)
        src[0, 0, 0] = 7
        self.assertEqual(vol.labels[0, 0, 0], 0)
        with self.assertRaises(ValueError):
            vol.labels[0, 0, 0] = 1

    def test_rejects_negative_labels_and_bad_resolution(self):
        with self.assertRaises(ValueError):
            LabelVolume(labels=np.array([[[-1, 0]]]))
        with self.assertRaises(ValueError):
            LabelVolume(labels=np.zeros((1, 1, 1)), resolution=(1.0, 0.0, 1.0))
        with self.assertRaises(ValueError):
            LabelVolume(labels=np.zeros((2, 2, 2, 2)))

    def test_label_queries(self):
        vol = LabelVolume(labels=np.array([[[0, 5], [5, 2]]]), metadata={"source": "a"})
        np.testing.assert_array_equal(vol.label_ids(), [0, 2, 5])
        self.assertTrue(vol.contains(5))
        self.assertFalse(vol.contains(1))

    def test_with_labels_keeps_resolution_and_merges_metadata(self):
        vol = LabelVolume(labels=np.zeros((1, 2, 2)), resolution=(0.5, 0.5, 2.0), metadata={"source": "a"})
        out = vol.with_labels(np.ones((1, 2, 2)), corrected_voxels=4)
        self.assertEqual(out.resolution, (0.5, 0.5, 2.0))
        self.assertEqual(out.metadata, {"source": "a", "corrected_voxels": 4})
        self.assertEqual(vol.metadata, {"source": "a"})
        self.assertEqual(int(vol.labels.sum()), 0)


if __name__ == '__main__':
    unittest.main()
