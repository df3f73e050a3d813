"""
Data loaders package.
"""

from loaders.stack import (
    ImageStackDirectoryLoader,
    Hdf5VolumeLoader,
    list_slice_files,
    load_label_volume,
    split_hdf5_source,
)
from loaders.ground_truth import extract_ground_truth_labels, foreground_mask

__all__ = [
    'ImageStackDirectoryLoader',
    'Hdf5VolumeLoader',
    'list_slice_files',
    'load_label_volume',
    'split_hdf5_source',
    'extract_ground_truth_labels',
    'foreground_mask',
]
