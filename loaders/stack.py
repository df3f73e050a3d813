"""
Image stack loaders: a directory of 2D slices, or an HDF5 dataset.
Slices are read in parallel and ordered by natural filename sort.
"""

import os
import re
import concurrent.futures
import numpy as np
from typing import List, Optional, Callable, Tuple

from core import BaseLoader, LabelVolume
from config import IMAGE_STACK_EXTENSIONS

LOADER_MAX_WORKERS = 4


def _natural_sort_key(text: str):
    """Natural sorting key for filenames like img_1, img_2, ..., img_10"""
    return [int(c) if c.isdigit() else c.lower() for c in re.split(r'(\d+)', text)]


def _validate_path(path: str) -> None:
    """Validate path exists."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Path does not exist: {path}")


def list_slice_files(folder_path: str) -> List[str]:
    """Return image slice paths in the folder, naturally sorted."""
    _validate_path(folder_path)
    if not os.path.isdir(folder_path):
        raise NotADirectoryError(f"Not a directory: {folder_path}")
    files = [
        os.path.join(folder_path, name)
        for name in os.listdir(folder_path)
        if name.lower().endswith(IMAGE_STACK_EXTENSIONS)
    ]
    files.sort(key=lambda p: _natural_sort_key(os.path.basename(p)))
    return files


def _read_slice(path: str) -> np.ndarray:
    from skimage import io as skio

    image = np.asarray(skio.imread(path))
    if image.ndim == 3:
        # Collapse colour channels to intensity; label stacks are single-channel.
        image = image[..., 0]
    if image.ndim != 2:
        raise ValueError(f"Expected a 2D image slice in {path}, got shape={image.shape}")
    return image


class ImageStackDirectoryLoader(BaseLoader):
    """
    Load a directory of equally sized 2D images as one label volume.

    Pixel values are rounded to integer labels; resolution is not stored in
    plain image files and must be provided by the caller.
    """

    def __init__(self, resolution: Tuple[float, float, float] = (1.0, 1.0, 1.0),
                 max_workers: int = LOADER_MAX_WORKERS) -> None:
        self.resolution = resolution
        self.max_workers = max_workers

    def load(self, source: str, callback: Optional[Callable[[int, str], None]] = None) -> LabelVolume:
        files = list_slice_files(source)
        if not files:
            raise ValueError(f"No image slices found in {source}")

        total = len(files)
        slices: List[Optional[np.ndarray]] = [None] * total
        done = 0
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(_read_slice, path): idx for idx, path in enumerate(files)}
            for future in concurrent.futures.as_completed(futures):
                slices[futures[future]] = future.result()
                done += 1
                if callback and (done % 16 == 0 or done == total):
                    callback(int(100 * done / total), f"Read {done}/{total} slices")

        shapes = {s.shape for s in slices}
        if len(shapes) != 1:
            raise ValueError(f"Slices in {source} differ in size: {sorted(shapes)}")

        volume = np.stack(slices, axis=0)
        return LabelVolume(
            labels=volume,
            resolution=self.resolution,
            metadata={"source": source, "num_slices": total},
        )


class Hdf5VolumeLoader(BaseLoader):
    """
    Load a 3D dataset from an HDF5 container.

    ``source`` is ``<file>:<dataset>``.  The dataset is read as (z, y, x); an
    optional ``resolution`` attribute (x, y, z) sets the voxel size.
    """

    def load(self, source: str, callback: Optional[Callable[[int, str], None]] = None) -> LabelVolume:
        import h5py

        file_name, dataset = split_hdf5_source(source)
        _validate_path(file_name)
        if callback:
            callback(0, f"Reading {dataset} from {os.path.basename(file_name)}...")

        with h5py.File(file_name, "r") as fh:
            if dataset not in fh:
                raise KeyError(f"Dataset '{dataset}' not found in {file_name}")
            ds = fh[dataset]
            volume = np.asarray(ds[...])
            resolution = (1.0, 1.0, 1.0)
            if "resolution" in ds.attrs:
                res = np.asarray(ds.attrs["resolution"], dtype=np.float64).ravel()
                if res.size != 3:
                    raise ValueError(f"Resolution attribute must have 3 values, got {res.size}")
                resolution = (float(res[0]), float(res[1]), float(res[2]))

        if callback:
            callback(100, "HDF5 volume loaded.")
        return LabelVolume(
            labels=volume,
            resolution=resolution,
            metadata={"source": source},
        )


def split_hdf5_source(source: str) -> Tuple[str, str]:
    """Split ``<file>:<dataset>`` at the first colon."""
    file_name, sep, dataset = source.partition(":")
    if not sep or not file_name or not dataset:
        raise ValueError(f"Expected '<file>:<dataset>', got {source!r}")
    return file_name, dataset


def load_label_volume(option: str,
                      resolution: Tuple[float, float, float] = (1.0, 1.0, 1.0),
                      callback: Optional[Callable[[int, str], None]] = None) -> LabelVolume:
    """
    Read a volume from a command-line style option.

    ``file.h5:dataset`` selects an HDF5 dataset, anything else is treated as
    a directory of image slices.
    """
    if ":" in option and not os.path.isdir(option):
        return Hdf5VolumeLoader().load(option, callback=callback)
    return ImageStackDirectoryLoader(resolution=resolution).load(option, callback=callback)
