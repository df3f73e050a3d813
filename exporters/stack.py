"""
TIFF slice-directory exporter for label volumes.
"""

import logging
import os

import numpy as np

from config import CORRECTED_DIR_PREFIX
from core import LabelVolume

logger = logging.getLogger(__name__)


class ImageStackExporter:
    """
    Writes a LabelVolume as one 32-bit TIFF per section.

    Files are named ``<prefix><index>.tif`` with a zero-padded index so that
    a natural or lexicographic sort restores section order.
    """

    @staticmethod
    def export(volume: LabelVolume, directory: str, prefix: str = "section") -> int:
        """
        Args:
            volume: labeling to write.
            directory: target directory, created when missing.
            prefix: file name prefix.

        Returns:
            int: number of files written.
        """
        if volume is None:
            raise ValueError("No volume to export.")

        import tifffile

        labels = volume.labels
        if labels.size and int(labels.max()) > np.iinfo(np.uint32).max:
            raise ValueError("Labels exceed the 32-bit range of the TIFF writer.")

        os.makedirs(directory, exist_ok=True)
        digits = max(4, len(str(max(volume.depth - 1, 0))))
        rx, ry, _ = volume.resolution
        for z in range(volume.depth):
            path = os.path.join(directory, f"{prefix}{z:0{digits}d}.tif")
            tifffile.imwrite(
                path,
                labels[z].astype(np.uint32),
                resolution=(1.0 / rx, 1.0 / ry),
            )

        logger.info("Wrote %d sections to %s", volume.depth, directory)
        return volume.depth


def output_stem(option: str) -> str:
    """
    Base name used for files derived from an input option.

    ``dir/rec`` gives ``rec``; ``data/rec.h5:volumes/labels`` gives ``rec``.
    """
    if ":" in option and not os.path.isdir(option):
        option = option.partition(":")[0]
        return os.path.splitext(os.path.basename(option))[0]
    return os.path.basename(option.rstrip("/\\"))


def corrected_output_directory(root: str, reconstruction_option: str) -> str:
    """``<root>/corrected_<stem>`` for the corrected reconstruction."""
    return os.path.join(root, f"{CORRECTED_DIR_PREFIX}{output_stem(reconstruction_option)}")
