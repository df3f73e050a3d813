"""
Coordinate and distance conversion helpers for the project-wide 3D convention.

Convention:
- Label arrays use index order (z, y, x)
- Resolution tuples are stored as (x, y, z), in physical units per voxel
- Tolerances are physical distances; a voxel pair is within tolerance when the
  Euclidean distance between voxel centres, scaled by the resolution, is
  ``<= tolerance``
"""

from __future__ import annotations

from typing import Tuple
import numpy as np


def resolution_xyz_to_sampling_zyx(resolution_xyz: Tuple[float, float, float]) -> Tuple[float, float, float]:
    """
    Reorder a resolution (x, y, z) into array axis order (z, y, x) for scipy ``sampling``.
    """
    rx, ry, rz = (float(resolution_xyz[0]), float(resolution_xyz[1]), float(resolution_xyz[2]))
    if rx <= 0 or ry <= 0 or rz <= 0:
        raise ValueError("Resolution components must be positive.")
    return (rz, ry, rx)


def tolerance_to_voxel_radius_zyx(
    tolerance: float,
    resolution_xyz: Tuple[float, float, float],
) -> Tuple[int, int, int]:
    """
    Convert a physical tolerance into the per-axis voxel radius (z, y, x).

    The radius along an axis is the largest number of whole voxel steps whose
    physical length does not exceed the tolerance: ``floor(tolerance / res)``.
    """
    tol = float(tolerance)
    if tol < 0:
        raise ValueError(f"Tolerance must be non-negative, got {tolerance}")
    sz, sy, sx = resolution_xyz_to_sampling_zyx(resolution_xyz)
    # Small epsilon keeps exact multiples (e.g. 3 * 0.1) on the inclusive side.
    eps = 1e-9
    return (
        int(np.floor(tol / sz + eps)),
        int(np.floor(tol / sy + eps)),
        int(np.floor(tol / sx + eps)),
    )


def pad_slices_zyx(
    slices_zyx: Tuple[slice, slice, slice],
    radius_zyx: Tuple[int, int, int],
    shape_zyx: Tuple[int, int, int],
) -> Tuple[slice, slice, slice]:
    """
    Grow a bounding box (as returned by ``scipy.ndimage.find_objects``) by
    ``radius + 1`` voxels per axis, clamped to the volume bounds.

    The extra voxel guarantees that every voxel within the radius of the
    region, and the nearest outside voxel of a boundary voxel, are inside
    the padded box.
    """
    padded = []
    for sl, r, n in zip(slices_zyx, radius_zyx, shape_zyx):
        start = max(0, int(sl.start) - int(r) - 1)
        stop = min(int(n), int(sl.stop) + int(r) + 1)
        padded.append(slice(start, stop))
    return tuple(padded)  # type: ignore[return-value]


def box_offset_zyx(slices_zyx: Tuple[slice, slice, slice]) -> np.ndarray:
    """Return the (z, y, x) start of a box as an index vector."""
    return np.asarray([int(s.start) for s in slices_zyx], dtype=np.int64)
