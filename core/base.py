"""
Core data structures and abstract base classes.
"""

import numpy as np
from dataclasses import dataclass, field
from abc import ABC, abstractmethod
from typing import Tuple, Dict, Any, Optional, Callable


@dataclass(frozen=True)
class LabelVolume:
    """
    Read-only 3D labeling shared by ground truth and reconstruction.

    Attributes:
        labels (np.ndarray): 3D integer matrix (Z, Y, X) of region labels.
        resolution (Tuple[float, float, float]): Physical voxel size (x, y, z).
        metadata (Dict[str, Any]): Arbitrary metadata (source path, etc.).

    The label array is copied to ``int64`` on construction and flagged
    read-only; producers that need a modified labeling build a new volume.
    """
    labels: np.ndarray
    resolution: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        arr = np.asarray(self.labels)
        if arr.ndim == 2:
            arr = arr[np.newaxis, ...]
        if arr.ndim != 3:
            raise ValueError(f"Expected 2D or 3D label array, got shape={arr.shape}")
        if np.issubdtype(arr.dtype, np.floating):
            arr = np.rint(arr)
        arr = np.array(arr, dtype=np.int64, copy=True)
        if arr.size and arr.min() < 0:
            raise ValueError("Labels must be non-negative.")
        arr.flags.writeable = False

        res = tuple(float(r) for r in self.resolution)
        if len(res) != 3 or any(r <= 0 for r in res):
            raise ValueError(f"Resolution must be three positive values, got {self.resolution}")

        object.__setattr__(self, "labels", arr)
        object.__setattr__(self, "resolution", res)

    @property
    def dimensions(self) -> Tuple[int, int, int]:
        """Returns the shape of the volume (Z, Y, X)."""
        return tuple(int(s) for s in self.labels.shape)  # type: ignore[return-value]

    @property
    def width(self) -> int:
        return int(self.labels.shape[2])

    @property
    def height(self) -> int:
        return int(self.labels.shape[1])

    @property
    def depth(self) -> int:
        return int(self.labels.shape[0])

    @property
    def sampling_zyx(self) -> Tuple[float, float, float]:
        """Resolution reordered to array axis order, for scipy ``sampling``."""
        rx, ry, rz = self.resolution
        return (rz, ry, rx)

    def slice(self, z: int) -> np.ndarray:
        """Return the 2D label image of section ``z``."""
        return self.labels[z]

    def label_ids(self) -> np.ndarray:
        """Sorted unique labels present in the volume."""
        return np.unique(self.labels)

    def contains(self, label: int) -> bool:
        return bool(np.any(self.labels == label))

    def with_labels(self, labels: np.ndarray, **metadata: Any) -> "LabelVolume":
        """Build a new volume with the same resolution and merged metadata."""
        merged = dict(self.metadata)
        merged.update(metadata)
        return LabelVolume(labels=labels, resolution=self.resolution, metadata=merged)


class BaseLoader(ABC):
    """Abstract base class for label volume acquisition strategies."""

    @abstractmethod
    def load(self, source: str, callback: Optional[Callable[[int, str], None]] = None) -> LabelVolume:
        """
        Load a label volume from a source path.

        Args:
            source (str): Path to file or directory.
            callback: Optional progress callback (percent, message).

        Returns:
            LabelVolume: Loaded labeling.
        """
        pass
