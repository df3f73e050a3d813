"""
Depth-slab chunker for bounded-memory passes over large label volumes.

Design goals
------------
* Visit a volume one slab of consecutive sections at a time, so that
  per-voxel temporaries (pair keys, masks) never exceed one slab.
* Expose a generator of ``SlabDescriptor`` objects plus a ``map_reduce``
  helper; callers compose accumulation passes as pure functions.

No I/O and no threads.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generator, Iterable, Optional, Sequence, Tuple

import numpy as np


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class SlabDescriptor:
    """
    Describes a single slab of consecutive sections.

    Attributes
    ----------
    slab_id : int
        Monotonically increasing identifier (useful for progress reporting).
    volume_shape : tuple(int, int, int)
        Full volume shape (Z, Y, X).
    z_start, z_stop : int
        Half-open section range covered by the slab.
    """

    slab_id:       int
    volume_shape:  Tuple[int, int, int]
    z_start:       int
    z_stop:        int

    # ------------------------------------------------------------------
    def __repr__(self) -> str:
        return f"SlabDescriptor(id={self.slab_id}, z=[{self.z_start}:{self.z_stop}])"

    @property
    def slices(self) -> Tuple[slice, slice, slice]:
        return (slice(self.z_start, self.z_stop), slice(None), slice(None))

    @property
    def depth(self) -> int:
        return self.z_stop - self.z_start


# ---------------------------------------------------------------------------
# SlabChunker
# ---------------------------------------------------------------------------

class SlabChunker:
    """
    Enumerate depth slabs of a 3-D volume.

    Parameters
    ----------
    volume_shape : (D, H, W)
        Shape of the full volume.
    slab_depth : int
        Number of sections per slab.  The final slab may be thinner.
    """

    def __init__(self, volume_shape: Sequence[int], slab_depth: int = 16) -> None:
        assert len(volume_shape) == 3, "volume_shape must be 3-D"
        assert slab_depth > 0,         "slab_depth must be positive"

        self.volume_shape = tuple(int(v) for v in volume_shape)
        self.slab_depth   = int(slab_depth)
        self._starts      = list(range(0, self.volume_shape[0], self.slab_depth))

    # ------------------------------------------------------------------
    @property
    def num_slabs(self) -> int:
        return len(self._starts)

    # ------------------------------------------------------------------
    def __iter__(self) -> Generator[SlabDescriptor, None, None]:
        """Yield SlabDescriptor objects in Z order."""
        depth = self.volume_shape[0]
        for slab_id, z0 in enumerate(self._starts):
            yield SlabDescriptor(
                slab_id      = slab_id,
                volume_shape = self.volume_shape,  # type: ignore[arg-type]
                z_start      = z0,
                z_stop       = min(z0 + self.slab_depth, depth),
            )

    # ------------------------------------------------------------------
    def map_reduce(
        self,
        volumes:   Sequence[np.ndarray],
        map_fn:    Callable[..., Any],
        reduce_fn: Callable[[Iterable[Any]], Any],
        progress:  Optional[Callable[[int, str], None]] = None,
    ) -> Any:
        """
        Map *map_fn* over aligned slabs of *volumes* and reduce with *reduce_fn*.

        ``map_fn`` receives one slab view per input volume followed by the
        descriptor.  Useful for aggregation tasks (histograms, co-occurrence
        tables) without materialising whole-volume temporaries.
        """
        for vol in volumes:
            if tuple(vol.shape) != self.volume_shape:
                raise ValueError(
                    f"Volume shape {tuple(vol.shape)} does not match chunker shape {self.volume_shape}"
                )

        total    = max(self.num_slabs, 1)
        partials = []
        for desc in self:
            views = [vol[desc.slices] for vol in volumes]
            partials.append(map_fn(*views, desc))
            if progress:
                pct = int(100 * (desc.slab_id + 1) / total)
                progress(pct, f"Slab {desc.slab_id + 1}/{total}")
        return reduce_fn(partials)
