"""
Core module containing base classes and data structures.
"""

from core.base import LabelVolume, BaseLoader
from core.dto import TedParamsDTO, ErrorReportDTO
from core.chunker import SlabChunker, SlabDescriptor
from core.progress import (
    ProgressEvent,
    ProgressObserver,
    ProgressBus,
    TerminalProgressObserver,
    noop_progress,
    scaled_progress,
)
from core.coordinates import (
    resolution_xyz_to_sampling_zyx,
    tolerance_to_voxel_radius_zyx,
    pad_slices_zyx,
    box_offset_zyx,
)

__all__ = [
    'LabelVolume', 'BaseLoader',
    'TedParamsDTO', 'ErrorReportDTO',
    'SlabChunker', 'SlabDescriptor',
    'ProgressEvent', 'ProgressObserver', 'ProgressBus',
    'TerminalProgressObserver', 'noop_progress', 'scaled_progress',
    'resolution_xyz_to_sampling_zyx', 'tolerance_to_voxel_radius_zyx',
    'pad_slices_zyx', 'box_offset_zyx',
]
