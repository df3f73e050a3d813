"""
Segmentation evaluation package.

Modules:
- overlap: Tolerant correspondence (bipartite overlap graph)
- classifier: Split / merge / false positive / false negative classification
- corrector: Tolerance correction of a reconstruction
- metrics: Variation of information, Rand index, detection overlap
- report: Orchestration and text rendering
"""

from evaluation.exceptions import ShapeMismatchError, BackgroundLabelError
from evaluation.overlap import (
    OverlapEntry,
    OverlapGraph,
    ContingencyTable,
    CorrespondenceBuilder,
    build_contingency,
)
from evaluation.classifier import ErrorClassifier, TolerantEditDistanceErrors
from evaluation.corrector import Corrector
from evaluation.metrics import (
    VoiResult,
    DetectionOverlapResult,
    variation_of_information,
    rand_index,
    detection_overlap,
    grow_slices,
)
from evaluation.report import ErrorReport, EvaluationResult, OutputResult, MetricColumn, report_columns

__all__ = [
    'ShapeMismatchError',
    'BackgroundLabelError',
    'OverlapEntry',
    'OverlapGraph',
    'ContingencyTable',
    'CorrespondenceBuilder',
    'build_contingency',
    'ErrorClassifier',
    'TolerantEditDistanceErrors',
    'Corrector',
    'VoiResult',
    'DetectionOverlapResult',
    'variation_of_information',
    'rand_index',
    'detection_overlap',
    'grow_slices',
    'ErrorReport',
    'EvaluationResult',
    'OutputResult',
    'MetricColumn',
    'report_columns',
]
