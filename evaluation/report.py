"""
Error report: orchestrates correspondence, classification, correction and the
auxiliary metrics for one (ground truth, reconstruction) pair, and renders
the results as text.

Three renderings are produced:

* a header line (tab-separated column names), available without any volume;
* a single tab-separated value line in exactly the header's column order;
* a human-readable report, one ``<name>: <value>`` line per available metric.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from config import BACKGROUND_LABEL, REPORT_FLOAT_FORMAT
from core.base import LabelVolume
from core.dto import ErrorReportDTO
from core.progress import ProgressBus, noop_progress
from evaluation.classifier import ErrorClassifier, TolerantEditDistanceErrors
from evaluation.corrector import Corrector
from evaluation.exceptions import BackgroundLabelError, ShapeMismatchError
from evaluation.metrics import (
    detection_overlap,
    grow_slices,
    rand_index,
    variation_of_information,
)
from evaluation.overlap import CorrespondenceBuilder, OverlapGraph, build_contingency

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MetricColumn:
    key: str      # column name in header / single-line report
    name: str     # label in the human-readable report
    integer: bool = False


_TED_COLUMNS_HEAD = (
    MetricColumn("TED_FS", "TED split errors", integer=True),
    MetricColumn("TED_FM", "TED merge errors", integer=True),
)
_TED_COLUMNS_BACKGROUND = (
    MetricColumn("TED_FP", "TED false positives", integer=True),
    MetricColumn("TED_FN", "TED false negatives", integer=True),
)
_TED_COLUMNS_TAIL = (
    MetricColumn("TED_SUM", "TED total errors", integer=True),
)
_VOI_COLUMNS = (
    MetricColumn("VOI_SPLIT", "VOI split"),
    MetricColumn("VOI_MERGE", "VOI merge"),
    MetricColumn("VOI", "VOI"),
)
_RAND_COLUMNS = (
    MetricColumn("RAND", "RAND index"),
)
_DETECTION_COLUMNS = (
    MetricColumn("DO_GT", "detection overlap (ground truth)"),
    MetricColumn("DO_REC", "detection overlap (reconstruction)"),
)


def report_columns(params: ErrorReportDTO) -> Tuple[MetricColumn, ...]:
    """Ordered columns for a configuration; depends on parameters only."""
    columns: List[MetricColumn] = []
    if params.report_ted:
        columns.extend(_TED_COLUMNS_HEAD)
        if params.ted.handle_background:
            columns.extend(_TED_COLUMNS_BACKGROUND)
        columns.extend(_TED_COLUMNS_TAIL)
    if params.report_voi:
        columns.extend(_VOI_COLUMNS)
    if params.report_rand:
        columns.extend(_RAND_COLUMNS)
    if params.report_detection_overlap:
        columns.extend(_DETECTION_COLUMNS)
    return tuple(columns)


def _format_value(value: Optional[float], integer: bool) -> str:
    if value is None:
        return "nan"
    if integer:
        return str(int(value))
    return REPORT_FLOAT_FORMAT.format(float(value))


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OutputResult:
    """
    Outcome of requesting an optional output.

    ``available`` is False when the configuration never produces the output;
    callers skip it and carry on.
    """

    available: bool
    value: Any = None
    reason: str = ""

    @staticmethod
    def of(value: Any) -> "OutputResult":
        return OutputResult(available=True, value=value)

    @staticmethod
    def missing(reason: str) -> "OutputResult":
        return OutputResult(available=False, value=None, reason=reason)


@dataclass
class EvaluationResult:
    """Metric values and optional outputs of one evaluation run."""

    columns: Tuple[MetricColumn, ...]
    values: Dict[str, Optional[float]] = field(default_factory=dict)
    ted_errors: Optional[TolerantEditDistanceErrors] = None
    overlap_graph: Optional[OverlapGraph] = None
    corrected_volume: Optional[LabelVolume] = None
    corrected_reason: str = "tolerance correction was not requested"

    def corrected_reconstruction(self) -> OutputResult:
        if self.corrected_volume is None:
            return OutputResult.missing(self.corrected_reason)
        return OutputResult.of(self.corrected_volume)

    def errors(self) -> OutputResult:
        if self.ted_errors is None:
            return OutputResult.missing("tolerant edit distance was not requested")
        return OutputResult.of(self.ted_errors)

    def header(self) -> str:
        return "\t".join(col.key for col in self.columns)

    def single_line(self) -> str:
        return "\t".join(_format_value(self.values.get(col.key), col.integer) for col in self.columns)

    def human_readable(self) -> str:
        lines = []
        for col in self.columns:
            value = self.values.get(col.key)
            if value is None:
                continue
            lines.append(f"{col.name}: {_format_value(value, col.integer)}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# ErrorReport
# ---------------------------------------------------------------------------

class ErrorReport:
    """
    Evaluate a reconstruction against ground truth.

    Usage::

        report = ErrorReport(ErrorReportDTO(report_voi=True))
        print(report.header())
        result = report.evaluate(ground_truth, reconstruction)
        print(result.human_readable())
    """

    def __init__(self, params: Optional[ErrorReportDTO] = None) -> None:
        self.params = params or ErrorReportDTO()

    @property
    def columns(self) -> Tuple[MetricColumn, ...]:
        return report_columns(self.params)

    def header(self) -> str:
        """Tab-separated column names; touches no volume."""
        return "\t".join(col.key for col in self.columns)

    # ------------------------------------------------------------------
    def evaluate(
        self,
        ground_truth: LabelVolume,
        reconstruction: LabelVolume,
        progress_bus: Optional[ProgressBus] = None,
    ) -> EvaluationResult:
        params = self.params
        if ground_truth.dimensions != reconstruction.dimensions:
            raise ShapeMismatchError(ground_truth.dimensions, reconstruction.dimensions)

        def stage_progress(stage: str) -> Callable[[int, str], None]:
            if progress_bus is None:
                return noop_progress
            return progress_bus.stage_callback(stage)

        gt_background, rec_background = self._resolve_background(ground_truth)
        result = EvaluationResult(columns=self.columns)

        if params.report_ted:
            self._evaluate_ted(ground_truth, reconstruction, gt_background, rec_background, result, stage_progress)
        elif params.compute_corrected:
            result.corrected_reason = "tolerance correction requires the tolerant edit distance"

        if params.report_voi or params.report_rand:
            self._evaluate_voi_rand(ground_truth, reconstruction, gt_background, rec_background, result,
                                    stage_progress("voi_rand"))

        if params.report_detection_overlap:
            progress = stage_progress("detection")
            progress(0, "Computing detection overlap...")
            table = (
                result.overlap_graph.contingency
                if result.overlap_graph is not None
                else build_contingency(ground_truth.labels, reconstruction.labels)
            )
            do = detection_overlap(table, gt_background, rec_background)
            result.values["DO_GT"] = do.gt
            result.values["DO_REC"] = do.rec
            progress(100, "Detection overlap done.")

        return result

    # ------------------------------------------------------------------
    def _resolve_background(self, ground_truth: LabelVolume) -> Tuple[Optional[int], Optional[int]]:
        """
        Background labels to use for this ground truth.

        Background handling without a configured label falls back to the
        reserved label when the ground truth contains it.
        """
        ted = self.params.ted
        gt_bg = ted.gt_background_label
        rec_bg = ted.rec_background_label
        needs_background = (self.params.report_ted and ted.handle_background) or self.params.ignore_background

        if gt_bg is None and needs_background:
            if ground_truth.contains(BACKGROUND_LABEL):
                logger.info("No ground truth background label configured; using %d", BACKGROUND_LABEL)
                gt_bg = BACKGROUND_LABEL
            else:
                raise BackgroundLabelError(
                    "Background handling requested, but no background label is configured "
                    "and the ground truth contains no background region."
                )
        if rec_bg is None and needs_background:
            rec_bg = gt_bg
        return gt_bg, rec_bg

    def _evaluate_ted(
        self,
        ground_truth: LabelVolume,
        reconstruction: LabelVolume,
        gt_background: Optional[int],
        rec_background: Optional[int],
        result: EvaluationResult,
        stage_progress: Callable[[str], Callable[[int, str], None]],
    ) -> None:
        ted = self.params.ted
        builder = CorrespondenceBuilder(tolerance=ted.tolerance, max_workers=ted.max_workers)
        graph = builder.build(ground_truth, reconstruction, progress=stage_progress("ted"))

        classifier = ErrorClassifier(
            has_background=ted.handle_background,
            gt_background_label=gt_background,
            rec_background_label=rec_background,
            min_overlap_fraction=ted.min_overlap_fraction,
        )
        errors = classifier.classify(graph)

        result.overlap_graph = graph
        result.ted_errors = errors
        result.values["TED_FS"] = errors.num_splits
        result.values["TED_FM"] = errors.num_merges
        if ted.handle_background:
            result.values["TED_FP"] = errors.num_false_positives
            result.values["TED_FN"] = errors.num_false_negatives
        result.values["TED_SUM"] = errors.total

        if self.params.compute_corrected:
            result.corrected_volume = Corrector().correct(reconstruction, graph, progress=stage_progress("correction"))

    def _evaluate_voi_rand(
        self,
        ground_truth: LabelVolume,
        reconstruction: LabelVolume,
        gt_background: Optional[int],
        rec_background: Optional[int],
        result: EvaluationResult,
        progress: Callable[[int, str], None],
    ) -> None:
        params = self.params
        rec_labels = reconstruction.labels

        if params.grow_slices:
            if rec_background is None:
                logger.warning("grow_slices requested without a reconstruction background label; skipped")
            else:
                progress(0, "Growing reconstruction slices...")
                rec_labels = grow_slices(rec_labels, rec_background)

        progress(30, "Counting exact co-occurrences...")
        table = build_contingency(
            ground_truth.labels,
            rec_labels,
            ignore_gt_label=gt_background if params.ignore_background else None,
        )

        if params.report_voi:
            voi = variation_of_information(table)
            result.values["VOI_SPLIT"] = voi.split
            result.values["VOI_MERGE"] = voi.merge
            result.values["VOI"] = voi.total
        if params.report_rand:
            result.values["RAND"] = rand_index(table)
        progress(100, "VOI / RAND done.")


__all__ = [
    "MetricColumn",
    "OutputResult",
    "EvaluationResult",
    "ErrorReport",
    "report_columns",
]
