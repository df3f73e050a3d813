"""
Data Transfer Objects (DTOs) for the segmentation evaluation engine.

Design rules
------------
* All DTOs are immutable (frozen=True).  The CLI builds a new DTO and
  *pushes* it to the engine; the engine never reads option state itself.
* ``from_dict`` / ``from_yaml`` / ``from_json`` factory methods keep
  serialisation in one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Dict, Any

from config import (
    BACKGROUND_LABEL,
    REPORT_DETECTION_OVERLAP,
    REPORT_GROW_SLICES,
    REPORT_IGNORE_BACKGROUND,
    REPORT_RAND,
    REPORT_TED,
    REPORT_VOI,
    TED_HANDLE_BACKGROUND,
    TED_MAX_WORKERS,
    TED_MIN_OVERLAP_FRACTION,
    TED_TOLERANCE,
)


def _optional_label(value: Any) -> Optional[int]:
    if value is None:
        return None
    return int(value)


# ---------------------------------------------------------------------------
# Tolerant edit distance parameters DTO
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TedParamsDTO:
    """
    Immutable snapshot of every tolerant edit distance parameter.

    ``tolerance`` is a physical distance in the unit of the volume
    resolution.  Background labels of ``None`` mean "not configured".
    """

    tolerance:             float          = TED_TOLERANCE
    handle_background:     bool           = TED_HANDLE_BACKGROUND
    gt_background_label:   Optional[int]  = BACKGROUND_LABEL
    rec_background_label:  Optional[int]  = BACKGROUND_LABEL
    min_overlap_fraction:  float          = TED_MIN_OVERLAP_FRACTION
    max_workers:           int            = TED_MAX_WORKERS

    def __post_init__(self) -> None:
        if self.tolerance < 0:
            raise ValueError(f"tolerance must be non-negative, got {self.tolerance}")
        if not 0.0 <= self.min_overlap_fraction <= 1.0:
            raise ValueError(f"min_overlap_fraction must be in [0, 1], got {self.min_overlap_fraction}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "TedParamsDTO":
        return TedParamsDTO(
            tolerance            = float(d.get("tolerance",            TED_TOLERANCE)),
            handle_background    = bool(d.get("handle_background",     TED_HANDLE_BACKGROUND)),
            gt_background_label  = _optional_label(d.get("gt_background_label",  BACKGROUND_LABEL)),
            rec_background_label = _optional_label(d.get("rec_background_label", BACKGROUND_LABEL)),
            min_overlap_fraction = float(d.get("min_overlap_fraction", TED_MIN_OVERLAP_FRACTION)),
            max_workers          = int(d.get("max_workers",            TED_MAX_WORKERS)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tolerance":            self.tolerance,
            "handle_background":    self.handle_background,
            "gt_background_label":  self.gt_background_label,
            "rec_background_label": self.rec_background_label,
            "min_overlap_fraction": self.min_overlap_fraction,
            "max_workers":          self.max_workers,
        }


# ---------------------------------------------------------------------------
# Error report DTO
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ErrorReportDTO:
    """
    Immutable configuration for one evaluation run.

    Used by the CLI and by unit tests that call the engine directly.
    """

    # Metric selection
    header_only:              bool  = False
    report_ted:               bool  = REPORT_TED
    report_rand:              bool  = REPORT_RAND
    report_voi:               bool  = REPORT_VOI
    report_detection_overlap: bool  = REPORT_DETECTION_OVERLAP

    # VOI / RAND preprocessing
    ignore_background:        bool  = REPORT_IGNORE_BACKGROUND
    grow_slices:              bool  = REPORT_GROW_SLICES

    # Optional outputs
    compute_corrected:        bool  = False

    # TED
    ted:                      TedParamsDTO = TedParamsDTO()

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "ErrorReportDTO":
        ted_raw = d.get("ted")
        ted     = TedParamsDTO.from_dict(ted_raw) if ted_raw else TedParamsDTO()
        return ErrorReportDTO(
            header_only              = bool(d.get("header_only",              False)),
            report_ted               = bool(d.get("report_ted",               REPORT_TED)),
            report_rand              = bool(d.get("report_rand",              REPORT_RAND)),
            report_voi               = bool(d.get("report_voi",               REPORT_VOI)),
            report_detection_overlap = bool(d.get("report_detection_overlap", REPORT_DETECTION_OVERLAP)),
            ignore_background        = bool(d.get("ignore_background",        REPORT_IGNORE_BACKGROUND)),
            grow_slices              = bool(d.get("grow_slices",              REPORT_GROW_SLICES)),
            compute_corrected        = bool(d.get("compute_corrected",        False)),
            ted                      = ted,
        )

    @staticmethod
    def from_yaml(path: str) -> "ErrorReportDTO":
        """Load config from a YAML file."""
        import yaml
        with open(path, encoding="utf-8") as fh:
            d = yaml.safe_load(fh)
        return ErrorReportDTO.from_dict(d or {})

    @staticmethod
    def from_json(path: str) -> "ErrorReportDTO":
        """Load config from a JSON file."""
        import json
        with open(path, encoding="utf-8") as fh:
            d = json.load(fh)
        return ErrorReportDTO.from_dict(d)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "header_only":              self.header_only,
            "report_ted":               self.report_ted,
            "report_rand":              self.report_rand,
            "report_voi":               self.report_voi,
            "report_detection_overlap": self.report_detection_overlap,
            "ignore_background":        self.ignore_background,
            "grow_slices":              self.grow_slices,
            "compute_corrected":        self.compute_corrected,
            "ted":                      self.ted.to_dict(),
        }
