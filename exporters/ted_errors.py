"""
Plain-text listings of tolerant edit distance errors.

Formats (one entry per line, tab separated):

    <stem>.splits.data   GT label, then the reconstruction labels it splits into
    <stem>.merges.data   reconstruction label, then the GT labels merged into it
    <stem>.fps.data      one false positive reconstruction label
    <stem>.fns.data      one false negative GT label
"""

import logging
import os
from typing import Dict, List

from config import TED_ERROR_FILE_TEMPLATE
from evaluation.classifier import TolerantEditDistanceErrors

logger = logging.getLogger(__name__)


def format_splits(errors: TolerantEditDistanceErrors) -> str:
    lines = []
    for gt_label in errors.get_split_labels():
        lines.append("\t".join(str(x) for x in [gt_label] + errors.get_splits(gt_label)))
    return _join(lines)


def format_merges(errors: TolerantEditDistanceErrors) -> str:
    lines = []
    for rec_label in errors.get_merge_labels():
        lines.append("\t".join(str(x) for x in [rec_label] + errors.get_merges(rec_label)))
    return _join(lines)


def format_false_positives(errors: TolerantEditDistanceErrors) -> str:
    return _join(str(x) for x in errors.get_false_positives())


def format_false_negatives(errors: TolerantEditDistanceErrors) -> str:
    return _join(str(x) for x in errors.get_false_negatives())


def _join(lines) -> str:
    lines = list(lines)
    return "\n".join(lines) + "\n" if lines else ""


class TedErrorExporter:
    """
    Writes the error listings of one evaluation next to each other.

    False positive and false negative files are only produced when the
    errors were classified with background handling.
    """

    @staticmethod
    def export(errors: TolerantEditDistanceErrors, directory: str, stem: str) -> List[str]:
        if errors is None:
            raise ValueError("No tolerant edit distance errors to export.")

        contents: Dict[str, str] = {
            "splits": format_splits(errors),
            "merges": format_merges(errors),
        }
        if errors.has_background:
            contents["fps"] = format_false_positives(errors)
            contents["fns"] = format_false_negatives(errors)

        if directory:
            os.makedirs(directory, exist_ok=True)
        written = []
        for kind, text in contents.items():
            path = os.path.join(directory, TED_ERROR_FILE_TEMPLATE.format(stem=stem, kind=kind))
            with open(path, "w", encoding="utf-8") as fh:
                fh.write(text)
            written.append(path)

        logger.info("Wrote %d error listings for %s", len(written), stem)
        return written
