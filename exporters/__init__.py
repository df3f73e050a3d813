"""
Data exporters package.
"""

from exporters.stack import ImageStackExporter, corrected_output_directory, output_stem
from exporters.ted_errors import (
    TedErrorExporter,
    format_splits,
    format_merges,
    format_false_positives,
    format_false_negatives,
)

__all__ = [
    'ImageStackExporter',
    'corrected_output_directory',
    'output_stem',
    'TedErrorExporter',
    'format_splits',
    'format_merges',
    'format_false_positives',
    'format_false_negatives',
]
