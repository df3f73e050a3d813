"""
Command-line entry point for the tolerant edit distance evaluation.

Reads a ground truth and a reconstruction (image stack directories or
``file.h5:dataset``), prints the human-readable error report and optionally
appends a single-line report to a plot file, writes error listings and the
tolerance-corrected reconstruction.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Optional, Sequence

from config import EXPORTED_GROUND_TRUTH_DIR
from core import ErrorReportDTO, LabelVolume, TedParamsDTO
from core.progress import ProgressBus, TerminalProgressObserver
from evaluation import ErrorReport, EvaluationResult
from exporters import ImageStackExporter, TedErrorExporter, corrected_output_directory, output_stem
from loaders import extract_ground_truth_labels, load_label_volume

logger = logging.getLogger("cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ted",
        description="Tolerant edit distance evaluation of a 3D segmentation",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--config",
        metavar="FILE",
        help="Path to YAML or JSON config file. Overrides the metric and TED flags.",
    )

    io = parser.add_argument_group("input / output")
    io.add_argument("--ground-truth", metavar="PATH", default="groundtruth",
                    help="Ground truth image stack directory or file.h5:dataset.")
    io.add_argument("--reconstruction", metavar="PATH", default="reconstruction",
                    help="Reconstruction image stack directory or file.h5:dataset.")
    io.add_argument("--resolution", metavar=("X", "Y", "Z"), type=float, nargs=3, default=(1.0, 1.0, 1.0),
                    help="Voxel size for image stack directories.")
    io.add_argument("--extract-ground-truth-labels", action="store_true",
                    help="Ground truth is a foreground/background mask; label its connected components.")
    io.add_argument("--extract-3d", action="store_true",
                    help="With --extract-ground-truth-labels, use 6-connected 3D components instead of per-slice.")
    io.add_argument("--foreground-bright", action="store_true",
                    help="With --extract-ground-truth-labels, treat the bright phase as foreground.")
    io.add_argument("--export-ground-truth", action="store_true",
                    help=f"Write extracted ground truth labels to ./{EXPORTED_GROUND_TRUTH_DIR}.")
    io.add_argument("--plot-file", metavar="FILE", default=None,
                    help="Append a tab-separated single-line error report to FILE.")
    io.add_argument("--plot-file-header", action="store_true",
                    help="Instead of computing errors, append only the header line.")
    io.add_argument("--ted-error-files", metavar="DIR", default=None,
                    help="Directory for split/merge (and fp/fn) listings and the corrected reconstruction.")
    io.add_argument("--no-corrected", action="store_true",
                    help="Do not compute or write the tolerance-corrected reconstruction.")

    metrics = parser.add_argument_group("metrics")
    metrics.add_argument("--report-voi", action="store_true", help="Report variation of information.")
    metrics.add_argument("--report-rand", action="store_true", help="Report the RAND index.")
    metrics.add_argument("--report-detection-overlap", action=argparse.BooleanOptionalAction, default=True,
                         help="Report detection overlap.")
    metrics.add_argument("--report-ted", action=argparse.BooleanOptionalAction, default=True,
                         help="Report the tolerant edit distance.")
    metrics.add_argument("--ignore-background", action="store_true",
                         help="For VOI and RAND, ignore ground truth background voxels.")
    metrics.add_argument("--grow-slices", action="store_true",
                         help="For VOI and RAND, grow reconstruction slices over background.")

    ted = parser.add_argument_group("tolerant edit distance")
    ted.add_argument("--tolerance", metavar="DIST", type=float, default=TedParamsDTO.tolerance,
                     help="Boundary tolerance in physical units.")
    ted.add_argument("--handle-background", action="store_true",
                     help="Report false positives and false negatives against the background labels.")
    ted.add_argument("--gt-background-label", metavar="L", type=int, default=TedParamsDTO.gt_background_label,
                     help="Ground truth background label.")
    ted.add_argument("--rec-background-label", metavar="L", type=int, default=TedParamsDTO.rec_background_label,
                     help="Reconstruction background label.")
    ted.add_argument("--min-overlap-fraction", metavar="F", type=float,
                     default=TedParamsDTO.min_overlap_fraction,
                     help="Minimum overlap beyond tolerance, as a fraction of region size, for a partner to count.")
    ted.add_argument("--workers", metavar="N", type=int, default=TedParamsDTO.max_workers,
                     help="Worker threads for tolerance bands.")

    parser.add_argument("--dry-run", action="store_true", help="Print resolved configuration without running.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging.")
    return parser


def _resolve_dto(args: argparse.Namespace) -> ErrorReportDTO:
    """Resolve DTO from config file or inline CLI flags."""
    if args.config:
        cfg_path = args.config
        if cfg_path.endswith(".json"):
            return ErrorReportDTO.from_json(cfg_path)
        return ErrorReportDTO.from_yaml(cfg_path)

    ted = TedParamsDTO(
        tolerance=args.tolerance,
        handle_background=args.handle_background,
        gt_background_label=args.gt_background_label,
        rec_background_label=args.rec_background_label,
        min_overlap_fraction=args.min_overlap_fraction,
        max_workers=args.workers,
    )
    return ErrorReportDTO(
        header_only=args.plot_file_header,
        report_ted=args.report_ted,
        report_rand=args.report_rand,
        report_voi=args.report_voi,
        report_detection_overlap=args.report_detection_overlap,
        ignore_background=args.ignore_background,
        grow_slices=args.grow_slices,
        compute_corrected=args.report_ted and not args.no_corrected,
        ted=ted,
    )


def _append_line(path: str, line: str) -> None:
    with open(path, "a", encoding="utf-8") as fh:
        fh.write(line + "\n")


def _load_ground_truth(args: argparse.Namespace, bus: ProgressBus) -> LabelVolume:
    volume = load_label_volume(args.ground_truth, tuple(args.resolution), bus.stage_callback("ground truth"))
    if not args.extract_ground_truth_labels:
        return volume

    logger.debug("extracting ground truth labels from connected components")
    volume = extract_ground_truth_labels(
        volume,
        foreground_dark=not args.foreground_bright,
        per_slice=not args.extract_3d,
        callback=bus.stage_callback("extract"),
    )
    if args.export_ground_truth:
        ImageStackExporter.export(volume, EXPORTED_GROUND_TRUTH_DIR)
    return volume


def _write_outputs(args: argparse.Namespace, result: EvaluationResult) -> None:
    root = args.ted_error_files or ""

    corrected = result.corrected_reconstruction()
    if corrected.available:
        ImageStackExporter.export(corrected.value, corrected_output_directory(root, args.reconstruction))
    else:
        logger.debug("no corrected reconstruction: %s", corrected.reason)

    if args.ted_error_files:
        errors = result.errors()
        if errors.available:
            TedErrorExporter.export(errors.value, root, output_stem(args.reconstruction))
        else:
            logger.warning("--ted-error-files given, but %s", errors.reason)

    if args.plot_file:
        _append_line(args.plot_file, result.single_line())


def run(args: argparse.Namespace, dto: ErrorReportDTO) -> EvaluationResult:
    """Load both volumes, evaluate and write every requested output."""
    bus = ProgressBus().subscribe(TerminalProgressObserver())
    report = ErrorReport(dto)

    t_start = time.perf_counter()
    ground_truth = _load_ground_truth(args, bus)
    reconstruction = load_label_volume(args.reconstruction, tuple(args.resolution),
                                       bus.stage_callback("reconstruction"))
    result = report.evaluate(ground_truth, reconstruction, progress_bus=bus)
    logger.info("Evaluation complete in %.2fs", time.perf_counter() - t_start)

    print(result.human_readable())
    _write_outputs(args, result)
    return result


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        dto = _resolve_dto(args)
    except (OSError, ValueError) as exc:
        parser.error(f"invalid configuration: {exc}")

    if args.dry_run:
        import json

        print("Resolved ErrorReportDTO:")
        print(json.dumps(dto.to_dict(), indent=2))
        return 0

    if dto.header_only or args.plot_file_header:
        header = ErrorReport(dto).header()
        if args.plot_file:
            _append_line(args.plot_file, header)
        else:
            print(header)
        return 0

    if args.export_ground_truth and not args.extract_ground_truth_labels:
        logger.warning("--export-ground-truth has no effect without --extract-ground-truth-labels")

    try:
        run(args, dto)
    except KeyboardInterrupt:
        print("\nAborted by user.")
        return 1
    except Exception as exc:
        logger.exception("Evaluation failed: %s: %s", type(exc).__name__, exc)
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
