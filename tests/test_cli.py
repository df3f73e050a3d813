import json
import os

import h5py
import numpy as np

import cli


def _write_volumes(tmp_path):
    gt = np.zeros((1, 4, 4), dtype=np.uint32)
    gt[0, 1:3, 1:3] = 1
    rec = np.zeros_like(gt)
    rec[0, 1:3, 1] = 1
    rec[0, 1:3, 2] = 2

    gt_path = tmp_path / "gt.h5"
    rec_path = tmp_path / "rec.h5"
    with h5py.File(gt_path, "w") as fh:
        fh.create_dataset("labels", data=gt)
    with h5py.File(rec_path, "w") as fh:
        fh.create_dataset("labels", data=rec)
    return f"{gt_path}:labels", f"{rec_path}:labels"


def test_plot_file_header_only(tmp_path):
    plot = tmp_path / "plot.tsv"
    code = cli.main(["--plot-file-header", "--plot-file", str(plot), "--report-voi"])

    assert code == 0
    assert plot.read_text() == "TED_FS\tTED_FM\tTED_SUM\tVOI_SPLIT\tVOI_MERGE\tVOI\tDO_GT\tDO_REC\n"


def test_header_printed_without_plot_file(capsys):
    assert cli.main(["--plot-file-header", "--no-report-detection-overlap"]) == 0
    assert capsys.readouterr().out.strip() == "TED_FS\tTED_FM\tTED_SUM"


def test_dry_run_prints_configuration(capsys):
    assert cli.main(["--dry-run", "--tolerance", "2.5", "--handle-background"]) == 0
    out = capsys.readouterr().out
    resolved = json.loads(out[out.index("{"):])
    assert resolved["ted"]["tolerance"] == 2.5
    assert resolved["ted"]["handle_background"] is True
    assert resolved["compute_corrected"] is True


def test_full_run_writes_outputs(tmp_path, capsys):
    gt, rec = _write_volumes(tmp_path)
    plot = tmp_path / "plot.tsv"
    errors_dir = tmp_path / "errors"

    code = cli.main([
        "--ground-truth", gt,
        "--reconstruction", rec,
        "--tolerance", "0",
        "--handle-background",
        "--plot-file", str(plot),
        "--ted-error-files", str(errors_dir),
    ])

    assert code == 0
    assert "TED split errors: 1" in capsys.readouterr().out
    assert (errors_dir / "rec.splits.data").read_text() == "1\t1\t2\n"
    assert (errors_dir / "rec.merges.data").read_text() == ""
    assert (errors_dir / "rec.fps.data").exists()
    assert (errors_dir / "rec.fns.data").exists()
    assert os.listdir(errors_dir / "corrected_rec") == ["section0000.tif"]
    assert plot.read_text().split("\t")[:5] == ["1", "0", "0", "0", "1"]


def test_config_file_overrides_flags(tmp_path, capsys):
    gt, rec = _write_volumes(tmp_path)
    cfg = tmp_path / "cfg.json"
    cfg.write_text(json.dumps({"report_detection_overlap": False, "ted": {"tolerance": 0}}), encoding="utf-8")

    code = cli.main([
        "--config", str(cfg),
        "--ground-truth", gt,
        "--reconstruction", rec,
        "--tolerance", "10",
    ])

    assert code == 0
    out = capsys.readouterr().out
    assert "TED split errors: 1" in out
    assert "detection overlap" not in out


def test_missing_input_fails_with_exit_code_2(tmp_path):
    code = cli.main([
        "--ground-truth", str(tmp_path / "nope"),
        "--reconstruction", str(tmp_path / "nope"),
    ])
    assert code == 2


def test_default_tolerance_keeps_the_split(tmp_path, capsys):
    gt, rec = _write_volumes(tmp_path)

    code = cli.main(["--ground-truth", gt, "--reconstruction", rec, "--no-corrected"])

    assert code == 0
    assert "TED split errors: 1" in capsys.readouterr().out
