import json

import pytest
import yaml

from core.dto import ErrorReportDTO, TedParamsDTO
from config import (
    BACKGROUND_LABEL,
    REPORT_DETECTION_OVERLAP,
    REPORT_TED,
    TED_HANDLE_BACKGROUND,
    TED_TOLERANCE,
)


def test_error_report_dto_uses_config_defaults():
    dto = ErrorReportDTO()
    assert dto.report_ted == REPORT_TED
    assert dto.report_detection_overlap == REPORT_DETECTION_OVERLAP
    assert dto.ted.tolerance == TED_TOLERANCE
    assert dto.ted.handle_background == TED_HANDLE_BACKGROUND
    assert dto.ted.gt_background_label == BACKGROUND_LABEL


def test_error_report_dto_from_dict_uses_defaults():
    assert ErrorReportDTO.from_dict({}) == ErrorReportDTO()


def test_ted_params_validation():
    with pytest.raises(ValueError):
        TedParamsDTO(tolerance=-1.0)
    with pytest.raises(ValueError):
        TedParamsDTO(min_overlap_fraction=1.5)
    with pytest.raises(ValueError):
        TedParamsDTO(max_workers=0)


def test_round_trip_through_dict():
    dto = ErrorReportDTO(
        report_voi=True,
        ignore_background=True,
        ted=TedParamsDTO(tolerance=2.5, handle_background=True, rec_background_label=None),
    )
    again = ErrorReportDTO.from_dict(dto.to_dict())
    assert again == dto
    assert again.ted.rec_background_label is None


def test_from_yaml_and_json(tmp_path):
    raw = {"report_rand": True, "ted": {"tolerance": 3, "handle_background": True}}

    yaml_path = tmp_path / "cfg.yaml"
    yaml_path.write_text(yaml.safe_dump(raw), encoding="utf-8")
    json_path = tmp_path / "cfg.json"
    json_path.write_text(json.dumps(raw), encoding="utf-8")

    for dto in (ErrorReportDTO.from_yaml(str(yaml_path)), ErrorReportDTO.from_json(str(json_path))):
        assert dto.report_rand is True
        assert dto.ted.tolerance == 3.0
        assert dto.ted.handle_background is True


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert ErrorReportDTO.from_yaml(str(path)) == ErrorReportDTO()
