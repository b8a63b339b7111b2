"""Tests for activity import parsing."""

import json
from datetime import date, datetime

import pytest

from run_rank.errors import InvalidActivityError
from run_rank.parser import (
    load_import_file,
    parse_activity_date,
    parse_record,
    parse_records,
    validate_distance,
)


class TestParseActivityDate:
    def test_plain_date(self):
        assert parse_activity_date("2025-09-28") == "2025-09-28"

    def test_datetime_string_drops_time(self):
        assert parse_activity_date("2025-09-28T07:15:00Z") == "2025-09-28"

    def test_date_objects(self):
        assert parse_activity_date(date(2025, 9, 28)) == "2025-09-28"
        assert parse_activity_date(datetime(2025, 9, 28, 7, 15)) == "2025-09-28"

    @pytest.mark.parametrize("raw", ["", "   ", "yesterday", "2025-13-01", None, 20250928])
    def test_invalid(self, raw):
        with pytest.raises(InvalidActivityError):
            parse_activity_date(raw)


class TestValidateDistance:
    def test_numeric_string(self):
        assert validate_distance("5.2") == 5.2

    def test_int(self):
        assert validate_distance(10) == 10.0

    @pytest.mark.parametrize("raw", [0, -1, "abc", None, True, float("nan"), float("inf")])
    def test_invalid(self, raw):
        with pytest.raises(InvalidActivityError):
            validate_distance(raw)

    def test_error_is_value_error(self):
        with pytest.raises(ValueError):
            validate_distance(-5)


class TestParseRecord:
    def test_km_record(self):
        record = parse_record({"external_id": "a1", "date": "2025-09-28", "distance": 5.0})
        assert record.external_id == "a1"
        assert record.date == "2025-09-28"
        assert record.distance == 5.0

    def test_meters_and_platform_fields(self):
        record = parse_record({"id": 987, "start_date_local": "2025-09-28T06:00:00", "distance_m": 10810})
        assert record.external_id == "987"
        assert record.date == "2025-09-28"
        assert record.distance == pytest.approx(10.81)

    def test_missing_external_id(self):
        with pytest.raises(InvalidActivityError):
            parse_record({"date": "2025-09-28", "distance": 5.0})


class TestParseRecords:
    def test_splits_valid_and_rejected(self):
        records, rejected = parse_records([
            {"external_id": "a1", "date": "2025-09-28", "distance": 5.0},
            {"external_id": "a2", "date": "2025-09-29", "distance": 0},
            "not a record",
        ])
        assert [r.external_id for r in records] == ["a1"]
        assert len(rejected) == 2
        assert "Invalid distance" in rejected[0]["error"]


class TestLoadImportFile:
    def test_list(self, tmp_path):
        path = tmp_path / "runs.json"
        path.write_text(json.dumps([{"external_id": "a1"}]))
        assert load_import_file(path) == [{"external_id": "a1"}]

    def test_wrapped(self, tmp_path):
        path = tmp_path / "runs.json"
        path.write_text(json.dumps({"activities": [{"external_id": "a1"}]}))
        assert len(load_import_file(path)) == 1

    def test_missing_or_invalid(self, tmp_path):
        assert load_import_file(tmp_path / "nope.json") == []
        bad = tmp_path / "bad.json"
        bad.write_text("{not json")
        assert load_import_file(bad) == []

    def test_directory_path(self, tmp_path):
        assert load_import_file(tmp_path) == []

    def test_undecodable_bytes(self, tmp_path):
        path = tmp_path / "runs.json"
        path.write_bytes(b"\xff\xfe\x00bad")
        assert load_import_file(path) == []
