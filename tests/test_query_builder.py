from datetime import datetime, timezone

import pytest

from meter_dashboard.errors import EmptyResult, FilterValidationError
from meter_dashboard.services.query_builder import (
    AudioEventFilter,
    ImageEventFilter,
    QueryParts,
    build_audio_event_query,
    build_image_event_query,
    day_bounds,
    resolve_meter_ids,
    split_csv_param,
)

JAN_15 = 1705276800  # 2024-01-15T00:00:00Z


class TestQueryParts:
    def test_bind_numbers_placeholders_in_order(self):
        q = QueryParts()
        assert q.bind("a") == ":p1"
        assert q.bind(2) == ":p2"
        assert q.values == {"p1": "a", "p2": 2}
        assert q.index == 3

    def test_empty_where_clause(self):
        assert QueryParts().where_clause() == ""

    def test_paginate_appends_after_filters(self):
        q = build_image_event_query(ImageEventFilter(device_id="abc"))
        assert q.paginate(10, 20) == "LIMIT :p2 OFFSET :p3"
        assert q.values == {"p1": "%abc%", "p2": 10, "p3": 20}


class TestImageEventQuery:
    def test_no_filters(self):
        q = build_image_event_query(ImageEventFilter())
        assert q.fragments == []
        assert q.values == {}

    def test_device_id_is_case_insensitive_substring(self):
        q = build_image_event_query(ImageEventFilter(device_id="  Dev01 "))
        assert q.fragments == ["LOWER(device_id) LIKE LOWER(:p1)"]
        assert q.values == {"p1": "%Dev01%"}

    def test_like_wildcards_are_escaped(self):
        q = build_image_event_query(ImageEventFilter(device_id="a_b%"))
        assert q.values["p1"] == "%a\\_b\\%%"

    def test_date_alone_covers_the_whole_day(self):
        q = build_image_event_query(ImageEventFilter(date="2024-01-15"))
        assert q.fragments == ["timestamp >= :p1", "timestamp <= :p2"]
        assert q.values == {"p1": JAN_15, "p2": JAN_15 + 86399}

    def test_day_bounds_span_midnight_to_last_millisecond(self):
        start, end = day_bounds("2024-01-15")
        assert datetime.fromtimestamp(start, timezone.utc) == datetime(2024, 1, 15, tzinfo=timezone.utc)
        assert datetime.fromtimestamp(end, timezone.utc) == datetime(2024, 1, 15, 23, 59, 59, tzinfo=timezone.utc)
        assert end + 1 == day_bounds("2024-01-16")[0]

    def test_explicit_times_are_inclusive(self):
        start, end = day_bounds("2024-01-15", "10:00", "10:30")
        assert start == JAN_15 + 10 * 3600
        assert end == JAN_15 + 10 * 3600 + 30 * 60 + 59

    def test_only_start_time_runs_to_end_of_day(self):
        start, end = day_bounds("2024-01-15", start_time="23:00")
        assert start == JAN_15 + 23 * 3600
        assert end == JAN_15 + 86399

    def test_dashboard_timezone(self):
        start, _ = day_bounds("2024-01-15", tz="Asia/Kolkata")
        assert start == JAN_15 - 5 * 3600 - 30 * 60

    def test_detection_types_are_disjunctive_and_bound(self):
        q = build_image_event_query(ImageEventFilter(detection_types=["OCR", "faces"]))
        assert len(q.fragments) == 1
        sql = q.fragments[0]
        assert " OR " in sql
        assert "OCR" not in sql and "faces" not in sql
        assert q.values == {"p1": "OCR", "p2": "faces"}

    def test_repeated_detection_type_binds_once(self):
        q = build_image_event_query(ImageEventFilter(detection_types=["OCR", "OCR"]))
        assert q.values == {"p1": "OCR"}

    def test_all_filters_combined(self):
        q = build_image_event_query(ImageEventFilter(
            device_id="d", date="2024-01-15", detection_types=["tv_channel"]))
        assert q.index == 5
        assert q.where_clause().startswith("WHERE LOWER(device_id)")
        assert q.where_clause().count(" AND ") >= 3

    def test_unknown_detection_type_is_rejected(self):
        with pytest.raises(FilterValidationError) as exc:
            build_image_event_query(ImageEventFilter(detection_types=["OCR", "x'); DROP TABLE users;--"]))
        assert "detectionTypes" in exc.value.errors

    @pytest.mark.parametrize("flt, field", [
        (ImageEventFilter(date="2024-13-40"), "date"),
        (ImageEventFilter(date="yesterday"), "date"),
        (ImageEventFilter(date="2024-01-15", start_time="25:99"), "startTime"),
        (ImageEventFilter(date="2024-01-15", end_time="noon"), "endTime"),
        (ImageEventFilter(start_time="10:00"), "date"),
        (ImageEventFilter(date="2024-01-15", start_time="12:00", end_time="11:00"), "startTime"),
    ])
    def test_bad_dates_reject_the_request(self, flt, field):
        with pytest.raises(FilterValidationError) as exc:
            build_image_event_query(flt)
        assert field in exc.value.errors


class TestAllowList:
    def test_no_allowlist_passes_through(self):
        assert resolve_meter_ids(["M1", "M1", "M2"], None) == ["M1", "M2"]
        assert resolve_meter_ids([], None) == []

    def test_intersection(self):
        assert resolve_meter_ids(["M2", "M3"], ["M1", "M2"]) == ["M2"]

    def test_empty_request_means_every_allowed_meter(self):
        assert resolve_meter_ids([], ["M1", "M2"]) == ["M1", "M2"]

    @pytest.mark.parametrize("requested, allowlist", [(["M1"], []), ([], []), (["X"], ["M1"])])
    def test_empty_intersection_signals_no_results(self, requested, allowlist):
        with pytest.raises(EmptyResult):
            resolve_meter_ids(requested, allowlist)
        with pytest.raises(EmptyResult):
            build_audio_event_query(AudioEventFilter(meter_ids=requested), allowlist)


class TestAudioEventQuery:
    def test_filters(self):
        q = build_audio_event_query(AudioEventFilter(
            meter_ids=["M1", "M2"],
            start="2024-01-15T00:00:00.000Z",
            end="2024-01-15T23:59:59Z",
            type=42,
        ))
        assert q.fragments == ["device_id = ANY(:p1)", "ts >= :p2", "ts <= :p3", "type = :p4"]
        assert q.values == {"p1": ["M1", "M2"], "p2": JAN_15, "p3": JAN_15 + 86399, "p4": 42}

    def test_allowlist_restricts_when_nothing_requested(self):
        q = build_audio_event_query(AudioEventFilter(), ["M9"])
        assert q.values == {"p1": ["M9"]}

    def test_unparseable_start_is_a_validation_error(self):
        with pytest.raises(FilterValidationError) as exc:
            build_audio_event_query(AudioEventFilter(start="not a date"))
        assert "start" in exc.value.errors

    def test_start_after_end(self):
        with pytest.raises(FilterValidationError):
            build_audio_event_query(AudioEventFilter(start="2024-01-16T00:00:00Z", end="2024-01-15T00:00:00Z"))


def test_split_csv_param():
    assert split_csv_param("OCR, faces,,") == ["OCR", "faces"]
    assert split_csv_param(None) == []
