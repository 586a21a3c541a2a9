"""
Reading context and CLI tests.
"""

import json
from datetime import datetime

import pytest

from qimen import run
from qimen.bazi import UNKNOWN
from qimen.generate_context import (
    MAX_YEAR, MIN_YEAR, build_prediction_messages, generate_board_context, generate_chart_context,
    generate_reading_context, parse_timestamp, resolve_longitude,
)


class TestParseTimestamp:

    def test_date_and_time(self):
        assert parse_timestamp("2024-06-01", "09:30") == (datetime(2024, 6, 1, 9, 30), True)

    def test_date_only_defaults_to_noon(self):
        assert parse_timestamp("2024-06-01") == (datetime(2024, 6, 1, 12, 0), False)
        assert parse_timestamp("2024-06-01", "  ") == (datetime(2024, 6, 1, 12, 0), False)

    @pytest.mark.parametrize("date_str, time_str", [
        ("2024-13-01", None),
        ("2024-02-30", "10:00"),
        ("June 1st", None),
        (None, None),
        ("2024-06-01", "25:00"),
        ("2024-06-01", "noon"),
        ("0001-06-01", "12:00"),
        ("0002-06-01", None),
        ("9998-06-01", None),
        ("9999-06-01", "12:00"),
        ("9999-12-31", "23:30"),
    ])
    def test_invalid_input_rejected(self, date_str, time_str):
        with pytest.raises(ValueError):
            parse_timestamp(date_str, time_str)


class TestResolveLongitude:

    def test_explicit_longitude_wins(self):
        assert resolve_longitude(100.0, "上海") == 100.0

    def test_place_lookup(self):
        assert resolve_longitude(None, "广州") == 113.27

    def test_nothing_supplied(self):
        assert resolve_longitude(None, None) is None

    @pytest.mark.parametrize("longitude", [-180.5, 181.0, 1e6])
    def test_out_of_range_longitude_rejected(self, longitude):
        with pytest.raises(ValueError):
            resolve_longitude(longitude, None)

    def test_supported_range_edges_compute(self):
        for date_str, time_str in ((f"{MIN_YEAR:04d}-01-01", "00:00"), (f"{MAX_YEAR:04d}-12-31", "23:59")):
            for longitude in (-180.0, 180.0):
                board = generate_board_context(date_str, time_str, longitude=longitude)
                assert 1 <= board["bureau"] <= 9


class TestBoardContext:

    def test_place_sets_location(self):
        board = generate_board_context("2024-06-01", "12:00", place="上海")

        assert board["location"]["longitude"] == 121.47
        assert board["true_solar_time"] != board["target_time"]

    def test_missing_time_reports_unknown_hour(self):
        board = generate_board_context("2024-06-01")

        assert board["hour_pillar"] == UNKNOWN
        assert 1 <= board["bureau"] <= 9


class TestChartContext:

    def test_true_solar_time_recorded(self):
        chart = generate_chart_context("2024-06-01", "12:00", "male", longitude=135.0)

        assert chart["true_solar_time"] == "2024-06-01T13:00:00"
        assert chart["pillars"]["hour"]["branch"]["chinese"] == "未"


class TestPredictionMessages:

    def setup_method(self):
        self.board = generate_board_context("2024-06-01", "12:00")

    def test_messages(self):
        messages = build_prediction_messages(self.board, "  项目启动时机是否合适？ ")

        assert [m["role"] for m in messages] == ["system", "user"]
        assert messages[1]["content"] == "项目启动时机是否合适？"
        system = messages[0]["content"]
        assert "阳遁1局 (小满)" in system
        assert "时事演算" in system
        assert "坎一宫" in system

    def test_question_required(self):
        with pytest.raises(ValueError):
            build_prediction_messages(self.board, "   ")


class TestReadingContext:

    def test_board_only(self):
        context = generate_reading_context("2024-06-01", "12:00")

        assert context["board"]["bureau"] == 1
        assert "chart" not in context
        assert "messages" not in context

    def test_full_context(self):
        context = generate_reading_context("2024-06-01", "12:00", gender="female",
                                           question="近期运势如何？")

        assert context["chart"]["day_master"]["stem"] == "戊"
        assert len(context["messages"]) == 2


class TestCli:

    def test_prints_board_json(self, capsys):
        run.main(["--date", "2024-06-01", "--time", "12:00"])

        output = json.loads(capsys.readouterr().out)
        assert output["board"]["day_pillar"] == "戊申"

    def test_invalid_date_exits(self, capsys):
        with pytest.raises(SystemExit):
            run.main(["--date", "2024-99-01"])

        assert "Invalid date" in capsys.readouterr().err

    @pytest.mark.parametrize("date_str", ["0001-06-01", "9999-06-01"])
    def test_out_of_range_date_exits(self, capsys, date_str):
        with pytest.raises(SystemExit):
            run.main(["--date", date_str, "--time", "12:00"])

        assert "out of range" in capsys.readouterr().err
