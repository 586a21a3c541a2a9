"""
Board derivation tests.

Covers the bureau checksum, polarity by solar term, the fixed palace
table, true solar time and the serialized board shape.
"""

from datetime import datetime, timedelta, timezone

import pytest

from qimen.board import (
    GATES, GODS, STARS, calculate_board, compute_bureau, is_yang_term,
)
from qimen.bazi import UNKNOWN


BOARD_KEYS = {
    "year_pillar", "month_pillar", "day_pillar", "hour_pillar", "hour_stem",
    "hour_branch", "bureau", "is_yang", "polarity", "solar_term", "palaces",
    "xun_shou", "zhi_fu_star", "zhi_shi_gate", "bureau_formula",
    "starting_method", "prediction_type", "target_time", "true_solar_time",
    "location", "direction",
}


class TestBureau:

    def test_formula(self):
        bureau, formula = compute_bureau(4, 6, 1, 6)

        assert bureau == 1
        assert formula == "(5 + 6 + 1 + 7) ÷ 9 余 1"

    def test_zero_remainder_is_nine(self):
        bureau, formula = compute_bureau(2, 2, 2, 1)

        assert bureau == 9
        assert formula.endswith("余 9")

    def test_always_between_one_and_nine(self):
        moment = datetime(1950, 1, 1, 0, 0)
        while moment.year < 2050:
            board = calculate_board(moment)
            assert 1 <= board.bureau <= 9
            moment += timedelta(days=11, hours=7, minutes=31)


class TestPolarity:

    @pytest.mark.parametrize("name, expected", [
        ("冬至", True), ("小寒", True), ("立春", True), ("芒种", True),
        ("夏至", False), ("立秋", False), ("大雪", False),
    ])
    def test_yang_half(self, name, expected):
        assert is_yang_term(name) is expected

    def test_yang_before_summer_solstice(self):
        board = calculate_board(datetime(2024, 6, 10, 12, 0))

        assert board.solar_term == "芒种"
        assert board.is_yang
        assert board.polarity == "yang"

    def test_yin_after_summer_solstice(self):
        board = calculate_board(datetime(2024, 6, 25, 12, 0))

        assert board.solar_term == "夏至"
        assert not board.is_yang
        assert board.polarity == "yin"

    def test_early_january_is_yang(self):
        board = calculate_board(datetime(2024, 1, 1, 12, 0))

        assert board.solar_term == "冬至"
        assert board.is_yang


class TestPalaces:

    def setup_method(self):
        self.board = calculate_board(datetime(2024, 6, 1, 12, 0))

    def test_nine_palaces_in_index_order(self):
        assert [p.index for p in self.board.palaces] == list(range(1, 10))

    def test_fixed_markers(self):
        assert [p.index for p in self.board.palaces if p.is_emptiness] == [3]
        assert [p.index for p in self.board.palaces if p.is_horse] == [8]

    def test_symbol_lookups(self):
        first = self.board.palace(1)
        assert (first.star, first.gate, first.god) == (STARS[1], GATES[1], GODS[1])
        assert (first.heaven_stem, first.earth_stem) == ("乙", "丁")
        assert (first.name, first.element, first.gua) == ("坎一宫", "水", "坎")

        eighth = self.board.palace(8)
        assert eighth.god == GODS[0] == "值符"

        ninth = self.board.palace(9)
        assert (ninth.star, ninth.gate, ninth.god) == ("天蓬", "休门", "螣蛇")
        assert (ninth.heaven_stem, ninth.earth_stem) == ("癸", "乙")

    def test_grid_layout(self):
        rows = self.board.grid()
        assert [[p.index for p in row] for row in rows] == [[4, 9, 2], [3, 5, 7], [8, 1, 6]]


class TestCalculateBoard:

    def test_reference_board(self):
        # Given
        moment = datetime(2024, 6, 1, 12, 0)

        # When
        board = calculate_board(moment).to_dict()

        # Then
        assert board["year_pillar"] == "甲辰"
        assert board["month_pillar"] == "己巳"
        assert board["day_pillar"] == "戊申"
        assert board["hour_pillar"] == "戊午"
        assert board["bureau"] == 1
        assert board["bureau_formula"] == "(5 + 6 + 1 + 7) ÷ 9 余 1"
        assert board["solar_term"] == "小满"
        assert board["location"] is None

    def test_serialized_shape(self):
        board = calculate_board(datetime(2024, 6, 1, 12, 0)).to_dict()

        assert set(board) == BOARD_KEYS
        assert len(board["palaces"]) == 9
        assert board["xun_shou"] == "甲子戊"
        assert board["zhi_fu_star"] == "天任"
        assert board["zhi_shi_gate"] == "生门"

    def test_unknown_hour_uses_branch_zero(self):
        board = calculate_board(datetime(2024, 6, 1, 12, 0), has_time=False).to_dict()

        assert board["hour_pillar"] == UNKNOWN
        assert board["hour_stem"] == UNKNOWN
        assert board["hour_branch"] == UNKNOWN
        assert board["bureau_formula"] == "(5 + 6 + 1 + 1) ÷ 9 余 4"
        assert board["bureau"] == 4

    def test_night_zi_uses_calendar_day_for_bureau(self):
        board = calculate_board(datetime(2024, 6, 1, 23, 30))
        next_day = calculate_board(datetime(2024, 6, 2, 12, 0))

        assert board.pillars.day == next_day.pillars.day
        assert board.bureau_formula == "(5 + 6 + 1 + 1) ÷ 9 余 4"

    def test_longitude_shifts_to_true_solar_time(self):
        moment = datetime(2024, 6, 1, 12, 0)
        board = calculate_board(moment, longitude=135.0)

        assert board.true_solar_time == moment + timedelta(minutes=60)
        assert board.target_time == moment
        assert board.to_dict()["location"] == {"latitude": 0, "longitude": 135.0, "is_adjusted": True}

    def test_longitude_can_move_hour_branch(self):
        # 13:30 clock at 105°E is 12:30 solar time: Wei hour becomes Wu
        assert calculate_board(datetime(2024, 6, 1, 13, 30)).pillars.hour.branch.chinese == "未"
        assert calculate_board(datetime(2024, 6, 1, 13, 30), longitude=105.0).pillars.hour.branch.chinese == "午"

    def test_aware_timestamp_matches_civil_time(self):
        aware = calculate_board(datetime(2024, 6, 1, 4, 0, tzinfo=timezone.utc))
        naive = calculate_board(datetime(2024, 6, 1, 12, 0))

        assert aware.to_dict() == naive.to_dict()

    def test_deterministic(self):
        moment = datetime(2001, 9, 9, 9, 9)
        assert calculate_board(moment, 117.2).to_dict() == calculate_board(moment, 117.2).to_dict()

    def test_prediction_metadata(self):
        board = calculate_board(datetime(2024, 6, 1, 12, 0), prediction_type="MING_JU",
                                direction="东南").to_dict()

        assert board["prediction_type"] == "MING_JU"
        assert board["direction"] == "东南"

    def test_unknown_prediction_type(self):
        with pytest.raises(ValueError):
            calculate_board(datetime(2024, 6, 1, 12, 0), prediction_type="YUE_JU")
