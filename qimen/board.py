"""
Qi Men Dun Jia board derivation.

Turns a timestamp (optionally corrected to true solar time) into the
four pillars, a bureau number, yin/yang polarity, the governing solar
term and the nine palaces.

The bureau is a simplified additive checksum over the year branch,
calendar month, calendar day and hour branch, not the classical
yuan-table lookup. Palace contents are fixed table lookups by palace
index; the emptiness and horse markers sit on palaces 3 and 8.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Optional

from qimen.astro_calendar import SOLAR_TERM_NAMES, governing_term, to_civil_time, true_solar_time
from qimen.bazi import HEAVENLY_STEMS, UNKNOWN, FourPillars, compute_four_pillars

logger = logging.getLogger(__name__)


# ============================================================
# CONSTANTS
# ============================================================

STEMS = tuple(s.chinese for s in HEAVENLY_STEMS)
STARS = ("天蓬", "天芮", "天冲", "天辅", "天禽", "天心", "天柱", "天任", "天英")
GATES = ("休门", "死门", "伤门", "杜门", "中门", "开门", "惊门", "生门", "景门")
GODS = ("值符", "螣蛇", "太阴", "六合", "白虎", "玄武", "九地", "九天")

# index: (name, element, gua)
PALACE_INFO = MappingProxyType({
    1: ("坎一宫", "水", "坎"),
    2: ("坤二宫", "土", "坤"),
    3: ("震三宫", "木", "震"),
    4: ("巽四宫", "木", "巽"),
    5: ("中五宫", "土", "中"),
    6: ("乾六宫", "金", "乾"),
    7: ("兑七宫", "金", "兑"),
    8: ("艮八宫", "土", "艮"),
    9: ("离九宫", "火", "离"),
})

# Lo Shu order for a 3x3 display, read row by row
GRID_LAYOUT = (4, 9, 2, 3, 5, 7, 8, 1, 6)

EMPTINESS_PALACE = 3
HORSE_PALACE = 8

# Winter Solstice through Grain in Ear runs the yang half of the cycle
YANG_TERMS = frozenset(SOLAR_TERM_NAMES[i % 24] for i in range(23, 23 + 12))

XUN_SHOU = "甲子戊"
STARTING_METHOD = "拆补法 (基于真太阳时修正)"
PREDICTION_TYPES = ("SHI_JU", "MING_JU")


@dataclass(frozen=True)
class Palace:
    index: int
    name: str
    star: str
    gate: str
    god: str
    heaven_stem: str
    earth_stem: str
    element: str
    gua: str
    is_emptiness: bool
    is_horse: bool

    def to_dict(self):
        return {
            "index": self.index,
            "name": self.name,
            "star": self.star,
            "gate": self.gate,
            "god": self.god,
            "heaven_stem": self.heaven_stem,
            "earth_stem": self.earth_stem,
            "element": self.element,
            "gua": self.gua,
            "is_emptiness": self.is_emptiness,
            "is_horse": self.is_horse,
        }


@dataclass(frozen=True)
class Board:
    pillars: FourPillars
    bureau: int
    is_yang: bool
    solar_term: str
    palaces: tuple
    bureau_formula: str
    target_time: datetime
    true_solar_time: datetime
    longitude: Optional[float] = None
    prediction_type: str = "SHI_JU"
    direction: Optional[str] = None

    @property
    def polarity(self) -> str:
        return "yang" if self.is_yang else "yin"

    def palace(self, index: int) -> Palace:
        return self.palaces[index - 1]

    def grid(self) -> list[list[Palace]]:
        """Palaces as three display rows."""
        ordered = [self.palace(i) for i in GRID_LAYOUT]
        return [ordered[0:3], ordered[3:6], ordered[6:9]]

    def to_dict(self):
        location = None
        if self.longitude is not None:
            location = {"latitude": 0, "longitude": self.longitude, "is_adjusted": True}

        return {
            "year_pillar": self.pillars.year.chinese,
            "month_pillar": self.pillars.month.chinese,
            "day_pillar": self.pillars.day.chinese,
            "hour_pillar": self.pillars.hour.chinese,
            "hour_stem": self.pillars.hour.stem.chinese if self.pillars.has_hour else UNKNOWN,
            "hour_branch": self.pillars.hour.branch.chinese if self.pillars.has_hour else UNKNOWN,
            "bureau": self.bureau,
            "is_yang": self.is_yang,
            "polarity": self.polarity,
            "solar_term": self.solar_term,
            "palaces": [p.to_dict() for p in self.palaces],
            "xun_shou": XUN_SHOU,
            "zhi_fu_star": STARS[7],
            "zhi_shi_gate": GATES[7],
            "bureau_formula": self.bureau_formula,
            "starting_method": STARTING_METHOD,
            "prediction_type": self.prediction_type,
            "target_time": self.target_time.isoformat(),
            "true_solar_time": self.true_solar_time.isoformat(),
            "location": location,
            "direction": self.direction,
        }


# ============================================================
# DERIVATION
# ============================================================

def is_yang_term(term_name: str) -> bool:
    return term_name in YANG_TERMS


def compute_bureau(year_branch_index: int, month: int, day: int,
                   hour_branch_index: int) -> tuple:
    """
    Bureau checksum: (year branch + month + day + hour branch) mod 9.

    Branch indices are counted from 1 here. A remainder of 0 is
    bureau 9.

    Returns:
        (bureau, formula string)
    """
    year_number = year_branch_index + 1
    hour_number = hour_branch_index + 1
    total = year_number + month + day + hour_number
    bureau = total % 9 or 9
    formula = f"({year_number} + {month} + {day} + {hour_number}) ÷ 9 余 {bureau}"
    return bureau, formula


def build_palaces() -> tuple:
    """The nine palaces, index 1 through 9."""
    palaces = []
    for idx in range(1, 10):
        name, element, gua = PALACE_INFO[idx]
        palaces.append(Palace(
            index=idx,
            name=name,
            star=STARS[idx % len(STARS)],
            gate=GATES[idx % len(GATES)],
            god=GODS[idx % 8],
            heaven_stem=STEMS[idx % len(STEMS)],
            earth_stem=STEMS[(idx + 2) % len(STEMS)],
            element=element,
            gua=gua,
            is_emptiness=idx == EMPTINESS_PALACE,
            is_horse=idx == HORSE_PALACE,
        ))
    return tuple(palaces)


PALACES = build_palaces()


def calculate_board(moment: datetime, longitude: Optional[float] = None,
                    has_time: bool = True, prediction_type: str = "SHI_JU",
                    direction: Optional[str] = None) -> Board:
    """
    Derive the full board for a timestamp.

    Args:
        moment: civil timestamp (naive = UTC+8 clock time)
        longitude: degrees east; when given, true solar time is used
        has_time: False when the caller only knows the date
        prediction_type: "SHI_JU" (event) or "MING_JU" (natal)
        direction: optional direction chosen by the user

    Returns:
        Board
    """
    if prediction_type not in PREDICTION_TYPES:
        raise ValueError(f"Unknown prediction type: {prediction_type!r}")

    target_time = to_civil_time(moment)
    calculation_time = true_solar_time(target_time, longitude)
    pillars = compute_four_pillars(calculation_time, has_time=has_time)

    term = governing_term(calculation_time)
    hour_branch = pillars.hour.branch.index if pillars.has_hour else 0
    bureau, formula = compute_bureau(
        pillars.year.branch.index, calculation_time.month,
        calculation_time.day, hour_branch,
    )

    board = Board(
        pillars=pillars,
        bureau=bureau,
        is_yang=is_yang_term(term.name),
        solar_term=term.name,
        palaces=PALACES,
        bureau_formula=formula,
        target_time=target_time,
        true_solar_time=calculation_time,
        longitude=longitude,
        prediction_type=prediction_type,
        direction=direction,
    )
    logger.debug("Board for %s: %s遁%d局 (%s), formula %s",
                 calculation_time.isoformat(), "阳" if board.is_yang else "阴",
                 bureau, term.name, formula)
    return board
