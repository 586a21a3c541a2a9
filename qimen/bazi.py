"""
BaZi (Four Pillars) computation engine.

Handles:
- Civil timestamp to four pillar conversion (solar-term month boundaries,
  Li Chun year boundary, night-zi day rollover)
- Hidden stem extraction
- Ten Gods relationship mapping
- Luck Pillar computation

Design principle: This module COMPUTES. It does not interpret.
Everything here is a pure function of its arguments.
"""

from datetime import datetime, timedelta
from typing import Optional
from dataclasses import dataclass
from enum import Enum

from qimen.astro_calendar import (
    SolarTerm, compute_solar_terms, days_since_epoch, find_nearest_jie,
    governing_term, jie_position, to_civil_time, true_solar_time, LI_CHUN,
)


# ============================================================
# FUNDAMENTAL DATA STRUCTURES
# ============================================================

UNKNOWN = "unknown"


class Polarity(Enum):
    YANG = "yang"
    YIN = "yin"


class Element(Enum):
    WOOD = "wood"
    FIRE = "fire"
    EARTH = "earth"
    METAL = "metal"
    WATER = "water"


@dataclass(frozen=True)
class HeavenlyStem:
    chinese: str
    pinyin: str
    element: Element
    polarity: Polarity
    index: int  # 0-9 in the cycle

    def __str__(self):
        return f"{self.pinyin} ({self.polarity.value} {self.element.value})"


@dataclass(frozen=True)
class EarthlyBranch:
    chinese: str
    pinyin: str
    animal: str
    element: Element  # primary/season element
    polarity: Polarity
    index: int  # 0-11 in the cycle
    hidden_stems: tuple  # chinese names of hidden stems [main_qi, middle_qi, residual_qi]

    def __str__(self):
        return f"{self.pinyin} ({self.animal})"


@dataclass(frozen=True)
class Pillar:
    stem: Optional[HeavenlyStem]
    branch: Optional[EarthlyBranch]
    position: str  # "year", "month", "day", "hour"

    @classmethod
    def unknown(cls, position: str) -> "Pillar":
        return cls(stem=None, branch=None, position=position)

    @property
    def is_known(self) -> bool:
        return self.stem is not None and self.branch is not None

    @property
    def chinese(self) -> str:
        """Joined stem+branch, e.g. 甲辰."""
        if not self.is_known:
            return UNKNOWN
        return f"{self.stem.chinese}{self.branch.chinese}"

    def __str__(self):
        if not self.is_known:
            return f"{self.position}: {UNKNOWN}"
        return f"{self.stem.pinyin} {self.branch.pinyin} ({self.stem.polarity.value} {self.stem.element.value} {self.branch.animal})"

    def to_dict(self):
        if not self.is_known:
            return {
                "position": self.position,
                "stem": UNKNOWN,
                "branch": UNKNOWN,
                "combined": UNKNOWN,
                "description": str(self),
            }
        return {
            "position": self.position,
            "stem": {
                "chinese": self.stem.chinese,
                "pinyin": self.stem.pinyin,
                "index": self.stem.index,
                "element": self.stem.element.value,
                "polarity": self.stem.polarity.value,
            },
            "branch": {
                "chinese": self.branch.chinese,
                "pinyin": self.branch.pinyin,
                "index": self.branch.index,
                "animal": self.branch.animal,
                "element": self.branch.element.value,
                "polarity": self.branch.polarity.value,
                "hidden_stems": list(self.branch.hidden_stems),
            },
            "combined": self.chinese,
            "description": str(self),
        }


@dataclass(frozen=True)
class FourPillars:
    year: Pillar
    month: Pillar
    day: Pillar
    hour: Pillar
    month_term: SolarTerm  # Jie term that opened the month

    def __iter__(self):
        return iter((self.year, self.month, self.day, self.hour))

    @property
    def has_hour(self) -> bool:
        return self.hour.is_known

    def to_dict(self):
        return {
            "year": self.year.to_dict(),
            "month": self.month.to_dict(),
            "day": self.day.to_dict(),
            "hour": self.hour.to_dict(),
            "month_term": self.month_term.name,
        }


# ============================================================
# STEM AND BRANCH DEFINITIONS
# ============================================================

HEAVENLY_STEMS = (
    HeavenlyStem("甲", "Jia", Element.WOOD, Polarity.YANG, 0),
    HeavenlyStem("乙", "Yi", Element.WOOD, Polarity.YIN, 1),
    HeavenlyStem("丙", "Bing", Element.FIRE, Polarity.YANG, 2),
    HeavenlyStem("丁", "Ding", Element.FIRE, Polarity.YIN, 3),
    HeavenlyStem("戊", "Wu", Element.EARTH, Polarity.YANG, 4),
    HeavenlyStem("己", "Ji", Element.EARTH, Polarity.YIN, 5),
    HeavenlyStem("庚", "Geng", Element.METAL, Polarity.YANG, 6),
    HeavenlyStem("辛", "Xin", Element.METAL, Polarity.YIN, 7),
    HeavenlyStem("壬", "Ren", Element.WATER, Polarity.YANG, 8),
    HeavenlyStem("癸", "Gui", Element.WATER, Polarity.YIN, 9),
)

EARTHLY_BRANCHES = (
    EarthlyBranch("子", "Zi", "Rat", Element.WATER, Polarity.YANG, 0, ("癸",)),
    EarthlyBranch("丑", "Chou", "Ox", Element.EARTH, Polarity.YIN, 1, ("己", "癸", "辛")),
    EarthlyBranch("寅", "Yin", "Tiger", Element.WOOD, Polarity.YANG, 2, ("甲", "丙", "戊")),
    EarthlyBranch("卯", "Mao", "Rabbit", Element.WOOD, Polarity.YIN, 3, ("乙",)),
    EarthlyBranch("辰", "Chen", "Dragon", Element.EARTH, Polarity.YANG, 4, ("戊", "乙", "癸")),
    EarthlyBranch("巳", "Si", "Snake", Element.FIRE, Polarity.YIN, 5, ("丙", "庚", "戊")),
    EarthlyBranch("午", "Wu", "Horse", Element.FIRE, Polarity.YANG, 6, ("丁", "己")),
    EarthlyBranch("未", "Wei", "Goat", Element.EARTH, Polarity.YIN, 7, ("己", "丁", "乙")),
    EarthlyBranch("申", "Shen", "Monkey", Element.METAL, Polarity.YANG, 8, ("庚", "壬", "戊")),
    EarthlyBranch("酉", "You", "Rooster", Element.METAL, Polarity.YIN, 9, ("辛",)),
    EarthlyBranch("戌", "Xu", "Dog", Element.EARTH, Polarity.YANG, 10, ("戊", "辛", "丁")),
    EarthlyBranch("亥", "Hai", "Pig", Element.WATER, Polarity.YIN, 11, ("壬", "甲")),
)

STEM_BY_CHINESE = {s.chinese: s for s in HEAVENLY_STEMS}
BRANCH_BY_CHINESE = {b.chinese: b for b in EARTHLY_BRANCHES}

# Day pillar reference: 1970-01-01 counts as stem 9, branch 5
EPOCH_DAY_STEM = 9
EPOCH_DAY_BRANCH = 5


# ============================================================
# PILLAR COMPUTATION
# ============================================================

def year_pillar(moment: datetime) -> Pillar:
    """
    Compute the Year Pillar.

    The BaZi year starts at Li Chun (Start of Spring), around Feb 4.
    Before that instant the previous year's pillar applies.
    """
    effective_year = moment.year
    if moment < compute_solar_terms(moment.year)[LI_CHUN].instant:
        effective_year -= 1

    # Year 4 CE was Jia Zi, the start of the cycle
    stem_index = (effective_year - 4) % 10
    branch_index = (effective_year - 4) % 12

    return Pillar(
        stem=HEAVENLY_STEMS[stem_index],
        branch=EARTHLY_BRANCHES[branch_index],
        position="year"
    )


def month_pillar(year_stem_index: int, month_position: int) -> Pillar:
    """
    Compute the Month Pillar using the Five Tigers Escape (Wu Hu Dun) formula.

    Five Tigers Escape rule:
    - Year stem Jia/Ji → Tiger month stem Bing
    - Year stem Yi/Geng → Tiger month stem Wu
    - Year stem Bing/Xin → Tiger month stem Geng
    - Year stem Ding/Ren → Tiger month stem Ren
    - Year stem Wu/Gui → Tiger month stem Jia

    Args:
        year_stem_index: index of the year's heavenly stem (0-9)
        month_position: months since the Tiger month (0 = Li Chun month)
    """
    branch_index = (month_position + 2) % 12
    stem_index = ((year_stem_index % 5) * 2 + 2 + month_position) % 10

    return Pillar(
        stem=HEAVENLY_STEMS[stem_index],
        branch=EARTHLY_BRANCHES[branch_index],
        position="month"
    )


def day_pillar(date: datetime) -> Pillar:
    """
    Compute the Day Pillar by counting whole days from 1970-01-01.

    Pure integer arithmetic, so there is no drift however far the
    date lies from the epoch.
    """
    days = days_since_epoch(date)
    stem_index = (days + EPOCH_DAY_STEM) % 10
    branch_index = (days + EPOCH_DAY_BRANCH) % 12

    return Pillar(
        stem=HEAVENLY_STEMS[stem_index],
        branch=EARTHLY_BRANCHES[branch_index],
        position="day"
    )


def hour_branch_index(hour: int) -> int:
    """
    Map a clock hour to its two-hour branch slot.

    23:00-00:59 = Zi (Rat)      = branch 0
    01:00-02:59 = Chou (Ox)     = branch 1
    ...
    21:00-22:59 = Hai (Pig)     = branch 11
    """
    return ((hour + 1) % 24) // 2


def hour_pillar(day_stem_index: int, hour: int) -> Pillar:
    """
    Compute the Hour Pillar using the Five Rats Escape (Wu Shu Dun) formula.

    Jia/Ji days start the Zi hour at Jia, Yi/Geng at Bing, Bing/Xin at Wu,
    Ding/Ren at Geng and Wu/Gui at Ren.

    IMPORTANT: pass the true-solar-time hour, not clock time.
    """
    branch_index = hour_branch_index(hour)
    stem_index = ((day_stem_index % 5) * 2 + branch_index) % 10

    return Pillar(
        stem=HEAVENLY_STEMS[stem_index],
        branch=EARTHLY_BRANCHES[branch_index],
        position="hour"
    )


def compute_four_pillars(moment: datetime, has_time: bool = True) -> FourPillars:
    """
    Compute all four pillars for a civil timestamp.

    From 23:00 onward the date belongs to the following day (night-zi
    rule); the hour pillar still uses the original hour.

    Args:
        moment: timestamp, already corrected to true solar time if wanted
        has_time: False when no time of day was supplied; the hour pillar
            is then reported as unknown and the time component only feeds
            the year/month/day boundaries
    """
    moment = to_civil_time(moment)
    effective = moment + timedelta(days=1) if moment.hour >= 23 else moment

    yp = year_pillar(effective)
    month_term = governing_term(effective, jie_only=True)
    mp = month_pillar(yp.stem.index, jie_position(month_term))
    dp = day_pillar(effective)
    hp = hour_pillar(dp.stem.index, moment.hour) if has_time else Pillar.unknown("hour")

    return FourPillars(year=yp, month=mp, day=dp, hour=hp, month_term=month_term)


# ============================================================
# TEN GODS (十神) RELATIONSHIP MAPPING
# ============================================================

# The Ten Gods describe the relationship between any stem and the Day Master.
# They are determined by element relationship + polarity match.

TEN_GODS = {
    # (relationship, same_polarity): god_name
    ("same", True): "比肩",
    ("same", False): "劫财",
    ("produces_me", True): "枭神",
    ("produces_me", False): "正印",
    ("i_produce", True): "食神",
    ("i_produce", False): "伤官",
    ("i_control", True): "偏财",
    ("i_control", False): "正财",
    ("controls_me", True): "七杀",
    ("controls_me", False): "正官",
}

DAY_MASTER_LABEL = "日主"

# Production cycle: Wood → Fire → Earth → Metal → Water → Wood
PRODUCTION_CYCLE = {
    Element.WOOD: Element.FIRE,
    Element.FIRE: Element.EARTH,
    Element.EARTH: Element.METAL,
    Element.METAL: Element.WATER,
    Element.WATER: Element.WOOD,
}

# Control cycle: Wood → Earth → Water → Fire → Metal → Wood
CONTROL_CYCLE = {
    Element.WOOD: Element.EARTH,
    Element.EARTH: Element.WATER,
    Element.WATER: Element.FIRE,
    Element.FIRE: Element.METAL,
    Element.METAL: Element.WOOD,
}


def element_relationship(day_master_element: Element, other_element: Element) -> str:
    """Determine the elemental relationship from DM's perspective."""
    if day_master_element == other_element:
        return "same"
    elif PRODUCTION_CYCLE[other_element] == day_master_element:
        return "produces_me"
    elif PRODUCTION_CYCLE[day_master_element] == other_element:
        return "i_produce"
    elif CONTROL_CYCLE[day_master_element] == other_element:
        return "i_control"
    elif CONTROL_CYCLE[other_element] == day_master_element:
        return "controls_me"
    else:
        raise ValueError(f"No valid relationship between {day_master_element} and {other_element}")


def ten_god(day_master: HeavenlyStem, other: HeavenlyStem) -> str:
    """Ten God name of another stem relative to the Day Master."""
    relationship = element_relationship(day_master.element, other.element)
    same_polarity = (day_master.polarity == other.polarity)
    return TEN_GODS[(relationship, same_polarity)]


def map_ten_gods(day_master: HeavenlyStem, pillars) -> list[dict]:
    """
    Map Ten Gods for all visible stems in the chart.
    Also maps hidden stems within each branch. Unknown pillars
    are listed with the UNKNOWN sentinel.
    """
    results = []
    for pillar in pillars:
        if not pillar.is_known:
            results.append({
                "position": pillar.position,
                "stem": UNKNOWN,
                "ten_god": UNKNOWN,
                "branch": UNKNOWN,
                "hidden_stem_gods": [],
            })
            continue

        # The day stem itself is the Day Master
        if pillar.position == "day":
            god = DAY_MASTER_LABEL
        else:
            god = ten_god(day_master, pillar.stem)

        hidden_gods = []
        for hidden in pillar.branch.hidden_stems:
            hidden_stem = STEM_BY_CHINESE[hidden]
            hidden_gods.append({
                "stem": hidden,
                "element": hidden_stem.element.value,
                "polarity": hidden_stem.polarity.value,
                "ten_god": ten_god(day_master, hidden_stem),
            })

        results.append({
            "position": pillar.position,
            "stem": pillar.stem.chinese,
            "ten_god": god,
            "branch": pillar.branch.chinese,
            "hidden_stem_gods": hidden_gods,
        })

    return results


# ============================================================
# LUCK PILLAR COMPUTATION
# ============================================================

def compute_luck_pillars(year_stem_index: int, month_stem_index: int,
                         month_branch_index: int, gender: str,
                         birth_moment: datetime, num_pillars: int = 8) -> list[dict]:
    """
    Compute Luck Pillars (大运 Da Yun).

    Direction of count depends on gender + year stem polarity:
    - Yang stem year + Male OR Yin stem year + Female → count FORWARD
    - Yang stem year + Female OR Yin stem year + Male → count BACKWARD

    Starting age is the distance from birth to the next/previous Jie
    divided by 3 (3 days ≈ 1 year).
    """
    if gender not in ("male", "female"):
        raise ValueError(f"Unknown gender: {gender!r}")

    year_yang = (year_stem_index % 2 == 0)  # Even index = Yang
    forward = (year_yang and gender == "male") or (not year_yang and gender == "female")

    nearest_jie = find_nearest_jie(birth_moment, forward=forward)
    days_to_jie = abs((nearest_jie.instant - birth_moment).total_seconds()) / 86400
    start_age = round(days_to_jie / 3)

    pillars = []
    for i in range(num_pillars):
        step = i + 1 if forward else -(i + 1)
        stem = HEAVENLY_STEMS[(month_stem_index + step) % 10]
        branch = EARTHLY_BRANCHES[(month_branch_index + step) % 12]

        age_start = start_age + (i * 10)
        pillars.append({
            "number": i + 1,
            "stem": stem.chinese,
            "branch": branch.chinese,
            "combined": f"{stem.chinese}{branch.chinese}",
            "age_start": age_start,
            "age_end": age_start + 9,
            "year": birth_moment.year + age_start,
        })

    return pillars


# ============================================================
# FULL CHART COMPUTATION
# ============================================================

def compute_chart(moment: datetime, gender: str, longitude: Optional[float] = None,
                  has_time: bool = True) -> dict:
    """
    Compute a full BaZi chart.

    Args:
        moment: birth clock time
        gender: "male" or "female"
        longitude: birth longitude; when given, true solar time is used
        has_time: whether a birth time was supplied

    Returns:
        Chart dict with pillars, day master, ten gods, governing
        solar term, luck pillars and the true solar time used.
    """
    moment = true_solar_time(to_civil_time(moment), longitude)
    pillars = compute_four_pillars(moment, has_time=has_time)
    yp, mp, dp = pillars.year, pillars.month, pillars.day
    day_master = dp.stem

    luck_pillars = compute_luck_pillars(
        yp.stem.index, mp.stem.index, mp.branch.index, gender, moment
    )

    return {
        "day_master": {
            "stem": day_master.chinese,
            "pinyin": day_master.pinyin,
            "element": day_master.element.value,
            "polarity": day_master.polarity.value,
            "description": str(day_master),
        },
        "pillars": pillars.to_dict(),
        "ten_gods": map_ten_gods(day_master, pillars),
        "solar_term": governing_term(moment).name,
        "luck_pillars": luck_pillars,
        "start_age": luck_pillars[0]["age_start"],
        "true_solar_time": moment.isoformat(),
    }
