"""
Calendar utilities for the board engine.
Handles solar term epochs, true solar time correction,
epoch day counting and governing-term lookups.
"""

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import NamedTuple, Optional
import swisseph as swe


# Clock time in China is kept on the 120°E meridian (UTC+8)
STANDARD_MERIDIAN = 120.0
CIVIL_TIMEZONE = timezone(timedelta(hours=8))


def true_solar_offset(longitude: float, standard_meridian: float = STANDARD_MERIDIAN) -> float:
    """
    Calculate the true solar time correction in minutes.

    Every degree away from the standard meridian shifts the sun by
    4 minutes.

    Args:
        longitude: observer longitude in degrees (east positive)
        standard_meridian: timezone standard meridian (120.0 for CST)

    Returns:
        Correction in minutes (negative = subtract from clock time)

    Example:
        Chengdu (104.06°E): correction = (104.06 - 120.0) * 4 = -63.76 min
    """
    return (longitude - standard_meridian) * 4.0


def true_solar_time(clock_time: datetime, longitude: Optional[float] = None,
                    standard_meridian: float = STANDARD_MERIDIAN) -> datetime:
    """
    Convert clock time to true solar time.

    When no longitude is given the clock time is returned as-is.
    """
    if longitude is None:
        return clock_time
    correction_minutes = true_solar_offset(longitude, standard_meridian)
    return clock_time + timedelta(minutes=correction_minutes)


def to_civil_time(moment: datetime) -> datetime:
    """Normalize to naive civil time on the standard meridian (UTC+8)."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(CIVIL_TIMEZONE).replace(tzinfo=None)


# Rough longitudes for places the input form offers by name
PLACE_LONGITUDES = (
    ("上海", 121.47),
    ("广州", 113.27),
    ("成都", 104.06),
    ("北京", 116.40),
    ("新疆", 87.61),
)


def longitude_for_place(place: Optional[str]) -> float:
    """Look up a longitude by place name, falling back to the standard meridian."""
    if place:
        for name, longitude in PLACE_LONGITUDES:
            if name in place:
                return longitude
    return STANDARD_MERIDIAN


# ============================================================
# SOLAR TERM COMPUTATION
# ============================================================
#
# The 24 solar terms come from a linear ephemeris: a fixed reference
# instant (Xiao Han 1900) plus a mean tropical year per elapsed year
# plus a per-term minute offset. Good to about a day either way.
#
# Even table indices are the 12 Jie (节) terms that open a month,
# odd ones are the Qi (气) mid-terms.

MINUTES_PER_YEAR = 525948.76
SOLAR_TERM_REFERENCE = datetime(1900, 1, 6, 2, 5)

SOLAR_TERM_NAMES = (
    "小寒", "大寒", "立春", "雨水", "惊蛰", "春分",
    "清明", "谷雨", "立夏", "小满", "芒种", "夏至",
    "小暑", "大暑", "立秋", "处暑", "白露", "秋分",
    "寒露", "霜降", "立冬", "小雪", "大雪", "冬至",
)

SOLAR_TERM_OFFSETS = (
    0, 21208, 42467, 63836, 85337, 107014,
    128867, 150921, 173149, 195551, 218072, 240693,
    263343, 285989, 308563, 331033, 353350, 375494,
    397447, 419210, 440795, 462224, 483532, 504758,
)

LI_CHUN = SOLAR_TERM_NAMES.index("立春")

# Jie terms counted from Li Chun: Li Chun (0) → Tiger month ... Xiao Han (11) → Ox month
JIE_ORDER = tuple(SOLAR_TERM_NAMES[(LI_CHUN + 2 * i) % 24] for i in range(12))


class SolarTerm(NamedTuple):
    name: str
    instant: datetime
    index: int  # 0-23 in the table above

    @property
    def is_jie(self) -> bool:
        return self.index % 2 == 0


@lru_cache(maxsize=64)
def compute_solar_terms(year: int) -> tuple:
    """
    Compute all 24 solar terms for a given Gregorian year.

    Returns a tuple of SolarTerm in table order (Xiao Han first,
    Dong Zhi last). Only the requested year is covered; use
    surrounding_solar_terms() when a lookup may cross a year edge.
    """
    base_minutes = MINUTES_PER_YEAR * (year - 1900)
    return tuple(
        SolarTerm(name, SOLAR_TERM_REFERENCE + timedelta(minutes=base_minutes + offset), i)
        for i, (name, offset) in enumerate(zip(SOLAR_TERM_NAMES, SOLAR_TERM_OFFSETS))
    )


@lru_cache(maxsize=64)
def surrounding_solar_terms(year: int) -> tuple:
    """Previous, current and next year's terms merged and sorted by instant."""
    terms = []
    for y in (year - 1, year, year + 1):
        terms.extend(compute_solar_terms(y))
    return tuple(sorted(terms, key=lambda t: t.instant))


def governing_term(moment: datetime, jie_only: bool = False) -> SolarTerm:
    """
    Find the latest solar term whose instant is at or before moment.

    Args:
        moment: naive civil datetime
        jie_only: only consider the 12 month-opening Jie terms

    Returns:
        The governing SolarTerm
    """
    found = None
    for term in surrounding_solar_terms(moment.year):
        if term.instant > moment:
            break
        if jie_only and not term.is_jie:
            continue
        found = term

    if found is None:
        raise ValueError(f"Could not find a governing solar term for {moment.isoformat()}")
    return found


def find_nearest_jie(moment: datetime, forward: bool) -> SolarTerm:
    """
    Find the nearest Jie term in the given direction from moment.

    Args:
        moment: naive civil datetime
        forward: True = next Jie after moment, False = latest Jie at or before it

    Returns:
        The nearest Jie SolarTerm
    """
    all_jie = [t for t in surrounding_solar_terms(moment.year) if t.is_jie]

    if forward:
        for jie in all_jie:
            if jie.instant > moment:
                return jie
    else:
        for jie in reversed(all_jie):
            if jie.instant <= moment:
                return jie

    raise ValueError(f"Could not find {'next' if forward else 'previous'} Jie from {moment.isoformat()}")


def jie_position(term: SolarTerm) -> int:
    """Position of a Jie term counted from Li Chun (0-11)."""
    if not term.is_jie:
        raise ValueError(f"{term.name} is not a Jie term")
    return ((term.index - LI_CHUN) % 24) // 2


# ============================================================
# DAY COUNTING
# ============================================================

EPOCH_JD = swe.julday(1970, 1, 1, 0)


def days_since_epoch(date: datetime) -> int:
    """
    Whole days between the date's midnight and 1970-01-01 midnight.

    Julian Day numbers at 0h all end in .5, so the difference is an
    exact integer.
    """
    jd = swe.julday(date.year, date.month, date.day, 0)
    return int(round(jd - EPOCH_JD))
