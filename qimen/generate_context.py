"""
Generate reading context for a board request.

This is the main entry point that orchestrates all computation
and produces a single JSON payload for the LLM interpretation layer.
It builds the payload only; sending it anywhere is the caller's job.
"""

import json
import logging
from datetime import datetime, time
from typing import Optional

from qimen.astro_calendar import longitude_for_place
from qimen.bazi import compute_chart
from qimen.board import calculate_board

logger = logging.getLogger(__name__)

# Stand-in hour when only a date is known; never used for the hour pillar
DEFAULT_HOUR = 12

# Solar term lookups reach one year either side and true solar time can
# move a timestamp by up to 20 hours; keep both inside datetime range
MIN_YEAR = 3
MAX_YEAR = 9997

PREDICTION_LABELS = {
    "SHI_JU": "时事演算",
    "MING_JU": "命理推演",
}


def parse_timestamp(date_str: str, time_str: Optional[str] = None) -> tuple:
    """
    Parse a YYYY-MM-DD date and an optional HH:MM time.

    Returns:
        (datetime, has_time). Without a time the datetime sits at
        DEFAULT_HOUR and has_time is False.

    Raises:
        ValueError: on malformed or out-of-range input
    """
    try:
        date = datetime.strptime(date_str.strip(), "%Y-%m-%d")
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid date {date_str!r}, expected YYYY-MM-DD") from exc

    if not MIN_YEAR <= date.year <= MAX_YEAR:
        raise ValueError(f"Date {date_str!r} out of range, year must be {MIN_YEAR}-{MAX_YEAR}")

    if time_str is None or not time_str.strip():
        return datetime.combine(date.date(), time(DEFAULT_HOUR)), False

    try:
        clock = datetime.strptime(time_str.strip(), "%H:%M").time()
    except ValueError as exc:
        raise ValueError(f"Invalid time {time_str!r}, expected HH:MM") from exc

    return datetime.combine(date.date(), clock), True


def resolve_longitude(longitude: Optional[float] = None,
                      place: Optional[str] = None) -> Optional[float]:
    """An explicit longitude wins over a place name; neither means no correction."""
    if longitude is not None:
        if not -180.0 <= longitude <= 180.0:
            raise ValueError(f"Longitude {longitude} out of range, expected -180 to 180")
        return longitude
    if place:
        return longitude_for_place(place)
    return None


def generate_board_context(date_str: str, time_str: Optional[str] = None,
                           longitude: Optional[float] = None, place: Optional[str] = None,
                           prediction_type: str = "SHI_JU",
                           direction: Optional[str] = None) -> dict:
    """Parse the request inputs and derive the board as a dict."""
    moment, has_time = parse_timestamp(date_str, time_str)
    lng = resolve_longitude(longitude, place)

    board = calculate_board(moment, longitude=lng, has_time=has_time,
                            prediction_type=prediction_type, direction=direction)
    return board.to_dict()


def generate_chart_context(date_str: str, time_str: Optional[str], gender: str,
                           longitude: Optional[float] = None,
                           place: Optional[str] = None) -> dict:
    """Parse birth inputs and compute the BaZi chart as a dict."""
    moment, has_time = parse_timestamp(date_str, time_str)
    lng = resolve_longitude(longitude, place)
    return compute_chart(moment, gender, longitude=lng, has_time=has_time)


def build_system_prompt(board: dict) -> str:
    """System prompt carrying the board parameters for the model."""
    label = PREDICTION_LABELS.get(board["prediction_type"], board["prediction_type"])
    polarity = "阳" if board["is_yang"] else "阴"
    palaces = json.dumps(board["palaces"], ensure_ascii=False)

    return (
        "你是一位精通奇门遁甲的实战预测专家。\n"
        "【起局参数】：\n"
        f"- 局势：{label}\n"
        f"- 四柱：{board['year_pillar']} {board['month_pillar']} "
        f"{board['day_pillar']} {board['hour_pillar']}\n"
        f"- 局数：{polarity}遁{board['bureau']}局 ({board['solar_term']})\n"
        f"- 九宫数据：{palaces}\n"
        "\n【要求】：严禁 Markdown 符号。必须包含具体概率值。"
    )


def build_prediction_messages(board: dict, question: str) -> list[dict]:
    """
    Chat messages for a prediction request.

    This is what gets sent to the model: the board as system context
    and the user's question verbatim.
    """
    if not question or not question.strip():
        raise ValueError("A question is required to build a prediction request")

    logger.debug("Building prediction messages for %s board", board["prediction_type"])
    return [
        {"role": "system", "content": build_system_prompt(board)},
        {"role": "user", "content": question.strip()},
    ]


def generate_reading_context(date_str: str, time_str: Optional[str] = None,
                             longitude: Optional[float] = None, place: Optional[str] = None,
                             prediction_type: str = "SHI_JU",
                             direction: Optional[str] = None,
                             gender: Optional[str] = None,
                             question: Optional[str] = None) -> dict:
    """
    Generate the complete context payload for a reading.

    The chart is only included when a gender is known, since luck
    pillar direction depends on it.
    """
    board = generate_board_context(date_str, time_str, longitude=longitude, place=place,
                                   prediction_type=prediction_type, direction=direction)

    context = {
        "generated_at": datetime.now().isoformat(),
        "target_date": date_str,
        "target_time": time_str,
        "board": board,
    }

    if gender is not None:
        context["chart"] = generate_chart_context(date_str, time_str, gender,
                                                  longitude=longitude, place=place)

    if question:
        context["messages"] = build_prediction_messages(board, question)

    return context
