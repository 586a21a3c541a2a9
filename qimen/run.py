"""
CLI wrapper for generate_reading_context().

Usage:
    python3 -m qimen.run --date YYYY-MM-DD [--time HH:MM] \
        [--longitude LON | --place PLACE] [--type SHI_JU|MING_JU] \
        [--direction DIR] [--gender GENDER] [--question TEXT] [--verbose]
"""

import argparse
import json
import logging

from qimen.board import PREDICTION_TYPES
from qimen.generate_context import generate_reading_context


def main(argv=None):
    parser = argparse.ArgumentParser(description="Compute a Qi Men Dun Jia board.")
    parser.add_argument("--date", required=True)
    parser.add_argument("--time", default=None)
    location = parser.add_mutually_exclusive_group()
    location.add_argument("--longitude", type=float, default=None)
    location.add_argument("--place", default=None)
    parser.add_argument("--type", dest="prediction_type", default="SHI_JU",
                        choices=PREDICTION_TYPES)
    parser.add_argument("--direction", default=None)
    parser.add_argument("--gender", default=None, choices=["male", "female"])
    parser.add_argument("--question", default=None)
    parser.add_argument("--verbose", action="store_true")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    try:
        result = generate_reading_context(
            args.date,
            args.time,
            longitude=args.longitude,
            place=args.place,
            prediction_type=args.prediction_type,
            direction=args.direction,
            gender=args.gender,
            question=args.question,
        )
    except ValueError as exc:
        parser.error(str(exc))

    print(json.dumps(result, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
