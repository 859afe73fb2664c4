#!/usr/bin/env python3
import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from gharsewa.models import GeoPoint, RankedResult  # noqa: E402
from gharsewa.services.directory_store import DirectoryStoreError, build_directory_store  # noqa: E402
from gharsewa.services.proximity import ProximityRanker  # noqa: E402


def build_report(results: List[RankedResult]) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for position, item in enumerate(results, start=1):
        attributes = item.candidate.attributes
        rows.append(
            {
                "rank": position,
                "id": item.candidate.id,
                "name": item.candidate.name,
                "distance_km": round(item.distance_km, 2),
                "skills": attributes.get("skills", ""),
                "average_rating": attributes.get("average_rating"),
            }
        )
    return rows


def _print_table(rows: List[Dict[str, Any]]) -> None:
    if not rows:
        print("No providers with a known location.")
        return
    for row in rows:
        rating = row["average_rating"]
        rating_text = f"{rating:.1f}" if rating else "New"
        print(f"{row['rank']:>3}. {row['name']:<32} {row['distance_km']:>8.2f} km  {rating_text:>4}  {row['skills']}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Rank providers by distance from a point.")
    parser.add_argument("--lat", type=float, required=True)
    parser.add_argument("--lng", type=float, required=True)
    parser.add_argument("--limit", type=int, default=5)
    parser.add_argument("--role", default="provider", choices=["provider", "customer"])
    parser.add_argument("--exclude", default=None, help="User id to leave out of the ranking")
    parser.add_argument("--backend", default=None, help="sqlite or firebase (defaults to DIRECTORY_BACKEND)")
    parser.add_argument("--json", action="store_true", help="Emit JSON instead of a table")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING)
    ranker = ProximityRanker(store=build_directory_store(args.backend))
    try:
        results = ranker.nearby(
            GeoPoint(latitude=args.lat, longitude=args.lng),
            role_filter=args.role,
            limit=args.limit,
            exclude_id=args.exclude,
        )
    except DirectoryStoreError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    rows = build_report(results)
    if args.json:
        print(json.dumps(rows, indent=2))
    else:
        _print_table(rows)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
