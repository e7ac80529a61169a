"""
Load teams, users and round content from a JSON file into the configured store.

Expected shape::

    {
      "teams": [{"team_name": "Alpha", "group": "L1",
                 "users": [{"username": "alpha", "password": "..."}]}],
      "admins": [{"username": "admin", "password": "..."}],
      "round_contents": [{"round": 1, "track": "L1", "title": "...",
                          "description": "...", "dataset_prefix": "round1",
                          "questions": [...]}],
      "current_round": 1
    }
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from datasprint.db import ROLE_ADMIN, DbClient, RoundContentRecord
from datasprint.dependencies import get_db_client
from datasprint.rounds import RoundControl

logger = logging.getLogger(__name__)


def seed(db: DbClient, payload: dict) -> dict:
    counts = {"teams": 0, "users": 0, "round_contents": 0}
    for team_spec in payload.get("teams", []):
        team = db.create_team(team_spec["team_name"], team_spec["group"])
        counts["teams"] += 1
        for user_spec in team_spec.get("users", []):
            db.create_user(user_spec["username"], user_spec["password"], team_id=team.team_id)
            counts["users"] += 1

    for admin_spec in payload.get("admins", []):
        db.create_user(admin_spec["username"], admin_spec["password"], role=ROLE_ADMIN)
        counts["users"] += 1

    for content in payload.get("round_contents", []):
        db.save_round_content(
            RoundContentRecord(
                round_id=int(content["round"]),
                track=content["track"],
                title=content["title"],
                description=content.get("description", ""),
                dataset_prefix=content.get("dataset_prefix") or f"round{content['round']}",
                questions=content.get("questions"),
            )
        )
        counts["round_contents"] += 1

    if payload.get("current_round"):
        RoundControl(db).initiate_round(int(payload["current_round"]))
    return counts


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed contest data")
    parser.add_argument("path", type=Path, help="JSON file to load")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
    )

    payload = json.loads(args.path.read_text(encoding="utf-8"))
    counts = seed(get_db_client(), payload)
    logger.info(
        "Seeded %d teams, %d users, %d round contents",
        counts["teams"],
        counts["users"],
        counts["round_contents"],
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
