"""
Audit the datasets bucket against the layout the dashboard expects.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from datasprint.datasets import DEFAULT_ROUNDS, DEFAULT_TRACKS, audit_datasets
from datasprint.dependencies import get_dataset_storage

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Check dataset files in storage")
    parser.add_argument(
        "--tracks",
        nargs="+",
        default=list(DEFAULT_TRACKS),
        help="Track ids to check",
    )
    parser.add_argument(
        "--rounds",
        nargs="+",
        type=int,
        default=list(DEFAULT_ROUNDS),
        help="Round numbers to check",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
    )

    audit = audit_datasets(get_dataset_storage(), args.tracks, args.rounds)

    print("Main datasets:")
    for line in audit.main_found:
        print(f"  ok  {line}")
    print("Phase 2 datasets:")
    for line in audit.final_found:
        print(f"  ok  {line}")
    if audit.missing:
        print("Missing or errors:")
        for line in audit.missing:
            print(f"  !!  {line}")
        return 1
    print("All datasets found.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
