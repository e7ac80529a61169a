"""
Dataset layout in the ``datasets`` bucket.

Main datasets are per track and round::

    {track}/round{N}/{prefix}_{track}_{1|2}.csv

Phase 2 ("final") datasets are shared by every track of a pool::

    Phase 2/{L|S}/{prefix}_final_{L|S}_{1|2}.csv
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from datasprint.storage import StorageClient, StorageError

logger = logging.getLogger(__name__)

DATASET_SLOTS = (1, 2)
PHASE2_FOLDER = "Phase 2"
DEFAULT_TRACKS = ("L1", "L2", "S1", "S2")
DEFAULT_ROUNDS = (1, 2, 3, 4)


def track_pool(track: str) -> str:
    """Collapse a track id to the shared pool: ``L*`` -> ``L``, anything else -> ``S``."""
    return "L" if track.startswith("L") else "S"


def main_dataset_paths(track: str, round_number: int, prefix: str) -> list[str]:
    return [
        f"{track}/round{round_number}/{prefix}_{track}_{slot}.csv"
        for slot in DATASET_SLOTS
    ]


def final_dataset_paths(track: str, prefix: str) -> list[str]:
    pool = track_pool(track)
    return [
        f"{PHASE2_FOLDER}/{pool}/{prefix}_final_{pool}_{slot}.csv"
        for slot in DATASET_SLOTS
    ]


@dataclass
class DatasetAudit:
    main_found: list[str] = field(default_factory=list)
    final_found: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing


def _audit_folder(
    storage: StorageClient, folder: str, expected: list[str], label: str
) -> tuple[list[str] | None, list[str]]:
    try:
        names = storage.list_prefix(folder)
    except StorageError as exc:
        return None, [f"{label} - ERROR: {exc}"]
    if not names:
        return None, [f"{label} - EMPTY FOLDER"]
    absent = [name for name in expected if name not in names]
    if absent:
        return None, [f"{label} - Missing: {', '.join(absent)}"]
    return names, []


def audit_datasets(
    storage: StorageClient,
    tracks: Iterable[str] = DEFAULT_TRACKS,
    rounds: Iterable[int] = DEFAULT_ROUNDS,
) -> DatasetAudit:
    """
    Check that every track/round folder holds its two main datasets and each
    pool folder holds the two final datasets of every round. Prefixes are
    assumed to follow the ``round{N}`` convention.
    """
    audit = DatasetAudit()
    rounds = list(rounds)
    tracks = list(tracks)

    for track in tracks:
        for round_number in rounds:
            prefix = f"round{round_number}"
            folder = f"{track}/round{round_number}/"
            expected = [p.rsplit("/", 1)[1] for p in main_dataset_paths(track, round_number, prefix)]
            names, problems = _audit_folder(storage, folder, expected, folder)
            audit.missing.extend(problems)
            if names is not None:
                audit.main_found.append(f"{folder}: {', '.join(names)}")

    pools = sorted({track_pool(track) for track in tracks})
    for pool in pools:
        folder = f"{PHASE2_FOLDER}/{pool}/"
        for round_number in rounds:
            prefix = f"round{round_number}"
            label = f"{folder} (Round {round_number})"
            expected = [p.rsplit("/", 1)[1] for p in final_dataset_paths(pool, prefix)]
            names, problems = _audit_folder(storage, folder, expected, label)
            audit.missing.extend(problems)
            if names is not None:
                round_files = [n for n in names if n.startswith(prefix + "_")]
                audit.final_found.append(f"{label}: {', '.join(round_files)}")

    logger.info(
        "Dataset audit: %d main folders ok, %d final rounds ok, %d problems",
        len(audit.main_found),
        len(audit.final_found),
        len(audit.missing),
    )
    return audit
