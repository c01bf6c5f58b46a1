"""Clustering logic for grouping duplicate images."""

import asyncio
import inspect
from dataclasses import replace
from typing import Any, Callable, Iterator, List, Optional, Sequence

from .distance import DEFAULT_THRESHOLD, hamming_distance
from .hash import HashComputationError, compute_hash, is_valid_hash
from .model import (
    Content,
    DetectionProgress,
    DetectionResult,
    DuplicateGroup,
    FileRecord,
    ProgressCallback,
)
from ..logging import get_logger

logger = get_logger(__name__)

Hasher = Callable[[Content], Any]
Distance = Callable[[str, str], int]


def _default_hasher(content: Content) -> str:
    return compute_hash(content).hash


async def _run_hasher(hash_fn: Hasher, content: Content) -> str:
    """Run a hasher and return its output as a normalized hex hash."""
    if inspect.iscoroutinefunction(hash_fn):
        value = await hash_fn(content)
    else:
        value = await asyncio.to_thread(hash_fn, content)
        if inspect.isawaitable(value):
            value = await value

    # Accept HashResult-like objects as well as bare hex strings
    value = getattr(value, "hash", value)
    if not is_valid_hash(value):
        raise HashComputationError(f"Hasher returned an invalid hash: {value!r}")
    return value.lower()


def group_by_representative(
    records: Sequence[FileRecord],
    threshold: int = DEFAULT_THRESHOLD,
    distance: Distance = hamming_distance,
) -> Iterator[DuplicateGroup]:
    """
    Group hashed records around a single representative each.

    Records are scanned in order. The first unassigned record with a hash
    opens a group and every later unassigned record within ``threshold``
    of that representative joins it. Members are never compared with each
    other, so two members of one group may be further apart than
    ``threshold``. Groups of one are dropped.

    Args:
        records: Records in scan order; records without a hash are skipped
        threshold: Maximum distance to the representative
        distance: Hash distance function

    Yields:
        DuplicateGroup objects in the order they are finalized
    """
    assigned = [False] * len(records)
    group_counter = 1

    for i, representative in enumerate(records):
        if assigned[i] or not representative.hash:
            continue

        group_id = f"dup_{group_counter:03d}"
        members = [i]
        assigned[i] = True

        for j in range(i + 1, len(records)):
            candidate = records[j]
            if assigned[j] or not candidate.hash:
                continue

            d = distance(candidate.hash, representative.hash)
            if d <= threshold:
                members.append(j)
                assigned[j] = True
                logger.debug(f"Grouped {candidate.name} with {representative.name} (distance: {d})")

        if len(members) < 2:
            continue

        group = DuplicateGroup(
            group_id=group_id,
            records=tuple(replace(records[m], group_id=group_id) for m in members),
        )
        group_counter += 1
        logger.info(f"Created duplicate group {group_id} with {len(group)} files, representative: {representative.name}")
        yield group


async def detect_duplicates_by_hash(
    files: Sequence[FileRecord],
    threshold: int = DEFAULT_THRESHOLD,
    on_progress: Optional[ProgressCallback] = None,
    *,
    hasher: Optional[Hasher] = None,
    distance: Distance = hamming_distance,
) -> DetectionResult:
    """
    Hash every eligible file concurrently and group near-duplicates.

    Args:
        files: Candidate records; only image records with content are used
        threshold: Maximum distance to a group's representative (0-256)
        on_progress: Called once per hashed file, once per group and once
            at the end
        hasher: Maps content to a hex hash or to an object with a ``hash``
            attribute. A coroutine function is awaited directly, any other
            callable runs in a worker thread and an awaitable it returns is
            awaited. Output that is not a 64 character hex hash is recorded
            as that file's error. Defaults to the built-in perceptual hash.
        distance: Hash distance function

    Returns:
        DetectionResult with groups, unique records and failed records
    """
    eligible = [record for record in files if record.is_image and record.has_content]

    if len(eligible) < 2:
        logger.info("Less than 2 image files, no duplicate detection needed")
        return DetectionResult()

    hash_fn = hasher or _default_hasher
    total = len(eligible)
    processed = 0
    duplicates_found = 0

    def report(current_file: str) -> None:
        if on_progress is not None:
            on_progress(DetectionProgress(
                total_files=total,
                processed_files=processed,
                current_file=current_file,
                duplicates_found=duplicates_found,
            ))

    async def hash_record(record: FileRecord) -> FileRecord:
        nonlocal processed
        try:
            value = await _run_hasher(hash_fn, record.content)
            updated = replace(record, hash=value, hash_error=None)
        except Exception as exc:
            logger.warning(f"Failed to compute hash for {record.name}: {exc}")
            updated = replace(record, hash=None, hash_error=str(exc) or type(exc).__name__)

        processed += 1
        report(record.name)
        return updated

    hashed: List[FileRecord] = await asyncio.gather(*(hash_record(record) for record in eligible))

    groups = []
    grouped_ids = set()
    for group in group_by_representative(hashed, threshold, distance):
        groups.append(group)
        grouped_ids.update(group.record_ids)
        duplicates_found += len(group)
        report("")

    report("")

    unique = [record for record in hashed if record.hash and record.id not in grouped_ids]
    failed = [record for record in hashed if record.hash_error is not None]

    logger.info(
        f"Found {len(groups)} duplicate groups covering {duplicates_found} files "
        f"({len(unique)} unique, {len(failed)} failed)"
    )
    return DetectionResult(groups=groups, unique=unique, failed=failed)
