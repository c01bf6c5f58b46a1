"""Pooled perceptual hashing, cached hash lookups and near-duplicate grouping."""

from .cache import BoundedCache
from .config import Settings
from .dedup import (
    DetectionProgress,
    DetectionResult,
    DuplicateGroup,
    FileRecord,
    compute_hash,
    detect_duplicates_by_hash,
    hamming_distance,
)
from .lookup import InvalidHashError, LookupResult, create_hash_checker
from .pool import ExecutorFault, PoolTerminatedError, TaskError, WorkerPool

__version__ = "0.1.0"

__all__ = [
    "BoundedCache",
    "DetectionProgress",
    "DetectionResult",
    "DuplicateGroup",
    "ExecutorFault",
    "FileRecord",
    "InvalidHashError",
    "LookupResult",
    "PoolTerminatedError",
    "Settings",
    "TaskError",
    "WorkerPool",
    "compute_hash",
    "create_hash_checker",
    "detect_duplicates_by_hash",
    "hamming_distance",
]
