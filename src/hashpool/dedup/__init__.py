"""Perceptual hashing and near-duplicate grouping."""

from .model import DetectionProgress, DetectionResult, DuplicateGroup, FileRecord
from .hash import HashComputationError, HashResult, compute_hash, is_valid_hash
from .distance import (
    DEFAULT_THRESHOLD,
    SimilarityMatch,
    are_similar,
    hamming_distance,
    order_by_similarity,
    similarity,
)
from .cluster import detect_duplicates_by_hash, group_by_representative

__all__ = [
    "DEFAULT_THRESHOLD",
    "DetectionProgress",
    "DetectionResult",
    "DuplicateGroup",
    "FileRecord",
    "HashComputationError",
    "HashResult",
    "SimilarityMatch",
    "are_similar",
    "compute_hash",
    "detect_duplicates_by_hash",
    "group_by_representative",
    "hamming_distance",
    "is_valid_hash",
    "order_by_similarity",
    "similarity",
]
