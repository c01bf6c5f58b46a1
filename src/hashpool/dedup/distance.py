"""Distance metrics for perceptual hash comparison."""

from dataclasses import dataclass
from typing import List, Optional, Sequence

import imagehash

from .hash import HASH_BITS, HASH_HEX_LENGTH, is_valid_hash

DEFAULT_THRESHOLD = 31


@dataclass(frozen=True)
class SimilarityMatch:
    """One hash ranked against a reference hash."""
    hash: str
    distance: int
    similarity: float
    index: Optional[int] = None


def hamming_distance(a: str, b: str) -> int:
    """
    Calculate Hamming distance between two hex-encoded perceptual hashes.

    Args:
        a: First hash (64 hex characters)
        b: Second hash (64 hex characters)

    Returns:
        Number of differing bits, 0 (identical) to 256

    Raises:
        ValueError: If either hash is not 64 hexadecimal characters
    """
    for value in (a, b):
        if not is_valid_hash(value):
            raise ValueError(f"Hashes must be exactly {HASH_HEX_LENGTH} hexadecimal characters, got {value!r}")

    return int(imagehash.hex_to_hash(a.lower()) - imagehash.hex_to_hash(b.lower()))


def similarity(a: str, b: str) -> float:
    """Similarity percentage: 100 for identical hashes, 0 for fully inverted ones."""
    return (HASH_BITS - hamming_distance(a, b)) / HASH_BITS * 100


def are_similar(a: str, b: str, threshold: int = DEFAULT_THRESHOLD) -> bool:
    return hamming_distance(a, b) <= threshold


def order_by_similarity(
    reference: str,
    hashes: Sequence[str],
    include_index: bool = False,
) -> List[SimilarityMatch]:
    """
    Rank hashes by distance to a reference hash, most similar first.

    Ties keep their input order.
    """
    matches = []
    for index, candidate in enumerate(hashes):
        distance = hamming_distance(reference, candidate)
        matches.append(SimilarityMatch(
            hash=candidate,
            distance=distance,
            similarity=(HASH_BITS - distance) / HASH_BITS * 100,
            index=index if include_index else None,
        ))

    matches.sort(key=lambda match: match.distance)
    return matches
