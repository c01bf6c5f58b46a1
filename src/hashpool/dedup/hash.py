"""Perceptual hash computation for image deduplication."""

import io
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import imagehash
import numpy as np
from PIL import Image

from ..logging import get_logger

logger = get_logger(__name__)

# 16x16 DCT bits -> 256-bit hash, 64 hex characters
HASH_SIZE = 16
HASH_BITS = HASH_SIZE * HASH_SIZE
HASH_HEX_LENGTH = HASH_BITS // 4

_HEX_HASH = re.compile(r"[0-9a-fA-F]{%d}" % HASH_HEX_LENGTH)

ImageSource = Union[bytes, bytearray, str, Path, Image.Image]


@dataclass(frozen=True)
class HashResult:
    """A 256-bit perceptual hash with a 0-100 quality score."""
    hash: str
    quality: int


class HashComputationError(Exception):
    """Raised when hash computation fails."""


def is_valid_hash(value: object) -> bool:
    """Return True for a string of exactly 64 hexadecimal characters."""
    return isinstance(value, str) and _HEX_HASH.fullmatch(value) is not None


def compute_hash(source: ImageSource) -> HashResult:
    """
    Decode an image and compute its perceptual hash.

    Args:
        source: Encoded image bytes, a path to an image file, or an
            already opened PIL image

    Returns:
        HashResult with a lowercase 64 character hex hash

    Raises:
        HashComputationError: If the image cannot be decoded or hashed
    """
    try:
        if isinstance(source, Image.Image):
            return _hash_image(source)

        if isinstance(source, (bytes, bytearray)):
            opened = Image.open(io.BytesIO(source))
        else:
            opened = Image.open(Path(source))

        with opened as img:
            return _hash_image(img)

    except HashComputationError:
        raise
    except Exception as exc:
        raise HashComputationError(f"Failed to compute hash for {_describe(source)}: {exc}") from exc


def _hash_image(img: Image.Image) -> HashResult:
    # Convert to RGB if needed for consistent hashing
    if img.mode != 'RGB':
        img = img.convert('RGB')

    phash = imagehash.phash(img, hash_size=HASH_SIZE)
    quality = _quality(img)

    result = HashResult(hash=str(phash), quality=quality)
    logger.debug(f"Computed hash {result.hash} (quality {result.quality})")
    return result


def _quality(img: Image.Image) -> int:
    """
    Score how much usable detail an image carries, 0 (flat) to 100.

    Uses the mean absolute luminance gradient of a 64x64 downsample.
    Flat or near-flat images produce unreliable hashes and score low.
    """
    gray = np.asarray(img.convert('L').resize((64, 64), Image.Resampling.BILINEAR), dtype=np.float32)
    gradient = np.abs(np.diff(gray, axis=0)).sum() + np.abs(np.diff(gray, axis=1)).sum()
    mean_gradient = gradient / (64 * 63 * 2)
    score = int(mean_gradient / 90 * 100)
    return max(0, min(100, score))


def _describe(source: ImageSource) -> str:
    if isinstance(source, (bytes, bytearray)):
        return f"<{len(source)} bytes>"
    if isinstance(source, Image.Image):
        return f"<image {source.size[0]}x{source.size[1]}>"
    return str(source)
