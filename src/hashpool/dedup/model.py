"""Records, groups and progress reports for duplicate detection."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

Content = Union[bytes, str, Path]


@dataclass(frozen=True)
class FileRecord:
    """
    A file taking part in duplicate detection.

    ``content`` is the raw encoded image or a path to it. ``hash`` and
    ``hash_error`` are filled in by detection and never both set.
    """
    id: str
    name: str
    content: Optional[Content] = None
    media_type: str = "image/png"
    hash: Optional[str] = None
    hash_error: Optional[str] = None
    group_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.hash is not None and self.hash_error is not None:
            raise ValueError(f"Record {self.id} cannot carry both a hash and a hash error")

    @property
    def is_image(self) -> bool:
        return self.media_type.startswith("image/")

    @property
    def has_content(self) -> bool:
        return self.content is not None and self.content != b"" and self.content != ""


@dataclass(frozen=True)
class DuplicateGroup:
    """Near-duplicate records; the first record is the representative."""
    group_id: str
    records: Tuple[FileRecord, ...]

    def __post_init__(self) -> None:
        if len(self.records) < 2:
            raise ValueError(f"Duplicate group {self.group_id} needs at least 2 records")

    @property
    def representative(self) -> FileRecord:
        return self.records[0]

    @property
    def record_ids(self) -> List[str]:
        return [record.id for record in self.records]

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class DetectionProgress:
    total_files: int
    processed_files: int
    current_file: str
    duplicates_found: int


ProgressCallback = Callable[[DetectionProgress], None]


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of one detection run."""
    groups: List[DuplicateGroup] = field(default_factory=list)
    unique: List[FileRecord] = field(default_factory=list)
    failed: List[FileRecord] = field(default_factory=list)

    @property
    def duplicate_count(self) -> int:
        return sum(len(group) for group in self.groups)
