import os
from dataclasses import dataclass, field


EXECUTOR_KINDS = ("process", "thread")


def _default_pool_size() -> int:
    return os.cpu_count() or 4


@dataclass
class Settings:
    pool_size: int = field(default_factory=_default_pool_size)
    executor_kind: str = "process"
    threshold: int = 31

    def __post_init__(self) -> None:
        if self.pool_size < 1:
            raise ValueError(f"pool_size must be positive, got {self.pool_size}")
        if self.executor_kind not in EXECUTOR_KINDS:
            raise ValueError(
                f"executor_kind must be one of {EXECUTOR_KINDS}, got {self.executor_kind!r}"
            )
        if not 0 <= self.threshold <= 256:
            raise ValueError(f"threshold must be within 0..256, got {self.threshold}")
