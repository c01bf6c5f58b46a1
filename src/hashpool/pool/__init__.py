"""Bounded pool of concurrent hashing executors."""

from .executor import ExecutorState, hash_payload, run_executor
from .worker_pool import ExecutorFault, PoolTerminatedError, TaskError, WorkerPool

__all__ = [
    "ExecutorFault",
    "ExecutorState",
    "PoolTerminatedError",
    "TaskError",
    "WorkerPool",
    "hash_payload",
    "run_executor",
]
