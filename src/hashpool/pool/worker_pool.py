"""Fixed-size pool of hashing executors with a FIFO task queue."""

from __future__ import annotations

import asyncio
import itertools
import multiprocessing
import os
import queue
import threading
import time
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Union

from .executor import ExecutorState, Handler, Message, hash_payload, run_executor
from ..config import EXECUTOR_KINDS
from ..logging import get_logger

logger = get_logger(__name__)


class PoolTerminatedError(RuntimeError):
    """Raised when work is submitted to a terminated pool."""


class TaskError(Exception):
    """An executor reported a failure while processing one task."""

    def __init__(self, message: str, name: Optional[str] = None) -> None:
        super().__init__(message)
        self.name = name


class ExecutorFault(Exception):
    """An executor died; its in-flight task cannot complete."""


@dataclass
class _Task:
    seq: int
    payload: Any
    name: str
    future: Future


@dataclass
class _ExecutorHandle:
    id: int
    inbox: Any
    worker: Union[multiprocessing.Process, threading.Thread]
    state: ExecutorState = ExecutorState.INITIALIZING
    current_task: Optional[_Task] = field(default=None, repr=False)


class WorkerPool:
    """
    Dispatch payloads to ``size`` concurrent executors.

    ``process()`` hands a payload to an idle executor or queues it; each
    call gets its own future, settled when that executor replies. A single
    coordinator thread reads every executor reply, settles futures and
    feeds freed executors from the queue. Queue and executor state are
    guarded by one lock since ``process()`` runs on caller threads.

    Args:
        size: Number of executors (default: CPU count, or 4)
        handler: Top-level callable run by executors on each payload;
            must be picklable for process executors
        executor_kind: "process" for separate processes, "thread" for
            threads in this process
        poll_interval: Seconds between executor liveness checks
    """

    def __init__(
        self,
        size: Optional[int] = None,
        handler: Handler = hash_payload,
        executor_kind: str = "process",
        poll_interval: float = 0.1,
    ) -> None:
        if size is None:
            size = os.cpu_count() or 4
        if not isinstance(size, int) or size < 1:
            raise ValueError(f"Pool size must be a positive integer, got {size!r}")
        if executor_kind not in EXECUTOR_KINDS:
            raise ValueError(f"executor_kind must be one of {EXECUTOR_KINDS}, got {executor_kind!r}")

        self._size = size
        self._handler = handler
        self._kind = executor_kind
        self._poll_interval = poll_interval

        self._lock = threading.Lock()
        self._queue: Deque[_Task] = deque()
        self._executors: Dict[int, _ExecutorHandle] = {}
        self._seq = itertools.count(1)
        self._terminated = False
        self._ready = threading.Event()
        self._stopping = threading.Event()

        if executor_kind == "process":
            self._mp = multiprocessing.get_context()
            self._outbox = self._mp.Queue()
        else:
            self._mp = None
            self._outbox = queue.Queue()

        for executor_id in range(size):
            self._executors[executor_id] = self._spawn(executor_id)

        self._coordinator = threading.Thread(
            target=self._coordinate, name="hashpool-coordinator", daemon=True
        )
        self._coordinator.start()
        logger.info(f"Started worker pool with {size} {executor_kind} executors")

    @property
    def size(self) -> int:
        return self._size

    @property
    def executor_kind(self) -> str:
        return self._kind

    @property
    def pending(self) -> int:
        """Number of queued tasks not yet handed to an executor."""
        with self._lock:
            return len(self._queue)

    @property
    def terminated(self) -> bool:
        return self._terminated

    def states(self) -> List[ExecutorState]:
        with self._lock:
            return [handle.state for handle in self._executors.values()]

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until every executor has left the initializing state."""
        return self._ready.wait(timeout)

    def process(self, payload: Any, name: Optional[str] = None) -> Future:
        """
        Submit one payload.

        Returns:
            Future resolving to the handler's result, or failing with
            TaskError / ExecutorFault

        Raises:
            PoolTerminatedError: If the pool has been terminated
        """
        future: Future = Future()
        with self._lock:
            if self._terminated:
                raise PoolTerminatedError("WorkerPool is terminated")

            seq = next(self._seq)
            task = _Task(seq=seq, payload=payload, name=name or f"task-{seq}", future=future)

            idle = next(
                (handle for handle in self._executors.values() if handle.state is ExecutorState.IDLE),
                None,
            )
            if idle is not None:
                future.set_running_or_notify_cancel()
                self._send(idle, task)
            else:
                self._queue.append(task)
                if all(handle.state is ExecutorState.ERRORED for handle in self._executors.values()):
                    logger.warning(f"Queued {task.name} but every executor has failed")
        return future

    async def process_async(self, payload: Any, name: Optional[str] = None) -> Any:
        """Submit one payload and await its result from asyncio code."""
        return await asyncio.wrap_future(self.process(payload, name))

    def terminate(self, timeout: float = 5.0) -> None:
        """
        Stop every executor and drop the queue.

        Futures of queued or in-flight tasks are left unsettled.
        """
        with self._lock:
            if self._terminated:
                return
            self._terminated = True
            executors = list(self._executors.values())
            dropped = len(self._queue) + sum(1 for handle in executors if handle.current_task is not None)
            self._executors.clear()
            self._queue.clear()

        for handle in executors:
            handle.inbox.put({"type": "stop"})

        self._stopping.set()
        # Done-callbacks run on the coordinator, which exits on its next poll
        if threading.current_thread() is not self._coordinator:
            self._coordinator.join(timeout)

        for handle in executors:
            handle.worker.join(timeout)
            if self._mp is not None:
                if handle.worker.is_alive():
                    handle.worker.terminate()
                    handle.worker.join(timeout)
                handle.inbox.cancel_join_thread()
                handle.inbox.close()

        if self._mp is not None:
            self._outbox.cancel_join_thread()
            self._outbox.close()

        if dropped:
            logger.warning(f"Terminated worker pool with {dropped} unfinished tasks")
        logger.info("Worker pool terminated")

    def __enter__(self) -> WorkerPool:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.terminate()

    def _spawn(self, executor_id: int) -> _ExecutorHandle:
        if self._mp is not None:
            inbox = self._mp.Queue()
            worker = self._mp.Process(
                target=run_executor,
                args=(executor_id, self._handler, inbox, self._outbox),
                name=f"hashpool-executor-{executor_id}",
                daemon=True,
            )
        else:
            inbox = queue.Queue()
            worker = threading.Thread(
                target=run_executor,
                args=(executor_id, self._handler, inbox, self._outbox),
                name=f"hashpool-executor-{executor_id}",
                daemon=True,
            )

        worker.start()
        inbox.put({"type": "init"})
        return _ExecutorHandle(id=executor_id, inbox=inbox, worker=worker)

    def _send(self, handle: _ExecutorHandle, task: _Task) -> None:
        handle.state = ExecutorState.BUSY
        handle.current_task = task
        handle.inbox.put({
            "type": "hash",
            "data": {"payload": task.payload, "name": task.name, "seq": task.seq},
        })
        logger.debug(f"Dispatched {task.name} to executor {handle.id}")

    def _dispatch_next(self, handle: _ExecutorHandle) -> None:
        # Caller holds the lock
        while self._queue and handle.state is ExecutorState.IDLE:
            task = self._queue.popleft()
            if task.future.set_running_or_notify_cancel():
                self._send(handle, task)

    def _update_ready(self) -> None:
        if all(handle.state is not ExecutorState.INITIALIZING for handle in self._executors.values()):
            self._ready.set()

    def _coordinate(self) -> None:
        next_check = time.monotonic() + self._poll_interval
        while not self._stopping.is_set():
            try:
                message = self._outbox.get(timeout=max(0.0, next_check - time.monotonic()))
            except queue.Empty:
                message = None
            except (EOFError, OSError, ValueError):
                # Outbox closed underneath us during terminate
                return

            if message is not None:
                self._handle(message)
            if time.monotonic() >= next_check:
                self._check_liveness()
                next_check = time.monotonic() + self._poll_interval

    def _handle(self, message: Message) -> None:
        kind = message.get("type")
        settle = None

        with self._lock:
            handle = self._executors.get(message.get("executor"))
            if handle is None:
                return

            if kind == "ready":
                if handle.state is ExecutorState.INITIALIZING:
                    handle.state = ExecutorState.IDLE
                    logger.debug(f"Executor {handle.id} ready")
                    self._dispatch_next(handle)
                    self._update_ready()
                return

            if kind not in ("hash-result", "error"):
                logger.warning(f"Executor {handle.id} sent unknown message type {kind!r}")
                return

            task = handle.current_task
            if task is None or task.seq != message.get("seq"):
                if kind == "error" and handle.state is ExecutorState.INITIALIZING:
                    handle.state = ExecutorState.ERRORED
                    self._update_ready()
                    logger.error(f"Executor {handle.id} failed to initialize: {message.get('error')}")
                else:
                    logger.warning(f"Executor {handle.id} sent {kind} with no matching task: {message}")
                return

            handle.current_task = None
            handle.state = ExecutorState.IDLE
            self._dispatch_next(handle)
            settle = (task, kind, message)

        # Settle outside the lock so done-callbacks may submit more work
        task, kind, message = settle
        if kind == "hash-result":
            logger.debug(f"Task {task.name} finished in {message.get('duration', 0.0):.3f}s")
            task.future.set_result(message["hash"])
        else:
            logger.debug(f"Task {task.name} failed: {message.get('error')}")
            task.future.set_exception(TaskError(str(message.get("error")), name=task.name))

    def _check_liveness(self) -> None:
        faulted = []
        with self._lock:
            for handle in self._executors.values():
                if handle.state is ExecutorState.ERRORED or handle.worker.is_alive():
                    continue
                faulted.append((handle.id, handle.current_task, getattr(handle.worker, "exitcode", None)))
                handle.state = ExecutorState.ERRORED
                handle.current_task = None
            if faulted:
                self._update_ready()

        for executor_id, task, exitcode in faulted:
            # Failed executors are left in place and never receive work again
            logger.error(f"Executor {executor_id} died (exit code {exitcode}); leaving it out of rotation")
            if task is not None:
                task.future.set_exception(
                    ExecutorFault(f"Executor {executor_id} died while processing {task.name}")
                )
