"""Executor side of the worker pool message protocol.

Each executor runs :func:`run_executor` in its own process or thread and
talks to the pool only through two mailboxes:

inbound
    ``{"type": "init"}``, ``{"type": "hash", "data": {...}}``, ``{"type": "stop"}``
outbound
    ``{"type": "ready"}``, ``{"type": "hash-result", "hash", "name", "duration"}``,
    ``{"type": "error", "error", "name"}``

Every outbound message also carries the executor id and, for task
replies, the task sequence number.
"""

import time
from enum import Enum
from typing import Any, Callable, Dict

from ..dedup.hash import compute_hash

Message = Dict[str, Any]
Handler = Callable[[Any], str]


class ExecutorState(Enum):
    INITIALIZING = "initializing"
    IDLE = "idle"
    BUSY = "busy"
    ERRORED = "errored"


def hash_payload(payload: Any) -> str:
    """Default handler: perceptual hash of encoded image bytes or an image path."""
    return compute_hash(payload).hash


def run_executor(executor_id: int, handler: Handler, inbox: Any, outbox: Any) -> None:
    """
    Serve hash requests from ``inbox`` until a stop message arrives.

    One request is handled at a time. Handler exceptions are reported as
    ``error`` messages and the loop keeps serving.
    """
    while True:
        message = inbox.get()
        kind = message.get("type")

        if kind == "init":
            outbox.put({"type": "ready", "executor": executor_id})

        elif kind == "hash":
            data = message.get("data", {})
            name = data.get("name")
            seq = data.get("seq")
            started = time.perf_counter()
            try:
                value = handler(data["payload"])
            except Exception as exc:
                outbox.put({
                    "type": "error",
                    "executor": executor_id,
                    "seq": seq,
                    "error": str(exc) or type(exc).__name__,
                    "name": name,
                })
            else:
                outbox.put({
                    "type": "hash-result",
                    "executor": executor_id,
                    "seq": seq,
                    "hash": value,
                    "name": name,
                    "duration": time.perf_counter() - started,
                })

        elif kind == "stop":
            return

        else:
            outbox.put({
                "type": "error",
                "executor": executor_id,
                "seq": None,
                "error": f"Unknown message type: {kind}",
                "name": None,
            })
