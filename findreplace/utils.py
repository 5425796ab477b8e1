from __future__ import annotations

import asyncio
import hashlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def utc_now_epoch_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def text_sha256(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def write_text(path: Path, content: str) -> None:
    path.write_text(content, encoding="utf-8")


def file_name(path: str) -> str:
    return path.rstrip("/").split("/")[-1]


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    limit: int,
) -> List[R]:
    """Run ``worker`` over ``items`` with at most ``limit`` calls in flight.

    A fixed number of consumers pull from a shared queue. Results are returned
    in the order of ``items``.
    """
    if not items:
        return []
    queue: asyncio.Queue[int] = asyncio.Queue()
    for index in range(len(items)):
        queue.put_nowait(index)
    results: List[Any] = [None] * len(items)

    async def consume() -> None:
        while True:
            try:
                index = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            results[index] = await worker(items[index])

    workers = [consume() for _ in range(max(1, min(limit, len(items))))]
    await asyncio.gather(*workers)
    return results
