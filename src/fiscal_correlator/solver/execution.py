"""Execution policy and fan-out/fan-in helpers."""

import os
import sys
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
from typing import TypeAlias, TypeVar

from fiscal_correlator.errors import CorrelationError

T = TypeVar("T")
R = TypeVar("R")

ExecutorClass: TypeAlias = type[ThreadPoolExecutor] | type[ProcessPoolExecutor] | None

# Environment variable to override executor selection.
FC_EXECUTOR_ENV = "FC_EXECUTOR"

# Default number of contiguous chunks for partitioned stages.
DEFAULT_PARTITIONS = 8


# Policy names accepted in FC_EXECUTOR; None runs partitions inline.
EXECUTOR_POLICIES: dict[str, ExecutorClass] = {
    "threads": ThreadPoolExecutor,
    "processes": ProcessPoolExecutor,
    "serial": None,
}


def is_gil_enabled() -> bool:
    """False only on a free-threaded interpreter running without the GIL."""
    probe = getattr(sys, "_is_gil_enabled", None)
    return True if probe is None else probe()


def get_executor_class() -> ExecutorClass:
    """
    Pick the pool that runs partitioned closure, filter and enrichment work.

    An FC_EXECUTOR value naming a known policy wins. Without one, CPU-bound
    partitions go to processes under the GIL and to threads without it.
    """
    policy = os.environ.get(FC_EXECUTOR_ENV, "").strip().lower()
    if policy in EXECUTOR_POLICIES:
        return EXECUTOR_POLICIES[policy]
    return ProcessPoolExecutor if is_gil_enabled() else ThreadPoolExecutor


def describe_executor(executor_class: ExecutorClass) -> str:
    """Policy name of `executor_class`, as logged at the start of a run."""
    for name, candidate in EXECUTOR_POLICIES.items():
        if candidate is executor_class:
            return name
    return executor_class.__name__


def chunked(items: Sequence[T], partitions: int) -> list[Sequence[T]]:
    """
    Split items into at most `partitions` contiguous, non-empty chunks.

    Chunk sizes differ by at most one element.
    """
    if partitions < 1:
        raise ValueError(f"partitions must be >= 1, got {partitions}")

    total = len(items)
    if total == 0:
        return []

    partitions = min(partitions, total)
    size, extra = divmod(total, partitions)

    chunks = []
    start = 0
    for index in range(partitions):
        end = start + size + (1 if index < extra else 0)
        chunks.append(items[start:end])
        start = end
    return chunks


def map_partitions(
    func: Callable[[Sequence[T]], R],
    items: Sequence[T],
    executor_class: ExecutorClass = None,
    workers: int | None = None,
    partitions: int = DEFAULT_PARTITIONS,
) -> list[R]:
    """
    Apply `func` to contiguous chunks of `items` and return the partial results.

    With a process pool, `func` and the chunks must be picklable, so callers
    pass top-level functions (optionally wrapped in functools.partial).
    Partial results come back in chunk order.
    """
    chunks = chunked(items, partitions)
    if not chunks:
        return []

    if executor_class is None or len(chunks) == 1:
        return [func(chunk) for chunk in chunks]

    with executor_class(max_workers=workers) as executor:
        return list(executor.map(func, chunks))


def run_concurrently(stage: str, tasks: Mapping[str, Callable[[], object]]) -> dict[str, object]:
    """
    Run independent tasks on a thread pool and join them all.

    A failure in any task aborts the stage with CorrelationError naming the
    stage and the failing task; the original exception is chained.
    """
    results: dict[str, object] = {}

    with ThreadPoolExecutor(max_workers=len(tasks) or 1) as executor:
        futures = {name: executor.submit(task) for name, task in tasks.items()}

        # Join every task before reporting, so no worker outlives the stage.
        for name, future in futures.items():
            exc = future.exception()
            if exc is not None:
                raise CorrelationError(stage, name, str(exc)) from exc
            results[name] = future.result()

    return results
