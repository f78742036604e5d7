"""Map-reduce group-by primitives used across the correlation pipeline."""

from collections import defaultdict
from collections.abc import Hashable, Iterable, Sequence
from functools import reduce
from typing import TypeVar

from fiscal_correlator.solver.execution import (
    DEFAULT_PARTITIONS,
    ExecutorClass,
    map_partitions,
)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


def sum_partition(pairs: Iterable[tuple[K, V]]) -> dict[K, V]:
    """Fold one partition of (key, value) pairs into a key -> sum map."""
    acc: dict[K, V] = {}
    for key, value in pairs:
        if key in acc:
            acc[key] += value
        else:
            acc[key] = value
    return acc


def merge_sums(left: dict[K, V], right: dict[K, V]) -> dict[K, V]:
    """Combine two partial sum maps point-wise into `left`."""
    for key, value in right.items():
        if key in left:
            left[key] += value
        else:
            left[key] = value
    return left


def list_partition(pairs: Iterable[tuple[K, V]]) -> dict[K, list[V]]:
    """Fold one partition of (key, value) pairs into a key -> values map."""
    acc: defaultdict[K, list[V]] = defaultdict(list)
    for key, value in pairs:
        acc[key].append(value)
    return dict(acc)


def merge_lists(
    left: dict[K, list[V]], right: dict[K, list[V]]
) -> dict[K, list[V]]:
    """Concatenate two partial list maps into `left`."""
    for key, values in right.items():
        left.setdefault(key, []).extend(values)
    return left


def group_by_key_sum(
    pairs: Sequence[tuple[K, V]],
    executor_class: ExecutorClass = None,
    workers: int | None = None,
    partitions: int = DEFAULT_PARTITIONS,
) -> dict[K, V]:
    """
    Group (key, value) pairs by key, summing the values.

    The input is split into contiguous partitions, each folded independently,
    and the partial maps are merged by point-wise sum.

    >>> group_by_key_sum([("ab", 2), ("cd", 1), ("ab", 2)])
    {'ab': 4, 'cd': 1}
    """
    partials = map_partitions(sum_partition, pairs, executor_class, workers, partitions)
    return reduce(merge_sums, partials, {})


def group_by_key_list(
    pairs: Sequence[tuple[K, V]],
    executor_class: ExecutorClass = None,
    workers: int | None = None,
    partitions: int = DEFAULT_PARTITIONS,
) -> dict[K, list[V]]:
    """
    Group (key, value) pairs by key, collecting the values into lists.

    Value order within a key follows partition merge order and is not a
    contract; sort downstream when order matters.
    """
    partials = map_partitions(list_partition, pairs, executor_class, workers, partitions)
    return reduce(merge_lists, partials, {})
