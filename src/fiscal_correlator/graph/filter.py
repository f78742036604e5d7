"""Validity filtering of adjacency maps against record indices."""

from collections.abc import Collection, Mapping, Sequence
from functools import partial, reduce
from typing import TypeAlias

from fiscal_correlator.records.types import AdjacencyMap, ValidityKey
from fiscal_correlator.solver.execution import (
    DEFAULT_PARTITIONS,
    ExecutorClass,
    map_partitions,
)

# Only membership is checked, so any ValidityKey -> records mapping works.
KeyIndex: TypeAlias = Collection[ValidityKey] | Mapping[ValidityKey, object]


def is_known(key: str, index: KeyIndex) -> bool:
    """True when the key exists in the index as valid or canceled."""
    return ValidityKey(key, True) in index or ValidityKey(key, False) in index


def filter_partition(
    entries: Sequence[tuple[str, set[str]]], index: KeyIndex
) -> AdjacencyMap:
    """Keep targets resolving to a valid record; drop entries left empty."""
    filtered: AdjacencyMap = {}
    for key, targets in entries:
        valid = {target for target in targets if ValidityKey(target, True) in index}
        if valid:
            filtered[key] = valid
    return filtered


def filter_valid_targets(
    adj: AdjacencyMap,
    index: KeyIndex,
    executor_class: ExecutorClass = None,
    workers: int | None = None,
    partitions: int = DEFAULT_PARTITIONS,
) -> AdjacencyMap:
    """
    Keep only targets whose ValidityKey(target, True) exists in `index`.

    A target known only as canceled is dropped. Entries whose target set ends
    up empty are removed.
    """
    entries = list(adj.items())
    partials = map_partitions(
        partial(filter_partition, index=_key_set(index)),
        entries,
        executor_class,
        workers,
        partitions,
    )
    return reduce(lambda left, right: left | right, partials, {})


def unresolved_keys(adj: AdjacencyMap, index: KeyIndex) -> set[str]:
    """Targets referenced in `adj` with neither a valid nor a canceled entry."""
    return {
        target
        for targets in adj.values()
        for target in targets
        if not is_known(target, index)
    }


def _key_set(index: KeyIndex) -> frozenset[ValidityKey]:
    # Workers only need key membership, not the records themselves.
    return frozenset(index)
