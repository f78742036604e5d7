"""Index and adjacency construction from flat record collections."""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from typing import TypeVar

from fiscal_correlator.grouping.group import group_by_key_list
from fiscal_correlator.records.types import (
    AdjacencyMap,
    CteRecord,
    KeyedRecord,
    ValidityKey,
)
from fiscal_correlator.solver.execution import DEFAULT_PARTITIONS, ExecutorClass

R = TypeVar("R", bound=KeyedRecord)


def build_index(
    records: Sequence[R],
    executor_class: ExecutorClass = None,
    workers: int | None = None,
    partitions: int = DEFAULT_PARTITIONS,
) -> dict[ValidityKey, list[R]]:
    """
    Group records by ValidityKey(primary_key, is_valid).

    Records without a primary key are left out. A key may map to several
    records (invoice line items), and the same primary key may appear under
    both a valid and a canceled ValidityKey.
    """
    pairs = [
        (ValidityKey(record.primary_key, record.is_valid), record)
        for record in records
        if record.primary_key is not None
    ]
    return group_by_key_list(pairs, executor_class, workers, partitions)


def _build_adjacency(edges: Iterable[tuple[str, Iterable[str]]]) -> AdjacencyMap:
    adj: defaultdict[str, set[str]] = defaultdict(set)

    for source, targets in edges:
        # Self references carry no correlation.
        related = {target for target in targets if target and target != source}
        if related:
            adj[source] |= related

    return dict(adj)


def build_same_adjacency(ctes: Iterable[CteRecord]) -> AdjacencyMap:
    """
    Build the raw CT-e -> CT-e adjacency from each record's linked keys.

    Every keyed document is a source, canceled ones included: a canceled
    document still links the documents it references. Targets are checked
    against the index later. The relation is taken as-is from the
    referencing side, so it may be asymmetric until closure.
    """
    return _build_adjacency(
        (cte.primary_key, cte.linked_keys) for cte in ctes if cte.primary_key is not None
    )


def build_cross_adjacency(ctes: Iterable[CteRecord]) -> AdjacencyMap:
    """Build the raw CT-e -> NF-e adjacency from each record's peer keys."""
    return _build_adjacency(
        (cte.primary_key, cte.peer_keys) for cte in ctes if cte.primary_key is not None
    )
