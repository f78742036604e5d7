"""Transitive closure over document adjacency maps."""

import logging
from collections import defaultdict
from collections.abc import Sequence
from functools import partial, reduce

from fiscal_correlator.records.types import AdjacencyMap
from fiscal_correlator.solver.execution import (
    DEFAULT_PARTITIONS,
    ExecutorClass,
    map_partitions,
)

logger = logging.getLogger(__name__)


def edge_count(adj: AdjacencyMap) -> int:
    """Number of keys plus number of edges; grows monotonically during closure."""
    return len(adj) + sum(len(targets) for targets in adj.values())


def relax_partition(keys: Sequence[str], adj: AdjacencyMap) -> AdjacencyMap:
    """
    Stage the edges produced by one relaxation pass over `keys`.

    For every edge a -> b:
    - stage b -> a (symmetry; raw data only records the referencing side)
    - stage a -> c for every c in adj[b] with c != a (one transitive hop)

    `adj` is only read; staged edges go to a separate map.
    """
    staged: defaultdict[str, set[str]] = defaultdict(set)

    for a in keys:
        for b in adj[a]:
            if b == a:
                continue
            staged[b].add(a)

            hops = adj.get(b)
            if hops:
                staged[a].update(c for c in hops if c != a)

    return dict(staged)


def merge_adjacency(left: AdjacencyMap, right: AdjacencyMap) -> AdjacencyMap:
    """Union `right` into `left` key by key."""
    for key, targets in right.items():
        if key in left:
            left[key] |= targets
        else:
            left[key] = set(targets)
    return left


def expand_same_collection_adjacency(
    adj: AdjacencyMap,
    executor_class: ExecutorClass = None,
    workers: int | None = None,
    partitions: int = DEFAULT_PARTITIONS,
) -> AdjacencyMap:
    """
    Expand a same-collection adjacency map to its symmetric transitive closure.

    Repeats one-hop relaxation passes until a pass no longer increases the
    edge count. Each pass reads a frozen copy of the current map and merges
    the staged edges only at the pass boundary. The input map is not mutated
    and the result never holds a key adjacent to itself.

    >>> closed = expand_same_collection_adjacency({"a": {"b"}, "b": {"c"}})
    >>> sorted(closed["c"])
    ['a', 'b']
    """
    current: AdjacencyMap = {
        key: {target for target in targets if target != key} for key, targets in adj.items()
    }
    passes = 0

    while True:
        count_before = edge_count(current)
        keys = sorted(current)

        partials = map_partitions(
            partial(relax_partition, adj=current),
            keys,
            executor_class,
            workers,
            partitions,
        )
        staged = reduce(merge_adjacency, partials, {})

        current = merge_adjacency({key: set(targets) for key, targets in current.items()}, staged)
        passes += 1

        count_after = edge_count(current)
        logger.debug("Closure pass %d: edge count %d -> %d", passes, count_before, count_after)

        # Stop once a pass adds nothing.
        if count_after <= count_before:
            break

    return current


def propagate_cross_adjacency(same_adj: AdjacencyMap, cross_adj: AdjacencyMap) -> AdjacencyMap:
    """
    Spread each document's cross references to every document related to it.

    For every (a, peers) in the closed `same_adj` with an entry in
    `cross_adj`, union cross_adj[a] into cross_adj[peer] for every peer. One
    pass suffices because `same_adj` is already transitively closed. Reads
    come from the input map; writes go to a new one.
    """
    result: AdjacencyMap = {key: set(targets) for key, targets in cross_adj.items()}

    for a, peers in same_adj.items():
        targets = cross_adj.get(a)
        if not targets:
            continue
        for peer in peers:
            if peer in result:
                result[peer] |= targets
            else:
                result[peer] = set(targets)

    return result


def invert(adj: AdjacencyMap) -> AdjacencyMap:
    """Invert an adjacency map: (a, {b1, b2}) becomes (b1, {a}), (b2, {a})."""
    inverted: defaultdict[str, set[str]] = defaultdict(set)

    for source, targets in adj.items():
        for target in targets:
            inverted[target].add(source)

    return dict(inverted)
