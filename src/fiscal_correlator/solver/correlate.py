import logging
import os
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import TypeVar

from fiscal_correlator.aggregate.lookup import (
    NCM_LABELS,
    PAYER_LABELS,
    PAYER_ROLES,
    PayerExtractor,
    ncm_description,
)
from fiscal_correlator.aggregate.ranked import ranked_breakdown
from fiscal_correlator.aggregate.totals import total_value
from fiscal_correlator.config import CorrelationOptions
from fiscal_correlator.errors import CorrelationError
from fiscal_correlator.graph.build import (
    build_cross_adjacency,
    build_index,
    build_same_adjacency,
)
from fiscal_correlator.graph.closure import (
    expand_same_collection_adjacency,
    invert,
    propagate_cross_adjacency,
)
from fiscal_correlator.graph.filter import filter_valid_targets, unresolved_keys
from fiscal_correlator.records.types import (
    AdjacencyMap,
    CteIndex,
    CteRecord,
    NfeIndex,
    NfeRecord,
)
from fiscal_correlator.solver.execution import (
    FC_EXECUTOR_ENV,
    ExecutorClass,
    describe_executor,
    get_executor_class,
    is_gil_enabled,
    map_partitions,
    run_concurrently,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)


class Stage(Enum):
    """Pipeline states, entered strictly in this order."""

    INDEXED = "Indexed"
    CLOSURE_COMPUTED = "ClosureComputed"
    CROSS_PROPAGATED = "CrossPropagated"
    FILTERED = "Filtered"
    INVERTED = "Inverted"
    ENRICHED = "Enriched"


@dataclass
class Correlations:
    """Indices, cleaned bipartite mapping and payer table of one run."""

    cte_index: CteIndex = field(default_factory=dict)
    nfe_index: NfeIndex = field(default_factory=dict)
    cte_nfes: AdjacencyMap = field(default_factory=dict)
    nfe_ctes: AdjacencyMap = field(default_factory=dict)
    missing_ctes: list[str] = field(default_factory=list)
    missing_nfes: list[str] = field(default_factory=list)
    payer_extractor: PayerExtractor = field(default_factory=PayerExtractor)


@dataclass(frozen=True, slots=True)
class CteEnrichment:
    nfe_keys: list[str]
    nfe_total: float | None
    ncm_breakdown: list[str]


@dataclass(frozen=True, slots=True)
class NfeEnrichment:
    cte_keys: list[str]
    cte_total: float | None
    payer_breakdown: list[str]


def enrich_cte_partition(
    entries: Sequence[tuple[str, set[str]]], nfe_index: NfeIndex, items: int
) -> dict[str, CteEnrichment]:
    """Compute peer data for a chunk of (cte_key, nfe_keys) entries."""
    return {
        cte: CteEnrichment(
            nfe_keys=sorted(nfes),
            nfe_total=total_value(nfes, nfe_index),
            ncm_breakdown=ranked_breakdown(nfes, nfe_index, ncm_description, items, NCM_LABELS),
        )
        for cte, nfes in entries
    }


def enrich_nfe_partition(
    entries: Sequence[tuple[str, set[str]]],
    cte_index: CteIndex,
    items: int,
    extractor: PayerExtractor,
) -> dict[str, NfeEnrichment]:
    """Compute peer data for a chunk of (nfe_key, cte_keys) entries."""
    return {
        nfe: NfeEnrichment(
            cte_keys=sorted(ctes),
            cte_total=total_value(ctes, cte_index),
            payer_breakdown=ranked_breakdown(ctes, cte_index, extractor, items, PAYER_LABELS),
        )
        for nfe, ctes in entries
    }


@contextmanager
def _stage(stage: Stage | str) -> Iterator[None]:
    """Time a stage and turn any failure into CorrelationError."""
    name = stage.value if isinstance(stage, Stage) else stage
    start = time.perf_counter()
    try:
        yield
    except CorrelationError:
        raise
    except Exception as exc:
        raise CorrelationError(name, name, str(exc)) from exc
    logger.info("%s done in %.2fs", name, time.perf_counter() - start)


def _merge_partials(partials: list[dict[str, T]]) -> dict[str, T]:
    merged: dict[str, T] = {}
    for part in partials:
        merged.update(part)
    return merged


def correlate(
    ctes: list[CteRecord],
    nfes: list[NfeRecord],
    options: CorrelationOptions | None = None,
) -> Correlations:
    """
    Correlate transport documents with invoices and enrich both in place.

    Stages run strictly in sequence; only work inside a stage is parallel:
    1. Indexed: ValidityKey indices, raw adjacency maps, unresolved keys
    2. ClosureComputed: CT-e -> CT-e transitive closure
    3. CrossPropagated: spread CT-e -> NF-e references across the closure
    4. Filtered: keep only valid NF-e targets
    5. Inverted: NF-e -> CT-e, keeping only valid CT-e targets
    6. Enriched: write peer keys, totals and breakdowns onto valid records
    """
    options = options or CorrelationOptions()
    total_start = time.perf_counter()

    # Select executor based on policy.
    executor_class = get_executor_class()
    executor_name = describe_executor(executor_class)
    gil_status = "enabled" if is_gil_enabled() else "disabled"
    workers_desc = "auto" if options.workers is None else str(options.workers)
    executor_override = os.environ.get(FC_EXECUTOR_ENV, "")
    override_info = f", {FC_EXECUTOR_ENV}={executor_override}" if executor_override else ""

    logger.info(
        f"Starting: ctes={len(ctes)}, nfes={len(nfes)}, workers={workers_desc}, "
        f"executor={executor_name}, GIL={gil_status}{override_info}"
    )

    pool = {
        "executor_class": executor_class,
        "workers": options.workers,
        "partitions": options.partitions,
    }

    with _stage(Stage.INDEXED):
        indices = run_concurrently(
            Stage.INDEXED.value,
            {
                "cte_index": lambda: build_index(ctes, **pool),
                "nfe_index": lambda: build_index(nfes, **pool),
                "cte_ctes": lambda: build_same_adjacency(ctes),
                "cte_nfes": lambda: build_cross_adjacency(ctes),
            },
        )
        cte_index: CteIndex = indices["cte_index"]
        nfe_index: NfeIndex = indices["nfe_index"]
        raw_cte_ctes: AdjacencyMap = indices["cte_ctes"]
        raw_cte_nfes: AdjacencyMap = indices["cte_nfes"]

        missing = run_concurrently(
            Stage.INDEXED.value,
            {
                "missing_ctes": lambda: unresolved_keys(raw_cte_ctes, cte_index),
                "missing_nfes": lambda: unresolved_keys(raw_cte_nfes, nfe_index),
            },
        )
        missing_ctes = sorted(missing["missing_ctes"])
        missing_nfes = sorted(missing["missing_nfes"])

        # Canceled or unknown transport documents are never targets.
        cte_ctes = filter_valid_targets(raw_cte_ctes, cte_index, **pool)

    if missing_ctes or missing_nfes:
        logger.warning(
            "Unresolved references: %d CT-e keys, %d NF-e keys",
            len(missing_ctes),
            len(missing_nfes),
        )

    with _stage(Stage.CLOSURE_COMPUTED):
        cte_ctes = expand_same_collection_adjacency(cte_ctes, **pool)

    with _stage(Stage.CROSS_PROPAGATED):
        cte_nfes = propagate_cross_adjacency(cte_ctes, raw_cte_nfes)

    with _stage(Stage.FILTERED):
        cte_nfes = filter_valid_targets(cte_nfes, nfe_index, **pool)

    with _stage(Stage.INVERTED):
        nfe_ctes = filter_valid_targets(invert(cte_nfes), cte_index, **pool)

    correlations = Correlations(
        cte_index=cte_index,
        nfe_index=nfe_index,
        cte_nfes=cte_nfes,
        nfe_ctes=nfe_ctes,
        missing_ctes=missing_ctes,
        missing_nfes=missing_nfes,
        payer_extractor=PayerExtractor(dict(PAYER_ROLES)),
    )

    with _stage(Stage.ENRICHED):
        run_concurrently(
            Stage.ENRICHED.value,
            {
                "ctes": lambda: add_info_nfes_to_ctes(
                    ctes, correlations, options, executor_class
                ),
                "nfes": lambda: add_info_ctes_to_nfes(
                    nfes, correlations, correlations.payer_extractor, options, executor_class
                ),
            },
        )

    logger.info(
        "Result: %d CT-e and %d NF-e keys correlated (total %.2fs)",
        len(cte_nfes),
        len(nfe_ctes),
        time.perf_counter() - total_start,
    )
    return correlations


def add_info_nfes_to_ctes(
    ctes: list[CteRecord],
    correlations: Correlations,
    options: CorrelationOptions | None = None,
    executor_class: ExecutorClass = None,
) -> int:
    """
    Attach correlated NF-e keys, their total and NCM breakdown to valid CT-e.

    Returns the number of records enriched.
    """
    options = options or CorrelationOptions()
    wanted = {cte.primary_key for cte in ctes if cte.is_valid}
    entries = [(key, nfes) for key, nfes in correlations.cte_nfes.items() if key in wanted]

    partials = map_partitions(
        partial(enrich_cte_partition, nfe_index=correlations.nfe_index, items=options.items),
        entries,
        executor_class,
        options.workers,
        options.partitions,
    )
    computed = _merge_partials(partials)

    enriched = 0
    for cte in ctes:
        info = computed.get(cte.primary_key) if cte.is_valid else None
        if info is None:
            continue
        cte.nfe_keys = list(info.nfe_keys)
        cte.nfe_total = info.nfe_total
        cte.ncm_breakdown = list(info.ncm_breakdown)
        enriched += 1
    return enriched


def add_info_ctes_to_nfes(
    nfes: list[NfeRecord],
    correlations: Correlations,
    extractor: PayerExtractor,
    options: CorrelationOptions | None = None,
    executor_class: ExecutorClass = None,
) -> int:
    """
    Attach correlated CT-e keys, their total and payer breakdown to valid NF-e items.

    Every item of an invoice receives the same peer data. Returns the number
    of records enriched.
    """
    options = options or CorrelationOptions()
    wanted = {nfe.primary_key for nfe in nfes if nfe.is_valid}
    entries = [(key, ctes) for key, ctes in correlations.nfe_ctes.items() if key in wanted]

    partials = map_partitions(
        partial(
            enrich_nfe_partition,
            cte_index=correlations.cte_index,
            items=options.items,
            extractor=extractor,
        ),
        entries,
        executor_class,
        options.workers,
        options.partitions,
    )
    computed = _merge_partials(partials)

    enriched = 0
    for nfe in nfes:
        info = computed.get(nfe.primary_key) if nfe.is_valid else None
        if info is None:
            continue
        nfe.cte_keys = list(info.cte_keys)
        nfe.cte_total = info.cte_total
        nfe.payer_breakdown = list(info.payer_breakdown)
        enriched += 1
    return enriched
