"""Console reporting of unresolved keys and correlations."""

from fiscal_correlator.aggregate.lookup import NCM_LABELS, PAYER_LABELS, ncm_description
from fiscal_correlator.aggregate.ranked import ranked_breakdown
from fiscal_correlator.aggregate.totals import total_value
from fiscal_correlator.solver.correlate import Correlations


def show_docs(doc_type: str, docs: list[str]) -> None:
    """Print referenced keys that were found in neither collection."""
    size = len(docs)
    noun = f"{doc_type}s" if size > 1 else doc_type
    print(f"{size} {noun} not found:")
    for doc in docs:
        print(f"  {doc}")
    print()


def print_cte_nfes(correlations: Correlations, items: int) -> None:
    print("cte_nfes:")
    for cte, nfes in sorted(correlations.cte_nfes.items()):
        total = total_value(nfes, correlations.nfe_index)
        breakdown = ranked_breakdown(
            nfes, correlations.nfe_index, ncm_description, items, NCM_LABELS
        )
        print(
            f"{cte}: {len(nfes):>2} {sorted(nfes)} ; Total = {total or 0.0:.2f} ; NCMs: {breakdown}"
        )
    print(f"cte_nfes: {len(correlations.cte_nfes)}\n")


def print_nfe_ctes(correlations: Correlations, items: int) -> None:
    """Print NF-e correlations, ranking payers with the run's role table."""
    print("nfe_ctes:")
    for nfe, ctes in sorted(correlations.nfe_ctes.items()):
        total = total_value(ctes, correlations.cte_index)
        breakdown = ranked_breakdown(
            ctes, correlations.cte_index, correlations.payer_extractor, items, PAYER_LABELS
        )
        print(
            f"{nfe}: {len(ctes):>2} {sorted(ctes)} ; Total = {total or 0.0:.2f} ; Payers: {breakdown}"
        )
    print(f"nfe_ctes: {len(correlations.nfe_ctes)}\n")
