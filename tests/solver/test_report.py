"""Tests for console reporting."""

from fiscal_correlator.aggregate.lookup import PayerExtractor
from fiscal_correlator.records.types import CteRecord, NfeRecord
from fiscal_correlator.solver.correlate import correlate
from fiscal_correlator.solver.report import print_cte_nfes, print_nfe_ctes, show_docs


def test_show_docs_lists_keys(capsys) -> None:
    show_docs("NF-e", ["n1", "n2"])
    show_docs("CT-e", ["c1"])

    out = capsys.readouterr().out
    assert "2 NF-es not found:" in out
    assert "1 CT-e not found:" in out
    assert "  n2" in out


def test_print_correlations(capsys) -> None:
    ctes = [
        CteRecord(primary_key="c1", peer_keys=["n1"], total_value=20.0, payer_code=4, payer_cpf="111"),
    ]
    nfes = [NfeRecord(primary_key="n1", product_value=8.0, ncm="X", description="d")]
    correlations = correlate(ctes, nfes)

    print_cte_nfes(correlations, items=3)
    print_nfe_ctes(correlations, items=3)

    out = capsys.readouterr().out
    assert "c1:  1 ['n1'] ; Total = 8.00" in out
    assert "(ncm: X, descricao: d, valor: 8.00, pct: 100.00)" in out
    assert "n1:  1 ['c1'] ; Total = 20.00" in out
    assert "(cnpj_cpf: 111, atributo: Terceiro, valor: 20.00, pct: 100.00)" in out


def test_print_nfe_ctes_uses_the_run_payer_table(capsys) -> None:
    ctes = [CteRecord(primary_key="c1", peer_keys=["n1"], total_value=20.0, payer_code=4, payer_cpf="111")]
    nfes = [NfeRecord(primary_key="n1", product_value=8.0)]
    correlations = correlate(ctes, nfes)
    correlations.payer_extractor = PayerExtractor({4: "Tomador"})

    print_nfe_ctes(correlations, items=3)

    assert "(cnpj_cpf: 111, atributo: Tomador, valor: 20.00, pct: 100.00)" in capsys.readouterr().out
