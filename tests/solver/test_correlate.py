"""Tests for the correlation orchestrator."""

import logging

import pytest

from fiscal_correlator.config import CorrelationOptions
from fiscal_correlator.errors import CorrelationError
from fiscal_correlator.records.types import CteRecord, NfeRecord
from fiscal_correlator.solver import correlate as correlate_module
from fiscal_correlator.solver import execution
from fiscal_correlator.solver.correlate import Stage, correlate


def make_documents() -> tuple[list[CteRecord], list[NfeRecord]]:
    """
    Two transport chains and one isolated document.

    c1 <-> c2 (complementary) carry n1 and n2; c3 references a canceled
    invoice and an unknown one; c4 is canceled; c5 references an unknown CT-e.
    """
    ctes = [
        CteRecord(
            primary_key="c1",
            linked_keys=["c2"],
            peer_keys=["n1"],
            total_value=100.0,
            payer_code=0,
            payer_cnpj="11222333000144",
        ),
        CteRecord(
            primary_key="c2",
            peer_keys=["n2"],
            total_value=50.0,
            payer_code=3,
            payer_cpf="12345678909",
        ),
        CteRecord(primary_key="c3", peer_keys=["n3", "n_ghost"], total_value=10.0),
        CteRecord(primary_key="c4", canceled="Sim", peer_keys=["n4"]),
        CteRecord(primary_key="c5", linked_keys=["c_ghost"], peer_keys=["n4"], total_value=7.0),
        CteRecord(primary_key=None, peer_keys=["n1"]),
    ]
    nfes = [
        NfeRecord(primary_key="n1", item_number=1, product_value=30.0, ncm="X", description="desc1"),
        NfeRecord(primary_key="n1", item_number=2, product_value=10.0, ncm="Z", description="desc3"),
        NfeRecord(primary_key="n2", item_number=1, product_value=60.0, ncm="Y", description="desc2"),
        NfeRecord(primary_key="n3", canceled="Sim", product_value=99.0, ncm="X", description="desc1"),
        NfeRecord(primary_key="n4", product_value=5.0, ncm="W", description="desc4"),
    ]
    return ctes, nfes


class TestCorrelate:
    """Test cases for the end-to-end correlation run."""

    def test_builds_bipartite_mapping(self) -> None:
        ctes, nfes = make_documents()

        result = correlate(ctes, nfes, CorrelationOptions(items=2))

        assert result.cte_nfes == {
            "c1": {"n1", "n2"},
            "c2": {"n1", "n2"},
            "c4": {"n4"},
            "c5": {"n4"},
        }
        assert result.nfe_ctes == {"n1": {"c1", "c2"}, "n2": {"c1", "c2"}, "n4": {"c5"}}
        assert result.missing_ctes == ["c_ghost"]
        assert result.missing_nfes == ["n_ghost"]

    def test_enriches_valid_ctes(self) -> None:
        ctes, nfes = make_documents()

        correlate(ctes, nfes, CorrelationOptions(items=2))

        c1 = ctes[0]
        assert c1.nfe_keys == ["n1", "n2"]
        assert c1.nfe_total == 100.0
        assert c1.ncm_breakdown == [
            "(ncm: Y, descricao: desc2, valor: 60.00, pct: 60.00)",
            "(ncm: X, descricao: desc1, valor: 30.00, pct: 30.00)",
        ]
        assert ctes[1].nfe_keys == ["n1", "n2"]

        # Only a canceled invoice: nothing to attach.
        assert ctes[2].nfe_keys == []
        assert ctes[2].nfe_total is None

        # Canceled transport documents are never enriched.
        assert ctes[3].nfe_keys == []

    def test_enriches_every_item_of_valid_nfes(self) -> None:
        ctes, nfes = make_documents()

        correlate(ctes, nfes, CorrelationOptions(items=5))

        for item in nfes[:2]:
            assert item.cte_keys == ["c1", "c2"]
            assert item.cte_total == 150.0
            assert item.payer_breakdown == [
                "(cnpj_cpf: 11222333, atributo: Remetente, valor: 100.00, pct: 66.67)",
                "(cnpj_cpf: 12345678909, atributo: Destinatário, valor: 50.00, pct: 33.33)",
            ]

        assert nfes[3].cte_keys == []
        assert nfes[4].cte_keys == ["c5"]
        assert nfes[4].cte_total == 7.0
        assert nfes[4].payer_breakdown == []

    def test_canceled_document_links_its_references(self) -> None:
        ctes = [
            CteRecord(primary_key="c1", peer_keys=["n1"]),
            CteRecord(primary_key="c2", canceled="Sim", linked_keys=["c1", "c3"]),
            CteRecord(primary_key="c3", peer_keys=["n3"]),
        ]
        nfes = [NfeRecord(primary_key="n1"), NfeRecord(primary_key="n3")]

        result = correlate(ctes, nfes)

        assert result.cte_nfes["c1"] == {"n1", "n3"}
        assert result.cte_nfes["c3"] == {"n1", "n3"}
        # The canceled document itself is never a target.
        assert result.nfe_ctes == {"n1": {"c1", "c3"}, "n3": {"c1", "c3"}}
        assert ctes[0].nfe_keys == ["n1", "n3"]
        assert ctes[1].nfe_keys == []

    def test_non_finite_value_does_not_abort_run(self) -> None:
        ctes = [CteRecord(primary_key="c1", peer_keys=["n1", "n2"], total_value=float("inf"))]
        nfes = [
            NfeRecord(primary_key="n1", product_value=float("nan"), ncm="X", description="d"),
            NfeRecord(primary_key="n2", product_value=2.0, ncm="Y", description="e"),
        ]

        correlate(ctes, nfes)

        assert ctes[0].nfe_total == 2.0
        assert ctes[0].ncm_breakdown == ["(ncm: Y, descricao: e, valor: 2.00, pct: 100.00)"]
        assert nfes[0].cte_keys == ["c1"]
        assert nfes[0].cte_total is None
        assert nfes[0].payer_breakdown == []

    def test_only_output_fields_change(self) -> None:
        ctes, nfes = make_documents()
        before = [(c.primary_key, c.canceled, list(c.linked_keys), list(c.peer_keys), c.total_value) for c in ctes]

        correlate(ctes, nfes)

        after = [(c.primary_key, c.canceled, list(c.linked_keys), list(c.peer_keys), c.total_value) for c in ctes]
        assert after == before

    @pytest.mark.parametrize("mode", ["serial", "threads", "processes"])
    def test_executor_modes_agree(self, monkeypatch, mode: str) -> None:
        monkeypatch.setenv(execution.FC_EXECUTOR_ENV, "serial")
        ctes, nfes = make_documents()
        expected = correlate(ctes, nfes, CorrelationOptions(partitions=1))

        monkeypatch.setenv(execution.FC_EXECUTOR_ENV, mode)
        ctes, nfes = make_documents()
        result = correlate(ctes, nfes, CorrelationOptions(workers=2, partitions=3))

        assert result.cte_nfes == expected.cte_nfes
        assert result.nfe_ctes == expected.nfe_ctes
        assert ctes[0].ncm_breakdown
        assert nfes[0].payer_breakdown

    def test_empty_input(self) -> None:
        result = correlate([], [])
        assert result.cte_nfes == {}
        assert result.nfe_ctes == {}
        assert result.missing_ctes == []

    def test_logs_stage_progress(self, caplog) -> None:
        ctes, nfes = make_documents()

        with caplog.at_level(logging.INFO, logger="fiscal_correlator"):
            correlate(ctes, nfes)

        messages = [record.getMessage() for record in caplog.records]
        for stage in Stage:
            assert any(message.startswith(f"{stage.value} done") for message in messages)
        assert any("Unresolved references" in message for message in messages)


class TestStageFailures:
    """A failing sub-task aborts the whole run."""

    def test_failure_in_concurrent_task_names_stage(self, monkeypatch) -> None:
        def broken(*args, **kwargs):
            raise RuntimeError("index exploded")

        monkeypatch.setattr(correlate_module, "build_index", broken)
        ctes, nfes = make_documents()

        with pytest.raises(CorrelationError) as excinfo:
            correlate(ctes, nfes)

        assert excinfo.value.stage == Stage.INDEXED.value
        assert excinfo.value.task in {"cte_index", "nfe_index"}
        assert ctes[0].nfe_keys == []

    def test_failure_in_sequential_stage(self, monkeypatch) -> None:
        def broken(*args, **kwargs):
            raise ValueError("closure exploded")

        monkeypatch.setattr(correlate_module, "expand_same_collection_adjacency", broken)
        ctes, nfes = make_documents()

        with pytest.raises(CorrelationError) as excinfo:
            correlate(ctes, nfes)

        assert excinfo.value.stage == Stage.CLOSURE_COMPUTED.value
        assert isinstance(excinfo.value.__cause__, ValueError)


class TestCorrelationOptions:
    """Test cases for option validation."""

    def test_rejects_invalid_values(self) -> None:
        with pytest.raises(ValueError):
            CorrelationOptions(items=-1)
        with pytest.raises(ValueError):
            CorrelationOptions(workers=0)
        with pytest.raises(ValueError):
            CorrelationOptions(partitions=0)
