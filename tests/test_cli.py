"""Tests for the command-line interface."""

import json
import tempfile
from pathlib import Path

import pytest

from fiscal_correlator.cli import create_parser, main


def write_lines(path: Path, rows: list[dict]) -> None:
    path.write_text("".join(json.dumps(row) + "\n" for row in rows), encoding="utf-8")


def test_parser_defaults() -> None:
    args = create_parser().parse_args(["ctes.jsonl", "nfes.jsonl"])
    assert args.items == 5
    assert args.workers is None
    assert args.log_level == "INFO"
    assert not args.show_missing


def test_main_writes_enriched_records() -> None:
    with tempfile.TemporaryDirectory() as tmp_dir:
        tmp_path = Path(tmp_dir)
        write_lines(
            tmp_path / "ctes.jsonl",
            [
                {"primary_key": "c1", "linked_keys": ["c2"], "peer_keys": ["n1"], "total_value": 10},
                {"primary_key": "c2", "peer_keys": ["n2"], "total_value": "5,50"},
            ],
        )
        write_lines(
            tmp_path / "nfes.jsonl",
            [
                {"primary_key": "n1", "item_number": 1, "product_value": 4, "ncm": "X", "description": "d"},
                {"primary_key": "n2", "item_number": 1, "product_value": 6, "ncm": "Y", "description": "e"},
            ],
        )
        write_lines(tmp_path / "nfe-events.jsonl", [{"primary_key": "n2", "canceled": True}])
        out_dir = tmp_path / "out"

        exit_code = main(
            [
                str(tmp_path / "ctes.jsonl"),
                str(tmp_path / "nfes.jsonl"),
                "--nfe-events",
                str(tmp_path / "nfe-events.jsonl"),
                "--output-dir",
                str(out_dir),
                "--items",
                "1",
            ]
        )

        assert exit_code == 0
        ctes = [json.loads(line) for line in (out_dir / "ctes-enriched.jsonl").read_text().splitlines()]
        nfes = [json.loads(line) for line in (out_dir / "nfes-enriched.jsonl").read_text().splitlines()]

        assert [c["nfe_keys"] for c in ctes] == [["n1"], ["n1"]]
        assert ctes[0]["nfe_total"] == 4.0
        assert nfes[0]["cte_keys"] == ["c1", "c2"]
        assert nfes[0]["cte_total"] == 15.5
        assert nfes[1]["canceled"] == "Sim"
        assert nfes[1]["cte_keys"] == []


def test_main_rejects_invalid_items() -> None:
    with pytest.raises(SystemExit):
        main(["ctes.jsonl", "nfes.jsonl", "--items", "-1"])
