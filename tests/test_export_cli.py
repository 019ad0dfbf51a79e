from __future__ import annotations

import importlib.util

import pandas as pd
import pytest

from resolver_errors import NoMatchFound
from round_models import FeedHistory, RoundRecord

from conftest import PROXY, ROOT

_spec = importlib.util.spec_from_file_location("export_feed_history", ROOT / "scripts" / "export_feed_history.py")
cli = importlib.util.module_from_spec(_spec)
_spec.loader.exec_module(cli)


def test_parse_time_accepts_unix_and_iso():
    assert cli.parse_time("1700000000") == 1_700_000_000
    assert cli.parse_time("2024-01-01") == 1_704_067_200
    assert cli.parse_time("2024-01-01T01:00:00+01:00") == 1_704_067_200


def test_main_writes_csv(tmp_path, monkeypatch):
    seen = {}

    def fake_run_query(address, chain, start, end, **kwargs):
        seen.update(address=address, chain=chain, start=start, end=end, strategy=kwargs["strategy"])
        record = RoundRecord.from_round_data(1, 3, (3, 123_450_000, start, start, 3))
        return FeedHistory("ETH / USD", 8, (record,))

    monkeypatch.setattr(cli, "run_query", fake_run_query)
    out = tmp_path / "rounds.csv"

    code = cli.main(["--address", PROXY, "--chain", "mainnet", "--start", "2024-01-01",
                     "--out", str(out)])

    assert code == 0
    assert seen == {"address": PROXY, "chain": "mainnet", "start": 1_704_067_200,
                    "end": 1_704_067_200, "strategy": "phased"}
    df = pd.read_csv(out, dtype=str)
    assert df["price"].tolist() == ["1.23450000"]


def test_main_reports_resolver_errors(tmp_path, monkeypatch):
    def failing_run_query(*args, **kwargs):
        raise NoMatchFound("No rounds found")

    monkeypatch.setattr(cli, "run_query", failing_run_query)
    out = tmp_path / "rounds.csv"

    assert cli.main(["--address", PROXY, "--chain", "mainnet", "--start", "100", "--end", "200",
                     "--out", str(out)]) == 1
    assert not out.exists()


def test_unknown_strategy_is_rejected_by_argparse():
    with pytest.raises(SystemExit):
        cli.main(["--address", PROXY, "--chain", "mainnet", "--start", "100", "--strategy", "fast"])
