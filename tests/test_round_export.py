from __future__ import annotations

import pandas as pd

from round_export import ROUND_COLUMNS, export_rounds_csv, rounds_to_frame, scaled_price
from round_models import FeedHistory, RoundRecord


def _history():
    rounds = (
        RoundRecord.from_round_data(1, 7, (7, 184_512_000_000, 1_700_000_000, 1_700_000_012, 7)),
        RoundRecord.from_round_data(2, 1, (1, 184_600_000_000, 1_700_003_600, 1_700_003_600, 1)),
    )
    return FeedHistory("ETH / USD", 8, rounds)


def test_scaled_price():
    assert scaled_price(184_512_000_000, 8) == "1845.12000000"
    assert scaled_price(5, 0) == "5"


def test_frame_columns_and_values():
    frame = rounds_to_frame(_history())

    assert list(frame.columns) == ROUND_COLUMNS
    assert frame.loc[0, "price"] == "1845.12000000"
    assert frame.loc[1, "proxyRoundId"] == str((2 << 64) | 1)
    assert frame.loc[0, "updatedAt"] == "2023-11-14T22:13:32+00:00"


def test_empty_history_still_has_header():
    frame = rounds_to_frame(FeedHistory("ETH / USD", 8, ()))

    assert frame.empty
    assert list(frame.columns) == ROUND_COLUMNS


def test_export_overwrites_atomically(tmp_path):
    target = tmp_path / "exports" / "data.csv"
    target.parent.mkdir()
    target.write_text("stale\n")

    path = export_rounds_csv(str(target), _history())

    df = pd.read_csv(path, dtype=str)
    assert list(df.columns) == ROUND_COLUMNS
    assert df["roundId"].tolist() == ["7", "1"]
    # no temporary files left behind
    assert sorted(p.name for p in target.parent.iterdir()) == ["data.csv", "data.csv.lock"]
