"""round_export
CSV export of a resolved feed history.

The frame keeps the payload keys of each round and adds a scaled ``price``
column. File writes are atomic (tmp file + replace) under a portalocker lock
so a reader never sees a half-written export.
"""
from decimal import Decimal
import os
import tempfile

import pandas as pd
import portalocker

from round_models import FeedHistory

ROUND_COLUMNS = ["phaseId", "roundId", "proxyRoundId", "answer", "price", "startedAt", "updatedAt"]


def scaled_price(answer: int, decimals: int) -> str:
    return str(Decimal(int(answer)).scaleb(-int(decimals)))


def rounds_to_frame(history: FeedHistory) -> pd.DataFrame:
    rows = []
    for r in history.rounds:
        row = r.to_dict()
        row["price"] = scaled_price(r.answer, history.decimals)
        rows.append(row)
    return pd.DataFrame(rows, columns=ROUND_COLUMNS)


def rounds_to_csv(history: FeedHistory) -> str:
    return rounds_to_frame(history).to_csv(index=False)


def export_rounds_csv(csv_path: str, history: FeedHistory) -> str:
    """Safely overwrite ``csv_path`` with the rounds of ``history``."""
    dirn = os.path.dirname(os.path.abspath(csv_path))
    os.makedirs(dirn, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix='rounds_tmp_', suffix='.csv', dir=dirn)
    os.close(fd)
    try:
        rounds_to_frame(history).to_csv(tmp_path, index=False)

        lock_path = csv_path + '.lock'
        with open(lock_path, 'w', encoding='utf-8') as lf:
            portalocker.lock(lf, portalocker.LockFlags.EXCLUSIVE)
            try:
                os.replace(tmp_path, csv_path)
            finally:
                portalocker.unlock(lf)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
    return csv_path
