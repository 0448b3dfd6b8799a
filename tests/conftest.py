# tests/conftest.py
import os
import sys
from unittest.mock import MagicMock

import pytest

# Make sure `src/` is on the import path
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
sys.path.insert(0, os.path.join(ROOT, "src"))

BILLS_ROWS = [
    (1, "passed", 25),
    (2, "pending", 25),
    (3, "rejected", 24),
    (4, "passed", 24),
]


def _create_bills(con):
    con.execute("CREATE TABLE bills (bill_id INTEGER, status VARCHAR, knesset_num INTEGER)")
    con.executemany("INSERT INTO bills VALUES (?, ?, ?)", BILLS_ROWS)


@pytest.fixture
def duckdb_conn():
    import duckdb

    con = duckdb.connect(":memory:")
    _create_bills(con)
    yield con
    con.close()


@pytest.fixture
def bills_db_path(tmp_path):
    import duckdb

    db_path = tmp_path / "bills.duckdb"
    con = duckdb.connect(str(db_path))
    _create_bills(con)
    con.close()
    return db_path


@pytest.fixture
def fake_engine():
    """Engine double whose handles return themselves from bind()."""
    engine = MagicMock()
    for compile_method in (engine.compile_managed, engine.compile_native):
        handle = compile_method.return_value
        handle.bind.return_value = handle
    return engine
