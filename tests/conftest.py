import base64
import sqlite3

import pytest

from src.config import Settings

KEY_ID = "arn:aws:kms:eu-west-1:111122223333:key/test-key"


class FakeKms:
    """Reversible KMS stand-in: XOR with a byte derived from the key id."""

    def __init__(self, keys=(KEY_ID,)):
        self.keys = set(keys)
        self.calls = 0

    @staticmethod
    def _pad(key_id: str) -> int:
        return sum(key_id.encode()) % 251 + 1

    def encrypt(self, key_id: str, plaintext: str) -> str:
        pad = self._pad(key_id)
        return base64.b64encode(bytes(b ^ pad for b in plaintext.encode("utf-8"))).decode()

    async def decrypt(self, key_id: str, ciphertext: bytes) -> bytes:
        self.calls += 1
        if key_id not in self.keys:
            raise KeyError(f"unknown key {key_id}")
        pad = self._pad(key_id)
        return bytes(b ^ pad for b in ciphertext)


@pytest.fixture
def settings():
    return Settings(_env_file=None, staging_max_concurrency=2, extract_fetch_size=10)


@pytest.fixture
def fake_kms():
    return FakeKms()


@pytest.fixture
def source_db(tmp_path):
    path = tmp_path / "source.db"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE t (id INTEGER, name TEXT)")
    conn.executemany("INSERT INTO t (id, name) VALUES (?, ?)", [(1, "A"), (2, "B")])
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def warehouse_db(tmp_path):
    path = tmp_path / "warehouse.db"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE people (id INTEGER NOT NULL, full_name TEXT)")
    conn.execute("INSERT INTO people (id, full_name) VALUES (100, 'old')")
    conn.commit()
    conn.close()
    return path


def _fetch_all(path, sql):
    conn = sqlite3.connect(path)
    try:
        return conn.execute(sql).fetchall()
    finally:
        conn.close()


@pytest.fixture
def fetch_all():
    return _fetch_all
