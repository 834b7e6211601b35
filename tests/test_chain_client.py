"""Tests for chain clients and chain settings."""

import os
import pytest
from datetime import datetime, timezone
from pathlib import Path

from taskchain.config import POLYGON_AMOY_CHAIN_ID, load_chain_settings
from taskchain.crypto.anchor import (
    ChainUnavailableError,
    OfflineChainClient,
    Web3ChainClient,
    activity_hash,
    raw_digest,
)


TEST_KEY = "0x" + "11" * 32


class TestOfflineClient:
    def test_submit_unavailable(self) -> None:
        with pytest.raises(ChainUnavailableError):
            OfflineChainClient().submit("sha256:" + "0" * 64)

    def test_receipt_unavailable(self) -> None:
        with pytest.raises(ChainUnavailableError):
            OfflineChainClient().get_receipt("0x01", timeout=1.0)


class TestWeb3Client:
    def test_address_from_key(self) -> None:
        client = Web3ChainClient("http://127.0.0.1:9", TEST_KEY, POLYGON_AMOY_CHAIN_ID)
        assert client.address.startswith("0x")
        assert len(client.address) == 42

    def test_unreachable_endpoint(self) -> None:
        client = Web3ChainClient(
            "http://127.0.0.1:9", TEST_KEY, POLYGON_AMOY_CHAIN_ID, request_timeout=1.0,
        )
        with pytest.raises(ChainUnavailableError, match="Submission failed"):
            client.submit("sha256:" + "ab" * 32)

    def test_raw_digest_is_32_bytes(self) -> None:
        digest = activity_hash("alice", "T-1", datetime(2025, 3, 1, tzinfo=timezone.utc))
        assert len(bytes.fromhex(raw_digest(digest))) == 32


class TestChainSettings:
    def test_defaults_without_rpc(self, monkeypatch, tmp_path: Path) -> None:
        monkeypatch.delenv("TASKCHAIN_RPC_URL", raising=False)
        monkeypatch.delenv("TASKCHAIN_PRIVATE_KEY", raising=False)
        monkeypatch.delenv("TASKCHAIN_CHAIN_ID", raising=False)
        settings = load_chain_settings(env_file=tmp_path / "missing.env")
        assert settings.chain_id == POLYGON_AMOY_CHAIN_ID
        assert not settings.chain_enabled

    def test_env_file_values(self, monkeypatch, tmp_path: Path) -> None:
        keys = ("TASKCHAIN_RPC_URL", "TASKCHAIN_PRIVATE_KEY", "TASKCHAIN_DATA_DIR")
        for key in keys:
            monkeypatch.delenv(key, raising=False)
        env = tmp_path / ".env"
        env.write_text(
            "TASKCHAIN_RPC_URL=https://rpc-amoy.polygon.technology\n"
            f"TASKCHAIN_PRIVATE_KEY={TEST_KEY}\n"
            f"TASKCHAIN_DATA_DIR={tmp_path / 'data'}\n",
            encoding="utf-8",
        )
        try:
            settings = load_chain_settings(env_file=env)
        finally:
            # load_dotenv writes to os.environ directly
            for key in keys:
                os.environ.pop(key, None)
        assert settings.chain_enabled
        assert settings.data_dir == tmp_path / "data"
