"""Blockchain anchoring — embeds activity hashes on an EVM chain as tamper-evident proof.

Anchoring a task completion means embedding its activity hash in the data
field of a transaction. No contract code runs; the chain is a witness that
the completion record existed in this exact form at this moment.

The anchor service talks to the chain through the ChainClient interface,
split into two steps so neither blocks for long:
1. submit(digest) broadcasts a 0-value self-send carrying the digest and
   returns the transaction hash.
2. get_receipt(tx_hash, timeout) waits at most `timeout` seconds for the
   transaction to be mined and returns None if it has not been.

Any transport failure surfaces as ChainUnavailableError.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

from taskchain.models.task import format_utc


class ChainUnavailableError(Exception):
    """Raised when the chain cannot be reached or rejects a request."""


@dataclass(frozen=True)
class ChainReceipt:
    """A mined transaction."""
    tx_hash: str
    block_number: int
    succeeded: bool


class ChainClient(Protocol):
    def submit(self, digest: str) -> str: ...

    def get_receipt(self, tx_hash: str, timeout: float) -> Optional[ChainReceipt]: ...


def activity_hash(employee_id: str, task_id: str, completed_at: datetime) -> str:
    """Deterministic digest identifying one task-completion event.

    Canonical form: sorted-key JSON of employee id, task id and the
    second-precision UTC completion time. The same completion always
    produces the same hash, which makes it the idempotency key for
    anchoring.
    """
    canonical = json.dumps(
        {
            "completed_at": format_utc(completed_at),
            "employee_id": employee_id,
            "task_id": task_id,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


def raw_digest(digest: str) -> str:
    """Strip the sha256: prefix for the raw hex digest."""
    return digest.replace("sha256:", "")


class Web3ChainClient:
    """ChainClient backed by a JSON-RPC endpoint via web3.

    Sends a 0-value self-send transaction with the digest in the data field,
    signed locally with the configured key.
    """

    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        chain_id: int,
        gas: int = 30_000,
        request_timeout: float = 10.0,
    ) -> None:
        from web3 import Web3, HTTPProvider
        from eth_account import Account

        self._w3 = Web3(HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))
        self._account = Account.from_key(private_key)
        self._chain_id = chain_id
        self._gas = gas

    @property
    def address(self) -> str:
        return self._account.address

    def submit(self, digest: str) -> str:
        try:
            w3 = self._w3
            nonce = w3.eth.get_transaction_count(self._account.address, "pending")
            tx = {
                "to": self._account.address,  # self-send, 0 value
                "value": 0,
                "gas": self._gas,
                "gasPrice": w3.eth.gas_price,
                "nonce": nonce,
                "chainId": self._chain_id,
                "data": bytes.fromhex(raw_digest(digest)),
            }
            signed = self._account.sign_transaction(tx)
            tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as exc:  # noqa: BLE001
            raise ChainUnavailableError(f"Submission failed: {exc}") from exc
        return self._w3.to_hex(tx_hash)

    def get_receipt(self, tx_hash: str, timeout: float) -> Optional[ChainReceipt]:
        from web3.exceptions import TimeExhausted

        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout, poll_latency=min(1.0, timeout),
            )
        except TimeExhausted:
            return None
        except Exception as exc:  # noqa: BLE001
            raise ChainUnavailableError(f"Receipt lookup failed: {exc}") from exc
        return ChainReceipt(
            tx_hash=tx_hash,
            block_number=int(receipt["blockNumber"]),
            succeeded=int(receipt.get("status", 1)) == 1,
        )


class OfflineChainClient:
    """ChainClient used when no RPC endpoint is configured.

    Every call fails as unavailable, so entries stay pending (and
    eventually fail) while task operations keep working.
    """

    def submit(self, digest: str) -> str:
        raise ChainUnavailableError("No chain RPC endpoint configured")

    def get_receipt(self, tx_hash: str, timeout: float) -> Optional[ChainReceipt]:
        raise ChainUnavailableError("No chain RPC endpoint configured")
