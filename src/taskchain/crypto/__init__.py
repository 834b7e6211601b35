"""Chain anchoring primitives — activity hashes, chain clients, state machine."""

from taskchain.crypto.anchor import (
    ChainClient,
    ChainReceipt,
    ChainUnavailableError,
    OfflineChainClient,
    Web3ChainClient,
    activity_hash,
)
from taskchain.crypto.state_machine import AnchorStateMachine, TransitionError

__all__ = [
    "AnchorStateMachine",
    "ChainClient",
    "ChainReceipt",
    "ChainUnavailableError",
    "OfflineChainClient",
    "TransitionError",
    "Web3ChainClient",
    "activity_hash",
]
