"""Runtime settings — chain endpoint, signing key and data directory.

Secrets come from the environment or a .env file at the project root.
Policy constants live in config/productivity_params.json instead (see
taskchain.policy.resolver).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_DIR = ROOT / "config"
DEFAULT_DATA_DIR = ROOT / "data"

POLYGON_AMOY_CHAIN_ID = 80002
DEFAULT_EXPLORER_URL = "https://amoy.polygonscan.com/tx/"


@dataclass(frozen=True)
class ChainSettings:
    rpc_url: Optional[str]
    private_key: Optional[str]
    chain_id: int
    explorer_url: str
    data_dir: Path

    @property
    def chain_enabled(self) -> bool:
        return bool(self.rpc_url and self.private_key)


def load_chain_settings(env_file: Optional[Path] = None) -> ChainSettings:
    """Read chain settings from the environment (after loading .env)."""
    load_dotenv(env_file or ROOT / ".env")
    return ChainSettings(
        rpc_url=os.getenv("TASKCHAIN_RPC_URL") or None,
        private_key=os.getenv("TASKCHAIN_PRIVATE_KEY") or None,
        chain_id=int(os.getenv("TASKCHAIN_CHAIN_ID", str(POLYGON_AMOY_CHAIN_ID))),
        explorer_url=os.getenv("TASKCHAIN_EXPLORER_URL", DEFAULT_EXPLORER_URL),
        data_dir=Path(os.getenv("TASKCHAIN_DATA_DIR", str(DEFAULT_DATA_DIR))),
    )
