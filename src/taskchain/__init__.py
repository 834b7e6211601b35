"""taskchain — productivity scoring with on-chain anchoring of task completions."""

__version__ = "0.1.0"
