"""Policy parameters — thresholds, weights and anchoring cadence."""

from taskchain.policy.resolver import AnchoringPolicy, PolicyResolver

__all__ = ["AnchoringPolicy", "PolicyResolver"]
