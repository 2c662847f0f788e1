"""Persistence for policy, audit trail and statistics."""

from .decision_log import DecisionLog
from .policy_store import PolicyStore
from .stats_tracker import StatsTracker

__all__ = [
    "DecisionLog",
    "PolicyStore",
    "StatsTracker",
]
