"""
Application Layer - Use Cases and Services

This package contains the rate engine and the services it coordinates:
retry policy, cooldown gate, reconciliation and cached state.
"""

from dinarlive.application.cooldown import CooldownGate
from dinarlive.application.orchestrator import RateEngine
from dinarlive.application.reconciler import dedupe_citations, reconcile_history
from dinarlive.application.retry import RetryController
from dinarlive.application.state_manager import CachedData, StateManager

__all__ = [
    "RateEngine",
    "RetryController",
    "CooldownGate",
    "StateManager",
    "CachedData",
    "dedupe_citations",
    "reconcile_history",
]
