# src/dinarlive/application/health.py
"""
Health Checker - Engine Diagnostics

Checks the pieces the engine depends on: the AI data provider, the
persistent store, and the freshness of the published rate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dinarlive.adapters.ai.provider_client import ProviderClient
from dinarlive.adapters.persistence.file_store import FileStore
from dinarlive.application.orchestrator import RateEngine
from dinarlive.domain.errors import StoreError

logger = logging.getLogger(__name__)

_PROBE_KEY = "health_probe"


@dataclass
class HealthStatus:
    """Represents the health status of a component."""
    is_healthy: bool
    message: str
    last_check: datetime
    details: Optional[Dict[str, Any]] = None


class HealthChecker:
    """Centralized health checking for the engine's components."""

    def __init__(self, provider: ProviderClient, store: FileStore, engine: RateEngine):
        self.provider = provider
        self.store = store
        self.engine = engine

    def check_provider(self) -> HealthStatus:
        """Check the AI data provider by sending a test message."""
        if self.provider.client is None:
            return HealthStatus(
                is_healthy=False,
                message="Provider not configured (API key missing)",
                last_check=datetime.now(timezone.utc),
                details={"configured": False},
            )

        success, response = self.provider.test_api()
        if success:
            return HealthStatus(
                is_healthy=True,
                message=f"Provider healthy, response: {response[:80]}",
                last_check=datetime.now(timezone.utc),
                details={"model": self.provider.model, "response": response},
            )
        logger.warning("Provider health check failed: %s", response)
        return HealthStatus(
            is_healthy=False,
            message=f"Provider unhealthy: {response}",
            last_check=datetime.now(timezone.utc),
            details={"model": self.provider.model, "error": response},
        )

    def check_store(self) -> HealthStatus:
        """Write, read back and delete a probe record."""
        probe = {"ts": datetime.now(timezone.utc).isoformat()}
        try:
            self.store.set(_PROBE_KEY, probe)
            ok = self.store.get(_PROBE_KEY) == probe
            self.store.delete(_PROBE_KEY)
        except (StoreError, OSError) as e:
            logger.error("Store health check failed: %s", e)
            return HealthStatus(
                is_healthy=False,
                message=f"Store error: {e}",
                last_check=datetime.now(timezone.utc),
                details={"data_dir": str(self.store.data_dir)},
            )
        return HealthStatus(
            is_healthy=ok,
            message="Store healthy" if ok else "Store read-back mismatch",
            last_check=datetime.now(timezone.utc),
            details={"data_dir": str(self.store.data_dir)},
        )

    def check_freshness(self) -> HealthStatus:
        """
        Check that the published rate is not older than two refresh intervals.

        A missing rate is unhealthy; an active FAILED_AFTER_RETRIES error is
        reported in the details but does not by itself fail the check.
        """
        state = self.engine.get_state()
        now = datetime.now(timezone.utc)
        if state.rate is None:
            return HealthStatus(
                is_healthy=False,
                message="No rate available yet",
                last_check=now,
                details={"error": state.error, "status": state.status.value},
            )

        age = state.rate.age_seconds(now)
        max_age = 2 * self.engine.fetch_interval_seconds
        return HealthStatus(
            is_healthy=age <= max_age,
            message=f"Rate is {int(age)}s old (limit {int(max_age)}s)",
            last_check=now,
            details={
                "iqd": state.rate.iqd,
                "updated": state.rate.updated.isoformat(),
                "age_seconds": int(age),
                "error": state.error,
                "status": state.status.value,
                "last_failure_reason": state.last_failure_reason.value if state.last_failure_reason else None,
            },
        )

    def get_overall_health(self, include_provider: bool = True) -> Dict[str, Any]:
        """
        Get overall health status of all components.

        Args:
            include_provider: Whether to spend a provider request on the check
        """
        checks = {
            "store": self.check_store(),
            "freshness": self.check_freshness(),
        }
        if include_provider:
            checks["provider"] = self.check_provider()

        failed_checks = [name for name, check in checks.items() if not check.is_healthy]
        overall_healthy = not failed_checks

        if overall_healthy:
            status_message = "All systems healthy"
        else:
            status_message = f"Degraded - {len(failed_checks)} component(s) failed: {', '.join(failed_checks)}"

        return {
            "overall_healthy": overall_healthy,
            "status": "healthy" if overall_healthy else "degraded",
            "message": status_message,
            "failed_components": failed_checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {
                name: {
                    "healthy": check.is_healthy,
                    "message": check.message,
                    "last_check": check.last_check.isoformat(),
                    "details": check.details,
                }
                for name, check in checks.items()
            },
        }
