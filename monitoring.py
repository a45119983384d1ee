"""Health tracking for the indexing services behind live reputation data.

The reputation service reports every live fetch here.  Each service keeps a
:class:`ServiceHealth` record with its consecutive and lifetime failure counts,
and the monitor keeps a bounded log of notable events (failures and
recoveries) for display by the CLI or an embedding application.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
import logging
from typing import Any, Callable, Deque, Dict, List, Mapping

from activity_analysis import current_millis
from api_keys import get_display_name

logger = logging.getLogger(__name__)

MAX_EVENTS = 200


@dataclass(slots=True)
class HealthEvent:
    """A failure or recovery observed for one service."""

    timestamp: int
    level: str
    service_id: str
    message: str
    address: str | None = None
    details: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ServiceHealth:
    service_id: str
    service_name: str
    consecutive_failures: int = 0
    total_failures: int = 0
    total_successes: int = 0
    last_error: str | None = None
    last_error_at: int | None = None
    last_success_at: int | None = None

    @property
    def healthy(self) -> bool:
        return self.consecutive_failures == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_id": self.service_id,
            "service_name": self.service_name,
            "status": "ok" if self.healthy else "error",
            "consecutive_failures": self.consecutive_failures,
            "total_failures": self.total_failures,
            "total_successes": self.total_successes,
            "last_error": self.last_error,
            "last_error_at": self.last_error_at,
            "last_success_at": self.last_success_at,
        }


class ApiHealthMonitor:
    """Aggregates per-service success and failure state."""

    def __init__(
        self,
        *,
        max_events: int = MAX_EVENTS,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._events: Deque[HealthEvent] = deque(maxlen=max_events)
        self._services: Dict[str, ServiceHealth] = {}
        self._clock = clock or current_millis

    def health_for(self, service_id: str) -> ServiceHealth:
        health = self._services.get(service_id)
        if health is None:
            health = ServiceHealth(service_id=service_id, service_name=get_display_name(service_id))
            self._services[service_id] = health
        return health

    def record_api_error(
        self,
        service_id: str,
        message: str,
        *,
        address: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> HealthEvent:
        health = self.health_for(service_id)
        now = self._clock()
        health.consecutive_failures += 1
        health.total_failures += 1
        health.last_error = message
        health.last_error_at = now
        return self._append("error", health, message, now, address, details)

    def record_api_success(
        self,
        service_id: str,
        message: str,
        *,
        address: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> HealthEvent | None:
        """Record a successful call; returns an event only when it ends an outage."""

        health = self.health_for(service_id)
        now = self._clock()
        recovered_from = health.consecutive_failures
        health.consecutive_failures = 0
        health.total_successes += 1
        health.last_success_at = now
        if not recovered_from:
            return None
        logger.info("%s recovered after %d failure(s): %s", health.service_name, recovered_from, message)
        return self._append("info", health, message, now, address, details)

    def recent_events(self, limit: int = 10) -> List[HealthEvent]:
        """Return up to ``limit`` events, newest first."""

        events = list(self._events)
        events.reverse()
        return events[:limit]

    def api_status_snapshot(self) -> List[Dict[str, Any]]:
        return [
            health.to_dict()
            for health in sorted(self._services.values(), key=lambda item: item.service_name)
        ]

    def active_api_incidents(self) -> List[Dict[str, Any]]:
        return [record for record in self.api_status_snapshot() if record["status"] == "error"]

    def status_summary(self) -> str:
        incidents = self.active_api_incidents()
        if not incidents:
            return "All APIs healthy"
        return ", ".join(
            f"{record['service_name']} ({record['consecutive_failures']} failures)" for record in incidents
        )

    def _append(
        self,
        level: str,
        health: ServiceHealth,
        message: str,
        timestamp: int,
        address: str | None,
        details: Mapping[str, Any] | None,
    ) -> HealthEvent:
        event = HealthEvent(
            timestamp=timestamp,
            level=level,
            service_id=health.service_id,
            message=message,
            address=address,
            details=dict(details or {}),
        )
        self._events.append(event)
        return event


__all__ = [
    "ApiHealthMonitor",
    "HealthEvent",
    "MAX_EVENTS",
    "ServiceHealth",
]
