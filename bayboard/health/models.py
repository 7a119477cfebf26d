"""
Connection health data structures.
"""
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class ConnectionState:
    """
    Process-wide view of the backend link.

    Mutated only by HealthMonitor. Everyone else gets copies from
    ``HealthMonitor.get_state()``.
    """
    is_online: bool = True
    last_heartbeat_at: float = 0.0     # monotonic seconds
    consecutive_failures: int = 0
    total_probes: int = 0
    successful_probes: int = 0
    average_latency_ms: float = 0.0

    def copy(self) -> "ConnectionState":
        return ConnectionState(**asdict(self))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            "isOnline": self.is_online,
            "lastHeartbeatAt": self.last_heartbeat_at,
            "consecutiveFailures": self.consecutive_failures,
            "totalProbes": self.total_probes,
            "successfulProbes": self.successful_probes,
            "averageLatencyMs": round(self.average_latency_ms, 1),
        }


@dataclass(frozen=True)
class HealthCheckResult:
    """Outcome of one probe. Applied to ConnectionState, then dropped."""
    is_healthy: bool
    latency_ms: float
    at: datetime
    error: Optional[str] = None


@dataclass(frozen=True)
class ConnectionStatus:
    """UI-facing reading of the connection state."""
    is_healthy: bool
    is_online: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "isHealthy": self.is_healthy,
            "isOnline": self.is_online,
        }
        if self.reason:
            result["reason"] = self.reason
        return result
