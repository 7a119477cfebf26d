"""
Connection health monitoring: probes, heartbeats, and the online/offline state machine.
"""
from .models import ConnectionState, ConnectionStatus, HealthCheckResult
from .monitor import HealthMonitor

__all__ = [
    # Models
    "ConnectionState",
    "ConnectionStatus",
    "HealthCheckResult",
    # Monitor
    "HealthMonitor",
]
