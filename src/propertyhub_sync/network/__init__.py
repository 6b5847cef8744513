"""Connectivity monitoring."""
from __future__ import annotations

from propertyhub_sync.network.monitor import NetworkMonitor, Probe, tcp_probe

__all__ = ["NetworkMonitor", "Probe", "tcp_probe"]
