"""Network connectivity monitor.

Tracks whether the device is online and notifies listeners on every
online/offline transition. The signal can be pushed by the platform
(:meth:`NetworkMonitor.set_online`) or pulled by a probe, either on demand
(:meth:`NetworkMonitor.check`) or periodically on a daemon thread
(:meth:`NetworkMonitor.start`).

The monitor never talks to the remote service itself; reacting to a
transition (e.g. starting a sync pass) is the listener's job.
"""
from __future__ import annotations

import datetime
import logging
import socket
import threading
from typing import Callable

from propertyhub_sync.observers import Broadcaster, Subscription

logger = logging.getLogger(__name__)

Probe = Callable[[], bool]
TransitionCallback = Callable[[bool], None]


def tcp_probe(host: str = "8.8.8.8", port: int = 53, timeout: float = 2.0) -> Probe:
    """Return a probe that reports True when a TCP connection succeeds.

    Parameters
    ----------
    host:
        Host to connect to.
    port:
        TCP port to connect to.
    timeout:
        Connect timeout in seconds.
    """

    def probe() -> bool:
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError:
            return False

    return probe


class NetworkMonitor:
    """Current connectivity plus transition notifications.

    Parameters
    ----------
    initial_online:
        Connectivity assumed before the first signal.
    probe:
        Callable returning the live reachability, used by :meth:`check`
        and the background thread.
    check_interval:
        Seconds between probes while the background thread runs.
    """

    def __init__(
        self,
        initial_online: bool = False,
        probe: Probe | None = None,
        check_interval: float = 30.0,
    ) -> None:
        if check_interval <= 0:
            raise ValueError(f"check_interval must be > 0, got {check_interval}")
        self._online = initial_online
        self._offline_since: datetime.datetime | None = (
            None if initial_online else datetime.datetime.now(datetime.timezone.utc)
        )
        self._probe = probe
        self._check_interval = check_interval
        self._transitions: Broadcaster[bool] = Broadcaster("network transition")
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def is_online(self) -> bool:
        with self._lock:
            return self._online

    def set_online(self, online: bool) -> bool:
        """Apply a reachability signal.

        Listeners are notified only when the value actually changes.

        Returns
        -------
        bool
            True if this call changed the connectivity state.
        """
        with self._lock:
            if self._online == online:
                return False
            self._online = online
            self._offline_since = (
                None if online else datetime.datetime.now(datetime.timezone.utc)
            )
        logger.info("Network went %s", "online" if online else "offline")
        self._transitions.emit(online)
        return True

    def on_transition(self, callback: TransitionCallback) -> Subscription:
        """Call *callback(is_online)* on every transition."""
        return self._transitions.add(callback)

    def get_offline_duration(self) -> datetime.timedelta | None:
        """Return how long the device has been offline, or None if online."""
        with self._lock:
            offline_since = self._offline_since
        if offline_since is None:
            return None
        return datetime.datetime.now(datetime.timezone.utc) - offline_since

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    def check(self) -> bool:
        """Run the probe once and apply its result.

        Returns
        -------
        bool
            The probed connectivity.

        Raises
        ------
        RuntimeError
            If the monitor was created without a probe.
        """
        if self._probe is None:
            raise RuntimeError("NetworkMonitor has no probe configured")
        try:
            online = bool(self._probe())
        except Exception:
            logger.exception("Connectivity probe raised; treating as offline")
            online = False
        self.set_online(online)
        return online

    @property
    def has_probe(self) -> bool:
        return self._probe is not None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Probe now, then every ``check_interval`` seconds on a daemon thread."""
        if self._probe is None:
            raise RuntimeError("NetworkMonitor has no probe configured")
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="propertyhub-network-monitor", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the background thread and wait up to *timeout* seconds."""
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def close(self) -> None:
        """Stop probing and drop all transition listeners."""
        self.stop()
        self._transitions.clear()

    def _run(self) -> None:
        while True:
            self.check()
            if self._stop_event.wait(self._check_interval):
                return


__all__ = ["NetworkMonitor", "Probe", "TransitionCallback", "tcp_probe"]
