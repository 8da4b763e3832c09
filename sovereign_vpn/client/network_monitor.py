"""
Tunnel traffic monitor

Process-wide poller that reads tunnel statistics on a fixed interval while
the tunnel is up. The instance outlives any UI that observes it; callers
get it through get_network_monitor().

Lifecycle:
- start(engine, tunnel_name) is a no-op while already running
- stop() cancels the poller and is safe to call when not running
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Deque, List, Optional

from sovereign_vpn.client.tunnel import TunnelEngine, TunnelStatistics

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 2.0
MAX_LOG_ENTRIES = 200
BURST_THRESHOLD_BYTES = 50_000


class LogType(str, Enum):
    INFO = "info"
    TRAFFIC = "traffic"
    ERROR = "error"


@dataclass(frozen=True)
class LogEntry:
    message: str
    type: LogType = LogType.INFO
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def format_bytes(num_bytes: int) -> str:
    """
    Human readable byte count.

    e.g. 512 -> "512 B", 1536 -> "1.5 KB", 3 * 1024**3 -> "3.00 GB"
    """
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 ** 2:
        return f"{num_bytes / 1024:.1f} KB"
    if num_bytes < 1024 ** 3:
        return f"{num_bytes / 1024 ** 2:.1f} MB"
    return f"{num_bytes / 1024 ** 3:.2f} GB"


def format_rate(bytes_per_second: int) -> str:
    if bytes_per_second < 1024:
        return f"{bytes_per_second} B/s"
    if bytes_per_second < 1024 ** 2:
        return f"{bytes_per_second / 1024:.1f} KB/s"
    return f"{bytes_per_second / 1024 ** 2:.1f} MB/s"


def format_handshake_age(seconds_ago: int) -> str:
    if seconds_ago < 5:
        return "Just now"
    if seconds_ago < 60:
        return f"{seconds_ago}s ago"
    return f"{seconds_ago // 60}m {seconds_ago % 60}s ago"


def _now_millis() -> int:
    return int(time.time() * 1000)


class NetworkMonitor:
    """
    Polls tunnel statistics and keeps the derived counters

    Attributes:
        poll_interval: Seconds between polls
        rx_bytes / tx_bytes: Totals across all peers from the last poll
        rx_rate / tx_rate: Formatted per-second rates over the last interval
        last_handshake: Formatted age of the most recent handshake
    """

    def __init__(
        self,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        clock: Callable[[], int] = _now_millis,
    ):
        self.poll_interval = poll_interval
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._logs: Deque[LogEntry] = deque(maxlen=MAX_LOG_ENTRIES)
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._prev_rx = 0
        self._prev_tx = 0
        self.rx_bytes = 0
        self.tx_bytes = 0
        self.rx_rate = "0 B/s"
        self.tx_rate = "0 B/s"
        self.last_handshake = "-"

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def logs(self) -> List[LogEntry]:
        return list(self._logs)

    def add_log(self, message: str, log_type: LogType = LogType.INFO) -> None:
        self._logs.append(LogEntry(message, log_type))

    async def start(self, engine: TunnelEngine, tunnel_name: str) -> None:
        """Start polling ``tunnel_name``; ignored while already running."""
        if self.is_running:
            logger.debug("Network monitor already running")
            return

        self._reset_counters()
        self.add_log("Tunnel UP - monitoring started")
        self._task = asyncio.create_task(self._poll_loop(engine, tunnel_name))
        logger.info(f"Network monitor started for {tunnel_name} (interval: {self.poll_interval}s)")

    async def stop(self) -> None:
        """Stop polling. Safe to call when not running."""
        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        self.add_log("Monitoring stopped")
        logger.info("Network monitor stopped")

    async def _poll_loop(self, engine: TunnelEngine, tunnel_name: str) -> None:
        while True:
            try:
                stats = await engine.get_statistics(tunnel_name)
                self.update(stats)
            except Exception as e:
                logger.error(f"Error polling tunnel statistics: {e}")
                self.add_log(f"Monitor: {str(e) or 'error'}", LogType.ERROR)

            await asyncio.sleep(self.poll_interval)

    def update(self, stats: TunnelStatistics) -> None:
        """Fold one statistics sample into the counters."""
        total_rx = stats.total_rx
        total_tx = stats.total_tx

        handshake_ms = stats.latest_handshake_epoch_millis
        if handshake_ms > 0:
            seconds_ago = max(0, (self._clock() - handshake_ms) // 1000)
            self.last_handshake = format_handshake_age(seconds_ago)

        # first sample only seeds the baseline
        if self._prev_rx > 0 or self._prev_tx > 0:
            # counters restart from zero when the interface is recreated
            rx_delta = max(0, total_rx - self._prev_rx)
            tx_delta = max(0, total_tx - self._prev_tx)
            self.rx_rate = format_rate(int(rx_delta / self.poll_interval))
            self.tx_rate = format_rate(int(tx_delta / self.poll_interval))

            if rx_delta > BURST_THRESHOLD_BYTES:
                self.add_log(f"Received {format_bytes(rx_delta)}", LogType.TRAFFIC)
            if tx_delta > BURST_THRESHOLD_BYTES:
                self.add_log(f"Sent {format_bytes(tx_delta)}", LogType.TRAFFIC)

        self._prev_rx = total_rx
        self._prev_tx = total_tx
        self.rx_bytes = total_rx
        self.tx_bytes = total_tx


# Global monitor instance
_monitor: Optional[NetworkMonitor] = None


def get_network_monitor() -> NetworkMonitor:
    """
    Get global network monitor instance

    Returns:
        NetworkMonitor shared by the whole process
    """
    global _monitor

    if _monitor is None:
        _monitor = NetworkMonitor()

    return _monitor
