"""
Tunnel descriptor and tunnel engine

TunnelDescriptor is the complete configuration handed to the tunnel
engine. It is derived from the local identity and the issued
configuration each time the tunnel is toggled, and never persisted as a
whole by this package.

TunnelEngine is the seam to the data plane. WgQuickTunnelEngine drives a
host WireGuard installation through ``wg-quick`` and reads statistics with
``wg show <iface> dump``.
"""

import asyncio
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from sovereign_vpn.client.errors import TunnelEngineError

logger = logging.getLogger(__name__)


class TunnelState(str, Enum):
    UP = "up"
    DOWN = "down"
    TOGGLE = "toggle"


@dataclass(frozen=True)
class InterfaceSection:
    private_key: str
    address: str
    dns_servers: List[str]


@dataclass(frozen=True)
class PeerSection:
    public_key: str
    preshared_key: str
    endpoint: str
    allowed_ips: List[str]
    persistent_keepalive: int


@dataclass(frozen=True)
class TunnelDescriptor:
    interface: InterfaceSection
    peer: PeerSection

    def to_wg_quick(self) -> str:
        """
        Render in wg-quick format:

        [Interface]
        PrivateKey = ...
        Address = ...
        DNS = ...

        [Peer]
        ...
        """
        lines = [
            "[Interface]",
            f"PrivateKey = {self.interface.private_key}",
            f"Address = {self.interface.address}",
        ]
        if self.interface.dns_servers:
            lines.append(f"DNS = {', '.join(self.interface.dns_servers)}")

        lines += [
            "",
            "[Peer]",
            f"PublicKey = {self.peer.public_key}",
            f"PresharedKey = {self.peer.preshared_key}",
            f"Endpoint = {self.peer.endpoint}",
            f"AllowedIPs = {', '.join(self.peer.allowed_ips)}",
        ]
        if self.peer.persistent_keepalive:
            lines.append(f"PersistentKeepalive = {self.peer.persistent_keepalive}")

        return "\n".join(lines) + "\n"


@dataclass
class PeerStatistics:
    rx_bytes: int = 0
    tx_bytes: int = 0
    latest_handshake_epoch_millis: int = 0


@dataclass
class TunnelStatistics:
    """Per-peer transfer counters keyed by peer public key"""

    peers: Dict[str, PeerStatistics] = field(default_factory=dict)

    @property
    def total_rx(self) -> int:
        return sum(p.rx_bytes for p in self.peers.values())

    @property
    def total_tx(self) -> int:
        return sum(p.tx_bytes for p in self.peers.values())

    @property
    def latest_handshake_epoch_millis(self) -> int:
        return max((p.latest_handshake_epoch_millis for p in self.peers.values()), default=0)


class TunnelEngine(ABC):
    """Data plane the client hands descriptors to"""

    @abstractmethod
    async def set_state(
        self, name: str, state: TunnelState, descriptor: Optional[TunnelDescriptor]
    ) -> TunnelState:
        """Apply UP, DOWN or TOGGLE; return the resulting UP or DOWN."""
        ...

    @abstractmethod
    async def get_state(self, name: str) -> TunnelState:
        ...

    @abstractmethod
    async def get_statistics(self, name: str) -> TunnelStatistics:
        ...


def parse_wg_dump(output: str) -> TunnelStatistics:
    """
    Parse ``wg show <iface> dump``.

    The first line describes the interface; each following line is
    tab separated: public-key, preshared-key, endpoint, allowed-ips,
    latest-handshake (epoch seconds), transfer-rx, transfer-tx, keepalive.
    """
    stats = TunnelStatistics()
    for line in output.strip().splitlines()[1:]:
        parts = line.split("\t")
        if len(parts) < 7:
            continue
        try:
            stats.peers[parts[0]] = PeerStatistics(
                rx_bytes=int(parts[5]),
                tx_bytes=int(parts[6]),
                latest_handshake_epoch_millis=int(parts[4]) * 1000,
            )
        except ValueError:
            logger.debug(f"Skipping unparsable dump line: {line!r}")
    return stats


class WgQuickTunnelEngine(TunnelEngine):
    """
    Tunnel engine backed by ``wg-quick``

    Attributes:
        config_dir: Directory the rendered ``<name>.conf`` is written to
    """

    def __init__(self, config_dir: Path = Path("/etc/wireguard")):
        self.config_dir = Path(config_dir)

    async def _execute(self, *cmd: str) -> tuple:
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise TunnelEngineError(f"{cmd[0]} not found - is WireGuard installed? ({e})")

        stdout, stderr = await process.communicate()
        return process.returncode, stdout.decode().strip(), stderr.decode().strip()

    def _write_config(self, name: str, descriptor: TunnelDescriptor) -> Path:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        path = self.config_dir / f"{name}.conf"

        fd, temp_path = tempfile.mkstemp(dir=self.config_dir, prefix=".wg_", suffix=".conf.tmp")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(descriptor.to_wg_quick())
            os.chmod(temp_path, 0o600)
            os.replace(temp_path, path)
        except OSError:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

        return path

    async def get_state(self, name: str) -> TunnelState:
        returncode, _, _ = await self._execute("wg", "show", name)
        return TunnelState.UP if returncode == 0 else TunnelState.DOWN

    async def set_state(
        self, name: str, state: TunnelState, descriptor: Optional[TunnelDescriptor]
    ) -> TunnelState:
        current = await self.get_state(name)
        if state is TunnelState.TOGGLE:
            state = TunnelState.DOWN if current is TunnelState.UP else TunnelState.UP

        if state is current:
            return current

        if state is TunnelState.UP:
            if descriptor is None:
                raise TunnelEngineError("A descriptor is required to bring the tunnel up")
            path = self._write_config(name, descriptor)
            returncode, _, stderr = await self._execute("wg-quick", "up", str(path))
        else:
            returncode, _, stderr = await self._execute("wg-quick", "down", name)

        if returncode != 0:
            raise TunnelEngineError(f"wg-quick {state.value} {name} failed: {stderr}")

        logger.info(f"Tunnel {name} is {state.value}")
        return state

    async def get_statistics(self, name: str) -> TunnelStatistics:
        returncode, stdout, stderr = await self._execute("wg", "show", name, "dump")
        if returncode != 0:
            raise TunnelEngineError(f"wg show {name} dump failed: {stderr}")
        return parse_wg_dump(stdout)
