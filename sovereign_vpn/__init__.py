"""
Sovereign VPN control plane

Provisions WireGuard peers for a private overlay network and reconciles
them onto a live endpoint. The ``client`` package holds the device-side
registration flow.
"""

__version__ = "1.0.0"
