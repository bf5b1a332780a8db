"""
WireGuard peer provisioning

Allocates overlay addresses, generates key material, and keeps the peer
store, the server configuration and the live interface consistent.
"""

__version__ = "1.0.0"
