"""
Marketplace real-time client.

Holds one streaming connection per subscription to the hub, reconnects on
failure, and folds incoming events into per-domain view state (chat, live
streams, notifications).
"""

__version__ = "0.1.0"
