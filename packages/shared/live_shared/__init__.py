"""
Shared topic conventions and event payload schemas for the marketplace
real-time layer (hub and clients).
"""

__version__ = "0.1.0"
