"""
Marketplace real-time hub.

Accepts published updates and fans them out over Server-Sent Events to every
connection subscribed to the update's topics.
"""

__version__ = "0.1.0"
