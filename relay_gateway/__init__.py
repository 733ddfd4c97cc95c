"""
Global chat relay.

WebSocket relay that fans every chat message out to all connected
clients and replays a rolling history to newcomers.
"""

__version__ = "1.0.0"
