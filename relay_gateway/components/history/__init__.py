"""
Chat history.
"""

from relay_gateway.components.history.message_history import ChatMessage, MessageHistory

__all__ = ["ChatMessage", "MessageHistory"]
