"""
Conversation services.
"""

from epic_bot.services.conversation_engine import ChatPort, ConversationEngine

__all__ = ["ChatPort", "ConversationEngine"]
