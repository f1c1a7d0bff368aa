"""Conversation session facade and topic routing."""

from .router import ChatAgentProfile, RoutingConfig, TopicRouter
from .session import ConversationSession, build_session

__all__ = [
    "ChatAgentProfile",
    "ConversationSession",
    "RoutingConfig",
    "TopicRouter",
    "build_session",
]
