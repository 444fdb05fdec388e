from .base import Base, BaseModel, utcnow
from .user import User, UserProfile
from .conversation import Conversation, Participant, ConversationTheme
from .message import Message, MessageType
from .message_read import MessageRead
from .message_reaction import MessageReaction
from .visibility import ConversationHide, MessageHide
from .typing_status import TypingStatus

__all__ = [
    "Base",
    "BaseModel",
    "utcnow",
    "User",
    "UserProfile",
    "Conversation",
    "Participant",
    "ConversationTheme",
    "Message",
    "MessageType",
    "MessageRead",
    "MessageReaction",
    "ConversationHide",
    "MessageHide",
    "TypingStatus",
]
