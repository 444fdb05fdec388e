from typing import List

from messenger.models.message import Message
from messenger.repositories.message_repository import MessageRepository


async def send_text(db, conversation_id: int, sender_id: int, text: str) -> Message:
    messages = await MessageRepository(db).send_message(conversation_id, sender_id, content=text)
    return messages[0]


async def send_many(db, conversation_id: int, sender_ids: List[int], count: int) -> List[Message]:
    """Send ``count`` messages, rotating through ``sender_ids``."""
    sent = []
    for i in range(count):
        sender_id = sender_ids[i % len(sender_ids)]
        sent.append(await send_text(db, conversation_id, sender_id, f"message {i + 1}"))
    return sent
