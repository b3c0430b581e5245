"""Chat-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from lucidchat.models.chat_room import ChatRoom
from lucidchat.models.enums import ChatMode, EmotionTag, RelationTier


class CreateRoomRequest(BaseModel):
    user_id: int
    character_id: int | None = None  # None picks the default character
    mode: ChatMode = ChatMode.STORY


class SendMessageRequest(BaseModel):
    """Incoming chat message from the user."""
    content: str = Field(min_length=1, max_length=2000)


class SystemEventRequest(BaseModel):
    """Narrated event the character should react to (e.g. a gift, a scene change)."""
    detail: str = Field(min_length=1, max_length=2000)


class TurnResponse(BaseModel):
    reply: str
    emotion: EmotionTag
    affection_score: int
    relation_tier: RelationTier
    energy: int


class ChatLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    role: str
    content: str = Field(validation_alias="clean_content")
    emotion_tag: str
    created_at: datetime


class ChatHistory(BaseModel):
    room_id: int
    messages: list[ChatLogOut]


class RoomInfo(BaseModel):
    id: int
    user_id: int
    character_id: int
    character_name: str
    chat_mode: ChatMode
    affection_score: int
    relation_tier: RelationTier
    last_emotion: EmotionTag
    last_active_at: datetime | None = None
    current_location: str
    current_outfit: str
    ending_reached: bool = False
    ending_type: str | None = None
    ending_title: str | None = None

    @classmethod
    def from_room(cls, room: ChatRoom) -> "RoomInfo":
        """Build from a room loaded with its character."""
        return cls(
            id=room.id,
            user_id=room.user_id,
            character_id=room.character_id,
            character_name=room.character.name,
            chat_mode=room.mode,
            affection_score=room.affection_score,
            relation_tier=room.tier,
            last_emotion=EmotionTag.lookup(room.last_emotion),
            last_active_at=room.last_active_at,
            current_location=room.current_location,
            current_outfit=room.current_outfit,
            ending_reached=room.ending_reached,
            ending_type=room.ending_type,
            ending_title=room.ending_title,
        )


class MemoryResult(BaseModel):
    user_id: int
    query: str
    memory: str
