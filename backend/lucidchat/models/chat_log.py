"""Chat log model - append-only record of every line spoken in a room."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from lucidchat.db.database import Base
from lucidchat.models.enums import ChatRole, EmotionTag


class ChatLog(Base):
    __tablename__ = "chat_logs"
    __table_args__ = (Index("idx_log_room_created", "room_id", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("chat_rooms.id", ondelete="CASCADE"))
    role: Mapped[str] = mapped_column(String(20))  # "user", "assistant" or "system"

    # raw keeps stage directions, clean is the spoken line only
    raw_content: Mapped[str] = mapped_column(Text)
    clean_content: Mapped[str] = mapped_column(Text)
    emotion_tag: Mapped[str] = mapped_column(String(30), default=EmotionTag.NEUTRAL.value)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)

    @classmethod
    def user(cls, room_id: int, message: str) -> "ChatLog":
        return cls(
            room_id=room_id,
            role=ChatRole.USER.value,
            raw_content=message,
            clean_content=message,
            emotion_tag=EmotionTag.NEUTRAL.value,
        )

    @classmethod
    def assistant(cls, room_id: int, raw: str, clean: str, emotion: EmotionTag) -> "ChatLog":
        return cls(
            room_id=room_id,
            role=ChatRole.ASSISTANT.value,
            raw_content=raw,
            clean_content=clean,
            emotion_tag=emotion.value,
        )

    @classmethod
    def system(cls, room_id: int, detail: str) -> "ChatLog":
        return cls(
            room_id=room_id,
            role=ChatRole.SYSTEM.value,
            raw_content=detail,
            clean_content=detail,
            emotion_tag=EmotionTag.NEUTRAL.value,
        )
