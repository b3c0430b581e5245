"""Chat room model - one persistent (user, character, mode) relationship.

``relation_tier`` is always derived from ``affection_score``; the only way to
change either is ``set_score`` / ``apply_affection_delta``.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lucidchat.core import relationship as policy
from lucidchat.db.database import Base
from lucidchat.models.character import Character
from lucidchat.models.enums import (
    ChatMode,
    EmotionTag,
    EndingType,
    Location,
    Outfit,
    RelationTier,
)
from lucidchat.models.user import User


class ChatRoom(Base):
    __tablename__ = "chat_rooms"
    __table_args__ = (
        UniqueConstraint("user_id", "character_id", "chat_mode", name="uk_user_character_mode"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    character_id: Mapped[int] = mapped_column(ForeignKey("characters.id"), index=True)
    chat_mode: Mapped[str] = mapped_column(String(20), default=ChatMode.STORY.value)

    # Relationship
    affection_score: Mapped[int] = mapped_column(Integer, default=0)
    relation_tier: Mapped[str] = mapped_column(String(30), default=RelationTier.STRANGER.value)

    last_emotion: Mapped[str] = mapped_column(String(30), default=EmotionTag.NEUTRAL.value)
    last_active_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Scene state
    current_location: Mapped[str] = mapped_column(String(20), default=Location.ENTRANCE.value)
    current_outfit: Mapped[str] = mapped_column(String(20), default=Outfit.MAID.value)

    # Ending
    ending_reached: Mapped[bool] = mapped_column(Boolean, default=False)
    ending_type: Mapped[str | None] = mapped_column(String(10), nullable=True)
    ending_title: Mapped[str | None] = mapped_column(String(100), nullable=True)

    user: Mapped[User] = relationship(lazy="raise")
    character: Mapped[Character] = relationship(lazy="raise")

    @classmethod
    def open(cls, user_id: int, character_id: int, mode: ChatMode = ChatMode.STORY) -> "ChatRoom":
        room = cls(
            user_id=user_id,
            character_id=character_id,
            chat_mode=mode.value,
            last_emotion=EmotionTag.NEUTRAL.value,
            last_active_at=datetime.now(),
            current_location=Location.ENTRANCE.value,
            current_outfit=Outfit.MAID.value,
            ending_reached=False,
        )
        room.set_score(0)
        return room

    @property
    def mode(self) -> ChatMode:
        return ChatMode(self.chat_mode)

    @property
    def tier(self) -> RelationTier:
        return RelationTier(self.relation_tier)

    def set_score(self, score: int) -> None:
        self.affection_score = score
        self.relation_tier = policy.tier_from_score(score).value

    def apply_affection_delta(self, delta: int, low: int, high: int) -> "policy.ScoreChange":
        change = policy.apply_delta(self.affection_score or 0, delta, low, high)
        self.set_score(change.score)
        return change

    def touch(self, emotion: EmotionTag) -> None:
        self.last_active_at = datetime.now()
        self.last_emotion = emotion.value

    def mark_ending(self, ending_type: EndingType, title: str) -> None:
        self.ending_reached = True
        self.ending_type = ending_type.value
        self.ending_title = title[:100]
