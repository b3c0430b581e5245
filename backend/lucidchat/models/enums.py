"""Enumerations shared by models, services and schemas.

Stored in the database as their string values.
"""

from enum import Enum


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"  # narrator / game events


class EmotionTag(str, Enum):
    NEUTRAL = "neutral"
    JOY = "joy"
    SHY = "shy"
    ANGRY = "angry"
    SAD = "sad"
    SURPRISED = "surprised"
    PANIC = "panic"
    RELAX = "relax"
    DISGUST = "disgust"

    @classmethod
    def lookup(cls, value: str | None) -> "EmotionTag":
        """Case-insensitive lookup by name or value, NEUTRAL when unknown."""
        if not value:
            return cls.NEUTRAL
        key = value.strip().lower()
        if key == "surprise":
            return cls.SURPRISED
        try:
            return cls(key)
        except ValueError:
            return cls.NEUTRAL


class RelationTier(str, Enum):
    """Relationship stages, declared from lowest to highest trust."""

    ENEMY = "ENEMY"
    STRANGER = "STRANGER"
    ACQUAINTANCE = "ACQUAINTANCE"
    FRIEND = "FRIEND"
    LOVER = "LOVER"


class ChatMode(str, Enum):
    STORY = "STORY"  # plot, affection, promotions, endings
    SANDBOX = "SANDBOX"  # free talk, persona only


class PromptMode(str, Enum):
    STORY = "STORY"
    SANDBOX = "SANDBOX"
    SECRET = "SECRET"  # story mode with every location/outfit unlocked


class EndingType(str, Enum):
    HAPPY = "HAPPY"
    BAD = "BAD"


class Location(str, Enum):
    ENTRANCE = "ENTRANCE"
    LIVINGROOM = "LIVINGROOM"
    KITCHEN = "KITCHEN"
    GARDEN = "GARDEN"
    STUDY = "STUDY"
    BALCONY = "BALCONY"
    DOWNTOWN = "DOWNTOWN"
    BEACH = "BEACH"
    BAR = "BAR"
    BEDROOM = "BEDROOM"
    BATHROOM = "BATHROOM"


class Outfit(str, Enum):
    MAID = "MAID"
    PAJAMA = "PAJAMA"
    DATE = "DATE"
    SWIMWEAR = "SWIMWEAR"
    NEGLIGEE = "NEGLIGEE"
