"""Ending-related Pydantic schemas."""

from pydantic import AliasChoices, BaseModel, Field, field_validator

from lucidchat.models.enums import EmotionTag, EndingType, Location, Outfit, RelationTier


def _upper_or_none(value):
    if value is None:
        return None
    value = str(value).strip()
    if not value or value.lower() == "null":
        return None
    return value.upper()


class EndingScene(BaseModel):
    narration: str = ""
    dialogue: str = ""
    emotion: EmotionTag = EmotionTag.NEUTRAL
    location: Location | None = None
    time: str | None = None
    outfit: Outfit | None = None
    bgm_mode: str | None = Field(default=None, validation_alias=AliasChoices("bgm_mode", "bgmMode"))

    @field_validator("emotion", mode="before")
    @classmethod
    def _lookup_emotion(cls, value):
        return EmotionTag.lookup(value)

    @field_validator("location", mode="before")
    @classmethod
    def _known_location(cls, value):
        value = _upper_or_none(value)
        return value if value in Location.__members__ else None

    @field_validator("outfit", mode="before")
    @classmethod
    def _known_outfit(cls, value):
        value = _upper_or_none(value)
        return value if value in Outfit.__members__ else None

    @field_validator("time", "bgm_mode", mode="before")
    @classmethod
    def _normalize(cls, value):
        return _upper_or_none(value)


class EndingScenesPayload(BaseModel):
    """What the model is asked to return for the ending scenes."""
    scenes: list[EndingScene] = Field(min_length=1)
    character_quote: str | None = Field(
        default=None, validation_alias=AliasChoices("character_quote", "characterQuote")
    )


class EndingRequest(BaseModel):
    ending_type: str


class EndingStats(BaseModel):
    total_messages: int
    total_days: int
    final_affection: int
    final_relation: RelationTier
    first_message_date: str  # ISO date, or "unknown" for an empty room


class EndingResponse(BaseModel):
    ending_type: EndingType
    title: str
    scenes: list[EndingScene]
    memories: list[str]
    character_quote: str
    stats: EndingStats
