"""Character model - static persona descriptors, seeded from YAML at startup."""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from lucidchat.db.database import Base


class Character(Base):
    __tablename__ = "characters"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(50), unique=True)

    # Immutable personality and taboos; the dynamic prompt is built on top
    base_system_prompt: Mapped[str] = mapped_column(Text)
    llm_model_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    tts_voice_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    default_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    tagline: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Lines used when a room is first opened
    intro_narration: Mapped[str | None] = mapped_column(Text, nullable=True)
    first_greeting: Mapped[str | None] = mapped_column(Text, nullable=True)
