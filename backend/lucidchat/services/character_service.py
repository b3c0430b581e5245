"""Character service - loads persona YAML files and seeds them into the database."""

import logging
from pathlib import Path

import yaml
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lucidchat.models.character import Character

logger = logging.getLogger(__name__)

CHARACTER_DIR = Path(__file__).parent.parent / "data" / "characters"

SEED_FIELDS = (
    "base_system_prompt",
    "llm_model_name",
    "tts_voice_id",
    "default_image_url",
    "tagline",
    "description",
    "intro_narration",
    "first_greeting",
)


def load_character(character: str) -> dict:
    """Load character YAML and return the full config dict."""
    path = CHARACTER_DIR / f"{character}.yaml"
    if not path.exists():
        raise FileNotFoundError(f"Character file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


async def seed_character(db: AsyncSession, character: str) -> Character:
    """Insert the character, or sync an existing row (matched by name) to the YAML."""
    data = load_character(character)
    result = await db.execute(select(Character).where(Character.name == data["name"]))
    row = result.scalar_one_or_none()
    if row is None:
        row = Character(name=data["name"])
        db.add(row)
        logger.info("Seeding character %s", data["name"])

    for field in SEED_FIELDS:
        value = data.get(field)
        if value is not None:
            setattr(row, field, value.strip() if isinstance(value, str) else value)

    await db.flush()
    return row
