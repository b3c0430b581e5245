"""Prompt assembly - system prompts for chat turns and the ending pipeline.

Chat prompts vary by ``PromptMode``; one builder per mode is selected from a
table instead of branching through the callers.
"""

from lucidchat.core import relationship as policy
from lucidchat.models.character import Character
from lucidchat.models.chat_log import ChatLog
from lucidchat.models.chat_room import ChatRoom
from lucidchat.models.enums import (
    ChatMode,
    ChatRole,
    EmotionTag,
    EndingType,
    Location,
    Outfit,
    PromptMode,
    RelationTier,
)
from lucidchat.models.user import User

NARRATION_PREFIX = "[NARRATION]\n"

# Relationship tier hints injected into the system prompt
TIER_HINTS = {
    RelationTier.ENEMY: (
        "[Relation: ENEMY] You distrust this person. Stay polite only on the surface, "
        "keep answers short and cold."
    ),
    RelationTier.STRANGER: (
        "[Relation: STRANGER] You barely know this person. Be courteous and keep a "
        "professional distance."
    ),
    RelationTier.ACQUAINTANCE: (
        "[Relation: ACQUAINTANCE] You have warmed up a little. Answer more naturally and "
        "occasionally show curiosity about them."
    ),
    RelationTier.FRIEND: (
        "[Relation: FRIEND] You trust this person. Be warm, joke with them, and share "
        "personal stories."
    ),
    RelationTier.LOVER: (
        "[Relation: LOVER] You are in love with this person. Show your deepest feelings "
        "and vulnerability."
    ),
}

OUTPUT_RULES = (
    "[Output Rules]\n"
    "1) Put every action or expression in parentheses at the start of the line, "
    "e.g. (미소 지으며) 오늘도 보고 싶었어요.\n"
    "2) Address the user by their nickname.\n"
    "3) Keep the tone and distance that match the current relation.\n"
    "4) Never mention that you are an AI, a prompt or a game system."
)


def select_prompt_mode(room: ChatRoom, user: User) -> PromptMode:
    if room.mode == ChatMode.SANDBOX:
        return PromptMode.SANDBOX
    if user.is_secret_mode:
        return PromptMode.SECRET
    return PromptMode.STORY


def _memory_section(memory: str) -> str:
    if not memory:
        return ""
    return (
        "\n\n[Long-term Memory]\n"
        "Things you remember from earlier days (use them naturally, never recite them):\n"
        f"{memory}"
    )


def _scene_section(room: ChatRoom, locations: list[Location], outfits: list[Outfit]) -> str:
    return (
        "\n\n[Scene]\n"
        f"- Current location: {room.current_location}\n"
        f"- Current outfit: {room.current_outfit}\n"
        f"- Locations you may move to: {', '.join(loc.value for loc in locations)}\n"
        f"- Outfits you may wear: {', '.join(o.value for o in outfits)}"
    )


def _story_prompt(character: Character, room: ChatRoom, user: User, memory: str) -> str:
    tier = room.tier
    return (
        f"{character.base_system_prompt}\n\n"
        f"[User Profile]\n- nickname: {user.nickname}\n\n"
        f"[Current State]\n- Affection: {room.affection_score}/100\n- Relation: {tier.value}\n"
        f"{TIER_HINTS[tier]}"
        f"{_scene_section(room, policy.allowed_locations(tier), policy.allowed_outfits(tier))}"
        f"{_memory_section(memory)}\n\n"
        f"{OUTPUT_RULES}"
    )


def _secret_prompt(character: Character, room: ChatRoom, user: User, memory: str) -> str:
    tier = room.tier
    return (
        f"{character.base_system_prompt}\n\n"
        f"[User Profile]\n- nickname: {user.nickname}\n\n"
        f"[Current State]\n- Affection: {room.affection_score}/100\n- Relation: {tier.value}\n"
        f"{TIER_HINTS[tier]}\n"
        "Secret mode is on: intimacy is not limited by the relation, every place and outfit "
        "is available."
        f"{_scene_section(room, list(Location), list(Outfit))}"
        f"{_memory_section(memory)}\n\n"
        f"{OUTPUT_RULES}"
    )


def _sandbox_prompt(character: Character, room: ChatRoom, user: User, memory: str) -> str:
    # Persona only: no affection, relation, scene or story systems.
    return (
        f"{character.base_system_prompt}\n\n"
        f"[User Profile]\n- nickname: {user.nickname}\n\n"
        "This is a free conversation. Stay in character and just talk.\n\n"
        f"{OUTPUT_RULES}"
    )


PROMPT_BUILDERS = {
    PromptMode.STORY: _story_prompt,
    PromptMode.SECRET: _secret_prompt,
    PromptMode.SANDBOX: _sandbox_prompt,
}


def build_system_prompt(
    mode: PromptMode, character: Character, room: ChatRoom, user: User, memory: str = ""
) -> str:
    return PROMPT_BUILDERS[mode](character, room, user, memory)


def build_messages(system_prompt: str, logs: list[ChatLog]) -> list[dict]:
    """System prompt followed by the logs in order.

    System (narrator) logs are sent as user-role narration so the model
    doesn't answer them as its own lines.
    """
    messages = [{"role": "system", "content": system_prompt}]
    for log in logs:
        if log.role == ChatRole.USER.value:
            messages.append({"role": "user", "content": log.raw_content})
        elif log.role == ChatRole.ASSISTANT.value:
            messages.append({"role": "assistant", "content": log.raw_content})
        else:
            messages.append({"role": "user", "content": NARRATION_PREFIX + log.raw_content})
    return messages


# ---------------------------------------------------------------------------
# Endings
# ---------------------------------------------------------------------------

SCENE_FORMAT = (
    "## Output format\n"
    "Reply with JSON only, no markdown fences:\n"
    "{\n"
    '  "scenes": [\n'
    "    {\n"
    '      "narration": "scene description in Korean",\n'
    '      "dialogue": "what {name} says",\n'
    f'      "emotion": one of {", ".join(t.name for t in EmotionTag)},\n'
    f'      "location": one of {", ".join(loc.value for loc in Location)} or null,\n'
    '      "time": "DAY" | "NIGHT" | "SUNSET" | null,\n'
    f'      "outfit": one of {", ".join(o.value for o in Outfit)} or null,\n'
    '      "bgm_mode": "DAILY" | "ROMANTIC" | "TOUCHING" | "TENSE" | null\n'
    "    }\n"
    "  ],\n"
    '  "character_quote": "the last words {name} leaves the player with"\n'
    "}\n"
    "Write 3 to 5 scenes."
)


def ending_scene_prompt(
    ending_type: EndingType,
    character: Character,
    user: User,
    room: ChatRoom,
    memory: str,
    prompt_mode: PromptMode = PromptMode.STORY,
) -> str:
    if ending_type == EndingType.HAPPY:
        direction = (
            f"Write the HAPPY ending of the story between {character.name} and {user.nickname}.\n"
            "Their feelings have finally come together. Build up to a confession and a promise "
            "for the future. Reference specific memories from their time together."
        )
    else:
        direction = (
            f"Write the BAD ending of the story between {character.name} and {user.nickname}.\n"
            "Their relationship has broken past repair. Make it a quiet, painful farewell; "
            "recall what could have been, twisted into regret."
        )
    if prompt_mode == PromptMode.SECRET:
        direction += (
            "\nSecret mode is on: intimacy is not limited by the relation, any place or "
            "outfit may appear in the scenes."
        )
    memory_block = memory or "(no special memories yet, stage it naturally)"
    scene_format = SCENE_FORMAT.replace("{name}", character.name)
    return (
        f"{character.base_system_prompt}\n\n"
        "# ENDING EVENT\n"
        f"{direction}\n\n"
        f"- Final affection: {room.affection_score}\n"
        f"- Final relation: {room.relation_tier}\n\n"
        f"## Long-term Memory\n{memory_block}\n\n"
        f"{scene_format}"
    )


def ending_title_prompt(
    ending_type: EndingType,
    character: Character,
    user: User,
    memory: str,
    recent_conversation: str,
) -> str:
    mood = (
        "warm and emotional, hinting that their love bore fruit"
        if ending_type == EndingType.HAPPY
        else "lonely and wistful, carrying the ache of parting"
    )
    return (
        "You are a visual novel writer who names endings.\n"
        f"Create one unique, poetic ending title in Korean for the story of {character.name} "
        f"and {user.nickname}.\n"
        "- Length: 5 to 15 characters\n"
        f"- Mood: {mood}\n"
        "- Reference a specific moment, place or theme from their story\n"
        "- Output the title only, without quotes or explanation\n\n"
        f"## Memories\n{memory or '(none)'}\n\n"
        f"## Recent conversation\n{recent_conversation or '(none)'}"
    )


def memory_transform_prompt(ending_type: EndingType, character: Character, memories: list[str]) -> str:
    mood = "warm and grateful" if ending_type == EndingType.HAPPY else "wistful and bittersweet"
    numbered = "\n".join(f"{i}. {m}" for i, m in enumerate(memories, start=1))
    return (
        f"You are {character.name}. Rewrite each memory below as a short first-person "
        f"recollection in Korean, {mood} in tone, poetic but specific.\n"
        f"Return exactly {len(memories)} lines, one per memory, in the same order, "
        "without numbering or quotes.\n\n"
        f"{numbered}"
    )
